"""Browser dashboard for PyVMM.

This package provides a Flask application that runs a simulation in the
background and exposes its progress over HTTP.  It is an **optional**
extra — install with::

    pip install py-vmm[web]

The ``create_app`` factory in ``app.py`` serves:

- ``GET /`` — the latest memory map as plain text.
- ``GET /api/status`` — whether a run is active and its counters.
- ``GET /api/snapshot`` — the latest memory map as JSON.
- ``POST /api/start`` / ``POST /api/stop`` — control the background run.
- ``GET /api/report`` — final statistics once the run has ended.
"""
