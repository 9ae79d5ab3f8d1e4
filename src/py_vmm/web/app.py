"""Flask application factory for the PyVMM dashboard.

The ``create_app`` function builds a ``SimulationRunner`` (one kernel on
a background thread) and returns a Flask app whose routes read the
runner's latest snapshot and report.  Snapshots and reports are
immutable, so request handlers can read them while the kernel thread
keeps running.
"""

from __future__ import annotations

import threading

from flask import Flask, Response, jsonify

from py_vmm.config import KernelConfig
from py_vmm.kernel import Kernel, SimulationReport
from py_vmm.logging import Logger
from py_vmm.memmap import MemorySnapshot, format_memory_map

_HTTP_ACCEPTED = 202
_HTTP_NOT_FOUND = 404
_HTTP_CONFLICT = 409


class SimulationRunner:
    """Run one simulation at a time on a background thread."""

    def __init__(self, config: KernelConfig | None = None) -> None:
        """Create an idle runner for the given configuration."""
        self._config = config or KernelConfig()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._kernel: Kernel | None = None
        self._snapshot: MemorySnapshot | None = None
        self._report: SimulationReport | None = None
        self._error: str | None = None

    @property
    def running(self) -> bool:
        """Return True while the simulation thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def snapshot(self) -> MemorySnapshot | None:
        """Return the most recent memory map, if any."""
        return self._snapshot

    @property
    def report(self) -> SimulationReport | None:
        """Return the final report of the last completed run, if any."""
        return self._report

    def _observe(self, snapshot: MemorySnapshot) -> None:
        self._snapshot = snapshot

    def _run(self, kernel: Kernel) -> None:
        try:
            self._report = kernel.run()
        except Exception as e:  # noqa: BLE001
            self._error = str(e)

    def start(self) -> bool:
        """Start a new run unless one is already active.

        Returns:
            True if a run was started, False if one was already running.

        """
        with self._lock:
            if self.running:
                return False
            kernel = Kernel(self._config, logger=Logger())
            kernel.add_observer(self._observe)
            self._kernel = kernel
            self._snapshot = None
            self._report = None
            self._error = None
            self._thread = threading.Thread(target=self._run, args=(kernel,), name="kernel", daemon=True)
            self._thread.start()
            return True

    def stop(self) -> None:
        """Ask the active run (if any) to stop."""
        if self._kernel is not None:
            self._kernel.cancel()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the active run to finish."""
        if self._thread is not None:
            self._thread.join(timeout)

    def status(self) -> dict[str, object]:
        """Return a JSON-compatible summary of the runner."""
        kernel = self._kernel
        return {
            "running": self.running,
            "state": str(kernel.state) if kernel is not None else "idle",
            "launched": kernel.launched if kernel is not None else 0,
            "active": kernel.active if kernel is not None else 0,
            "report_ready": self._report is not None,
            "error": self._error,
        }


def create_app(config: KernelConfig | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: Configuration used for every run started from the app.

    Returns:
        A configured Flask application ready to serve.

    """
    runner = SimulationRunner(config)
    app = Flask(__name__)
    app.extensions["py_vmm"] = runner

    @app.route("/")
    def index() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return the latest memory map as plain text."""
        snapshot = runner.snapshot
        text = format_memory_map(snapshot) if snapshot is not None else "No snapshot yet."
        return Response(text, mimetype="text/plain")

    @app.route("/api/status")
    def status() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return whether a run is active plus its counters."""
        return jsonify(runner.status())

    @app.route("/api/snapshot")
    def snapshot() -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Return the latest memory map as JSON."""
        current = runner.snapshot
        if current is None:
            return jsonify({"error": "No snapshot yet"}), _HTTP_NOT_FOUND
        return jsonify(current.to_dict())

    @app.route("/api/start", methods=["POST"])
    def start() -> tuple[Response, int]:  # pyright: ignore[reportUnusedFunction]
        """Start a background run."""
        if not runner.start():
            return jsonify({"error": "A simulation is already running"}), _HTTP_CONFLICT
        return jsonify({"started": True}), _HTTP_ACCEPTED

    @app.route("/api/stop", methods=["POST"])
    def stop() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Cancel the active run."""
        runner.stop()
        return jsonify({"stopping": runner.running})

    @app.route("/api/report")
    def report() -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Return the final statistics of the last run."""
        current = runner.report
        if current is None:
            return jsonify({"error": "No completed run"}), _HTTP_NOT_FOUND
        return jsonify(current.to_dict())

    return app


def main() -> None:
    """Run the dashboard development server.

    This is the ``py-vmm-web`` console entry point.
    """
    app = create_app()
    app.run(debug=True, port=8080)
