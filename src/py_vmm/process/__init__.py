"""Process subsystem — process records and the fixed-size process table.

Re-exports public symbols so callers can write::

    from py_vmm.process import ProcessTable, ProcessState
"""

from py_vmm.process.pcb import ProcessRecord, ProcessState, ProcessStats
from py_vmm.process.table import NoCapacityError, ProcessTable

__all__ = [
    "NoCapacityError",
    "ProcessRecord",
    "ProcessState",
    "ProcessStats",
    "ProcessTable",
]
