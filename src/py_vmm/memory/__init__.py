"""Memory subsystem — frame table, page tables and the paging engine.

Re-exports public symbols so callers can write::

    from py_vmm.memory import FrameTable, PagingEngine
"""

from py_vmm.memory.frames import FrameRecord, FrameTable, NoFreeFrameError
from py_vmm.memory.paging import PagingEngine
from py_vmm.memory.virtual import InvalidAddressError, PageTable

__all__ = [
    "FrameRecord",
    "FrameTable",
    "InvalidAddressError",
    "NoFreeFrameError",
    "PageTable",
    "PagingEngine",
]
