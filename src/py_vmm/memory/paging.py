"""Paging engine — translate, fault, evict.

This is the heart of the simulator.  Every memory request a worker makes
is turned into a frame index here:

    1. **Split** the address: ``page = address // page_size``.
    2. **Hit** — the page table has a frame.  Refresh that frame's LRU
       stamp, set its dirty bit on a write, and charge the hit cost.
    3. **Fault** — the page is absent.  Take a free frame; if memory is
       full, evict the least recently used frame instead.  Eviction
       clears the *victim owner's* page-table entry (the kernel does
       this on the owner's behalf) and, if the frame is dirty, charges
       a write-back before the frame is reused.  Then load the page,
       update the page table, count the fault, and charge the fault
       service cost.

The engine never owns state of its own apart from system-wide counters;
it operates on the ``SimulationState`` the kernel hands it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from py_vmm.memory.frames import NoFreeFrameError
from py_vmm.memory.virtual import InvalidAddressError

if TYPE_CHECKING:
    from py_vmm.config import KernelConfig
    from py_vmm.logging import Logger
    from py_vmm.state import SimulationState

_SOURCE = "paging"


class PagingEngine:
    """Resolve (process, address) pairs to frames with LRU replacement."""

    def __init__(
        self,
        state: SimulationState,
        config: KernelConfig,
        *,
        logger: Logger | None = None,
    ) -> None:
        """Create an engine operating on the given state.

        Args:
            state: The kernel's clock, process table and frame table.
            config: Geometry and timing costs.
            logger: Optional log for per-request trace lines.

        """
        self._state = state
        self._config = config
        self._logger = logger
        self._hits = 0
        self._faults = 0
        self._evictions = 0
        self._writebacks = 0

    @property
    def hits(self) -> int:
        """Return the number of accesses that hit a resident page."""
        return self._hits

    @property
    def faults(self) -> int:
        """Return the number of page faults serviced."""
        return self._faults

    @property
    def evictions(self) -> int:
        """Return the number of frames stolen by LRU replacement."""
        return self._evictions

    @property
    def writebacks(self) -> int:
        """Return the number of dirty frames written back on eviction."""
        return self._writebacks

    def page_of(self, address: int) -> int:
        """Return the virtual page for an address.

        Raises:
            InvalidAddressError: If the address is outside the address space.

        """
        if not 0 <= address < self._config.address_space:
            msg = f"Address {address} outside address space (0..{self._config.address_space - 1})"
            raise InvalidAddressError(msg)
        return address // self._config.page_size

    def translate(self, slot: int, address: int, *, is_write: bool) -> int:
        """Service one memory reference for the process in ``slot``.

        Args:
            slot: Process-table slot of the requesting process.
            address: Virtual address being accessed.
            is_write: True for a write, False for a read.

        Returns:
            The frame now holding the page (for diagnostics only).

        Raises:
            InvalidAddressError: If the address is outside the address space.

        """
        page = self.page_of(address)
        clock = self._state.clock
        record = self._state.processes[slot]
        kind = "write" if is_write else "read"
        self._trace(f"P{slot} requesting {kind} of address {address} at time {clock}")

        frame = record.page_table.lookup(page)
        if frame is not None:
            self._state.frames.touch(frame, now=clock.now(), write=is_write)
            action = "writing data to frame" if is_write else "giving data to P"
            self._trace(f"Address {address} in frame {frame}, {action} at time {clock}")
            clock.advance(self._config.hit_cost_ns)
            self._state.processes.record_access(slot, fault=False)
            self._hits += 1
            return frame

        self._trace(f"Address {address} is not in a frame, pagefault")
        return self._handle_fault(slot, page, is_write=is_write)

    def _handle_fault(self, slot: int, page: int, *, is_write: bool) -> int:
        """Load ``page`` for ``slot`` into a frame, evicting if needed."""
        frames = self._state.frames
        clock = self._state.clock
        record = self._state.processes[slot]
        assert record.pid is not None  # noqa: S101

        frame = frames.find_free()
        if frame is None:
            frame = frames.find_lru_victim()
            if frame is None:
                msg = "No frame available: frame table is empty"
                raise NoFreeFrameError(msg)
            self._evict(frame)
            self._trace(f"Clearing frame {frame} and swapping in p{slot} page {page}")
            if frames[frame].dirty:
                self._trace(f"Dirty bit of frame {frame} set, adding additional time to the clock")
                clock.advance(self._config.writeback_cost_ns)
                self._writebacks += 1

        frames.claim(frame, owner=record.pid, page=page, dirty=is_write, now=clock.now())
        record.page_table.map(virtual_page=page, physical_frame=frame)
        self._state.processes.record_access(slot, fault=True)
        self._faults += 1
        clock.advance(self._config.fault_cost_ns)
        return frame

    def _evict(self, frame: int) -> None:
        """Detach the victim frame's page from its owner's page table."""
        victim = self._state.frames[frame]
        self._evictions += 1
        if victim.owner is None or victim.page is None:
            return
        owner_slot = self._state.processes.find_running(victim.owner)
        if owner_slot is not None:
            self._state.processes[owner_slot].page_table.unmap(virtual_page=victim.page)

    def _trace(self, message: str) -> None:
        if self._logger is not None:
            self._logger.debug(message, source=_SOURCE)
