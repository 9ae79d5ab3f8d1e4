"""Process record — the kernel's PCB for one simulated process.

Each slot of the process table holds one ``ProcessRecord``.  The record
tracks the process handle (PID), its lifecycle state, its page table,
and the access counters that feed the end-of-run statistics.

State machine::

    UNUSED → RUNNING → TERMINATED
       ↑________|  (only when slot recycling is enabled, or a spawn fails)

Transitions are enforced: finalizing a slot that is not RUNNING raises
RuntimeError, the same way the scheduler refuses to dispatch a process
that was never admitted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from py_vmm.clock import SimTime
from py_vmm.memory.virtual import PageTable


class ProcessState(StrEnum):
    """Lifecycle states of a process-table slot.

    - UNUSED: never admitted (or recycled); eligible for allocation.
    - RUNNING: a live worker is bound to this slot.
    - TERMINATED: the worker exited; statistics are retained.
    """

    UNUSED = "unused"
    RUNNING = "running"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class ProcessStats:
    """Per-process statistics reported at termination.

    Attributes:
        total_accesses: Memory references serviced for the process.
        page_faults: How many of those references faulted.

    """

    total_accesses: int
    page_faults: int

    @property
    def fault_rate(self) -> float:
        """Return faults per access (0.0 when nothing was accessed)."""
        return self.page_faults / max(self.total_accesses, 1)


class ProcessRecord:
    """A process-table slot (the Process Control Block)."""

    def __init__(self, *, slot: int, pages: int) -> None:
        """Create an UNUSED record with an empty page table.

        Args:
            slot: Index of this record in the process table.
            pages: Number of entries in the page table.

        """
        self._slot = slot
        self._pid: int | None = None
        self._state = ProcessState.UNUSED
        self._page_table = PageTable(size=pages)
        self._total_accesses = 0
        self._page_faults = 0
        self._started_at = SimTime()

    @property
    def slot(self) -> int:
        """Return this record's index in the process table."""
        return self._slot

    @property
    def pid(self) -> int | None:
        """Return the bound process handle, or None when UNUSED."""
        return self._pid

    @property
    def state(self) -> ProcessState:
        """Return the lifecycle state."""
        return self._state

    @property
    def page_table(self) -> PageTable:
        """Return the process's page table."""
        return self._page_table

    @property
    def total_accesses(self) -> int:
        """Return the number of memory references serviced."""
        return self._total_accesses

    @property
    def page_faults(self) -> int:
        """Return the number of references that faulted."""
        return self._page_faults

    @property
    def started_at(self) -> SimTime:
        """Return the simulated time the process was admitted."""
        return self._started_at

    def stats(self) -> ProcessStats:
        """Return the current counters as an immutable snapshot."""
        return ProcessStats(total_accesses=self._total_accesses, page_faults=self._page_faults)

    def start(self, *, pid: int, now: SimTime) -> None:
        """Transition UNUSED → RUNNING and bind the slot to a process.

        Raises:
            RuntimeError: If the slot is not UNUSED.

        """
        if self._state is not ProcessState.UNUSED:
            msg = f"Cannot start: slot {self._slot} is {self._state}, expected {ProcessState.UNUSED}"
            raise RuntimeError(msg)
        self._pid = pid
        self._state = ProcessState.RUNNING
        self._started_at = now
        self._total_accesses = 0
        self._page_faults = 0
        self._page_table.clear()

    def record_access(self, *, fault: bool) -> None:
        """Count one memory reference, and a fault if it missed."""
        self._total_accesses += 1
        if fault:
            self._page_faults += 1

    def terminate(self) -> ProcessStats:
        """Transition RUNNING → TERMINATED and return final statistics.

        Raises:
            RuntimeError: If the slot is not RUNNING.

        """
        if self._state is not ProcessState.RUNNING:
            msg = f"Cannot terminate: slot {self._slot} is {self._state}, expected {ProcessState.RUNNING}"
            raise RuntimeError(msg)
        self._state = ProcessState.TERMINATED
        return self.stats()

    def reset(self) -> None:
        """Return the slot to UNUSED, forgetting its process."""
        self._pid = None
        self._state = ProcessState.UNUSED
        self._total_accesses = 0
        self._page_faults = 0
        self._started_at = SimTime()
        self._page_table.clear()

    def __repr__(self) -> str:
        """Return a debug-friendly representation."""
        return f"ProcessRecord(slot={self._slot}, pid={self._pid}, state={self._state})"
