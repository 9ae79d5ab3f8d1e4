"""Process table — fixed-capacity array of process records.

The kernel can only track ``max_processes`` processes at once (18 by
default), one per slot.  Admission asks the table for the first UNUSED
slot; when there is none, ``NoCapacityError`` tells the scheduler to
try again later — it is backpressure, not a failure.

Slot reuse:
    A terminated slot stays TERMINATED so its statistics survive until
    the end of the run.  Because only UNUSED slots can be allocated, the
    table's capacity also caps how many processes are ever admitted.
    With recycling enabled the kernel calls ``release_slot()`` after
    finalizing, folding the slot's counters into retired totals first so
    the end-of-run aggregate stays correct.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from py_vmm.process.pcb import ProcessRecord, ProcessState, ProcessStats

if TYPE_CHECKING:
    from collections.abc import Iterator

    from py_vmm.clock import SimTime


class NoCapacityError(Exception):
    """Raise when every process-table slot is in use."""


class ProcessTable:
    """Manage a fixed number of process slots and their statistics."""

    def __init__(self, *, capacity: int, pages_per_process: int) -> None:
        """Create a table of UNUSED slots.

        Args:
            capacity: Number of slots (maximum concurrent processes).
            pages_per_process: Page table size for every slot.

        """
        self._records = [ProcessRecord(slot=i, pages=pages_per_process) for i in range(capacity)]
        self._retired = ProcessStats(total_accesses=0, page_faults=0)

    @property
    def capacity(self) -> int:
        """Return the number of slots."""
        return len(self._records)

    @property
    def running_count(self) -> int:
        """Return the number of RUNNING slots."""
        return sum(1 for r in self._records if r.state is ProcessState.RUNNING)

    @property
    def has_unused(self) -> bool:
        """Return True if at least one slot can still be allocated."""
        return any(r.state is ProcessState.UNUSED for r in self._records)

    def allocate(self, *, pid: int, now: SimTime) -> int:
        """Bind the first UNUSED slot to a new process.

        Args:
            pid: Handle of the process being admitted.
            now: Admission time.

        Returns:
            The allocated slot index.

        Raises:
            NoCapacityError: If no slot is UNUSED.

        """
        for record in self._records:
            if record.state is ProcessState.UNUSED:
                record.start(pid=pid, now=now)
                return record.slot
        msg = f"No unused process slot for PID {pid} ({len(self._records)} slots)"
        raise NoCapacityError(msg)

    def find_running(self, pid: int) -> int | None:
        """Return the slot of the RUNNING process with this PID, or None."""
        for record in self._records:
            if record.state is ProcessState.RUNNING and record.pid == pid:
                return record.slot
        return None

    def record_access(self, slot: int, *, fault: bool) -> None:
        """Count one access (and possibly a fault) against a slot."""
        self._records[slot].record_access(fault=fault)

    def finalize(self, slot: int) -> ProcessStats:
        """Terminate a RUNNING slot and return its statistics.

        Raises:
            RuntimeError: If the slot is not RUNNING.

        """
        return self._records[slot].terminate()

    def release_slot(self, slot: int) -> None:
        """Return a slot to UNUSED so it can be allocated again.

        Counters of a TERMINATED slot are kept in the retired totals.
        """
        record = self._records[slot]
        if record.state is ProcessState.TERMINATED:
            self._retired = ProcessStats(
                total_accesses=self._retired.total_accesses + record.total_accesses,
                page_faults=self._retired.page_faults + record.page_faults,
            )
        record.reset()

    def totals(self) -> ProcessStats:
        """Aggregate accesses and faults over every slot ever used."""
        accesses = self._retired.total_accesses
        faults = self._retired.page_faults
        for record in self._records:
            if record.state is not ProcessState.UNUSED:
                accesses += record.total_accesses
                faults += record.page_faults
        return ProcessStats(total_accesses=accesses, page_faults=faults)

    def records(self) -> tuple[ProcessRecord, ...]:
        """Return every record in slot order."""
        return tuple(self._records)

    def __getitem__(self, slot: int) -> ProcessRecord:
        """Return the record at a slot."""
        return self._records[slot]

    def __iter__(self) -> Iterator[ProcessRecord]:
        """Iterate over records in slot order."""
        return iter(self._records)

    def __len__(self) -> int:
        """Return the number of slots."""
        return len(self._records)
