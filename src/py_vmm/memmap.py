"""Memory map snapshots — a read-only picture of RAM for observers.

Once per simulated second the kernel captures the whole frame table and
the page table of every process that has been admitted, and hands the
snapshot to its observers (the CLI logs it; the web dashboard serves
it).  Snapshots are immutable copies, so an observer can keep one
around, or read it from another thread, without racing the kernel.

``format_memory_map`` renders a snapshot in the classic layout::

    Current memory layout at time 1:3000 is:
    Frame    Occupied   DirtyBit   LastRefS   LastRefNano
    Frame 0  : Yes        1          0          14001000
    ...
    P0 page table: [ 0 -1 -1 ... ]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from py_vmm.process.pcb import ProcessState

if TYPE_CHECKING:
    from py_vmm.clock import SimTime
    from py_vmm.memory.frames import FrameRecord
    from py_vmm.state import SimulationState


@dataclass(frozen=True)
class ProcessView:
    """A process slot as seen in a snapshot."""

    slot: int
    pid: int | None
    state: ProcessState
    page_table: tuple[int | None, ...]


@dataclass(frozen=True)
class MemorySnapshot:
    """Frame table and page tables at one instant of simulated time."""

    time: SimTime
    frames: tuple[FrameRecord, ...]
    processes: tuple[ProcessView, ...]

    @classmethod
    def capture(cls, state: SimulationState) -> MemorySnapshot:
        """Copy the current state into an immutable snapshot."""
        views = tuple(
            ProcessView(
                slot=record.slot,
                pid=record.pid,
                state=record.state,
                page_table=record.page_table.entries(),
            )
            for record in state.processes
            if record.state is not ProcessState.UNUSED
        )
        return cls(time=state.clock.now(), frames=state.frames.frames(), processes=views)

    @property
    def occupied_frames(self) -> int:
        """Return the number of occupied frames."""
        return sum(1 for f in self.frames if f.occupied)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible representation."""
        return {
            "time": {"seconds": self.time.seconds, "nanoseconds": self.time.nanoseconds},
            "frames": [
                {
                    "frame": index,
                    "occupied": f.occupied,
                    "owner": f.owner,
                    "page": f.page,
                    "dirty": f.dirty,
                    "last_reference": str(f.last_reference),
                }
                for index, f in enumerate(self.frames)
            ],
            "processes": [
                {
                    "slot": p.slot,
                    "pid": p.pid,
                    "state": str(p.state),
                    "page_table": list(p.page_table),
                }
                for p in self.processes
            ],
        }


def format_memory_map(snapshot: MemorySnapshot) -> str:
    """Render a snapshot as a human-readable memory map.

    Absent page-table entries print as ``-1``.
    """
    lines = [
        f"Current memory layout at time {snapshot.time} is:",
        f"{'Frame':<8} {'Occupied':<10} {'DirtyBit':<10} {'LastRefS':<10} {'LastRefNano':<10}",
    ]
    for index, frame in enumerate(snapshot.frames):
        occupied = "Yes" if frame.occupied else "No"
        lines.append(
            f"Frame {index:<3}: {occupied:<10} {int(frame.dirty):<10} "
            f"{frame.last_reference.seconds:<10} {frame.last_reference.nanoseconds:<10}",
        )
    for view in snapshot.processes:
        entries = " ".join(str(-1 if e is None else e) for e in view.page_table)
        lines.append(f"P{view.slot} page table: [ {entries} ]")
    return "\n".join(lines)
