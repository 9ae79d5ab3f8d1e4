"""The kernel's owned simulation state.

Everything the kernel mutates — the clock, the process table and the
frame table — lives in one aggregate.  The kernel creates it at boot,
passes it explicitly to the paging engine, and drops it at shutdown.
Workers never see it; they only exchange messages over the channel.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from py_vmm.clock import SimClock
from py_vmm.memory.frames import FrameTable
from py_vmm.process.table import ProcessTable

if TYPE_CHECKING:
    from py_vmm.config import KernelConfig


@dataclass
class SimulationState:
    """Clock, process table and frame table owned by one kernel."""

    clock: SimClock
    processes: ProcessTable
    frames: FrameTable

    @classmethod
    def create(cls, config: KernelConfig) -> SimulationState:
        """Build fresh, empty state sized by the configuration."""
        return cls(
            clock=SimClock(),
            processes=ProcessTable(
                capacity=config.max_processes,
                pages_per_process=config.pages_per_process,
            ),
            frames=FrameTable(total_frames=config.total_frames),
        )
