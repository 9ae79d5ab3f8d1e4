"""The kernel — admission loop, request dispatch and teardown.

The kernel owns all simulation state (clock, process table, frame
table) and is the only code that mutates it.  Workers are clients that
reach it through the channel.  Like a real kernel it has an explicit
lifecycle:

    SHUTDOWN  →  BOOTING  →  RUNNING  →  SHUTTING_DOWN  →  SHUTDOWN

Each pass of the main loop (``step()``) does four things, in order:

    1. **Admission** — launch a new worker if the run still needs more
       processes, fewer than ``max_concurrent`` are active, and enough
       simulated time has passed since the previous launch.  A full
       process table just defers admission (backpressure).
    2. **Snapshot** — at the start of each new simulated second, offer
       observers a read-only memory map.
    3. **Drain** — receive at most one pending message without blocking.
       A memory request is translated by the paging engine and answered;
       an exit notice runs termination.
    4. **Tick** — charge the fixed per-iteration overhead to the clock.

The loop stops when every process has been launched and has exited,
when the wall-clock safety limit elapses, when it is cancelled, or when
the process table is exhausted with nothing left running.  Every one of
those paths ends in the same ``shutdown()``.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from enum import StrEnum
from time import monotonic, sleep
from typing import TYPE_CHECKING, Any, TypeAlias

from py_vmm.clock import NANOS_PER_SECOND
from py_vmm.config import KernelConfig
from py_vmm.io.ipc import Channel, ChannelError, MemoryResponse
from py_vmm.io.workers import RandomWorkload, ThreadWorkerSpawner, WorkerSpawnError
from py_vmm.logging import Logger
from py_vmm.memmap import MemorySnapshot
from py_vmm.memory.paging import PagingEngine
from py_vmm.memory.virtual import InvalidAddressError
from py_vmm.process.table import NoCapacityError
from py_vmm.state import SimulationState

if TYPE_CHECKING:
    from collections.abc import Callable

    from py_vmm.clock import SimClock, SimTime
    from py_vmm.io.ipc import MemoryRequest
    from py_vmm.io.workers import WorkerSpawner
    from py_vmm.memory.frames import FrameTable
    from py_vmm.process.pcb import ProcessStats
    from py_vmm.process.table import ProcessTable

_SOURCE = "kernel"

Observer: TypeAlias = "Callable[[MemorySnapshot], None]"


class KernelState(StrEnum):
    """Lifecycle phases of the kernel."""

    SHUTDOWN = "shutdown"
    BOOTING = "booting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class StopReason(StrEnum):
    """Why the main loop ended."""

    COMPLETED = "completed"
    TIMEOUT = "timeout"
    INTERRUPTED = "interrupted"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class SimulationReport:
    """Aggregate statistics emitted when the kernel shuts down."""

    processes_launched: int
    total_accesses: int
    total_faults: int
    sim_time: SimTime
    stop_reason: StopReason
    active_processes: int = 0
    peak_active: int = 0
    evictions: int = 0
    writebacks: int = 0

    @property
    def faults_per_access(self) -> float:
        """Return page faults per memory access, in [0, 1]."""
        if self.total_accesses == 0:
            return 0.0
        return self.total_faults / self.total_accesses

    @property
    def accesses_per_second(self) -> float:
        """Return memory accesses per simulated second."""
        seconds = self.sim_time.total_nanoseconds / 1e9
        if seconds <= 0:
            return 0.0
        return self.total_accesses / seconds

    def format(self) -> str:
        """Render the end-of-run statistics block."""
        return "\n".join(
            [
                "Final Statistics:",
                f"Total processes: {self.processes_launched}",
                f"Total memory accesses: {self.total_accesses}",
                f"Total page faults: {self.total_faults}",
                f"Memory accesses per second: {self.accesses_per_second:.2f}",
                f"Page faults per memory access: {self.faults_per_access:.6f}",
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible representation."""
        data = asdict(self)
        data["sim_time"] = str(self.sim_time)
        data["stop_reason"] = str(self.stop_reason)
        data["faults_per_access"] = self.faults_per_access
        data["accesses_per_second"] = self.accesses_per_second
        return data


class Kernel:
    """Central coordinator of the simulation.

    Subsystem references are None when the kernel is not running and
    are created during boot.
    """

    def __init__(
        self,
        config: KernelConfig | None = None,
        *,
        spawner: WorkerSpawner | None = None,
        logger: Logger | None = None,
        wall_clock: Callable[[], float] = monotonic,
        channel_factory: Callable[[], Channel] = Channel,
    ) -> None:
        """Create a kernel in the SHUTDOWN state.

        Args:
            config: Run configuration (validated here).
            spawner: How workers are started.  Defaults to threads
                running the random workload.
            logger: Destination for kernel events.  Defaults to an
                in-memory logger with no sinks.
            wall_clock: Real-time source for the safety timeout.
            channel_factory: Opens the kernel/worker channel at boot.

        """
        self._config = (config or KernelConfig()).validate()
        if spawner is None:
            page_size = self._config.page_size
            pages = self._config.pages_per_process
            spawner = ThreadWorkerSpawner(
                lambda _slot: RandomWorkload(page_size=page_size, pages=pages),
                seed=self._config.seed,
            )
        self._spawner = spawner
        self._logger = logger if logger is not None else Logger()
        self._wall_clock = wall_clock
        self._channel_factory = channel_factory
        self._observers: list[Observer] = []
        self._cancel = threading.Event()

        self._state = KernelState.SHUTDOWN
        self._sim: SimulationState | None = None
        self._engine: PagingEngine | None = None
        self._channel: Channel | None = None
        self._report: SimulationReport | None = None
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._next_pid = 1
        self._launched = 0
        self._active = 0
        self._peak_active = 0
        self._last_admission_ns: int | None = None
        self._last_snapshot_second = 0
        self._started_at = 0.0

    # -- Properties ------------------------------------------------------------

    @property
    def state(self) -> KernelState:
        """Return the current lifecycle state."""
        return self._state

    @property
    def config(self) -> KernelConfig:
        """Return the run configuration."""
        return self._config

    @property
    def logger(self) -> Logger:
        """Return the kernel logger."""
        return self._logger

    @property
    def simulation(self) -> SimulationState:
        """Return the owned simulation state (RUNNING only)."""
        self._require_running()
        assert self._sim is not None  # noqa: S101
        return self._sim

    @property
    def clock(self) -> SimClock:
        """Return the simulated clock (RUNNING only)."""
        return self.simulation.clock

    @property
    def processes(self) -> ProcessTable:
        """Return the process table (RUNNING only)."""
        return self.simulation.processes

    @property
    def frames(self) -> FrameTable:
        """Return the frame table (RUNNING only)."""
        return self.simulation.frames

    @property
    def engine(self) -> PagingEngine:
        """Return the paging engine (RUNNING only)."""
        self._require_running()
        assert self._engine is not None  # noqa: S101
        return self._engine

    @property
    def channel(self) -> Channel:
        """Return the kernel/worker channel (RUNNING only)."""
        self._require_running()
        assert self._channel is not None  # noqa: S101
        return self._channel

    @property
    def launched(self) -> int:
        """Return the number of processes admitted so far."""
        return self._launched

    @property
    def active(self) -> int:
        """Return the number of processes currently running."""
        return self._active

    @property
    def peak_active(self) -> int:
        """Return the largest number of processes ever active at once."""
        return self._peak_active

    @property
    def report(self) -> SimulationReport | None:
        """Return the report from the last shutdown, if any."""
        return self._report

    def add_observer(self, observer: Observer) -> None:
        """Register a callback for the once-per-simulated-second snapshot."""
        self._observers.append(observer)

    def cancel(self) -> None:
        """Ask the main loop to stop at the next iteration boundary.

        Safe to call from another thread or a signal handler.  A request
        made before boot stops the run as soon as it starts; the request
        is cleared at shutdown.
        """
        self._cancel.set()

    # -- Lifecycle -------------------------------------------------------------

    def _require_running(self) -> None:
        """Raise if the kernel is not in the RUNNING state."""
        if self._state is not KernelState.RUNNING:
            msg = f"Kernel is not running (state: {self._state})"
            raise RuntimeError(msg)

    def boot(self) -> None:
        """Transition SHUTDOWN → RUNNING.

        Build fresh simulation state, open the channel and start the
        wall-clock safety timer.

        Raises:
            RuntimeError: If the kernel is not in the SHUTDOWN state.
            ChannelError: If the channel cannot be opened.

        """
        if self._state is not KernelState.SHUTDOWN:
            msg = f"Cannot boot: kernel is {self._state}, expected shutdown"
            raise RuntimeError(msg)

        self._state = KernelState.BOOTING
        try:
            self._channel = self._channel_factory()
        except (ChannelError, OSError) as e:
            self._state = KernelState.SHUTDOWN
            self._logger.error(f"Failed to open message channel: {e}", source=_SOURCE)
            msg = f"Cannot boot: message channel unavailable ({e})"
            raise ChannelError(msg) from e

        self._sim = SimulationState.create(self._config)
        self._engine = PagingEngine(self._sim, self._config, logger=self._logger)
        self._reset_counters()
        self._report = None
        self._started_at = self._wall_clock()

        self._state = KernelState.RUNNING
        self._logger.info(
            f"Starting simulation with max {self._config.total_processes} processes, "
            f"{self._config.max_concurrent} concurrent",
            source=_SOURCE,
        )

    def shutdown(self, *, reason: StopReason = StopReason.INTERRUPTED) -> SimulationReport:
        """Transition RUNNING → SHUTDOWN, reporting final statistics.

        This is the single teardown path for normal completion, timeout
        and cancellation.  The channel is closed, so any worker still
        waiting for a response is abandoned.

        Raises:
            RuntimeError: If the kernel is not in the RUNNING state.

        """
        self._require_running()
        assert self._sim is not None  # noqa: S101
        assert self._engine is not None  # noqa: S101
        assert self._channel is not None  # noqa: S101
        self._state = KernelState.SHUTTING_DOWN

        totals = self._sim.processes.totals()
        report = SimulationReport(
            processes_launched=self._launched,
            total_accesses=totals.total_accesses,
            total_faults=totals.page_faults,
            sim_time=self._sim.clock.now(),
            stop_reason=reason,
            active_processes=self._active,
            peak_active=self._peak_active,
            evictions=self._engine.evictions,
            writebacks=self._engine.writebacks,
        )
        if reason is StopReason.TIMEOUT:
            self._logger.warning("Time limit reached. Terminating...", source=_SOURCE)
        elif reason is StopReason.INTERRUPTED:
            self._logger.warning("Interrupt received. Cleaning up and terminating...", source=_SOURCE)
        elif reason is StopReason.EXHAUSTED:
            self._logger.warning(
                f"Process table exhausted after {self._launched} launches; stopping",
                source=_SOURCE,
            )
        for line in report.format().splitlines():
            self._logger.info(line, source=_SOURCE)
        if self._active:
            self._logger.warning(f"Abandoning {self._active} active worker(s)", source=_SOURCE)

        self._channel.close()
        self._channel = None
        self._engine = None
        self._sim = None
        self._report = report
        self._cancel.clear()
        self._state = KernelState.SHUTDOWN
        return report

    def run(self) -> SimulationReport:
        """Boot if needed, loop until a stop condition, then shut down.

        Returns:
            The end-of-run statistics.

        """
        if self._state is KernelState.SHUTDOWN:
            self.boot()
        self._require_running()

        reason: StopReason | None = None
        try:
            while (reason := self.stop_reason()) is None:
                self.step()
        finally:
            report = self.shutdown(reason=reason or StopReason.INTERRUPTED)
        return report

    # -- Main loop -------------------------------------------------------------

    def stop_reason(self) -> StopReason | None:
        """Return why the loop should stop now, or None to keep going."""
        self._require_running()
        if self._cancel.is_set():
            return StopReason.INTERRUPTED
        if self._wall_clock() - self._started_at >= self._config.wall_clock_limit_s:
            return StopReason.TIMEOUT
        if self._launched >= self._config.total_processes and self._active == 0:
            return StopReason.COMPLETED
        if self._active == 0 and not self._config.recycle_slots and not self.processes.has_unused:
            return StopReason.EXHAUSTED
        return None

    def step(self) -> None:
        """Run one loop iteration: admit, snapshot, drain, tick.

        With no process active and nothing to drain, the iteration also
        charges the idle iterations that would follow it, up to the next
        admission deadline or simulated second.  Those iterations could
        only tick the clock, so skipping them changes nothing observable.
        """
        self._require_running()
        self.admit()
        self._offer_snapshot()
        request = self.drain()
        if self._active:
            # Let the answered (or any blocked) worker thread run.
            sleep(0)
        elif request is None:
            self._skip_idle()
        self.tick()

    def _skip_idle(self) -> None:
        """Advance to one tick before the next admission or new second."""
        tick = self._config.tick_ns
        pending = self._launched < self._config.total_processes
        if tick <= 0 or (pending and self._pacing_elapsed()):
            # An admission that just failed is retried on the next pass.
            return
        now = self.clock.total_nanoseconds
        target = (self.clock.seconds + 1) * NANOS_PER_SECOND
        if pending and self._last_admission_ns is not None:
            target = min(target, self._last_admission_ns + self._config.launch_interval_ns)
        ticks = -(-(target - now) // tick)
        if ticks > 1:
            self.clock.advance((ticks - 1) * tick)

    def tick(self) -> None:
        """Charge the fixed per-iteration overhead to the clock."""
        self.clock.advance(self._config.tick_ns)

    def _pacing_elapsed(self) -> bool:
        if self._last_admission_ns is None:
            return True
        elapsed = self.clock.total_nanoseconds - self._last_admission_ns
        return elapsed >= self._config.launch_interval_ns

    def admit(self) -> int | None:
        """Launch one new worker if the admission rules allow it.

        Returns:
            The new process's slot, or None if nothing was admitted.

        """
        self._require_running()
        assert self._sim is not None  # noqa: S101
        assert self._channel is not None  # noqa: S101
        if self._launched >= self._config.total_processes:
            return None
        if self._active >= self._config.max_concurrent or not self._pacing_elapsed():
            return None

        clock = self._sim.clock
        pid = self._next_pid
        try:
            slot = self._sim.processes.allocate(pid=pid, now=clock.now())
        except NoCapacityError:
            return None

        try:
            self._channel.register(pid)
            self._spawner.spawn(pid=pid, slot=slot, channel=self._channel)
        except (WorkerSpawnError, ChannelError) as e:
            self._channel.unregister(pid)
            self._sim.processes.release_slot(slot)
            self._logger.error(f"Failed to spawn P{slot}: {e}", source="scheduler")
            return None

        self._next_pid += 1
        self._launched += 1
        self._active += 1
        self._peak_active = max(self._peak_active, self._active)
        self._last_admission_ns = clock.total_nanoseconds
        self._logger.info(f"Process P{slot} created at time {clock}", source="scheduler")
        return slot

    def _offer_snapshot(self) -> None:
        clock = self.clock
        if clock.seconds <= self._last_snapshot_second:
            return
        self._last_snapshot_second = clock.seconds
        if not self._observers:
            return
        snapshot = MemorySnapshot.capture(self.simulation)
        for observer in self._observers:
            observer(snapshot)

    def snapshot(self) -> MemorySnapshot:
        """Capture the memory map right now."""
        return MemorySnapshot.capture(self.simulation)

    def drain(self) -> MemoryRequest | None:
        """Receive and handle at most one pending message.

        Returns:
            The message handled, or None if nothing was pending.

        """
        request = self.channel.poll()
        if request is not None:
            self.handle_message(request)
        return request

    def handle_message(self, request: MemoryRequest) -> MemoryResponse | None:
        """Dispatch one message from a worker.

        Exit notices run termination.  Memory requests are translated and
        answered.  Messages from unknown PIDs are dropped.

        Returns:
            The response sent, or None for exit notices and dropped messages.

        """
        processes = self.processes
        slot = processes.find_running(request.pid)
        if slot is None:
            self._logger.warning(f"Dropping message from unknown PID {request.pid}", source=_SOURCE)
            return None
        if request.terminated:
            self.terminate(slot)
            return None

        faults_before = processes[slot].page_faults
        try:
            frame = self.engine.translate(slot, request.address, is_write=request.is_write)
        except InvalidAddressError as e:
            self._logger.warning(f"P{slot}: {e}", source=_SOURCE)
            response = MemoryResponse(pid=request.pid, address=request.address, error=str(e))
        else:
            response = MemoryResponse(
                pid=request.pid,
                address=request.address,
                frame=frame,
                fault=processes[slot].page_faults > faults_before,
            )
        if not self.channel.respond(response):
            self._logger.warning(f"No mailbox for PID {request.pid}; response dropped", source=_SOURCE)
        return response

    def terminate(self, slot: int) -> ProcessStats:
        """Finalize a process: report its stats and free its frames.

        This is the only path that releases frames.

        Raises:
            RuntimeError: If the slot is not RUNNING.

        """
        sim = self.simulation
        record = sim.processes[slot]
        pid = record.pid
        assert pid is not None  # noqa: S101

        stats = sim.processes.finalize(slot)
        freed = sim.frames.release(pid)
        record.page_table.clear()
        self._active -= 1
        self.channel.unregister(pid)

        self._logger.info(f"Process P{slot} terminating at time {sim.clock}", source=_SOURCE)
        self._logger.info(
            f"Process P{slot} statistics: total memory accesses {stats.total_accesses}, "
            f"total page faults {stats.page_faults}, "
            f"effective memory access time {stats.fault_rate:.6f}, "
            f"frames freed {len(freed)}",
            source=_SOURCE,
        )
        if self._config.recycle_slots:
            sim.processes.release_slot(slot)
        return stats
