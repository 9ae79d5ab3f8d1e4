"""Worker processes — the simulated user programs.

A worker is the kernel's client.  It owns no simulation state; all it
does is generate memory references and trade messages with the kernel:

    1. Ask its **workload** for the next ``(address, is_write)``.
    2. ``channel.call()`` — send the request and block on the response.
    3. After each response, ask the workload whether to exit.  When it
       says yes, send exactly one termination notice and stop.

Workers run as lightweight threads instead of forked OS processes; the
kernel only ever talks to them through the ``Channel``.

Workloads (Strategy pattern):
    - **RandomWorkload** — uniformly random page and offset, 30% writes,
      and every 900–1099 references a 30% chance to exit.
    - **ScriptedWorkload** — replay a fixed list of accesses, then exit.
      Deterministic, which is what tests want.

Spawning is behind the ``WorkerSpawner`` protocol so the kernel does not
care how workers are realised.
"""

from __future__ import annotations

import random
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

from py_vmm.io.ipc import ChannelClosedError, MemoryRequest

if TYPE_CHECKING:
    from collections.abc import Iterable

    from py_vmm.io.ipc import Channel

WRITE_PERCENT = 30
EXIT_PERCENT = 30
CHECK_MIN = 900
CHECK_SPREAD = 200


class WorkerSpawnError(Exception):
    """Raise when a worker cannot be started."""


class Workload(Protocol):
    """Interface every request-generation policy must satisfy."""

    def next_access(self, rng: random.Random) -> tuple[int, bool]:
        """Return the next ``(address, is_write)`` to request."""
        ...  # pragma: no cover

    def should_terminate(self, rng: random.Random, references: int) -> bool:
        """Return True if the worker should exit after ``references`` accesses."""
        ...  # pragma: no cover


class RandomWorkload:
    """Uniform random references with a periodic chance to exit.

    Every ``CHECK_MIN``..``CHECK_MIN + CHECK_SPREAD - 1`` references the
    worker rolls the dice: ``EXIT_PERCENT`` percent of the time it exits,
    otherwise the next check is scheduled the same way.
    """

    def __init__(self, *, page_size: int = 1024, pages: int = 32) -> None:
        """Create a workload over an address space of ``pages`` pages."""
        self._page_size = page_size
        self._pages = pages
        self._next_check: int | None = None

    def next_access(self, rng: random.Random) -> tuple[int, bool]:
        """Pick a random page and offset; writes are the minority."""
        page = rng.randrange(self._pages)
        offset = rng.randrange(self._page_size)
        is_write = rng.randrange(100) < WRITE_PERCENT
        return page * self._page_size + offset, is_write

    def should_terminate(self, rng: random.Random, references: int) -> bool:
        """Roll for exit once each check interval has elapsed."""
        if self._next_check is None:
            self._next_check = CHECK_MIN + rng.randrange(CHECK_SPREAD)
        if references < self._next_check:
            return False
        if rng.randrange(100) < EXIT_PERCENT:
            return True
        self._next_check = references + CHECK_MIN + rng.randrange(CHECK_SPREAD)
        return False


class ScriptedWorkload:
    """Replay a fixed sequence of accesses, then exit."""

    def __init__(self, accesses: Iterable[tuple[int, bool]]) -> None:
        """Create a workload from ``(address, is_write)`` pairs."""
        self._accesses = list(accesses)
        self._position = 0

    def next_access(self, rng: random.Random) -> tuple[int, bool]:  # noqa: ARG002
        """Return the next scripted access.

        Raises:
            IndexError: If the script is exhausted.

        """
        if self._position >= len(self._accesses):
            msg = "Scripted workload exhausted"
            raise IndexError(msg)
        access = self._accesses[self._position]
        self._position += 1
        return access

    def should_terminate(self, rng: random.Random, references: int) -> bool:  # noqa: ARG002
        """Exit once every scripted access has been made."""
        return references >= len(self._accesses)


class Worker:
    """One simulated user process, running on its own daemon thread."""

    def __init__(
        self,
        *,
        pid: int,
        slot: int,
        channel: Channel,
        workload: Workload,
        seed: int | None = None,
    ) -> None:
        """Create a worker bound to a PID, slot and channel.

        Args:
            pid: Handle the kernel assigned to this worker.
            slot: Process-table slot the worker occupies.
            channel: Shared channel to the kernel.
            workload: Request-generation policy.
            seed: Seed for this worker's private random generator.

        """
        self._pid = pid
        self._slot = slot
        self._channel = channel
        self._workload = workload
        self._rng = random.Random(seed)  # noqa: S311
        self._references = 0
        self._faults = 0
        self._abandoned = False
        self._thread = threading.Thread(target=self._run, name=f"worker-P{slot}", daemon=True)

    @property
    def pid(self) -> int:
        """Return the worker's process handle."""
        return self._pid

    @property
    def slot(self) -> int:
        """Return the process-table slot."""
        return self._slot

    @property
    def references(self) -> int:
        """Return the number of completed round trips."""
        return self._references

    @property
    def faults(self) -> int:
        """Return how many responses reported a page fault."""
        return self._faults

    @property
    def abandoned(self) -> bool:
        """Return True if the kernel closed the channel under this worker."""
        return self._abandoned

    def start(self) -> None:
        """Start the worker thread."""
        self._thread.start()

    def is_alive(self) -> bool:
        """Return True while the worker thread is running."""
        return self._thread.is_alive()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the worker thread to finish."""
        self._thread.join(timeout)

    def _run(self) -> None:
        """Request → response loop, ending with one exit notice."""
        try:
            while not self._workload.should_terminate(self._rng, self._references):
                address, is_write = self._workload.next_access(self._rng)
                response = self._channel.call(
                    MemoryRequest(pid=self._pid, address=address, is_write=is_write),
                )
                self._references += 1
                if response.fault:
                    self._faults += 1
            self._channel.notify_exit(self._pid)
        except ChannelClosedError:
            self._abandoned = True

    def __repr__(self) -> str:
        """Return a debug-friendly representation."""
        return f"Worker(pid={self._pid}, slot={self._slot}, references={self._references})"


class WorkerSpawner(Protocol):
    """Interface for creating and starting workers."""

    def spawn(self, *, pid: int, slot: int, channel: Channel) -> Worker:
        """Start a worker bound to ``pid`` and ``slot``.

        Raises:
            WorkerSpawnError: If the worker cannot be started.

        """
        ...  # pragma: no cover


WorkloadFactory = Callable[[int], Workload]
"""Build a fresh workload for the worker in the given slot."""


class ThreadWorkerSpawner:
    """Spawn each worker on a new daemon thread."""

    def __init__(self, workload_factory: WorkloadFactory, *, seed: int | None = None) -> None:
        """Create a spawner.

        Args:
            workload_factory: Called with the slot index for each new worker.
            seed: Base seed; worker ``pid`` gets ``seed + pid``.  None
                means unseeded (nondeterministic) workers.

        """
        self._workload_factory = workload_factory
        self._seed = seed
        self._workers: list[Worker] = []

    @property
    def workers(self) -> list[Worker]:
        """Return every worker spawned so far."""
        return list(self._workers)

    def spawn(self, *, pid: int, slot: int, channel: Channel) -> Worker:
        """Create and start a worker thread.

        Raises:
            WorkerSpawnError: If the thread cannot be started.

        """
        seed = None if self._seed is None else self._seed + pid
        worker = Worker(
            pid=pid,
            slot=slot,
            channel=channel,
            workload=self._workload_factory(slot),
            seed=seed,
        )
        try:
            worker.start()
        except RuntimeError as e:
            msg = f"Failed to start worker for P{slot}: {e}"
            raise WorkerSpawnError(msg) from e
        self._workers.append(worker)
        return worker
