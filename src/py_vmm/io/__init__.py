"""I/O subsystem — the kernel/worker channel and the workers themselves.

Re-exports public symbols so callers can write::

    from py_vmm.io import Channel, ThreadWorkerSpawner
"""

from py_vmm.io.ipc import (
    Channel,
    ChannelClosedError,
    ChannelError,
    MemoryRequest,
    MemoryResponse,
    MessageQueue,
)
from py_vmm.io.workers import (
    RandomWorkload,
    ScriptedWorkload,
    ThreadWorkerSpawner,
    Worker,
    WorkerSpawner,
    WorkerSpawnError,
    Workload,
)

__all__ = [
    "Channel",
    "ChannelClosedError",
    "ChannelError",
    "MemoryRequest",
    "MemoryResponse",
    "MessageQueue",
    "RandomWorkload",
    "ScriptedWorkload",
    "ThreadWorkerSpawner",
    "Worker",
    "WorkerSpawnError",
    "WorkerSpawner",
    "Workload",
]
