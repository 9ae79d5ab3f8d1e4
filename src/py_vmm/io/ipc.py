"""Inter-process communication between the kernel and its workers.

Workers never touch kernel state.  Everything they want — a memory
access, or the news that they are exiting — travels as a message:

**MessageQueue** — a typed FIFO mailbox.  The kernel drains it with a
    non-blocking ``receive()`` so that admission and clock ticks keep
    going when nobody has anything to say; workers wait on theirs with
    ``receive_wait()``.  The generic parameter ``T`` keeps the payload
    type honest: a ``MessageQueue[MemoryRequest]`` only carries requests.

**Channel** — the one resource genuinely shared between execution
    units.  It pairs a single request queue (many workers → kernel)
    with one response mailbox per PID (kernel → that worker), which is
    how responses are correlated with the worker that asked.  Because a
    worker blocks on its own mailbox after every request, there is never
    more than one outstanding request per worker.

Closing the channel abandons in-flight workers: anyone blocked in
``call()`` wakes up with ``ChannelClosedError`` on its next poll.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import Generic, TypeVar

_WAIT_SLICE_S = 0.05

T = TypeVar("T")


class ChannelError(Exception):
    """Raise when the kernel/worker channel cannot be used."""


class ChannelClosedError(ChannelError):
    """Raise in a worker when the kernel has closed the channel."""


@dataclass(frozen=True)
class MemoryRequest:
    """A worker's message to the kernel.

    Attributes:
        pid: Handle of the sending worker.
        address: Virtual address to access (ignored when terminating).
        is_write: True for a write access.
        terminated: True if this is the worker's exit notice.

    """

    pid: int
    address: int = 0
    is_write: bool = False
    terminated: bool = False

    @classmethod
    def exit_notice(cls, pid: int) -> MemoryRequest:
        """Build the single termination message a worker sends."""
        return cls(pid=pid, terminated=True)


@dataclass(frozen=True)
class MemoryResponse:
    """The kernel's reply to a memory request.

    Attributes:
        pid: Handle of the worker the reply belongs to.
        address: The address that was accessed.
        frame: Frame now holding the page, or None on error.
        fault: True if the access page-faulted.
        error: Why the request was rejected, or None on success.

    """

    pid: int
    address: int
    frame: int | None = None
    fault: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Return True if the access was serviced."""
        return self.error is None


class MessageQueue(Generic[T]):
    """A named, typed, thread-safe FIFO message queue."""

    def __init__(self, *, name: str) -> None:
        """Create an empty, named message queue.

        Args:
            name: Identifier for this queue.

        """
        self._name = name
        self._messages: queue.SimpleQueue[T] = queue.SimpleQueue()

    @property
    def name(self) -> str:
        """Return the queue name."""
        return self._name

    @property
    def size(self) -> int:
        """Return the (approximate) number of queued messages."""
        return self._messages.qsize()

    def is_empty(self) -> bool:
        """Return True if the queue has no messages."""
        return self._messages.empty()

    def send(self, message: T) -> None:
        """Append a message to the queue."""
        self._messages.put(message)

    def receive(self) -> T | None:
        """Receive the next message without blocking.

        Returns:
            The next message, or None if the queue is empty.

        """
        try:
            return self._messages.get_nowait()
        except queue.Empty:
            return None

    def receive_wait(self, timeout: float) -> T | None:
        """Block up to ``timeout`` seconds for the next message.

        Returns:
            The next message, or None if none arrived in time.

        """
        try:
            return self._messages.get(timeout=timeout)
        except queue.Empty:
            return None


class Channel:
    """Request queue plus per-PID response mailboxes."""

    def __init__(self, *, name: str = "oss") -> None:
        """Create an open channel with no registered workers."""
        self._requests: MessageQueue[MemoryRequest] = MessageQueue(name=f"{name}.requests")
        self._mailboxes: dict[int, MessageQueue[MemoryResponse]] = {}
        self._lock = threading.Lock()
        self._closed = threading.Event()

    @property
    def name(self) -> str:
        """Return the request queue name."""
        return self._requests.name

    @property
    def closed(self) -> bool:
        """Return True once the kernel has closed the channel."""
        return self._closed.is_set()

    @property
    def pending(self) -> int:
        """Return the number of requests waiting for the kernel."""
        return self._requests.size

    # -- Kernel side -----------------------------------------------------------

    def register(self, pid: int) -> None:
        """Create the response mailbox for a new worker.

        Raises:
            ChannelError: If the channel is closed or the PID is taken.

        """
        with self._lock:
            if self.closed:
                msg = f"Cannot register PID {pid}: channel is closed"
                raise ChannelError(msg)
            if pid in self._mailboxes:
                msg = f"PID {pid} is already registered"
                raise ChannelError(msg)
            self._mailboxes[pid] = MessageQueue(name=f"{self._requests.name}.{pid}")

    def unregister(self, pid: int) -> None:
        """Forget a worker's mailbox (no-op if unknown)."""
        with self._lock:
            self._mailboxes.pop(pid, None)

    def is_registered(self, pid: int) -> bool:
        """Return True if the PID has a mailbox."""
        with self._lock:
            return pid in self._mailboxes

    def poll(self) -> MemoryRequest | None:
        """Return the next pending request without blocking, or None."""
        return self._requests.receive()

    def respond(self, response: MemoryResponse) -> bool:
        """Deliver a response to the worker that sent the request.

        Returns:
            True if delivered, False if the PID has no mailbox.

        """
        with self._lock:
            mailbox = self._mailboxes.get(response.pid)
        if mailbox is None:
            return False
        mailbox.send(response)
        return True

    def close(self) -> None:
        """Close the channel and drop every mailbox."""
        with self._lock:
            self._closed.set()
            self._mailboxes.clear()

    # -- Worker side -----------------------------------------------------------

    def _mailbox(self, pid: int) -> MessageQueue[MemoryResponse]:
        with self._lock:
            mailbox = self._mailboxes.get(pid)
        if mailbox is None or self.closed:
            msg = f"Channel closed for PID {pid}"
            raise ChannelClosedError(msg)
        return mailbox

    def call(self, request: MemoryRequest) -> MemoryResponse:
        """Send a memory request and block until its response arrives.

        Raises:
            ChannelClosedError: If the channel closes before a response.

        """
        mailbox = self._mailbox(request.pid)
        self._requests.send(request)
        while True:
            response = mailbox.receive_wait(_WAIT_SLICE_S)
            if response is not None:
                return response
            if self.closed:
                msg = f"Channel closed while PID {request.pid} awaited a response"
                raise ChannelClosedError(msg)

    def notify_exit(self, pid: int) -> None:
        """Send a worker's termination notice (no response expected).

        Raises:
            ChannelClosedError: If the channel is already closed.

        """
        if self.closed:
            msg = f"Channel closed before PID {pid} could exit"
            raise ChannelClosedError(msg)
        self._requests.send(MemoryRequest.exit_notice(pid))
