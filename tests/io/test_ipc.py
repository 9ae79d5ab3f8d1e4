"""Tests for the kernel/worker channel."""

import threading

import pytest

from py_vmm.io.ipc import (
    Channel,
    ChannelClosedError,
    ChannelError,
    MemoryRequest,
    MemoryResponse,
    MessageQueue,
)

JOIN_TIMEOUT = 5.0


class TestMessageQueue:
    """Verify the FIFO mailbox."""

    def test_fifo_order(self) -> None:
        """Messages come out in the order they went in."""
        q: MessageQueue[int] = MessageQueue(name="test")
        q.send(1)
        q.send(2)
        assert q.receive() == 1
        assert q.receive() == 2

    def test_receive_empty_returns_none(self) -> None:
        """Non-blocking receive on an empty queue returns None."""
        q: MessageQueue[int] = MessageQueue(name="test")
        assert q.is_empty()
        assert q.receive() is None

    def test_receive_wait_times_out(self) -> None:
        """A timed wait returns None when nothing arrives."""
        q: MessageQueue[int] = MessageQueue(name="test")
        assert q.receive_wait(0.01) is None

    def test_name_and_size(self) -> None:
        """Queues report their name and pending count."""
        q: MessageQueue[str] = MessageQueue(name="mbox")
        q.send("a")
        assert q.name == "mbox"
        assert q.size == 1


class TestMessages:
    """Verify message value objects."""

    def test_exit_notice(self) -> None:
        """An exit notice carries only the PID and the flag."""
        notice = MemoryRequest.exit_notice(4)
        expected_pid = 4
        assert notice.pid == expected_pid
        assert notice.terminated

    def test_response_ok(self) -> None:
        """A response without an error is ok."""
        assert MemoryResponse(pid=1, address=0, frame=0).ok
        assert not MemoryResponse(pid=1, address=0, error="bad").ok


class TestChannelKernelSide:
    """Verify registration, polling and delivery."""

    def test_register_and_unregister(self) -> None:
        """Registration creates a mailbox; unregistration removes it."""
        channel = Channel()
        channel.register(1)
        assert channel.is_registered(1)
        channel.unregister(1)
        assert not channel.is_registered(1)

    def test_register_duplicate_raises(self) -> None:
        """A PID can only be registered once."""
        channel = Channel()
        channel.register(1)
        with pytest.raises(ChannelError, match="already registered"):
            channel.register(1)

    def test_register_after_close_raises(self) -> None:
        """A closed channel accepts no new workers."""
        channel = Channel()
        channel.close()
        with pytest.raises(ChannelError, match="closed"):
            channel.register(1)

    def test_respond_to_unknown_pid(self) -> None:
        """Responses for unregistered PIDs are not delivered."""
        channel = Channel()
        assert not channel.respond(MemoryResponse(pid=5, address=0))

    def test_poll_empty(self) -> None:
        """Polling an idle channel returns None."""
        channel = Channel()
        assert channel.poll() is None
        assert channel.pending == 0

    def test_notify_exit_queues_notice(self) -> None:
        """An exit notice reaches the kernel without a response."""
        channel = Channel()
        channel.register(3)
        channel.notify_exit(3)
        assert channel.poll() == MemoryRequest.exit_notice(3)

    def test_notify_exit_after_close_raises(self) -> None:
        """Exiting on a closed channel raises."""
        channel = Channel()
        channel.close()
        with pytest.raises(ChannelClosedError):
            channel.notify_exit(1)


class TestChannelRoundTrip:
    """Verify the blocking call from a worker thread."""

    def test_call_returns_matching_response(self) -> None:
        """A worker's call receives the response for its own PID."""
        channel = Channel()
        channel.register(1)
        channel.register(2)
        results: dict[int, MemoryResponse] = {}

        def worker(pid: int, address: int) -> None:
            results[pid] = channel.call(MemoryRequest(pid=pid, address=address))

        threads = [
            threading.Thread(target=worker, args=(1, 100)),
            threading.Thread(target=worker, args=(2, 200)),
        ]
        for t in threads:
            t.start()
        served = 0
        while served < len(threads):
            request = channel.poll()
            if request is None:
                continue
            channel.respond(MemoryResponse(pid=request.pid, address=request.address, frame=request.pid))
            served += 1
        for t in threads:
            t.join(JOIN_TIMEOUT)
        expected_first = 100
        expected_second = 200
        assert results[1].address == expected_first
        assert results[2].address == expected_second
        assert results[2].frame == 2

    def test_close_wakes_blocked_caller(self) -> None:
        """Closing the channel abandons a worker waiting for a response."""
        channel = Channel()
        channel.register(1)
        errors: list[Exception] = []

        def worker() -> None:
            try:
                channel.call(MemoryRequest(pid=1, address=0))
            except ChannelClosedError as e:
                errors.append(e)

        t = threading.Thread(target=worker)
        t.start()
        while channel.poll() is None:
            pass
        channel.close()
        t.join(JOIN_TIMEOUT)
        assert not t.is_alive()
        assert len(errors) == 1

    def test_call_unregistered_raises(self) -> None:
        """A PID without a mailbox cannot call."""
        channel = Channel()
        with pytest.raises(ChannelClosedError):
            channel.call(MemoryRequest(pid=9))
