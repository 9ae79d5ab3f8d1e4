"""Simulated hardware clock — the kernel's only notion of time.

Real kernels read a hardware counter; our simulator keeps its own
clock made of whole **seconds** plus a **nanosecond** remainder.  The
kernel is the only code that ever moves it forward, and it only does so
through ``advance()``:

    - every loop iteration costs a small fixed quantum (1000 ns);
    - a page hit costs 100 ns;
    - a page fault costs 14 ms (plus 10 ms if a dirty page is written back).

Because nothing else mutates the clock, every timestamp it hands out is
monotonic — which is exactly what LRU eviction needs to compare
"last referenced" times.

Design choices:
    - **SimTime is an ordered frozen dataclass** so timestamps compare
      lexicographically with ``<`` — (seconds, nanoseconds) — without
      any hand-written comparison code.
    - **Nanoseconds are renormalised on every advance** so the
      invariant ``nanoseconds < 1e9`` always holds.
"""

from dataclasses import dataclass

NANOS_PER_SECOND = 1_000_000_000
NANOS_PER_MILLI = 1_000_000


@dataclass(frozen=True, order=True)
class SimTime:
    """An immutable point in simulated time.

    Attributes:
        seconds: Whole simulated seconds.
        nanoseconds: Remainder in nanoseconds (always below 1e9).

    """

    seconds: int = 0
    nanoseconds: int = 0

    @property
    def total_nanoseconds(self) -> int:
        """Return the timestamp flattened to a single nanosecond count."""
        return self.seconds * NANOS_PER_SECOND + self.nanoseconds

    def __str__(self) -> str:
        """Format as ``seconds:nanoseconds`` as every log line prints it."""
        return f"{self.seconds}:{self.nanoseconds}"


class SimClock:
    """Monotonic simulated clock advanced only by the kernel."""

    def __init__(self) -> None:
        """Create a clock at time 0:0."""
        self._seconds = 0
        self._nanoseconds = 0

    @property
    def seconds(self) -> int:
        """Return the whole seconds elapsed."""
        return self._seconds

    @property
    def nanoseconds(self) -> int:
        """Return the nanosecond remainder (always below 1e9)."""
        return self._nanoseconds

    @property
    def total_nanoseconds(self) -> int:
        """Return the elapsed time as one nanosecond count."""
        return self._seconds * NANOS_PER_SECOND + self._nanoseconds

    @property
    def elapsed_seconds(self) -> float:
        """Return the elapsed time in (fractional) seconds."""
        return self._seconds + self._nanoseconds / NANOS_PER_SECOND

    def now(self) -> SimTime:
        """Return the current time as an immutable timestamp."""
        return SimTime(seconds=self._seconds, nanoseconds=self._nanoseconds)

    def advance(self, nanoseconds: int) -> None:
        """Move the clock forward, carrying overflow into seconds.

        Args:
            nanoseconds: Amount of simulated time to add.

        Raises:
            ValueError: If the amount is negative.

        """
        if nanoseconds < 0:
            msg = f"Cannot move the clock backwards ({nanoseconds} ns)"
            raise ValueError(msg)
        self._nanoseconds += nanoseconds
        if self._nanoseconds >= NANOS_PER_SECOND:
            carry, self._nanoseconds = divmod(self._nanoseconds, NANOS_PER_SECOND)
            self._seconds += carry

    def __str__(self) -> str:
        """Format as ``seconds:nanoseconds``."""
        return str(self.now())
