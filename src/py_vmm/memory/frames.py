"""Physical frame table — who owns each frame of simulated RAM.

Physical memory is a fixed array of **frames**.  For every frame the
kernel records whether it is occupied, which process and page live in
it, whether it has been written since it was loaded (the **dirty bit**),
and when it was last referenced.

Two lookups drive demand paging:

    - ``find_free()`` — the first unoccupied frame, scanning from 0.
    - ``find_lru_victim()`` — the occupied frame referenced longest ago.
      Ties go to the lowest frame index, because the scan keeps the
      first minimum it sees.

This table is shared by every process, so recency lives on the frame
itself as a simulated-clock timestamp.  Comparing timestamps is what
makes eviction deterministic and scriptable in tests.
"""

import dataclasses
from dataclasses import dataclass, field

from py_vmm.clock import SimTime


class NoFreeFrameError(Exception):
    """Raise when no frame can be found for a faulting page."""


@dataclass
class FrameRecord:
    """Bookkeeping for one physical frame.

    Mutable because the kernel updates it on every fault and hit.
    """

    occupied: bool = False
    """True while a page is loaded in this frame."""

    owner: int | None = None
    """PID of the owning process, or None when free."""

    page: int | None = None
    """Virtual page number loaded here, or None when free."""

    dirty: bool = False
    """Set on any write; cleared only when the frame is replaced or released."""

    last_reference: SimTime = field(default_factory=SimTime)
    """Simulated time of the most recent access (the LRU key)."""


class FrameTable:
    """Fixed-size array of frame records with free and LRU lookups."""

    def __init__(self, *, total_frames: int) -> None:
        """Create a table of empty frames.

        Args:
            total_frames: Number of physical frames.

        """
        self._frames = [FrameRecord() for _ in range(total_frames)]

    @property
    def total_frames(self) -> int:
        """Return the number of physical frames."""
        return len(self._frames)

    @property
    def occupied_count(self) -> int:
        """Return the number of frames holding a page."""
        return sum(1 for f in self._frames if f.occupied)

    @property
    def free_count(self) -> int:
        """Return the number of unoccupied frames."""
        return len(self._frames) - self.occupied_count

    def find_free(self) -> int | None:
        """Return the index of the first unoccupied frame, or None."""
        for index, frame in enumerate(self._frames):
            if not frame.occupied:
                return index
        return None

    def find_lru_victim(self) -> int | None:
        """Return the occupied frame with the oldest reference.

        Ties on the timestamp go to the lowest index.

        Returns:
            The victim's index, or None if no frame is occupied.

        """
        victim: int | None = None
        oldest: SimTime | None = None
        for index, frame in enumerate(self._frames):
            if frame.occupied and (oldest is None or frame.last_reference < oldest):
                victim = index
                oldest = frame.last_reference
        return victim

    def find_owner_page(self, *, owner: int, page: int) -> int | None:
        """Return the frame holding ``(owner, page)``, or None."""
        for index, frame in enumerate(self._frames):
            if frame.occupied and frame.owner == owner and frame.page == page:
                return index
        return None

    def claim(self, index: int, *, owner: int, page: int, dirty: bool, now: SimTime) -> None:
        """Load a page into a frame, replacing whatever was there.

        Args:
            index: The frame to occupy.
            owner: PID of the process the page belongs to.
            page: Virtual page number being loaded.
            dirty: True if the loading access was a write.
            now: Current simulated time (the new LRU stamp).

        """
        frame = self._frames[index]
        frame.occupied = True
        frame.owner = owner
        frame.page = page
        frame.dirty = dirty
        frame.last_reference = now

    def touch(self, index: int, *, now: SimTime, write: bool) -> None:
        """Record a hit: refresh the LRU stamp and mark dirty on writes."""
        frame = self._frames[index]
        frame.last_reference = now
        if write:
            frame.dirty = True

    def release(self, owner: int) -> list[int]:
        """Free every frame owned by a process.

        The last-reference stamp is left in place; only occupancy,
        ownership and the dirty bit are cleared.

        Args:
            owner: PID whose frames should be released.

        Returns:
            The indices of the frames that were freed.

        """
        freed: list[int] = []
        for index, frame in enumerate(self._frames):
            if frame.occupied and frame.owner == owner:
                frame.occupied = False
                frame.owner = None
                frame.page = None
                frame.dirty = False
                freed.append(index)
        return freed

    def frames(self) -> tuple[FrameRecord, ...]:
        """Return copies of every frame record, safe to hand to observers."""
        return tuple(dataclasses.replace(f) for f in self._frames)

    def __getitem__(self, index: int) -> FrameRecord:
        """Return the live record for a frame (kernel use only)."""
        return self._frames[index]

    def __len__(self) -> int:
        """Return the number of physical frames."""
        return len(self._frames)
