"""Per-process page tables — the virtual half of address translation.

Each simulated process owns a fixed-size page table.  A virtual address
is split into a page number and an offset::

    virtual address  →  (page = address // page_size, offset)
    page_table[page] →  physical frame number, or absent

An absent entry means the page is not resident: touching it is a
**page fault**, and the kernel must bring the page into a frame before
the access can complete.

Design choices:
    - **Fixed-size list of entries** rather than a dict: the address
      space is bounded (32 pages by default) and every slot always
      exists, it just may be empty.  ``None`` marks an absent page.
    - ``lookup()`` reports an absent page as None, so the paging engine
      treats a fault as an ordinary branch.
    - Only the kernel edits page tables, including clearing another
      process's entry when its frame is stolen by eviction.
"""


class InvalidAddressError(Exception):
    """Raised when an address falls outside a process's address space."""


class PageTable:
    """Map virtual page numbers to physical frame numbers.

    The table has a fixed number of entries; each is either a frame
    index or ``None`` (absent).
    """

    def __init__(self, *, size: int) -> None:
        """Create a page table with every entry absent.

        Args:
            size: Number of virtual pages in the address space.

        """
        self._entries: list[int | None] = [None] * size

    @property
    def size(self) -> int:
        """Return the number of entries (mapped or not)."""
        return len(self._entries)

    def _check(self, virtual_page: int) -> None:
        if not 0 <= virtual_page < len(self._entries):
            msg = f"Virtual page {virtual_page} outside page table (size {len(self._entries)})"
            raise InvalidAddressError(msg)

    def map(self, *, virtual_page: int, physical_frame: int) -> None:
        """Create a mapping from a virtual page to a physical frame."""
        self._check(virtual_page)
        self._entries[virtual_page] = physical_frame

    def unmap(self, *, virtual_page: int) -> None:
        """Mark a virtual page absent (no-op if already absent)."""
        self._check(virtual_page)
        self._entries[virtual_page] = None

    def lookup(self, virtual_page: int) -> int | None:
        """Return the frame for a page, or None if it is not resident."""
        self._check(virtual_page)
        return self._entries[virtual_page]

    def entries(self) -> tuple[int | None, ...]:
        """Return a read-only copy of every entry in page order."""
        return tuple(self._entries)

    def clear(self) -> None:
        """Mark every page absent."""
        self._entries = [None] * len(self._entries)

    def __len__(self) -> int:
        """Return the number of resident pages."""
        return sum(1 for frame in self._entries if frame is not None)
