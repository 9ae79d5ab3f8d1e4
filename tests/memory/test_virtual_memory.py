"""Tests for fixed-size page tables.

Every process owns a page table with one entry per virtual page.  An
entry is either absent (None) or the index of the frame holding the page.
"""

import pytest

from py_vmm.memory.virtual import InvalidAddressError, PageTable

PAGES = 32


class TestPageTable:
    """Verify the page table mapping."""

    def test_new_table_is_all_absent(self) -> None:
        """A fresh table has every entry absent."""
        pt = PageTable(size=PAGES)
        assert pt.size == PAGES
        assert len(pt) == 0
        assert pt.entries() == (None,) * PAGES

    def test_map_and_lookup(self) -> None:
        """Mapping a virtual page should make it resident."""
        pt = PageTable(size=PAGES)
        pt.map(virtual_page=0, physical_frame=42)
        expected_frame = 42
        assert pt.lookup(0) == expected_frame
        assert pt.entries()[0] == expected_frame

    def test_lookup_absent_returns_none(self) -> None:
        """Lookup reports an absent page as None instead of raising."""
        pt = PageTable(size=PAGES)
        assert pt.lookup(5) is None

    def test_unmap(self) -> None:
        """Unmapping a page should make it absent again."""
        pt = PageTable(size=PAGES)
        pt.map(virtual_page=3, physical_frame=10)
        pt.unmap(virtual_page=3)
        assert pt.lookup(3) is None

    def test_unmap_absent_is_noop(self) -> None:
        """Unmapping an absent page should not raise."""
        pt = PageTable(size=PAGES)
        pt.unmap(virtual_page=7)
        assert len(pt) == 0

    def test_out_of_range_page_raises(self) -> None:
        """Pages outside the table are invalid."""
        pt = PageTable(size=PAGES)
        with pytest.raises(InvalidAddressError):
            pt.lookup(PAGES)
        with pytest.raises(InvalidAddressError):
            pt.map(virtual_page=-1, physical_frame=0)

    def test_len_counts_resident_pages(self) -> None:
        """Len should count resident pages, not table size."""
        pt = PageTable(size=PAGES)
        pt.map(virtual_page=1, physical_frame=5)
        pt.map(virtual_page=2, physical_frame=6)
        expected = 2
        assert len(pt) == expected

    def test_clear(self) -> None:
        """Clearing marks every page absent."""
        pt = PageTable(size=PAGES)
        pt.map(virtual_page=1, physical_frame=5)
        pt.clear()
        assert len(pt) == 0
        assert pt.size == PAGES

    def test_entries_is_a_copy(self) -> None:
        """Entries returns a tuple that does not track later changes."""
        pt = PageTable(size=PAGES)
        before = pt.entries()
        pt.map(virtual_page=0, physical_frame=1)
        assert before[0] is None
