"""Tests for the paging engine: hits, faults, LRU eviction and costs.

Small tables (two or three frames) make every eviction decision visible.
"""

import pytest

from py_vmm.clock import SimTime
from py_vmm.config import KernelConfig
from py_vmm.memory.paging import PagingEngine
from py_vmm.memory.virtual import InvalidAddressError
from py_vmm.state import SimulationState

PAGE = 1024
HIT = 100
FAULT = 14_000_000
WRITEBACK = 10_000_000


def _engine(**overrides: int) -> tuple[SimulationState, PagingEngine]:
    """Return fresh state and an engine with small, overridable geometry."""
    config = KernelConfig().with_overrides(**overrides).validate()
    state = SimulationState.create(config)
    return state, PagingEngine(state, config)


def _admit(state: SimulationState, pid: int) -> int:
    """Bind a RUNNING slot to ``pid`` and return it."""
    return state.processes.allocate(pid=pid, now=state.clock.now())


class TestHitsAndFaults:
    """Verify the basic translate path."""

    def test_first_access_faults(self) -> None:
        """A cold page faults and is loaded into the first free frame."""
        state, engine = _engine()
        slot = _admit(state, pid=1)
        frame = engine.translate(slot, 5, is_write=False)
        assert frame == 0
        assert state.processes[slot].page_faults == 1
        assert state.processes[slot].page_table.lookup(0) == 0
        assert state.clock.total_nanoseconds == FAULT

    def test_second_access_hits(self) -> None:
        """Repeating the page hits without another fault."""
        state, engine = _engine()
        slot = _admit(state, pid=1)
        engine.translate(slot, 0, is_write=False)
        engine.translate(slot, PAGE - 1, is_write=False)
        record = state.processes[slot]
        expected_accesses = 2
        assert record.total_accesses == expected_accesses
        assert record.page_faults == 1
        assert engine.hits == 1
        assert engine.faults == 1
        assert state.clock.total_nanoseconds == FAULT + HIT

    def test_hit_stamps_before_charging(self) -> None:
        """A hit stamps the frame with the time before the hit cost."""
        state, engine = _engine()
        slot = _admit(state, pid=1)
        engine.translate(slot, 0, is_write=False)
        before = state.clock.now()
        engine.translate(slot, 0, is_write=False)
        assert state.frames[0].last_reference == before

    def test_fault_stamps_before_charging(self) -> None:
        """A fault stamps the frame before the fault cost is charged."""
        state, engine = _engine()
        slot = _admit(state, pid=1)
        engine.translate(slot, 0, is_write=False)
        assert state.frames[0].last_reference == SimTime(0, 0)

    def test_fault_records_owner(self) -> None:
        """The loaded frame belongs to the faulting process and page."""
        state, engine = _engine()
        slot = _admit(state, pid=9)
        engine.translate(slot, 3 * PAGE + 7, is_write=True)
        frame = state.frames[0]
        expected_owner = 9
        expected_page = 3
        assert frame.owner == expected_owner
        assert frame.page == expected_page
        assert frame.dirty

    def test_write_then_read_stays_dirty(self) -> None:
        """A read hit after a write fault keeps the dirty bit."""
        state, engine = _engine()
        slot = _admit(state, pid=1)
        engine.translate(slot, 0, is_write=True)
        engine.translate(slot, 1, is_write=False)
        assert state.frames[0].dirty

    def test_read_fault_then_write_hit_dirties(self) -> None:
        """A write hit marks a clean frame dirty."""
        state, engine = _engine()
        slot = _admit(state, pid=1)
        engine.translate(slot, 0, is_write=False)
        assert not state.frames[0].dirty
        engine.translate(slot, 0, is_write=True)
        assert state.frames[0].dirty


class TestEviction:
    """Verify LRU replacement when memory is full."""

    def test_two_frames_three_pages(self) -> None:
        """Pages 0, 1, 2 on two frames evict page 0 from frame 0."""
        state, engine = _engine(total_frames=2)
        slot = _admit(state, pid=1)
        engine.translate(slot, 0 * PAGE, is_write=False)
        engine.translate(slot, 1 * PAGE, is_write=False)
        frame = engine.translate(slot, 2 * PAGE, is_write=False)
        table = state.processes[slot].page_table
        expected_faults = 3
        assert frame == 0
        assert table.lookup(0) is None
        assert table.lookup(1) == 1
        assert table.lookup(2) == 0
        assert state.processes[slot].page_faults == expected_faults
        assert engine.evictions == 1

    def test_dirty_victim_charges_writeback(self) -> None:
        """Evicting a dirty frame costs a write-back on top of the fault."""
        state, engine = _engine(total_frames=2)
        p0 = _admit(state, pid=1)
        p1 = _admit(state, pid=2)
        p2 = _admit(state, pid=3)
        engine.translate(p0, 0, is_write=True)
        engine.translate(p1, 0, is_write=False)
        engine.translate(p2, 0, is_write=False)
        expected_ns = 3 * FAULT + WRITEBACK
        assert state.clock.total_nanoseconds == expected_ns
        assert engine.writebacks == 1

    def test_clean_victim_has_no_writeback(self) -> None:
        """Evicting a clean frame charges only the fault."""
        state, engine = _engine(total_frames=1)
        slot = _admit(state, pid=1)
        engine.translate(slot, 0, is_write=False)
        engine.translate(slot, PAGE, is_write=False)
        assert state.clock.total_nanoseconds == 2 * FAULT
        assert engine.writebacks == 0

    def test_eviction_clears_victim_owner_entry(self) -> None:
        """Stealing another process's frame unmaps it from that process."""
        state, engine = _engine(total_frames=1)
        victim = _admit(state, pid=1)
        thief = _admit(state, pid=2)
        engine.translate(victim, 4 * PAGE, is_write=False)
        engine.translate(thief, 0, is_write=False)
        assert state.processes[victim].page_table.lookup(4) is None
        assert state.processes[thief].page_table.lookup(0) == 0
        expected_owner = 2
        assert state.frames[0].owner == expected_owner

    def test_evicted_page_faults_again(self) -> None:
        """Touching an evicted page is a fresh fault."""
        state, engine = _engine(total_frames=1)
        slot = _admit(state, pid=1)
        engine.translate(slot, 0, is_write=False)
        engine.translate(slot, PAGE, is_write=False)
        engine.translate(slot, 0, is_write=False)
        expected_faults = 3
        assert state.processes[slot].page_faults == expected_faults

    def test_lru_prefers_least_recent(self) -> None:
        """A recently hit frame survives; the stale one is evicted."""
        state, engine = _engine(total_frames=2)
        slot = _admit(state, pid=1)
        engine.translate(slot, 0, is_write=False)
        engine.translate(slot, PAGE, is_write=False)
        engine.translate(slot, 0, is_write=False)
        frame = engine.translate(slot, 2 * PAGE, is_write=False)
        table = state.processes[slot].page_table
        assert frame == 1
        assert table.lookup(0) == 0
        assert table.lookup(1) is None

    def test_lru_tie_evicts_lowest_frame(self) -> None:
        """Equal timestamps evict the lowest-indexed frame."""
        state, engine = _engine(total_frames=3, fault_cost_ns=0)
        slot = _admit(state, pid=1)
        for page in range(3):
            engine.translate(slot, page * PAGE, is_write=False)
        frame = engine.translate(slot, 3 * PAGE, is_write=False)
        assert frame == 0
        assert state.processes[slot].page_table.lookup(0) is None


class TestValidationAndRates:
    """Verify address checks and aggregate rates."""

    @pytest.mark.parametrize("address", [-1, 32 * PAGE, 10**9])
    def test_invalid_address_raises(self, address: int) -> None:
        """Addresses outside the address space are rejected."""
        state, engine = _engine()
        slot = _admit(state, pid=1)
        with pytest.raises(InvalidAddressError):
            engine.translate(slot, address, is_write=False)
        assert state.processes[slot].total_accesses == 0
        assert state.clock.total_nanoseconds == 0

    def test_last_valid_address(self) -> None:
        """The top byte of the address space is on the last page."""
        state, engine = _engine()
        slot = _admit(state, pid=1)
        engine.translate(slot, 32 * PAGE - 1, is_write=False)
        last_page = 31
        assert state.processes[slot].page_table.lookup(last_page) == 0

    def test_fault_rate_bounded(self) -> None:
        """Faults never exceed accesses."""
        state, engine = _engine(total_frames=2)
        slot = _admit(state, pid=1)
        for page in (0, 1, 0, 2, 1, 1, 3, 0):
            engine.translate(slot, page * PAGE, is_write=page % 2 == 0)
        stats = state.processes[slot].stats()
        assert 0.0 <= stats.fault_rate <= 1.0
        assert stats.page_faults <= stats.total_accesses
        assert engine.hits + engine.faults == stats.total_accesses


class TestAccounting:
    """Verify accesses are counted through the process table."""

    def test_counts_go_through_process_table(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Every hit and fault is recorded with ProcessTable.record_access."""
        state, engine = _engine()
        slot = _admit(state, pid=1)
        recorded: list[tuple[int, bool]] = []
        original = state.processes.record_access

        def spy(slot: int, *, fault: bool) -> None:
            recorded.append((slot, fault))
            original(slot, fault=fault)

        monkeypatch.setattr(state.processes, "record_access", spy)
        engine.translate(slot, 0, is_write=False)
        engine.translate(slot, 0, is_write=True)
        assert recorded == [(slot, True), (slot, False)]
        expected_accesses = 2
        assert state.processes[slot].total_accesses == expected_accesses
