"""
Unit Tests for First-Fit Allocation and Node Ranges

Tests for:
- FirstFitAllocator placement and shortfall
- Batch planning
- Node range suggestion, presets and rebalance
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from core.addressing.types import AddressValidationError, ChannelRange, Fixture, Node
from core.addressing.occupancy import OccupancyIndex, build_occupancy
from core.addressing.allocator import (
    FirstFitAllocator,
    RANGE_PRESETS,
    plan_rebalance,
    preset_range,
    suggest_node_range,
)


def make_fixture(fid, start, width, universe=1):
    return Fixture(id=fid, name=fid, universe=universe, start_address=start, width=width)


def make_node(nid, start, end, universe=1):
    return Node(id=nid, name=nid, universe=universe, channel_start=start,
                channel_end=end, is_paired=True)


@pytest.fixture
def allocator():
    return FirstFitAllocator()


class TestFirstFit:
    """Tests for FirstFitAllocator.allocate."""

    def test_empty_universe(self, allocator):
        assert allocator.allocate(1, 4, 3) == [1, 5, 9]

    def test_skips_existing_fixture(self, allocator):
        index = build_occupancy(1, [make_fixture("a", 1, 4)])
        assert allocator.allocate(1, 4, 2, index) == [5, 9]

    def test_fills_gap_before_later_fixture(self, allocator):
        # Lowest free window wins, even ahead of the highest used address
        index = build_occupancy(1, [make_fixture("a", 1, 2), make_fixture("b", 7, 4)])
        assert allocator.allocate(1, 4, 2, index) == [3, 11]

    def test_gap_too_small_is_skipped(self, allocator):
        index = build_occupancy(1, [make_fixture("a", 1, 2), make_fixture("b", 5, 4)])
        assert allocator.allocate(1, 4, 1, index) == [9]

    def test_results_never_overlap(self, allocator):
        starts = allocator.allocate(1, 7, 50)
        ranges = [ChannelRange.from_width(s, 7) for s in starts]
        for i in range(len(ranges) - 1):
            assert ranges[i].end < ranges[i + 1].start

    def test_shortfall_when_universe_too_small(self, allocator):
        starts = allocator.allocate(1, 100, 6)
        assert starts == [1, 101, 201, 301, 401]

    def test_last_window_ends_at_512(self, allocator):
        index = build_occupancy(1, [make_fixture("a", 1, 508)])
        assert allocator.allocate(1, 4, 2, index) == [509]

    def test_full_width_fixture(self, allocator):
        assert allocator.allocate(1, 512, 1) == [1]
        assert allocator.allocate(1, 512, 2) == [1]

    def test_zero_quantity(self, allocator):
        assert allocator.allocate(1, 4, 0) == []

    def test_nodes_block_placement(self, allocator):
        index = build_occupancy(1, [], [make_node("n", 1, 256)])
        assert allocator.allocate(1, 8, 1, index) == [257]

    def test_invalid_width(self, allocator):
        with pytest.raises(AddressValidationError):
            allocator.allocate(1, 0, 1)
        with pytest.raises(AddressValidationError):
            allocator.allocate(1, 513, 1)

    def test_negative_quantity(self, allocator):
        with pytest.raises(ValueError):
            allocator.allocate(1, 4, -1)

    def test_index_for_other_universe(self, allocator):
        with pytest.raises(ValueError):
            allocator.allocate(1, 4, 1, OccupancyIndex.empty(2))

    def test_next_address(self, allocator):
        full = build_occupancy(1, [make_fixture("a", 1, 512)])
        assert allocator.next_address(1, 1, full) is None
        assert allocator.next_address(1, 4) == 1


class TestAllocationResult:
    """Tests for plan() results."""

    def test_complete(self, allocator):
        result = allocator.plan(1, 4, 2)
        assert result.is_complete()
        assert result.shortfall == 0
        assert [r.end for r in result.ranges()] == [4, 8]

    def test_shortfall_message(self, allocator):
        result = allocator.plan(1, 200, 3)
        assert not result.is_complete()
        assert result.placed == 2
        assert result.shortfall == 1
        assert result.message() == "Only 2 of 3 x 200ch fit in universe 1"
        assert result.to_dict()["complete"] is False


class TestPlanBatch:
    """Tests for plan_batch."""

    def test_numbered_names(self, allocator):
        result, fixtures = allocator.plan_batch("PAR", 1, 4, 3, color="#ff0000")
        assert [f.name for f in fixtures] == ["PAR 1", "PAR 2", "PAR 3"]
        assert [f.start_address for f in fixtures] == [1, 5, 9]
        assert all(f.id is None and f.color == "#ff0000" for f in fixtures)

    def test_single_keeps_name(self, allocator):
        _, fixtures = allocator.plan_batch("  Haze ", 1, 2, 1)
        assert [f.name for f in fixtures] == ["Haze"]

    def test_nothing_planned_on_shortfall(self, allocator):
        result, fixtures = allocator.plan_batch("Wash", 1, 300, 2)
        assert fixtures == []
        assert result.placed == 1


class TestNodeRanges:
    """Tests for node range suggestion, presets and rebalance."""

    def test_empty_universe_offers_everything(self):
        assert suggest_node_range(1, []) == ChannelRange(1, 512)

    def test_gap_before_first_node(self):
        assert suggest_node_range(1, [make_node("a", 101, 512)]) == ChannelRange(1, 100)

    def test_gap_between_nodes(self):
        nodes = [make_node("a", 1, 128), make_node("b", 257, 512)]
        assert suggest_node_range(1, nodes) == ChannelRange(129, 256)

    def test_after_last_node(self):
        assert suggest_node_range(1, [make_node("a", 1, 256)]) == ChannelRange(257, 512)

    def test_full_universe(self):
        assert suggest_node_range(1, [make_node("a", 1, 512)]) is None

    def test_exclude_and_other_universe(self):
        nodes = [make_node("a", 1, 512), make_node("b", 1, 256, universe=2)]
        assert suggest_node_range(1, nodes, exclude_id="a") == ChannelRange(1, 512)

    def test_presets(self):
        assert preset_range("second-half") == ChannelRange(257, 512)
        assert RANGE_PRESETS["fourth-quarter"].end == 512
        with pytest.raises(ValueError):
            preset_range("third-half")

    def test_rebalance_two_nodes(self):
        nodes = [make_node("b", 200, 512), make_node("a", 1, 199)]
        plan = plan_rebalance(1, nodes)
        assert plan.assignments == {
            "a": ChannelRange(1, 170),
            "b": ChannelRange(171, 340),
        }
        assert plan.new_range == ChannelRange(341, 512)

    def test_rebalance_empty_universe(self):
        plan = plan_rebalance(1, [make_node("a", 1, 512, universe=2)])
        assert plan.assignments == {}
        assert plan.new_range == ChannelRange(1, 512)
