"""
Unit Tests for Conflict Detection

Tests for:
- find_conflicts on ranges and channel sets
- Self-exclusion when editing
- ConflictDetector reports and messages
- Universe-wide scan
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from core.addressing.types import (
    AddressValidationError,
    ChannelRange,
    EntityKind,
    Fixture,
    Group,
    Node,
)
from core.addressing.occupancy import build_occupancy
from core.addressing.conflicts import (
    ConflictDetector,
    conflicting_pairs,
    find_conflicts,
    scan_conflicts,
)


def make_fixture(fid, start, width, universe=1, name=None):
    return Fixture(id=fid, name=name or fid, universe=universe, start_address=start, width=width)


def make_node(nid, start, end, universe=1):
    return Node(id=nid, name=nid, universe=universe, channel_start=start,
                channel_end=end, is_paired=True)


@pytest.fixture
def index():
    return build_occupancy(
        1,
        [make_fixture("par_1", 1, 4, name="PAR 1"), make_fixture("par_2", 5, 4, name="PAR 2")],
        [make_node("pulse-01", 100, 200)],
    )


class TestFindConflicts:
    """Tests for find_conflicts."""

    def test_clear_range(self, index):
        assert find_conflicts(ChannelRange(9, 16), index) == []

    def test_range_spanning_two_fixtures(self, index):
        owners = find_conflicts(ChannelRange(3, 6), index)
        assert [o.id for o in owners] == ["par_1", "par_2"]

    def test_owner_listed_once(self, index):
        owners = find_conflicts(ChannelRange(1, 8), index)
        assert len(owners) == 2

    def test_channel_set(self, index):
        owners = find_conflicts([2, 150, 300], index)
        assert [(o.kind, o.id) for o in owners] == [
            (EntityKind.FIXTURE, "par_1"), (EntityKind.NODE, "pulse-01")
        ]

    def test_exclude_self(self, index):
        owners = find_conflicts(ChannelRange(1, 6), index, exclude_id="par_1")
        assert [o.id for o in owners] == ["par_2"]

    def test_exclude_kind_limits_exclusion(self):
        index = build_occupancy(1, [make_fixture("x", 1, 4)], [make_node("x", 3, 10)])
        owners = find_conflicts(ChannelRange(1, 4), index, exclude_id="x",
                                exclude_kind=EntityKind.FIXTURE)
        assert [(o.kind, o.id) for o in owners] == [(EntityKind.NODE, "x")]

    def test_invalid_range_raises_before_lookup(self, index):
        with pytest.raises(AddressValidationError):
            find_conflicts(ChannelRange(510, 513), index)

    def test_invalid_channel_in_set_raises(self, index):
        with pytest.raises(AddressValidationError):
            find_conflicts([0, 1], index)

    def test_groups_never_conflict(self):
        # Groups are not part of the occupancy index
        group = Group(id="front", name="Front", channels=frozenset({1, 2, 3}))
        index = build_occupancy(1, [], [])
        assert find_conflicts(group.channels, index) == []


class TestConflictDetector:
    """Tests for ConflictDetector."""

    def test_report_message_names_owners(self, index):
        report = ConflictDetector(index).check(ChannelRange(3, 6))
        assert report.has_conflicts()
        assert report.message() == 'Channel conflict with "PAR 1", "PAR 2"'
        assert report.channels == [3, 4, 5, 6]

    def test_no_conflict_message(self, index):
        report = ConflictDetector(index).check(ChannelRange(20, 30))
        assert not report.has_conflicts()
        assert report.to_dict()["has_conflicts"] is False

    def test_check_fixture_excludes_itself(self, index):
        moved = make_fixture("par_1", 2, 4)
        report = ConflictDetector(index).check_fixture(moved)
        assert [o.id for o in report.owners] == ["par_2"]

    def test_check_fixture_validates(self, index):
        with pytest.raises(AddressValidationError):
            ConflictDetector(index).check_fixture(make_fixture("new", 511, 4))

    def test_check_node(self, index):
        node = make_node("pulse-02", 1, 256)
        report = ConflictDetector(index).check_node(node)
        assert [o.id for o in report.owners] == ["par_1", "par_2", "pulse-01"]

    def test_generator_candidate(self, index):
        report = ConflictDetector(index).check(ch for ch in (1, 2))
        assert report.channels == [1, 2]
        assert [o.id for o in report.owners] == ["par_1"]


class TestScan:
    """Tests for the universe-wide scan."""

    def test_scan_reports_every_involved_entity(self):
        fixtures = [
            make_fixture("a", 1, 4),
            make_fixture("b", 3, 4),
            make_fixture("c", 20, 4),
            make_fixture("d", 1, 4, universe=2),
        ]
        nodes = [make_node("n", 22, 30), make_node("m", 25, 40)]
        result = scan_conflicts(fixtures, nodes)
        assert sorted(result) == [1]
        assert [(o.kind, o.id) for o in result[1]] == [
            (EntityKind.FIXTURE, "a"),
            (EntityKind.FIXTURE, "b"),
            (EntityKind.NODE, "m"),
            (EntityKind.NODE, "n"),
        ]

    def test_scan_fixture_inside_node_is_not_a_conflict(self):
        fixtures = [make_fixture("a", 1, 4), make_fixture("b", 100, 8)]
        assert scan_conflicts(fixtures, [make_node("n", 1, 512)]) == {}

    def test_scan_clean_rig(self):
        assert scan_conflicts([make_fixture("a", 1, 4), make_fixture("b", 5, 4)]) == {}

    def test_conflicting_pairs(self):
        index = build_occupancy(1, [make_fixture("a", 1, 4), make_fixture("b", 4, 4)])
        pairs = conflicting_pairs(index)
        assert [(p[0].id, p[1].id) for p in pairs] == [("a", "b")]
