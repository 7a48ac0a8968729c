"""
Unit Tests for the Channel Selection Model

Tests for:
- Direct toggles
- Drag selection state machine
- Mouse/touch translation and the pointer router
- Resolution against fixtures and groups
- Live-channel conflicts for activation
"""

import pytest
from unittest.mock import Mock

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from core.addressing.types import Fixture, Group
from core.addressing.selection import (
    ChannelSelectionModel,
    DragMode,
    PointerEvent,
    PointerPhase,
    SelectionPointerRouter,
    pointer_from_mouse,
    pointer_from_touch,
)


@pytest.fixture
def catalog():
    fixtures = [
        Fixture(id="f1", name="PAR 1", universe=1, start_address=10, width=3),
        Fixture(id="f2", name="PAR 2", universe=1, start_address=20, width=2),
    ]
    groups = [
        Group(id="g1", name="Front", channels=frozenset({11, 12})),
        Group(id="g2", name="Back", channels=frozenset({40, 41})),
    ]
    return fixtures, groups


@pytest.fixture
def model(catalog):
    fixtures, groups = catalog
    return ChannelSelectionModel(fixtures, groups)


class TestToggles:
    """Tests for direct toggles."""

    def test_toggle_channel(self, model):
        assert model.toggle_channel(5) is True
        assert model.toggle_channel(5) is False
        assert model.selected_channels == set()

    def test_toggle_fixture_and_group(self, model):
        assert model.toggle_fixture("f1")
        assert model.toggle_group("g1")
        assert not model.toggle_fixture("f1")
        assert model.selected_groups == {"g1"}

    def test_clear(self, model):
        model.toggle_channel(1)
        model.toggle_group("g1")
        model.begin_drag(2)
        model.clear()
        assert model.resolve() == []
        assert not model.is_dragging


class TestDrag:
    """Tests for the drag state machine."""

    def test_drag_selects_cells(self, model):
        assert model.begin_drag(7) == DragMode.SELECT
        model.drag_over(8)
        model.end_drag()
        assert model.resolve() == [7, 8]

    def test_unselect_drag_from_selected_cell(self, model):
        for ch in (1, 2, 3):
            model.toggle_channel(ch)
        assert model.begin_drag(2) == DragMode.UNSELECT
        model.drag_over(3)
        model.drag_over(4)
        model.end_drag()
        assert model.resolve() == [1]

    def test_mode_fixed_for_whole_drag(self, model):
        model.toggle_channel(9)
        model.begin_drag(8)
        model.drag_over(9)
        assert 9 in model.selected_channels
        assert model.drag_mode == DragMode.SELECT

    def test_drag_over_is_idempotent(self, model):
        model.begin_drag(1)
        model.drag_over(2)
        model.drag_over(2)
        model.drag_over(1)
        assert model.selected_channels == {1, 2}

    def test_drag_over_when_idle_is_noop(self, model):
        model.drag_over(5)
        assert model.selected_channels == set()

    def test_end_drag_keeps_selection(self, model):
        model.begin_drag(3)
        model.end_drag()
        model.end_drag()
        assert model.selected_channels == {3}
        assert model.drag_mode is None


class TestPointerInput:
    """Tests for mouse/touch translation and routing."""

    def test_mouse_translation(self):
        assert pointer_from_mouse("mousedown", channel=4).phase == PointerPhase.START
        assert pointer_from_mouse("mouseenter", channel=5).phase == PointerPhase.MOVE
        assert pointer_from_mouse("mouseleave").phase == PointerPhase.CANCEL
        with pytest.raises(ValueError):
            pointer_from_mouse("dblclick")

    def test_touch_uses_first_point(self):
        event = pointer_from_touch("touchmove", [(10.0, 20.0), (99.0, 99.0)])
        assert (event.x, event.y) == (10.0, 20.0)
        assert pointer_from_touch("touchend").x is None

    def test_touch_drag_through_hit_test(self, model):
        cells = {(0, 0): 7, (1, 0): 8}
        router = SelectionPointerRouter(model, lambda x, y: cells.get((x, y)))
        router.handle(pointer_from_touch("touchstart", [(0, 0)]))
        router.handle(pointer_from_touch("touchmove", [(1, 0)]))
        router.handle(pointer_from_touch("touchmove", [(5, 5)]))  # off the grid
        router.handle(pointer_from_touch("touchend"))
        assert model.resolve() == [7, 8]
        assert not model.is_dragging

    def test_mouse_drag_uses_event_channel(self, model):
        hit_test = Mock(return_value=None)
        router = SelectionPointerRouter(model, hit_test)
        router.handle(pointer_from_mouse("mousedown", channel=7))
        router.handle(pointer_from_mouse("mouseenter", channel=8))
        router.handle(pointer_from_mouse("mouseup"))
        assert model.resolve() == [7, 8]
        hit_test.assert_not_called()

    def test_leaving_surface_ends_drag(self, model):
        router = SelectionPointerRouter(model, lambda x, y: None)
        router.handle(PointerEvent(PointerPhase.START, channel=1))
        router.handle(PointerEvent(PointerPhase.CANCEL))
        router.handle(PointerEvent(PointerPhase.MOVE, channel=2))
        assert model.selected_channels == {1}


class TestResolve:
    """Tests for resolve and conflicts_against."""

    def test_union_of_channels_fixtures_and_groups(self, model):
        model.toggle_channel(5)
        model.toggle_fixture("f1")
        model.toggle_group("g1")
        assert model.resolve() == [5, 10, 11, 12]

    def test_unknown_ids_ignored(self, model):
        model.toggle_fixture("gone")
        model.toggle_group("also-gone")
        assert model.resolve() == []

    def test_explicit_catalog(self, catalog):
        model = ChannelSelectionModel()
        model.toggle_fixture("f2")
        assert model.resolve() == []
        fixtures, groups = catalog
        assert model.resolve(fixtures, groups) == [20, 21]

    def test_set_catalog(self, catalog):
        model = ChannelSelectionModel()
        model.toggle_group("g2")
        model.set_catalog(groups=catalog[1])
        assert model.resolve() == [40, 41]

    def test_conflicts_against_live_values(self, model):
        model.toggle_fixture("f1")
        model.toggle_channel(30)
        active = {10: 0, 11: 128, 30: 255, 99: 255}
        assert model.conflicts_against(active) == [11, 30]

    def test_no_conflicts_when_dark(self, model):
        model.toggle_group("g2")
        assert model.conflicts_against({}) == []

    def test_to_dict(self, model):
        model.begin_drag(3)
        d = model.to_dict()
        assert d["channels"] == [3]
        assert d["drag_mode"] == "select"
