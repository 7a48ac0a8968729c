"""
Channel Selection Model - Interactive Target Selection

Session-scoped selection used by activation and allocation dialogs.
Raw channels, fixture references and group references are held
separately and only expanded to channels on resolve().

Drag selection has a single state machine. Mouse and touch input is
translated at the boundary into PointerEvents, and the cell under the
pointer is found by a hit-test keyed by channel number, so the model
never sees the input device.

Classes:
    DragMode: Action applied for the whole of one drag
    PointerPhase: Start/move/end/cancel
    PointerEvent: Device-neutral pointer sample
    ChannelSelectionModel: Selection state and expansion
    SelectionPointerRouter: Routes PointerEvents into the model

Usage:
    model = ChannelSelectionModel(fixtures, groups)
    router = SelectionPointerRouter(model, grid.channel_at)
    router.handle(pointer_from_touch("touchstart", [(x, y)]))
    live = model.conflicts_against(snapshot)
"""

from dataclasses import dataclass
from typing import List, Dict, Optional, Callable, Iterable, Mapping, Set, Tuple, Any
from enum import Enum
import logging

from .types import (
    UNIVERSE_SIZE,
    MIN_ADDRESS,
    Fixture,
    Group,
)

logger = logging.getLogger(__name__)


class DragMode(Enum):
    """Action fixed at drag start from the first cell's state."""
    SELECT = "select"
    UNSELECT = "unselect"


class PointerPhase(Enum):
    START = "start"
    MOVE = "move"
    END = "end"
    CANCEL = "cancel"  # pointer left the surface


@dataclass(frozen=True)
class PointerEvent:
    """
    Device-neutral pointer sample.

    Attributes:
        phase: Start/move/end/cancel
        x: Horizontal position (None when the device reports none)
        y: Vertical position
        channel: Cell already resolved by the caller, if known
    """
    phase: PointerPhase
    x: Optional[float] = None
    y: Optional[float] = None
    channel: Optional[int] = None


_MOUSE_PHASES = {
    "mousedown": PointerPhase.START,
    "mouseenter": PointerPhase.MOVE,
    "mousemove": PointerPhase.MOVE,
    "mouseup": PointerPhase.END,
    "mouseleave": PointerPhase.CANCEL,
}

_TOUCH_PHASES = {
    "touchstart": PointerPhase.START,
    "touchmove": PointerPhase.MOVE,
    "touchend": PointerPhase.END,
    "touchcancel": PointerPhase.CANCEL,
}


def pointer_from_mouse(
    event_type: str,
    x: Optional[float] = None,
    y: Optional[float] = None,
    channel: Optional[int] = None
) -> PointerEvent:
    """Translate a mouse event into a PointerEvent."""
    try:
        phase = _MOUSE_PHASES[event_type]
    except KeyError:
        raise ValueError(f"Unsupported mouse event: {event_type}") from None
    return PointerEvent(phase=phase, x=x, y=y, channel=channel)


def pointer_from_touch(
    event_type: str,
    touches: Iterable[Tuple[float, float]] = ()
) -> PointerEvent:
    """
    Translate a touch event into a PointerEvent.

    Only the first active touch point is used. touchend carries no
    active touches, so its position is None.
    """
    try:
        phase = _TOUCH_PHASES[event_type]
    except KeyError:
        raise ValueError(f"Unsupported touch event: {event_type}") from None
    first = next(iter(touches), None)
    if first is None:
        return PointerEvent(phase=phase)
    return PointerEvent(phase=phase, x=first[0], y=first[1])


class ChannelSelectionModel:
    """
    Selection of raw channels, fixtures and groups for one dialog session.

    State transitions: idle → (direct toggle | drag) → resolved. Every drag
    step commits immediately; ending or cancelling a drag only clears the
    drag mode, so there is nothing to revert.

    Attributes:
        selected_channels: Raw channels picked on the grid
        selected_fixtures: Fixture ids (expanded on resolve)
        selected_groups: Group ids (expanded on resolve)
        drag_mode: Active drag action, None when idle
    """

    def __init__(
        self,
        fixtures: Iterable[Fixture] = (),
        groups: Iterable[Group] = ()
    ):
        self.selected_channels: Set[int] = set()
        self.selected_fixtures: Set[str] = set()
        self.selected_groups: Set[str] = set()
        self.drag_mode: Optional[DragMode] = None
        self._fixtures: List[Fixture] = list(fixtures)
        self._groups: List[Group] = list(groups)

    def set_catalog(
        self,
        fixtures: Optional[Iterable[Fixture]] = None,
        groups: Optional[Iterable[Group]] = None
    ) -> None:
        """Replace the fixtures/groups used for expansion (e.g. after a poll)."""
        if fixtures is not None:
            self._fixtures = list(fixtures)
        if groups is not None:
            self._groups = list(groups)

    # ─────────────────────────────────────────────────────────
    # Direct toggles
    # ─────────────────────────────────────────────────────────

    def toggle_channel(self, channel: int) -> bool:
        """Flip a channel's membership. Returns the new membership."""
        if channel in self.selected_channels:
            self.selected_channels.discard(channel)
            return False
        self.selected_channels.add(channel)
        return True

    def toggle_fixture(self, fixture_id: str) -> bool:
        if fixture_id in self.selected_fixtures:
            self.selected_fixtures.discard(fixture_id)
            return False
        self.selected_fixtures.add(fixture_id)
        return True

    def toggle_group(self, group_id: str) -> bool:
        if group_id in self.selected_groups:
            self.selected_groups.discard(group_id)
            return False
        self.selected_groups.add(group_id)
        return True

    def clear(self) -> None:
        self.selected_channels.clear()
        self.selected_fixtures.clear()
        self.selected_groups.clear()
        self.drag_mode = None

    # ─────────────────────────────────────────────────────────
    # Drag selection
    # ─────────────────────────────────────────────────────────

    @property
    def is_dragging(self) -> bool:
        return self.drag_mode is not None

    def begin_drag(self, channel: int) -> DragMode:
        """
        Start a drag on a cell.

        The mode comes from the first cell: a selected cell starts an
        unselect drag, an unselected one a select drag. The first cell
        gets the action straight away.
        """
        if channel in self.selected_channels:
            self.drag_mode = DragMode.UNSELECT
        else:
            self.drag_mode = DragMode.SELECT
        self._apply(channel)
        return self.drag_mode

    def drag_over(self, channel: int) -> None:
        """Apply the drag's action to a cell. Idempotent; no-op when idle."""
        if self.drag_mode is None:
            return
        self._apply(channel)

    def end_drag(self) -> None:
        """Clear the drag mode; the selection is left as it is."""
        self.drag_mode = None

    def _apply(self, channel: int) -> None:
        if self.drag_mode == DragMode.SELECT:
            self.selected_channels.add(channel)
        else:
            self.selected_channels.discard(channel)

    # ─────────────────────────────────────────────────────────
    # Resolution
    # ─────────────────────────────────────────────────────────

    def resolve(
        self,
        fixtures: Optional[Iterable[Fixture]] = None,
        groups: Optional[Iterable[Group]] = None
    ) -> List[int]:
        """
        Expand the selection into a sorted, deduplicated channel list.

        Union of raw channels, every channel of each selected fixture's
        range and every channel of each selected group. Ids that no
        longer exist are ignored.
        """
        fixtures = self._fixtures if fixtures is None else fixtures
        groups = self._groups if groups is None else groups

        channels: Set[int] = set(self.selected_channels)

        for fixture in fixtures:
            if fixture.id in self.selected_fixtures:
                channels.update(range(fixture.start_address, fixture.end_address + 1))

        for group in groups:
            if group.id in self.selected_groups:
                channels.update(group.channels)

        return sorted(ch for ch in channels if MIN_ADDRESS <= ch <= UNIVERSE_SIZE)

    def conflicts_against(
        self,
        active: Mapping[int, int],
        fixtures: Optional[Iterable[Fixture]] = None,
        groups: Optional[Iterable[Group]] = None
    ) -> List[int]:
        """
        Resolved channels that are already live (non-zero) in a snapshot.

        A non-empty result means the activation needs explicit
        confirmation before it proceeds.
        """
        return [ch for ch in self.resolve(fixtures, groups) if active.get(ch, 0)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channels": sorted(self.selected_channels),
            "fixtures": sorted(self.selected_fixtures),
            "groups": sorted(self.selected_groups),
            "dragging": self.is_dragging,
            "drag_mode": self.drag_mode.value if self.drag_mode else None,
        }


class SelectionPointerRouter:
    """
    Feeds PointerEvents into a ChannelSelectionModel.

    Attributes:
        model: Selection model receiving drag calls
        hit_test: Maps a pointer position to the channel of the cell
            under it, or None when the point is not over a cell
    """

    def __init__(
        self,
        model: ChannelSelectionModel,
        hit_test: Callable[[float, float], Optional[int]]
    ):
        self.model = model
        self.hit_test = hit_test

    def _channel_for(self, event: PointerEvent) -> Optional[int]:
        if event.channel is not None:
            return event.channel
        if event.x is None or event.y is None:
            return None
        return self.hit_test(event.x, event.y)

    def handle(self, event: PointerEvent) -> None:
        if event.phase in (PointerPhase.END, PointerPhase.CANCEL):
            self.model.end_drag()
            return

        channel = self._channel_for(event)
        if channel is None:
            return

        if event.phase == PointerPhase.START:
            self.model.begin_drag(channel)
        elif event.phase == PointerPhase.MOVE:
            self.model.drag_over(channel)
