"""
Address Space and Occupancy Index

AddressSpace is the pure model of the universes and their 512 slots.
OccupancyIndex records, for one universe, which entities claim each
channel. A channel claimed by more than one owner is a conflict marker;
both owners are kept.

Fixtures and nodes live in separate address maps: fixture placement is
indexed from fixtures, node pairing from nodes.

Usage:
    index = build_occupancy(1, fixtures=fixtures)
    index.owners_at(5)           # [OwnerRef(...)]
    index.conflicted_channels()  # channels with 2+ owners
"""

from typing import List, Dict, Optional, Iterable, Set
import logging

from .types import (
    UNIVERSE_SIZE,
    MIN_ADDRESS,
    ChannelRange,
    EntityKind,
    OwnerRef,
    Fixture,
    Node,
    validate_universe,
)

logger = logging.getLogger(__name__)


class AddressSpace:
    """
    Namespace of universes, each an array of 512 one-indexed slots.

    No entity owns a universe. The only configuration is how many
    universes are exposed to the operator.

    Attributes:
        max_universe: Highest universe number offered
    """

    def __init__(self, max_universe: int = 4):
        validate_universe(max_universe)
        self.max_universe = max_universe

    def universes(self) -> List[int]:
        return list(range(1, self.max_universe + 1))

    def contains(self, universe: int, channel: int) -> bool:
        return 1 <= universe <= self.max_universe and MIN_ADDRESS <= channel <= UNIVERSE_SIZE

    def validate_range(self, universe: int, start: int, width: int) -> ChannelRange:
        """
        Validate a candidate placement.

        Raises:
            AddressValidationError: bad universe, start, width or overflow
        """
        validate_universe(universe)
        return ChannelRange.from_width(start, width).validate(universe)


class OccupancyIndex:
    """
    Channel → owners map for a single universe.

    Built once from a snapshot of fixtures and nodes and then read by
    the conflict detector and allocator. Instances are not mutated after
    build; refresh by building a new one from the next poll.

    Attributes:
        universe: Universe this index describes
    """

    def __init__(self, universe: int, claims: Optional[Dict[int, List[OwnerRef]]] = None):
        self.universe = universe
        self._claims: Dict[int, List[OwnerRef]] = claims or {}

    @classmethod
    def empty(cls, universe: int) -> "OccupancyIndex":
        return cls(universe)

    def owners_at(self, channel: int) -> List[OwnerRef]:
        """Owners claiming a channel (empty if free)."""
        return list(self._claims.get(channel, ()))

    def is_occupied(self, channel: int) -> bool:
        return channel in self._claims

    def occupied_channels(self) -> List[int]:
        return sorted(self._claims)

    def free_channels(self) -> List[int]:
        return [ch for ch in range(MIN_ADDRESS, UNIVERSE_SIZE + 1) if ch not in self._claims]

    def conflicted_channels(self) -> List[int]:
        """Channels claimed by two or more distinct owners."""
        return sorted(ch for ch, owners in self._claims.items() if len(owners) > 1)

    def owners(self) -> List[OwnerRef]:
        """Distinct owners present in this universe, in (kind, id) order."""
        seen: Set[OwnerRef] = set()
        for owners in self._claims.values():
            seen.update(owners)
        return sorted(seen, key=lambda o: o.sort_key)

    def to_dict(self) -> Dict[str, object]:
        return {
            "universe": self.universe,
            "occupied": len(self._claims),
            "free": UNIVERSE_SIZE - len(self._claims),
            "conflicted_channels": self.conflicted_channels(),
            "owners": [o.to_dict() for o in self.owners()],
        }

    def __contains__(self, channel: int) -> bool:
        return channel in self._claims

    def __len__(self) -> int:
        return len(self._claims)


def _claim(
    claims: Dict[int, List[OwnerRef]],
    owner: OwnerRef,
    channel_range: ChannelRange,
    universe: int
) -> None:
    """Mark every channel of a range, clipping anything outside the universe."""
    start = max(channel_range.start, MIN_ADDRESS)
    end = min(channel_range.end, UNIVERSE_SIZE)
    if start != channel_range.start or end != channel_range.end:
        logger.warning(
            f"{owner.kind.value} {owner.id} range {channel_range} in universe "
            f"{universe} exceeds 1-{UNIVERSE_SIZE}; clipped to {start}-{end}"
        )
    for ch in range(start, end + 1):
        owners = claims.setdefault(ch, [])
        if owner not in owners:
            owners.append(owner)


def is_excluded(
    owner: OwnerRef,
    exclude_id: Optional[str],
    exclude_kind: Optional[EntityKind] = None
) -> bool:
    """True when owner is the entity being edited (matched by id and, if given, kind)."""
    if exclude_id is None or owner.id != exclude_id:
        return False
    return exclude_kind is None or owner.kind == exclude_kind


def build_occupancy(
    universe: int,
    fixtures: Iterable[Fixture] = (),
    nodes: Iterable[Node] = (),
    exclude_id: Optional[str] = None,
    exclude_kind: Optional[EntityKind] = None
) -> OccupancyIndex:
    """
    Build the occupancy index for one universe.

    Every channel in each entity's range is marked with that entity's
    reference. Entities in other universes are ignored. Groups are not
    accepted here: they are views, not claims.

    Args:
        universe: Universe to index
        fixtures: Fixture snapshot (any universe)
        nodes: Node snapshot (any universe)
        exclude_id: Entity to leave out, e.g. the one being edited
        exclude_kind: Kind the excluded id belongs to (None = either kind)

    Returns:
        OccupancyIndex for the universe
    """
    claims: Dict[int, List[OwnerRef]] = {}

    for fixture in fixtures:
        if fixture.universe != universe or is_excluded(fixture.owner_ref(), exclude_id, exclude_kind):
            continue
        if fixture.width < 1:
            logger.warning(f"Fixture {fixture.id} has width {fixture.width}; skipped")
            continue
        _claim(claims, fixture.owner_ref(), fixture.channel_range(), universe)

    for node in nodes:
        if node.universe != universe or is_excluded(node.owner_ref(), exclude_id, exclude_kind):
            continue
        if node.channel_end < node.channel_start:
            logger.warning(f"Node {node.id} has empty range {node.channel_start}-{node.channel_end}; skipped")
            continue
        _claim(claims, node.owner_ref(), node.channel_range(), universe)

    return OccupancyIndex(universe, claims)
