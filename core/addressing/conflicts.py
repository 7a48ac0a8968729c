"""
Conflict Detection - Overlap Checks Against the Occupancy Index

Conflicts are soft: they are returned as data so the caller can warn
and ask for an explicit override. Only invalid candidates (outside the
universe, zero width) raise, and they do so before any lookup.

Classes:
    ConflictReport: Result of checking one candidate
    ConflictDetector: Checks candidates against one OccupancyIndex

Usage:
    index = build_occupancy(1, fixtures=fixtures)
    report = ConflictDetector(index).check(
        ChannelRange(1, 8), exclude_id="par_1", exclude_kind=EntityKind.FIXTURE
    )
    if report.has_conflicts():
        print(report.message())
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Iterable, Union, Set, Tuple, Any
import logging

from .types import (
    ChannelRange,
    OwnerRef,
    EntityKind,
    Fixture,
    Node,
    validate_channel,
)
from .occupancy import OccupancyIndex, build_occupancy, is_excluded

logger = logging.getLogger(__name__)

Candidate = Union[ChannelRange, Iterable[int]]


@dataclass
class ConflictReport:
    """
    Outcome of a conflict check.

    Attributes:
        universe: Universe checked
        channels: Candidate channels, sorted
        owners: Every distinct conflicting owner, in (kind, id) order
    """
    universe: int
    channels: List[int]
    owners: List[OwnerRef] = field(default_factory=list)

    def has_conflicts(self) -> bool:
        return bool(self.owners)

    def owner_names(self) -> List[str]:
        return [o.name or o.id for o in self.owners]

    def message(self) -> str:
        """Operator-facing warning naming every conflicting owner."""
        if not self.owners:
            return "No conflicts"
        names = ", ".join(f'"{n}"' for n in self.owner_names())
        return f"Channel conflict with {names}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "universe": self.universe,
            "has_conflicts": self.has_conflicts(),
            "conflicts": [o.to_dict() for o in self.owners],
            "message": self.message(),
        }


def _candidate_channels(candidate: Candidate, universe: int) -> List[int]:
    """Validate and expand a candidate into a sorted channel list."""
    if isinstance(candidate, ChannelRange):
        return list(candidate.validate(universe).channels())
    channels = sorted(set(int(ch) for ch in candidate))
    for ch in channels:
        validate_channel(ch, universe)
    return channels


def find_conflicts(
    candidate: Candidate,
    occupancy: OccupancyIndex,
    exclude_id: Optional[str] = None,
    exclude_kind: Optional[EntityKind] = None
) -> List[OwnerRef]:
    """
    Report every owner whose claim intersects the candidate.

    Args:
        candidate: Contiguous range or explicit channel set
        occupancy: Index of the candidate's universe
        exclude_id: Entity to ignore (editing an entity against itself)
        exclude_kind: Restrict the exclusion to one kind of entity

    Returns:
        Distinct conflicting owners sorted by (kind, id); empty if clear

    Raises:
        AddressValidationError: If the candidate leaves the universe
    """
    channels = _candidate_channels(candidate, occupancy.universe)

    found: Set[OwnerRef] = set()
    for ch in channels:
        for owner in occupancy.owners_at(ch):
            if is_excluded(owner, exclude_id, exclude_kind):
                continue
            found.add(owner)

    return sorted(found, key=lambda o: o.sort_key)


class ConflictDetector:
    """
    Conflict checks bound to one occupancy snapshot.

    Attributes:
        occupancy: Index the checks run against
    """

    def __init__(self, occupancy: OccupancyIndex):
        self.occupancy = occupancy

    @property
    def universe(self) -> int:
        return self.occupancy.universe

    def check(
        self,
        candidate: Candidate,
        exclude_id: Optional[str] = None,
        exclude_kind: Optional[EntityKind] = None
    ) -> ConflictReport:
        """Check a range or channel set, returning a ConflictReport."""
        channels = _candidate_channels(candidate, self.universe)
        owners = find_conflicts(channels, self.occupancy, exclude_id, exclude_kind)
        if owners:
            logger.info(
                f"Universe {self.universe} candidate {channels[0]}-{channels[-1]} "
                f"conflicts with {len(owners)} owner(s)"
            )
        return ConflictReport(universe=self.universe, channels=channels, owners=owners)

    def check_fixture(self, fixture: Fixture) -> ConflictReport:
        """Check a fixture's own range, excluding the fixture itself."""
        fixture.validate()
        return self.check(
            fixture.channel_range(),
            exclude_id=fixture.id,
            exclude_kind=EntityKind.FIXTURE
        )

    def check_node(self, node: Node) -> ConflictReport:
        """Check a node's range, excluding the node itself."""
        node.validate()
        return self.check(
            node.channel_range(),
            exclude_id=node.id,
            exclude_kind=EntityKind.NODE
        )


def scan_conflicts(
    fixtures: Iterable[Fixture],
    nodes: Iterable[Node] = ()
) -> Dict[int, List[OwnerRef]]:
    """
    Find every fixture or node involved in any overlap.

    Fixtures are compared with fixtures and nodes with nodes; a fixture
    inside the range of the node that outputs it is ordinary wiring.
    Used to badge entries in a patch list. Groups never appear.

    Args:
        fixtures: All fixtures
        nodes: All nodes

    Returns:
        Universe → conflicting owners (universes without conflicts omitted)
    """
    fixtures = list(fixtures)
    nodes = list(nodes)
    universes = sorted({f.universe for f in fixtures} | {n.universe for n in nodes})

    result: Dict[int, List[OwnerRef]] = {}
    for universe in universes:
        involved: Set[OwnerRef] = set()
        for index in (build_occupancy(universe, fixtures=fixtures),
                      build_occupancy(universe, nodes=nodes)):
            for ch in index.conflicted_channels():
                involved.update(index.owners_at(ch))
        if involved:
            result[universe] = sorted(involved, key=lambda o: o.sort_key)
    return result


def conflicting_pairs(index: OccupancyIndex) -> List[Tuple[OwnerRef, OwnerRef]]:
    """Distinct owner pairs that share at least one channel."""
    pairs: Set[Tuple[OwnerRef, OwnerRef]] = set()
    for ch in index.conflicted_channels():
        owners = sorted(index.owners_at(ch), key=lambda o: o.sort_key)
        for i in range(len(owners)):
            for j in range(i + 1, len(owners)):
                pairs.add((owners[i], owners[j]))
    return sorted(pairs, key=lambda p: (p[0].sort_key, p[1].sort_key))
