"""
First-Fit Allocation - Placing New Entities Into Free Address Space

The allocator finds the lowest free windows in a universe. Lower
channels are patched and wired first in a typical rig, so the lowest
available address wins over the tightest fit.

Classes:
    AllocationResult: Starts found for one request, with shortfall
    FirstFitAllocator: Lowest-address window search
    RebalancePlan: Even split of a universe across nodes

Functions:
    suggest_node_range: First free gap for pairing a node
    preset_range: Named ranges offered when pairing a node
    plan_rebalance: Redistribute a universe across its nodes

Usage:
    index = build_occupancy(1, fixtures=fixtures)
    result = FirstFitAllocator().plan(1, width=4, quantity=2, occupancy=index)
    if not result.is_complete():
        print(result.message())
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Iterable, Set, Tuple, Any
import logging

from .types import (
    UNIVERSE_SIZE,
    MIN_ADDRESS,
    AddressValidationError,
    ChannelRange,
    Fixture,
    Node,
    validate_universe,
)
from .occupancy import OccupancyIndex

logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    """
    Result of a first-fit request.

    A partial result is the insufficient-space outcome: callers must
    show the shortfall rather than invent slots past address 512.

    Attributes:
        universe: Universe searched
        width: Footprint of each slot
        requested: Quantity asked for
        starts: Start addresses found, strictly increasing
    """
    universe: int
    width: int
    requested: int
    starts: List[int] = field(default_factory=list)

    @property
    def placed(self) -> int:
        return len(self.starts)

    @property
    def shortfall(self) -> int:
        return self.requested - self.placed

    def is_complete(self) -> bool:
        return self.placed >= self.requested

    def ranges(self) -> List[ChannelRange]:
        return [ChannelRange.from_width(s, self.width) for s in self.starts]

    def message(self) -> str:
        if self.is_complete():
            return f"{self.placed} x {self.width}ch placed in universe {self.universe}"
        return (
            f"Only {self.placed} of {self.requested} x {self.width}ch fit "
            f"in universe {self.universe}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "universe": self.universe,
            "width": self.width,
            "requested": self.requested,
            "placed": self.placed,
            "shortfall": self.shortfall,
            "complete": self.is_complete(),
            "starts": list(self.starts),
            "ranges": [r.to_dict() for r in self.ranges()],
            "message": self.message(),
        }


class FirstFitAllocator:
    """
    Lowest-address-first window search over one universe.

    Each call reserves its own results as it goes, so slots returned by
    one call never overlap each other. Calls do not see each other's
    uncommitted results: refresh the occupancy between dependent calls.
    """

    def allocate(
        self,
        universe: int,
        width: int,
        quantity: int,
        occupancy: Optional[OccupancyIndex] = None
    ) -> List[int]:
        """
        Find up to `quantity` free windows of `width` channels.

        Scans start addresses upward from 1. A window is feasible when
        none of its channels is occupied in the base index or reserved
        earlier in this call. After a hit the cursor jumps past the
        window; after a miss it advances by one.

        Args:
            universe: Universe to search
            width: Channels per slot (1-512)
            quantity: Slots wanted (>= 0)
            occupancy: Base index for the universe (None = empty)

        Returns:
            Start addresses, strictly increasing, length <= quantity

        Raises:
            AddressValidationError: width < 1, width > 512 or bad universe
            ValueError: negative quantity or index for another universe
        """
        validate_universe(universe)
        if width < 1:
            raise AddressValidationError(f"Width must be >= 1, got {width}", universe=universe)
        if width > UNIVERSE_SIZE:
            raise AddressValidationError(
                f"Width {width} exceeds universe limit of {UNIVERSE_SIZE}", universe=universe
            )
        if quantity < 0:
            raise ValueError(f"Quantity must be >= 0, got {quantity}")
        if occupancy is None:
            occupancy = OccupancyIndex.empty(universe)
        elif occupancy.universe != universe:
            raise ValueError(
                f"Occupancy index is for universe {occupancy.universe}, not {universe}"
            )

        results: List[int] = []
        reserved: Set[int] = set()
        last_start = UNIVERSE_SIZE - width + 1
        cursor = MIN_ADDRESS

        while len(results) < quantity and cursor <= last_start:
            window = range(cursor, cursor + width)
            if all(ch not in occupancy and ch not in reserved for ch in window):
                results.append(cursor)
                reserved.update(window)
                cursor += width
            else:
                cursor += 1

        if len(results) < quantity:
            logger.info(
                f"Universe {universe}: only {len(results)} of {quantity} "
                f"x {width}ch windows available"
            )
        return results

    def plan(
        self,
        universe: int,
        width: int,
        quantity: int,
        occupancy: Optional[OccupancyIndex] = None
    ) -> AllocationResult:
        """Run allocate() and wrap the outcome with shortfall information."""
        starts = self.allocate(universe, width, quantity, occupancy)
        return AllocationResult(universe=universe, width=width, requested=quantity, starts=starts)

    def next_address(
        self,
        universe: int,
        width: int,
        occupancy: Optional[OccupancyIndex] = None
    ) -> Optional[int]:
        """Lowest start address for a single slot, or None if full."""
        starts = self.allocate(universe, width, 1, occupancy)
        return starts[0] if starts else None

    def plan_batch(
        self,
        name: str,
        universe: int,
        width: int,
        quantity: int,
        occupancy: Optional[OccupancyIndex] = None,
        color: Optional[str] = None,
        fixture_type: Optional[str] = None
    ) -> Tuple[AllocationResult, List[Fixture]]:
        """
        Plan a batch of identical fixtures.

        Fixtures are numbered "<name> 1" .. "<name> N" when more than one
        is requested. Nothing is planned unless the whole batch fits.

        Returns:
            (allocation result, fixtures to create; empty on shortfall)
        """
        result = self.plan(universe, width, quantity, occupancy)
        if not result.is_complete():
            return result, []

        base = name.strip()
        fixtures = []
        for idx, start in enumerate(result.starts):
            fixtures.append(Fixture(
                id=None,
                name=f"{base} {idx + 1}" if quantity > 1 else base,
                universe=universe,
                start_address=start,
                width=width,
                color=color,
                fixture_type=fixture_type,
            ))
        return result, fixtures


# ============================================================
# Node ranges
# ============================================================

RANGE_PRESETS: Dict[str, ChannelRange] = {
    "full": ChannelRange(1, 512),
    "first-half": ChannelRange(1, 256),
    "second-half": ChannelRange(257, 512),
    "first-quarter": ChannelRange(1, 128),
    "second-quarter": ChannelRange(129, 256),
    "third-quarter": ChannelRange(257, 384),
    "fourth-quarter": ChannelRange(385, 512),
}


def preset_range(name: str) -> ChannelRange:
    """Look up a named node range preset."""
    try:
        return RANGE_PRESETS[name]
    except KeyError:
        raise ValueError(
            f"Unknown range preset {name!r}; expected one of {', '.join(RANGE_PRESETS)}"
        ) from None


def _nodes_in_universe(
    universe: int,
    nodes: Iterable[Node],
    exclude_id: Optional[str]
) -> List[Node]:
    return [n for n in nodes if n.universe == universe and n.id != exclude_id]


def suggest_node_range(
    universe: int,
    nodes: Iterable[Node],
    exclude_id: Optional[str] = None
) -> Optional[ChannelRange]:
    """
    Suggest the first free gap in a universe for a node.

    The whole gap is offered (before the first node, between nodes, or
    after the last). An empty universe yields 1-512.

    Args:
        universe: Universe to search
        nodes: All known nodes
        exclude_id: Node being (re)configured

    Returns:
        Free range, or None if every channel is claimed
    """
    validate_universe(universe)
    ranges = sorted(
        (n.channel_range() for n in _nodes_in_universe(universe, nodes, exclude_id)),
        key=lambda r: (r.start, r.end)
    )

    cursor = MIN_ADDRESS
    for r in ranges:
        if r.start > cursor:
            return ChannelRange(cursor, r.start - 1)
        cursor = max(cursor, r.end + 1)

    if cursor <= UNIVERSE_SIZE:
        return ChannelRange(cursor, UNIVERSE_SIZE)
    return None


@dataclass
class RebalancePlan:
    """
    Even split of a universe across its nodes plus one newcomer.

    Attributes:
        universe: Universe being split
        assignments: Existing node id → new range, in split order
        new_range: Range left for the node being paired
    """
    universe: int
    assignments: Dict[str, ChannelRange] = field(default_factory=dict)
    new_range: ChannelRange = field(default_factory=lambda: ChannelRange(1, UNIVERSE_SIZE))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "universe": self.universe,
            "assignments": {nid: r.to_dict() for nid, r in self.assignments.items()},
            "new_range": self.new_range.to_dict(),
        }


def plan_rebalance(
    universe: int,
    nodes: Iterable[Node],
    exclude_id: Optional[str] = None
) -> RebalancePlan:
    """
    Split a universe evenly between its nodes and one more.

    With N existing nodes each slice is 512 // (N + 1) channels; node i
    (ordered by current start) gets [i*per+1, (i+1)*per] and the newcomer
    takes the remainder up to 512.
    """
    validate_universe(universe)
    existing = sorted(
        _nodes_in_universe(universe, nodes, exclude_id),
        key=lambda n: (n.channel_start, n.id)
    )
    if not existing:
        return RebalancePlan(universe=universe)

    per = UNIVERSE_SIZE // (len(existing) + 1)
    assignments = {
        node.id: ChannelRange(i * per + 1, (i + 1) * per)
        for i, node in enumerate(existing)
    }
    return RebalancePlan(
        universe=universe,
        assignments=assignments,
        new_range=ChannelRange(len(existing) * per + 1, UNIVERSE_SIZE),
    )
