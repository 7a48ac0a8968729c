"""
Patch Manager - High-Level Facade for Addressing Operations

Coordinates the remote client, occupancy index, conflict detector and
allocator for the three flows that compete for channels: fixture
patching, node pairing, and live activation on a channel selection.

Soft outcomes (conflict, insufficient space, live channels) come back
as outcome objects so the caller can ask the operator; only invalid
addresses raise.

Usage:
    manager = PatchManager(CoreApiClient(config.core_url), config)
    manager.refresh()

    outcome = manager.save_fixture(fixture)
    if outcome.needs_confirmation:
        outcome = manager.save_fixture(fixture, confirm=True)

    batch = manager.add_fixtures("PAR", universe=1, width=4, quantity=8)

    selection = manager.new_selection()
    selection.toggle_group("front")
    result = manager.request_activation(selection, "scene", "warm", reconciler.snapshot, 1)
"""

from dataclasses import dataclass, field, replace
from typing import List, Dict, Optional, Callable, Any, Mapping
import logging
import threading

from .types import (
    ChannelRange,
    EntityKind,
    Fixture,
    Node,
    Group,
    OwnerRef,
    validate_universe,
)
from .occupancy import AddressSpace, OccupancyIndex, build_occupancy
from .conflicts import ConflictDetector, ConflictReport, scan_conflicts
from .allocator import (
    AllocationResult,
    FirstFitAllocator,
    RebalancePlan,
    plan_rebalance,
    suggest_node_range,
)
from .selection import ChannelSelectionModel
from .client import CoreApiClient, CoreApiError
from .config import PatchConfig

logger = logging.getLogger(__name__)


@dataclass
class PatchOutcome:
    """
    Result of a fixture save or node pairing attempt.

    Attributes:
        committed: Whether the change was sent to the core
        needs_confirmation: Held back because of conflicts
        report: Conflict report for the candidate range
        result: Core response when committed
    """
    committed: bool
    report: ConflictReport
    needs_confirmation: bool = False
    result: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.committed,
            "committed": self.committed,
            "needs_confirmation": self.needs_confirmation,
            "conflicts": [o.to_dict() for o in self.report.owners],
            "message": self.report.message(),
            "result": self.result,
        }


@dataclass
class BatchOutcome:
    """
    Result of adding a batch of fixtures.

    Attributes:
        allocation: Slots found for the batch
        created: Core responses for fixtures created
        error: Remote error that stopped the batch, if any
    """
    allocation: AllocationResult
    created: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def committed(self) -> bool:
        return self.allocation.is_complete() and self.error is None

    def to_dict(self) -> Dict[str, Any]:
        result = self.allocation.to_dict()
        result.update({
            "success": self.committed,
            "created": self.created,
            "error": self.error,
        })
        return result


@dataclass
class ActivationOutcome:
    """
    Result of an activation request on a selection.

    Attributes:
        channels: Resolved target channels
        live_channels: Targets already non-zero in the snapshot
        committed: Whether the activation was sent
        needs_confirmation: Held back because targets are live
        result: Core response when committed
    """
    channels: List[int]
    live_channels: List[int] = field(default_factory=list)
    committed: bool = False
    needs_confirmation: bool = False
    result: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.committed,
            "channels": self.channels,
            "live_channels": self.live_channels,
            "needs_confirmation": self.needs_confirmation,
            "result": self.result,
        }


class PatchManager:
    """
    Facade over the addressing core for the REST layer and UIs.

    Holds the latest fixture/node/group snapshot pulled from the core.
    Mutations refresh the snapshot before checking and after committing.

    Attributes:
        client: CoreApiClient for the remote core
        config: PatchConfig
        space: AddressSpace (universe namespace)
        allocator: FirstFitAllocator
    """

    def __init__(
        self,
        client: CoreApiClient,
        config: Optional[PatchConfig] = None,
        audit: Optional[Callable[..., None]] = None
    ):
        """
        Initialize Patch Manager.

        Args:
            client: Core API client
            config: Configuration (defaults if omitted)
            audit: audit(event_type, **fields) hook for committed changes
        """
        self.client = client
        self.config = config or PatchConfig()
        self.space = AddressSpace(self.config.max_universe)
        self.allocator = FirstFitAllocator()
        self._audit = audit
        self._lock = threading.Lock()
        self._fixtures: List[Fixture] = []
        self._nodes: List[Node] = []
        self._groups: List[Group] = []
        self._loaded = False
        self._callbacks: Dict[str, List[Callable]] = {}

    # ─────────────────────────────────────────────────────────
    # Snapshot
    # ─────────────────────────────────────────────────────────

    def refresh(self) -> None:
        """Pull fixtures, nodes and groups from the core."""
        fixtures = self.client.list_fixtures()
        nodes = self.client.list_nodes()
        groups = self.client.list_groups()
        with self._lock:
            self._fixtures = fixtures
            self._nodes = nodes
            self._groups = groups
            self._loaded = True
        self._emit("snapshot_refreshed", {
            "fixtures": len(fixtures), "nodes": len(nodes), "groups": len(groups)
        })

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.refresh()

    @property
    def fixtures(self) -> List[Fixture]:
        self._ensure_loaded()
        return list(self._fixtures)

    @property
    def nodes(self) -> List[Node]:
        self._ensure_loaded()
        return list(self._nodes)

    @property
    def groups(self) -> List[Group]:
        self._ensure_loaded()
        return list(self._groups)

    def get_fixture(self, fixture_id: str) -> Optional[Fixture]:
        return next((f for f in self.fixtures if f.id == fixture_id), None)

    def get_node(self, node_id: str) -> Optional[Node]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def paired_nodes(self) -> List[Node]:
        return [n for n in self.nodes if n.is_paired or n.is_builtin]

    def pending_nodes(self) -> List[Node]:
        """Online nodes waiting to be paired."""
        return [n for n in self.nodes if not n.is_paired and not n.is_builtin and n.is_online]

    def occupancy(
        self,
        universe: int,
        kind: EntityKind = EntityKind.FIXTURE,
        exclude_id: Optional[str] = None
    ) -> OccupancyIndex:
        """
        Occupancy of one kind of entity in a universe.

        Fixtures are placed against fixtures and nodes against paired
        nodes. A fixture inside the range of the node that outputs it is
        normal wiring, not an overlap.
        """
        validate_universe(universe)
        if kind == EntityKind.NODE:
            return build_occupancy(universe, nodes=self.paired_nodes(),
                                   exclude_id=exclude_id, exclude_kind=kind)
        return build_occupancy(universe, fixtures=self.fixtures,
                               exclude_id=exclude_id, exclude_kind=kind)

    # ─────────────────────────────────────────────────────────
    # Conflicts
    # ─────────────────────────────────────────────────────────

    def check_range(
        self,
        universe: int,
        start: int,
        width: int,
        exclude_id: Optional[str] = None,
        kind: EntityKind = EntityKind.FIXTURE
    ) -> ConflictReport:
        """Validate a range then report overlapping entities of the same kind."""
        candidate = self.space.validate_range(universe, start, width)
        return ConflictDetector(self.occupancy(universe, kind)).check(
            candidate, exclude_id=exclude_id, exclude_kind=kind
        )

    def check_channels(
        self,
        universe: int,
        channels: List[int],
        exclude_id: Optional[str] = None,
        kind: EntityKind = EntityKind.FIXTURE
    ) -> ConflictReport:
        validate_universe(universe)
        return ConflictDetector(self.occupancy(universe, kind)).check(
            channels, exclude_id=exclude_id, exclude_kind=kind
        )

    def scan_conflicts(self) -> Dict[int, List[OwnerRef]]:
        """Every fixture/node involved in an overlap, per universe."""
        return scan_conflicts(self.fixtures, self.paired_nodes())

    # ─────────────────────────────────────────────────────────
    # Fixtures
    # ─────────────────────────────────────────────────────────

    def suggest_fixture_address(
        self,
        universe: int,
        width: int,
        exclude_id: Optional[str] = None
    ) -> Optional[int]:
        """Lowest free start for one fixture (editing excludes itself)."""
        return self.allocator.next_address(
            universe, width, self.occupancy(universe, exclude_id=exclude_id)
        )

    def plan_allocation(
        self,
        universe: int,
        width: int,
        quantity: int,
        exclude_id: Optional[str] = None
    ) -> AllocationResult:
        return self.allocator.plan(
            universe, width, quantity, self.occupancy(universe, exclude_id=exclude_id)
        )

    def save_fixture(self, fixture: Fixture, confirm: bool = False) -> PatchOutcome:
        """
        Create or update a fixture.

        Invalid ranges raise. Overlaps hold the save until called again
        with confirm=True.

        Raises:
            AddressValidationError: Range outside the universe or width < 1
        """
        fixture.validate()
        self.refresh()
        detector = ConflictDetector(self.occupancy(fixture.universe))
        report = detector.check_fixture(fixture)

        if report.has_conflicts() and not confirm:
            return PatchOutcome(committed=False, report=report, needs_confirmation=True)

        if report.has_conflicts():
            logger.warning(
                f"Fixture {fixture.name!r} saved over conflict with {', '.join(report.owner_names())}"
            )

        if fixture.id is None:
            result = self.client.create_fixture(fixture)
            event = "fixture_created"
        else:
            result = self.client.update_fixture(fixture)
            event = "fixture_updated"

        self._record(event, fixture=fixture.to_dict(), override=report.has_conflicts())
        self.refresh()
        return PatchOutcome(committed=True, report=report, result=result)

    def add_fixtures(
        self,
        name: str,
        universe: int,
        width: int,
        quantity: int,
        color: Optional[str] = None,
        fixture_type: Optional[str] = None
    ) -> BatchOutcome:
        """
        Auto-place and create a batch of fixtures.

        Nothing is created when the batch does not fit; the outcome
        reports how many would have fitted. Creation stops at the first
        remote failure; the ones already created stay.
        """
        if not name.strip():
            raise ValueError("Fixture name is required")
        self.refresh()
        allocation, planned = self.allocator.plan_batch(
            name, universe, width, quantity, self.occupancy(universe),
            color=color, fixture_type=fixture_type
        )
        outcome = BatchOutcome(allocation=allocation)
        if not planned:
            return outcome

        for fixture in planned:
            try:
                outcome.created.append(self.client.create_fixture(fixture))
            except CoreApiError as e:
                logger.error(f"Creating {fixture.name!r} failed: {e}")
                outcome.error = str(e)
                break

        self._record("fixtures_added", universe=universe, width=width,
                     starts=allocation.starts, created=len(outcome.created))
        self.refresh()
        return outcome

    def delete_fixture(self, fixture_id: str) -> Dict[str, Any]:
        result = self.client.delete_fixture(fixture_id)
        self._record("fixture_deleted", fixture_id=fixture_id)
        self.refresh()
        return result

    # ─────────────────────────────────────────────────────────
    # Nodes
    # ─────────────────────────────────────────────────────────

    def suggest_node_range(self, universe: int, exclude_id: Optional[str] = None) -> Optional[ChannelRange]:
        return suggest_node_range(universe, self.paired_nodes(), exclude_id)

    def pair_node(
        self,
        node_id: str,
        universe: int,
        channel_start: int,
        channel_end: int,
        name: Optional[str] = None,
        confirm: bool = False
    ) -> PatchOutcome:
        """
        Pair a pending node or reconfigure a paired one.

        Raises:
            KeyError: Unknown node
            AddressValidationError: Range outside the universe
        """
        self.refresh()
        node = self.get_node(node_id)
        if node is None:
            raise KeyError(node_id)

        candidate = Node(
            id=node.id,
            name=name or node.name or node.id,
            universe=universe,
            channel_start=channel_start,
            channel_end=channel_end,
            transport=node.transport,
            status=node.status,
            is_paired=node.is_paired,
        ).validate()

        report = ConflictDetector(self.occupancy(universe, EntityKind.NODE)).check_node(candidate)
        if report.has_conflicts() and not confirm:
            return PatchOutcome(committed=False, report=report, needs_confirmation=True)

        if node.is_paired or node.is_builtin:
            result = self.client.configure_node(candidate)
            event = "node_configured"
        else:
            result = self.client.pair_node(candidate)
            event = "node_paired"

        self._record(event, node=candidate.to_dict(), override=report.has_conflicts())
        self.refresh()
        return PatchOutcome(committed=True, report=report, result=result)

    def rebalance_nodes(self, universe: int, exclude_id: Optional[str] = None) -> RebalancePlan:
        """Split a universe evenly and push the new ranges to existing nodes."""
        self.refresh()
        plan = plan_rebalance(universe, self.paired_nodes(), exclude_id)
        nodes = {n.id: n for n in self.nodes}
        for node_id, new_range in plan.assignments.items():
            node = replace(nodes[node_id], channel_start=new_range.start, channel_end=new_range.end)
            self.client.configure_node(node)
        self._record("nodes_rebalanced", **plan.to_dict())
        self.refresh()
        return plan

    def _require_removable(self, node_id: str) -> None:
        node = self.get_node(node_id)
        if node is None:
            raise KeyError(node_id)
        if node.is_builtin:
            raise PermissionError(f"Built-in node {node_id} cannot be unpaired or deleted")

    def unpair_node(self, node_id: str) -> Dict[str, Any]:
        self._require_removable(node_id)
        result = self.client.unpair_node(node_id)
        self._record("node_unpaired", node_id=node_id)
        self.refresh()
        return result

    def delete_node(self, node_id: str) -> Dict[str, Any]:
        self._require_removable(node_id)
        result = self.client.delete_node(node_id)
        self._record("node_deleted", node_id=node_id)
        self.refresh()
        return result

    # ─────────────────────────────────────────────────────────
    # Selection and activation
    # ─────────────────────────────────────────────────────────

    def new_selection(self) -> ChannelSelectionModel:
        """Fresh selection bound to the current fixtures and groups."""
        return ChannelSelectionModel(self.fixtures, self.groups)

    def request_activation(
        self,
        selection: ChannelSelectionModel,
        kind: str,
        content_id: str,
        active: Mapping[int, int],
        universe: int,
        fade_ms: Optional[int] = None,
        confirm: bool = False
    ) -> ActivationOutcome:
        """
        Activate a scene or chase on the selected channels.

        When targets are already live the activation is held until
        called again with confirm=True.
        """
        validate_universe(universe)
        channels = selection.resolve()
        if not channels:
            raise ValueError("Nothing selected")

        live = selection.conflicts_against(active)
        if live and not confirm:
            return ActivationOutcome(channels=channels, live_channels=live, needs_confirmation=True)

        result = self.client.activate(kind, content_id, channels, universe, fade_ms)
        self._record("activation", kind=kind, content_id=content_id,
                     universe=universe, channels=len(channels), override=bool(live))
        return ActivationOutcome(channels=channels, live_channels=live, committed=True, result=result)

    # ─────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────

    def _record(self, event: str, **fields: Any) -> None:
        logger.info(f"{event}: {fields}")
        if self._audit:
            try:
                self._audit(event, **fields)
            except Exception as e:
                logger.error(f"Audit log write failed: {e}")
        self._emit(event, fields)

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """
        Register event callback.

        Events:
            - snapshot_refreshed
            - fixture_created / fixture_updated / fixture_deleted
            - fixtures_added
            - node_paired / node_configured / node_unpaired / node_deleted
            - nodes_rebalanced
            - activation
        """
        if event not in self._callbacks:
            self._callbacks[event] = []
        self._callbacks[event].append(callback)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        if event in self._callbacks:
            self._callbacks[event] = [
                cb for cb in self._callbacks[event] if cb != callback
            ]

    def _emit(self, event: str, data: Any) -> None:
        for callback in self._callbacks.get(event, []):
            try:
                callback(data)
            except Exception as e:
                logger.error(f"Error in {event} callback: {e}")
