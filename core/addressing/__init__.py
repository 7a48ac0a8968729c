"""
AETHER Addressing Module - DMX Address Space Allocation and Live State

This module assigns non-overlapping channel ranges to fixtures and nodes
competing for the 512 slots of each universe, detects overlaps, places
new entities into free space, and keeps a polled live-channel snapshot
from overwriting in-flight manual edits.

Key Components:
- OccupancyIndex: Which entities claim which channels in a universe
- ConflictDetector: Overlap reports for candidate ranges or channel sets
- FirstFitAllocator: Lowest-address placement of one or more slots
- ChannelSelectionModel: Channel/fixture/group selection with drag input
- LiveStateReconciler: Poll loop gated by a reference-counted drag counter
- PatchManager: High-level facade used by the REST layer

Usage:
    from core.addressing import PatchManager, CoreApiClient, PatchConfig

    config = PatchConfig.from_env()
    manager = PatchManager(CoreApiClient(config.core_url), config)
    result = manager.plan_allocation(universe=1, width=4, quantity=2)

Version: 0.1.0
"""

from .types import (
    UNIVERSE_SIZE,
    MAX_DMX_VALUE,
    EntityKind,
    NodeTransport,
    NodeStatus,
    AddressValidationError,
    ChannelRange,
    OwnerRef,
    Fixture,
    Node,
    Group,
    normalize_channel_map,
    validate_range,
)
from .occupancy import AddressSpace, OccupancyIndex, build_occupancy
from .conflicts import ConflictDetector, ConflictReport, find_conflicts, scan_conflicts
from .allocator import (
    AllocationResult,
    FirstFitAllocator,
    RebalancePlan,
    RANGE_PRESETS,
    preset_range,
    plan_rebalance,
    suggest_node_range,
)
from .selection import (
    ChannelSelectionModel,
    DragMode,
    PointerEvent,
    PointerPhase,
    SelectionPointerRouter,
    pointer_from_mouse,
    pointer_from_touch,
)
from .reconciler import ActiveChannelSnapshot, LiveStateReconciler, PollGate
from .client import CoreApiClient, CoreApiError, CoreTimeoutError, CoreConnectionError
from .config import PatchConfig
from .manager import PatchManager, PatchOutcome, BatchOutcome, ActivationOutcome

__all__ = [
    # Types
    "UNIVERSE_SIZE",
    "MAX_DMX_VALUE",
    "EntityKind",
    "NodeTransport",
    "NodeStatus",
    "AddressValidationError",
    "ChannelRange",
    "OwnerRef",
    "Fixture",
    "Node",
    "Group",
    "normalize_channel_map",
    "validate_range",
    # Occupancy and conflicts
    "AddressSpace",
    "OccupancyIndex",
    "build_occupancy",
    "ConflictDetector",
    "ConflictReport",
    "find_conflicts",
    "scan_conflicts",
    # Allocation
    "AllocationResult",
    "FirstFitAllocator",
    "RebalancePlan",
    "RANGE_PRESETS",
    "preset_range",
    "plan_rebalance",
    "suggest_node_range",
    # Selection
    "ChannelSelectionModel",
    "DragMode",
    "PointerEvent",
    "PointerPhase",
    "SelectionPointerRouter",
    "pointer_from_mouse",
    "pointer_from_touch",
    # Live state
    "ActiveChannelSnapshot",
    "LiveStateReconciler",
    "PollGate",
    # Remote
    "CoreApiClient",
    "CoreApiError",
    "CoreTimeoutError",
    "CoreConnectionError",
    # Facade
    "PatchConfig",
    "PatchManager",
    "PatchOutcome",
    "BatchOutcome",
    "ActivationOutcome",
]

__version__ = "0.1.0"
