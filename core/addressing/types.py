"""
Addressing Type Definitions - Dataclasses for the DMX Address Space

This module contains the data model shared by the occupancy index,
conflict detector, allocator and selection model. These are plain
data containers; the algorithms live in the sibling modules.

Classes:
    ChannelRange: Inclusive, one-indexed channel window
    OwnerRef: Reference to an entity claiming channels
    Fixture: Logical light patched to a contiguous range
    Node: Physical output device bound to a range
    Group: Non-exclusive named set of channels

Constants:
    UNIVERSE_SIZE: Addresses per universe (512)
    MAX_DMX_VALUE: Highest channel value (255)
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Iterable, FrozenSet, Union
from enum import Enum
import logging

logger = logging.getLogger(__name__)


# ============================================================
# Constants
# ============================================================

UNIVERSE_SIZE = 512
MIN_ADDRESS = 1
MAX_DMX_VALUE = 255


class EntityKind(Enum):
    """Kinds of entity that hold an exclusive claim on channels."""
    FIXTURE = "fixture"
    NODE = "node"


class NodeTransport(Enum):
    """How a node receives its DMX data."""
    WIFI = "wifi"
    GATEWAY = "gateway"
    BUILTIN = "builtin"


class NodeStatus(Enum):
    """Reachability of a node as reported by the core."""
    ONLINE = "online"
    OFFLINE = "offline"


class AddressValidationError(ValueError):
    """
    Hard validation failure for an address, range or width.

    Raised before any conflict checking takes place. Unlike conflicts
    and insufficient space, this signals bad input and blocks submission.

    Attributes:
        universe: Universe the candidate was aimed at (if known)
        start: Candidate start address (if known)
        end: Candidate end address (if known)
    """

    def __init__(
        self,
        message: str,
        universe: Optional[int] = None,
        start: Optional[int] = None,
        end: Optional[int] = None
    ):
        super().__init__(message)
        self.universe = universe
        self.start = start
        self.end = end

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "error": str(self),
            "universe": self.universe,
            "start": self.start,
            "end": self.end,
        }


def validate_universe(universe: int) -> int:
    """Check a universe identifier, returning it as int."""
    if isinstance(universe, bool) or not isinstance(universe, int):
        raise AddressValidationError(f"Universe must be an integer, got {universe!r}")
    if universe < 1:
        raise AddressValidationError(f"Universe must be >= 1, got {universe}", universe=universe)
    return universe


def validate_channel(channel: int, universe: Optional[int] = None) -> int:
    """Check a single channel address lies inside 1..512."""
    if channel < MIN_ADDRESS or channel > UNIVERSE_SIZE:
        raise AddressValidationError(
            f"Channel {channel} outside 1-{UNIVERSE_SIZE}",
            universe=universe, start=channel, end=channel
        )
    return channel


# ============================================================
# Ranges and owners
# ============================================================

@dataclass(frozen=True)
class ChannelRange:
    """
    Inclusive range of one-indexed channel addresses.

    Attributes:
        start: First channel (1-512)
        end: Last channel, inclusive (start-512)
    """
    start: int
    end: int

    @classmethod
    def from_width(cls, start: int, width: int) -> "ChannelRange":
        """Build a range from a start address and a footprint."""
        if width < 1:
            raise AddressValidationError(
                f"Width must be >= 1, got {width}", start=start
            )
        return cls(start=start, end=start + width - 1)

    @property
    def width(self) -> int:
        return self.end - self.start + 1

    def channels(self) -> range:
        """Channels covered by this range."""
        return range(self.start, self.end + 1)

    def overlaps(self, other: "ChannelRange") -> bool:
        return not (self.end < other.start or self.start > other.end)

    def validate(self, universe: Optional[int] = None) -> "ChannelRange":
        """
        Reject ranges outside the universe instead of clipping them.

        Raises:
            AddressValidationError: start < 1, end > 512 or end < start
        """
        if self.start < MIN_ADDRESS:
            raise AddressValidationError(
                f"Start address must be >= 1, got {self.start}",
                universe=universe, start=self.start, end=self.end
            )
        if self.end < self.start:
            raise AddressValidationError(
                f"End address {self.end} is before start {self.start}",
                universe=universe, start=self.start, end=self.end
            )
        if self.end > UNIVERSE_SIZE:
            raise AddressValidationError(
                f"Range {self.start}-{self.end} exceeds universe limit of {UNIVERSE_SIZE}",
                universe=universe, start=self.start, end=self.end
            )
        return self

    def to_dict(self) -> Dict[str, int]:
        return {"start": self.start, "end": self.end, "width": self.width}

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


def validate_range(start: int, width: int, universe: Optional[int] = None) -> ChannelRange:
    """Build and validate a range from start address and width."""
    if width < 1:
        raise AddressValidationError(
            f"Width must be >= 1, got {width}", universe=universe, start=start
        )
    return ChannelRange.from_width(start, width).validate(universe)


@dataclass(frozen=True)
class OwnerRef:
    """
    Reference to an entity holding an exclusive claim on channels.

    Equality and ordering use (kind, id) so owner lists are stable
    regardless of the order entities were indexed in.

    Attributes:
        kind: Fixture or node
        id: Entity identifier
        name: Display name (not part of identity)
    """
    kind: EntityKind
    id: str
    name: str = field(default="", compare=False)

    @property
    def sort_key(self):
        return (self.kind.value, self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "id": self.id, "name": self.name}


# ============================================================
# Entities
# ============================================================

def _first(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among several key spellings."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


@dataclass
class Fixture:
    """
    Logical lighting device patched to a contiguous range.

    Attributes:
        id: Fixture identifier (None before the core assigns one)
        name: Display name
        universe: DMX universe (>= 1)
        start_address: First channel (1-512)
        width: Channel footprint (>= 1)
        node_id: Node the fixture is wired to, if any
        color: UI accent color
        fixture_type: Preset/profile name
    """
    id: Optional[str]
    name: str
    universe: int
    start_address: int
    width: int = 1
    node_id: Optional[str] = None
    color: Optional[str] = None
    fixture_type: Optional[str] = None

    @property
    def end_address(self) -> int:
        return self.start_address + self.width - 1

    def channel_range(self) -> ChannelRange:
        return ChannelRange.from_width(self.start_address, self.width)

    def validate(self) -> "Fixture":
        """Check universe and range; raises AddressValidationError."""
        validate_universe(self.universe)
        validate_range(self.start_address, self.width, self.universe)
        return self

    def owner_ref(self) -> OwnerRef:
        # Unsaved fixtures get a per-instance placeholder so they stay distinct
        owner_id = self.id if self.id is not None else f"unsaved-{id(self):x}"
        return OwnerRef(EntityKind.FIXTURE, str(owner_id), self.name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the core's fixture record shape."""
        result: Dict[str, Any] = {
            "name": self.name,
            "universe": self.universe,
            "start_channel": self.start_address,
            "channel_count": self.width,
        }
        if self.id is not None:
            result["fixture_id"] = self.id
        if self.node_id:
            result["node_id"] = self.node_id
        if self.color:
            result["color"] = self.color
        if self.fixture_type:
            result["type"] = self.fixture_type
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Fixture":
        """
        Parse a fixture record from the core.

        Accepts both the core spelling (fixture_id, start_channel,
        channel_count) and the UI spelling (id, startAddress, width).
        Numeric fields may arrive as strings and are converted here once.

        Raises:
            ValueError: If a numeric field cannot be converted
        """
        fixture_id = _first(data, "fixture_id", "id")
        width = _first(data, "channel_count", "width", "channelCount", default=1)
        return cls(
            id=str(fixture_id) if fixture_id is not None else None,
            name=data.get("name") or "",
            universe=int(_first(data, "universe", default=1)),
            start_address=int(_first(data, "start_channel", "start_address", "startAddress", default=1)),
            width=int(width),
            node_id=_first(data, "node_id", "nodeId"),
            color=data.get("color"),
            fixture_type=data.get("type"),
        )


@dataclass
class Node:
    """
    Physical output device bound to a channel range in one universe.

    Attributes:
        id: Node identifier
        name: Display name
        universe: DMX universe (>= 1)
        channel_start: First channel of the slice
        channel_end: Last channel of the slice, inclusive
        transport: WiFi, wired gateway or built-in
        status: Online/offline
        is_paired: Whether the operator has paired this node
    """
    id: str
    name: str
    universe: int = 1
    channel_start: int = 1
    channel_end: int = UNIVERSE_SIZE
    transport: NodeTransport = NodeTransport.WIFI
    status: NodeStatus = NodeStatus.OFFLINE
    is_paired: bool = False

    @property
    def width(self) -> int:
        return self.channel_end - self.channel_start + 1

    @property
    def is_builtin(self) -> bool:
        return self.transport == NodeTransport.BUILTIN

    @property
    def is_online(self) -> bool:
        return self.status == NodeStatus.ONLINE

    def channel_range(self) -> ChannelRange:
        return ChannelRange(self.channel_start, self.channel_end)

    def validate(self) -> "Node":
        validate_universe(self.universe)
        self.channel_range().validate(self.universe)
        return self

    def owner_ref(self) -> OwnerRef:
        return OwnerRef(EntityKind.NODE, str(self.id), self.name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the core's node pair/configure payload."""
        return {
            "node_id": self.id,
            "name": self.name,
            "universe": self.universe,
            "channel_start": self.channel_start,
            "channel_end": self.channel_end,
            "type": self.transport.value,
            "status": self.status.value,
            "is_paired": self.is_paired,
            "is_builtin": self.is_builtin,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        """
        Parse a node record from the core.

        Missing channel bounds default to the whole universe.
        The built-in flag wins over the reported type.
        """
        node_id = _first(data, "node_id", "id")
        if node_id is None:
            raise ValueError("Node record has no node_id")
        builtin = bool(data.get("is_builtin") or data.get("isBuiltIn"))
        raw_type = str(data.get("type") or "wifi").lower()
        if builtin:
            transport = NodeTransport.BUILTIN
        else:
            try:
                transport = NodeTransport(raw_type)
            except ValueError:
                # Wired variants (e.g. "hardwired", "uart") are gateways
                transport = NodeTransport.GATEWAY
        status = NodeStatus.ONLINE if data.get("status") == "online" else NodeStatus.OFFLINE
        return cls(
            id=str(node_id),
            name=data.get("name") or "",
            universe=int(_first(data, "universe", default=1)),
            channel_start=int(_first(data, "channel_start", "channelStart", default=1)),
            channel_end=int(_first(data, "channel_end", "channelEnd", default=UNIVERSE_SIZE)),
            transport=transport,
            status=status,
            is_paired=bool(data.get("is_paired")),
        )


@dataclass
class Group:
    """
    Named, non-exclusive set of channels used for bulk targeting.

    Groups are views, not claims: they never take part in conflict
    detection against fixtures or nodes.
    """
    id: str
    name: str
    channels: FrozenSet[int] = field(default_factory=frozenset)
    color: str = "#8b5cf6"
    universe: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_id": self.id,
            "name": self.name,
            "universe": self.universe,
            "channels": sorted(self.channels),
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Group":
        group_id = _first(data, "group_id", "id")
        if group_id is None:
            raise ValueError("Group record has no group_id")
        channels = frozenset(int(ch) for ch in (data.get("channels") or []))
        return cls(
            id=str(group_id),
            name=data.get("name") or "",
            channels=channels,
            color=data.get("color") or "#8b5cf6",
            universe=int(_first(data, "universe", default=1)),
        )


# ============================================================
# Channel value maps
# ============================================================

def normalize_channel_map(
    raw: Union[Dict[Any, Any], List[Any], None]
) -> Dict[int, int]:
    """
    Normalise a remote channel-value payload to {int channel: int value}.

    This is the only place string/number channel keys are reconciled.
    A list is read as a 512-slot universe array (index 0 is channel 1).
    Entries outside 1..512 are dropped; values are clamped to 0..255.
    """
    if raw is None:
        return {}

    if isinstance(raw, dict):
        items: Iterable = raw.items()
    else:
        items = enumerate(raw, start=1)

    result: Dict[int, int] = {}
    for key, value in items:
        try:
            channel = int(key)
            level = int(value)
        except (TypeError, ValueError):
            logger.warning(f"Skipping malformed channel entry {key!r}: {value!r}")
            continue
        if channel < MIN_ADDRESS or channel > UNIVERSE_SIZE:
            continue
        result[channel] = max(0, min(MAX_DMX_VALUE, level))
    return result
