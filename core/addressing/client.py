"""
Core API Client - HTTP Boundary to the Aether Core

Everything the addressing core reads or writes goes through this
client: entity lists, patch mutations, the active-channel poll and
channel/activation commits. Records are parsed into the dataclasses in
types.py on the way in, so channel keys are normalised exactly once.

Example:
    client = CoreApiClient("http://localhost:8891")
    fixtures = client.list_fixtures()
    values = client.fetch_universe(2)
    client.set_channels(2, {1: 255}, fade_ms=0)
"""

from typing import List, Dict, Optional, Any, Callable, TypeVar
import logging

import requests

from .types import (
    Fixture,
    Node,
    Group,
    normalize_channel_map,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BASE_URL = "http://localhost:8891"
DEFAULT_TIMEOUT = 3.0


class CoreApiError(Exception):
    """
    Base exception for failed calls to the core.

    Attributes:
        status_code: HTTP status, when a response was received
        payload: Decoded response body, when available
    """

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class CoreTimeoutError(CoreApiError):
    """Request to the core timed out."""
    pass


class CoreConnectionError(CoreApiError):
    """Could not reach the core."""
    pass


class CoreApiClient:
    """
    Thin requests-based client for the core REST API.

    Attributes:
        base_url: Core base URL, no trailing slash
        timeout: Per-request timeout in seconds
        session: Shared requests.Session
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, json: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=json, timeout=self.timeout)
        except requests.Timeout as e:
            raise CoreTimeoutError(f"{method} {path} timed out after {self.timeout}s") from e
        except requests.ConnectionError as e:
            raise CoreConnectionError(f"Could not reach core at {self.base_url}: {e}") from e
        except requests.RequestException as e:
            raise CoreApiError(f"{method} {path} failed: {e}") from e

        try:
            payload = response.json() if response.content else None
        except ValueError:
            payload = None

        if not response.ok:
            detail = payload.get("error") if isinstance(payload, dict) else None
            raise CoreApiError(
                f"{method} {path} returned {response.status_code}"
                + (f": {detail}" if detail else ""),
                status_code=response.status_code,
                payload=payload,
            )

        if isinstance(payload, dict) and payload.get("success") is False:
            raise CoreApiError(
                f"{method} {path} rejected: {payload.get('error', 'unknown error')}",
                status_code=response.status_code,
                payload=payload,
            )
        return payload

    def _parse_list(self, payload: Any, parse: Callable[[Dict[str, Any]], T], label: str) -> List[T]:
        if not isinstance(payload, list):
            raise CoreApiError(f"Expected a list of {label}s, got {type(payload).__name__}", payload=payload)
        items = []
        for record in payload:
            try:
                items.append(parse(record))
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed {label} record {record!r}: {e}")
        return items

    # ─────────────────────────────────────────────────────────
    # Entity lists
    # ─────────────────────────────────────────────────────────

    def list_fixtures(self) -> List[Fixture]:
        return self._parse_list(self._request("GET", "/api/fixtures"), Fixture.from_dict, "fixture")

    def list_nodes(self) -> List[Node]:
        return self._parse_list(self._request("GET", "/api/nodes"), Node.from_dict, "node")

    def list_groups(self) -> List[Group]:
        return self._parse_list(self._request("GET", "/api/groups"), Group.from_dict, "group")

    # ─────────────────────────────────────────────────────────
    # Fixtures
    # ─────────────────────────────────────────────────────────

    def create_fixture(self, fixture: Fixture) -> Dict[str, Any]:
        """Create a fixture; the core assigns the id."""
        data = fixture.to_dict()
        data.pop("fixture_id", None)
        return self._request("POST", "/api/fixtures", json=data) or {}

    def update_fixture(self, fixture: Fixture) -> Dict[str, Any]:
        if fixture.id is None:
            raise ValueError("Cannot update a fixture without an id")
        return self._request("PUT", f"/api/fixtures/{fixture.id}", json=fixture.to_dict()) or {}

    def delete_fixture(self, fixture_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/fixtures/{fixture_id}") or {}

    # ─────────────────────────────────────────────────────────
    # Nodes and groups
    # ─────────────────────────────────────────────────────────

    def _node_payload(self, node: Node) -> Dict[str, Any]:
        return {
            "name": node.name,
            "universe": node.universe,
            "channel_start": node.channel_start,
            "channel_end": node.channel_end,
        }

    def pair_node(self, node: Node) -> Dict[str, Any]:
        return self._request("POST", f"/api/nodes/{node.id}/pair", json=self._node_payload(node)) or {}

    def configure_node(self, node: Node) -> Dict[str, Any]:
        return self._request("POST", f"/api/nodes/{node.id}/configure", json=self._node_payload(node)) or {}

    def unpair_node(self, node_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/api/nodes/{node_id}/unpair") or {}

    def delete_node(self, node_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/nodes/{node_id}") or {}

    def delete_group(self, group_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/groups/{group_id}") or {}

    # ─────────────────────────────────────────────────────────
    # Live channel state
    # ─────────────────────────────────────────────────────────

    def fetch_universe(self, universe: int) -> Dict[int, int]:
        """Poll current values for a universe as {channel: value}."""
        payload = self._request("GET", f"/api/dmx/universe/{universe}")
        if isinstance(payload, dict) and "channels" in payload:
            payload = payload["channels"]
        return normalize_channel_map(payload)

    def set_channels(self, universe: int, values: Dict[int, int], fade_ms: int = 0) -> Dict[str, Any]:
        """Commit channel values (fader edit)."""
        return self._request("POST", "/api/dmx/set", json={
            "universe": universe,
            "channels": {str(ch): v for ch, v in values.items()},
            "fade_ms": fade_ms,
        }) or {}

    def activate(
        self,
        kind: str,
        content_id: str,
        target_channels: List[int],
        universe: int,
        fade_ms: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Play a scene or chase on a set of target channels.

        Args:
            kind: "scene" or "chase"
            content_id: Scene or chase id
            target_channels: Resolved channel list
            universe: Target universe
            fade_ms: Optional fade override
        """
        if kind not in ("scene", "chase"):
            raise ValueError(f"Unknown activation kind: {kind}")
        body: Dict[str, Any] = {
            "target_channels": list(target_channels),
            "universe": universe,
        }
        if fade_ms is not None:
            body["fade_ms"] = fade_ms
        return self._request("POST", f"/api/{kind}s/{content_id}/play", json=body) or {}
