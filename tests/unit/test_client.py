"""
Unit Tests for the Core API Client

Tests for:
- Record parsing for fixtures, nodes and groups
- Error mapping (HTTP status, success=false, timeouts, connection)
- Channel poll and commit payloads
- Scene/chase activation
"""

import pytest
from unittest.mock import Mock

import requests

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from core.addressing.types import Fixture, Node, NodeTransport
from core.addressing.client import (
    CoreApiClient,
    CoreApiError,
    CoreConnectionError,
    CoreTimeoutError,
)


def make_response(payload=None, status=200):
    response = Mock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.content = b"{}" if payload is not None else b""
    response.json.return_value = payload
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def client(session):
    return CoreApiClient("http://core:8891/", timeout=1.5, session=session)


class TestLists:
    """Tests for entity list parsing."""

    def test_list_fixtures(self, client, session):
        session.request.return_value = make_response([
            {"fixture_id": "par_1", "name": "PAR 1", "universe": 1,
             "start_channel": 1, "channel_count": 4},
        ])
        fixtures = client.list_fixtures()
        assert fixtures[0].id == "par_1"
        assert fixtures[0].width == 4
        session.request.assert_called_once_with(
            "GET", "http://core:8891/api/fixtures", json=None, timeout=1.5
        )

    def test_malformed_records_skipped(self, client, session):
        session.request.return_value = make_response([
            {"node_id": "pulse-01", "type": "wifi", "is_paired": True},
            {"name": "no id"},
            {"node_id": "bad", "universe": "x"},
        ])
        nodes = client.list_nodes()
        assert [n.id for n in nodes] == ["pulse-01"]

    def test_non_list_payload_raises(self, client, session):
        session.request.return_value = make_response({"error": "oops"})
        with pytest.raises(CoreApiError):
            client.list_groups()


class TestErrors:
    """Tests for error mapping."""

    def test_http_error(self, client, session):
        session.request.return_value = make_response({"error": "Fixture not found"}, status=404)
        with pytest.raises(CoreApiError) as exc:
            client.delete_fixture("missing")
        assert exc.value.status_code == 404
        assert "Fixture not found" in str(exc.value)

    def test_success_false(self, client, session):
        session.request.return_value = make_response({"success": False, "error": "busy"})
        with pytest.raises(CoreApiError, match="busy"):
            client.set_channels(1, {1: 255})

    def test_timeout(self, client, session):
        session.request.side_effect = requests.Timeout()
        with pytest.raises(CoreTimeoutError):
            client.fetch_universe(1)

    def test_connection_error(self, client, session):
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(CoreConnectionError):
            client.list_fixtures()

    def test_error_hierarchy(self):
        assert issubclass(CoreTimeoutError, CoreApiError)
        assert issubclass(CoreConnectionError, CoreApiError)


class TestMutations:
    """Tests for patch mutations."""

    def test_create_fixture_drops_id(self, client, session):
        session.request.return_value = make_response({"success": True})
        client.create_fixture(Fixture(id=None, name="PAR", universe=1, start_address=5, width=4))
        _, kwargs = session.request.call_args
        assert "fixture_id" not in kwargs["json"]
        assert kwargs["json"]["start_channel"] == 5

    def test_update_requires_id(self, client):
        with pytest.raises(ValueError):
            client.update_fixture(Fixture(id=None, name="PAR", universe=1, start_address=1))

    def test_pair_node(self, client, session):
        session.request.return_value = make_response({"success": True})
        node = Node(id="pulse-01", name="Stage L", universe=2, channel_start=1,
                    channel_end=256, transport=NodeTransport.WIFI)
        client.pair_node(node)
        args, kwargs = session.request.call_args
        assert args == ("POST", "http://core:8891/api/nodes/pulse-01/pair")
        assert kwargs["json"] == {
            "name": "Stage L", "universe": 2, "channel_start": 1, "channel_end": 256
        }

    def test_delete_group(self, client, session):
        session.request.return_value = make_response({"success": True})
        client.delete_group("front")
        args, _ = session.request.call_args
        assert args == ("DELETE", "http://core:8891/api/groups/front")

    def test_empty_body_is_ok(self, client, session):
        session.request.return_value = make_response(None, status=204)
        assert client.unpair_node("pulse-01") == {}


class TestLiveState:
    """Tests for poll, commit and activation."""

    def test_fetch_universe_unwraps_channels(self, client, session):
        values = [0] * 512
        values[0] = 255
        session.request.return_value = make_response({"universe": 2, "channels": values})
        result = client.fetch_universe(2)
        assert result[1] == 255
        assert result[512] == 0

    def test_set_channels_stringifies_keys(self, client, session):
        session.request.return_value = make_response({"success": True})
        client.set_channels(3, {1: 255, 12: 0}, fade_ms=200)
        _, kwargs = session.request.call_args
        assert kwargs["json"] == {
            "universe": 3, "channels": {"1": 255, "12": 0}, "fade_ms": 200
        }

    def test_activate_scene(self, client, session):
        session.request.return_value = make_response({"success": True})
        client.activate("scene", "warm", [10, 11], universe=1)
        args, kwargs = session.request.call_args
        assert args[1] == "http://core:8891/api/scenes/warm/play"
        assert kwargs["json"] == {"target_channels": [10, 11], "universe": 1}

    def test_activate_chase_with_fade(self, client, session):
        session.request.return_value = make_response({"success": True})
        client.activate("chase", "strobe", [1], universe=2, fade_ms=0)
        args, kwargs = session.request.call_args
        assert args[1].endswith("/api/chases/strobe/play")
        assert kwargs["json"]["fade_ms"] == 0

    def test_unknown_activation_kind(self, client):
        with pytest.raises(ValueError):
            client.activate("look", "x", [1], universe=1)
