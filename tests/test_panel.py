from __future__ import annotations

from typing import Any, Dict, List

import httpx
import pytest

from conftest import make_settings
from netguard.config.constants import MessageTemplates
from netguard.exceptions import (
    ConfigurationError,
    PanelAuthError,
    PanelHTTPError,
    PanelNetworkError,
    PanelNotFoundError,
    PanelServerError,
)
from netguard.monitoring.classifier import analyze_locally
from netguard.monitoring.models import NodeHealth
from netguard.monitoring.panel import (
    PanelClient,
    PanelPayload,
    clean_token,
    normalize_base_url,
    simplify_payload,
    unwrap,
)

NODES_PATH = "/api/nodes"
STATS_PATH = "/api/bandwidth-stats/nodes/realtime"

ROSTER = {"response": [{"uuid": "u1", "name": "A", "usersOnline": 4, "isConnected": True}]}
STATS = {"response": [{"nodeUuid": "u1", "totalSpeedBps": 1000}]}


def panel_transport(routes: Dict[str, Any], seen: List[httpx.Request]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        route = routes[request.url.path]
        if isinstance(route, httpx.Response):
            return route
        if isinstance(route, Exception):
            raise route
        return httpx.Response(200, json=route)

    return httpx.MockTransport(handler)


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "raw, expected",
    [
        ("panel.example.com", "https://panel.example.com"),
        ("  https://panel.example.com/ ", "https://panel.example.com"),
        ("http://10.0.0.1:3000", "http://10.0.0.1:3000"),
    ],
)
def test_normalize_base_url(raw: str, expected: str) -> None:
    assert normalize_base_url(raw) == expected


def test_clean_token_drops_pasted_bearer_prefix() -> None:
    assert clean_token("Bearer abc.def") == "abc.def"
    assert clean_token("  abc.def ") == "abc.def"


def test_unwrap_accepts_wrapped_and_bare_bodies() -> None:
    assert unwrap({"response": [{"a": 1}]}) == [{"a": 1}]
    assert unwrap([{"a": 1}, "junk"]) == [{"a": 1}]
    assert unwrap({"error": "nope"}) == []


def test_simplify_payload_joins_stats_and_alternate_keys() -> None:
    payload = PanelPayload(
        nodes=[
            {"uuid": "u1", "name": "A", "online_users": 3, "connected": True},
            {"uuid": "u2", "name": "B", "usersOnline": 0, "isConnected": False},
        ],
        stats=[{"nodeUuid": "u1", "incoming": 600, "outgoing": 400}],
    )

    a, b = simplify_payload(payload)

    assert (a.name, a.users, a.speed_kbps, a.is_connected) == ("A", 3, 8, True)
    assert (b.name, b.users, b.speed_kbps, b.is_connected) == ("B", 0, 0, False)


def test_simplify_payload_zeroes_non_numeric_counters() -> None:
    payload = PanelPayload(
        nodes=[
            {"uuid": "u1", "name": "Broken", "usersOnline": "n/a", "isConnected": True},
            {"uuid": "u2", "name": "Fine", "usersOnline": 4, "isConnected": True},
            {"uuid": "u3", "name": "Text", "usersOnline": "7", "isConnected": True},
        ],
        stats=[
            {"nodeUuid": "u1", "totalSpeedBps": "fast", "incoming": [1], "outgoing": "x"},
            {"nodeUuid": "u2", "totalSpeedBps": 1000},
            {"nodeUuid": "u3", "totalSpeedBps": "inf", "incoming": "500", "outgoing": 500},
        ],
    )

    broken, fine, text = simplify_payload(payload)

    assert (broken.users, broken.speed_kbps) == (0, 0)
    assert (fine.users, fine.speed_kbps) == (4, 8)
    assert (text.users, text.speed_kbps) == (7, 8)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_end_to_end_slow_node_is_flagged_as_throttled() -> None:
    seen: List[httpx.Request] = []
    client = PanelClient(make_settings(), transport=panel_transport({NODES_PATH: ROSTER, STATS_PATH: STATS}, seen))

    result = analyze_locally(await client.fetch_metrics())

    node = result.nodes[0]
    assert node.current_speed_kbps == 8
    assert node.status == NodeHealth.CRITICAL
    assert node.message == MessageTemplates.NODE_THROTTLED
    assert {r.url.path for r in seen} == {NODES_PATH, STATS_PATH}


@pytest.mark.asyncio
async def test_one_malformed_node_does_not_sink_the_fleet() -> None:
    seen: List[httpx.Request] = []
    roster = {
        "response": [
            {"uuid": "u0", "name": "Odd", "usersOnline": "n/a", "isConnected": True},
            ROSTER["response"][0],
        ]
    }
    client = PanelClient(make_settings(), transport=panel_transport({NODES_PATH: roster, STATS_PATH: STATS}, seen))

    result = analyze_locally(await client.fetch_metrics())

    odd, a = result.nodes
    assert (odd.name, odd.online_users) == ("Odd", 0)
    assert (a.name, a.online_users, a.status) == ("A", 4, NodeHealth.CRITICAL)


@pytest.mark.asyncio
async def test_requests_carry_bearer_token_and_cache_buster() -> None:
    seen: List[httpx.Request] = []
    settings = make_settings(api_url="panel.example.com/", api_token="Bearer secret-token")
    client = PanelClient(settings, transport=panel_transport({NODES_PATH: ROSTER, STATS_PATH: STATS}, seen))

    await client.fetch()

    for request in seen:
        assert request.url.host == "panel.example.com"
        assert request.url.scheme == "https"
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert "t" in request.url.params


@pytest.mark.asyncio
async def test_missing_url_is_reported_without_io() -> None:
    seen: List[httpx.Request] = []
    client = PanelClient(make_settings(api_url=""), transport=panel_transport({}, seen))

    with pytest.raises(ConfigurationError) as exc:
        await client.fetch()

    assert exc.value.title == "Configuration Missing"
    assert seen == []


@pytest.mark.asyncio
async def test_missing_token_is_reported_without_io() -> None:
    seen: List[httpx.Request] = []
    client = PanelClient(make_settings(api_token=" "), transport=panel_transport({}, seen))

    with pytest.raises(ConfigurationError) as exc:
        await client.fetch()

    assert exc.value.title == "Authentication Required"
    assert seen == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error",
    [
        (401, PanelAuthError),
        (403, PanelAuthError),
        (404, PanelNotFoundError),
        (500, PanelServerError),
        (503, PanelServerError),
        (418, PanelHTTPError),
    ],
)
async def test_roster_status_codes_are_classified(status: int, error: type) -> None:
    seen: List[httpx.Request] = []
    routes = {NODES_PATH: httpx.Response(status), STATS_PATH: STATS}
    client = PanelClient(make_settings(), transport=panel_transport(routes, seen))

    with pytest.raises(error) as exc:
        await client.fetch()

    if status == 418:
        assert exc.value.message == "HTTP_418"


@pytest.mark.asyncio
async def test_stats_failure_degrades_to_zero_speed() -> None:
    seen: List[httpx.Request] = []
    routes = {NODES_PATH: ROSTER, STATS_PATH: httpx.Response(500)}
    client = PanelClient(make_settings(), transport=panel_transport(routes, seen))

    (metrics,) = await client.fetch_metrics()

    assert metrics.users == 4
    assert metrics.speed_kbps == 0


@pytest.mark.asyncio
async def test_malformed_roster_is_treated_as_empty() -> None:
    seen: List[httpx.Request] = []
    routes = {NODES_PATH: httpx.Response(200, text="<html>oops</html>"), STATS_PATH: STATS}
    client = PanelClient(make_settings(), transport=panel_transport(routes, seen))

    payload = await client.fetch()

    assert payload.nodes == []
    assert payload.stats == STATS["response"]


@pytest.mark.asyncio
async def test_transport_failure_without_relay_is_a_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("blocked", request=request)

    client = PanelClient(make_settings(relay_url=""), transport=httpx.MockTransport(handler))

    with pytest.raises(PanelNetworkError) as exc:
        await client.fetch()
    assert exc.value.title == "Network or CORS Error"


@pytest.mark.asyncio
async def test_direct_failure_falls_back_to_relay_and_sticks() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.host == "panel.example.com":
            raise httpx.ConnectError("blocked", request=request)
        target = request.url.query.decode()
        body = STATS if "bandwidth-stats" in target else ROSTER
        return httpx.Response(200, json=body)

    settings = make_settings()
    client = PanelClient(settings, transport=httpx.MockTransport(handler))

    (metrics,) = await client.fetch_metrics()

    assert metrics.speed_kbps == 8
    assert settings.panel.use_relay is True

    seen.clear()
    await client.fetch()
    assert {r.url.host for r in seen} == {"relay.example.com"}
