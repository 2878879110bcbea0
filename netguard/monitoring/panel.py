"""
============================================================================
NETGUARD MONITOR - PANEL API CLIENT
============================================================================
Reads the node roster and the realtime bandwidth counters from the
node management panel and reduces them to one NodeMetrics per node.

Both endpoints are bearer-authenticated GETs and may answer with either
``{"response": [...]}`` or a bare JSON array. Counters are bytes per
second; they are converted to kilobits per second here.

When a direct request fails at the transport level the client retries
once through the configured relay, and on success switches the shared
settings to relay mode (``settings.panel.use_relay``; this client is its
only writer).
============================================================================
"""

import asyncio
import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from netguard.config.settings import Settings
from netguard.exceptions import (
    ConfigurationError,
    PanelAuthError,
    PanelException,
    PanelHTTPError,
    PanelNetworkError,
    PanelNotFoundError,
    PanelServerError,
    PayloadParseError,
)
from netguard.monitoring.models import NodeMetrics
from netguard.utils.helpers import StringHelper, bytes_per_second_to_kbps
from netguard.utils.logger import get_logger, log_execution_time


logger = get_logger("PanelClient")

_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)
_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


@dataclass
class PanelPayload:
    """Raw roster and stats entries as returned by the panel."""

    nodes: List[Dict[str, Any]] = field(default_factory=list)
    stats: List[Dict[str, Any]] = field(default_factory=list)


# ============================================================================
# PAYLOAD HELPERS
# ============================================================================

def normalize_base_url(url: str) -> str:
    """Trim, drop one trailing slash and default the scheme to https."""
    url = url.strip()
    if url.endswith("/"):
        url = url[:-1]
    if url and not _SCHEME.match(url):
        url = f"https://{url}"
    return url


def clean_token(token: str) -> str:
    """Remove a pasted ``Bearer`` prefix from the token."""
    return _BEARER_PREFIX.sub("", token.strip())


def unwrap(body: Any) -> List[Dict[str, Any]]:
    """Accept a wrapped ``{"response": [...]}`` body or a bare array."""
    if isinstance(body, dict) and "response" in body:
        body = body["response"]
    if isinstance(body, list):
        return [item for item in body if isinstance(item, dict)]
    return []


def _first(entry: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = entry.get(key)
        if value:
            return value
    return default


def _number(value: Any, label: str) -> float:
    """Coerce a panel counter; anything non-numeric counts as 0."""
    if value is None or value == "":
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = math.nan
    if not math.isfinite(number):
        logger.warning(f"[Panel] Non-numeric {label} {value!r}; using 0")
        return 0
    return number


def _speed_bytes(stat: Optional[Dict[str, Any]]) -> float:
    if not stat:
        return 0
    total = _number(stat.get("totalSpeedBps"), "totalSpeedBps")
    if total:
        return total
    return _number(stat.get("incoming"), "incoming") + _number(stat.get("outgoing"), "outgoing")


def simplify_payload(payload: PanelPayload) -> List[NodeMetrics]:
    """
    Join roster and stats entries into classifier input.

    Stats are matched by ``nodeUuid == uuid``; a node without stats has
    zero speed. Roster order is preserved.
    """
    stats_by_uuid = {
        stat.get("nodeUuid"): stat for stat in payload.stats if stat.get("nodeUuid")
    }

    metrics: List[NodeMetrics] = []
    for node in payload.nodes:
        stat = stats_by_uuid.get(node.get("uuid"))
        metrics.append(
            NodeMetrics(
                name=str(node.get("name") or node.get("uuid") or "Unknown"),
                users=max(0, int(_number(_first(node, "usersOnline", "online_users"), "usersOnline"))),
                speed_kbps=bytes_per_second_to_kbps(_speed_bytes(stat)),
                is_connected=bool(_first(node, "isConnected", "connected", default=False)),
            )
        )
    return metrics


# ============================================================================
# PANEL CLIENT
# ============================================================================

class PanelClient:
    """
    Async client for the two panel endpoints.

    Args:
        settings: Shared application settings
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._transport = transport

    def validate(self) -> None:
        """
        Check that an endpoint and a credential are configured.

        Raises:
            ConfigurationError: Either value is missing
        """
        panel = self.settings.panel
        if not panel.api_url:
            raise ConfigurationError(
                "Panel Domain URL is required.",
                config_key="PANEL_API_URL",
                title="Configuration Missing",
                tip="Set the panel URL (e.g. https://panel.example.com).",
            )
        if not panel.api_token.get_secret_value().strip():
            raise ConfigurationError(
                "Please provide the Admin API Token.",
                config_key="PANEL_API_TOKEN",
                title="Authentication Required",
                tip="An API Token is required to fetch node status. Check your panel settings.",
            )

    def _headers(self) -> Dict[str, str]:
        token = clean_token(self.settings.panel.api_token.get_secret_value())
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {token}",
        }

    def _relay(self, url: str) -> str:
        return StringHelper.relay_url(self.settings.panel.relay_url, url)

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        """
        GET ``url`` directly or through the relay.

        Raises:
            httpx.TransportError: Neither route reached the server
        """
        panel = self.settings.panel
        target = StringHelper.cache_bust(url)

        if panel.use_relay and panel.relay_url:
            return await client.get(self._relay(target), headers=self._headers())

        try:
            return await client.get(target, headers=self._headers())
        except httpx.TransportError as e:
            if not panel.relay_url:
                raise
            logger.info(f"[Panel] Direct request failed ({e}); retrying through relay")

        response = await client.get(self._relay(target), headers=self._headers())
        if not panel.use_relay:
            panel.use_relay = True
            logger.warning("[Panel] Relay mode enabled after direct request failure")
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> List[Dict[str, Any]]:
        try:
            return unwrap(response.json())
        except (json.JSONDecodeError, ValueError) as e:
            raise PayloadParseError(
                f"Malformed JSON from {response.request.url.path}",
                status_code=response.status_code,
                cause=e,
            )

    @staticmethod
    def _raise_for_status(response: httpx.Response, url: str) -> None:
        status = response.status_code
        if response.is_success:
            return
        if status in (401, 403):
            raise PanelAuthError(url=url, status_code=status)
        if status == 404:
            raise PanelNotFoundError(url=url, status_code=status)
        if status >= 500:
            raise PanelServerError(url=url, status_code=status)
        raise PanelHTTPError(status, url=url)

    async def _fetch_nodes(self, client: httpx.AsyncClient, url: str) -> List[Dict[str, Any]]:
        try:
            response = await self._get(client, url)
        except httpx.TransportError as e:
            raise PanelNetworkError(url=url, cause=e)

        self._raise_for_status(response, url)

        try:
            return self._decode(response)
        except PayloadParseError as e:
            logger.warning(f"[Panel] {e.message}; treating roster as empty")
            return []

    async def _fetch_stats(self, client: httpx.AsyncClient, url: str) -> List[Dict[str, Any]]:
        try:
            response = await self._get(client, url)
            if not response.is_success:
                logger.warning(f"[Panel] Stats endpoint returned {response.status_code}")
                return []
            return self._decode(response)
        except PanelException as e:
            logger.warning(f"[Panel] {e.message}; treating stats as empty")
        except httpx.HTTPError as e:
            logger.warning(f"[Panel] Stats request failed: {e}")
        return []

    @log_execution_time
    async def fetch(self) -> PanelPayload:
        """
        Fetch roster and realtime stats concurrently.

        A failed stats request degrades to empty stats. A failed roster
        request is classified and raised.

        Raises:
            ConfigurationError: Endpoint or credential missing (no I/O done)
            PanelException: The roster request failed
        """
        self.validate()

        panel = self.settings.panel
        base = normalize_base_url(panel.api_url)
        nodes_url = f"{base}{panel.nodes_path}"
        stats_url = f"{base}{panel.stats_path}"

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(panel.request_timeout),
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            nodes, stats = await asyncio.gather(
                self._fetch_nodes(client, nodes_url),
                self._fetch_stats(client, stats_url),
                return_exceptions=True,
            )

        if isinstance(nodes, BaseException):
            raise nodes
        if isinstance(stats, BaseException):
            logger.warning(f"[Panel] Stats request failed: {stats}")
            stats = []

        logger.debug(f"[Panel] Fetched {len(nodes)} nodes, {len(stats)} stats entries")
        return PanelPayload(nodes=nodes, stats=stats)

    async def fetch_metrics(self) -> List[NodeMetrics]:
        """Fetch and simplify in one call."""
        return simplify_payload(await self.fetch())
