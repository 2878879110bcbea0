"""
Generative analysis for NetGuard Monitor.

Optional second opinion from a Gemini model, called over the public
``generateContent`` REST endpoint with a JSON response type. The local
heuristic stays authoritative: with no API key the call is skipped, and
any failure (transport, HTTP status, malformed or off-schema output)
falls back to ``analyze_locally`` without surfacing an error.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Dict, List, Literal, Optional, Sequence

import httpx
from pydantic import BaseModel, Field, ValidationError

from netguard.config.constants import ProbeTexts
from netguard.config.settings import Settings
from netguard.monitoring.classifier import DEFAULT_PROTOCOL, analyze_locally
from netguard.monitoring.models import (
    AnalysisResult,
    AnalysisSource,
    ConnectionStatus,
    NodeHealth,
    NodeMetrics,
    NodeSnapshot,
    ProbeDiagnosis,
    SpeedSample,
)
from netguard.utils.logger import get_logger


logger = get_logger("Enrichment")


PANEL_PROMPT = """You are a network analyst looking for deliberate bandwidth throttling
of proxy nodes by a censoring firewall.

Input data (realtime node stats, speeds in Kbps):
{data}

Rules for telling idle users from throttled users:
- Users > 0 and speed close to 0: likely idle.
- Users > 3 and speed < 100 Kbps: likely throttled (critical).
- Speed / users < 10 Kbps: speed limit active (critical).

Return strictly JSON, without markdown:
{{
  "nodes": [
    {{"name": "Node Name", "protocol": "Xray", "onlineUsers": 0,
      "currentSpeedKbps": 0, "status": "healthy" | "warning" | "critical",
      "message": "Short risk assessment"}}
  ],
  "globalAnalysis": "Overall fleet status and risk level.",
  "recommendation": "Actionable next steps."
}}"""

PROBE_PROMPT = """You are a network security expert analysing firewall throttling patterns
against proxy traffic. Firewalls are known to cap suspicious connections
at roughly 40 to 100 Kbps.

Current connection status: {status}

Recent speed test data (last {count} points):
{data}

Look for signs of active probing or speed limiting. Return strictly JSON,
without markdown:
{{"status": "safe" | "warning" | "critical", "message": "Short analysis.",
  "recommendation": "Technical advice (change port, rotate IP, use CDN)."}}"""


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class EnrichedNode(BaseModel):
    name: str
    protocol: str = DEFAULT_PROTOCOL
    online_users: int = Field(default=0, ge=0, alias="onlineUsers")
    current_speed_kbps: int = Field(default=0, ge=0, alias="currentSpeedKbps")
    status: NodeHealth
    message: str = ""


class EnrichedAnalysis(BaseModel):
    nodes: List[EnrichedNode]
    global_analysis: str = Field(alias="globalAnalysis")
    recommendation: str


class ProbeVerdict(BaseModel):
    status: Literal["safe", "warning", "critical"]
    message: str
    recommendation: str


class EnrichmentError(Exception):
    """The model call failed or returned an unusable answer."""


# ============================================================================
# ANALYZER
# ============================================================================

class GeminiAnalyzer:
    """
    Optional model-backed analysis with local fallback.

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

    @property
    def enabled(self) -> bool:
        return self.settings.enrichment.enabled

    async def _generate(self, prompt: str) -> str:
        """
        Call ``generateContent`` and return the text of the first candidate.

        Raises:
            EnrichmentError: Transport failure, HTTP error or empty answer
        """
        config = self.settings.enrichment
        url = f"{config.endpoint.rstrip('/')}/models/{config.model}:generateContent"
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(config.request_timeout),
                transport=self._transport,
            ) as client:
                response = await client.post(
                    url,
                    params={"key": config.api_key.get_secret_value().strip()},
                    json=body,
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise EnrichmentError(f"request failed: {e}") from e

        try:
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError) as e:
            raise EnrichmentError("unexpected response shape") from e

        if not text.strip():
            raise EnrichmentError("empty response")
        return text

    @staticmethod
    def _strip_fence(text: str) -> str:
        text = text.strip()
        if text.startswith("```"):
            text = text.split("\n", 1)[1] if "\n" in text else ""
            text = text.rsplit("```", 1)[0]
        return text.strip()

    async def analyze_panel(self, metrics: Sequence[NodeMetrics]) -> AnalysisResult:
        """
        Classify the fleet, using the model when configured.

        Never raises; returns the local analysis on any failure.
        """
        metrics = list(metrics)
        if not self.enabled:
            return analyze_locally(metrics)

        data = json.dumps(
            [
                {
                    "name": m.name,
                    "users": m.users,
                    "speedKbps": m.speed_kbps,
                    "isConnected": m.is_connected,
                }
                for m in metrics
            ],
            indent=2,
        )

        try:
            text = await self._generate(PANEL_PROMPT.format(data=data))
            parsed = EnrichedAnalysis.model_validate_json(self._strip_fence(text))
        except (EnrichmentError, ValidationError) as e:
            logger.warning(f"[Enrichment] Panel analysis failed, using local heuristic: {e}")
            return analyze_locally(metrics)

        return self._merge(parsed, metrics)

    @staticmethod
    def _merge(parsed: EnrichedAnalysis, metrics: List[NodeMetrics]) -> AnalysisResult:
        """Carry connectivity over from the input; unknown names count as connected."""
        connectivity: Dict[str, bool] = {m.name: m.is_connected for m in metrics}
        nodes = tuple(
            NodeSnapshot(
                name=node.name,
                protocol=node.protocol,
                online_users=node.online_users,
                current_speed_kbps=node.current_speed_kbps,
                average_speed_kbps=0,
                status=node.status,
                message=node.message,
                is_connected=connectivity.get(node.name, True),
            )
            for node in parsed.nodes
        )
        return AnalysisResult(
            nodes=nodes,
            global_analysis=parsed.global_analysis,
            recommendation=parsed.recommendation,
            source=AnalysisSource.ENRICHMENT,
        )

    async def diagnose_probe_history(
        self,
        samples: Sequence[SpeedSample],
        status: ConnectionStatus,
    ) -> ProbeDiagnosis:
        """
        Ask the model whether a probe history looks throttled.

        Only the last 10 samples are sent. Returns fixed fallback texts
        when unconfigured or on failure.
        """
        if not self.enabled:
            return ProbeDiagnosis(
                status="warning",
                message=ProbeTexts.NOT_CONFIGURED_MESSAGE,
                recommendation=ProbeTexts.NOT_CONFIGURED_RECOMMENDATION,
            )

        recent = list(samples)[-10:]
        data = "\n".join(
            f"Time: {datetime.fromtimestamp(s.timestamp).strftime('%H:%M:%S')}, "
            f"Speed: {s.download_speed_kbps} kbps, Latency: {s.latency_ms}ms"
            for s in recent
        )
        prompt = PROBE_PROMPT.format(
            status=ConnectionStatus(status).value,
            count=len(recent),
            data=data,
        )

        try:
            text = await self._generate(prompt)
            verdict = ProbeVerdict.model_validate_json(self._strip_fence(text))
        except (EnrichmentError, ValidationError) as e:
            logger.warning(f"[Enrichment] Probe diagnosis failed: {e}")
            return ProbeDiagnosis(
                status="warning",
                message=ProbeTexts.UNAVAILABLE_MESSAGE,
                recommendation=ProbeTexts.UNAVAILABLE_RECOMMENDATION,
            )

        return ProbeDiagnosis(**verdict.model_dump())
