"""
Monitoring Data Models for NetGuard Monitor

Immutable value types passed between the probe engine, the classifier,
the history tracker, the scheduler and the bot. A scan never mutates a
previous result; it produces a new one and swaps it into the
``AnalysisSnapshot`` cell.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class NodeHealth(str, Enum):
    """Verdict for a single node."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        """Sort key: critical first."""
        return {"critical": 2, "warning": 1, "healthy": 0}[self.value]


class ConnectionStatus(str, Enum):
    """Verdict for a local bandwidth probe."""

    IDLE = "idle"
    TESTING = "testing"
    GOOD = "good"
    THROTTLED = "throttled"
    OFFLINE = "offline"
    UNSTABLE = "unstable"


class AnalysisSource(str, Enum):
    LOCAL = "local"
    ENRICHMENT = "enrichment"


@dataclass(frozen=True)
class SpeedSample:
    """
    One probe measurement.

    Attributes:
        timestamp: Epoch seconds when the probe finished
        download_speed_kbps: Measured throughput in kilobits per second
        latency_ms: Elapsed or mean request time in milliseconds
        jitter_ms: Standard deviation of request times (stability probe only)
    """

    timestamp: float
    download_speed_kbps: int
    latency_ms: int
    jitter_ms: Optional[int] = None

    @classmethod
    def failed(cls, with_jitter: bool = False) -> "SpeedSample":
        """Zero sample recorded when the probe could not complete."""
        return cls(
            timestamp=time.time(),
            download_speed_kbps=0,
            latency_ms=0,
            jitter_ms=0 if with_jitter else None,
        )


@dataclass(frozen=True)
class NodeMetrics:
    """Per-node input to the classifier, simplified from the panel payload."""

    name: str
    users: int
    speed_kbps: int
    is_connected: bool
    protocol: str = "Unknown"


@dataclass(frozen=True)
class NodeSnapshot:
    """
    Classified state of one node at one scan.

    ``average_speed_kbps`` is 0 until the history tracker fills it in.
    """

    name: str
    protocol: str
    online_users: int
    current_speed_kbps: int
    average_speed_kbps: int
    status: NodeHealth
    message: str
    is_connected: bool

    def __post_init__(self) -> None:
        if self.online_users < 0 or self.current_speed_kbps < 0 or self.average_speed_kbps < 0:
            raise ValueError(f"Negative metric for node {self.name!r}")


@dataclass(frozen=True)
class AnalysisResult:
    """
    Outcome of one scan.

    ``nodes`` keeps the order the panel returned them in.
    """

    nodes: Tuple[NodeSnapshot, ...]
    global_analysis: str
    recommendation: str
    source: AnalysisSource = AnalysisSource.LOCAL

    @property
    def critical_nodes(self) -> Tuple[NodeSnapshot, ...]:
        return tuple(n for n in self.nodes if n.status == NodeHealth.CRITICAL)

    @property
    def warning_nodes(self) -> Tuple[NodeSnapshot, ...]:
        return tuple(n for n in self.nodes if n.status == NodeHealth.WARNING)

    @property
    def total_users(self) -> int:
        return sum(n.online_users for n in self.nodes)

    @property
    def active_nodes(self) -> int:
        """Nodes with at least one online user."""
        return sum(1 for n in self.nodes if n.online_users > 0)

    def find(self, name: str) -> Optional[NodeSnapshot]:
        """Return the node with the given name, if present."""
        for node in self.nodes:
            if node.name == name:
                return node
        return None


@dataclass(frozen=True)
class ScanErrorRecord:
    """The single user-visible error produced by a failed scan."""

    title: str
    message: str
    tip: str = ""


@dataclass(frozen=True)
class ProbeDiagnosis:
    """Diagnosis of a probe history. ``status`` is safe, warning or critical."""

    status: str
    message: str
    recommendation: str


@dataclass
class AnalysisSnapshot:
    """
    Latest scan outcome shared between the scheduler and the bot.

    Written only by the scan scheduler; read by the bot gateway. Every
    write replaces whole immutable values, so a reader never sees a
    half-updated result.
    """

    result: Optional[AnalysisResult] = None
    updated_at: Optional[float] = None
    error: Optional[ScanErrorRecord] = None
    scans: int = field(default=0)

    def publish(self, result: AnalysisResult, now: Optional[float] = None) -> None:
        """Replace the current result and clear the last error."""
        self.result = result
        self.updated_at = now if now is not None else time.time()
        self.error = None
        self.scans += 1

    def set_error(self, record: ScanErrorRecord) -> None:
        """Record a failed scan. The previous result stays readable."""
        self.error = record

    @property
    def has_data(self) -> bool:
        return self.result is not None
