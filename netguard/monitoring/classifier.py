"""
Node Classifier for NetGuard Monitor

Turns per-node metrics into a health verdict with an ordered decision
table. The first matching row wins, so row order is part of the
behaviour: idle checks (rows 3 and 5) bracket the per-user throttle
check so that a handful of users on a near-silent node is reported as
throttled while a few idle users on a quiet node stay healthy.

    #  condition                                   verdict
    1  not connected                               critical  offline
    2  users == 0                                  healthy   idle
    3  speed < 100 and users > 5                   warning   ghost connections
    4  users >= 3 and speed/users < 20             critical  speed limit
    5  speed < 100                                 healthy   passive traffic
    6  users >= 10 and speed/users < 50            warning   congestion
    7  otherwise                                   healthy   active

All speeds are kilobits per second.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Tuple

from netguard.config.constants import MessageTemplates, Thresholds
from netguard.monitoring.models import (
    AnalysisResult,
    AnalysisSource,
    NodeHealth,
    NodeMetrics,
    NodeSnapshot,
)

DEFAULT_PROTOCOL = "VLESS/Shadowsocks"


@dataclass(frozen=True)
class _Row:
    matches: Callable[[bool, int, int], bool]
    status: NodeHealth
    message: Callable[[int, int], str]


def _per_user(speed: int, users: int) -> float:
    return speed / users if users > 0 else 0.0


DECISION_TABLE: Tuple[_Row, ...] = (
    _Row(
        lambda connected, users, speed: not connected,
        NodeHealth.CRITICAL,
        lambda users, speed: MessageTemplates.NODE_OFFLINE,
    ),
    _Row(
        lambda connected, users, speed: users == 0,
        NodeHealth.HEALTHY,
        lambda users, speed: MessageTemplates.NODE_IDLE,
    ),
    _Row(
        lambda connected, users, speed: (
            speed < Thresholds.IDLE_CEILING_KBPS
            and users > Thresholds.GHOST_USER_THRESHOLD
        ),
        NodeHealth.WARNING,
        lambda users, speed: MessageTemplates.NODE_GHOST.format(users=users),
    ),
    _Row(
        lambda connected, users, speed: (
            users >= Thresholds.THROTTLE_MIN_USERS
            and _per_user(speed, users) < Thresholds.THROTTLE_KBPS_PER_USER
        ),
        NodeHealth.CRITICAL,
        lambda users, speed: MessageTemplates.NODE_THROTTLED,
    ),
    _Row(
        lambda connected, users, speed: speed < Thresholds.IDLE_CEILING_KBPS,
        NodeHealth.HEALTHY,
        lambda users, speed: MessageTemplates.NODE_PASSIVE,
    ),
    _Row(
        lambda connected, users, speed: (
            users >= Thresholds.CONGESTION_MIN_USERS
            and _per_user(speed, users) < Thresholds.CONGESTION_KBPS_PER_USER
        ),
        NodeHealth.WARNING,
        lambda users, speed: MessageTemplates.NODE_CONGESTED,
    ),
    _Row(
        lambda connected, users, speed: True,
        NodeHealth.HEALTHY,
        lambda users, speed: MessageTemplates.NODE_ACTIVE.format(
            per_user=round(_per_user(speed, users))
        ),
    ),
)


def classify_node(
    is_connected: bool,
    online_users: int,
    current_speed_kbps: int,
) -> Tuple[NodeHealth, str]:
    """
    Classify one node.

    Args:
        is_connected: Whether the panel reports the node as reachable
        online_users: Users currently connected to the node
        current_speed_kbps: Aggregate throughput of the node

    Returns:
        (health, human-readable message)
    """
    users = max(0, int(online_users))
    speed = max(0, int(current_speed_kbps))

    for row in DECISION_TABLE:
        if row.matches(bool(is_connected), users, speed):
            return row.status, row.message(users, speed)

    # The last row always matches
    raise AssertionError("decision table is not exhaustive")


def snapshot_from_metrics(metrics: NodeMetrics) -> NodeSnapshot:
    """Build the classified snapshot for one node."""
    status, message = classify_node(
        metrics.is_connected, metrics.users, metrics.speed_kbps
    )
    return NodeSnapshot(
        name=metrics.name,
        protocol=metrics.protocol if metrics.protocol != "Unknown" else DEFAULT_PROTOCOL,
        online_users=max(0, metrics.users),
        current_speed_kbps=max(0, metrics.speed_kbps),
        average_speed_kbps=0,
        status=status,
        message=message,
        is_connected=metrics.is_connected,
    )


def summarize(nodes: Iterable[NodeSnapshot]) -> Tuple[str, str]:
    """
    Derive the fleet-level analysis and recommendation texts.

    Critical nodes take precedence over warnings.
    """
    nodes = list(nodes)
    critical = sum(1 for n in nodes if n.status == NodeHealth.CRITICAL)
    warning = sum(1 for n in nodes if n.status == NodeHealth.WARNING)

    if critical > 0:
        return (
            MessageTemplates.GLOBAL_CRITICAL.format(count=critical),
            MessageTemplates.RECOMMEND_CRITICAL,
        )
    if warning > 0:
        return MessageTemplates.GLOBAL_WARNING, MessageTemplates.RECOMMEND_WARNING
    return MessageTemplates.GLOBAL_NOMINAL, MessageTemplates.RECOMMEND_NOMINAL


def analyze_locally(metrics: Iterable[NodeMetrics]) -> AnalysisResult:
    """
    Classify every node with the local heuristic.

    The node order of the input is preserved.
    """
    nodes: List[NodeSnapshot] = [snapshot_from_metrics(m) for m in metrics]
    global_analysis, recommendation = summarize(nodes)
    return AnalysisResult(
        nodes=tuple(nodes),
        global_analysis=global_analysis,
        recommendation=recommendation,
        source=AnalysisSource.LOCAL,
    )
