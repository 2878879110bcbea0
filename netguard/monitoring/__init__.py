"""
Monitoring Package for NetGuard Monitor

Probe engine, node classifier, rolling history, panel client,
optional enrichment, alert dispatcher and scan scheduler.
"""

from netguard.monitoring.models import (
    AnalysisResult,
    AnalysisSnapshot,
    AnalysisSource,
    ConnectionStatus,
    NodeHealth,
    NodeMetrics,
    NodeSnapshot,
    ProbeDiagnosis,
    ScanErrorRecord,
    SpeedSample,
)
from netguard.monitoring.classifier import analyze_locally, classify_node
from netguard.monitoring.history import HistoryTracker
from netguard.monitoring.probe import ProbeEngine, ProbeMode, ProbeMonitor, classify_sample
from netguard.monitoring.panel import PanelClient, PanelPayload, simplify_payload
from netguard.monitoring.enrichment import GeminiAnalyzer
from netguard.monitoring.alerts import AlertDispatcher, AlertRateLimiter
from netguard.monitoring.scheduler import ScanScheduler

__all__ = [
    "AnalysisResult",
    "AnalysisSnapshot",
    "AnalysisSource",
    "ConnectionStatus",
    "NodeHealth",
    "NodeMetrics",
    "NodeSnapshot",
    "ProbeDiagnosis",
    "ScanErrorRecord",
    "SpeedSample",
    "analyze_locally",
    "classify_node",
    "HistoryTracker",
    "ProbeEngine",
    "ProbeMode",
    "ProbeMonitor",
    "classify_sample",
    "PanelClient",
    "PanelPayload",
    "simplify_payload",
    "GeminiAnalyzer",
    "AlertDispatcher",
    "AlertRateLimiter",
    "ScanScheduler",
]
