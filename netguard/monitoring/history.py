"""
Rolling speed history for NetGuard Monitor.

Keeps a trailing window of ``(timestamp, speed_kbps)`` pairs per node
name and fills in ``average_speed_kbps`` on every scan result.

A window is pruned only when its node reports. A node missing from a
scan keeps its window, and its average, exactly as they were at its
last report. Entries exactly one window old are still inside it.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import replace
from typing import Deque, Dict, List, Optional, Tuple

from netguard.monitoring.models import AnalysisResult, NodeSnapshot


class HistoryTracker:
    """Trailing-window average per node."""

    def __init__(self, window: int = 3600):
        self.window = window
        self._windows: Dict[str, Deque[Tuple[float, int]]] = {}
        self._averages: Dict[str, int] = {}

    def record(self, name: str, speed_kbps: int, now: Optional[float] = None) -> int:
        """
        Append one sample, prune the node's window and return its average.

        Samples are expected in time order.
        """
        now = now if now is not None else time.time()
        entries = self._windows.setdefault(name, deque())
        entries.append((now, speed_kbps))

        while entries and now - entries[0][0] > self.window:
            entries.popleft()

        self._averages[name] = self._mean(entries)
        return self._averages[name]

    def average(self, name: str) -> int:
        """Average as of the node's last report; 0 for unknown nodes."""
        return self._averages.get(name, 0)

    def apply(self, result: AnalysisResult, now: Optional[float] = None) -> AnalysisResult:
        """
        Record every node of ``result`` and return a copy with averages set.

        Args:
            result: Freshly classified scan result
            now: Scan time in epoch seconds

        Returns:
            New AnalysisResult; the input is left untouched
        """
        now = now if now is not None else time.time()
        nodes: List[NodeSnapshot] = [
            replace(node, average_speed_kbps=self.record(node.name, node.current_speed_kbps, now))
            for node in result.nodes
        ]
        return replace(result, nodes=tuple(nodes))

    @staticmethod
    def _mean(entries: Deque[Tuple[float, int]]) -> int:
        if not entries:
            return 0
        return round(sum(v for _, v in entries) / len(entries))
