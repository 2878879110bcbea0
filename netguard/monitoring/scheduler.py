"""
============================================================================
NETGUARD MONITOR - SCAN SCHEDULER
============================================================================
Runs the scan cycle on a cadence and on demand.

Scan Cycle
----------
1.  Validate the panel URL and token (no I/O when either is missing)
2.  Fetch roster and realtime stats concurrently
3.  Classify (optional model enrichment, local heuristic otherwise)
4.  Fill in the rolling averages
5.  Publish the result into the shared AnalysisSnapshot
6.  With a non-zero cadence, hand the result to the AlertDispatcher

A failed cycle leaves exactly one error record in the snapshot and never
stops the loop by raising.

Cadence
-------
``interval == 0`` means manual scans only. Authentication and not-found
errors switch the cadence off. A network error while running at the
live cadence (1s) drops to the eco cadence (5s).
============================================================================
"""

import asyncio
import time
from typing import Any, Callable, Dict, Optional

from netguard.config.constants import Thresholds
from netguard.config.settings import Settings
from netguard.exceptions import ConfigurationError, PanelException, PanelNetworkError
from netguard.monitoring.alerts import AlertDispatcher
from netguard.monitoring.classifier import analyze_locally
from netguard.monitoring.enrichment import GeminiAnalyzer
from netguard.monitoring.history import HistoryTracker
from netguard.monitoring.models import AnalysisResult, AnalysisSnapshot, ScanErrorRecord
from netguard.monitoring.panel import PanelClient, simplify_payload
from netguard.utils.logger import get_logger, log_execution_time


logger = get_logger("ScanScheduler")


class ScanScheduler:
    """
    Periodic and on-demand scan runner.

    Parameters
    ----------
    settings : Settings
        Shared application settings.
    panel_client : PanelClient
        Source of roster and stats.
    dispatcher : AlertDispatcher | None
        Receives results when running on a cadence.
    history : HistoryTracker | None
        Rolling averages; a new tracker is created if omitted.
    snapshot : AnalysisSnapshot | None
        Cell the results are published to (this scheduler is its only
        writer).
    analyzer : GeminiAnalyzer | None
        Optional enrichment; the local heuristic is used without it.
    clock : callable
        Returns epoch seconds; replaceable in tests.
    """

    def __init__(
        self,
        settings: Settings,
        panel_client: PanelClient,
        dispatcher: Optional[AlertDispatcher] = None,
        history: Optional[HistoryTracker] = None,
        snapshot: Optional[AnalysisSnapshot] = None,
        analyzer: Optional[GeminiAnalyzer] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.panel_client = panel_client
        self.dispatcher = dispatcher
        self.history = history or HistoryTracker(window=settings.scan.history_window)
        self.snapshot = snapshot if snapshot is not None else AnalysisSnapshot()
        self.analyzer = analyzer
        self.clock = clock

        self.interval: float = settings.scan.interval

        self._in_flight = False
        self._running = False
        self._task: Optional[asyncio.Task] = None

        self.run_count = 0
        self.error_count = 0
        self.last_run: Optional[float] = None

    # ------------------------------------------------------------------
    # SCAN CYCLE
    # ------------------------------------------------------------------

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def run_cycle(self) -> Optional[AnalysisResult]:
        """
        Run one scan.

        Returns:
            The published result, or None if the scan failed or another
            scan was already running
        """
        if self._in_flight:
            logger.debug("[Scan] Cycle already in flight; trigger ignored")
            return None

        self._in_flight = True
        try:
            return await self._cycle()
        except ConfigurationError as e:
            self._fail(ScanErrorRecord(title=e.title, message=e.message, tip=e.tip or ""))
        except PanelException as e:
            self._handle_panel_error(e)
        except Exception as e:
            logger.error(f"[Scan] Unexpected error: {e}")
            self._fail(
                ScanErrorRecord(
                    title="Connection Failed",
                    message=str(e) or e.__class__.__name__,
                    tip="Check your internet connection and try again.",
                )
            )
        finally:
            self._in_flight = False
        return None

    @log_execution_time
    async def _cycle(self) -> AnalysisResult:
        payload = await self.panel_client.fetch()
        metrics = simplify_payload(payload)

        if self.analyzer is not None:
            result = await self.analyzer.analyze_panel(metrics)
        else:
            result = analyze_locally(metrics)

        now = self.clock()
        result = self.history.apply(result, now=now)
        self.snapshot.publish(result, now=now)

        self.run_count += 1
        self.last_run = now
        logger.info(
            f"[Scan] {len(result.nodes)} nodes | "
            f"{len(result.critical_nodes)} critical | "
            f"{len(result.warning_nodes)} warning | "
            f"{result.total_users} users"
        )

        if self.interval > 0 and self.dispatcher is not None:
            await self.dispatcher.check_and_notify(result)

        return result

    def _fail(self, record: ScanErrorRecord) -> None:
        self.error_count += 1
        self.snapshot.set_error(record)
        logger.warning(f"[Scan] {record.title}: {record.message}")

    def _handle_panel_error(self, error: PanelException) -> None:
        logger.debug(f"[Scan] {error.log_format()}")
        self._fail(error.to_record())

        if error.stops_schedule and self.interval > 0:
            self.interval = 0
            logger.warning("[Scan] Auto-scan stopped; fix the configuration and restart it")
        elif (
            isinstance(error, PanelNetworkError)
            and self.interval == self.settings.scan.live_interval
        ):
            self.interval = self.settings.scan.eco_interval
            logger.warning(f"[Scan] Network trouble; switching to eco cadence ({self.interval}s)")

    async def check_node(self, name: str) -> Optional[str]:
        """
        Re-scan and report whether one node is ``idle`` or ``active``.

        Returns:
            "idle" or "active", or None if the scan failed
        """
        result = await self.run_cycle()
        if result is None:
            return None

        node = result.find(name)
        if node is not None and (
            node.online_users == 0
            or (
                node.online_users < Thresholds.FEEDBACK_IDLE_MAX_USERS
                and node.current_speed_kbps < Thresholds.FEEDBACK_IDLE_MAX_KBPS
            )
        ):
            return "idle"
        return "active"

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the periodic loop; does nothing in manual mode."""
        if self._running:
            logger.warning("[Scan] Scheduler already running")
            return
        if self.interval <= 0:
            logger.info("[Scan] Manual mode; periodic scanning disabled")
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"[Scan] ✓ Scheduler started (every {self.interval}s)")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("[Scan] ✓ Scheduler stopped")

    async def set_interval(self, seconds: float) -> None:
        """
        Change the cadence. 0 stops periodic scanning; a positive value
        starts it if it was stopped.
        """
        self.interval = max(0.0, float(seconds))
        if self.interval <= 0:
            await self.stop()
        elif not self._running:
            await self.start()

    async def _loop(self) -> None:
        """
        One cycle immediately, then one every ``interval`` seconds while
        the interval stays positive.
        """
        while self._running and self.interval > 0:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[Scan] Unhandled error in scan loop: {e}")

            if self.interval <= 0:
                break

            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break

        self._running = False
        logger.info("[Scan] Loop exited")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "interval": self.interval,
            "running": self._running,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_run": self.last_run,
            "last_error": self.snapshot.error.title if self.snapshot.error else None,
        }
