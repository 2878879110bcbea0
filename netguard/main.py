"""
============================================================================
NETGUARD MONITOR - MAIN APPLICATION
============================================================================
Wires every layer together and exposes the command line.

Startup Order
-------------
1.  Load settings & configure logging
2.  Initialize the StateStore (create tables if needed)
3.  Create the aiogram Bot (only when a token is configured)
4.  Wire up AlertDispatcher, PanelClient, GeminiAnalyzer, ScanScheduler
5.  Wire up BotGateway and restore persisted state
6.  Connect the bot (getMe) and start polling
7.  Start the ScanScheduler (when a cadence is configured)

Shutdown Order (reverse)
------------------------
On SIGINT or SIGTERM:
    stop scheduler → stop gateway → close bot session → close storage

Commands
--------
    netguard run                      long-running monitor
    netguard scan                     one scan, print the node table
    netguard probe --mode turbo       bandwidth probe(s) from this host
    netguard detect-chat              capture the chat id of the next message
============================================================================
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from aiogram import Bot

from netguard import __version__
from netguard.bot.gateway import BotGateway
from netguard.bot.state import BotStatus
from netguard.config.settings import Settings, get_settings
from netguard.monitoring.alerts import AlertDispatcher
from netguard.monitoring.classifier import DEFAULT_PROTOCOL
from netguard.monitoring.enrichment import GeminiAnalyzer
from netguard.monitoring.models import AnalysisResult, AnalysisSnapshot
from netguard.monitoring.panel import PanelClient
from netguard.monitoring.probe import ProbeEngine, ProbeMode, ProbeMonitor
from netguard.monitoring.scheduler import ScanScheduler
from netguard.storage.manager import StateStore
from netguard.utils.helpers import format_speed
from netguard.utils.logger import get_logger, setup_logging


logger = get_logger("Main")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class NetGuardApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup
    and shutdown order. Components share the ``Settings`` handle and the
    ``AnalysisSnapshot`` created here.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        self.state_store: Optional[StateStore] = None
        self.bot: Optional[Bot] = None
        self.status = BotStatus()
        self.snapshot = AnalysisSnapshot()

        self.dispatcher: Optional[AlertDispatcher] = None
        self.panel_client: Optional[PanelClient] = None
        self.analyzer: Optional[GeminiAnalyzer] = None
        self.scheduler: Optional[ScanScheduler] = None
        self.gateway: Optional[BotGateway] = None

        self._stop_event = asyncio.Event()

    # ==================================================================
    # PHASE 1 - STORAGE
    # ==================================================================

    async def _init_storage(self) -> bool:
        logger.info("── Phase 1: Storage ──────────────────────────────")
        try:
            self.state_store = StateStore(self.settings.storage)
            await self.state_store.initialize()
            logger.info(f"  ✓ State store ready ({self.settings.storage.url})")
            return True
        except Exception as e:
            logger.error(f"  ✗ Storage init failed: {e}")
            return False

    # ==================================================================
    # PHASE 2 - TELEGRAM BOT
    # ==================================================================

    async def _init_bot(self) -> None:
        """Create the Bot client; without a token the app runs headless."""
        logger.info("── Phase 2: Telegram Bot ─────────────────────────")
        token = self.settings.telegram.token
        if not token:
            logger.warning("  ⚠ No bot token configured; alerts and commands disabled")
            return

        try:
            self.bot = Bot(token=token)
            logger.info("  ✓ Bot client created")
        except Exception as e:
            self.bot = None
            logger.error(f"  ✗ Bot client could not be created: {e}")

    # ==================================================================
    # PHASE 3 - MONITORING
    # ==================================================================

    async def _init_monitoring(self) -> None:
        """Wire up AlertDispatcher, PanelClient, GeminiAnalyzer, ScanScheduler."""
        logger.info("── Phase 3: Monitoring ───────────────────────────")
        self.dispatcher = AlertDispatcher(
            self.settings,
            bot=self.bot,
            status=self.status,
            state_store=self.state_store,
        )
        if not self.settings.panel.is_configured:
            logger.warning("  ⚠ Panel URL or token missing; scans will report a configuration error")
        self.panel_client = PanelClient(self.settings)
        self.analyzer = GeminiAnalyzer(self.settings) if self.settings.enrichment.enabled else None
        self.scheduler = ScanScheduler(
            self.settings,
            self.panel_client,
            dispatcher=self.dispatcher,
            snapshot=self.snapshot,
            analyzer=self.analyzer,
        )
        self.gateway = BotGateway(
            self.settings,
            bot=self.bot,
            dispatcher=self.dispatcher,
            status=self.status,
            snapshot=self.snapshot,
            scanner=self.scheduler,
            state_store=self.state_store,
        )

        await self.dispatcher.load_state()
        await self.gateway.load_state()
        logger.info(
            f"  ✓ Monitoring wired (enrichment {'on' if self.analyzer else 'off'}, "
            f"cadence {self.scheduler.interval}s)"
        )

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self, start_services: bool = True) -> bool:
        """
        Execute the startup sequence.

        Args:
            start_services: Also connect the bot and start the scan loop

        Returns:
            False if storage could not be initialized
        """
        logger.info("=" * 74)
        logger.info(f"  {self.settings.app_name} v{__version__} STARTING UP …")
        logger.info("=" * 74)

        if not await self._init_storage():
            return False
        await self._init_bot()
        await self._init_monitoring()

        if not start_services:
            return True

        logger.info("── Starting background services ───────────────────")
        if self.bot is not None:
            await self.gateway.connect()
        await self.scheduler.start()

        logger.info("=" * 74)
        logger.info(f"  ✓ RUNNING (bot: {self.status.state.value})")
        logger.info("=" * 74)
        return True

    # ==================================================================
    # SHUTDOWN SEQUENCE
    # ==================================================================

    async def shutdown(self) -> None:
        """Stop every subsystem in reverse order; one failure does not stop the rest."""
        logger.info("  SHUTTING DOWN …")

        if self.scheduler:
            try:
                await self.scheduler.stop()
                stats = self.scheduler.get_stats()
                logger.info(
                    f"  ✓ Scheduler stopped ({stats['run_count']} scans, "
                    f"{stats['error_count']} errors, last error: {stats['last_error'] or 'none'})"
                )
            except Exception as e:
                logger.error(f"  ✗ Scheduler stop error: {e}")

        if self.gateway:
            try:
                await self.gateway.stop()
            except Exception as e:
                logger.error(f"  ✗ Gateway stop error: {e}")

        if self.bot is not None:
            try:
                await self.bot.session.close()
                logger.info("  ✓ Bot session closed")
            except Exception as e:
                logger.error(f"  ✗ Bot session close error: {e}")

        if self.state_store:
            try:
                await self.state_store.close()
            except Exception as e:
                logger.error(f"  ✗ Storage close error: {e}")

        logger.info("  ✓ SHUTDOWN COMPLETE")

    # ==================================================================
    # RUN
    # ==================================================================

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        """Block until a stop is requested."""
        await self._stop_event.wait()


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(app: NetGuardApplication) -> None:
    loop = asyncio.get_running_loop()

    def _handle_signal() -> None:
        logger.info("  ⚡ Signal received; initiating graceful shutdown…")
        app.request_stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle_signal)
        except (NotImplementedError, OSError):
            # Not supported on Windows; KeyboardInterrupt still works
            pass


# ============================================================================
# COMMANDS
# ============================================================================

def render_node_table(result: AnalysisResult) -> str:
    """Plain-text table of a scan result for the terminal."""
    header = f"{'STATUS':<9} {'NODE':<28} {'USERS':>5} {'SPEED':>12} {'AVG 1H':>12}  MESSAGE"
    lines = [header, "-" * len(header)]
    for node in result.nodes:
        lines.append(
            f"{node.status.value:<9} {node.name[:28]:<28} {node.online_users:>5} "
            f"{format_speed(node.current_speed_kbps):>12} "
            f"{format_speed(node.average_speed_kbps):>12}  {node.message}"
        )
    lines.append("")
    lines.append(f"Global: {result.global_analysis}")
    lines.append(f"Advice: {result.recommendation}")
    return "\n".join(lines)


async def run_command(settings: Settings) -> int:
    app = NetGuardApplication(settings)
    _install_signal_handlers(app)

    if not await app.startup():
        logger.error("  ✗ Startup failed; exiting")
        await app.shutdown()
        return 1

    try:
        await app.run()
    finally:
        await app.shutdown()
    return 0


async def scan_command(settings: Settings) -> int:
    panel_client = PanelClient(settings)
    analyzer = GeminiAnalyzer(settings) if settings.enrichment.enabled else None
    scheduler = ScanScheduler(settings, panel_client, analyzer=analyzer)

    result = await scheduler.run_cycle()
    if result is None:
        error = scheduler.snapshot.error
        print(f"{error.title}: {error.message}", file=sys.stderr)
        if error.tip:
            print(f"Tip: {error.tip}", file=sys.stderr)
        return 1

    print(render_node_table(result))
    return 0


async def probe_command(settings: Settings, mode: str, count: int, diagnose: bool) -> int:
    monitor = ProbeMonitor(ProbeEngine(settings), mode=ProbeMode(mode))

    for index in range(count):
        if index:
            await asyncio.sleep(monitor.interval)
        sample = await monitor.probe_once()
        jitter = f", jitter {sample.jitter_ms} ms" if sample.jitter_ms is not None else ""
        print(
            f"[{index + 1}/{count}] {format_speed(sample.download_speed_kbps)}, "
            f"latency {sample.latency_ms} ms{jitter} → {monitor.status.value}"
        )

    if diagnose:
        diagnosis = await GeminiAnalyzer(settings).diagnose_probe_history(
            list(monitor.samples), monitor.status
        )
        print(f"\nDiagnosis ({diagnosis.status}): {diagnosis.message}")
        print(f"Recommendation: {diagnosis.recommendation}")

    return 0


async def detect_chat_command(settings: Settings, timeout: float) -> int:
    app = NetGuardApplication(settings)
    if not await app.startup(start_services=False):
        return 1

    try:
        if app.bot is None or not await app.gateway.connect():
            print(f"Bot not connected: {app.status.last_error}", file=sys.stderr)
            return 1

        app.gateway.arm_chat_detection()
        print(f"Send any message to {app.status.bot_name} within {timeout:.0f}s…")

        waited = 0.0
        step = settings.telegram.poll_interval_connected
        while app.gateway.is_detecting_chat and waited < timeout:
            if not app.gateway.is_running:
                print(f"Polling stopped: {app.status.last_error}", file=sys.stderr)
                return 1
            await asyncio.sleep(step)
            waited += step

        if app.gateway.is_detecting_chat:
            print("No message received.", file=sys.stderr)
            return 1

        print(f"Chat ID: {settings.telegram.chat_id}")
        return 0
    finally:
        await app.shutdown()


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netguard",
        description=f"NetGuard Monitor: VPN node health and bandwidth probing ({DEFAULT_PROTOCOL})",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run the scan scheduler and Telegram bot until stopped")
    sub.add_parser("scan", help="Run one scan and print the node table")

    probe = sub.add_parser("probe", help="Measure bandwidth from this host")
    probe.add_argument(
        "--mode",
        choices=[m.value for m in ProbeMode],
        default=ProbeMode.STANDARD.value,
    )
    probe.add_argument("--count", type=int, default=1, help="Number of probes to run")
    probe.add_argument("--diagnose", action="store_true", help="Ask the model to diagnose the history")

    detect = sub.add_parser("detect-chat", help="Capture the chat id of the next message to the bot")
    detect.add_argument("--timeout", type=float, default=120.0)

    return parser


def cli(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings.logging)

    command = args.command or "run"
    try:
        if command == "scan":
            return asyncio.run(scan_command(settings))
        if command == "probe":
            return asyncio.run(probe_command(settings, args.mode, max(1, args.count), args.diagnose))
        if command == "detect-chat":
            return asyncio.run(detect_chat_command(settings, args.timeout))
        return asyncio.run(run_command(settings))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(cli())
