"""
============================================================================
NETGUARD MONITOR - BANDWIDTH PROBE ENGINE
============================================================================
Measures throughput and latency from this host to a fixed-size reference
resource, to tell a per-connection speed cap from a per-source one.

Architecture
------------
ProbeEngine               ← runs one probe with a given strategy
├── standard()            ← one GET, wall time → speed and latency
├── turbo()               ← N parallel GETs, aggregate speed
└── stability()           ← N sequential GETs, mean latency and jitter
ProbeMonitor              ← periodic single-flight probe loop with history
classify_sample()         ← SpeedSample → ConnectionStatus

Every strategy returns a SpeedSample and never raises: any failure is
recorded as a zero sample, which callers read as "offline".
============================================================================
"""

import asyncio
import statistics
import time
from collections import deque
from enum import Enum
from typing import Deque, List, Optional

import httpx

from netguard.config.settings import ProbeSettings, Settings
from netguard.monitoring.models import ConnectionStatus, SpeedSample
from netguard.utils.helpers import StringHelper
from netguard.utils.logger import get_logger, log_execution_time


logger = get_logger("ProbeEngine")


class ProbeMode(str, Enum):
    STANDARD = "standard"
    TURBO = "turbo"
    STABILITY = "stability"


# ============================================================================
# PROBE ENGINE
# ============================================================================

class ProbeEngine:
    """
    Runs bandwidth probes against ``settings.probe.test_url``.

    Parameters
    ----------
    settings : Settings
        Shared application settings.
    transport : httpx.AsyncBaseTransport | None
        Optional transport for the HTTP client (used by tests).
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._transport = transport

    @property
    def config(self) -> ProbeSettings:
        return self.settings.probe

    def _client(self, connections: int = 1) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.request_timeout),
            follow_redirects=True,
            headers={"Cache-Control": "no-store"},
            limits=httpx.Limits(
                max_connections=connections,
                max_keepalive_connections=0,
            ),
            transport=self._transport,
        )

    async def _download(self, client: httpx.AsyncClient, tag: str) -> int:
        """GET the reference resource and return the body size in bytes."""
        url = f"{StringHelper.cache_bust(self.config.test_url)}&{tag}"
        response = await client.get(url)
        response.raise_for_status()
        return len(response.content)

    @log_execution_time
    async def run(self, mode: ProbeMode = ProbeMode.STANDARD) -> SpeedSample:
        """Run one probe with the given strategy."""
        mode = ProbeMode(mode)
        if mode == ProbeMode.TURBO:
            return await self.turbo()
        if mode == ProbeMode.STABILITY:
            return await self.stability()
        return await self.standard()

    async def standard(self) -> SpeedSample:
        """
        Single request; latency is the full elapsed time.
        """
        start_time = time.perf_counter()
        try:
            async with self._client() as client:
                size = await self._download(client, "mode=standard")
        except httpx.HTTPError as e:
            logger.warning(f"[Probe] Standard probe failed: {e}")
            return SpeedSample.failed()
        except Exception as e:
            logger.error(f"[Probe] Unexpected error in standard probe: {e}")
            return SpeedSample.failed()

        elapsed = time.perf_counter() - start_time
        return self._sample(size, elapsed, latency_seconds=elapsed)

    async def turbo(self) -> SpeedSample:
        """
        Parallel requests; speed is total bytes over the time from first
        dispatch to last completion.
        """
        concurrency = self.config.stress_concurrency
        start_time = time.perf_counter()
        try:
            async with self._client(connections=concurrency) as client:
                sizes = await asyncio.gather(
                    *(self._download(client, f"stress={i}") for i in range(concurrency))
                )
        except httpx.HTTPError as e:
            logger.warning(f"[Probe] Turbo probe failed: {e}")
            return SpeedSample.failed()
        except Exception as e:
            logger.error(f"[Probe] Unexpected error in turbo probe: {e}")
            return SpeedSample.failed()

        elapsed = time.perf_counter() - start_time
        return self._sample(sum(sizes), elapsed, latency_seconds=elapsed)

    async def stability(self) -> SpeedSample:
        """
        Sequential requests; jitter is the population standard deviation
        of the per-request latencies.
        """
        latencies: List[float] = []
        total_size = 0
        try:
            async with self._client() as client:
                for i in range(self.config.stability_iterations):
                    request_start = time.perf_counter()
                    total_size += await self._download(client, f"jit={i}")
                    latencies.append(time.perf_counter() - request_start)
        except httpx.HTTPError as e:
            logger.warning(f"[Probe] Stability probe failed: {e}")
            return SpeedSample.failed(with_jitter=True)
        except Exception as e:
            logger.error(f"[Probe] Unexpected error in stability probe: {e}")
            return SpeedSample.failed(with_jitter=True)

        jitter = statistics.pstdev(latencies) if len(latencies) > 1 else 0.0
        return self._sample(
            total_size,
            sum(latencies),
            latency_seconds=statistics.mean(latencies),
            jitter_seconds=jitter,
        )

    @staticmethod
    def _sample(
        size: int,
        elapsed: float,
        latency_seconds: float,
        jitter_seconds: Optional[float] = None,
    ) -> SpeedSample:
        elapsed = max(elapsed, 1e-6)
        return SpeedSample(
            timestamp=time.time(),
            download_speed_kbps=round(size * 8 / elapsed / 1000),
            latency_ms=round(latency_seconds * 1000),
            jitter_ms=round(jitter_seconds * 1000) if jitter_seconds is not None else None,
        )


def classify_sample(
    sample: SpeedSample,
    throttle_threshold_kbps: int = 100,
    unstable_jitter_ms: int = 200,
) -> ConnectionStatus:
    """
    Verdict for one probe sample.

    Zero speed means the probe failed outright.
    """
    if sample.download_speed_kbps == 0:
        return ConnectionStatus.OFFLINE
    if sample.download_speed_kbps < throttle_threshold_kbps:
        return ConnectionStatus.THROTTLED
    if sample.jitter_ms is not None and sample.jitter_ms > unstable_jitter_ms:
        return ConnectionStatus.UNSTABLE
    return ConnectionStatus.GOOD


# ============================================================================
# PROBE MONITOR
# ============================================================================

class ProbeMonitor:
    """
    Periodic probe loop keeping the most recent samples.

    A new probe never starts while the previous one is still running.
    """

    def __init__(
        self,
        engine: ProbeEngine,
        mode: ProbeMode = ProbeMode.STANDARD,
    ):
        self.engine = engine
        self.mode = ProbeMode(mode)
        config = engine.config
        self.interval = config.interval
        self.samples: Deque[SpeedSample] = deque(maxlen=config.history_size)
        self.status = ConnectionStatus.IDLE

        self._running = False
        self._in_flight = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def probe_once(self) -> Optional[SpeedSample]:
        """Run one probe; returns None if another probe is in flight."""
        if self._in_flight:
            return None

        self._in_flight = True
        self.status = ConnectionStatus.TESTING
        try:
            sample = await self.engine.run(self.mode)
        finally:
            self._in_flight = False

        self.samples.append(sample)
        config = self.engine.config
        self.status = classify_sample(
            sample,
            throttle_threshold_kbps=config.throttle_threshold_kbps,
            unstable_jitter_ms=config.unstable_jitter_ms,
        )
        logger.debug(
            f"[Probe] {self.mode.value}: {sample.download_speed_kbps} Kbps, "
            f"{sample.latency_ms} ms → {self.status.value}"
        )
        return sample

    async def start(self) -> None:
        if self._running:
            logger.warning("[Probe] Monitor already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"[Probe] ✓ Monitor started ({self.mode.value}, every {self.interval}s)")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.status = ConnectionStatus.IDLE
        logger.info("[Probe] ✓ Monitor stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.probe_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[Probe] Unhandled error in probe loop: {e}")

            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
