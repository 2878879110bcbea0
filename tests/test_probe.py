from __future__ import annotations

import asyncio
from typing import List

import httpx
import pytest

from conftest import make_settings
from netguard.monitoring.models import ConnectionStatus, SpeedSample
from netguard.monitoring.probe import ProbeEngine, ProbeMode, ProbeMonitor, classify_sample

BODY = b"x" * 200_000


def ok_transport(seen: List[httpx.Request]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=BODY)

    return httpx.MockTransport(handler)


def failing_transport() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    return httpx.MockTransport(handler)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "speed, jitter, expected",
    [
        (0, None, ConnectionStatus.OFFLINE),
        (0, 500, ConnectionStatus.OFFLINE),
        (60, None, ConnectionStatus.THROTTLED),
        (99, 10, ConnectionStatus.THROTTLED),
        (100, None, ConnectionStatus.GOOD),
        (5000, 201, ConnectionStatus.UNSTABLE),
        (5000, 200, ConnectionStatus.GOOD),
    ],
)
def test_classify_sample(speed, jitter, expected) -> None:
    sample = SpeedSample(timestamp=0.0, download_speed_kbps=speed, latency_ms=50, jitter_ms=jitter)
    assert classify_sample(sample) == expected


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_standard_probe_measures_one_download() -> None:
    seen: List[httpx.Request] = []
    engine = ProbeEngine(make_settings(), transport=ok_transport(seen))

    sample = await engine.run(ProbeMode.STANDARD)

    assert len(seen) == 1
    assert seen[0].url.params["mode"] == "standard"
    assert seen[0].headers["Cache-Control"] == "no-store"
    assert sample.download_speed_kbps > 0
    assert sample.jitter_ms is None


@pytest.mark.asyncio
async def test_turbo_probe_runs_parallel_downloads() -> None:
    seen: List[httpx.Request] = []
    settings = make_settings()
    engine = ProbeEngine(settings, transport=ok_transport(seen))

    sample = await engine.run("turbo")

    tags = sorted(r.url.params["stress"] for r in seen)
    assert tags == [str(i) for i in range(settings.probe.stress_concurrency)]
    assert sample.download_speed_kbps > 0


@pytest.mark.asyncio
async def test_stability_probe_reports_jitter() -> None:
    seen: List[httpx.Request] = []
    settings = make_settings()
    engine = ProbeEngine(settings, transport=ok_transport(seen))

    sample = await engine.stability()

    assert len(seen) == settings.probe.stability_iterations
    assert sample.jitter_ms is not None and sample.jitter_ms >= 0


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", list(ProbeMode))
async def test_failed_probe_is_a_zero_sample(mode: ProbeMode) -> None:
    engine = ProbeEngine(make_settings(), transport=failing_transport())

    sample = await engine.run(mode)

    assert sample.download_speed_kbps == 0
    assert sample.latency_ms == 0
    assert classify_sample(sample) == ConnectionStatus.OFFLINE


@pytest.mark.asyncio
async def test_http_error_status_is_a_zero_sample() -> None:
    engine = ProbeEngine(
        make_settings(),
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    assert (await engine.standard()).download_speed_kbps == 0


# ---------------------------------------------------------------------------
# Monitor
# ---------------------------------------------------------------------------

class GatedEngine:
    def __init__(self, config) -> None:
        self.config = config
        self.gate = asyncio.Event()
        self.runs = 0

    async def run(self, mode: ProbeMode) -> SpeedSample:
        self.runs += 1
        await self.gate.wait()
        return SpeedSample(timestamp=0.0, download_speed_kbps=60, latency_ms=40)


@pytest.mark.asyncio
async def test_monitor_never_overlaps_probes() -> None:
    engine = GatedEngine(make_settings().probe)
    monitor = ProbeMonitor(engine)

    first = asyncio.create_task(monitor.probe_once())
    await asyncio.sleep(0)
    assert monitor.status == ConnectionStatus.TESTING
    assert await monitor.probe_once() is None

    engine.gate.set()
    sample = await first

    assert engine.runs == 1
    assert sample.download_speed_kbps == 60
    assert monitor.status == ConnectionStatus.THROTTLED
    assert list(monitor.samples) == [sample]


@pytest.mark.asyncio
async def test_monitor_history_is_bounded() -> None:
    settings = make_settings()
    engine = GatedEngine(settings.probe)
    engine.gate.set()
    monitor = ProbeMonitor(engine)

    for _ in range(settings.probe.history_size + 5):
        await monitor.probe_once()

    assert len(monitor.samples) == settings.probe.history_size


@pytest.mark.asyncio
async def test_monitor_stop_resets_status() -> None:
    engine = GatedEngine(make_settings().probe)
    engine.gate.set()
    monitor = ProbeMonitor(engine)

    await monitor.start()
    assert monitor.is_running
    await asyncio.sleep(0.01)
    await monitor.stop()

    assert not monitor.is_running
    assert monitor.status == ConnectionStatus.IDLE
    assert len(monitor.samples) >= 1
