"""Shared test fixtures for wifi-health tests."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import MagicMock

import pytest

from wifi_health.config import MonitorConfig
from wifi_health.core.collaborators import (
    NetworkRegistry,
    NetworkUpdateListener,
    PerNetworkStats,
    ScoreCard,
)
from wifi_health.core.environment import BuildInfoExtractor
from wifi_health.core.models import (
    NetworkConfig,
    ScanBand,
    ScanData,
    ScanResult,
    SoftwareBuildSnapshot,
    Sufficiency,
)
from wifi_health.core.monitor import HealthMonitor
from wifi_health.core.scheduler import Scheduler
from wifi_health.data.store import MemoryStore, ReadCallback, SqliteMemoryStore


# 2026-10-17 10:00:00 UTC
START_WALL_MS = int(datetime(2026, 10, 17, 10, 0, tzinfo=timezone.utc).timestamp() * 1000)

BUILD_A = SoftwareBuildSnapshot(
    os_build_version="A",
    stack_version=1,
    driver_version="d1",
    firmware_version="f1",
)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, wall_ms: int = START_WALL_MS, elapsed_ms: int = 0):
        self.wall_ms = wall_ms
        self.elapsed_ms = elapsed_ms

    def wall_clock_millis(self) -> int:
        return self.wall_ms

    def elapsed_since_boot_millis(self) -> int:
        return self.elapsed_ms

    def advance(self, ms: int) -> None:
        self.wall_ms += ms
        self.elapsed_ms += ms


class FakeMemoryStore(MemoryStore):
    """In-memory store. With ``deferred=True`` reads stay in flight until delivered."""

    def __init__(self, deferred: bool = False):
        self.deferred = deferred
        self.blobs: dict[tuple[str, str], bytes] = {}
        self.writes: list[tuple[str, str, bytes]] = []
        self._pending: list[tuple[ReadCallback, Optional[bytes]]] = []

    def read(self, l2_key: str, name: str, callback: ReadCallback) -> None:
        value = self.blobs.get((l2_key, name))
        if self.deferred:
            self._pending.append((callback, value))
        else:
            callback(value)

    def write(self, l2_key: str, name: str, data: bytes) -> None:
        self.blobs[(l2_key, name)] = data
        self.writes.append((l2_key, name, data))

    def deliver_reads(self) -> None:
        pending, self._pending = self._pending, []
        for callback, value in pending:
            callback(value)


class FakeNetworkRegistry(NetworkRegistry):
    def __init__(self, networks: Optional[list] = None):
        self.networks = list(networks or [])
        self.listeners: list[NetworkUpdateListener] = []

    def get_configured_networks(self) -> list:
        return list(self.networks)

    def add_on_network_update_listener(self, listener: NetworkUpdateListener) -> None:
        self.listeners.append(listener)


def make_score_card() -> MagicMock:
    """ScoreCard mock that hands out one PerNetworkStats mock per SSID."""
    score_card = MagicMock(spec=ScoreCard)
    records: dict[str, MagicMock] = {}

    def _lookup(ssid: str) -> MagicMock:
        if ssid not in records:
            record = MagicMock(spec=PerNetworkStats)
            record.daily_detection.return_value = Sufficiency.INSUFFICIENT
            record.recent_count.return_value = 0
            records[ssid] = record
        return records[ssid]

    score_card.lookup_network.side_effect = _lookup
    score_card.fetch_by_network.side_effect = lambda ssid: records.get(ssid)
    score_card.records = records
    return score_card


def make_scan(band: ScanBand = ScanBand.BOTH, results: Optional[list] = None) -> list[ScanData]:
    return [ScanData(band_scanned=band, results=list(results or []))]


def results_for(num_2g: int, num_above_2g: int) -> list[ScanResult]:
    results = [
        ScanResult(bssid=f"aa:bb:cc:00:00:{i:02x}", frequency_mhz=2437)
        for i in range(num_2g)
    ]
    results += [
        ScanResult(bssid=f"aa:bb:cc:00:01:{i:02x}", frequency_mhz=5180)
        for i in range(num_above_2g)
    ]
    return results


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock) -> Scheduler:
    return Scheduler(clock, tz=timezone.utc)


@pytest.fixture
def memory_store() -> FakeMemoryStore:
    return FakeMemoryStore()


@pytest.fixture
def registry() -> FakeNetworkRegistry:
    return FakeNetworkRegistry([
        NetworkConfig(ssid='"HomeNet"', network_id=0),
        NetworkConfig(ssid='"Office"', network_id=1),
    ])


@pytest.fixture
def score_card() -> MagicMock:
    return make_score_card()


@pytest.fixture
def build_info() -> MagicMock:
    extractor = MagicMock(spec=BuildInfoExtractor)
    extractor.extract.return_value = BUILD_A
    return extractor


@pytest.fixture
def monitor(scheduler, registry, score_card, build_info) -> HealthMonitor:
    return HealthMonitor(
        scheduler=scheduler,
        network_registry=registry,
        score_card=score_card,
        build_info=build_info,
        config=MonitorConfig(l2_key_seed="test-seed", verbose=True),
    )


@pytest.fixture
def temp_store(tmp_path):
    """SqliteMemoryStore with a temporary database."""
    store = SqliteMemoryStore(db_path=str(tmp_path / "memory.db"))
    yield store
    store.close()


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """CLI runs install handlers on the package logger; undo that so caplog sees records."""
    yield
    pkg_logger = logging.getLogger("wifi_health")
    for handler in list(pkg_logger.handlers):
        pkg_logger.removeHandler(handler)
        handler.close()
    pkg_logger.setLevel(logging.NOTSET)
    pkg_logger.propagate = True
