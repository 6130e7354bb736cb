"""Collaborator interfaces — what the monitor requires of its host."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from wifi_health.core.models import (
    FailureStats,
    NetworkConfig,
    ScanData,
    ScanResult,
    Sufficiency,
)


CNT_CONNECTION_DURATION_SEC = "connection_duration_sec"


class PerNetworkStats(ABC):
    """Historical connection statistics of one network."""

    @abstractmethod
    def daily_detection(
        self,
        increase: FailureStats,
        decrease: FailureStats,
        high: FailureStats,
    ) -> Sufficiency:
        """Compare recent stats against historical stats.

        Increments ``increase``/``decrease`` for every reason whose failure
        rate changed significantly, or ``high`` for every reason whose rate
        is high when there is no history to compare against.
        """

    @abstractmethod
    def update_after_daily_detection(self) -> None:
        """Fold the daily window into historical stats and reset it."""

    @abstractmethod
    def update_after_sw_build_change(self) -> None: ...

    @abstractmethod
    def recent_count(self, counter: str) -> int: ...


class ScoreCard(ABC):
    """Per-network statistics store."""

    @abstractmethod
    def lookup_network(self, ssid: str) -> PerNetworkStats:
        """Return the cached record, creating it (and requesting a read) if absent."""

    @abstractmethod
    def fetch_by_network(self, ssid: str) -> Optional[PerNetworkStats]:
        """Return the cached record or None. Never creates."""

    @abstractmethod
    def request_read_network(self, per_network: PerNetworkStats) -> None: ...

    @abstractmethod
    def remove_network(self, ssid: str) -> None: ...

    @abstractmethod
    def do_writes(self) -> None: ...


class NetworkUpdateListener:
    """Receives configured-network change notifications. All hooks default to no-ops."""

    def on_network_added(self, config: NetworkConfig) -> None:
        pass

    def on_network_enabled(self, config: NetworkConfig) -> None:
        pass

    def on_network_permanently_disabled(
        self, config: NetworkConfig, disable_reason: int
    ) -> None:
        pass

    def on_network_temporarily_disabled(
        self, config: NetworkConfig, disable_reason: int
    ) -> None:
        pass

    def on_network_removed(self, config: NetworkConfig) -> None:
        pass

    def on_network_updated(self, config: NetworkConfig) -> None:
        pass


class NetworkRegistry(ABC):
    @abstractmethod
    def get_configured_networks(self) -> list[NetworkConfig]: ...

    @abstractmethod
    def add_on_network_update_listener(
        self, listener: NetworkUpdateListener
    ) -> None: ...


class ScanListener(ABC):
    @abstractmethod
    def on_full_result(self, result: ScanResult) -> None: ...

    @abstractmethod
    def on_results(self, scan_datas: list[ScanData]) -> None: ...

    def on_failure(self, reason: int, description: str) -> None:
        pass


class Scanner(ABC):
    @abstractmethod
    def register_scan_listener(self, listener: ScanListener) -> None: ...


class WifiBackend(ABC):
    """Native networking backend. Either version may be None when unknown."""

    @abstractmethod
    def get_driver_version(self) -> Optional[str]: ...

    @abstractmethod
    def get_firmware_version(self) -> Optional[str]: ...
