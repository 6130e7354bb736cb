"""Core data models for wifi-health."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional


UNKNOWN_SSID = "<unknown ssid>"

# Placeholder for string build fields that were missing in storage.
NOT_AVAILABLE = "NA"


class FailureReason(IntEnum):
    ASSOC_REJECTION = 0
    ASSOC_TIMEOUT = 1
    AUTH_FAILURE = 2
    CONNECTION_FAILURE = 3
    DISCONNECTION_NONLOCAL = 4
    SHORT_CONNECTION_NONLOCAL = 5


NUMBER_FAILURE_REASON_CODE = len(FailureReason)


class MobilityState(Enum):
    UNKNOWN = "unknown"
    HIGH_MOBILITY = "high_mobility"
    LOW_MOBILITY = "low_mobility"
    STATIONARY = "stationary"


class Sufficiency(Enum):
    """Outcome of one network's daily detection."""

    INSUFFICIENT = "insufficient"
    SUFFICIENT_RECENT_ONLY = "sufficient_recent_only"
    SUFFICIENT_RECENT_PREV = "sufficient_recent_prev"


class ScanBand(Enum):
    UNSPECIFIED = "unspecified"
    BAND_24_GHZ = "24ghz"
    BAND_5_GHZ = "5ghz"
    BAND_5_GHZ_DFS_ONLY = "5ghz_dfs_only"
    BAND_5_GHZ_WITH_DFS = "5ghz_with_dfs"
    BAND_6_GHZ = "6ghz"
    BOTH = "both"
    BOTH_WITH_DFS = "both_with_dfs"


FULL_BAND_SCANS = frozenset({ScanBand.BOTH, ScanBand.BOTH_WITH_DFS})


class PostBootPhase(Enum):
    AWAITING_READ = "awaiting_read"
    BUILD_CHECKED = "build_checked"
    DONE = "done"


@dataclass(frozen=True)
class SoftwareBuildSnapshot:
    os_build_version: str
    stack_version: int
    driver_version: str
    firmware_version: str

    def __str__(self) -> str:
        return (
            f"OS build version: {self.os_build_version}"
            f" stack version: {self.stack_version}"
            f" driver version: {self.driver_version}"
            f" firmware version: {self.firmware_version}"
        )


@dataclass
class ScanSnapshot:
    """Counts from the latest full-band scan. ``last_scan_time_ms`` is None until a scan is seen."""

    last_scan_time_ms: Optional[int] = None
    num_bssid_2g: int = 0
    num_bssid_above_2g: int = 0

    def clear(self) -> None:
        self.last_scan_time_ms = None
        self.num_bssid_2g = 0
        self.num_bssid_above_2g = 0

    def copy_from(self, source: ScanSnapshot) -> None:
        self.last_scan_time_ms = source.last_scan_time_ms
        self.num_bssid_2g = source.num_bssid_2g
        self.num_bssid_above_2g = source.num_bssid_above_2g

    def increment_2g(self) -> None:
        self.num_bssid_2g += 1

    def increment_above_2g(self) -> None:
        self.num_bssid_above_2g += 1

    def __str__(self) -> str:
        return (
            f"last scan time: {self.last_scan_time_ms}"
            f" APs found at 2G: {self.num_bssid_2g}"
            f" APs found above 2G: {self.num_bssid_above_2g}"
        )


class FailureStats:
    """Number of networks per failure reason with a high or significantly changed failure rate."""

    def __init__(self) -> None:
        self._count = [0] * NUMBER_FAILURE_REASON_CODE

    def clear(self) -> None:
        for i in range(NUMBER_FAILURE_REASON_CODE):
            self._count[i] = 0

    def get_count(self, reason: FailureReason) -> int:
        return self._count[reason]

    def set_count(self, reason: FailureReason, count: int) -> None:
        if count < 0:
            raise ValueError(f"Failure count must be non-negative, got {count}")
        self._count[reason] = count

    def increment_count(self, reason: FailureReason) -> None:
        self._count[reason] += 1

    def is_empty(self) -> bool:
        return not any(self._count)

    def as_dict(self) -> dict[str, int]:
        return {reason.name: self._count[reason] for reason in FailureReason}

    def __repr__(self) -> str:
        return f"FailureStats({self.as_dict()})"


@dataclass(frozen=True)
class ScanResult:
    bssid: str
    frequency_mhz: int

    def is_24ghz(self) -> bool:
        return 2400 <= self.frequency_mhz < 2500


@dataclass
class ScanData:
    band_scanned: ScanBand
    results: list[ScanResult] = field(default_factory=list)


@dataclass(frozen=True)
class NetworkConfig:
    ssid: Optional[str]
    network_id: int = -1


def is_invalid_network(config: Optional[NetworkConfig]) -> bool:
    return (
        config is None
        or not config.ssid
        or config.ssid == UNKNOWN_SSID
    )


@dataclass
class DailyDetectionSummary:
    increase: FailureStats = field(default_factory=FailureStats)
    decrease: FailureStats = field(default_factory=FailureStats)
    high: FailureStats = field(default_factory=FailureStats)
    num_sufficient_recent_only: int = 0
    num_sufficient_recent_prev: int = 0
    connection_duration_sec: int = 0
    networks_processed: int = 0


class WifiHealthError(Exception):
    """Base class for wifi-health errors."""


class SystemInfoDecodeError(WifiHealthError, ValueError):
    """Raised when a persisted system-info blob cannot be decoded."""
