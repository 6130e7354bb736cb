"""Health monitor — post-boot and daily detection of wireless behavior changes.

Post-boot detection looks for scan and connectivity changes across a reboot
and/or a software build change. Daily detection looks for connection
failure-rate changes per network, especially after a build change.

All entry points (alarm callbacks, scan callbacks, enable/disable, network
notifications) must be called from one thread. The monitor holds no locks.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from wifi_health.config import MonitorConfig
from wifi_health.core.collaborators import (
    CNT_CONNECTION_DURATION_SEC,
    NetworkRegistry,
    NetworkUpdateListener,
    Scanner,
    ScanListener,
    ScoreCard,
)
from wifi_health.core.environment import BuildInfoExtractor
from wifi_health.core.models import (
    FULL_BAND_SCANS,
    DailyDetectionSummary,
    FailureStats,
    MobilityState,
    NetworkConfig,
    PostBootPhase,
    ScanData,
    ScanResult,
    ScanSnapshot,
    Sufficiency,
    is_invalid_network,
)
from wifi_health.core.scheduler import Scheduler
from wifi_health.data.fingerprint import system_info_key
from wifi_health.data.store import MemoryStore
from wifi_health.data.system_info import SystemInfoState

logger = logging.getLogger(__name__)

DAILY_DETECTION_TIMER_TAG = "HealthMonitor Schedule Daily Detection Timer"
POST_BOOT_DETECTION_TIMER_TAG = "HealthMonitor Schedule Post-Boot Detection Timer"


class HealthMonitor:
    """Owns the system info state and drives both detection cycles."""

    def __init__(
        self,
        scheduler: Scheduler,
        network_registry: NetworkRegistry,
        score_card: ScoreCard,
        build_info: BuildInfoExtractor,
        config: Optional[MonitorConfig] = None,
        scanner_provider: Optional[Callable[[], Optional[Scanner]]] = None,
    ):
        self.config = config or MonitorConfig()
        self.scheduler = scheduler
        self.clock = scheduler.clock
        self.network_registry = network_registry
        self.score_card = score_card
        self.build_info = build_info
        self.scanner_provider = scanner_provider

        self.system_info = SystemInfoState(
            system_info_key(self.config.l2_key_seed)
        )
        self.first_scan_since_start = ScanSnapshot()
        # Significant increase / decrease of failure stats vs. historical data
        self.failure_stats_increase = FailureStats()
        self.failure_stats_decrease = FailureStats()
        # High failure stats from daily data without historical data
        self.failure_stats_high = FailureStats()
        self.last_daily_summary: Optional[DailyDetectionSummary] = None
        self.post_boot_phase: Optional[PostBootPhase] = None

        self._memory_store: Optional[MemoryStore] = None
        self._wifi_enabled = False
        self._verbose = self.config.verbose
        self._scanner: Optional[Scanner] = None
        self._scan_listener = _FullBandScanListener(self)

        network_registry.add_on_network_update_listener(_NetworkListener(self))

    def enable_verbose_logging(self, verbose: bool) -> None:
        self._verbose = verbose

    @property
    def wifi_enabled(self) -> bool:
        return self._wifi_enabled

    @property
    def memory_store(self) -> Optional[MemoryStore]:
        return self._memory_store

    # ── Host surface ─────────────────────────────────────────────────

    def install_memory_store(self, memory_store: MemoryStore) -> None:
        """Install a memory store, request reads for post-boot detection and arm both alarms."""
        if self._memory_store is None:
            logger.info("Installing MemoryStore")
        else:
            logger.warning("Reinstalling MemoryStore")
        self._memory_store = memory_store
        self.system_info.memory_store = memory_store
        self._request_read_for_post_boot_detection()
        self._set_daily_detection_alarm()
        self._set_post_boot_detection_alarm()

    def set_wifi_enabled(self, enable: bool) -> None:
        """On enable, retrieve the scanner. On disable, write state out."""
        self._wifi_enabled = enable
        self._logd("Set WiFi %s", "enabled" if enable else "disabled")
        if enable:
            self._retrieve_scanner()
        else:
            self.do_writes()

    def do_writes(self) -> None:
        self.system_info.write_to_memory()

    def set_device_mobility_state(self, state: MobilityState) -> None:
        self._logd("Device mobility state: %s", state.value)
        self.system_info.set_mobility_state(state)

    def clear(self) -> None:
        """Factory reset."""
        self.system_info.clear_all()

    # ── Scans ────────────────────────────────────────────────────────

    def _retrieve_scanner(self) -> None:
        # Done lazily because the scanning service may come up after us.
        if self._scanner is not None or self.scanner_provider is None:
            return
        self._scanner = self.scanner_provider()
        if self._scanner is None:
            return
        self._scanner.register_scan_listener(self._scan_listener)

    def handle_scan_results(self, results: list[ScanResult]) -> None:
        """Aggregate one full-band scan into the current scan snapshot."""
        scan = self.system_info.curr_scan
        scan.clear()
        scan.last_scan_time_ms = self.clock.wall_clock_millis()
        for result in results:
            if result.is_24ghz():
                scan.increment_2g()
            else:
                scan.increment_above_2g()
        if self.first_scan_since_start.last_scan_time_ms is None:
            self.first_scan_since_start.copy_from(scan)
        self.system_info.mark_dirty()
        self._logd(
            "2G scanResult count: %d, Above2g scanResult count: %d",
            scan.num_bssid_2g, scan.num_bssid_above_2g,
        )

    # ── Alarms ───────────────────────────────────────────────────────

    def _set_daily_detection_alarm(self) -> None:
        self.scheduler.set_at_hour(
            DAILY_DETECTION_TIMER_TAG,
            self.config.daily_detection_hour,
            self._on_daily_detection_alarm,
        )

    def _set_post_boot_detection_alarm(self) -> None:
        self.scheduler.set_once(
            POST_BOOT_DETECTION_TIMER_TAG,
            self.config.post_boot_wait_ms,
            self.run_post_boot_detection,
        )

    def _on_daily_detection_alarm(self) -> None:
        # Re-arm for the next day first so a failing run doesn't stop detection.
        self._set_daily_detection_alarm()
        self.run_daily_detection()

    # ── Daily detection ──────────────────────────────────────────────

    def run_daily_detection(self) -> DailyDetectionSummary:
        self._logd("Run daily detection")
        # Fresh accumulators per run; earlier summaries keep their own counts.
        self.failure_stats_increase = FailureStats()
        self.failure_stats_decrease = FailureStats()
        self.failure_stats_high = FailureStats()
        summary = DailyDetectionSummary(
            increase=self.failure_stats_increase,
            decrease=self.failure_stats_decrease,
            high=self.failure_stats_high,
        )

        for network in self._valid_configured_networks():
            per_network = self.score_card.lookup_network(network.ssid)
            self._logd("before daily update: %s %s", network.ssid, per_network)
            sufficiency = per_network.daily_detection(
                increase=self.failure_stats_increase,
                decrease=self.failure_stats_decrease,
                high=self.failure_stats_high,
            )
            if sufficiency == Sufficiency.SUFFICIENT_RECENT_ONLY:
                summary.num_sufficient_recent_only += 1
            elif sufficiency == Sufficiency.SUFFICIENT_RECENT_PREV:
                summary.num_sufficient_recent_prev += 1
            summary.connection_duration_sec += per_network.recent_count(
                CNT_CONNECTION_DURATION_SEC
            )
            per_network.update_after_daily_detection()
            summary.networks_processed += 1
            self._logd("after daily update: %s %s", network.ssid, per_network)

        self._logd("total connection duration: %d", summary.connection_duration_sec)
        self._logd(
            "#networks w/ sufficient recent stats: %d",
            summary.num_sufficient_recent_only,
        )
        self._logd(
            "#networks w/ sufficient recent/prev stats: %d",
            summary.num_sufficient_recent_prev,
        )
        self.last_daily_summary = summary
        self.do_writes()
        self.score_card.do_writes()
        return summary

    # ── Post-boot detection ──────────────────────────────────────────

    def _request_read_for_post_boot_detection(self) -> None:
        self.post_boot_phase = PostBootPhase.AWAITING_READ
        self.system_info.read_from_memory()
        # A build change updates every network, so read them all now.
        self._request_read_all_networks()

    def _request_read_all_networks(self) -> None:
        for network in self._valid_configured_networks():
            per_network = self.score_card.fetch_by_network(network.ssid)
            if per_network is None:
                # Not cached yet; lookup creates it and reads it from storage.
                self.score_card.lookup_network(network.ssid)
            else:
                self.score_card.request_read_network(per_network)

    def run_post_boot_detection(self) -> Optional[int]:
        """Returns the scan failure bitmask, or None if the cycle was skipped."""
        self._logd("Run post-boot detection")
        self.system_info.finish_pending_read()
        if not self._post_boot_build_check():
            return None
        self.post_boot_phase = PostBootPhase.BUILD_CHECKED
        scan_failure = self.system_info.post_boot_abnormal_scan_detection(
            self.first_scan_since_start,
            max_interval_ms=self.config.max_scan_interval_ms,
            min_bssid_2g=self.config.min_bssid_2g,
            min_bssid_above_2g=self.config.min_bssid_above_2g,
        )
        self._logd("postBootAbnormalScanDetection: %d", scan_failure)
        self.do_writes()
        self.post_boot_phase = PostBootPhase.DONE
        return scan_failure

    def _post_boot_build_check(self) -> bool:
        """False when the live build can't be read and the cycle must stop."""
        current = self.build_info.extract()
        if current is None:
            logger.warning(
                "Networking backend unavailable, skipping post-boot detection"
            )
            return False
        self._logd("%s", current)

        if self.system_info.curr_software_build is None:
            self._logd("Missing current software build info from memory")
            self.system_info.set_curr_software_build(current)
            return True
        if self.system_info.detect_build_change(current):
            logger.info("Detected SW build change")
            self._update_all_networks_after_build_change()
            self.system_info.update_build_after_change(current)
        else:
            self._logd("Detected no SW build change")
        return True

    def _update_all_networks_after_build_change(self) -> None:
        for network in self._valid_configured_networks():
            per_network = self.score_card.lookup_network(network.ssid)
            self._logd("before SW build update: %s %s", network.ssid, per_network)
            per_network.update_after_sw_build_change()
            self._logd("after SW build update: %s %s", network.ssid, per_network)

    # ── Helpers ──────────────────────────────────────────────────────

    def _valid_configured_networks(self) -> list[NetworkConfig]:
        return [
            network
            for network in self.network_registry.get_configured_networks()
            if not is_invalid_network(network)
        ]

    def _logd(self, msg: str, *args: Any) -> None:
        if self._verbose:
            logger.debug(msg, *args)


class _NetworkListener(NetworkUpdateListener):
    def __init__(self, monitor: HealthMonitor):
        self._monitor = monitor

    def on_network_added(self, config: NetworkConfig) -> None:
        if is_invalid_network(config):
            return
        self._monitor.score_card.lookup_network(config.ssid)

    def on_network_removed(self, config: NetworkConfig) -> None:
        if is_invalid_network(config):
            return
        self._monitor.score_card.remove_network(config.ssid)


class _FullBandScanListener(ScanListener):
    """Buffers full results and hands complete full-band scans to the monitor."""

    def __init__(self, monitor: HealthMonitor):
        self._monitor = monitor
        self._scan_details: list[ScanResult] = []

    def clear_scan_details(self) -> None:
        self._scan_details.clear()

    def on_full_result(self, result: ScanResult) -> None:
        if not self._monitor.wifi_enabled:
            return
        self._scan_details.append(result)

    def on_results(self, scan_datas: list[ScanData]) -> None:
        if not self._monitor.wifi_enabled:
            self.clear_scan_details()
            return
        if scan_datas and scan_datas[0].band_scanned in FULL_BAND_SCANS:
            self._monitor.handle_scan_results(self._scan_details)
        self.clear_scan_details()

    def on_failure(self, reason: int, description: str) -> None:
        self._monitor._logd(
            "Scan listener failure: reason: %d description: %s",
            reason, description,
        )
