"""System info state — the device-global record persisted across reboots.

Holds the current and previous software build, the scan counts of the
latest full-band scan (``curr_scan``) and, once read back from the memory
store, the counts of the last scan before the previous shutdown
(``prev_scan``).

Reads are asynchronous. ``read_from_memory`` parks a single-shot future
that the store's callback completes; ``finish_pending_read`` consumes it
without blocking. A read that has not completed by then is treated exactly
like "nothing stored". This is an accepted race: the post-boot timer waits
long enough that the read has completed in practice.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import Future
from typing import Any, Optional

from wifi_health.core.models import (
    NOT_AVAILABLE,
    MobilityState,
    ScanSnapshot,
    SoftwareBuildSnapshot,
    SystemInfoDecodeError,
)
from wifi_health.data.store import MemoryStore

logger = logging.getLogger(__name__)

SYSTEM_INFO_DATA_NAME = "systemInfoData"

SCAN_FAILURE_PRE_BOOT_2G = 1
SCAN_FAILURE_PRE_BOOT_ABOVE_2G = 2
SCAN_FAILURE_POST_BOOT_2G = 4
SCAN_FAILURE_POST_BOOT_ABOVE_2G = 8


def detect_build_change(
    current: SoftwareBuildSnapshot,
    persisted: Optional[SoftwareBuildSnapshot],
) -> bool:
    """True iff a persisted build exists and differs from ``current`` in any field."""
    if persisted is None:
        return False
    return persisted != current


def abnormal_scan_bitmask(
    pre_boot: ScanSnapshot,
    post_boot: ScanSnapshot,
    max_interval_ms: int = 60_000,
    min_bssid_2g: int = 2,
    min_bssid_above_2g: int = 2,
) -> int:
    """Compare the last pre-boot scan with the first post-boot scan.

    Returns 0 when either scan is missing or they are too far apart,
    otherwise the sum of:

    - 1: pre-boot 2G scan looked broken
    - 2: pre-boot above-2G scan looked broken
    - 4: post-boot 2G scan looks broken
    - 8: post-boot above-2G scan looks broken
    """
    pre_ts = pre_boot.last_scan_time_ms
    post_ts = post_boot.last_scan_time_ms
    if pre_ts is None or post_ts is None:
        return 0
    if post_ts - pre_ts > max_interval_ms:
        return 0

    bitmask = 0
    if pre_boot.num_bssid_2g == 0 and post_boot.num_bssid_2g >= min_bssid_2g:
        bitmask += SCAN_FAILURE_PRE_BOOT_2G
    if (pre_boot.num_bssid_above_2g == 0
            and post_boot.num_bssid_above_2g >= min_bssid_above_2g):
        bitmask += SCAN_FAILURE_PRE_BOOT_ABOVE_2G
    if post_boot.num_bssid_2g == 0 and pre_boot.num_bssid_2g >= min_bssid_2g:
        bitmask += SCAN_FAILURE_POST_BOOT_2G
    if (post_boot.num_bssid_above_2g == 0
            and pre_boot.num_bssid_above_2g >= min_bssid_above_2g):
        bitmask += SCAN_FAILURE_POST_BOOT_ABOVE_2G
    return bitmask


# ── Codec ────────────────────────────────────────────────────────────


def _build_to_dict(build: SoftwareBuildSnapshot) -> dict[str, Any]:
    return {
        "os_build_version": build.os_build_version,
        "stack_version": build.stack_version,
        "driver_version": build.driver_version,
        "firmware_version": build.firmware_version,
    }


def _expect(value: Any, kind: type, name: str) -> Any:
    if isinstance(value, bool) or not isinstance(value, kind):
        raise SystemInfoDecodeError(
            f"Field {name!r} has type {type(value).__name__}, "
            f"expected {kind.__name__}"
        )
    return value


def _build_from_dict(d: Any, name: str) -> SoftwareBuildSnapshot:
    if not isinstance(d, dict):
        raise SystemInfoDecodeError(f"Field {name!r} is not an object")
    return SoftwareBuildSnapshot(
        os_build_version=_expect(
            d.get("os_build_version", NOT_AVAILABLE), str, "os_build_version"
        ),
        stack_version=_expect(d.get("stack_version", 0), int, "stack_version"),
        driver_version=_expect(
            d.get("driver_version", NOT_AVAILABLE), str, "driver_version"
        ),
        firmware_version=_expect(
            d.get("firmware_version", NOT_AVAILABLE), str, "firmware_version"
        ),
    )


def decode_system_info(data: bytes) -> dict[str, Any]:
    """Parse and validate a stored blob. Raises SystemInfoDecodeError."""
    try:
        raw = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SystemInfoDecodeError(f"Malformed system info blob: {e}") from e
    if not isinstance(raw, dict):
        raise SystemInfoDecodeError("System info blob is not an object")

    decoded: dict[str, Any] = {}
    for name in ("curr_software_build", "prev_software_build"):
        if raw.get(name) is not None:
            decoded[name] = _build_from_dict(raw[name], name)
    for name in (
        "last_scan_time_ms",
        "num_bssid_last_scan_2g",
        "num_bssid_last_scan_above_2g",
        "scan_failure",
    ):
        if raw.get(name) is not None:
            decoded[name] = _expect(raw[name], int, name)
    if raw.get("mobility_state") is not None:
        try:
            decoded["mobility_state"] = MobilityState(raw["mobility_state"])
        except ValueError as e:
            raise SystemInfoDecodeError(str(e)) from e
    return decoded


# ── State ────────────────────────────────────────────────────────────


class MemoryStoreAccess:
    """Base for records read from and written to a memory store under one key."""

    def __init__(self, l2_key: str):
        self.l2_key = l2_key
        self.memory_store: Optional[MemoryStore] = None
        self._pending_read: Optional[Future] = None

    def _request_read(self, name: str) -> None:
        if self.memory_store is None:
            return
        future: Future = Future()
        self._pending_read = future

        def _on_read(value: Optional[bytes]) -> None:
            if not future.done():
                future.set_result(value)

        self.memory_store.read(self.l2_key, name, _on_read)

    def _finish_pending_read_bytes(self) -> Optional[bytes]:
        """Consume the pending read. None if nothing was requested or it hasn't completed."""
        future, self._pending_read = self._pending_read, None
        if future is None or not future.done():
            return None
        return future.result()


class SystemInfoState(MemoryStoreAccess):
    """Software build info and scan statistics of the wireless subsystem."""

    def __init__(self, l2_key: str):
        super().__init__(l2_key)
        self.curr_software_build: Optional[SoftwareBuildSnapshot] = None
        self.prev_software_build: Optional[SoftwareBuildSnapshot] = None
        self.curr_scan = ScanSnapshot()
        self.prev_scan = ScanSnapshot()
        self.mobility_state = MobilityState.UNKNOWN
        self.scan_failure = 0
        self.dirty = False

    def mark_dirty(self) -> None:
        self.dirty = True

    def set_curr_software_build(self, build: SoftwareBuildSnapshot) -> None:
        self.curr_software_build = build
        self.dirty = True

    def set_mobility_state(self, state: MobilityState) -> None:
        if state != self.mobility_state:
            self.mobility_state = state
            self.dirty = True

    def detect_build_change(self, current: SoftwareBuildSnapshot) -> bool:
        if self.curr_software_build is not None:
            logger.debug("Build from memory: %s", self.curr_software_build)
            logger.debug("Build from software: %s", current)
        return detect_build_change(current, self.curr_software_build)

    def update_build_after_change(self, current: SoftwareBuildSnapshot) -> None:
        """Rotate snapshots: stored current becomes previous, ``current`` becomes current."""
        self.prev_software_build = self.curr_software_build
        self.curr_software_build = current
        self.dirty = True

    def post_boot_abnormal_scan_detection(
        self,
        first_scan: ScanSnapshot,
        max_interval_ms: int = 60_000,
        min_bssid_2g: int = 2,
        min_bssid_above_2g: int = 2,
    ) -> int:
        logger.debug("preBootScan: %s", self.prev_scan)
        logger.debug("postBootScan: %s", first_scan)
        self.scan_failure = abnormal_scan_bitmask(
            self.prev_scan,
            first_scan,
            max_interval_ms=max_interval_ms,
            min_bssid_2g=min_bssid_2g,
            min_bssid_above_2g=min_bssid_above_2g,
        )
        self.dirty = True
        return self.scan_failure

    def clear_all(self) -> None:
        self.curr_software_build = None
        self.prev_software_build = None
        self.curr_scan.clear()
        self.prev_scan.clear()
        self.dirty = True

    # ── Persistence ──────────────────────────────────────────────────

    def read_from_memory(self) -> None:
        self._request_read(SYSTEM_INFO_DATA_NAME)

    def finish_pending_read(self) -> bool:
        """Load the pending read into this state. False if nothing usable arrived."""
        serialized = self._finish_pending_read_bytes()
        if serialized is None:
            logger.debug("No system info read back from memory")
            return False
        try:
            decoded = decode_system_info(serialized)
        except SystemInfoDecodeError:
            logger.exception("Failed to deserialize system info")
            return False
        self._load(decoded)
        return True

    def _load(self, decoded: dict[str, Any]) -> None:
        if "curr_software_build" in decoded:
            self.curr_software_build = decoded["curr_software_build"]
        if "prev_software_build" in decoded:
            self.prev_software_build = decoded["prev_software_build"]
        if "num_bssid_last_scan_2g" in decoded:
            self.prev_scan.num_bssid_2g = decoded["num_bssid_last_scan_2g"]
        if "num_bssid_last_scan_above_2g" in decoded:
            self.prev_scan.num_bssid_above_2g = decoded[
                "num_bssid_last_scan_above_2g"
            ]
        if "last_scan_time_ms" in decoded:
            self.prev_scan.last_scan_time_ms = decoded["last_scan_time_ms"]

    def to_bytes(self) -> bytes:
        payload: dict[str, Any] = {
            "last_scan_time_ms": self.curr_scan.last_scan_time_ms,
            "num_bssid_last_scan_2g": self.curr_scan.num_bssid_2g,
            "num_bssid_last_scan_above_2g": self.curr_scan.num_bssid_above_2g,
            "scan_failure": self.scan_failure,
            "mobility_state": self.mobility_state.value,
        }
        if self.curr_software_build is not None:
            payload["curr_software_build"] = _build_to_dict(
                self.curr_software_build
            )
        if self.prev_software_build is not None:
            payload["prev_software_build"] = _build_to_dict(
                self.prev_software_build
            )
        return json.dumps(payload, sort_keys=True).encode("utf-8")

    def write_to_memory(self) -> bool:
        """Write if a store is installed and something changed. Returns True if written."""
        if self.memory_store is None or not self.dirty:
            return False
        self.memory_store.write(self.l2_key, SYSTEM_INFO_DATA_NAME, self.to_bytes())
        self.dirty = False
        return True

    def __str__(self) -> str:
        parts = []
        if self.curr_software_build is not None:
            parts.append(f"current SW build: {self.curr_software_build}")
        if self.prev_software_build is not None:
            parts.append(f"previous SW build: {self.prev_software_build}")
        parts.append(f"currScanStats: {self.curr_scan}")
        parts.append(f"prevScanStats: {self.prev_scan}")
        return " ".join(parts)
