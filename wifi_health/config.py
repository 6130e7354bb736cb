"""Monitor configuration — defaults, validation and layered resolution."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional, Protocol


_ENV_PREFIX = "WIFI_HEALTH_"

_TRUE_VALUES = {"1", "true", "on", "yes"}
_FALSE_VALUES = {"0", "false", "off", "no"}


class ConfigSource(Protocol):
    def get_config(self, key: str) -> Optional[str]: ...


@dataclass(frozen=True)
class MonitorConfig:
    # Long enough after boot for the memory store read to have completed.
    post_boot_wait_ms: int = 25_000
    # Local hour of day the daily detection fires at.
    daily_detection_hour: int = 0
    # Max gap between the pre-boot and post-boot scans to compare them.
    max_scan_interval_ms: int = 60_000
    # Min BSSIDs a normal scan finds, per band, to call the other scan abnormal.
    min_bssid_2g: int = 2
    min_bssid_above_2g: int = 2
    # Installed distribution whose version is the "stack version" of the build.
    stack_package: str = "wifi-health-monitor"
    l2_key_seed: str = ""
    verbose: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.daily_detection_hour <= 23:
            raise ValueError(
                f"daily_detection_hour must be in 0..23, "
                f"got {self.daily_detection_hour}"
            )
        for name in (
            "post_boot_wait_ms",
            "max_scan_interval_ms",
            "min_bssid_2g",
            "min_bssid_above_2g",
        ):
            if getattr(self, name) < 0:
                raise ValueError(
                    f"{name} must be non-negative, got {getattr(self, name)}"
                )


def config_key(field_name: str) -> str:
    """Store config key for a MonitorConfig field, e.g. ``post-boot-wait-ms``."""
    return field_name.replace("_", "-")


def env_var(field_name: str) -> str:
    return _ENV_PREFIX + field_name.upper()


VALID_KEYS = tuple(config_key(f.name) for f in fields(MonitorConfig))


def parse_value(field_name: str, raw: str) -> Any:
    """Convert a raw string to the type of the named MonitorConfig field."""
    default = getattr(MonitorConfig(), field_name)
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"{config_key(field_name)} must be on/off or true/false")
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            raise ValueError(
                f"{config_key(field_name)} must be an integer, got {raw!r}"
            )
    return raw


def resolve_config(
    store: Optional[ConfigSource] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> MonitorConfig:
    """Resolve each setting: env var → store config → default."""
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for f in fields(MonitorConfig):
        raw = environ.get(env_var(f.name))
        if raw is None and store is not None:
            raw = store.get_config(config_key(f.name))
        if raw is not None:
            values[f.name] = parse_value(f.name, raw)
    return MonitorConfig(**values)
