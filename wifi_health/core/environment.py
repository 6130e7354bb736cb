"""Environment detection — OS build, stack version, driver and firmware versions."""

from __future__ import annotations

import logging
import platform
import re
import subprocess
from importlib import metadata
from pathlib import Path
from typing import Optional

from wifi_health.core.collaborators import WifiBackend
from wifi_health.core.models import SoftwareBuildSnapshot

logger = logging.getLogger(__name__)

_SYS_CLASS_NET = Path("/sys/class/net")


class BuildInfoExtractor:
    """Reads the software build the wireless subsystem is running right now."""

    def __init__(
        self,
        backend: Optional[WifiBackend],
        stack_package: str = "wifi-health-monitor",
    ):
        self.backend = backend
        self.stack_package = stack_package

    def extract(self) -> Optional[SoftwareBuildSnapshot]:
        """Return the live build, or None when the backend is unavailable."""
        stack_version = _detect_stack_version(self.stack_package)
        os_build_version = _replace_none(_detect_os_build())
        if self.backend is None:
            return None
        return SoftwareBuildSnapshot(
            os_build_version=os_build_version,
            stack_version=stack_version,
            driver_version=_replace_none(self.backend.get_driver_version()),
            firmware_version=_replace_none(self.backend.get_firmware_version()),
        )


class LinuxWifiBackend(WifiBackend):
    """Driver and firmware versions of a wireless interface via ``ethtool -i``."""

    def __init__(self, interface: Optional[str] = None):
        self.interface = interface or detect_wireless_interface()

    def get_driver_version(self) -> Optional[str]:
        return self._driver_info().get("version")

    def get_firmware_version(self) -> Optional[str]:
        return self._driver_info().get("firmware-version")

    def _driver_info(self) -> dict[str, str]:
        if not self.interface:
            return {}
        try:
            result = subprocess.run(
                ["ethtool", "-i", self.interface],
                capture_output=True, text=True, timeout=5,
            )
            if result.returncode == 0:
                return _parse_ethtool_info(result.stdout)
        except Exception:
            logger.debug("ethtool failed for %s", self.interface, exc_info=True)
        return {}


def detect_wireless_interface() -> Optional[str]:
    """First interface under /sys/class/net with a ``wireless`` entry."""
    try:
        for child in sorted(_SYS_CLASS_NET.iterdir()):
            if (child / "wireless").exists():
                return child.name
    except OSError:
        pass
    return None


def _parse_ethtool_info(output: str) -> dict[str, str]:
    info: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            info[key.strip()] = value.strip()
    return info


def _detect_os_build() -> str:
    try:
        if platform.system() == "Linux":
            result = subprocess.run(
                ["lsb_release", "-ds"],
                capture_output=True, text=True, timeout=5,
            )
            if result.returncode == 0 and result.stdout.strip():
                distro = result.stdout.strip().strip('"')
                return f"{distro} {platform.release()}"
        return platform.platform()
    except Exception:
        return platform.platform()


def _detect_stack_version(package: str) -> int:
    """Installed version of ``package`` as an integer version code, 0 if unknown."""
    try:
        version = metadata.version(package)
    except metadata.PackageNotFoundError:
        logger.error("Package %s not found, stack version unknown", package)
        return 0
    return version_code(version)


def version_code(version: str) -> int:
    """'1.4.2' -> 1004002. Missing parts count as 0."""
    match = re.match(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?", version)
    if not match:
        logger.warning("Unparseable version %r", version)
        return 0
    major, minor, micro = (int(p) if p else 0 for p in match.groups())
    return major * 1_000_000 + minor * 1_000 + micro


def _replace_none(value: Optional[str]) -> str:
    return "" if value is None else value
