"""Tests for wifi_health.core.environment — build info extraction."""

from __future__ import annotations

import subprocess
from importlib import metadata
from unittest.mock import MagicMock, patch

import pytest

from wifi_health.core.collaborators import WifiBackend
from wifi_health.core.environment import (
    BuildInfoExtractor,
    LinuxWifiBackend,
    _detect_os_build,
    _detect_stack_version,
    _parse_ethtool_info,
    detect_wireless_interface,
    version_code,
)
from wifi_health.core.models import SoftwareBuildSnapshot


ETHTOOL_OUTPUT = """\
driver: iwlwifi
version: 6.8.0-45-generic
firmware-version: 86.fb5c9aeb.0 ty-a0-gf-a0-86.uc
expansion-rom-version:
bus-info: 0000:00:14.3
supports-statistics: yes
"""


def _backend(driver="d1", firmware="f1") -> MagicMock:
    backend = MagicMock(spec=WifiBackend)
    backend.get_driver_version.return_value = driver
    backend.get_firmware_version.return_value = firmware
    return backend


# ---------------------------------------------------------------------------
# version_code
# ---------------------------------------------------------------------------

class TestVersionCode:
    @pytest.mark.parametrize("version,expected", [
        ("1.4.2", 1_004_002),
        ("0.1.0", 1_000),
        ("2", 2_000_000),
        ("3.10", 3_010_000),
        ("0.1.dev5+g1234", 1_000),
        ("1.2.3rc1", 1_002_003),
    ])
    def test_parses(self, version, expected):
        assert version_code(version) == expected

    def test_unparseable_is_zero(self):
        assert version_code("unknown") == 0

    def test_ordering_follows_versions(self):
        assert version_code("1.10.0") > version_code("1.9.9")


# ---------------------------------------------------------------------------
# _detect_stack_version
# ---------------------------------------------------------------------------

class TestDetectStackVersion:
    @patch("wifi_health.core.environment.metadata.version")
    def test_installed_package(self, mock_version):
        mock_version.return_value = "2.3.4"
        assert _detect_stack_version("wifi-health-monitor") == 2_003_004
        mock_version.assert_called_once_with("wifi-health-monitor")

    @patch("wifi_health.core.environment.metadata.version")
    def test_missing_package_is_zero(self, mock_version, caplog):
        mock_version.side_effect = metadata.PackageNotFoundError("nope")
        assert _detect_stack_version("nope") == 0
        assert "not found" in caplog.text


# ---------------------------------------------------------------------------
# _detect_os_build
# ---------------------------------------------------------------------------

class TestDetectOSBuild:
    @patch("wifi_health.core.environment.subprocess.run")
    @patch("wifi_health.core.environment.platform")
    def test_linux_lsb_release(self, mock_platform, mock_run):
        mock_platform.system.return_value = "Linux"
        mock_platform.release.return_value = "6.8.0-45-generic"
        mock_run.return_value = MagicMock(
            returncode=0, stdout='"Ubuntu 24.04 LTS"\n'
        )
        assert _detect_os_build() == "Ubuntu 24.04 LTS 6.8.0-45-generic"
        mock_run.assert_called_once_with(
            ["lsb_release", "-ds"],
            capture_output=True, text=True, timeout=5,
        )

    @patch("wifi_health.core.environment.subprocess.run")
    @patch("wifi_health.core.environment.platform")
    def test_lsb_release_failure_falls_back(self, mock_platform, mock_run):
        mock_platform.system.return_value = "Linux"
        mock_platform.platform.return_value = "Linux-6.8.0-generic-x86_64"
        mock_run.return_value = MagicMock(returncode=1, stdout="")
        assert _detect_os_build() == "Linux-6.8.0-generic-x86_64"

    @patch("wifi_health.core.environment.subprocess.run")
    @patch("wifi_health.core.environment.platform")
    def test_lsb_release_missing_falls_back(self, mock_platform, mock_run):
        mock_platform.system.return_value = "Linux"
        mock_platform.platform.return_value = "Linux-6.8.0-generic-x86_64"
        mock_run.side_effect = FileNotFoundError("lsb_release")
        assert _detect_os_build() == "Linux-6.8.0-generic-x86_64"

    @patch("wifi_health.core.environment.subprocess.run")
    @patch("wifi_health.core.environment.platform")
    def test_non_linux_uses_platform(self, mock_platform, mock_run):
        mock_platform.system.return_value = "Darwin"
        mock_platform.platform.return_value = "macOS-14.2-arm64"
        assert _detect_os_build() == "macOS-14.2-arm64"
        mock_run.assert_not_called()


# ---------------------------------------------------------------------------
# BuildInfoExtractor
# ---------------------------------------------------------------------------

class TestBuildInfoExtractor:
    @patch("wifi_health.core.environment._detect_os_build", return_value="A")
    @patch("wifi_health.core.environment._detect_stack_version", return_value=1)
    def test_full_snapshot(self, _stack, _os):
        build = BuildInfoExtractor(_backend()).extract()
        assert build == SoftwareBuildSnapshot("A", 1, "d1", "f1")

    @patch("wifi_health.core.environment._detect_os_build", return_value="A")
    @patch("wifi_health.core.environment._detect_stack_version", return_value=1)
    def test_unknown_versions_become_empty(self, _stack, _os):
        build = BuildInfoExtractor(_backend(driver=None, firmware=None)).extract()
        assert build.driver_version == ""
        assert build.firmware_version == ""

    @patch("wifi_health.core.environment._detect_os_build", return_value="A")
    @patch("wifi_health.core.environment._detect_stack_version", return_value=1)
    def test_no_backend_returns_none(self, _stack, _os):
        assert BuildInfoExtractor(None).extract() is None

    @patch("wifi_health.core.environment._detect_os_build", return_value="A")
    @patch("wifi_health.core.environment._detect_stack_version", return_value=7)
    def test_stack_package_passed_through(self, mock_stack, _os):
        BuildInfoExtractor(_backend(), stack_package="my-stack").extract()
        mock_stack.assert_called_once_with("my-stack")


# ---------------------------------------------------------------------------
# LinuxWifiBackend
# ---------------------------------------------------------------------------

class TestLinuxWifiBackend:
    def test_parse_ethtool_info(self):
        info = _parse_ethtool_info(ETHTOOL_OUTPUT)
        assert info["driver"] == "iwlwifi"
        assert info["firmware-version"] == "86.fb5c9aeb.0 ty-a0-gf-a0-86.uc"
        assert info["expansion-rom-version"] == ""

    @patch("wifi_health.core.environment.subprocess.run")
    def test_versions_from_ethtool(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout=ETHTOOL_OUTPUT)
        backend = LinuxWifiBackend("wlan0")
        assert backend.get_driver_version() == "6.8.0-45-generic"
        assert backend.get_firmware_version() == "86.fb5c9aeb.0 ty-a0-gf-a0-86.uc"
        mock_run.assert_called_with(
            ["ethtool", "-i", "wlan0"],
            capture_output=True, text=True, timeout=5,
        )

    @patch("wifi_health.core.environment.subprocess.run")
    def test_ethtool_failure_gives_none(self, mock_run):
        mock_run.return_value = MagicMock(returncode=71, stdout="")
        backend = LinuxWifiBackend("wlan0")
        assert backend.get_driver_version() is None
        assert backend.get_firmware_version() is None

    @patch("wifi_health.core.environment.subprocess.run")
    def test_ethtool_timeout_gives_none(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="ethtool", timeout=5)
        assert LinuxWifiBackend("wlan0").get_driver_version() is None

    @patch("wifi_health.core.environment.detect_wireless_interface", return_value=None)
    @patch("wifi_health.core.environment.subprocess.run")
    def test_no_interface_skips_ethtool(self, mock_run, _detect):
        backend = LinuxWifiBackend()
        assert backend.interface is None
        assert backend.get_driver_version() is None
        mock_run.assert_not_called()

    def test_detect_wireless_interface(self, tmp_path):
        (tmp_path / "eth0").mkdir()
        (tmp_path / "lo").mkdir()
        (tmp_path / "wlp2s0" / "wireless").mkdir(parents=True)
        with patch("wifi_health.core.environment._SYS_CLASS_NET", tmp_path):
            assert detect_wireless_interface() == "wlp2s0"

    def test_detect_wireless_interface_missing_sysfs(self, tmp_path):
        with patch("wifi_health.core.environment._SYS_CLASS_NET", tmp_path / "none"):
            assert detect_wireless_interface() is None
