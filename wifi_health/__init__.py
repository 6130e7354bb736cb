"""Wi-Fi Health Monitor - post-boot and daily anomaly detection for a wireless subsystem."""

try:
    from wifi_health._version import version as __version__
except ImportError:
    __version__ = "0.0.0.dev0"
