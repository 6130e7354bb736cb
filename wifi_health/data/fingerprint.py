"""Fingerprinting — stable storage keys for memory store records."""

from __future__ import annotations

import hashlib
import json


# Stands in for the device MAC in records that are device-global.
DEFAULT_MAC_ADDRESS = "02:00:00:00:00:00"


def compute_l2_key(ssid: str, mac_address: str, seed: str) -> str:
    """Hash (ssid, mac, seed) into a 16-char hex key.

    Same inputs = same key across process restarts, so a record written
    before a reboot is found again after it.
    """
    state = {
        "ssid": ssid,
        "mac": mac_address.lower(),
        "seed": seed,
    }
    serialized = json.dumps(state, sort_keys=True).encode()
    return hashlib.sha256(serialized).hexdigest()[:16]


def system_info_key(seed: str) -> str:
    """Key for the device-global system info record."""
    return compute_l2_key("", DEFAULT_MAC_ADDRESS, seed)
