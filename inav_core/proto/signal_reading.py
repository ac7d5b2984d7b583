"""
Signal Reading Message Schema.

Defines the abstracted RSSI readings produced by the (external) BLE and
Wi-Fi scanners. One batch of readings is consumed per estimation cycle.
"""

from dataclasses import dataclass
from typing import Optional
from enum import IntEnum

# Plausible RSSI range for BLE / Wi-Fi receivers (dBm)
RSSI_MIN_DBM = -100
RSSI_MAX_DBM = 0

# Typical calibrated iBeacon power at 1 m (dBm)
DEFAULT_REFERENCE_POWER_DBM = -59


class SignalSource(IntEnum):
    """Kind of radio transmitter that produced a reading."""

    BEACON = 0          # BLE beacon
    ACCESS_POINT = 1    # Wi-Fi access point


@dataclass(frozen=True)
class SignalReading:
    """
    RSSI reading from one transmitter.

    Attributes:
        source_id: Beacon ID or access-point BSSID
        rssi: Received signal strength (dBm)
        reference_power_at_1m: Calibrated power at 1 m (dBm)
        source: Transmitter kind
        timestamp_ms: Scan time (ms), if known

    Notes:
        - The scanner is expected to deliver rssi already in [-100, 0];
          the signal model clamps again before use.
    """

    source_id: str
    rssi: int
    reference_power_at_1m: int = DEFAULT_REFERENCE_POWER_DBM
    source: SignalSource = SignalSource.BEACON
    timestamp_ms: Optional[int] = None

    def __post_init__(self):
        """Validate reading."""
        if not self.source_id:
            raise ValueError("Reading source_id cannot be empty")

    @property
    def clamped_rssi(self) -> int:
        """RSSI clamped to the plausible sensor range."""
        return clamp_rssi(self.rssi)


def clamp_rssi(rssi: int) -> int:
    """Clamp an RSSI value to [RSSI_MIN_DBM, RSSI_MAX_DBM]."""
    return max(RSSI_MIN_DBM, min(RSSI_MAX_DBM, rssi))
