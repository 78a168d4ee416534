"""
BLE beacon record and RSSI ranging.

A Beacon is a fixed transmitter at a surveyed (x, y) position. Its range
estimate is refreshed from each received RSSI with the log-distance path-loss
model:

    d = 10^((P_tx - RSSI) / (10 n))

where P_tx is the expected RSSI at 1 m (tx_power) and n is the path-loss
exponent (2.0 for free space).
"""

import logging
from typing import Optional

import numpy as np

_LOGGER = logging.getLogger(__name__)

DEFAULT_PATH_LOSS_EXPONENT = 2.0


class Beacon:
    """
    Mutable BLE beacon state.

    Attributes:
        mac_address: Hardware address, used as the beacon identity.
        x, y: Surveyed position in building coordinates [m].
        tx_power: Calibrated RSSI at 1 m [dBm].
        name: Optional human-readable label.
        estimated_distance: Latest range estimate [m], None before any RSSI.
        last_rssi: Latest RSSI [dBm].
        last_seen_ms: Time of the latest RSSI [ms].

    Example:
        >>> beacon = Beacon("AA:BB:CC:DD:EE:01", x=0.0, y=0.0, tx_power=-59)
        >>> beacon.update_rssi(-65, timestamp_ms=1000)
        >>> round(beacon.estimated_distance, 2)
        2.0
    """

    def __init__(
        self,
        mac_address: str,
        x: float,
        y: float,
        tx_power: int,
        name: Optional[str] = None,
        estimated_distance: Optional[float] = None,
        distance_confidence: float = 0.0,
        last_rssi: Optional[int] = None,
        last_seen_ms: int = 0,
    ):
        self.mac_address = mac_address
        self.x = float(x)
        self.y = float(y)
        self.tx_power = tx_power
        self.name = name
        self.estimated_distance = estimated_distance
        self.distance_confidence = distance_confidence
        self.last_rssi = tx_power if last_rssi is None else last_rssi
        self.last_seen_ms = last_seen_ms

    @property
    def distance_confidence(self) -> float:
        """Confidence of the current range estimate in [0, 1]."""
        return self._distance_confidence

    @distance_confidence.setter
    def distance_confidence(self, value: float) -> None:
        self._distance_confidence = max(0.0, min(1.0, float(value)))

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y])

    def calculate_distance(self, path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT) -> float:
        """Range implied by last_rssi [m]."""
        return 10.0 ** ((self.tx_power - self.last_rssi) / (10.0 * path_loss_exponent))

    def update_rssi(self, rssi: int, timestamp_ms: int) -> None:
        """Record a new RSSI reading and refresh the range estimate."""
        self.last_rssi = rssi
        self.last_seen_ms = timestamp_ms
        self.estimated_distance = self.calculate_distance()
        _LOGGER.debug("Beacon %s rssi=%d dBm -> %.2f m", self.mac_address, rssi,
                      self.estimated_distance)

    def is_stale(self, now_ms: int, stale_after_ms: int) -> bool:
        return now_ms - self.last_seen_ms > stale_after_ms

    def __repr__(self) -> str:
        return (f"Beacon({self.mac_address!r}, x={self.x}, y={self.y}, "
                f"tx_power={self.tx_power}, distance={self.estimated_distance})")
