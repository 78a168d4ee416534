"""
Common interface of the recursive position/heading trackers.

A tracker holds a state vector and its covariance, both None until the
first fix starts the track. Time is carried by the caller in milliseconds:
`predict` moves the track to a timestamp and `update` folds one fix in.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple

import numpy as np


class StateEstimator(ABC):
    """Time-stamped recursive tracker with a Gaussian state."""

    def __init__(self, state_dim: int):
        self.state_dim = state_dim
        self.state: Optional[np.ndarray] = None
        self.covariance: Optional[np.ndarray] = None

    @abstractmethod
    def predict(self, timestamp: int) -> None:
        """Move the track forward to `timestamp` [ms]."""

    @abstractmethod
    def update(self, *args, **kwargs) -> None:
        """Fold one fix into the track."""

    @abstractmethod
    def reset(self) -> None:
        """Drop the track; the next fix starts a new one."""

    def get_state(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Copies of the state vector and its covariance.

        Raises:
            RuntimeError: If no fix has started the track yet.
        """
        self._require_state()
        return self.state.copy(), self.covariance.copy()

    def _require_state(self) -> None:
        if self.state is None or self.covariance is None:
            raise RuntimeError("Estimator not initialized. Call initialize() or update() first.")
