"""Stability detection for weighbridge readings."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from statistics import fmean
from typing import Deque, Optional, Tuple

from .models import StabilityConfig


@dataclass
class StabilityDetector:
    """Sliding window stability test.

    The scale is settled once ``window_size`` samples are buffered and every
    one of them lies within ``tolerance_kg`` of their mean.
    """

    config: StabilityConfig = field(default_factory=StabilityConfig)
    _samples: Deque[float] = field(default_factory=deque, init=False)

    def add_reading(self, weight: float) -> bool:
        self._samples.append(float(weight))
        while len(self._samples) > self.config.window_size:
            self._samples.popleft()
        return self.is_stable()

    def is_stable(self) -> bool:
        if len(self._samples) < self.config.window_size:
            return False
        average = fmean(self._samples)
        return all(abs(sample - average) <= self.config.tolerance_kg for sample in self._samples)

    def stable_weight(self) -> Optional[float]:
        if not self.is_stable():
            return None
        return fmean(self._samples)

    def latest_weight(self) -> Optional[float]:
        return self._samples[-1] if self._samples else None

    def reset(self) -> None:
        self._samples.clear()

    def history(self) -> Tuple[float, ...]:
        return tuple(self._samples)

    def __len__(self) -> int:
        return len(self._samples)


__all__ = ["StabilityDetector"]
