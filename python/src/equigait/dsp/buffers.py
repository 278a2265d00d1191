"""Fixed-capacity rolling windows for the sensor channels."""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, Generic, List, Optional, TypeVar

import numpy as np

from .._core import TransformedSample

T = TypeVar("T")


class RollingWindow(Generic[T]):
    """Insertion-ordered buffer of the last *capacity* values of one channel.

    Appending is O(1); once full, the oldest value is evicted.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._data: Deque[T] = deque(maxlen=capacity)

    def append(self, value: T) -> None:
        self._data.append(value)

    def clear(self) -> None:
        self._data.clear()

    @property
    def is_full(self) -> bool:
        return len(self._data) == self.capacity

    def latest(self) -> Optional[T]:
        return self._data[-1] if self._data else None

    def tail(self, n: int) -> List[T]:
        """Return the most recent *n* values (fewer if not yet available)."""
        if n <= 0:
            return []
        if n >= len(self._data):
            return list(self._data)
        return list(self._data)[-n:]

    def to_array(self, n: Optional[int] = None) -> np.ndarray:
        values = list(self._data) if n is None else self.tail(n)
        return np.asarray(values, dtype=float)

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self):
        return iter(self._data)


class ChannelWindows:
    """Index-aligned rolling windows for the horse-frame channels.

    All channels are appended to together and cleared together, so
    index ``i`` of every channel refers to the same sample.
    """

    CHANNELS = ("timestamp", "vertical", "lateral", "forward", "yaw", "roll")

    def __init__(self, capacity: int = 256):
        self.capacity = capacity
        self._windows: Dict[str, RollingWindow[float]] = {
            name: RollingWindow(capacity) for name in self.CHANNELS
        }

    def append(self, sample: TransformedSample) -> None:
        w = self._windows
        w["timestamp"].append(sample.timestamp)
        w["vertical"].append(sample.vertical)
        w["lateral"].append(sample.lateral)
        w["forward"].append(sample.forward)
        w["yaw"].append(sample.yaw_rate)
        w["roll"].append(sample.roll)

    def clear(self) -> None:
        for window in self._windows.values():
            window.clear()

    def __len__(self) -> int:
        return len(self._windows["timestamp"])

    def channel(self, name: str, n: Optional[int] = None) -> np.ndarray:
        if name not in self._windows:
            raise ValueError(f"Unknown channel {name!r}. Available: {list(self.CHANNELS)}")
        return self._windows[name].to_array(n)

    def analysis_length(self, minimum: int) -> int:
        """Largest power of two <= buffered length, or 0 below *minimum*."""
        n = len(self)
        if n < minimum:
            return 0
        return 1 << (n.bit_length() - 1)
