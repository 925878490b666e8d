from dataclasses import dataclass
from typing import Optional

import numpy as np

HISTORY_CAPACITY = 600

# pitch-class slot value for "no voiced pitch" inside the ring arrays
NO_PITCH = -1


@dataclass(frozen=True)
class AnalysisFrame:
    """One tick's measurements. No pitch means frequency_hz == 0."""
    pitch_class: Optional[int]
    frequency_hz: float
    loudness: float

    def __post_init__(self):
        if (self.pitch_class is None) != (self.frequency_hz == 0):
            raise ValueError(
                f"pitch_class={self.pitch_class!r} inconsistent with "
                f"frequency_hz={self.frequency_hz!r}"
            )

    @property
    def voiced(self):
        return self.pitch_class is not None

    @classmethod
    def unvoiced(cls, loudness):
        return cls(None, 0.0, loudness)


class HistoryBuffer:
    """Fixed-capacity FIFO of AnalysisFrames.

    Backed by preallocated arrays with a head index, so appending never
    reallocates. Once full, each append overwrites the oldest frame.
    """

    def __init__(self, capacity=HISTORY_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = int(capacity)
        self._pitch = np.full(self.capacity, NO_PITCH, dtype=np.int64)
        self._freq = np.zeros(self.capacity, dtype=np.float64)
        self._loud = np.zeros(self.capacity, dtype=np.float64)
        self._head = 0   # slot the next append writes to
        self._length = 0

    def __len__(self):
        return self._length

    def append(self, frame):
        i = self._head
        self._pitch[i] = NO_PITCH if frame.pitch_class is None else frame.pitch_class
        self._freq[i] = frame.frequency_hz
        self._loud[i] = frame.loudness
        self._head = (i + 1) % self.capacity
        if self._length < self.capacity:
            self._length += 1

    def reset(self):
        self._head = 0
        self._length = 0

    def _order(self):
        start = (self._head - self._length) % self.capacity
        return (start + np.arange(self._length)) % self.capacity

    def arrays(self):
        """Ordered copies (oldest first) of pitch class, frequency, loudness.

        Unvoiced frames carry NO_PITCH in the pitch-class array.
        """
        idx = self._order()
        return self._pitch[idx], self._freq[idx], self._loud[idx]

    def _frame_at(self, slot):
        p = int(self._pitch[slot])
        return AnalysisFrame(
            None if p == NO_PITCH else p,
            float(self._freq[slot]),
            float(self._loud[slot]),
        )

    def snapshot(self):
        return tuple(self._frame_at(int(slot)) for slot in self._order())

    def latest(self):
        if self._length == 0:
            return None
        return self._frame_at((self._head - 1) % self.capacity)
