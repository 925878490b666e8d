"""
Sample sources feed one analysis window per render tick.

A source is anything with a `sample_rate` attribute and a non-blocking
`current_window()` that returns the latest window (float samples in [-1, 1])
or None while no audio is available. Sources may raise SampleSourceError
when they are closed or broken; the render loop skips that tick.
"""
import threading
from typing import Optional, Protocol

import numpy as np

WINDOW_SIZE = 2048


class SampleSourceError(Exception):
    """The source cannot deliver samples (closed stream, lost device)."""


class SampleSource(Protocol):
    sample_rate: float

    def current_window(self) -> Optional[np.ndarray]:
        ...


class LatestSamples:
    """Thread-safe ring holding the most recent `size` samples.

    Audio callbacks push blocks from their own thread; the render tick reads
    a copy of the whole window.
    """

    def __init__(self, size=WINDOW_SIZE):
        self.size = size
        self._buf = np.zeros(size, dtype=np.float32)
        self._filled = 0
        self._lock = threading.Lock()

    def push(self, block):
        block = np.asarray(block, dtype=np.float32).ravel()
        if block.size == 0:
            return
        with self._lock:
            if block.size >= self.size:
                self._buf[:] = block[-self.size:]
            else:
                self._buf = np.roll(self._buf, -block.size)
                self._buf[-block.size:] = block
            self._filled = min(self.size, self._filled + block.size)

    def clear(self):
        with self._lock:
            self._buf[:] = 0
            self._filled = 0

    def window(self):
        """Copy of the latest window, or None until it has filled once."""
        with self._lock:
            if self._filled < self.size:
                return None
            return self._buf.copy()


class ArraySource:
    """Windows read from an in-memory clip.

    Each call returns the next window and advances the cursor by `hop`
    samples. With hop=0 the same window is returned forever. Past the end of
    the clip current_window() returns None.
    """

    def __init__(self, samples, sample_rate, window_size=WINDOW_SIZE, hop=None):
        self.samples = np.asarray(samples, dtype=np.float32).ravel()
        self.sample_rate = float(sample_rate)
        self.window_size = window_size
        self.hop = window_size if hop is None else hop
        self.position = 0
        self.closed = False

    def current_window(self):
        if self.closed:
            raise SampleSourceError("source closed")
        end = self.position + self.window_size
        if end > self.samples.size:
            return None
        window = self.samples[self.position:end].copy()
        self.position += self.hop
        return window

    def close(self):
        self.closed = True


def sine(frequency, sample_rate, n, amplitude=0.5, phase=0.0):
    t = np.arange(n) / sample_rate
    return amplitude * np.sin(2 * np.pi * frequency * t + phase)


class ToneSource:
    """Endless synthetic sine, phase-continuous across windows."""

    def __init__(self, frequency, sample_rate=44100, window_size=WINDOW_SIZE,
                 amplitude=0.5):
        self.frequency = frequency
        self.sample_rate = float(sample_rate)
        self.window_size = window_size
        self.amplitude = amplitude
        self._phase = 0.0

    def current_window(self):
        window = sine(self.frequency, self.sample_rate, self.window_size,
                      self.amplitude, self._phase)
        step = 2 * np.pi * self.frequency * self.window_size / self.sample_rate
        self._phase = (self._phase + step) % (2 * np.pi)
        return window


class SilenceSource:
    def __init__(self, sample_rate=44100, window_size=WINDOW_SIZE):
        self.sample_rate = float(sample_rate)
        self.window_size = window_size

    def current_window(self):
        return np.zeros(self.window_size, dtype=np.float32)
