"""
PyAudio-backed sample sources: live microphone capture and playback of the
last recording. Both run their stream callbacks on PortAudio's thread and
expose the newest analysis window through LatestSamples.
"""
import logging
import threading

import numpy as np
import pyaudio

from sample_sources import WINDOW_SIZE, LatestSamples, SampleSourceError

logger = logging.getLogger(__name__)

CHUNK = 1024


# =========================
# AUDIO DEVICE
# =========================
def get_input_device(p):
    """Default input device index, else the first device with input channels."""
    try:
        return p.get_default_input_device_info()['index']
    except OSError:
        for i in range(p.get_device_count()):
            info = p.get_device_info_by_index(i)
            if info['maxInputChannels'] > 0:
                return i
    return None


class MicrophoneSource:
    """Live input; keeps the whole take in memory until stop()."""

    def __init__(self, sample_rate=44100, window_size=WINDOW_SIZE, device=None,
                 pa=None):
        self.sample_rate = float(sample_rate)
        self.latest = LatestSamples(window_size)
        self._pa = pa or pyaudio.PyAudio()
        self._owns_pa = pa is None
        self._device = device
        self._chunks = []
        self._chunks_lock = threading.Lock()
        self._stream = None

    @property
    def active(self):
        return self._stream is not None

    def _callback(self, in_data, frame_count, time_info, status):
        block = np.frombuffer(in_data, dtype=np.float32)
        with self._chunks_lock:
            self._chunks.append(block.copy())
        self.latest.push(block)
        return None, pyaudio.paContinue

    def start(self):
        device = self._device
        if device is None:
            device = get_input_device(self._pa)
        if device is None:
            raise SampleSourceError("no audio input device found")
        self.latest.clear()
        try:
            self._stream = self._pa.open(
                format=pyaudio.paFloat32,
                channels=1,
                rate=int(self.sample_rate),
                input=True,
                input_device_index=device,
                frames_per_buffer=CHUNK,
                stream_callback=self._callback,
            )
        except OSError as e:
            raise SampleSourceError(f"could not open input device {device}: {e}") from e
        self._stream.start_stream()
        logger.info("Recording from input device %s at %d Hz", device, self.sample_rate)

    def current_window(self):
        if self._stream is None:
            raise SampleSourceError("microphone stopped")
        return self.latest.window()

    def stop(self):
        """Close the stream and return the recording as float32 samples."""
        if self._stream is not None:
            self._stream.stop_stream()
            self._stream.close()
            self._stream = None
        with self._chunks_lock:
            audio = np.concatenate(self._chunks) if self._chunks else np.zeros(0, np.float32)
            self._chunks = []
        logger.info("Recording stopped, %.2f s captured", audio.size / self.sample_rate)
        return audio

    def close(self):
        if self._stream is not None:
            self.stop()
        if self._owns_pa:
            self._pa.terminate()


class PlaybackSource:
    """Plays a clip; the analysis window trails the playback position."""

    def __init__(self, audio, sample_rate=44100, window_size=WINDOW_SIZE,
                 pa=None):
        self.audio = np.asarray(audio, dtype=np.float32).ravel()
        self.sample_rate = float(sample_rate)
        self.window_size = window_size
        self._pa = pa or pyaudio.PyAudio()
        self._owns_pa = pa is None
        self._pos = 0
        self._pos_lock = threading.Lock()
        self._stream = None
        self.finished = False

    def _callback(self, in_data, frame_count, time_info, status):
        with self._pos_lock:
            start = self._pos
            block = self.audio[start:start + frame_count]
            self._pos = start + block.size
        if block.size < frame_count:
            block = np.concatenate([block, np.zeros(frame_count - block.size, np.float32)])
            self.finished = True
            return block.tobytes(), pyaudio.paComplete
        return block.tobytes(), pyaudio.paContinue

    def start(self):
        try:
            self._stream = self._pa.open(
                format=pyaudio.paFloat32,
                channels=1,
                rate=int(self.sample_rate),
                output=True,
                frames_per_buffer=CHUNK,
                stream_callback=self._callback,
            )
        except OSError as e:
            raise SampleSourceError(f"could not open output device: {e}") from e
        self._stream.start_stream()
        logger.info("Playback started, %.2f s", self.audio.size / self.sample_rate)

    def current_window(self):
        if self._stream is None:
            raise SampleSourceError("playback stopped")
        with self._pos_lock:
            end = self._pos
        if end < self.window_size:
            return None
        return self.audio[end - self.window_size:end].copy()

    def stop(self):
        if self._stream is not None:
            self._stream.stop_stream()
            self._stream.close()
            self._stream = None
            logger.info("Playback stopped")

    def close(self):
        self.stop()
        if self._owns_pa:
            self._pa.terminate()
