import logging

import numpy as np
from scipy.signal import butter, correlate, filtfilt

logger = logging.getLogger(__name__)

# =========================
# CONSTANTS
# =========================
SILENCE_RMS = 0.01
MIN_LAG = 8
CORRELATION_MODES = ("tapered", "fixed")
CORRELATION_METHODS = ("auto", "direct", "fft")


def _as_samples(window):
    """Copy a window into a float64 array (the caller keeps its buffer)."""
    try:
        x = np.array(window, dtype=np.float64).ravel()
    except (TypeError, ValueError):
        return np.zeros(0)
    return x


# =========================
# ENVELOPE
# =========================
def rms(window):
    """Root-mean-square loudness of a sample window.

    No silence gating happens here: quiet input still reports its true level.
    Empty or non-finite windows read as 0.0.
    """
    x = _as_samples(window)
    if x.size == 0:
        return 0.0
    value = float(np.sqrt(np.mean(x ** 2)))
    if not np.isfinite(value):
        return 0.0
    return value


def bandpass(x, sample_rate, fmin=50.0, fmax=5000.0, order=4):
    """Zero-phase Butterworth band-pass, used as an optional pre-filter.

    Windows too short for filtfilt's padding are returned unchanged.
    """
    x = _as_samples(x)
    nyquist = sample_rate / 2.0
    if not np.isfinite(nyquist) or nyquist <= 0:
        return x
    high = min(fmax, nyquist * 0.99)
    if fmin <= 0 or fmin >= high:
        return x
    b, a = butter(order, [fmin / nyquist, high / nyquist], btype="band")
    if x.size <= 3 * max(len(a), len(b)):
        return x
    return filtfilt(b, a, x)


# =========================
# PITCH
# =========================
def lag_correlation(x, min_lag=MIN_LAG, mode="tapered", method="auto"):
    """Correlation sum for every candidate lag in [min_lag, ceil(n/2)).

    mode "fixed" sums x[i] * x[i + lag] over the first half of the window for
    every lag. mode "tapered" sums over the full overlap (n - lag terms), so
    longer lags collect fewer products and the fundamental period outranks its
    multiples.

    Returns an array whose index k holds the sum for lag min_lag + k.
    """
    n = x.size
    half = (n + 1) // 2
    if half <= min_lag:
        return np.zeros(0)

    if mode == "fixed":
        # valid-mode correlation of x against its first half: out[lag]
        sums = correlate(x, x[:half], mode="valid", method=method)
    elif mode == "tapered":
        full = correlate(x, x, mode="full", method=method)
        sums = full[n - 1:]
    else:
        raise ValueError(f"unknown correlation mode: {mode!r}")

    return sums[min_lag:half]


def _search_start(sums):
    """First lag past the lobe around lag 0.

    The lobe ends where the correlation first drops to zero or below. For
    signals that never cross zero, it ends where the correlation first rises.
    Returns None when the correlation only ever falls.
    """
    below = np.flatnonzero(sums <= 0)
    if below.size:
        return int(below[0])
    rising = np.flatnonzero(np.diff(sums) > 0)
    if rising.size:
        return int(rising[0])
    return None


def _refine_lag(sums, lag, n, lo):
    """Re-pick the lag near a coarse peak using the mean product per term.

    The full-overlap sum weighs each lag by its n - lag terms, which pulls the
    peak towards shorter lags by a few samples for low voices.
    """
    reach = max(1, lag // 8)
    start = max(lo, lag - reach)
    stop = min(sums.size, lag + reach + 1)
    lags = np.arange(start, stop)
    mean = sums[start:stop] / (n - lags)
    return start + int(np.argmax(mean))


def detect_pitch(window, sample_rate, silence_rms=SILENCE_RMS, min_lag=MIN_LAG,
                 mode="tapered", method="auto"):
    """
    Autocorrelation fundamental frequency estimator.

    Design decisions:
    - RMS gate first: quiet windows skip the correlation entirely
    - The search starts past the lobe around lag 0, so slow tones do not
      resolve to min_lag
    - Integer-lag resolution only, no interpolation
    - Largest correlation wins; on equal sums the earliest lag is kept
    - "tapered" then re-picks the lag next to that peak by mean product
    - Degenerate input never raises, it reads as "no pitch"

    Args:
        window: audio frame (1D, samples in [-1, 1]); not modified
        sample_rate: sample rate in Hz
        silence_rms: RMS below which the window counts as silence
        min_lag: smallest lag considered, excludes near-zero lags
        mode: "tapered" (default) or "fixed" correlation window
        method: scipy correlate method, "auto", "direct" or "fft"

    Returns:
        Frequency in Hz, or 0.0 if no pitch was found
    """
    try:
        sample_rate = float(sample_rate)
    except (TypeError, ValueError):
        return 0.0
    if not np.isfinite(sample_rate) or sample_rate <= 0:
        return 0.0

    x = _as_samples(window)
    if x.size == 0 or not np.all(np.isfinite(x)):
        return 0.0

    if rms(x) < silence_rms:
        return 0.0

    if (x.size + 1) // 2 <= min_lag:
        return 0.0

    sums = lag_correlation(x, min_lag=0, mode=mode, method=method)
    start = _search_start(sums)
    if start is None:
        return 0.0
    start = max(start, min_lag)
    if start >= sums.size:
        return 0.0

    best_offset = start + int(np.argmax(sums[start:]))
    if not sums[best_offset] > 0:
        return 0.0
    if mode == "tapered":
        best_offset = _refine_lag(sums, best_offset, x.size, start)

    f0 = sample_rate / best_offset
    if not np.isfinite(f0) or f0 <= 0:
        return 0.0
    return float(f0)
