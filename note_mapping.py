from typing import NamedTuple, Optional, Union

import numpy as np

A4 = 440.0
NOTE_NAMES = ['C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B']

# C1..C6 with headroom up to C6 + one octave
MIN_PITCH_CLASS = 24
MAX_PITCH_CLASS = 84

# Human fundamental vocal range, bass lowest to soprano highest
MIN_VOICE_HZ = 75.0
MAX_VOICE_HZ = 1200.0


class Note(NamedTuple):
    name: str
    octave: Union[int, str]
    pitch_class: Optional[int]
    cents: float = 0.0

    @property
    def valid(self):
        return self.pitch_class is not None

    def __str__(self):
        if not self.valid:
            return "-"
        return f"{self.name}{self.octave}"


NO_NOTE = Note("-", "-", None, 0.0)


def frequency_to_note(f):
    """Map a frequency to the nearest equal-tempered note (A4 = 440 Hz).

    Non-positive or non-finite input gives NO_NOTE.
    """
    try:
        f = float(f)
    except (TypeError, ValueError):
        return NO_NOTE
    if not np.isfinite(f) or f <= 0:
        return NO_NOTE

    n = 69 + 12 * np.log2(f / A4)
    # half-up rounding, so an exact quarter-tone goes to the upper note
    pitch_class = int(np.floor(n + 0.5))
    cents = float((n - pitch_class) * 100)
    octave = pitch_class // 12 - 1
    name = NOTE_NAMES[pitch_class % 12]
    return Note(name, octave, pitch_class, cents)


def gate_frequency(f, fmin=MIN_VOICE_HZ, fmax=MAX_VOICE_HZ):
    """Treat frequencies outside the instrument band as silence (0.0)."""
    if not f or not np.isfinite(f) or f <= 0 or f < fmin or f > fmax:
        return 0.0
    return f


def gate_note(note, lo=MIN_PITCH_CLASS, hi=MAX_PITCH_CLASS):
    if note.pitch_class is None or note.pitch_class < lo or note.pitch_class > hi:
        return NO_NOTE
    return note
