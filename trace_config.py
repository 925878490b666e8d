import dataclasses
import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from pitch_detection import CORRELATION_METHODS, CORRELATION_MODES

logger = logging.getLogger(__name__)

APP_DIR_NAME = "VoiceTrace"

INT_FIELDS = ("sample_rate", "window_size", "min_lag", "min_pitch_class",
              "max_pitch_class", "history_capacity", "fps", "width", "height")
NUMBER_FIELDS = ("silence_rms", "min_frequency", "max_frequency",
                 "pan_sensitivity", "zoom_min", "zoom_max")


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def get_config_path():
    """Get path to config file in user's AppData (home directory elsewhere)."""
    appdata = os.environ.get('APPDATA', os.path.expanduser('~'))
    config_dir = Path(appdata) / APP_DIR_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir / "config.json"


@dataclass(frozen=True)
class Settings:
    # audio
    sample_rate: int = 44100
    window_size: int = 2048
    input_device: Optional[int] = None
    prefilter: bool = False

    # pitch detection
    silence_rms: float = 0.01
    min_lag: int = 8
    correlation: str = "tapered"
    method: str = "auto"
    min_frequency: float = 75.0
    max_frequency: float = 1200.0
    min_pitch_class: int = 24
    max_pitch_class: int = 84

    # history and view
    history_capacity: int = 600
    pan_sensitivity: float = 0.7
    zoom_min: float = 0.5
    zoom_max: float = 4.0
    fps: int = 60
    width: int = 900
    height: int = 380

    def __post_init__(self):
        wrong = [name for name in INT_FIELDS if not _is_int(getattr(self, name))]
        wrong += [name for name in NUMBER_FIELDS if not _is_number(getattr(self, name))]
        if not isinstance(self.prefilter, bool):
            wrong.append("prefilter")
        if self.input_device is not None and not _is_int(self.input_device):
            wrong.append("input_device")
        if wrong:
            raise ValueError(f"wrong type for {', '.join(wrong)}")

        problems = []
        if self.sample_rate <= 0:
            problems.append("sample_rate must be positive")
        if self.window_size < 2 * self.min_lag:
            problems.append("window_size must be at least 2 * min_lag")
        if self.min_lag < 1:
            problems.append("min_lag must be >= 1")
        if not self.silence_rms >= 0:
            problems.append("silence_rms must be >= 0")
        if self.correlation not in CORRELATION_MODES:
            problems.append(f"correlation must be one of {CORRELATION_MODES}")
        if self.method not in CORRELATION_METHODS:
            problems.append(f"method must be one of {CORRELATION_METHODS}")
        if not 0 < self.min_frequency < self.max_frequency:
            problems.append("need 0 < min_frequency < max_frequency")
        if self.min_pitch_class > self.max_pitch_class:
            problems.append("min_pitch_class above max_pitch_class")
        if self.history_capacity < 2:
            problems.append("history_capacity must be >= 2")
        if not 0 < self.zoom_min <= 1.0 <= self.zoom_max:
            problems.append("zoom range must contain 1.0")
        if self.fps <= 0:
            problems.append("fps must be positive")
        if self.width <= 0 or self.height <= 0:
            problems.append("width and height must be positive")
        if problems:
            raise ValueError("; ".join(problems))

    def replace(self, **changes):
        return dataclasses.replace(self, **changes)

    def to_dict(self):
        return dataclasses.asdict(self)


def _coerce(settings, data):
    """Apply file values together, else one by one; a bad value keeps the default."""
    known = {f.name for f in fields(Settings)}
    values = {}
    for key, value in data.items():
        if key not in known:
            logger.warning("Ignoring unknown setting %r", key)
            continue
        values[key] = value

    # fields like min/max_frequency are only valid as a pair
    try:
        return settings.replace(**values)
    except (TypeError, ValueError) as e:
        logger.warning("Settings file has invalid values (%s), checking each field", e)

    # repeat while fields keep landing: a pair member can fail until its partner is in
    pending = dict(values)
    applied = True
    while pending and applied:
        applied = False
        for key in list(pending):
            try:
                settings = settings.replace(**{key: pending[key]})
            except (TypeError, ValueError):
                continue
            del pending[key]
            applied = True

    for key, value in pending.items():
        logger.warning("Invalid value for %r (%r), keeping %r",
                       key, value, getattr(settings, key))
    return settings


def load_settings(path=None):
    """Load settings from JSON, falling back to defaults on any problem."""
    config_path = Path(path) if path is not None else get_config_path()
    settings = Settings()
    if not config_path.exists():
        return settings

    try:
        with open(config_path, 'r') as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Could not read %s, using defaults: %s", config_path, e)
        return settings

    if not isinstance(data, dict):
        logger.warning("%s does not hold a JSON object, using defaults", config_path)
        return settings

    logger.info("Loaded settings from %s", config_path)
    return _coerce(settings, data)


def save_settings(settings, path=None):
    config_path = Path(path) if path is not None else get_config_path()
    with open(config_path, 'w') as f:
        json.dump(settings.to_dict(), f, indent=2)
    return config_path
