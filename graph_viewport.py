import math
from dataclasses import dataclass

PAN_SENSITIVITY = 0.7
ZOOM_MIN = 0.5
ZOOM_MAX = 4.0
ZOOM_STEP_OUT = 1.05
ZOOM_STEP_IN = 0.95

# Pitch axis at zoom 1.0: C1..C6
BASE_MIN_PITCH = 24
BASE_MAX_PITCH = 72


def clamp(v, lo, hi):
    return max(lo, min(hi, v))


@dataclass
class ViewportState:
    pan_fraction: float = 0.0
    vertical_zoom: float = 1.0


class ViewportController:
    """Owns pan and vertical zoom for the pitch graph.

    pan_fraction 0 keeps the newest frames flush right, 1 scrolls back to the
    oldest. vertical_zoom multiplies the visible pitch span around a fixed
    centre, so values above 1 show more octaves.
    """

    def __init__(self, capacity, pan_sensitivity=PAN_SENSITIVITY,
                 zoom_min=ZOOM_MIN, zoom_max=ZOOM_MAX):
        if zoom_min <= 0 or zoom_min > zoom_max:
            raise ValueError(f"bad zoom range [{zoom_min}, {zoom_max}]")
        self.capacity = capacity
        self.pan_sensitivity = pan_sensitivity
        self.zoom_min = zoom_min
        self.zoom_max = zoom_max
        self.state = ViewportState(vertical_zoom=clamp(1.0, zoom_min, zoom_max))

    @property
    def pan_fraction(self):
        return self.state.pan_fraction

    @property
    def vertical_zoom(self):
        return self.state.vertical_zoom

    # =========================
    # GESTURES
    # =========================
    def apply_pan(self, delta_fraction):
        if not math.isfinite(delta_fraction):
            return self.state.pan_fraction
        pan = self.state.pan_fraction + delta_fraction * self.pan_sensitivity
        self.state.pan_fraction = clamp(pan, 0.0, 1.0)
        return self.state.pan_fraction

    def apply_pan_pixels(self, dx, surface_width):
        """Drag handler: dx pixels on a surface surface_width pixels wide."""
        if surface_width <= 0:
            return self.state.pan_fraction
        return self.apply_pan(dx / surface_width)

    def apply_zoom_delta(self, wheel_delta):
        # only the sign matters; positive (scroll down) widens the pitch span
        factor = ZOOM_STEP_OUT if wheel_delta > 0 else ZOOM_STEP_IN
        zoom = self.state.vertical_zoom * factor
        self.state.vertical_zoom = clamp(zoom, self.zoom_min, self.zoom_max)
        return self.state.vertical_zoom

    def reset_pan(self):
        self.state.pan_fraction = 0.0

    def reset_zoom(self):
        self.state.vertical_zoom = clamp(1.0, self.zoom_min, self.zoom_max)

    # =========================
    # QUERIES
    # =========================
    def visible_window(self, history_length, horizontal_zoom=1.0):
        """Index range [start, end) of the history currently on screen."""
        if not math.isfinite(horizontal_zoom) or horizontal_zoom <= 0:
            horizontal_zoom = 1.0
        window_size = max(2, int(math.floor(self.capacity / horizontal_zoom)))
        max_start = max(0, history_length - window_size)
        # half-up rounding
        start = int(math.floor(max_start * (1 - self.state.pan_fraction) + 0.5))
        end = min(history_length, start + window_size)
        return start, end

    def pitch_range(self):
        """(low, high) pitch classes mapped to the bottom and top of the band."""
        center = (BASE_MIN_PITCH + BASE_MAX_PITCH) / 2
        span = (BASE_MAX_PITCH - BASE_MIN_PITCH) * self.state.vertical_zoom
        return center - span / 2, center + span / 2
