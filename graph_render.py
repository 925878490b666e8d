"""
Draw-command generation for the unified pitch + intensity graph.

A scene is a flat list of commands (Clear, LinePath, Text) against a logical
surface with the origin top-left and y pointing down. The pitch band takes
the top PITCH_FRACTION of the height, the intensity strip the rest.

Surfaces only need an execute(commands) method: RecordingSurface keeps the
commands for inspection, MatplotlibSurface turns them into artists on an Axes.
"""
import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from matplotlib.collections import LineCollection

from graph_viewport import clamp
from pitch_history import NO_PITCH

logger = logging.getLogger(__name__)

WIDTH = 900
HEIGHT = 380
PITCH_FRACTION = 0.8

GRID_OCTAVES = range(1, 7)  # C1..C6

BACKGROUND = "#020617"
GRID_COLOR = "#1f2933"
GRID_LABEL_COLOR = "#6b7280"
PITCH_COLOR = "#22c55e"
INTENSITY_COLOR = "#f59e0b"
LABEL_COLOR = "#e5e7eb"

NO_LABEL = "–"

Point = Tuple[float, float]


# =========================
# COMMANDS
# =========================
@dataclass(frozen=True)
class Clear:
    color: str


@dataclass(frozen=True)
class LinePath:
    # each subpath is drawn as one connected polyline; nothing joins subpaths
    subpaths: Tuple[Tuple[Point, ...], ...]
    color: str
    width: float


@dataclass(frozen=True)
class Text:
    x: float
    y: float
    text: str
    color: str
    size: float


@dataclass(frozen=True)
class Layout:
    width: float = WIDTH
    height: float = HEIGHT
    pitch_fraction: float = PITCH_FRACTION

    @property
    def pitch_height(self):
        return self.height * self.pitch_fraction

    @property
    def intensity_height(self):
        return self.height * (1 - self.pitch_fraction)


# =========================
# SCENE
# =========================
def pitch_to_y(pitch_class, pitch_range, layout):
    lo, hi = pitch_range
    t = clamp((pitch_class - lo) / (hi - lo), 0.0, 1.0)
    return layout.pitch_height - t * layout.pitch_height


def grid_commands(pitch_range, layout):
    lo, hi = pitch_range
    span = hi - lo
    commands = []
    for octave in GRID_OCTAVES:
        pitch_c = 12 * (octave + 1)
        t = (pitch_c - lo) / span
        if 0 <= t <= 1:
            y = layout.pitch_height - t * layout.pitch_height
            commands.append(LinePath((((0.0, y), (float(layout.width), y)),), GRID_COLOR, 1.0))
            commands.append(Text(4.0, y - 2, f"C{octave}", GRID_LABEL_COLOR, 10))
    return commands


def pitch_subpaths(pitch, pitch_range, layout):
    """Split the visible pitch track into polylines at every unvoiced frame."""
    count = len(pitch)
    subpaths = []
    current = []
    for rel, p in enumerate(pitch):
        x = rel / (count - 1) * layout.width
        if p == NO_PITCH:
            if len(current) > 1:
                subpaths.append(tuple(current))
            current = []
            continue
        current.append((x, pitch_to_y(p, pitch_range, layout)))
    if len(current) > 1:
        subpaths.append(tuple(current))
    return tuple(subpaths)


def intensity_path(loudness, layout):
    count = len(loudness)
    vals = np.clip(np.nan_to_num(loudness), 0.0, 1.0)
    return tuple(
        (rel / (count - 1) * layout.width, layout.height - v * layout.intensity_height)
        for rel, v in enumerate(vals)
    )


def current_label(frame, note):
    if frame is None or not frame.voiced or not note.valid:
        return NO_LABEL
    return f"{note}  •  {frame.frequency_hz:.1f} Hz"


def build_scene(history, window, pitch_range, layout, latest=None, note=None):
    """Commands for one full redraw.

    Args:
        history: (pitch, frequency, loudness) arrays from HistoryBuffer.arrays()
        window: (start, end) visible index range
        pitch_range: (low, high) pitch classes of the pitch band
        layout: surface Layout
        latest: newest AnalysisFrame, for the label
        note: gated Note of the newest frame
    """
    pitch, _freq, loudness = history
    commands = [Clear(BACKGROUND)]
    commands.extend(grid_commands(pitch_range, layout))

    start, end = window
    if len(pitch) > 1 and end - start > 1:
        commands.append(LinePath(
            pitch_subpaths(pitch[start:end], pitch_range, layout), PITCH_COLOR, 2.0))
        commands.append(LinePath(
            (intensity_path(loudness[start:end], layout),), INTENSITY_COLOR, 1.5))

    commands.append(Text(10.0, 18.0, current_label(latest, note), LABEL_COLOR, 12))
    return commands


# =========================
# SURFACES
# =========================
class RecordingSurface:
    """Keeps every executed command list, newest last."""

    def __init__(self, layout=None):
        self.layout = layout or Layout()
        self.frames = []

    def execute(self, commands):
        self.frames.append(list(commands))

    @property
    def last(self):
        return self.frames[-1] if self.frames else []


class MatplotlibSurface:
    """Draws commands onto a matplotlib Axes spanning the whole figure.

    Artists from the previous frame are removed before drawing the next one;
    the figure itself is reused.
    """

    def __init__(self, ax, layout=None, canvas=None):
        self.ax = ax
        self.layout = layout or Layout()
        self.canvas = canvas
        self._artists = []

        ax.set_position([0, 0, 1, 1])
        ax.set_xlim(0, self.layout.width)
        ax.set_ylim(self.layout.height, 0)
        ax.set_axis_off()

    def _clear_artists(self):
        for artist in self._artists:
            artist.remove()
        self._artists = []

    def execute(self, commands):
        self._clear_artists()
        for cmd in commands:
            if isinstance(cmd, Clear):
                self.ax.set_facecolor(cmd.color)
                self.ax.figure.set_facecolor(cmd.color)
            elif isinstance(cmd, LinePath):
                if not cmd.subpaths:
                    continue
                lines = LineCollection([list(p) for p in cmd.subpaths],
                                       colors=cmd.color, linewidths=cmd.width)
                self._artists.append(self.ax.add_collection(lines, autolim=False))
            elif isinstance(cmd, Text):
                self._artists.append(self.ax.text(
                    cmd.x, cmd.y, cmd.text, color=cmd.color,
                    fontsize=cmd.size, va="baseline", ha="left"))
            else:
                logger.warning("Unknown draw command %r", cmd)
        if self.canvas is not None:
            self.canvas.draw_idle()
