"""
Per-tick analysis and drawing.

Each display tick pulls one window from the sample source, runs pitch and
loudness analysis, appends an AnalysisFrame to the session's history and
redraws the graph for the current viewport. Ticks are synchronous and never
overlap; TickScheduler drives them from an event loop's `after` callback.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Hashable, Optional

from graph_render import Layout, build_scene
from graph_viewport import ViewportController
from note_mapping import NO_NOTE, Note, frequency_to_note, gate_frequency, gate_note
from pitch_detection import bandpass, detect_pitch, rms
from pitch_history import AnalysisFrame, HistoryBuffer
from sample_sources import SampleSourceError
from trace_config import Settings

logger = logging.getLogger(__name__)


class AnalysisContext:
    """History and viewport of one analysis session.

    `lock` serialises the tick writer with gesture handlers when they arrive
    from another thread.
    """

    def __init__(self, settings=None):
        self.settings = settings or Settings()
        self.history = HistoryBuffer(self.settings.history_capacity)
        self.viewport = ViewportController(
            self.settings.history_capacity,
            pan_sensitivity=self.settings.pan_sensitivity,
            zoom_min=self.settings.zoom_min,
            zoom_max=self.settings.zoom_max,
        )
        self.session_id = None
        self.lock = threading.RLock()

    def pan(self, dx, surface_width):
        with self.lock:
            return self.viewport.apply_pan_pixels(dx, surface_width)

    def zoom(self, wheel_delta):
        with self.lock:
            return self.viewport.apply_zoom_delta(wheel_delta)


class SessionReset:
    """Clears history and pan when the session id changes.

    Vertical zoom is a user preference and survives the reset.
    """

    def __init__(self, context):
        self.context = context

    def observe(self, session_id):
        ctx = self.context
        with ctx.lock:
            if session_id == ctx.session_id:
                return False
            ctx.history.reset()
            ctx.viewport.reset_pan()
            ctx.session_id = session_id
        logger.info("New session %r, history cleared", session_id)
        return True


@dataclass(frozen=True)
class TickInputs:
    active: bool
    session_id: Hashable = None
    horizontal_zoom: float = 1.0


@dataclass(frozen=True)
class TickResult:
    frame: AnalysisFrame
    note: Note


def analyze_window(window, sample_rate, settings):
    """Run the DSP chain on one window. Returns (AnalysisFrame, Note).

    Loudness is always measured on the unfiltered window.
    """
    pitch_input = window
    if settings.prefilter:
        pitch_input = bandpass(window, sample_rate, settings.min_frequency / 2,
                               settings.max_frequency * 4)

    raw = detect_pitch(pitch_input, sample_rate, silence_rms=settings.silence_rms,
                       min_lag=settings.min_lag, mode=settings.correlation,
                       method=settings.method)
    freq = gate_frequency(raw, settings.min_frequency, settings.max_frequency)
    note = frequency_to_note(freq) if freq > 0 else NO_NOTE
    note = gate_note(note, settings.min_pitch_class, settings.max_pitch_class)

    loudness = min(1.0, max(0.0, rms(window)))
    if not note.valid:
        return AnalysisFrame.unvoiced(loudness), NO_NOTE
    return AnalysisFrame(note.pitch_class, float(freq), loudness), note


class RenderLoop:
    def __init__(self, context, source, surface, layout=None):
        self.context = context
        self.source = source
        self.surface = surface
        self.layout = layout or getattr(surface, "layout", None) or Layout(
            context.settings.width, context.settings.height)
        self.session_reset = SessionReset(context)
        self.last_result = None

    def _read_window(self):
        source = self.source
        if source is None:
            return None, None
        try:
            return source.current_window(), float(source.sample_rate)
        except SampleSourceError as e:
            logger.debug("Sample source unavailable: %s", e)
            return None, None

    def tick(self, inputs):
        """Run one tick. Returns a TickResult, or None when the tick was skipped."""
        self.session_reset.observe(inputs.session_id)
        if not inputs.active:
            return None

        window, sample_rate = self._read_window()
        if window is None:
            logger.debug("No samples this tick")
            return None

        settings = self.context.settings
        frame, note = analyze_window(window, sample_rate, settings)

        with self.context.lock:
            history = self.context.history
            viewport = self.context.viewport
            history.append(frame)
            arrays = history.arrays()
            visible = viewport.visible_window(len(history), inputs.horizontal_zoom)
            pitch_range = viewport.pitch_range()

        commands = build_scene(arrays, visible, pitch_range, self.layout, frame, note)
        self.surface.execute(commands)

        self.last_result = TickResult(frame, note)
        return self.last_result


class TickScheduler:
    """Calls RenderLoop.tick at a fixed rate through an event loop.

    `after(ms, callback)` must schedule callback once and return an id that
    `after_cancel(id)` accepts (tkinter's widget.after does). `inputs` is
    read once per tick; the first tick that sees active=False stops the
    scheduler.
    """

    def __init__(self, loop, inputs, after, after_cancel, fps=60, on_tick=None):
        self.loop = loop
        self.inputs = inputs
        self._after = after
        self._after_cancel = after_cancel
        self.interval_ms = max(1, int(round(1000 / fps)))
        self.on_tick = on_tick
        self._pending: Optional[Any] = None
        self.running = False

    def start(self):
        if self.running:
            return
        self.running = True
        self._pending = self._after(0, self._run)

    def stop(self):
        self.running = False
        if self._pending is not None:
            self._after_cancel(self._pending)
            self._pending = None

    def _run(self):
        self._pending = None
        if not self.running:
            return
        inputs = self.inputs()
        if not inputs.active:
            self.loop.session_reset.observe(inputs.session_id)
            self.running = False
            return
        # queue the next tick first so one failing tick does not end the loop
        self._pending = self._after(self.interval_ms, self._run)
        result = self.loop.tick(inputs)
        if self.on_tick is not None and result is not None:
            self.on_tick(result)
