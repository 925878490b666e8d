import numpy as np
import pytest

from graph_render import LinePath, PITCH_COLOR, RecordingSurface, Text
from pitch_detection import rms
from render_loop import (AnalysisContext, RenderLoop, SessionReset, TickInputs,
                         TickScheduler, analyze_window)
from sample_sources import ArraySource, SilenceSource, ToneSource, sine
from trace_config import Settings

RATE = 44100
FRAME = 2048


def make_loop(source, **settings):
    ctx = AnalysisContext(Settings(**settings))
    surface = RecordingSurface()
    return RenderLoop(ctx, source, surface), ctx, surface


def run_ticks(loop, n, session_id=1, zoom=1.0):
    return [loop.tick(TickInputs(True, session_id, zoom)) for _ in range(n)]


def test_silence_end_to_end():
    loop, ctx, surface = make_loop(SilenceSource(RATE, FRAME))
    run_ticks(loop, 10)
    frames = ctx.history.snapshot()
    assert len(frames) == 10
    for f in frames:
        assert f.pitch_class is None
        assert f.frequency_hz == 0
        assert f.loudness == pytest.approx(0.0)
    assert len(surface.frames) == 10


def test_a440_end_to_end():
    loop, ctx, surface = make_loop(ToneSource(440, RATE, FRAME))
    results = run_ticks(loop, 5)
    last = ctx.history.latest()
    assert last.pitch_class == 69
    assert last.frequency_hz == pytest.approx(440, rel=0.01)
    assert last.loudness == pytest.approx(0.5 / np.sqrt(2), rel=0.02)
    assert str(results[-1].note) == "A4"
    labels = [c.text for c in surface.last if isinstance(c, Text)]
    assert labels[-1].startswith("A4  •  44")


@pytest.mark.parametrize("freq", [60, 1500])
def test_out_of_voice_band_is_unvoiced(freq):
    loop, ctx, _ = make_loop(ToneSource(freq, RATE, FRAME))
    run_ticks(loop, 2)
    last = ctx.history.latest()
    assert last.pitch_class is None
    assert last.frequency_hz == 0
    assert last.loudness > 0.3


def test_order_matches_ticks():
    clip = np.concatenate([sine(440, RATE, FRAME), np.zeros(FRAME),
                           sine(880, RATE, FRAME), np.zeros(FRAME)])
    loop, ctx, _ = make_loop(ArraySource(clip, RATE, FRAME))
    run_ticks(loop, 4)
    pitches = [f.pitch_class for f in ctx.history.snapshot()]
    assert pitches == [69, None, 81, None]


def test_inactive_tick_skips():
    loop, ctx, surface = make_loop(ToneSource(440, RATE, FRAME))
    assert loop.tick(TickInputs(False, 1)) is None
    assert len(ctx.history) == 0
    assert surface.frames == []


def test_unavailable_source_skips():
    loop, ctx, surface = make_loop(None)
    assert loop.tick(TickInputs(True, 1)) is None

    source = ArraySource(np.zeros(FRAME), RATE, FRAME)
    loop.source = source
    assert loop.tick(TickInputs(True, 1)) is not None
    # clip exhausted
    assert loop.tick(TickInputs(True, 1)) is None
    source.close()
    assert loop.tick(TickInputs(True, 1)) is None

    assert len(ctx.history) == 1
    assert len(surface.frames) == 1


def test_history_capacity_respected():
    loop, ctx, _ = make_loop(SilenceSource(RATE, FRAME), history_capacity=8)
    run_ticks(loop, 20)
    assert len(ctx.history) == 8


def test_new_session_resets_history_and_pan_not_zoom():
    loop, ctx, _ = make_loop(ToneSource(440, RATE, FRAME))
    run_ticks(loop, 3, session_id="a")
    ctx.pan(300, 900)
    ctx.zoom(1)

    run_ticks(loop, 1, session_id="b")
    assert len(ctx.history) == 1
    assert ctx.viewport.pan_fraction == 0.0
    assert ctx.viewport.vertical_zoom == pytest.approx(1.05)


def test_session_reset_observe():
    ctx = AnalysisContext()
    reset = SessionReset(ctx)
    assert reset.observe(1) is True
    assert reset.observe(1) is False
    assert reset.observe(2) is True
    assert ctx.session_id == 2


def test_reset_mid_session_behaves_like_fresh():
    loop, ctx, _ = make_loop(SilenceSource(RATE, FRAME))
    run_ticks(loop, 700, session_id=1)
    ctx.history.reset()
    assert ctx.viewport.visible_window(len(ctx.history), 1.0) == (0, 0)
    run_ticks(loop, 3, session_id=1)
    assert ctx.viewport.visible_window(len(ctx.history), 1.0) == (0, 3)


def test_drawn_window_follows_horizontal_zoom():
    clip = np.concatenate([sine(440, RATE, FRAME)] * 30)
    loop, ctx, surface = make_loop(ArraySource(clip, RATE, FRAME), history_capacity=20)
    run_ticks(loop, 30, zoom=2.0)
    pitch_paths = [c for c in surface.last
                   if isinstance(c, LinePath) and c.color == PITCH_COLOR]
    (path,) = pitch_paths[0].subpaths
    assert len(path) == 10


def test_analyze_window_prefilter():
    settings = Settings(prefilter=True)
    frame, note = analyze_window(sine(440, RATE, FRAME), RATE, settings)
    assert note.pitch_class == 69
    assert frame.frequency_hz == pytest.approx(440, rel=0.02)


def test_prefilter_leaves_loudness_unfiltered():
    # the DC offset is removed by the band-pass but still counts as level
    window = 0.3 + sine(440, RATE, FRAME)
    frame, note = analyze_window(window, RATE, Settings(prefilter=True))
    assert note.pitch_class == 69
    assert frame.loudness == pytest.approx(rms(window))
    assert frame.loudness > 0.45


@pytest.mark.parametrize("freq, pitch_class", [(110, 45), (147, 50), (220, 57)])
def test_low_voices_are_voiced(freq, pitch_class):
    frame, note = analyze_window(sine(freq, RATE, FRAME), RATE, Settings())
    assert frame.pitch_class == pitch_class
    assert note.valid


# =========================
# SCHEDULER
# =========================
class FakeEventLoop:
    """Collects after() callbacks so tests can fire them by hand."""

    def __init__(self):
        self.pending = {}
        self.delays = []
        self._next = 0

    def after(self, ms, callback):
        self._next += 1
        self.pending[self._next] = callback
        self.delays.append(ms)
        return self._next

    def after_cancel(self, ident):
        self.pending.pop(ident, None)

    def fire(self):
        ident = min(self.pending)
        self.pending.pop(ident)()


def test_scheduler_runs_until_inactive():
    loop, ctx, _ = make_loop(SilenceSource(RATE, FRAME))
    events = FakeEventLoop()
    state = {"active": True}
    seen = []
    scheduler = TickScheduler(loop, lambda: TickInputs(state["active"], 1),
                              events.after, events.after_cancel, fps=60,
                              on_tick=seen.append)
    scheduler.start()
    scheduler.start()
    assert len(events.pending) == 1

    for _ in range(3):
        events.fire()
    assert len(ctx.history) == 3
    assert len(seen) == 3
    assert events.delays == [0, 17, 17, 17]

    state["active"] = False
    events.fire()
    assert not scheduler.running
    assert events.pending == {}
    assert len(ctx.history) == 3


def test_scheduler_stop_cancels_pending():
    loop, ctx, _ = make_loop(SilenceSource(RATE, FRAME))
    events = FakeEventLoop()
    scheduler = TickScheduler(loop, lambda: TickInputs(True, 1),
                              events.after, events.after_cancel)
    scheduler.start()
    events.fire()
    scheduler.stop()
    assert events.pending == {}
    assert len(ctx.history) == 1

    scheduler.start()
    events.fire()
    assert len(ctx.history) == 2


def test_scheduler_inactive_still_resets_on_new_session():
    loop, ctx, _ = make_loop(SilenceSource(RATE, FRAME))
    run_ticks(loop, 4, session_id=1)
    events = FakeEventLoop()
    scheduler = TickScheduler(loop, lambda: TickInputs(False, 2),
                              events.after, events.after_cancel)
    scheduler.start()
    events.fire()
    assert len(ctx.history) == 0
    assert not scheduler.running
