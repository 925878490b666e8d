import pytest

from graph_viewport import ViewportController

CAPACITY = 600


@pytest.fixture
def viewport():
    return ViewportController(CAPACITY)


def test_defaults(viewport):
    assert viewport.pan_fraction == 0.0
    assert viewport.vertical_zoom == 1.0


def test_pan_scaled_and_clamped(viewport):
    assert viewport.apply_pan(0.5) == pytest.approx(0.35)
    assert viewport.apply_pan(10) == 1.0
    assert viewport.apply_pan(-0.1) == pytest.approx(0.93)
    assert viewport.apply_pan(-10) == 0.0
    assert viewport.apply_pan(float("nan")) == 0.0


def test_pan_pixels(viewport):
    viewport.apply_pan_pixels(90, 900)
    assert viewport.pan_fraction == pytest.approx(0.07)
    viewport.apply_pan_pixels(50, 0)
    assert viewport.pan_fraction == pytest.approx(0.07)


def test_zoom_steps(viewport):
    assert viewport.apply_zoom_delta(120) == pytest.approx(1.05)
    assert viewport.apply_zoom_delta(-1) == pytest.approx(1.05 * 0.95)
    # zero counts as "not positive"
    assert viewport.apply_zoom_delta(0) == pytest.approx(1.05 * 0.95 * 0.95)


def test_zoom_clamped(viewport):
    for _ in range(200):
        viewport.apply_zoom_delta(1)
    assert viewport.vertical_zoom == 4.0
    for _ in range(200):
        viewport.apply_zoom_delta(-1)
    assert viewport.vertical_zoom == 0.5


def test_positive_delta_widens_pitch_span(viewport):
    lo, hi = viewport.pitch_range()
    assert (lo, hi) == (24, 72)
    viewport.apply_zoom_delta(1)
    lo2, hi2 = viewport.pitch_range()
    assert hi2 - lo2 > hi - lo
    assert (lo2 + hi2) / 2 == pytest.approx(48)


def test_newest_window_by_default(viewport):
    assert viewport.visible_window(1000, 1.0) == (400, 1000)
    start, end = viewport.visible_window(1000, 2.0)
    assert (start, end) == (700, 1000)


def test_oldest_window_at_full_pan(viewport):
    viewport.apply_pan(10)
    start, end = viewport.visible_window(1000, 2.0)
    assert start == 0
    assert end == 300


def test_short_history_shows_everything(viewport):
    assert viewport.visible_window(0, 1.0) == (0, 0)
    assert viewport.visible_window(50, 1.0) == (0, 50)
    viewport.apply_pan(10)
    assert viewport.visible_window(50, 3.0) == (0, 50)


def test_partial_pan_rounds(viewport):
    viewport.state.pan_fraction = 0.5
    # window 120, max_start 480 -> start 240
    assert viewport.visible_window(600, 5.0) == (240, 360)


def test_window_size_floor_of_two(viewport):
    assert viewport.visible_window(600, 10_000) == (598, 600)


@pytest.mark.parametrize("zoom", [0, -2, float("nan"), float("inf")])
def test_bad_horizontal_zoom_means_one(viewport, zoom):
    assert viewport.visible_window(1000, zoom) == (400, 1000)


def test_reset_pan_keeps_zoom(viewport):
    viewport.apply_pan(1)
    viewport.apply_zoom_delta(1)
    viewport.reset_pan()
    assert viewport.pan_fraction == 0.0
    assert viewport.vertical_zoom == pytest.approx(1.05)
    viewport.reset_zoom()
    assert viewport.vertical_zoom == 1.0


def test_bad_zoom_range():
    with pytest.raises(ValueError):
        ViewportController(CAPACITY, zoom_min=2.0, zoom_max=1.0)
