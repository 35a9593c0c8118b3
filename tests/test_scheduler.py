import numpy as np
import pytest

import escapetime.scheduler as scheduler
from escapetime import (
    Canvas,
    CanvasFrozenError,
    RenderError,
    View,
    default_workers,
    escape_time,
    render,
)

# a small canvas that still spans the whole set
WIDTH = 64
HEIGHT = 36
VIEW = View(zoom=0.08)
DETAIL = 1


def test_every_pixel_written_once():
    result = render(VIEW, WIDTH, HEIGHT, detail=DETAIL, workers=4)
    canvas = result.canvas
    assert canvas.pixels.shape == (HEIGHT, WIDTH, 4)
    assert canvas.complete
    assert np.all(canvas.writes == 1)
    assert np.all(canvas.pixels[..., 3] == 255)


def test_canvas_is_frozen_after_render():
    result = render(VIEW, 8, 6, detail=DETAIL, workers=2)
    assert result.canvas.frozen
    assert not result.canvas.pixels.flags.writeable
    with pytest.raises(CanvasFrozenError):
        result.canvas.write_column(0, np.zeros((6, 4), dtype=np.uint8))


def test_pixels_follow_escape_time():
    result = render(VIEW, WIDTH, HEIGHT, detail=DETAIL, workers=3)
    for x, y in [(0, 0), (WIDTH // 2, HEIGHT // 2), (10, 20), (40, 5), (WIDTH - 1, HEIGHT - 1)]:
        c = VIEW.plane_coordinates(x, y, WIDTH, HEIGHT)
        count = escape_time(c, result.max_iterations)
        assert result.iterations[y, x] == count
        assert result.canvas.pixels[y, x].tolist() == [count % 255] * 3 + [255]


def test_center_pixel_regression():
    result = render(View(zoom=0.002), 32, 18, workers=2)
    assert result.max_iterations == 7650
    assert result.iterations[9, 16] == 7651
    assert result.canvas.pixels[9, 16].tolist() == [1, 1, 1, 255]


def test_center_pixel_at_full_resolution():
    view = View(zoom=0.002)
    c = view.plane_coordinates(1280, 720, 2560, 1440)
    assert c == (0.0, 0.0)
    assert escape_time(c, 7650) % 255 == 1

    result = render(view, 2560, 1440, detail=DETAIL)
    assert result.canvas.complete
    assert result.iterations[720, 1280] == 256
    assert result.canvas.pixels[720, 1280].tolist() == [1, 1, 1, 255]


@pytest.mark.parametrize("workers", [2, 4, 7])
def test_parallel_matches_sequential(workers):
    sequential = render(VIEW, WIDTH, HEIGHT, detail=DETAIL, workers=1)
    parallel = render(VIEW, WIDTH, HEIGHT, detail=DETAIL, workers=workers)
    assert sequential.workers == 1
    assert parallel.workers == workers
    assert parallel.canvas.pixels.tobytes() == sequential.canvas.pixels.tobytes()


def test_unlocked_writes_stay_disjoint():
    reference = render(VIEW, WIDTH, HEIGHT, detail=DETAIL, workers=1)
    for _ in range(5):
        result = render(VIEW, WIDTH, HEIGHT, detail=DETAIL, workers=8, lock_writes=False)
        assert not result.canvas.lock_writes
        assert result.canvas.complete
        assert result.canvas.pixels.tobytes() == reference.canvas.pixels.tobytes()


def test_more_workers_than_columns():
    result = render(VIEW, 3, 5, detail=DETAIL, workers=16)
    assert result.canvas.complete


def test_doubling_zoom_halves_the_image():
    width, height = 64, 48
    view = View(x_offset=-0.25, y_offset=0.1, zoom=0.04)
    full = render(view, width, height, detail=DETAIL, workers=4)
    half = render(view.scaled(2.0), width, height, detail=DETAIL, workers=4)
    cx, cy = width // 2, height // 2
    for k in range(-cx // 2, cx // 2):
        for j in range(-cy // 2, cy // 2):
            assert half.iterations[cy + j, cx + k] == full.iterations[cy + 2 * j, cx + 2 * k]


def test_worker_failure_raises(monkeypatch):
    calls = []

    def broken(c_re, c_im, max_iter):
        calls.append(1)
        raise FloatingPointError("boom")

    monkeypatch.setattr(scheduler, "escape_times", broken)
    with pytest.raises(RenderError) as info:
        render(VIEW, 16, 4, detail=DETAIL, workers=2)
    assert isinstance(info.value.__cause__, FloatingPointError)
    assert 1 <= len(calls) <= 2


@pytest.mark.parametrize("width, height", [(0, 10), (10, 0), (-4, 3)])
def test_invalid_dimensions(width, height):
    with pytest.raises(ValueError):
        render(VIEW, width, height, detail=DETAIL, workers=1)


def test_invalid_worker_count():
    with pytest.raises(ValueError):
        render(VIEW, 4, 4, detail=DETAIL, workers=0)


def test_default_workers_is_positive():
    assert default_workers() >= 1


def test_to_image_is_rgba():
    result = render(VIEW, 10, 6, detail=DETAIL, workers=2)
    image = result.canvas.to_image()
    assert image.mode == "RGBA"
    assert image.size == (10, 6)


def test_write_column_counts_writes():
    canvas = Canvas(2, 3)
    column = np.full((3, 4), 42, dtype=np.uint8)
    canvas.write_column(1, column)
    assert canvas.pixels[:, 1].tolist() == [[42] * 4] * 3
    assert canvas.writes.tolist() == [[0, 1], [0, 1], [0, 1]]
    assert not canvas.complete
    canvas.write_column(0, column)
    assert canvas.complete
