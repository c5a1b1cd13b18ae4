import numpy as np

from fastbrief.__main__ import parse_args
from fastbrief.visualize import draw_matches_side_by_side
from synthetic import noise, to_rgba


def test_side_by_side_canvas_layout():
    left = noise(20, 30, seed=1)
    right = to_rgba(noise(24, 16, seed=2))
    canvas = draw_matches_side_by_side(left, right, np.empty((0, 2)), np.empty((0, 2)))
    assert canvas.shape == (24, 46, 3)
    assert canvas.dtype == np.uint8
    np.testing.assert_array_equal(canvas[:20, :30, 0], left)
    np.testing.assert_array_equal(canvas[:24, 30:, 1], right[..., 1])
    assert not canvas[20:, :30].any()


def test_side_by_side_draws_match_lines():
    img = np.zeros((20, 20), np.uint8)
    pts = np.array([[5, 5], [10, 12]], np.int32)
    canvas = draw_matches_side_by_side(img, img, pts, pts, radius=1)
    assert canvas[5, 5].any()
    assert canvas[12, 30].any()
    assert not canvas[0, 0].any()


def test_max_draw_limits_markers():
    img = np.zeros((40, 10), np.uint8)
    pts = np.array([[4, y] for y in range(2, 38, 4)], np.int32)
    full = draw_matches_side_by_side(img, img, pts, pts, radius=0, max_draw=None)
    some = draw_matches_side_by_side(img, img, pts, pts, radius=0, max_draw=2)
    assert np.count_nonzero(some) < np.count_nonzero(full)


def test_demo_defaults():
    args = parse_args([])
    assert args.source == "0"
    assert args.keyframe_at == 100
    assert args.max_features == 1 << 14
    assert not args.graph
    args = parse_args(["clip.mp4", "--graph", "--frames", "5", "--no-display"])
    assert args.source == "clip.mp4"
    assert args.graph and args.no_display
    assert args.frames == 5
