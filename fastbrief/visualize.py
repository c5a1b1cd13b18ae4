from __future__ import annotations

from typing import Optional

import cv2
import numpy as np
from numba import cuda

from .buffers import FastBriefData
from .launch import LINEAR_TH, TX, TY, grid_1d, grid_2d
from .params import FastBriefParams

# RGBA
MATCHED_COLOR = (0, 255, 0)
UNMATCHED_COLOR = (255, 0, 0)
INVALID_COLOR = (0, 0, 255)


@cuda.jit(cache=True)
def draw_background_kernel(gray, vis):
    x, y = cuda.grid(2)
    h, w = gray.shape
    if x >= w or y >= h:
        return
    g = gray[y, x]
    vis[y, x, 0] = g
    vis[y, x, 1] = g
    vis[y, x, 2] = g
    vis[y, x, 3] = 255


@cuda.jit(cache=True)
def draw_keypoints_kernel(vis, xy, kp_counter, valid, best, radius):
    k = cuda.grid(1)
    if k >= xy.shape[0] or k >= kp_counter[0]:
        return
    h = vis.shape[0]
    w = vis.shape[1]
    if valid[k] == 0:
        r, g, b = INVALID_COLOR
    elif best[k] >= 0:
        r, g, b = MATCHED_COLOR
    else:
        r, g, b = UNMATCHED_COLOR
    cx = xy[k, 0]
    cy = xy[k, 1]
    for dy in range(-radius - 1, radius + 2):
        for dx in range(-radius - 1, radius + 2):
            # square outline, one pixel wide, around the keypoint
            if abs(dx) <= radius and abs(dy) <= radius:
                continue
            px = cx + dx
            py = cy + dy
            if px < 0 or py < 0 or px >= w or py >= h:
                continue
            vis[py, px, 0] = r
            vis[py, px, 1] = g
            vis[py, px, 2] = b
            vis[py, px, 3] = 255


def render_visualization(data: FastBriefData, params: FastBriefParams, stream) -> None:
    """Blurred intensity as gray RGBA with a marker per keypoint: green when
    matched against the keyframe, red when unmatched, blue when the keypoint
    was too close to the border to describe."""
    h, w = params.shape
    draw_background_kernel[grid_2d(h, w), (TX, TY), stream](
        data.images.blurred, data.images.visualization
    )
    draw_keypoints_kernel[grid_1d(params.max_features), LINEAR_TH, stream](
        data.images.visualization,
        data.keypoints.xy,
        data.keypoints.counter,
        data.descriptors.valid,
        data.matches.best,
        params.marker_radius,
    )


def draw_matches_side_by_side(
    img1: np.ndarray,
    img2: np.ndarray,
    pts1: np.ndarray,
    pts2: np.ndarray,
    *,
    max_draw: Optional[int] = 1000,
    radius: int = 3,
    thickness: int = 1,
    seed: Optional[int] = 0,
) -> np.ndarray:
    """Draw keyframe and current frame next to each other with match lines.

    img1, img2: grayscale, BGR or RGBA images
    pts1, pts2: (N,2) xy pixel coordinates of matched keypoints
    """
    left = _to_bgr(img1)
    right = _to_bgr(img2)

    h = max(left.shape[0], right.shape[0])
    w = left.shape[1] + right.shape[1]
    canvas = np.zeros((h, w, 3), dtype=np.uint8)
    canvas[: left.shape[0], : left.shape[1]] = left
    canvas[: right.shape[0], left.shape[1] :] = right

    n = min(len(pts1), len(pts2))
    if n == 0:
        return canvas
    idx = np.arange(n)
    if max_draw is not None and n > max_draw:
        rng = np.random.default_rng(seed)
        idx = np.sort(rng.choice(idx, size=max_draw, replace=False))

    offset_x = left.shape[1]
    for k in idx:
        p1 = (int(round(float(pts1[k, 0]))), int(round(float(pts1[k, 1]))))
        p2 = (
            int(round(float(pts2[k, 0]))) + offset_x,
            int(round(float(pts2[k, 1]))),
        )
        c = (
            int(37 * (k % 7) + 80) % 255,
            int(53 * (k % 5) + 60) % 255,
            int(97 * (k % 9) + 40) % 255,
        )
        cv2.circle(canvas, p1, radius, (255, 255, 255), -1, lineType=cv2.LINE_AA)
        cv2.circle(canvas, p2, radius, (255, 255, 255), -1, lineType=cv2.LINE_AA)
        cv2.line(canvas, p1, p2, c, thickness, lineType=cv2.LINE_AA)
    return canvas


def _to_bgr(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_RGBA2BGR)
    return img.copy()
