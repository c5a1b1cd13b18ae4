from __future__ import annotations

from numba import cuda

from .buffers import FastBriefData
from .launch import LINEAR_TH, grid_1d
from .params import FastBriefParams


@cuda.jit(device=True, inline=True, cache=True)
def box_sum(integral, x, y, r):
    # caller guarantees x - r >= 0 and y - r >= 0; row/column -1 of the
    # integral image is implicitly zero
    x0 = x - r - 1
    y0 = y - r - 1
    x1 = x + r
    y1 = y + r
    s = integral[y1, x1]
    if x0 >= 0:
        s -= integral[y1, x0]
    if y0 >= 0:
        s -= integral[y0, x1]
        if x0 >= 0:
            s += integral[y0, x0]
    return s


@cuda.jit(cache=True)
def brief_kernel(integral, xy, kp_counter, pattern, box_radius, margin, bits, valid):
    k = cuda.grid(1)
    if k >= bits.shape[0] or k >= kp_counter[0]:
        return

    h, w = integral.shape
    words = bits.shape[1]
    x = xy[k, 0]
    y = xy[k, 1]
    if x < margin or y < margin or x >= w - margin or y >= h - margin:
        for wd in range(words):
            bits[k, wd] = 0
        valid[k] = 0
        return

    for wd in range(words):
        word = 0
        for b in range(32):
            p = wd * 32 + b
            a = box_sum(integral, x + pattern[p, 0], y + pattern[p, 1], box_radius)
            c = box_sum(integral, x + pattern[p, 2], y + pattern[p, 3], box_radius)
            if a > c:
                word |= 1 << b
        bits[k, wd] = word
    valid[k] = 1


def build_descriptors(data: FastBriefData, params: FastBriefParams, stream) -> None:
    """One thread per keypoint slot; each thread owns its descriptor row, so no
    atomics are needed. Keypoints inside the sampling margin get zero words and
    ``valid = 0``."""
    brief_kernel[grid_1d(params.max_features), LINEAR_TH, stream](
        data.integral,
        data.keypoints.xy,
        data.keypoints.counter,
        data.pattern,
        params.box_radius,
        params.descriptor_margin,
        data.descriptors.bits,
        data.descriptors.valid,
    )
