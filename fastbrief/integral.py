"""Summed-area table by log-step (Hillis-Steele) scans.

Rows are scanned first, then columns. Each pass adds the value ``offset``
pixels back along the scan axis and doubles ``offset``, reading one buffer and
writing the other, so a pass never reads what it writes.
"""

from __future__ import annotations

from numba import cuda

from .buffers import FastBriefData
from .launch import TX, TY, grid_2d
from .params import FastBriefParams


@cuda.jit(cache=True)
def seed_integral_kernel(src, dst):
    x, y = cuda.grid(2)
    h, w = dst.shape
    if x < w and y < h:
        dst[y, x] = src[y, x]


@cuda.jit(cache=True)
def scan_rows_pass_kernel(src, dst, offset):
    x, y = cuda.grid(2)
    h, w = dst.shape
    if x >= w or y >= h:
        return
    v = src[y, x]
    if x >= offset:
        v += src[y, x - offset]
    dst[y, x] = v


@cuda.jit(cache=True)
def scan_cols_pass_kernel(src, dst, offset):
    x, y = cuda.grid(2)
    h, w = dst.shape
    if x >= w or y >= h:
        return
    v = src[y, x]
    if y >= offset:
        v += src[y - offset, x]
    dst[y, x] = v


def build_integral(data: FastBriefData, params: FastBriefParams, stream):
    h, w = params.shape
    grid = grid_2d(h, w)
    src, dst = data.images.integral

    seed_integral_kernel[grid, (TX, TY), stream](data.images.blurred, src)

    n_passes = 0
    offset = 1
    while offset < w:
        scan_rows_pass_kernel[grid, (TX, TY), stream](src, dst, offset)
        src, dst = dst, src
        offset <<= 1
        n_passes += 1

    offset = 1
    while offset < h:
        scan_cols_pass_kernel[grid, (TX, TY), stream](src, dst, offset)
        src, dst = dst, src
        offset <<= 1
        n_passes += 1

    assert n_passes == params.integral_passes
    return src
