from __future__ import annotations

import numba
import numpy as np
from numba import cuda

from .buffers import FastBriefData
from .launch import LINEAR_TH, SENTINEL_KEY, TX, TY, fill, grid_1d, grid_2d
from .params import RING_RADIUS, FastBriefParams
from .sort import bitonic_sort

# 16-sample Bresenham circle of radius 3, clockwise from north
RING_DX = np.array([0, 1, 2, 3, 3, 3, 2, 1, 0, -1, -2, -3, -3, -3, -2, -1], np.int32)
RING_DY = np.array([-3, -3, -2, -1, 0, 1, 2, 3, 3, 3, 2, 1, 0, -1, -2, -3], np.int32)
RING_SIZE = 16

SCORE_LIMIT = 1 << 20


@cuda.jit(device=True, inline=True, cache=True)
def encode_corner(score, x, y):
    # ascending key order == score descending, then x, then y ascending
    return (
        (numba.int64(SCORE_LIMIT - score) << 32)
        | (numba.int64(x) << 16)
        | numba.int64(y)
    )


@cuda.jit(cache=True)
def fast_response_kernel(img, response, threshold, arc_length):
    x, y = cuda.grid(2)
    h, w = img.shape
    if x >= w or y >= h:
        return
    if (
        x < RING_RADIUS
        or y < RING_RADIUS
        or x >= w - RING_RADIUS
        or y >= h - RING_RADIUS
    ):
        response[y, x] = 0
        return

    c = int(img[y, x])
    hi = c + threshold
    lo = c - threshold

    bright_run = 0
    dark_run = 0
    best_bright = 0
    best_dark = 0
    for i in range(RING_SIZE + arc_length - 1):
        k = i % RING_SIZE
        v = int(img[y + RING_DY[k], x + RING_DX[k]])
        if v > hi:
            bright_run += 1
            dark_run = 0
        elif v < lo:
            dark_run += 1
            bright_run = 0
        else:
            bright_run = 0
            dark_run = 0
        if bright_run > best_bright:
            best_bright = bright_run
        if dark_run > best_dark:
            best_dark = dark_run

    score = 0
    if best_bright >= arc_length or best_dark >= arc_length:
        bright_score = 0
        dark_score = 0
        for k in range(RING_SIZE):
            v = int(img[y + RING_DY[k], x + RING_DX[k]])
            if v > hi:
                bright_score += v - hi
            elif v < lo:
                dark_score += lo - v
        if best_bright >= arc_length:
            score = bright_score
        if best_dark >= arc_length and dark_score > score:
            score = dark_score
    response[y, x] = score


@cuda.jit(cache=True)
def nms_compact_kernel(response, keys, counter, radius):
    x, y = cuda.grid(2)
    h, w = response.shape
    if x >= w or y >= h:
        return
    s = response[y, x]
    if s <= 0:
        return

    for dy in range(-radius, radius + 1):
        yy = y + dy
        if yy < 0 or yy >= h:
            continue
        for dx in range(-radius, radius + 1):
            xx = x + dx
            if xx < 0 or xx >= w or (dx == 0 and dy == 0):
                continue
            n = response[yy, xx]
            if n > s:
                return
            if n == s and (xx < x or (xx == x and yy < y)):
                return

    idx = cuda.atomic.add(counter, 1, 1)
    if idx >= keys.shape[0]:
        return
    keys[idx] = encode_corner(s, x, y)


@cuda.jit(cache=True)
def gather_keypoints_kernel(keys, counter, xy, score, max_features):
    i = cuda.grid(1)
    n = counter[1]
    if n > keys.shape[0]:
        n = keys.shape[0]
    kept = n if n < max_features else max_features
    if i == 0:
        counter[0] = kept
        counter[2] = n - kept
    if i >= kept:
        return
    key = keys[i]
    xy[i, 0] = (key >> 16) & 0xFFFF
    xy[i, 1] = key & 0xFFFF
    score[i] = SCORE_LIMIT - (key >> 32)


@cuda.jit(cache=True)
def reset_counter_kernel(counter):
    i = cuda.grid(1)
    if i < counter.shape[0]:
        counter[i] = 0


def fast_response(data: FastBriefData, params: FastBriefParams, stream) -> None:
    h, w = params.shape
    fast_response_kernel[grid_2d(h, w), (TX, TY), stream](
        data.images.blurred,
        data.images.response,
        params.fast_threshold,
        params.fast_arc_length,
    )


def suppress_and_rank(data: FastBriefData, params: FastBriefParams, stream) -> None:
    h, w = params.shape
    kp = data.keypoints
    reset_counter_kernel[1, kp.counter.shape[0], stream](kp.counter)
    fill(kp.sort_keys, SENTINEL_KEY, stream)
    nms_compact_kernel[grid_2d(h, w), (TX, TY), stream](
        data.images.response, kp.sort_keys, kp.counter, params.nms_radius
    )
    bitonic_sort(kp.sort_keys, stream)
    gather_keypoints_kernel[grid_1d(params.max_features), LINEAR_TH, stream](
        kp.sort_keys, kp.counter, kp.xy, kp.score, params.max_features
    )


def detect_corners(data: FastBriefData, params: FastBriefParams, stream) -> None:
    fast_response(data, params, stream)
    suppress_and_rank(data, params, stream)
