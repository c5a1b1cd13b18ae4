"""Bitonic merge passes over int64 rank keys.

Variable-count stages compact their survivors into a power-of-two key buffer
pre-filled with ``SENTINEL_KEY`` and sort it ascending here. Keys are unique,
so the result does not depend on the order atomics handed out slots in.
"""

from __future__ import annotations

from numba import cuda

from .launch import LINEAR_TH, grid_1d


@cuda.jit(cache=True)
def bitonic_pass_kernel(keys, j, k):
    i = cuda.grid(1)
    if i >= keys.shape[0]:
        return
    partner = i ^ j
    if partner <= i:
        return
    a = keys[i]
    b = keys[partner]
    if (i & k) == 0:
        if a > b:
            keys[i] = b
            keys[partner] = a
    elif a < b:
        keys[i] = b
        keys[partner] = a


def bitonic_sort(keys, stream) -> int:
    n = keys.shape[0]
    if n & (n - 1):
        raise ValueError(f"bitonic_sort needs a power-of-two length, got {n}")
    blocks = grid_1d(n)
    passes = 0
    k = 2
    while k <= n:
        j = k >> 1
        while j > 0:
            bitonic_pass_kernel[blocks, LINEAR_TH, stream](keys, j, k)
            passes += 1
            j >>= 1
        k <<= 1
    return passes
