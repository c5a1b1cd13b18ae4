from __future__ import annotations

import warnings

import numpy as np
from numba import cuda
from numba.core.errors import NumbaPerformanceWarning

warnings.filterwarnings("ignore", category=UserWarning, message=r"pynvjitlink")
warnings.filterwarnings("ignore", category=NumbaPerformanceWarning)

TX, TY = 16, 16
LINEAR_TH = 128

SENTINEL_KEY = np.iinfo(np.int64).max


def grid_2d(height: int, width: int) -> tuple[int, int]:
    return ((width + TX - 1) // TX, (height + TY - 1) // TY)


def grid_1d(n: int) -> int:
    return max(1, (n + LINEAR_TH - 1) // LINEAR_TH)


def next_pow2(n: int) -> int:
    return 1 << max(0, int(n) - 1).bit_length()


@cuda.jit(cache=True)
def fill_1d_kernel(arr, value):
    i = cuda.grid(1)
    if i < arr.shape[0]:
        arr[i] = value


def fill(arr, value, stream):
    fill_1d_kernel[grid_1d(arr.shape[0]), LINEAR_TH, stream](arr, value)


@cuda.jit(device=True, inline=True, cache=True)
def mirror(i: int, n: int) -> int:
    if i < 0:
        i = -i - 1
    elif i >= n:
        i = (n << 1) - 1 - i
    if i < 0:
        return 0
    if i >= n:
        return n - 1
    return i
