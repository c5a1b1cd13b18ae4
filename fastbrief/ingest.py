from __future__ import annotations

import numpy as np
from numba import cuda

from .buffers import FastBriefData
from .launch import TX, TY, grid_2d
from .params import FastBriefParams

W709_R = 0.212639005871510
W709_G = 0.715168678767756
W709_B = 0.072192315360734


@cuda.jit(cache=True, fastmath=True)
def rgba_to_gray_kernel(rgba, gray):
    x, y = cuda.grid(2)
    h, w = gray.shape
    if x >= w or y >= h:
        return
    v = (
        W709_R * float(rgba[y, x, 0])
        + W709_G * float(rgba[y, x, 1])
        + W709_B * float(rgba[y, x, 2])
    )
    g = int(v + 0.5)
    gray[y, x] = 255 if g > 255 else g


def check_frame(frame: np.ndarray, params: FastBriefParams) -> np.ndarray:
    expected = (params.height, params.width, 4)
    if frame.shape != expected:
        raise ValueError(f"got frame of shape {frame.shape}, expected {expected}")
    if frame.dtype != np.uint8:
        raise ValueError(f"got frame of dtype {frame.dtype}, expected uint8")
    return np.ascontiguousarray(frame)


def upload_frame(data: FastBriefData, frame: np.ndarray, stream) -> None:
    data.images.rgba.copy_to_device(frame, stream=stream)


def convert_to_gray(data: FastBriefData, params: FastBriefParams, stream) -> None:
    h, w = params.shape
    rgba_to_gray_kernel[grid_2d(h, w), (TX, TY), stream](
        data.images.rgba, data.images.gray
    )
