from __future__ import annotations

import numba
from numba import cuda

from .buffers import FastBriefData
from .launch import TX, TY, grid_2d, mirror
from .params import MAX_BLUR_RADIUS, FastBriefParams

BLUR_TH = 128

GAUSS_HORZ_TILE_SIZE = BLUR_TH + 2 * MAX_BLUR_RADIUS
GAUSS_COEFF_TILE_SIZE = MAX_BLUR_RADIUS + 1

GAUSS_VERT_TILE_H = TY + 2 * MAX_BLUR_RADIUS
GAUSS_VERT_TILE_SIZE = GAUSS_VERT_TILE_H * TX


@cuda.jit(cache=True, fastmath=True)
def gauss_h(src, dst, g, radius):
    tile = cuda.shared.array(shape=GAUSS_HORZ_TILE_SIZE, dtype=numba.float32)
    g_sh = cuda.shared.array(shape=GAUSS_COEFF_TILE_SIZE, dtype=numba.float32)

    x, y = cuda.grid(2)
    tx = cuda.threadIdx.x
    h, w_in = src.shape
    bs = cuda.blockDim.x

    for i in range(tx, radius + 1, bs):
        g_sh[i] = g[i]
    cuda.syncthreads()

    tile_w = bs + 2 * radius
    base_x = cuda.blockIdx.x * bs - radius

    for i in range(tx, tile_w, bs):
        lx = base_x + i
        tile[i] = src[y, mirror(lx, w_in)]
    cuda.syncthreads()

    if x < w_in and y < h:
        acc = tile[tx + radius] * g_sh[0]
        for k in range(1, MAX_BLUR_RADIUS + 1):
            if k <= radius:
                acc += g_sh[k] * (tile[tx + radius - k] + tile[tx + radius + k])
        dst[y, x] = acc


@cuda.jit(cache=True, fastmath=True)
def gauss_v(src, dst, g, radius):
    v_tile = cuda.shared.array(shape=GAUSS_VERT_TILE_SIZE, dtype=numba.float32)
    g_sh = cuda.shared.array(shape=GAUSS_COEFF_TILE_SIZE, dtype=numba.float32)

    h_in, w_in = src.shape

    x, y = cuda.grid(2)
    tx = cuda.threadIdx.x
    ty = cuda.threadIdx.y

    base_x = cuda.blockIdx.x * cuda.blockDim.x
    base_y = cuda.blockIdx.y * cuda.blockDim.y - radius

    flat = ty * cuda.blockDim.x + tx
    for i in range(flat, radius + 1, cuda.blockDim.x * cuda.blockDim.y):
        g_sh[i] = g[i]
    cuda.syncthreads()

    tile_h = cuda.blockDim.y + 2 * radius
    src_x = base_x + tx
    if src_x >= w_in:
        src_x = w_in - 1

    i = ty
    while i < tile_h:
        v_tile[i * TX + tx] = src[mirror(base_y + i, h_in), src_x]
        i += cuda.blockDim.y
    cuda.syncthreads()

    if x < w_in and y < h_in:
        acc = v_tile[(ty + radius) * TX + tx] * g_sh[0]
        for k in range(1, MAX_BLUR_RADIUS + 1):
            if k <= radius:
                up = v_tile[(ty + radius - k) * TX + tx]
                down = v_tile[(ty + radius + k) * TX + tx]
                acc += g_sh[k] * (up + down)

        q = int(acc + numba.float32(0.5))
        if q < 0:
            q = 0
        elif q > 255:
            q = 255
        dst[y, x] = q


def gaussian_blur(data: FastBriefData, params: FastBriefParams, stream) -> None:
    """Horizontal pass into the float scratch image, then vertical pass into
    the 8-bit blurred image. Borders are mirrored."""
    radius = params.blur_radius
    if radius > MAX_BLUR_RADIUS:
        raise ValueError(
            f"Gaussian radius {radius} exceeds MAX_BLUR_RADIUS={MAX_BLUR_RADIUS}."
        )
    h, w = params.shape
    images = data.images
    h_grid = ((w + BLUR_TH - 1) // BLUR_TH, h)
    gauss_h[h_grid, (BLUR_TH,), stream](
        images.gray, images.scratch, data.blur_kernel, radius
    )
    gauss_v[grid_2d(h, w), (TX, TY), stream](
        images.scratch, images.blurred, data.blur_kernel, radius
    )
