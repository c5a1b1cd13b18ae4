from __future__ import annotations

import numba
from numba import cuda

from .buffers import FastBriefData, Keyframe
from .launch import LINEAR_TH, SENTINEL_KEY, fill, grid_1d
from .params import FastBriefParams
from .sort import bitonic_sort

NO_DISTANCE = 1 << 30


@cuda.jit(device=True, inline=True, cache=True)
def encode_match(distance, query, reference):
    # ascending key order == distance ascending, then query index ascending
    return (
        (numba.int64(distance) << 40)
        | (numba.int64(query) << 20)
        | numba.int64(reference)
    )


@cuda.jit(cache=True)
def hamming_match_kernel(
    q_bits,
    q_valid,
    q_counter,
    r_bits,
    r_valid,
    r_counter,
    max_distance,
    ratio,
    best,
    distance,
    keys,
    m_counter,
):
    i = cuda.grid(1)
    if i >= best.shape[0]:
        return
    if i >= q_counter[0] or q_valid[i] == 0:
        best[i] = -1
        distance[i] = NO_DISTANCE
        return

    words = q_bits.shape[1]
    n_ref = r_counter[0]
    best_d = NO_DISTANCE
    second_d = NO_DISTANCE
    best_j = -1
    for j in range(n_ref):
        if r_valid[j] == 0:
            continue
        d = 0
        for wd in range(words):
            d += cuda.popc(q_bits[i, wd] ^ r_bits[j, wd])
        if d < best_d:
            second_d = best_d
            best_d = d
            best_j = j
        elif d < second_d:
            second_d = d

    accept = best_j >= 0 and best_d <= max_distance
    if accept and second_d != NO_DISTANCE:
        if best_d > ratio * second_d:
            accept = False
        # a tie is ambiguous even at distance 0
        elif ratio < 1.0 and best_d == second_d:
            accept = False

    distance[i] = best_d
    if not accept:
        best[i] = -1
        return
    best[i] = best_j
    keys[i] = encode_match(best_d, i, best_j)
    cuda.atomic.add(m_counter, 1, 1)


@cuda.jit(cache=True)
def gather_matches_kernel(keys, counter, pairs, max_matches):
    i = cuda.grid(1)
    n = counter[1]
    kept = n if n < max_matches else max_matches
    if i == 0:
        counter[0] = kept
    if i >= kept:
        return
    key = keys[i]
    pairs[i, 0] = (key >> 20) & 0xFFFFF
    pairs[i, 1] = key & 0xFFFFF
    pairs[i, 2] = key >> 40


@cuda.jit(cache=True)
def clear_matches_kernel(best, distance, counter):
    i = cuda.grid(1)
    if i < counter.shape[0]:
        counter[i] = 0
    if i < best.shape[0]:
        best[i] = -1
        distance[i] = NO_DISTANCE


def clear_matches(data: FastBriefData, params: FastBriefParams, stream) -> None:
    m = data.matches
    clear_matches_kernel[grid_1d(params.max_features), LINEAR_TH, stream](
        m.best, m.distance, m.counter
    )


def match_descriptors(
    data: FastBriefData,
    params: FastBriefParams,
    reference: Keyframe | None,
    stream,
) -> None:
    """Brute-force O(Q*R) Hamming matching of the current descriptors against
    ``reference``. Without a reference the match outputs are cleared."""
    clear_matches(data, params, stream)
    if reference is None:
        return

    m = data.matches
    fill(m.sort_keys, SENTINEL_KEY, stream)
    hamming_match_kernel[grid_1d(params.max_features), LINEAR_TH, stream](
        data.descriptors.bits,
        data.descriptors.valid,
        data.keypoints.counter,
        reference.bits,
        reference.valid,
        reference.counter,
        params.max_distance,
        float(params.ratio),
        m.best,
        m.distance,
        m.sort_keys,
        m.counter,
    )
    bitonic_sort(m.sort_keys, stream)
    gather_matches_kernel[grid_1d(params.max_matches), LINEAR_TH, stream](
        m.sort_keys, m.counter, m.pairs, params.max_matches
    )
