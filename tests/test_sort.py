import numpy as np
import pytest
from numba import cuda

from fastbrief.launch import SENTINEL_KEY
from fastbrief.sort import bitonic_sort


def test_bitonic_sort_orders_keys(stream):
    rng = np.random.default_rng(0)
    keys = rng.integers(0, 50, size=64).astype(np.int64)
    d_keys = cuda.to_device(keys, stream=stream)
    passes = bitonic_sort(d_keys, stream)
    stream.synchronize()
    np.testing.assert_array_equal(d_keys.copy_to_host(), np.sort(keys))
    assert passes == 21


def test_sentinel_padding_sorts_last(stream):
    keys = np.full(16, SENTINEL_KEY, np.int64)
    keys[[3, 9, 14]] = [(7 << 40) | 2, (1 << 40) | 5, (1 << 40) | 4]
    d_keys = cuda.to_device(keys, stream=stream)
    bitonic_sort(d_keys, stream)
    stream.synchronize()
    out = d_keys.copy_to_host()
    assert out[:3].tolist() == [(1 << 40) | 4, (1 << 40) | 5, (7 << 40) | 2]
    assert np.all(out[3:] == SENTINEL_KEY)


def test_single_key_needs_no_pass(stream):
    d_keys = cuda.to_device(np.array([5], np.int64))
    assert bitonic_sort(d_keys, stream) == 0


def test_rejects_non_power_of_two(stream):
    with pytest.raises(ValueError):
        bitonic_sort(cuda.to_device(np.zeros(12, np.int64)), stream)
