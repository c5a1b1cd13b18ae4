import numpy as np
import pytest

from fastbrief import FastBriefParams
from fastbrief.buffers import create_fastbrief_data
from fastbrief.integral import build_integral
from synthetic import noise


def _integral(img, stream):
    h, w = img.shape
    params = FastBriefParams(image_size=(w, h), max_features=4, blur_sigma=0.0)
    data = create_fastbrief_data(params)
    data.images.blurred.copy_to_device(img, stream=stream)
    out = build_integral(data, params, stream)
    stream.synchronize()
    assert out is data.integral
    return out.copy_to_host()


def _bruteforce(img):
    h, w = img.shape
    out = np.zeros((h, w), np.int64)
    for y in range(h):
        for x in range(w):
            out[y, x] = int(img[: y + 1, : x + 1].astype(np.int64).sum())
    return out


def test_integral_matches_bruteforce_on_odd_sizes(stream):
    img = noise(13, 21, seed=11)
    got = _integral(img, stream)
    assert got.dtype == np.int64
    np.testing.assert_array_equal(got, _bruteforce(img))


@pytest.mark.parametrize("h, w", [(1, 1), (1, 17), (16, 1), (32, 32)])
def test_integral_degenerate_and_power_of_two_sizes(stream, h, w):
    img = noise(h, w, seed=h * 100 + w)
    np.testing.assert_array_equal(_integral(img, stream), _bruteforce(img))


def test_saturated_image_does_not_overflow(stream):
    img = np.full((33, 40), 255, np.uint8)
    got = _integral(img, stream)
    assert got[-1, -1] == 255 * 33 * 40
    assert got[0, -1] == 255 * 40
    assert got[-1, 0] == 255 * 33
