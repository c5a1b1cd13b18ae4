import numpy as np
import pytest

from fastbrief import FastBrief, FastBriefParams
from fastbrief.params import brief_pattern, gaussian_symm_kernel


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(image_size=(0, 48)),
        dict(image_size=(48, 0)),
        dict(image_size=(70000, 48)),
        dict(image_size=(48, 48), max_features=0),
        dict(image_size=(48, 48), max_features=(1 << 20) + 1),
        dict(image_size=(48, 48), max_matches=0),
        dict(image_size=(48, 48), descriptor_bits=100),
        dict(image_size=(48, 48), patch_size=10),
        dict(image_size=(48, 48), ratio=0.0),
        dict(image_size=(48, 48), ratio=1.5),
        dict(image_size=(48, 48), fast_arc_length=17),
        dict(image_size=(48, 48), fast_threshold=300),
        dict(image_size=(8, 8), blur_sigma=1.0),
    ],
)
def test_invalid_configuration_rejected(kwargs):
    with pytest.raises(ValueError):
        FastBriefParams(**kwargs)


def test_pipeline_construction_fails_without_capacity():
    with pytest.raises(ValueError):
        FastBrief(FastBriefParams(image_size=(48, 48), max_features=0))


def test_gaussian_kernel_normalised():
    g, r = gaussian_symm_kernel(1.0)
    assert r == 4
    assert g.dtype == np.float32
    assert g[0] + 2.0 * g[1:].sum() == pytest.approx(1.0, abs=1e-6)
    assert np.all(np.diff(g) < 0)


def test_zero_sigma_is_a_single_tap():
    g, r = gaussian_symm_kernel(0.0)
    assert r == 0
    assert g.tolist() == [1.0]


def test_pattern_is_deterministic_and_inside_patch():
    p1 = brief_pattern(256, 31, 42)
    p2 = brief_pattern(256, 31, 42)
    assert p1.shape == (256, 4)
    assert p1.dtype == np.int32
    np.testing.assert_array_equal(p1, p2)
    assert np.abs(p1).max() <= 15
    assert not np.array_equal(p1, brief_pattern(256, 31, 43))


def test_derived_sizes():
    p = FastBriefParams(image_size=(64, 48), max_features=100, nms_radius=3)
    assert p.shape == (48, 64)
    assert p.descriptor_words == 8
    assert p.candidate_capacity == 16 * 12
    assert p.corner_sort_size == 256
    assert p.match_sort_size == 128
    assert p.integral_passes == 6 + 6
    assert p.descriptor_margin == p.pattern_radius + p.box_radius
    assert p.pattern.shape == (256, 4)


def test_nms_radius_zero_keeps_every_pixel_as_candidate():
    p = FastBriefParams(image_size=(20, 10), nms_radius=0, blur_sigma=0.0)
    assert p.candidate_capacity == 200
    assert p.corner_sort_size == 256
