from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .launch import next_pow2

MAX_BLUR_RADIUS = 16
MAX_COORD = 0xFFFF
MAX_FEATURES_LIMIT = 1 << 20
RING_RADIUS = 3


def gaussian_symm_kernel(sigma: float) -> tuple[np.ndarray, int]:
    """Half of a normalised symmetric Gaussian: ``g[0]`` is the centre tap."""
    radius = min(int(math.ceil(4.0 * float(sigma))), MAX_BLUR_RADIUS)
    g = np.zeros(radius + 1, dtype=np.float32)
    g[0] = np.float32(1.0)

    if sigma > 0.0:
        sig32 = np.float32(sigma)
        sum32 = np.float32(1.0)
        for i in range(1, radius + 1):
            t32 = np.float32(-0.5) * np.float32(i) * np.float32(i) / sig32 / sig32
            val32 = np.float32(math.exp(float(t32)))
            g[i] = val32
            sum32 = np.float32(sum32 + np.float32(2.0) * val32)
        g /= sum32

    return g, radius


def brief_pattern(n_pairs: int, patch_size: int, seed: int) -> np.ndarray:
    """Sampling pairs ``(dx1, dy1, dx2, dy2)`` drawn from an isotropic Gaussian.

    The pattern is fixed for the lifetime of a pipeline; the same seed always
    yields the same pattern.
    """
    half = patch_size // 2
    rng = np.random.default_rng(seed)
    offsets = rng.normal(0.0, patch_size / 5.0, size=(n_pairs, 4))
    return np.clip(np.rint(offsets), -half, half).astype(np.int32)


@dataclass
class FastBriefParams:
    image_size: tuple[int, int]  # (width, height)
    max_features: int = 1 << 14
    max_matches: int = 1 << 14

    blur_sigma: float = 1.0

    fast_threshold: int = 20
    fast_arc_length: int = 9
    nms_radius: int = 3

    descriptor_bits: int = 256
    patch_size: int = 31
    box_radius: int = 2
    pattern_seed: int = 42

    max_distance: int = 64
    ratio: float = 0.8

    marker_radius: int = 1

    blur_kernel: np.ndarray | None = None
    blur_radius: int = 0
    pattern: np.ndarray | None = None
    pattern_radius: int = 0
    descriptor_margin: int = 0
    candidate_capacity: int = 0
    integral_passes: int = 0

    def __post_init__(self) -> None:
        self._validate()
        self.blur_kernel, self.blur_radius = gaussian_symm_kernel(self.blur_sigma)
        if min(self.image_size) <= 2 * self.blur_radius:
            raise ValueError(
                f"image_size {self.image_size} is too small for blur radius "
                f"{self.blur_radius} (blur_sigma={self.blur_sigma})"
            )
        self.pattern = brief_pattern(
            self.descriptor_bits, self.patch_size, self.pattern_seed
        )
        self.pattern_radius = int(np.abs(self.pattern).max(initial=0))
        self.descriptor_margin = self.pattern_radius + self.box_radius
        self.candidate_capacity = self._nms_survivor_bound()
        self.integral_passes = (self.width - 1).bit_length() + (
            self.height - 1
        ).bit_length()

    def _validate(self) -> None:
        if len(self.image_size) != 2:
            raise ValueError(f"image_size must be (width, height), got {self.image_size}")
        self.image_size = (int(self.image_size[0]), int(self.image_size[1]))
        width, height = self.image_size
        if width <= 0 or height <= 0:
            raise ValueError(f"image_size must be positive, got {self.image_size}")
        if width > MAX_COORD or height > MAX_COORD:
            raise ValueError(
                f"image_size {self.image_size} exceeds {MAX_COORD} in some dimension"
            )
        if not 0 < self.max_features <= MAX_FEATURES_LIMIT:
            raise ValueError(
                f"max_features must be in 1..{MAX_FEATURES_LIMIT}, got {self.max_features}"
            )
        if self.max_matches <= 0:
            raise ValueError(f"max_matches must be positive, got {self.max_matches}")
        if self.blur_sigma < 0.0:
            raise ValueError(f"blur_sigma must be >= 0, got {self.blur_sigma}")
        if not 0 <= self.fast_threshold <= 255:
            raise ValueError(
                f"fast_threshold must be in 0..255, got {self.fast_threshold}"
            )
        if not 1 <= self.fast_arc_length <= 16:
            raise ValueError(
                f"fast_arc_length must be in 1..16, got {self.fast_arc_length}"
            )
        if self.nms_radius < 0:
            raise ValueError(f"nms_radius must be >= 0, got {self.nms_radius}")
        if self.descriptor_bits % 32 != 0 or not 32 <= self.descriptor_bits <= 512:
            raise ValueError(
                "descriptor_bits must be a multiple of 32 in 32..512, "
                f"got {self.descriptor_bits}"
            )
        if self.patch_size < 3 or self.patch_size % 2 == 0:
            raise ValueError(f"patch_size must be odd and >= 3, got {self.patch_size}")
        if self.box_radius < 0:
            raise ValueError(f"box_radius must be >= 0, got {self.box_radius}")
        if self.max_distance < 0:
            raise ValueError(f"max_distance must be >= 0, got {self.max_distance}")
        if not 0.0 < self.ratio <= 1.0:
            raise ValueError(f"ratio must be in (0, 1], got {self.ratio}")
        if self.marker_radius < 0:
            raise ValueError(f"marker_radius must be >= 0, got {self.marker_radius}")

    def _nms_survivor_bound(self) -> int:
        # survivors are pairwise more than nms_radius apart (Chebyshev)
        step = self.nms_radius + 1
        return ((self.width + step - 1) // step) * ((self.height + step - 1) // step)

    @property
    def width(self) -> int:
        return self.image_size[0]

    @property
    def height(self) -> int:
        return self.image_size[1]

    @property
    def shape(self) -> tuple[int, int]:
        return (self.height, self.width)

    @property
    def descriptor_words(self) -> int:
        return self.descriptor_bits // 32

    @property
    def corner_sort_size(self) -> int:
        return next_pow2(self.candidate_capacity)

    @property
    def match_sort_size(self) -> int:
        return next_pow2(self.max_features)
