from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
from numba import cuda

from .params import FastBriefParams

if TYPE_CHECKING:
    from numba.cuda.cudadrv.devicearray import DeviceNDArray


@dataclass
class FrameImages:
    rgba: DeviceNDArray  # (h, w, 4) uint8, ingested frame
    gray: DeviceNDArray  # (h, w) uint8
    scratch: DeviceNDArray  # (h, w) float32, horizontal blur output
    blurred: DeviceNDArray  # (h, w) uint8
    integral: tuple[DeviceNDArray, DeviceNDArray]  # (h, w) int64 ping-pong
    response: DeviceNDArray  # (h, w) int32 FAST response
    visualization: DeviceNDArray  # (h, w, 4) uint8


@dataclass
class Keypoints:
    xy: DeviceNDArray  # (max_features, 2) int32 x, y
    score: DeviceNDArray  # (max_features,) int32
    sort_keys: DeviceNDArray  # (corner_sort_size,) int64 ranked candidates
    # keypoint count, candidate count, dropped count
    counter: DeviceNDArray = field(
        default_factory=lambda: cuda.to_device(np.zeros(3, dtype=np.int32))
    )


@dataclass
class Descriptors:
    bits: DeviceNDArray  # (max_features, words) uint32
    valid: DeviceNDArray  # (max_features,) uint8


@dataclass
class Matches:
    best: DeviceNDArray  # (max_features,) int32 reference index or -1
    distance: DeviceNDArray  # (max_features,) int32
    sort_keys: DeviceNDArray  # (match_sort_size,) int64
    pairs: DeviceNDArray  # (max_matches, 3) int32 query, reference, distance
    # match count, accepted count
    counter: DeviceNDArray = field(
        default_factory=lambda: cuda.to_device(np.zeros(2, dtype=np.int32))
    )


@dataclass
class Keyframe:
    xy: DeviceNDArray
    score: DeviceNDArray
    bits: DeviceNDArray
    valid: DeviceNDArray
    counter: DeviceNDArray = field(  # keypoint count
        default_factory=lambda: cuda.to_device(np.zeros(1, dtype=np.int32))
    )


@dataclass
class HostMirror:
    xy: np.ndarray
    score: np.ndarray
    bits: np.ndarray
    valid: np.ndarray
    pairs: np.ndarray
    kp_counter: np.ndarray
    match_counter: np.ndarray
    visualization: np.ndarray


@dataclass
class FastBriefData:
    images: FrameImages
    keypoints: Keypoints
    descriptors: Descriptors
    matches: Matches
    keyframes: tuple[Keyframe, Keyframe]
    host: HostMirror
    blur_kernel: DeviceNDArray
    pattern: DeviceNDArray
    integral_final: int = 0

    @property
    def integral(self) -> DeviceNDArray:
        return self.images.integral[self.integral_final]


def create_frame_images(params: FastBriefParams) -> FrameImages:
    h, w = params.shape
    return FrameImages(
        rgba=cuda.device_array((h, w, 4), np.uint8),
        gray=cuda.device_array((h, w), np.uint8),
        scratch=cuda.device_array((h, w), np.float32),
        blurred=cuda.device_array((h, w), np.uint8),
        integral=(
            cuda.device_array((h, w), np.int64),
            cuda.device_array((h, w), np.int64),
        ),
        response=cuda.device_array((h, w), np.int32),
        visualization=cuda.to_device(np.zeros((h, w, 4), np.uint8)),
    )


def create_keypoints(params: FastBriefParams) -> Keypoints:
    n = params.max_features
    return Keypoints(
        xy=cuda.to_device(np.zeros((n, 2), np.int32)),
        score=cuda.to_device(np.zeros(n, np.int32)),
        sort_keys=cuda.device_array(params.corner_sort_size, np.int64),
    )


def create_descriptors(params: FastBriefParams) -> Descriptors:
    n = params.max_features
    return Descriptors(
        bits=cuda.to_device(np.zeros((n, params.descriptor_words), np.uint32)),
        valid=cuda.to_device(np.zeros(n, np.uint8)),
    )


def create_matches(params: FastBriefParams) -> Matches:
    n = params.max_features
    return Matches(
        best=cuda.to_device(np.full(n, -1, np.int32)),
        distance=cuda.to_device(np.zeros(n, np.int32)),
        sort_keys=cuda.device_array(params.match_sort_size, np.int64),
        pairs=cuda.to_device(np.zeros((params.max_matches, 3), np.int32)),
    )


def create_keyframe(params: FastBriefParams) -> Keyframe:
    n = params.max_features
    return Keyframe(
        xy=cuda.to_device(np.zeros((n, 2), np.int32)),
        score=cuda.to_device(np.zeros(n, np.int32)),
        bits=cuda.to_device(np.zeros((n, params.descriptor_words), np.uint32)),
        valid=cuda.to_device(np.zeros(n, np.uint8)),
    )


def create_host_mirror(params: FastBriefParams) -> HostMirror:
    n = params.max_features
    h, w = params.shape
    return HostMirror(
        xy=np.empty((n, 2), np.int32),
        score=np.empty(n, np.int32),
        bits=np.empty((n, params.descriptor_words), np.uint32),
        valid=np.empty(n, np.uint8),
        pairs=np.empty((params.max_matches, 3), np.int32),
        kp_counter=np.zeros(3, np.int32),
        match_counter=np.zeros(2, np.int32),
        visualization=np.empty((h, w, 4), np.uint8),
    )


def create_fastbrief_data(params: FastBriefParams) -> FastBriefData:
    return FastBriefData(
        images=create_frame_images(params),
        keypoints=create_keypoints(params),
        descriptors=create_descriptors(params),
        matches=create_matches(params),
        keyframes=(create_keyframe(params), create_keyframe(params)),
        host=create_host_mirror(params),
        blur_kernel=cuda.to_device(params.blur_kernel),
        pattern=cuda.to_device(params.pattern),
        integral_final=params.integral_passes % 2,
    )
