from __future__ import annotations

import logging

from numba import cuda

from .buffers import Descriptors, Keyframe, Keypoints
from .launch import LINEAR_TH, grid_1d

logger = logging.getLogger(__name__)


@cuda.jit(cache=True)
def copy_snapshot_kernel(
    xy, score, bits, valid, kp_counter, dst_xy, dst_score, dst_bits, dst_valid, dst_counter
):
    k = cuda.grid(1)
    if k == 0:
        dst_counter[0] = kp_counter[0]
    if k >= xy.shape[0] or k >= kp_counter[0]:
        return
    dst_xy[k, 0] = xy[k, 0]
    dst_xy[k, 1] = xy[k, 1]
    dst_score[k] = score[k]
    for wd in range(bits.shape[1]):
        dst_bits[k, wd] = bits[k, wd]
    dst_valid[k] = valid[k]


class KeyframeStore:
    """Double-buffered keyframe snapshot.

    A recording is written into the slot that is not live and only then made
    live, so whatever reads ``reference`` afterwards on the same stream sees a
    complete snapshot, either the previous one or the new one.
    """

    def __init__(self, slots: tuple[Keyframe, Keyframe]):
        self.slots = slots
        self.active: int | None = None
        self.generation = 0

    @property
    def reference(self) -> Keyframe | None:
        return None if self.active is None else self.slots[self.active]

    @property
    def inactive(self) -> int:
        return 0 if self.active is None else 1 - self.active

    def record(self, keypoints: Keypoints, descriptors: Descriptors, stream) -> int:
        target = self.inactive
        dst = self.slots[target]
        copy_snapshot_kernel[grid_1d(keypoints.xy.shape[0]), LINEAR_TH, stream](
            keypoints.xy,
            keypoints.score,
            descriptors.bits,
            descriptors.valid,
            keypoints.counter,
            dst.xy,
            dst.score,
            dst.bits,
            dst.valid,
            dst.counter,
        )
        self.active = target
        self.generation += 1
        logger.debug("keyframe generation %d written to slot %d", self.generation, target)
        return self.generation

    def clear(self) -> None:
        self.active = None
