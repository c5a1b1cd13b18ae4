from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from numba import cuda

from .buffers import FastBriefData, create_fastbrief_data
from .corners import detect_corners
from .descriptors import build_descriptors
from .ingest import check_frame, convert_to_gray, upload_frame
from .integral import build_integral
from .keyframe import KeyframeStore
from .matching import match_descriptors
from .params import FastBriefParams
from .smoothing import gaussian_blur
from .visualize import render_visualization

logger = logging.getLogger(__name__)


class TickState(enum.Enum):
    IDLE = "idle"
    INGEST = "ingest"
    SMOOTH = "smooth"
    INTEGRAL = "integral"
    DETECT = "detect"
    DESCRIBE = "describe"
    MATCH = "match"
    DONE = "done"
    FAILED = "failed"


class PipelineError(RuntimeError):
    """A tick could not complete; the pipeline instance is no longer usable."""


STAGES = (
    (TickState.INGEST, convert_to_gray),
    (TickState.SMOOTH, gaussian_blur),
    (TickState.INTEGRAL, build_integral),
    (TickState.DETECT, detect_corners),
    (TickState.DESCRIBE, build_descriptors),
)


@dataclass
class TickResult:
    frame_index: int
    keypoints: np.ndarray  # (n, 2) int32 x, y
    scores: np.ndarray  # (n,) int32
    descriptors: np.ndarray  # (n, words) uint32
    descriptor_valid: np.ndarray  # (n,) bool
    matches: np.ndarray  # (m, 3) int32 query, reference, distance
    num_candidates: int
    dropped_keypoints: int
    num_accepted: int
    keyframe_generation: int
    keyframe_recorded: bool
    visualization: Optional[np.ndarray] = None

    @property
    def num_keypoints(self) -> int:
        return int(self.keypoints.shape[0])

    @property
    def num_matches(self) -> int:
        return int(self.matches.shape[0])

    def matched_points(self, keyframe: "TickResult") -> tuple[np.ndarray, np.ndarray]:
        """(keyframe xy, current xy) for every match, given the result of the
        tick that recorded the keyframe."""
        if self.num_matches == 0:
            empty = np.empty((0, 2), np.int32)
            return empty, empty.copy()
        return (
            keyframe.keypoints[self.matches[:, 1]],
            self.keypoints[self.matches[:, 0]],
        )


class FastBrief:
    """Per-tick FAST/BRIEF extraction and keyframe matching on the GPU.

    Owns every device buffer, runs the stages in order on a single stream and
    drains the stream before ``compute`` returns.
    """

    def __init__(self, params: FastBriefParams, use_graph: bool = False):
        self.params = params
        self.data: FastBriefData = create_fastbrief_data(params)
        self.keyframes = KeyframeStore(self.data.keyframes)
        self.state = TickState.IDLE
        self.failure: Optional[BaseException] = None
        self.frame_index = 0

        self.graphs = None
        if use_graph:
            from .graph import TickGraphs

            self.graphs = TickGraphs(self._enqueue_device_work)
            self.stream = self.graphs.nb_stream
        else:
            self.stream = cuda.stream()

    @property
    def visualization(self):
        """Device RGBA image of the last tick, for a GPU-side display."""
        return self.data.images.visualization

    @property
    def has_keyframe(self) -> bool:
        return self.keyframes.active is not None

    @property
    def keyframe_generation(self) -> int:
        return self.keyframes.generation

    def drop_keyframe(self) -> None:
        """Forget the live keyframe; ticks report no matches until the next
        recording."""
        self.keyframes.clear()
        logger.info("dropped keyframe generation %d", self.keyframes.generation)

    def compute(
        self,
        frame: np.ndarray,
        record_keyframe: bool = False,
        download_visualization: bool = False,
    ) -> TickResult:
        if self.failure is not None:
            raise PipelineError(
                "pipeline failed on an earlier tick; construct a new instance"
            ) from self.failure
        frame = check_frame(frame, self.params)

        try:
            result = self._tick(frame, record_keyframe, download_visualization)
        except Exception as exc:
            failed_in = self.state
            self.state = TickState.FAILED
            self.failure = exc
            logger.error(
                "tick %d failed during %s: %s", self.frame_index, failed_in.value, exc
            )
            raise PipelineError(
                f"tick {self.frame_index} failed during {failed_in.value}"
            ) from exc

        self.frame_index += 1
        return result

    def _tick(
        self, frame: np.ndarray, record_keyframe: bool, download_visualization: bool
    ) -> TickResult:
        self.state = TickState.INGEST
        upload_frame(self.data, frame, self.stream)

        if self.graphs is not None and not record_keyframe and self.frame_index > 0:
            self.graphs.launch(self.keyframes.active)
            self.state = TickState.MATCH
        else:
            self._enqueue_device_work(record_keyframe)

        result = self._publish(record_keyframe, download_visualization)
        self.state = TickState.DONE
        return result

    def _enqueue_device_work(self, record_keyframe: bool = False) -> None:
        for state, stage in STAGES:
            self.state = state
            stage(self.data, self.params, self.stream)

        if record_keyframe:
            self.keyframes.record(
                self.data.keypoints, self.data.descriptors, self.stream
            )
            logger.info(
                "recorded keyframe generation %d at tick %d",
                self.keyframes.generation,
                self.frame_index,
            )

        self.state = TickState.MATCH
        match_descriptors(
            self.data, self.params, self.keyframes.reference, self.stream
        )
        render_visualization(self.data, self.params, self.stream)

    def _publish(self, record_keyframe: bool, download_visualization: bool) -> TickResult:
        d = self.data
        host = d.host
        s = self.stream
        d.keypoints.counter.copy_to_host(host.kp_counter, stream=s)
        d.keypoints.xy.copy_to_host(host.xy, stream=s)
        d.keypoints.score.copy_to_host(host.score, stream=s)
        d.descriptors.bits.copy_to_host(host.bits, stream=s)
        d.descriptors.valid.copy_to_host(host.valid, stream=s)
        d.matches.counter.copy_to_host(host.match_counter, stream=s)
        d.matches.pairs.copy_to_host(host.pairs, stream=s)
        if download_visualization:
            d.images.visualization.copy_to_host(host.visualization, stream=s)
        s.synchronize()

        n = int(host.kp_counter[0])
        m = int(host.match_counter[0])
        result = TickResult(
            frame_index=self.frame_index,
            keypoints=host.xy[:n].copy(),
            scores=host.score[:n].copy(),
            descriptors=host.bits[:n].copy(),
            descriptor_valid=host.valid[:n].astype(bool),
            matches=host.pairs[:m].copy(),
            num_candidates=int(host.kp_counter[1]),
            dropped_keypoints=int(host.kp_counter[2]),
            num_accepted=int(host.match_counter[1]),
            keyframe_generation=self.keyframes.generation,
            keyframe_recorded=record_keyframe,
            visualization=host.visualization.copy() if download_visualization else None,
        )
        logger.debug(
            "tick %d: %d keypoints (%d candidates, %d dropped), %d matches",
            self.frame_index,
            n,
            result.num_candidates,
            result.dropped_keypoints,
            m,
        )
        return result
