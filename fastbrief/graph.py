"""CUDA graph replay of the steady-state tick.

The device work of a tick that does not record a keyframe is identical from one
tick to the next except for the keyframe slot the matcher reads, so one graph
is captured per slot and replayed with a single launch.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Dict, Optional

import cuda.bindings.runtime as rt
import cupy as cp
from numba import cuda

os.environ["NUMBA_CUDA_ARRAY_INTERFACE_SYNC"] = "0"

logger = logging.getLogger(__name__)


def _check_runtime_error(err):
    if err != rt.cudaError_t.cudaSuccess:
        raise RuntimeError(
            f"CUDA runtime error: {rt.cudaGetErrorName(err)[1].decode()} - "
            f"{rt.cudaGetErrorString(err)[1].decode()}"
        )


class TickGraphs:
    def __init__(self, enqueue: Callable[[], None]):
        self.stream = cp.cuda.Stream(non_blocking=True)
        self.nb_stream = cuda.external_stream(self.stream.ptr)
        self._enqueue = enqueue
        self.graph: Dict[Optional[int], object] = {}
        self.exec_graph: Dict[Optional[int], object] = {}

    def capture(self, slot: Optional[int]) -> None:
        with self.stream:
            (err,) = rt.cudaStreamBeginCapture(
                self.stream.ptr, rt.cudaStreamCaptureMode.cudaStreamCaptureModeGlobal
            )
            _check_runtime_error(err)
            self._enqueue()
            err, graph = rt.cudaStreamEndCapture(self.stream.ptr)
            _check_runtime_error(err)
            err, exec_graph = rt.cudaGraphInstantiate(graph, 0)
            _check_runtime_error(err)
        self.graph[slot] = graph
        self.exec_graph[slot] = exec_graph
        logger.debug("captured tick graph for keyframe slot %s", slot)

    def launch(self, slot: Optional[int]) -> None:
        if slot not in self.exec_graph:
            self.capture(slot)
        (err,) = rt.cudaGraphLaunch(self.exec_graph[slot], self.stream.ptr)
        _check_runtime_error(err)

    def __del__(self):
        for e in getattr(self, "exec_graph", {}).values():
            rt.cudaGraphExecDestroy(e)
        for g in getattr(self, "graph", {}).values():
            rt.cudaGraphDestroy(g)
