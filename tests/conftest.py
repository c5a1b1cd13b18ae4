from __future__ import annotations

import os
from pathlib import Path

# Without an NVIDIA driver the kernels run on numba's CUDA simulator. This has
# to happen before numba.cuda is first imported.
if "NUMBA_ENABLE_CUDASIM" not in os.environ and not Path("/dev/nvidiactl").exists():
    os.environ["NUMBA_ENABLE_CUDASIM"] = "1"

import pytest  # noqa: E402
from numba import cuda  # noqa: E402


@pytest.fixture
def stream():
    return cuda.stream()
