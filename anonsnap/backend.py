"""
Inference backend selection.

OpenCV has two relevant switches: the process-wide OpenCL toggle
(``cv2.ocl.setUseOpenCL``), which accelerates cascade classifiers and
image operations, and the per-network DNN backend/target. This module
keeps both in step behind a single named backend so the pipeline can
drop to the CPU and come back.

Failure behavior:
    - Unknown backend names raise ValueError.
    - A network that rejects the requested target raises RuntimeError.
"""

import logging
from typing import Callable, List

import cv2

logger = logging.getLogger(__name__)

BACKENDS = ("cpu", "opencl", "cuda")


def configure_net(net: cv2.dnn.Net, backend: str) -> None:
    """Point a DNN network at the given backend.

    Raises:
        ValueError: If the backend name is unknown.
        RuntimeError: If OpenCV cannot use the requested backend.
    """
    if backend == "cuda":
        logger.info("Setting CUDA backend and target.")
        try:
            net.setPreferableBackend(cv2.dnn.DNN_BACKEND_CUDA)
            net.setPreferableTarget(cv2.dnn.DNN_TARGET_CUDA)
        except cv2.error as e:
            raise RuntimeError(
                f"Failed to set CUDA backend. Ensure OpenCV was built with "
                f"CUDA support (opencv-contrib-python or custom build).\n"
                f"  OpenCV error: {e}"
            ) from e
    elif backend == "opencl":
        logger.info("Setting OpenCL target.")
        net.setPreferableBackend(cv2.dnn.DNN_BACKEND_OPENCV)
        net.setPreferableTarget(cv2.dnn.DNN_TARGET_OPENCL)
    elif backend == "cpu":
        logger.info("Using CPU backend.")
        net.setPreferableBackend(cv2.dnn.DNN_BACKEND_OPENCV)
        net.setPreferableTarget(cv2.dnn.DNN_TARGET_CPU)
    else:
        raise ValueError(f"Unknown backend '{backend}'. Must be one of {BACKENDS}.")


class ComputeBackend:
    """The active inference backend, shared by all detector adapters.

    Adapters that own DNN networks register a callback with
    :meth:`attach`; :meth:`activate` re-targets them all.
    """

    def __init__(self, name: str = "cpu") -> None:
        if name not in BACKENDS:
            raise ValueError(f"Unknown backend '{name}'. Must be one of {BACKENDS}.")
        self._name = name
        self._listeners: List[Callable[[str], None]] = []
        cv2.ocl.setUseOpenCL(name == "opencl")

    @property
    def name(self) -> str:
        return self._name

    @property
    def accelerated(self) -> bool:
        """True for any GPU-backed backend."""
        return self._name != "cpu"

    def attach(self, listener: Callable[[str], None]) -> None:
        """Register a callback invoked with the backend name on every switch."""
        self._listeners.append(listener)

    def activate(self, name: str) -> None:
        """Switch every attached network, and OpenCL use, to ``name``."""
        if name not in BACKENDS:
            raise ValueError(f"Unknown backend '{name}'. Must be one of {BACKENDS}.")
        if name == self._name:
            return

        logger.info("Switching inference backend: %s -> %s", self._name, name)
        # Name tracks the OpenCL switch even if a listener fails below.
        cv2.ocl.setUseOpenCL(name == "opencl")
        self._name = name
        for listener in self._listeners:
            listener(name)
