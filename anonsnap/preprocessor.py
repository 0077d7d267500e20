"""
Preprocessing for the detector adapters.

Responsibility:
    Convert a BGR image variant into the input each detector expects:
    a 4D DNN blob for the SSD network, an equalized grayscale image for
    the Haar cascade.

Non-goals:
    - No frame acquisition or I/O.
    - No inference or coordinate mapping.

Hard-coded:
    - Channel order is BGR (mandated by the Caffe model).
    - swapRB is False (input is already BGR from OpenCV).
"""

import numpy as np
import cv2

from anonsnap.config import ModelConfig


def _require_frame(frame: np.ndarray) -> None:
    if frame is None or frame.size == 0:
        raise ValueError(
            "Cannot preprocess an empty frame. "
            "Ensure the image variant has a positive size."
        )


def to_blob(frame: np.ndarray, config: ModelConfig) -> np.ndarray:
    """Convert a BGR frame into a DNN input blob.

    Args:
        frame: Input image as a BGR numpy array (H, W, 3).
        config: ModelConfig providing input_size, scale_factor, and mean_values.

    Returns:
        A 4D numpy array of shape (1, 3, H, W) with dtype float32,
        ready to be passed to net.setInput().

    Raises:
        ValueError: If the frame is empty.
    """
    _require_frame(frame)

    return cv2.dnn.blobFromImage(
        image=frame,
        scalefactor=config.scale_factor,
        size=config.input_size,
        mean=config.mean_values,
        swapRB=False,   # Hard-coded: input is BGR, model expects BGR
        crop=False,
    )


def to_gray(frame: np.ndarray) -> np.ndarray:
    """Convert a BGR frame to a histogram-equalized grayscale image.

    Raises:
        ValueError: If the frame is empty.
    """
    _require_frame(frame)

    gray = frame if frame.ndim == 2 else cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    return cv2.equalizeHist(gray)
