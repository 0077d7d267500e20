"""
Model loading for the detector adapters.

Responsibility:
    Load the SSD network and the Haar cascade from disk and return
    ready-to-use OpenCV objects.

Non-goals:
    - No preprocessing, inference, or frame-level logic.
    - No automatic model downloading.

Failure behavior:
    - Missing model files raise FileNotFoundError with the exact
      missing path and expected location.
    - A cascade file that OpenCV cannot parse raises RuntimeError.
"""

import logging
from pathlib import Path

import cv2

from anonsnap.backend import configure_net
from anonsnap.config import CascadeConfig, ModelConfig, get_project_root

logger = logging.getLogger(__name__)


def _resolve(path_str: str) -> Path:
    path = Path(path_str)
    if not path.is_absolute():
        path = get_project_root() / path
    return path


def load_model(config: ModelConfig, backend: str = "cpu") -> cv2.dnn.Net:
    """Load and configure the SSD face detection model.

    Args:
        config: ModelConfig containing file paths.
        backend: Initial inference backend for the network.

    Returns:
        A configured cv2.dnn.Net ready for inference.

    Raises:
        FileNotFoundError: If prototxt or weights file does not exist.
        RuntimeError: If the requested backend is unavailable.
    """
    prototxt = _resolve(config.prototxt_path)
    weights = _resolve(config.weights_path)

    # Validate file existence up front with actionable messages
    if not prototxt.is_file():
        raise FileNotFoundError(
            f"Model prototxt not found.\n"
            f"  Expected: {prototxt}\n"
            f"  Provide the file or update 'model.prototxt_path' in your config."
        )

    if not weights.is_file():
        raise FileNotFoundError(
            f"Model weights not found.\n"
            f"  Expected: {weights}\n"
            f"  Download the weights file and place it at the path above,\n"
            f"  or update 'model.weights_path' in your config."
        )

    logger.info("Loading model: prototxt=%s, weights=%s", prototxt, weights)
    net = cv2.dnn.readNetFromCaffe(str(prototxt), str(weights))
    configure_net(net, backend)

    logger.info("Model loaded successfully.")
    return net


def load_cascade(config: CascadeConfig) -> cv2.CascadeClassifier:
    """Load the Haar cascade used by the fast detector.

    A bare file name is looked up among the cascades that ship with
    opencv-python; anything else is resolved against the project root.

    Raises:
        FileNotFoundError: If the cascade file does not exist.
        RuntimeError: If OpenCV fails to parse the file.
    """
    name = Path(config.cascade_file)
    if name.parent == Path(".") and not name.is_absolute():
        path = Path(cv2.data.haarcascades) / name
    else:
        path = _resolve(config.cascade_file)

    if not path.is_file():
        raise FileNotFoundError(
            f"Cascade file not found.\n"
            f"  Expected: {path}\n"
            f"  Update 'cascade.cascade_file' in your config."
        )

    logger.info("Loading cascade: %s", path)
    classifier = cv2.CascadeClassifier(str(path))
    if classifier.empty():
        raise RuntimeError(f"OpenCV could not parse cascade file: {path}")

    return classifier
