"""
Input handling for the face-finding pipeline.

Responsibility:
    Load still images from a single file or a directory and yield them
    as (name, image) pairs.

Non-goals:
    - No detection, drawing, or output writing.
    - No video or camera sources.
    - No EXIF handling beyond what cv2.imread does.

Robustness:
    - Validates the source at initialization time.
    - Logs and skips unreadable images (never crashes the pipeline).
"""

import logging
from pathlib import Path
from typing import Iterator, List, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# Image extensions recognized by this handler
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp"}


class InputHandler:
    """Iterator over the images of a file or directory source.

    Usage:
        handler = InputHandler(source="photos/")
        for name, image in handler:
            # process image
    """

    def __init__(self, source: str) -> None:
        """Initialize the input handler and validate the source.

        Args:
            source: Path to an image file or a directory of images.

        Raises:
            FileNotFoundError: If the source does not exist.
            ValueError: If the file type is unsupported or the directory
                        holds no images.
        """
        path = Path(str(source).strip())

        if path.is_file():
            ext = path.suffix.lower()
            if ext not in IMAGE_EXTENSIONS:
                raise ValueError(
                    f"Unrecognized file extension: '{ext}' for source '{path}'. "
                    f"Supported images: {IMAGE_EXTENSIONS}."
                )
            self._paths: List[Path] = [path]
        elif path.is_dir():
            self._paths = sorted(
                p for p in path.iterdir()
                if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
            )
            if not self._paths:
                raise ValueError(
                    f"No image files found in directory: '{path}'. "
                    f"Supported extensions: {IMAGE_EXTENSIONS}."
                )
            logger.info("Found %d images in directory: %s", len(self._paths), path)
        else:
            raise FileNotFoundError(
                f"Input source not found: '{path}'. "
                f"Provide a valid image file or directory."
            )

    def __len__(self) -> int:
        return len(self._paths)

    def __iter__(self) -> Iterator[Tuple[str, np.ndarray]]:
        """Yield (file name, BGR image) pairs, skipping unreadable files."""
        for path in self._paths:
            image = cv2.imread(str(path), cv2.IMREAD_COLOR)
            if image is None:
                logger.warning("Skipping unreadable image: %s", path)
                continue
            yield path.name, image
