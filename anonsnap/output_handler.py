"""
Output handling for the face-finding pipeline.

Responsibility:
    Route each image's faces to the configured sinks. Modes combine
    freely:

        display     show the annotated image, wait for a key
        save_image  write ``<stem>_faces.jpg`` next to the other outputs
        save_json   collect, write ``faces.json`` on finalize
        save_csv    collect, write ``faces.csv`` on finalize

Non-goals:
    - No detection logic.
    - No input acquisition.
"""

import logging
from pathlib import Path
from typing import List

import cv2
import numpy as np

from anonsnap.config import AppConfig, get_project_root
from anonsnap.detection import Face, ImageFaces
from anonsnap.serializer import save_csv, save_json
from anonsnap.visualizer import draw_faces, show_faces

logger = logging.getLogger(__name__)

_QUIT_KEYS = (ord("q"), 27)  # 'q' or ESC
_FILE_MODES = {"save_image", "save_json", "save_csv"}


class OutputHandler:
    """Routes face lists to the configured output sinks.

    Usage:
        handler = OutputHandler(config)
        keep_going = handler.process_image(name, image, faces)
        ...
        handler.finalize()  # Writes collected JSON/CSV
    """

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._modes = {m.strip() for m in config.output.mode.split(",") if m.strip()}
        self._results: List[ImageFaces] = []

        save_path = Path(config.output.save_path)
        if not save_path.is_absolute():
            save_path = get_project_root() / save_path
        self._save_path = save_path

        if self._modes & _FILE_MODES:
            self._save_path.mkdir(parents=True, exist_ok=True)

        logger.info("OutputHandler initialized: modes=%s, save_path=%s",
                    sorted(self._modes), self._save_path)

    @property
    def save_path(self) -> Path:
        return self._save_path

    def process_image(self, name: str, image: np.ndarray, faces: List[Face]) -> bool:
        """Send one image's faces to every active sink.

        Returns:
            False if the user asked to stop from the display window,
            True otherwise.
        """
        keep_going = True
        vis = self._config.visualization

        if "display" in self._modes:
            if show_faces(image, faces, vis) in _QUIT_KEYS:
                logger.info("Quit signal received (key press).")
                keep_going = False

        if "save_image" in self._modes:
            target = self._save_path / f"{Path(name).stem}_faces.jpg"
            if not cv2.imwrite(str(target), draw_faces(image, faces, vis)):
                logger.warning("Could not write annotated image: %s", target)

        if self._modes & {"save_json", "save_csv"}:
            h, w = image.shape[:2]
            self._results.append(ImageFaces(image=name, width=w, height=h, faces=list(faces)))

        return keep_going

    def finalize(self) -> None:
        """Write collected results and close any display window."""
        if self._results:
            if "save_json" in self._modes:
                save_json(self._results, str(self._save_path / "faces.json"))
            if "save_csv" in self._modes:
                save_csv(self._results, str(self._save_path / "faces.csv"))

        if "display" in self._modes:
            cv2.destroyAllWindows()

        self._results.clear()
        logger.info("OutputHandler finalized.")
