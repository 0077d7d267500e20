"""
Serialization for the face-finding pipeline.

Responsibility:
    Write per-image face lists to JSON or CSV for the downstream
    anonymization step, and read the JSON back so an editing step can
    toggle or move faces without re-running detection.

Non-goals:
    - No rendering, display, or detection logic.
    - No streaming output: files are written whole, on finalize.

JSON layout:
    {
        "images": [
            {"image": "photo.jpg", "width": 640, "height": 480,
             "faces": [{"id": ..., "bbox": {...}, "selected": true}]}
        ],
        "total_images": N,
        "total_faces": M
    }
"""

import csv
import json
import logging
from pathlib import Path
from typing import List, Sequence

from anonsnap.detection import Face, ImageFaces

logger = logging.getLogger(__name__)

CSV_COLUMNS = ("image", "id", "x", "y", "width", "height", "selected")


def save_json(results: Sequence[ImageFaces], output_path: str) -> None:
    """Write all results to one JSON file, in the given image order.

    Raises:
        OSError: If the output path is not writable.
    """
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)

    payload = {
        "images": [
            {
                "image": result.image,
                "width": result.width,
                "height": result.height,
                "faces": [face.to_dict() for face in result.faces],
            }
            for result in results
        ],
        "total_images": len(results),
        "total_faces": sum(len(result.faces) for result in results),
    }

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    logger.info(
        "JSON output saved: %s (%d images, %d faces)",
        output_path, payload["total_images"], payload["total_faces"],
    )


def load_json(input_path: str) -> List[ImageFaces]:
    """Read a file written by :func:`save_json`.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not a face list.
    """
    with open(input_path, "r", encoding="utf-8") as f:
        payload = json.load(f)

    try:
        return [
            ImageFaces(
                image=entry["image"],
                width=int(entry["width"]),
                height=int(entry["height"]),
                faces=[Face.from_dict(face) for face in entry["faces"]],
            )
            for entry in payload["images"]
        ]
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed face list in {input_path}: {e!r}") from e


def save_csv(results: Sequence[ImageFaces], output_path: str) -> None:
    """Write one CSV row per face.

    Raises:
        OSError: If the output path is not writable.
    """
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)

    rows = 0
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for result in results:
            for face in result.faces:
                data = face.to_dict()
                writer.writerow({
                    "image": result.image,
                    "id": data["id"],
                    "selected": data["selected"],
                    **data["bbox"],
                })
                rows += 1

    logger.info("CSV output saved: %s (%d rows)", output_path, rows)
