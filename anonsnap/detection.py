"""
Data transfer objects for the face-finding pipeline.

Four records flow through the system:

    RawDetection  — what a detector adapter reports, in the coordinates
                    of the image variant it was run on.
    Candidate     — a raw detection mapped back into original-image
                    coordinates, tagged with its provenance.
    Face          — a final, expanded face region handed to the caller.
    ImageFaces    — the faces of one image plus its size, as serialized.

Non-goals:
    - No rendering logic.
    - No file I/O.
    - No coordinate transformation methods (that belongs in transforms).
"""

from dataclasses import dataclass, field
from typing import List, Tuple


@dataclass(frozen=True, slots=True)
class RawDetection:
    """A single box reported by a detector adapter.

    Coordinates are absolute pixels in the variant image passed to
    the adapter, not in the original image.
    """

    x_min: float
    y_min: float
    x_max: float
    y_max: float
    score: float


@dataclass(frozen=True, slots=True)
class Candidate:
    """A detection in original-image coordinates, prior to suppression.

    Attributes:
        x1: Left edge.
        y1: Top edge.
        x2: Right edge.
        y2: Bottom edge.
        score: Confidence in [0.0, 1.0].
        source: Provenance tag (detector and pass). Diagnostic only.

    Raises:
        ValueError: On construction with non-positive width or height.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    score: float
    source: str = ""

    def __post_init__(self) -> None:
        if not (self.x2 > self.x1 and self.y2 > self.y1):
            raise ValueError(
                f"Degenerate candidate box ({self.x1}, {self.y1}, "
                f"{self.x2}, {self.y2}) from '{self.source}'."
            )

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x1 + self.width / 2, self.y1 + self.height / 2)


@dataclass(slots=True)
class BoundingBox:
    """Axis-aligned box as (x, y, width, height) in original pixels."""

    x: float
    y: float
    width: float
    height: float


@dataclass(slots=True)
class Face:
    """A final face region.

    Created once per surviving cluster. Instances are mutable: an
    editing layer may move the box or toggle ``selected``.
    """

    id: str
    bbox: BoundingBox
    selected: bool = True

    def to_dict(self) -> dict:
        """Return a plain dict suitable for JSON serialization."""
        return {
            "id": self.id,
            "bbox": {
                "x": round(self.bbox.x, 2),
                "y": round(self.bbox.y, 2),
                "width": round(self.bbox.width, 2),
                "height": round(self.bbox.height, 2),
            },
            "selected": self.selected,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Face":
        """Rebuild a Face from the output of :meth:`to_dict`."""
        bbox = data["bbox"]
        return cls(
            id=str(data["id"]),
            bbox=BoundingBox(
                x=float(bbox["x"]),
                y=float(bbox["y"]),
                width=float(bbox["width"]),
                height=float(bbox["height"]),
            ),
            selected=bool(data.get("selected", True)),
        )


@dataclass(slots=True)
class ImageFaces:
    """The faces found in one image, with the image's pixel size."""

    image: str
    width: int
    height: int
    faces: List[Face] = field(default_factory=list)
