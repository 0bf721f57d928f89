"""
Detection results and the letterbox geometry needed to produce them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in original-image pixels, corners (x1, y1) top-left
    and (x2, y2) bottom-right.
    """
    x1: float
    y1: float
    x2: float
    y2: float

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
    def is_valid(self) -> bool:
        return self.x2 > self.x1 and self.y2 > self.y1

    def iou(self, other: "BoundingBox") -> float:
        """Intersection-over-Union with another box (0.0 when disjoint)."""
        overlap_w = min(self.x2, other.x2) - max(self.x1, other.x1)
        overlap_h = min(self.y2, other.y2) - max(self.y1, other.y1)
        inter = max(0.0, overlap_w) * max(0.0, overlap_h)
        union = self.area + other.area - inter
        return inter / union if union > 0 else 0.0


@dataclass(frozen=True)
class Detection:
    """
    One detected object, immutable once the decoder produces it.

    Attributes:
        bbox: Box in original-image pixels (letterbox already inverted).
        confidence: Best class score, 0-1.
        class_id: Index into the label list.
        label: Class name, or ``class_<id>`` when the label list is short.
    """
    bbox: BoundingBox
    confidence: float
    class_id: int
    label: str

    @property
    def x1(self) -> float:
        return self.bbox.x1

    @property
    def y1(self) -> float:
        return self.bbox.y1

    @property
    def x2(self) -> float:
        return self.bbox.x2

    @property
    def y2(self) -> float:
        return self.bbox.y2

    @property
    def width(self) -> float:
        return self.bbox.width

    @property
    def height(self) -> float:
        return self.bbox.height

    def iou(self, other: "Detection") -> float:
        return self.bbox.iou(other.bbox)

    @classmethod
    def from_xyxy(
        cls,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        confidence: float,
        class_id: int,
        label: str = "",
    ) -> "Detection":
        return cls(
            bbox=BoundingBox(x1, y1, x2, y2),
            confidence=confidence,
            class_id=class_id,
            label=label or f"class_{class_id}",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x1": self.x1,
            "y1": self.y1,
            "x2": self.x2,
            "y2": self.y2,
            "confidence": self.confidence,
            "class_id": self.class_id,
            "label": self.label,
        }


@dataclass(frozen=True)
class LetterboxTransform:
    """
    Uniform resize + padding used to fit an image into the S×S model input.

    Attributes:
        scale: Uniform resize factor, min(S/W, S/H).
        pad_left: Columns of padding left of the resized image.
        pad_top: Rows of padding above the resized image.
        new_width: Width of the resized image inside the canvas.
        new_height: Height of the resized image inside the canvas.
    """
    scale: float
    pad_left: int
    pad_top: int
    new_width: int
    new_height: int

    def to_original(self, x: float, y: float) -> Tuple[float, float]:
        """Map a model-space point back to original-image coordinates."""
        return ((x - self.pad_left) / self.scale, (y - self.pad_top) / self.scale)
