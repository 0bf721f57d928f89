"""
Detection decoding and class-wise non-maximum suppression.

The detector output is a (1, 4 + C, N) tensor: rows 0-3 hold normalised
cx, cy, w, h for each of the N predictions, rows 4.. hold the per-class
scores. Decoding is vectorised over all predictions; only the greedy NMS
loop walks the (already thresholded and capped) candidates.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from models.detection import Detection, LetterboxTransform
from models.errors import PostprocessingError


def _label(labels: Sequence[str], class_id: int) -> str:
    if 0 <= class_id < len(labels):
        return labels[class_id]
    return f"class_{class_id}"


def _iou_one_to_many(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    ix1 = np.maximum(box[0], boxes[:, 0])
    iy1 = np.maximum(box[1], boxes[:, 1])
    ix2 = np.minimum(box[2], boxes[:, 2])
    iy2 = np.minimum(box[3], boxes[:, 3])
    inter = np.clip(ix2 - ix1, 0, None) * np.clip(iy2 - iy1, 0, None)
    area = (box[2] - box[0]) * (box[3] - box[1])
    areas = (boxes[:, 2] - boxes[:, 0]) * (boxes[:, 3] - boxes[:, 1])
    union = area + areas - inter
    return np.where(union > 0, inter / np.where(union > 0, union, 1), 0.0)


def nms_indices(
    boxes: np.ndarray,
    scores: np.ndarray,
    class_ids: np.ndarray,
    iou_threshold: float,
) -> List[int]:
    """
    Greedy same-class NMS.

    Returns:
        Indices of kept boxes, highest score first. Ties keep input order.
    """
    n = len(scores)
    if n == 0:
        return []

    order = np.argsort(-scores, kind="stable")
    suppressed = np.zeros(n, dtype=bool)
    keep: List[int] = []
    for pos, i in enumerate(order):
        if suppressed[i]:
            continue
        keep.append(int(i))
        rest = order[pos + 1:]
        rest = rest[(class_ids[rest] == class_ids[i]) & ~suppressed[rest]]
        if rest.size:
            ious = _iou_one_to_many(boxes[i], boxes[rest])
            suppressed[rest[ious >= iou_threshold]] = True
    return keep


def non_max_suppression(detections: List[Detection], iou_threshold: float) -> List[Detection]:
    """
    Suppress overlapping same-class detections.

    Detections of different classes never suppress each other. The result
    is ordered by descending confidence.
    """
    if not detections:
        return []
    boxes = np.array([[d.x1, d.y1, d.x2, d.y2] for d in detections], dtype=np.float64)
    scores = np.array([d.confidence for d in detections], dtype=np.float64)
    class_ids = np.array([d.class_id for d in detections], dtype=np.int64)
    return [detections[i] for i in nms_indices(boxes, scores, class_ids, iou_threshold)]


def decode(
    output: np.ndarray,
    transform: LetterboxTransform,
    image_width: int,
    image_height: int,
    input_size: int,
    confidence_threshold: float,
    labels: Sequence[str] = (),
    num_classes: Optional[int] = None,
    max_detections: int = 200,
) -> List[Detection]:
    """
    Turn raw detector output into pixel-space detections (before NMS).

    Args:
        output: (1, 4 + C, N) or (4 + C, N) tensor.
        transform: Letterbox used to build the input; inverted here.
        image_width, image_height: Size of the image the boxes map back to.
        input_size: Model input side S (boxes are normalised by it).
        confidence_threshold: Minimum best-class score, inclusive.
        labels: Class names, indexed by class id.
        num_classes: C; defaults to output rows minus 4.
        max_detections: Keep at most this many highest-confidence candidates.

    Returns:
        Detections sorted by descending confidence.
    """
    try:
        preds = output[0] if output.ndim == 3 else output
        if preds.ndim != 2 or preds.shape[0] < 5:
            raise ValueError(f"Unexpected output shape {output.shape}")
        c = num_classes if num_classes is not None else preds.shape[0] - 4
        if preds.shape[0] < 4 + c:
            raise ValueError(f"Output has {preds.shape[0] - 4} class rows, expected {c}")

        scores = preds[4:4 + c]
        class_ids = np.argmax(scores, axis=0)
        confidences = scores[class_ids, np.arange(scores.shape[1])]

        keep = confidences >= confidence_threshold
        if not keep.any():
            return []

        cx, cy, w, h = (preds[:4, keep].astype(np.float64) * input_size)
        confidences = confidences[keep].astype(np.float64)
        class_ids = class_ids[keep]

        x1 = (cx - w / 2 - transform.pad_left) / transform.scale
        y1 = (cy - h / 2 - transform.pad_top) / transform.scale
        x2 = (cx + w / 2 - transform.pad_left) / transform.scale
        y2 = (cy + h / 2 - transform.pad_top) / transform.scale

        x1 = np.clip(x1, 0, image_width)
        x2 = np.clip(x2, 0, image_width)
        y1 = np.clip(y1, 0, image_height)
        y2 = np.clip(y2, 0, image_height)

        valid = (x2 > x1) & (y2 > y1)
        order = np.argsort(-confidences[valid], kind="stable")[:max(0, max_detections)]
        idx = np.flatnonzero(valid)[order]

        return [
            Detection.from_xyxy(
                float(x1[i]), float(y1[i]), float(x2[i]), float(y2[i]),
                confidence=float(confidences[i]),
                class_id=int(class_ids[i]),
                label=_label(labels, int(class_ids[i])),
            )
            for i in idx
        ]
    except (ValueError, IndexError, ZeroDivisionError) as e:
        raise PostprocessingError(f"Failed to decode detector output: {e}") from e


def postprocess(
    output: np.ndarray,
    transform: LetterboxTransform,
    image_width: int,
    image_height: int,
    input_size: int,
    confidence_threshold: float,
    iou_threshold: float,
    labels: Sequence[str] = (),
    num_classes: Optional[int] = None,
    max_detections: int = 200,
) -> List[Detection]:
    """decode() followed by non_max_suppression()."""
    candidates = decode(
        output,
        transform,
        image_width,
        image_height,
        input_size,
        confidence_threshold,
        labels=labels,
        num_classes=num_classes,
        max_detections=max_detections,
    )
    return non_max_suppression(candidates, iou_threshold)
