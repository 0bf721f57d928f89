"""
Optional debug image dumping.

The frame processor hands intermediate images to a DebugSink. The default
NullDebugSink does nothing; ImageDumpSink writes a few PNGs per kind so a
developer can eyeball the conversion and letterbox output.
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime
from typing import Dict, List, Protocol

import cv2
import numpy as np


class DebugSink(Protocol):
    def save_raster(self, kind: str, rgb: np.ndarray) -> None:
        ...

    def save_tensor(self, kind: str, tensor: np.ndarray) -> None:
        ...


class NullDebugSink:
    """Discards everything."""

    def save_raster(self, kind: str, rgb: np.ndarray) -> None:
        return None

    def save_tensor(self, kind: str, tensor: np.ndarray) -> None:
        return None


class ImageDumpSink:
    """
    Writes debug images as PNG files, at most max_per_kind per kind.

    Args:
        output_dir: Directory for the PNG files (created on first write).
        max_per_kind: Cap per image kind, so a long session does not fill the disk.
    """

    def __init__(self, output_dir: str, max_per_kind: int = 5):
        self.output_dir = output_dir
        self.max_per_kind = max_per_kind
        self._counts: Dict[str, int] = {}
        self._written: List[str] = []
        self._lock = threading.Lock()

    @property
    def written(self) -> List[str]:
        """Paths written so far."""
        return list(self._written)

    def count(self, kind: str) -> int:
        return self._counts.get(kind, 0)

    def save_raster(self, kind: str, rgb: np.ndarray) -> None:
        if rgb is None or rgb.ndim != 3:
            return
        self._write(kind, cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))

    def save_tensor(self, kind: str, tensor: np.ndarray) -> None:
        """Write a (1, S, S, 3) normalised tensor back out as an 8-bit image."""
        if tensor is None or tensor.ndim != 4:
            return
        rgb = np.clip(tensor[0] * 255.0, 0, 255).astype(np.uint8)
        self._write(kind, cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))

    def _write(self, kind: str, bgr: np.ndarray) -> None:
        with self._lock:
            index = self._counts.get(kind, 0)
            if index >= self.max_per_kind:
                return
            self._counts[kind] = index + 1

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = os.path.join(self.output_dir, f"{kind}_{index + 1}_{timestamp}.png")
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            written = cv2.imwrite(path, bgr)
        except (OSError, cv2.error) as e:
            logging.warning(f"Failed to write debug image {path}: {e}")
            return
        if written:
            self._written.append(path)
            logging.debug(f"Debug image saved: {path}")
        else:
            logging.warning(f"Failed to write debug image: {path}")
