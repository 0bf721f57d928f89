"""
Image handling: colour conversion, letterboxing, decoding and debug dumps.
"""

from .color import (
    YuvConverter,
    OpenCVYuvConverter,
    NumpyYuvConverter,
    convert_frame,
    default_converters,
    orient,
)
from .letterbox import PAD_FILL, compute_transform, letterbox, letterbox_into
from .io import decode_image, load_image
from .debug import DebugSink, NullDebugSink, ImageDumpSink

__all__ = [
    "YuvConverter",
    "OpenCVYuvConverter",
    "NumpyYuvConverter",
    "convert_frame",
    "default_converters",
    "orient",
    "PAD_FILL",
    "compute_transform",
    "letterbox",
    "letterbox_into",
    "decode_image",
    "load_image",
    "DebugSink",
    "NullDebugSink",
    "ImageDumpSink",
]
