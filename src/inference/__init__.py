"""
Detector inference: backend selection, runtime and output decoding.
"""

from .backend import BackendKind, BackendSpec, backend_chain, create_onnx_session
from .runtime import InferenceRuntime, RuntimeState, load_labels
from .decoder import decode, non_max_suppression, nms_indices, postprocess

__all__ = [
    "BackendKind",
    "BackendSpec",
    "backend_chain",
    "create_onnx_session",
    "InferenceRuntime",
    "RuntimeState",
    "load_labels",
    "decode",
    "non_max_suppression",
    "nms_indices",
    "postprocess",
]
