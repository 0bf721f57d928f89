"""
Inference runtime: owns the detector session and its input/output tensors.

The tensors are allocated once at initialization and reused for every
frame. Callers fill input_tensor (see imaging.letterbox.letterbox_into),
call run(), and read output_tensor.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from models.config import ModelConfig
from models.errors import (
    BackendUnavailableError,
    InferenceError,
    LabelsLoadError,
    ModelDisposedError,
    ModelLoadError,
    ModelNotInitializedError,
)
from .backend import BackendSpec, SessionFactory, backend_chain, create_onnx_session


class RuntimeState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DISPOSED = "disposed"


def load_labels(path: str) -> List[str]:
    """
    Read class labels, one per line; blank lines are skipped.

    Raises:
        LabelsLoadError: If the file is missing, unreadable or has no labels.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            labels = [line.strip() for line in f if line.strip()]
    except OSError as e:
        raise LabelsLoadError(f"Cannot read labels file: {e}", labels_path=path) from e

    if not labels:
        raise LabelsLoadError("Labels file is empty", labels_path=path)
    return labels


def _shape_matches(actual: Sequence[Any], expected: Tuple[int, ...]) -> bool:
    """Symbolic (non-int) dimensions match anything."""
    if len(actual) != len(expected):
        return False
    return all(not isinstance(a, int) or a == e for a, e in zip(actual, expected))


class InferenceRuntime:
    """
    Detector session plus pre-allocated tensors.

    Lifecycle: UNINITIALIZED -> READY -> DISPOSED. Not thread-safe; the
    detection controller serializes access on its worker thread.

    Args:
        config: Model asset paths, tensor geometry and backend chain.
        session_factory: Builds a session for (model_path, BackendSpec).
            Defaults to onnxruntime.
        backends: Override the fallback chain derived from config.
    """

    def __init__(
        self,
        config: ModelConfig,
        session_factory: Optional[SessionFactory] = None,
        backends: Optional[List[BackendSpec]] = None,
    ):
        self.config = config
        self._session_factory = session_factory or create_onnx_session
        self._backends = backends if backends is not None else backend_chain(config)
        self._state = RuntimeState.UNINITIALIZED
        self._session: Optional[Any] = None
        self._input_name: Optional[str] = None
        self._output_name: Optional[str] = None
        self._backend: Optional[BackendSpec] = None
        self.labels: List[str] = []
        self.input_tensor: Optional[np.ndarray] = None
        self.output_tensor: Optional[np.ndarray] = None

    @property
    def state(self) -> RuntimeState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == RuntimeState.READY

    @property
    def backend(self) -> Optional[BackendSpec]:
        """Backend that won the fallback chain (None until initialized)."""
        return self._backend

    @property
    def input_size(self) -> int:
        return self.config.input_size

    @property
    def input_shape(self) -> Tuple[int, int, int, int]:
        s = self.config.input_size
        return (1, s, s, 3)

    @property
    def output_shape(self) -> Tuple[int, int, int]:
        return (1, 4 + self.config.num_classes, self.config.num_predictions)

    def label_for(self, class_id: int) -> str:
        if 0 <= class_id < len(self.labels):
            return self.labels[class_id]
        return f"class_{class_id}"

    def initialize(self) -> None:
        """
        Load labels, then walk the backend chain until one session passes
        shape validation and a smoke-test inference.

        Raises:
            ModelDisposedError: After dispose().
            LabelsLoadError: Label file missing or empty.
            ModelLoadError: Model file missing.
            BackendUnavailableError: Every backend failed.
        """
        if self._state == RuntimeState.DISPOSED:
            raise ModelDisposedError()
        if self._state == RuntimeState.READY:
            logging.warning("Inference runtime already initialized, skipping")
            return

        labels = load_labels(self.config.labels_path)
        if len(labels) != self.config.num_classes:
            logging.warning(
                f"Label count mismatch: {len(labels)} labels in {self.config.labels_path}, "
                f"model expects {self.config.num_classes} classes"
            )

        model_path = self.config.path
        if not os.path.isfile(model_path):
            raise ModelLoadError(f"Model file not found: {model_path}", model_path=model_path)

        last_error: Optional[Exception] = None
        for spec in self._backends:
            session = None
            try:
                session = self._session_factory(model_path, spec)
                input_name, output_name = self._validate(session)
                input_tensor = np.zeros(self.input_shape, dtype=np.float32)
                output_tensor = np.zeros(self.output_shape, dtype=np.float32)
                self._invoke(session, input_name, output_name, input_tensor, output_tensor)
            except Exception as e:
                logging.warning(f"Backend '{spec.name}' unavailable: {e}")
                last_error = e
                session = None
                continue

            self._session = session
            self._input_name = input_name
            self._output_name = output_name
            self.input_tensor = input_tensor
            self.output_tensor = output_tensor
            self._backend = spec
            self.labels = labels
            self._state = RuntimeState.READY
            logging.info(
                f"Inference runtime ready: backend={spec.name}, model={model_path}, "
                f"input={self.input_shape}, output={self.output_shape}, labels={len(labels)}"
            )
            return

        tried = ", ".join(spec.name for spec in self._backends) or "none"
        raise BackendUnavailableError(
            f"No inference backend could be initialized (tried: {tried})"
        ) from last_error

    def _validate(self, session: Any) -> Tuple[str, str]:
        inputs = session.get_inputs()
        outputs = session.get_outputs()
        if not inputs or not outputs:
            raise ModelLoadError("Model has no inputs or outputs", model_path=self.config.path)

        model_in, model_out = inputs[0], outputs[0]
        if not _shape_matches(list(model_in.shape), self.input_shape):
            raise ModelLoadError(
                f"Input shape {list(model_in.shape)} does not match {list(self.input_shape)}",
                model_path=self.config.path,
            )
        if not _shape_matches(list(model_out.shape), self.output_shape):
            raise ModelLoadError(
                f"Output shape {list(model_out.shape)} does not match {list(self.output_shape)}",
                model_path=self.config.path,
            )
        return model_in.name, model_out.name

    @staticmethod
    def _invoke(
        session: Any,
        input_name: str,
        output_name: str,
        input_tensor: np.ndarray,
        output_tensor: np.ndarray,
    ) -> None:
        result = session.run([output_name], {input_name: input_tensor})
        np.copyto(output_tensor, np.asarray(result[0], dtype=np.float32).reshape(output_tensor.shape))

    def ensure_ready(self) -> None:
        """Raise unless the runtime can accept a frame."""
        if self._state == RuntimeState.DISPOSED:
            raise ModelDisposedError()
        if self._state != RuntimeState.READY:
            raise ModelNotInitializedError()

    def run(self) -> np.ndarray:
        """
        Run the detector on the current contents of input_tensor.

        Returns:
            output_tensor (the same array every call).
        """
        self.ensure_ready()
        try:
            self._invoke(
                self._session,
                self._input_name,
                self._output_name,
                self.input_tensor,
                self.output_tensor,
            )
        except Exception as e:
            raise InferenceError(f"Detector run failed: {e}") from e
        return self.output_tensor

    def dispose(self) -> None:
        """Release the session and tensors. Safe to call more than once."""
        if self._state == RuntimeState.DISPOSED:
            return
        self._session = None
        self.input_tensor = None
        self.output_tensor = None
        self._state = RuntimeState.DISPOSED
        logging.info("Inference runtime disposed")
