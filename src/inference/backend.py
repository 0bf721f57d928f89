"""
Inference backend selection.

A backend is one way of running the detector: an accelerated ONNX Runtime
execution provider (CUDA, CoreML, DirectML, NNAPI, XNNPACK...) or the plain
CPU provider. Backends are tried in order as an explicit fallback chain;
the runtime keeps the first one that builds a working session.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Sequence, Tuple

import onnxruntime as ort

from models.config import ModelConfig
from models.errors import BackendUnavailableError

CPU_PROVIDER = "CPUExecutionProvider"


class BackendKind(str, Enum):
    ACCELERATED = "accelerated"
    CPU = "cpu"


@dataclass(frozen=True)
class BackendSpec:
    """
    One entry of the backend fallback chain.

    Attributes:
        kind: Accelerated execution providers or plain CPU.
        providers: Candidate ONNX Runtime providers, in preference order
            (only used for ACCELERATED).
        num_threads: Intra-op thread count for CPU kernels.
    """
    kind: BackendKind
    providers: Tuple[str, ...] = ()
    num_threads: int = 4

    @property
    def name(self) -> str:
        return self.kind.value


# (model_path, spec) -> session exposing get_inputs/get_outputs/run
SessionFactory = Callable[[str, BackendSpec], Any]


def available_providers() -> List[str]:
    return list(ort.get_available_providers())


def resolve_providers(spec: BackendSpec, available: Sequence[str]) -> List[str]:
    """
    Pick the ONNX Runtime providers for one backend spec.

    Raises:
        BackendUnavailableError: If an accelerated spec has no usable provider
            on this machine.
    """
    if spec.kind == BackendKind.CPU:
        return [CPU_PROVIDER]

    chosen = [p for p in spec.providers if p in available and p != CPU_PROVIDER]
    if not chosen:
        raise BackendUnavailableError(
            f"No accelerated provider available (wanted {list(spec.providers)}, "
            f"have {list(available)})"
        )
    return chosen


def create_onnx_session(model_path: str, spec: BackendSpec) -> ort.InferenceSession:
    """Default session factory backed by onnxruntime.InferenceSession."""
    providers = resolve_providers(spec, available_providers())

    so = ort.SessionOptions()
    so.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
    so.intra_op_num_threads = spec.num_threads
    so.inter_op_num_threads = 1

    session = ort.InferenceSession(model_path, sess_options=so, providers=providers)

    # ORT silently drops providers it cannot initialize
    if spec.kind == BackendKind.ACCELERATED:
        active = [p for p in session.get_providers() if p != CPU_PROVIDER]
        if not active:
            raise BackendUnavailableError(
                f"Accelerated providers {providers} failed to load; session fell back to CPU"
            )
    return session


def backend_chain(config: ModelConfig) -> List[BackendSpec]:
    """
    Build the fallback chain from the model config's backend list.

    Raises:
        ValueError: On an unknown backend name.
    """
    chain: List[BackendSpec] = []
    for name in config.backends:
        kind = BackendKind(str(name).lower())
        providers = tuple(config.accelerated_providers) if kind == BackendKind.ACCELERATED else ()
        chain.append(BackendSpec(kind=kind, providers=providers, num_threads=config.cpu_threads))
    return chain
