# tabular_serving/serving/engine.py
"""
Inference engine boundary: open a session on a model file, run it on named tensors.

The pipeline only talks to `InferenceEngine`; `OnnxRuntimeEngine` is the
default implementation and always runs on CPU.

Usage:
  from tabular_serving.serving.engine import OnnxRuntimeEngine
  engine = OnnxRuntimeEngine()
  handle = engine.load("models/model.onnx")
  outputs = engine.run(handle, {handle.input_names[0]: x})  # x: np.ndarray (1, L) float32
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

import numpy as np

try:
    import onnxruntime as ort
    _ONNXRT_AVAILABLE = True
except ImportError:
    _ONNXRT_AVAILABLE = False

CPU_PROVIDERS = ["CPUExecutionProvider"]


@dataclass
class SessionHandle:
    """Opaque engine session plus the names the model declares."""

    session: Any
    input_names: List[str] = field(default_factory=list)
    output_names: List[str] = field(default_factory=list)
    model_path: str = ""


class InferenceEngine(Protocol):
    def load(self, model_path: str) -> SessionHandle:
        ...

    def run(self, handle: SessionHandle, feeds: Dict[str, np.ndarray]) -> Dict[str, Any]:
        ...


class OnnxRuntimeEngine:
    def __init__(self, providers: List[str] | None = None):
        self.providers = list(providers or CPU_PROVIDERS)

    def load(self, model_path: str) -> SessionHandle:
        if not _ONNXRT_AVAILABLE:
            raise RuntimeError("onnxruntime is not available. Install onnxruntime to serve ONNX models.")
        session = ort.InferenceSession(model_path, providers=self.providers)
        return SessionHandle(
            session=session,
            input_names=[i.name for i in session.get_inputs()],
            output_names=[o.name for o in session.get_outputs()],
            model_path=model_path,
        )

    def run(self, handle: SessionHandle, feeds: Dict[str, np.ndarray]) -> Dict[str, Any]:
        out = handle.session.run(None, feeds)
        return dict(zip(handle.output_names, out))
