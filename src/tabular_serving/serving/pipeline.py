# tabular_serving/serving/pipeline.py
"""
Owns one engine session + preprocessor config and scores records against them.

States:
  UNLOADED -> LOADING -> READY <-> INFERRING
                      -> LOAD_ERROR   (until load()/reload() is called again)

Usage:
  from tabular_serving.serving.pipeline import InferencePipeline
  p = InferencePipeline(model_path="models/model.onnx")
  p.load()
  p.infer({"age": "42", "color": "red"})
  # {"prediction": 1, "status": "success", "timestamp": "2026-01-01T00:00:00.000Z"}
"""

from __future__ import annotations

import logging
import math
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import numpy as np

from tabular_serving.errors import FeatureError, ModelLoadError, NotReadyError, TabularServingError
from tabular_serving.preprocessing import schema
from tabular_serving.preprocessing.config_normalizer import PreprocessorConfig, load_preprocessor_config
from tabular_serving.preprocessing.tensor_builder import build_input_tensor
from tabular_serving.serving.engine import InferenceEngine, OnnxRuntimeEngine, SessionHandle

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    INFERRING = "inferring"
    LOAD_ERROR = "load_error"


@dataclass(frozen=True)
class StatusIndicator:
    """What the host shows on its status channel (colour, shape, short text)."""

    fill: str
    shape: str
    text: str


STATUS_NOT_LOADED = StatusIndicator("grey", "ring", "Not loaded")
STATUS_LOADING = StatusIndicator("yellow", "ring", "Loading...")
STATUS_READY = StatusIndicator("green", "dot", "Ready")
STATUS_INFERRING = StatusIndicator("blue", "dot", "Inferring...")
STATUS_LOAD_ERROR = StatusIndicator("red", "ring", "Load Error")
STATUS_ERROR = StatusIndicator("red", "dot", "Error")

_DEFAULT_INDICATORS = {
    PipelineState.UNLOADED: STATUS_NOT_LOADED,
    PipelineState.LOADING: STATUS_LOADING,
    PipelineState.READY: STATUS_READY,
    PipelineState.INFERRING: STATUS_INFERRING,
    PipelineState.LOAD_ERROR: STATUS_LOAD_ERROR,
}

StatusCallback = Callable[[PipelineState, StatusIndicator], None]


@dataclass
class PredictionResult:
    prediction: Any
    timestamp: str

    def to_payload(self) -> Dict[str, Any]:
        return {"prediction": self.prediction, "status": "success", "timestamp": self.timestamp}


def error_payload(error: BaseException | str) -> Dict[str, Any]:
    return {"error": str(error), "status": "error"}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def resolve_config_path(model_path: str | Path, preprocessor_path: str | Path | None = None) -> Path:
    """Explicit preprocessor path wins; otherwise model.onnx -> model.json."""
    if preprocessor_path:
        return Path(preprocessor_path).resolve()
    return Path(model_path).resolve().with_suffix(schema.CONFIG_SUFFIX)


def round_label(value: Any) -> Any:
    """Collapse a non-integral float to the nearest integer (ties go up)."""
    if isinstance(value, float) and not value.is_integer():
        return int(math.floor(value + 0.5))
    return value


def extract_prediction(outputs: Mapping[str, Any], output_names: List[str], round_prediction: bool = True) -> Any:
    """Read the first element of the 'label' output, or of the first declared output."""
    if schema.LABEL_OUTPUT in outputs:
        name = schema.LABEL_OUTPUT
    elif output_names and output_names[0] in outputs:
        name = output_names[0]
    elif outputs:
        name = next(iter(outputs))
    else:
        raise TabularServingError("Model returned no outputs")

    flat = np.asarray(outputs[name]).reshape(-1)
    if flat.size == 0:
        raise TabularServingError(f"Model output '{name}' is empty")
    value = flat[0]
    if isinstance(value, np.generic):
        value = value.item()

    if isinstance(value, float) and not math.isfinite(value):
        raise TabularServingError(f"Model output '{name}' is not finite: {value}")
    if round_prediction:
        value = round_label(value)
    return value


class InferencePipeline:
    def __init__(
        self,
        engine: Optional[InferenceEngine] = None,
        model_path: Optional[str] = None,
        preprocessor_path: Optional[str] = None,
        round_predictions: bool = True,
        status_callback: Optional[StatusCallback] = None,
    ):
        self.engine = engine if engine is not None else OnnxRuntimeEngine()
        self.model_path = model_path
        self.preprocessor_path = preprocessor_path
        self.round_predictions = round_predictions
        self.status_callback = status_callback

        self.state = PipelineState.UNLOADED
        self.indicator = STATUS_NOT_LOADED
        self.load_error: Optional[ModelLoadError] = None
        self.config_path: Optional[Path] = None

        self._session: Optional[SessionHandle] = None
        self._config: Optional[PreprocessorConfig] = None
        self._load_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._stats = {"requests": 0, "failures": 0, "unknown_categories": 0}

    # ---------------------------------------------------------
    # Status
    # ---------------------------------------------------------
    def _set_state(self, state: PipelineState, indicator: Optional[StatusIndicator] = None) -> None:
        self.state = state
        self.indicator = indicator or _DEFAULT_INDICATORS[state]
        if self.status_callback is not None:
            self.status_callback(state, self.indicator)

    @property
    def ready(self) -> bool:
        return self._session is not None

    @property
    def config(self) -> Optional[PreprocessorConfig]:
        return self._config

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def status(self) -> Dict[str, Any]:
        return {
            "status": self.indicator.text,
            "state": self.state.value,
            "ready": self.ready,
            "model_path": self.model_path,
            "preprocessor_path": str(self.config_path) if self.config_path else None,
            "load_error": str(self.load_error) if self.load_error else None,
            "stats": self.stats(),
        }

    # ---------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------
    def load(self, model_path: Optional[str] = None, preprocessor_path: Optional[str] = None) -> bool:
        """Open a session and read the preprocessor config. Returns False (state LOAD_ERROR) on failure."""
        with self._load_lock:
            if model_path is not None:
                self.model_path = model_path
            if preprocessor_path is not None:
                self.preprocessor_path = preprocessor_path

            # drop the old session first so requests during the load fail fast as not ready
            with self._run_lock:
                self._session = None
                self._config = None
                self._set_state(PipelineState.LOADING)
            try:
                if not self.model_path:
                    raise ModelLoadError("No model path configured")
                model = Path(self.model_path).resolve()
                self.config_path = resolve_config_path(model, self.preprocessor_path)
                if not model.is_file() or not os.access(model, os.R_OK):
                    raise ModelLoadError(f"Model file not accessible: {model}")

                config = load_preprocessor_config(self.config_path)
                handle = self.engine.load(str(model))
            except Exception as exc:
                err = exc if isinstance(exc, ModelLoadError) else ModelLoadError(str(exc))
                if err is not exc:
                    err.__cause__ = exc
                with self._run_lock:
                    self._session = None
                    self._config = None
                self.load_error = err
                logger.error("Model load failed: %s", err)
                self._set_state(PipelineState.LOAD_ERROR)
                return False

            with self._run_lock:
                self._session = handle
                self._config = config
            self.load_error = None
            logger.info(
                "Model ready: %s (inputs=%s outputs=%s)", model.name, handle.input_names, handle.output_names
            )
            self._set_state(PipelineState.READY)
            return True

    def reload(self, model_path: Optional[str] = None, preprocessor_path: Optional[str] = None) -> bool:
        self.close()
        return self.load(model_path=model_path, preprocessor_path=preprocessor_path)

    def close(self) -> None:
        with self._load_lock, self._run_lock:
            self._session = None
            self._config = None
            self.load_error = None
        self._set_state(PipelineState.UNLOADED)

    # ---------------------------------------------------------
    # Inference
    # ---------------------------------------------------------
    def _count_unknown(self, feature: str, value: str, code: Any) -> None:
        self._stats["unknown_categories"] += 1

    def predict(self, record: Mapping[str, Any]) -> PredictionResult:
        """Score one record. Raises NotReadyError, FeatureError or the engine's exception."""
        with self._run_lock:
            self._stats["requests"] += 1
            handle, config = self._session, self._config
            if handle is None:
                self._stats["failures"] += 1
                if self.load_error is not None:
                    raise NotReadyError(f"Model session not ready: {self.load_error}")
                raise NotReadyError("Model session not ready.")

            self._set_state(PipelineState.INFERRING)
            try:
                if not isinstance(record, Mapping):
                    raise FeatureError(f"Record must be an object of feature -> value, got {type(record).__name__}")
                tensor = build_input_tensor(record, config, on_unknown=self._count_unknown)
                input_name = handle.input_names[0] if handle.input_names else "input"
                outputs = self.engine.run(handle, {input_name: tensor})
                prediction = extract_prediction(outputs, handle.output_names, self.round_predictions)
            except Exception:
                self._stats["failures"] += 1
                self._set_state(PipelineState.READY, STATUS_ERROR)
                raise

            self._set_state(PipelineState.READY)
            return PredictionResult(prediction=prediction, timestamp=utc_timestamp())

    def infer(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Request boundary: always returns exactly one success or error payload."""
        try:
            return self.predict(record).to_payload()
        except (NotReadyError, FeatureError) as exc:
            logger.error("Inference failed: %s", exc)
            return error_payload(exc)
        except Exception as exc:
            logger.exception("Inference failed: %s", exc)
            return error_payload(exc)
