# tabular_serving/serving/settings.py
"""
Runtime settings for the HTTP server, read from environment variables.

  PRELOAD_MODEL_PATH         ONNX model to load at startup (optional)
  PRELOAD_PREPROCESSOR_PATH  preprocessor config JSON (default: model path with .json)
  PRELOAD_ROUND_PREDICTION   1/0, true/false (default: 1)
  LOG_LEVEL                  logging level name (default: INFO)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def parse_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"Expected a boolean flag, got {raw!r}")


@dataclass
class ServingSettings:
    model_path: Optional[str] = None
    preprocessor_path: Optional[str] = None
    round_predictions: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServingSettings":
        env = os.environ if environ is None else environ
        return cls(
            model_path=env.get("PRELOAD_MODEL_PATH") or None,
            preprocessor_path=env.get("PRELOAD_PREPROCESSOR_PATH") or None,
            round_predictions=parse_bool(env.get("PRELOAD_ROUND_PREDICTION"), True),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
