# tabular_serving/preprocessing/config_normalizer.py
"""
Load the preprocessor config JSON that ships next to a model and normalize it.

Every string in the document (mapping keys included, at any depth) is
whitespace-trimmed so that names exported with stray spaces still line up with
incoming records. A missing file is not an error: the empty config means
"inputs are already numeric, keep the record's own order".

Usage:
  from tabular_serving.preprocessing.config_normalizer import load_preprocessor_config
  cfg = load_preprocessor_config("models/model.json")
"""

from __future__ import annotations

import json
import logging
import math
import warnings
from dataclasses import dataclass, field
from functools import singledispatch
from pathlib import Path
from typing import Any, Dict, List, Optional

from tabular_serving.errors import ConfigLoadWarning
from tabular_serving.preprocessing import schema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreprocessorConfig:
    feature_order: List[str] = field(default_factory=list)
    categorical_features: List[str] = field(default_factory=list)
    numeric_features: List[str] = field(default_factory=list)
    categorical_encoders: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    scaler: Optional[Dict[str, Any]] = None
    source: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.feature_order and not self.categorical_encoders and self.scaler is None


def empty_config() -> PreprocessorConfig:
    return PreprocessorConfig()


# ---------------------------------------------------------
# Deep normalization
# ---------------------------------------------------------
@singledispatch
def normalize_document(node: Any) -> Any:
    """Scalars other than strings pass through unchanged."""
    return node


@normalize_document.register(str)
def _(node: str) -> str:
    return node.strip()


@normalize_document.register(dict)
def _(node: dict) -> dict:
    # later keys win when two keys trim to the same name, like a JSON object would
    return {normalize_document(k): normalize_document(v) for k, v in node.items()}


@normalize_document.register(list)
@normalize_document.register(tuple)
def _(node) -> list:
    return [normalize_document(v) for v in node]


def _name_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def _encoders(value: Any) -> Dict[str, Dict[str, Any]]:
    if not isinstance(value, dict):
        return {}
    out = {}
    for feat, enc in value.items():
        if not isinstance(enc, dict):
            logger.warning("Ignoring categorical encoder for '%s': expected an object", feat)
            continue
        mapping = enc.get(schema.ENCODER_MAPPING)
        enc = dict(enc)
        enc[schema.ENCODER_MAPPING] = dict(mapping) if isinstance(mapping, dict) else {}
        out[feat] = enc
    return out


def _scaler(value: Any) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    if not isinstance(value, dict):
        warnings.warn(ConfigLoadWarning(f"Ignoring scaler: expected an object, got {type(value).__name__}"))
        return None
    scaler = dict(value)
    for key in ("mean", "scale"):
        if key not in scaler:
            continue
        vals = scaler[key]
        if not isinstance(vals, list) or not all(_is_number(v) for v in vals):
            warnings.warn(ConfigLoadWarning(f"Ignoring scaler: '{key}' must be a list of numbers"))
            return None
        scaler[key] = [float(v) for v in vals]
    return scaler


def config_from_document(doc: Dict[str, Any], source: Optional[str] = None) -> PreprocessorConfig:
    """Build a PreprocessorConfig from an already-parsed JSON object."""
    doc = normalize_document(doc)
    return PreprocessorConfig(
        feature_order=_name_list(doc.get(schema.FEATURE_ORDER)),
        categorical_features=_name_list(doc.get(schema.CATEGORICAL_FEATURES)),
        numeric_features=_name_list(doc.get(schema.NUMERIC_FEATURES)),
        categorical_encoders=_encoders(doc.get(schema.CATEGORICAL_ENCODERS)),
        scaler=_scaler(doc.get(schema.SCALER)),
        source=source,
    )


# ---------------------------------------------------------
# Load from disk
# ---------------------------------------------------------
def load_preprocessor_config(path: str | Path) -> PreprocessorConfig:
    path = Path(path)
    logger.info("Attempting to load preprocessor config from: %s", path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            doc = json.load(fh)
        if not isinstance(doc, dict):
            raise ValueError(f"expected a JSON object, got {type(doc).__name__}")
        cfg = config_from_document(doc, source=str(path))
    except FileNotFoundError:
        logger.info("No preprocessor config found - numeric inputs only")
        return empty_config()
    except (OSError, ValueError, RecursionError, OverflowError) as exc:
        # json.JSONDecodeError and UnicodeDecodeError are ValueErrors; nesting too deep to walk
        # raises RecursionError, integers too large for a float raise OverflowError
        logger.warning("Preprocessor config warning: %s", exc)
        warnings.warn(ConfigLoadWarning(f"Could not load preprocessor config {path}: {exc}"))
        logger.info("Falling back to empty preprocessor config - numeric inputs only")
        return empty_config()

    logger.info(
        "Preprocessor config loaded: %s (%d features, %d categorical encoders, scaler=%s)",
        path.name,
        len(cfg.feature_order),
        len(cfg.categorical_encoders),
        (cfg.scaler or {}).get("type"),
    )
    return cfg
