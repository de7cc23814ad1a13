# tabular_serving/preprocessing/tensor_builder.py
"""
Turn a raw record into the float32 tensor the model expects.

  record -> categorical encoding -> ordered float vector -> (optional) standard scaling -> (1, L) array

With a feature_order configured the vector follows it exactly; without one the
record's own value order is used (degraded mode, numeric inputs only).
"""

from __future__ import annotations

import logging
import math
from typing import Any, List, Mapping, Optional, Sequence

import numpy as np

from tabular_serving.errors import FeatureError
from tabular_serving.preprocessing import schema
from tabular_serving.preprocessing.categorical_encoder import UnknownHook, encode_categoricals
from tabular_serving.preprocessing.config_normalizer import PreprocessorConfig

logger = logging.getLogger(__name__)


def parse_float(value: Any) -> Optional[float]:
    """Parse numbers and numeric strings; None for anything else (NaN and booleans included)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed):
        return None
    return parsed


def _ordered_features(encoded: Mapping[str, Any], feature_order: Sequence[str]) -> List[float]:
    features = []
    for feat in feature_order:
        if feat not in encoded:
            raise FeatureError(
                f"Missing feature '{feat}'. Expected: {', '.join(feature_order)}",
                feature=feat,
                expected=list(feature_order),
            )
        val = parse_float(encoded[feat])
        if val is None:
            raise FeatureError(f"Non-numeric after encoding: {feat}='{encoded[feat]}'", feature=feat)
        features.append(val)
    return features


def _record_order_features(encoded: Mapping[str, Any]) -> List[float]:
    features = []
    for feat, raw in encoded.items():
        val = parse_float(raw)
        if val is None:
            raise FeatureError(f"Non-numeric input: {raw} (no preprocessor config loaded)", feature=feat)
        features.append(val)
    return features


def standardize(features: List[float], scaler: Optional[Mapping[str, Any]]) -> List[float]:
    """Apply (x - mean) / scale when the scaler lines up with the vector; otherwise return it as is."""
    if not scaler or scaler.get("type") != schema.SCALER_TYPE_STANDARD:
        return features
    mean = scaler.get("mean")
    scale = scaler.get("scale")
    if mean is None or scale is None or len(mean) != len(features) or len(scale) != len(features):
        logger.debug(
            "Skipping standard scaler: %d features, mean=%s scale=%s",
            len(features),
            None if mean is None else len(mean),
            None if scale is None else len(scale),
        )
        return features
    arr = np.asarray(features, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        scaled = (arr - np.asarray(mean, dtype=np.float64)) / np.asarray(scale, dtype=np.float64)
    return scaled.tolist()


def build_feature_vector(
    record: Mapping[str, Any],
    config: Optional[PreprocessorConfig],
    on_unknown: Optional[UnknownHook] = None,
) -> List[float]:
    encoded = encode_categoricals(record, config, on_unknown=on_unknown)

    if config is not None and config.feature_order:
        features = _ordered_features(encoded, config.feature_order)
    else:
        features = _record_order_features(encoded)

    return standardize(features, config.scaler if config is not None else None)


def build_input_tensor(
    record: Mapping[str, Any],
    config: Optional[PreprocessorConfig],
    on_unknown: Optional[UnknownHook] = None,
) -> np.ndarray:
    """Returns a (1, L) float32 array."""
    features = build_feature_vector(record, config, on_unknown=on_unknown)
    return np.asarray(features, dtype=np.float32).reshape(1, len(features))
