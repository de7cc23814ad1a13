# tabular_serving/preprocessing/categorical_encoder.py
"""
Replace raw categorical strings in a record with the integer codes the model
was trained on.

Lookup order per configured feature (first match wins):
  1. exact key in the encoder mapping
  2. case-insensitive key
  3. fallback: __UNKNOWN__ code, else max(code) + 1, else 0

Blank values are looked up as "MISSING". Only string values are touched;
numbers that already look encoded pass through.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, Callable, Dict, Mapping, Optional

from tabular_serving.errors import UnknownCategoryWarning
from tabular_serving.preprocessing import schema
from tabular_serving.preprocessing.config_normalizer import PreprocessorConfig

logger = logging.getLogger(__name__)

# (feature, value, code) for every value that hit the fallback path
UnknownHook = Callable[[str, str, Any], None]


def unknown_code(encoder: Mapping[str, Any]) -> Any:
    mapping = encoder.get(schema.ENCODER_MAPPING) or {}
    if schema.UNKNOWN_KEY in mapping:
        return mapping[schema.UNKNOWN_KEY]
    if schema.UNKNOWN_KEY in encoder:
        return encoder[schema.UNKNOWN_KEY]
    codes = [v for v in mapping.values() if isinstance(v, (int, float)) and not isinstance(v, bool)]
    if not codes:
        return 0
    return max(codes) + 1


def lookup_code(encoder: Mapping[str, Any], value: str) -> tuple[Any, bool]:
    """Return (code, matched). matched is False when the fallback code was used."""
    mapping = encoder.get(schema.ENCODER_MAPPING) or {}
    if value in mapping:
        return mapping[value], True

    lowered = value.lower()
    for key, code in mapping.items():
        if key.lower() == lowered:
            return code, True

    return unknown_code(encoder), False


def encode_categoricals(
    record: Mapping[str, Any],
    config: Optional[PreprocessorConfig],
    on_unknown: Optional[UnknownHook] = None,
) -> Dict[str, Any]:
    encoded = dict(record)
    encoders = config.categorical_encoders if config is not None else None
    if not encoders:
        return encoded

    for feat, encoder in encoders.items():
        raw = encoded.get(feat)
        if feat not in encoded or not isinstance(raw, str):
            continue

        value = raw.strip() or schema.MISSING_SENTINEL
        code, matched = lookup_code(encoder, value)
        encoded[feat] = code
        if not matched:
            logger.warning("Unknown category: %s='%s' -> %s", feat, value, code)
            warnings.warn(UnknownCategoryWarning(f"Unknown category: {feat}='{value}' -> {code}"), stacklevel=2)
            if on_unknown is not None:
                on_unknown(feat, value, code)

    return encoded
