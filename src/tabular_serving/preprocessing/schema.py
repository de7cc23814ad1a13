# tabular_serving/preprocessing/schema.py
"""
Field names and conventions of the preprocessor config document.
Keep this in sync with whatever exports the model + config pair.

{
  "feature_order": ["age", "color", ...],
  "categorical_features": ["color"],
  "numeric_features": ["age"],
  "categorical_encoders": {"color": {"mapping": {"red": 0, "blue": 1}, "__UNKNOWN__": 99}},
  "scaler": {"type": "standard", "mean": [...], "scale": [...]}
}
"""

FEATURE_ORDER = "feature_order"
CATEGORICAL_FEATURES = "categorical_features"
NUMERIC_FEATURES = "numeric_features"
CATEGORICAL_ENCODERS = "categorical_encoders"
SCALER = "scaler"

ENCODER_MAPPING = "mapping"
UNKNOWN_KEY = "__UNKNOWN__"
MISSING_SENTINEL = "MISSING"

SCALER_TYPE_STANDARD = "standard"

CONFIG_SUFFIX = ".json"

# engine output read first when the model declares it
LABEL_OUTPUT = "label"
