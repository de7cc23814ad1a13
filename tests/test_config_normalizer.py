import json
import warnings
from pathlib import Path

import pytest

from tabular_serving.errors import ConfigLoadWarning
from tabular_serving.preprocessing.config_normalizer import (
    PreprocessorConfig,
    config_from_document,
    load_preprocessor_config,
    normalize_document,
)


# ------------------------------------------------------
# Helpers
# ------------------------------------------------------

def write_json(path: Path, obj):
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(obj, f)


MESSY_DOC = {
    " feature_order ": [" age ", "color\t", " income"],
    "categorical_features": [" color "],
    "numeric_features": ["age ", " income"],
    "categorical_encoders": {
        " color ": {
            " mapping ": {" red ": 0, "blue ": 1, " Green": 2},
            "__UNKNOWN__ ": 99,
        }
    },
    "scaler": {" type ": " standard ", "mean": [1.0, 0.0, 10.0], "scale": [2.0, 1.0, 5.0]},
}


# ------------------------------------------------------
# Tests
# ------------------------------------------------------

@pytest.mark.fast
def test_normalize_trims_keys_and_values_at_every_depth():
    doc = normalize_document(MESSY_DOC)

    assert doc["feature_order"] == ["age", "color", "income"]
    enc = doc["categorical_encoders"]["color"]
    assert enc["mapping"] == {"red": 0, "blue": 1, "Green": 2}
    assert enc["__UNKNOWN__"] == 99
    assert doc["scaler"]["type"] == "standard"


@pytest.mark.fast
def test_normalize_leaves_non_string_leaves_alone():
    doc = {"a": [1, 2.5, None, True, {"b ": " x "}]}
    assert normalize_document(doc) == {"a": [1, 2.5, None, True, {"b": "x"}]}


@pytest.mark.fast
def test_normalize_is_idempotent():
    once = normalize_document(MESSY_DOC)
    twice = normalize_document(once)
    assert once == twice


@pytest.mark.fast
def test_config_from_document_builds_typed_config():
    cfg = config_from_document(MESSY_DOC, source="model.json")

    assert cfg.feature_order == ["age", "color", "income"]
    assert cfg.categorical_features == ["color"]
    assert cfg.numeric_features == ["age", "income"]
    assert cfg.categorical_encoders["color"]["mapping"]["red"] == 0
    assert cfg.scaler == {"type": "standard", "mean": [1.0, 0.0, 10.0], "scale": [2.0, 1.0, 5.0]}
    assert cfg.source == "model.json"
    assert not cfg.is_empty


@pytest.mark.fast
def test_missing_name_lists_become_empty():
    cfg = config_from_document({"feature_order": "age,color"})

    assert cfg.feature_order == []
    assert cfg.categorical_features == []
    assert cfg.numeric_features == []
    assert cfg.categorical_encoders == {}
    assert cfg.scaler is None


@pytest.mark.fast
def test_non_string_feature_names_are_stringified():
    cfg = config_from_document({"feature_order": [1, " b "]})
    assert cfg.feature_order == ["1", "b"]


@pytest.mark.fast
def test_null_feature_names_are_dropped():
    cfg = config_from_document({"feature_order": ["a", None, " b "], "numeric_features": [None]})
    assert cfg.feature_order == ["a", "b"]
    assert cfg.numeric_features == []


@pytest.mark.fast
def test_scaler_with_non_numeric_values_is_dropped_with_warning():
    with pytest.warns(ConfigLoadWarning):
        cfg = config_from_document({"scaler": {"type": "standard", "mean": ["a"], "scale": [1]}})
    assert cfg.scaler is None


@pytest.mark.fast
def test_load_missing_file_returns_empty_config_without_warning(tmp_path):
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        cfg = load_preprocessor_config(tmp_path / "nope.json")

    assert cfg == PreprocessorConfig()
    assert cfg.is_empty
    assert cfg.source is None


@pytest.mark.fast
def test_load_malformed_file_warns_and_returns_empty_config(tmp_path):
    path = tmp_path / "model.json"
    path.write_text("{ not json", encoding="utf-8")

    with pytest.warns(ConfigLoadWarning):
        cfg = load_preprocessor_config(path)

    assert cfg.is_empty


@pytest.mark.fast
def test_load_non_object_document_warns(tmp_path):
    path = tmp_path / "model.json"
    write_json(path, ["age", "color"])

    with pytest.warns(ConfigLoadWarning):
        cfg = load_preprocessor_config(path)

    assert cfg.feature_order == []


@pytest.mark.fast
def test_load_directory_warns(tmp_path):
    with pytest.warns(ConfigLoadWarning):
        cfg = load_preprocessor_config(tmp_path)
    assert cfg.is_empty


@pytest.mark.fast
def test_load_deeply_nested_document_warns_and_returns_empty_config(tmp_path):
    path = tmp_path / "model.json"
    depth = 100_000
    path.write_text('{"feature_order": ["a"], "meta": ' + "[" * depth + "]" * depth + "}", encoding="utf-8")

    with pytest.warns(ConfigLoadWarning):
        cfg = load_preprocessor_config(path)

    assert cfg.is_empty


@pytest.mark.fast
def test_load_scaler_value_too_large_for_float_warns_and_returns_empty_config(tmp_path):
    path = tmp_path / "model.json"
    huge = "1" + "0" * 400
    path.write_text(
        '{"feature_order": ["a"], "scaler": {"type": "standard", "mean": [' + huge + '], "scale": [1]}}',
        encoding="utf-8",
    )

    with pytest.warns(ConfigLoadWarning):
        cfg = load_preprocessor_config(path)

    assert cfg.is_empty

@pytest.mark.fast
def test_reloading_same_file_is_deterministic(tmp_path):
    path = tmp_path / "model.json"
    write_json(path, MESSY_DOC)

    first = load_preprocessor_config(path)
    second = load_preprocessor_config(path)

    assert first == second
    assert first.source == str(path)
