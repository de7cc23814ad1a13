import json
from pathlib import Path

import numpy as np
import pytest

from tabular_serving.serving.engine import SessionHandle
from tabular_serving.serving.pipeline import InferencePipeline


class FakeEngine:
    """Stands in for onnxruntime: records feeds, returns canned outputs."""

    def __init__(self, outputs=None, output_names=None, input_names=None, fail_load=None, fail_run=None):
        self.outputs = outputs if outputs is not None else {"label": np.array([1], dtype=np.int64)}
        self.output_names = output_names if output_names is not None else list(self.outputs)
        self.input_names = input_names if input_names is not None else ["float_input"]
        self.fail_load = fail_load
        self.fail_run = fail_run
        self.loaded = []
        self.feeds = []

    def load(self, model_path):
        if self.fail_load is not None:
            raise self.fail_load
        self.loaded.append(model_path)
        return SessionHandle(
            session=object(),
            input_names=list(self.input_names),
            output_names=list(self.output_names),
            model_path=model_path,
        )

    def run(self, handle, feeds):
        if self.fail_run is not None:
            raise self.fail_run
        self.feeds.append(feeds)
        return dict(self.outputs)


@pytest.fixture
def model_dir(tmp_path) -> Path:
    """Directory holding a placeholder model.onnx (the fake engine never parses it)."""
    (tmp_path / "model.onnx").write_bytes(b"onnx")
    return tmp_path


@pytest.fixture
def write_config(model_dir):
    def _write(doc, name="model.json"):
        path = model_dir / name
        path.write_text(json.dumps(doc), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def ready_pipeline(model_dir, fake_engine) -> InferencePipeline:
    pipeline = InferencePipeline(engine=fake_engine, model_path=str(model_dir / "model.onnx"))
    assert pipeline.load()
    return pipeline
