# tabular_serving/serving/http_server.py
"""
FastAPI server for scoring tabular records.

Endpoints:
  POST /predict  body: { "<feature>": <value>, ... }
  GET  /health   pipeline state, status text, load error and counters
  POST /reload   body (optional): { "model_path": "...", "preprocessor_path": "..." }

The model named by PRELOAD_MODEL_PATH is loaded in the background at startup;
until it is ready /predict answers 503 with an error payload.

Example run:
  PRELOAD_MODEL_PATH=models/model.onnx uvicorn tabular_serving.serving.http_server:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tabular_serving.errors import FeatureError, NotReadyError
from tabular_serving.serving.pipeline import InferencePipeline, PipelineState, error_payload
from tabular_serving.serving.settings import ServingSettings, configure_logging

logger = logging.getLogger(__name__)


class ReloadRequest(BaseModel):
    model_path: Optional[str] = None
    preprocessor_path: Optional[str] = None


class PredictResponse(BaseModel):
    prediction: Any
    status: str
    timestamp: str


def create_app(pipeline: Optional[InferencePipeline] = None, settings: Optional[ServingSettings] = None) -> FastAPI:
    settings = settings or ServingSettings.from_env()
    configure_logging(settings.log_level)
    if pipeline is None:
        pipeline = InferencePipeline(
            model_path=settings.model_path,
            preprocessor_path=settings.preprocessor_path,
            round_predictions=settings.round_predictions,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        loading = None
        if pipeline.model_path and pipeline.state is PipelineState.UNLOADED:
            logger.info("Preloading model: %s", pipeline.model_path)
            loading = asyncio.get_running_loop().run_in_executor(None, pipeline.load)
        yield
        if loading is not None:
            await loading
        pipeline.close()

    app = FastAPI(title="Tabular ONNX Scoring", lifespan=lifespan)
    app.state.pipeline = pipeline

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        logger.error("Invalid request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=422, content=error_payload(f"Invalid request body: {exc.errors()}"))

    # record shape is checked by the pipeline
    @app.post("/predict", response_model=PredictResponse)
    def predict(record: Any = Body(...)):
        try:
            result = pipeline.predict(record)
        except NotReadyError as exc:
            logger.error("%s", exc)
            return JSONResponse(status_code=503, content=error_payload(exc))
        except FeatureError as exc:
            logger.error("Inference failed: %s", exc)
            return JSONResponse(status_code=422, content=error_payload(exc))
        except Exception as exc:
            logger.exception("Inference failed: %s", exc)
            return JSONResponse(status_code=500, content=error_payload(exc))
        return result.to_payload()

    @app.get("/health")
    def health():
        return pipeline.status()

    @app.post("/reload")
    def reload(req: Optional[ReloadRequest] = None):
        req = req or ReloadRequest()
        ok = pipeline.reload(model_path=req.model_path, preprocessor_path=req.preprocessor_path)
        return JSONResponse(status_code=200 if ok else 500, content=pipeline.status())

    return app


app = create_app()
