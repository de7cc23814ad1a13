# tabular_serving/serving/cli.py
"""
Score records from the command line, one JSON payload per record on stdout.

Usage:
  onnx-tabular-predict --model models/model.onnx --record '{"age": "42", "color": "red"}'
  onnx-tabular-predict --model models/model.onnx --input records.jsonl
  cat records.jsonl | onnx-tabular-predict --model models/model.onnx --input -

--input accepts a single JSON object, a JSON array of objects, or JSONL.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Iterator, List, Optional, TextIO

from tabular_serving.serving.pipeline import InferencePipeline, error_payload
from tabular_serving.serving.settings import configure_logging


# ---------------------------------------------------------
# Read records
# ---------------------------------------------------------
def iter_records(text: str) -> Iterator[Any]:
    """Yield parsed records; a line that is not valid JSON is yielded as the exception."""
    stripped = text.strip()
    if not stripped:
        return
    try:
        doc = json.loads(stripped)
    except json.JSONDecodeError:
        pass
    else:
        if isinstance(doc, list):
            yield from doc
        else:
            yield doc
        return

    for line in stripped.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            yield json.loads(line)
        except json.JSONDecodeError as exc:
            yield exc


def _read_input(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8") as fh:
        return fh.read()


def score_records(pipeline: InferencePipeline, records: List[Any] | Iterator[Any], out: TextIO) -> int:
    """Write one payload per record. Returns the number of error payloads."""
    errors = 0
    for rec in records:
        if isinstance(rec, Exception):
            payload = error_payload(f"Invalid JSON record: {rec}")
        else:
            payload = pipeline.infer(rec)
        if payload["status"] != "success":
            errors += 1
        out.write(json.dumps(payload, ensure_ascii=False) + "\n")
    return errors


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Score tabular records with an ONNX model.")
    parser.add_argument("--model", required=True, help="path to the .onnx model")
    parser.add_argument("--preprocessor", default=None, help="preprocessor config JSON (default: model path with .json)")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--record", default=None, help="a single record as a JSON object")
    group.add_argument("--input", default=None, help="file with records (JSON, JSON array or JSONL), '-' for stdin")
    parser.add_argument("--no-round", action="store_true", help="keep non-integral predictions as floats")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    pipeline = InferencePipeline(
        model_path=args.model,
        preprocessor_path=args.preprocessor,
        round_predictions=not args.no_round,
    )
    if not pipeline.load():
        print(f"Model load failed: {pipeline.load_error}", file=sys.stderr)
        return 1

    text = args.record if args.record is not None else _read_input(args.input)
    try:
        score_records(pipeline, iter_records(text), sys.stdout)
    finally:
        pipeline.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
