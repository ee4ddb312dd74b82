"""
Edge classifier entry point.

run_inference is placed on the "edge" node and report_inference_result on
the "cloud" node. The label string is the only value handed from one to
the other.

Usage:
    python edge_app.py
    python edge_app.py --image photo.jpg --model squeezenet1.1-7.onnx --labels labels.txt
"""

import argparse
import sys
from pathlib import Path

from classifier import ClassificationPipeline, TensorBuilder
from config.settings import Settings, get_settings
from core.buffers import BufferArena
from core.models import ExecutionTarget
from inference import InferenceBackend, OnnxRuntimeBackend
from logger_config import configure_logging, get_logger
from placement import get_registry, placed

logger = get_logger("app")


@placed("edge", export="run_inference")
def run_inference(
    settings: Settings | None = None,
    backend: InferenceBackend | None = None,
    tensor_builder: TensorBuilder | None = None,
) -> str:
    """
    Classify the configured image and return its label.

    A backend created here is closed before returning; a backend passed in
    stays owned by the caller.
    """
    settings = settings or get_settings()
    own_backend = backend is None
    if own_backend:
        backend = OnnxRuntimeBackend()

    pipeline = ClassificationPipeline(
        backend,
        tensor_builder=tensor_builder,
        arena=BufferArena(settings.inference.memory_limit_bytes),
        encoding=settings.inference.encoding,
        target=settings.inference.target,
        top_k=settings.inference.top_k,
    )
    try:
        result = pipeline.run(
            settings.paths.model_path,
            settings.paths.labels_path,
            settings.paths.image_path,
        )
    finally:
        if own_backend:
            backend.close()

    return result.label


@placed("cloud", export="report_inference_result")
def report_inference_result(result_label: str, stream=None):
    """Publish the classification result."""
    print(f"Inference result: {result_label}", file=stream or sys.stdout, flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Single-image edge classifier")
    parser.add_argument("--model", type=Path, help="ONNX model path")
    parser.add_argument("--labels", type=Path, help="Newline-delimited labels path")
    parser.add_argument("--image", type=Path, help="Image to classify")
    parser.add_argument(
        "--target",
        choices=[t.value for t in ExecutionTarget],
        help="Execution device (default from settings)",
    )
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--json-logs", action="store_true", help="Structured JSON log lines")
    parser.add_argument("--perf", action="store_true", help="Log step timings")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings().model_copy(deep=True)
    if args.model:
        settings.paths.model_path = args.model
    if args.labels:
        settings.paths.labels_path = args.labels
    if args.image:
        settings.paths.image_path = args.image
    if args.target:
        settings.inference.target = ExecutionTarget(args.target)

    level = args.log_level or ("DEBUG" if settings.debug else settings.logging.level)
    configure_logging(
        level=level,
        console_level=level,
        perf_enabled=args.perf or settings.debug,
        json_format=args.json_logs or settings.logging.format == "json",
        enable_file_logging=settings.logging.file_enabled,
        logs_dir=settings.paths.logs_dir,
        max_storage_mb=settings.logging.max_storage_mb,
    )

    logger.info("Starting edge classifier")
    try:
        get_registry().validate(settings.placement.nodes)
        label = run_inference(settings)
    except Exception as e:
        # Pipeline failures carry their step and were logged by the pipeline
        if getattr(e, "step", None) is None:
            logger.error(f"Failed to run inference: {e}")
        return 1

    report_inference_result(label)
    return 0


if __name__ == "__main__":
    sys.exit(main())
