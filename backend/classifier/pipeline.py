"""
Single-pass classification pipeline.

Runs one image through the network:

    INIT -> GRAPH_LOADED -> CONTEXT_READY -> LABELS_READY -> TENSOR_READY
         -> INPUT_SET -> COMPUTED -> OUTPUT_READ -> CLASSIFIED -> DONE

Any failure moves the run to FAILED. Every staging buffer, the graph and the
execution context are registered on one ExitStack as soon as they are
acquired, so all of them are released (newest first) before the run
reports DONE or FAILED, whichever step failed.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path

import numpy as np

from core.buffers import BufferArena
from core.errors import ClassifierError, FormatError
from core.models import (
    INPUT_DIMS,
    INPUT_HEIGHT,
    INPUT_TENSOR_BYTES,
    INPUT_WIDTH,
    NUM_CLASSES,
    OUTPUT_SCORES_BYTES,
    ClassificationResult,
    ExecutionTarget,
    GraphEncoding,
    PipelineState,
    TensorDescriptor,
    TensorType,
)
from inference import InferenceBackend
from logger_config import get_logger

from .labels import LabelTable
from .model_loader import ModelLoader
from .postprocess import argmax, softmax, top_k
from .tensor_builder import ImageTensorBuilder, TensorBuilder

logger = get_logger("pipeline")


class ClassificationPipeline:
    """
    Owns the end-to-end sequence and its cleanup.

    Example:
        pipeline = ClassificationPipeline(OnnxRuntimeBackend())
        result = pipeline.run("squeezenet.onnx", "labels.txt", "dog.jpg")
        print(result.label)

    Args:
        backend: Inference backend executing the network
        tensor_builder: Image to tensor converter (OpenCV by default)
        arena: Allocator for staging buffers (a fresh one by default)
        encoding: Model file format
        target: Execution device
        top_k: Classes listed in the diagnostic log line
    """

    def __init__(
        self,
        backend: InferenceBackend,
        tensor_builder: TensorBuilder | None = None,
        arena: BufferArena | None = None,
        encoding: GraphEncoding = GraphEncoding.ONNX,
        target: ExecutionTarget = ExecutionTarget.CPU,
        top_k: int = 5,
    ):
        self.backend = backend
        self.tensor_builder = tensor_builder or ImageTensorBuilder()
        self.arena = arena or BufferArena()
        self.loader = ModelLoader(backend, self.arena, encoding=encoding, target=target)
        self.top_k = top_k

        self._state = PipelineState.INIT
        self._current_step: str | None = None
        self._failed_step: str | None = None
        self._history: list[PipelineState] = []

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def failed_step(self) -> str | None:
        """Name of the step that failed in the last run, if any."""
        return self._failed_step

    @property
    def history(self) -> list[PipelineState]:
        """States visited by the last run, in order."""
        return list(self._history)

    def _advance(self, state: PipelineState):
        self._state = state
        self._history.append(state)

    @contextmanager
    def _step(self, name: str) -> Iterator[None]:
        self._current_step = name
        try:
            yield
        except ClassifierError as exc:
            if exc.step is None:
                exc.step = name
            raise

    def run(
        self,
        model_path: str | Path,
        labels_path: str | Path,
        image_path: str | Path,
    ) -> ClassificationResult:
        """
        Classify one image.

        Returns:
            ClassificationResult whose label is an independent copy; the
            pipeline keeps no reference to it.

        Raises:
            ClassifierError: On any failure, with ``step`` naming the stage.
        """
        self._history = []
        self._failed_step = None
        self._current_step = None
        self._advance(PipelineState.INIT)

        start = time.perf_counter()
        try:
            with ExitStack() as stack:
                result = self._execute(stack, model_path, labels_path, image_path)
        except Exception as exc:
            self._failed_step = getattr(exc, "step", None) or self._current_step
            # Tag every failure so callers know it was already reported here
            exc.step = self._failed_step
            logger.error(
                f"Failed at {self._failed_step} (state {self._state.value}): {exc}",
                extra={"step": self._failed_step, "state": self._state.value},
            )
            self._advance(PipelineState.FAILED)
            raise

        self._advance(PipelineState.DONE)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.perf(f"run took {elapsed_ms:.1f}ms")
        return result

    def _execute(
        self,
        stack: ExitStack,
        model_path: str | Path,
        labels_path: str | Path,
        image_path: str | Path,
    ) -> ClassificationResult:
        with self._step("load_graph"):
            graph = self.loader.load(model_path)
            stack.callback(self.backend.release_graph, graph)
        self._advance(PipelineState.GRAPH_LOADED)

        with self._step("init_execution_context"):
            context = self.backend.init_execution_context(graph)
            stack.callback(self.backend.release_context, context)
        self._advance(PipelineState.CONTEXT_READY)
        logger.info("Created execution context")

        with self._step("read_labels"):
            labels, label_buffer = LabelTable.read(labels_path, self.arena)
            stack.callback(label_buffer.release)
        self._advance(PipelineState.LABELS_READY)

        with self._step("build_tensor"):
            tensor_buffer = self.arena.allocate(INPUT_TENSOR_BYTES, "input_tensor")
            stack.callback(tensor_buffer.release)
            written = self.tensor_builder.build(
                image_path, INPUT_HEIGHT, INPUT_WIDTH, tensor_buffer.view
            )
            if written != INPUT_TENSOR_BYTES:
                raise FormatError(
                    f"Image tensor is {written} bytes, expected {INPUT_TENSOR_BYTES}"
                )
            tensor = TensorDescriptor(INPUT_DIMS, TensorType.FP32, tensor_buffer.view)
        self._advance(PipelineState.TENSOR_READY)

        with self._step("set_input"):
            self.backend.set_input(context, 0, tensor)
        self._advance(PipelineState.INPUT_SET)

        with self._step("compute"):
            self.backend.compute(context)
        self._advance(PipelineState.COMPUTED)

        with self._step("get_output"):
            score_buffer = self.arena.allocate(OUTPUT_SCORES_BYTES, "scores")
            stack.callback(score_buffer.release)
            nbytes = self.backend.get_output(context, 0, score_buffer.view, OUTPUT_SCORES_BYTES)
            if nbytes != OUTPUT_SCORES_BYTES:
                raise FormatError(f"Output is {nbytes} bytes, expected {OUTPUT_SCORES_BYTES}")
            scores = np.frombuffer(score_buffer.view, dtype=np.float32, count=NUM_CLASSES).copy()
        self._advance(PipelineState.OUTPUT_READ)
        logger.info("Executed graph inference")

        with self._step("classify"):
            probs = softmax(scores)
            index = argmax(probs)
            if index >= len(labels):
                raise FormatError(f"Class {index} has no label ({len(labels)} labels loaded)")
            # Copy out before the label staging buffer is released
            label = labels[index]
            result = ClassificationResult(label, index, float(probs[index]))

            candidates = ", ".join(
                f"{labels[i] if i < len(labels) else i}={p:.4f}"
                for i, p in top_k(probs, self.top_k)
            )
            logger.info(f"Top-{self.top_k}: {candidates}")
        self._advance(PipelineState.CLASSIFIED)

        return result
