"""
Inference backend contract and the ONNX Runtime implementation.

The pipeline only ever talks to a backend through five calls:
load, init_execution_context, set_input, compute, get_output.
Graphs and execution contexts are integer handles into per-backend arenas;
callers never see the sessions behind them.
"""

import itertools
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np
import onnxruntime as ort
from onnxruntime.capi.onnxruntime_pybind11_state import InvalidArgument, InvalidProtobuf

from core.errors import BackendError
from core.models import (
    ExecutionContext,
    ExecutionTarget,
    Graph,
    GraphEncoding,
    NNErrorKind,
    TensorDescriptor,
    TensorType,
)
from logger_config import get_logger

logger = get_logger("inference")

# ONNX Runtime NodeArg.type strings
_ORT_TYPES = {
    "tensor(float16)": TensorType.FP16,
    "tensor(float)": TensorType.FP32,
    "tensor(double)": TensorType.FP64,
    "tensor(uint8)": TensorType.U8,
    "tensor(int32)": TensorType.I32,
    "tensor(int64)": TensorType.I64,
}


class InferenceBackend(Protocol):
    """
    Backend contract.

    Every call raises BackendError on any non-success result.
    """

    def load(
        self,
        builders: Sequence[bytes | bytearray | memoryview],
        encoding: GraphEncoding,
        target: ExecutionTarget,
    ) -> Graph: ...

    def init_execution_context(self, graph: Graph) -> ExecutionContext: ...

    def set_input(self, context: ExecutionContext, index: int, tensor: TensorDescriptor) -> None: ...

    def compute(self, context: ExecutionContext) -> None: ...

    def get_output(
        self, context: ExecutionContext, index: int, out: bytearray | memoryview, max_size: int
    ) -> int: ...

    def release_context(self, context: ExecutionContext) -> None:
        """Forget a context. Unknown handles are ignored."""
        ...

    def release_graph(self, graph: Graph) -> None:
        """Forget a graph and any contexts still bound to it. Unknown handles are ignored."""
        ...


@dataclass
class _ContextState:
    """Mutable state of one execution context."""

    graph: Graph
    inputs: dict[str, np.ndarray] = field(default_factory=dict)
    outputs: list[np.ndarray] | None = None


class OnnxRuntimeBackend:
    """
    InferenceBackend over onnxruntime.InferenceSession.

    Example:
        backend = OnnxRuntimeBackend()
        graph = backend.load([model_bytes], GraphEncoding.ONNX, ExecutionTarget.CPU)
        ctx = backend.init_execution_context(graph)
    """

    def __init__(self, session_options: ort.SessionOptions | None = None):
        self._session_options = session_options
        self._sessions: dict[int, ort.InferenceSession] = {}
        self._contexts: dict[int, _ContextState] = {}
        self._graph_ids = itertools.count()
        self._context_ids = itertools.count()
        self._inference_times: list[float] = []

    # -------------------------------------------------------------------------
    # Graph loading
    # -------------------------------------------------------------------------

    def _providers(self, target: ExecutionTarget) -> list[str]:
        if target == ExecutionTarget.CPU:
            return ["CPUExecutionProvider"]
        if target == ExecutionTarget.GPU:
            if "CUDAExecutionProvider" in ort.get_available_providers():
                return ["CUDAExecutionProvider", "CPUExecutionProvider"]
            logger.warning("CUDA provider not available, running GPU target on CPU")
            return ["CPUExecutionProvider"]
        raise BackendError(
            NNErrorKind.UNSUPPORTED_OPERATION, f"execution target {target.value} not supported"
        )

    def load(
        self,
        builders: Sequence[bytes | bytearray | memoryview],
        encoding: GraphEncoding,
        target: ExecutionTarget,
    ) -> Graph:
        if not builders:
            raise BackendError(NNErrorKind.INVALID_ARGUMENT, "no graph builders given")
        if encoding not in (GraphEncoding.ONNX, GraphEncoding.AUTODETECT):
            raise BackendError(
                NNErrorKind.UNSUPPORTED_OPERATION, f"encoding {encoding.value} not supported"
            )

        providers = self._providers(target)
        # ONNX is a single-blob format; copy so the caller may release its buffers
        model_bytes = b"".join(bytes(b) for b in builders)
        if not model_bytes:
            raise BackendError(NNErrorKind.INVALID_ARGUMENT, "empty model")

        opts = self._session_options or ort.SessionOptions()
        try:
            session = ort.InferenceSession(model_bytes, opts, providers=providers)
        except InvalidProtobuf as e:
            raise BackendError(NNErrorKind.INVALID_ENCODING, str(e)) from e
        except Exception as e:
            raise BackendError(NNErrorKind.RUNTIME_ERROR, str(e)) from e

        graph = Graph(next(self._graph_ids))
        self._sessions[graph.handle] = session
        logger.info(
            f"ONNX graph {graph.handle} loaded: {session.get_providers()}",
            extra={"inputs": len(session.get_inputs()), "outputs": len(session.get_outputs())},
        )
        return graph

    def _session(self, graph: Graph) -> ort.InferenceSession:
        session = self._sessions.get(graph.handle)
        if session is None:
            raise BackendError(NNErrorKind.NOT_FOUND, f"unknown graph {graph.handle}")
        return session

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def init_execution_context(self, graph: Graph) -> ExecutionContext:
        self._session(graph)
        context = ExecutionContext(next(self._context_ids), graph)
        self._contexts[context.handle] = _ContextState(graph=graph)
        return context

    def _state(self, context: ExecutionContext) -> _ContextState:
        state = self._contexts.get(context.handle)
        if state is None:
            raise BackendError(NNErrorKind.NOT_FOUND, f"unknown execution context {context.handle}")
        return state

    def set_input(self, context: ExecutionContext, index: int, tensor: TensorDescriptor) -> None:
        state = self._state(context)
        model_inputs = self._session(state.graph).get_inputs()
        if not 0 <= index < len(model_inputs):
            raise BackendError(
                NNErrorKind.INVALID_ARGUMENT,
                f"input index {index} out of range (model has {len(model_inputs)})",
            )
        meta = model_inputs[index]

        expected_type = _ORT_TYPES.get(meta.type)
        if expected_type is None:
            raise BackendError(NNErrorKind.UNSUPPORTED_OPERATION, f"model input type {meta.type}")
        if tensor.type != expected_type:
            raise BackendError(
                NNErrorKind.INVALID_ARGUMENT,
                f"input {meta.name}: expected {expected_type.value}, got {tensor.type.value}",
            )

        dims = tuple(int(d) for d in tensor.dimensions)
        if len(dims) != len(meta.shape) or any(
            isinstance(want, int) and want != got for want, got in zip(meta.shape, dims)
        ):
            raise BackendError(
                NNErrorKind.INVALID_ARGUMENT,
                f"input {meta.name}: expected shape {meta.shape}, got {list(dims)}",
            )

        dtype = np.dtype(tensor.type.value)
        expected_bytes = int(np.prod(dims)) * dtype.itemsize
        if tensor.nbytes != expected_bytes:
            raise BackendError(
                NNErrorKind.INVALID_ARGUMENT,
                f"input {meta.name}: {tensor.nbytes} bytes for shape {list(dims)} "
                f"(expected {expected_bytes})",
            )

        array = np.frombuffer(tensor.data, dtype=dtype).reshape(dims).copy()
        state.inputs[meta.name] = array
        state.outputs = None

    def compute(self, context: ExecutionContext) -> None:
        state = self._state(context)
        session = self._session(state.graph)

        missing = [i.name for i in session.get_inputs() if i.name not in state.inputs]
        if missing:
            raise BackendError(NNErrorKind.RUNTIME_ERROR, f"inputs not set: {missing}")

        start = time.perf_counter()
        try:
            state.outputs = session.run(None, state.inputs)
        except InvalidArgument as e:
            raise BackendError(NNErrorKind.INVALID_ARGUMENT, str(e)) from e
        except Exception as e:
            raise BackendError(NNErrorKind.RUNTIME_ERROR, str(e)) from e

        elapsed_ms = (time.perf_counter() - start) * 1000
        self._inference_times.append(elapsed_ms)
        logger.perf(f"compute took {elapsed_ms:.1f}ms")

    def get_output(
        self, context: ExecutionContext, index: int, out: bytearray | memoryview, max_size: int
    ) -> int:
        state = self._state(context)
        if state.outputs is None:
            raise BackendError(NNErrorKind.RUNTIME_ERROR, "compute has not run")
        if not 0 <= index < len(state.outputs):
            raise BackendError(
                NNErrorKind.INVALID_ARGUMENT,
                f"output index {index} out of range (model has {len(state.outputs)})",
            )

        raw = np.ascontiguousarray(state.outputs[index]).tobytes()
        capacity = min(max_size, len(out))
        if len(raw) > capacity:
            raise BackendError(
                NNErrorKind.TOO_LARGE, f"output is {len(raw)} bytes, buffer holds {capacity}"
            )

        out[: len(raw)] = raw
        return len(raw)

    # -------------------------------------------------------------------------
    # Housekeeping
    # -------------------------------------------------------------------------

    def release_context(self, context: ExecutionContext) -> None:
        if self._contexts.pop(context.handle, None) is not None:
            logger.debug(f"Released execution context {context.handle}")

    def release_graph(self, graph: Graph) -> None:
        for handle in [h for h, s in self._contexts.items() if s.graph.handle == graph.handle]:
            del self._contexts[handle]
        if self._sessions.pop(graph.handle, None) is not None:
            logger.debug(f"Released graph {graph.handle}")

    def close(self):
        """Drop every session and context."""
        self._contexts.clear()
        self._sessions.clear()

    @property
    def avg_inference_ms(self) -> float:
        """Average compute time in milliseconds."""
        if not self._inference_times:
            return 0.0
        return sum(self._inference_times[-100:]) / min(len(self._inference_times), 100)
