"""
Model file -> backend Graph.
"""

from __future__ import annotations

from pathlib import Path

from core.buffers import BufferArena
from core.errors import ResourceIOError
from core.models import ExecutionTarget, Graph, GraphEncoding
from inference import InferenceBackend
from logger_config import get_logger

logger = get_logger("model_loader")


class ModelLoader:
    """
    Reads a whole model file into an owned buffer and hands it to the backend.

    The buffer is released as soon as the backend's load call returns, on
    success and on failure alike.
    """

    def __init__(
        self,
        backend: InferenceBackend,
        arena: BufferArena,
        encoding: GraphEncoding = GraphEncoding.ONNX,
        target: ExecutionTarget = ExecutionTarget.CPU,
    ):
        self.backend = backend
        self.arena = arena
        self.encoding = encoding
        self.target = target

    def load(self, path: str | Path) -> Graph:
        path = Path(path)
        try:
            size = path.stat().st_size
        except OSError as e:
            raise ResourceIOError(f"Failed to read model file {path}: {e}") from e
        if size <= 0:
            raise ResourceIOError(f"Model file {path} is empty")

        model_bytes = self.arena.allocate(size, "model")
        try:
            try:
                with open(path, "rb") as f:
                    nread = f.readinto(model_bytes.view)
            except OSError as e:
                raise ResourceIOError(f"Failed to read model file {path}: {e}") from e
            if nread != size:
                raise ResourceIOError(f"Short read on {path}: {nread} of {size} bytes")

            logger.info(f"Read {self.encoding.value} model, size in bytes: {size}")
            graph = self.backend.load([model_bytes.view], self.encoding, self.target)
        finally:
            model_bytes.release()

        logger.info(f"Loaded graph {graph.handle} on {self.target.value}")
        return graph
