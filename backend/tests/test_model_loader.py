"""
Model Loader Tests - file staging and unconditional buffer release.
"""

import sys
from pathlib import Path

import pytest

BACKEND_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BACKEND_DIR))

from conftest import FakeBackend  # noqa: E402

from classifier.model_loader import ModelLoader  # noqa: E402
from core.buffers import BufferArena  # noqa: E402
from core.errors import BackendError, ResourceIOError  # noqa: E402
from core.models import ExecutionTarget, GraphEncoding, NNErrorKind  # noqa: E402


class TestModelLoader:
    """Test ModelLoader.load."""

    def test_passes_whole_file_to_backend(self, model_file):
        backend = FakeBackend()
        arena = BufferArena()

        graph = ModelLoader(backend, arena).load(model_file)

        assert graph.handle == 7
        assert backend.loaded_bytes == b"not-really-onnx"
        assert arena.live == []

    def test_missing_file(self, tmp_path):
        backend = FakeBackend()
        arena = BufferArena()

        with pytest.raises(ResourceIOError):
            ModelLoader(backend, arena).load(tmp_path / "absent.onnx")

        assert backend.calls == []
        assert arena.live == []

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.onnx"
        path.write_bytes(b"")

        with pytest.raises(ResourceIOError):
            ModelLoader(FakeBackend(), BufferArena()).load(path)

    def test_buffer_released_when_backend_fails(self, model_file):
        backend = FakeBackend(fail_on={"load": NNErrorKind.INVALID_ENCODING})
        arena = BufferArena()

        with pytest.raises(BackendError) as exc_info:
            ModelLoader(backend, arena).load(model_file)

        assert exc_info.value.kind == NNErrorKind.INVALID_ENCODING
        assert arena.live == []

    def test_encoding_and_target_forwarded(self, model_file):
        seen = {}

        class Recorder(FakeBackend):
            def load(self, builders, encoding, target):
                seen["encoding"] = encoding
                seen["target"] = target
                return super().load(builders, encoding, target)

        loader = ModelLoader(
            Recorder(), BufferArena(), encoding=GraphEncoding.ONNX, target=ExecutionTarget.GPU
        )
        loader.load(model_file)

        assert seen == {"encoding": GraphEncoding.ONNX, "target": ExecutionTarget.GPU}
