"""
Shared fixtures: a scriptable fake backend, a fake tensor builder, label
and model files, and a tiny real ONNX classifier.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

BACKEND_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BACKEND_DIR))

from core.errors import BackendError  # noqa: E402
from core.models import (  # noqa: E402
    INPUT_TENSOR_BYTES,
    NUM_CLASSES,
    ExecutionContext,
    Graph,
    NNErrorKind,
)

FOX_INDEX = 42


class FakeBackend:
    """
    InferenceBackend double.

    Records every contract call in ``calls`` and raises BackendError for any
    call named in ``fail_on``. Handle releases are recorded in ``released``.
    """

    def __init__(
        self,
        scores: np.ndarray | None = None,
        fail_on: dict[str, NNErrorKind] | None = None,
        output_bytes: int | None = None,
    ):
        if scores is None:
            scores = np.zeros(NUM_CLASSES, dtype=np.float32)
            scores[FOX_INDEX] = 5.0
        self.scores = np.asarray(scores, dtype=np.float32)
        self.fail_on = fail_on or {}
        self.output_bytes = output_bytes
        self.calls: list[str] = []
        self.loaded_bytes: bytes | None = None
        self.input_tensor = None
        self.released: list[tuple[str, int]] = []

    def _enter(self, name: str):
        self.calls.append(name)
        if name in self.fail_on:
            raise BackendError(self.fail_on[name], "injected failure")

    def load(self, builders, encoding, target):
        self._enter("load")
        self.loaded_bytes = b"".join(bytes(b) for b in builders)
        return Graph(7)

    def init_execution_context(self, graph):
        self._enter("init_execution_context")
        return ExecutionContext(3, graph)

    def set_input(self, context, index, tensor):
        self._enter("set_input")
        self.input_tensor = (tensor.dimensions, tensor.type, tensor.nbytes)

    def compute(self, context):
        self._enter("compute")

    def get_output(self, context, index, out, max_size):
        self._enter("get_output")
        raw = self.scores.tobytes()
        if self.output_bytes is not None:
            raw = raw[: self.output_bytes]
        out[: len(raw)] = raw
        return len(raw)

    def release_context(self, context):
        self.released.append(("context", context.handle))

    def release_graph(self, graph):
        self.released.append(("graph", graph.handle))


class FakeTensorBuilder:
    """TensorBuilder double reporting a configurable byte count."""

    def __init__(self, written: int = INPUT_TENSOR_BYTES):
        self.written = written
        self.calls = []

    def build(self, image_path, height, width, out):
        self.calls.append((str(image_path), height, width, len(out)))
        return self.written


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def fake_builder():
    return FakeTensorBuilder()


@pytest.fixture
def labels_file(tmp_path):
    """1000 labels with 'fox' at index 42."""
    names = [f"class_{i}" for i in range(NUM_CLASSES)]
    names[FOX_INDEX] = "fox"
    path = tmp_path / "labels.txt"
    path.write_text("\n".join(names) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "model.onnx"
    path.write_bytes(b"not-really-onnx")
    return path


@pytest.fixture
def image_file(tmp_path):
    """A 64x48 orange test image."""
    import cv2

    path = tmp_path / "image.png"
    img = np.zeros((48, 64, 3), dtype=np.uint8)
    img[:, :] = (0, 128, 255)  # BGR
    cv2.imwrite(str(path), img)
    return path


def make_classifier_onnx(num_classes: int = NUM_CLASSES, hot_class: int = FOX_INDEX) -> bytes:
    """
    Tiny ONNX classifier: [1,3,224,224] -> GlobalAveragePool -> Flatten -> Gemm -> [1,N].

    The Gemm bias makes ``hot_class`` win for any input.
    """
    from onnx import TensorProto, helper, numpy_helper

    x = helper.make_tensor_value_info("data", TensorProto.FLOAT, [1, 3, 224, 224])
    y = helper.make_tensor_value_info("scores", TensorProto.FLOAT, [1, num_classes])

    weights = np.full((3, num_classes), 0.01, dtype=np.float32)
    bias = np.zeros(num_classes, dtype=np.float32)
    bias[hot_class] = 10.0

    nodes = [
        helper.make_node("GlobalAveragePool", ["data"], ["pooled"]),
        helper.make_node("Flatten", ["pooled"], ["flat"], axis=1),
        helper.make_node("Gemm", ["flat", "W", "B"], ["scores"]),
    ]
    graph = helper.make_graph(
        nodes,
        "tiny_classifier",
        [x],
        [y],
        initializer=[
            numpy_helper.from_array(weights, "W"),
            numpy_helper.from_array(bias, "B"),
        ],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    return model.SerializeToString()


@pytest.fixture
def onnx_model_file(tmp_path):
    pytest.importorskip("onnx")
    path = tmp_path / "tiny.onnx"
    path.write_bytes(make_classifier_onnx())
    return path
