"""
Data classes and constants shared by the classification pipeline.

Handles for graphs and execution contexts are opaque integers owned by the
backend that issued them.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum

# Fixed network geometry - SqueezeNet 1.1 / ImageNet
INPUT_HEIGHT = 224
INPUT_WIDTH = 224
INPUT_CHANNELS = 3
INPUT_DIMS = (1, INPUT_CHANNELS, INPUT_HEIGHT, INPUT_WIDTH)
FLOAT32_SIZE = 4
INPUT_TENSOR_BYTES = INPUT_HEIGHT * INPUT_WIDTH * INPUT_CHANNELS * FLOAT32_SIZE

NUM_CLASSES = 1000
OUTPUT_SCORES_BYTES = NUM_CLASSES * FLOAT32_SIZE

# Label staging limits
MAX_LABELS = 1000
LABEL_BUFFER_BYTES = 100_000


class NNErrorKind(IntEnum):
    """Backend result codes."""

    SUCCESS = 0
    INVALID_ARGUMENT = 1
    INVALID_ENCODING = 2
    MISSING_MEMORY = 3
    BUSY = 4
    RUNTIME_ERROR = 5
    UNSUPPORTED_OPERATION = 6
    TOO_LARGE = 7
    NOT_FOUND = 8


class GraphEncoding(str, Enum):
    """Serialized model formats a backend may be asked to load."""

    OPENVINO = "openvino"
    ONNX = "onnx"
    TENSORFLOW = "tensorflow"
    PYTORCH = "pytorch"
    TENSORFLOWLITE = "tensorflowlite"
    GGML = "ggml"
    AUTODETECT = "autodetect"


class ExecutionTarget(str, Enum):
    """Device a graph should run on."""

    CPU = "cpu"
    GPU = "gpu"
    TPU = "tpu"


class TensorType(str, Enum):
    """Tensor element types with their numpy dtype names."""

    FP16 = "float16"
    FP32 = "float32"
    FP64 = "float64"
    U8 = "uint8"
    I32 = "int32"
    I64 = "int64"


class PipelineState(str, Enum):
    """Linear run states. FAILED is reachable from any non-terminal state."""

    INIT = "init"
    GRAPH_LOADED = "graph_loaded"
    CONTEXT_READY = "context_ready"
    LABELS_READY = "labels_ready"
    TENSOR_READY = "tensor_ready"
    INPUT_SET = "input_set"
    COMPUTED = "computed"
    OUTPUT_READ = "output_read"
    CLASSIFIED = "classified"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.DONE, PipelineState.FAILED)


@dataclass(frozen=True)
class Graph:
    """Loaded network handle."""

    handle: int


@dataclass(frozen=True)
class ExecutionContext:
    """Per-run backend state handle, bound to one Graph."""

    handle: int
    graph: Graph


@dataclass
class TensorDescriptor:
    """Flat tensor: ordered dimensions, element type and raw bytes."""

    dimensions: tuple[int, ...]
    type: TensorType
    data: bytes | bytearray | memoryview

    @property
    def nbytes(self) -> int:
        return memoryview(self.data).nbytes


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of one successful run."""

    label: str
    class_index: int
    probability: float
