"""
Image -> input tensor conversion.

Produces the network's input layout: batch 1, 3 channels (RGB), H x W,
native-endian float32, channel-major (NCHW). Pixels are scaled to [0, 1]
and normalised with the ImageNet mean/std the model was trained with.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import cv2
import numpy as np

from core.errors import FormatError, ResourceIOError
from logger_config import get_logger

logger = get_logger("tensor_builder")


class TensorBuilder(Protocol):
    """Contract: fill ``out`` with the tensor and return bytes written."""

    def build(self, image_path: str | Path, height: int, width: int, out: memoryview) -> int: ...


@dataclass(frozen=True)
class NormalizeConfig:
    """Per-channel normalization in RGB order."""

    mean: tuple[float, float, float] = (0.485, 0.456, 0.406)
    std: tuple[float, float, float] = (0.229, 0.224, 0.225)

    # Resize filter - bilinear, matching the training transforms
    interpolation: int = cv2.INTER_LINEAR


IMAGENET_NORMALIZE = NormalizeConfig()


def image_to_chw(
    image: np.ndarray,
    height: int,
    width: int,
    config: NormalizeConfig = IMAGENET_NORMALIZE,
) -> np.ndarray:
    """
    Convert an RGB uint8 image (H, W, 3) to a normalized float32 (3, height, width) array.

    The image is resized exactly (no letterbox) to the target size.
    """
    resized = cv2.resize(image, (width, height), interpolation=config.interpolation)
    x = resized.astype(np.float32) / 255.0
    x = (x - np.asarray(config.mean, dtype=np.float32)) / np.asarray(config.std, dtype=np.float32)
    # HWC -> CHW
    return np.ascontiguousarray(np.transpose(x, (2, 0, 1)), dtype=np.float32)


class ImageTensorBuilder:
    """
    TensorBuilder backed by OpenCV.

    Example:
        builder = ImageTensorBuilder()
        written = builder.build("dog.jpg", 224, 224, buffer.view)
    """

    def __init__(self, config: NormalizeConfig | None = None):
        self.config = config or IMAGENET_NORMALIZE

    def load_rgb(self, image_path: str | Path) -> np.ndarray:
        bgr = cv2.imread(str(image_path), cv2.IMREAD_COLOR)
        if bgr is None:
            raise ResourceIOError(f"Failed to read image {image_path}")
        return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)

    def build(self, image_path: str | Path, height: int, width: int, out: memoryview) -> int:
        rgb = self.load_rgb(image_path)
        chw = image_to_chw(rgb, height, width, self.config)

        raw = chw.tobytes()
        if len(raw) > len(out):
            raise FormatError(f"Tensor needs {len(raw)} bytes, output buffer holds {len(out)}")

        out[: len(raw)] = raw
        logger.debug(f"Image {image_path} -> tensor {chw.shape} ({len(raw)} bytes)")
        return len(raw)
