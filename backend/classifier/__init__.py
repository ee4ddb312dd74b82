"""
Image classification pipeline.

- labels.py: newline-delimited label table
- tensor_builder.py: image -> NCHW float32 tensor
- model_loader.py: model file -> backend graph
- postprocess.py: softmax / argmax / top-k
- pipeline.py: end-to-end run with unified cleanup
"""

from .labels import LabelTable
from .model_loader import ModelLoader
from .pipeline import ClassificationPipeline
from .postprocess import argmax, softmax, top_k
from .tensor_builder import ImageTensorBuilder, NormalizeConfig, TensorBuilder

__all__ = [
    "LabelTable",
    "ModelLoader",
    "ClassificationPipeline",
    "softmax",
    "argmax",
    "top_k",
    "ImageTensorBuilder",
    "NormalizeConfig",
    "TensorBuilder",
]
