"""
Exception types for the classification pipeline.

Every failure the pipeline can report derives from ClassifierError. The
pipeline fills in ``step`` with the name of the stage that failed.
"""

from __future__ import annotations

from .models import NNErrorKind


class ClassifierError(Exception):
    """Base class for pipeline failures."""

    def __init__(self, message: str, step: str | None = None):
        super().__init__(message)
        self.step = step


class ResourceIOError(ClassifierError):
    """A model, label or image file is missing, unreadable or empty."""


class AllocationError(ClassifierError):
    """A staging buffer could not be obtained."""


class FormatError(ClassifierError):
    """Byte counts, label counts or indices disagree with the fixed layout."""


class PlacementError(ClassifierError):
    """Invalid deployment-target registration."""


class BackendError(ClassifierError):
    """Non-success result from an inference backend call."""

    def __init__(self, kind: NNErrorKind, message: str = "", step: str | None = None):
        self.kind = NNErrorKind(kind)
        text = f"{self.kind.name.lower()}: {message}" if message else self.kind.name.lower()
        super().__init__(text, step=step)

    @classmethod
    def from_code(cls, code: int, message: str = "") -> BackendError:
        """Map an opaque integer result code to an error. Unknown codes are runtime errors."""
        try:
            kind = NNErrorKind(code)
        except ValueError:
            kind = NNErrorKind.RUNTIME_ERROR
            message = message or f"unknown backend code {code}"
        if kind is NNErrorKind.SUCCESS:
            raise ValueError("success is not an error code")
        return cls(kind, message)


__all__ = [
    "ClassifierError",
    "ResourceIOError",
    "AllocationError",
    "FormatError",
    "PlacementError",
    "BackendError",
]
