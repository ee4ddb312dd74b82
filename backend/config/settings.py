"""
Centralized configuration using Pydantic-settings v2.

- Environment variable overrides (EDGECLS_PATH_MODEL_PATH=/models/net.onnx)
- Nested overrides through the root settings (EDGECLS_LOGGING__LEVEL=DEBUG)

The network geometry (input shape, class count, label caps) is fixed and
lives in core.models, not here.

Usage:
    from config.settings import get_settings
    settings = get_settings()
    print(settings.paths.model_path)
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.models import ExecutionTarget, GraphEncoding


class PathSettings(BaseSettings):
    """Model, label, image and log locations."""

    model_config = SettingsConfigDict(env_prefix="EDGECLS_PATH_", protected_namespaces=())

    base_dir: Path = Field(default=Path(__file__).parent.parent.parent)
    fixture_dir: Path | None = Field(default=None)
    model_path: Path | None = Field(default=None, description="ONNX model file")
    labels_path: Path | None = Field(default=None, description="Newline-delimited labels")
    image_path: Path | None = Field(default=None, description="Image to classify")
    logs_dir: Path | None = Field(default=None)

    def model_post_init(self, __context):
        if self.fixture_dir is None:
            self.fixture_dir = self.base_dir / "fixture"
        if self.model_path is None:
            self.model_path = self.fixture_dir / "models" / "squeezenet1.1-7.onnx"
        if self.labels_path is None:
            self.labels_path = self.fixture_dir / "labels" / "squeezenet1.1-7.txt"
        if self.image_path is None:
            self.image_path = self.fixture_dir / "images" / "dog.jpg"
        if self.logs_dir is None:
            self.logs_dir = self.base_dir / "logs"


class InferenceSettings(BaseSettings):
    """Backend selection."""

    model_config = SettingsConfigDict(env_prefix="EDGECLS_INFERENCE_")

    encoding: GraphEncoding = Field(default=GraphEncoding.ONNX, description="Model format")
    target: ExecutionTarget = Field(default=ExecutionTarget.CPU, description="Execution device")
    memory_limit_mb: int = Field(
        default=0, ge=0, description="Cap on live staging buffers (0 = unlimited)"
    )
    top_k: int = Field(default=5, ge=1, le=20, description="Classes shown in diagnostics")

    @property
    def memory_limit_bytes(self) -> int | None:
        if self.memory_limit_mb == 0:
            return None
        return self.memory_limit_mb * 1024 * 1024


class PlacementSettings(BaseSettings):
    """Logical nodes that placed functions may name."""

    model_config = SettingsConfigDict(env_prefix="EDGECLS_PLACEMENT_")

    nodes: list[str] = Field(default=["edge", "cloud"], description="Known node ids")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="EDGECLS_LOG_")

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="text", description="Log format (json, text)")
    file_enabled: bool = Field(default=False, description="Enable file logging")
    max_storage_mb: int = Field(default=100, ge=1, description="Total log storage cap")


class Settings(BaseSettings):
    """Root settings combining all sub-settings."""

    model_config = SettingsConfigDict(env_prefix="EDGECLS_", env_nested_delimiter="__")

    paths: PathSettings = Field(default_factory=PathSettings)
    inference: InferenceSettings = Field(default_factory=InferenceSettings)
    placement: PlacementSettings = Field(default_factory=PlacementSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    debug: bool = Field(default=False, description="Enable debug mode")


# Global singleton
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
