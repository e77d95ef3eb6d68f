"""Environment-based configuration for photoclassify."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from PHOTOCLASSIFY_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PHOTOCLASSIFY_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model selection
    classification_model: str = "mobilenetv2"
    model_repo_id: str | None = None
    models_dir: str = "models"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)

    # Model management
    model_ttl: int = Field(default=300, ge=0)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Result filtering
    confidence_threshold: float = Field(default=0.01, ge=0.0, le=1.0)
    confidence_decimals: int = Field(default=2, ge=0, le=6)

    # Photo library
    photo_library_dir: str = "photos"
    photo_access: Literal["not_determined", "authorized", "limited", "denied", "restricted", "unknown"] = (
        "not_determined"
    )


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
