"""Pydantic request/response schemas for the photoclassify API."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, Field

from photoclassify.photos import AuthorizationStatus


class PredictionItem(BaseModel):
    """A single label with its formatted confidence."""

    id: uuid.UUID
    classification: str
    confidence_percentage: str = Field(description="Confidence as a percentage string, e.g. '87.34%'")


class ClassifyImageResponse(BaseModel):
    """Response for the stateless image classification endpoint."""

    model: str
    predictions: list[PredictionItem]


class AuthorizationRequest(BaseModel):
    """The user's answer to the photo library access prompt."""

    granted: bool


class AuthorizationResponse(BaseModel):
    status: AuthorizationStatus
    can_read: bool


class PhotosResponse(BaseModel):
    photos: list[str]


class SelectionRequest(BaseModel):
    token: str = Field(min_length=1, description="Photo token as returned by GET /photos")


class SelectionResponse(BaseModel):
    """Current selection and its predictions."""

    selection_id: int
    token: str | None
    has_image: bool
    width: int | None = None
    height: int | None = None
    predictions: list[PredictionItem]
    stale: bool = Field(default=False, description="True if a newer selection superseded this one")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="'ok', or 'degraded' when the classifier is unavailable")
    gpu: bool
    classifier_ready: bool
    classifier_error: str | None = None
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    task: str = Field(description="Model task: 'image_classification'")
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
