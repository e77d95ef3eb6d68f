"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status

from photoclassify.api.middleware import verify_api_key
from photoclassify.api.schemas import (
    AuthorizationRequest,
    AuthorizationResponse,
    ClassifyImageResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    PhotosResponse,
    PredictionItem,
    SelectionRequest,
    SelectionResponse,
)
from photoclassify.ml.model_manager import MODEL_REGISTRY
from photoclassify.ml.preprocessing import ImageConversionError, decode_image
from photoclassify.photos import PhotoAccessDeniedError, PhotoNotFoundError
from photoclassify.session import ClassificationBatch

if TYPE_CHECKING:
    from collections.abc import Iterable

    from photoclassify.config import Settings
    from photoclassify.ml.classification import ClassificationInvoker
    from photoclassify.ml.image_classifier import ClassifierLoadResult
    from photoclassify.ml.inference import InferencePool
    from photoclassify.ml.model_manager import ModelManager
    from photoclassify.ml.prediction import Prediction
    from photoclassify.photos import PhotoAccessGate, PhotoLibrary
    from photoclassify.session import ClassificationSession, SelectionState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_UNAVAILABLE = {
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_session(request: Request) -> ClassificationSession:
    session: ClassificationSession = request.app.state.session
    return session


def _get_gate(request: Request) -> PhotoAccessGate:
    gate: PhotoAccessGate = request.app.state.photo_gate
    return gate


def _get_library(request: Request) -> PhotoLibrary:
    library: PhotoLibrary = request.app.state.photo_library
    return library


def _get_invoker(request: Request) -> ClassificationInvoker:
    invoker: ClassificationInvoker | None = request.app.state.invoker
    if invoker is None:
        load_result: ClassifierLoadResult = request.app.state.classifier_load
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=load_result.error or "Image classifier unavailable",
        )
    return invoker


def _prediction_items(predictions: Iterable[Prediction]) -> list[PredictionItem]:
    return [
        PredictionItem(
            id=p.id,
            classification=p.classification,
            confidence_percentage=p.confidence_percentage,
        )
        for p in predictions
    ]


def _selection_response(state: SelectionState, *, stale: bool = False) -> SelectionResponse:
    width, height = state.image_size if state.image_size is not None else (None, None)
    return SelectionResponse(
        selection_id=state.selection_id,
        token=state.token,
        has_image=state.has_image,
        width=width,
        height=height,
        predictions=_prediction_items(state.predictions),
        stale=stale,
    )


def _pool_busy() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Classifier busy, try again later",
    )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses={
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        **_UNAVAILABLE,
    },
    summary="Classify an uploaded image",
)
async def classify_image(request: Request, file: UploadFile) -> ClassifyImageResponse:
    """Classify an uploaded image without touching the selection session.

    Undecodable images yield an empty prediction list.
    """
    settings = _get_settings(request)
    invoker = _get_invoker(request)
    pool = _get_inference_pool(request)

    data = await file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )

    try:
        predictions = await pool.run(invoker.classify_bytes, data, settings.max_image_pixels)
    except TimeoutError:
        raise _pool_busy() from None

    return ClassifyImageResponse(model=invoker.model_name, predictions=_prediction_items(predictions))


# ---------------------------------------------------------------------------
# Photo library
# ---------------------------------------------------------------------------


@router.get(
    "/photos/authorization",
    response_model=AuthorizationResponse,
    summary="Photo library authorization status",
)
async def get_authorization(request: Request) -> AuthorizationResponse:
    gate = _get_gate(request)
    return AuthorizationResponse(status=gate.status, can_read=gate.can_read)


@router.post(
    "/photos/authorization",
    response_model=AuthorizationResponse,
    summary="Request photo library access",
)
async def request_authorization(request: Request, body: AuthorizationRequest) -> AuthorizationResponse:
    gate = _get_gate(request)
    new_status = gate.request_authorization(body.granted)
    return AuthorizationResponse(status=new_status, can_read=gate.can_read)


@router.get(
    "/photos",
    response_model=PhotosResponse,
    responses={status.HTTP_403_FORBIDDEN: {"model": ErrorResponse}},
    summary="List selectable photos",
)
async def list_photos(request: Request) -> PhotosResponse:
    library = _get_library(request)
    try:
        photos = await library.list_photos()
    except PhotoAccessDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from None
    return PhotosResponse(photos=photos)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


@router.post(
    "/selection",
    response_model=SelectionResponse,
    responses={
        status.HTTP_403_FORBIDDEN: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        **_UNAVAILABLE,
    },
    summary="Select a photo and classify it",
)
async def select_photo(request: Request, body: SelectionRequest) -> SelectionResponse:
    """Load a photo from the library, classify it, and make it the current selection.

    The previous selection stays in place until the new photo has loaded and
    decoded. If another pick or a reset happens while this one is in flight,
    the response reports ``stale=true`` and the session keeps the newer state.
    """
    settings = _get_settings(request)
    invoker = _get_invoker(request)
    pool = _get_inference_pool(request)
    library = _get_library(request)
    session = _get_session(request)

    ticket = session.begin()

    try:
        data = await library.load(body.token)
    except PhotoAccessDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from None
    except PhotoNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from None

    try:
        image = await pool.run(decode_image, data, settings.max_image_pixels)
    except ImageConversionError as exc:
        logger.warning("Failed to decode photo %s: %s", body.token, exc)
        if session.commit(ticket, body.token):
            session.apply(ClassificationBatch(selection_id=ticket, predictions=()))
        return _selection_response(session.snapshot(), stale=not session.is_current(ticket))
    except TimeoutError:
        raise _pool_busy() from None

    if not session.commit(ticket, body.token, image):
        return _selection_response(session.snapshot(), stale=True)

    try:
        predictions = await pool.run(invoker.classify, image)
    except TimeoutError:
        # The photo is selected but will never be classified; settle it as empty.
        session.apply(ClassificationBatch(selection_id=ticket, predictions=()))
        raise _pool_busy() from None

    applied = session.apply(ClassificationBatch(selection_id=ticket, predictions=tuple(predictions)))
    return _selection_response(session.snapshot(), stale=not applied)


@router.get(
    "/selection",
    response_model=SelectionResponse,
    summary="Current selection",
)
async def get_selection(request: Request) -> SelectionResponse:
    return _selection_response(_get_session(request).snapshot())


@router.delete(
    "/selection",
    response_model=SelectionResponse,
    summary="Reset the selected photo",
)
async def reset_selection(request: Request) -> SelectionResponse:
    """Clear the selected photo and its predictions."""
    session = _get_session(request)
    session.reset()
    return _selection_response(session.snapshot())


# ---------------------------------------------------------------------------
# Service info
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    manager: ModelManager = request.app.state.model_manager
    load_result: ClassifierLoadResult = request.app.state.classifier_load
    return HealthResponse(
        status="ok" if load_result.ok else "degraded",
        gpu=settings.device == "cuda",
        classifier_ready=load_result.ok,
        classifier_error=load_result.error,
        models_loaded=manager.get_loaded_models(),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return the model registry, marking the configured classifier as active."""
    settings = _get_settings(request)

    models = [
        ModelInfo(
            name=spec.name,
            task=spec.task,
            status="active" if spec.name == settings.classification_model else "available",
            license=spec.license,
        )
        for spec in MODEL_REGISTRY.values()
    ]
    return ModelsResponse(models=models)
