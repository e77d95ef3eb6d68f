"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from photoclassify.config import Settings
    from photoclassify.ml.model_manager import ModelManager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from photoclassify.api.routes import router
from photoclassify.config import get_settings
from photoclassify.ml.classification import ClassificationInvoker
from photoclassify.ml.image_classifier import ClassifierLoadResult, load_classifier
from photoclassify.ml.inference import InferencePool
from photoclassify.ml.model_manager import OnnxModelManager
from photoclassify.photos import AuthorizationStatus, DirectoryPhotoLibrary, PhotoAccessGate
from photoclassify.session import ClassificationSession

logger = logging.getLogger(__name__)


def build_invoker(load_result: ClassifierLoadResult, settings: Settings) -> ClassificationInvoker | None:
    """Wrap a loaded classifier with the configured threshold and precision."""
    if load_result.classifier is None:
        return None
    return ClassificationInvoker(
        load_result.classifier,
        threshold=settings.confidence_threshold,
        decimals=settings.confidence_decimals,
    )


def init_state(
    app: FastAPI,
    settings: Settings,
    model_manager: ModelManager,
    load_result: ClassifierLoadResult,
) -> None:
    """Attach settings, services, and the selection session to ``app.state``."""
    app.state.settings = settings
    app.state.model_manager = model_manager
    app.state.classifier_load = load_result
    app.state.invoker = build_invoker(load_result, settings)
    app.state.inference_pool = InferencePool(settings)
    app.state.session = ClassificationSession()

    gate = PhotoAccessGate(AuthorizationStatus(settings.photo_access))
    app.state.photo_gate = gate
    app.state.photo_library = DirectoryPhotoLibrary(settings.photo_library_dir, gate)


async def _evict_idle_models(manager: ModelManager, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        manager.unload_idle_models()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting photoclassify (device=%s, max_concurrent=%s, model=%s, threshold=%s)",
        settings.device,
        settings.max_concurrent,
        settings.classification_model,
        settings.confidence_threshold,
    )

    model_manager = OnnxModelManager(settings)
    load_result = await asyncio.to_thread(load_classifier, model_manager, settings)
    if not load_result.ok:
        logger.error("Classifier unavailable; classification endpoints will return 503")

    init_state(app, settings, model_manager, load_result)
    logger.info("Photo library at %s (access: %s)", settings.photo_library_dir, app.state.photo_gate.status)

    eviction_task: asyncio.Task[None] | None = None
    if settings.model_ttl > 0:
        eviction_task = asyncio.create_task(_evict_idle_models(model_manager, settings.model_ttl))

    logger.info("photoclassify ready")
    yield

    logger.info("Shutting down photoclassify")
    if eviction_task is not None:
        eviction_task.cancel()
        with suppress(asyncio.CancelledError):
            await eviction_task
    app.state.inference_pool.shutdown()
    model_manager.shutdown()
    logger.info("photoclassify shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="photoclassify",
        description="Classify photos from a photo library with a pre-trained image classifier",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()
