"""Model manager: download, load, cache, and evict ONNX classifiers.

Handles downloading models and their label lists from HuggingFace, creating
and caching ONNX InferenceSessions, and TTL-based eviction.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi import onnxruntime_pybind11_state as ort_state
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from photoclassify.config import Settings

logger = logging.getLogger(__name__)

# onnxruntime raises its own pybind exception types, which do not derive from
# RuntimeError or OSError.
ONNX_RUNTIME_ERRORS: tuple[type[Exception], ...] = (
    ort_state.Fail,
    ort_state.InvalidArgument,
    ort_state.NoSuchFile,
    ort_state.NoModel,
    ort_state.EngineError,
    ort_state.RuntimeException,
    ort_state.InvalidProtobuf,
    ort_state.ModelLoaded,
    ort_state.NotImplemented,
    ort_state.InvalidGraph,
    ort_state.EPFail,
)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def ensure_downloaded(self, model_name: str) -> Path:
        """Ensure a model is downloaded and return its file path."""
        ...

    def load_labels(self, model_name: str) -> list[str]:
        """Return the class labels for a model, in output index order."""
        ...

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached or newly created InferenceSession."""
        ...

    def get_loaded_models(self) -> list[str]:
        """Return names of currently loaded models."""
        ...

    def unload_idle_models(self) -> None:
        """Unload models that have exceeded their TTL."""
        ...

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        ...


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


class ModelTask(StrEnum):
    IMAGE_CLASSIFICATION = "image_classification"


# Deployment model repository holding the ONNX files and imagenet_labels.txt.
# Point PHOTOCLASSIFY_MODEL_REPO_ID at your own mirror, or pre-populate
# PHOTOCLASSIFY_MODELS_DIR with the files to run without downloading.
DEFAULT_REPO_ID = "photoclassify/classification-models"


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX classifier."""

    name: str
    repo_id: str
    filename: str
    labels_filename: str
    subfolder: str | None
    task: ModelTask
    license: str
    input_size: int
    outputs_logits: bool


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "mobilenetv2": ModelSpec(
        name="mobilenetv2",
        repo_id=DEFAULT_REPO_ID,
        filename="mobilenetv2-12.onnx",
        labels_filename="imagenet_labels.txt",
        subfolder=None,
        task=ModelTask.IMAGE_CLASSIFICATION,
        license="Apache-2.0",
        input_size=224,
        outputs_logits=True,
    ),
    "resnet50": ModelSpec(
        name="resnet50",
        repo_id=DEFAULT_REPO_ID,
        filename="resnet50-v2-7.onnx",
        labels_filename="imagenet_labels.txt",
        subfolder=None,
        task=ModelTask.IMAGE_CLASSIFICATION,
        license="Apache-2.0",
        input_size=224,
        outputs_logits=True,
    ),
    "efficientnet_lite4": ModelSpec(
        name="efficientnet_lite4",
        repo_id=DEFAULT_REPO_ID,
        filename="efficientnet-lite4-11.onnx",
        labels_filename="imagenet_labels.txt",
        subfolder=None,
        task=ModelTask.IMAGE_CLASSIFICATION,
        license="Apache-2.0",
        input_size=224,
        outputs_logits=False,
    ),
}


def get_model_spec(model_name: str) -> ModelSpec:
    """Look up a registry entry, raising KeyError with a readable message."""
    try:
        return MODEL_REGISTRY[model_name]
    except KeyError:
        raise KeyError(f"Unknown model: {model_name}") from None


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


@dataclass
class _CachedSession:
    session: InferenceSession
    last_used: float


class OnnxModelManager:
    """Downloads, loads, caches, and evicts ONNX inference sessions."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._models_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._sessions: dict[str, _CachedSession] = {}
        self._model_paths: dict[str, Path] = {}
        self._labels: dict[str, list[str]] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self, model_name: str) -> Path:
        """Download a model from HuggingFace if not already present locally."""
        spec = get_model_spec(model_name)

        if model_name in self._model_paths:
            path = self._model_paths[model_name]
            if path.exists():
                return path

        local = self._models_dir / spec.filename
        if local.exists():
            self._model_paths[model_name] = local
            return local

        downloaded = self._download(spec, spec.filename)
        self._model_paths[model_name] = downloaded
        logger.info("Downloaded %s to %s", model_name, downloaded)
        return downloaded

    def load_labels(self, model_name: str) -> list[str]:
        """Download (if needed) and parse the label list, one label per line."""
        spec = get_model_spec(model_name)
        cached = self._labels.get(model_name)
        if cached is not None:
            return cached

        path = self._models_dir / spec.labels_filename
        if not path.exists():
            path = self._download(spec, spec.labels_filename)

        labels = [line.strip() for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]
        if not labels:
            raise ValueError(f"Label file for '{model_name}' is empty: {path}")
        self._labels[model_name] = labels
        logger.info("Loaded %d labels for %s", len(labels), model_name)
        return labels

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached InferenceSession, creating one if needed."""
        with self._lock:
            cached = self._sessions.get(model_name)
            if cached is not None:
                cached.last_used = time.monotonic()
                return cached.session

        model_path = self.ensure_downloaded(model_name)
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )

        with self._lock:
            # Double-check: another thread may have created it while we loaded.
            existing = self._sessions.get(model_name)
            if existing is not None:
                existing.last_used = time.monotonic()
                return existing.session
            self._sessions[model_name] = _CachedSession(
                session=session,
                last_used=time.monotonic(),
            )
            logger.info("Loaded session for %s", model_name)
            return session

    def get_loaded_models(self) -> list[str]:
        """Return names of models with active sessions."""
        with self._lock:
            return list(self._sessions.keys())

    def unload_idle_models(self) -> None:
        """Remove sessions that have exceeded the configured TTL."""
        ttl = self._settings.model_ttl
        if ttl == 0:
            return

        now = time.monotonic()
        with self._lock:
            expired = [name for name, cached in self._sessions.items() if (now - cached.last_used) > ttl]
            for name in expired:
                del self._sessions[name]
                logger.info("Evicted idle session for %s", name)

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        with self._lock:
            self._sessions.clear()
            logger.info("All model sessions cleared")

    # -- Internal -----------------------------------------------------------

    def _download(self, spec: ModelSpec, filename: str) -> Path:
        return Path(
            hf_hub_download(
                repo_id=self._settings.model_repo_id or spec.repo_id,
                filename=filename,
                subfolder=spec.subfolder,
                local_dir=str(self._models_dir),
            )
        )

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
