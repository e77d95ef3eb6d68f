"""Image classifier capability and its ONNX implementation.

The classifier is treated as an opaque service: given an RGB image it returns
(label, confidence) pairs. ``OnnxImageClassifier`` backs it with an ImageNet
model served through onnxruntime. Tests substitute any object satisfying the
``ImageClassifier`` protocol.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from photoclassify.ml.model_manager import ONNX_RUNTIME_ERRORS, get_model_spec
from photoclassify.ml.preprocessing import preprocess_for_classification

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from photoclassify.config import Settings
    from photoclassify.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


class ClassificationError(RuntimeError):
    """Raised when the classifier fails or returns output of the wrong shape."""


@dataclass(frozen=True)
class ClassificationResult:
    """A single classification prediction."""

    label: str
    confidence: float


class ImageClassifier(Protocol):
    """Protocol for image classification models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def classify(self, image: NDArray[np.uint8]) -> list[ClassificationResult]:
        """Classify an image and return ranked labels.

        Args:
            image: HxWx3 RGB uint8 array.

        Returns:
            List of classification results sorted by confidence (descending).
        """
        ...


def _softmax(scores: NDArray[np.float32]) -> NDArray[np.float32]:
    shifted = scores - np.max(scores)
    exp = np.exp(shifted)
    return exp / np.sum(exp)


class OnnxImageClassifier:
    """ImageNet-style classifier running on an ONNX Runtime session.

    The session is fetched from the model manager on every call, so an idle
    eviction simply causes a reload on the next classification.
    """

    def __init__(self, manager: ModelManager, model_name: str, labels: list[str]) -> None:
        self._manager = manager
        self._spec = get_model_spec(model_name)
        self._labels = labels

    @property
    def model_name(self) -> str:
        return self._spec.name

    @property
    def labels(self) -> list[str]:
        return list(self._labels)

    def classify(self, image: NDArray[np.uint8]) -> list[ClassificationResult]:
        tensor = preprocess_for_classification(image, size=self._spec.input_size)
        try:
            # After idle eviction this reloads (and may re-download) the model.
            session = self._manager.get_session(self._spec.name)
            input_name = session.get_inputs()[0].name
            outputs = session.run(None, {input_name: tensor})
        except (OSError, RuntimeError, *ONNX_RUNTIME_ERRORS) as exc:
            raise ClassificationError(f"Inference failed for {self._spec.name}: {exc}") from exc

        if not outputs:
            raise ClassificationError(f"{self._spec.name} returned no outputs")

        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if scores.shape[0] != len(self._labels):
            raise ClassificationError(
                f"{self._spec.name} returned {scores.shape[0]} scores for {len(self._labels)} labels"
            )

        probabilities = _softmax(scores) if self._spec.outputs_logits else scores
        order = np.argsort(-probabilities, kind="stable")
        return [ClassificationResult(label=self._labels[i], confidence=float(probabilities[i])) for i in order]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClassifierLoadResult:
    """Outcome of classifier initialization: either a classifier or an error."""

    classifier: ImageClassifier | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.classifier is not None


def load_classifier(manager: ModelManager, settings: Settings) -> ClassifierLoadResult:
    """Instantiate the configured classifier without ever aborting the process.

    Download, label parsing and session creation failures are returned as a
    failed ``ClassifierLoadResult`` so the service can report itself as
    degraded instead of exiting.
    """
    model_name = settings.classification_model
    try:
        labels = manager.load_labels(model_name)
        manager.get_session(model_name)
        classifier = OnnxImageClassifier(manager, model_name, labels)
    except (KeyError, OSError, RuntimeError, ValueError, *ONNX_RUNTIME_ERRORS) as exc:
        logger.error("Failed to create image classifier '%s': %s", model_name, exc)
        return ClassifierLoadResult(
            error=(
                f"Failed to create image classifier '{model_name}': {exc} "
                "(check PHOTOCLASSIFY_MODEL_REPO_ID or PHOTOCLASSIFY_MODELS_DIR)"
            )
        )

    logger.info("Image classifier '%s' ready (%d labels)", model_name, len(labels))
    return ClassifierLoadResult(classifier=classifier)
