"""Classification invoker: image in, filtered and formatted predictions out.

Every failure past classifier construction degrades to an empty prediction
list plus a logged warning. Nothing here raises to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from photoclassify.ml.image_classifier import ClassificationError, ClassificationResult
from photoclassify.ml.prediction import Prediction
from photoclassify.ml.preprocessing import ImageConversionError, decode_image

if TYPE_CHECKING:
    from collections.abc import Iterable

    import numpy as np
    from numpy.typing import NDArray

    from photoclassify.ml.image_classifier import ImageClassifier

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD: float = 0.01
DEFAULT_CONFIDENCE_DECIMALS: int = 2


def format_confidence(confidence: float, decimals: int = DEFAULT_CONFIDENCE_DECIMALS) -> str:
    """Render a 0.0-1.0 confidence as a fixed-precision percentage, e.g. ``"87.34%"``."""
    return f"{confidence * 100:.{decimals}f}%"


def filter_predictions(
    results: Iterable[ClassificationResult],
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    decimals: int = DEFAULT_CONFIDENCE_DECIMALS,
) -> list[Prediction]:
    """Keep results strictly above ``threshold``, in the order they were emitted."""
    return [
        Prediction(
            classification=result.label,
            confidence_percentage=format_confidence(result.confidence, decimals),
        )
        for result in results
        if result.confidence > threshold
    ]


def _is_well_formed(results: object) -> bool:
    if not isinstance(results, Sequence) or isinstance(results, (str, bytes)):
        return False
    return all(isinstance(r, ClassificationResult) and isinstance(r.label, str) and r.label for r in results)


class ClassificationInvoker:
    """Runs one classifier request per image and builds the prediction list."""

    def __init__(
        self,
        classifier: ImageClassifier,
        *,
        threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        decimals: int = DEFAULT_CONFIDENCE_DECIMALS,
    ) -> None:
        self._classifier = classifier
        self._threshold = threshold
        self._decimals = decimals

    @property
    def model_name(self) -> str:
        return self._classifier.model_name

    def classify(self, image: NDArray[np.uint8]) -> list[Prediction]:
        """Classify a decoded RGB image.

        Returns an empty list if the image cannot be converted, the classifier
        fails, or its output is not a sequence of ``ClassificationResult``.
        """
        try:
            results = self._classifier.classify(image)
        except ImageConversionError as exc:
            logger.warning("Failed to convert image for classification: %s", exc)
            return []
        except ClassificationError as exc:
            logger.warning("Failed to classify image: %s", exc)
            return []

        if not _is_well_formed(results):
            logger.warning("Failed to classify image: unexpected result type %s", type(results).__name__)
            return []

        predictions = filter_predictions(results, self._threshold, self._decimals)
        logger.debug(
            "Classified image with %s: %d of %d results above %.4f",
            self._classifier.model_name,
            len(predictions),
            len(results),
            self._threshold,
        )
        return predictions

    def classify_bytes(self, image_bytes: bytes, max_pixels: int) -> list[Prediction]:
        """Decode raw photo bytes, then classify. Undecodable data yields ``[]``."""
        try:
            image = decode_image(image_bytes, max_pixels)
        except ImageConversionError as exc:
            logger.warning("Failed to decode image data: %s", exc)
            return []
        return self.classify(image)
