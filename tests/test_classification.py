"""Tests for confidence filtering, formatting, and the classification invoker."""

from __future__ import annotations

import io
import logging

import numpy as np
import pytest
from PIL import Image

from photoclassify.ml.classification import ClassificationInvoker, filter_predictions, format_confidence
from photoclassify.ml.image_classifier import ClassificationError, ClassificationResult
from photoclassify.ml.prediction import Prediction
from photoclassify.ml.preprocessing import ImageConversionError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClassifier:
    """Returns a fixed result list and records every call."""

    def __init__(self, results: object = (), error: Exception | None = None) -> None:
        self._results = results
        self._error = error
        self.calls = 0

    @property
    def model_name(self) -> str:
        return "fake"

    def classify(self, image: np.ndarray) -> list[ClassificationResult]:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._results  # type: ignore[return-value]


def _image() -> np.ndarray:
    return np.zeros((8, 8, 3), dtype=np.uint8)


def _png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), color=(10, 20, 30)).save(buf, format="PNG")
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


class TestFormatConfidence:
    @pytest.mark.parametrize(
        ("confidence", "expected"),
        [
            (0.8734, "87.34%"),
            (1.0, "100.00%"),
            (0.5, "50.00%"),
            (0.0123, "1.23%"),
        ],
    )
    def test_two_decimal_percentage(self, confidence: float, expected: str) -> None:
        assert format_confidence(confidence) == expected

    def test_precision_is_configurable(self) -> None:
        assert format_confidence(0.8734, decimals=0) == "87%"
        assert format_confidence(0.87345, decimals=3) == "87.345%"


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


class TestFilterPredictions:
    def test_keeps_emission_order_and_drops_low_confidence(self) -> None:
        results = [
            ClassificationResult("A", 0.5),
            ClassificationResult("B", 0.9),
            ClassificationResult("C", 0.005),
        ]
        assert filter_predictions(results) == [
            Prediction("A", "50.00%"),
            Prediction("B", "90.00%"),
        ]

    def test_threshold_is_strict(self) -> None:
        results = [ClassificationResult("edge", 0.01), ClassificationResult("above", 0.0101)]
        assert [p.classification for p in filter_predictions(results)] == ["above"]

    def test_tiny_confidence_excluded(self) -> None:
        assert filter_predictions([ClassificationResult("tiny", 0.0001)]) == []

    def test_custom_threshold(self) -> None:
        results = [ClassificationResult("A", 0.3), ClassificationResult("B", 0.6)]
        assert [p.classification for p in filter_predictions(results, threshold=0.5)] == ["B"]

    def test_empty_input(self) -> None:
        assert filter_predictions([]) == []


class TestPrediction:
    def test_equality_ignores_id(self) -> None:
        first = Prediction("tabby", "87.34%")
        second = Prediction("tabby", "87.34%")
        assert first.id != second.id
        assert first == second

    def test_is_immutable(self) -> None:
        prediction = Prediction("tabby", "87.34%")
        with pytest.raises(AttributeError):
            prediction.classification = "tiger"  # type: ignore[misc]

    def test_rejects_empty_label(self) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            Prediction("", "50.00%")


# ---------------------------------------------------------------------------
# Invoker
# ---------------------------------------------------------------------------


class TestClassificationInvoker:
    def test_classify_filters_and_formats(self) -> None:
        classifier = FakeClassifier(
            [
                ClassificationResult("tabby", 0.8734),
                ClassificationResult("tiger cat", 0.1),
                ClassificationResult("lynx", 0.001),
            ]
        )
        invoker = ClassificationInvoker(classifier)

        assert invoker.classify(_image()) == [
            Prediction("tabby", "87.34%"),
            Prediction("tiger cat", "10.00%"),
        ]
        assert classifier.calls == 1

    def test_classify_is_idempotent(self) -> None:
        classifier = FakeClassifier([ClassificationResult("A", 0.7), ClassificationResult("B", 0.2)])
        invoker = ClassificationInvoker(classifier)
        assert invoker.classify(_image()) == invoker.classify(_image())

    def test_configured_threshold_and_decimals(self) -> None:
        classifier = FakeClassifier([ClassificationResult("A", 0.7), ClassificationResult("B", 0.2)])
        invoker = ClassificationInvoker(classifier, threshold=0.5, decimals=1)
        assert invoker.classify(_image()) == [Prediction("A", "70.0%")]

    def test_conversion_failure_yields_empty(self, caplog: pytest.LogCaptureFixture) -> None:
        invoker = ClassificationInvoker(FakeClassifier(error=ImageConversionError("bad pixels")))
        with caplog.at_level(logging.WARNING):
            assert invoker.classify(_image()) == []
        assert "bad pixels" in caplog.text

    def test_classifier_failure_yields_empty(self) -> None:
        invoker = ClassificationInvoker(FakeClassifier(error=ClassificationError("boom")))
        assert invoker.classify(_image()) == []

    @pytest.mark.parametrize(
        "results",
        [
            None,
            "tabby",
            [("tabby", 0.9)],
            [ClassificationResult("tabby", 0.9), {"label": "x", "confidence": 0.5}],
            [ClassificationResult("", 0.9)],
        ],
    )
    def test_malformed_results_yield_empty(self, results: object) -> None:
        invoker = ClassificationInvoker(FakeClassifier(results))
        assert invoker.classify(_image()) == []

    def test_classify_bytes_decodes_then_classifies(self) -> None:
        classifier = FakeClassifier([ClassificationResult("swatch", 0.42)])
        invoker = ClassificationInvoker(classifier)
        assert invoker.classify_bytes(_png_bytes(), max_pixels=1_000) == [Prediction("swatch", "42.00%")]

    def test_classify_bytes_corrupt_data_yields_empty(self) -> None:
        classifier = FakeClassifier([ClassificationResult("swatch", 0.42)])
        invoker = ClassificationInvoker(classifier)
        assert invoker.classify_bytes(b"definitely not an image", max_pixels=1_000) == []
        assert classifier.calls == 0

    def test_model_name_passthrough(self) -> None:
        assert ClassificationInvoker(FakeClassifier()).model_name == "fake"
