"""Tests against real onnxruntime sessions built from broken model files."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import numpy as np
import onnx
import pytest
from onnx import TensorProto, helper, numpy_helper

from photoclassify.config import Settings
from photoclassify.ml.classification import ClassificationInvoker
from photoclassify.ml.image_classifier import ClassificationError, OnnxImageClassifier, load_classifier
from photoclassify.ml.model_manager import OnnxModelManager

if TYPE_CHECKING:
    from pathlib import Path

LABELS = ["tench", "goldfish", "great white shark"]


def _write_reshape_model(path: Path) -> None:
    """Write a valid model that fails at run time: it reshapes any input to 7x7."""
    shape = numpy_helper.from_array(np.array([7, 7], dtype=np.int64), name="shape")
    graph = helper.make_graph(
        [helper.make_node("Reshape", ["input", "shape"], ["scores"])],
        "reshape_to_7x7",
        [helper.make_tensor_value_info("input", TensorProto.FLOAT, ["N", "C", "H", "W"])],
        [helper.make_tensor_value_info("scores", TensorProto.FLOAT, None)],
        initializer=[shape],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    onnx.save(model, str(path))


@pytest.fixture()
def models_dir(tmp_path: Path) -> Path:
    (tmp_path / "imagenet_labels.txt").write_text("\n".join(LABELS) + "\n", encoding="utf-8")
    return tmp_path


@pytest.fixture()
def manager(models_dir: Path) -> OnnxModelManager:
    return OnnxModelManager(Settings(device="cpu", models_dir=str(models_dir)))


@patch("photoclassify.ml.model_manager.hf_hub_download")
def test_corrupt_model_file_reported_as_load_failure(
    mock_download: MagicMock, models_dir: Path, manager: OnnxModelManager
) -> None:
    (models_dir / "mobilenetv2-12.onnx").write_bytes(b"not an onnx model")

    result = load_classifier(manager, Settings(classification_model="mobilenetv2"))

    mock_download.assert_not_called()
    assert not result.ok
    assert result.classifier is None
    assert "mobilenetv2" in (result.error or "")


class TestRunFailures:
    @pytest.fixture()
    def classifier(self, models_dir: Path, manager: OnnxModelManager) -> OnnxImageClassifier:
        _write_reshape_model(models_dir / "mobilenetv2-12.onnx")
        result = load_classifier(manager, Settings(classification_model="mobilenetv2"))
        assert result.ok, result.error
        assert isinstance(result.classifier, OnnxImageClassifier)
        return result.classifier

    def test_runtime_error_becomes_classification_error(self, classifier: OnnxImageClassifier) -> None:
        with pytest.raises(ClassificationError, match="Inference failed for mobilenetv2"):
            classifier.classify(np.zeros((10, 10, 3), dtype=np.uint8))

    def test_invoker_yields_no_predictions(self, classifier: OnnxImageClassifier) -> None:
        invoker = ClassificationInvoker(classifier)
        assert invoker.classify(np.zeros((10, 10, 3), dtype=np.uint8)) == []
