"""Tests for image decoding and classifier input preparation."""

from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image

from photoclassify.ml.preprocessing import (
    IMAGENET_MEAN,
    IMAGENET_STD,
    ImageConversionError,
    decode_image,
    preprocess_for_classification,
)


def _encode(img: Image.Image, fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


class TestDecodeImage:
    def test_decodes_png_to_rgb_array(self) -> None:
        data = _encode(Image.new("RGB", (6, 4), color=(255, 0, 0)))
        image = decode_image(data, max_pixels=1_000)
        assert image.shape == (4, 6, 3)
        assert image.dtype == np.uint8
        assert tuple(image[0, 0]) == (255, 0, 0)

    def test_converts_grayscale_and_alpha_to_rgb(self) -> None:
        gray = decode_image(_encode(Image.new("L", (3, 3), color=128)), max_pixels=1_000)
        rgba = decode_image(_encode(Image.new("RGBA", (3, 3), color=(1, 2, 3, 4))), max_pixels=1_000)
        assert gray.shape == (3, 3, 3)
        assert rgba.shape == (3, 3, 3)
        assert tuple(rgba[1, 1]) == (1, 2, 3)

    def test_decodes_jpeg(self) -> None:
        data = _encode(Image.new("RGB", (16, 8), color=(0, 128, 0)), fmt="JPEG")
        assert decode_image(data, max_pixels=1_000).shape == (8, 16, 3)

    def test_corrupt_bytes_raise(self) -> None:
        with pytest.raises(ImageConversionError):
            decode_image(b"\x89PNG\r\n\x1a\nnot really", max_pixels=1_000)

    def test_truncated_image_raises(self) -> None:
        data = _encode(Image.new("RGB", (64, 64), color=(9, 9, 9)), fmt="JPEG")
        with pytest.raises(ImageConversionError):
            decode_image(data[: len(data) // 2], max_pixels=100_000)

    def test_empty_bytes_raise(self) -> None:
        with pytest.raises(ImageConversionError, match="Empty"):
            decode_image(b"", max_pixels=1_000)

    def test_pixel_limit_enforced(self) -> None:
        data = _encode(Image.new("RGB", (20, 20)))
        with pytest.raises(ImageConversionError, match="too large"):
            decode_image(data, max_pixels=399)

    def test_conversion_error_is_value_error(self) -> None:
        assert issubclass(ImageConversionError, ValueError)


class TestPreprocessForClassification:
    def test_output_is_nchw_float32(self) -> None:
        image = np.full((300, 400, 3), 127, dtype=np.uint8)
        tensor = preprocess_for_classification(image)
        assert tensor.shape == (1, 3, 224, 224)
        assert tensor.dtype == np.float32

    def test_small_images_are_upscaled(self) -> None:
        image = np.zeros((10, 30, 3), dtype=np.uint8)
        assert preprocess_for_classification(image, size=32).shape == (1, 3, 32, 32)

    def test_normalization_uses_imagenet_stats(self) -> None:
        image = np.zeros((224, 224, 3), dtype=np.uint8)
        tensor = preprocess_for_classification(image)
        expected = -IMAGENET_MEAN / IMAGENET_STD
        np.testing.assert_allclose(tensor[0, :, 0, 0], expected, rtol=1e-5)

    @pytest.mark.parametrize(
        "shape",
        [(10, 10), (10, 10, 4), (0, 10, 3), (10, 10, 3, 1)],
    )
    def test_rejects_non_rgb_arrays(self, shape: tuple[int, ...]) -> None:
        with pytest.raises(ImageConversionError):
            preprocess_for_classification(np.zeros(shape, dtype=np.uint8))
