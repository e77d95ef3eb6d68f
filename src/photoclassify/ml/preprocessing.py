"""Image decoding and classifier input preparation.

Raw photo bytes are decoded with Pillow (EXIF orientation applied, converted
to RGB) into an HxWx3 uint8 array. That array is then resized, center-cropped
and normalized into the NCHW float32 tensor the ONNX classifiers expect.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

if TYPE_CHECKING:
    from numpy.typing import NDArray

RESIZE_SHORT_SIDE: int = 256
CROP_SIZE: int = 224

IMAGENET_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
IMAGENET_STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)


class ImageConversionError(ValueError):
    """Raised when an image cannot be converted into classifier input."""


def decode_image(image_bytes: bytes, max_pixels: int) -> NDArray[np.uint8]:
    """Decode raw image bytes into an RGB uint8 numpy array.

    Args:
        image_bytes: Raw file bytes (any format Pillow can open).
        max_pixels: Upper bound on width * height.

    Returns:
        HxWx3 RGB uint8 numpy array.

    Raises:
        ImageConversionError: If the image cannot be decoded or exceeds size limits.
    """
    if not image_bytes:
        raise ImageConversionError("Empty image data")

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size
            if width * height > max_pixels:
                raise ImageConversionError(f"Image too large: {width}x{height} exceeds {max_pixels} pixels")
            img.load()
            rgb = ImageOps.exif_transpose(img).convert("RGB")
    except ImageConversionError:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageConversionError(f"Failed to decode image: {exc}") from exc

    return np.asarray(rgb, dtype=np.uint8)


def preprocess_for_classification(image: NDArray[np.uint8], size: int = CROP_SIZE) -> NDArray[np.float32]:
    """Prepare an image for an ImageNet-style classifier.

    Args:
        image: HxWx3 RGB uint8 array.
        size: Side length of the square center crop.

    Returns:
        1x3xSxS float32 tensor, normalized with ImageNet mean/std.

    Raises:
        ImageConversionError: If the array is not an HxWx3 image.
    """
    if image.ndim != 3 or image.shape[2] != 3 or image.shape[0] == 0 or image.shape[1] == 0:
        raise ImageConversionError(f"Expected HxWx3 image, got shape {image.shape}")

    try:
        pil_image = Image.fromarray(np.ascontiguousarray(image, dtype=np.uint8))
    except (TypeError, ValueError) as exc:
        raise ImageConversionError(f"Failed to wrap pixel buffer: {exc}") from exc

    short_side = round(size * RESIZE_SHORT_SIDE / CROP_SIZE)
    width, height = pil_image.size
    scale = short_side / min(width, height)
    resized = pil_image.resize(
        (max(size, round(width * scale)), max(size, round(height * scale))),
        Image.Resampling.BILINEAR,
    )

    left = (resized.width - size) // 2
    top = (resized.height - size) // 2
    cropped = resized.crop((left, top, left + size, top + size))

    pixels = np.asarray(cropped, dtype=np.float32) / 255.0
    pixels = (pixels - IMAGENET_MEAN) / IMAGENET_STD
    return pixels.transpose(2, 0, 1)[np.newaxis, ...].astype(np.float32)
