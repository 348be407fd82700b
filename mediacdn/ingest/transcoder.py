from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import cv2  # type: ignore
import numpy as np

from mediacdn.core.errors import DecodeError

JPEG_EXTENSIONS = frozenset({"jpg", "jpeg"})


@dataclass(slots=True)
class EncodedImage:
    data: bytes
    width: int
    height: int

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(slots=True)
class TranscodeResult:
    """Full-size payload to store, its pre-resize dimensions and the optional thumbnail."""

    full: EncodedImage
    original_width: int
    original_height: int
    resized: bool
    thumbnail: Optional[EncodedImage] = None


def scaled_dimensions(width: int, height: int, cap: int) -> Tuple[int, int]:
    """Scale so the larger side equals ``cap``; the other side is rounded down, never below 1 px."""
    if width > height:
        return cap, max(1, (height * cap) // width)
    return max(1, (width * cap) // height), cap


def exceeds_cap(width: int, height: int, cap: int) -> bool:
    return width > cap or height > cap


def decode_image(data: bytes) -> np.ndarray:
    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED) if buffer.size else None
    if image is None:
        raise DecodeError("image_decode_failed", "Failed to create image from data")
    if image.dtype == np.uint16:
        image = (image >> 8).astype(np.uint8)
    elif image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)
    return image


def image_size(image: np.ndarray) -> Tuple[int, int]:
    height, width = image.shape[:2]
    return width, height


def _to_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image


def _to_bgra(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
    return image


def _interpolation(source: Tuple[int, int], target: Tuple[int, int]) -> int:
    if target[0] < source[0] or target[1] < source[1]:
        return cv2.INTER_AREA
    return cv2.INTER_CUBIC


class ImageTranscoder:
    """Bounds-limited resizing and thumbnail derivation for still images.

    Output format follows the extension: JPEG for ``jpg``/``jpeg`` at a fixed
    quality, PNG with an alpha channel for everything else.
    """

    def __init__(
        self,
        *,
        max_image_size: int = 700,
        max_thumb_size: int = 300,
        jpeg_quality: int = 95,
        png_compression: int = 6,
    ):
        self.max_image_size = max_image_size
        self.max_thumb_size = max_thumb_size
        self.jpeg_quality = jpeg_quality
        self.png_compression = png_compression

    def render(self, image: np.ndarray, size: Tuple[int, int], extension: str) -> EncodedImage:
        width, height = size
        interpolation = _interpolation(image_size(image), size)
        if extension.lower() in JPEG_EXTENSIONS:
            resized = cv2.resize(_to_bgr(image), (width, height), interpolation=interpolation)
            ok, buffer = cv2.imencode(".jpg", resized, [cv2.IMWRITE_JPEG_QUALITY, self.jpeg_quality])
        else:
            # The canvas starts fully transparent so alpha survives the resample.
            canvas = np.zeros((height, width, 4), dtype=np.uint8)
            canvas = cv2.resize(_to_bgra(image), (width, height), dst=canvas, interpolation=interpolation)
            ok, buffer = cv2.imencode(".png", canvas, [cv2.IMWRITE_PNG_COMPRESSION, self.png_compression])
        if not ok:
            raise DecodeError("image_encode_failed", f"Failed to encode image as {extension}")
        return EncodedImage(data=buffer.tobytes(), width=width, height=height)

    def resize_to_cap(self, data: bytes, extension: str, image: Optional[np.ndarray] = None) -> TranscodeResult:
        """Return ``data`` untouched when within the cap, otherwise a re-encoded downscale."""
        if image is None:
            image = decode_image(data)
        width, height = image_size(image)
        if not exceeds_cap(width, height, self.max_image_size):
            full = EncodedImage(data=data, width=width, height=height)
            return TranscodeResult(full=full, original_width=width, original_height=height, resized=False)
        target = scaled_dimensions(width, height, self.max_image_size)
        full = self.render(image, target, extension)
        return TranscodeResult(full=full, original_width=width, original_height=height, resized=True)

    def derive_thumbnail(self, data: bytes, extension: str, image: Optional[np.ndarray] = None) -> EncodedImage:
        """Scale to the thumbnail cap unconditionally; small images are scaled up."""
        if image is None:
            image = decode_image(data)
        width, height = image_size(image)
        return self.render(image, scaled_dimensions(width, height, self.max_thumb_size), extension)

    def transcode(self, data: bytes, extension: str, *, with_thumbnail: bool) -> TranscodeResult:
        image = decode_image(data)
        result = self.resize_to_cap(data, extension, image=image)
        if with_thumbnail:
            result.thumbnail = self.derive_thumbnail(data, extension, image=image)
        return result


__all__ = [
    "EncodedImage",
    "TranscodeResult",
    "ImageTranscoder",
    "decode_image",
    "exceeds_cap",
    "image_size",
    "scaled_dimensions",
]
