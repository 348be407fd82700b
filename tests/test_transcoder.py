from __future__ import annotations

import pytest

from mediacdn.core.errors import DecodeError
from mediacdn.ingest.transcoder import ImageTranscoder, decode_image, exceeds_cap, scaled_dimensions
from tests.conftest import decode, encode_image


@pytest.mark.parametrize(
    "size, cap, expected",
    [
        ((1400, 700), 700, (700, 350)),
        ((700, 1400), 700, (350, 700)),
        ((1000, 1000), 300, (300, 300)),
        ((3000, 1), 700, (700, 1)),
        ((100, 50), 300, (300, 150)),
    ],
)
def test_scaled_dimensions(size, cap, expected):
    assert scaled_dimensions(*size, cap) == expected


def test_exceeds_cap():
    assert not exceeds_cap(700, 700, 700)
    assert exceeds_cap(701, 10, 700)
    assert exceeds_cap(10, 701, 700)


def test_small_image_passes_through_untouched():
    data = encode_image(200, 100, "jpg")
    result = ImageTranscoder().transcode(data, "jpg", with_thumbnail=False)
    assert not result.resized
    assert result.full.data is data
    assert (result.full.width, result.full.height) == (200, 100)
    assert result.thumbnail is None


def test_oversized_image_is_downscaled_to_cap():
    data = encode_image(1400, 700, "jpg")
    result = ImageTranscoder(max_image_size=700).transcode(data, "jpg", with_thumbnail=True)

    assert result.resized
    assert (result.original_width, result.original_height) == (1400, 700)
    assert (result.full.width, result.full.height) == (700, 350)
    stored = decode(result.full.data)
    assert stored.shape[:2] == (350, 700)

    assert result.thumbnail is not None
    assert (result.thumbnail.width, result.thumbnail.height) == (300, 150)
    assert decode(result.thumbnail.data).shape[:2] == (150, 300)


def test_thumbnail_scales_small_images_up():
    data = encode_image(60, 30, "png")
    thumbnail = ImageTranscoder(max_thumb_size=300).derive_thumbnail(data, "png")
    assert (thumbnail.width, thumbnail.height) == (300, 150)


def test_png_output_keeps_alpha():
    data = encode_image(800, 400, "png", alpha=True)
    result = ImageTranscoder().transcode(data, "png", with_thumbnail=True)
    full = decode(result.full.data)
    assert full.shape == (350, 700, 4)
    assert full[:, :10, 3].max() == 0
    assert decode(result.thumbnail.data).shape[2] == 4


def test_jpeg_output_honours_extension():
    data = encode_image(900, 300, "png")
    encoded = ImageTranscoder().render(decode_image(data), (300, 100), "jpeg")
    assert encoded.data[:3] == b"\xff\xd8\xff"


def test_undecodable_bytes_raise_decode_error():
    with pytest.raises(DecodeError) as excinfo:
        decode_image(b"\xff\xd8\xff\xe0not really a jpeg")
    assert excinfo.value.reason == "image_decode_failed"
