from __future__ import annotations

from dataclasses import dataclass

import magic

FALLBACK_EXTENSION = "bin"

MIME_TO_EXTENSION: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/x-ms-bmp": "bmp",
    "image/tiff": "tiff",
    "image/svg+xml": "svg",
    "image/x-icon": "ico",
    "image/avif": "avif",
    "image/heic": "heic",
    "image/heif": "heif",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/avi": "avi",
    "video/quicktime": "mov",
    "video/x-msvideo": "avi",
    "video/x-ms-wmv": "wmv",
    "video/x-flv": "flv",
    "video/x-matroska": "mkv",
    "video/x-m4v": "m4v",
    "video/3gpp": "3gp",
    "video/ogg": "ogv",
}


@dataclass(frozen=True, slots=True)
class ContentInfo:
    mime_type: str
    is_image: bool
    extension: str


def detect_mime_type(data: bytes) -> str:
    """Sniff the MIME type from the buffer itself; client-declared types are never consulted."""
    return magic.from_buffer(data, mime=True) or "application/octet-stream"


def extension_for_mime(mime_type: str) -> str:
    return MIME_TO_EXTENSION.get(mime_type.lower(), FALLBACK_EXTENSION)


def classify(data: bytes) -> ContentInfo:
    """Return the MIME type, image flag and canonical extension for ``data``.

    Unknown content is not an error here: it maps to ``bin`` and is left for
    the extension allow-list to reject.
    """
    mime_type = detect_mime_type(data)
    return ContentInfo(
        mime_type=mime_type,
        is_image=mime_type.lower().startswith("image/"),
        extension=extension_for_mime(mime_type),
    )


__all__ = ["ContentInfo", "MIME_TO_EXTENSION", "FALLBACK_EXTENSION", "classify", "detect_mime_type", "extension_for_mime"]
