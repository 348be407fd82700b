from __future__ import annotations

from hashlib import md5

__all__ = ["compute_content_hash"]


def compute_content_hash(data: bytes) -> str:
    """Return the hexadecimal fingerprint used as the primary deduplication key.

    Args:
        data: The bytes exactly as they will be stored.

    Returns:
        The 32 character MD5 hex digest.
    """
    return md5(data, usedforsecurity=False).hexdigest()
