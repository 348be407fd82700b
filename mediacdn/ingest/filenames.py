from __future__ import annotations

import os
import re
import secrets
import time
from itertools import count
from typing import Iterator, Optional

__all__ = [
    "split_filename",
    "sanitize_filename",
    "ensure_extension",
    "generate_random_filename",
    "suffixed_candidates",
]

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_HYPHEN_RUNS = re.compile(r"-+")


def split_filename(filename: str) -> tuple[str, str]:
    """Return ``(stem, extension)`` of the last path component, extension without the dot."""
    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    if base.startswith(".") and "." not in base[1:]:
        # A bare dotfile name is all extension.
        return "", base[1:]
    stem, extension = os.path.splitext(base)
    return stem, extension.lstrip(".")


def _normalise_part(value: str) -> str:
    value = _UNSAFE_CHARS.sub("-", value)
    value = _HYPHEN_RUNS.sub("-", value)
    return value.strip("-")


def sanitize_filename(filename: str) -> Optional[str]:
    """Return a filesystem-safe version of ``filename``, or ``None`` when nothing usable is left.

    Path components are dropped, characters outside ``[A-Za-z0-9._-]`` become
    hyphens, hyphen runs collapse and leading/trailing hyphens are trimmed.

    Args:
        filename: The client-supplied name.

    Returns:
        The sanitised name, or ``None`` if the base name became empty.
    """
    stem, extension = split_filename(filename)
    safe_stem = _normalise_part(stem)
    if not safe_stem:
        return None
    safe_extension = _normalise_part(extension)
    return f"{safe_stem}.{safe_extension}" if safe_extension else safe_stem


def ensure_extension(filename: str, extension: str) -> str:
    """Append ``extension`` when ``filename`` carries none; an existing extension is kept."""
    _, current = split_filename(filename)
    if current:
        return filename
    return f"{filename}.{extension}"


def generate_random_filename(extension: str) -> str:
    """Collision-resistant name: microsecond time token plus 8 random bytes."""
    token = format(time.time_ns() // 1000, "x")
    return f"{token}_{secrets.token_hex(8)}.{extension}"


def suffixed_candidates(filename: str) -> Iterator[str]:
    """Yield ``name_2.ext``, ``name_3.ext`` ... for resolving a filename collision."""
    stem, extension = split_filename(filename)
    for counter in count(2):
        yield f"{stem}_{counter}.{extension}" if extension else f"{stem}_{counter}"
