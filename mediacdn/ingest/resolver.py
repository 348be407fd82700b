from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Protocol


class StoredRecord(Protocol):
    id: int
    filename: str
    file_hash: str


class Outcome(str, enum.Enum):
    adopt_existing = "adopt_existing"
    replace_in_place = "replace_in_place"
    rename_and_create = "rename_and_create"
    update_in_place = "update_in_place"
    create_new = "create_new"


@dataclass(frozen=True, slots=True)
class Decision:
    """What to do with an incoming payload.

    ``target`` is the record to return or mutate (``None`` when creating).
    ``filename`` is the name to create or move to. ``discard`` is a record
    whose row and blobs must be removed before the target is returned.
    ``needs_unique_name`` asks the executor to find a free suffix.
    """

    outcome: Outcome
    filename: str
    target: Optional[StoredRecord] = None
    discard: Optional[StoredRecord] = None
    needs_unique_name: bool = False


def resolve(
    *,
    filename: str,
    content_hash: str,
    force: bool,
    deduplicate: bool,
    by_filename: Optional[StoredRecord],
    by_hash: Optional[StoredRecord],
) -> Decision:
    """Decide how to reconcile ``(filename, content_hash)`` with existing records.

    Args:
        filename: The desired, already sanitised filename.
        content_hash: Fingerprint of the bytes that would be stored.
        force: The client asked to overwrite ``filename``.
        deduplicate: Identical content returns the existing record untouched.
        by_filename: The record currently holding ``filename``, if any.
        by_hash: A record holding ``content_hash``, if any. For a forced
            ingest onto a named record with different content this must
            be a record other than ``by_filename``.

    Returns:
        The decision for the executor.
    """
    if force:
        return _resolve_forced(filename, content_hash, by_filename, by_hash)
    return _resolve_default(filename, deduplicate, by_filename, by_hash)


def _resolve_forced(
    filename: str,
    content_hash: str,
    by_filename: Optional[StoredRecord],
    by_hash: Optional[StoredRecord],
) -> Decision:
    if by_filename is None:
        if by_hash is not None:
            # The requested name is dropped; the content already lives elsewhere.
            return Decision(Outcome.adopt_existing, filename=by_hash.filename, target=by_hash)
        return Decision(Outcome.create_new, filename=filename)

    if by_filename.file_hash == content_hash:
        return Decision(Outcome.replace_in_place, filename=by_filename.filename, target=by_filename)

    if by_hash is not None:
        return Decision(
            Outcome.adopt_existing,
            filename=by_hash.filename,
            target=by_hash,
            discard=by_filename,
        )
    return Decision(Outcome.replace_in_place, filename=by_filename.filename, target=by_filename)


def _resolve_default(
    filename: str,
    deduplicate: bool,
    by_filename: Optional[StoredRecord],
    by_hash: Optional[StoredRecord],
) -> Decision:
    if by_hash is not None:
        if deduplicate:
            return Decision(Outcome.adopt_existing, filename=by_hash.filename, target=by_hash)
        taken_by_other = by_filename is not None and by_filename.id != by_hash.id
        return Decision(
            Outcome.update_in_place,
            filename=filename,
            target=by_hash,
            needs_unique_name=taken_by_other,
        )

    if by_filename is not None:
        return Decision(Outcome.rename_and_create, filename=filename, needs_unique_name=True)
    return Decision(Outcome.create_new, filename=filename)


__all__ = ["Outcome", "Decision", "StoredRecord", "resolve"]
