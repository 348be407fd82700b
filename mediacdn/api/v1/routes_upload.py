from __future__ import annotations

import base64
import binascii

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from mediacdn.api import deps
from mediacdn.core.config import Settings
from mediacdn.core.errors import DecodeError, IngestError, InputError, StoreError
from mediacdn.core.logging import get_logger
from mediacdn.services.ingest_service import IngestRequest

from . import schemas


router = APIRouter(tags=["upload"])
logger = get_logger(component="upload_api")


def decode_image_field(value: str) -> bytes:
    """Accept raw base64 or a ``data:<mime>;base64,<payload>`` URL."""
    if value.startswith("data:"):
        _, _, value = value.partition(",")
    # Whitespace, including line wraps, is not significant.
    value = "".join(value.split())
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InputError("invalid_base64", "Invalid base64 image data") from exc


async def _read_multipart(request: Request) -> IngestRequest:
    form = await request.form()
    upload = form.get("file")
    if not isinstance(upload, UploadFile):
        raise InputError("no_file_data", "No file data provided")
    try:
        data = await upload.read()
    finally:
        await upload.close()
    filename = form.get("filename")
    if not isinstance(filename, str) or not filename:
        filename = upload.filename or ""
    force = form.get("force") == "true"
    return IngestRequest(data=data, filename=filename, force=force)


async def _read_json(request: Request) -> IngestRequest:
    try:
        payload = schemas.UploadJSONRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as exc:
        raise InputError("no_file_data", "No file data provided") from exc
    return IngestRequest(data=decode_image_field(payload.image), filename=payload.filename, force=payload.force)


def _http_error(exc: IngestError) -> HTTPException:
    if isinstance(exc, InputError):
        code = (
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
            if exc.reason == "upload_too_large"
            else status.HTTP_400_BAD_REQUEST
        )
    elif isinstance(exc, DecodeError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=exc.reason)


@router.post("/upload", response_model=schemas.UploadResponse, summary="Ingest a file")
async def upload(
    request: Request,
    service: deps.IngestServiceDependency,
    context: deps.AuthDependency,
    settings: Settings = Depends(deps.get_app_settings),
) -> schemas.UploadResponse:
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("multipart/form-data"):
            ingest_request = await _read_multipart(request)
        else:
            ingest_request = await _read_json(request)
        record = await service.ingest(ingest_request)
    except StoreError as exc:
        logger.error("upload_failed", reason=exc.reason, credential_source=context.credential_source)
        raise _http_error(exc) from exc
    except IngestError as exc:
        logger.info("upload_rejected", reason=exc.reason, credential_source=context.credential_source)
        raise _http_error(exc) from exc

    logger.info("upload_completed", record_id=record.id, filename=record.filename)
    return schemas.UploadResponse(data=schemas.FileRecordResponse.from_record(record, settings))


__all__ = ["router", "decode_image_field"]
