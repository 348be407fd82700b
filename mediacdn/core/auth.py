from __future__ import annotations

import secrets
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import APIKeyHeader

from .config import Settings, get_settings


api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    credential_source: str


async def get_auth_context(
    request: Request,
    header_key: str | None = Depends(api_key_header),
    query_key: str | None = Query(default=None, alias="api_key", include_in_schema=False),
    settings: Settings = Depends(get_settings),
) -> AuthContext:
    if header_key:
        supplied, source = header_key, "header"
    elif query_key:
        supplied, source = query_key, "query"
    else:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_api_key")

    if not secrets.compare_digest(supplied.encode("utf-8"), settings.secrets.api_key.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_api_key")

    context = AuthContext(credential_source=source)
    request.state.auth = context
    return context


__all__ = ["AuthContext", "get_auth_context"]
