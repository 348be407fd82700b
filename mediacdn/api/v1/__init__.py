"""Versioned API routing for the media CDN."""

from fastapi import APIRouter

from . import routes_system, routes_upload


def get_api_router() -> APIRouter:
    router = APIRouter(prefix="/v1")
    router.include_router(routes_system.router)
    router.include_router(routes_upload.router)
    return router


__all__ = ["get_api_router"]
