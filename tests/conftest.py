import asyncio
import dataclasses
from typing import Optional

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from mediacdn.core.config import Settings, get_settings
from mediacdn.core.db import Base, create_engine, create_schema, create_session_factory
from mediacdn.core.storage import Storage, get_storage
from mediacdn.db.models import FileRecord
from mediacdn.main import create_app
from mediacdn.services.ingest_service import IngestOptions, IngestRequest, IngestService

TEST_API_KEY = "test-api-key"


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default media CDN environment bootstrap fixture for tests that manage their own .env",
    )


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()
        return
    db_path = tmp_path / "mediacdn_test.db"
    storage_root = tmp_path / "storage"

    monkeypatch.setenv("MEDIACDN_ENV", "test")
    monkeypatch.setenv("MEDIACDN_LOG_LEVEL", "debug")
    monkeypatch.setenv("MEDIACDN_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("MEDIACDN_STORAGE_ROOT", str(storage_root))
    monkeypatch.setenv("MEDIACDN_CDN_DOMAIN", "https://cdn.example.test")
    monkeypatch.setenv("MEDIACDN_API_KEY", TEST_API_KEY)

    get_settings.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    asyncio.run(create_schema(engine))

    yield

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_settings.cache_clear()


@pytest.fixture()
def client(configure_environment):
    app = create_app()
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def api_headers() -> dict[str, str]:
    return {"X-API-Key": TEST_API_KEY}


@pytest.fixture()
def settings(configure_environment) -> Settings:
    return get_settings()


@pytest.fixture()
def storage(settings) -> Storage:
    return get_storage(settings)


def encode_image(width: int, height: int, ext: str = "jpg", *, seed: int = 0, alpha: bool = False) -> bytes:
    """Encode a deterministic noise image; different seeds give different content."""
    rng = np.random.default_rng(seed)
    channels = 4 if alpha else 3
    image = rng.integers(0, 256, size=(height, width, channels), dtype=np.uint8)
    if alpha:
        image[:, : width // 2, 3] = 0
    ok, buffer = cv2.imencode(f".{ext}", image)
    assert ok
    return buffer.tobytes()


def decode(data: bytes) -> np.ndarray:
    image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    assert image is not None
    return image


def build_options(settings: Settings, **overrides) -> IngestOptions:
    return dataclasses.replace(IngestOptions.from_settings(settings), **overrides)


async def _ingest(settings, storage, request, options):
    engine = create_engine(settings)
    try:
        async with create_session_factory(engine)() as session:
            service = IngestService(options or IngestOptions.from_settings(settings), storage, session)
            return await service.ingest(request)
    finally:
        await engine.dispose()


def ingest(
    data: bytes,
    filename: str = "",
    *,
    force: bool = False,
    options: Optional[IngestOptions] = None,
    storage: Optional[Storage] = None,
):
    """Run one ingest in its own session, the way a single request would."""
    settings = get_settings()
    storage = storage or get_storage(settings)
    request = IngestRequest(data=data, filename=filename, force=force)
    return asyncio.run(_ingest(settings, storage, request, options))


def list_records():
    async def _list():
        engine = create_engine(get_settings())
        try:
            async with create_session_factory(engine)() as session:
                result = await session.execute(select(FileRecord).order_by(FileRecord.id))
                return list(result.scalars())
        finally:
            await engine.dispose()

    return asyncio.run(_list())
