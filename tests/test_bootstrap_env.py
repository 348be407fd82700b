from __future__ import annotations

import asyncio
import os
from pathlib import Path
from unittest import mock

import pytest
from fastapi.testclient import TestClient

from mediacdn.core.config import DEFAULT_API_KEY, get_settings
from mediacdn.core.db import create_engine, create_schema
from mediacdn.main import create_app
from tests.conftest import encode_image

DEV_API_KEY = "dev-key"


pytestmark = pytest.mark.no_default_env


@pytest.fixture(autouse=True)
def isolated_environ():
    # load_dotenv writes straight into os.environ.
    with mock.patch.dict(os.environ):
        yield


def _write_env(target_dir: Path, *, environment: str, api_key: str | None = DEV_API_KEY) -> Path:
    target_dir.mkdir(parents=True, exist_ok=True)
    lines = [
        f"MEDIACDN_ENV={environment}",
        "MEDIACDN_LOG_LEVEL=debug",
        "MEDIACDN_STORAGE_BACKEND=local",
        "MEDIACDN_STORAGE_ROOT=storage",
        "MEDIACDN_DB_URL=sqlite+aiosqlite:///./mediacdn.db",
        "MEDIACDN_CDN_DOMAIN=https://cdn.local.test/",
        "MEDIACDN_DEDUPLICATE_UPLOADS=false",
    ]
    if api_key is not None:
        lines.append(f"MEDIACDN_API_KEY={api_key}")
    env_path = target_dir / ".env"
    env_path.write_text("\n".join(lines))
    return env_path


def _prepare(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, **kwargs) -> None:
    _write_env(tmp_path, **kwargs)
    for key in list(os.environ.keys()):
        if key.startswith("MEDIACDN_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()


def test_env_file_configures_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _prepare(tmp_path, monkeypatch, environment="development")
    settings = get_settings()
    assert settings.environment == "development"
    assert settings.database_url == "sqlite+aiosqlite:///./mediacdn.db"
    assert settings.secrets.api_key == DEV_API_KEY
    assert settings.deduplicate_uploads is False
    assert settings.images_url == "https://cdn.local.test/img/"
    assert settings.thumbs_url == "https://cdn.local.test/thumbs/"


def test_env_boots_without_shell_exports(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _prepare(tmp_path, monkeypatch, environment="development")
    engine = create_engine(get_settings())

    async def _init() -> None:
        await create_schema(engine)
        await engine.dispose()

    asyncio.run(_init())

    with TestClient(create_app()) as client:
        health = client.get("/v1/health")
        assert health.status_code == 200
        resp = client.post(
            "/v1/upload",
            files={"file": ("tile.png", encode_image(40, 40, "png"), "image/png")},
            headers={"X-API-Key": DEV_API_KEY},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["data"]["urls"]["image"] == "https://cdn.local.test/img/tile.png"
    assert (tmp_path / "storage" / "img" / "tile.png").is_file()


def test_production_requires_non_default_api_key(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _prepare(tmp_path, monkeypatch, environment="production", api_key=None)
    with pytest.raises(ValueError):
        get_settings()


def test_production_accepts_explicit_api_key(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _prepare(tmp_path, monkeypatch, environment="production", api_key="rotated-secret")
    settings = get_settings()
    assert settings.secrets.api_key == "rotated-secret"
    assert settings.secrets.api_key != DEFAULT_API_KEY
