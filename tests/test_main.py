"""Tests for component wiring."""

from pathlib import Path

import pytest

from savings.boxes.service import BoxService
from savings.config import AppSettings, StorageSettings
from savings.main import _build_components
from savings.storage.repository import InMemoryBoxRepository
from savings.storage.sqlite_repository import SqliteBoxRepository


class TestBuildComponents:
    @pytest.mark.asyncio
    async def test_memory_backend(self) -> None:
        settings = AppSettings(storage=StorageSettings(backend="memory"))
        components = await _build_components(settings)
        try:
            assert isinstance(components["box_service"], BoxService)
            assert isinstance(components["repository"], InMemoryBoxRepository)
            assert components["database"] is None
            assert components["rate_source"].series_code == settings.cdi.series_code
        finally:
            await components["http_client"].aclose()

    @pytest.mark.asyncio
    async def test_sqlite_backend(self, tmp_path: Path) -> None:
        db_path = tmp_path / "savings.db"
        settings = AppSettings(storage=StorageSettings(backend="sqlite", db_path=str(db_path)))
        components = await _build_components(settings)
        try:
            assert isinstance(components["repository"], SqliteBoxRepository)
            assert db_path.exists()
        finally:
            await components["http_client"].aclose()
            await components["database"].close()
