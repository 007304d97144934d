"""Tests for environment-driven settings and backend selection."""

from __future__ import annotations

import logging

import pytest

from tandrum.config import LOG_FORMAT, Settings, get_settings, setup_logging
from tandrum.database import get_repository
from tandrum.db_sqlite import SQLiteRepository


class TestSettings:
    """get_settings() environment parsing."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("TANDRUM_DB_BACKEND", "DATABASE_PATH", "MONGO_URI", "TANDRUM_TIMEZONE", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)
        assert get_settings() == Settings()

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TANDRUM_DB_BACKEND", " Mongo ")
        monkeypatch.setenv("TANDRUM_TIMEZONE", "Europe/Berlin")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        settings = get_settings()
        assert settings.db_backend == "mongo"
        assert settings.timezone == "Europe/Berlin"
        assert settings.log_level == "DEBUG"


class TestGetRepository:
    """get_repository() backend selection."""

    def test_sqlite(self, tmp_path) -> None:
        path = str(tmp_path / "nested" / "app.db")
        repo = get_repository(Settings(database_path=path))
        assert isinstance(repo, SQLiteRepository)
        assert (tmp_path / "nested" / "app.db").exists()

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError):
            get_repository(Settings(db_backend="redis"))

    def test_mongo_without_uri(self) -> None:
        with pytest.raises(ValueError):
            get_repository(Settings(db_backend="mongo", mongo_uri=""))


class TestSetupLogging:
    """setup_logging() handler installation."""

    def test_installs_one_handler(self) -> None:
        root = logging.getLogger()
        before = list(root.handlers)
        level = root.level
        try:
            setup_logging("WARNING")
            setup_logging("WARNING")
            ours = [h for h in root.handlers if getattr(h, "_tandrum", False)]
            assert len(ours) == 1
            assert ours[0].formatter._fmt == LOG_FORMAT
            assert root.level == logging.WARNING
        finally:
            root.handlers[:] = before
            root.setLevel(level)
