import sqlite3
from pathlib import Path

import pytest

import mentora.config as config_module
from mentora.bootstrap import BootstrapError, Bootstrapper
from mentora.config import AppConfig


def test_bootstrapper_creates_directories_and_schema(tmp_path: Path) -> None:
    uploads_root = tmp_path / "uploads"
    config = AppConfig(uploads_root=uploads_root, database_file=uploads_root / "mentora.db")

    Bootstrapper(config).initialize()

    assert config.temp_root.is_dir()
    assert config.videos_root.is_dir()
    connection = sqlite3.connect(config.database_file)
    try:
        columns = {row[1] for row in connection.execute("PRAGMA table_info(lectures)")}
    finally:
        connection.close()
    assert {"lecture_id", "video_url", "duration", "updated_at"} <= columns


def test_bootstrapper_is_idempotent(tmp_path: Path) -> None:
    uploads_root = tmp_path / "uploads"
    config = AppConfig(uploads_root=uploads_root, database_file=uploads_root / "mentora.db")

    Bootstrapper(config).initialize()
    Bootstrapper(config).initialize()

    assert config.database_file.exists()


def test_bootstrapper_raises_when_uploads_directory_unwritable(
    tmp_path: Path, monkeypatch
) -> None:
    uploads_root = tmp_path / "uploads"
    config = AppConfig(uploads_root=uploads_root, database_file=uploads_root / "mentora.db")

    original_ensure = config_module._ensure_writable_directory

    def fake_ensure(path: Path) -> bool:
        if path.resolve() == uploads_root.resolve():
            return False
        return original_ensure(path)

    monkeypatch.setattr(config_module, "_ensure_writable_directory", fake_ensure)

    with pytest.raises(BootstrapError) as excinfo:
        Bootstrapper(config).initialize()

    assert "uploads" in str(excinfo.value).lower()
