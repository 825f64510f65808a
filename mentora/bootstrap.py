"""Bootstrap logic that prepares upload directories and the SQLite database."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from . import config as config_module
from .config import AppConfig, load_config

LOGGER = logging.getLogger(__name__)


class BootstrapError(RuntimeError):
    """Raised when initialization cannot be completed."""


class Bootstrapper:
    """High level object orchestrating initialization steps."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    @property
    def config(self) -> AppConfig:
        return self._config

    def initialize(self) -> None:
        """Run all bootstrap tasks."""

        LOGGER.debug("Starting bootstrap sequence")
        self._ensure_directories()
        self._ensure_database()
        LOGGER.info("Bootstrap completed successfully")

    def _ensure_directories(self) -> None:
        uploads_root = self._config.uploads_root
        if not config_module._ensure_writable_directory(uploads_root):
            raise BootstrapError(f"Uploads storage directory '{uploads_root}' is not writable")

        for path in (self._config.temp_root, self._config.videos_root):
            path.mkdir(parents=True, exist_ok=True)
            LOGGER.debug("Ensured directory exists: %s", path)

    def _ensure_database(self) -> None:
        LOGGER.debug("Ensuring database schema at %s", self._config.database_file)
        self._config.database_file.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(self._config.database_file)
        try:
            cursor = connection.cursor()
            cursor.executescript(
                """
                CREATE TABLE IF NOT EXISTS lectures (
                    lecture_id TEXT PRIMARY KEY,
                    curriculum_id TEXT,
                    title TEXT NOT NULL,
                    description TEXT,
                    video_url TEXT,
                    article_content TEXT,
                    duration INTEGER,
                    is_free INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )
            connection.commit()

            cursor.execute("PRAGMA table_info(lectures)")
            columns = {row[1] for row in cursor.fetchall()}
            if "article_content" not in columns:
                cursor.execute("ALTER TABLE lectures ADD COLUMN article_content TEXT")
                connection.commit()
        finally:
            connection.close()


def initialize_app(config_path: Path | None = None) -> AppConfig:
    """Convenience helper that loads configuration and runs initialization."""

    config = load_config(config_path=config_path)
    bootstrapper = Bootstrapper(config)
    bootstrapper.initialize()
    return config


__all__ = ["BootstrapError", "Bootstrapper", "initialize_app"]
