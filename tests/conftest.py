from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mentora.bootstrap import Bootstrapper
from mentora.config import AppConfig
from mentora.services.storage import LectureRepository


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.chdir(tmp_path)

    config = AppConfig.from_mapping(
        {
            "uploads_root": "uploads",
            "database_file": "uploads/mentora.db",
            "merge_lock_timeout": 0.2,
        },
        base_path=tmp_path,
    )

    Bootstrapper(config).initialize()
    return config


@pytest.fixture()
def repository(temp_config: AppConfig) -> LectureRepository:
    return LectureRepository(temp_config)
