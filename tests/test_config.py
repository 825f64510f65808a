import json
from pathlib import Path

import mentora.config as config_module
from mentora.config import AppConfig, DurationPolicy, load_config


def test_paths_are_derived_from_uploads_root(tmp_path: Path) -> None:
    config = AppConfig.from_mapping(
        {"uploads_root": "uploads", "database_file": "uploads/mentora.db"},
        base_path=tmp_path,
    )

    uploads = (tmp_path / "uploads").resolve()
    assert config.uploads_root == uploads
    assert config.temp_root == uploads / "temp"
    assert config.videos_root == uploads / "videos"
    assert config.database_file == uploads / "mentora.db"
    assert config.duration_policy == DurationPolicy()
    assert config.ffprobe_binary == "ffprobe"


def test_duration_policy_defaults() -> None:
    policy = DurationPolicy()

    assert policy.suspicious_seconds == 1000
    assert policy.probe_ceiling_seconds == 7200
    assert policy.max_seconds == 86400


def test_duration_policy_overrides_are_partial(tmp_path: Path) -> None:
    config = AppConfig.from_mapping(
        {
            "uploads_root": "uploads",
            "database_file": "uploads/mentora.db",
            "duration_policy": {"probe_ceiling_seconds": 10800},
        },
        base_path=tmp_path,
    )

    assert config.duration_policy.probe_ceiling_seconds == 10800
    assert config.duration_policy.suspicious_seconds == 1000
    assert config.duration_policy.max_seconds == 86400


def test_uploads_root_falls_back_when_preferred_is_unusable(
    tmp_path: Path, monkeypatch
) -> None:
    home_dir = tmp_path / "home"
    monkeypatch.setattr(config_module.Path, "home", lambda: home_dir)

    preferred_uploads = tmp_path / "uploads"
    preferred_uploads.write_text("not a directory", encoding="utf-8")

    config = AppConfig.from_mapping(
        {"uploads_root": "uploads", "database_file": "uploads/mentora.db"},
        base_path=tmp_path,
    )

    expected_uploads = (home_dir / ".mentora" / "uploads").resolve()
    assert config.uploads_root == expected_uploads
    assert config.database_file == expected_uploads / "mentora.db"
    assert expected_uploads.is_dir()


def test_load_config_reads_json_file(tmp_path: Path) -> None:
    config_file = tmp_path / "custom.json"
    config_file.write_text(
        json.dumps(
            {
                "uploads_root": str(tmp_path / "media"),
                "database_file": str(tmp_path / "media" / "lectures.db"),
                "merge_lock_timeout": 1.5,
                "ffprobe_binary": "/opt/ffmpeg/bin/ffprobe",
            }
        ),
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.uploads_root == (tmp_path / "media").resolve()
    assert config.database_file == (tmp_path / "media" / "lectures.db").resolve()
    assert config.merge_lock_timeout == 1.5
    assert config.ffprobe_binary == "/opt/ffmpeg/bin/ffprobe"
