"""Configuration loading utilities for the Mentora media service."""

from __future__ import annotations

import contextlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".mentora_write_check"

DEFAULT_MERGE_LOCK_TIMEOUT = 5.0
DEFAULT_FFPROBE_BINARY = "ffprobe"


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    test_file = path / _PERMISSION_SENTINEL
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            test_file.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The first writable candidate wins. A flag reports whether a fallback was
    used. When nothing can be prepared the original ``preferred`` path is
    returned so that later I/O surfaces the real error.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


@dataclass(frozen=True)
class DurationPolicy:
    """Thresholds, in seconds, used when judging lecture durations.

    ``suspicious_seconds`` marks values that plain lecture edits may not
    introduce, ``probe_ceiling_seconds`` is the largest probe result that is
    trusted and ``max_seconds`` is the hard upper bound for any stored value.
    """

    suspicious_seconds: int = 1000
    probe_ceiling_seconds: int = 7200
    max_seconds: int = 86400

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "DurationPolicy":
        if not mapping:
            return cls()
        defaults = cls()
        return cls(
            suspicious_seconds=int(mapping.get("suspicious_seconds", defaults.suspicious_seconds)),
            probe_ceiling_seconds=int(
                mapping.get("probe_ceiling_seconds", defaults.probe_ceiling_seconds)
            ),
            max_seconds=int(mapping.get("max_seconds", defaults.max_seconds)),
        )


@dataclass(frozen=True)
class AppConfig:
    """Container describing runtime paths and tunables for the service."""

    uploads_root: Path
    database_file: Path
    duration_policy: DurationPolicy = field(default_factory=DurationPolicy)
    merge_lock_timeout: float = DEFAULT_MERGE_LOCK_TIMEOUT
    ffprobe_binary: str = DEFAULT_FFPROBE_BINARY

    @property
    def temp_root(self) -> Path:
        """Staging directory for in-flight upload fragments."""

        return (self.uploads_root / "temp").resolve()

    @property
    def videos_root(self) -> Path:
        """Directory holding assembled videos, served under ``/uploads/videos``."""

        return (self.uploads_root / "videos").resolve()

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any], *, base_path: Path) -> "AppConfig":
        preferred_uploads = (base_path / mapping["uploads_root"]).resolve()
        uploads_fallback = Path.home() / ".mentora" / "uploads"
        uploads_root, fallback_used = _select_writable_directory(
            preferred_uploads,
            label="uploads",
            fallbacks=(uploads_fallback,),
        )

        database_file = (base_path / mapping["database_file"]).resolve()
        if fallback_used:
            try:
                relative_database = database_file.relative_to(preferred_uploads)
            except ValueError:
                relative_database = None
            if relative_database is not None:
                fallback_database = (uploads_root / relative_database).resolve()
                if _ensure_writable_directory(fallback_database.parent):
                    LOGGER.warning(
                        "Preferred database location '%s' is not writable; using fallback '%s'.",
                        database_file,
                        fallback_database,
                    )
                    database_file = fallback_database

        if not _ensure_writable_directory(database_file.parent):
            fallback_database = (uploads_root / database_file.name).resolve()
            if fallback_database != database_file and _ensure_writable_directory(
                fallback_database.parent
            ):
                LOGGER.warning(
                    "Preferred database location '%s' is not writable; using fallback '%s'.",
                    database_file,
                    fallback_database,
                )
                database_file = fallback_database
            else:
                LOGGER.warning(
                    "Database location '%s' is not writable and no fallback is available.",
                    database_file,
                )

        return cls(
            uploads_root=uploads_root,
            database_file=database_file,
            duration_policy=DurationPolicy.from_mapping(mapping.get("duration_policy")),
            merge_lock_timeout=float(
                mapping.get("merge_lock_timeout", DEFAULT_MERGE_LOCK_TIMEOUT)
            ),
            ffprobe_binary=str(mapping.get("ffprobe_binary") or DEFAULT_FFPROBE_BINARY),
        )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the service configuration from ``config/default.json`` by default."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config = json.load(config_file)

    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = ["AppConfig", "DurationPolicy", "load_config"]
