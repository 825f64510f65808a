"""Utility helpers for consistent upload and video naming."""

from __future__ import annotations

from pathlib import PurePosixPath, PureWindowsPath
import re

__all__ = [
    "PUBLIC_VIDEO_PREFIX",
    "UploadValidationError",
    "build_fragment_name",
    "build_public_video_path",
    "build_target_file_name",
    "format_duration",
    "require_identifier",
    "safe_file_name",
]

PUBLIC_VIDEO_PREFIX = "/uploads/videos"

_FORBIDDEN_SEGMENT = re.compile(r"[\\/\x00]")


class UploadValidationError(ValueError):
    """Raised when upload identifiers or names are missing or unusable."""


def require_identifier(value: object, *, label: str) -> str:
    """Return *value* as a non-empty identifier usable as a single path segment."""

    text = "" if value is None else str(value).strip()
    if not text:
        raise UploadValidationError(f"{label} is required")
    if _FORBIDDEN_SEGMENT.search(text) or text in {".", ".."}:
        raise UploadValidationError(f"{label} contains invalid characters")
    return text


def safe_file_name(value: object) -> str:
    """Return the final component of a client-declared file name."""

    text = "" if value is None else str(value).strip()
    # Clients on Windows occasionally send full paths.
    name = PurePosixPath(PureWindowsPath(text).name).name
    if not name or name in {".", ".."}:
        raise UploadValidationError("fileName is required")
    return name


def build_target_file_name(lecture_id: str, declared_file_name: str) -> str:
    """Return ``<lecture_id><ext>`` so repeated uploads for a lecture collide."""

    suffix = PurePosixPath(safe_file_name(declared_file_name)).suffix
    return f"{lecture_id}{suffix}"


def build_fragment_name(target_file_name: str, index: int) -> str:
    """Return the staging file name for fragment *index* of *target_file_name*."""

    if index < 0:
        raise UploadValidationError("chunkIndex must not be negative")
    return f"{target_file_name}.part{index}"


def build_public_video_path(*segments: str) -> str:
    """Return the public URL path of an assembled video."""

    cleaned = [segment.strip("/") for segment in segments if segment]
    return "/".join([PUBLIC_VIDEO_PREFIX, *cleaned])


def format_duration(seconds: float) -> str:
    """Return *seconds* as ``H:MM:SS`` or ``M:SS``."""

    total = max(int(seconds), 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
