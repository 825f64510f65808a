"""Persistence helpers backed by SQLite."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..config import AppConfig


@dataclass
class LectureRecord:
    lecture_id: str
    curriculum_id: Optional[str]
    title: str
    description: Optional[str]
    video_url: Optional[str]
    article_content: Optional[str]
    duration: Optional[int]
    is_free: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "LectureRecord":
        values = dict(row)
        values["is_free"] = bool(values.get("is_free"))
        duration = values.get("duration")
        values["duration"] = int(duration) if duration is not None else None
        return cls(**values)


class LectureNotFoundError(LookupError):
    """Raised when a lecture identifier does not resolve to a stored record."""

    def __init__(self, lecture_id: str) -> None:
        super().__init__(f"Lecture with ID {lecture_id} not found")
        self.lecture_id = lecture_id


LOGGER = logging.getLogger(__name__)

_LECTURE_COLUMNS = (
    "lecture_id",
    "curriculum_id",
    "title",
    "description",
    "video_url",
    "article_content",
    "duration",
    "is_free",
    "created_at",
    "updated_at",
)
_UPDATABLE_COLUMNS = frozenset(
    {"curriculum_id", "title", "description", "video_url", "article_content", "duration", "is_free"}
)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class LectureRepository:
    """Simple repository exposing CRUD helpers for lectures."""

    def __init__(self, config: AppConfig) -> None:
        self._db_path = config.database_file

    def _connect(self) -> sqlite3.Connection:
        LOGGER.debug("Opening SQLite connection to %s", self._db_path)
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        return connection

    def _execute(
        self,
        connection: sqlite3.Connection,
        statement: str,
        parameters: Sequence[Any] | Tuple[Any, ...] = (),
        *,
        action: str,
    ) -> sqlite3.Cursor:
        params = tuple(parameters)
        LOGGER.debug("Executing %s with %s parameter(s)", action, len(params))
        return connection.execute(statement, params)

    # ---------------------------------------------------------------------
    # Creation helpers
    # ---------------------------------------------------------------------
    def add_lecture(
        self,
        title: str,
        *,
        lecture_id: Optional[str] = None,
        curriculum_id: Optional[str] = None,
        description: Optional[str] = None,
        video_url: Optional[str] = None,
        article_content: Optional[str] = None,
        duration: Optional[int] = None,
        is_free: bool = False,
    ) -> str:
        identifier = lecture_id or str(uuid.uuid4())
        timestamp = _utcnow()
        LOGGER.debug("Adding lecture '%s' with id=%s", title, identifier)
        with self._connect() as connection:
            self._execute(
                connection,
                f"INSERT INTO lectures({', '.join(_LECTURE_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in _LECTURE_COLUMNS)})",
                (
                    identifier,
                    curriculum_id,
                    title,
                    description,
                    video_url,
                    article_content,
                    duration,
                    int(bool(is_free)),
                    timestamp,
                    timestamp,
                ),
                action="lectures.insert",
            )
        return identifier

    # ---------------------------------------------------------------------
    # Lookup helpers
    # ---------------------------------------------------------------------
    def get_lecture(self, lecture_id: str) -> Optional[LectureRecord]:
        with self._connect() as connection:
            cursor = self._execute(
                connection,
                f"SELECT {', '.join(_LECTURE_COLUMNS)} FROM lectures WHERE lecture_id = ?",
                (lecture_id,),
                action="lectures.get",
            )
            row = cursor.fetchone()
        if row is None:
            LOGGER.debug("Lecture %s not found", lecture_id)
            return None
        return LectureRecord.from_row(row)

    def require_lecture(self, lecture_id: str) -> LectureRecord:
        lecture = self.get_lecture(lecture_id)
        if lecture is None:
            raise LectureNotFoundError(lecture_id)
        return lecture

    def iter_lectures(self) -> Iterator[LectureRecord]:
        with self._connect() as connection:
            cursor = self._execute(
                connection,
                f"SELECT {', '.join(_LECTURE_COLUMNS)} FROM lectures ORDER BY created_at, lecture_id",
                action="lectures.list",
            )
            rows = cursor.fetchall()
        for row in rows:
            yield LectureRecord.from_row(row)

    # ---------------------------------------------------------------------
    # Mutation helpers
    # ---------------------------------------------------------------------
    def update_lecture(self, lecture_id: str, **fields: Any) -> LectureRecord:
        """Apply the non-``None`` entries of *fields* and refresh ``updated_at``."""

        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported lecture fields: {', '.join(sorted(unknown))}")

        changes: Dict[str, Any] = {key: value for key, value in fields.items() if value is not None}
        if "is_free" in changes:
            changes["is_free"] = int(bool(changes["is_free"]))
        changes["updated_at"] = _utcnow()

        assignments = ", ".join(f"{column} = ?" for column in changes)
        parameters: List[Any] = list(changes.values())
        parameters.append(lecture_id)
        LOGGER.debug(
            "Updating lecture %s (fields=%s)",
            lecture_id,
            ", ".join(sorted(changes)),
        )
        with self._connect() as connection:
            cursor = self._execute(
                connection,
                f"UPDATE lectures SET {assignments} WHERE lecture_id = ?",
                parameters,
                action="lectures.update",
            )
            if cursor.rowcount == 0:
                raise LectureNotFoundError(lecture_id)
        return self.require_lecture(lecture_id)

    def remove_lecture(self, lecture_id: str) -> None:
        with self._connect() as connection:
            cursor = self._execute(
                connection,
                "DELETE FROM lectures WHERE lecture_id = ?",
                (lecture_id,),
                action="lectures.delete",
            )
            if cursor.rowcount == 0:
                raise LectureNotFoundError(lecture_id)
        LOGGER.debug("Removed lecture %s", lecture_id)


__all__ = ["LectureNotFoundError", "LectureRecord", "LectureRepository"]
