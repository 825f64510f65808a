"""Lecture operations that sit between the HTTP layer and the repository."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from .reconcile import DurationAction, LectureDurationReconciler, UpdateOrigin
from .storage import LectureRecord, LectureRepository

LOGGER = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "video_url", "article_content", "duration", "is_free")


class LectureService:
    def __init__(self, repository: LectureRepository, reconciler: LectureDurationReconciler) -> None:
        self._repository = repository
        self._reconciler = reconciler

    @property
    def repository(self) -> LectureRepository:
        return self._repository

    def create_lecture(self, title: str, **fields: Any) -> LectureRecord:
        lecture_id = self._repository.add_lecture(title, **fields)
        LOGGER.info("Created lecture %s", lecture_id)
        return self._repository.require_lecture(lecture_id)

    def get_lecture_by_id(self, lecture_id: str) -> LectureRecord:
        return self._repository.require_lecture(lecture_id)

    def update_lecture(
        self,
        lecture_id: str,
        changes: Mapping[str, Any],
        *,
        origin: UpdateOrigin = UpdateOrigin.LECTURE_API,
    ) -> LectureRecord:
        """Apply *changes* after passing any duration through the reconciler.

        Raises :class:`~mentora.services.storage.LectureNotFoundError` when
        the lecture does not exist. Keys outside ``UPDATABLE_FIELDS`` and
        ``None`` values are ignored.
        """

        existing = self._repository.require_lecture(lecture_id)
        payload: Dict[str, Any] = {
            key: value
            for key, value in changes.items()
            if key in UPDATABLE_FIELDS and value is not None
        }

        if "duration" in payload:
            decision = self._reconciler.decide(
                payload.pop("duration"), existing.duration, origin=origin
            )
            if decision.action is not DurationAction.DROP:
                payload["duration"] = decision.value

        return self._repository.update_lecture(lecture_id, **payload)

    def delete_lecture(self, lecture_id: str) -> None:
        self._repository.remove_lecture(lecture_id)
        LOGGER.info("Deleted lecture %s", lecture_id)


__all__ = ["LectureService", "UPDATABLE_FIELDS"]
