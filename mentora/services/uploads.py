"""Chunked upload workflow tying staging, assembly and duration updates together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .assembly import AssembledVideo, VideoAssembler
from .chunks import ChunkStore, FragmentPayload
from .duration import DurationProbe, ProbeFailure
from .lectures import LectureService
from .naming import (
    UploadValidationError,
    build_target_file_name,
    format_duration,
    require_identifier,
    safe_file_name,
)
from .reconcile import UpdateOrigin
from .storage import LectureNotFoundError

LOGGER = logging.getLogger(__name__)

UNKNOWN_FORMATTED_DURATION = "00:00"
_DIVERGENCE_WARNING_RATIO = 0.5


@dataclass(frozen=True)
class LectureMergeOutcome:
    course_id: str
    lecture_id: str
    video: AssembledVideo
    duration: int
    formatted_duration: str
    duration_update_succeeded: bool

    @property
    def file_path(self) -> str:
        return self.video.public_path


def _require_index(value: object) -> int:
    try:
        index = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as error:
        raise UploadValidationError("chunkIndex must be an integer") from error
    if index < 0:
        raise UploadValidationError("chunkIndex must not be negative")
    return index


class LectureVideoUploader:
    """Entry point for fragment uploads and merges.

    Only assembly failures escape :meth:`merge_lecture_video`. Probing and
    persisting the duration are best effort: failures are logged and show
    up as ``duration_update_succeeded=False`` on the outcome.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        assembler: VideoAssembler,
        probe: DurationProbe,
        lectures: LectureService,
    ) -> None:
        self._chunks = chunk_store
        self._assembler = assembler
        self._probe = probe
        self._lectures = lectures

    def stage_fragment(self, file_name: str, index: object, payload: FragmentPayload) -> str:
        name = safe_file_name(file_name)
        self._chunks.store_fragment(name, _require_index(index), payload)
        return name

    def stage_lecture_fragment(
        self,
        course_id: str,
        lecture_id: str,
        file_name: str,
        index: object,
        payload: FragmentPayload,
    ) -> str:
        require_identifier(course_id, label="courseId")
        lecture_id = require_identifier(lecture_id, label="lectureId")
        target = build_target_file_name(lecture_id, file_name)
        self._chunks.store_fragment(target, _require_index(index), payload)
        return target

    def merge_generic(self, file_name: str, total_fragments: int) -> AssembledVideo:
        return self._assembler.assemble_file(file_name, total_fragments)

    def merge_lecture_video(
        self,
        course_id: str,
        lecture_id: str,
        declared_file_name: str,
        total_fragments: int,
    ) -> LectureMergeOutcome:
        video = self._assembler.assemble_lecture_video(
            course_id, lecture_id, declared_file_name, total_fragments
        )
        course_id = require_identifier(course_id, label="courseId")
        lecture_id = require_identifier(lecture_id, label="lectureId")

        duration = self._measure(video)
        updated = self._persist(lecture_id, video, duration)
        return LectureMergeOutcome(
            course_id=course_id,
            lecture_id=lecture_id,
            video=video,
            duration=duration or 0,
            formatted_duration=format_duration(duration) if duration else UNKNOWN_FORMATTED_DURATION,
            duration_update_succeeded=updated,
        )

    def _measure(self, video: AssembledVideo) -> Optional[int]:
        try:
            return self._probe.probe(video.path)
        except ProbeFailure as error:
            LOGGER.warning("Could not determine duration of %s: %s", video.path, error)
            return None

    def _persist(self, lecture_id: str, video: AssembledVideo, duration: Optional[int]) -> bool:
        changes = {"video_url": video.public_path}
        if duration:
            changes["duration"] = duration
        try:
            current = self._lectures.get_lecture_by_id(lecture_id)
            if duration and current.duration:
                divergence = abs(current.duration - duration) / current.duration
                if divergence > _DIVERGENCE_WARNING_RATIO:
                    LOGGER.warning(
                        "Lecture %s duration changes sharply: stored %ss, measured %ss",
                        lecture_id,
                        current.duration,
                        duration,
                    )
            updated = self._lectures.update_lecture(
                lecture_id, changes, origin=UpdateOrigin.UPLOAD_MERGE
            )
        except LectureNotFoundError as error:
            LOGGER.warning("Merged video %s but %s", video.public_path, error)
            return False
        except Exception:  # noqa: BLE001 - merge succeeds even if the lecture update fails
            LOGGER.exception("Updating lecture %s after merge failed", lecture_id)
            return False

        if not duration:
            return False
        return updated.duration == duration


__all__ = ["LectureMergeOutcome", "LectureVideoUploader", "UNKNOWN_FORMATTED_DURATION"]
