"""Concatenate staged fragments into playable video files."""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from .chunks import ChunkStore
from .naming import (
    UploadValidationError,
    build_public_video_path,
    build_target_file_name,
    require_identifier,
    safe_file_name,
)

LOGGER = logging.getLogger(__name__)

_COPY_BUFFER_SIZE = 1024 * 1024
PARTIAL_SUFFIX = ".partial"


class MissingFragmentError(Exception):
    """Raised when a declared fragment index is not staged under any known name."""

    def __init__(self, index: int) -> None:
        super().__init__(f"Chunk {index} is missing!")
        self.index = index


class MergeInProgressError(RuntimeError):
    """Raised when another merge already holds the output path."""

    def __init__(self, key: str) -> None:
        super().__init__(f"A merge for '{key}' is already in progress")
        self.key = key


class AssemblyLockRegistry:
    """Hand out one lock per output path, waiting at most ``timeout`` seconds."""

    def __init__(self, timeout: float) -> None:
        self._timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    @contextlib.contextmanager
    def hold(self, key: str, *, timeout: Optional[float] = None) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            wait = self._timeout if timeout is None else timeout
            if not lock.acquire(timeout=max(wait, 0.0)):
                LOGGER.warning("Rejecting overlapping merge for %s", key)
                raise MergeInProgressError(key)
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._guard:
                remaining = self._users[key] - 1
                if remaining:
                    self._users[key] = remaining
                else:
                    del self._users[key]
                    del self._locks[key]

    def active_keys(self) -> List[str]:
        with self._guard:
            return sorted(self._locks)


@dataclass(frozen=True)
class AssembledVideo:
    path: Path
    public_path: str
    size_bytes: int
    fragment_count: int


def _require_total(total_fragments: object) -> int:
    try:
        total = int(total_fragments)  # type: ignore[arg-type]
    except (TypeError, ValueError) as error:
        raise UploadValidationError("totalChunks must be an integer") from error
    if total < 1:
        raise UploadValidationError("totalChunks must be at least 1")
    return total


class VideoAssembler:
    """Build final videos from fragments staged in a :class:`ChunkStore`.

    Output is written to ``<target>.partial`` and renamed into place only
    once every fragment has been appended, so a failed merge never leaves a
    truncated video behind. Fragments are removed after the rename; when a
    fragment is missing the staged ones stay put for the client's retry.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        videos_root: Path,
        *,
        locks: AssemblyLockRegistry,
    ) -> None:
        self._chunks = chunk_store
        self._videos_root = videos_root
        self._locks = locks

    @property
    def videos_root(self) -> Path:
        return self._videos_root

    def assemble_lecture_video(
        self,
        course_id: str,
        lecture_id: str,
        declared_file_name: str,
        total_fragments: int,
    ) -> AssembledVideo:
        course_id = require_identifier(course_id, label="courseId")
        lecture_id = require_identifier(lecture_id, label="lectureId")
        declared = safe_file_name(declared_file_name)
        total = _require_total(total_fragments)

        target_name = build_target_file_name(lecture_id, declared)
        destination = self._videos_root / course_id / target_name
        LOGGER.info(
            "Assembling %s fragment(s) for lecture %s in course %s into %s",
            total,
            lecture_id,
            course_id,
            destination,
        )
        return self._assemble(
            destination,
            # Older clients staged fragments under the declared name.
            candidates=(target_name, declared),
            total=total,
            public_path=build_public_video_path(course_id, target_name),
        )

    def assemble_file(self, file_name: str, total_fragments: int) -> AssembledVideo:
        name = safe_file_name(file_name)
        total = _require_total(total_fragments)
        destination = self._videos_root / name
        LOGGER.info("Assembling %s fragment(s) into %s", total, destination)
        return self._assemble(
            destination,
            candidates=(name,),
            total=total,
            public_path=build_public_video_path(name),
        )

    def _assemble(
        self,
        destination: Path,
        *,
        candidates: Sequence[str],
        total: int,
        public_path: str,
    ) -> AssembledVideo:
        with self._locks.hold(str(destination)):
            destination.parent.mkdir(parents=True, exist_ok=True)
            partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
            consumed: List[Path] = []
            try:
                with partial.open("wb") as output:
                    for index in range(total):
                        source = self._chunks.locate_fragment(candidates, index)
                        if source is None:
                            LOGGER.warning(
                                "Fragment %s of %s is missing (tried %s)",
                                index,
                                destination.name,
                                ", ".join(candidates),
                            )
                            raise MissingFragmentError(index)
                        with source.open("rb") as fragment:
                            shutil.copyfileobj(fragment, output, length=_COPY_BUFFER_SIZE)
                        consumed.append(source)
                        LOGGER.debug("Appended fragment %s/%s from %s", index + 1, total, source)
                os.replace(partial, destination)
            except BaseException:
                with contextlib.suppress(FileNotFoundError):
                    partial.unlink()
                raise

            for source in consumed:
                self._chunks.discard(source)

            size = destination.stat().st_size
        LOGGER.info("Merged %s into %s (%s bytes)", public_path, destination, size)
        return AssembledVideo(
            path=destination,
            public_path=public_path,
            size_bytes=size,
            fragment_count=total,
        )


__all__ = [
    "AssembledVideo",
    "AssemblyLockRegistry",
    "MergeInProgressError",
    "MissingFragmentError",
    "PARTIAL_SUFFIX",
    "VideoAssembler",
]
