"""Filesystem staging area for in-flight upload fragments."""

from __future__ import annotations

import contextlib
import logging
import shutil
import time
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Union

from .naming import build_fragment_name

LOGGER = logging.getLogger(__name__)

_COPY_BUFFER_SIZE = 1024 * 1024

FragmentPayload = Union[bytes, bytearray, memoryview, BinaryIO]


class ChunkStore:
    """Stage upload fragments as ``<temp_root>/<target>.part<index>`` files.

    Writing the same ``(target, index)`` twice replaces the earlier payload,
    so client retries are safe. Nothing here is locked: two sessions for the
    same target share fragment paths.
    """

    def __init__(self, temp_root: Path) -> None:
        self._temp_root = temp_root

    @property
    def temp_root(self) -> Path:
        return self._temp_root

    def fragment_path(self, target_file_name: str, index: int) -> Path:
        return self._temp_root / build_fragment_name(target_file_name, index)

    def store_fragment(self, target_file_name: str, index: int, payload: FragmentPayload) -> Path:
        """Write *payload* for fragment *index*, replacing any earlier copy."""

        path = self.fragment_path(target_file_name, index)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as handle:
            if isinstance(payload, (bytes, bytearray, memoryview)):
                handle.write(payload)
            else:
                if hasattr(payload, "seek"):
                    with contextlib.suppress(OSError, ValueError):
                        payload.seek(0)
                shutil.copyfileobj(payload, handle, length=_COPY_BUFFER_SIZE)
        LOGGER.debug("Stored fragment %s of %s at %s", index, target_file_name, path)
        return path

    def fragment_exists(self, target_file_name: str, index: int) -> bool:
        return self.fragment_path(target_file_name, index).is_file()

    def locate_fragment(self, candidate_names: Iterable[str], index: int) -> Optional[Path]:
        """Return the first staged fragment for *index* among *candidate_names*.

        Names are tried in order; blanks and duplicates are skipped.
        """

        seen = set()
        for name in candidate_names:
            if not name or name in seen:
                continue
            seen.add(name)
            path = self.fragment_path(name, index)
            if path.is_file():
                return path
            LOGGER.debug("Fragment %s not staged under %s", index, name)
        return None

    def delete_fragment(self, target_file_name: str, index: int) -> bool:
        """Remove a staged fragment. Returns ``False`` when it was already gone."""

        path = self.fragment_path(target_file_name, index)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        LOGGER.debug("Deleted fragment %s", path)
        return True

    def discard(self, path: Path) -> None:
        with contextlib.suppress(FileNotFoundError):
            path.unlink()

    def purge_orphans(self, max_age_seconds: float, *, now: Optional[float] = None) -> List[Path]:
        """Delete fragments not modified within *max_age_seconds*."""

        if not self._temp_root.is_dir():
            return []
        reference = time.time() if now is None else now
        removed: List[Path] = []
        for path in sorted(self._temp_root.glob("*.part*")):
            if not path.is_file():
                continue
            try:
                age = reference - path.stat().st_mtime
            except FileNotFoundError:
                continue
            if age < max_age_seconds:
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as error:
                LOGGER.warning("Could not remove orphaned fragment %s: %s", path, error)
                continue
            removed.append(path)
        if removed:
            LOGGER.info("Purged %s orphaned fragment(s) from %s", len(removed), self._temp_root)
        return removed


__all__ = ["ChunkStore", "FragmentPayload"]
