"""Measure the playtime of assembled videos."""

from __future__ import annotations

import logging
import math
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from mutagen import File as MutagenFile

from ..config import DurationPolicy


LOGGER = logging.getLogger(__name__)

FFPROBE_TIMEOUT_SECONDS = 60.0


class ProbeFailure(RuntimeError):
    """Raised when no plausible duration could be determined for a file."""


def round_seconds(value: float) -> int:
    """Round half away from zero for positive values, as players display them."""

    return int(math.floor(value + 0.5))


def read_metadata_duration(path: Path) -> Optional[float]:
    """Return the container duration reported by mutagen, if any."""

    metadata = MutagenFile(str(path))
    if metadata is None:
        LOGGER.debug("mutagen could not identify the container of %s", path)
        return None
    info = getattr(metadata, "info", None)
    length = getattr(info, "length", None) if info is not None else None
    if length is None:
        LOGGER.debug("mutagen metadata for %s carries no length", path)
        return None
    LOGGER.debug("mutagen reported duration %.2fs for %s", float(length), path)
    return float(length)


def run_ffprobe(path: Path, *, binary: str = "ffprobe", timeout: float = FFPROBE_TIMEOUT_SECONDS) -> float:
    """Return the ``format=duration`` value printed by ffprobe for *path*."""

    executable = shutil.which(binary)
    if executable is None:
        raise ProbeFailure(f"ffprobe binary '{binary}' was not found on PATH")

    command = [
        executable,
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(path),
    ]
    LOGGER.debug("Executing ffprobe command: %s", " ".join(command))
    try:
        completed = subprocess.run(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
            timeout=timeout,
        )
    except FileNotFoundError as error:
        raise ProbeFailure(f"ffprobe binary '{binary}' could not be executed") from error
    except subprocess.TimeoutExpired as error:
        raise ProbeFailure(f"ffprobe timed out after {timeout:.0f}s") from error

    if completed.returncode != 0:
        stderr = completed.stderr.decode("utf-8", errors="ignore").strip()
        details = stderr.splitlines()
        LOGGER.debug("ffprobe failed (code=%s). stderr=%s", completed.returncode, stderr)
        raise ProbeFailure(
            f"ffprobe process exited with code {completed.returncode}"
            + (f": {details[0]}" if details else "")
        )

    output = completed.stdout.decode("utf-8", errors="ignore").strip()
    try:
        return float(output.splitlines()[0] if output else "")
    except ValueError as error:
        raise ProbeFailure(f"ffprobe returned an unreadable duration: {output!r}") from error


class DurationProbe:
    """Determine a video's duration in whole seconds.

    mutagen is asked first because it only reads container headers. Its
    answer is discarded when it is missing, non-positive, beyond
    ``max_seconds`` or beyond ``probe_ceiling_seconds``; some encodings make
    metadata readers report huge bogus lengths. ffprobe is then consulted
    and its answer is held to the same limits.
    """

    def __init__(self, policy: DurationPolicy, *, ffprobe_binary: str = "ffprobe") -> None:
        self._policy = policy
        self._ffprobe_binary = ffprobe_binary

    @property
    def policy(self) -> DurationPolicy:
        return self._policy

    def validate(self, raw: Optional[float], *, source: str) -> int:
        if raw is None or math.isnan(raw) or math.isinf(raw):
            raise ProbeFailure(f"{source} reported no usable duration ({raw})")
        seconds = round_seconds(raw)
        if seconds <= 0 or seconds > self._policy.max_seconds:
            raise ProbeFailure(f"{source} reported an invalid duration: {seconds}s")
        if seconds > self._policy.probe_ceiling_seconds:
            raise ProbeFailure(f"{source} reported an implausibly long duration: {seconds}s")
        return seconds

    def probe(self, path: Path) -> int:
        if not path.is_file():
            raise ProbeFailure(f"File does not exist: {path}")
        size = path.stat().st_size
        if size == 0:
            raise ProbeFailure(f"File is empty: {path}")

        try:
            seconds = self.validate(read_metadata_duration(path), source="metadata")
        except ProbeFailure as error:
            LOGGER.warning("Metadata duration rejected for %s: %s; trying ffprobe", path, error)
        except Exception as error:  # noqa: BLE001 - any reader failure falls back to ffprobe
            LOGGER.warning(
                "Metadata reader failed for %s (%s: %s); trying ffprobe",
                path,
                error.__class__.__name__,
                error,
            )
        else:
            LOGGER.info("Duration of %s from metadata: %ss", path.name, seconds)
            return seconds

        seconds = self.validate(
            run_ffprobe(path, binary=self._ffprobe_binary), source="ffprobe"
        )
        LOGGER.info("Duration of %s from ffprobe: %ss", path.name, seconds)
        return seconds


__all__ = [
    "DurationProbe",
    "ProbeFailure",
    "read_metadata_duration",
    "round_seconds",
    "run_ffprobe",
]
