from __future__ import annotations

import itertools
import threading
from pathlib import Path

import pytest

from mentora.services.assembly import (
    AssemblyLockRegistry,
    MergeInProgressError,
    MissingFragmentError,
    PARTIAL_SUFFIX,
    VideoAssembler,
)
from mentora.services.chunks import ChunkStore
from mentora.services.naming import UploadValidationError


@pytest.fixture()
def store(tmp_path: Path) -> ChunkStore:
    return ChunkStore(tmp_path / "temp")


@pytest.fixture()
def assembler(tmp_path: Path, store: ChunkStore) -> VideoAssembler:
    return VideoAssembler(store, tmp_path / "videos", locks=AssemblyLockRegistry(0.1))


def _fragments() -> list[bytes]:
    return [b"A" * 1024, b"B" * 1024, b"C" * 512]


def test_lecture_assembly_concatenates_and_cleans_up(
    tmp_path: Path, store: ChunkStore, assembler: VideoAssembler
) -> None:
    for index, payload in enumerate(_fragments()):
        store.store_fragment("L1.mp4", index, payload)

    video = assembler.assemble_lecture_video("C1", "L1", "clip.mp4", 3)

    assert video.public_path == "/uploads/videos/C1/L1.mp4"
    assert video.path == tmp_path / "videos" / "C1" / "L1.mp4"
    assert video.size_bytes == 2560
    assert video.fragment_count == 3
    assert video.path.read_bytes() == b"".join(_fragments())
    assert list(store.temp_root.iterdir()) == []
    assert not video.path.with_name("L1.mp4" + PARTIAL_SUFFIX).exists()


@pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
def test_output_is_independent_of_arrival_order(
    store: ChunkStore, assembler: VideoAssembler, order: tuple[int, ...]
) -> None:
    payloads = _fragments()
    for index in order:
        store.store_fragment("L1.mp4", index, payloads[index])

    video = assembler.assemble_lecture_video("C1", "L1", "clip.mp4", 3)

    assert video.path.read_bytes() == b"".join(payloads)


def test_resent_fragment_replaces_earlier_bytes(store: ChunkStore, assembler: VideoAssembler) -> None:
    store.store_fragment("L1.mp4", 0, b"old")
    store.store_fragment("L1.mp4", 0, b"new")
    store.store_fragment("L1.mp4", 1, b"-tail")

    video = assembler.assemble_lecture_video("C1", "L1", "clip.mp4", 2)

    assert video.path.read_bytes() == b"new-tail"


def test_falls_back_to_declared_name_per_fragment(
    store: ChunkStore, assembler: VideoAssembler
) -> None:
    store.store_fragment("clip.mp4", 0, b"legacy-")
    store.store_fragment("L1.mp4", 1, b"current")

    video = assembler.assemble_lecture_video("C1", "L1", "clip.mp4", 2)

    assert video.path.read_bytes() == b"legacy-current"
    assert not store.fragment_exists("clip.mp4", 0)
    assert not store.fragment_exists("L1.mp4", 1)


def test_missing_fragment_aborts_without_output(
    store: ChunkStore, assembler: VideoAssembler, tmp_path: Path
) -> None:
    store.store_fragment("L1.mp4", 0, b"first")
    store.store_fragment("L1.mp4", 2, b"third")

    with pytest.raises(MissingFragmentError) as excinfo:
        assembler.assemble_lecture_video("C1", "L1", "clip.mp4", 3)

    assert excinfo.value.index == 1
    assert str(excinfo.value) == "Chunk 1 is missing!"
    course_dir = tmp_path / "videos" / "C1"
    assert not (course_dir / "L1.mp4").exists()
    assert not (course_dir / ("L1.mp4" + PARTIAL_SUFFIX)).exists()
    # Staged fragments survive so the client can resend only what is missing.
    assert store.fragment_exists("L1.mp4", 0)
    assert store.fragment_exists("L1.mp4", 2)


def test_failed_merge_keeps_previous_video(store: ChunkStore, assembler: VideoAssembler) -> None:
    store.store_fragment("L1.mp4", 0, b"original")
    first = assembler.assemble_lecture_video("C1", "L1", "clip.mp4", 1)

    store.store_fragment("L1.mp4", 0, b"replacement")
    with pytest.raises(MissingFragmentError):
        assembler.assemble_lecture_video("C1", "L1", "clip.mp4", 2)

    assert first.path.read_bytes() == b"original"


def test_generic_assembly_writes_to_videos_root(
    store: ChunkStore, assembler: VideoAssembler, tmp_path: Path
) -> None:
    store.store_fragment("talk.webm", 0, b"12")
    store.store_fragment("talk.webm", 1, b"34")

    video = assembler.assemble_file("talk.webm", 2)

    assert video.path == tmp_path / "videos" / "talk.webm"
    assert video.public_path == "/uploads/videos/talk.webm"
    assert video.path.read_bytes() == b"1234"


@pytest.mark.parametrize(
    ("course_id", "lecture_id", "total"),
    [("", "L1", 1), ("C1", "", 1), ("C1", "L1", 0), ("../C1", "L1", 1)],
)
def test_invalid_requests_fail_before_any_io(
    assembler: VideoAssembler, tmp_path: Path, course_id: str, lecture_id: str, total: int
) -> None:
    with pytest.raises(UploadValidationError):
        assembler.assemble_lecture_video(course_id, lecture_id, "clip.mp4", total)

    assert not (tmp_path / "videos").exists()


def test_overlapping_merge_for_same_target_is_rejected(
    store: ChunkStore, assembler: VideoAssembler, tmp_path: Path
) -> None:
    store.store_fragment("L1.mp4", 0, b"data")
    registry: AssemblyLockRegistry = assembler._locks
    destination = str(tmp_path / "videos" / "C1" / "L1.mp4")

    holding = threading.Event()
    release = threading.Event()

    def _hold_lock() -> None:
        with registry.hold(destination):
            holding.set()
            release.wait(timeout=5)

    worker = threading.Thread(target=_hold_lock)
    worker.start()
    try:
        assert holding.wait(timeout=5)
        with pytest.raises(MergeInProgressError):
            assembler.assemble_lecture_video("C1", "L1", "clip.mp4", 1)
    finally:
        release.set()
        worker.join(timeout=5)

    assert store.fragment_exists("L1.mp4", 0)
    video = assembler.assemble_lecture_video("C1", "L1", "clip.mp4", 1)
    assert video.path.read_bytes() == b"data"
    assert registry.active_keys() == []


def test_lock_registry_serializes_distinct_keys_independently() -> None:
    registry = AssemblyLockRegistry(0.05)

    with registry.hold("a"):
        with registry.hold("b"):
            assert registry.active_keys() == ["a", "b"]
        with pytest.raises(MergeInProgressError):
            with registry.hold("a"):
                pass

    assert registry.active_keys() == []
