import pytest

from mentora.services.naming import (
    UploadValidationError,
    build_fragment_name,
    build_public_video_path,
    build_target_file_name,
    format_duration,
    require_identifier,
    safe_file_name,
)


def test_target_file_name_uses_lecture_id_and_original_extension() -> None:
    assert build_target_file_name("L1", "clip.mp4") == "L1.mp4"
    assert build_target_file_name("L1", "My Holiday.final.MOV") == "L1.MOV"
    assert build_target_file_name("L1", "no-extension") == "L1"


def test_fragment_name_appends_part_index() -> None:
    assert build_fragment_name("L1.mp4", 0) == "L1.mp4.part0"
    assert build_fragment_name("L1.mp4", 12) == "L1.mp4.part12"
    with pytest.raises(UploadValidationError):
        build_fragment_name("L1.mp4", -1)


def test_safe_file_name_strips_directories() -> None:
    assert safe_file_name("../../etc/clip.mp4") == "clip.mp4"
    assert safe_file_name("C:\\Users\\me\\clip.mp4") == "clip.mp4"
    with pytest.raises(UploadValidationError):
        safe_file_name("   ")
    with pytest.raises(UploadValidationError):
        safe_file_name("..")


def test_require_identifier_rejects_blank_and_path_like_values() -> None:
    assert require_identifier("  C1 ", label="courseId") == "C1"
    for value in (None, "", "  ", "..", "a/b", "a\\b"):
        with pytest.raises(UploadValidationError):
            require_identifier(value, label="courseId")


def test_public_video_path() -> None:
    assert build_public_video_path("C1", "L1.mp4") == "/uploads/videos/C1/L1.mp4"
    assert build_public_video_path("clip.mp4") == "/uploads/videos/clip.mp4"


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (0, "0:00"),
        (9, "0:09"),
        (125, "2:05"),
        (612, "10:12"),
        (3600, "1:00:00"),
        (3725, "1:02:05"),
    ],
)
def test_format_duration(seconds: int, expected: str) -> None:
    assert format_duration(seconds) == expected
