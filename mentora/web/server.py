"""FastAPI application exposing chunked lecture video uploads."""

from __future__ import annotations

import asyncio
import contextvars
import functools
import logging
import os
import uuid
from typing import Any, Callable, Dict, Optional, TypeVar

from fastapi import FastAPI, File, Form, HTTPException, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field
from starlette.types import ASGIApp, Receive, Scope, Send

from ..config import AppConfig
from ..services.assembly import (
    AssemblyLockRegistry,
    MergeInProgressError,
    MissingFragmentError,
    VideoAssembler,
)
from ..services.chunks import ChunkStore
from ..services.duration import DurationProbe, round_seconds
from ..services.lectures import LectureService
from ..services.naming import PUBLIC_VIDEO_PREFIX, UploadValidationError
from ..services.reconcile import (
    LectureDurationReconciler,
    UpdateOrigin,
    sanitize_incoming_duration,
)
from ..services.storage import LectureNotFoundError, LectureRecord, LectureRepository
from ..services.uploads import LectureVideoUploader

T = TypeVar("T")

_DEFAULT_MAX_UPLOAD_BYTES = 1024 * 1024 * 1024
try:
    _MAX_UPLOAD_BYTES = int(
        (os.environ.get("MENTORA_MAX_UPLOAD_BYTES") or "").strip() or _DEFAULT_MAX_UPLOAD_BYTES
    )
except ValueError:
    _MAX_UPLOAD_BYTES = _DEFAULT_MAX_UPLOAD_BYTES


def get_max_upload_bytes() -> int:
    """Return the configured maximum size of one uploaded fragment in bytes."""

    return int(_MAX_UPLOAD_BYTES)


_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "mentora_request_id",
    default=None,
)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that tags records and messages with the request id."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra)
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        request_id = _REQUEST_ID_VAR.get()
        if request_id:
            extra.setdefault("request_id", request_id)
            msg = f"[{request_id[:8]}] {msg}"
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})


def _log_event(message: str, **context: Any) -> None:
    details = " ".join(f"{key}={value}" for key, value in context.items() if value is not None)
    LOGGER.info("%s%s", message, f" ({details})" if details else "")


def _enforce_fragment_limit(chunk: UploadFile) -> None:
    limit = get_max_upload_bytes()
    size = chunk.size
    if limit > 0 and size is not None and size > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Chunk exceeds the configured limit of {limit} bytes",
        )


class RequestContextMiddleware:
    """Assign a correlation identifier to each request and expose it via contextvars."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = _new_correlation_id()
        scope_state = scope.get("state")
        if scope_state is None:
            scope_state = {}
            scope["state"] = scope_state
        if isinstance(scope_state, dict):
            scope_state["request_id"] = request_id
        else:
            setattr(scope_state, "request_id", request_id)

        token = _REQUEST_ID_VAR.set(request_id)
        try:
            await self.app(scope, receive, send)
        finally:
            _REQUEST_ID_VAR.reset(token)


class MergePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(..., alias="fileName", min_length=1)
    total_chunks: int = Field(..., alias="totalChunks", ge=1)


class LectureMergePayload(MergePayload):
    course_id: Optional[str] = Field(None, alias="courseId")
    lecture_id: Optional[str] = Field(None, alias="lectureId")


class LectureCreatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1)
    curriculum_id: Optional[str] = Field(None, alias="curriculumId")
    description: Optional[str] = None
    video_url: Optional[str] = Field(None, alias="videoUrl")
    article_content: Optional[str] = Field(None, alias="articleContent")
    duration: Optional[float] = Field(None, allow_inf_nan=False)
    is_free: bool = Field(False, alias="isFree")


class LectureUpdatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    video_url: Optional[str] = Field(None, alias="videoUrl")
    article_content: Optional[str] = Field(None, alias="articleContent")
    duration: Optional[float] = None
    is_free: Optional[bool] = Field(None, alias="isFree")


def _serialize_lecture(lecture: LectureRecord) -> Dict[str, Any]:
    return {
        "lectureId": lecture.lecture_id,
        "curriculumId": lecture.curriculum_id,
        "title": lecture.title,
        "description": lecture.description,
        "videoUrl": lecture.video_url,
        "articleContent": lecture.article_content,
        "duration": lecture.duration,
        "isFree": lecture.is_free,
        "createdAt": lecture.created_at,
        "updatedAt": lecture.updated_at,
    }


def _lecture_envelope(lecture: LectureRecord, message: str) -> Dict[str, Any]:
    return {"success": True, "data": _serialize_lecture(lecture), "message": message}


def create_app(
    repository: LectureRepository,
    *,
    config: AppConfig,
    root_path: str | None = None,
) -> FastAPI:
    """Return a configured FastAPI application."""

    app = FastAPI(
        title="Mentora Media",
        description="Chunked lecture video uploads",
        root_path=root_path or "",
    )
    app.state.server = None
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    policy = config.duration_policy
    chunk_store = ChunkStore(config.temp_root)
    lock_registry = AssemblyLockRegistry(config.merge_lock_timeout)
    assembler = VideoAssembler(chunk_store, config.videos_root, locks=lock_registry)
    probe = DurationProbe(policy, ffprobe_binary=config.ffprobe_binary)
    lecture_service = LectureService(repository, LectureDurationReconciler(policy))
    uploader = LectureVideoUploader(chunk_store, assembler, probe, lecture_service)

    app.state.chunk_store = chunk_store
    app.state.assembly_locks = lock_registry
    app.state.lecture_service = lecture_service
    app.state.uploader = uploader

    config.videos_root.mkdir(parents=True, exist_ok=True)
    app.mount(
        PUBLIC_VIDEO_PREFIX,
        StaticFiles(directory=config.videos_root, check_dir=False),
        name="videos",
    )

    async def _run_blocking(operation: Callable[..., T], *args: Any) -> T:
        """Run filesystem or subprocess work off the event loop, keeping the request id."""

        loop = asyncio.get_running_loop()
        context = contextvars.copy_context()
        call = functools.partial(context.run, operation, *args)
        return await loop.run_in_executor(None, call)

    # ------------------------------------------------------------------
    # Chunked uploads
    # ------------------------------------------------------------------
    @app.post("/upload/chunk")
    async def upload_chunk(
        chunk: UploadFile = File(...),
        chunk_index: int = Form(..., alias="chunkIndex"),
        total_chunks: int = Form(..., alias="totalChunks"),
        file_name: str = Form(..., alias="fileName"),
    ) -> Dict[str, Any]:
        try:
            _enforce_fragment_limit(chunk)
            name = await _run_blocking(
                uploader.stage_fragment, file_name, chunk_index, chunk.file
            )
        except UploadValidationError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error
        finally:
            await chunk.close()
        _log_event(
            "Received chunk",
            file_name=name,
            chunk=f"{chunk_index + 1}/{total_chunks}",
        )
        return {"message": f"Chunk {chunk_index + 1} uploaded successfully!"}

    @app.post("/upload/merge")
    async def merge_chunks(payload: MergePayload) -> Dict[str, Any]:
        try:
            video = await _run_blocking(
                uploader.merge_generic, payload.file_name, payload.total_chunks
            )
        except UploadValidationError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error
        except MissingFragmentError as error:
            return {"message": str(error)}
        except MergeInProgressError as error:
            raise HTTPException(status_code=409, detail=str(error)) from error
        _log_event("Merged upload", file_path=video.public_path, size=video.size_bytes)
        return {"message": "File uploaded successfully!", "filePath": video.public_path}

    @app.post("/upload/lecture-video")
    async def upload_lecture_chunk(
        chunk: UploadFile = File(...),
        chunk_index: int = Form(..., alias="chunkIndex"),
        total_chunks: int = Form(..., alias="totalChunks"),
        file_name: str = Form(..., alias="fileName"),
        course_id: Optional[str] = Form(None, alias="courseId"),
        lecture_id: Optional[str] = Form(None, alias="lectureId"),
    ) -> Dict[str, Any]:
        try:
            if not course_id or not lecture_id:
                raise UploadValidationError("courseId and lectureId are required")
            _enforce_fragment_limit(chunk)
            target = await _run_blocking(
                uploader.stage_lecture_fragment,
                course_id,
                lecture_id,
                file_name,
                chunk_index,
                chunk.file,
            )
        except UploadValidationError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error
        finally:
            await chunk.close()
        _log_event(
            "Received lecture chunk",
            course_id=course_id,
            lecture_id=lecture_id,
            file_name=target,
            chunk=f"{chunk_index + 1}/{total_chunks}",
        )
        return {
            "message": f"Chunk {chunk_index + 1} uploaded successfully!",
            "fileName": target,
        }

    @app.post("/upload/merge-lecture-video")
    async def merge_lecture_chunks(payload: LectureMergePayload) -> Dict[str, Any]:
        if not payload.course_id or not payload.lecture_id:
            raise HTTPException(status_code=400, detail="courseId and lectureId are required")
        try:
            outcome = await _run_blocking(
                uploader.merge_lecture_video,
                payload.course_id,
                payload.lecture_id,
                payload.file_name,
                payload.total_chunks,
            )
        except UploadValidationError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error
        except MissingFragmentError as error:
            return {"message": str(error)}
        except MergeInProgressError as error:
            raise HTTPException(status_code=409, detail=str(error)) from error
        _log_event(
            "Merged lecture video",
            course_id=outcome.course_id,
            lecture_id=outcome.lecture_id,
            file_path=outcome.file_path,
            duration=outcome.duration,
            duration_updated=outcome.duration_update_succeeded,
        )
        return {
            "message": "Lecture video uploaded successfully!",
            "filePath": outcome.file_path,
            "courseId": outcome.course_id,
            "lectureId": outcome.lecture_id,
            "duration": outcome.duration,
            "formattedDuration": outcome.formatted_duration,
            "durationUpdateSucceeded": outcome.duration_update_succeeded,
        }

    # ------------------------------------------------------------------
    # Lectures
    # ------------------------------------------------------------------
    @app.post("/lectures", status_code=status.HTTP_201_CREATED)
    async def create_lecture(payload: LectureCreatePayload) -> Dict[str, Any]:
        duration = payload.duration
        lecture = lecture_service.create_lecture(
            payload.title.strip(),
            curriculum_id=payload.curriculum_id,
            description=payload.description,
            video_url=payload.video_url,
            article_content=payload.article_content,
            duration=(
                round_seconds(duration)
                if duration is not None and 0 < duration <= config.duration_policy.max_seconds
                else None
            ),
            is_free=payload.is_free,
        )
        _log_event("Created lecture", lecture_id=lecture.lecture_id)
        return _lecture_envelope(lecture, "Lecture created successfully")

    @app.get("/lectures/{lecture_id}")
    async def get_lecture(lecture_id: str) -> Dict[str, Any]:
        try:
            lecture = lecture_service.get_lecture_by_id(lecture_id)
        except LectureNotFoundError as error:
            raise HTTPException(status_code=404, detail=str(error)) from error
        return _lecture_envelope(lecture, "Lecture retrieved successfully")

    @app.put("/lectures/{lecture_id}")
    async def update_lecture(lecture_id: str, payload: LectureUpdatePayload) -> Dict[str, Any]:
        _log_event("Updating lecture", lecture_id=lecture_id)
        changes = payload.model_dump(exclude_none=True)
        duration = sanitize_incoming_duration(changes.pop("duration", None), config.duration_policy)
        if duration is not None:
            changes["duration"] = duration
        try:
            lecture = lecture_service.update_lecture(
                lecture_id, changes, origin=UpdateOrigin.LECTURE_API
            )
        except LectureNotFoundError as error:
            raise HTTPException(status_code=404, detail=str(error)) from error
        _log_event("Updated lecture", lecture_id=lecture_id, duration=lecture.duration)
        return _lecture_envelope(lecture, "Lecture updated successfully")

    @app.delete("/lectures/{lecture_id}")
    async def delete_lecture(lecture_id: str) -> JSONResponse:
        try:
            lecture_service.delete_lecture(lecture_id)
        except LectureNotFoundError as error:
            raise HTTPException(status_code=404, detail=str(error)) from error
        _log_event("Deleted lecture", lecture_id=lecture_id)
        return JSONResponse({"success": True, "message": "Lecture deleted successfully"})

    return app


__all__ = ["create_app", "get_max_upload_bytes"]
