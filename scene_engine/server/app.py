"""FastAPI application with scene render routes and OpenAPI docs.

WHY: Story builders (web front ends, n8n flows, scripts) need an HTTP
API to submit a still image with its scene request, poll for status,
download the clip and caption files, and retry a single failed scene
without regenerating the whole story.

HOW: A single FastAPI app exposes endpoints grouped by tags. POST
/scenes accepts a multipart upload (image, optional background music
and narration) plus the scene request JSON in a form field, creates a
job and runs the pipeline in the background. The uploaded files
replace any file paths in the request, so a job only ever reads files
it owns.

RULES:
- Error responses use a consistent ErrorResponse schema
- Background rendering uses FastAPI BackgroundTasks
- The job store is a module-level singleton
- Image and audio uploads are validated by extension before a job exists
- A failed job records the stage it failed in (error_stage)
- Retry is only accepted for failed jobs (409 otherwise)
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import ValidationError

from scene_engine import __version__, config
from scene_engine.adapters.request_adapter import scene_request_from_dict
from scene_engine.core.effects import EFFECT_DESCRIPTIONS, Effect
from scene_engine.core.errors import (
    ExternalToolFailure,
    FrameRenderError,
    InvalidGeometry,
    InvalidSceneRequest,
)
from scene_engine.formatters import FORMATTERS
from scene_engine.formatters.presets import CAPTION_PRESETS
from scene_engine.pipeline import render_scene
from scene_engine.server.jobs import Job, JobNotRetryable, JobStatus, JobStore
from scene_engine.server.models import (
    CaptionPresetInfo,
    EffectInfo,
    ErrorResponse,
    FileInfo,
    FileListResponse,
    FormatInfo,
    HealthResponse,
    JobCreatedResponse,
    JobResponse,
    RenderOptions,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

job_store = JobStore()

_STAGE_STATUS = {
    "rendering": JobStatus.RENDERING,
    "captioning": JobStatus.CAPTIONING,
    "assembling": JobStatus.ASSEMBLING,
}

_STAGE_ERROR = {
    "rendering": "render",
    "captioning": "captions",
}


async def _periodic_cleanup() -> None:
    """Run job cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        job_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup, cancel on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="Scene Engine API",
    description=(
        "REST API that turns a still image into an animated, captioned "
        "video scene: Ken Burns style motion, word-by-word highlighted "
        "captions and background audio. Submit a scene, poll for status, "
        "download results, and retry failed scenes individually."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _job_to_response(job: Job) -> JobResponse:
    """Convert an internal Job dataclass to a JobResponse Pydantic model."""
    return JobResponse(
        id=job.id,
        status=job.status.value,
        filename=job.filename,
        created_at=job.created_at,
        attempts=job.attempts,
        config=job.config,
        progress=job.progress,
        error=job.error,
        error_stage=job.error_stage,
        output_files=job.output_files if job.output_files else None,
    )


def _validate_extension(filename: str, supported: set, kind: str) -> str:
    """Return the lowercase extension, or raise HTTPException 400."""
    ext = Path(filename).suffix.lower()
    if ext not in supported:
        raise HTTPException(
            status_code=400,
            detail="Unsupported {} type '{}'. Supported formats: {}".format(
                kind, ext, ", ".join(sorted(supported))
            ),
        )
    return ext


def _parse_formats(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    keys = [f.strip() for f in raw.split(",") if f.strip()]
    for key in keys:
        if key not in FORMATTERS:
            available = ", ".join(sorted(FORMATTERS.keys()))
            raise HTTPException(
                status_code=400,
                detail="Unknown caption format '{}'. Available: {}".format(key, available),
            )
    return keys


def _error_stage(exc: BaseException, stage: Optional[str]) -> str:
    """Name the stage a background render failed in."""
    if isinstance(exc, ExternalToolFailure):
        return exc.stage.value
    if isinstance(exc, InvalidSceneRequest):
        return "request"
    if isinstance(exc, (InvalidGeometry, FrameRenderError)):
        return "render"
    return _STAGE_ERROR.get(stage or "", stage or "request")


def _run_scene_job(job_id: str, store: JobStore) -> None:
    """Run the scene pipeline for a job and record the outcome.

    WHY: This is the background task behind POST /scenes and retries.

    HOW: Rebuilds the SceneRequest from the stored request dict (paths
    resolve inside the job's inputs/ directory), runs render_scene()
    with stage and progress callbacks wired to the store, then lists
    the produced files.

    RULES:
    - Catches all exceptions and marks the job failed with its stage
    - Frames are never kept; only captions and the clip are served
    """
    job = store.get_job(job_id)
    if job is None:
        return

    current_stage: Dict[str, Optional[str]] = {"name": None}

    def on_stage(name: str) -> None:
        current_stage["name"] = name
        store.update_job(job_id, status=_STAGE_STATUS[name], progress={"stage": name, "pct": 0})

    def on_progress(progress: float, message: str) -> None:
        store.update_job(
            job_id,
            progress={"stage": current_stage["name"], "pct": int(progress * 100), "message": message},
        )

    options = job.config.get("options", {})
    try:
        request = scene_request_from_dict(job.config["request"], base_dir=job.input_dir)
        result = render_scene(
            request,
            job.output_dir,
            formats=options.get("formats"),
            assemble=options.get("assemble", True),
            keep_frames=False,
            degrade_captions=options.get("degrade_captions", False),
            on_stage=on_stage,
            progress_callback=on_progress,
        )
        output_files = [p.name for p in result.output_files]
        store.update_job(
            job_id,
            status=JobStatus.COMPLETED,
            progress={"stage": "completed", "pct": 100},
            output_files=output_files,
        )
    except Exception as exc:
        logger.exception("Scene pipeline failed for job %s", job_id)
        store.update_job(
            job_id,
            status=JobStatus.FAILED,
            error=str(exc),
            error_stage=_error_stage(exc, current_stage["name"]),
        )


def _infer_media_type(filename: str) -> str:
    """Infer MIME type from filename extension."""
    ext = Path(filename).suffix.lower()
    mapping = {
        ".mp4": "video/mp4",
        ".ass": "text/x-ssa",
        ".srt": "application/x-subrip",
        ".png": "image/png",
        ".json": "application/json",
    }
    return mapping.get(ext, "application/octet-stream")


async def _save_upload(upload: UploadFile, target: Path) -> None:
    target.write_bytes(await upload.read())


# ---------------------------------------------------------------------------
# Endpoints: Scenes
# ---------------------------------------------------------------------------


@app.post(
    "/scenes",
    response_model=JobCreatedResponse,
    status_code=201,
    tags=["scenes"],
    summary="Submit a scene render job",
    description=(
        "Upload the scene's still image (plus optional background music and "
        "narration) with the scene request JSON. Returns a job ID immediately; "
        "the render runs in the background. Poll GET /scenes/{id} for status."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid file type or format"},
        422: {"model": ErrorResponse, "description": "Invalid scene request"},
        429: {"model": ErrorResponse, "description": "Too many concurrent jobs"},
    },
)
async def create_scene(
    background_tasks: BackgroundTasks,
    image: Annotated[
        UploadFile,
        File(description="Still image for the scene (jpg, png, webp, bmp, tiff)."),
    ],
    request: Annotated[
        str,
        Form(description="Scene request JSON (width, height, duration, effect, wordTimestamps, captionStyle...)."),
    ],
    background_audio: Annotated[
        Optional[UploadFile],
        File(description="Optional background music, looped and mixed at backgroundAudio.volume."),
    ] = None,
    narration: Annotated[
        Optional[UploadFile],
        File(description="Optional narration audio mixed at full volume."),
    ] = None,
    formats: Annotated[
        Optional[str],
        Form(description="Comma-separated caption formats. Defaults to all."),
    ] = None,
    assemble: Annotated[
        bool,
        Form(description="Encode an MP4 clip (false: frames and captions only)."),
    ] = True,
    degrade_captions: Annotated[
        bool,
        Form(description="Produce an uncaptioned clip instead of failing on caption errors."),
    ] = False,
) -> JobCreatedResponse:
    # Sanitize filename to prevent path traversal
    filename = Path(image.filename or "image").name
    image_ext = _validate_extension(filename, config.SUPPORTED_IMAGE_FORMATS, "image")
    format_keys = _parse_formats(formats)

    try:
        data: Dict[str, Any] = json.loads(request)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=422, detail="Scene request is not valid JSON: {}".format(exc))
    if not isinstance(data, dict):
        raise HTTPException(status_code=422, detail="Scene request must be a JSON object")

    # Uploaded files replace client-side paths
    data["imagePath"] = "image{}".format(image_ext)
    uploads = [(image, data["imagePath"])]

    if background_audio is not None:
        audio_ext = _validate_extension(
            background_audio.filename or "", config.SUPPORTED_AUDIO_FORMATS, "audio"
        )
        audio_spec = dict(data.get("backgroundAudio") or {})
        audio_spec["filePath"] = "background{}".format(audio_ext)
        data["backgroundAudio"] = audio_spec
        uploads.append((background_audio, audio_spec["filePath"]))
    elif data.get("backgroundAudio"):
        raise HTTPException(
            status_code=422,
            detail="backgroundAudio requires a background_audio file upload",
        )

    if narration is not None:
        narration_ext = _validate_extension(
            narration.filename or "", config.SUPPORTED_AUDIO_FORMATS, "audio"
        )
        data["narrationPath"] = "narration{}".format(narration_ext)
        uploads.append((narration, data["narrationPath"]))
    elif data.get("narrationPath"):
        raise HTTPException(
            status_code=422,
            detail="narrationPath requires a narration file upload",
        )

    try:
        scene_request_from_dict(data)
        options = RenderOptions(
            formats=format_keys, assemble=assemble, degrade_captions=degrade_captions
        )
    except (InvalidSceneRequest, ValidationError) as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    job_config = {"request": data, "options": options.model_dump(mode="json")}
    try:
        job = job_store.create_job(filename=filename, config=job_config)
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    for upload, name in uploads:
        await _save_upload(upload, job.input_dir / name)

    background_tasks.add_task(_run_scene_job, job.id, job_store)

    return JobCreatedResponse(id=job.id, status=job.status.value, filename=job.filename)


@app.get(
    "/scenes/{job_id}",
    response_model=JobResponse,
    tags=["scenes"],
    summary="Get scene job status",
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
)
async def get_scene(job_id: str) -> JobResponse:
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return _job_to_response(job)


@app.get(
    "/scenes/{job_id}/files",
    response_model=FileListResponse,
    tags=["scenes"],
    summary="List output files for a completed job",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def list_scene_files(job_id: str) -> FileListResponse:
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))

    if job.status != JobStatus.COMPLETED:
        raise HTTPException(
            status_code=409,
            detail="Job is not completed (current status: {}).".format(job.status.value),
        )

    files = []
    for fname in job.output_files:
        fpath = job.output_dir / fname
        if fpath.exists():
            files.append(FileInfo(
                filename=fname,
                media_type=_infer_media_type(fname),
                size=fpath.stat().st_size,
            ))

    return FileListResponse(job_id=job.id, files=files)


@app.get(
    "/scenes/{job_id}/files/{filename}",
    tags=["scenes"],
    summary="Download a single output file",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid filename"},
        404: {"model": ErrorResponse, "description": "Job or file not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def download_scene_file(job_id: str, filename: str) -> Response:
    # Ensure filename doesn't contain path separators
    if "/" in filename or "\\" in filename or ".." in filename:
        raise HTTPException(status_code=400, detail="Invalid filename")

    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))

    if job.status != JobStatus.COMPLETED:
        raise HTTPException(
            status_code=409,
            detail="Job is not completed (current status: {}).".format(job.status.value),
        )

    if filename not in job.output_files:
        raise HTTPException(
            status_code=404,
            detail="File '{}' not found in job output files.".format(filename),
        )

    fpath = job.output_dir / filename
    if not fpath.exists():
        raise HTTPException(
            status_code=404,
            detail="File '{}' not found on disk.".format(filename),
        )

    return Response(
        content=fpath.read_bytes(),
        media_type=_infer_media_type(filename),
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
    )


@app.post(
    "/scenes/{job_id}/retry",
    response_model=JobCreatedResponse,
    status_code=202,
    tags=["scenes"],
    summary="Retry a failed scene",
    description=(
        "Re-run a failed scene with the inputs it was submitted with. "
        "Other scenes of the story are unaffected."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job has not failed"},
    },
)
async def retry_scene(job_id: str, background_tasks: BackgroundTasks) -> JobCreatedResponse:
    try:
        job = job_store.reset_for_retry(job_id)
    except JobNotRetryable as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))

    background_tasks.add_task(_run_scene_job, job.id, job_store)
    return JobCreatedResponse(id=job.id, status=job.status.value, filename=job.filename)


@app.delete(
    "/scenes/{job_id}",
    status_code=204,
    tags=["scenes"],
    summary="Delete a scene job",
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
)
async def delete_scene(job_id: str) -> Response:
    deleted = job_store.delete_job(job_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Catalogue
# ---------------------------------------------------------------------------


@app.get(
    "/effects",
    response_model=List[EffectInfo],
    tags=["catalogue"],
    summary="List motion effects",
)
async def list_effects() -> List[EffectInfo]:
    return [EffectInfo(key=e.value, description=EFFECT_DESCRIPTIONS[e]) for e in Effect]


@app.get(
    "/caption-presets",
    response_model=List[CaptionPresetInfo],
    tags=["catalogue"],
    summary="List caption style presets",
)
async def list_caption_presets() -> List[CaptionPresetInfo]:
    return [
        CaptionPresetInfo(key=key, style=dict(style))
        for key, style in sorted(CAPTION_PRESETS.items())
    ]


@app.get(
    "/formats",
    response_model=List[FormatInfo],
    tags=["catalogue"],
    summary="List caption formats",
)
async def list_formats() -> List[FormatInfo]:
    result = []
    for key, formatter_cls in sorted(FORMATTERS.items()):
        formatter = formatter_cls()
        result.append(FormatInfo(
            key=key,
            name=formatter.name,
            suffix=formatter.suffix,
            media_type=formatter.media_type,
        ))
    return result


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api():
    """Entry point for the scene-engine-api console script."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
