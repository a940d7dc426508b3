"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for response
serialization and automatic OpenAPI documentation. Pydantic models
enforce field types at runtime and generate the JSON Schema shown in
the /docs UI.

HOW: One model per response shape. Enums represent closed sets
(caption formats, effects). All fields carry Field descriptions.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Enum values match internal identifiers exactly
- Response models never expose filesystem paths
- JobStatus lives in server.jobs (single source of truth)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class CaptionFormat(str, Enum):
    """Available caption format identifiers.

    RULES:
    - Values match keys in scene_engine.formatters.FORMATTERS exactly
    """

    ass_word_highlight = "ass_word_highlight"
    ass_scene_lines = "ass_scene_lines"
    srt_scene_lines = "srt_scene_lines"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RenderOptions(BaseModel):
    """Pipeline switches sent as form fields next to the scene request."""

    formats: Optional[List[CaptionFormat]] = Field(
        default=None,
        description="Caption formats to produce. Defaults to all available formats.",
    )
    assemble: bool = Field(
        default=True,
        description="Encode the frames into an MP4 clip with ffmpeg.",
    )
    degrade_captions: bool = Field(
        default=False,
        description="Produce an uncaptioned clip instead of failing on caption errors.",
    )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class JobResponse(BaseModel):
    """Scene render job status response.

    RULES:
    - error and error_stage are only set when status is 'failed'
    - output_files is only populated when status is 'completed'
    """

    id: str = Field(description="Unique job identifier (UUID).")
    status: str = Field(description="Current job status.")
    filename: str = Field(description="Uploaded image filename.")
    created_at: float = Field(description="Job creation timestamp (Unix epoch seconds).")
    attempts: int = Field(description="Number of times the job has been started.")
    config: Dict[str, Any] = Field(description="Scene request and render options for this job.")
    progress: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Latest progress report, e.g. {'stage': 'rendering', 'pct': 40}.",
    )
    error: Optional[str] = Field(
        default=None,
        description="Error message, only present when status is 'failed'.",
    )
    error_stage: Optional[str] = Field(
        default=None,
        description=(
            "Where the job failed: 'request', 'render', 'captions', 'encode', "
            "'caption-burn' or 'audio-mix'."
        ),
    )
    output_files: Optional[List[str]] = Field(
        default=None,
        description="List of output filenames, only present when status is 'completed'.",
    )

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "id": "550e8400e29b41d4a716446655440000",
                "status": "failed",
                "filename": "forest.jpg",
                "created_at": 1739959200.0,
                "attempts": 1,
                "config": {
                    "request": {"width": 1080, "height": 1920, "duration": 4.0, "effect": "zoom_in"},
                    "options": {"formats": None, "assemble": True, "degrade_captions": False},
                },
                "progress": {"stage": "assembling", "pct": 100},
                "error": "[caption-burn] ffmpeg exited with code 1",
                "error_stage": "caption-burn",
                "output_files": None,
            }
        ]
    }}


class JobCreatedResponse(BaseModel):
    """Response returned when a scene job is submitted or retried."""

    id: str = Field(description="Unique job identifier (UUID) for polling status.")
    status: str = Field(description="Job status (always 'pending' here).")
    filename: str = Field(description="Uploaded image filename.")


class FileInfo(BaseModel):
    """Metadata for a single output file."""

    filename: str = Field(description="Output filename.")
    media_type: str = Field(description="MIME type of the file content.")
    size: int = Field(description="File size in bytes.")


class FileListResponse(BaseModel):
    """List of output files for a completed job."""

    job_id: str = Field(description="The job ID these files belong to.")
    files: List[FileInfo] = Field(description="Available output files.")


class FormatInfo(BaseModel):
    """Description of an available caption format."""

    key: str = Field(description="Format identifier used in API requests.")
    name: str = Field(description="Human-readable format name.")
    suffix: str = Field(description="File suffix produced (e.g. '-captions.ass').")
    media_type: str = Field(description="MIME type of the produced file.")


class EffectInfo(BaseModel):
    """Description of a motion effect."""

    key: str = Field(description="Effect identifier used in scene requests.")
    description: str = Field(description="What the camera does over the scene.")


class CaptionPresetInfo(BaseModel):
    """A named caption style preset."""

    key: str = Field(description="Preset identifier used as captionStyle.preset.")
    style: Dict[str, Any] = Field(description="captionStyle keys the preset fills in.")


class ErrorResponse(BaseModel):
    """Standard error response body."""

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
