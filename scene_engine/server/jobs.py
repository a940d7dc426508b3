"""In-memory job store with background task execution and TTL cleanup.

WHY: The HTTP API needs to track scene render jobs through their
lifecycle (pending → rendering → captioning → assembling → completed |
failed). Renders take seconds to minutes, so the API returns a job ID
immediately and processes work in the background. A failed scene must
be retryable on its own, with the inputs it was submitted with, so a
story never has to be regenerated because one scene broke.

HOW: Three components work together:
  JobStatus  — enum of valid job states
  Job        — dataclass holding job metadata, status and work directory
  JobStore   — thread-safe dict-based store with create/update/get/list/
               delete/retry and TTL cleanup

RULES:
- All store mutations are protected by threading.Lock for thread safety
- Each job gets a dedicated temp directory: inputs/ holds the uploaded
  files (kept for retries), output/ holds everything the render writes
- TTL-based expiry removes stale jobs and cleans up their temp directories
- Only FAILED jobs can be retried; a retry clears output/ and the error
- Job IDs are UUID4 hex strings generated at creation time
- Default TTL is 1 hour (3600 seconds)
"""

from __future__ import annotations

import enum
import logging
import shutil
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Default time-to-live for completed/failed jobs (seconds)
DEFAULT_TTL_SECONDS = 3600


class JobStatus(str, enum.Enum):
    """Valid states for a scene render job.

    RULES:
    - pending: job created (or reset for retry), not yet started
    - rendering: frames being written
    - captioning: caption formatters running
    - assembling: ffmpeg encoding / burning / mixing
    - completed: all output files ready for download
    - failed: unrecoverable error at any stage (see Job.error_stage)
    """

    PENDING = "pending"
    RENDERING = "rendering"
    CAPTIONING = "captioning"
    ASSEMBLING = "assembling"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


class JobNotRetryable(Exception):
    """A retry was requested for a job that has not failed."""


@dataclass
class Job:
    """Metadata and state for a single scene render job.

    RULES:
    - id: UUID4 hex string, unique and immutable after creation
    - filename: uploaded image filename (sanitized)
    - work_dir: temp directory owned by this job
    - error / error_stage: set only while status is FAILED; error_stage
      is "request", "render", "captions", or an assembly stage name
    - progress: latest {"stage": ..., "pct": ...} report
    - config: the scene request dict as submitted (camelCase contract)
    - attempts: number of times the job has been started
    """

    id: str
    status: JobStatus
    filename: str
    work_dir: Path
    created_at: float
    updated_at: float
    completed_at: Optional[float] = None
    error: Optional[str] = None
    error_stage: Optional[str] = None
    progress: Optional[Dict[str, Any]] = None
    config: Dict[str, Any] = field(default_factory=dict)
    output_files: List[str] = field(default_factory=list)
    attempts: int = 0

    @property
    def input_dir(self) -> Path:
        return self.work_dir / "inputs"

    @property
    def output_dir(self) -> Path:
        return self.work_dir / "output"


class JobStore:
    """Thread-safe in-memory store for scene render jobs.

    WHY: Concurrent API requests and background tasks access job state
    simultaneously. A centralized store with locking prevents race
    conditions and provides a clean interface for CRUD operations.

    RULES:
    - All public methods that mutate state acquire self._lock
    - get_job() returns None for missing job IDs (no exceptions)
    - update_job() applies only non-None arguments
    - delete_job() removes the job and cleans up its temp directory
    - cleanup_expired() removes terminal jobs past their TTL
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_jobs: int = 100,
    ) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_jobs = max_jobs

    def create_job(
        self,
        filename: str,
        config: Optional[Dict[str, Any]] = None,
    ) -> Job:
        """Create a new job in PENDING state with a dedicated temp directory.

        Raises:
            ValueError: When max_jobs jobs are already tracked.
        """
        with self._lock:
            if len(self._jobs) >= self.max_jobs:
                raise ValueError(
                    "Maximum number of concurrent jobs ({}) reached".format(
                        self.max_jobs
                    )
                )

            job_id = uuid.uuid4().hex
            now = time.time()
            work_dir = Path(tempfile.mkdtemp(prefix="scene_job_"))

            job = Job(
                id=job_id,
                status=JobStatus.PENDING,
                filename=filename,
                work_dir=work_dir,
                created_at=now,
                updated_at=now,
                config=config or {},
            )
            job.input_dir.mkdir()
            job.output_dir.mkdir()

            self._jobs[job_id] = job

        logger.info("Created job %s for image %s", job_id, filename)
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        """Retrieve a job by ID, or None if not found.

        The returned Job object is the live instance (not a copy).
        """
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self) -> List[Job]:
        """Return all jobs ordered by creation time (oldest first)."""
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: j.created_at)

    def update_job(
        self,
        job_id: str,
        status: Optional[JobStatus] = None,
        error: Optional[str] = None,
        error_stage: Optional[str] = None,
        progress: Optional[Dict[str, Any]] = None,
        output_files: Optional[List[str]] = None,
    ) -> Optional[Job]:
        """Update a job's mutable fields.

        RULES:
        - Returns the updated Job, or None if job_id not found
        - Only non-None arguments are applied
        - updated_at is always bumped on any change
        - completed_at is set when status becomes COMPLETED or FAILED
        - Entering RENDERING counts as a new attempt
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            now = time.time()

            if status is not None:
                if status is JobStatus.RENDERING and job.status is JobStatus.PENDING:
                    job.attempts += 1
                job.status = status
            if error is not None:
                job.error = error
            if error_stage is not None:
                job.error_stage = error_stage
            if progress is not None:
                job.progress = progress
            if output_files is not None:
                job.output_files = output_files

            job.updated_at = now

            if job.status in TERMINAL_STATUSES:
                job.completed_at = now

            return job

    def reset_for_retry(self, job_id: str) -> Optional[Job]:
        """Put a FAILED job back to PENDING with its inputs intact.

        Returns:
            The reset Job, or None if job_id is not found.

        Raises:
            JobNotRetryable: If the job is not in FAILED state.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if job.status is not JobStatus.FAILED:
                raise JobNotRetryable(
                    "Job {} is not failed (current status: {})".format(
                        job_id, job.status.value
                    )
                )
            job.status = JobStatus.PENDING
            job.error = None
            job.error_stage = None
            job.progress = None
            job.output_files = []
            job.completed_at = None
            job.updated_at = time.time()

        self._cleanup_output_dir(job.output_dir)
        job.output_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Reset job %s for retry (attempt %d)", job_id, job.attempts + 1)
        return job

    def delete_job(self, job_id: str) -> bool:
        """Delete a job and clean up its temp directory.

        I/O happens outside the lock. Returns True if the job existed.
        """
        with self._lock:
            job = self._jobs.pop(job_id, None)

        if job is None:
            return False

        self._cleanup_output_dir(job.work_dir)
        logger.info("Deleted job %s", job_id)
        return True

    def cleanup_expired(self) -> int:
        """Remove all terminal jobs whose completed_at is older than the TTL.

        Returns the count of removed jobs.
        """
        now = time.time()
        expired_jobs: List[Job] = []

        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if job.status not in TERMINAL_STATUSES:
                    continue
                if job.completed_at is None:
                    continue
                if now - job.completed_at > self._ttl_seconds:
                    expired_jobs.append(self._jobs.pop(job_id))

        for job in expired_jobs:
            self._cleanup_output_dir(job.work_dir)
            logger.info("Expired job %s (completed %.0fs ago)", job.id, now - job.completed_at)

        return len(expired_jobs)

    @staticmethod
    def _cleanup_output_dir(path: Path) -> None:
        """Remove a directory tree. Never raises; logs a warning on failure."""
        if path.exists():
            try:
                shutil.rmtree(path)
            except OSError:
                logger.warning("Failed to clean up temp dir: %s", path)
