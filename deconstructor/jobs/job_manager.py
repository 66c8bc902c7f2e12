"""Background job management for deconstruction runs."""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

TOTAL_STAGES = 4


class JobStatus(str, Enum):
    """Job status states."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class JobProgress:
    """Progress information for a deconstruction job."""

    stage: str = ""
    stages_completed: int = 0
    total_stages: int = TOTAL_STAGES
    units_extracted: int = 0
    unit_files_written: int = 0
    edges_resolved: int = 0
    categories_analyzed: int = 0


@dataclass
class DeconstructionJob:
    """Represents a deconstruction job."""

    job_id: str
    source_path: str
    output_dir: str
    status: JobStatus
    created_at: float
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    progress: JobProgress = field(default_factory=JobProgress)
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    task: Optional[asyncio.Task] = None


class JobManager:
    """Manages background deconstruction jobs."""

    def __init__(self):
        """Initialize job manager."""
        self.jobs: Dict[str, DeconstructionJob] = {}
        self._lock = asyncio.Lock()

    def create_job(self, source_path: str, output_dir: str, job_id: Optional[str] = None) -> DeconstructionJob:
        """Create a new deconstruction job.

        Args:
            source_path: JavaScript file to deconstruct
            output_dir: Directory for the job's artifacts
            job_id: Identifier to use (generated when omitted)

        Returns:
            Created job
        """
        job_id = job_id or new_job_id()
        job = DeconstructionJob(
            job_id=job_id,
            source_path=source_path,
            output_dir=output_dir,
            status=JobStatus.QUEUED,
            created_at=time.time(),
        )
        self.jobs[job_id] = job
        logger.info(f"Created deconstruction job {job_id} for '{source_path}'")
        return job

    def get_job(self, job_id: str) -> Optional[DeconstructionJob]:
        """Get job by ID.

        Args:
            job_id: Job identifier

        Returns:
            Job if found, None otherwise
        """
        return self.jobs.get(job_id)

    def list_jobs(self) -> List[DeconstructionJob]:
        return list(self.jobs.values())

    async def update_progress(
        self,
        job_id: str,
        stage: Optional[str] = None,
        units_extracted: Optional[int] = None,
        unit_files_written: Optional[int] = None,
        edges_resolved: Optional[int] = None,
        categories_analyzed: Optional[int] = None,
    ) -> None:
        """Record a completed stage.

        Args:
            job_id: Job identifier
            stage: Name of the stage that just completed
            units_extracted: Units produced by partitioning
            unit_files_written: Unit files written
            edges_resolved: Dependency edges found
            categories_analyzed: Analysis categories finished
        """
        async with self._lock:
            job = self.jobs.get(job_id)
            if not job:
                return

            if stage is not None:
                job.progress.stage = stage
                job.progress.stages_completed += 1
            if units_extracted is not None:
                job.progress.units_extracted = units_extracted
            if unit_files_written is not None:
                job.progress.unit_files_written = unit_files_written
            if edges_resolved is not None:
                job.progress.edges_resolved = edges_resolved
            if categories_analyzed is not None:
                job.progress.categories_analyzed = categories_analyzed

    async def mark_started(self, job_id: str) -> None:
        async with self._lock:
            job = self.jobs.get(job_id)
            if job:
                job.status = JobStatus.RUNNING
                job.started_at = time.time()
                logger.info(f"Job {job_id} started")

    async def mark_completed(self, job_id: str, result: Optional[Dict[str, Any]] = None) -> None:
        """Mark job as completed.

        Args:
            job_id: Job identifier
            result: Summary of the run
        """
        async with self._lock:
            job = self.jobs.get(job_id)
            if job:
                job.status = JobStatus.COMPLETED
                job.completed_at = time.time()
                job.result = result
                logger.info(f"Job {job_id} completed")

    async def mark_failed(self, job_id: str, error: str) -> None:
        """Mark job as failed.

        Args:
            job_id: Job identifier
            error: Error message
        """
        async with self._lock:
            job = self.jobs.get(job_id)
            if job:
                job.status = JobStatus.FAILED
                job.completed_at = time.time()
                job.error = error
                logger.error(f"Job {job_id} failed: {error}")

    async def cancel_job(self, job_id: str) -> bool:
        """Cancel a running job.

        Args:
            job_id: Job identifier

        Returns:
            True if job was cancelled, False if not found or already done
        """
        async with self._lock:
            job = self.jobs.get(job_id)
            if not job:
                return False

            if job.status not in [JobStatus.QUEUED, JobStatus.RUNNING]:
                return False

            if job.task and not job.task.done():
                job.task.cancel()

            job.status = JobStatus.CANCELLED
            job.completed_at = time.time()
            logger.info(f"Job {job_id} cancelled")
            return True

    def get_status_dict(self, job: DeconstructionJob) -> dict:
        """Convert job to status dictionary.

        Args:
            job: Job to convert

        Returns:
            Dictionary representation
        """
        progress_pct = 0.0
        if job.progress.total_stages > 0:
            progress_pct = (job.progress.stages_completed / job.progress.total_stages) * 100

        result = {
            "job_id": job.job_id,
            "source_path": job.source_path,
            "output_dir": job.output_dir,
            "status": job.status.value,
            "created_at": job.created_at,
            "progress": {
                "stage": job.progress.stage,
                "stages_completed": job.progress.stages_completed,
                "total_stages": job.progress.total_stages,
                "progress_pct": round(progress_pct, 2),
                "units_extracted": job.progress.units_extracted,
                "unit_files_written": job.progress.unit_files_written,
                "edges_resolved": job.progress.edges_resolved,
                "categories_analyzed": job.progress.categories_analyzed,
            },
        }

        if job.started_at:
            result["started_at"] = job.started_at
            if job.status == JobStatus.RUNNING:
                result["elapsed_seconds"] = round(time.time() - job.started_at, 2)

        if job.completed_at:
            result["completed_at"] = job.completed_at
            if job.started_at:
                result["total_seconds"] = round(job.completed_at - job.started_at, 2)

        if job.error:
            result["error"] = job.error

        if job.result:
            result["result"] = job.result

        return result


def new_job_id() -> str:
    return str(uuid.uuid4())[:8]
