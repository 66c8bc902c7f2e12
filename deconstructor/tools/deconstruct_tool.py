"""MCP tool for deconstructing JavaScript files."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import ArtifactError, DeconstructorError
from ..jobs.job_manager import JobManager, new_job_id
from ..partition.artifacts import ArtifactStore, UNITS_DIRNAME
from ..partition.extractor import sanitize_filename
from ..partition.models import UnitKind
from ..pipeline import DeconstructionPipeline, PipelineStage

logger = logging.getLogger(__name__)

# Job progress field filled from each stage's counts
_STAGE_PROGRESS_FIELDS = {
    PipelineStage.PARTITION: ("units", "units_extracted"),
    PipelineStage.ARTIFACTS: ("unit_files", "unit_files_written"),
    PipelineStage.DEPENDENCIES: ("edges", "edges_resolved"),
    PipelineStage.ANALYSIS: ("categories", "categories_analyzed"),
}


class DeconstructTool:
    """Tool for running the deconstruction pipeline on source files."""

    def __init__(
        self,
        pipeline: DeconstructionPipeline,
        output_root: Path,
        job_manager: Optional[JobManager] = None,
    ):
        """Initialize deconstruct tool.

        Args:
            pipeline: Configured deconstruction pipeline
            output_root: Directory under which each run gets its own output directory
            job_manager: Optional job manager for background runs
        """
        self.pipeline = pipeline
        self.output_root = Path(output_root)
        self.job_manager = job_manager or JobManager()

    def validate_source(self, source_path: str) -> Optional[str]:
        """Check that a source path names an existing JavaScript file.

        Args:
            source_path: Path to check

        Returns:
            Error message, or None if the file can be deconstructed
        """
        language = self.pipeline.extractor.language
        if not language.is_supported_file(source_path):
            return (
                f"Unsupported file type: {source_path} "
                f"(expected one of {', '.join(language.extensions)})"
            )
        if not Path(source_path).is_file():
            return f"Source file does not exist: {source_path}"
        return None

    def output_dir_for(self, source_path: str, run_name: Optional[str] = None) -> Path:
        stem = sanitize_filename(run_name or Path(source_path).stem)
        return self.output_root / stem

    async def deconstruct_file(self, source_path: str, run_name: Optional[str] = None) -> dict:
        """Deconstruct a file and wait for the result.

        Args:
            source_path: JavaScript file to deconstruct
            run_name: Name of the output directory (defaults to the file stem)

        Returns:
            Dictionary with run results
        """
        error = self.validate_source(source_path)
        if error:
            return {"success": False, "error": error}

        source = Path(source_path)
        output_dir = self.output_dir_for(source_path, run_name)
        try:
            result = await self.pipeline.run(source, output_dir)
        except (DeconstructorError, OSError) as e:
            logger.error(f"Error deconstructing {source_path}: {e}")
            return {"success": False, "error": str(e)}

        return {"success": True, **result.to_dict()}

    async def start_deconstruction(self, source_path: str, run_name: Optional[str] = None) -> dict:
        """Start a background deconstruction job.

        Args:
            source_path: JavaScript file to deconstruct
            run_name: Name of the output directory (defaults to the file stem plus job id)

        Returns:
            Dictionary with the job id for tracking progress
        """
        error = self.validate_source(source_path)
        if error:
            return {"success": False, "error": error}

        job_id = new_job_id()
        output_dir = self.output_dir_for(source_path, run_name or f"{Path(source_path).stem}_{job_id}")
        job = self.job_manager.create_job(source_path, str(output_dir), job_id=job_id)
        job.task = asyncio.create_task(self.deconstruct_with_progress(job.job_id))

        return {
            "success": True,
            "job_id": job.job_id,
            "output_dir": job.output_dir,
            "message": f"Deconstruction started. Check progress with get_job_status('{job.job_id}')",
        }

    async def deconstruct_with_progress(self, job_id: str) -> dict:
        """Run a job's deconstruction, recording stage progress.

        Args:
            job_id: Job identifier

        Returns:
            Dictionary with run results
        """
        job = self.job_manager.get_job(job_id)
        if job is None:
            return {"success": False, "error": f"Job {job_id} not found"}

        await self.job_manager.mark_started(job_id)

        async def on_stage(stage: PipelineStage, counts: Dict[str, Any]) -> None:
            count_key, progress_field = _STAGE_PROGRESS_FIELDS[stage]
            await self.job_manager.update_progress(
                job_id, stage=stage.value, **{progress_field: counts.get(count_key)}
            )

        try:
            result = await self.pipeline.run(job.source_path, job.output_dir, progress=on_stage)
        except asyncio.CancelledError:
            logger.info(f"Job {job_id} was cancelled")
            raise
        except (DeconstructorError, OSError) as e:
            await self.job_manager.mark_failed(job_id, str(e))
            return {"success": False, "error": str(e)}

        summary = result.to_dict()
        await self.job_manager.mark_completed(job_id, summary)
        return {"success": True, **summary}

    async def get_units(self, job_id: str, kind: Optional[str] = None) -> dict:
        """List the units of a finished job from its sourcemap.

        Args:
            job_id: Job identifier
            kind: Only return units of this kind

        Returns:
            Dictionary with the unit entries
        """
        job = self.job_manager.get_job(job_id)
        if job is None:
            return {"success": False, "error": f"Job {job_id} not found"}

        store = ArtifactStore(Path(job.output_dir))
        try:
            sourcemap = await store.read_sourcemap()
        except ArtifactError as e:
            return {"success": False, "error": str(e)}

        chunks = sourcemap.get("chunks", [])
        if kind:
            chunks = [chunk for chunk in chunks if chunk.get("type") == kind]

        return {
            "success": True,
            "original_file": sourcemap.get("originalFile"),
            "units_dir": str(Path(job.output_dir) / UNITS_DIRNAME),
            "total_units": len(chunks),
            "units": chunks,
        }

    async def summarize_units(self, job_id: str, kind: str = UnitKind.FUNCTION.value) -> dict:
        """Summarize the unit files of one kind from a finished job.

        Args:
            job_id: Job identifier
            kind: Unit kind whose directory is summarized

        Returns:
            Dictionary with the summary text and the calls it took
        """
        job = self.job_manager.get_job(job_id)
        if job is None:
            return {"success": False, "error": f"Job {job_id} not found"}

        try:
            unit_kind = UnitKind(kind)
        except ValueError:
            return {"success": False, "error": f"Unknown unit kind: {kind}"}

        directory = Path(job.output_dir) / UNITS_DIRNAME / unit_kind.directory
        if not directory.is_dir():
            return {"success": False, "error": f"No {unit_kind.directory} written for job {job_id}"}

        try:
            summary = await self.pipeline.summarizer.summarize_directory(directory)
        except DeconstructorError as e:
            logger.error(f"Error summarizing {directory}: {e}")
            return {"success": False, "error": str(e)}

        return {
            "success": True,
            "kind": unit_kind.value,
            "directory": str(directory),
            "summary": summary.text,
            "calls": summary.calls,
            "dropped_chunks": summary.dropped_chunks,
        }
