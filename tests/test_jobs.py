"""Tests for background jobs and the deconstruct tool."""

import asyncio

import pytest

from deconstructor.jobs.job_manager import JobManager, JobStatus
from deconstructor.llm.offline import OfflineProvider
from deconstructor.pipeline import DeconstructionPipeline
from deconstructor.tools.deconstruct_tool import DeconstructTool

from conftest import THREE_FUNCTIONS, FakeProvider


@pytest.fixture
def tool(tmp_path, fake_sleep):
    pipeline = DeconstructionPipeline(OfflineProvider(), sleep=fake_sleep)
    return DeconstructTool(pipeline, tmp_path / "output")


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "bundle.js"
    path.write_text(THREE_FUNCTIONS)
    return path


class TestJobManager:
    @pytest.mark.asyncio
    async def test_lifecycle(self):
        manager = JobManager()
        job = manager.create_job("a.js", "out/a", job_id="job1")

        assert manager.get_job("job1") is job
        assert job.status == JobStatus.QUEUED

        await manager.mark_started("job1")
        await manager.update_progress("job1", stage="partition", units_extracted=4)
        status = manager.get_status_dict(job)

        assert status["status"] == "running"
        assert status["progress"]["stage"] == "partition"
        assert status["progress"]["units_extracted"] == 4
        assert status["progress"]["progress_pct"] == 25.0

        await manager.mark_completed("job1", {"units": 4})
        assert manager.get_status_dict(job)["result"] == {"units": 4}

    @pytest.mark.asyncio
    async def test_cancel_only_unfinished_jobs(self):
        manager = JobManager()
        manager.create_job("a.js", "out/a", job_id="queued")
        done = manager.create_job("b.js", "out/b", job_id="done")
        done.status = JobStatus.COMPLETED

        assert await manager.cancel_job("queued") is True
        assert manager.get_job("queued").status == JobStatus.CANCELLED
        assert await manager.cancel_job("done") is False
        assert await manager.cancel_job("missing") is False

    @pytest.mark.asyncio
    async def test_failure_is_reported(self):
        manager = JobManager()
        job = manager.create_job("a.js", "out/a")

        await manager.mark_failed(job.job_id, "boom")

        assert manager.get_status_dict(job)["error"] == "boom"
        assert [j.job_id for j in manager.list_jobs()] == [job.job_id]


class TestDeconstructTool:
    @pytest.mark.asyncio
    async def test_foreground_run(self, tool, source_file, tmp_path):
        result = await tool.deconstruct_file(str(source_file), run_name="demo")

        assert result["success"] is True
        assert result["output_dir"] == str(tmp_path / "output" / "demo")
        assert result["units"] == 4

    @pytest.mark.asyncio
    async def test_background_job_and_units(self, tool, source_file):
        started = await tool.start_deconstruction(str(source_file))
        assert started["success"] is True

        job = tool.job_manager.get_job(started["job_id"])
        await job.task

        status = tool.job_manager.get_status_dict(job)
        assert status["status"] == "completed"
        assert status["progress"]["stages_completed"] == 4
        assert status["progress"]["units_extracted"] == 4
        assert status["progress"]["categories_analyzed"] == 5

        units = await tool.get_units(job.job_id, kind="function")
        assert units["success"] is True
        assert units["total_units"] == 3
        assert [u["name"] for u in units["units"]] == ["alpha", "beta", "gamma"]

    @pytest.mark.asyncio
    async def test_parse_failure_marks_job_failed(self, tool, tmp_path):
        broken = tmp_path / "broken.js"
        broken.write_text("function (\n")

        started = await tool.start_deconstruction(str(broken))
        job = tool.job_manager.get_job(started["job_id"])
        await job.task

        assert job.status == JobStatus.FAILED
        assert job.error

    @pytest.mark.asyncio
    async def test_missing_source(self, tool, tmp_path):
        missing = str(tmp_path / "missing.js")

        assert (await tool.deconstruct_file(missing))["success"] is False
        assert (await tool.start_deconstruction(missing))["success"] is False

    @pytest.mark.asyncio
    async def test_non_javascript_source_is_rejected(self, tool, tmp_path):
        notes = tmp_path / "notes.txt"
        notes.write_text("function alpha() {}\n")

        foreground = await tool.deconstruct_file(str(notes))
        background = await tool.start_deconstruction(str(notes))

        assert foreground["success"] is False
        assert "Unsupported file type" in foreground["error"]
        assert background["success"] is False
        assert tool.job_manager.list_jobs() == []
        assert not (tmp_path / "output").exists()

    def test_javascript_extensions_are_accepted(self, tool, tmp_path):
        for name in ("app.js", "app.mjs", "app.cjs", "App.JSX"):
            path = tmp_path / name
            path.write_text("var a = 1;\n")
            assert tool.validate_source(str(path)) is None

    @pytest.mark.asyncio
    async def test_unknown_job(self, tool):
        assert (await tool.get_units("nope"))["success"] is False
        assert (await tool.deconstruct_with_progress("nope"))["success"] is False


class TestSummarizeUnits:
    @pytest.fixture
    def tool(self, tmp_path, fake_sleep):
        pipeline = DeconstructionPipeline(FakeProvider(concurrent=True), sleep=fake_sleep)
        return DeconstructTool(pipeline, tmp_path / "output")

    @pytest.mark.asyncio
    async def test_summarizes_one_kind_of_a_finished_job(self, tool, source_file):
        started = await tool.start_deconstruction(str(source_file))
        job = tool.job_manager.get_job(started["job_id"])
        await job.task
        provider = tool.pipeline.provider
        calls_before = len(provider.calls)

        result = await tool.summarize_units(job.job_id, kind="function")

        assert result["success"] is True
        assert result["summary"] == "model output"
        assert result["calls"] == 1
        prompt = provider.prompts[calls_before]
        assert prompt.startswith("Please analyze these functions")
        for name in ("alpha", "beta", "gamma"):
            assert f"--- File: {name}.js ---" in prompt

    @pytest.mark.asyncio
    async def test_rejects_unknown_job_and_kind(self, tool, source_file):
        started = await tool.start_deconstruction(str(source_file))
        job = tool.job_manager.get_job(started["job_id"])
        await job.task

        assert (await tool.summarize_units("nope"))["success"] is False
        assert "Unknown unit kind" in (await tool.summarize_units(job.job_id, kind="widget"))["error"]
        # No classes in the source, so nothing was written for them
        assert (await tool.summarize_units(job.job_id, kind="class"))["success"] is False


@pytest.mark.asyncio
async def test_cancelled_job_stops_calling_the_backend(tmp_path, source_file, fake_sleep):
    provider = FakeProvider(concurrent=False, delay=0.05)
    tool = DeconstructTool(
        DeconstructionPipeline(provider, sleep=fake_sleep), tmp_path / "output"
    )

    started = await tool.start_deconstruction(str(source_file))
    job = tool.job_manager.get_job(started["job_id"])
    while not provider.calls:
        await asyncio.sleep(0.01)

    assert await tool.job_manager.cancel_job(job.job_id) is True
    calls_at_cancel = len(provider.calls)
    with pytest.raises(asyncio.CancelledError):
        await job.task

    # Long enough for the remaining categories and the synthesis to have run
    await asyncio.sleep(0.5)

    assert job.status == JobStatus.CANCELLED
    assert len(provider.calls) == calls_at_cancel
    assert provider.in_flight == 0
