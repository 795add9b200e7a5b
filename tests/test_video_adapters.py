"""Tests for the job-based video adapters."""

import json

import httpx
import pytest

from providers.errors import ErrorCode, ProviderError
from providers.types import JobStatus, VideoGenerationRequest
from providers.video.runway import RunwayAdapter
from providers.video.veo import VeoAdapter


def runway_api(*task_snapshots):
    """Runway fake: creation returns task-1, each status poll returns the next snapshot."""
    requests = []
    polls = []

    def handler(request):
        requests.append(request)
        path = request.url.path
        if path.endswith("/text_to_video") or path.endswith("/image_to_video"):
            return httpx.Response(200, json={"id": "task-1"})
        if path.endswith("/cancel"):
            return httpx.Response(200, json={})
        polls.append(request)
        return httpx.Response(200, json=task_snapshots[min(len(polls), len(task_snapshots)) - 1])

    return handler, requests


class TestRunway:
    @pytest.mark.asyncio
    async def test_text_to_video(self, make_adapter):
        handler, requests = runway_api()
        adapter = make_adapter(RunwayAdapter, handler)
        job = await adapter.submit_video_job(VideoGenerationRequest("waves at dusk", duration=7, aspect_ratio="2:1"))

        assert job.job_id == "task-1"
        assert job.status == JobStatus.QUEUED
        assert requests[0].url.path == "/v1/text_to_video"
        body = json.loads(requests[0].content)
        assert body["duration"] == 10
        assert body["ratio"] == "16:9"
        assert body["model"] == "gen4"
        assert "init_image" not in body

    @pytest.mark.asyncio
    async def test_image_to_video(self, make_adapter):
        handler, requests = runway_api()
        adapter = make_adapter(RunwayAdapter, handler)
        await adapter.submit_video_job(
            VideoGenerationRequest("pan left", image_url="https://img.example/still.png", aspect_ratio="9:16", seed=3)
        )

        assert requests[0].url.path == "/v1/image_to_video"
        body = json.loads(requests[0].content)
        assert body["init_image"] == "https://img.example/still.png"
        assert body["ratio"] == "9:16"
        assert body["duration"] == 5
        assert body["seed"] == 3

    @pytest.mark.asyncio
    async def test_status_mapping(self, make_adapter):
        handler, _ = runway_api({"status": "RUNNING", "progress": 0.5, "estimated_time_remaining": 12})
        adapter = make_adapter(RunwayAdapter, handler)
        job = await adapter.get_video_job_status("task-1")

        assert job.status == JobStatus.PROCESSING
        assert job.progress == 50.0
        assert job.estimated_time_remaining_ms == 12000

    @pytest.mark.asyncio
    async def test_failure_carries_error(self, make_adapter):
        handler, _ = runway_api({"status": "FAILED", "failure": "Prompt rejected"})
        adapter = make_adapter(RunwayAdapter, handler)
        job = await adapter.get_video_job_status("task-1")

        assert job.status == JobStatus.FAILED
        assert job.error.code == ErrorCode.GENERATION_FAILED
        assert job.error.message == "Prompt rejected"

    @pytest.mark.asyncio
    async def test_generate_and_wait_reports_each_poll(self, make_adapter):
        handler, requests = runway_api(
            {"status": "PENDING"},
            {"status": "RUNNING", "progress": 0.5},
            {"status": "SUCCEEDED", "progress": 1, "output": ["https://cdn.example/out.mp4"]},
        )
        adapter = make_adapter(RunwayAdapter, handler)
        seen = []

        job = await adapter.generate_video_and_wait(VideoGenerationRequest("waves"), on_progress=seen.append)

        assert job.status == JobStatus.COMPLETED
        assert job.result_url == "https://cdn.example/out.mp4"
        assert [s.status for s in seen] == [JobStatus.QUEUED, JobStatus.PROCESSING, JobStatus.COMPLETED]
        assert [s.progress for s in seen] == [0.0, 50.0, 100.0]
        assert len(requests) == 4

    @pytest.mark.asyncio
    async def test_generate_and_wait_raises_job_failure(self, make_adapter):
        handler, _ = runway_api({"status": "FAILED", "failure": "Out of credits"})
        adapter = make_adapter(RunwayAdapter, handler)
        with pytest.raises(ProviderError) as exc_info:
            await adapter.generate_video_and_wait(VideoGenerationRequest("waves"))
        assert exc_info.value.message == "Out of credits"

    @pytest.mark.asyncio
    async def test_generate_and_wait_timeout(self, make_adapter):
        handler, _ = runway_api({"status": "RUNNING"})
        adapter = make_adapter(RunwayAdapter, handler)
        with pytest.raises(ProviderError) as exc_info:
            await adapter.generate_video_and_wait(VideoGenerationRequest("waves"), timeout=0)
        assert exc_info.value.code == ErrorCode.TIMEOUT

    @pytest.mark.asyncio
    async def test_cancel(self, make_adapter):
        handler, requests = runway_api()
        adapter = make_adapter(RunwayAdapter, handler)
        assert await adapter.cancel_video_job("task-1") is True
        assert requests[-1].url.path == "/v1/tasks/task-1/cancel"

    def test_cost(self, make_adapter):
        handler, _ = runway_api()
        adapter = make_adapter(RunwayAdapter, handler)
        assert adapter.estimate_cost("video") == pytest.approx(0.6)
        assert adapter.estimate_cost("video", {"video_seconds": 10}) == pytest.approx(1.2)
        assert adapter.estimate_cost("text", {"input_tokens": 1000}) == 0.0


class TestVeo:
    @pytest.mark.asyncio
    async def test_submit(self, make_adapter):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"name": "models/veo-3.1-generate-001/operations/op-7"})

        adapter = make_adapter(VeoAdapter, handler)
        job = await adapter.submit_video_job(VideoGenerationRequest("a drone shot", duration=5, aspect_ratio="4:3"))

        assert job.job_id == "models/veo-3.1-generate-001/operations/op-7"
        assert seen[0].url.path.endswith("/models/veo-3.1-generate-001:generateVideo")
        config = json.loads(seen[0].content)["generationConfig"]
        assert config["videoDuration"] == "6s"
        assert config["aspectRatio"] == "16:9"
        assert config["generateAudio"] is True

    @pytest.mark.asyncio
    async def test_status(self, make_adapter):
        snapshots = iter(
            [
                {"done": False, "metadata": {"progress": 0.42}},
                {"done": True, "response": {"generatedVideos": [{"video": {"uri": "https://veo.example/v.mp4"}}]}},
                {"done": True, "error": {"message": "Safety filter"}},
            ]
        )
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=next(snapshots))

        adapter = make_adapter(VeoAdapter, handler)
        job_id = "models/veo-3.1-generate-001/operations/op-7"

        running = await adapter.get_video_job_status(job_id)
        assert (running.status, running.progress) == (JobStatus.PROCESSING, 42.0)
        assert seen[0].url.path == f"/v1beta/{job_id}"

        done = await adapter.get_video_job_status(job_id)
        assert done.status == JobStatus.COMPLETED
        assert done.result_url == "https://veo.example/v.mp4"

        failed = await adapter.get_video_job_status(job_id)
        assert failed.status == JobStatus.FAILED
        assert failed.error.message == "Safety filter"

    @pytest.mark.asyncio
    async def test_missing_operation_name(self, make_adapter):
        adapter = make_adapter(VeoAdapter, lambda request: httpx.Response(200, json={}))
        with pytest.raises(ProviderError) as exc_info:
            await adapter.submit_video_job(VideoGenerationRequest("x"))
        assert exc_info.value.code == ErrorCode.INVALID_RESPONSE

    def test_default_cost(self, make_adapter):
        adapter = make_adapter(VeoAdapter, lambda request: httpx.Response(200))
        assert adapter.estimate_cost("video") == pytest.approx(2.4)
