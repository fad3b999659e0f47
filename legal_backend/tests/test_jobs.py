"""
Background Job Tests
====================

Pollers following Case.dev jobs to completion, and the synchronous
fallback when Redis is unreachable.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from legal_backend.db import OcrJob, TranscriptionJob, User
from legal_backend.jobs import enqueue_job, poll_ocr_job, poll_transcription_job
from legal_backend.jobs.queue import get_queue_stats
from legal_backend.worker_health import app as worker_health_app


@pytest.fixture
def owner(db):
    user = User(email="owner@lawfirm.com", name="Owner", role="admin")
    db.add(user)
    db.commit()
    return user.id


class TestPollers:
    @pytest.mark.asyncio
    async def test_ocr_poll_until_completed(self, casedev, db, owner):
        db.add(OcrJob(id="j1", user_id=owner, filename="a.pdf", status="queued"))
        db.commit()

        replies = iter([
            {"status": "processing", "chunks_completed": 1, "chunk_count": 2},
            {"status": "completed", "chunks_completed": 2, "chunk_count": 2, "confidence": 0.91},
        ])
        casedev.add("GET", "/ocr/v1/j1", lambda request: httpx.Response(200, json=next(replies)))

        result = await poll_ocr_job("j1", client=casedev.client(), max_attempts=5, base_delay=0)
        assert result == {"job_id": "j1", "status": "completed", "attempts": 2}

        db.expire_all()
        job = db.query(OcrJob).filter(OcrJob.id == "j1").first()
        assert job.status == "completed"
        assert job.confidence == 91

    @pytest.mark.asyncio
    async def test_ocr_poll_gives_up_with_last_error(self, casedev):
        casedev.add("GET", "/ocr/v1/j2", {"message": "busy"}, status=503)
        result = await poll_ocr_job("j2", client=casedev.client(), max_attempts=2, base_delay=0)
        assert result["status"] == "unknown"
        assert result["attempts"] == 2
        assert "503" in result["error"]

    @pytest.mark.asyncio
    async def test_transcription_poll(self, casedev, db, owner):
        db.add(TranscriptionJob(id="t1", user_id=owner, filename="a.mp3", audio_url="https://audio/a.mp3"))
        db.commit()
        casedev.add("GET", "/voice/transcription/t1", {"status": "failed", "error": "unsupported codec"})

        result = await poll_transcription_job("t1", client=casedev.client(), max_attempts=3, base_delay=0)
        assert result["status"] == "failed"
        assert result["attempts"] == 1

        db.expire_all()
        assert db.query(TranscriptionJob).filter(TranscriptionJob.id == "t1").first().error == "unsupported codec"


class TestQueueFallback:
    def test_runs_synchronously_without_redis(self):
        result = enqueue_job(lambda a, b: a + b, 2, 3)
        assert result == {"job_id": "sync", "status": "done", "result": 5}

    def test_sync_failure_is_reported(self):
        def boom():
            raise RuntimeError("exploded")

        result = enqueue_job(boom)
        assert result["status"] == "failed"
        assert result["error"] == "exploded"

    def test_queue_stats_unavailable(self):
        assert get_queue_stats()["available"] is False


class TestWorkerHealth:
    def test_degraded_without_redis(self):
        response = TestClient(worker_health_app).get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
