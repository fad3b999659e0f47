"""
Voice Tests
===========

Transcription submission and status mirroring, text-to-speech.
"""

import httpx

from legal_backend import api_voice
from legal_backend.db import TranscriptionJob
from legal_backend.voice import apply_transcription_status, build_transcription_payload


class TestHelpers:
    def test_payload_defaults(self):
        payload = build_transcription_payload("https://audio/deposition.mp3")
        assert payload["speaker_labels"] is True
        assert payload["language_code"] == "en"
        assert "word_boost" not in payload

    def test_payload_word_boost(self):
        payload = build_transcription_payload("https://audio/a.mp3", word_boost=["estoppel"])
        assert payload["word_boost"] == ["estoppel"]

    def test_apply_status(self):
        job = TranscriptionJob(id="t1", user_id="u", filename="a.mp3", audio_url="https://audio/a.mp3")
        apply_transcription_status(job, {
            "status": "completed", "audio_duration": 61.5, "confidence": 0.9,
            "words": [{"text": "Objection"}, {"text": "sustained"}],
        })
        assert job.word_count == 2
        assert job.confidence == 90
        assert job.audio_duration == 61.5
        assert job.completed_at is not None


class TestTranscriptionRoutes:
    def test_requires_audio_source(self, client, admin_headers):
        response = client.post("/api/transcription", json={}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "audio_url or (vaultId + objectId) required"

    def test_submit_from_vault_and_refresh(self, client, casedev, admin_headers, db):
        casedev.add("GET", "/vault/v1/objects/o1", {"downloadUrl": "https://s3/depo.mp3", "filename": "depo.mp3"})
        casedev.add("POST", "/voice/transcription", {"id": "tr-1", "status": "queued"})

        response = client.post("/api/transcription", json={
            "vaultId": "v1", "objectId": "o1", "wordBoost": ["voir dire"],
        }, headers=admin_headers)
        assert response.status_code == 201
        sent = casedev.last_json("POST", "/voice/transcription")
        assert sent["audio_url"] == "https://s3/depo.mp3"
        assert sent["word_boost"] == ["voir dire"]

        casedev.add("GET", "/voice/transcription/tr-1", {"id": "tr-1", "status": "completed", "words": [{}] * 3})
        client.get("/api/transcription/tr-1", headers=admin_headers)

        job = db.query(TranscriptionJob).filter(TranscriptionJob.id == "tr-1").first()
        assert job.filename == "depo.mp3"
        assert job.status == "completed"
        assert job.word_count == 3

        listed = client.get("/api/transcription", headers=admin_headers).json()["jobs"]
        assert listed[0]["id"] == "tr-1"

    def test_poll_unknown_is_404(self, client, admin_headers):
        assert client.post("/api/transcription/nope/poll", headers=admin_headers).status_code == 404

    def test_poll_enqueues(self, client, casedev, admin_headers, monkeypatch):
        casedev.add("POST", "/voice/transcription", {"id": "tr-1", "status": "queued"})
        client.post("/api/transcription", json={"audioUrl": "https://audio/a.mp3"}, headers=admin_headers)

        calls = []
        monkeypatch.setattr(api_voice, "enqueue_job",
                            lambda func, *args, **kwargs: calls.append((func, args)) or {"job_id": "rq-2"})
        assert client.post("/api/transcription/tr-1/poll", headers=admin_headers).json() == {"job_id": "rq-2"}
        assert calls == [(api_voice.task_poll_transcription_job, ("tr-1",))]


class TestSpeak:
    def test_requires_text(self, client, admin_headers):
        response = client.post("/api/speak", json={}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "text is required"

    def test_returns_audio(self, client, casedev, admin_headers):
        casedev.add("POST", "/voice/v1/speak",
                    httpx.Response(200, content=b"ID3audio", headers={"content-type": "audio/mpeg"}))
        response = client.post("/api/speak", json={"text": "All rise.", "voiceId": "judge"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.content == b"ID3audio"
        assert response.headers["content-type"] == "audio/mpeg"
        assert casedev.last_json("POST", "/voice/v1/speak") == {"text": "All rise.", "voice_id": "judge"}
