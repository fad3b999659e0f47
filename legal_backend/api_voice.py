"""
Voice API Endpoints
===================

Transcription jobs (audio URL or vault object) and text-to-speech.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session

from .auth import AuthContext, require_permission
from .casedev import CaseDevClient, get_casedev_client
from .db import TranscriptionJob, JobStatus, get_db
from .jobs import enqueue_job, task_poll_transcription_job
from .schemas import TranscriptionSubmitRequest, SpeakRequest
from .voice import build_transcription_payload, apply_transcription_status, transcription_job_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["voice"])


@router.get("/transcription")
async def list_transcriptions(
    auth: AuthContext = Depends(require_permission("transcription.read")),
    db: Session = Depends(get_db),
):
    jobs = db.query(TranscriptionJob).order_by(TranscriptionJob.created_at.desc()).all()
    return {"jobs": [transcription_job_to_dict(j) for j in jobs]}


@router.post("/transcription", status_code=201)
async def submit_transcription(
    request: TranscriptionSubmitRequest,
    auth: AuthContext = Depends(require_permission("transcription.create")),
    client: CaseDevClient = Depends(get_casedev_client),
    db: Session = Depends(get_db),
):
    audio_url = request.audio_url
    filename = request.filename

    if request.vault_id and request.object_id and not audio_url:
        obj = await client.get_object(request.vault_id, request.object_id)
        audio_url = obj.get("downloadUrl")
        filename = obj.get("filename") or filename

    if not audio_url:
        raise HTTPException(status_code=400, detail="audio_url or (vaultId + objectId) required")

    payload = build_transcription_payload(
        audio_url,
        language_code=request.language_code,
        speaker_labels=request.speaker_labels,
        punctuate=request.punctuate,
        format_text=request.format_text,
        auto_chapters=request.auto_chapters,
        summarization=request.summarization,
        redact_pii=request.redact_pii,
        word_boost=request.word_boost,
    )
    data = await client.submit_transcription(payload)

    db.add(TranscriptionJob(
        id=data.get("id"),
        user_id=auth.user_id,
        filename=filename or "audio recording",
        audio_url=audio_url,
        language_code=request.language_code,
        speaker_labels=request.speaker_labels,
        status=data.get("status") or JobStatus.QUEUED.value,
    ))
    db.commit()

    logger.info(f"Transcription {data.get('id')} submitted by {auth.user_id}")
    return data


@router.get("/transcription/{job_id}")
async def get_transcription(
    job_id: str,
    auth: AuthContext = Depends(require_permission("transcription.read")),
    client: CaseDevClient = Depends(get_casedev_client),
    db: Session = Depends(get_db),
):
    data = await client.get_transcription(job_id)

    job = db.query(TranscriptionJob).filter(TranscriptionJob.id == job_id).first()
    if job:
        apply_transcription_status(job, data)
        db.commit()
    return data


@router.post("/transcription/{job_id}/poll")
def poll_transcription(
    job_id: str,
    auth: AuthContext = Depends(require_permission("transcription.read")),
    db: Session = Depends(get_db),
):
    if not db.query(TranscriptionJob).filter(TranscriptionJob.id == job_id).first():
        raise HTTPException(status_code=404, detail="Transcription not found")

    return enqueue_job(
        task_poll_transcription_job,
        job_id,
        meta={"user_id": auth.user_id, "transcription_id": job_id},
    )


@router.post("/speak")
async def speak(
    request: SpeakRequest,
    auth: AuthContext = Depends(require_permission("tts.use")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    """Text-to-speech; returns audio bytes"""
    if not request.text:
        raise HTTPException(status_code=400, detail="text is required")

    content, content_type = await client.speak(request.model_dump(exclude_none=True))
    logger.info(f"Speech generated: {len(request.text)} chars -> {len(content)} bytes")
    return Response(content=content, media_type=content_type)
