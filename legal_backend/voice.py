"""
Voice Helpers
=============

Transcription payloads and status mirroring for Case.dev voice.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any

from .db import TranscriptionJob, JobStatus


def build_transcription_payload(
    audio_url: str,
    language_code: str = "en",
    speaker_labels: bool = True,
    punctuate: bool = True,
    format_text: bool = True,
    auto_chapters: bool = False,
    summarization: bool = False,
    redact_pii: bool = False,
    word_boost: Optional[List[str]] = None,
) -> Dict[str, Any]:
    payload = {
        "audio_url": audio_url,
        "language_code": language_code,
        "speaker_labels": speaker_labels,
        "punctuate": punctuate,
        "format_text": format_text,
        "auto_chapters": auto_chapters,
        "summarization": summarization,
        "redact_pii": redact_pii,
    }
    if word_boost:
        payload["word_boost"] = word_boost
    return payload


def apply_transcription_status(job: TranscriptionJob, data: Dict[str, Any]) -> TranscriptionJob:
    """Copy a Case.dev transcription status onto the local row"""
    status = data.get("status")
    if status:
        job.status = status
    job.audio_duration = data.get("audio_duration")
    confidence = data.get("confidence")
    job.confidence = round(confidence * 100) if confidence else None
    words = data.get("words")
    job.word_count = len(words) if words else None
    job.error = data.get("error") or None
    job.completed_at = datetime.utcnow() if status == JobStatus.COMPLETED.value else None
    return job


def transcription_job_to_dict(job: TranscriptionJob) -> Dict[str, Any]:
    return {
        "id": job.id,
        "userId": job.user_id,
        "filename": job.filename,
        "audioUrl": job.audio_url,
        "languageCode": job.language_code,
        "speakerLabels": job.speaker_labels,
        "status": job.status,
        "audioDuration": job.audio_duration,
        "confidence": job.confidence,
        "wordCount": job.word_count,
        "error": job.error,
        "createdAt": job.created_at.isoformat() if job.created_at else None,
        "completedAt": job.completed_at.isoformat() if job.completed_at else None,
    }
