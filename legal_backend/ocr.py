"""
OCR Helpers
===========

Payload building, status mirroring and result helpers for Case.dev OCR.

Case.dev reports confidence as a 0-1 fraction; the local mirror stores
it as a rounded 0-100 integer.
"""

import re
import time
import logging
from datetime import datetime
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from .casedev import CaseDevClient
from .db import OcrJob, JobStatus

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "doctr"

# Confidence thresholds (0-1)
HIGH_CONFIDENCE = 0.95
LOW_CONFIDENCE = 0.70

VAULT_BUCKET_PREFIX = "case-vault"
_VAULT_BUCKET_PATTERN = re.compile(r"case-vault-user-org-[^-]+-(.+)$")

DOWNLOAD_EXTENSIONS = {
    "text": "txt",
    "json": "json",
    "pdf": "pdf",
    "original": "pdf",
}


def confidence_color(confidence: Optional[float]) -> str:
    """green >= 0.95, red <= 0.70, yellow in between"""
    if confidence is None:
        return "yellow"
    if confidence >= HIGH_CONFIDENCE:
        return "green"
    if confidence <= LOW_CONFIDENCE:
        return "red"
    return "yellow"


def build_ocr_payload(
    document_url: str,
    engine: str = DEFAULT_ENGINE,
    features: Optional[Dict[str, Any]] = None,
    from_vault: bool = False,
) -> Dict[str, Any]:
    """
    Case.dev /ocr/v1/process body.

    Vault documents are submitted without features: results cannot be
    written back into vault buckets.
    """
    return {
        "document_url": document_url,
        "document_id": f"ocr-{int(time.time() * 1000)}",
        "engine": engine or DEFAULT_ENGINE,
        "features": {} if from_vault else (features or {}),
    }


def apply_ocr_status(job: OcrJob, data: Dict[str, Any]) -> OcrJob:
    """Copy a Case.dev job status payload onto the local row"""
    status = data.get("status")
    if status:
        job.status = status
    job.page_count = data.get("page_count") or 0
    job.chunk_count = data.get("chunk_count") or 0
    job.chunks_completed = data.get("chunks_completed") or 0
    job.chunks_processing = data.get("chunks_processing") or 0
    job.chunks_failed = data.get("chunks_failed") or 0
    confidence = data.get("confidence")
    job.confidence = round(confidence * 100) if confidence is not None else None
    text = data.get("text")
    job.text_length = len(text) if text else None
    job.error = data.get("error") or None
    job.completed_at = datetime.utcnow() if status == JobStatus.COMPLETED.value else None
    return job


async def submit_ocr_job(
    client: CaseDevClient,
    db: Session,
    user_id: str,
    document_url: Optional[str] = None,
    vault_id: Optional[str] = None,
    object_id: Optional[str] = None,
    filename: Optional[str] = None,
    engine: str = DEFAULT_ENGINE,
    features: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Submit a document to Case.dev OCR and record the local job row.

    A vault object (vault_id + object_id, no document_url) is resolved
    to its short-lived download URL first.

    Raises:
        ValueError: no document URL could be determined
        CaseDevError: Case.dev rejected a call
    """
    if vault_id and object_id and not document_url:
        obj = await client.get_object(vault_id, object_id)
        document_url = obj.get("downloadUrl")
        filename = obj.get("filename") or filename or "document.pdf"
        if not obj.get("sizeBytes"):
            logger.warning(f"Vault object {object_id} reports zero size")

    if not document_url:
        raise ValueError("Could not determine document URL")

    payload = build_ocr_payload(
        document_url,
        engine=engine,
        features=features,
        from_vault=bool(vault_id),
    )
    data = await client.submit_ocr(payload)

    job = OcrJob(
        id=data.get("id"),
        user_id=user_id,
        document_id=data.get("document_id"),
        vault_id=vault_id,
        object_id=object_id,
        filename=filename or "Unknown",
        document_url=document_url,
        engine=payload["engine"],
        status=data.get("status") or JobStatus.PENDING.value,
    )
    apply_ocr_status(job, data)
    db.add(job)
    db.commit()

    logger.info(f"OCR job {job.id} submitted by {user_id} (engine {job.engine})")
    return data


def is_terminal(status: Optional[str]) -> bool:
    return status in (JobStatus.COMPLETED.value, JobStatus.FAILED.value)


def extract_vault_id_from_bucket(bucket: Optional[str]) -> Optional[str]:
    """case-vault-user-org-{orgId}-{vaultId} -> vaultId"""
    if not bucket or not bucket.startswith(VAULT_BUCKET_PREFIX):
        return None
    match = _VAULT_BUCKET_PATTERN.search(bucket)
    return match.group(1) if match else None


def download_extension(result_type: str) -> str:
    return DOWNLOAD_EXTENSIONS.get(result_type, "bin")


def download_filename(job_id: str, result_type: str) -> str:
    return f"ocr-{job_id}-{result_type}.{download_extension(result_type)}"


def result_keys(data: Dict[str, Any]) -> Dict[str, Optional[str]]:
    return {
        "text": data.get("result_text_key"),
        "json": data.get("result_json_key"),
        "pdf": data.get("result_pdf_key"),
    }


def ocr_job_to_dict(job: OcrJob) -> Dict[str, Any]:
    return {
        "id": job.id,
        "userId": job.user_id,
        "documentId": job.document_id,
        "vaultId": job.vault_id,
        "objectId": job.object_id,
        "filename": job.filename,
        "documentUrl": job.document_url,
        "engine": job.engine,
        "status": job.status,
        "pageCount": job.page_count,
        "chunkCount": job.chunk_count,
        "chunksCompleted": job.chunks_completed,
        "chunksProcessing": job.chunks_processing,
        "chunksFailed": job.chunks_failed,
        "confidence": job.confidence,
        "textLength": job.text_length,
        "error": job.error,
        "createdAt": job.created_at.isoformat() if job.created_at else None,
        "completedAt": job.completed_at.isoformat() if job.completed_at else None,
    }
