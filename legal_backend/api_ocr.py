"""
OCR API Endpoints
=================

Submit documents (by URL or from a vault) to Case.dev OCR, mirror job
status locally, expose result locations and proxy downloads.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from .auth import AuthContext, require_permission
from .casedev import CaseDevClient, get_casedev_client
from .db import OcrJob, JobStatus, get_db
from .jobs import enqueue_job, task_poll_ocr_job
from .jobs.queue import QUEUE_HIGH
from .ocr import (
    submit_ocr_job, apply_ocr_status, extract_vault_id_from_bucket,
    download_filename, result_keys, ocr_job_to_dict, confidence_color,
)
from .schemas import OcrSubmitRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ocr", tags=["ocr"])


@router.get("")
async def list_ocr_jobs(
    auth: AuthContext = Depends(require_permission("ocr.read")),
    db: Session = Depends(get_db),
):
    jobs = db.query(OcrJob).order_by(OcrJob.created_at.desc()).all()
    return {"jobs": [ocr_job_to_dict(j) for j in jobs]}


@router.post("", status_code=201)
async def submit_ocr(
    request: OcrSubmitRequest,
    auth: AuthContext = Depends(require_permission("ocr.create")),
    client: CaseDevClient = Depends(get_casedev_client),
    db: Session = Depends(get_db),
):
    """
    Submit a document for OCR.

    Either `documentUrl`, or `vaultId` + `objectId` (the vault object's
    short-lived download URL is resolved first).
    """
    if not request.document_url and not (request.vault_id and request.object_id):
        raise HTTPException(
            status_code=400,
            detail="Either documentUrl or (vaultId + objectId) is required"
        )

    try:
        return await submit_ocr_job(
            client,
            db,
            auth.user_id,
            document_url=request.document_url,
            vault_id=request.vault_id,
            object_id=request.object_id,
            filename=request.filename,
            engine=request.engine,
            features=request.features,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{job_id}")
async def get_ocr_job(
    job_id: str,
    auth: AuthContext = Depends(require_permission("ocr.read")),
    client: CaseDevClient = Depends(get_casedev_client),
    db: Session = Depends(get_db),
):
    """Live status from Case.dev; the local row is refreshed as a side effect"""
    data = await client.get_ocr_job(job_id)

    job = db.query(OcrJob).filter(OcrJob.id == job_id).first()
    if job:
        apply_ocr_status(job, data)
        db.commit()

    confidence = data.get("confidence")
    return {**data, "confidenceColor": confidence_color(confidence) if confidence is not None else None}


@router.get("/{job_id}/results")
async def get_ocr_results(
    job_id: str,
    auth: AuthContext = Depends(require_permission("ocr.read")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    """Where the result files live (vault-backed jobs only)"""
    data = await client.get_ocr_job(job_id)

    if data.get("status") != JobStatus.COMPLETED.value:
        return JSONResponse(status_code=400, content={
            "error": "Job not completed",
            "status": data.get("status"),
            "progress": f"{data.get('chunks_completed')}/{data.get('chunk_count')}",
        })

    bucket = data.get("result_bucket")
    if not bucket or not bucket.startswith("case-vault"):
        return JSONResponse(status_code=501, content={
            "error": "Results not stored in vault",
            "message": "This OCR job was not processed from a vault. "
                       "Results are in Case.dev internal storage and have no download location.",
            "s3Keys": result_keys(data),
        })

    vault_id = extract_vault_id_from_bucket(bucket)
    if not vault_id:
        raise HTTPException(status_code=500, detail="Could not extract vault ID from bucket name")

    return {
        "vaultId": vault_id,
        "bucket": bucket,
        "prefix": data.get("result_prefix"),
        "files": result_keys(data),
        "message": "Results are in vault bucket. Use vault download endpoints to access them.",
    }


@router.get("/{job_id}/download/{result_type}")
async def download_ocr_result(
    job_id: str,
    result_type: str,
    auth: AuthContext = Depends(require_permission("ocr.download")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    content, content_type = await client.download_ocr(job_id, result_type)
    return Response(
        content=content,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{download_filename(job_id, result_type)}"'},
    )


@router.post("/{job_id}/poll")
def poll_ocr(
    job_id: str,
    auth: AuthContext = Depends(require_permission("ocr.read")),
    db: Session = Depends(get_db),
):
    """Queue a background poll that follows the job until it finishes"""
    if not db.query(OcrJob).filter(OcrJob.id == job_id).first():
        raise HTTPException(status_code=404, detail="OCR job not found")

    result = enqueue_job(
        task_poll_ocr_job,
        job_id,
        queue_name=QUEUE_HIGH,
        meta={"user_id": auth.user_id, "ocr_job_id": job_id},
    )
    logger.info(f"OCR poll for {job_id}: {result['status']}")
    return result
