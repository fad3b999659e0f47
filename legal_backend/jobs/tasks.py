"""
Job Tasks
=========

Background polling of Case.dev OCR and transcription jobs.

Each poll retries with exponential backoff until the upstream job is
completed or failed, mirroring status onto the local row every time.
RQ runs the sync task_* wrappers; the async pollers are usable directly.
"""

import asyncio
import logging
from typing import Dict, Any, Optional

import httpx
from rq import get_current_job

from ..casedev import CaseDevClient, CaseDevError
from ..config import get_settings
from ..db import OcrJob, TranscriptionJob, get_db_session
from ..ocr import apply_ocr_status, is_terminal
from ..voice import apply_transcription_status

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 2.0


def update_job_progress(progress: int, message: str = None):
    """Record progress on the current RQ job (no-op outside a worker)"""
    job = get_current_job()
    if job:
        job.meta["progress"] = progress
        if message:
            job.meta["message"] = message
        job.save_meta()


def _new_client() -> CaseDevClient:
    settings = get_settings()
    return CaseDevClient(
        api_key=settings.case_api_key,
        base_url=settings.case_api_url,
        timeout=settings.casedev_timeout,
    )


async def _poll(
    job_id: str,
    fetch,
    model,
    apply,
    max_attempts: int,
    base_delay: float,
) -> Dict[str, Any]:
    last_error = None
    status = None

    for attempt in range(max_attempts):
        try:
            data = await fetch(job_id)
        except (CaseDevError, httpx.HTTPError) as e:
            last_error = str(e)
            logger.warning(f"Poll {job_id} attempt {attempt + 1}/{max_attempts} failed: {e}")
        else:
            status = data.get("status")
            with get_db_session() as db:
                row = db.query(model).filter(model.id == job_id).first()
                if row:
                    apply(row, data)
            if is_terminal(status):
                logger.info(f"Job {job_id} reached {status} after {attempt + 1} polls")
                return {"job_id": job_id, "status": status, "attempts": attempt + 1}

        update_job_progress(int((attempt + 1) / max_attempts * 100), f"Poll {attempt + 1}")
        if attempt < max_attempts - 1:
            await asyncio.sleep(base_delay * (2 ** attempt))

    result = {"job_id": job_id, "status": status or "unknown", "attempts": max_attempts}
    if last_error:
        result["error"] = last_error
    return result


async def poll_ocr_job(
    job_id: str,
    client: Optional[CaseDevClient] = None,
    max_attempts: Optional[int] = None,
    base_delay: float = DEFAULT_BASE_DELAY,
) -> Dict[str, Any]:
    """Poll an OCR job until it finishes or attempts run out"""
    owns_client = client is None
    client = client or _new_client()
    try:
        return await _poll(
            job_id,
            client.get_ocr_job,
            OcrJob,
            apply_ocr_status,
            max_attempts or get_settings().ocr_poll_max_attempts,
            base_delay,
        )
    finally:
        if owns_client:
            await client.close()


async def poll_transcription_job(
    job_id: str,
    client: Optional[CaseDevClient] = None,
    max_attempts: Optional[int] = None,
    base_delay: float = DEFAULT_BASE_DELAY,
) -> Dict[str, Any]:
    """Poll a transcription until it finishes or attempts run out"""
    owns_client = client is None
    client = client or _new_client()
    try:
        return await _poll(
            job_id,
            client.get_transcription,
            TranscriptionJob,
            apply_transcription_status,
            max_attempts or get_settings().ocr_poll_max_attempts,
            base_delay,
        )
    finally:
        if owns_client:
            await client.close()


# =============================================================================
# RQ ENTRY POINTS
# =============================================================================

def task_poll_ocr_job(job_id: str, max_attempts: int = None, base_delay: float = DEFAULT_BASE_DELAY) -> Dict[str, Any]:
    return asyncio.run(poll_ocr_job(job_id, max_attempts=max_attempts, base_delay=base_delay))


def task_poll_transcription_job(job_id: str, max_attempts: int = None,
                                base_delay: float = DEFAULT_BASE_DELAY) -> Dict[str, Any]:
    return asyncio.run(poll_transcription_job(job_id, max_attempts=max_attempts, base_delay=base_delay))
