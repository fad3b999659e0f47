"""
Document Conversion & Formatting Endpoints
==========================================

Pass-through proxies for the Case.dev converter (/api/convert) and
formatter (/api/formatter). Upstream errors keep their status code.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Body, Depends
from fastapi.responses import Response

from .auth import AuthContext, require_auth
from .casedev import CaseDevClient, get_casedev_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["documents"])


def _passthrough(upstream: httpx.Response, default_filename: str) -> Response:
    """Binary response with upstream content type and disposition"""
    return Response(
        content=upstream.content,
        media_type=upstream.headers.get("content-type") or "application/octet-stream",
        headers={
            "Content-Disposition": upstream.headers.get("content-disposition")
            or f'attachment; filename="{default_filename}"',
        },
    )


# =============================================================================
# CONVERT
# =============================================================================

@router.post("/convert/process")
async def convert_process(
    body: Dict[str, Any] = Body(default_factory=dict),
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    data = await client.convert(body)
    logger.info(f"Conversion job {data.get('id') or data.get('jobId')} started by {auth.user_id}")
    return data


@router.get("/convert/jobs/{job_id}")
async def convert_job(
    job_id: str,
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    return await client.get_convert_job(job_id)


@router.delete("/convert/jobs/{job_id}")
async def delete_convert_job(
    job_id: str,
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    return await client.delete_convert_job(job_id)


@router.get("/convert/download/{job_id}")
async def convert_download(
    job_id: str,
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    upstream = await client.download_converted(job_id)
    return _passthrough(upstream, f"converted-{job_id}.m4a")


# =============================================================================
# FORMATTER
# =============================================================================

@router.post("/formatter/document")
async def format_document(
    body: Dict[str, Any] = Body(default_factory=dict),
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    upstream = await client.format_raw(body)
    return _passthrough(upstream, f"formatted.{body.get('output_format') or 'pdf'}")


@router.get("/formatter/templates")
async def list_templates(
    type: Optional[str] = None,
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    return await client.list_format_templates(type)


@router.post("/formatter/templates")
async def create_template(
    body: Dict[str, Any] = Body(default_factory=dict),
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    return await client.create_format_template(body)


@router.get("/formatter/templates/{template_id}")
async def get_template(
    template_id: str,
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    return await client.get_format_template(template_id)
