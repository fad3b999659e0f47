"""
Workflow API Endpoints
======================

Case.dev legal workflows: browse, semantic search, run on one input, or
run on several vault documents combined into a single text.
"""

import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Request

from .auth import AuthContext, require_auth
from .casedev import CaseDevClient, CaseDevError, get_casedev_client
from .schemas import WorkflowSearchRequest, CombinedExecuteRequest, CombinedDocument

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/workflows", tags=["workflows"])


def document_block(name: str, text: str) -> str:
    return f"--- DOCUMENT START: {name} ---\n{text}\n--- DOCUMENT END: {name} ---\n\n"


@router.get("")
async def list_workflows(
    request: Request,
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    """Query parameters are passed through unchanged"""
    try:
        return await client.list_workflows(dict(request.query_params) or None)
    except CaseDevError as e:
        logger.error(f"Error fetching workflows: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch workflows")


@router.post("/search")
async def search_workflows(
    request: WorkflowSearchRequest,
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    payload = request.model_dump(exclude_none=True)
    try:
        return await client.search_workflows(payload)
    except CaseDevError as e:
        logger.error(f"Error searching workflows: {e}")
        raise HTTPException(status_code=500, detail="Failed to search workflows")


@router.get("/{workflow_id}")
async def get_workflow(
    workflow_id: str,
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    try:
        return await client.get_workflow(workflow_id)
    except CaseDevError as e:
        logger.error(f"Error fetching workflow {workflow_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch workflow details")


@router.post("/{workflow_id}/execute")
async def execute_workflow(
    workflow_id: str,
    body: Dict[str, Any] = Body(default_factory=dict),
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    """Body is forwarded as is; upstream errors keep their status"""
    data = await client.execute_workflow(workflow_id, body)
    logger.info(f"Workflow {workflow_id} executed by {auth.user_id}: {data.get('status')}")
    return data


@router.post("/{workflow_id}/execute-combined")
async def execute_combined(
    workflow_id: str,
    request: CombinedExecuteRequest,
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    """
    Fetch the text of every document, concatenate them between
    DOCUMENT START/END markers and run the workflow once on the result.
    """
    if not request.documents:
        raise HTTPException(status_code=400, detail="No documents provided for combined execution")

    async def fetch_text(doc: CombinedDocument) -> str:
        name = doc.name or doc.id
        data = await client.get_object_text(doc.vault_id, doc.id)
        if not data.get("text"):
            raise ValueError(f"No text returned for {name}")
        return document_block(name, data["text"])

    try:
        parts = await asyncio.gather(*(fetch_text(doc) for doc in request.documents))
        payload: Dict[str, Any] = {"input": {"text": "\n".join(parts)}}
        if request.options is not None:
            payload["options"] = request.options
        if request.variables is not None:
            payload["variables"] = request.variables
        data = await client.execute_workflow(workflow_id, payload)
    except CaseDevError as e:
        logger.error(f"Combined execution of {workflow_id} failed: {e}")
        raise HTTPException(status_code=500, detail=e.detail)
    except ValueError as e:
        logger.error(f"Combined execution of {workflow_id} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"Workflow {workflow_id} executed on {len(request.documents)} documents")
    return data
