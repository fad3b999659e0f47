"""
Deep Research API Endpoint
==========================

POST /api/research/deep streams the multi-phase research run as SSE.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from .auth import AuthContext, require_permission
from .casedev import CaseDevClient, get_casedev_client
from .llm import CaseLLMClient, get_llm_client
from .research import DeepResearchPipeline
from .schemas import DeepResearchRequest
from .sse import sse_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/research", tags=["research"])


@router.post("/deep")
async def deep_research(
    request: DeepResearchRequest,
    auth: AuthContext = Depends(require_permission("chat_ai.use")),
    client: CaseDevClient = Depends(get_casedev_client),
    llm: CaseLLMClient = Depends(get_llm_client),
):
    if not request.query or not request.query.strip():
        raise HTTPException(status_code=400, detail="Query is required")

    logger.info(f"Deep research started by {auth.user_id}: {request.query[:80]}")
    pipeline = DeepResearchPipeline(client, llm)
    return sse_response(pipeline.run(request.query, auth.user_id, request.sources))
