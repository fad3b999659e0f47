"""
Search API Endpoints
====================

Web search, search-grounded answers, hosted research tasks and the
model catalogue, proxied to Case.dev.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from .auth import AuthContext, require_permission
from .casedev import CaseDevClient, get_casedev_client
from .schemas import WebSearchRequest, WebAnswerRequest, HostedResearchRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["search"])

DEFAULT_RESEARCH_MODEL = "exa-research"


@router.post("/search")
async def web_search(
    request: WebSearchRequest,
    auth: AuthContext = Depends(require_permission("chat_ai.use")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    if not request.query:
        raise HTTPException(status_code=400, detail="Query is required")

    payload = {
        "query": request.query,
        "numResults": request.num_results or 10,
        "type": request.type or "auto",
        "category": request.category,
        "includeDomains": request.include_domains,
        "excludeDomains": request.exclude_domains,
        "startPublishedDate": request.start_published_date,
        "endPublishedDate": request.end_published_date,
    }
    return await client.web_search({k: v for k, v in payload.items() if v is not None})


@router.post("/search/answer")
async def web_answer(
    request: WebAnswerRequest,
    auth: AuthContext = Depends(require_permission("chat_ai.use")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    if not request.query:
        raise HTTPException(status_code=400, detail="Query is required")

    payload = {
        "query": request.query,
        "model": request.model,
        "systemPrompt": request.system_prompt,
        "numResults": request.num_results or 10,
    }
    return await client.web_answer({k: v for k, v in payload.items() if v is not None})


@router.get("/llm/models")
async def list_models(
    auth: AuthContext = Depends(require_permission("chat_ai.use")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    return await client.list_models()


# =============================================================================
# HOSTED RESEARCH
# =============================================================================

@router.post("/search/research")
async def start_hosted_research(
    request: HostedResearchRequest,
    auth: AuthContext = Depends(require_permission("chat_ai.use")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    """Start a Case.dev research task; poll it with GET /search/research/{id}"""
    if not request.instructions:
        raise HTTPException(status_code=400, detail="Instructions are required")

    payload = {
        "instructions": request.instructions,
        "model": request.model or DEFAULT_RESEARCH_MODEL,
        "outputFormat": request.output_format or "markdown",
        "outputSchema": request.output_schema,
    }
    data = await client.start_research({k: v for k, v in payload.items() if v is not None})
    logger.info(f"Hosted research {data.get('researchId')} started by {auth.user_id}")
    return data


@router.get("/search/research/{research_id}")
async def get_hosted_research(
    research_id: str,
    auth: AuthContext = Depends(require_permission("chat_ai.use")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    return await client.get_research(research_id)
