"""
Hugging Face Catalogue Endpoints
================================
"""

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException

from .auth import AuthContext, require_auth
from .huggingface import HuggingFaceClient, HuggingFaceError, get_huggingface_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/huggingface", tags=["huggingface"])


@router.get("/datasets")
async def search_datasets(
    search: str = "",
    limit: int = 20,
    auth: AuthContext = Depends(require_auth),
    hub: HuggingFaceClient = Depends(get_huggingface_client),
):
    try:
        return await hub.search_datasets(search, limit)
    except (HuggingFaceError, httpx.HTTPError) as e:
        logger.error(f"HuggingFace datasets error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch datasets")


@router.get("/models")
async def search_models(
    search: str = "",
    limit: int = 20,
    auth: AuthContext = Depends(require_auth),
    hub: HuggingFaceClient = Depends(get_huggingface_client),
):
    try:
        return await hub.search_models(search, limit)
    except (HuggingFaceError, httpx.HTTPError) as e:
        logger.error(f"HuggingFace models error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch models")
