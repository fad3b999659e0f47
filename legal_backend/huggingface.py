"""
Hugging Face Hub Client
=======================

Public dataset and text-generation model search on the Hugging Face Hub,
reduced to the fields the model catalogue shows, plus a rough VRAM
estimate derived from the model name.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

HF_API_URL = "https://huggingface.co/api"

# Checked in order; the first size tag found in the lowercased id wins
VRAM_BY_SIZE = (
    (("70b", "72b"), 140),
    (("65b",), 130),
    (("40b",), 80),
    (("34b", "33b"), 68),
    (("30b",), 60),
    (("27b",), 54),
    (("22b",), 44),
    (("13b", "14b"), 28),
    (("8b", "9b"), 18),
    (("7b",), 16),
    (("3b", "4b"), 8),
    (("2b",), 5),
    (("1b", "1.5b"), 4),
    (("500m", "350m"), 2),
)
DEFAULT_VRAM_GB = 16

PARAM_PATTERNS = (
    re.compile(r"(\d+\.?\d*)b"),
    re.compile(r"(\d+)m"),
)


def estimate_vram(model_id: str) -> int:
    """GB of VRAM needed to serve a model, guessed from its name"""
    lowered = model_id.lower()
    for tags, gigabytes in VRAM_BY_SIZE:
        if any(tag in lowered for tag in tags):
            return gigabytes
    return DEFAULT_VRAM_GB


def extract_params(model_id: str) -> str:
    """Parameter count as written in the name ("7B", "1.5B", "350M")"""
    lowered = model_id.lower()
    for pattern in PARAM_PATTERNS:
        match = pattern.search(lowered)
        if match:
            return match.group(0).upper()
    return "Unknown"


class HuggingFaceError(Exception):
    """Non-2xx response from the Hub"""


class HuggingFaceClient:
    """Async Hub search client; `transport` is injectable like CaseDevClient's"""

    def __init__(
        self,
        base_url: str = HF_API_URL,
        timeout: int = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _search(self, kind: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        client = await self._get_client()
        response = await client.get(
            f"{self.base_url}/{kind}",
            params=params,
            headers={"Accept": "application/json"},
        )
        if response.status_code >= 400:
            raise HuggingFaceError(f"HuggingFace API error: {response.status_code}")
        return response.json()

    @staticmethod
    def _summary(item: Dict[str, Any]) -> Dict[str, Any]:
        item_id = item["id"]
        return {
            "id": item_id,
            "name": item_id.split("/")[-1],
            "author": item.get("author") or item_id.split("/")[0],
            "downloads": item.get("downloads") or 0,
            "likes": item.get("likes") or 0,
            "tags": item.get("tags") or [],
            "lastModified": item.get("lastModified"),
        }

    async def search_datasets(self, search: str = "", limit: int = 20) -> List[Dict[str, Any]]:
        datasets = await self._search("datasets", {
            "search": search,
            "limit": limit,
            "sort": "downloads",
            "direction": -1,
        })
        return [
            {**self._summary(ds), "description": ds.get("description") or ""}
            for ds in datasets
        ]

    async def search_models(self, search: str = "", limit: int = 20) -> List[Dict[str, Any]]:
        """Text-generation models, most downloaded first"""
        models = await self._search("models", {
            "search": search,
            "limit": limit,
            "sort": "downloads",
            "direction": -1,
            "filter": "text-generation",
        })
        return [
            {
                **self._summary(model),
                "pipeline": model.get("pipeline_tag") or "text-generation",
                "vram": estimate_vram(model["id"]),
                "params": extract_params(model["id"]),
            }
            for model in models
        ]


_hf_client: Optional[HuggingFaceClient] = None


def get_huggingface_client() -> HuggingFaceClient:
    """Shared Hub client (FastAPI dependency)"""
    global _hf_client
    if _hf_client is None:
        _hf_client = HuggingFaceClient()
    return _hf_client


async def close_huggingface_client():
    global _hf_client
    if _hf_client is not None:
        await _hf_client.close()
        _hf_client = None
