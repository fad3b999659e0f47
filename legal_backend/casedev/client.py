"""
Case.dev REST Client
====================

Async HTTP client for the Case.dev primitives used by the workspace:
vaults, OCR, voice, web search, hosted research, workflows, file
conversion, model listing and document formatting.
LLM chat completions live in `legal_backend.llm.client`.

All requests carry `Authorization: Bearer <CASE_API_KEY>`. Any non-2xx
response raises CaseDevError with the upstream status code.
"""

import json
import logging
from typing import Optional, Dict, Any, List, Tuple

import httpx

from ..config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.case.dev"


class CaseDevError(Exception):
    """Non-2xx response (or missing key) from Case.dev"""

    def __init__(self, status_code: int, message: str, detail: Optional[str] = None):
        self.status_code = status_code
        self.detail = detail or message
        super().__init__(message)

    @classmethod
    def from_response(cls, response: httpx.Response) -> "CaseDevError":
        text = response.text
        detail = text
        try:
            body = json.loads(text) if text else {}
            if isinstance(body, dict):
                detail = body.get("message") or body.get("error") or text
        except ValueError:
            pass
        return cls(
            response.status_code,
            f"Case.dev API error: {response.status_code} - {text}",
            detail=detail or None,
        )


class CaseDevClient:
    """
    Async client for Case.dev.

    Pass `transport` to route requests through a custom httpx transport
    (httpx.MockTransport in tests).
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self.transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise CaseDevError(500, "CASE_API_KEY not configured")
        return {"Authorization": f"Bearer {self.api_key}"}

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        client = await self._get_client()
        response = await client.request(
            method,
            f"{self.base_url}{path}",
            json=json_body,
            params=params,
            headers=self._headers(),
        )
        if response.status_code >= 400:
            logger.error(f"Case.dev {method} {path} failed: {response.status_code}")
            raise CaseDevError.from_response(response)
        return response

    async def _json(self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None,
                    params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._request(method, path, json_body=json_body, params=params)
        if not response.content:
            return {}
        return response.json()

    # =========================================================================
    # VAULTS
    # =========================================================================

    async def list_vaults(self) -> List[Dict[str, Any]]:
        data = await self._json("GET", "/vault")
        if isinstance(data, dict):
            return data.get("vaults", [])
        return data

    async def create_vault(self, name: str, description: Optional[str] = None,
                           enable_graph: bool = False) -> Dict[str, Any]:
        return await self._json("POST", "/vault", {
            "name": name,
            "description": description,
            "enableGraph": enable_graph,
        })

    async def get_vault(self, vault_id: str) -> Dict[str, Any]:
        return await self._json("GET", f"/vault/{vault_id}")

    async def list_objects(self, vault_id: str) -> List[Dict[str, Any]]:
        data = await self._json("GET", f"/vault/{vault_id}/objects")
        return data.get("objects") or []

    async def get_object(self, vault_id: str, object_id: str) -> Dict[str, Any]:
        """Object metadata including a short-lived downloadUrl"""
        return await self._json("GET", f"/vault/{vault_id}/objects/{object_id}")

    async def get_object_text(self, vault_id: str, object_id: str) -> Dict[str, Any]:
        return await self._json("GET", f"/vault/{vault_id}/objects/{object_id}/text")

    async def download_object(self, vault_id: str, object_id: str) -> Tuple[bytes, str]:
        response = await self._request("GET", f"/vault/{vault_id}/objects/{object_id}/download")
        return response.content, response.headers.get("content-type", "application/octet-stream")

    async def presigned_url(self, vault_id: str, object_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Presigned storage URL for GET/PUT/DELETE/HEAD on one object"""
        return await self._json("POST", f"/vault/{vault_id}/objects/{object_id}/presigned-url", payload)

    async def get_upload_url(self, vault_id: str, filename: str, content_type: str) -> Dict[str, Any]:
        """Presigned upload URL: {uploadUrl, objectId, ...}"""
        return await self._json("POST", f"/vault/{vault_id}/upload", {
            "filename": filename,
            "contentType": content_type,
        })

    async def upload_file(self, vault_id: str, filename: str, content_type: str, data: bytes) -> Dict[str, Any]:
        """Get a presigned URL, then PUT the bytes to storage"""
        target = await self.get_upload_url(vault_id, filename, content_type)
        upload_url = target.get("uploadUrl")
        if not upload_url:
            raise CaseDevError(502, "Case.dev did not return an upload URL")

        client = await self._get_client()
        response = await client.put(upload_url, content=data, headers={"Content-Type": content_type})
        if response.status_code >= 400:
            logger.error(f"Storage upload failed: {response.status_code}")
            raise CaseDevError(response.status_code, f"S3 upload failed: {response.status_code}")

        logger.info(f"Uploaded {filename} ({len(data)} bytes) to vault {vault_id}")
        return {"objectId": target.get("objectId"), "filename": filename, "size": len(data)}

    async def ingest(self, vault_id: str, object_id: str, enable_graphrag: bool = False) -> Dict[str, Any]:
        return await self._json("POST", f"/vault/{vault_id}/ingest/{object_id}", {
            "enable_graphrag": enable_graphrag,
        })

    async def search_vault_raw(self, vault_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json("POST", f"/vault/{vault_id}/search", payload)

    async def search_vault(
        self,
        vault_id: str,
        query: str,
        top_k: int = 10,
        method: str = "hybrid",
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Semantic search; returns the chunk list"""
        payload: Dict[str, Any] = {"query": query, "topK": top_k, "method": method}
        if filters:
            payload["filters"] = filters
        data = await self.search_vault_raw(vault_id, payload)
        return data.get("chunks") or data.get("results") or []

    # =========================================================================
    # DEEP RESEARCH (hosted)
    # =========================================================================

    async def start_research(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Starts a hosted research task; returns {researchId, status, ...}"""
        return await self._json("POST", "/search/v1/research", payload)

    async def get_research(self, research_id: str) -> Dict[str, Any]:
        return await self._json("GET", f"/search/v1/research/{research_id}")

    # =========================================================================
    # WORKFLOWS
    # =========================================================================

    async def list_workflows(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._json("GET", "/workflows/v1", params=params)

    async def search_workflows(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Semantic workflow search: {query, limit, category?}"""
        return await self._json("POST", "/workflows/v1/search", payload)

    async def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return await self._json("GET", f"/workflows/v1/{workflow_id}")

    async def execute_workflow(self, workflow_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Run a workflow on {input: {text|document_url|vault_object_id}, options, variables}"""
        return await self._json("POST", f"/workflows/v1/{workflow_id}/execute", payload)

    # =========================================================================
    # CONVERT
    # =========================================================================

    async def convert(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json("POST", "/convert/v1/process", payload)

    async def get_convert_job(self, job_id: str) -> Dict[str, Any]:
        return await self._json("GET", f"/convert/v1/jobs/{job_id}")

    async def delete_convert_job(self, job_id: str) -> Dict[str, Any]:
        return await self._json("DELETE", f"/convert/v1/jobs/{job_id}")

    async def download_converted(self, job_id: str) -> httpx.Response:
        """Raw response so callers can pass content type and disposition through"""
        return await self._request("GET", f"/convert/v1/download/{job_id}")

    # =========================================================================
    # OCR
    # =========================================================================

    async def submit_ocr(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json("POST", "/ocr/v1/process", payload)

    async def get_ocr_job(self, job_id: str) -> Dict[str, Any]:
        return await self._json("GET", f"/ocr/v1/{job_id}")

    async def download_ocr(self, job_id: str, result_type: str) -> Tuple[bytes, str]:
        response = await self._request("GET", f"/ocr/v1/{job_id}/download/{result_type}")
        return response.content, response.headers.get("content-type", "application/octet-stream")

    # =========================================================================
    # VOICE
    # =========================================================================

    async def submit_transcription(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json("POST", "/voice/transcription", payload)

    async def get_transcription(self, transcription_id: str) -> Dict[str, Any]:
        return await self._json("GET", f"/voice/transcription/{transcription_id}")

    async def speak(self, payload: Dict[str, Any]) -> Tuple[bytes, str]:
        response = await self._request("POST", "/voice/v1/speak", payload)
        return response.content, response.headers.get("content-type") or "audio/mpeg"

    # =========================================================================
    # SEARCH / MODELS / FORMAT
    # =========================================================================

    async def web_search(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json("POST", "/search/v1/search", payload)

    async def web_answer(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json("POST", "/search/v1/answer", payload)

    async def list_models(self) -> Dict[str, Any]:
        return await self._json("GET", "/llm/v1/models")

    async def format_document(
        self,
        content: str,
        output_format: str,
        input_format: str = "md",
        options: Optional[Dict[str, Any]] = None,
    ) -> bytes:
        """Render markdown to pdf/docx"""
        response = await self._request("POST", "/format/v1/document", {
            "content": content,
            "input_format": input_format,
            "output_format": output_format,
            "options": options,
        })
        return response.content

    async def format_raw(self, payload: Dict[str, Any]) -> httpx.Response:
        """Pass-through /format/v1/document call; the raw response keeps its headers"""
        return await self._request("POST", "/format/v1/document", payload)

    async def list_format_templates(self, template_type: Optional[str] = None) -> Dict[str, Any]:
        params = {"type": template_type} if template_type else None
        return await self._json("GET", "/format/v1/templates", params=params)

    async def create_format_template(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json("POST", "/format/v1/templates", payload)

    async def get_format_template(self, template_id: str) -> Dict[str, Any]:
        return await self._json("GET", f"/format/v1/templates/{template_id}")


# Module singleton
_client: Optional[CaseDevClient] = None


def get_casedev_client() -> CaseDevClient:
    """Get the shared Case.dev client (FastAPI dependency)"""
    global _client
    if _client is None:
        settings = get_settings()
        _client = CaseDevClient(
            api_key=settings.case_api_key,
            base_url=settings.case_api_url,
            timeout=settings.casedev_timeout,
        )
    return _client


async def close_casedev_client():
    global _client
    if _client is not None:
        await _client.close()
        _client = None
