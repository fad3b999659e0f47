"""
Case.dev LLM Client
===================

Async client for the OpenAI-compatible Case.dev chat completions
endpoint. Used by deep research, tabular extraction and the chat agent.
"""

import json
import httpx
import logging
from typing import Optional, Dict, Any, List, AsyncIterator
from dataclasses import dataclass

from ..config import get_settings

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Streaming request failed"""


@dataclass
class LLMCallResult:
    """Result from an LLM API call"""
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    raw_response: Optional[Dict] = None
    success: bool = True
    error: Optional[str] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class CaseLLMClient:
    """
    Async client for /llm/v1/chat/completions.

    call() never raises: failures come back as LLMCallResult(success=False).
    stream() and stream_with_tools() raise LLMError when the request is rejected.
    """

    PATH = "/llm/v1/chat/completions"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.case.dev",
        timeout: int = 120,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def call(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        temperature: float = 0,
        max_tokens: int = 2048,
        tools: Optional[List[Dict[str, Any]]] = None,
        top_p: Optional[float] = None,
    ) -> LLMCallResult:
        """
        Make a non-streaming completion call.

        Args:
            messages: List of message dicts with role and content
            model: Model id (e.g. anthropic/claude-sonnet-4.5)
            temperature: Sampling temperature
            max_tokens: Maximum response tokens
            tools: Optional OpenAI-style function tool specs

        Returns:
            LLMCallResult with content (and tool_calls) or error
        """
        if not self.api_key:
            return LLMCallResult(
                content="",
                model=model,
                success=False,
                error="CASE_API_KEY not configured"
            )

        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if top_p is not None:
            payload["top_p"] = top_p
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        try:
            client = await self._get_client()
            response = await client.post(
                f"{self.base_url}{self.PATH}",
                json=payload,
                headers=self._headers()
            )
            response.raise_for_status()
            data = response.json()

            try:
                message = data["choices"][0]["message"]
            except (KeyError, IndexError) as e:
                logger.error(f"LLM response missing content: {e}")
                return LLMCallResult(
                    content="",
                    model=model,
                    success=False,
                    error=f"Response missing content: {e}",
                    raw_response=data
                )

            usage = data.get("usage") or {}

            return LLMCallResult(
                content=message.get("content") or "",
                model=model,
                input_tokens=usage.get("prompt_tokens", 0),
                output_tokens=usage.get("completion_tokens", 0),
                raw_response=data,
                success=True,
                tool_calls=message.get("tool_calls") or None,
            )

        except httpx.HTTPStatusError as e:
            logger.error(f"LLM API error: {e.response.status_code}")
            return LLMCallResult(
                content="",
                model=model,
                success=False,
                error=f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            )
        except httpx.HTTPError as e:
            logger.error(f"LLM request failed: {e}")
            return LLMCallResult(
                content="",
                model=model,
                success=False,
                error=str(e)
            )

    async def call_with_tools(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        top_p: Optional[float] = None,
    ) -> LLMCallResult:
        """Completion with function tools; tool_calls is set when the model asks for them"""
        return await self.call(
            messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            tools=tools,
            top_p=top_p,
        )

    async def _sse_chunks(self, payload: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """
        Parsed JSON chunks of a streaming completion.

        Lines look like `data: {json}`; `data: [DONE]` markers and
        malformed chunks are skipped.
        """
        if not self.api_key:
            raise LLMError("CASE_API_KEY not configured")

        client = await self._get_client()
        async with client.stream(
            "POST",
            f"{self.base_url}{self.PATH}",
            json=payload,
            headers=self._headers(),
        ) as response:
            if response.status_code >= 400:
                body = await response.aread()
                raise LLMError(f"LLM request failed: {body.decode('utf-8', errors='replace')[:500]}")

            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue
                data = line[6:].strip()
                if data == "[DONE]":
                    continue
                try:
                    parsed = json.loads(data)
                except ValueError:
                    continue
                if isinstance(parsed, dict):
                    yield parsed

    async def stream(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> AsyncIterator[str]:
        """Stream delta content from an SSE completion"""
        payload = {
            "model": model,
            "messages": messages,
            "stream": True,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        async for chunk in self._sse_chunks(payload):
            choices = chunk.get("choices") or []
            if not choices:
                continue
            content = (choices[0].get("delta") or {}).get("content")
            if content:
                yield content

    async def stream_with_tools(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        top_p: Optional[float] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Stream one completion step, tools included.

        Yields {"type": "text-delta", "text"} as tokens arrive, then a
        single {"type": "finish", "result": LLMCallResult} whose
        tool_calls are assembled from the indexed tool-call deltas.

        Raises:
            LLMError: request rejected or no API key
        """
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if top_p is not None:
            payload["top_p"] = top_p
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        content: List[str] = []
        calls: Dict[int, Dict[str, Any]] = {}
        usage: Dict[str, Any] = {}

        async for chunk in self._sse_chunks(payload):
            if chunk.get("usage"):
                usage = chunk["usage"]
            choices = chunk.get("choices") or []
            if not choices:
                continue
            delta = choices[0].get("delta") or {}

            text = delta.get("content")
            if text:
                content.append(text)
                yield {"type": "text-delta", "text": text}

            for part in delta.get("tool_calls") or []:
                call = calls.setdefault(part.get("index", len(calls)), {
                    "id": None,
                    "type": "function",
                    "function": {"name": "", "arguments": ""},
                })
                if part.get("id"):
                    call["id"] = part["id"]
                function = part.get("function") or {}
                if function.get("name"):
                    call["function"]["name"] += function["name"]
                if function.get("arguments"):
                    call["function"]["arguments"] += function["arguments"]

        yield {
            "type": "finish",
            "result": LLMCallResult(
                content="".join(content),
                model=model,
                input_tokens=usage.get("prompt_tokens", 0),
                output_tokens=usage.get("completion_tokens", 0),
                tool_calls=[calls[i] for i in sorted(calls)] or None,
            ),
        }


# Module singleton
_llm_client: Optional[CaseLLMClient] = None


def get_llm_client() -> CaseLLMClient:
    """Get the shared LLM client (FastAPI dependency)"""
    global _llm_client
    if _llm_client is None:
        settings = get_settings()
        _llm_client = CaseLLMClient(
            api_key=settings.case_api_key,
            base_url=settings.case_api_url,
            timeout=settings.llm_timeout,
        )
    return _llm_client


async def close_llm_client():
    global _llm_client
    if _llm_client is not None:
        await _llm_client.close()
        _llm_client = None
