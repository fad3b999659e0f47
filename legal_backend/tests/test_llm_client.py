"""
LLM Client Tests
================

SSE parsing for plain and tool-calling streams.
"""

import json

import httpx
import pytest

from legal_backend.llm import CaseLLMClient, LLMError

from conftest import completion, completion_sse, tool_call


def _client(body: bytes, status: int = 200) -> CaseLLMClient:
    def handler(request):
        return httpx.Response(status, content=body, headers={"content-type": "text/event-stream"})
    return CaseLLMClient(api_key="test-key", transport=httpx.MockTransport(handler))


class TestStream:
    @pytest.mark.asyncio
    async def test_skips_malformed_lines_and_done(self):
        body = "\n\n".join([
            ": keep-alive",
            "data: {not json",
            'data: {"choices": []}',
            "data: " + json.dumps({"choices": [{"delta": {"content": "Hello"}}]}),
            "event: ping",
            "data: [DONE]",
            "data: " + json.dumps({"choices": [{"delta": {"content": " world"}}]}),
        ]).encode()

        chunks = [chunk async for chunk in _client(body).stream([], model="m")]
        assert chunks == ["Hello", " world"]

    @pytest.mark.asyncio
    async def test_rejected_request_raises(self):
        with pytest.raises(LLMError, match="quota exceeded"):
            async for _ in _client(b'{"message": "quota exceeded"}', status=429).stream([], model="m"):
                pass

    @pytest.mark.asyncio
    async def test_missing_key_raises(self):
        client = CaseLLMClient(api_key=None)
        with pytest.raises(LLMError):
            async for _ in client.stream([], model="m"):
                pass


class TestStreamWithTools:
    @pytest.mark.asyncio
    async def test_assembles_tool_calls_and_usage(self):
        body = completion_sse(completion(
            "Checking.",
            tool_calls=[
                tool_call("search_vault", {"vaultId": "v1", "query": "rent"}),
                tool_call("web_search", {"query": "holdover tenant"}, call_id="call_2"),
            ],
            prompt_tokens=40,
            completion_tokens=12,
        ))

        events = [e async for e in _client(body).stream_with_tools([], model="m", tools=[{"type": "function"}])]
        deltas = [e["text"] for e in events if e["type"] == "text-delta"]
        result = events[-1]["result"]

        assert "".join(deltas) == "Checking."
        assert result.content == "Checking."
        assert (result.input_tokens, result.output_tokens) == (40, 12)
        assert [c["id"] for c in result.tool_calls] == ["call_1", "call_2"]
        assert json.loads(result.tool_calls[0]["function"]["arguments"]) == {"vaultId": "v1", "query": "rent"}
        assert result.tool_calls[1]["function"]["name"] == "web_search"

    @pytest.mark.asyncio
    async def test_plain_answer_has_no_tool_calls(self):
        events = [e async for e in _client(completion_sse(completion("Done."))).stream_with_tools([], model="m")]
        assert events[-1]["type"] == "finish"
        assert events[-1]["result"].tool_calls is None
