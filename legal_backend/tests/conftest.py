"""
Shared Test Fixtures
====================

Every test gets a fresh SQLite database and settings cache. Case.dev
and the LLM endpoint are replaced with httpx.MockTransport fakes that
are injected through FastAPI dependency overrides.
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest
from fastapi.testclient import TestClient

from legal_backend.api import app
from legal_backend.casedev import CaseDevClient, get_casedev_client
from legal_backend.config import get_settings
from legal_backend.db import init_db, reset_engine, DatabaseManager
from legal_backend.llm import CaseLLMClient, get_llm_client

ADMIN = {"email": "admin@lawfirm.com", "password": "admin-password", "name": "Ada Admin"}
MEMBER = {"email": "member@lawfirm.com", "password": "member-password", "name": "Mo Member"}

Reply = Union[Dict[str, Any], List[Any], httpx.Response, Callable[[httpx.Request], httpx.Response]]


# =============================================================================
# Fake Case.dev
# =============================================================================

class FakeCaseDev:
    """
    Route table for a MockTransport.

    Routes are keyed by (method, path); unknown routes return 404 so a
    test fails loudly when the code calls something unexpected.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Reply] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, reply: Reply, status: int = 200):
        if isinstance(reply, (dict, list)):
            body = reply
            reply = lambda request: httpx.Response(status, json=body)  # noqa: E731
        self.routes[(method.upper(), path)] = reply

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.routes.get((request.method, request.url.path))
        if reply is None:
            return httpx.Response(404, json={"message": f"no fake for {request.method} {request.url.path}"})
        if isinstance(reply, httpx.Response):
            return reply
        return reply(request)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def last_json(self, method: str, path: str) -> Any:
        return json.loads(self.calls(method, path)[-1].content)

    def client(self, api_key: Optional[str] = "test-key") -> CaseDevClient:
        return CaseDevClient(
            api_key=api_key,
            base_url="https://api.case.dev",
            transport=httpx.MockTransport(self.handler),
        )


# =============================================================================
# Fake LLM
# =============================================================================

def completion(content: str = "", tool_calls: Optional[List[Dict[str, Any]]] = None,
               prompt_tokens: int = 10, completion_tokens: int = 5) -> Dict[str, Any]:
    message: Dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {
        "choices": [{"message": message}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


def tool_call(name: str, arguments: Dict[str, Any], call_id: str = "call_1") -> Dict[str, Any]:
    return {
        "id": call_id,
        "type": "function",
        "function": {"name": name, "arguments": json.dumps(arguments)},
    }


def _sse(chunks: List[Dict[str, Any]]) -> bytes:
    lines = ["data: " + json.dumps(chunk) for chunk in chunks]
    lines.append("data: [DONE]")
    return ("\n\n".join(lines) + "\n\n").encode()


def sse_body(chunks: List[str]) -> bytes:
    return _sse([{"choices": [{"delta": {"content": chunk}}]} for chunk in chunks])


def completion_sse(response: Dict[str, Any]) -> bytes:
    """A scripted completion replayed as word deltas, tool-call fragments and a usage chunk"""
    message = response["choices"][0]["message"]
    chunks = [
        {"choices": [{"delta": {"content": piece}}]}
        for piece in re.findall(r"\s*\S+", message.get("content") or "")
    ]
    for index, call in enumerate(message.get("tool_calls") or []):
        arguments = call["function"]["arguments"]
        half = len(arguments) // 2
        chunks.append({"choices": [{"delta": {"tool_calls": [{
            "index": index, "id": call["id"], "type": "function",
            "function": {"name": call["function"]["name"], "arguments": arguments[:half]},
        }]}}]})
        chunks.append({"choices": [{"delta": {"tool_calls": [{
            "index": index, "function": {"arguments": arguments[half:]},
        }]}}]})
    chunks.append({"choices": [], "usage": response.get("usage")})
    return _sse(chunks)


class FakeLLM:
    """
    Scripted chat completions.

    Calls pop `responses` in order (the last one repeats). Streaming calls
    replay the popped response as deltas, unless `stream_chunks` is set,
    in which case they get exactly those chunks. `stream_status` fails
    every streaming call with that HTTP status.
    """

    def __init__(self):
        self.responses: List[Dict[str, Any]] = [completion("ok")]
        self.stream_chunks: Optional[List[str]] = None
        self.stream_status = 200
        self.payloads: List[Dict[str, Any]] = []

    def queue(self, *responses: Dict[str, Any]):
        self.responses = list(responses)

    def _next(self) -> Dict[str, Any]:
        return self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.payloads.append(payload)
        if not payload.get("stream"):
            return httpx.Response(200, json=self._next())

        if self.stream_status != 200:
            return httpx.Response(self.stream_status, json={"message": "model overloaded"})
        body = sse_body(self.stream_chunks) if self.stream_chunks is not None else completion_sse(self._next())
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    def client(self) -> CaseLLMClient:
        return CaseLLMClient(
            api_key="test-key",
            base_url="https://api.case.dev",
            transport=httpx.MockTransport(self.handler),
        )


def parse_sse(text: str) -> List[Dict[str, Any]]:
    """Decode `data: {...}` frames from an SSE body"""
    events = []
    for frame in text.split("\n\n"):
        frame = frame.strip()
        if frame.startswith("data: "):
            events.append(json.loads(frame[6:]))
    return events


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Fresh database and settings for every test"""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("CASE_API_KEY", "test-key")
    monkeypatch.setenv("IS_DEV", "false")
    monkeypatch.setenv("REDIS_URL", "redis://127.0.0.1:1/0")
    get_settings.cache_clear()
    reset_engine()
    init_db()
    yield
    app.dependency_overrides.clear()
    reset_engine()
    get_settings.cache_clear()


@pytest.fixture
def db():
    with DatabaseManager() as manager:
        yield manager.session


@pytest.fixture
def casedev():
    return FakeCaseDev()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def client(casedev, llm):
    """TestClient with Case.dev and LLM fakes injected"""
    casedev_client = casedev.client()
    llm_client = llm.client()
    app.dependency_overrides[get_casedev_client] = lambda: casedev_client
    app.dependency_overrides[get_llm_client] = lambda: llm_client
    with TestClient(app) as c:
        yield c


def signup(client: TestClient, user: Dict[str, str]) -> Dict[str, Any]:
    response = client.post("/api/auth/signup", json=user)
    assert response.status_code == 201, response.text
    return response.json()


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(client):
    """Sign up the first user (admin) and return auth headers"""
    data = signup(client, ADMIN)
    return bearer(data["access_token"])


@pytest.fixture
def member_headers(client, admin_headers):
    """A regular user added by the admin"""
    response = client.post("/api/users/add", json={**MEMBER, "role": "user"}, headers=admin_headers)
    assert response.status_code == 200, response.text
    login = client.post("/api/auth/login", json={"email": MEMBER["email"], "password": MEMBER["password"]})
    return bearer(login.json()["access_token"])
