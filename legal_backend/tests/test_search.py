"""
Search And Health Tests
=======================
"""

from conftest import MEMBER, bearer


class TestWebSearch:
    def test_payload_drops_unset_filters(self, client, casedev, admin_headers):
        casedev.add("POST", "/search/v1/search", {"results": [{"title": "UCC 2-207"}]})
        response = client.post("/api/search", json={
            "query": "battle of the forms",
            "includeDomains": ["law.cornell.edu"],
        }, headers=admin_headers)

        assert response.json() == {"results": [{"title": "UCC 2-207"}]}
        assert casedev.last_json("POST", "/search/v1/search") == {
            "query": "battle of the forms",
            "numResults": 10,
            "type": "auto",
            "includeDomains": ["law.cornell.edu"],
        }

    def test_query_required(self, client, admin_headers):
        response = client.post("/api/search", json={}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Query is required"

    def test_upstream_error_is_forwarded(self, client, casedev, admin_headers):
        casedev.add("POST", "/search/v1/search", {"message": "Rate limit exceeded"}, status=429)
        response = client.post("/api/search", json={"query": "q"}, headers=admin_headers)
        assert response.status_code == 429
        assert response.json() == {"error": "Rate limit exceeded"}

    def test_pending_user_denied(self, client, admin_headers):
        client.post("/api/users/add", json={**MEMBER, "role": "pending"}, headers=admin_headers)
        login = client.post("/api/auth/login", json={"email": MEMBER["email"], "password": MEMBER["password"]})
        response = client.post("/api/search", json={"query": "q"}, headers=bearer(login.json()["access_token"]))
        assert response.status_code == 403
        assert response.json()["error"] == "Permission denied: chat_ai.use"


class TestAnswerAndModels:
    def test_answer(self, client, casedev, admin_headers):
        casedev.add("POST", "/search/v1/answer", {"answer": "Yes.", "citations": []})
        response = client.post("/api/search/answer", json={
            "query": "Is a verbal lease enforceable?", "systemPrompt": "Cite statutes.",
        }, headers=admin_headers)

        assert response.json()["answer"] == "Yes."
        assert casedev.last_json("POST", "/search/v1/answer") == {
            "query": "Is a verbal lease enforceable?",
            "systemPrompt": "Cite statutes.",
            "numResults": 10,
        }

    def test_models(self, client, casedev, admin_headers):
        casedev.add("GET", "/llm/v1/models", {"data": [{"id": "anthropic/claude-sonnet-4.5"}]})
        response = client.get("/api/llm/models", headers=admin_headers)
        assert response.json()["data"][0]["id"] == "anthropic/claude-sonnet-4.5"

    def test_requires_login(self, client):
        assert client.get("/api/llm/models").status_code == 401


class TestHostedResearch:
    def test_start_applies_defaults(self, client, casedev, admin_headers):
        casedev.add("POST", "/search/v1/research", {"researchId": "r-1", "status": "pending"})
        response = client.post("/api/search/research", json={
            "instructions": "Survey non-compete enforceability by state",
        }, headers=admin_headers)

        assert response.json() == {"researchId": "r-1", "status": "pending"}
        assert casedev.last_json("POST", "/search/v1/research") == {
            "instructions": "Survey non-compete enforceability by state",
            "model": "exa-research",
            "outputFormat": "markdown",
        }

    def test_instructions_required(self, client, admin_headers):
        response = client.post("/api/search/research", json={}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Instructions are required"

    def test_poll(self, client, casedev, admin_headers):
        casedev.add("GET", "/search/v1/research/r-1", {"researchId": "r-1", "status": "completed"})
        response = client.get("/api/search/research/r-1", headers=admin_headers)
        assert response.json()["status"] == "completed"


class TestHealth:
    def test_health_reports_queues(self, client):
        response = client.get("/health")
        data = response.json()

        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["caseApiConfigured"] is True
        assert data["queues"]["available"] is False

    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "DENY"
        assert "strict-transport-security" not in response.headers
