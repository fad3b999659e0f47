"""
Workflow Tests
==============

/api/workflows routes and the workflow chat tools.
"""

import pytest

from legal_backend.chat import ChatToolbox

WORKFLOW = {
    "id": "wf-1",
    "name": "Deposition Summary",
    "description": "Summarize a deposition transcript",
    "parent_category": "litigation",
    "sub_category": "discovery",
    "type": "document-processing",
    "stage": "production",
    "version": "1.2",
    "similarity_score": 0.91,
    "demo_video_link": "https://video/demo",
    "link_to_ground_truth_example": "https://examples/truth",
    "link_to_generated_example": "https://examples/generated",
}

EXECUTION = {
    "id": "ex-1",
    "workflow_id": "wf-1",
    "workflow_name": "Deposition Summary",
    "status": "completed",
    "output": {"format": "json", "data": {"summary": "Witness recalls nothing."}},
    "usage": {"prompt_tokens": 900, "completion_tokens": 120, "total_tokens": 1020, "cost": 0.01},
    "created_at": "2025-01-01T00:00:00Z",
    "duration_ms": 4200,
}


class TestWorkflowRoutes:
    def test_list_passes_query_through(self, client, casedev, admin_headers):
        casedev.add("GET", "/workflows/v1", {"data": [WORKFLOW], "total": 1})
        response = client.get("/api/workflows?category=litigation&limit=5", headers=admin_headers)

        assert response.json()["total"] == 1
        params = casedev.calls("GET", "/workflows/v1")[-1].url.params
        assert params["category"] == "litigation"
        assert params["limit"] == "5"

    def test_list_failure(self, client, casedev, admin_headers):
        casedev.add("GET", "/workflows/v1", {"message": "boom"}, status=502)
        response = client.get("/api/workflows", headers=admin_headers)
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch workflows"}

    def test_search(self, client, casedev, admin_headers):
        casedev.add("POST", "/workflows/v1/search", {"data": [WORKFLOW]})
        response = client.post("/api/workflows/search", json={"query": "deposition", "limit": 3},
                               headers=admin_headers)
        assert response.json()["data"][0]["id"] == "wf-1"
        assert casedev.last_json("POST", "/workflows/v1/search") == {"query": "deposition", "limit": 3}

    def test_get_failure(self, client, casedev, admin_headers):
        response = client.get("/api/workflows/missing", headers=admin_headers)
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch workflow details"}

    def test_execute_forwards_upstream_error(self, client, casedev, admin_headers):
        casedev.add("POST", "/workflows/v1/wf-1/execute", {"message": "Input too large"}, status=413)
        response = client.post("/api/workflows/wf-1/execute", json={"input": {"text": "x"}},
                               headers=admin_headers)
        assert response.status_code == 413
        assert response.json() == {"error": "Input too large"}

    def test_requires_login(self, client):
        assert client.get("/api/workflows").status_code == 401


class TestCombinedExecution:
    def test_documents_are_joined_with_markers(self, client, casedev, admin_headers):
        casedev.add("GET", "/vault/v1/objects/o1/text", {"text": "First page."})
        casedev.add("GET", "/vault/v2/objects/o2/text", {"text": "Second page."})
        casedev.add("POST", "/workflows/v1/wf-1/execute", EXECUTION)

        response = client.post("/api/workflows/wf-1/execute-combined", json={
            "documents": [
                {"vaultId": "v1", "id": "o1", "name": "a.pdf"},
                {"vaultId": "v2", "id": "o2", "name": "b.pdf"},
            ],
            "options": {"model": "anthropic/claude-sonnet-4.5"},
        }, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["id"] == "ex-1"
        body = casedev.last_json("POST", "/workflows/v1/wf-1/execute")
        assert body["input"]["text"] == (
            "--- DOCUMENT START: a.pdf ---\nFirst page.\n--- DOCUMENT END: a.pdf ---\n\n"
            "\n"
            "--- DOCUMENT START: b.pdf ---\nSecond page.\n--- DOCUMENT END: b.pdf ---\n\n"
        )
        assert body["options"] == {"model": "anthropic/claude-sonnet-4.5"}
        assert "variables" not in body

    def test_no_documents(self, client, admin_headers):
        response = client.post("/api/workflows/wf-1/execute-combined", json={"documents": []},
                               headers=admin_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "No documents provided for combined execution"}

    def test_missing_text_fails_before_execution(self, client, casedev, admin_headers):
        casedev.add("GET", "/vault/v1/objects/o1/text", {"text": ""})
        response = client.post("/api/workflows/wf-1/execute-combined", json={
            "documents": [{"vaultId": "v1", "id": "o1", "name": "scan.pdf"}],
        }, headers=admin_headers)

        assert response.status_code == 500
        assert response.json() == {"error": "No text returned for scan.pdf"}
        assert casedev.calls("POST", "/workflows/v1/wf-1/execute") == []


class TestWorkflowTools:
    @pytest.mark.asyncio
    async def test_search_with_query_uses_semantic_search(self, casedev):
        casedev.add("POST", "/workflows/v1/search", {"data": [WORKFLOW]})
        toolbox = ChatToolbox(casedev.client(), user_id="u")
        result = await toolbox.execute("search_workflows", {"query": "deposition", "category": "litigation"})

        assert result["query"] == "deposition"
        assert result["totalWorkflows"] == 1
        assert result["workflows"][0] == {
            "id": "wf-1",
            "name": "Deposition Summary",
            "description": "Summarize a deposition transcript",
            "parentCategory": "litigation",
            "subCategory": "discovery",
            "type": "document-processing",
            "stage": "production",
            "version": "1.2",
            "similarityScore": 0.91,
        }
        assert casedev.last_json("POST", "/workflows/v1/search") == {
            "query": "deposition", "limit": 20, "category": "litigation",
        }

    @pytest.mark.asyncio
    async def test_search_without_query_lists_published(self, casedev):
        casedev.add("GET", "/workflows/v1", {"data": [WORKFLOW, WORKFLOW], "total": 7})
        toolbox = ChatToolbox(casedev.client(), user_id="u")
        result = await toolbox.execute("search_workflows", {"subCategory": "discovery", "limit": 2})

        assert result["query"] == "all"
        assert result["totalWorkflows"] == 7
        params = casedev.calls("GET", "/workflows/v1")[-1].url.params
        assert params["sub_category"] == "discovery"
        assert params["published"] == "true"
        assert params["limit"] == "2"

    @pytest.mark.asyncio
    async def test_forbidden_explains_access(self, casedev):
        casedev.add("GET", "/workflows/v1/wf-1", {"message": "Forbidden"}, status=403)
        result = await ChatToolbox(casedev.client(), user_id="u").execute("get_workflow", {"workflowId": "wf-1"})
        assert result["error"] == "Forbidden. Please ensure your API key has Workflows service access enabled."

    @pytest.mark.asyncio
    async def test_get_workflow_maps_links(self, casedev):
        casedev.add("GET", "/workflows/v1/wf-1", WORKFLOW)
        result = await ChatToolbox(casedev.client(), user_id="u").execute("get_workflow", {"workflowId": "wf-1"})
        assert result["demoVideoLink"] == "https://video/demo"
        assert result["groundTruthExample"] == "https://examples/truth"
        assert result["generatedExample"] == "https://examples/generated"

    @pytest.mark.asyncio
    async def test_execute_builds_input_and_options(self, casedev):
        casedev.add("POST", "/workflows/v1/wf-1/execute", EXECUTION)
        toolbox = ChatToolbox(casedev.client(), user_id="u")
        result = await toolbox.execute("execute_workflow", {
            "workflowId": "wf-1",
            "vaultObjectId": "o1",
            "maxTokens": 1000,
            "format": "json",
            "variables": {"case_name": "Smith v. Hospital"},
        })

        assert casedev.last_json("POST", "/workflows/v1/wf-1/execute") == {
            "input": {"vault_object_id": "o1"},
            "options": {"max_tokens": 1000, "format": "json"},
            "variables": {"case_name": "Smith v. Hospital"},
        }
        assert result["executionId"] == "ex-1"
        assert result["outputData"] == {"summary": "Witness recalls nothing."}
        assert result["usage"] == {"promptTokens": 900, "completionTokens": 120, "totalTokens": 1020, "cost": 0.01}
        assert result["durationMs"] == 4200

    @pytest.mark.asyncio
    async def test_execute_needs_exactly_one_input(self, casedev):
        toolbox = ChatToolbox(casedev.client(), user_id="u")
        result = await toolbox.execute("execute_workflow", {"workflowId": "wf-1", "text": "a", "documentUrl": "b"})
        assert result == {"error": "Exactly one of text, documentUrl, or vaultObjectId must be provided"}
        assert casedev.requests == []
