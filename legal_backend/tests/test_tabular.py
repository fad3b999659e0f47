"""
Tabular Analysis Tests
======================

Value parsing, single-cell extraction and the streamed run over
documents x columns.
"""

import json

import httpx
import pytest

from legal_backend.db import TabularAnalysis, User
from legal_backend.llm import CaseLLMClient
from legal_backend.tabular import (
    TabularRunner,
    build_search_query,
    build_system_prompt,
    extract_cell_value,
    parse_extracted_value,
)

from conftest import completion, parse_sse


COLUMNS = [
    {"name": "Counterparty", "prompt": "Who is the other party?", "dataType": "text"},
    {"name": "Amount", "prompt": "Total contract value", "dataType": "number"},
]


def _search_handler(request: httpx.Request) -> httpx.Response:
    """Chunks for whichever document the search is scoped to"""
    body = json.loads(request.content)
    document_id = body["filters"]["object_id"]
    return httpx.Response(200, json={"chunks": [
        {"text": f"Text of {document_id}", "object_id": document_id, "object_name": f"{document_id}.pdf"},
    ]})


class TestValueParsing:
    @pytest.mark.parametrize("raw, data_type, expected", [
        ("NOT_FOUND", "text", (None, 0)),
        ("The value was not found.", "number", (None, 0)),
        ("Yes", "boolean", (True, 0.9)),
        ("false", "boolean", (False, 0.9)),
        ("maybe", "boolean", (None, 0.3)),
        ("$1,250.50", "number", (1250.5, 0.85)),
        ("42 units", "number", (42, 0.85)),
        ("n/a", "number", (None, 0.3)),
        ("March 3, 2024", "date", ("2024-03-03", 0.85)),
        ("sometime soon", "date", ("sometime soon", 0.6)),
        ("  Acme Corp  ", "text", ("Acme Corp", 0.8)),
    ])
    def test_parse(self, raw, data_type, expected):
        assert parse_extracted_value(raw, data_type) == expected


class TestPrompts:
    def test_search_query_includes_dependencies(self):
        query = build_search_query(COLUMNS[1], {"Counterparty": "Acme"})
        assert query == "Amount: Total contract value (Context: Counterparty: Acme)"

    def test_system_prompt_lists_context(self):
        prompt = build_system_prompt(COLUMNS[1], {"Counterparty": "Acme"})
        assert "- Expected Type: number" in prompt
        assert "CONTEXT FROM OTHER COLUMNS:\n- Counterparty: Acme" in prompt
        assert "CONTEXT FROM OTHER COLUMNS" not in build_system_prompt(COLUMNS[0])


class TestExtractCell:
    @pytest.mark.asyncio
    async def test_extracts_typed_value(self, casedev, llm):
        casedev.add("POST", "/vault/v1/search", _search_handler)
        llm.queue(completion("$9,000", prompt_tokens=100, completion_tokens=3))

        cell = await extract_cell_value(casedev.client(), llm.client(), "d1", "Lease.pdf", COLUMNS[1], "v1")
        assert cell == {"value": 9000, "confidence": 0.85, "sources": ["d1.pdf"], "tokensUsed": 103}
        assert llm.payloads[0]["temperature"] == 0.1
        assert "[Source 1]\nText of d1" in llm.payloads[0]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_no_chunks(self, casedev, llm):
        casedev.add("POST", "/vault/v1/search", {"chunks": []})
        cell = await extract_cell_value(casedev.client(), llm.client(), "d1", "Lease.pdf", COLUMNS[0], "v1")
        assert cell["error"] == "No relevant content found in document"
        assert llm.payloads == []

    @pytest.mark.asyncio
    async def test_foreign_chunks_are_filtered(self, casedev, llm):
        casedev.add("POST", "/vault/v1/search", {"chunks": [
            {"text": "other", "object_id": "d9"},
            {"text": "mine", "object_id": "d1", "object_name": "Lease.pdf"},
        ]})
        cell = await extract_cell_value(casedev.client(), llm.client(), "d1", "Lease.pdf", COLUMNS[0], "v1")
        assert cell["sources"] == ["Lease.pdf"]

    @pytest.mark.asyncio
    async def test_search_failure_becomes_cell_error(self, casedev, llm):
        casedev.add("POST", "/vault/v1/search", {"message": "boom"}, status=500)
        cell = await extract_cell_value(casedev.client(), llm.client(), "d1", "Lease.pdf", COLUMNS[0], "v1")
        assert cell["value"] is None
        assert cell["confidence"] == 0
        assert "500" in cell["error"]


class TestTabularRoutes:
    def _create(self, client, headers, **overrides):
        body = {"name": "Lease review", "vaultId": "v1", "documentIds": ["d1", "d2"], "columns": COLUMNS}
        body.update(overrides)
        return client.post("/api/tabular-analysis", json=body, headers=headers)

    def test_create_assigns_column_ids_and_order(self, client, admin_headers):
        response = self._create(client, admin_headers)
        assert response.status_code == 200
        analysis_id = response.json()["analysisId"]

        listed = client.get("/api/tabular-analysis", headers=admin_headers).json()
        assert listed[0]["id"] == analysis_id
        assert listed[0]["status"] == "draft"
        columns = listed[0]["columns"]
        assert [c["order"] for c in columns] == [0, 1]
        assert all(c["id"] for c in columns)

    def test_create_validation(self, client, admin_headers):
        no_docs = self._create(client, admin_headers, documentIds=[])
        assert no_docs.status_code == 400
        bad_type = self._create(client, admin_headers, columns=[{"name": "X", "dataType": "currency"}])
        assert bad_type.status_code == 400
        foreign_case = self._create(client, admin_headers, caseId="not-mine")
        assert foreign_case.status_code == 404
        assert foreign_case.json()["error"] == "Case not found or access denied"

    def test_update_and_delete(self, client, admin_headers):
        analysis_id = self._create(client, admin_headers).json()["analysisId"]

        updated = client.put(f"/api/tabular-analysis/{analysis_id}",
                             json={"name": "Renamed", "columns": COLUMNS[:1]}, headers=admin_headers)
        assert updated.json()["name"] == "Renamed"
        assert len(updated.json()["columns"]) == 1

        assert client.delete(f"/api/tabular-analysis/{analysis_id}", headers=admin_headers).json() == {"success": True}
        assert client.get(f"/api/tabular-analysis/{analysis_id}", headers=admin_headers).status_code == 404

    def test_other_users_cannot_see_analysis(self, client, admin_headers, member_headers):
        analysis_id = self._create(client, admin_headers).json()["analysisId"]
        assert client.get(f"/api/tabular-analysis/{analysis_id}", headers=member_headers).status_code == 404

    def test_run_without_columns(self, client, admin_headers):
        analysis_id = self._create(client, admin_headers, columns=[]).json()["analysisId"]
        response = client.post(f"/api/tabular-analysis/{analysis_id}/run", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Add columns before running extraction"

    def test_run_streams_cells_and_persists_rows(self, client, casedev, llm, admin_headers):
        analysis_id = self._create(client, admin_headers, documentIds=["d1", "d2", "gone"]).json()["analysisId"]
        casedev.add("GET", "/vault/v1/objects", {"objects": [
            {"id": "d1", "filename": "lease-a.pdf"},
            {"id": "d2", "filename": "lease-b.pdf"},
        ]})
        casedev.add("POST", "/vault/v1/search", _search_handler)
        llm.queue(
            completion("Acme Corp"),
            completion("$1,250.50"),
            completion("Beta LLC"),
            completion("NOT_FOUND"),
        )

        response = client.post(f"/api/tabular-analysis/{analysis_id}/run", headers=admin_headers)
        events = parse_sse(response.text)

        completes = [e for e in events if e["type"] == "complete"]
        assert [c["value"]["value"] for c in completes] == ["Acme Corp", 1250.5, "Beta LLC", None]
        assert completes[0]["progress"] == 17

        missing = [e for e in events if e["type"] == "error"]
        assert missing == [{"type": "error", "documentId": "gone", "message": "Document not found in vault"}]
        assert events[-1] == {"type": "done", "totalCells": 6, "completedCells": 4}

        # Second column sees the first column's value
        assert "- Counterparty: Acme Corp" in llm.payloads[1]["messages"][0]["content"]
        assert llm.payloads[0]["model"] == "anthropic/claude-sonnet-4.5"

        detail = client.get(f"/api/tabular-analysis/{analysis_id}", headers=admin_headers).json()
        assert detail["status"] == "completed"
        rows = {r["documentId"]: r for r in detail["rows"]}
        assert rows["d1"]["documentTitle"] == "lease-a.pdf"
        column_ids = [c["id"] for c in detail["columns"]]
        assert rows["d1"]["data"][column_ids[0]]["value"] == "Acme Corp"
        assert rows["d2"]["data"][column_ids[1]]["value"] is None
        assert rows["d1"]["tokensUsed"] == 30

    def test_run_vault_listing_failure(self, client, casedev, admin_headers):
        analysis_id = self._create(client, admin_headers).json()["analysisId"]
        casedev.add("GET", "/vault/v1/objects", {"message": "down"}, status=503)
        response = client.post(f"/api/tabular-analysis/{analysis_id}/run", headers=admin_headers)
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to fetch documents"


class TestTabularRunner:
    def _analysis(self, db, columns):
        db.add(User(id="u1", email="runner@lawfirm.com", name="Runner"))
        analysis = TabularAnalysis(user_id="u1", name="Direct", vault_id="v1",
                                   document_ids=["d1"], columns=columns, status="processing")
        db.add(analysis)
        db.commit()
        return analysis.id

    def _runner(self, analysis_id, columns, casedev, llm):
        return TabularRunner(
            analysis_id=analysis_id,
            vault_id="v1",
            columns=columns,
            document_ids=["d1"],
            document_titles={"d1": "lease-a.pdf"},
            default_model="anthropic/claude-sonnet-4.5",
            client=casedev.client(),
            llm=llm.client(),
        )

    @pytest.mark.asyncio
    async def test_progress_streams_before_each_step(self, db, casedev, llm):
        columns = [{**COLUMNS[0], "id": "c1", "order": 0}]
        analysis_id = self._analysis(db, columns)
        order = []

        def search(request):
            order.append("search")
            return _search_handler(request)

        def answer(request):
            order.append("llm")
            return llm.handler(request)

        casedev.add("POST", "/vault/v1/search", search)
        llm.queue(completion("Acme Corp"))
        runner = self._runner(analysis_id, columns, casedev, llm)
        runner.llm = CaseLLMClient(
            api_key="test-key",
            base_url="https://api.case.dev",
            transport=httpx.MockTransport(answer),
        )

        async for event in runner.run():
            order.append(event.get("message") or event["type"])

        assert order == [
            "Extracting...",
            "Searching document...",
            "search",
            "Extracting value...",
            "llm",
            "complete",
            "done",
        ]

    @pytest.mark.asyncio
    async def test_run_crash_marks_analysis_failed(self, db, casedev, llm):
        columns = [{"name": "Counterparty", "prompt": "Who?", "dataType": "text"}]
        analysis_id = self._analysis(db, columns)

        events = [event async for event in self._runner(analysis_id, columns, casedev, llm).run()]

        assert events[-1]["type"] == "error"
        assert all(e["type"] != "done" for e in events)
        db.expire_all()
        assert db.get(TabularAnalysis, analysis_id).status == "failed"
