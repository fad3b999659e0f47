"""
Deep Research Tests
===================

Context assembly helpers and the streamed three-phase run.
"""

import json

from legal_backend.db import Chat, Message
from legal_backend.research import (
    build_research_context,
    format_result_event,
    infer_category,
    parse_query_list,
    summarize_results_for_followup,
    to_superscript,
)
from legal_backend.research.context import (
    MAX_CONTEXT_CHARS,
    MAX_CONTEXT_SOURCES,
    TIER1_TEXT_LIMIT,
    TRUNCATION_NOTICE,
)

from conftest import completion, parse_sse


def _result(i, score=None, text="", url=None):
    result = {"title": f"Result {i}", "url": url or f"https://www.courtlistener.com/opinion/{i}/", "text": text}
    if score is not None:
        result["score"] = score
    return result


class TestHelpers:
    def test_superscript(self):
        assert to_superscript(1) == "¹"
        assert to_superscript(10) == "¹⁰"
        assert to_superscript(205) == "²⁰⁵"

    def test_infer_category(self):
        assert infer_category({"url": "https://www.law.cornell.edu/uscode/text/42/1983"}) == "statute"
        assert infer_category({"url": "https://www.ecfr.gov/current/title-29"}) == "regulation"
        assert infer_category({"url": "https://x.org", "title": "Harvard Law Review"}) == "secondary"
        assert infer_category({"url": "https://casetext.com/case/foo"}) == "case"

    def test_parse_query_list_handles_fences_and_prose(self):
        text = 'Here you go:\n```json\n["negligence per se", "duty of care"]\n```'
        assert parse_query_list(text) == ["negligence per se", "duty of care"]

    def test_parse_query_list_rejects_garbage(self):
        assert parse_query_list("no queries today") == []
        assert parse_query_list('{"a": 1}') == []
        assert parse_query_list(None) == []

    def test_followup_summary_buckets(self):
        summary = summarize_results_for_followup([
            {"title": "Roe", "url": "https://www.courtlistener.com/opinion/1/"},
            {"title": "42 USC 1983", "url": "https://www.law.cornell.edu/uscode/text/42/1983"},
            {"title": "Blog post", "url": "https://news.example.org/post"},
        ])
        assert summary.startswith("Sources found so far (3 total)")
        assert "CASES (1):\n- Roe" in summary
        assert "STATUTES (1)" in summary
        assert "NEWS (1)" in summary
        assert "REGULATIONS" not in summary

    def test_result_event_shape(self):
        event = format_result_event({"title": "Roe", "url": "https://casetext.com/case/roe", "text": "x" * 600})
        assert event["source"] == "casetext.com"
        assert event["relevance"] == 80
        assert len(event["snippet"]) == 500
        assert event["category"] == "case"


class TestContext:
    def test_sorted_by_score_with_default(self):
        context = build_research_context("q", ["q"], [
            _result(1, score=0.2), _result(2), _result(3, score=0.9),
        ])
        assert context.index("Result 3") < context.index("Result 2") < context.index("Result 1")
        assert "## ¹ Result 3" in context

    def test_tiers_truncate_text(self):
        results = [_result(i, score=1 - i / 1000, text="a" * 5000) for i in range(160)]
        context = build_research_context("q", ["q"], results)
        first = context.split("## ¹ Result 0\n")[1].split("\n\n")[0]
        assert "a" * TIER1_TEXT_LIMIT + "..." in first
        assert "a" * (TIER1_TEXT_LIMIT + 1) not in first
        # Beyond 150 sources only title and URL remain
        tail = context.split("Result 155\n")[1].split("\n\n")[0]
        assert "aaa" not in tail

    def test_caps_sources_and_lists_queries(self):
        results = [_result(i) for i in range(MAX_CONTEXT_SOURCES + 10)]
        queries = [f"query {i}" for i in range(25)]
        context = build_research_context("q", queries, results)
        assert f"# Sources ({MAX_CONTEXT_SOURCES + 10} found, {MAX_CONTEXT_SOURCES} included)" in context
        assert "... and 5 more queries" in context

    def test_user_sources_included(self):
        context = build_research_context("q", ["q"], [], [{"title": "Client memo", "content": "Key facts"}])
        assert "# User-Provided Sources\n## Client memo\nKey facts" in context

    def test_hard_cap_truncates_with_notice(self):
        context = build_research_context("x" * (MAX_CONTEXT_CHARS + 5000), ["q"], [_result(1, text="body")])
        assert len(context) == MAX_CONTEXT_CHARS + len(TRUNCATION_NOTICE)
        assert context.endswith("[Context truncated for length]")

    def test_small_context_is_not_truncated(self):
        assert TRUNCATION_NOTICE not in build_research_context("q", ["q"], [_result(1, text="body")])


class TestDeepResearchRoute:
    def test_requires_query(self, client, admin_headers):
        response = client.post("/api/research/deep", json={"query": "  "}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Query is required"

    def test_streams_phases_and_saves_chat(self, client, casedev, llm, admin_headers, db):
        llm.stream_chunks = ["Streamed ", "report."]
        llm.queue(
            completion('["elements of promissory estoppel"]'),
            completion("[]"),
            completion("nothing further"),
        )
        casedev.add("POST", "/search/v1/search", {"results": [
            {"title": "Hoffman v. Red Owl", "url": "https://casetext.com/case/hoffman", "score": 0.9},
            {"title": "Restatement 90", "url": "https://scholar.google.com/r90"},
        ]})

        response = client.post("/api/research/deep", json={"query": "Is promissory estoppel available?"},
                               headers=admin_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        events = parse_sse(response.text)
        types = [e["type"] for e in events]
        assert types[0] == "status"
        assert events[1] == {"type": "queries", "queries": [
            "Is promissory estoppel available?", "elements of promissory estoppel",
        ]}
        # Two searches returned the same URLs; duplicates are dropped
        assert types.count("result") == 2
        assert "".join(e["content"] for e in events if e["type"] == "synthesis") == "Streamed report."

        complete = events[-1]
        assert complete["type"] == "complete"
        assert complete["totalSources"] == 2

        search = casedev.last_json("POST", "/search/v1/search")
        assert search["numResults"] == 25
        assert search["includeText"] is True

        chat = db.query(Chat).filter(Chat.id == complete["chatId"]).first()
        assert chat.title == "Research: Is promissory estoppel available?"
        messages = db.query(Message).filter(Message.chat_id == chat.id).all()
        assert sorted(m.role for m in messages) == ["assistant", "user"]
        assistant = next(m for m in messages if m.role == "assistant")
        assert json.loads(assistant.content)["text"] == "Streamed report."

    def test_search_failures_still_complete(self, client, casedev, llm, admin_headers):
        llm.queue(completion("[]"))
        casedev.add("POST", "/search/v1/search", {"message": "rate limited"}, status=429)

        events = parse_sse(client.post("/api/research/deep", json={"query": "q"}, headers=admin_headers).text)
        assert events[-1]["type"] == "complete"
        assert events[-1]["totalSources"] == 0

    def test_synthesis_failure_reports_error_without_saving(self, client, casedev, llm, admin_headers, db):
        llm.queue(completion("[]"))
        llm.stream_status = 500
        casedev.add("POST", "/search/v1/search", {"results": [{"title": "Only", "url": "https://example.com/a"}]})

        events = parse_sse(client.post("/api/research/deep", json={"query": "q"}, headers=admin_headers).text)

        assert events[-1]["type"] == "error"
        assert "model overloaded" in events[-1]["message"]
        assert not any(e["type"] == "complete" for e in events)
        assert db.query(Chat).count() == 0
