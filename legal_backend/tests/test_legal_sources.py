"""
Legal Source Lookup Tests
=========================

Query building, candidate ranking and page verification behind the
legal_find / legal_verify chat tools.
"""

import httpx
import pytest

from legal_backend.chat import ChatToolbox, legal_sources
from legal_backend.chat.legal_sources import build_legal_query, rank_candidates, score_page, source_host

from conftest import completion

OPINION = (
    "<html><body><h1>Roe v. Wade</h1><p>Supreme Court of the United States. 410 U.S. 113 (1973).</p>"
    + "<p>Opinion text.</p>" * 60
    + "</body></html>"
)

ROE = {"type": "case", "citation": "410 U.S. 113", "partyNames": ["Roe", "Wade"], "court": "Supreme Court"}


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(legal_sources, "FETCH_BACKOFF", 0)


def _pages(replies):
    """MockTransport serving url -> (status, text); records every request"""
    requests = []

    def handler(request):
        requests.append(request)
        status, text = replies.get(str(request.url), (404, ""))
        return httpx.Response(status, text=text)

    return httpx.MockTransport(handler), requests


class TestFind:
    def test_case_query(self):
        query = build_legal_query(
            citation="410 U.S. 113",
            party_names=["Roe", "Wade"],
            jurisdiction={"court": "Supreme Court", "state": None},
            year_start=1970,
            year_end=1975,
        )
        assert query == 'citation:"410 U.S. 113" Roe v. Wade Supreme Court 1970..1975'

    def test_statute_query_needs_both_years(self):
        query = build_legal_query(code={"system": "U.S.C.", "title": "42", "section": "1983"},
                                  year_start=2000, keywords="civil rights")
        assert query == "U.S.C. Title 42 § 1983 civil rights"

    def test_source_host_strips_www(self):
        assert source_host("https://www.law.cornell.edu/uscode/text/42/1983") == "law.cornell.edu"
        assert source_host("not a url") == ""

    def test_official_hosts_rank_first(self):
        candidates = rank_candidates([
            {"url": "https://blog.example.com/roe", "title": "Blog", "score": 0.6, "text": "commentary"},
            {"url": "https://www.law.cornell.edu/roe", "title": "LII", "score": 0.5, "highlights": ["a", "b"]},
        ], "case", citation="410 U.S. 113")

        assert [c["sourceHost"] for c in candidates] == ["law.cornell.edu", "blog.example.com"]
        assert candidates[0]["rankScore"] == pytest.approx(0.7)
        assert candidates[0]["snippet"] == "a\nb"
        assert candidates[1]["snippet"] == "commentary"
        assert candidates[0]["normalizedCitation"] == "410 U.S. 113"

    def test_regulation_hosts(self):
        candidates = rank_candidates([
            {"url": "https://www.law.cornell.edu/cfr", "score": 0.1},
            {"url": "https://www.ecfr.gov/current/title-29", "score": 0.2},
            {"url": "https://supremecourt.gov/x", "score": 0.3},
        ], "regulation")
        assert [c["sourceHost"] for c in candidates] == ["ecfr.gov", "law.cornell.edu", "supremecourt.gov"]

    @pytest.mark.asyncio
    async def test_tool_searches_with_highlights(self, casedev):
        casedev.add("POST", "/search/v1/search", {"results": [
            {"url": "https://www.supremecourt.gov/opinions/roe.pdf", "title": "Roe v. Wade", "score": 0.4},
        ]})
        toolbox = ChatToolbox(casedev.client(), user_id="u")
        result = await toolbox.execute("legal_find", {
            "type": "case", "partyNames": ["Roe", "Wade"], "numResults": 5,
        })

        assert result["query"] == "Roe v. Wade"
        assert result["candidates"][0]["rankScore"] == pytest.approx(0.6)
        assert casedev.last_json("POST", "/search/v1/search") == {
            "query": "Roe v. Wade", "numResults": 5, "text": True, "highlights": True,
        }


class TestVerify:
    def test_score_page(self):
        score, reasons = score_page(OPINION, {**ROE, "code": {"title": "42"}})
        assert score == pytest.approx(0.7)
        assert reasons == ["citation_match", "parties_match", "court_match"]

    def test_missing_citation_is_reported(self):
        score, reasons = score_page(OPINION, {"type": "case", "citation": "999 U.S. 1"})
        assert score == 0
        assert reasons == ["citation_missing"]

    @pytest.mark.asyncio
    async def test_judge_adds_to_identifier_score(self, casedev, llm):
        llm.queue(completion(
            '```json\n{"isPrimarySource": true, "isOfficialOrCanonical": true, "citationPresent": true, '
            '"jurisdictionMatch": true, "confidence": 0.9}\n```'
        ))
        transport, _ = _pages({"https://supremecourt.gov/roe": (200, OPINION)})
        toolbox = ChatToolbox(casedev.client(), user_id="u", llm=llm.client(), page_transport=transport)

        result = await toolbox.execute("legal_verify", {"target": ROE, "candidate": {"url": "https://supremecourt.gov/roe"}})

        assert result["verified"] is True
        assert result["verificationScore"] == 1.19
        assert result["reasons"] == [
            "citation_match", "parties_match", "court_match",
            "ai_primary_source", "ai_official", "ai_citation_present", "ai_jurisdiction_match",
        ]
        assert result["canonicalized"] == {"url": "https://supremecourt.gov/roe", "citation": "410 U.S. 113"}
        judge = llm.payloads[-1]
        assert judge["model"] == "openai/gpt-4o-mini"
        assert judge["temperature"] == 0
        assert "URL: https://supremecourt.gov/roe" in judge["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_unparseable_verdict(self, casedev, llm):
        llm.queue(completion("I think it is official."))
        transport, _ = _pages({"https://court.example/roe": (200, OPINION)})
        toolbox = ChatToolbox(casedev.client(), user_id="u", llm=llm.client(), page_transport=transport)

        result = await toolbox.execute("legal_verify", {
            "target": {"type": "case", "citation": "410 U.S. 113"},
            "candidate": {"url": "https://court.example/roe"},
        })

        assert result["verified"] is False
        assert result["verificationScore"] == 0.4
        assert result["reasons"] == ["citation_match", "ai_judge_failed"]
        assert result["aiVerdict"] is None

    @pytest.mark.asyncio
    async def test_short_page_is_not_verified(self, casedev, llm):
        transport, _ = _pages({"https://court.example/stub": (200, "Page moved.")})
        toolbox = ChatToolbox(casedev.client(), user_id="u", llm=llm.client(), page_transport=transport)

        result = await toolbox.execute("legal_verify", {"target": ROE, "candidate": {"url": "https://court.example/stub"}})

        assert result == {"verified": False, "verificationScore": 0, "reasons": ["empty_or_short_page"]}
        assert llm.payloads == []

    @pytest.mark.asyncio
    async def test_fetch_retries_then_gives_up(self, casedev):
        transport, requests = _pages({"https://court.example/down": (503, "unavailable")})
        toolbox = ChatToolbox(casedev.client(), user_id="u", page_transport=transport)

        result = await toolbox.execute("legal_verify", {"target": ROE, "candidate": {"url": "https://court.example/down"}})

        assert result["reasons"] == ["empty_or_short_page"]
        assert len(requests) == 3
        assert requests[0].headers["user-agent"] == "Mozilla/5.0 (compatible; LegalOSS/1.0)"
