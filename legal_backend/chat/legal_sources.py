"""
Legal Source Lookup
===================

Two-step citation research used by the legal_find / legal_verify chat
tools:

1. find: build a structured web query for a case, statute or regulation
   and rank the hits, boosting official hosts for that source type.
2. verify: fetch a candidate page and score it for the target
   identifiers, then let a small model judge whether it is a primary,
   official source. A score of 0.6 or more counts as verified.
"""

import asyncio
import json
import logging
import re
from typing import List, Dict, Any, Optional, Tuple
from urllib.parse import urlparse

import httpx

from ..llm import CaseLLMClient

logger = logging.getLogger(__name__)

SOURCE_TYPES = ["case", "statute", "regulation"]

PREFERRED_HOSTS = {
    "case": ["supremecourt.gov", "uscourts.gov", "govinfo.gov", "law.cornell.edu", "courtlistener.com"],
    "statute": ["uscode.house.gov", "law.cornell.edu", "govinfo.gov"],
    "regulation": ["ecfr.gov", "law.cornell.edu", "govinfo.gov"],
}
PREFERRED_HOST_BONUS = 0.2

FETCH_ATTEMPTS = 3
FETCH_TIMEOUT = 15
FETCH_BACKOFF = 0.5
USER_AGENT = "Mozilla/5.0 (compatible; LegalOSS/1.0)"
MIN_PAGE_CHARS = 500

VERIFIED_THRESHOLD = 0.6
JUDGE_MODEL = "openai/gpt-4o-mini"
JUDGE_EXCERPT_CHARS = 15000
JUDGE_SYSTEM_PROMPT = (
    "You are a legal source verifier. Return ONLY JSON. Fields: "
    '{"isPrimarySource":boolean,"isOfficialOrCanonical":boolean,'
    '"documentType":"case|statute|regulation|other","jurisdictionMatch":boolean,'
    '"citationPresent":boolean,"isCurrent":boolean,"confidence":number}. '
    "Be strict about verification."
)

# (verdict field, weight, reason)
JUDGE_WEIGHTS = (
    ("isPrimarySource", 0.15, "ai_primary_source"),
    ("isOfficialOrCanonical", 0.1, "ai_official"),
    ("citationPresent", 0.1, "ai_citation_present"),
    ("jurisdictionMatch", 0.05, "ai_jurisdiction_match"),
)
JUDGE_CONFIDENCE_WEIGHT = 0.1

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


# =============================================================================
# FIND
# =============================================================================

def source_host(url: Optional[str]) -> str:
    """Hostname without a leading www."""
    try:
        host = urlparse(url or "").hostname or ""
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def build_legal_query(
    citation: Optional[str] = None,
    party_names: Optional[List[str]] = None,
    code: Optional[Dict[str, Any]] = None,
    jurisdiction: Optional[Dict[str, Any]] = None,
    year_start: Optional[int] = None,
    year_end: Optional[int] = None,
    keywords: Optional[str] = None,
) -> str:
    code = code or {}
    jurisdiction = jurisdiction or {}
    parts = []
    if citation:
        parts.append(f'citation:"{citation}"')
    if party_names:
        parts.append(" v. ".join(party_names))
    if code.get("system"):
        parts.append(code["system"])
    if code.get("title"):
        parts.append(f"Title {code['title']}")
    if code.get("section"):
        parts.append(f"§ {code['section']}")
    if jurisdiction.get("court"):
        parts.append(jurisdiction["court"])
    if jurisdiction.get("state"):
        parts.append(jurisdiction["state"])
    if year_start and year_end:
        parts.append(f"{year_start}..{year_end}")
    if keywords:
        parts.append(keywords)
    return " ".join(p for p in parts if p)


def rank_candidates(
    results: List[Dict[str, Any]],
    source_type: str,
    citation: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Search hits as candidates, best first; official hosts get a bonus"""
    preferred = set(PREFERRED_HOSTS.get(source_type) or PREFERRED_HOSTS["case"])
    candidates = []
    for result in results:
        host = source_host(result.get("url"))
        bonus = PREFERRED_HOST_BONUS if host in preferred else 0
        candidates.append({
            "url": result.get("url"),
            "sourceHost": host,
            "title": result.get("title"),
            "snippet": "\n".join(result.get("highlights") or []) or result.get("text") or "",
            "type": source_type,
            "normalizedCitation": citation or None,
            "rankScore": (result.get("score") or 0) + bonus,
        })
    candidates.sort(key=lambda c: c["rankScore"], reverse=True)
    return candidates


# =============================================================================
# VERIFY
# =============================================================================

async def fetch_page(http: httpx.AsyncClient, url: str, attempts: int = FETCH_ATTEMPTS) -> str:
    """Page text, or "" once every attempt failed or came back empty"""
    for attempt in range(attempts):
        try:
            response = await http.get(url, headers={"User-Agent": USER_AGENT}, timeout=FETCH_TIMEOUT)
            if response.status_code < 400 and response.text:
                return response.text
        except httpx.HTTPError as e:
            logger.debug(f"Fetch of {url} failed (attempt {attempt + 1}): {e}")
        await asyncio.sleep(FETCH_BACKOFF * (attempt + 1))
    return ""


def score_page(page: str, target: Dict[str, Any]) -> Tuple[float, List[str]]:
    """Identifier matches on the page text (case-insensitive)"""
    hay = page.lower()
    score = 0.0
    reasons = []

    citation = target.get("citation")
    if citation:
        if citation.lower() in hay:
            score += 0.4
            reasons.append("citation_match")
        else:
            reasons.append("citation_missing")

    parties = [p for p in target.get("partyNames") or [] if p]
    if parties and all(p.lower() in hay for p in parties):
        score += 0.2
        reasons.append("parties_match")

    court = target.get("court")
    if court and court.lower() in hay:
        score += 0.1
        reasons.append("court_match")

    code = target.get("code") or {}
    if code.get("title") and str(code["title"]).lower() in hay:
        score += 0.1
        reasons.append("code_title_match")
    if code.get("section") and str(code["section"]).lower() in hay:
        score += 0.1
        reasons.append("code_section_match")

    return score, reasons


async def judge_source(llm: CaseLLMClient, target: Dict[str, Any], url: str, page: str) -> Optional[Dict[str, Any]]:
    """
    Ask the judge model about the page.

    Returns None when the completion call fails.

    Raises:
        ValueError: the reply holds no parseable JSON object
    """
    result = await llm.call(
        [
            {"role": "system", "content": JUDGE_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    f"Verify this legal source:\n\nTarget: {json.dumps(target)}\nURL: {url}\n\n"
                    f"Page content (excerpt):\n{page[:JUDGE_EXCERPT_CHARS]}"
                ),
            },
        ],
        model=JUDGE_MODEL,
        temperature=0,
        max_tokens=256,
    )
    if not result.success:
        logger.warning(f"Legal source judge call failed: {result.error}")
        return None

    match = _JSON_OBJECT.search(result.content or "")
    verdict = json.loads(match.group(0) if match else result.content or "")
    if not isinstance(verdict, dict):
        raise ValueError("Judge verdict is not an object")
    return verdict


def score_verdict(verdict: Dict[str, Any]) -> Tuple[float, List[str]]:
    score = 0.0
    reasons = []
    for field, weight, reason in JUDGE_WEIGHTS:
        if verdict.get(field):
            score += weight
            reasons.append(reason)
    try:
        confidence = float(verdict.get("confidence") or 0)
    except (TypeError, ValueError):
        confidence = 0.0
    score += JUDGE_CONFIDENCE_WEIGHT * max(0.0, min(1.0, confidence))
    return score, reasons


async def verify_source(
    http: httpx.AsyncClient,
    llm: Optional[CaseLLMClient],
    target: Dict[str, Any],
    candidate: Dict[str, Any],
) -> Dict[str, Any]:
    url = candidate.get("url") or ""
    page = await fetch_page(http, url)
    if len(page) < MIN_PAGE_CHARS:
        return {"verified": False, "verificationScore": 0, "reasons": ["empty_or_short_page"]}

    score, reasons = score_page(page, target)

    verdict = None
    if llm is not None:
        try:
            verdict = await judge_source(llm, target, url, page)
        except (ValueError, httpx.HTTPError) as e:
            logger.warning(f"Legal source judge failed for {url}: {e}")
            reasons.append("ai_judge_failed")
        if verdict:
            judge_score, judge_reasons = score_verdict(verdict)
            score += judge_score
            reasons.extend(judge_reasons)

    return {
        "verified": score >= VERIFIED_THRESHOLD,
        "verificationScore": round(score, 2),
        "reasons": reasons,
        "canonicalized": {"url": url, "citation": target.get("citation")},
        "aiVerdict": verdict,
    }
