"""
Research Context Assembly
=========================

Pure helpers for the deep research pipeline:
- result categorization and per-phase gap summaries
- query list parsing from LLM output
- the tiered synthesis context

Search results are plain dicts as returned by Case.dev web search:
{title, url, text?, publishedDate?, score?}
"""

import json
import re
import uuid
import logging
from typing import List, Dict, Any, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# =============================================================================
# CONTEXT LIMITS
# =============================================================================

TIER1_COUNT = 50
TIER2_COUNT = 100
TIER1_TEXT_LIMIT = 4000
TIER2_TEXT_LIMIT = 1500
MAX_CONTEXT_SOURCES = 300
MAX_CONTEXT_CHARS = 800000
MAX_LISTED_QUERIES = 20
MAX_USER_SOURCES = 5
USER_SOURCE_TEXT_LIMIT = 3000

SUMMARY_SCAN_LIMIT = 100
SUMMARY_TITLES_PER_CATEGORY = 15

DEFAULT_SORT_SCORE = 0.5
DEFAULT_RELEVANCE_SCORE = 0.8

TRUNCATION_NOTICE = "\n\n[Context truncated for length]"

_SUPERSCRIPT_DIGITS = "⁰¹²³⁴⁵⁶⁷⁸⁹"


def to_superscript(n: int) -> str:
    """12 -> '¹²'"""
    return "".join(_SUPERSCRIPT_DIGITS[int(d)] for d in str(n))


def infer_category(result: Dict[str, Any]) -> str:
    """Classify a result as statute, regulation, secondary or case"""
    url = (result.get("url") or "").lower()
    title = (result.get("title") or "").lower()

    if "cornell.edu" in url and "/uscode" in url:
        return "statute"
    if "ecfr.gov" in url or "federalregister.gov" in url:
        return "regulation"
    if "scholar.google" in url or "law review" in title or "journal" in title:
        return "secondary"
    # Everything else on the legal domain list is treated as case law
    return "case"


def _summary_bucket(url: str, title: str) -> str:
    if "courtlistener" in url or "justia.com/cases" in url or "casetext" in url:
        return "cases"
    if "cornell.edu/uscode" in url or "law.cornell.edu" in url:
        return "statutes"
    if "ecfr.gov" in url or "federalregister" in url:
        return "regulations"
    if "scholar.google" in url or "law review" in title.lower():
        return "secondary"
    return "news"


def summarize_results_for_followup(results: List[Dict[str, Any]]) -> str:
    """
    Brief summary of what has been found so far, used by the LLM to find gaps.

    Only the first 100 results are bucketed; each bucket lists up to 15 titles.
    """
    categories: Dict[str, List[str]] = {
        "cases": [],
        "statutes": [],
        "regulations": [],
        "secondary": [],
        "news": [],
    }

    for r in results[:SUMMARY_SCAN_LIMIT]:
        title = r.get("title") or ""
        categories[_summary_bucket((r.get("url") or "").lower(), title)].append(title)

    summary = f"Sources found so far ({len(results)} total):\n\n"
    for cat, titles in categories.items():
        if titles:
            summary += f"{cat.upper()} ({len(titles)}):\n"
            summary += "\n".join(f"- {t}" for t in titles[:SUMMARY_TITLES_PER_CATEGORY]) + "\n\n"

    return summary


def parse_query_list(text: Optional[str]) -> List[str]:
    """
    Pull a JSON array of query strings out of an LLM reply.

    Handles markdown fences and surrounding prose. Returns [] when
    nothing parseable is found.
    """
    if not text:
        return []

    match = re.search(r"\[[\s\S]*\]", text)
    candidate = match.group(0) if match else text
    try:
        data = json.loads(candidate)
    except ValueError:
        return []

    if not isinstance(data, list):
        return []
    return [str(q) for q in data if isinstance(q, (str, int, float)) and str(q).strip()]


def _hostname(url: str) -> str:
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        return ""


def format_result_event(result: Dict[str, Any]) -> Dict[str, Any]:
    """Client-facing shape of a single search result"""
    url = result.get("url") or ""
    return {
        "id": str(uuid.uuid4()),
        "category": infer_category(result),
        "title": result.get("title"),
        "source": _hostname(url),
        "snippet": (result.get("text") or "")[:500],
        "url": url,
        "date": result.get("publishedDate"),
        "relevance": round((result.get("score") or DEFAULT_RELEVANCE_SCORE) * 100),
    }


def _sort_score(result: Dict[str, Any]) -> float:
    return result.get("score") or DEFAULT_SORT_SCORE


def _tier_text(raw: str, limit: int) -> str:
    text = raw[:limit]
    if not text:
        return ""
    return f"{text}{'...' if len(raw) > limit else ''}\n"


def build_research_context(
    query: str,
    queries: List[str],
    results: List[Dict[str, Any]],
    user_sources: Optional[List[Dict[str, Any]]] = None,
) -> str:
    """
    Assemble the synthesis prompt context.

    Sources are sorted by score (missing = 0.5) and included in tiers:
    - top 50: text up to 4000 chars
    - next 100: text up to 1500 chars
    - rest (up to 300 total): title + URL only

    The whole context is hard-capped at 800k chars.
    """
    context_sources = sorted(results, key=_sort_score, reverse=True)[:MAX_CONTEXT_SOURCES]

    context = f"# Research Query\n{query}\n\n"

    context += f"# Search Strategy ({len(queries)} queries across 3 phases)\n"
    context += "\n".join(f"{i + 1}. {q}" for i, q in enumerate(queries[:MAX_LISTED_QUERIES]))
    if len(queries) > MAX_LISTED_QUERIES:
        context += f"\n... and {len(queries) - MAX_LISTED_QUERIES} more queries\n"
    context += "\n\n"

    if user_sources:
        context += "# User-Provided Sources\n"
        for source in user_sources[:MAX_USER_SOURCES]:
            content = (source.get("content") or "")[:USER_SOURCE_TEXT_LIMIT]
            context += f"## {source.get('title')}\n{content}\n\n"

    context += f"# Sources ({len(results)} found, {len(context_sources)} included)\n"
    context += "Cite using Unicode superscripts: ¹ ² ³ ⁴ ⁵ ⁶ ⁷ ⁸ ⁹ ¹⁰ etc.\n\n"

    for i, result in enumerate(context_sources):
        context += f"## {to_superscript(i + 1)} {result.get('title')}\n"
        context += result.get("url") or ""
        if result.get("publishedDate"):
            context += f" | {result['publishedDate']}"
        context += "\n"

        raw_text = result.get("text") or ""
        if i < TIER1_COUNT:
            context += _tier_text(raw_text, TIER1_TEXT_LIMIT)
        elif i < TIER1_COUNT + TIER2_COUNT:
            context += _tier_text(raw_text, TIER2_TEXT_LIMIT)

        context += "\n"

    if len(context) > MAX_CONTEXT_CHARS:
        logger.info(f"Context too large ({len(context)} chars), truncating to {MAX_CONTEXT_CHARS}")
        context = context[:MAX_CONTEXT_CHARS] + TRUNCATION_NOTICE

    logger.info(f"Final context size: {len(context)} chars, {len(context_sources)} sources")
    return context
