"""
Deep Research Pipeline
======================

Three search phases, then a streamed synthesis:

1. Initial: LLM plans 15-20 queries; the question itself is searched too.
2. Followup: LLM reads a summary of what was found and fills gaps.
3. Deep dive: LLM targets specific cases, statutes and guidance.

Every phase runs its searches in parallel and drops URLs already seen.
The report is streamed token by token, then saved as a chat.

run() is an async generator of event dicts; the API layer turns them
into SSE frames.
"""

import json
import asyncio
import logging
from typing import List, Dict, Any, Optional, Set, AsyncIterator

import httpx

from ..casedev import CaseDevClient, CaseDevError
from ..config import Settings, get_settings
from ..db import Chat, Message, get_db_session
from ..llm import CaseLLMClient
from .context import (
    MAX_CONTEXT_SOURCES,
    build_research_context,
    format_result_event,
    parse_query_list,
    summarize_results_for_followup,
)
from .prompts import (
    LEGAL_DOMAINS,
    INITIAL_QUERY_PROMPT,
    FOLLOWUP_QUERY_PROMPT,
    DEEP_DIVE_QUERY_PROMPT,
    SYNTHESIS_PROMPT,
)

logger = logging.getLogger(__name__)

# Results requested per query, by phase
PHASE1_RESULTS_PER_QUERY = 25
PHASE2_RESULTS_PER_QUERY = 20
PHASE3_RESULTS_PER_QUERY = 15

QUERY_TEMPERATURE = 0.7
QUERY_MAX_TOKENS = 1000
SYNTHESIS_TEMPERATURE = 0.2
SYNTHESIS_MAX_TOKENS = 32000


def _status(status: str, message: str) -> Dict[str, Any]:
    return {"type": "status", "status": status, "message": message}


def _result(result: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "result", "result": format_result_event(result)}


class DeepResearchPipeline:
    """Runs one deep research request for one user"""

    def __init__(
        self,
        client: CaseDevClient,
        llm: CaseLLMClient,
        settings: Optional[Settings] = None,
    ):
        self.client = client
        self.llm = llm
        self.settings = settings or get_settings()

    # =========================================================================
    # SEARCH
    # =========================================================================

    async def search_web(self, query: str, num_results: int) -> List[Dict[str, Any]]:
        """Single legal-domain web search; failures yield no results"""
        try:
            data = await self.client.web_search({
                "query": query,
                "numResults": num_results,
                "includeDomains": LEGAL_DOMAINS,
                "includeText": True,
            })
        except (CaseDevError, httpx.HTTPError) as e:
            logger.error(f"Search failed for '{query[:80]}': {e}")
            return []
        return data.get("results") or []

    async def execute_search_phase(
        self,
        queries: List[str],
        seen_urls: Set[str],
        num_results_per_query: int,
    ) -> List[Dict[str, Any]]:
        """Run all queries in parallel and return results with unseen URLs"""
        batches = await asyncio.gather(
            *[self.search_web(q, num_results_per_query) for q in queries]
        )

        new_results = []
        for results in batches:
            for result in results:
                url = result.get("url")
                if not url or url in seen_urls:
                    continue
                seen_urls.add(url)
                new_results.append(result)
        return new_results

    async def generate_queries(self, prompt: str, context: str) -> List[str]:
        result = await self.llm.call(
            [
                {"role": "system", "content": prompt},
                {"role": "user", "content": context},
            ],
            model=self.settings.research_query_model,
            temperature=QUERY_TEMPERATURE,
            max_tokens=QUERY_MAX_TOKENS,
        )
        if not result.success:
            logger.warning(f"Query generation failed: {result.error}")
            return []
        return parse_query_list(result.content)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def save_as_chat(self, user_id: str, query: str, synthesis: str) -> Optional[str]:
        """Save the question and report as a chat; returns chat id or None"""
        title = f"Research: {query[:50]}{'...' if len(query) > 50 else ''}"
        try:
            with get_db_session() as db:
                chat = Chat(user_id=user_id, title=title)
                db.add(chat)
                db.flush()
                db.add(Message(
                    chat_id=chat.id,
                    role="user",
                    content=json.dumps({"type": "text", "text": f"[Deep Research]\n\n{query}"}),
                ))
                db.add(Message(
                    chat_id=chat.id,
                    role="assistant",
                    content=json.dumps({"type": "text", "text": synthesis}),
                ))
                chat_id = chat.id
            return chat_id
        except Exception as e:
            logger.error(f"Failed to save research as chat: {e}")
            return None

    # =========================================================================
    # RUN
    # =========================================================================

    async def run(
        self,
        query: str,
        user_id: str,
        sources: Optional[List[Dict[str, Any]]] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        all_results: List[Dict[str, Any]] = []
        seen_urls: Set[str] = set()

        try:
            # Phase 1: broad search
            yield _status("planning", "Phase 1: Generating initial research strategy...")

            initial = await self.generate_queries(INITIAL_QUERY_PROMPT, f"Research question: {query}")
            phase1_queries = [query] + initial
            all_queries = list(phase1_queries)
            yield {"type": "queries", "queries": phase1_queries}

            yield _status("researching", f"Phase 1: Executing {len(phase1_queries)} searches...")
            phase1 = await self.execute_search_phase(phase1_queries, seen_urls, PHASE1_RESULTS_PER_QUERY)
            all_results.extend(phase1)
            for result in phase1:
                yield _result(result)

            yield _status("analyzing", f"Phase 1 complete: {len(all_results)} sources. Analyzing gaps...")

            # Phase 2: gap analysis
            followup_context = (
                f"Original research question: {query}\n\n"
                f"{summarize_results_for_followup(all_results)}\n\n"
                "Generate additional queries to fill gaps in the research."
            )
            followup = await self.generate_queries(FOLLOWUP_QUERY_PROMPT, followup_context)

            if followup:
                all_queries.extend(followup)
                yield {"type": "queries", "queries": followup}
                yield _status("researching", f"Phase 2: Executing {len(followup)} followup searches...")
                phase2 = await self.execute_search_phase(followup, seen_urls, PHASE2_RESULTS_PER_QUERY)
                all_results.extend(phase2)
                for result in phase2:
                    yield _result(result)

            yield _status("analyzing", f"Phase 2 complete: {len(all_results)} sources. Deep dive analysis...")

            # Phase 3: deep dive
            deep_dive_context = (
                f"Original research question: {query}\n\n"
                f"{summarize_results_for_followup(all_results)}\n\n"
                "Generate precise, targeted queries for specific documents and authorities."
            )
            deep_dive = await self.generate_queries(DEEP_DIVE_QUERY_PROMPT, deep_dive_context)

            if deep_dive:
                all_queries.extend(deep_dive)
                yield {"type": "queries", "queries": deep_dive}
                yield _status("researching", f"Phase 3: Executing {len(deep_dive)} deep dive searches...")
                phase3 = await self.execute_search_phase(deep_dive, seen_urls, PHASE3_RESULTS_PER_QUERY)
                all_results.extend(phase3)
                for result in phase3:
                    yield _result(result)

            yield _status(
                "analyzing",
                f"Research complete: {len(all_results)} unique sources from "
                f"{len(all_queries)} queries. Synthesizing...",
            )

            context = build_research_context(query, all_queries, all_results, sources)
            included = min(len(all_results), MAX_CONTEXT_SOURCES)
            yield _status("synthesizing", f"Synthesizing {included} sources into research memo...")

            synthesis = ""
            async for chunk in self.llm.stream(
                [
                    {"role": "system", "content": SYNTHESIS_PROMPT},
                    {"role": "user", "content": context},
                ],
                model=self.settings.research_synthesis_model,
                temperature=SYNTHESIS_TEMPERATURE,
                max_tokens=SYNTHESIS_MAX_TOKENS,
            ):
                synthesis += chunk
                yield {"type": "synthesis", "content": chunk}

            chat_id = self.save_as_chat(user_id, query, synthesis)
            logger.info(f"Deep research finished: {len(all_results)} sources, chat {chat_id}")

            yield {"type": "complete", "totalSources": len(all_results), "chatId": chat_id}

        except Exception as e:
            logger.exception(f"Deep research error: {e}")
            yield {"type": "error", "message": str(e)}
