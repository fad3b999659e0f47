"""
Deep Research
=============

Multi-phase legal web research with a streamed synthesis report.
"""

from .context import (
    build_research_context,
    format_result_event,
    infer_category,
    parse_query_list,
    summarize_results_for_followup,
    to_superscript,
)
from .pipeline import DeepResearchPipeline
from .prompts import LEGAL_DOMAINS

__all__ = [
    "DeepResearchPipeline",
    "LEGAL_DOMAINS",
    "build_research_context",
    "format_result_event",
    "infer_category",
    "parse_query_list",
    "summarize_results_for_followup",
    "to_superscript",
]
