"""
Tabular Analysis
================

Per-document, per-column LLM extraction over vault documents.
"""

from .cell_agent import (
    build_search_query,
    build_system_prompt,
    build_user_prompt,
    extract_cell_value,
    parse_extracted_value,
)
from .runner import TabularRunner, prepare_run

__all__ = [
    "TabularRunner",
    "prepare_run",
    "build_search_query",
    "build_system_prompt",
    "build_user_prompt",
    "extract_cell_value",
    "parse_extracted_value",
]
