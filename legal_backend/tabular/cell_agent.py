"""
Tabular Cell Agent
==================

Extracts one cell (document x column) of a tabular analysis:

1. Vault search scoped to the document, using the column prompt
   plus values already extracted to the left as context.
2. LLM extraction at low temperature.
3. Value parsing by column data type, with a heuristic confidence.

Never raises: failures come back as a CellValue carrying `error`.
"""

import re
import logging
from typing import Optional, Dict, Any, List, Tuple, Callable, Awaitable

from dateutil import parser as date_parser

from ..casedev import CaseDevClient
from ..llm import CaseLLMClient

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "anthropic/claude-sonnet-4.5"
SEARCH_TOP_K = 10
FALLBACK_RESULT_COUNT = 5
EXTRACTION_TEMPERATURE = 0.1

NOT_FOUND = "NOT_FOUND"

ProgressCallback = Callable[[str], Awaitable[None]]


# =============================================================================
# PROMPTS
# =============================================================================

def build_search_query(column: Dict[str, Any], dependencies: Optional[Dict[str, Any]] = None) -> str:
    """Column name and prompt, with left-column values as extra context"""
    query = f"{column.get('name')}: {column.get('prompt')}"
    if dependencies:
        dep_context = ", ".join(f"{k}: {v}" for k, v in dependencies.items())
        query += f" (Context: {dep_context})"
    return query


def build_system_prompt(column: Dict[str, Any], dependencies: Optional[Dict[str, Any]] = None) -> str:
    prompt = f"""You are a precise data extraction assistant. Your task is to extract specific information from legal documents.

EXTRACTION TASK:
- Field: {column.get('name')}
- Instructions: {column.get('prompt')}
- Expected Type: {column.get('dataType', 'text')}

RULES:
1. Extract ONLY the requested information
2. If the information is not found, respond with "NOT_FOUND"
3. Be precise and concise - no explanations unless absolutely necessary
4. For dates, use ISO format (YYYY-MM-DD)
5. For boolean, respond with "true" or "false"
6. For numbers, respond with just the number (no currency symbols or units unless specified)"""

    if dependencies:
        prompt += "\n\nCONTEXT FROM OTHER COLUMNS:"
        for key, value in dependencies.items():
            prompt += f"\n- {key}: {value}"

    return prompt


def build_user_prompt(column: Dict[str, Any], document_title: str, context: str) -> str:
    return f"""Document: {document_title}

DOCUMENT CONTENT:
{context}

Extract the "{column.get('name')}" field based on the instructions: "{column.get('prompt')}"

Respond with ONLY the extracted value, nothing else."""


# =============================================================================
# VALUE PARSING
# =============================================================================

_NUMBER_PATTERN = re.compile(r"-?(\d+\.?\d*|\.\d+)")


def _parse_number(text: str) -> Optional[float]:
    cleaned = re.sub(r"[^0-9.\-]", "", text)
    match = _NUMBER_PATTERN.match(cleaned)
    if not match:
        return None
    number = float(match.group(0))
    return int(number) if number.is_integer() else number


def parse_extracted_value(text: str, data_type: str) -> Tuple[Any, float]:
    """
    Convert raw model output to a typed value.

    Returns:
        (value, confidence). NOT_FOUND answers give (None, 0).
    """
    trimmed = (text or "").strip()

    if trimmed == NOT_FOUND or "not found" in trimmed.lower():
        return None, 0

    if data_type == "boolean":
        lower = trimmed.lower()
        if lower in ("true", "yes"):
            return True, 0.9
        if lower in ("false", "no"):
            return False, 0.9
        return None, 0.3

    if data_type == "number":
        number = _parse_number(trimmed)
        if number is None:
            return None, 0.3
        return number, 0.85

    if data_type == "date":
        try:
            return date_parser.parse(trimmed).date().isoformat(), 0.85
        except (ValueError, OverflowError):
            # Unparseable dates are kept as text
            return trimmed, 0.6

    return trimmed, 0.8


# =============================================================================
# EXTRACTION
# =============================================================================

def _select_results(results: List[Dict[str, Any]], document_id: str) -> List[Dict[str, Any]]:
    """Keep chunks from the document when the server-side filter was ignored"""
    if results and results[0].get("object_id") != document_id:
        own = [r for r in results if r.get("object_id") == document_id]
        return own or results[:FALLBACK_RESULT_COUNT]
    return results


async def extract_cell_value(
    client: CaseDevClient,
    llm: CaseLLMClient,
    document_id: str,
    document_title: str,
    column: Dict[str, Any],
    vault_id: str,
    dependencies: Optional[Dict[str, Any]] = None,
    model_id: str = DEFAULT_MODEL,
    on_progress: Optional[ProgressCallback] = None,
) -> Dict[str, Any]:
    """
    Extract a single cell value.

    Returns:
        CellValue dict: {value, confidence, sources?, error?, tokensUsed}
    """
    tokens_used = 0

    try:
        if on_progress:
            await on_progress("Searching document...")

        results = await client.search_vault(
            vault_id,
            build_search_query(column, dependencies),
            top_k=SEARCH_TOP_K,
            method="hybrid",
            filters={"object_id": document_id},
        )
        results = _select_results(results, document_id)

        if not results:
            return {
                "value": None,
                "confidence": 0,
                "error": "No relevant content found in document",
                "tokensUsed": 0,
            }

        context = "\n\n".join(f"[Source {i + 1}]\n{r.get('text', '')}" for i, r in enumerate(results))
        sources = [r.get("object_name") or "Document" for r in results]

        if on_progress:
            await on_progress("Extracting value...")

        result = await llm.call(
            [
                {"role": "system", "content": build_system_prompt(column, dependencies)},
                {"role": "user", "content": build_user_prompt(column, document_title, context)},
            ],
            model=model_id,
            temperature=EXTRACTION_TEMPERATURE,
        )
        if not result.success:
            raise RuntimeError(result.error or "Extraction failed")

        tokens_used = result.total_tokens
        value, confidence = parse_extracted_value(result.content, column.get("dataType", "text"))

        return {
            "value": value,
            "confidence": confidence,
            "sources": sources,
            "tokensUsed": tokens_used,
        }

    except Exception as e:
        logger.error(f"Cell extraction failed for {document_id}/{column.get('id')}: {e}")
        return {
            "value": None,
            "confidence": 0,
            "error": str(e) or "Extraction failed",
            "tokensUsed": tokens_used,
        }
