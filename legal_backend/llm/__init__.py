"""
LLM Module
==========

OpenAI-compatible chat completions via Case.dev.
"""

from .client import CaseLLMClient, LLMCallResult, LLMError, get_llm_client, close_llm_client

__all__ = [
    "CaseLLMClient",
    "LLMCallResult",
    "LLMError",
    "get_llm_client",
    "close_llm_client",
]
