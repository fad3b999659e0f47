"""
Chat Agent
==========
"""

from .agent import ChatAgent, ThinkSplitter, build_system_prompt, normalize_messages, MAX_STEPS
from .tools import ChatToolbox, TOOL_SPECS, apply_search_replace

__all__ = [
    "ChatAgent",
    "ChatToolbox",
    "ThinkSplitter",
    "TOOL_SPECS",
    "MAX_STEPS",
    "apply_search_replace",
    "build_system_prompt",
    "normalize_messages",
]
