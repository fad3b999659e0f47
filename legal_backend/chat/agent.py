"""
Chat Agent
==========

Tool-calling loop over the Case.dev LLM endpoint.

Each step streams the conversation plus tool specs; tool calls are
executed and their results appended until the model answers without
tools or the step cap is reached.

Events:
- text         {text}       one per streamed delta
- reasoning    {text}       <think> content from reasoning models
- tool-call    {toolCallId, toolName, args}
- tool-result  {toolCallId, toolName, result}
- finish       {finishReason, usage}
- error        {message}
"""

import json
import logging
from typing import List, Dict, Any, Optional, AsyncIterator, Tuple

import httpx

from ..llm import CaseLLMClient, LLMCallResult, LLMError
from .tools import ChatToolbox

logger = logging.getLogger(__name__)

MAX_STEPS = 20

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant with access to Case.dev tools for legal workflows."


def build_system_prompt(custom_prompt: Optional[str], selected_vaults: List[str]) -> str:
    """Custom or default prompt, plus the selected vault ids when there are any"""
    system = custom_prompt or DEFAULT_SYSTEM_PROMPT
    if not selected_vaults:
        return system

    listed = "\n".join(f"{i + 1}. {vault_id}" for i, vault_id in enumerate(selected_vaults))
    first = selected_vaults[0]
    system += f"""

=== SELECTED VAULT IDS (USE THESE) ===
{listed}

CRITICAL: When calling tools that need a vaultId parameter, you MUST use one of the vault IDs above.

Examples:
- list_vault_objects({{ "vaultId": "{first}" }})
- search_vault({{ "vaultId": "{first}", "query": "medical records", "method": "hybrid" }})
- get_vault({{ "vaultId": "{first}" }})

DO NOT call these tools with empty parameters {{}}. Always provide the required vaultId from the list above."""
    return system


def _message_text(content: Any) -> str:
    """Flatten UI message parts ([{type: text, text}]) into a string"""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    if isinstance(content, dict):
        return content.get("text", "")
    return ""


def normalize_messages(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    normalized = []
    for message in messages:
        role = message.get("role")
        if role not in ("user", "assistant", "system"):
            continue
        text = _message_text(message.get("content", message.get("parts")))
        normalized.append({"role": role, "content": text})
    return normalized


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw or "{}")
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


# Models that wrap their reasoning in <think> tags
REASONING_MODELS = {
    "casemark/casemark-core-1",
    "casemark/casemark-core-1.5",
    "openai/gpt-5",
    "openai/o1",
    "openai/o3-mini",
    "anthropic/claude-sonnet-4",
}


class ThinkSplitter:
    """
    Splits streamed text into answer and reasoning.

    Text between <think> and </think> comes out as "reasoning", the rest
    as "text". Tags split across chunks are held back until complete.
    """

    OPEN = "<think>"
    CLOSE = "</think>"

    def __init__(self):
        self.buffer = ""
        self.in_think = False

    def _kind(self) -> str:
        return "reasoning" if self.in_think else "text"

    def feed(self, chunk: str) -> List[Tuple[str, str]]:
        self.buffer += chunk
        parts = []
        while True:
            tag = self.CLOSE if self.in_think else self.OPEN
            index = self.buffer.find(tag)
            if index >= 0:
                if index:
                    parts.append((self._kind(), self.buffer[:index]))
                self.buffer = self.buffer[index + len(tag):]
                self.in_think = not self.in_think
                continue

            # Keep a trailing partial tag for the next chunk
            keep = 0
            for size in range(min(len(tag) - 1, len(self.buffer)), 0, -1):
                if tag.startswith(self.buffer[-size:]):
                    keep = size
                    break
            ready = self.buffer[:len(self.buffer) - keep]
            if ready:
                parts.append((self._kind(), ready))
            self.buffer = self.buffer[len(self.buffer) - keep:]
            return parts

    def flush(self) -> List[Tuple[str, str]]:
        parts = [(self._kind(), self.buffer)] if self.buffer else []
        self.buffer = ""
        return parts


class ChatAgent:
    """Runs one chat turn with tools, streaming each step"""

    def __init__(
        self,
        llm: CaseLLMClient,
        toolbox: ChatToolbox,
        model: str,
        temperature: float = 1,
        max_tokens: int = 4096,
        top_p: float = 1,
        max_steps: int = MAX_STEPS,
    ):
        self.llm = llm
        self.toolbox = toolbox
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.top_p = top_p
        self.max_steps = max_steps

    async def _stream_step(self, conversation: List[Dict[str, Any]], tools: List[Dict[str, Any]]):
        """Yields text/reasoning events, then ("result", LLMCallResult)"""
        splitter = ThinkSplitter() if self.model in REASONING_MODELS else None

        async for event in self.llm.stream_with_tools(
            conversation,
            model=self.model,
            tools=tools or None,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=self.top_p,
        ):
            if event["type"] == "finish":
                if splitter:
                    for kind, text in splitter.flush():
                        yield {"type": kind, "text": text}
                yield {"type": "result", "result": event["result"]}
            elif splitter:
                for kind, text in splitter.feed(event["text"]):
                    yield {"type": kind, "text": text}
            else:
                yield {"type": "text", "text": event["text"]}

    async def run(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        conversation = [
            {"role": "system", "content": build_system_prompt(system_prompt, self.toolbox.selected_vaults)}
        ] + normalize_messages(messages)

        tools = self.toolbox.specs
        usage = {"inputTokens": 0, "outputTokens": 0}
        pending_artifact: Optional[str] = None

        logger.info(f"Chat run: model={self.model}, {len(conversation) - 1} messages, tools={self.toolbox.names}")

        for step in range(self.max_steps):
            answer: List[str] = []
            result: Optional[LLMCallResult] = None
            try:
                async for event in self._stream_step(conversation, tools):
                    if event["type"] == "result":
                        result = event["result"]
                        continue
                    if event["type"] == "text":
                        answer.append(event["text"])
                    yield event
            except (LLMError, httpx.HTTPError) as e:
                logger.error(f"Chat step {step} failed: {e}")
                yield {"type": "error", "message": str(e) or "Failed to generate response"}
                return

            usage["inputTokens"] += result.input_tokens
            usage["outputTokens"] += result.output_tokens

            text = "".join(answer)
            if text and pending_artifact:
                self.toolbox.write_artifact_content(pending_artifact, text)
                pending_artifact = None

            if not result.tool_calls:
                yield {"type": "finish", "finishReason": "stop", "usage": usage}
                return

            conversation.append({
                "role": "assistant",
                "content": result.content or None,
                "tool_calls": result.tool_calls,
            })

            for call in result.tool_calls:
                function = call.get("function") or {}
                name = function.get("name", "")
                args = _parse_arguments(function.get("arguments"))
                call_id = call.get("id")

                yield {"type": "tool-call", "toolCallId": call_id, "toolName": name, "args": args}
                output = await self.toolbox.execute(name, args)
                yield {"type": "tool-result", "toolCallId": call_id, "toolName": name, "result": output}

                if name == "create_artifact" and output.get("status") == "created":
                    pending_artifact = output.get("id")

                conversation.append({
                    "role": "tool",
                    "tool_call_id": call_id,
                    "content": json.dumps(output),
                })

        logger.warning(f"Chat run hit the step limit ({self.max_steps})")
        yield {"type": "finish", "finishReason": "max-steps", "usage": usage}
