"""
Server-Sent Events
==================

Streaming responses for chat, deep research and tabular extraction.
Each event is one `data: <json>` frame.
"""

import json
import logging
from typing import AsyncIterator, Dict, Any

from fastapi.responses import StreamingResponse

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event, default=str)}\n\n"


async def _encode(events: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[str]:
    try:
        async for event in events:
            yield format_sse(event)
    except Exception as e:
        # Headers are already sent; report the failure in-band
        logger.exception("SSE stream failed")
        yield format_sse({"type": "error", "message": str(e)})


def sse_response(events: AsyncIterator[Dict[str, Any]]) -> StreamingResponse:
    """Wrap an async generator of event dicts as text/event-stream"""
    return StreamingResponse(
        _encode(events),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
