"""Server-Sent Events decoding for the inbound progress channel.

Each frame is a JSON object on one or more ``data:`` lines, terminated by a
blank line::

    event: pagegeneration.node.completed
    data: {"TaskID": "t-1", "NodeID": 7}

The ``event:`` line is optional; without it the name is read from the
payload's ``"event"`` key::

    data: {"event": "pagegeneration.task.paused", "TaskID": "t-1"}
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

logger = logging.getLogger(__name__)


def decode_frame(event_name: Optional[str], data_lines: list[str]) -> Optional[tuple[str, dict[str, Any]]]:
    """Turn one SSE frame into ``(name, payload)``; ``None`` if it is unusable."""
    if not data_lines:
        return None
    raw = "\n".join(data_lines)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Dropping SSE frame with invalid JSON: %.80s", raw)
        return None
    if not isinstance(payload, dict):
        return None
    name = event_name or payload.pop("event", None)
    if not name:
        return None
    return str(name), payload


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, dict[str, Any]]]:
    """Group raw lines into frames and yield the decoded events."""
    event_name: Optional[str] = None
    data_lines: list[str] = []
    async for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            frame = decode_frame(event_name, data_lines)
            if frame is not None:
                yield frame
            event_name, data_lines = None, []
        elif line.startswith(":"):
            continue  # comment / keep-alive
        elif line.startswith("event:"):
            event_name = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].lstrip())
    frame = decode_frame(event_name, data_lines)
    if frame is not None:
        yield frame
