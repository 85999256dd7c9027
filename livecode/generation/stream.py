import json
import logging
from typing import Any, AsyncIterable, AsyncIterator

from livecode.errors import StreamError
from livecode.sse import DONE_MARKER, is_comment, is_done, strip_data_prefix


logger = logging.getLogger("livecode.generation.stream")


def decode_record(line: str) -> str | None:
    """Decode one protocol record into its content delta.

    Returns None for well-formed records that carry no content (role headers,
    finish markers). Raises ValueError for records that are not a JSON object and
    StreamError for records reporting a provider error.
    """
    data: Any = json.loads(strip_data_prefix(line))
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    if data.get("error"):
        err = data["error"]
        message = err.get("message") if isinstance(err, dict) else str(err)
        raise StreamError(f"Upstream reported an error mid-stream: {message}")

    choices = data.get("choices") or []
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) and content else None


async def iter_content_deltas(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield content deltas from newline-delimited SSE records.

    Malformed records are logged and skipped rather than failing a transfer that is
    otherwise progressing. The ``[DONE]`` sentinel ends the sequence; lines running
    out before it means the transfer was cut off, which raises StreamError.
    """
    async for raw in lines:
        line = raw.strip()
        if not line or is_comment(line):
            continue
        if is_done(line):
            return
        try:
            delta = decode_record(line)
        except ValueError as e:
            logger.warning("Failed to parse line: %r (%s)", line[:200], str(e))
            continue
        if delta:
            yield delta
    raise StreamError(f"Stream ended without {DONE_MARKER}")
