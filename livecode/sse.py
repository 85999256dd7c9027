SSE_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"


def sse_data(text: str) -> str:
    return f"data: {text}\n\n"


DONE_EVENT: bytes = sse_data(DONE_MARKER).encode("utf-8")


def strip_data_prefix(line: str) -> str:
    """Return the payload of an SSE ``data:`` line; other lines come back unchanged."""
    if line.startswith(DATA_PREFIX):
        return line[len(DATA_PREFIX):].lstrip()
    return line


def is_comment(line: str) -> bool:
    # SSE comments, e.g. provider keep-alives such as ": OPENROUTER PROCESSING"
    return line.startswith(":")


def is_done(line: str) -> bool:
    return strip_data_prefix(line.strip()) == DONE_MARKER
