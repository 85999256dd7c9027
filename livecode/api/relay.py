import logging
from typing import Any, AsyncGenerator

import anyio
import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from livecode.sse import DONE_EVENT, SSE_HEADERS


logger = logging.getLogger("livecode.api.relay")


router = APIRouter(prefix="/api", tags=["relay"])


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    """Chat-completion request forwarded verbatim to the upstream provider."""

    model: str | None = None
    messages: list[ChatMessage]
    temperature: float = 0.0
    stream: bool = True


def make_upstream_client() -> httpx.AsyncClient:
    # No timeout: the caller's retry budget is the only bound on latency
    return httpx.AsyncClient(timeout=None)


async def _close_upstream(upstream: httpx.Response, client: httpx.AsyncClient) -> None:
    with anyio.CancelScope(shield=True):
        await upstream.aclose()
        await client.aclose()


async def relay_stream(
    request: Request, upstream: httpx.Response, client: httpx.AsyncClient
) -> AsyncGenerator[bytes, None]:
    """Pass upstream bytes through untouched, then write the end-of-stream sentinel.

    The sentinel is emitted by the relay itself so callers always see an explicit end
    marker, even when the provider omits one. A client disconnect closes the upstream
    response and stops writing.
    """
    try:
        # Decoded bytes: SSE_HEADERS carry no Content-Encoding
        async for chunk in upstream.aiter_bytes():
            if await request.is_disconnected():
                logger.info("Client disconnected; aborting upstream stream")
                return
            yield chunk
        logger.info("Stream completed successfully")
        yield DONE_EVENT
    except httpx.HTTPError as e:
        # Headers are already sent; all we can do is end the response
        logger.error("Stream error: %s", str(e))
    finally:
        await _close_upstream(upstream, client)


@router.post("/chat")
async def chat(body: ChatRequest, request: Request):
    settings = request.app.state.settings
    logger.info(
        "Received chat request model=%s messages=%d",
        body.model or settings.model,
        len(body.messages),
    )
    payload: dict[str, Any] = {
        "model": body.model or settings.model,
        "messages": [m.model_dump() for m in body.messages],
        "temperature": body.temperature,
        "stream": True,
    }
    headers = {
        "Authorization": f"Bearer {settings.upstream_api_key or ''}",
        "Content-Type": "application/json",
    }

    client = make_upstream_client()
    try:
        upstream = await client.send(
            client.build_request("POST", settings.upstream_url, json=payload, headers=headers),
            stream=True,
        )
    except httpx.HTTPError as e:
        await client.aclose()
        logger.error("Proxy error: %s", str(e))
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to fetch from upstream API", "details": str(e)},
        )

    if not upstream.is_success:
        details = (await upstream.aread()).decode("utf-8", errors="replace")
        await _close_upstream(upstream, client)
        logger.error("API error status=%d: %s", upstream.status_code, details[:500])
        return JSONResponse(
            status_code=upstream.status_code,
            content={"error": "API request failed", "details": details},
        )

    return StreamingResponse(relay_stream(request, upstream, client), headers=SSE_HEADERS)
