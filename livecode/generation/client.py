import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import httpx
from pydantic import BaseModel

from livecode.config import Settings
from livecode.errors import GenerationError, NetworkError, StreamError, UpstreamError
from livecode.generation.output import MIN_CODE_LENGTH, strip_fences, validate_code
from livecode.generation.stream import iter_content_deltas


logger = logging.getLogger("livecode.generation.client")


SYSTEM_PROMPT = """
You are an expert Python game developer. Your task is to modify the provided game code according to the user's request.
Return ONLY valid Python code, no explanations or markdown. The code must be complete and runnable.

Host contract (keep it intact):
- The code runs inside a host that provides a global `host` object: host.width, host.height,
  host.surface (a pygame Surface, or None without a window), host.request_frame(callback) -> handle,
  host.cancel_frame(handle), host.add_key_listener(fn) where fn receives pygame key names such as "space",
  host.remove_key_listener(fn), host.expose(name, value) and host.log.
- Define a zero-argument init_game() function; the host calls it once after loading the code.
- Do not open windows, create event loops, or call pygame.display.set_mode / pygame.quit yourself.
""".strip()

USER_TEMPLATE = (
    "Here is the current game code:\n\n{code}\n\n"
    "Request: {request}\n\n"
    "Provide ONLY the complete modified Python code."
)


ProgressCallback = Callable[[int, int], None]


class GenerationRequest(BaseModel):
    """One apply's worth of prompt. Built fresh per call and never persisted."""

    system_prompt: str = SYSTEM_PROMPT
    current_code: str
    user_instruction: str
    model: str
    temperature: float = 0.0
    stream: bool = True

    def messages(self) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {
                "role": "user",
                "content": USER_TEMPLATE.format(
                    code=self.current_code, request=self.user_instruction
                ),
            },
        ]

    def to_payload(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": self.messages(),
            "temperature": self.temperature,
            "stream": self.stream,
        }


class StreamProgress(BaseModel):
    """Progress of one streamed reply.

    bytes_expected is the size of the serialized *outbound* request, not of the reply.
    It is a deliberately rough denominator, so the ratio can end above or below 1.
    """

    bytes_received: int = 0
    bytes_expected: int = 0


class GenerationClient:
    """Sends the current game code to the relay and returns a validated rewrite."""

    def __init__(
        self,
        endpoint: str,
        model: str,
        *,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        min_length: int = MIN_CODE_LENGTH,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.endpoint = endpoint
        self.model = model
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.min_length = min_length
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "GenerationClient":
        return cls(
            settings.relay_url,
            settings.model,
            max_attempts=settings.max_attempts,
            backoff_base=settings.backoff_base_seconds,
            min_length=settings.min_code_length,
            **kwargs,
        )

    def build_request(self, current_code: str, user_request: str) -> GenerationRequest:
        return GenerationRequest(
            current_code=current_code, user_instruction=user_request, model=self.model
        )

    async def modify_code(
        self,
        current_code: str,
        user_request: str,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """Return the model's rewrite of current_code, retrying with exponential backoff.

        Every failure class is retried the same way; after the last attempt the final
        error is raised untouched. Each attempt re-sends the identical body.
        """
        body = json.dumps(self.build_request(current_code, user_request).to_payload())

        attempt = 0
        while True:
            attempt += 1
            try:
                logger.info(
                    "Sending generation request attempt=%d/%d bytes=%d",
                    attempt,
                    self.max_attempts,
                    len(body),
                )
                text = await self._stream_completion(body, on_progress)
                code = validate_code(strip_fences(text), self.min_length)
                logger.info("Generation succeeded chars=%d", len(code))
                return code
            except GenerationError as e:
                logger.warning("API request attempt %d failed: %s", attempt, str(e))
                if attempt >= self.max_attempts:
                    raise
                await self._sleep(self.backoff_base * 2**attempt)

    async def _stream_completion(self, body: str, on_progress: ProgressCallback | None) -> str:
        progress = StreamProgress(bytes_expected=len(body))
        parts: list[str] = []
        headers = {"Content-Type": "application/json"}

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=None) as client:
                async with client.stream(
                    "POST", self.endpoint, content=body, headers=headers
                ) as response:
                    if not response.is_success:
                        details = (await response.aread()).decode("utf-8", errors="replace")
                        raise UpstreamError(
                            f"API request failed: {response.status_code} "
                            f"{response.reason_phrase}\n{details}",
                            status=response.status_code,
                            body=details,
                        )
                    try:
                        async for delta in iter_content_deltas(response.aiter_lines()):
                            parts.append(delta)
                            progress.bytes_received += len(delta)
                            if on_progress:
                                on_progress(progress.bytes_received, progress.bytes_expected)
                    except httpx.HTTPError as e:
                        raise StreamError(f"Stream interrupted: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Could not reach {self.endpoint}: {e}") from e

        if on_progress:
            on_progress(progress.bytes_expected, progress.bytes_expected)
        return "".join(parts)
