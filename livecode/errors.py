class LiveCodeError(RuntimeError):
    """Base for every failure surfaced to the host UI."""


class GenerationError(LiveCodeError):
    """Raised when the model could not produce usable code. Always retryable."""


class NetworkError(GenerationError):
    """The relay (or the upstream behind it) could not be reached."""


class UpstreamError(GenerationError):
    """The relay answered with a non-2xx status."""

    def __init__(self, message: str, *, status: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class StreamError(GenerationError):
    """The response stream was interrupted or reported an error mid-transfer."""


class InvalidOutput(GenerationError):
    """The assembled reply was empty, truncated, or not valid Python."""


class BridgeError(LiveCodeError):
    """Raised by the execution host bridge. Never retried automatically."""


class ReadError(BridgeError):
    """The current payload source could not be recovered."""


class ApplyError(BridgeError):
    """New code could not be injected into a fresh execution context."""


class ContextUnavailable(ApplyError):
    """The execution context stopped answering after it was reloaded."""


class ReloadFailed(ApplyError):
    """The execution context could not be recreated."""
