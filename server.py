import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Settings import loads .env before anything reads the environment
from livecode.config import Settings, get_settings
from livecode.api import relay


# Basic logger for server diagnostics (inherits uvicorn handlers)
logger = logging.getLogger("livecode.server")
if not logger.handlers:
    logger.setLevel(logging.INFO)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the relay application.

    The upstream credential is read once here, at startup, and is not validated;
    a missing key surfaces on the first request as an upstream auth error.
    """
    resolved = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Server running on port %d", resolved.port)
        yield
        # uvicorn closes the listener on SIGINT/SIGTERM before the lifespan exits
        logger.info("Shutting down gracefully. Server closed")

    app = FastAPI(title="livecode relay", lifespan=lifespan)
    app.state.settings = resolved

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Global error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc)},
        )

    app.include_router(relay.router)

    @app.get("/")
    def read_root():
        return {"Hello": "livecode relay"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
