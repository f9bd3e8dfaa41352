import sys
from typing import Any

import fastapi
import uvicorn

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from code_reviewer.auth import router as auth_router
from code_reviewer.config import Settings, get_settings
from code_reviewer.dependencies import Services, build_services
from code_reviewer.review import router as review_router


def create_app(settings: Settings | None = None, *, services: Services | None = None) -> FastAPI:
    app = FastAPI(title="Gemini Code Reviewer")
    app.state.services = services or build_services(settings or get_settings())

    app.include_router(auth_router, tags=["auth"])
    app.include_router(review_router, tags=["review"])

    @app.get("/", response_class=PlainTextResponse)
    def root() -> str:
        return "pong"

    @app.get("/health")
    def health() -> dict[str, Any]:
        active = app.state.services
        return {
            "status": "The Gemini Code Reviewer is operational.",
            "analyzer_model": active.settings.gemini_model,
            "oauth_enabled": active.handshake is not None,
            "environment": {
                "python version": sys.version,
                "fastapi version": fastapi.__version__,
                "uvicorn version": uvicorn.__version__,
            },
        }

    @app.on_event("shutdown")
    async def _close_clients() -> None:
        await app.state.services.aclose()

    return app
