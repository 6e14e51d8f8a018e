from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from codey_gateway.api import generate, health
from codey_gateway.core.errors import AuthError, GatewayApiError
from codey_gateway.core.logger_setup import setup_logging
from codey_gateway.core.settings import Settings, get_settings
from codey_gateway.providers.generator import GatewayContentGenerator
from codey_gateway.schemas import ErrorResponse


def create_app(settings: Settings | None = None, generator: GatewayContentGenerator | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        if getattr(app.state, "generator", None) is None:
            app.state.generator = GatewayContentGenerator(settings)
        yield

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    if generator is not None:
        app.state.generator = generator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GatewayApiError)
    async def gateway_api_error(request: Request, exc: GatewayApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status,
            content=ErrorResponse(detail=str(exc), status=exc.status).model_dump(exclude_none=True),
        )

    @app.exception_handler(AuthError)
    async def auth_error(request: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content=ErrorResponse(detail=str(exc), hint=exc.hint).model_dump(exclude_none=True),
        )

    app.include_router(health.router)
    app.include_router(generate.router)
    return app


app = create_app()
