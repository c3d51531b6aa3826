"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (OpenAI client, session gateway)
- Start and stop the voice session with the app lifespan
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI

from config import AppConfig
from observability import logger
from session.gateway import SessionGateway

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    gateway: SessionGateway | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with an injected gateway (fake recognition, playback, backend)
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    logger.configure(enabled=config.enable_json_logs)

    if gateway is None:
        gateway = SessionGateway(
            config=config,
            openai_client=build_tts_client(config),
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await app.state.gateway.start()
        try:
            yield
        finally:
            await app.state.gateway.shutdown()

    app = FastAPI(title="Voice Session Controller", lifespan=lifespan)

    app.state.config = config
    app.state.gateway = gateway

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app


def build_tts_client(config: AppConfig) -> AsyncOpenAI | None:
    """Build the TTS client; without a key answers are shown but not spoken."""
    if not config.speech_output_available:
        return None
    return AsyncOpenAI(api_key=config.openai_api_key)
