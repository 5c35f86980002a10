"""ASGI application entry point for uvicorn.

Usage:
    uvicorn leadmagnet_service.server:create_server_app --factory --host 0.0.0.0 --port 8000

Configuration is read by :func:`leadmagnet_service.config_loader.load_settings`.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI

from .api import create_app
from .config_loader import load_settings
from .core import LeadMagnetCore


def configure_logging() -> None:
    """Configure the root logger from ``LMS_LOG_LEVEL``."""
    log_level = os.getenv("LMS_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def build_app(settings: Dict[str, Any], core: Optional[LeadMagnetCore] = None) -> FastAPI:
    """Create the core service and the FastAPI application bound to it."""
    service = core or LeadMagnetCore.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        await service.init()
        yield

    return create_app(service, api_token=settings.get("api_token"), lifespan=lifespan)


def create_server_app() -> FastAPI:
    """Factory used by ``uvicorn --factory``."""
    configure_logging()
    return build_app(load_settings())


def run_server(settings: Dict[str, Any]) -> None:
    configure_logging()
    app = build_app(settings)
    uvicorn.run(app, host=str(settings["http_host"]), port=int(settings["http_port"]))
