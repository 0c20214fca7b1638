"""ASGI entry point for the KhetSetu auth backend (``uvicorn web_api:app``)."""

from __future__ import annotations

from dotenv import load_dotenv

from khetsetu.api.server import create_app
from khetsetu.core.config import AppConfig
from khetsetu.core.logging import setup_logging

load_dotenv()
APP_CONFIG = AppConfig.from_env()
setup_logging(APP_CONFIG.logging.level)

app = create_app(APP_CONFIG)
