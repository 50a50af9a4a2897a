"""
Entry point for running the token service.

Usage:
    python -m token_service

This starts the FastAPI token service on http://0.0.0.0:3001
"""
import uvicorn

from logging_setup import setup_logging, get_logger, Component
from .config import get_config

if __name__ == "__main__":
    setup_logging(level="INFO", use_json=True)

    config = get_config()
    if not config.has_api_key:
        get_logger(Component.TOKEN_SERVICE).warning(
            "No OPENAI_API_KEY set - will use API key from session requests"
        )

    uvicorn.run(
        "token_service.server:app",
        host=config.host,
        port=config.port,
        log_level="info",
    )
