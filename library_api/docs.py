"""
API documentation: prefer a bundled static OpenAPI/Swagger document,
fall back to the schema FastAPI generates from the routes.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import structlog
from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from library_api.config import APIConfig

logger = structlog.get_logger(__name__)


def load_static_openapi(path: Path, server_url: str) -> Optional[Dict[str, Any]]:
    """
    Load a static API description and point it at the running server.

    Args:
        path: Location of the JSON document
        server_url: Base URL of the running server, e.g. http://localhost:3000

    Returns:
        The adjusted document, or None if the file does not exist

    Raises:
        ValueError: If the file is not a JSON object
    """
    if not path.exists():
        return None

    with path.open(encoding="utf-8") as f:
        document = json.load(f)

    if not isinstance(document, dict):
        raise ValueError(f"{path} does not contain a JSON object")

    if document.get("swagger") == "2.0":
        server = urlparse(server_url)
        document["host"] = server.netloc
        document["schemes"] = [server.scheme or "http"]
        document["basePath"] = document.get("basePath") or "/"
    elif str(document.get("openapi", "")).startswith("3"):
        document["servers"] = [{"url": server_url}]

    return document


def install_openapi(app: FastAPI, settings: APIConfig) -> None:
    """Make app.openapi() serve the static document when one is bundled."""

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        document = None
        try:
            document = load_static_openapi(settings.get_openapi_path(), f"http://localhost:{settings.port}")
        except (OSError, ValueError) as e:
            logger.error("Failed to load static OpenAPI document",
                         path=settings.openapi_file, error=str(e))

        if document is None:
            document = get_openapi(
                title=app.title,
                version=app.version,
                description=app.description,
                routes=app.routes,
            )
            logger.info("Serving generated OpenAPI document")
        else:
            logger.info("Serving static OpenAPI document", path=settings.openapi_file)

        app.openapi_schema = document
        return document

    app.openapi = custom_openapi
