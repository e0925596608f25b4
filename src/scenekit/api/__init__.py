"""FastAPI application exposing scene editing endpoints."""

from .app import EditorService, create_app
from .settings import EditorSettings

__all__ = ["create_app", "EditorService", "EditorSettings"]
