"""FastAPI application exposing the shared-world synchronisation service."""

from .app import create_app
from .settings import SyncApiSettings

__all__ = ["create_app", "SyncApiSettings"]
