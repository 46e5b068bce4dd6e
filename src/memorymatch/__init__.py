"""Memory Match package exposing the session engine, store and web application."""

from .config import Settings
from .session import SessionManager
from .store import DocumentStore, InMemoryDocumentStore
from .ui import app

__all__ = ["DocumentStore", "InMemoryDocumentStore", "SessionManager", "Settings", "app"]
