"""In-memory backend double speaking the storefront REST contract."""

from .app import create_app
from .store import SandboxError, SandboxStore

__all__ = ["create_app", "SandboxError", "SandboxStore"]
