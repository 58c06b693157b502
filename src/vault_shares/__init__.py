"""Time-limited share links onto a private notes vault."""

from .app import create_app
from .settings import ShareSettings

__all__ = ["create_app", "ShareSettings"]
