"""HTTP API for cosmos-imbot."""

from .app import create_app

__all__ = ["create_app"]
