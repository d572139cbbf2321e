"""HTTP API for the message quota service."""

from .app import create_app

__all__ = ["create_app"]
