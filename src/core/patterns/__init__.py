"""Shared design patterns."""

from .singleton import ThreadSafeSingleton

__all__ = ["ThreadSafeSingleton"]
