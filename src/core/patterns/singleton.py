"""Thread-safe singleton base class.

The quota service is built once per process and shared by request handlers,
the background reset task and the operational scripts.
"""

import logging
import threading
from abc import ABC
from typing import ClassVar, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T', bound='ThreadSafeSingleton')


class ThreadSafeSingleton(ABC):
    """Singleton with double-checked locking.

    Subclasses implement ``_initialize()`` for one-time setup and may
    implement ``_cleanup()`` to release resources when the instance is
    discarded by ``reset_instance()``.

    Usage:
        class QuotaService(ThreadSafeSingleton):
            def _initialize(self):
                self._store = create_store(QuotaConfig())

        service = QuotaService.get_instance()
    """

    _instance: ClassVar[Optional['ThreadSafeSingleton']] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()
    _initialized: bool = False

    def __new__(cls: type[T]) -> T:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    instance = super().__new__(cls)
                    instance._initialized = False
                    cls._instance = instance
        return cls._instance  # type: ignore

    def __init__(self) -> None:
        if not self._initialized:
            with self._lock:
                if not self._initialized:
                    self._initialize()
                    self._initialized = True

    def _initialize(self) -> None:
        """One-time setup, called when the instance is first created."""

    def _cleanup(self) -> None:
        """Release resources held by the instance."""

    @classmethod
    def get_instance(cls: type[T]) -> T:
        """Return the process-wide instance, creating it on first use."""
        return cls()

    @classmethod
    def reset_instance(cls) -> None:
        """Discard the instance so the next access rebuilds it from config.

        Used by tests that change environment settings between cases.
        """
        with cls._lock:
            if cls._instance is not None:
                try:
                    cls._instance._cleanup()
                except Exception as e:
                    logger.warning(f"Cleanup of {cls.__name__} failed: {e}")
                cls._instance = None
