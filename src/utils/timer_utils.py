"""Timing helpers for request logging and operational sweeps."""

import time
from typing import Optional


def elapsed_ms(start_time: float) -> float:
    """
    Calculate elapsed time in milliseconds since start_time.

    Args:
        start_time: Start time from time.time()

    Returns:
        Elapsed time in milliseconds
    """
    return (time.time() - start_time) * 1000


class Timer:
    """
    Context manager for timing a sweep or audit pass.

    Usage:
        >>> with Timer() as t:
        ...     report = await scheduler.sweep()
        >>> logger.info(f"Sweep took {t.elapsed_ms:.0f}ms")
    """

    def __init__(self):
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

    @property
    def elapsed_ms(self) -> float:
        """Elapsed milliseconds, live while the timer is running."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.time()
        return (end - self.start_time) * 1000

    def __enter__(self) -> "Timer":
        self.start_time = time.time()
        self.end_time = None
        return self

    def __exit__(self, *args) -> None:
        self.end_time = time.time()

    def __repr__(self) -> str:
        return f"Timer(elapsed_ms={self.elapsed_ms:.2f})"
