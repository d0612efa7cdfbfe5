"""Elapsed-time helpers for deploy and rollback timing output."""

import time


def elapsed_since(start: float) -> float:
    """Seconds since a ``time.monotonic()`` reading, rounded to two decimals."""
    return round(time.monotonic() - start, 2)
