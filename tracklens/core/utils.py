"""
Small shared utilities.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator


@dataclass
class Elapsed:
    """Wall-clock duration, filled in when the ``timer()`` block exits."""
    ms: int = 0


@contextmanager
def timer() -> Iterator[Elapsed]:
    elapsed = Elapsed()
    start = time.perf_counter()
    try:
        yield elapsed
    finally:
        elapsed.ms = int((time.perf_counter() - start) * 1000)


def round_or_none(value: float | None, digits: int) -> float | None:
    """Round for presentation, keeping ``None`` as "no data"."""
    if value is None:
        return None
    return round(float(value), digits)
