"""
Wall-clock timing for pipeline stages.

    with timeit("dispatch") as t:
        keys = dispatch_chunks(...)
    verbose(_LOG, "stage", event="dispatch", seconds=round(t.seconds, 4))
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional


@dataclass
class Timing:
    """A finished measurement."""
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:
    """
    Context manager measuring the enclosed block with perf_counter().

    ``timing`` is populated on exit, also when the block raises.
    ``seconds`` is a shortcut that returns -1.0 before the block finishes.
    """

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self._t0: float | None = None
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=perf_counter() - self._t0, meta=self.meta)

    @property
    def seconds(self) -> float:
        return self.timing.seconds if self.timing else -1.0
