"""Tick and order counters exported as a Prometheus text file."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from pathlib import Path
from typing import Dict, Optional


class Metrics:
    """Async-safe counters & gauges, written out on ``flush``."""

    def __init__(self, path: str | Path | None = None, prefix: str = "scmaker"):
        self._metrics: Dict[str, float] = defaultdict(float)
        self._lock = asyncio.Lock()
        self._path: Optional[Path] = Path(path) if path else None
        self._prefix = prefix

    async def incr(self, key: str, amt: float = 1.0):
        async with self._lock:
            self._metrics[key] += amt

    async def set(self, key: str, val: float):
        async with self._lock:
            self._metrics[key] = val

    def get(self, key: str) -> float:
        return self._metrics.get(key, 0.0)

    def render(self) -> str:
        return "".join(f"{self._prefix}_{k} {v}\n" for k, v in sorted(self._metrics.items()))

    async def flush(self):
        if self._path is None:
            return
        async with self._lock:
            content = self.render()
        self._path.write_text(content)
