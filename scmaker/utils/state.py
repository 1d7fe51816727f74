"""JSON persistence of position and profit stats across restarts."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Tuple

from scmaker.strategy.inventory import Position
from scmaker.strategy.pnl_tracker import ProfitStats


class StateStore:
    """Keeps ``{"position": ..., "profit_stats": ...}`` in a single JSON file."""

    def __init__(self, path: str | Path, logger: logging.Logger | None = None):
        self._path = Path(path)
        self._logger = logger or logging.getLogger("scmaker.state")

    @property
    def path(self) -> Path:
        return self._path

    def load(self, symbol: str) -> Tuple[Position, ProfitStats]:
        """Return the persisted state of *symbol*, or fresh state when none exists."""
        if not self._path.exists():
            self._logger.info("No saved state at %s, starting flat", self._path)
            return Position(symbol=symbol), ProfitStats(symbol=symbol)

        data = json.loads(self._path.read_text(encoding="utf-8"))
        position = Position.from_dict(data.get("position") or {"symbol": symbol})
        stats = ProfitStats.from_dict(data.get("profit_stats") or {"symbol": symbol})
        if position.symbol != symbol:
            raise ValueError(f"state file {self._path} belongs to {position.symbol}, not {symbol}")
        self._logger.info(
            "Loaded position %.8f @ %.6f from %s", position.base, position.average_cost, self._path
        )
        return position, stats

    def save(self, position: Position, stats: ProfitStats) -> None:
        payload = {"position": position.to_dict(), "profit_stats": stats.to_dict()}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.parent / f".{self._path.stem}.{uuid.uuid4().hex[:8]}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        tmp.replace(self._path)
