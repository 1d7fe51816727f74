"""Weight curves mapping a layer index to its share of the allocatable balance.

A scale is configured as a single-key mapping, e.g.::

    liquidity_scale:
      exp:
        domain: [0, 9]
        range: [1, 4]

``scale_from_config`` resolves it into one of the closed set of variants below
and solves its coefficients once.  Inputs outside the domain are clamped to the
nearest domain edge, so layer indices past the domain reuse the edge weight.
"""

from __future__ import annotations

import abc
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Sequence, Tuple, Type

import numpy as np

from scmaker.errors import ScaleError


def _pair(values: Sequence[float], name: str, key: str) -> Tuple[float, float]:
    if len(values) != 2:
        raise ScaleError(f"liquidity_scale.{key}.{name}", f"expected 2 values, got {len(values)}")
    return float(values[0]), float(values[1])


@dataclass
class Scale(abc.ABC):
    """Monotonic ``x -> y`` curve fitted through its domain/range points."""

    domain: Tuple[float, ...]
    range: Tuple[float, ...]
    _solved: bool = field(default=False, init=False, repr=False)

    key = ""

    @abc.abstractmethod
    def _solve(self) -> None:
        """Fit the curve coefficients; raise ScaleError when impossible."""

    @abc.abstractmethod
    def _call(self, x: float) -> float:
        """Evaluate the fitted curve at a clamped *x*."""

    def solve(self) -> "Scale":
        self._solve()
        self._solved = True
        return self

    def call(self, x: float) -> float:
        if not self._solved:
            raise ScaleError(f"liquidity_scale.{self.key}", "scale must be solved before use")
        lo, hi = min(self.domain), max(self.domain)
        return self._call(min(max(x, lo), hi))

    def weight(self, index: int) -> float:
        """Weight of layer *index*."""
        return self.call(float(index))

    def sum(self, start: float, stop: float, step: float = 1.0) -> float:
        """Sum of ``call(x)`` for x in ``[start, stop]`` (inclusive) by *step*."""
        total = 0.0
        x = start
        while x <= stop:
            total += self.call(x)
            x += step
        return total


@dataclass
class LinearScale(Scale):
    """``y = a*x + b``"""

    key = "linear"

    def _solve(self) -> None:
        x0, x1 = _pair(self.domain, "domain", self.key)
        y0, y1 = _pair(self.range, "range", self.key)
        if x0 == x1:
            raise ScaleError(f"liquidity_scale.{self.key}.domain", "domain must not be empty")
        self._a = (y1 - y0) / (x1 - x0)
        self._b = y0 - self._a * x0

    def _call(self, x: float) -> float:
        return self._a * x + self._b


@dataclass
class ExponentialScale(Scale):
    """``y = a * b^(x - h)`` with ``h`` the domain start."""

    key = "exp"

    def _solve(self) -> None:
        x0, x1 = _pair(self.domain, "domain", self.key)
        y0, y1 = _pair(self.range, "range", self.key)
        if y0 == 0:
            raise ScaleError(f"liquidity_scale.{self.key}.range", "range[0] can not be zero")
        if x0 == x1:
            raise ScaleError(f"liquidity_scale.{self.key}.domain", "domain must not be empty")
        if y1 / y0 <= 0:
            raise ScaleError(f"liquidity_scale.{self.key}.range", "range must not cross zero")
        self._h = x0
        self._a = y0
        self._b = math.pow(y1 / y0, 1.0 / (x1 - x0))

    def _call(self, x: float) -> float:
        return self._a * math.pow(self._b, x - self._h)


@dataclass
class LogarithmicScale(Scale):
    """``y = a * ln(x - h) + s`` with ``h`` one below the domain start."""

    key = "log"

    def _solve(self) -> None:
        x0, x1 = _pair(self.domain, "domain", self.key)
        y0, y1 = _pair(self.range, "range", self.key)
        self._h = x0 - 1
        self._s = y0
        denom = math.log(x1 - self._h) if x1 - self._h > 0 else 0.0
        if denom == 0:
            raise ScaleError(f"liquidity_scale.{self.key}.domain", "domain end must exceed domain start")
        self._a = (y1 - y0) / denom

    def _call(self, x: float) -> float:
        return self._a * math.log(x - self._h) + self._s


@dataclass
class QuadraticScale(Scale):
    """``y = a*x^2 + b*x + c`` through three domain/range points."""

    key = "quadratic"

    def _solve(self) -> None:
        if len(self.domain) != 3 or len(self.range) != 3:
            raise ScaleError(f"liquidity_scale.{self.key}", "domain and range need 3 points each")
        xs = np.asarray(self.domain, dtype=float)
        ys = np.asarray(self.range, dtype=float)
        matrix = np.column_stack([xs ** 2, xs, np.ones(3)])
        try:
            self._coef = np.linalg.solve(matrix, ys)
        except np.linalg.LinAlgError as exc:
            raise ScaleError(f"liquidity_scale.{self.key}.domain", f"unsolvable: {exc}") from exc

    def _call(self, x: float) -> float:
        a, b, c = self._coef
        return float(a * x * x + b * x + c)


SCALES: Dict[str, Type[Scale]] = {
    cls.key: cls for cls in (ExponentialScale, LinearScale, LogarithmicScale, QuadraticScale)
}


def scale_from_config(cfg: Dict[str, Any]) -> Scale:
    """Resolve a ``{kind: {domain, range}}`` mapping into a solved scale."""
    if not isinstance(cfg, dict) or len(cfg) != 1:
        raise ScaleError("liquidity_scale", f"expected exactly one of {sorted(SCALES)}")
    (kind, params), = cfg.items()
    if kind not in SCALES:
        raise ScaleError("liquidity_scale", f"unknown scale {kind!r}, expected one of {sorted(SCALES)}")
    try:
        domain = tuple(float(v) for v in params["domain"])
        rng = tuple(float(v) for v in params["range"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ScaleError(f"liquidity_scale.{kind}", f"domain/range missing or invalid: {exc}") from exc
    return SCALES[kind](domain=domain, range=rng).solve()
