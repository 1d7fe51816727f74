"""Per-tick reservation of base/quote balance across liquidity layers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Quota:
    """One fungible balance with provisional locks."""

    available: float = 0.0
    locked: float = 0.0

    def add(self, fund: float) -> None:
        self.available += fund

    def lock(self, fund: float) -> bool:
        """Reserve *fund*; fails without side effect when it exceeds what is available."""
        if fund < 0 or fund > self.available:
            return False
        self.available -= fund
        self.locked += fund
        return True

    def commit(self) -> None:
        self.locked = 0.0

    def rollback(self) -> None:
        self.available += self.locked
        self.locked = 0.0


class QuotaLedger:
    """Base and quote quotas reserved layer by layer within a single tick.

    Earlier locks win: every successful lock shrinks what later layers can
    claim.  ``rollback`` returns every uncommitted lock, ``commit`` makes
    them final.
    """

    def __init__(self, available_base: float, available_quote: float):
        self.base = Quota(available=max(0.0, available_base))
        self.quote = Quota(available=max(0.0, available_quote))

    def lock_base(self, amount: float) -> bool:
        return self.base.lock(amount)

    def lock_quote(self, amount: float) -> bool:
        return self.quote.lock(amount)

    def commit(self) -> None:
        self.base.commit()
        self.quote.commit()

    def rollback(self) -> None:
        self.base.rollback()
        self.quote.rollback()

    def __repr__(self) -> str:
        return (
            f"QuotaLedger(base={self.base.available:.8f}+{self.base.locked:.8f} locked, "
            f"quote={self.quote.available:.8f}+{self.quote.locked:.8f} locked)"
        )
