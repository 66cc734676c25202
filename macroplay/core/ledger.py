from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class InsufficientFunds:
    """Reason a debit was refused."""

    requested: int
    available: int

    @property
    def shortfall(self) -> int:
        return self.requested - self.available


@dataclass(frozen=True)
class DebitResult:
    """Outcome of a debit: either the new total or an InsufficientFunds error."""

    ok: bool
    total: int
    error: Optional[InsufficientFunds] = None


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be an integer, got {amount!r}")
    if amount < 0:
        raise ValueError(f"amount must be nonnegative, got {amount}")
    return amount


class ScoreLedger:
    """Point counter for a playback session.

    The balance only changes through :meth:`credit` and :meth:`debit` and is
    never negative: a debit larger than the balance is refused and leaves the
    balance untouched. Observers are notified by the caller, not the ledger.
    """

    def __init__(self, initial: int = 0) -> None:
        self._total = _check_amount(initial)

    def balance(self) -> int:
        """Current point total."""
        return self._total

    def credit(self, amount: int) -> int:
        """Add *amount* points and return the new total."""
        self._total += _check_amount(amount)
        return self._total

    def debit(self, amount: int) -> DebitResult:
        """Spend *amount* points if the balance covers it."""
        amount = _check_amount(amount)
        if amount > self._total:
            return DebitResult(
                ok=False,
                total=self._total,
                error=InsufficientFunds(requested=amount, available=self._total),
            )
        self._total -= amount
        return DebitResult(ok=True, total=self._total)

    def reset(self) -> None:
        """Zero the balance (from-scratch session start only)."""
        self._total = 0
