"""Tests for macroplay.core.ledger – the session score ledger."""

from __future__ import annotations

import pytest

from macroplay.core.ledger import DebitResult, InsufficientFunds, ScoreLedger


# ---------------------------------------------------------------------------
# credit / balance
# ---------------------------------------------------------------------------

class TestCredit:
    def test_starts_at_zero(self):
        assert ScoreLedger().balance() == 0

    def test_initial_balance(self):
        assert ScoreLedger(initial=7).balance() == 7

    def test_credit_returns_new_total(self):
        ledger = ScoreLedger()
        assert ledger.credit(10) == 10
        assert ledger.credit(5) == 15
        assert ledger.balance() == 15

    def test_credit_zero(self):
        ledger = ScoreLedger(initial=3)
        assert ledger.credit(0) == 3

    @pytest.mark.parametrize("amount", [-1, 1.5, "10", True])
    def test_credit_rejects_bad_amounts(self, amount):
        ledger = ScoreLedger()
        with pytest.raises(ValueError):
            ledger.credit(amount)
        assert ledger.balance() == 0

    def test_negative_initial_rejected(self):
        with pytest.raises(ValueError):
            ScoreLedger(initial=-5)


# ---------------------------------------------------------------------------
# debit
# ---------------------------------------------------------------------------

class TestDebit:
    def test_successful_debit(self):
        ledger = ScoreLedger(initial=20)
        result = ledger.debit(15)
        assert result == DebitResult(ok=True, total=5)
        assert ledger.balance() == 5

    def test_debit_entire_balance(self):
        ledger = ScoreLedger(initial=100)
        result = ledger.debit(100)
        assert result.ok
        assert ledger.balance() == 0

    def test_insufficient_funds_leaves_balance(self):
        ledger = ScoreLedger(initial=99)
        result = ledger.debit(100)
        assert not result.ok
        assert result.total == 99
        assert result.error == InsufficientFunds(requested=100, available=99)
        assert ledger.balance() == 99

    def test_shortfall(self):
        assert InsufficientFunds(requested=15, available=4).shortfall == 11

    def test_debit_zero_always_succeeds(self):
        ledger = ScoreLedger()
        assert ledger.debit(0).ok

    def test_negative_debit_rejected(self):
        ledger = ScoreLedger(initial=10)
        with pytest.raises(ValueError):
            ledger.debit(-1)
        assert ledger.balance() == 10


# ---------------------------------------------------------------------------
# Invariant: the balance never goes negative
# ---------------------------------------------------------------------------

class TestNeverNegative:
    def test_mixed_sequence(self):
        ledger = ScoreLedger()
        operations = [("c", 5), ("d", 7), ("d", 5), ("c", 3), ("d", 4), ("c", 10), ("d", 13), ("d", 1)]
        for op, amount in operations:
            before = ledger.balance()
            if op == "c":
                ledger.credit(amount)
            else:
                result = ledger.debit(amount)
                if amount > before:
                    assert not result.ok
                    assert ledger.balance() == before
            assert ledger.balance() >= 0
        assert ledger.balance() == 0

    def test_reset(self):
        ledger = ScoreLedger(initial=42)
        ledger.reset()
        assert ledger.balance() == 0
