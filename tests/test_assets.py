"""
Tests for epochledger/assets.py

Tests the asset ledger boundary, the in-memory ledger and the treasury
pull source.
"""

from unittest.mock import Mock

import pytest

from epochledger.assets import (
    InMemoryAssetLedger,
    TreasuryPull,
    safe_transfer,
    safe_transfer_from,
)
from epochledger.auth import Authority
from epochledger.exceptions import ArithmeticStateError, TransferFailedError, UnauthorizedError
from epochledger.journal import Journal


def create_test_treasury(balance: int = 1000):
    journal = Journal()
    asset = InMemoryAssetLedger(journal=journal)
    asset.mint("treasury", balance)
    treasury = TreasuryPull("treasury", asset, "aggregator", Authority("management"), journal=journal)
    return asset, treasury


# ============================================================================
# SAFE TRANSFER TESTS
# ============================================================================

class TestSafeTransfer:
    """Test transfer result handling."""

    def test_none_return_counts_as_success(self):
        """Test ledgers that return nothing on success."""
        asset = Mock()
        asset.transfer.return_value = None
        safe_transfer(asset, "a", "b", 5)
        asset.transfer.assert_called_once_with("a", "b", 5)

    def test_false_return_raises(self):
        asset = Mock()
        asset.transfer.return_value = False
        with pytest.raises(TransferFailedError):
            safe_transfer(asset, "a", "b", 5)

    def test_foreign_exception_is_wrapped(self):
        asset = Mock()
        asset.transfer_from.side_effect = RuntimeError("node offline")
        with pytest.raises(TransferFailedError):
            safe_transfer_from(asset, "spender", "owner", "to", 5)

    def test_ledger_errors_pass_through(self):
        asset = Mock()
        asset.transfer.side_effect = ArithmeticStateError("overflow")
        with pytest.raises(ArithmeticStateError):
            safe_transfer(asset, "a", "b", 5)

    def test_zero_amount_is_a_no_op(self):
        asset = Mock()
        safe_transfer(asset, "a", "b", 0)
        safe_transfer_from(asset, "s", "a", "b", 0)
        asset.transfer.assert_not_called()
        asset.transfer_from.assert_not_called()


# ============================================================================
# IN-MEMORY LEDGER TESTS
# ============================================================================

class TestInMemoryAssetLedger:
    """Test balances and allowances."""

    def test_mint_and_transfer(self):
        asset = InMemoryAssetLedger()
        asset.mint("alice", 100)
        assert asset.transfer("alice", "bob", 40) is True
        assert asset.balance_of("alice") == 60
        assert asset.balance_of("bob") == 40
        assert asset.total_supply == 100

    def test_insufficient_balance_returns_false(self):
        asset = InMemoryAssetLedger()
        asset.mint("alice", 10)
        assert asset.transfer("alice", "bob", 11) is False
        assert asset.balance_of("alice") == 10

    def test_transfer_from_spends_allowance(self):
        asset = InMemoryAssetLedger()
        asset.mint("alice", 100)
        asset.approve("alice", "aggregator", 70)

        assert asset.transfer_from("aggregator", "alice", "aggregator", 50) is True
        assert asset.allowance("alice", "aggregator") == 20
        assert asset.transfer_from("aggregator", "alice", "aggregator", 30) is False
        assert asset.balance_of("aggregator") == 50

    def test_owner_needs_no_allowance(self):
        asset = InMemoryAssetLedger()
        asset.mint("alice", 100)
        assert asset.transfer_from("alice", "alice", "bob", 100) is True

    def test_holders_lists_non_zero_balances(self):
        asset = InMemoryAssetLedger()
        asset.mint("carol", 1)
        asset.mint("alice", 1)
        asset.transfer("carol", "bob", 1)
        assert asset.holders() == ["alice", "bob"]


# ============================================================================
# TREASURY PULL TESTS
# ============================================================================

class TestTreasuryPull:
    """Test scheduled per-epoch top-ups."""

    def test_pull_pays_schedule_once(self):
        asset, treasury = create_test_treasury()
        treasury.set_rewards(3, 400, caller="management")
        assert treasury.scheduled(3) == 400

        assert treasury.pull(3, caller="aggregator") == 400
        assert treasury.pull(3, caller="aggregator") == 0
        assert asset.balance_of("aggregator") == 400

    def test_unscheduled_epoch_pulls_nothing(self):
        asset, treasury = create_test_treasury()
        assert treasury.pull(1, caller="aggregator") == 0
        assert asset.balance_of("aggregator") == 0

    def test_only_recipient_may_pull(self):
        _, treasury = create_test_treasury()
        treasury.set_rewards(0, 10, caller="management")
        with pytest.raises(UnauthorizedError):
            treasury.pull(0, caller="mallory")

    def test_schedule_requires_management(self):
        _, treasury = create_test_treasury()
        with pytest.raises(UnauthorizedError):
            treasury.set_rewards(0, 10, caller="mallory")

    def test_pulled_epoch_cannot_be_rescheduled(self):
        _, treasury = create_test_treasury()
        treasury.pull(0, caller="aggregator")
        with pytest.raises(UnauthorizedError):
            treasury.set_rewards(0, 10, caller="management")

    def test_underfunded_pull_rolls_back(self):
        """Test a failed payout does not mark the epoch as paid."""
        _, treasury = create_test_treasury(balance=5)
        treasury.set_rewards(0, 10, caller="management")
        with pytest.raises(TransferFailedError):
            treasury.pull(0, caller="aggregator")
        assert treasury.scheduled(0) == 10
