"""
Tests for epochledger/distributor/chained.py and epochledger/distributor/claimer.py
"""

import pytest

from epochledger.distributor.chained import ChainedDistributor
from epochledger.distributor.claimer import RewardClaimer
from epochledger.exceptions import RegistryError, UnauthorizedError
from epochledger.sources import BalanceWeightSource

from ledger_helpers import (
    DEPOSITOR,
    GENESIS,
    L,
    MANAGEMENT,
    create_test_distributor,
    create_test_ledger,
    fund_epoch,
)


# ============================================================================
# TEST DATA
# ============================================================================

def create_test_chained(ledger, parent, address: str = "delegated", parent_account: str = None):
    chained = ChainedDistributor(
        address, ledger.clock, ledger.asset, BalanceWeightSource(ledger.clock),
        ledger.authority, parent=parent, parent_account=parent_account,
        journal=ledger.journal,
    )
    chained.set_depositor(DEPOSITOR, True, caller=MANAGEMENT)
    return chained


# ============================================================================
# CHAINED DISTRIBUTOR TESTS
# ============================================================================

class TestChainedDistributor:
    """Test re-distribution of a parent position's reward."""

    def test_redistributes_parent_reward(self):
        ledger = create_test_ledger()
        staking = create_test_distributor(ledger)
        chained = create_test_chained(ledger, staking)

        staking.deposit("delegated", 100, caller=DEPOSITOR)
        staking.deposit("alice", 100, caller=DEPOSITOR)
        chained.deposit("bob", 30, caller=DEPOSITOR)
        chained.deposit("carol", 10, caller=DEPOSITOR)
        fund_epoch(ledger, 0, 1000)

        ledger.now.set(GENESIS + 2 * L)
        assert chained.claim("bob", caller="bob") == 375
        assert chained.claimable("carol") == 125
        assert staking.claimable("alice") == 500
        assert staking.pending_rewards("delegated") == 0
        assert chained.get_stats()["total_received"] == 500

    def test_reward_waits_for_depositors(self):
        """Test reward arriving with no chained weight is carried."""
        ledger = create_test_ledger()
        staking = create_test_distributor(ledger)
        chained = create_test_chained(ledger, staking)
        staking.deposit("delegated", 100, caller=DEPOSITOR)
        fund_epoch(ledger, 0, 1000)

        ledger.now.set(GENESIS + 2 * L)
        chained.sync()
        assert chained.carry == 1000

        chained.deposit("bob", 1, caller=DEPOSITOR)
        ledger.now.set(GENESIS + 2 * L + 1)
        assert chained.claimable("bob") == 1000

    def test_parent_account_needs_claimer_approval(self):
        ledger = create_test_ledger()
        staking = create_test_distributor(ledger)
        chained = create_test_chained(ledger, staking, parent_account="pool")

        with pytest.raises(UnauthorizedError):
            chained.deposit("bob", 30, caller=DEPOSITOR)

        staking.set_claimer("delegated", True, caller=MANAGEMENT)
        assert chained.deposit("bob", 30, caller=DEPOSITOR) == 30


# ============================================================================
# REWARD CLAIMER TESTS
# ============================================================================

class TestRewardClaimer:
    """Test claiming from several distributors at once."""

    def create_claimer(self, ledger):
        first = create_test_distributor(ledger, "first")
        second = create_test_distributor(ledger, "second")
        claimer = RewardClaimer("claimer", ledger.authority, journal=ledger.journal)
        claimer.add_component(first, caller=MANAGEMENT)
        claimer.add_component(second, caller=MANAGEMENT)
        return first, second, claimer

    def test_claims_everywhere(self):
        ledger = create_test_ledger()
        first, second, claimer = self.create_claimer(ledger)
        for distributor in (first, second):
            distributor.set_claimer("claimer", True, caller=MANAGEMENT)
            distributor.deposit("alice", 100, caller=DEPOSITOR)
        fund_epoch(ledger, 0, 1000)

        ledger.now.set(GENESIS + 2 * L)
        assert claimer.claim("alice") == 1000
        assert ledger.asset.balance_of("alice") == 1000

    def test_claim_to_recipient(self):
        ledger = create_test_ledger()
        first, second, claimer = self.create_claimer(ledger)
        for distributor in (first, second):
            distributor.set_claimer("claimer", True, caller=MANAGEMENT)
        first.deposit("alice", 100, caller=DEPOSITOR)
        fund_epoch(ledger, 0, 1000)

        ledger.now.set(GENESIS + 2 * L)
        assert claimer.claim("alice", recipient="cold_wallet") == 1000
        assert ledger.asset.balance_of("cold_wallet") == 1000

    def test_unapproved_claimer_pays_nothing(self):
        """Test one refusal rolls back the whole claim."""
        ledger = create_test_ledger()
        first, second, claimer = self.create_claimer(ledger)
        first.set_claimer("claimer", True, caller=MANAGEMENT)
        first.deposit("alice", 100, caller=DEPOSITOR)
        fund_epoch(ledger, 0, 1000)

        ledger.now.set(GENESIS + 2 * L)
        with pytest.raises(UnauthorizedError):
            claimer.claim("alice")
        assert ledger.asset.balance_of("alice") == 0

    def test_component_list(self):
        ledger = create_test_ledger()
        first, second, claimer = self.create_claimer(ledger)
        third = create_test_distributor(ledger, "third")

        assert claimer.num_components == 2
        assert claimer.components(0) == "first"
        assert claimer.components(2) is None

        claimer.replace_component(1, third, caller=MANAGEMENT)
        assert claimer.components(1) == "third"
        with pytest.raises(RegistryError):
            claimer.replace_component(5, third, caller=MANAGEMENT)

        assert claimer.remove_component(caller=MANAGEMENT) == "third"
        assert claimer.remove_component(caller=MANAGEMENT) == "first"
        with pytest.raises(RegistryError):
            claimer.remove_component(caller=MANAGEMENT)

    def test_admin_requires_management(self):
        ledger = create_test_ledger()
        first, _, claimer = self.create_claimer(ledger)
        with pytest.raises(UnauthorizedError):
            claimer.add_component(first, caller="mallory")
