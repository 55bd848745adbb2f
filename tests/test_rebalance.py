"""
Rebalance and Bond Requirement Test Suite

Covers the shared stake-unit split and the bond requirement oracles.
"""

import pytest

from megapool.constants import PRESTAKE_VALUE, STAKE_UNIT
from megapool.ledger import (
    ArithmeticBoundViolation,
    CapitalLedger,
    FixedBondRequirement,
    ReducedBondSchedule,
    rebalance,
)

from conftest import ETH


PENALTY = ETH // 20


# =============================================================================
# ORACLE TESTS
# =============================================================================

class TestReducedBondSchedule:
    """Test the default bond schedule."""

    def test_default_schedule(self):
        oracle = ReducedBondSchedule()
        assert oracle.get(0) == 0
        assert oracle.get(1) == 4 * ETH
        assert oracle.get(2) == 8 * ETH
        assert oracle.get(3) == 12 * ETH
        assert oracle.get(10) == 40 * ETH

    def test_per_validator_non_increasing(self):
        oracle = ReducedBondSchedule([16 * ETH, 24 * ETH], 4 * ETH)
        previous = oracle.per_validator(1)
        for count in range(2, 50):
            current = oracle.per_validator(count)
            assert current <= previous
            previous = current

    def test_callable(self):
        oracle = ReducedBondSchedule()
        assert oracle(2) == oracle.get(2)

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            ReducedBondSchedule().get(-1)

    def test_invalid_base_array(self):
        with pytest.raises(ValueError):
            ReducedBondSchedule([], ETH)
        with pytest.raises(ValueError):
            ReducedBondSchedule([8 * ETH, 4 * ETH], ETH)

    def test_fixed_requirement(self):
        oracle = FixedBondRequirement(8 * ETH)
        assert oracle.get(0) == 0
        assert oracle.get(1) == 8 * ETH
        assert oracle.get(7) == 8 * ETH


# =============================================================================
# REBALANCE TESTS
# =============================================================================

class TestRebalance:
    """Test the pure stake-unit split."""

    def test_dissolve_underbonded(self):
        """Scenario A: operator at the requirement keeps its bond and pays the prestake."""
        delta = rebalance(
            node_bond=8 * ETH,
            node_queued_bond=0,
            active_count_after_removal=1,
            is_dissolve=True,
            dissolve_penalty=PENALTY,
            oracle=FixedBondRequirement(8 * ETH),
        )
        assert delta.underbonded
        assert delta.bond_requirement == 8 * ETH
        assert delta.node_bond == 0
        assert delta.user_capital == -STAKE_UNIT
        assert delta.debt == PENALTY + PRESTAKE_VALUE

    def test_dissolve_overbonded_clamped_at_unit(self):
        """Scenario B: full-unit bond, no requirement left."""
        delta = rebalance(
            node_bond=32 * ETH,
            node_queued_bond=0,
            active_count_after_removal=0,
            is_dissolve=True,
            dissolve_penalty=PENALTY,
            oracle=ReducedBondSchedule(),
        )
        assert not delta.underbonded
        assert delta.bond_requirement == 0
        assert delta.node_bond == -STAKE_UNIT
        assert delta.user_capital == 0
        assert delta.debt == PENALTY

    def test_reduction_to_requirement(self):
        delta = rebalance(
            node_bond=8 * ETH,
            node_queued_bond=0,
            active_count_after_removal=1,
            is_dissolve=False,
            dissolve_penalty=PENALTY,
            oracle=ReducedBondSchedule(),
        )
        assert delta.node_bond == -4 * ETH
        assert delta.user_capital == -28 * ETH
        assert delta.debt == 0

    def test_clamped_at_active_bond(self):
        """Queued bond counts toward the requirement but cannot be withdrawn."""
        delta = rebalance(
            node_bond=4 * ETH,
            node_queued_bond=28 * ETH,
            active_count_after_removal=0,
            is_dissolve=False,
            dissolve_penalty=0,
            oracle=ReducedBondSchedule(),
        )
        assert delta.node_bond == -4 * ETH
        assert delta.user_capital == -28 * ETH

    def test_settlement_never_accrues_debt(self):
        for node_bond in (0, 4 * ETH, 8 * ETH, 40 * ETH):
            delta = rebalance(
                node_bond=node_bond,
                node_queued_bond=0,
                active_count_after_removal=2,
                is_dissolve=False,
                dissolve_penalty=PENALTY,
                oracle=ReducedBondSchedule(),
            )
            assert delta.debt == 0

    def test_conservation_across_bond_levels(self):
        oracle = ReducedBondSchedule()
        for active in range(0, 6):
            for node_bond in range(0, 80 * ETH, 3 * ETH):
                for is_dissolve in (True, False):
                    delta = rebalance(node_bond, ETH, active, is_dissolve, PENALTY, oracle)
                    assert delta.node_bond + delta.user_capital == -STAKE_UNIT
                    assert -min(STAKE_UNIT, node_bond) <= delta.node_bond <= 0

    def test_custom_stake_unit(self):
        delta = rebalance(
            node_bond=0,
            node_queued_bond=0,
            active_count_after_removal=0,
            is_dissolve=False,
            dissolve_penalty=0,
            oracle=ReducedBondSchedule(),
            stake_unit=64 * ETH,
        )
        assert delta.user_capital == -64 * ETH

    def test_negative_count_is_bound_violation(self):
        with pytest.raises(ArithmeticBoundViolation):
            rebalance(ETH, 0, -1, False, 0, ReducedBondSchedule())

    def test_negative_bond_is_bound_violation(self):
        with pytest.raises(ArithmeticBoundViolation):
            rebalance(-ETH, 0, 1, False, 0, ReducedBondSchedule())


# =============================================================================
# CAPITAL LEDGER TESTS
# =============================================================================

class TestCapitalLedger:
    """Test balance application."""

    def test_apply_delta(self):
        ledger = CapitalLedger(node_bond=8 * ETH, user_capital=56 * ETH)
        delta = rebalance(8 * ETH, 0, 1, True, PENALTY, ReducedBondSchedule())
        ledger.apply(delta)
        assert ledger.node_bond == 4 * ETH
        assert ledger.user_capital == 28 * ETH
        assert ledger.debt == PENALTY

    def test_apply_rejects_negative_capital(self):
        ledger = CapitalLedger(node_bond=8 * ETH, user_capital=10 * ETH)
        delta = rebalance(8 * ETH, 0, 1, True, 0, FixedBondRequirement(8 * ETH))
        with pytest.raises(ArithmeticBoundViolation):
            ledger.apply(delta)
        assert ledger.user_capital == 10 * ETH
        assert ledger.debt == 0

    def test_debt_cannot_decrease(self):
        ledger = CapitalLedger(debt=ETH)
        with pytest.raises(ArithmeticBoundViolation):
            ledger.accrue_debt(-1)

    def test_queue_and_assign(self):
        ledger = CapitalLedger()
        ledger.queue(4 * ETH, 28 * ETH)
        ledger.assign(4 * ETH, 28 * ETH)
        assert ledger.node_queued_bond == 0
        assert ledger.user_queued_capital == 0
        assert ledger.node_bond == 4 * ETH
        assert ledger.user_capital == 28 * ETH

    def test_assign_more_than_queued(self):
        ledger = CapitalLedger(node_queued_bond=4 * ETH, user_queued_capital=28 * ETH)
        with pytest.raises(ArithmeticBoundViolation):
            ledger.assign(8 * ETH, 24 * ETH)

    def test_snapshot_restore(self):
        ledger = CapitalLedger(node_bond=ETH, refund_value=2 * ETH)
        saved = ledger.snapshot()
        ledger.node_bond = 0
        ledger.take_refund()
        ledger.restore(saved)
        assert ledger == CapitalLedger(node_bond=ETH, refund_value=2 * ETH)

    def test_dict_roundtrip(self):
        ledger = CapitalLedger(node_bond=ETH, debt=3, pending_rewards=7)
        assert CapitalLedger.from_dict(ledger.to_dict()) == ledger
