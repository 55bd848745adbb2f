"""
Megapool Capital Rebalancing

The single routine that decides how a stake unit leaving the pool is split
between operator bond and user capital, and how much debt the operator
accrues. Used by both dissolution and final-balance settlement.
"""

from dataclasses import dataclass

from ..constants import PRESTAKE_VALUE, STAKE_UNIT
from .oracle import BondRequirementOracle
from .types import ArithmeticBoundViolation


@dataclass(frozen=True)
class CapitalDelta:
    """
    Signed changes to the megapool ledger for one stake unit leaving.

    Attributes:
        node_bond: Change to active operator bond (zero or negative)
        user_capital: Change to active user capital (zero or negative)
        debt: Debt accrued by the operator (zero or positive)
        bond_requirement: Requirement the split was computed against
        underbonded: True when the operator was at or under the requirement
    """
    node_bond: int
    user_capital: int
    debt: int
    bond_requirement: int
    underbonded: bool

    @property
    def conserved(self) -> int:
        return self.node_bond + self.user_capital

    def to_dict(self) -> dict:
        return {
            'node_bond': str(self.node_bond),
            'user_capital': str(self.user_capital),
            'debt': str(self.debt),
            'bond_requirement': str(self.bond_requirement),
            'underbonded': self.underbonded,
        }


def bond_requirement_for(oracle: BondRequirementOracle, active_count: int) -> int:
    """Requirement for the remaining validators, zero when none remain."""
    return oracle.get(active_count) if active_count > 0 else 0


def rebalance(
    node_bond: int,
    node_queued_bond: int,
    active_count_after_removal: int,
    is_dissolve: bool,
    dissolve_penalty: int,
    oracle: BondRequirementOracle,
    stake_unit: int = STAKE_UNIT,
    stake_subunit: int = PRESTAKE_VALUE,
) -> CapitalDelta:
    """
    Split one departing stake unit between operator bond and user capital.

    The operator keeps exactly the new bond requirement where possible. The
    bond reduction is capped at one stake unit and at the operator's active
    bond; whatever the cap leaves over comes out of user capital. An operator
    at or under the requirement keeps all bond and the full unit comes out of
    user capital. A dissolve charges ``dissolve_penalty`` as debt, plus the
    lost prestake ``stake_subunit`` when the operator was underbonded.

    Args:
        node_bond: Active operator bond
        node_queued_bond: Operator bond not yet backing an active validator
        active_count_after_removal: Active validators once this one is gone
        is_dissolve: Dissolution (True) or final-balance settlement (False)
        dissolve_penalty: Flat debt charged on every dissolve
        oracle: Bond requirement setting
        stake_unit: Full deposit backing one validator
        stake_subunit: Prestake lost when an underbonded validator dissolves

    Returns:
        CapitalDelta with ``node_bond + user_capital == -stake_unit``

    Raises:
        ArithmeticBoundViolation: A clamp or conservation check failed
    """
    if active_count_after_removal < 0:
        raise ArithmeticBoundViolation(
            f"Negative active count after removal: {active_count_after_removal}"
        )
    if node_bond < 0 or node_queued_bond < 0:
        raise ArithmeticBoundViolation("Bond balances must be non-negative")

    requirement = bond_requirement_for(oracle, active_count_after_removal)
    effective_node_bond = node_bond + node_queued_bond

    if effective_node_bond <= requirement:
        node_bond_change = 0
        debt_change = dissolve_penalty + stake_subunit if is_dissolve else 0
        underbonded = True
    else:
        node_bond_change = requirement - effective_node_bond
        node_bond_change = max(node_bond_change, -stake_unit)
        node_bond_change = max(node_bond_change, -node_bond)
        debt_change = dissolve_penalty if is_dissolve else 0
        underbonded = False

    user_capital_change = -stake_unit - node_bond_change

    if node_bond_change > 0 or node_bond_change < -stake_unit or node_bond_change < -node_bond:
        raise ArithmeticBoundViolation(
            f"Bond change {node_bond_change} escapes [-{min(stake_unit, node_bond)}, 0]"
        )
    if user_capital_change > 0:
        raise ArithmeticBoundViolation(
            f"User capital change {user_capital_change} is positive"
        )
    if node_bond_change + user_capital_change != -stake_unit:
        raise ArithmeticBoundViolation("Stake unit not conserved")
    if debt_change < 0:
        raise ArithmeticBoundViolation(f"Negative debt change {debt_change}")

    return CapitalDelta(
        node_bond=node_bond_change,
        user_capital=user_capital_change,
        debt=debt_change,
        bond_requirement=requirement,
        underbonded=underbonded,
    )
