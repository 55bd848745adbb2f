"""
Megapool Capital Ledger

Per-megapool balances of operator bond, user capital, debt and the
auxiliary reward and refund balances. All amounts are in wei.
"""

from dataclasses import dataclass, asdict, replace

from .rebalance import CapitalDelta
from .types import ArithmeticBoundViolation


@dataclass
class CapitalLedger:
    """
    Balances owned by one megapool.

    Attributes:
        node_bond: Operator bond backing active validators
        node_queued_bond: Operator bond of validators still queued
        user_capital: Pooled capital backing active validators
        user_queued_capital: Pooled capital of validators still queued
        debt: Operator liability from shortfalls and penalties
        pending_rewards: Rewards not yet distributed
        refund_value: Operator balance held by the pool until claimed
    """
    node_bond: int = 0
    node_queued_bond: int = 0
    user_capital: int = 0
    user_queued_capital: int = 0
    debt: int = 0
    pending_rewards: int = 0
    refund_value: int = 0

    @property
    def effective_node_bond(self) -> int:
        return self.node_bond + self.node_queued_bond

    @property
    def total_user_capital(self) -> int:
        return self.user_capital + self.user_queued_capital

    def apply(self, delta: CapitalDelta) -> None:
        """
        Apply a rebalance result.

        Raises:
            ArithmeticBoundViolation: A balance would go negative
        """
        node_bond = self.node_bond + delta.node_bond
        user_capital = self.user_capital + delta.user_capital
        if node_bond < 0:
            raise ArithmeticBoundViolation(f"node_bond would become {node_bond}")
        if user_capital < 0:
            raise ArithmeticBoundViolation(f"user_capital would become {user_capital}")
        self.node_bond = node_bond
        self.user_capital = user_capital
        self.accrue_debt(delta.debt)

    def accrue_debt(self, amount: int) -> None:
        if amount < 0:
            raise ArithmeticBoundViolation("Debt can only be repaid explicitly")
        self.debt += amount

    def queue(self, node_amount: int, user_amount: int) -> None:
        """Add a deposit to the queued balances."""
        if node_amount < 0 or user_amount < 0:
            raise ArithmeticBoundViolation("Queued amounts must be non-negative")
        self.node_queued_bond += node_amount
        self.user_queued_capital += user_amount

    def assign(self, node_amount: int, user_amount: int) -> None:
        """Move a validator's share from queued to active balances."""
        if node_amount > self.node_queued_bond or user_amount > self.user_queued_capital:
            raise ArithmeticBoundViolation(
                f"Cannot assign {node_amount}/{user_amount} wei from queued "
                f"{self.node_queued_bond}/{self.user_queued_capital} wei"
            )
        self.node_queued_bond -= node_amount
        self.node_bond += node_amount
        self.user_queued_capital -= user_amount
        self.user_capital += user_amount

    def add_refund(self, amount: int) -> None:
        if amount < 0:
            raise ArithmeticBoundViolation("Refund must be non-negative")
        self.refund_value += amount

    def take_refund(self) -> int:
        amount = self.refund_value
        self.refund_value = 0
        return amount

    def snapshot(self) -> 'CapitalLedger':
        return replace(self)

    def restore(self, snapshot: 'CapitalLedger') -> None:
        for name, value in asdict(snapshot).items():
            setattr(self, name, value)

    def to_dict(self) -> dict:
        return {name: str(value) for name, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: dict) -> 'CapitalLedger':
        return cls(**{name: int(data.get(name, 0)) for name in cls.__dataclass_fields__})
