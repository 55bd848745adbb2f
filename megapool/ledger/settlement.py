"""
Megapool Settlement

Destinations for a settled validator's final balance and the arithmetic
that splits the balance between the pooled-capital vault and the operator.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Optional

from .rebalance import CapitalDelta


class SettlementSink(ABC):
    """External balances written by settlement."""

    @abstractmethod
    def credit_pool_vault(self, amount: int) -> None:
        """Return pooled capital to the deposit vault."""

    @abstractmethod
    def credit_operator(self, withdrawal_address: str, amount: int) -> None:
        """Pay out to the operator's withdrawal address."""


class InMemorySettlementSink(SettlementSink):
    """Settlement destinations kept as plain balances."""

    def __init__(self):
        self.pool_vault_balance = 0
        self.operator_balances: Dict[str, int] = defaultdict(int)

    def credit_pool_vault(self, amount: int) -> None:
        self.pool_vault_balance += amount

    def credit_operator(self, withdrawal_address: str, amount: int) -> None:
        self.operator_balances[withdrawal_address] += amount


@dataclass(frozen=True)
class Distribution:
    """
    How a final balance is split.

    Attributes:
        to_user: Wei returned to the pooled-capital vault
        to_node: Wei credited to the operator refund balance
        shortfall: User capital the balance could not cover, charged as debt
    """
    to_user: int
    to_node: int
    shortfall: int


def split_final_balance(balance: int, delta: Optional[CapitalDelta]) -> Distribution:
    """
    Split ``balance`` (wei) for a validator whose capital moved by ``delta``.

    Users are repaid the capital released from the pool first. When ``delta``
    is None the validator was dissolved and users already bore the unit, so
    the whole balance returns to the vault.
    """
    if balance < 0:
        raise ValueError("Final balance must be non-negative")
    if delta is None:
        return Distribution(to_user=balance, to_node=0, shortfall=0)

    owed_to_user = -delta.user_capital
    to_user = min(balance, owed_to_user)
    return Distribution(
        to_user=to_user,
        to_node=balance - to_user,
        shortfall=owed_to_user - to_user,
    )


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of a final-balance notification."""
    validator_index: int
    final_balance_gwei: int
    delta: Optional[CapitalDelta]
    distribution: Distribution
    refund_claimed: int = 0

    @property
    def capital_moved(self) -> bool:
        return self.delta is not None

    def to_dict(self) -> dict:
        return {
            'validator_index': self.validator_index,
            'final_balance_gwei': self.final_balance_gwei,
            'delta': self.delta.to_dict() if self.delta else None,
            'to_user': str(self.distribution.to_user),
            'to_node': str(self.distribution.to_node),
            'shortfall': str(self.distribution.shortfall),
            'refund_claimed': str(self.refund_claimed),
        }
