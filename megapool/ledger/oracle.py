"""
Megapool Bond Requirement Oracle

Answers how much operator bond is needed to keep a number of validators
running. The answer is a pure function of protocol settings.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from ..constants import DEFAULT_BASE_BOND_ARRAY, DEFAULT_REDUCED_BOND


class BondRequirementOracle(ABC):
    """Interface of the protocol-wide bond requirement setting."""

    @abstractmethod
    def get(self, active_count: int) -> int:
        """
        Total operator bond in wei required for ``active_count`` validators.
        """

    def per_validator(self, active_count: int) -> int:
        """Average requirement per validator. Non-increasing in ``active_count``."""
        if active_count <= 0:
            return 0
        return self.get(active_count) // active_count

    def __call__(self, active_count: int) -> int:
        return self.get(active_count)


class ReducedBondSchedule(BondRequirementOracle):
    """
    Bond schedule with an explicit table for the first validators and a flat
    reduced bond for every validator after that.

    With the defaults (base ``[4, 8]`` ETH, reduced 4 ETH) one validator needs
    4 ETH, two need 8 ETH and each further validator adds 4 ETH.
    """

    def __init__(
        self,
        base_bond_array: Sequence[int] = DEFAULT_BASE_BOND_ARRAY,
        reduced_bond: int = DEFAULT_REDUCED_BOND,
    ):
        if not base_bond_array:
            raise ValueError("base_bond_array must not be empty")
        if any(b < a for a, b in zip(base_bond_array, base_bond_array[1:])):
            raise ValueError("base_bond_array must be non-decreasing")
        self.base_bond_array = tuple(base_bond_array)
        self.reduced_bond = reduced_bond

    def get(self, active_count: int) -> int:
        if active_count < 0:
            raise ValueError("active_count must be non-negative")
        if active_count == 0:
            return 0
        if active_count <= len(self.base_bond_array):
            return self.base_bond_array[active_count - 1]
        extra = active_count - len(self.base_bond_array)
        return self.base_bond_array[-1] + extra * self.reduced_bond


class FixedBondRequirement(BondRequirementOracle):
    """Constant requirement regardless of count (zero for an empty pool)."""

    def __init__(self, amount: int):
        self.amount = amount

    def get(self, active_count: int) -> int:
        if active_count < 0:
            raise ValueError("active_count must be non-negative")
        return self.amount if active_count > 0 else 0
