"""
Node Staking Registry

Aggregate ETH bonded by and borrowed for each node operator across all of
its megapools. Megapools report every bond and capital change here, and the
ledger cross-checks its own totals against these figures after each
transition.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Tuple

from ..logger import get_logger
from .addresses import normalize_address
from .types import ArithmeticBoundViolation

logger = get_logger(__name__)


class StakingRegistry(ABC):
    """Interface of the external node staking registry."""

    @abstractmethod
    def get_node_eth_bonded(self, node_address: str) -> int:
        pass

    @abstractmethod
    def get_node_eth_borrowed(self, node_address: str) -> int:
        pass

    @abstractmethod
    def get_node_megapool_eth_bonded(self, node_address: str, megapool_address: str) -> int:
        pass

    @abstractmethod
    def get_node_megapool_eth_borrowed(self, node_address: str, megapool_address: str) -> int:
        pass

    @abstractmethod
    def adjust(
        self,
        node_address: str,
        megapool_address: str,
        bonded_change: int,
        borrowed_change: int,
    ) -> None:
        """Apply signed changes to a megapool's bonded and borrowed totals."""


class NodeStakingRegistry(StakingRegistry):
    """
    In-memory staking registry keyed by (node, megapool).

    Addresses are normalized on every call, so any spelling of an account
    reaches the same totals.
    """

    def __init__(self):
        self._bonded: Dict[Tuple[str, str], int] = defaultdict(int)
        self._borrowed: Dict[Tuple[str, str], int] = defaultdict(int)

    @staticmethod
    def _key(node_address: str, megapool_address: str) -> Tuple[str, str]:
        return (
            normalize_address(node_address, "node address"),
            normalize_address(megapool_address, "megapool address"),
        )

    def get_node_eth_bonded(self, node_address: str) -> int:
        node_address = normalize_address(node_address, "node address")
        return sum(v for (node, _), v in self._bonded.items() if node == node_address)

    def get_node_eth_borrowed(self, node_address: str) -> int:
        node_address = normalize_address(node_address, "node address")
        return sum(v for (node, _), v in self._borrowed.items() if node == node_address)

    def get_node_megapool_eth_bonded(self, node_address: str, megapool_address: str) -> int:
        return self._bonded.get(self._key(node_address, megapool_address), 0)

    def get_node_megapool_eth_borrowed(self, node_address: str, megapool_address: str) -> int:
        return self._borrowed.get(self._key(node_address, megapool_address), 0)

    def adjust(
        self,
        node_address: str,
        megapool_address: str,
        bonded_change: int,
        borrowed_change: int,
    ) -> None:
        key = self._key(node_address, megapool_address)
        bonded = self._bonded[key] + bonded_change
        borrowed = self._borrowed[key] + borrowed_change
        if bonded < 0 or borrowed < 0:
            raise ArithmeticBoundViolation(
                f"Staking totals for {node_address[:16]} would go negative "
                f"(bonded {bonded}, borrowed {borrowed})"
            )
        self._bonded[key] = bonded
        self._borrowed[key] = borrowed
        logger.debug(
            f"Staking totals for {node_address[:16]}: bonded {bonded} wei, "
            f"borrowed {borrowed} wei"
        )
