"""
Megapool

One node operator's pool of validators: the validator registry, the capital
ledger, and the engines that move them. Every state change runs inside
``Megapool.transaction()``, which serializes transitions, checks the ledger
against the staking registry, persists, and rolls everything back if any
step fails.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional, Tuple

from eth_utils import to_canonical_address

from ..logger import get_logger
from .addresses import normalize_address
from .capital import CapitalLedger
from .config import LedgerConfig
from .dissolve import DissolutionEngine
from .exit import ExitEngine
from .oracle import BondRequirementOracle
from .proofs import ProofVerifier, RejectingVerifier
from .rebalance import CapitalDelta
from .registry import ValidatorRegistry
from .settlement import InMemorySettlementSink, SettlementSink
from .staking import NodeStakingRegistry, StakingRegistry
from .store import MegapoolStore
from .types import (
    ArithmeticBoundViolation,
    DuplicateValidator,
    InvariantViolation,
    LedgerError,
    UnauthorizedCaller,
    Validator,
    ValidatorState,
)

logger = get_logger(__name__)


class Megapool:
    """
    Ledger and validator table of a single megapool.

    Usage:
        pool = await Megapool.create(node_address, megapool_address, config)
        index = await pool.new_validator(pubkey, bond)
        await pool.assign_validator(index)
        await pool.exits.notify_exit(index, validator_proof, slot_proof)
    """

    def __init__(
        self,
        node_address: str,
        address: str,
        config: Optional[LedgerConfig] = None,
        oracle: Optional[BondRequirementOracle] = None,
        staking: Optional[StakingRegistry] = None,
        verifier: Optional[ProofVerifier] = None,
        sink: Optional[SettlementSink] = None,
        withdrawal_address: Optional[str] = None,
        store: Optional[MegapoolStore] = None,
        ledger: Optional[CapitalLedger] = None,
        registry: Optional[ValidatorRegistry] = None,
    ):
        self.node_address = normalize_address(node_address, "node address")
        self.address = normalize_address(address, "megapool address")
        self.config = config or LedgerConfig()
        self.oracle = oracle or self.config.build_oracle()
        self.staking = staking or NodeStakingRegistry()
        self.verifier = verifier or RejectingVerifier()
        self.sink = sink or InMemorySettlementSink()
        self.withdrawal_address = normalize_address(
            withdrawal_address or node_address, "withdrawal address"
        )
        self.store = store

        self.ledger = ledger or CapitalLedger()
        self.registry = registry or ValidatorRegistry()

        self.dissolution = DissolutionEngine(self)
        self.exits = ExitEngine(self)

        self._lock = asyncio.Lock()
        self._journal: List[Tuple[int, int]] = []
        self._effects: List[Tuple[Callable, Tuple[Any, ...]]] = []

    @classmethod
    async def create(
        cls,
        node_address: str,
        address: str,
        config: Optional[LedgerConfig] = None,
        **kwargs,
    ) -> "Megapool":
        """
        Build a megapool, restoring it from ``config.db_path`` when set.
        """
        config = config or LedgerConfig()
        config.validate()
        node_address = normalize_address(node_address, "node address")
        address = normalize_address(address, "megapool address")
        if not config.db_path:
            return cls(node_address, address, config=config, **kwargs)

        store = MegapoolStore(config.db_path)
        await store.open()
        try:
            pool = await cls.load(store, address, config=config, **kwargs)
        except BaseException:
            await store.close()
            raise
        if pool is None:
            pool = cls(node_address, address, config=config, store=store, **kwargs)
        elif pool.node_address != node_address:
            await store.close()
            raise InvariantViolation(
                f"Megapool {address[:16]} belongs to {pool.node_address[:16]}"
            )
        return pool

    @classmethod
    async def load(
        cls,
        store: MegapoolStore,
        address: str,
        **kwargs,
    ) -> Optional["Megapool"]:
        """Restore a megapool from ``store``, or None if it was never saved."""
        restored = await store.load(normalize_address(address, "megapool address"))
        if restored is None:
            return None
        node_address, ledger, validators = restored
        return cls(
            node_address,
            address,
            store=store,
            ledger=ledger,
            registry=ValidatorRegistry.from_validators(validators),
            **kwargs,
        )

    async def close(self):
        if self.store is not None:
            await self.store.close()

    # =========================================================================
    # IDENTITY
    # =========================================================================

    @property
    def execution_address(self) -> bytes:
        """Megapool address as the 20 raw bytes withdrawals are paid to."""
        return to_canonical_address(self.address)

    @property
    def withdrawal_credentials(self) -> bytes:
        """0x01-type credentials pointing at this megapool."""
        return b"\x01" + b"\x00" * 11 + self.execution_address

    def is_node_caller(self, caller: str) -> bool:
        caller = normalize_address(caller, "caller")
        return caller in (self.node_address, self.withdrawal_address)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @asynccontextmanager
    async def transaction(self, label: str):
        """
        Run one ledger transition atomically.

        Holds the megapool lock, and on any exception restores the ledger and
        registry, reverses staking registry adjustments and drops deferred
        payouts before re-raising.
        """
        async with self._lock:
            ledger_before = self.ledger.snapshot()
            registry_before = self.registry.snapshot()
            self._journal = []
            self._effects = []
            try:
                yield
                self.check_invariants()
                if self.store is not None:
                    await self.store.save(
                        self.address, self.node_address, self.ledger, self.registry
                    )
            except BaseException as e:
                self.ledger.restore(ledger_before)
                self.registry.restore(registry_before)
                for bonded, borrowed in reversed(self._journal):
                    self.staking.adjust(self.node_address, self.address, -bonded, -borrowed)
                self._journal = []
                self._effects = []
                if isinstance(e, (InvariantViolation, ArithmeticBoundViolation)):
                    logger.error(f"[{self.address[:10]}] {label} aborted: {e}")
                elif isinstance(e, LedgerError):
                    logger.warning(f"[{self.address[:10]}] {label} rejected: {e}")
                raise

            effects, self._effects = self._effects, []
            self._journal = []
            for fn, args in effects:
                fn(*args)

    def after_commit(self, fn: Callable, *args) -> None:
        """Defer an external payout until the transaction commits."""
        self._effects.append((fn, args))

    def adjust_staking(self, bonded_change: int, borrowed_change: int) -> None:
        """Report a bond/capital change to the staking registry (journaled)."""
        if not bonded_change and not borrowed_change:
            return
        self.staking.adjust(self.node_address, self.address, bonded_change, borrowed_change)
        self._journal.append((bonded_change, borrowed_change))

    def apply_capital_delta(self, delta: CapitalDelta) -> None:
        """Apply a rebalance result to the ledger and the staking registry."""
        if delta.conserved != -self.config.stake_unit:
            raise ArithmeticBoundViolation(
                f"Delta moves {delta.conserved} wei, expected {-self.config.stake_unit}"
            )
        self.ledger.apply(delta)
        self.adjust_staking(delta.node_bond, delta.user_capital)

    def check_invariants(self) -> None:
        """
        Raise InvariantViolation when ledger totals disagree with the staking
        registry or the counters disagree with the validator table.
        """
        self.registry.check_counters()
        borrowed = self.staking.get_node_megapool_eth_borrowed(self.node_address, self.address)
        bonded = self.staking.get_node_megapool_eth_bonded(self.node_address, self.address)
        if self.ledger.total_user_capital != borrowed:
            raise InvariantViolation(
                f"User capital {self.ledger.total_user_capital} wei != borrowed {borrowed} wei"
            )
        if self.ledger.effective_node_bond != bonded:
            raise InvariantViolation(
                f"Node bond {self.ledger.effective_node_bond} wei != bonded {bonded} wei"
            )

    # =========================================================================
    # DEPOSITS
    # =========================================================================

    async def new_validator(self, public_key: bytes, bond: int) -> int:
        """
        Register a queued validator funded by ``bond`` from the operator and
        the rest of the stake unit from the pool.

        Returns:
            The validator index
        """
        stake_unit = self.config.stake_unit
        async with self.transaction("new validator"):
            if not 0 <= bond <= stake_unit:
                raise ArithmeticBoundViolation(f"Bond {bond} wei outside [0, {stake_unit}]")
            if any(v.public_key == public_key for v in self.registry):
                raise DuplicateValidator(f"Public key {public_key.hex()[:16]} already registered")

            index = self.registry.register(Validator(
                index=-1,
                public_key=public_key,
                withdrawal_credentials=self.withdrawal_credentials,
                bond=bond,
            ))
            self.ledger.queue(bond, stake_unit - bond)
            self.adjust_staking(bond, stake_unit - bond)

            logger.info(f"validator #{index} queued with bond {bond} wei")
            return index

    async def assign_validator(self, validator_index: int) -> Validator:
        """Move a queued validator's stake unit into the active balances."""
        async with self.transaction(f"assign validator #{validator_index}"):
            validator = self.registry.transition(validator_index, ValidatorState.ACTIVE)
            self.ledger.assign(validator.bond, self.config.stake_unit - validator.bond)
            logger.info(
                f"validator #{validator_index} assigned "
                f"(active {self.registry.active_validator_count})"
            )
            return validator

    async def claim_refund(self, caller: str) -> int:
        """Pay the operator refund balance out to the withdrawal address."""
        async with self.transaction("claim refund"):
            if not self.is_node_caller(caller):
                raise UnauthorizedCaller(f"{caller} cannot claim refunds of {self.address[:16]}")
            amount = self.ledger.take_refund()
            if amount:
                self.after_commit(self.sink.credit_operator, self.withdrawal_address, amount)
            logger.info(f"Refund of {amount} wei claimed for {self.withdrawal_address[:16]}")
            return amount

    # =========================================================================
    # QUERIES
    # =========================================================================

    @property
    def active_validator_count(self) -> int:
        return self.registry.active_validator_count

    @property
    def exiting_validator_count(self) -> int:
        return self.registry.exiting_validator_count

    def get_validator_info(self, validator_index: int) -> Dict[str, Any]:
        return self.registry.get(validator_index).to_dict()

    def to_dict(self) -> Dict[str, Any]:
        """Ledger status for diagnostics."""
        return {
            'address': self.address,
            'node_address': self.node_address,
            'withdrawal_address': self.withdrawal_address,
            'ledger': self.ledger.to_dict(),
            'active_validator_count': self.active_validator_count,
            'exiting_validator_count': self.exiting_validator_count,
            'total_validator_count': self.registry.total_validator_count,
            'bond_requirement': str(self.oracle.get(self.active_validator_count)),
        }
