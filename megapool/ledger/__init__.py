"""
Megapool Ledger Module

Bond, capital and debt accounting for validators co-funded by a node
operator and pooled depositors.

Components:
- Megapool: Owns the ledger and validator table, runs atomic transitions
- ValidatorRegistry: Append-only validator table and population counters
- CapitalLedger: Bond, capital, debt, reward and refund balances
- rebalance: Shared split of a departing stake unit
- DissolutionEngine: Unwinds assigned validators that never activated
- ExitEngine: Exit notification and final-balance settlement
- BondRequirementOracle: Bond needed for a number of active validators
- ProofVerifier: Capability that turns beacon proofs into attested facts

Usage:
    from megapool.ledger import Megapool, LedgerConfig

    config = LedgerConfig.from_file("config.toml")
    pool = await Megapool.create(node_address, megapool_address, config)
    await pool.dissolution.dissolve_validator(index, caller=node_address)
"""

from .addresses import normalize_address
from .capital import CapitalLedger
from .config import BondConfig, LedgerConfig, load_config
from .dissolve import DissolutionEngine
from .exit import ExitEngine
from .megapool import Megapool
from .oracle import BondRequirementOracle, FixedBondRequirement, ReducedBondSchedule
from .proofs import (
    AttestedSlot,
    AttestedValidator,
    AttestedWithdrawal,
    BeaconValidatorRecord,
    ProofVerifier,
    RejectingVerifier,
    SlotProof,
    ValidatorProof,
    WithdrawalProof,
    WithdrawalRecord,
)
from .rebalance import CapitalDelta, rebalance
from .registry import ValidatorRegistry
from .settlement import (
    Distribution,
    InMemorySettlementSink,
    SettlementResult,
    SettlementSink,
)
from .staking import NodeStakingRegistry, StakingRegistry
from .store import MegapoolStore
from .types import (
    ArithmeticBoundViolation,
    DuplicateValidator,
    InvalidAddress,
    InvalidTransition,
    InvariantViolation,
    LedgerError,
    NotDissolvable,
    ProofVerificationFailed,
    UnauthorizedCaller,
    Validator,
    ValidatorNotFound,
    ValidatorState,
)

__all__ = [
    # Aggregate
    'Megapool',
    'MegapoolStore',
    'LedgerConfig',
    'BondConfig',
    'load_config',

    # Components
    'ValidatorRegistry',
    'CapitalLedger',
    'CapitalDelta',
    'rebalance',
    'DissolutionEngine',
    'ExitEngine',

    # Collaborators
    'BondRequirementOracle',
    'ReducedBondSchedule',
    'FixedBondRequirement',
    'StakingRegistry',
    'NodeStakingRegistry',
    'SettlementSink',
    'InMemorySettlementSink',
    'Distribution',
    'SettlementResult',

    # Proofs
    'ProofVerifier',
    'RejectingVerifier',
    'SlotProof',
    'ValidatorProof',
    'WithdrawalProof',
    'BeaconValidatorRecord',
    'WithdrawalRecord',
    'AttestedSlot',
    'AttestedValidator',
    'AttestedWithdrawal',

    # Types
    'Validator',
    'ValidatorState',
    'LedgerError',
    'InvalidTransition',
    'NotDissolvable',
    'ProofVerificationFailed',
    'ArithmeticBoundViolation',
    'InvariantViolation',
    'UnauthorizedCaller',
    'ValidatorNotFound',
    'InvalidAddress',
    'DuplicateValidator',

    # Addresses
    'normalize_address',
]
