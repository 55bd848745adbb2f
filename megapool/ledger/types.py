"""
Megapool Ledger Types and Exceptions

Core data types for the validator table and the ledger error taxonomy.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from ..exceptions import MegapoolException


class ValidatorState(Enum):
    """Validator lifecycle state within a megapool."""
    QUEUED = "queued"           # Deposited, waiting for assignment
    ACTIVE = "active"           # Stake unit assigned, counted as active
    DISSOLVED = "dissolved"     # Unwound before beacon-chain activation
    EXITING = "exiting"         # Exit attested, awaiting final balance
    EXITED = "exited"           # Final balance settled


class LedgerError(MegapoolException):
    """Base exception for ledger transitions."""
    pass


class ValidatorNotFound(LedgerError):
    """Raised when a validator index is not present in the registry."""
    def __init__(self, index: int):
        self.index = index
        super().__init__(f"Validator #{index} not found")


class InvalidTransition(LedgerError):
    """Raised when a lifecycle move is not permitted from the current state."""
    def __init__(self, index: int, current: ValidatorState, target: ValidatorState):
        self.index = index
        self.current = current
        self.target = target
        super().__init__(
            f"Validator #{index} cannot move from {current.name} to {target.name}"
        )


class NotDissolvable(LedgerError):
    """Raised when dissolving a validator proven to have activated."""
    pass


class ProofVerificationFailed(LedgerError):
    """Raised when an attestation is malformed, unverifiable or inconsistent."""
    pass


class ArithmeticBoundViolation(LedgerError):
    """Raised when a rebalance result escapes its clamps. Never expected."""
    pass


class InvariantViolation(LedgerError):
    """Raised when ledger totals disagree with the staking registry or counters."""
    pass


class UnauthorizedCaller(LedgerError):
    """Raised when a caller may not perform an operation."""
    pass


class InvalidAddress(LedgerError):
    """Raised when an account address is not a well-formed 20-byte address."""
    pass


class DuplicateValidator(LedgerError):
    """Raised when a public key is already registered in the megapool."""
    pass


@dataclass
class Validator:
    """
    A validator slot inside a megapool.

    Attributes:
        index: Ordinal within the megapool, stable identity
        public_key: BLS public key bytes
        withdrawal_credentials: Credentials the validator was deposited with
        bond: Operator bond contributed at deposit
        state: Current lifecycle state
        dissolved: True once dissolved, kept after settlement
        withdrawable_epoch: Epoch from the exit attestation
        exit_balance_gwei: Final balance, written once at settlement
    """
    index: int
    public_key: bytes
    withdrawal_credentials: bytes
    bond: int = 0
    state: ValidatorState = ValidatorState.QUEUED
    dissolved: bool = False
    withdrawable_epoch: Optional[int] = None
    exit_balance_gwei: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'index': self.index,
            'public_key': self.public_key_hex,
            'withdrawal_credentials': self.withdrawal_credentials.hex(),
            'bond': str(self.bond),
            'state': self.state.value,
            'dissolved': self.dissolved,
            'withdrawable_epoch': self.withdrawable_epoch,
            'exit_balance_gwei': self.exit_balance_gwei,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Validator':
        """Create from dictionary."""
        return cls(
            index=data['index'],
            public_key=bytes.fromhex(data['public_key']),
            withdrawal_credentials=bytes.fromhex(data['withdrawal_credentials']),
            bond=int(data.get('bond', 0)),
            state=ValidatorState(data['state']),
            dissolved=bool(data.get('dissolved', False)),
            withdrawable_epoch=data.get('withdrawable_epoch'),
            exit_balance_gwei=data.get('exit_balance_gwei'),
            created_at=datetime.fromisoformat(data['created_at']) if 'created_at' in data else datetime.utcnow(),
            updated_at=datetime.fromisoformat(data['updated_at']) if 'updated_at' in data else datetime.utcnow(),
        )
