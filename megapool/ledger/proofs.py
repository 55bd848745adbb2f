"""
Megapool Attestation Proofs

Shapes of the beacon-chain proofs consumed by the exit and dissolution
engines, and the verifier capability that turns them into trusted facts.
Witness verification itself lives outside this package.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

from ..constants import FAR_FUTURE_EPOCH
from .types import ProofVerificationFailed


@dataclass(frozen=True)
class BeaconValidatorRecord:
    """Validator fields as recorded in the beacon state."""
    pubkey: bytes
    withdrawal_credentials: bytes
    effective_balance: int = 0
    slashed: bool = False
    activation_eligibility_epoch: int = FAR_FUTURE_EPOCH
    activation_epoch: int = FAR_FUTURE_EPOCH
    exit_epoch: int = FAR_FUTURE_EPOCH
    withdrawable_epoch: int = FAR_FUTURE_EPOCH

    @property
    def activated(self) -> bool:
        return self.activation_epoch != FAR_FUTURE_EPOCH


@dataclass(frozen=True)
class WithdrawalRecord:
    """A withdrawal as recorded in a beacon block."""
    index: int
    validator_index: int
    withdrawal_credentials: bytes
    amount_in_gwei: int


@dataclass(frozen=True)
class SlotProof:
    slot: int
    witnesses: List[bytes] = field(default_factory=list)


@dataclass(frozen=True)
class ValidatorProof:
    validator_index: int
    validator: BeaconValidatorRecord
    witnesses: List[bytes] = field(default_factory=list)


@dataclass(frozen=True)
class WithdrawalProof:
    withdrawal_slot: int
    withdrawal_num: int
    withdrawal: WithdrawalRecord
    witnesses: List[bytes] = field(default_factory=list)


@dataclass(frozen=True)
class AttestedSlot:
    slot: int


@dataclass(frozen=True)
class AttestedValidator:
    beacon_index: int
    record: BeaconValidatorRecord


@dataclass(frozen=True)
class AttestedWithdrawal:
    slot: int
    withdrawal: WithdrawalRecord


class ProofVerifier(ABC):
    """
    Capability that checks proof witnesses against a trusted beacon root.

    Each method returns the attested fact or raises ProofVerificationFailed.
    Implementations must not touch ledger state.
    """

    @abstractmethod
    def verify_slot_proof(self, proof: SlotProof) -> AttestedSlot:
        pass

    @abstractmethod
    def verify_validator_proof(
        self,
        proof: ValidatorProof,
        slot: AttestedSlot,
    ) -> AttestedValidator:
        pass

    @abstractmethod
    def verify_withdrawal_proof(
        self,
        proof: WithdrawalProof,
        slot: AttestedSlot,
    ) -> AttestedWithdrawal:
        pass


class RejectingVerifier(ProofVerifier):
    """Verifier for deployments without a beacon root source."""

    def verify_slot_proof(self, proof: SlotProof) -> AttestedSlot:
        raise ProofVerificationFailed("No beacon root source configured")

    def verify_validator_proof(self, proof, slot) -> AttestedValidator:
        raise ProofVerificationFailed("No beacon root source configured")

    def verify_withdrawal_proof(self, proof, slot) -> AttestedWithdrawal:
        raise ProofVerificationFailed("No beacon root source configured")


def check_validator_identity(
    fact: AttestedValidator,
    public_key: bytes,
    withdrawal_credentials: bytes,
) -> None:
    """Raise ProofVerificationFailed unless the attested record is ours."""
    if fact.record.pubkey != public_key:
        raise ProofVerificationFailed("Attested public key does not match validator")
    if fact.record.withdrawal_credentials != withdrawal_credentials:
        raise ProofVerificationFailed("Attested withdrawal credentials do not match megapool")
