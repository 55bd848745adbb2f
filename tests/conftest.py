"""
Shared helpers for the megapool ledger tests.

The proof verifier stub attests whatever record it is handed, so tests can
build beacon facts directly.
"""

import os
import sys
from typing import Iterable, Optional

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from megapool.constants import FAR_FUTURE_EPOCH, GWEI_PER_ETHER, WEI_PER_ETHER
from megapool.ledger import (
    AttestedSlot,
    AttestedValidator,
    AttestedWithdrawal,
    BeaconValidatorRecord,
    BondRequirementOracle,
    InMemorySettlementSink,
    LedgerConfig,
    Megapool,
    NodeStakingRegistry,
    ProofVerificationFailed,
    ProofVerifier,
    SlotProof,
    ValidatorProof,
    WithdrawalProof,
    WithdrawalRecord,
)

ETH = WEI_PER_ETHER
NODE = "0x" + "11" * 20
WITHDRAWAL_ADDRESS = "0x" + "33" * 20
MEGAPOOL_ADDRESS = "0x" + "22" * 20
STRANGER = "0x" + "44" * 20

WITHDRAWABLE_EPOCH = 100
WITHDRAWAL_SLOT = WITHDRAWABLE_EPOCH * 32
ATTESTED_SLOT = WITHDRAWAL_SLOT + 64


class StubVerifier(ProofVerifier):
    """Attests every proof as given, or rejects everything when ``fail`` is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = 0

    def _check(self):
        self.calls += 1
        if self.fail:
            raise ProofVerificationFailed("bad witnesses")

    def verify_slot_proof(self, proof: SlotProof) -> AttestedSlot:
        self._check()
        return AttestedSlot(slot=proof.slot)

    def verify_validator_proof(self, proof: ValidatorProof, slot: AttestedSlot) -> AttestedValidator:
        self._check()
        return AttestedValidator(beacon_index=proof.validator_index, record=proof.validator)

    def verify_withdrawal_proof(self, proof: WithdrawalProof, slot: AttestedSlot) -> AttestedWithdrawal:
        self._check()
        return AttestedWithdrawal(slot=proof.withdrawal_slot, withdrawal=proof.withdrawal)


def pubkey(i: int) -> bytes:
    return bytes([i + 1]) * 48


def make_pool(
    oracle: Optional[BondRequirementOracle] = None,
    dissolve_penalty: int = 0,
    verifier: Optional[ProofVerifier] = None,
    staking: Optional[NodeStakingRegistry] = None,
) -> Megapool:
    return Megapool(
        NODE,
        MEGAPOOL_ADDRESS,
        config=LedgerConfig(dissolve_penalty=dissolve_penalty),
        oracle=oracle,
        staking=staking or NodeStakingRegistry(),
        verifier=verifier or StubVerifier(),
        sink=InMemorySettlementSink(),
        withdrawal_address=WITHDRAWAL_ADDRESS,
    )


async def funded_pool(bonds: Iterable[int], assign: bool = True, **kwargs) -> Megapool:
    """Pool with one validator per bond, all assigned unless ``assign`` is False."""
    pool = make_pool(**kwargs)
    for i, bond in enumerate(bonds):
        index = await pool.new_validator(pubkey(i), bond)
        if assign:
            await pool.assign_validator(index)
    return pool


def slot_proof(slot: int = ATTESTED_SLOT) -> SlotProof:
    return SlotProof(slot=slot)


def validator_proof(
    pool: Megapool,
    index: int,
    activation_epoch: int = FAR_FUTURE_EPOCH,
    withdrawable_epoch: int = FAR_FUTURE_EPOCH,
    public_key: Optional[bytes] = None,
) -> ValidatorProof:
    validator = pool.registry.get(index)
    return ValidatorProof(
        validator_index=1000 + index,
        validator=BeaconValidatorRecord(
            pubkey=public_key or validator.public_key,
            withdrawal_credentials=pool.withdrawal_credentials,
            activation_epoch=activation_epoch,
            withdrawable_epoch=withdrawable_epoch,
        ),
    )


def withdrawal_proof(
    pool: Megapool,
    index: int,
    amount_gwei: int,
    withdrawal_slot: int = WITHDRAWAL_SLOT,
) -> WithdrawalProof:
    return WithdrawalProof(
        withdrawal_slot=withdrawal_slot,
        withdrawal_num=0,
        withdrawal=WithdrawalRecord(
            index=0,
            validator_index=1000 + index,
            withdrawal_credentials=pool.execution_address,
            amount_in_gwei=amount_gwei,
        ),
    )


async def exit_validator(pool: Megapool, index: int) -> None:
    await pool.exits.notify_exit(
        index,
        validator_proof(pool, index, activation_epoch=1, withdrawable_epoch=WITHDRAWABLE_EPOCH),
        slot_proof(),
    )


async def settle_validator(pool: Megapool, index: int, balance_eth: int = 32, caller: Optional[str] = None):
    amount_gwei = balance_eth * GWEI_PER_ETHER
    return await pool.exits.notify_final_balance(
        index,
        amount_gwei,
        withdrawal_proof(pool, index, amount_gwei),
        validator_proof(pool, index, activation_epoch=1, withdrawable_epoch=WITHDRAWABLE_EPOCH),
        slot_proof(),
        caller=caller,
    )


def assert_cross_ledger(pool: Megapool) -> None:
    ledger = pool.ledger
    staking = pool.staking
    assert ledger.user_capital + ledger.user_queued_capital == \
        staking.get_node_megapool_eth_borrowed(pool.node_address, pool.address)
    assert ledger.node_bond + ledger.node_queued_bond == \
        staking.get_node_megapool_eth_bonded(pool.node_address, pool.address)


@pytest.fixture
def verifier():
    return StubVerifier()
