"""
Megapool Exit Engine

Two-phase exit of an active validator:

1. notify_exit: the beacon chain attests the validator is exiting. Only the
   registry moves.
2. notify_final_balance: the beacon chain attests the final withdrawal. The
   stake unit leaves the pool through the shared rebalance and the balance
   is split between the pooled-capital vault and the operator refund.
"""

from typing import TYPE_CHECKING, Optional

from ..constants import FAR_FUTURE_EPOCH, WEI_PER_GWEI
from ..logger import get_logger
from .proofs import (
    AttestedSlot,
    SlotProof,
    ValidatorProof,
    WithdrawalProof,
    check_validator_identity,
)
from .rebalance import rebalance
from .settlement import SettlementResult, split_final_balance
from .types import InvalidTransition, ProofVerificationFailed, ValidatorState

if TYPE_CHECKING:
    from .megapool import Megapool

logger = get_logger(__name__)


class ExitEngine:
    """Processes exit and final-balance attestations for one megapool."""

    def __init__(self, megapool: "Megapool"):
        self.megapool = megapool

    async def notify_exit(
        self,
        validator_index: int,
        validator_proof: ValidatorProof,
        slot_proof: SlotProof,
    ) -> int:
        """
        Mark an active validator as exiting.

        Returns:
            The attested withdrawable epoch

        Raises:
            InvalidTransition: Validator is not ACTIVE
            ProofVerificationFailed: Proof rejected, mismatched, or not exiting
        """
        pool = self.megapool
        async with pool.transaction(f"notify exit of validator #{validator_index}"):
            validator = pool.registry.get(validator_index)
            if validator.state != ValidatorState.ACTIVE:
                raise InvalidTransition(validator_index, validator.state, ValidatorState.EXITING)

            slot = pool.verifier.verify_slot_proof(slot_proof)
            fact = pool.verifier.verify_validator_proof(validator_proof, slot)
            check_validator_identity(fact, validator.public_key, pool.withdrawal_credentials)
            withdrawable_epoch = fact.record.withdrawable_epoch
            if withdrawable_epoch == FAR_FUTURE_EPOCH:
                raise ProofVerificationFailed(
                    f"Validator #{validator_index} has no withdrawable epoch"
                )

            pool.registry.transition(validator_index, ValidatorState.EXITING)
            validator.withdrawable_epoch = withdrawable_epoch

            logger.info(
                f"validator #{validator_index} exiting, withdrawable at epoch {withdrawable_epoch} "
                f"(active {pool.registry.active_validator_count}, "
                f"exiting {pool.registry.exiting_validator_count})"
            )
            return withdrawable_epoch

    async def notify_final_balance(
        self,
        validator_index: int,
        final_balance_gwei: int,
        withdrawal_proof: WithdrawalProof,
        validator_proof: ValidatorProof,
        slot_proof: SlotProof,
        caller: Optional[str] = None,
    ) -> SettlementResult:
        """
        Settle an exiting (or dissolved) validator's final balance.

        A dissolved validator's capital already left the pool at dissolution,
        so no ledger field moves and the recovered balance goes to the vault.
        Otherwise the stake unit leaves through the shared rebalance, users
        are repaid the released capital first and the rest becomes operator
        refund, claimed at once when the operator is the caller.

        Raises:
            InvalidTransition: Validator is neither EXITING nor DISSOLVED
            ProofVerificationFailed: Proofs rejected or inconsistent with the call
        """
        pool = self.megapool
        async with pool.transaction(f"final balance of validator #{validator_index}"):
            validator = pool.registry.get(validator_index)
            if validator.state not in (ValidatorState.EXITING, ValidatorState.DISSOLVED):
                raise InvalidTransition(validator_index, validator.state, ValidatorState.EXITED)

            slot = pool.verifier.verify_slot_proof(slot_proof)
            fact = pool.verifier.verify_validator_proof(validator_proof, slot)
            check_validator_identity(fact, validator.public_key, pool.withdrawal_credentials)
            withdrawable_epoch = validator.withdrawable_epoch
            if withdrawable_epoch is None:
                withdrawable_epoch = fact.record.withdrawable_epoch
            self._check_withdrawal(
                withdrawal_proof, slot, final_balance_gwei, withdrawable_epoch
            )

            balance = final_balance_gwei * WEI_PER_GWEI
            dissolved = validator.state == ValidatorState.DISSOLVED

            if dissolved:
                delta = None
            else:
                delta = rebalance(
                    node_bond=pool.ledger.node_bond,
                    node_queued_bond=pool.ledger.node_queued_bond,
                    active_count_after_removal=pool.registry.active_validator_count,
                    is_dissolve=False,
                    dissolve_penalty=0,
                    oracle=pool.oracle,
                    stake_unit=pool.config.stake_unit,
                    stake_subunit=pool.config.prestake_value,
                )
                pool.apply_capital_delta(delta)

            distribution = split_final_balance(balance, delta)
            claimed = 0
            if not dissolved:
                if distribution.shortfall:
                    pool.ledger.accrue_debt(distribution.shortfall)
                    logger.warning(
                        f"validator #{validator_index} final balance short by "
                        f"{distribution.shortfall} wei, charged as debt"
                    )
                pool.ledger.add_refund(distribution.to_node)
                if caller is not None and pool.is_node_caller(caller):
                    claimed = pool.ledger.take_refund()

            pool.registry.transition(validator_index, ValidatorState.EXITED)
            validator.exit_balance_gwei = final_balance_gwei

            if distribution.to_user:
                pool.after_commit(pool.sink.credit_pool_vault, distribution.to_user)
            if claimed:
                pool.after_commit(pool.sink.credit_operator, pool.withdrawal_address, claimed)

            if dissolved:
                logger.info(
                    f"validator #{validator_index} (dissolved) settled with {final_balance_gwei} gwei, "
                    f"no capital movement"
                )
            else:
                logger.info(
                    f"validator #{validator_index} settled with {final_balance_gwei} gwei: "
                    f"node bond {delta.node_bond} wei, user capital {delta.user_capital} wei, "
                    f"to vault {distribution.to_user} wei, to refund {distribution.to_node} wei"
                )

            return SettlementResult(
                validator_index=validator_index,
                final_balance_gwei=final_balance_gwei,
                delta=delta,
                distribution=distribution,
                refund_claimed=claimed,
            )

    def _check_withdrawal(
        self,
        proof: WithdrawalProof,
        slot: AttestedSlot,
        final_balance_gwei: int,
        withdrawable_epoch: int,
    ) -> None:
        pool = self.megapool
        fact = pool.verifier.verify_withdrawal_proof(proof, slot)
        withdrawal = fact.withdrawal
        if final_balance_gwei < 0:
            raise ProofVerificationFailed("Final balance must be non-negative")
        if withdrawal.amount_in_gwei != final_balance_gwei:
            raise ProofVerificationFailed(
                f"Withdrawal of {withdrawal.amount_in_gwei} gwei does not match "
                f"reported {final_balance_gwei} gwei"
            )
        if withdrawal.withdrawal_credentials != pool.execution_address:
            raise ProofVerificationFailed("Withdrawal was not paid to this megapool")
        if withdrawable_epoch == FAR_FUTURE_EPOCH:
            raise ProofVerificationFailed("Validator has no withdrawable epoch")
        if fact.slot < withdrawable_epoch * pool.config.slots_per_epoch:
            raise ProofVerificationFailed(
                f"Withdrawal at slot {fact.slot} precedes withdrawable epoch {withdrawable_epoch}"
            )
        if fact.slot > slot.slot:
            raise ProofVerificationFailed(
                f"Withdrawal at slot {fact.slot} is after the attested slot {slot.slot}"
            )
