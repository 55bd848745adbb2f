"""
Megapool Dissolution Engine

Unwinds a validator whose stake unit was assigned but which never activated
on the beacon chain. The unit leaves the pool whole: the operator keeps the
new bond requirement and the remainder is released from user capital.
"""

from typing import TYPE_CHECKING, Optional

from ..logger import get_logger
from .proofs import SlotProof, ValidatorProof, check_validator_identity
from .rebalance import CapitalDelta, rebalance
from .types import (
    InvalidTransition,
    NotDissolvable,
    ProofVerificationFailed,
    UnauthorizedCaller,
    ValidatorState,
)

if TYPE_CHECKING:
    from .megapool import Megapool

logger = get_logger(__name__)


class DissolutionEngine:
    """
    Dissolves assigned validators of one megapool.

    The node operator may dissolve without proof. Anyone else must attest
    through a validator proof that the validator never activated.
    """

    def __init__(self, megapool: "Megapool"):
        self.megapool = megapool

    async def dissolve_validator(
        self,
        validator_index: int,
        caller: str,
        validator_proof: Optional[ValidatorProof] = None,
        slot_proof: Optional[SlotProof] = None,
    ) -> CapitalDelta:
        """
        Dissolve an assigned, never-activated validator.

        Args:
            validator_index: Index within the megapool
            caller: Address requesting the dissolve
            validator_proof: Beacon record showing no activation
            slot_proof: Slot the validator proof is rooted at

        Returns:
            The capital delta applied

        Raises:
            InvalidTransition: Validator is not ACTIVE in the pool
            UnauthorizedCaller: Non-operator caller without proof
            ProofVerificationFailed: Proof rejected or not about this validator
            NotDissolvable: Proof shows the validator activated
        """
        pool = self.megapool
        async with pool.transaction(f"dissolve validator #{validator_index}"):
            validator = pool.registry.get(validator_index)
            if validator.state != ValidatorState.ACTIVE:
                raise InvalidTransition(validator_index, validator.state, ValidatorState.DISSOLVED)

            if validator_proof is None:
                if not pool.is_node_caller(caller):
                    raise UnauthorizedCaller(
                        f"{caller} must prove validator #{validator_index} never activated"
                    )
            else:
                if slot_proof is None:
                    raise ProofVerificationFailed("Validator proof requires a slot proof")
                slot = pool.verifier.verify_slot_proof(slot_proof)
                fact = pool.verifier.verify_validator_proof(validator_proof, slot)
                check_validator_identity(fact, validator.public_key, pool.withdrawal_credentials)
                if fact.record.activated:
                    raise NotDissolvable(
                        f"Validator #{validator_index} activated at epoch "
                        f"{fact.record.activation_epoch}"
                    )

            delta = rebalance(
                node_bond=pool.ledger.node_bond,
                node_queued_bond=pool.ledger.node_queued_bond,
                active_count_after_removal=pool.registry.active_validator_count - 1,
                is_dissolve=True,
                dissolve_penalty=pool.config.dissolve_penalty,
                oracle=pool.oracle,
                stake_unit=pool.config.stake_unit,
                stake_subunit=pool.config.prestake_value,
            )
            pool.apply_capital_delta(delta)

            pool.registry.transition(validator_index, ValidatorState.DISSOLVED)
            validator.dissolved = True

            logger.info(
                f"validator #{validator_index} dissolved: node bond {delta.node_bond} wei, "
                f"user capital {delta.user_capital} wei, debt +{delta.debt} wei"
                f"{' [underbonded]' if delta.underbonded else ''}"
            )
            return delta
