"""
Megapool Validator Registry

Append-only table of validator records with live population counters.
Indices are positions in the table and never change.
"""

import copy
from datetime import datetime
from typing import Dict, FrozenSet, List, Tuple

from ..logger import get_logger
from .types import (
    InvalidTransition,
    InvariantViolation,
    Validator,
    ValidatorNotFound,
    ValidatorState,
)

logger = get_logger(__name__)


# Permitted lifecycle moves. DISSOLVED -> EXITED settles the residual
# prestake balance of a dissolved validator and never moves capital.
TRANSITIONS: Dict[ValidatorState, FrozenSet[ValidatorState]] = {
    ValidatorState.QUEUED: frozenset({ValidatorState.ACTIVE}),
    ValidatorState.ACTIVE: frozenset({ValidatorState.DISSOLVED, ValidatorState.EXITING}),
    ValidatorState.EXITING: frozenset({ValidatorState.EXITED}),
    ValidatorState.DISSOLVED: frozenset({ValidatorState.EXITED}),
    ValidatorState.EXITED: frozenset(),
}


class ValidatorRegistry:
    """
    Per-megapool validator table.

    Maintains ``active_validator_count`` and ``exiting_validator_count`` as
    validators move through the state machine in ``TRANSITIONS``.
    """

    def __init__(self):
        self._validators: List[Validator] = []
        self._active_count = 0
        self._exiting_count = 0

    def __len__(self) -> int:
        return len(self._validators)

    def __iter__(self):
        return iter(self._validators)

    @property
    def active_validator_count(self) -> int:
        return self._active_count

    @property
    def exiting_validator_count(self) -> int:
        return self._exiting_count

    @property
    def total_validator_count(self) -> int:
        return len(self._validators)

    def register(self, validator: Validator) -> int:
        """
        Append a validator to the table in the QUEUED state.

        Returns:
            The new validator's index
        """
        index = len(self._validators)
        validator.index = index
        validator.state = ValidatorState.QUEUED
        self._validators.append(validator)
        logger.debug(f"Registered validator #{index} ({validator.public_key_hex[:16]})")
        return index

    def get(self, index: int) -> Validator:
        if not 0 <= index < len(self._validators):
            raise ValidatorNotFound(index)
        return self._validators[index]

    def transition(self, index: int, target: ValidatorState) -> Validator:
        """
        Move a validator to ``target``, updating the population counters.

        Raises:
            ValidatorNotFound: Unknown index
            InvalidTransition: Move not permitted from the current state
        """
        validator = self.get(index)
        current = validator.state
        if target not in TRANSITIONS[current]:
            raise InvalidTransition(index, current, target)

        if current == ValidatorState.ACTIVE:
            self._active_count -= 1
        elif current == ValidatorState.EXITING:
            self._exiting_count -= 1

        if target == ValidatorState.ACTIVE:
            self._active_count += 1
        elif target == ValidatorState.EXITING:
            self._exiting_count += 1

        validator.state = target
        validator.updated_at = datetime.utcnow()

        logger.debug(f"validator #{index}: {current.name} -> {target.name}")
        return validator

    def count_by_state(self, state: ValidatorState) -> int:
        return sum(1 for v in self._validators if v.state == state)

    def check_counters(self) -> None:
        """Raise InvariantViolation if the counters disagree with a live tally."""
        active = self.count_by_state(ValidatorState.ACTIVE)
        exiting = self.count_by_state(ValidatorState.EXITING)
        if active != self._active_count or exiting != self._exiting_count:
            raise InvariantViolation(
                f"Counter drift: active {self._active_count} (tally {active}), "
                f"exiting {self._exiting_count} (tally {exiting})"
            )

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def snapshot(self) -> Tuple[List[Tuple[Validator, Validator]], int, int]:
        saved = [(v, copy.copy(v)) for v in self._validators]
        return saved, self._active_count, self._exiting_count

    def restore(self, snapshot: Tuple[List[Tuple[Validator, Validator]], int, int]) -> None:
        """Roll back in place so callers holding records see the old values."""
        saved, active, exiting = snapshot
        for validator, before in saved:
            validator.__dict__.update(vars(before))
        self._validators = [validator for validator, _ in saved]
        self._active_count = active
        self._exiting_count = exiting

    @classmethod
    def from_validators(cls, validators: List[Validator]) -> 'ValidatorRegistry':
        """Rebuild a registry from stored records, recomputing counters."""
        registry = cls()
        for expected, validator in enumerate(sorted(validators, key=lambda v: v.index)):
            if validator.index != expected:
                raise InvariantViolation(
                    f"Validator table has a gap at index {expected}"
                )
            registry._validators.append(validator)
        registry._active_count = registry.count_by_state(ValidatorState.ACTIVE)
        registry._exiting_count = registry.count_by_state(ValidatorState.EXITING)
        return registry
