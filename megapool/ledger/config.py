"""
Megapool Ledger Configuration

Configuration classes for the ledger, loaded from the [megapool] section of
config.toml. Environment variables override TOML values.

Environment variable mapping:
    [megapool] dissolve_penalty  -> MEGAPOOL_DISSOLVE_PENALTY
    [megapool] db_path           -> MEGAPOOL_DB_PATH
    [megapool.bond] reduced_bond -> MEGAPOOL_REDUCED_BOND

Ether amounts are written as decimal strings ("0.05") and held in wei.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import (
    DEFAULT_BASE_BOND_ARRAY,
    DEFAULT_DISSOLVE_PENALTY,
    DEFAULT_REDUCED_BOND,
    MEGAPOOL_CONFIG,
    MEGAPOOL_DB_PATH,
    PRESTAKE_VALUE,
    SLOTS_PER_EPOCH,
    STAKE_UNIT,
    WEI_PER_ETHER,
)
from ..exceptions import ConfigurationError
from ..logger import get_logger
from .oracle import ReducedBondSchedule

logger = get_logger(__name__)


def ether_to_wei(value: Any) -> int:
    """Convert an ether amount given as str/int/Decimal into integer wei."""
    try:
        wei = Decimal(str(value)) * WEI_PER_ETHER
    except InvalidOperation:
        raise ConfigurationError(f"Not an ether amount: {value!r}")
    if not wei.is_finite():
        raise ConfigurationError(f"Ether amount {value!r} is not finite")
    if wei != wei.to_integral_value():
        raise ConfigurationError(f"Ether amount {value!r} has sub-wei precision")
    return int(wei)


def wei_to_ether(value: int) -> str:
    return str(Decimal(value) / WEI_PER_ETHER)


@dataclass
class BondConfig:
    """[megapool.bond] section: reduced bond schedule."""

    # Total bond for the first validators, in wei
    base_bond_array: List[int] = field(default_factory=lambda: list(DEFAULT_BASE_BOND_ARRAY))

    # Bond added per validator beyond the base array, in wei
    reduced_bond: int = DEFAULT_REDUCED_BOND

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BondConfig":
        base = data.get('base_bond_array')
        return cls(
            base_bond_array=[ether_to_wei(v) for v in base] if base is not None
            else list(DEFAULT_BASE_BOND_ARRAY),
            reduced_bond=ether_to_wei(data['reduced_bond']) if 'reduced_bond' in data
            else DEFAULT_REDUCED_BOND,
        )

    def apply_env(self) -> None:
        if v := os.environ.get("MEGAPOOL_REDUCED_BOND"):
            self.reduced_bond = ether_to_wei(v)

    def build_oracle(self) -> ReducedBondSchedule:
        return ReducedBondSchedule(self.base_bond_array, self.reduced_bond)


@dataclass
class LedgerConfig:
    """
    Main ledger configuration.

    Loaded from config.toml [megapool] section.
    """

    # Full deposit per validator, in wei
    stake_unit: int = STAKE_UNIT

    # Prestake lost when an underbonded validator is dissolved, in wei
    prestake_value: int = PRESTAKE_VALUE

    # Debt charged on every dissolve, in wei
    dissolve_penalty: int = DEFAULT_DISSOLVE_PENALTY

    # Beacon chain timing used to check withdrawal proofs
    slots_per_epoch: int = SLOTS_PER_EPOCH

    # Optional SQLite database for ledger persistence
    db_path: str = ""

    bond: BondConfig = field(default_factory=BondConfig)

    def __post_init__(self):
        if not self.db_path:
            self.db_path = str(MEGAPOOL_DB_PATH)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerConfig":
        """Create from the [megapool] table."""
        return cls(
            stake_unit=ether_to_wei(data['stake_unit']) if 'stake_unit' in data else STAKE_UNIT,
            prestake_value=ether_to_wei(data['prestake_value']) if 'prestake_value' in data
            else PRESTAKE_VALUE,
            dissolve_penalty=ether_to_wei(data['dissolve_penalty']) if 'dissolve_penalty' in data
            else DEFAULT_DISSOLVE_PENALTY,
            slots_per_epoch=int(data.get('slots_per_epoch', SLOTS_PER_EPOCH)),
            db_path=data.get('db_path', ''),
            bond=BondConfig.from_dict(data.get('bond', {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "LedgerConfig":
        """
        Load configuration from a TOML file.

        Args:
            config_path: Path to config.toml

        Returns:
            LedgerConfig instance with environment overrides applied
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            cfg = cls()
            cfg.apply_env()
            return cfg

        with open(path, 'rb') as f:
            raw = tomli.load(f)

        cfg = cls.from_dict(raw.get('megapool', {}))
        cfg.apply_env()
        return cfg

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("MEGAPOOL_DISSOLVE_PENALTY"):
            self.dissolve_penalty = ether_to_wei(v)
        if v := os.environ.get("MEGAPOOL_DB_PATH"):
            self.db_path = v
        self.bond.apply_env()

    def validate(self) -> bool:
        """
        Validate configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if self.stake_unit <= 0:
            raise ConfigurationError("stake_unit must be positive")
        if not 0 <= self.prestake_value <= self.stake_unit:
            raise ConfigurationError("prestake_value must be within [0, stake_unit]")
        if self.dissolve_penalty < 0:
            raise ConfigurationError("dissolve_penalty must be non-negative")
        if self.slots_per_epoch < 1:
            raise ConfigurationError("slots_per_epoch must be at least 1")
        if not self.bond.base_bond_array:
            raise ConfigurationError("base_bond_array must not be empty")
        if self.bond.base_bond_array[0] > self.stake_unit:
            raise ConfigurationError("Bond for one validator cannot exceed stake_unit")
        if self.bond.reduced_bond < 0 or self.bond.reduced_bond > self.stake_unit:
            raise ConfigurationError("reduced_bond must be within [0, stake_unit]")
        return True

    def build_oracle(self) -> ReducedBondSchedule:
        return self.bond.build_oracle()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (diagnostics, ether amounts as strings)."""
        return {
            'stake_unit': wei_to_ether(self.stake_unit),
            'prestake_value': wei_to_ether(self.prestake_value),
            'dissolve_penalty': wei_to_ether(self.dissolve_penalty),
            'slots_per_epoch': self.slots_per_epoch,
            'db_path': self.db_path,
            'bond': {
                'base_bond_array': [wei_to_ether(v) for v in self.bond.base_bond_array],
                'reduced_bond': wei_to_ether(self.bond.reduced_bond),
            },
        }


def load_config(path: Optional[str] = None) -> LedgerConfig:
    """
    Load ledger configuration.

    Resolution order:
        1. Explicit *path* argument
        2. MEGAPOOL_CONFIG env var (or .env entry)
        3. ./config.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("MEGAPOOL_CONFIG", str(MEGAPOOL_CONFIG))
    return LedgerConfig.from_file(path)
