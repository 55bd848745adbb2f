"""
Account address handling for node operators, withdrawal addresses and
megapools. Addresses are kept in checksummed form so one account has one
spelling everywhere in the ledger and the staking registry.
"""

from eth_utils import (
    is_checksum_address,
    is_checksum_formatted_address,
    is_hex_address,
    to_checksum_address,
)

from .types import InvalidAddress


def normalize_address(value: str, role: str = "address") -> str:
    """
    Checksummed form of ``value``.

    All-lowercase and all-uppercase spellings are accepted as is; a
    mixed-case spelling must carry a valid checksum.

    Raises:
        InvalidAddress: Not a 20-byte hex address, or a bad checksum
    """
    if not is_hex_address(value):
        raise InvalidAddress(f"Malformed {role}: {value!r}")
    if is_checksum_formatted_address(value) and not is_checksum_address(value):
        raise InvalidAddress(f"Bad checksum in {role}: {value}")
    return to_checksum_address(value)
