"""
Megapool Exceptions

Package-wide exception base classes. Ledger-specific errors live in
megapool.ledger.types.
"""


class MegapoolException(Exception):
    """Base exception for the megapool package."""
    pass


class ConfigurationError(MegapoolException):
    """Configuration error."""
    pass
