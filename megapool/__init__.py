"""
Megapool Ledger Package

Core imports are lazily loaded so that importing a submodule does not
configure logging or pull in aiosqlite. For direct module access, import from
submodules:

    from megapool.ledger import Megapool, LedgerConfig
    from megapool.exceptions import MegapoolException
"""

# Lazy imports keep package import cheap
def __getattr__(name):
    if name == 'Megapool':
        from .ledger import Megapool
        return Megapool
    elif name == 'LedgerConfig':
        from .ledger import LedgerConfig
        return LedgerConfig
    elif name == 'MegapoolException':
        from .exceptions import MegapoolException
        return MegapoolException
    raise AttributeError(f"module 'megapool' has no attribute {name!r}")

__all__ = ['Megapool', 'LedgerConfig', 'MegapoolException']
