"""
Megapool Ledger Constants

Accounting units, staking parameters and beacon chain timing, followed by
the process settings read from ``.env``.
"""
from dotenv import dotenv_values


# ==================================================================================
# DENOMINATIONS
# ==================================================================================
WEI_PER_GWEI = 10 ** 9
WEI_PER_ETHER = 10 ** 18
GWEI_PER_ETHER = WEI_PER_ETHER // WEI_PER_GWEI


# WARNING: CHANGING THE STAKING PARAMETERS ON A LIVE DEPLOYMENT INVALIDATES
# EVERY PERSISTED LEDGER.

# ==================================================================================
# STAKING PARAMETERS
# ==================================================================================
STAKE_UNIT = 32 * WEI_PER_ETHER  # Full deposit backing one validator
PRESTAKE_VALUE = 1 * WEI_PER_ETHER  # Sent to the beacon chain on assignment, lost on dissolve
DEFAULT_DISSOLVE_PENALTY = 0

DEFAULT_BASE_BOND_ARRAY = (4 * WEI_PER_ETHER, 8 * WEI_PER_ETHER)
DEFAULT_REDUCED_BOND = 4 * WEI_PER_ETHER


# ==================================================================================
# BEACON CHAIN PARAMETERS
# ==================================================================================
SLOTS_PER_EPOCH = 32
FAR_FUTURE_EPOCH = 2 ** 64 - 1


# ==================================================================================
# ENVIRONMENT SETTINGS
# ==================================================================================
_env = dotenv_values(".env")

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def env_setting(key: str, default):
    """
    Value of ``key`` in .env coerced to the type of ``default``.

    Missing, blank or unparseable entries give ``default``.
    """
    raw = _env.get(key)
    if raw is None or not raw.strip():
        return default
    raw = raw.strip()
    if isinstance(default, bool):
        if raw.lower() in _TRUE:
            return True
        if raw.lower() in _FALSE:
            return False
        return default
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            return default
    return raw


DEFAULT_LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
DEFAULT_LOG_DATE_FORMAT = '%Y-%m-%dT%H:%M:%S'

MEGAPOOL_CONFIG = env_setting('MEGAPOOL_CONFIG', 'config.toml')
MEGAPOOL_DB_PATH = env_setting('MEGAPOOL_DB_PATH', '')

LOG_LEVEL = env_setting('LOG_LEVEL', 'INFO')
LOG_FORMAT = env_setting('LOG_FORMAT', DEFAULT_LOG_FORMAT)
LOG_DATE_FORMAT = env_setting('LOG_DATE_FORMAT', DEFAULT_LOG_DATE_FORMAT)
LOG_CONSOLE_HIGHLIGHTING = env_setting('LOG_CONSOLE_HIGHLIGHTING', True)
LOG_FILE_OUTPUT = env_setting('LOG_FILE_OUTPUT', False)
LOG_MAX_FILE_SIZE = env_setting('LOG_MAX_FILE_SIZE', 10 * 1024 * 1024)
LOG_BACKUP_COUNT = env_setting('LOG_BACKUP_COUNT', 5)
