"""
Megapool Ledger Store

Persists megapool balances and the validator table to an aiosqlite
database so restarts keep every settled transition.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

import aiosqlite

from ..logger import get_logger
from .capital import CapitalLedger
from .types import Validator, ValidatorState

logger = get_logger(__name__)


class MegapoolStore:
    """
    SQLite persistence for megapool ledgers.

    Amounts are stored as decimal strings since wei values exceed SQLite's
    64-bit integers.
    """

    _SCHEMA = """
    CREATE TABLE IF NOT EXISTS megapool_ledgers (
        megapool_address TEXT PRIMARY KEY,
        node_address TEXT NOT NULL,
        node_bond TEXT NOT NULL DEFAULT '0',
        node_queued_bond TEXT NOT NULL DEFAULT '0',
        user_capital TEXT NOT NULL DEFAULT '0',
        user_queued_capital TEXT NOT NULL DEFAULT '0',
        debt TEXT NOT NULL DEFAULT '0',
        pending_rewards TEXT NOT NULL DEFAULT '0',
        refund_value TEXT NOT NULL DEFAULT '0',
        updated_at TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS megapool_validators (
        megapool_address TEXT NOT NULL,
        validator_index INTEGER NOT NULL,
        public_key TEXT NOT NULL,
        withdrawal_credentials TEXT NOT NULL,
        bond TEXT NOT NULL,
        state TEXT NOT NULL,
        dissolved INTEGER NOT NULL DEFAULT 0,
        withdrawable_epoch TEXT,
        exit_balance_gwei TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (megapool_address, validator_index)
    );
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def open(self):
        """Open the database and create tables if needed."""
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        for stmt in self._SCHEMA.strip().split(";"):
            stmt = stmt.strip()
            if stmt:
                await self._db.execute(stmt)
        await self._db.commit()
        logger.info(f"Megapool store opened: {self.db_path}")

    async def close(self):
        if self._db:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> "MegapoolStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def save(
        self,
        megapool_address: str,
        node_address: str,
        ledger: CapitalLedger,
        validators: Iterable[Validator],
    ):
        """
        Upsert the ledger row and every validator row in one transaction.

        Rolls back and re-raises on failure.
        """
        if not self._db:
            raise RuntimeError("MegapoolStore is not open")
        try:
            await self._db.execute("""
                INSERT INTO megapool_ledgers (
                    megapool_address, node_address, node_bond, node_queued_bond,
                    user_capital, user_queued_capital, debt, pending_rewards,
                    refund_value, updated_at
                ) VALUES (?,?,?,?,?,?,?,?,?,?)
                ON CONFLICT(megapool_address) DO UPDATE SET
                    node_bond=excluded.node_bond,
                    node_queued_bond=excluded.node_queued_bond,
                    user_capital=excluded.user_capital,
                    user_queued_capital=excluded.user_queued_capital,
                    debt=excluded.debt,
                    pending_rewards=excluded.pending_rewards,
                    refund_value=excluded.refund_value,
                    updated_at=excluded.updated_at
            """, (
                megapool_address, node_address,
                str(ledger.node_bond), str(ledger.node_queued_bond),
                str(ledger.user_capital), str(ledger.user_queued_capital),
                str(ledger.debt), str(ledger.pending_rewards),
                str(ledger.refund_value), datetime.utcnow().isoformat(),
            ))
            for v in validators:
                await self._db.execute("""
                    INSERT INTO megapool_validators (
                        megapool_address, validator_index, public_key,
                        withdrawal_credentials, bond, state, dissolved,
                        withdrawable_epoch, exit_balance_gwei, created_at, updated_at
                    ) VALUES (?,?,?,?,?,?,?,?,?,?,?)
                    ON CONFLICT(megapool_address, validator_index) DO UPDATE SET
                        state=excluded.state,
                        dissolved=excluded.dissolved,
                        withdrawable_epoch=excluded.withdrawable_epoch,
                        exit_balance_gwei=excluded.exit_balance_gwei,
                        updated_at=excluded.updated_at
                """, (
                    megapool_address, v.index, v.public_key.hex(),
                    v.withdrawal_credentials.hex(), str(v.bond), v.state.value,
                    int(v.dissolved),
                    None if v.withdrawable_epoch is None else str(v.withdrawable_epoch),
                    None if v.exit_balance_gwei is None else str(v.exit_balance_gwei),
                    v.created_at.isoformat(), v.updated_at.isoformat(),
                ))
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

    async def load(
        self,
        megapool_address: str,
    ) -> Optional[Tuple[str, CapitalLedger, List[Validator]]]:
        """
        Restore a megapool's node address, ledger and validators.

        Returns:
            None when nothing is stored for ``megapool_address``
        """
        if not self._db:
            raise RuntimeError("MegapoolStore is not open")

        cursor = await self._db.execute(
            "SELECT * FROM megapool_ledgers WHERE megapool_address = ?",
            (megapool_address,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None

        ledger = CapitalLedger(
            node_bond=int(row["node_bond"]),
            node_queued_bond=int(row["node_queued_bond"]),
            user_capital=int(row["user_capital"]),
            user_queued_capital=int(row["user_queued_capital"]),
            debt=int(row["debt"]),
            pending_rewards=int(row["pending_rewards"]),
            refund_value=int(row["refund_value"]),
        )

        cursor = await self._db.execute(
            "SELECT * FROM megapool_validators WHERE megapool_address = ? "
            "ORDER BY validator_index",
            (megapool_address,)
        )
        validators = []
        for r in await cursor.fetchall():
            validators.append(Validator(
                index=r["validator_index"],
                public_key=bytes.fromhex(r["public_key"]),
                withdrawal_credentials=bytes.fromhex(r["withdrawal_credentials"]),
                bond=int(r["bond"]),
                state=ValidatorState(r["state"]),
                dissolved=bool(r["dissolved"]),
                withdrawable_epoch=None if r["withdrawable_epoch"] is None else int(r["withdrawable_epoch"]),
                exit_balance_gwei=None if r["exit_balance_gwei"] is None else int(r["exit_balance_gwei"]),
                created_at=datetime.fromisoformat(r["created_at"]),
                updated_at=datetime.fromisoformat(r["updated_at"]),
            ))

        logger.info(
            f"Megapool {megapool_address[:16]} restored: {len(validators)} validators"
        )
        return row["node_address"], ledger, validators
