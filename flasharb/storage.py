# flasharb/storage.py
"""
SQLite trade journal
Persists TradeResults keyed by trade id; rows are never updated
"""

import logging
import sqlite3
from pathlib import Path
from typing import List, Optional

from flasharb.models import TradeResult

logger = logging.getLogger(__name__)

_COLUMNS = [
    "trade_id", "success", "loan_amount", "profit", "gas_used", "timestamp",
    "token_in", "token_out", "route_fingerprint", "reason", "step", "phase",
    "message", "mev_protected",
]


class TradeJournal:
    """Append-only TradeResult store"""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.connection = sqlite3.connect(db_path)
        self._create_tables()

    def _create_tables(self) -> None:
        # amounts are stored as TEXT: token base units overflow SQLite INTEGER
        self.connection.execute("""
            CREATE TABLE IF NOT EXISTS trades (
                trade_id INTEGER PRIMARY KEY,
                success INTEGER NOT NULL,
                loan_amount TEXT NOT NULL,
                profit TEXT NOT NULL,
                gas_used INTEGER NOT NULL,
                timestamp REAL NOT NULL,
                token_in TEXT,
                token_out TEXT,
                route_fingerprint TEXT,
                reason TEXT,
                step INTEGER,
                phase TEXT,
                message TEXT,
                mev_protected INTEGER NOT NULL
            )
        """)
        self.connection.commit()

    def record(self, result: TradeResult) -> None:
        self.connection.execute(
            f"INSERT INTO trades ({', '.join(_COLUMNS)}) VALUES ({', '.join('?' * len(_COLUMNS))})",
            (
                result.trade_id,
                int(result.success),
                str(result.loan_amount),
                str(result.profit),
                result.gas_used,
                result.timestamp,
                result.token_in,
                result.token_out,
                result.route_fingerprint,
                result.reason,
                result.step,
                result.phase,
                result.message,
                int(result.mev_protected),
            ),
        )
        self.connection.commit()
        logger.debug(f"Journaled trade {result.trade_id}")

    @staticmethod
    def _from_row(row) -> TradeResult:
        values = dict(zip(_COLUMNS, row))
        values["success"] = bool(values["success"])
        values["mev_protected"] = bool(values["mev_protected"])
        values["loan_amount"] = int(values["loan_amount"])
        values["profit"] = int(values["profit"])
        return TradeResult(**values)

    def get(self, trade_id: int) -> Optional[TradeResult]:
        row = self.connection.execute(
            f"SELECT {', '.join(_COLUMNS)} FROM trades WHERE trade_id = ?", (trade_id,)
        ).fetchone()
        return self._from_row(row) if row else None

    def recent(self, limit: int = 50) -> List[TradeResult]:
        rows = self.connection.execute(
            f"SELECT {', '.join(_COLUMNS)} FROM trades ORDER BY trade_id DESC LIMIT ?", (limit,)
        ).fetchall()
        return [self._from_row(r) for r in rows]

    def last_trade_id(self) -> int:
        row = self.connection.execute("SELECT MAX(trade_id) FROM trades").fetchone()
        return row[0] or 0

    def close(self) -> None:
        self.connection.close()
