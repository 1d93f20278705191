# MIT License
# Copyright (c) 2025 Hashborn

import sqlite3
import threading
import logging
from typing import Dict, List, Optional

from pydantic import ValidationError as ModelValidationError

from protocol.types.common import StorageError
from protocol.types.state import EngineState
from ..core.token import InMemoryTokenLedger

logger = logging.getLogger(__name__)


class StorageDB:
    """
    Key-value persistence for reward pools.

    Keys:
        pool:<pool_id>              EngineState JSON
        token:<pool_id>:<symbol>    InMemoryTokenLedger JSON, one per pool
        meta:<name>                 free-form strings (e.g. the active pool id)
    """

    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            self.conn.commit()

    def close(self):
        with self._lock:
            self.conn.close()

    # --- Raw State Methods ---
    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def set_state(self, key: str, value: str):
        self.set_many({key: value})

    def set_many(self, items: Dict[str, str]):
        """Writes all items in one transaction."""
        with self._lock:
            try:
                self.cursor.executemany(
                    'INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', list(items.items())
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise StorageError(f"Failed to write {len(items)} key(s): {e}")

    def get_state_by_prefix(self, prefix: str) -> Dict[str, str]:
        with self._lock:
            self.cursor.execute('SELECT key, value FROM state WHERE key LIKE ?', (f"{prefix}%",))
            return {row[0]: row[1] for row in self.cursor.fetchall()}

    def clear_state(self):
        with self._lock:
            self.cursor.execute('DELETE FROM state')
            self.conn.commit()

    # --- Pool Methods ---
    def save_pool(self, state: EngineState, tokens: List[InMemoryTokenLedger] = ()):
        """Persists a pool together with the token ledgers it moves value through."""
        items = {f"pool:{state.pool_id}": state.model_dump_json()}
        for token in tokens:
            items[f"token:{state.pool_id}:{token.symbol}"] = token.model_dump_json()
        self.set_many(items)
        logger.debug(f"Saved pool {state.pool_id} with {len(tokens)} token ledger(s)")

    def load_pool(self, pool_id: str) -> EngineState:
        raw = self.get_state(f"pool:{pool_id}")
        if raw is None:
            raise StorageError(f"Pool {pool_id} not found")
        try:
            return EngineState.model_validate_json(raw)
        except ModelValidationError as e:
            raise StorageError(f"Corrupt state for pool {pool_id}: {e}")

    def list_pools(self) -> List[str]:
        return sorted(key.split(":", 1)[1] for key in self.get_state_by_prefix("pool:"))

    def load_token(self, pool_id: str, symbol: str) -> Optional[InMemoryTokenLedger]:
        raw = self.get_state(f"token:{pool_id}:{symbol}")
        if raw is None:
            return None
        try:
            return InMemoryTokenLedger.model_validate_json(raw)
        except ModelValidationError as e:
            raise StorageError(f"Corrupt token ledger {symbol} of pool {pool_id}: {e}")

    def get_meta(self, name: str) -> Optional[str]:
        return self.get_state(f"meta:{name}")

    def set_meta(self, name: str, value: str):
        self.set_state(f"meta:{name}", value)
