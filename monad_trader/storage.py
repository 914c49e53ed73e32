"""
Wallet persistence.

The in-memory map is authoritative for the life of the process; the sqlite
file only lets wallets survive a restart.
"""

import logging
import os
import sqlite3
from typing import Dict, Optional

from .models import Wallet

logger = logging.getLogger(__name__)


class WalletStore:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self._wallets: Dict[str, Wallet] = {}
        self.init_database()

    def _connect(self):
        return sqlite3.connect(self.db_path)

    def init_database(self):
        """Initialize the database with required tables."""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        conn = self._connect()
        cursor = conn.cursor()

        # One wallet per user; re-import overwrites the row
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS wallets (
                user_id TEXT PRIMARY KEY,
                wallet_address TEXT NOT NULL,
                private_key TEXT NOT NULL,
                mnemonic TEXT,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT,
                tx_hash TEXT,
                tx_type TEXT,
                amount TEXT,
                token_address TEXT,
                status TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.commit()
        conn.close()

    def load(self) -> int:
        """Load persisted wallets into memory. Returns the number loaded."""
        try:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute("SELECT user_id, wallet_address, private_key, mnemonic FROM wallets")
            rows = cursor.fetchall()
            conn.close()
        except sqlite3.Error as e:
            logger.error(f"Failed to load wallets: {e}")
            return 0

        self._wallets = {
            user_id: Wallet(owner=user_id, address=address, private_key=private_key, mnemonic=mnemonic)
            for user_id, address, private_key, mnemonic in rows
        }
        logger.info(f"Loaded {len(self._wallets)} existing wallets")
        return len(self._wallets)

    def get(self, user_id: str) -> Optional[Wallet]:
        return self._wallets.get(user_id)

    def put(self, user_id: str, wallet: Wallet):
        self._wallets[user_id] = wallet

    def delete(self, user_id: str):
        self._wallets.pop(user_id, None)

    def persist(self) -> bool:
        """Flush the in-memory wallets to disk. Failures are logged, not raised."""
        try:
            conn = self._connect()
            try:
                with conn:
                    conn.execute("DELETE FROM wallets")
                    conn.executemany(
                        """
                        INSERT INTO wallets (user_id, wallet_address, private_key, mnemonic)
                        VALUES (?, ?, ?, ?)
                        """,
                        [(w.owner, w.address, w.private_key, w.mnemonic) for w in self._wallets.values()],
                    )
            finally:
                conn.close()
            return True
        except sqlite3.Error as e:
            logger.error(f"Failed to save wallets: {e}")
            return False

    def log_transaction(self, user_id: str, tx_hash: str, tx_type: str, amount: str, token_address: str, status: str):
        """Log a transaction."""
        try:
            conn = self._connect()
            try:
                with conn:
                    conn.execute("""
                        INSERT INTO transactions (user_id, tx_hash, tx_type, amount, token_address, status)
                        VALUES (?, ?, ?, ?, ?, ?)
                    """, (user_id, tx_hash, tx_type, amount, token_address, status))
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Error logging transaction: {e}")
