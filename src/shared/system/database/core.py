import os
import sqlite3
from contextlib import contextmanager
from typing import Optional

from src.shared.system.logging import Logger


class DatabaseCore:
    """
    SQLite connection manager for the ledger.

    Every operation opens and closes its own connection, so repositories are
    safe to call from ``asyncio.to_thread`` workers. WAL lets the CLI read
    while a pipeline writes.
    """

    def __init__(self, db_path: Optional[str] = None, busy_timeout: float = 10.0):
        if db_path is None:
            from config.settings import Settings
            db_path = Settings.LEDGER_DB_PATH
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
        self._enable_wal()

    def _enable_wal(self):
        try:
            with self.cursor(commit=True) as c:
                c.execute("PRAGMA journal_mode=WAL;")
                c.execute("PRAGMA synchronous=NORMAL;")
        except sqlite3.Error as e:
            Logger.warning(f"[DB] WAL unavailable for {self.db_path}: {e}")

    def get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def cursor(self, commit=False):
        """Yield a cursor; commit on success when asked, roll back on error."""
        conn = self.get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            if commit:
                conn.commit()
        except Exception as e:
            if commit:
                conn.rollback()
            Logger.error(f"[DB] {type(e).__name__}: {e}")
            raise
        finally:
            conn.close()
