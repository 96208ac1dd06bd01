from typing import List, Optional, Tuple

from src.shared.system.database.core import DatabaseCore


class BaseRepository:
    """
    Shared plumbing for ledger repositories.
    Subclasses list their DDL in ``SCHEMA``; ``init_table`` applies it in one transaction.
    """

    SCHEMA: Tuple[str, ...] = ()

    def __init__(self, db: DatabaseCore):
        self.db = db

    def init_table(self):
        if not self.SCHEMA:
            raise NotImplementedError(f"{type(self).__name__} defines no SCHEMA")
        with self.db.cursor(commit=True) as c:
            for statement in self.SCHEMA:
                c.execute(statement)

    def _execute(self, query: str, params: tuple = (), commit: bool = False) -> int:
        """Run a statement and return the affected row count."""
        with self.db.cursor(commit=commit) as c:
            c.execute(query, params)
            return c.rowcount

    def _fetchone(self, query: str, params: tuple = ()) -> Optional[dict]:
        with self.db.cursor() as c:
            c.execute(query, params)
            row = c.fetchone()
            return dict(row) if row else None

    def _fetchall(self, query: str, params: tuple = ()) -> List[dict]:
        with self.db.cursor() as c:
            c.execute(query, params)
            return [dict(row) for row in c.fetchall()]
