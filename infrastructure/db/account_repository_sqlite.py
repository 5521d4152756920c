from __future__ import annotations

import json
import sqlite3
from typing import Dict, Optional

from domain.errors import AccountNotFoundError, DuplicateAccountError
from domain.models import LinkedAccount, ProgressValue
from domain.repositories import AccountRepository, AccountStorage

_COLUMNS = "token, discord_id, beta_tester, progress"


class SqliteAccountRepository(AccountRepository):
    """
    SQLite-backed implementation of `AccountRepository`.

    Bound to a single connection handed out by `SqliteAccountStorage`.
    Progress attributes are stored as a JSON document.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @staticmethod
    def _to_domain(row: sqlite3.Row) -> LinkedAccount:
        return LinkedAccount(
            token=row[0],
            discord_id=int(row[1]),
            beta_tester=bool(row[2]),
            progress=json.loads(row[3]) if row[3] else {},
        )

    def _fetch_one(self, where: str, value) -> Optional[LinkedAccount]:
        cur = self._conn.cursor()
        cur.execute(f"SELECT {_COLUMNS} FROM linked_accounts WHERE {where} = ?", (value,))
        row = cur.fetchone()
        if not row:
            return None
        return self._to_domain(row)

    def fetch_by_token(self, token: str) -> Optional[LinkedAccount]:
        return self._fetch_one("token", token)

    def fetch_by_external_id(self, discord_id: int) -> Optional[LinkedAccount]:
        return self._fetch_one("discord_id", discord_id)

    def create(
        self,
        token: str,
        discord_id: int,
        beta_tester: bool,
        progress: Dict[str, ProgressValue],
    ) -> LinkedAccount:
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO linked_accounts (token, discord_id, beta_tester, progress)
                    VALUES (?, ?, ?, ?)
                    """,
                    (token, discord_id, int(beta_tester), json.dumps(progress)),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateAccountError(str(exc)) from exc

        return LinkedAccount(
            token=token,
            discord_id=discord_id,
            beta_tester=beta_tester,
            progress=dict(progress),
        )

    def update(
        self,
        token: str,
        beta_tester: bool,
        progress: Dict[str, ProgressValue],
    ) -> LinkedAccount:
        with self._conn:
            cur = self._conn.execute(
                """
                UPDATE linked_accounts
                SET beta_tester = ?, progress = ?
                WHERE token = ?
                """,
                (int(beta_tester), json.dumps(progress), token),
            )
            if cur.rowcount == 0:
                raise AccountNotFoundError(f"no linked account for token {token}")

        updated = self.fetch_by_token(token)
        if updated is None:
            raise AccountNotFoundError(f"no linked account for token {token}")
        return updated

    def close(self) -> None:
        self._conn.close()


class SqliteAccountStorage(AccountStorage):
    """
    Owns the `linked_accounts` table and opens one connection per request.

    It is self-initialising: the table is created if needed.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_table()

    def _get_connection(self) -> sqlite3.Connection:
        # Requests hop between worker threads via asyncio.to_thread.
        return sqlite3.connect(self._db_path, check_same_thread=False)

    def _ensure_table(self) -> None:
        conn = self._get_connection()
        try:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS linked_accounts (
                        token TEXT PRIMARY KEY,
                        discord_id INTEGER NOT NULL UNIQUE,
                        beta_tester INTEGER NOT NULL DEFAULT 0,
                        progress TEXT NOT NULL DEFAULT '{}'
                    )
                    """
                )
        finally:
            conn.close()

    def acquire(self) -> SqliteAccountRepository:
        return SqliteAccountRepository(self._get_connection())
