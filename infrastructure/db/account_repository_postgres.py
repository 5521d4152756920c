from __future__ import annotations

from typing import Dict, Optional

from psycopg2 import errors as pg_errors
from psycopg2.extras import Json
from psycopg2.pool import ThreadedConnectionPool

from domain.errors import AccountNotFoundError, DuplicateAccountError
from domain.models import LinkedAccount, ProgressValue
from domain.repositories import AccountRepository, AccountStorage

_COLUMNS = "token, discord_id, beta_tester, progress"


class PostgresAccountRepository(AccountRepository):
    """
    Postgres-backed implementation of `AccountRepository`.

    Wraps one pooled connection; `close()` hands it back to the pool.
    Progress attributes live in a JSONB column.
    """

    def __init__(self, pool: ThreadedConnectionPool, conn) -> None:
        self._pool = pool
        self._conn = conn

    @staticmethod
    def _to_domain(row: tuple) -> LinkedAccount:
        return LinkedAccount(
            token=row[0],
            discord_id=int(row[1]),
            beta_tester=bool(row[2]),
            progress=dict(row[3] or {}),
        )

    def _fetch_one(self, where: str, value) -> Optional[LinkedAccount]:
        with self._conn:
            with self._conn.cursor() as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM linked_accounts WHERE {where} = %s",
                    (value,),
                )
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
                with self._conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO linked_accounts (token, discord_id, beta_tester, progress)
                        VALUES (%s, %s, %s, %s)
                        RETURNING {_COLUMNS}
                        """,
                        (token, discord_id, beta_tester, Json(progress)),
                    )
                    row = cur.fetchone()
        except pg_errors.UniqueViolation as exc:
            raise DuplicateAccountError(str(exc)) from exc
        return self._to_domain(row)

    def update(
        self,
        token: str,
        beta_tester: bool,
        progress: Dict[str, ProgressValue],
    ) -> LinkedAccount:
        with self._conn:
            with self._conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE linked_accounts
                    SET beta_tester = %s, progress = %s
                    WHERE token = %s
                    RETURNING {_COLUMNS}
                    """,
                    (beta_tester, Json(progress), token),
                )
                row = cur.fetchone()
        if not row:
            raise AccountNotFoundError(f"no linked account for token {token}")
        return self._to_domain(row)

    def close(self) -> None:
        self._pool.putconn(self._conn)


class PostgresAccountStorage(AccountStorage):
    """
    Connection pool over the `linked_accounts` table.

    Schema (minimal):
      - token TEXT PRIMARY KEY
      - discord_id BIGINT UNIQUE
      - beta_tester BOOLEAN
      - progress JSONB
    """

    def __init__(self, dsn: str, min_connections: int = 1, max_connections: int = 10) -> None:
        self._pool = ThreadedConnectionPool(min_connections, max_connections, dsn=dsn)
        self._ensure_table()

    def _ensure_table(self) -> None:
        conn = self._pool.getconn()
        try:
            with conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        CREATE TABLE IF NOT EXISTS linked_accounts (
                            token TEXT PRIMARY KEY,
                            discord_id BIGINT NOT NULL UNIQUE,
                            beta_tester BOOLEAN NOT NULL DEFAULT FALSE,
                            progress JSONB NOT NULL DEFAULT '{}'::jsonb
                        )
                        """
                    )
        finally:
            self._pool.putconn(conn)

    def acquire(self) -> PostgresAccountRepository:
        return PostgresAccountRepository(self._pool, self._pool.getconn())

    def close(self) -> None:
        self._pool.closeall()
