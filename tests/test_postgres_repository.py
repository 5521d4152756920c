import unittest
from unittest import mock

from psycopg2 import errors as pg_errors
from psycopg2.extras import Json

from domain.errors import AccountNotFoundError, DuplicateAccountError
from domain.models import LinkedAccount
from infrastructure.db.account_repository_postgres import (
    PostgresAccountRepository,
    PostgresAccountStorage,
)


def make_connection(cursor):
    conn = mock.MagicMock(name="connection")
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn


class PostgresAccountRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.cursor = mock.MagicMock(name="cursor")
        self.conn = make_connection(self.cursor)
        self.pool = mock.MagicMock(name="pool")
        self.repo = PostgresAccountRepository(self.pool, self.conn)

    def test_fetch_maps_row_to_account(self):
        self.cursor.fetchone.return_value = ("a" * 40, 1001, True, {"level": 3})

        account = self.repo.fetch_by_external_id(1001)

        self.assertEqual(account, LinkedAccount("a" * 40, 1001, True, {"level": 3}))
        query, params = self.cursor.execute.call_args.args
        self.assertIn("WHERE discord_id = %s", query)
        self.assertEqual(params, (1001,))

    def test_fetch_miss_is_none(self):
        self.cursor.fetchone.return_value = None
        self.assertIsNone(self.repo.fetch_by_token("missing"))

    def test_create_returns_inserted_row(self):
        self.cursor.fetchone.return_value = ("a" * 40, 1001, False, {"wins": 2})

        created = self.repo.create("a" * 40, 1001, False, {"wins": 2})

        self.assertEqual(created, LinkedAccount("a" * 40, 1001, False, {"wins": 2}))
        params = self.cursor.execute.call_args.args[1]
        self.assertIsInstance(params[3], Json)

    def test_unique_violation_becomes_duplicate_account(self):
        self.cursor.execute.side_effect = pg_errors.UniqueViolation(
            "duplicate key value violates unique constraint"
        )

        with self.assertRaises(DuplicateAccountError) as caught:
            self.repo.create("a" * 40, 1001, False, {})

        self.assertIsInstance(caught.exception.__cause__, pg_errors.UniqueViolation)

    def test_update_without_returned_row_is_not_found(self):
        self.cursor.fetchone.return_value = None

        with self.assertRaises(AccountNotFoundError):
            self.repo.update("missing", True, {"wins": 1})

    def test_update_returns_post_update_row(self):
        self.cursor.fetchone.return_value = ("a" * 40, 1001, True, {"wins": 5})

        updated = self.repo.update("a" * 40, True, {"wins": 5})

        self.assertEqual(updated, LinkedAccount("a" * 40, 1001, True, {"wins": 5}))

    def test_close_returns_connection_to_pool(self):
        self.repo.close()
        self.pool.putconn.assert_called_once_with(self.conn)


class PostgresAccountStorageTests(unittest.TestCase):
    def setUp(self) -> None:
        patcher = mock.patch("infrastructure.db.account_repository_postgres.ThreadedConnectionPool")
        self.pool_class = patcher.start()
        self.addCleanup(patcher.stop)
        self.pool = self.pool_class.return_value
        self.conn = make_connection(mock.MagicMock(name="cursor"))
        self.pool.getconn.return_value = self.conn

    def test_creates_table_and_releases_connection(self):
        PostgresAccountStorage("postgresql://localhost/linking")

        self.pool_class.assert_called_once_with(1, 10, dsn="postgresql://localhost/linking")
        ddl = self.conn.cursor.return_value.__enter__.return_value.execute.call_args.args[0]
        self.assertIn("CREATE TABLE IF NOT EXISTS linked_accounts", ddl)
        self.pool.putconn.assert_called_once_with(self.conn)

    def test_acquired_handle_goes_back_to_pool(self):
        storage = PostgresAccountStorage("postgresql://localhost/linking")
        self.pool.putconn.reset_mock()

        repo = storage.acquire()
        repo.close()

        self.pool.putconn.assert_called_once_with(self.conn)


if __name__ == "__main__":
    unittest.main()
