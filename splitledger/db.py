from contextlib import contextmanager
from typing import Any, Dict, Iterable, Optional

import mysql.connector
from mysql.connector import pooling

from .config import config

SCHEMA = """
CREATE TABLE IF NOT EXISTS ledger_groups (
    id VARCHAR(64) PRIMARY KEY,
    payload LONGTEXT NOT NULL,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP
)
"""

# Errors worth another attempt; anything else is a bug or bad data.
TRANSIENT_ERRORS = (
    mysql.connector.errors.OperationalError,
    mysql.connector.errors.InterfaceError,
    mysql.connector.errors.PoolError,
)


class Database:
    def __init__(self, settings=config) -> None:
        self.settings = settings
        self._pool: Optional[pooling.MySQLConnectionPool] = None

    @property
    def pool(self) -> pooling.MySQLConnectionPool:
        # Created on first use so importing the app never needs a server.
        if self._pool is None:
            self._pool = pooling.MySQLConnectionPool(
                pool_name="splitledger_pool",
                pool_size=self.settings.DB_POOL_SIZE,
                host=self.settings.DB_HOST,
                port=self.settings.DB_PORT,
                user=self.settings.DB_USER,
                password=self.settings.DB_PASSWORD,
                database=self.settings.DB_NAME,
                auth_plugin="mysql_native_password",
            )
        return self._pool

    @contextmanager
    def connection(self):
        conn = self.pool.get_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def cursor(self, dictionary: bool = True):
        with self.connection() as conn:
            cursor = conn.cursor(dictionary=dictionary)
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def fetch_one(self, query: str, params: Optional[Iterable[Any]] = None) -> Optional[Dict[str, Any]]:
        with self.cursor() as cursor:
            cursor.execute(query, params or ())
            return cursor.fetchone()

    def fetch_all(self, query: str, params: Optional[Iterable[Any]] = None) -> Iterable[Dict[str, Any]]:
        with self.cursor() as cursor:
            cursor.execute(query, params or ())
            return cursor.fetchall()

    def execute(self, query: str, params: Optional[Iterable[Any]] = None) -> int:
        with self.cursor() as cursor:
            cursor.execute(query, params or ())
            return cursor.rowcount

    def ensure_schema(self) -> None:
        self.execute(SCHEMA)
