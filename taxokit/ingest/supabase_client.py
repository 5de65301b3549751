"""
Supabase Postgres store implementation.

Talks to the database over a direct Postgres connection (not the REST API),
so each chunk is a single INSERT ... ON CONFLICT ... RETURNING round trip.

Connection string: Supabase Dashboard → Project Settings → Database,
"Session mode", e.g. postgresql://postgres:[password]@[host]:5432/postgres
"""

import logging
import os
from typing import Optional, Dict, Any, List

from psycopg2 import sql
from psycopg2.extras import RealDictCursor, Json, execute_values
from psycopg2.pool import ThreadedConnectionPool

from .batcher import conflict_columns
from .store import Store

logger = logging.getLogger(__name__)

# Connection part -> environment variable used when no URL is configured
CONNECTION_ENV = {
    "host": "SUPABASE_DB_HOST",
    "port": "SUPABASE_DB_PORT",
    "database": "SUPABASE_DB_NAME",
    "user": "SUPABASE_DB_USER",
    "password": "SUPABASE_DB_PASSWORD",
}


def resolve_db_url(db_url: Optional[str] = None, **parts: Any) -> str:
    """
    Work out the connection string.

    Order: the db_url argument, SUPABASE_DB_URL, then a URL assembled from
    the host/port/database/user/password arguments, each falling back to
    its SUPABASE_DB_* variable. Port defaults to 5432.

    Raises:
        ValueError: If no URL is configured and a connection part is missing
    """
    url = db_url or os.getenv("SUPABASE_DB_URL")
    if url:
        return url

    resolved = {name: parts.get(name) or os.getenv(env) for name, env in CONNECTION_ENV.items()}
    resolved["port"] = resolved["port"] or 5432
    missing = [CONNECTION_ENV[name] for name, value in resolved.items() if not value]
    if missing:
        raise ValueError(
            f"No SUPABASE_DB_URL configured and missing connection settings: {', '.join(missing)}"
        )
    return "postgresql://{user}:{password}@{host}:{port}/{database}".format(**resolved)


def _adapt(value: Any) -> Any:
    # dicts go to jsonb columns; lists stay Python lists (Postgres arrays)
    if isinstance(value, dict):
        return Json(value)
    return value


class SupabaseStore(Store):
    """
    Supabase Postgres store.

    Every call checks a connection out of a thread-safe pool, runs in its
    own transaction and commits before returning, so chunks written by
    concurrent batcher workers are independent of each other.
    """

    def __init__(
        self,
        db_url: Optional[str] = None,
        minconn: int = 1,
        maxconn: int = 10,
        **parts: Any
    ):
        """
        Initialize the store. The pool is created lazily on first use.

        Args:
            db_url: Full database URL; see resolve_db_url for the fallbacks
            minconn: Minimum connections in pool
            maxconn: Maximum connections in pool (keep >= batcher max_workers)
            **parts: host, port, database, user, password

        Raises:
            ValueError: If no connection string can be built
        """
        self.db_url = resolve_db_url(db_url, **parts)
        self.minconn = minconn
        self.maxconn = maxconn
        self._pool: Optional[ThreadedConnectionPool] = None

    def _get_connection_pool(self) -> ThreadedConnectionPool:
        """Get or create connection pool."""
        if self._pool is None:
            self._pool = ThreadedConnectionPool(
                self.minconn,
                self.maxconn,
                dsn=self.db_url
            )
        return self._pool

    def _run(self, statement, params=None, fetch: bool = True, many: Optional[List[tuple]] = None):
        """Execute one statement in its own transaction and return fetched rows."""
        pool = self._get_connection_pool()
        conn = pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                if many is not None:
                    rows = execute_values(cursor, statement, many, page_size=len(many), fetch=fetch)
                else:
                    cursor.execute(statement, params)
                    rows = cursor.fetchall() if fetch else []
            conn.commit()
            return [dict(r) for r in rows or []]
        except Exception as e:
            conn.rollback()
            logger.error(f"Statement failed: {e}", exc_info=True)
            raise
        finally:
            pool.putconn(conn)

    def select(
        self,
        table: str,
        key: Optional[str] = None,
        values: Optional[List[Any]] = None,
        columns: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        if key is not None and values is not None and not values:
            return []

        fields = (
            sql.SQL(", ").join(sql.Identifier(c) for c in columns)
            if columns else sql.SQL("*")
        )
        statement = sql.SQL("SELECT {fields} FROM {table}").format(
            fields=fields, table=sql.Identifier(table)
        )
        params = None
        if key is not None and values is not None:
            statement = statement + sql.SQL(" WHERE {key} = ANY(%s)").format(key=sql.Identifier(key))
            params = (list(values),)

        return self._run(statement, params)

    def upsert(
        self,
        table: str,
        rows: List[Dict[str, Any]],
        on_conflict: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        INSERT ... ON CONFLICT DO UPDATE ... RETURNING *.

        Column order is the union of row keys in first-seen order; a key
        missing from a row is written as NULL.
        """
        if not rows:
            return []

        columns: List[str] = []
        for row in rows:
            for key in row.keys():
                if key not in columns:
                    columns.append(key)

        statement = sql.SQL("INSERT INTO {table} ({columns}) VALUES %s").format(
            table=sql.Identifier(table),
            columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        )

        keys = conflict_columns(on_conflict)
        if keys:
            updates = [c for c in columns if c not in keys] or keys[:1]
            statement = statement + sql.SQL(" ON CONFLICT ({keys}) DO UPDATE SET {updates}").format(
                keys=sql.SQL(", ").join(sql.Identifier(k) for k in keys),
                updates=sql.SQL(", ").join(
                    sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(c)) for c in updates
                ),
            )
        statement = statement + sql.SQL(" RETURNING *")

        values = [tuple(_adapt(row.get(c)) for c in columns) for row in rows]
        return self._run(statement, many=values)

    def delete(self, table: str, ids: List[Any]) -> None:
        if not ids:
            return
        statement = sql.SQL("DELETE FROM {table} WHERE id = ANY(%s)").format(
            table=sql.Identifier(table)
        )
        self._run(statement, (list(ids),), fetch=False)

    def close(self) -> None:
        """Close every pooled connection."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
