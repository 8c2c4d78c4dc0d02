"""Document collections on PostgreSQL JSONB."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import connection as PGConnection
from psycopg2.extras import Json

from extracto.storage.collection import CollectionSchema, Document, Query, StoreUnavailableError, Update

LOGGER = logging.getLogger(__name__)

_CONNECTION_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError)


def _path(path: str) -> sql.Composable:
    """``doc #>> '{a,b}'``: text value at a dotted path."""
    return sql.SQL("(doc #>> {})").format(sql.Literal("{" + path.replace(".", ",") + "}"))


def _numeric(path: str) -> sql.Composable:
    return sql.SQL("({}::numeric)").format(_path(path))


def _index_name(table: str, suffix: str) -> sql.Identifier:
    return sql.Identifier(f"idx_{table}_{suffix.replace('.', '_')}")


@contextmanager
def pg_connection(dsn: str) -> Iterator[PGConnection]:
    """One transaction on a fresh connection, closed afterwards.

    Connection-level failures surface as :class:`StoreUnavailableError`.
    """
    try:
        conn = psycopg2.connect(dsn)
    except _CONNECTION_ERRORS as exc:
        raise StoreUnavailableError(f"Cannot connect to PostgreSQL: {exc}") from exc
    try:
        with conn:
            yield conn
    except _CONNECTION_ERRORS as exc:
        raise StoreUnavailableError(f"PostgreSQL connection lost: {exc}") from exc
    finally:
        conn.close()


class PostgresCollection:
    """One table per collection: ``id TEXT PRIMARY KEY, doc JSONB``.

    ``find_and_modify`` takes a transaction-scoped advisory lock on the key,
    so the read, the update function and the write run under mutual exclusion
    even when the row does not exist yet.
    """

    def __init__(self, dsn: str, schema: CollectionSchema) -> None:
        self.dsn = dsn
        self.schema = schema
        self._table = sql.Identifier(schema.name)

    def _connection(self):
        return pg_connection(self.dsn)

    def ensure_indexes(self) -> None:
        name = self.schema.name
        statements = [
            sql.SQL(
                """
                CREATE TABLE IF NOT EXISTS {} (
                    id TEXT PRIMARY KEY,
                    doc JSONB NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
                """
            ).format(self._table)
        ]
        for path in self.schema.index_paths:
            statements.append(
                sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} ({})").format(
                    _index_name(name, path), self._table, _path(path)
                )
            )
        for path in self.schema.numeric_paths:
            statements.append(
                sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} ({})").format(
                    _index_name(name, f"{path}_num"), self._table, _numeric(path)
                )
            )
        if self.schema.text_paths:
            statements.append(
                sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} USING gin ({})").format(
                    _index_name(name, "text"), self._table, self._tsvector()
                )
            )
        if self.schema.geo_path:
            lat, lng = _path(f"{self.schema.geo_path}.lat"), _path(f"{self.schema.geo_path}.lng")
            statements.append(
                sql.SQL(
                    "CREATE INDEX IF NOT EXISTS {} ON {} USING gist (point({}::float8, {}::float8)) "
                    "WHERE {} IS NOT NULL AND {} IS NOT NULL"
                ).format(_index_name(name, "geo"), self._table, lng, lat, lat, lng)
            )

        with self._connection() as conn:
            with conn.cursor() as cur:
                for statement in statements:
                    cur.execute(statement)
        LOGGER.info("Ensured %s table and indexes exist", name)

    def _tsvector(self) -> sql.Composable:
        parts = sql.SQL(" || ' ' || ").join(
            sql.SQL("coalesce({}, '')").format(_path(path)) for path in self.schema.text_paths
        )
        return sql.SQL("to_tsvector('simple', {})").format(parts)

    def find_one(self, key: str) -> Optional[Document]:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql.SQL("SELECT doc FROM {} WHERE id = %s").format(self._table), (key,))
                row = cur.fetchone()
        return row[0] if row else None

    def find_and_modify(self, key: str, update: Update) -> Tuple[Optional[Document], Document]:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (f"{self.schema.name}:{key}",))
                cur.execute(sql.SQL("SELECT doc FROM {} WHERE id = %s").format(self._table), (key,))
                row = cur.fetchone()
                previous = row[0] if row else None
                document = update(previous)
                cur.execute(
                    sql.SQL(
                        """
                        INSERT INTO {} (id, doc, updated_at)
                        VALUES (%s, %s, NOW())
                        ON CONFLICT (id) DO UPDATE
                        SET doc = EXCLUDED.doc,
                            updated_at = NOW()
                        """
                    ).format(self._table),
                    (key, Json(document)),
                )
        return previous, document

    def _where(self, query: Query) -> Tuple[sql.Composable, list]:
        clauses: List[sql.Composable] = []
        params: list = []
        for path, value in query.equals.items():
            clauses.append(sql.SQL("{} = %s").format(_path(path)))
            params.append(str(value))
        for path in query.present:
            clauses.append(sql.SQL("{} IS NOT NULL").format(_path(path)))
        for path, bound in query.minimum.items():
            clauses.append(sql.SQL("{} >= %s").format(_numeric(path)))
            params.append(bound)
        for path, bound in query.maximum.items():
            clauses.append(sql.SQL("{} <= %s").format(_numeric(path)))
            params.append(bound)
        if query.text and self.schema.text_paths:
            clauses.append(sql.SQL("{} @@ plainto_tsquery('simple', %s)").format(self._tsvector()))
            params.append(query.text)
        if not clauses:
            return sql.SQL(""), params
        return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), params

    def find(self, query: Optional[Query] = None) -> List[Document]:
        query = query or Query()
        where, params = self._where(query)
        statement = sql.SQL("SELECT doc FROM {}").format(self._table) + where
        if query.order_by:
            statement += sql.SQL(" ORDER BY ({}::timestamptz) DESC NULLS LAST").format(_path(query.order_by))
        if query.limit is not None:
            statement += sql.SQL(" LIMIT %s")
            params.append(query.limit)
        if query.skip:
            statement += sql.SQL(" OFFSET %s")
            params.append(query.skip)

        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(statement, params)
                return [row[0] for row in cur.fetchall()]

    def count(self, query: Optional[Query] = None) -> int:
        where, params = self._where(query or Query())
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql.SQL("SELECT COUNT(*) FROM {}").format(self._table) + where, params)
                return cur.fetchone()[0]

    def group_count(
        self,
        path: str,
        query: Optional[Query] = None,
        limit: Optional[int] = None,
    ) -> List[Tuple[Optional[str], int]]:
        where, params = self._where(query or Query())
        statement = (
            sql.SQL("SELECT {} AS value, COUNT(*) AS count FROM {}").format(_path(path), self._table)
            + where
            + sql.SQL(" GROUP BY 1 ORDER BY 2 DESC, 1 ASC NULLS LAST")
        )
        if limit is not None:
            statement += sql.SQL(" LIMIT %s")
            params.append(limit)

        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(statement, params)
                return [(row[0], row[1]) for row in cur.fetchall()]
