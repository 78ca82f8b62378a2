from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol

import psycopg2
from psycopg2 import sql
from psycopg2.extras import Json, execute_values
from psycopg2.pool import ThreadedConnectionPool

from ..errors import PersistenceError
from ..models.config_models import DatabaseConfig, RosterTableConfig
from ..models.roster import KitRef, RosterEntry, canonical_kit_name, normalize_roll_number

"""Roster stores.

The roster is owned by the store; the engine only reads snapshots and writes merged
entries back. Two implementations:

- PostgresRosterStore: students table with JSONB fee/kit columns, one transaction per
  write, connections from a psycopg2 ThreadedConnectionPool so applier threads can
  write concurrently.
- InMemoryRosterStore: dict-backed, JSON file load/save. Used by the CLI's offline mode
  and by the tests.
"""

__all__ = [
    "RosterStore",
    "InMemoryRosterStore",
    "PostgresRosterStore",
    "resolve_dsn",
]

logger = logging.getLogger(__name__)


class RosterStore(Protocol):
    def lookup(self, roll_number: str) -> RosterEntry | None: ...

    def snapshot(self, roll_numbers: Iterable[str]) -> dict[str, RosterEntry]: ...

    def persist(self, entry: RosterEntry) -> None: ...

    def register_kits(self, names: Sequence[str]) -> list[KitRef]: ...


class InMemoryRosterStore:
    """Thread-safe dict-backed roster."""

    def __init__(self, entries: Iterable[RosterEntry] = (), kits: Iterable[KitRef] = ()) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, RosterEntry] = {e.roll_number: e for e in entries}
        self._kits: dict[str, KitRef] = {canonical_kit_name(k.name): k for k in kits}
        self.write_count = 0

    def lookup(self, roll_number: str) -> RosterEntry | None:
        with self._lock:
            return self._entries.get(normalize_roll_number(roll_number))

    def snapshot(self, roll_numbers: Iterable[str]) -> dict[str, RosterEntry]:
        wanted = {normalize_roll_number(r) for r in roll_numbers}
        with self._lock:
            return {r: self._entries[r] for r in wanted if r in self._entries}

    def persist(self, entry: RosterEntry) -> None:
        with self._lock:
            if entry.roll_number not in self._entries:
                raise PersistenceError(f"roll number {entry.roll_number} is not on the roster")
            self._entries[entry.roll_number] = entry
            self.write_count += 1

    def register_kits(self, names: Sequence[str]) -> list[KitRef]:
        """Create unknown kits; return the ones that already existed, in input order."""
        existed: list[KitRef] = []
        with self._lock:
            for raw in names:
                name = canonical_kit_name(raw)
                if name in self._kits:
                    if self._kits[name] not in existed:
                        existed.append(self._kits[name])
                else:
                    self._kits[name] = KitRef(id=str(len(self._kits) + 1), name=name)
        return existed

    def entries(self) -> dict[str, RosterEntry]:
        with self._lock:
            return dict(self._entries)

    def kits(self) -> list[KitRef]:
        with self._lock:
            return list(self._kits.values())

    @classmethod
    def load_json(cls, path: Path) -> InMemoryRosterStore:
        """Load ``{"students": [...], "kits": [{"id", "name"}]}``."""
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"cannot load roster file {path}: {e}") from e
        entries = [RosterEntry.from_dict(s) for s in data.get("students", [])]
        kits = [KitRef(id=str(k["id"]), name=k["name"]) for k in data.get("kits", [])]
        return cls(entries, kits)

    def save_json(self, path: Path) -> None:
        with self._lock:
            data = {
                "students": [e.to_dict() for e in self._entries.values()],
                "kits": [k.to_dict() for k in self._kits.values()],
            }
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Resolve the connection string.

    Priority:
        1. DATABASE_URL / PGDSN environment variables (full DSN)
        2. config `database.dsn`
        3. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE, falling back per key to
           the config `database` section
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


class PostgresRosterStore:
    """Roster kept in PostgreSQL.

    Roll numbers are compared on the normalized SQL expression, so rows stored as
    ' r001' still match 'R001'.
    """

    def __init__(self, pool: Any, tables: RosterTableConfig | None = None) -> None:
        self._pool = pool
        self._tables = tables or RosterTableConfig()
        t = self._tables
        self._roll_expr = sql.SQL(r"upper(regexp_replace(btrim({}::text), '\s+', ' ', 'g'))").format(
            sql.Identifier(t.roll_column)
        )
        self._select = sql.SQL("SELECT {roll}, {name}, {fee}, {kit} FROM {table}").format(
            roll=sql.Identifier(t.roll_column),
            name=sql.Identifier(t.name_column),
            fee=sql.Identifier(t.fee_column),
            kit=sql.Identifier(t.kit_column),
            table=sql.Identifier(t.table),
        )

    @classmethod
    def connect(
        cls,
        db_cfg: DatabaseConfig,
        tables: RosterTableConfig | None = None,
        max_connections: int = 4,
    ) -> PostgresRosterStore:
        try:
            pool = ThreadedConnectionPool(1, max(1, max_connections), resolve_dsn(db_cfg))
        except psycopg2.Error as e:
            raise PersistenceError(f"cannot connect to roster database: {e}") from e
        return cls(pool, tables)

    def close(self) -> None:
        self._pool.closeall()

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        try:
            conn = self._pool.getconn()
        except psycopg2.Error as e:
            raise PersistenceError(f"no roster database connection available: {e}") from e
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    @staticmethod
    def _entry(row: Sequence[Any]) -> RosterEntry:
        roll, name, fee, kit = row
        return RosterEntry.from_dict(
            {"roll_number": roll, "name": name, "fee_record": fee, "kit_record": kit}
        )

    def _query(self, where: sql.Composable, params: tuple[Any, ...]) -> list[tuple[Any, ...]]:
        query = sql.SQL("{} WHERE {} = {}").format(self._select, self._roll_expr, where)
        with self._connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    rows = cur.fetchall()
                conn.rollback()  # read-only; end the implicit transaction
            except psycopg2.Error as e:
                conn.rollback()
                raise PersistenceError(f"roster read failed: {e}") from e
        return rows

    def lookup(self, roll_number: str) -> RosterEntry | None:
        rows = self._query(sql.SQL("%s"), (normalize_roll_number(roll_number),))
        return self._entry(rows[0]) if rows else None

    def snapshot(self, roll_numbers: Iterable[str]) -> dict[str, RosterEntry]:
        wanted = sorted({normalize_roll_number(r) for r in roll_numbers})
        if not wanted:
            return {}
        rows = self._query(sql.SQL("ANY(%s)"), (wanted,))
        entries = (self._entry(r) for r in rows)
        return {e.roll_number: e for e in entries}

    def persist(self, entry: RosterEntry) -> None:
        t = self._tables
        query = sql.SQL("UPDATE {table} SET {fee} = %s, {kit} = %s WHERE {roll} = %s").format(
            table=sql.Identifier(t.table),
            fee=sql.Identifier(t.fee_column),
            kit=sql.Identifier(t.kit_column),
            roll=self._roll_expr,
        )
        doc = entry.to_dict()
        params = (Json(doc["fee_record"]), Json(doc["kit_record"]), entry.roll_number)
        with self._connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    updated = cur.rowcount
                if updated == 0:
                    conn.rollback()
                    raise PersistenceError(f"roll number {entry.roll_number} is not on the roster")
                conn.commit()
            except psycopg2.Error as e:
                conn.rollback()
                raise PersistenceError(f"roster write failed for {entry.roll_number}: {e}") from e

    def register_kits(self, names: Sequence[str]) -> list[KitRef]:
        """Insert unknown kits into the catalog; return those that already existed."""
        wanted: list[str] = []
        for raw in names:
            name = canonical_kit_name(raw)
            if name not in wanted:
                wanted.append(name)
        if not wanted:
            return []
        kits_table = sql.Identifier(self._tables.kits_table)
        select = sql.SQL("SELECT id, name FROM {} WHERE lower(name) = ANY(%s)").format(kits_table)
        insert = sql.SQL("INSERT INTO {} (name) VALUES %s ON CONFLICT DO NOTHING").format(kits_table)
        with self._connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(select, (wanted,))
                    found = {canonical_kit_name(n): KitRef(id=str(i), name=n) for i, n in cur.fetchall()}
                    missing = [(n,) for n in wanted if n not in found]
                    if missing:
                        execute_values(cur, insert, missing)
                conn.commit()
            except psycopg2.Error as e:
                conn.rollback()
                raise PersistenceError(f"kit catalog update failed: {e}") from e
        logger.debug("kit catalog existed=%d created=%d", len(found), len(missing))
        return [found[n] for n in wanted if n in found]
