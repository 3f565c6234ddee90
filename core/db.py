"""
core/db.py -- Engine construction and constraint-error helpers shared by the stores.

Both auth/store.py and world/store.py point at the same database (memberships
reference users), so they build their engines the same way here.

SQLite notes:
  check_same_thread=False -- the managers are called from worker threads.
  WAL journal mode -- readers do not block behind a writer.
  foreign_keys=ON -- SQLite ignores FOREIGN KEY clauses unless asked, per
      connection. Without it the WORLD_NOT_FOUND signal on insert never fires.
  Transactions -- pysqlite defers BEGIN until the first write statement, so
      a SELECT ahead of the write runs outside the transaction. The driver's
      own transaction handling is switched off and the engine emits BEGIN
      itself. Write transactions (write_engine) use BEGIN IMMEDIATE: the write
      lock is held from the first read, so a check and the write it guards
      cannot interleave with another writer.

Layer rule: core/ may not import from auth/ or world/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

# SQLSTATE codes (PostgreSQL) for the two constraint families we interpret.
_PG_UNIQUE_VIOLATION = "23505"
_PG_FOREIGN_KEY_VIOLATION = "23503"

# Execution option read by the "begin" listener.
SQLITE_BEGIN_OPTION = "sqlite_begin"
_SQLITE_BEGIN_STATEMENTS = {
    "DEFERRED": "BEGIN DEFERRED",
    "IMMEDIATE": "BEGIN IMMEDIATE",
}


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign-key enforcement on every new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. isolation_level=None stops pysqlite from
    issuing its own BEGIN; _emit_sqlite_begin takes over.
    """
    dbapi_conn.isolation_level = None
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _emit_sqlite_begin(conn) -> None:
    mode = conn.get_execution_options().get(SQLITE_BEGIN_OPTION, "DEFERRED")
    conn.exec_driver_sql(_SQLITE_BEGIN_STATEMENTS[mode])


def create_store_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
        event.listen(engine, "begin", _emit_sqlite_begin)
    return engine


def write_engine(engine: Engine) -> Engine:
    """Return a view of *engine* whose transactions take the write lock up front.

    Shares the pool and listeners with *engine*. On backends other than
    SQLite the option is ignored.
    """
    return engine.execution_options(**{SQLITE_BEGIN_OPTION: "IMMEDIATE"})


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sqlstate(exc: IntegrityError) -> str | None:
    orig = exc.orig
    # psycopg2 exposes pgcode, psycopg 3 exposes sqlstate.
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def is_unique_violation(exc: IntegrityError) -> bool:
    """Return True if *exc* came from a UNIQUE / primary-key constraint."""
    code = _sqlstate(exc)
    if code is not None:
        return code == _PG_UNIQUE_VIOLATION
    message = str(exc.orig)
    return "UNIQUE constraint failed" in message or "PRIMARY KEY" in message


def is_foreign_key_violation(exc: IntegrityError) -> bool:
    """Return True if *exc* came from a FOREIGN KEY constraint."""
    code = _sqlstate(exc)
    if code is not None:
        return code == _PG_FOREIGN_KEY_VIOLATION
    return "FOREIGN KEY constraint failed" in str(exc.orig)
