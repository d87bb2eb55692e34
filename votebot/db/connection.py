"""Opening, bootstrapping and statement preparation for the SQLite store.

The database file is opened read-write first; only when that fails is a new
file created. The schema is created once, table by table, and the gateway's
statements are compiled against it before any caller is served.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Tuple

import aiosqlite

MEMORY_PATH = ":memory:"
STATEMENT_CACHE_SIZE = 128

CREATE_TABLE_USERS_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT NOT NULL PRIMARY KEY,
    username TEXT NOT NULL
)
"""

CREATE_TABLE_MEDIA_PLAYS_SQL = """
CREATE TABLE IF NOT EXISTS media_plays (
    play_id INTEGER NOT NULL PRIMARY KEY,
    user_id TEXT NOT NULL,
    video_id TEXT NOT NULL,
    title TEXT NOT NULL,
    duration INTEGER NOT NULL,
    played_on DATETIME NOT NULL
)
"""

CREATE_TABLE_MEDIA_VOTES_SQL = """
CREATE TABLE IF NOT EXISTS media_votes (
    user_id TEXT NOT NULL,
    play_id TEXT NOT NULL,
    vote TINYINT NOT NULL CHECK(vote IN (1, -1)),
    voted_on DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (user_id, play_id),
    FOREIGN KEY (user_id) REFERENCES users(id),
    FOREIGN KEY (play_id) REFERENCES media_plays(play_id)
)
"""

# Order matters: media_votes references both of the tables before it.
SCHEMA = (
    ("users", CREATE_TABLE_USERS_SQL),
    ("media_plays", CREATE_TABLE_MEDIA_PLAYS_SQL),
    ("media_votes", CREATE_TABLE_MEDIA_VOTES_SQL),
)

logger = logging.getLogger(__name__)


def _database_uri(path: str, mode: str) -> str:
    return f"{Path(path).absolute().as_uri()}?mode={mode}"


async def _connect(database: str, *, uri: bool, timeout: float) -> aiosqlite.Connection:
    conn = await aiosqlite.connect(
        database,
        uri=uri,
        timeout=timeout,
        cached_statements=STATEMENT_CACHE_SIZE,
    )
    conn.row_factory = aiosqlite.Row
    try:
        await conn.execute("PRAGMA foreign_keys = ON;")
    except Exception:
        await conn.close()
        raise
    return conn


async def open_database(path: str, timeout: float = 30.0) -> Tuple[aiosqlite.Connection, bool]:
    """Open the database at ``path``, creating the file if it cannot be opened.

    Returns the connection and whether a new store was created.
    """
    if path == MEMORY_PATH:
        logger.info("Opening in-memory database")
        return await _connect(MEMORY_PATH, uri=False, timeout=timeout), True

    try:
        conn = await _connect(_database_uri(path, "rw"), uri=True, timeout=timeout)
        logger.info("Opened existing database file %s", path)
        return conn, False
    except aiosqlite.Error as e:
        logger.info("Could not open database file %s (%s); creating a new one", path, e)

    conn = await _connect(_database_uri(path, "rwc"), uri=True, timeout=timeout)
    logger.info("Created database file %s", path)
    return conn, True


async def _existing_tables(conn: aiosqlite.Connection) -> set:
    cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
    rows = await cursor.fetchall()
    await cursor.close()
    return {row[0] for row in rows}


async def ensure_schema(conn: aiosqlite.Connection, created: bool) -> None:
    """Create the tables if the store is new or any table is missing."""
    if not created:
        existing = await _existing_tables(conn)
        missing = [name for name, _ in SCHEMA if name not in existing]
        if not missing:
            logger.info("Database schema is up-to-date")
            return
        logger.info("Database is missing tables %s", ", ".join(missing))

    logger.info("Creating schema")
    for name, ddl in SCHEMA:
        await conn.execute(ddl)
        logger.debug("Created table %s", name)
    await conn.commit()
    logger.info("Schema created")


async def prepare_statements(conn: aiosqlite.Connection, statements: Iterable[str]) -> None:
    """Compile every statement once against the schema.

    ``EXPLAIN`` compiles without executing, so a statement that does not fit
    the schema fails here rather than on its first use. Later executions are
    served from the connection's statement cache.
    """
    for sql in statements:
        cursor = await conn.execute(f"EXPLAIN {sql}", (None,) * sql.count("?"))
        await cursor.close()
    logger.debug("Prepared statements")
