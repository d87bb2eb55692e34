"""Persistence gateway for plays, votes and users.

A gateway owns one aiosqlite connection for its whole lifetime. The database is
opened (or created and bootstrapped) exactly once, on first use, and every
operation joins that initialization before running its single statement.

Reads never raise for storage errors: they log and fall back to zero counts so
that chat commands showing statistics keep working. Writes log and re-raise.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional, Sequence

import aiosqlite

from .connection import ensure_schema, open_database, prepare_statements
from .models import MediaPlay, MediaVote, User, VoteTally, WriteResult

GET_INCOMING_VOTES_FOR_USER_SQL = (
    "SELECT COUNT(*) AS num_votes, vote FROM media_votes mv "
    "JOIN media_plays mp ON mv.play_id = mp.play_id "
    "WHERE mp.user_id = ? GROUP BY vote"
)
GET_OUTGOING_VOTES_FOR_USER_SQL = (
    "SELECT COUNT(*) AS num_votes, vote FROM media_votes WHERE user_id = ? GROUP BY vote"
)
GET_TOTAL_PLAYS_FOR_USER_SQL = "SELECT COUNT(*) AS num_plays FROM media_plays WHERE user_id = ?"
INSERT_MEDIA_PLAY_SQL = (
    "INSERT INTO media_plays (video_id, user_id, title, duration, played_on) "
    "VALUES (?, ?, ?, ?, ?)"
)
UPSERT_MEDIA_VOTE_SQL = "INSERT OR REPLACE INTO media_votes (play_id, user_id, vote) VALUES (?, ?, ?)"
# Updated in place: users are parents of media_votes, so no delete-and-insert.
UPSERT_USER_SQL = (
    "INSERT INTO users (id, username) VALUES (?, ?) "
    "ON CONFLICT(id) DO UPDATE SET username = excluded.username"
)

STATEMENTS = (
    GET_INCOMING_VOTES_FOR_USER_SQL,
    GET_OUTGOING_VOTES_FOR_USER_SQL,
    GET_TOTAL_PLAYS_FOR_USER_SQL,
    INSERT_MEDIA_PLAY_SQL,
    UPSERT_MEDIA_VOTE_SQL,
    UPSERT_USER_SQL,
)

logger = logging.getLogger(__name__)

_instance: Optional["PersistenceGateway"] = None


def _validate_path(path: Any) -> str:
    if not isinstance(path, str) or not path:
        raise ValueError("A non-empty string path to the database file is required")
    return path


def _tally(rows: Iterable[aiosqlite.Row]) -> VoteTally:
    """Map grouped ``(num_votes, vote)`` rows to a tally, whatever their order."""
    tally = VoteTally()
    for row in rows:
        if row["vote"] == -1:
            tally.negative = row["num_votes"]
        else:
            tally.positive = row["num_votes"]
    return tally


class PersistenceGateway:
    """Async access to the play/vote/user tables of one database file."""

    def __init__(self, path: str, timeout: float = 30.0):
        self.path = _validate_path(path)
        self.timeout = timeout
        self._init_task: Optional[asyncio.Task] = None
        self._conn: Optional[aiosqlite.Connection] = None
        logger.info("Creating gateway with database file path %s", self.path)

    async def __aenter__(self) -> "PersistenceGateway":
        return await self.connect()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _initialize(self) -> aiosqlite.Connection:
        conn = None
        try:
            conn, created = await open_database(self.path, timeout=self.timeout)
            await ensure_schema(conn, created)
            await prepare_statements(conn, STATEMENTS)
        except Exception as e:
            logger.exception("Failed to initialize database %s: %s", self.path, e)
            if conn is not None:
                await conn.close()
            raise
        self._conn = conn
        logger.info("Gateway ready")
        return conn

    async def _connection(self) -> aiosqlite.Connection:
        """Wait for the one-shot initialization, starting it on first call."""
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        # Shielded so a cancelled caller does not cancel the shared initialization.
        return await asyncio.shield(self._init_task)

    async def connect(self) -> "PersistenceGateway":
        """Open and bootstrap the database now instead of on first use."""
        await self._connection()
        return self

    async def close(self) -> None:
        """Close the connection. Safe to call more than once.

        An initialization still in flight is waited for and its connection
        closed. The next operation opens the database again.
        """
        task, self._init_task = self._init_task, None
        if task is None:
            return
        await asyncio.wait([task])
        # A failed initialization has already closed its connection and logged.
        if task.cancelled() or task.exception() is not None:
            return
        conn = task.result()
        if self._conn is conn:
            self._conn = None
        await conn.close()
        logger.info("Gateway for %s closed", self.path)

    async def _fetch_all(self, sql: str, params: Sequence[Any]) -> list:
        conn = await self._connection()
        cursor = await conn.execute(sql, params)
        try:
            return list(await cursor.fetchall())
        finally:
            await cursor.close()

    async def _write(
        self,
        action: str,
        record: Any,
        sql: str,
        params: Sequence[Any],
        reports_id: bool = True,
    ) -> WriteResult:
        logger.info("Attempting to %s: %s", action, record)
        conn = await self._connection()
        try:
            cursor = await conn.execute(sql, params)
            await conn.commit()
        except Exception as e:
            logger.error("Error occurred when trying to %s %s. The error: %s", action, record, e)
            try:
                await conn.rollback()
            except Exception as exc:  # pragma: no cover - cleanup best effort
                logger.warning("Rollback after failed write did not succeed: %s", exc)
            raise
        result = WriteResult(
            inserted_id=cursor.lastrowid if reports_id else None,
            rows_changed=cursor.rowcount,
        )
        await cursor.close()
        logger.info("Successfully completed %s: %s", action, record)
        return result

    async def get_number_of_incoming_votes_for_user(self, user_id: str) -> VoteTally:
        """Return how many votes have been cast on the user's plays, by polarity."""
        await self._connection()
        logger.info("Querying incoming votes for user_id=%s", user_id)
        try:
            rows = await self._fetch_all(GET_INCOMING_VOTES_FOR_USER_SQL, (user_id,))
        except Exception as e:
            logger.error("An error occurred while querying for incoming votes for user_id=%s: %s", user_id, e)
            return VoteTally()
        tally = _tally(rows)
        logger.info("Incoming votes for user_id=%s: %s", user_id, tally)
        return tally

    async def get_number_of_plays_by_user(self, user_id: str) -> int:
        """Return the total number of times the user has played something."""
        await self._connection()
        logger.info("Querying number of plays for user_id=%s", user_id)
        try:
            rows = await self._fetch_all(GET_TOTAL_PLAYS_FOR_USER_SQL, (user_id,))
        except Exception as e:
            logger.error("An error occurred while querying for number of plays by user_id=%s: %s", user_id, e)
            return 0
        num_plays = rows[0]["num_plays"] if rows else 0
        logger.info("Number of plays for user_id=%s: %d", user_id, num_plays)
        return num_plays

    async def get_number_of_votes_cast_by_user(self, user_id: str) -> VoteTally:
        """Return how many votes the user has cast, by polarity."""
        await self._connection()
        logger.info("Querying votes cast by user_id=%s", user_id)
        try:
            rows = await self._fetch_all(GET_OUTGOING_VOTES_FOR_USER_SQL, (user_id,))
        except Exception as e:
            logger.error("An error occurred while querying for votes cast by user_id=%s: %s", user_id, e)
            return VoteTally()
        tally = _tally(rows)
        logger.info("Votes cast by user_id=%s: %s", user_id, tally)
        return tally

    async def insert_media_play(self, play: MediaPlay) -> WriteResult:
        """Record a play. ``inserted_id`` of the result is the new play_id."""
        params = (
            play.video_id,
            play.user_id,
            play.title,
            play.duration,
            play.played_on.isoformat(sep=" "),
        )
        return await self._write("insert media play", play, INSERT_MEDIA_PLAY_SQL, params)

    async def upsert_media_vote(self, vote: MediaVote) -> WriteResult:
        """Insert the vote, replacing the user's earlier vote on the same play."""
        params = (vote.play_id, vote.user_id, vote.vote)
        return await self._write("upsert media vote", vote, UPSERT_MEDIA_VOTE_SQL, params)

    async def upsert_user(self, user: User) -> WriteResult:
        """Insert the user, or update the username of an existing one."""
        params = (user.user_id, user.username)
        # lastrowid is stale when the conflict branch updates instead of inserting.
        return await self._write("upsert user", user, UPSERT_USER_SQL, params, reports_id=False)


def get_instance(path: str, timeout: float = 30.0) -> PersistenceGateway:
    """Return the process-wide gateway, creating it for ``path`` on first call.

    Later calls return the same gateway; their path is only validated and
    their timeout is ignored.
    """
    global _instance

    _validate_path(path)
    if _instance is None:
        _instance = PersistenceGateway(path, timeout=timeout)
    return _instance


async def close_instance() -> None:
    """Close the process-wide gateway and forget it."""
    global _instance

    if _instance is None:
        return
    gateway, _instance = _instance, None
    await gateway.close()
