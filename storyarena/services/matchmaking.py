"""
Matchmaking Engine: pair waiting players by trophy count.

Per-player state machine: idle -> waiting -> matched -> idle.

Pairing races between two searchers are settled in the database: both
entries are flipped from waiting to matched with conditional UPDATEs, lower
user id first, and the match is only created if both flips win. A lost race
rolls back and reports "no match yet", leaving both entries as they were.

The searcher leaves the queue as soon as the match exists. The
counterpart's entry stays matched (with `matched_with` set) until its own
search collects the match.
"""

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storyarena.config import settings
from storyarena.db.operations import (
    claim_queue_entry,
    create_live_match,
    create_queue_entry,
    delete_queue_entry,
    find_waiting_opponent,
    get_active_match_between,
    get_or_create_player_stats,
    get_queue_entry,
    live_match_to_model,
)
from storyarena.models.battle import LiveMatch, MatchOrigin
from storyarena.models.db import MatchmakingQueueDB
from storyarena.models.failure import PersistenceFailureError
from storyarena.services.change_feed import (
    MATCH_TABLE,
    PLAYER_TABLE,
    QUEUE_TABLE,
    ChangeEvent,
    ChangeFeed,
)

logger = logging.getLogger(__name__)


def publish_match_formed(feed: ChangeFeed, match: LiveMatch) -> None:
    """Tell both players (and match watchers) about a new match."""
    record = {
        "match_id": match.id,
        "player1_id": match.player1_id,
        "player2_id": match.player2_id,
        "origin": match.origin.value,
    }
    for player_id in (match.player1_id, match.player2_id):
        feed.publish(ChangeEvent(PLAYER_TABLE, player_id, "insert", record))
    feed.publish(ChangeEvent(MATCH_TABLE, str(match.id), "insert", record))


async def create_match(
    session: AsyncSession,
    initiator: str,
    opponent: str,
    origin: MatchOrigin = MatchOrigin.MATCHMAKING,
) -> LiveMatch:
    """Insert a fresh match where `initiator` holds the first turn."""
    match = LiveMatch(
        player1_id=initiator,
        player2_id=opponent,
        current_turn=initiator,
        origin=origin,
    )
    match.add_log("Battle started!")
    await create_live_match(session, match)
    return match


async def enqueue(
    session: AsyncSession,
    feed: ChangeFeed,
    user_id: str,
    trophies: int | None = None,
) -> MatchmakingQueueDB:
    """
    Put a player in the queue, replacing any stale entry.

    When `trophies` is omitted the player's current trophy count is used.

    Raises:
        PersistenceFailureError: the queue write failed; safe to retry
    """
    try:
        if trophies is None:
            stats, _ = await get_or_create_player_stats(session, user_id)
            trophies = stats.trophies
        await delete_queue_entry(session, user_id)
        entry = await create_queue_entry(session, user_id, trophies, settings.trophy_window)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Failed to enqueue %s: %s", user_id, e)
        raise PersistenceFailureError("enqueue", str(e)) from e

    feed.publish(
        ChangeEvent(QUEUE_TABLE, user_id, "insert", {"user_id": user_id, "trophies": trophies})
    )
    logger.info(
        "Queued %s with %d trophies [%d, %d]",
        user_id,
        trophies,
        entry.trophy_range_min,
        entry.trophy_range_max,
    )
    return entry


async def _collect_formed_match(
    session: AsyncSession, entry: MatchmakingQueueDB
) -> LiveMatch | None:
    """Pick up the match the counterpart formed when it claimed `entry`."""
    if entry.matched_with is None:
        return None
    formed = await get_active_match_between(session, entry.user_id, entry.matched_with)
    if formed is None:
        return None
    await delete_queue_entry(session, entry.user_id)
    await session.commit()
    return live_match_to_model(formed)


async def search(session: AsyncSession, feed: ChangeFeed, user_id: str) -> LiveMatch | None:
    """
    One search attempt for a queued player.

    Returns the match if the player is (or just became) part of one, or
    None if there is nothing yet and the caller should search again later.
    Only the queue entry counts: an older match the player never finished
    does not stop them from being paired again.

    Raises:
        PersistenceFailureError: a queue or match write failed
    """
    try:
        entry = await get_queue_entry(session, user_id)
        if entry is None:
            return None
        if entry.status == "matched":
            return await _collect_formed_match(session, entry)

        candidate = await find_waiting_opponent(
            session, entry, symmetric=settings.matchmaking_symmetric_window
        )
        if candidate is None:
            return None
        opponent_id = candidate.user_id

        # Claim both rows in user id order so two searchers never wait on each other
        for claimed, matched_with in sorted(((opponent_id, user_id), (user_id, opponent_id))):
            if not await claim_queue_entry(session, claimed, matched_with):
                await session.rollback()
                logger.debug("%s was claimed by someone else", claimed)
                return None

        match = await create_match(session, user_id, opponent_id)
        # The counterpart's entry stays matched until its own search collects the match
        await delete_queue_entry(session, user_id)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Matchmaking search failed for %s: %s", user_id, e)
        raise PersistenceFailureError("matchmaking_search", str(e)) from e

    publish_match_formed(feed, match)
    feed.publish(
        ChangeEvent(
            QUEUE_TABLE, opponent_id, "update", {"matched_with": user_id, "match_id": match.id}
        )
    )
    logger.info(
        "Formed match %s: %s vs %s",
        match.id,
        user_id,
        opponent_id,
        extra={"match_id": match.id, "player1_id": user_id, "player2_id": opponent_id},
    )
    return match


async def cancel(session: AsyncSession, feed: ChangeFeed, user_id: str) -> bool:
    """
    Leave the queue. Cancelling when not queued is a no-op.

    Returns True if an entry was removed.
    """
    try:
        removed = await delete_queue_entry(session, user_id)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Failed to cancel matchmaking for %s: %s", user_id, e)
        raise PersistenceFailureError("cancel_matchmaking", str(e)) from e

    if removed:
        feed.publish(ChangeEvent(QUEUE_TABLE, user_id, "delete", {"user_id": user_id}))
        logger.info("%s left the matchmaking queue", user_id)
    return removed


@dataclass
class SearchResult:
    """Outcome of a bounded background search."""

    match: LiveMatch | None
    polls: int

    @property
    def matched(self) -> bool:
        return self.match is not None


class MatchSearch:
    """
    Keep searching until matched, cancelled, or out of polls.

    Each poll runs `search` in a fresh session. Between polls the task waits
    on the player's feed topic, so a pairing made by the counterpart wakes it
    immediately instead of after the full poll interval.

    Cancelling the task (asyncio cancellation) unsubscribes and deletes the
    player's queue entry.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: ChangeFeed,
        user_id: str,
        *,
        poll_interval: float | None = None,
        max_polls: int | None = None,
        max_failures: int | None = None,
    ):
        self.session_factory = session_factory
        self.feed = feed
        self.user_id = user_id
        self.poll_interval = (
            settings.matchmaking_poll_interval if poll_interval is None else poll_interval
        )
        self.max_polls = max_polls
        self.max_failures = (
            settings.matchmaking_max_failures if max_failures is None else max_failures
        )

    async def _poll(self) -> LiveMatch | None:
        async with self.session_factory() as session:
            return await search(session, self.feed, self.user_id)

    async def _cleanup(self) -> None:
        async with self.session_factory() as session:
            await cancel(session, self.feed, self.user_id)

    async def run(self) -> SearchResult:
        """
        Raises:
            PersistenceFailureError: more than `max_failures` polls in a row failed
        """
        polls = 0
        failures = 0
        subscription = self.feed.subscribe(PLAYER_TABLE, self.user_id)
        try:
            while self.max_polls is None or polls < self.max_polls:
                polls += 1
                try:
                    match = await self._poll()
                    failures = 0
                except PersistenceFailureError:
                    failures += 1
                    logger.warning(
                        "Search poll %d failed for %s (%d in a row)",
                        polls,
                        self.user_id,
                        failures,
                    )
                    if failures >= self.max_failures:
                        raise
                    match = None

                if match is not None:
                    return SearchResult(match=match, polls=polls)

                if self.max_polls is not None and polls >= self.max_polls:
                    break
                try:
                    await subscription.get(timeout=self.poll_interval)
                except TimeoutError:
                    pass
            return SearchResult(match=None, polls=polls)
        except asyncio.CancelledError:
            logger.info("Matchmaking search cancelled for %s", self.user_id)
            await self._cleanup()
            raise
        finally:
            subscription.close()

    def start(self) -> "asyncio.Task[SearchResult]":
        """Run the search as a background task."""
        return asyncio.create_task(self.run(), name=f"matchmaking-{self.user_id}")
