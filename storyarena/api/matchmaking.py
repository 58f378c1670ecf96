"""
Matchmaking API endpoints.

A client enqueues, then either calls `search` on its own schedule or
blocks on `wait`, which runs a bounded background search.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storyarena.api.matches import MatchResponse
from storyarena.config import MAX_WAIT_SECONDS, settings
from storyarena.db import (
    get_active_match_between,
    get_active_match_for_player,
    get_queue_entry,
    live_match_to_model,
)
from storyarena.db.database import get_session, get_session_factory
from storyarena.services import matchmaking
from storyarena.services.change_feed import ChangeFeed, get_change_feed

router = APIRouter(prefix="/matchmaking", tags=["matchmaking"])


class EnqueueRequest(BaseModel):
    trophies: int | None = Field(
        default=None,
        ge=0,
        description="Trophy count to match on; defaults to the player's current trophies",
    )


class QueueStatusResponse(BaseModel):
    """Where a player is in the idle -> waiting -> matched cycle."""

    user_id: str
    status: str  # idle, waiting, matched
    trophy_count: int | None = None
    trophy_range_min: int | None = None
    trophy_range_max: int | None = None
    match: MatchResponse | None = None


class CancelResponse(BaseModel):
    user_id: str
    removed: bool


def _matched(user_id: str, match_response: MatchResponse) -> QueueStatusResponse:
    return QueueStatusResponse(user_id=user_id, status="matched", match=match_response)


@router.post("/{user_id}/queue", response_model=QueueStatusResponse)
async def enqueue(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
    request: EnqueueRequest | None = None,
) -> QueueStatusResponse:
    """Join the queue, replacing any earlier entry."""
    entry = await matchmaking.enqueue(
        session, feed, user_id, request.trophies if request else None
    )
    return QueueStatusResponse(
        user_id=user_id,
        status=entry.status,
        trophy_count=entry.trophy_count,
        trophy_range_min=entry.trophy_range_min,
        trophy_range_max=entry.trophy_range_max,
    )


@router.delete("/{user_id}/queue", response_model=CancelResponse)
async def cancel(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
) -> CancelResponse:
    """Leave the queue. Leaving when not queued is not an error."""
    removed = await matchmaking.cancel(session, feed, user_id)
    return CancelResponse(user_id=user_id, removed=removed)


@router.post("/{user_id}/search", response_model=QueueStatusResponse)
async def search(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
) -> QueueStatusResponse:
    """
    Run one search attempt.

    Returns status `matched` with the match, or the current queue status if
    no opponent is available yet.
    """
    match = await matchmaking.search(session, feed, user_id)
    if match is not None:
        return _matched(user_id, MatchResponse.from_model(match))
    return await get_status(user_id, session)


@router.get("/{user_id}", response_model=QueueStatusResponse)
async def get_status(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> QueueStatusResponse:
    """
    Get a player's matchmaking status.

    A queue entry wins over any older match the player is still part of. A
    matched entry whose match has already finished no longer counts.
    """
    entry = await get_queue_entry(session, user_id)
    if entry is not None and entry.matched_with is not None:
        formed = await get_active_match_between(session, user_id, entry.matched_with)
        if formed is not None:
            return _matched(user_id, MatchResponse.from_model(live_match_to_model(formed)))
    if entry is not None and entry.status == "waiting":
        return QueueStatusResponse(
            user_id=user_id,
            status=entry.status,
            trophy_count=entry.trophy_count,
            trophy_range_min=entry.trophy_range_min,
            trophy_range_max=entry.trophy_range_max,
        )

    active = await get_active_match_for_player(session, user_id)
    if active is not None:
        return _matched(user_id, MatchResponse.from_model(live_match_to_model(active)))
    return QueueStatusResponse(user_id=user_id, status="idle")


@router.post("/{user_id}/wait", response_model=QueueStatusResponse)
async def wait(
    user_id: str,
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
    timeout: Annotated[float, Query(gt=0, le=MAX_WAIT_SECONDS)] = 10.0,
) -> QueueStatusResponse:
    """
    Keep searching for up to `timeout` seconds.

    Wakes early when the counterpart forms the match.
    """
    interval = settings.matchmaking_poll_interval
    max_polls = max(1, int(timeout // interval) + 1)
    result = await matchmaking.MatchSearch(
        session_factory,
        feed,
        user_id,
        poll_interval=min(interval, timeout),
        max_polls=max_polls,
    ).run()

    if result.match is not None:
        return _matched(user_id, MatchResponse.from_model(result.match))
    async with session_factory() as session:
        return await get_status(user_id, session)
