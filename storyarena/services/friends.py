"""
Friends graph and friend challenges.

A friendship starts as a pending request from `user_id` to `friend_id` and
becomes mutual once the addressee accepts it. Only accepted friends can
challenge each other.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.db.operations import (
    accept_friendship,
    create_friend_request,
    delete_friendship,
    get_active_match_for_player,
    get_friendship,
    get_friendship_between,
    get_player_stats,
    list_friends,
    list_pending_requests,
)
from storyarena.models.battle import LiveMatch, MatchOrigin
from storyarena.models.db import FriendshipDB
from storyarena.models.failure import (
    ConflictError,
    InvalidInputError,
    PersistenceFailureError,
    ResourceNotFoundError,
)
from storyarena.services.change_feed import ChangeFeed
from storyarena.services.matchmaking import create_match, publish_match_formed

logger = logging.getLogger(__name__)


@dataclass
class Friend:
    friendship_id: int
    user_id: str
    trophies: int


async def send_request(session: AsyncSession, user_id: str, friend_id: str) -> FriendshipDB:
    """
    Raises:
        InvalidInputError: befriending yourself
        ConflictError: a request or friendship already exists either way
    """
    if user_id == friend_id:
        raise InvalidInputError("You can't add yourself as a friend.")
    if await get_friendship_between(session, user_id, friend_id) is not None:
        raise ConflictError(
            "You're already friends or a request is waiting.",
            detail=f"{user_id} <-> {friend_id}",
        )

    try:
        friendship = await create_friend_request(session, user_id, friend_id)
    except IntegrityError as e:
        await session.rollback()
        raise ConflictError("A friend request was already sent.", detail=str(e)) from e
    logger.info("Friend request %s -> %s", user_id, friend_id)
    return friendship


async def _pending_for(session: AsyncSession, friendship_id: int, user_id: str) -> FriendshipDB:
    friendship = await get_friendship(session, friendship_id)
    if friendship is None or friendship.friend_id != user_id:
        raise ResourceNotFoundError("Friend request", friendship_id)
    if friendship.status != "pending":
        raise ConflictError("This request was already accepted.")
    return friendship


async def accept_request(session: AsyncSession, user_id: str, friendship_id: int) -> FriendshipDB:
    """Accept a request addressed to `user_id`."""
    friendship = await _pending_for(session, friendship_id, user_id)
    return await accept_friendship(session, friendship)


async def reject_request(session: AsyncSession, user_id: str, friendship_id: int) -> None:
    """Decline a request addressed to `user_id`."""
    friendship = await _pending_for(session, friendship_id, user_id)
    await delete_friendship(session, friendship)


async def remove_friend(session: AsyncSession, user_id: str, friend_id: str) -> None:
    friendship = await get_friendship_between(session, user_id, friend_id)
    if friendship is None or friendship.status != "accepted":
        raise ResourceNotFoundError("Friend", friend_id)
    await delete_friendship(session, friendship)


async def get_friends(session: AsyncSession, user_id: str) -> list[Friend]:
    """Accepted friends with their current trophies, highest first."""
    friends = []
    for friendship in await list_friends(session, user_id):
        other = friendship.friend_id if friendship.user_id == user_id else friendship.user_id
        stats = await get_player_stats(session, other)
        friends.append(
            Friend(
                friendship_id=friendship.id,
                user_id=other,
                trophies=stats.trophies if stats else 0,
            )
        )
    return sorted(friends, key=lambda f: f.trophies, reverse=True)


async def get_pending(session: AsyncSession, user_id: str) -> list[FriendshipDB]:
    return await list_pending_requests(session, user_id)


async def challenge_friend(
    session: AsyncSession, feed: ChangeFeed, challenger: str, friend_id: str
) -> LiveMatch:
    """
    Start a match against an accepted friend. The challenger plays first.

    Raises:
        ResourceNotFoundError: not friends
        ConflictError: either player is already in an active match
    """
    friendship = await get_friendship_between(session, challenger, friend_id)
    if friendship is None or friendship.status != "accepted":
        raise ResourceNotFoundError("Friend", friend_id)

    for player_id in (challenger, friend_id):
        if await get_active_match_for_player(session, player_id) is not None:
            raise ConflictError(
                "A battle is already in progress.",
                detail=f"{player_id} has an active match",
            )

    try:
        match = await create_match(
            session, challenger, friend_id, origin=MatchOrigin.FRIEND_CHALLENGE
        )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Failed to create challenge %s -> %s: %s", challenger, friend_id, e)
        raise PersistenceFailureError("challenge_friend", str(e)) from e

    publish_match_formed(feed, match)
    logger.info(
        "%s challenged %s (match %s)",
        challenger,
        friend_id,
        match.id,
        extra={"match_id": match.id, "origin": match.origin.value},
    )
    return match
