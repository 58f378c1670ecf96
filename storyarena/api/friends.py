"""
Friends API endpoints.

Provides friend requests, the friends list and friend challenges.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.api.matches import MatchResponse
from storyarena.db.database import get_session
from storyarena.models.db import FriendshipDB
from storyarena.services import friends
from storyarena.services.change_feed import ChangeFeed, get_change_feed

router = APIRouter(prefix="/friends", tags=["friends"])


class FriendRequestBody(BaseModel):
    friend_id: str


class FriendshipResponse(BaseModel):
    id: int
    user_id: str
    friend_id: str
    status: str
    accepted_at: datetime | None = None

    @classmethod
    def from_db(cls, friendship: FriendshipDB) -> "FriendshipResponse":
        return cls(
            id=friendship.id,
            user_id=friendship.user_id,
            friend_id=friendship.friend_id,
            status=friendship.status,
            accepted_at=friendship.accepted_at,
        )


class FriendResponse(BaseModel):
    friendship_id: int
    user_id: str
    trophies: int


class FriendListResponse(BaseModel):
    user_id: str
    friends: list[FriendResponse]
    count: int


class PendingListResponse(BaseModel):
    user_id: str
    requests: list[FriendshipResponse]
    count: int


@router.get("/{user_id}", response_model=FriendListResponse)
async def list_friends(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> FriendListResponse:
    """Get a player's friends, highest trophies first."""
    result = [
        FriendResponse(friendship_id=f.friendship_id, user_id=f.user_id, trophies=f.trophies)
        for f in await friends.get_friends(session, user_id)
    ]
    return FriendListResponse(user_id=user_id, friends=result, count=len(result))


@router.get("/{user_id}/requests", response_model=PendingListResponse)
async def list_requests(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> PendingListResponse:
    """Get friend requests waiting for this player's answer."""
    pending = [FriendshipResponse.from_db(f) for f in await friends.get_pending(session, user_id)]
    return PendingListResponse(user_id=user_id, requests=pending, count=len(pending))


@router.post(
    "/{user_id}/requests",
    response_model=FriendshipResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_request(
    user_id: str,
    body: FriendRequestBody,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> FriendshipResponse:
    """Send a friend request."""
    return FriendshipResponse.from_db(await friends.send_request(session, user_id, body.friend_id))


@router.post("/{user_id}/requests/{friendship_id}/accept", response_model=FriendshipResponse)
async def accept_request(
    user_id: str,
    friendship_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> FriendshipResponse:
    """Accept a friend request addressed to this player."""
    return FriendshipResponse.from_db(
        await friends.accept_request(session, user_id, friendship_id)
    )


@router.delete(
    "/{user_id}/requests/{friendship_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def reject_request(
    user_id: str,
    friendship_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> None:
    """Decline a friend request."""
    await friends.reject_request(session, user_id, friendship_id)


@router.delete("/{user_id}/{friend_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_friend(
    user_id: str,
    friend_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> None:
    """Remove a friend."""
    await friends.remove_friend(session, user_id, friend_id)


@router.post("/{user_id}/challenge/{friend_id}", response_model=MatchResponse)
async def challenge(
    user_id: str,
    friend_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
) -> MatchResponse:
    """Challenge a friend to a battle. The challenger plays first."""
    match = await friends.challenge_friend(session, feed, user_id, friend_id)
    return MatchResponse.from_model(match)
