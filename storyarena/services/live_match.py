"""
Live match service: persists battle transitions and fans them out.

The transition itself is `battle_engine.apply_action`. This module loads
the authoritative record, resolves the actor's card, writes the new state
with a compare-and-swap on `turn_number`, publishes it on the match's feed
topic and settles the match when it completes.
"""

import logging
import time
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.db.operations import (
    create_emote,
    get_live_match,
    live_match_to_model,
    save_match_transition,
)
from storyarena.models.battle import LiveMatch
from storyarena.models.failure import (
    InvalidInputError,
    MatchNotActiveError,
    MatchNotFoundError,
    NotAParticipantError,
    PersistenceFailureError,
    StaleMatchError,
)
from storyarena.services.battle_engine import PlayCard, apply_action
from storyarena.services.card_catalog import get_owned_card
from storyarena.services.change_feed import EMOTE_TABLE, MATCH_TABLE, ChangeEvent, ChangeFeed
from storyarena.services.settlement import SettlementReport, settle_live_match

logger = logging.getLogger(__name__)

EMOTES = {
    "happy": "😄",
    "wow": "😮",
    "good_game": "👍",
    "well_played": "👏",
    "oops": "😅",
    "thanks": "🙏",
}


@dataclass
class PlayResult:
    match: LiveMatch
    settlement: SettlementReport | None = None


async def load_match(session: AsyncSession, match_id: int) -> LiveMatch:
    """
    Raises:
        MatchNotFoundError: no match with this id
    """
    db_match = await get_live_match(session, match_id)
    if db_match is None:
        raise MatchNotFoundError(match_id)
    return live_match_to_model(db_match)


def publish_match(feed: ChangeFeed, match: LiveMatch) -> None:
    feed.publish(
        ChangeEvent(
            MATCH_TABLE,
            str(match.id),
            "update",
            {
                "match_id": match.id,
                "turn_number": match.turn_number,
                "current_turn": match.current_turn,
                "status": match.status.value,
            },
        )
    )


async def play_card(
    session: AsyncSession,
    feed: ChangeFeed,
    match_id: int,
    actor: str,
    player_card_id: int,
    expected_turn: int | None = None,
) -> PlayResult:
    """
    Play one of the actor's cards in a live match.

    `expected_turn` is the turn number the client last saw. If the match has
    moved on since, the play is rejected as stale instead of being applied
    to a state the client never saw.

    Raises:
        MatchNotFoundError: unknown match
        NotAParticipantError: actor is not in this match
        StaleMatchError: the client's view is out of date, or a concurrent
            write advanced the match first
        ResourceNotFoundError: the card is not owned by the actor
        MatchNotActiveError, NotYourTurnError, InsufficientElixirError:
            battle preconditions; nothing is written
        PersistenceFailureError: the write failed; safe to retry
    """
    state = await load_match(session, match_id)
    if not state.is_participant(actor):
        raise NotAParticipantError(actor, match_id)
    if expected_turn is not None and expected_turn != state.turn_number:
        raise StaleMatchError(match_id, expected_turn)

    owned = await get_owned_card(session, actor, player_card_id)
    new_state = apply_action(state, PlayCard(card=owned.card, level=owned.level), actor)

    try:
        saved = await save_match_transition(session, new_state, state.turn_number)
        if not saved:
            await session.rollback()
            raise StaleMatchError(match_id, state.turn_number)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Failed to save match %s: %s", match_id, e)
        raise PersistenceFailureError("save_match", str(e)) from e

    logger.info(
        "%s played %s in match %s (turn %d)",
        actor,
        owned.card.name,
        match_id,
        new_state.turn_number,
        extra={"match_id": match_id, "actor": actor, "card_id": owned.card.id},
    )
    publish_match(feed, new_state)

    result = PlayResult(match=new_state)
    if not new_state.is_active:
        result.settlement = await settle_live_match(session, new_state)
        if not result.settlement.complete:
            logger.warning(
                "Match %s settled partially; failed for %s",
                match_id,
                ", ".join(result.settlement.failed),
            )
    return result


async def settle_match(session: AsyncSession, match_id: int) -> SettlementReport:
    """Settle (or finish settling) a completed match. Safe to call repeatedly."""
    return await settle_live_match(session, await load_match(session, match_id))


async def wait_for_update(
    session: AsyncSession,
    feed: ChangeFeed,
    match_id: int,
    after_turn: int,
    timeout: float,
) -> LiveMatch:
    """
    Long-poll: return the match once its turn number passes `after_turn`.

    Returns the current state on timeout, so the caller can compare turn
    numbers itself. A completed match is returned immediately.
    """
    deadline = time.monotonic() + timeout
    with feed.subscribe(MATCH_TABLE, str(match_id)) as subscription:
        while True:
            match = await load_match(session, match_id)
            if match.turn_number > after_turn or not match.is_active:
                return match

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return match
            try:
                await subscription.get(timeout=remaining)
            except TimeoutError:
                return await load_match(session, match_id)


async def send_emote(
    session: AsyncSession,
    feed: ChangeFeed,
    match_id: int,
    user_id: str,
    emote_type: str,
) -> str:
    """
    Send an emote to the other player. Returns the emoji.

    Raises:
        InvalidInputError: unknown emote
        MatchNotFoundError, NotAParticipantError, MatchNotActiveError
    """
    emoji = EMOTES.get(emote_type)
    if emoji is None:
        raise InvalidInputError(
            f"Unknown emote '{emote_type}'.",
            detail=f"Valid emotes: {', '.join(EMOTES)}",
        )

    match = await load_match(session, match_id)
    if not match.is_participant(user_id):
        raise NotAParticipantError(user_id, match_id)
    if not match.is_active:
        raise MatchNotActiveError(match_id)

    try:
        await create_emote(session, match_id, user_id, emote_type, emoji)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise PersistenceFailureError("send_emote", str(e)) from e

    feed.publish(
        ChangeEvent(
            EMOTE_TABLE,
            str(match_id),
            "insert",
            {"user_id": user_id, "emote_type": emote_type, "emoji": emoji},
        )
    )
    return emoji
