"""
Database CRUD operations.

Provides async functions for reading and writing the card catalog, player
inventories, the matchmaking queue, live matches, match history, stats and
the friends graph.

Writes that race between two clients (queue claims, match transitions, card
upgrades) are conditional UPDATEs that report whether they won.
"""

from datetime import UTC, datetime

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.models.battle import BattleUnit, LiveMatch, MatchOrigin, MatchStatus
from storyarena.models.card import BattleCard, CardRarity, CardType, PlayerCard
from storyarena.models.db import (
    BattleCardDB,
    BattleEmoteDB,
    BattleMatchDB,
    FriendshipDB,
    LiveMatchDB,
    MatchmakingQueueDB,
    PlayerBattleStatsDB,
    PlayerCardDB,
)
from storyarena.models.stats import (
    BattleMatchRecord,
    MatchResult,
    OpponentType,
    PlayerBattleStats,
)


def _now() -> datetime:
    return datetime.now(UTC)


# --- Card Catalog Operations ---


async def get_card(session: AsyncSession, card_id: int) -> BattleCardDB | None:
    """Get a catalog card by id."""
    return await session.get(BattleCardDB, card_id)


async def get_card_by_name(session: AsyncSession, name: str) -> BattleCardDB | None:
    """Get a catalog card by its unique name."""
    result = await session.execute(select(BattleCardDB).where(BattleCardDB.name == name))
    return result.scalar_one_or_none()


async def list_cards(session: AsyncSession) -> list[BattleCardDB]:
    """Get the whole catalog, ordered by rarity then cost."""
    rarity_rank = case(
        {rarity.value: index for index, rarity in enumerate(CardRarity)},
        value=BattleCardDB.rarity,
        else_=len(CardRarity),
    )
    result = await session.execute(
        select(BattleCardDB).order_by(rarity_rank, BattleCardDB.cost, BattleCardDB.name)
    )
    return list(result.scalars().all())


async def upsert_card(session: AsyncSession, card: BattleCard) -> BattleCardDB:
    """
    Insert or update a catalog card.

    Cards are matched by name; the id of the given card is ignored so the
    database keeps assigning its own keys.
    """
    existing = await get_card_by_name(session, card.name)

    if existing:
        existing.emoji = card.emoji
        existing.card_type = card.card_type.value
        existing.rarity = card.rarity.value
        existing.cost = card.cost
        existing.health = card.health
        existing.attack = card.attack
        existing.special_ability = card.special_ability
        existing.description = card.description
        existing.unlock_arena = card.unlock_arena
        await session.flush()
        return existing

    db_card = BattleCardDB(
        name=card.name,
        emoji=card.emoji,
        card_type=card.card_type.value,
        rarity=card.rarity.value,
        cost=card.cost,
        health=card.health,
        attack=card.attack,
        special_ability=card.special_ability,
        description=card.description,
        unlock_arena=card.unlock_arena,
    )
    session.add(db_card)
    await session.flush()
    return db_card


def card_to_model(db_card: BattleCardDB) -> BattleCard:
    """Convert a database catalog card to a domain model."""
    return BattleCard(
        id=db_card.id,
        name=db_card.name,
        card_type=CardType(db_card.card_type),
        rarity=CardRarity(db_card.rarity),
        cost=db_card.cost,
        health=db_card.health,
        attack=db_card.attack,
        special_ability=db_card.special_ability,
        unlock_arena=db_card.unlock_arena,
        emoji=db_card.emoji,
        description=db_card.description,
    )


# --- Player Card Operations ---


async def get_player_cards(
    session: AsyncSession, user_id: str, limit: int | None = None
) -> list[PlayerCardDB]:
    """Get a player's owned cards joined with their catalog entries."""
    query = (
        select(PlayerCardDB)
        .where(PlayerCardDB.user_id == user_id)
        .order_by(PlayerCardDB.id)
        .execution_options(populate_existing=True)
    )
    if limit is not None:
        query = query.limit(limit)
    result = await session.execute(query)
    return list(result.scalars().unique().all())


async def get_player_card(session: AsyncSession, player_card_id: int) -> PlayerCardDB | None:
    """Get an ownership record by id, always re-reading level and quantity."""
    result = await session.execute(
        select(PlayerCardDB)
        .where(PlayerCardDB.id == player_card_id)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one_or_none()


async def get_player_card_for(
    session: AsyncSession, user_id: str, card_id: int
) -> PlayerCardDB | None:
    """Get a player's ownership record for one catalog card."""
    result = await session.execute(
        select(PlayerCardDB)
        .where(
            PlayerCardDB.user_id == user_id,
            PlayerCardDB.card_id == card_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one_or_none()


async def count_player_cards(session: AsyncSession, user_id: str) -> int:
    """Number of distinct catalog cards a player owns."""
    result = await session.execute(
        select(func.count()).select_from(PlayerCardDB).where(PlayerCardDB.user_id == user_id)
    )
    return int(result.scalar_one())


async def add_player_cards(
    session: AsyncSession, user_id: str, card_ids: list[int]
) -> list[PlayerCardDB]:
    """
    Create one level-1 ownership record per catalog card.

    Raises IntegrityError if the player already owns any of the cards.
    """
    records = [
        PlayerCardDB(user_id=user_id, card_id=card_id, level=1, quantity=1) for card_id in card_ids
    ]
    session.add_all(records)
    await session.flush()
    return records


async def grant_card_copies(
    session: AsyncSession, user_id: str, card_id: int, quantity: int
) -> PlayerCardDB:
    """
    Add copies of a card to a player's inventory.

    Creates the ownership record at level 1 if the player did not own the card.
    """
    if quantity < 1:
        msg = f"quantity must be positive, got {quantity}"
        raise ValueError(msg)

    existing = await get_player_card_for(session, user_id, card_id)
    if existing:
        existing.quantity += quantity
        await session.flush()
        return existing

    record = PlayerCardDB(user_id=user_id, card_id=card_id, level=1, quantity=quantity)
    session.add(record)
    await session.flush()
    return record


async def apply_card_upgrade(session: AsyncSession, player_card: PlayerCard) -> bool:
    """
    Persist an upgrade computed from `player_card` (the pre-upgrade record).

    Only applies if the row still holds the level it was read at and enough
    copies. Returns False if another write got there first.
    """
    required = player_card.upgrade_cost
    result = await session.execute(
        update(PlayerCardDB)
        .where(
            PlayerCardDB.id == player_card.id,
            PlayerCardDB.level == player_card.level,
            PlayerCardDB.quantity >= required,
        )
        .values(
            level=PlayerCardDB.level + 1,
            quantity=PlayerCardDB.quantity - required,
        )
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) == 1  # type: ignore[attr-defined]


def player_card_to_model(db_card: PlayerCardDB) -> PlayerCard:
    """Convert a database ownership record to a domain model."""
    return PlayerCard(
        id=db_card.id,
        user_id=db_card.user_id,
        card_id=db_card.card_id,
        level=db_card.level,
        quantity=db_card.quantity,
        unlocked_at=db_card.unlocked_at,
    )


# --- Matchmaking Queue Operations ---


async def get_queue_entry(session: AsyncSession, user_id: str) -> MatchmakingQueueDB | None:
    """Get a player's queue entry, if any."""
    result = await session.execute(
        select(MatchmakingQueueDB)
        .where(MatchmakingQueueDB.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def delete_queue_entry(session: AsyncSession, user_id: str) -> bool:
    """
    Delete a player's queue entry.

    Returns True if deleted, False if the player was not queued.
    """
    result = await session.execute(
        delete(MatchmakingQueueDB).where(MatchmakingQueueDB.user_id == user_id)
    )
    return int(result.rowcount) > 0  # type: ignore[attr-defined]


async def create_queue_entry(
    session: AsyncSession, user_id: str, trophies: int, window: int
) -> MatchmakingQueueDB:
    """Insert a waiting entry with the trophy window around `trophies`."""
    entry = MatchmakingQueueDB(
        user_id=user_id,
        trophy_count=trophies,
        trophy_range_min=max(0, trophies - window),
        trophy_range_max=trophies + window,
        status="waiting",
    )
    session.add(entry)
    await session.flush()
    return entry


async def find_waiting_opponent(
    session: AsyncSession, entry: MatchmakingQueueDB, symmetric: bool = False
) -> MatchmakingQueueDB | None:
    """
    Find the longest-waiting opponent whose trophies fall in `entry`'s window.

    With `symmetric`, the searcher's trophies must also fall in the
    candidate's window.
    """
    query = select(MatchmakingQueueDB).where(
        MatchmakingQueueDB.user_id != entry.user_id,
        MatchmakingQueueDB.status == "waiting",
        MatchmakingQueueDB.trophy_count >= entry.trophy_range_min,
        MatchmakingQueueDB.trophy_count <= entry.trophy_range_max,
    )
    if symmetric:
        query = query.where(
            MatchmakingQueueDB.trophy_range_min <= entry.trophy_count,
            MatchmakingQueueDB.trophy_range_max >= entry.trophy_count,
        )
    result = await session.execute(
        query.order_by(MatchmakingQueueDB.created_at, MatchmakingQueueDB.id).limit(1)
    )
    return result.scalar_one_or_none()


async def claim_queue_entry(session: AsyncSession, user_id: str, matched_with: str) -> bool:
    """
    Flip a waiting entry to matched.

    Returns False if the entry is gone or was already claimed.
    """
    result = await session.execute(
        update(MatchmakingQueueDB)
        .where(
            MatchmakingQueueDB.user_id == user_id,
            MatchmakingQueueDB.status == "waiting",
        )
        .values(status="matched", matched_with=matched_with)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) == 1  # type: ignore[attr-defined]


# --- Live Match Operations ---


def _match_values(match: LiveMatch) -> dict:
    return {
        "player1_id": match.player1_id,
        "player2_id": match.player2_id,
        "current_turn": match.current_turn,
        "turn_number": match.turn_number,
        "player1_health": match.player1_health,
        "player2_health": match.player2_health,
        "player1_elixir": match.player1_elixir,
        "player2_elixir": match.player2_elixir,
        "units": [unit.to_dict() for unit in match.units],
        "battle_log": list(match.battle_log),
        "status": match.status.value,
        "winner_id": match.winner_id,
        "origin": match.origin.value,
        "last_action_at": match.last_action_at,
        "completed_at": match.completed_at,
    }


async def create_live_match(session: AsyncSession, match: LiveMatch) -> LiveMatchDB:
    """Insert a new live match and assign its id to `match`."""
    db_match = LiveMatchDB(**_match_values(match))
    session.add(db_match)
    await session.flush()
    match.id = db_match.id
    return db_match


async def get_live_match(session: AsyncSession, match_id: int) -> LiveMatchDB | None:
    """Get a live match, always re-reading the row."""
    result = await session.execute(
        select(LiveMatchDB)
        .where(LiveMatchDB.id == match_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_active_match_for_player(session: AsyncSession, user_id: str) -> LiveMatchDB | None:
    """Get the most recent active match a player takes part in."""
    result = await session.execute(
        select(LiveMatchDB)
        .where(
            or_(LiveMatchDB.player1_id == user_id, LiveMatchDB.player2_id == user_id),
            LiveMatchDB.status == MatchStatus.ACTIVE.value,
        )
        .order_by(LiveMatchDB.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_active_match_between(
    session: AsyncSession, user_id: str, opponent_id: str
) -> LiveMatchDB | None:
    """Get the most recent active match between two players, either way round."""
    result = await session.execute(
        select(LiveMatchDB)
        .where(
            or_(
                (LiveMatchDB.player1_id == user_id) & (LiveMatchDB.player2_id == opponent_id),
                (LiveMatchDB.player1_id == opponent_id) & (LiveMatchDB.player2_id == user_id),
            ),
            LiveMatchDB.status == MatchStatus.ACTIVE.value,
        )
        .order_by(LiveMatchDB.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def save_match_transition(
    session: AsyncSession, match: LiveMatch, expected_turn: int
) -> bool:
    """
    Write a transitioned match if the row is still active at `expected_turn`.

    This is the optimistic-concurrency guard for the shared match record.
    Returns False when another write already advanced the match.
    """
    if match.id is None:
        msg = "Cannot save a match that was never created"
        raise ValueError(msg)

    result = await session.execute(
        update(LiveMatchDB)
        .where(
            LiveMatchDB.id == match.id,
            LiveMatchDB.turn_number == expected_turn,
            LiveMatchDB.status == MatchStatus.ACTIVE.value,
        )
        .values(**_match_values(match))
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) == 1  # type: ignore[attr-defined]


def live_match_to_model(db_match: LiveMatchDB) -> LiveMatch:
    """Convert a database live match to a domain model."""
    return LiveMatch(
        id=db_match.id,
        player1_id=db_match.player1_id,
        player2_id=db_match.player2_id,
        current_turn=db_match.current_turn,
        turn_number=db_match.turn_number,
        player1_health=db_match.player1_health,
        player2_health=db_match.player2_health,
        player1_elixir=db_match.player1_elixir,
        player2_elixir=db_match.player2_elixir,
        units=[BattleUnit.from_dict(unit) for unit in db_match.units or []],
        battle_log=list(db_match.battle_log or []),
        status=MatchStatus(db_match.status),
        winner_id=db_match.winner_id,
        origin=MatchOrigin(db_match.origin),
        created_at=db_match.created_at,
        last_action_at=db_match.last_action_at,
        completed_at=db_match.completed_at,
    )


# --- Match History Operations ---


async def record_battle_match(session: AsyncSession, record: BattleMatchRecord) -> BattleMatchDB:
    """
    Append a match history entry.

    Raises IntegrityError if this player already has an entry for the live match.
    """
    db_record = BattleMatchDB(
        player_id=record.player_id,
        opponent_type=record.opponent_type.value,
        opponent_id=record.opponent_id,
        live_match_id=record.live_match_id,
        result=record.result.value,
        trophies_gained=record.trophies_gained,
        trophies_lost=record.trophies_lost,
        duration_seconds=record.duration_seconds,
        cards_played=list(record.cards_played),
    )
    session.add(db_record)
    await session.flush()
    return db_record


async def has_match_record(session: AsyncSession, player_id: str, live_match_id: int) -> bool:
    """True if the player's result for this live match is already recorded."""
    result = await session.execute(
        select(func.count())
        .select_from(BattleMatchDB)
        .where(
            BattleMatchDB.player_id == player_id,
            BattleMatchDB.live_match_id == live_match_id,
        )
    )
    return int(result.scalar_one()) > 0


async def get_recent_matches(
    session: AsyncSession, player_id: str, limit: int = 10
) -> list[BattleMatchDB]:
    """Get a player's most recent match history entries, newest first."""
    result = await session.execute(
        select(BattleMatchDB)
        .where(BattleMatchDB.player_id == player_id)
        .order_by(BattleMatchDB.played_at.desc(), BattleMatchDB.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def match_record_to_model(db_record: BattleMatchDB) -> BattleMatchRecord:
    """Convert a database history entry to a domain model."""
    return BattleMatchRecord(
        player_id=db_record.player_id,
        opponent_type=OpponentType(db_record.opponent_type),
        opponent_id=db_record.opponent_id,
        live_match_id=db_record.live_match_id,
        result=MatchResult(db_record.result),
        trophies_gained=db_record.trophies_gained,
        trophies_lost=db_record.trophies_lost,
        duration_seconds=db_record.duration_seconds,
        cards_played=list(db_record.cards_played or []),
        played_at=db_record.played_at,
    )


# --- Stats Operations ---


async def get_player_stats(session: AsyncSession, user_id: str) -> PlayerBattleStatsDB | None:
    """Get a player's aggregate stats. Returns None if they never played."""
    result = await session.execute(
        select(PlayerBattleStatsDB)
        .where(PlayerBattleStatsDB.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_player_stats(
    session: AsyncSession, user_id: str
) -> tuple[PlayerBattleStatsDB, bool]:
    """
    Get existing stats or create a zeroed row.

    Returns:
        Tuple of (stats, created) where created is True if new.
    """
    stats = await get_player_stats(session, user_id)
    if stats:
        return stats, False

    stats = PlayerBattleStatsDB(
        user_id=user_id,
        trophies=0,
        arena_level=0,
        total_wins=0,
        total_losses=0,
        total_draws=0,
        win_streak=0,
        best_win_streak=0,
        highest_trophies=0,
        total_cards_unlocked=0,
    )
    session.add(stats)
    await session.flush()
    return stats, True


async def save_player_stats(session: AsyncSession, stats: PlayerBattleStats) -> PlayerBattleStatsDB:
    """Upsert a player's aggregate stats from the domain model."""
    db_stats, _ = await get_or_create_player_stats(session, stats.user_id)
    db_stats.trophies = stats.trophies
    db_stats.arena_level = stats.arena_level
    db_stats.total_wins = stats.total_wins
    db_stats.total_losses = stats.total_losses
    db_stats.total_draws = stats.total_draws
    db_stats.win_streak = stats.win_streak
    db_stats.best_win_streak = stats.best_win_streak
    db_stats.highest_trophies = stats.highest_trophies
    db_stats.total_cards_unlocked = stats.total_cards_unlocked
    db_stats.favorite_card_id = stats.favorite_card_id
    await session.flush()
    return db_stats


def stats_to_model(db_stats: PlayerBattleStatsDB) -> PlayerBattleStats:
    """Convert database stats to a domain model."""
    return PlayerBattleStats(
        user_id=db_stats.user_id,
        trophies=db_stats.trophies,
        arena_level=db_stats.arena_level,
        total_wins=db_stats.total_wins,
        total_losses=db_stats.total_losses,
        total_draws=db_stats.total_draws,
        win_streak=db_stats.win_streak,
        best_win_streak=db_stats.best_win_streak,
        highest_trophies=db_stats.highest_trophies,
        total_cards_unlocked=db_stats.total_cards_unlocked,
        favorite_card_id=db_stats.favorite_card_id,
    )


async def get_leaderboard(session: AsyncSession, limit: int = 100) -> list[PlayerBattleStatsDB]:
    """Get the top players ordered by trophies."""
    result = await session.execute(
        select(PlayerBattleStatsDB)
        .order_by(PlayerBattleStatsDB.trophies.desc(), PlayerBattleStatsDB.total_wins.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_players_above(session: AsyncSession, trophies: int) -> int:
    """Number of players holding strictly more trophies."""
    result = await session.execute(
        select(func.count())
        .select_from(PlayerBattleStatsDB)
        .where(PlayerBattleStatsDB.trophies > trophies)
    )
    return int(result.scalar_one())


# --- Friends Operations ---


async def get_friendship(session: AsyncSession, friendship_id: int) -> FriendshipDB | None:
    """Get a friendship or friend request by id."""
    return await session.get(FriendshipDB, friendship_id)


async def get_friendship_between(
    session: AsyncSession, user_a: str, user_b: str
) -> FriendshipDB | None:
    """Get the friendship between two players in either direction."""
    result = await session.execute(
        select(FriendshipDB).where(
            or_(
                (FriendshipDB.user_id == user_a) & (FriendshipDB.friend_id == user_b),
                (FriendshipDB.user_id == user_b) & (FriendshipDB.friend_id == user_a),
            )
        )
    )
    return result.scalars().first()


async def create_friend_request(
    session: AsyncSession, user_id: str, friend_id: str
) -> FriendshipDB:
    """Create a pending friend request from `user_id` to `friend_id`."""
    friendship = FriendshipDB(user_id=user_id, friend_id=friend_id, status="pending")
    session.add(friendship)
    await session.flush()
    return friendship


async def accept_friendship(session: AsyncSession, friendship: FriendshipDB) -> FriendshipDB:
    """Mark a pending request as accepted."""
    friendship.status = "accepted"
    friendship.accepted_at = _now()
    await session.flush()
    return friendship


async def delete_friendship(session: AsyncSession, friendship: FriendshipDB) -> None:
    """Reject a request or remove a friend."""
    await session.delete(friendship)
    await session.flush()


async def list_friends(session: AsyncSession, user_id: str) -> list[FriendshipDB]:
    """Accepted friendships in either direction."""
    result = await session.execute(
        select(FriendshipDB)
        .where(
            or_(FriendshipDB.user_id == user_id, FriendshipDB.friend_id == user_id),
            FriendshipDB.status == "accepted",
        )
        .order_by(FriendshipDB.id)
    )
    return list(result.scalars().all())


async def list_pending_requests(session: AsyncSession, user_id: str) -> list[FriendshipDB]:
    """Pending requests addressed to `user_id`."""
    result = await session.execute(
        select(FriendshipDB)
        .where(FriendshipDB.friend_id == user_id, FriendshipDB.status == "pending")
        .order_by(FriendshipDB.id)
    )
    return list(result.scalars().all())


# --- Emote Operations ---


async def create_emote(
    session: AsyncSession, match_id: int, user_id: str, emote_type: str, emoji: str
) -> BattleEmoteDB:
    """Record an emote sent during a match."""
    emote = BattleEmoteDB(
        match_id=match_id,
        user_id=user_id,
        emote_type=emote_type,
        emote_emoji=emoji,
    )
    session.add(emote)
    await session.flush()
    return emote
