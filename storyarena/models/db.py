"""
SQLAlchemy ORM models for persistent storage.

Models mirror the dataclass models but add database persistence.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """
    Base class for all ORM models.

    Server-generated timestamps are fetched on flush so they can be read
    without a lazy load under asyncio.
    """

    __mapper_args__ = {"eager_defaults": True}


class BattleCardDB(Base):
    """
    A catalog card definition.

    Seeded once by the catalog job and read-only afterwards.
    """

    __tablename__ = "battle_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    emoji: Mapped[str] = mapped_column(String(16), default="")
    card_type: Mapped[str] = mapped_column(String(20))
    rarity: Mapped[str] = mapped_column(String(20), index=True)
    cost: Mapped[int] = mapped_column(Integer)
    health: Mapped[int] = mapped_column(Integer, default=0)
    attack: Mapped[int] = mapped_column(Integer, default=0)
    special_ability: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    unlock_arena: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<BattleCardDB(name={self.name}, cost={self.cost})>"


class PlayerCardDB(Base):
    """
    Card ownership record.

    Tracks how many copies of a catalog card a player owns and its level.
    """

    __tablename__ = "player_cards"
    __table_args__ = (UniqueConstraint("user_id", "card_id", name="uq_player_card"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    card_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("battle_cards.id", ondelete="CASCADE"), index=True
    )
    level: Mapped[int] = mapped_column(Integer, default=1)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    card: Mapped["BattleCardDB"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<PlayerCardDB(user={self.user_id}, card={self.card_id}, lvl={self.level})>"


class MatchmakingQueueDB(Base):
    """
    A player waiting for an opponent.

    At most one row per player; the row is deleted once a match is formed.
    """

    __tablename__ = "battle_matchmaking_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    trophy_count: Mapped[int] = mapped_column(Integer, index=True)
    trophy_range_min: Mapped[int] = mapped_column(Integer)
    trophy_range_max: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default="waiting", index=True)
    matched_with: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<MatchmakingQueueDB(user={self.user_id}, status={self.status})>"


class LiveMatchDB(Base):
    """
    The authoritative record of an in-progress battle.

    Written only through a compare-and-swap on turn_number.
    """

    __tablename__ = "battle_live_matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    player1_id: Mapped[str] = mapped_column(String(255), index=True)
    player2_id: Mapped[str] = mapped_column(String(255), index=True)
    current_turn: Mapped[str] = mapped_column(String(255))
    turn_number: Mapped[int] = mapped_column(Integer, default=0)
    player1_health: Mapped[int] = mapped_column(Integer)
    player2_health: Mapped[int] = mapped_column(Integer)
    player1_elixir: Mapped[int] = mapped_column(Integer)
    player2_elixir: Mapped[int] = mapped_column(Integer)

    # Units and log stored as JSON for flexibility
    units: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    battle_log: Mapped[list[str]] = mapped_column(JSON, default=list)

    status: Mapped[str] = mapped_column(String(20), default="active", index=True)
    winner_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    origin: Mapped[str] = mapped_column(String(30), default="matchmaking")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    last_action_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<LiveMatchDB(id={self.id}, turn={self.turn_number}, status={self.status})>"


class BattleMatchDB(Base):
    """
    Append-only match history entry, one per player per finished match.
    """

    __tablename__ = "battle_matches"
    __table_args__ = (
        UniqueConstraint("player_id", "live_match_id", name="uq_player_live_match"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    player_id: Mapped[str] = mapped_column(String(255), index=True)
    opponent_type: Mapped[str] = mapped_column(String(20))
    opponent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    live_match_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("battle_live_matches.id", ondelete="SET NULL"), nullable=True
    )
    result: Mapped[str] = mapped_column(String(10))
    trophies_gained: Mapped[int] = mapped_column(Integer, default=0)
    trophies_lost: Mapped[int] = mapped_column(Integer, default=0)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0)
    cards_played: Mapped[list[int]] = mapped_column(JSON, default=list)
    played_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<BattleMatchDB(player={self.player_id}, result={self.result})>"


class PlayerBattleStatsDB(Base):
    """
    Aggregate battle statistics, one row per player.
    """

    __tablename__ = "player_battle_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    trophies: Mapped[int] = mapped_column(Integer, default=0, index=True)
    arena_level: Mapped[int] = mapped_column(Integer, default=0)
    total_wins: Mapped[int] = mapped_column(Integer, default=0)
    total_losses: Mapped[int] = mapped_column(Integer, default=0)
    total_draws: Mapped[int] = mapped_column(Integer, default=0)
    win_streak: Mapped[int] = mapped_column(Integer, default=0)
    best_win_streak: Mapped[int] = mapped_column(Integer, default=0)
    highest_trophies: Mapped[int] = mapped_column(Integer, default=0)
    total_cards_unlocked: Mapped[int] = mapped_column(Integer, default=0)
    favorite_card_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<PlayerBattleStatsDB(user={self.user_id}, trophies={self.trophies})>"


class FriendshipDB(Base):
    """
    A friend request or accepted friendship between two players.
    """

    __tablename__ = "battle_friends"
    __table_args__ = (UniqueConstraint("user_id", "friend_id", name="uq_friend_pair"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    friend_id: Mapped[str] = mapped_column(String(255), index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<FriendshipDB({self.user_id} -> {self.friend_id}, {self.status})>"


class BattleEmoteDB(Base):
    """
    An emote sent by a participant during a live match.
    """

    __tablename__ = "battle_emotes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    match_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("battle_live_matches.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str] = mapped_column(String(255))
    emote_type: Mapped[str] = mapped_column(String(30))
    emote_emoji: Mapped[str] = mapped_column(String(16))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
