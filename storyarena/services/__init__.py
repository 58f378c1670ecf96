"""
StoryArena services.

Business logic for matchmaking, battles, settlement and the card inventory.
"""

from storyarena.services.ai_opponent import AIBattleRegistry, AIBattleSession, take_turn
from storyarena.services.battle_engine import PlayCard, apply_action, validate_play
from storyarena.services.change_feed import ChangeEvent, ChangeFeed, Subscription, change_feed
from storyarena.services.settlement import (
    SettlementReport,
    apply_outcome,
    settle_ai_battle,
    settle_live_match,
)

__all__ = [
    "AIBattleRegistry",
    "AIBattleSession",
    "ChangeEvent",
    "ChangeFeed",
    "PlayCard",
    "SettlementReport",
    "Subscription",
    "apply_action",
    "apply_outcome",
    "change_feed",
    "settle_ai_battle",
    "settle_live_match",
    "take_turn",
    "validate_play",
]
