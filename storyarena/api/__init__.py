from storyarena.api.ai_battles import router as ai_battles_router
from storyarena.api.cards import router as cards_router
from storyarena.api.friends import router as friends_router
from storyarena.api.health import router as health_router
from storyarena.api.matches import router as matches_router
from storyarena.api.matchmaking import router as matchmaking_router
from storyarena.api.stats import router as stats_router

__all__ = [
    "ai_battles_router",
    "cards_router",
    "friends_router",
    "health_router",
    "matches_router",
    "matchmaking_router",
    "stats_router",
]
