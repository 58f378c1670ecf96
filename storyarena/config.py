from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "StoryArena"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/storyarena"

    # Matchmaking
    trophy_window: int = 200
    matchmaking_poll_interval: float = 3.0
    matchmaking_max_failures: int = 3
    # Off by default: only the candidate's trophies are checked against the
    # searcher's window. Enabling also checks the searcher against the candidate.
    matchmaking_symmetric_window: bool = False

    # Battles
    battle_deck_size: int = 8
    ai_random_seed: int | None = None
    # Running AI battles untouched for this long are dropped
    ai_battle_idle_seconds: float = 1800.0


settings = Settings()


# =============================================================================
# LONG-POLL LIMITS
# =============================================================================

# Upper bound for a single /wait request, in seconds
MAX_WAIT_SECONDS = 30.0
