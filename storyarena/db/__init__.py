from storyarena.db.database import get_session, init_db
from storyarena.db.operations import (
    accept_friendship,
    add_player_cards,
    apply_card_upgrade,
    card_to_model,
    claim_queue_entry,
    count_player_cards,
    count_players_above,
    create_emote,
    create_friend_request,
    create_live_match,
    create_queue_entry,
    delete_friendship,
    delete_queue_entry,
    find_waiting_opponent,
    get_active_match_between,
    get_active_match_for_player,
    get_card,
    get_card_by_name,
    get_friendship,
    get_friendship_between,
    get_leaderboard,
    get_live_match,
    get_or_create_player_stats,
    get_player_card,
    get_player_card_for,
    get_player_cards,
    get_player_stats,
    get_queue_entry,
    get_recent_matches,
    grant_card_copies,
    has_match_record,
    list_cards,
    list_friends,
    list_pending_requests,
    live_match_to_model,
    match_record_to_model,
    player_card_to_model,
    record_battle_match,
    save_match_transition,
    save_player_stats,
    stats_to_model,
    upsert_card,
)

__all__ = [
    "accept_friendship",
    "add_player_cards",
    "apply_card_upgrade",
    "card_to_model",
    "claim_queue_entry",
    "count_player_cards",
    "count_players_above",
    "create_emote",
    "create_friend_request",
    "create_live_match",
    "create_queue_entry",
    "delete_friendship",
    "delete_queue_entry",
    "find_waiting_opponent",
    "get_active_match_between",
    "get_active_match_for_player",
    "get_card",
    "get_card_by_name",
    "get_friendship",
    "get_friendship_between",
    "get_leaderboard",
    "get_live_match",
    "get_or_create_player_stats",
    "get_player_card",
    "get_player_card_for",
    "get_player_cards",
    "get_player_stats",
    "get_queue_entry",
    "get_recent_matches",
    "get_session",
    "grant_card_copies",
    "has_match_record",
    "init_db",
    "list_cards",
    "list_friends",
    "list_pending_requests",
    "live_match_to_model",
    "match_record_to_model",
    "player_card_to_model",
    "record_battle_match",
    "save_match_transition",
    "save_player_stats",
    "stats_to_model",
    "upsert_card",
]
