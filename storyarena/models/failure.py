"""
Failure Envelope: classified errors for every battle operation.

Every precondition violation raised by the battle service is a subclass of
`KnownError`. The API layer renders it through a single exception handler
into an `ApiResponse` with `outcome = known_failure`, so the caller always
learns what went wrong and whether retrying makes sense.

INVARIANT: A failed precondition never mutates state. The turn is retained,
card levels and quantities are unchanged, queue entries are untouched.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"

    # Resource failures
    NOT_FOUND = "not_found"
    MATCH_NOT_FOUND = "match_not_found"
    CONFLICT = "conflict"

    # Battle preconditions
    NOT_YOUR_TURN = "not_your_turn"
    INSUFFICIENT_ELIXIR = "insufficient_elixir"
    MATCH_NOT_ACTIVE = "match_not_active"
    NOT_A_PARTICIPANT = "not_a_participant"
    STALE_MATCH = "stale_match"

    # Card upgrade preconditions
    MAX_LEVEL_REACHED = "max_level_reached"
    INSUFFICIENT_CARDS = "insufficient_cards"

    # Collaborator failures
    PERSISTENCE_FAILURE = "persistence_failure"


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    SUCCESS = "success"
    KNOWN_FAILURE = "known_failure"


T = TypeVar("T")


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="Player-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the player",
    )
    retryable: bool = Field(
        default=False,
        description="True if the same request may succeed when retried",
    )


class ApiResponse(BaseModel, Generic[T]):
    """Response envelope used for failures surfaced by the API."""

    outcome: OutcomeType
    data: T | None = None
    failure: FailureDetail | None = None

    @classmethod
    def success(cls, data: T) -> "ApiResponse[T]":
        """Create a success response."""
        return cls(outcome=OutcomeType.SUCCESS, data=data)

    @classmethod
    def known_failure(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        retryable: bool = False,
    ) -> "ApiResponse[Any]":
        """Create a known failure response."""
        return cls(
            outcome=OutcomeType.KNOWN_FAILURE,
            failure=FailureDetail(
                kind=kind,
                message=message,
                detail=detail,
                suggestion=suggestion,
                retryable=retryable,
            ),
        )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    retryable: bool = False

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ApiResponse[Any]:
        """Convert to an ApiResponse."""
        return ApiResponse.known_failure(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
            retryable=self.retryable,
        )


# =============================================================================
# BATTLE PRECONDITIONS
# =============================================================================


class NotYourTurnError(KnownError):
    """Raised when someone other than the turn holder submits an action."""

    def __init__(self, actor_id: str, current_turn: str):
        self.actor_id = actor_id
        self.current_turn = current_turn
        super().__init__(
            kind=FailureKind.NOT_YOUR_TURN,
            message="It's not your turn yet. Wait for your opponent to play.",
            detail=f"current_turn={current_turn}",
            status_code=409,
        )


class InsufficientElixirError(KnownError):
    """Raised when the actor cannot afford the card. The turn is kept."""

    def __init__(self, cost: int, available: int):
        self.cost = cost
        self.available = available
        super().__init__(
            kind=FailureKind.INSUFFICIENT_ELIXIR,
            message="Not enough elixir!",
            detail=f"Card costs {cost}, you have {available}",
            suggestion="Pick a cheaper card.",
            status_code=400,
        )


class MatchNotActiveError(KnownError):
    """Raised when an action targets a completed match."""

    def __init__(self, match_id: int | str):
        self.match_id = match_id
        super().__init__(
            kind=FailureKind.MATCH_NOT_ACTIVE,
            message="This battle is already over.",
            detail=f"match {match_id} is completed",
            suggestion="Return to the menu to start a new battle.",
            status_code=409,
        )


class NotAParticipantError(KnownError):
    """Raised when a player acts on a match they are not part of."""

    def __init__(self, player_id: str, match_id: int | str):
        self.player_id = player_id
        self.match_id = match_id
        super().__init__(
            kind=FailureKind.NOT_A_PARTICIPANT,
            message="You are not playing in this battle.",
            detail=f"player {player_id} is not in match {match_id}",
            status_code=403,
        )


class StaleMatchError(KnownError):
    """Raised when the match moved on between read and write."""

    retryable = True

    def __init__(self, match_id: int | str, expected_turn: int):
        self.match_id = match_id
        self.expected_turn = expected_turn
        super().__init__(
            kind=FailureKind.STALE_MATCH,
            message="The battle changed before your move arrived.",
            detail=f"match {match_id} is no longer at turn {expected_turn}",
            suggestion="Refresh the battle and try again.",
            status_code=409,
        )


class MatchNotFoundError(KnownError):
    """Raised for a stale or unknown match reference."""

    def __init__(self, match_id: int | str):
        self.match_id = match_id
        super().__init__(
            kind=FailureKind.MATCH_NOT_FOUND,
            message="This battle could not be found.",
            detail=f"match {match_id}",
            suggestion="Return to the menu.",
            status_code=404,
        )


# =============================================================================
# CARD UPGRADE PRECONDITIONS
# =============================================================================


class MaxLevelReachedError(KnownError):
    """Raised when upgrading a card that is already at the level cap."""

    def __init__(self, level: int):
        self.level = level
        super().__init__(
            kind=FailureKind.MAX_LEVEL_REACHED,
            message="This card is already at max level!",
            detail=f"level={level}",
            status_code=400,
        )


class InsufficientCardsError(KnownError):
    """Raised when a player does not hold enough copies to upgrade."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            kind=FailureKind.INSUFFICIENT_CARDS,
            message=f"Need {required} cards to upgrade! You have {available}",
            detail=f"required={required} available={available}",
            suggestion="Win battles to collect more copies.",
            status_code=400,
        )


# =============================================================================
# COLLABORATOR FAILURES
# =============================================================================


class PersistenceFailureError(KnownError):
    """Raised when a database write fails. Safe to retry."""

    retryable = True

    def __init__(self, operation: str, detail: str | None = None):
        self.operation = operation
        super().__init__(
            kind=FailureKind.PERSISTENCE_FAILURE,
            message="Something went wrong saving your move. Please try again.",
            detail=detail or operation,
            suggestion="Retry the action.",
            status_code=503,
        )


class ResourceNotFoundError(KnownError):
    """Raised when a card, player card or friendship does not exist."""

    def __init__(self, resource: str, key: int | str):
        self.resource = resource
        self.key = key
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"{resource} not found",
            detail=f"{resource} {key}",
            status_code=404,
        )


class ConflictError(KnownError):
    """Raised when a request collides with existing state."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.CONFLICT,
            message=message,
            detail=detail,
            status_code=409,
        )


class InvalidInputError(KnownError):
    """Raised for requests that can never succeed as written."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.INVALID_INPUT,
            message=message,
            detail=detail,
            status_code=400,
        )
