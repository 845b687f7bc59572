"""Typed domain exceptions for game and player rule violations.

Every failure the core can signal is a subclass of GameRuleError. The
HTTP layer maps each subclass to a status code; nothing inside the core
retries or swallows them.
"""


class GameRuleError(Exception):
    """Base exception for business-rule violations.

    Raised by the state machine and the registries. Failed operations
    leave all game and player state unchanged.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(GameRuleError):
    """Referenced game or player id does not exist."""


class ConflictError(GameRuleError):
    """Value collides with existing state (duplicate email)."""


class InvalidStateError(GameRuleError):
    """Operation is not valid for the current game status or turn."""


class InvalidArgumentError(GameRuleError):
    """Argument is out of range or not recognized (position, page, sort key)."""
