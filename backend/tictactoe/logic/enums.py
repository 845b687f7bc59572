"""
String enum definitions for tic-tac-toe game concepts.
"""

from enum import StrEnum


class GameStatus(StrEnum):
    """Lifecycle status of a game. WAITING -> ACTIVE -> COMPLETED | DRAW."""

    WAITING = "WAITING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DRAW = "DRAW"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({GameStatus.COMPLETED, GameStatus.DRAW})


class Symbol(StrEnum):
    """Mark placed on the board. The first player to join plays X."""

    X = "X"
    O = "O"  # noqa: E741


# join order -> symbol
SYMBOLS_BY_JOIN_ORDER: tuple[Symbol, Symbol] = (Symbol.X, Symbol.O)


class GameListing(StrEnum):
    """Named status groupings for game listings."""

    ACTIVE = "active"
    WAITING = "waiting"
    FINISHED = "finished"  # COMPLETED or DRAW


class GameSort(StrEnum):
    """Explicit orderings for game listings."""

    RECENT = "recent"  # newest created first
    MOVES = "moves"  # most moves first


class LeaderboardSort(StrEnum):
    """Stat used to rank players on the leaderboard, descending."""

    WINRATE = "winrate"
    WINS = "wins"
    EFFICIENCY = "efficiency"
    PLAYED = "played"
