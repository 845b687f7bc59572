"""
Domain models for games, moves and players.

Games reference players by id only; a Player's lifetime is independent of
any game that mentions it. A Game exclusively owns its board and its
append-only move history.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field

from shared.storage import StoredEntity
from tictactoe.logic.board import BOARD_SIZE, empty_board, position_to_row_col
from tictactoe.logic.enums import GameStatus, Symbol
from tictactoe.logic.stats import PlayerStats

MAX_PLAYERS = 2


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


class Move(BaseModel):
    """A single accepted placement. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    game_id: str
    player_id: str
    position: int = Field(ge=0, lt=BOARD_SIZE)
    symbol: Symbol
    move_number: int = Field(ge=1, le=BOARD_SIZE)
    created_at: datetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def row(self) -> int:
        return position_to_row_col(self.position)[0]

    @computed_field
    @property
    def col(self) -> int:
        return position_to_row_col(self.position)[1]


class Game(StoredEntity):
    """
    State of a single tic-tac-toe game.

    player_ids preserves join order. symbols is fixed at join time (first
    joiner X, second O) and never re-derived from list position.
    winner_id is set if and only if status is COMPLETED.
    """

    id: str = Field(default_factory=new_id)
    name: str
    status: GameStatus = GameStatus.WAITING
    board: list[Symbol | None] = Field(default_factory=empty_board, min_length=BOARD_SIZE, max_length=BOARD_SIZE)
    player_ids: list[str] = Field(default_factory=list, max_length=MAX_PLAYERS)
    symbols: dict[str, Symbol] = Field(default_factory=dict)
    current_player_id: str | None = None
    winner_id: str | None = None
    moves: list[Move] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_full(self) -> bool:
        return len(self.player_ids) >= MAX_PLAYERS

    def has_player(self, player_id: str) -> bool:
        return player_id in self.player_ids

    def opponent_of(self, player_id: str) -> str | None:
        return next((pid for pid in self.player_ids if pid != player_id), None)


class Player(StoredEntity):
    """Player account with embedded statistics."""

    id: str = Field(default_factory=new_id)
    name: str
    email: str
    stats: PlayerStats = Field(default_factory=PlayerStats)
    created_at: datetime = Field(default_factory=utcnow)
