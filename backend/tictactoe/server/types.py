"""Request and response bodies for the HTTP API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tictactoe.logic.board import BOARD_SIZE
from tictactoe.logic.enums import GameStatus, Symbol
from tictactoe.logic.game import MoveOutcome
from tictactoe.logic.state import Game, Move

_ID_PATTERN = r"^[a-zA-Z0-9-]+$"


class CreateGameRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)


class AddPlayerRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    player_id: str = Field(min_length=1, max_length=100, pattern=_ID_PATTERN)


class MakeMoveRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    player_id: str = Field(min_length=1, max_length=100, pattern=_ID_PATTERN)
    # range is enforced by the game rules so that the rejection maps to InvalidArgument
    position: int = Field(strict=True)


class PlayerRequest(BaseModel):
    """Body for creating or updating a player."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)


class GameSeat(BaseModel):
    player_id: str
    symbol: Symbol


class GameView(BaseModel):
    """Game as exposed over HTTP. Move history is served separately."""

    id: str
    name: str
    status: GameStatus
    board: list[Symbol | None] = Field(min_length=BOARD_SIZE, max_length=BOARD_SIZE)
    players: list[GameSeat]
    current_player_id: str | None
    winner_id: str | None
    move_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_game(cls, game: Game) -> "GameView":
        return cls(
            id=game.id,
            name=game.name,
            status=game.status,
            board=game.board,
            players=[GameSeat(player_id=pid, symbol=game.symbols[pid]) for pid in game.player_ids],
            current_player_id=game.current_player_id,
            winner_id=game.winner_id,
            move_count=len(game.moves),
            created_at=game.created_at,
            updated_at=game.updated_at,
        )


class MoveResponse(BaseModel):
    move: Move
    outcome: MoveOutcome
    status: GameStatus
    next_player_id: str | None
    game: GameView
