"""
Game state machine: joining, turn order, move application and game end.

Functions mutate the Game passed in, and on a terminal transition the
PlayerStats of both participants, in one call. Callers hold the game's
lock (and the players' locks) around each call so that the status change
and the stats update are observed together.

All checks run before any mutation; a rejected call leaves everything
untouched.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

from tictactoe.logic.board import is_draw, is_valid_position, is_win
from tictactoe.logic.enums import SYMBOLS_BY_JOIN_ORDER, GameStatus
from tictactoe.logic.exceptions import InvalidArgumentError, InvalidStateError
from tictactoe.logic.state import MAX_PLAYERS, Game, Move, utcnow

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tictactoe.logic.stats import PlayerStats

logger = structlog.get_logger()


class MoveOutcome(StrEnum):
    CONTINUE = "continue"
    WIN = "win"
    DRAW = "draw"


class MoveResult(BaseModel):
    """What an accepted move did, along with the game it was applied to."""

    game: Game
    move: Move
    outcome: MoveOutcome
    status: GameStatus
    next_player_id: str | None = None


def add_player(game: Game, player_id: str) -> None:
    """Seat a player. The second join starts the game with the first joiner to move."""
    if game.status != GameStatus.WAITING:
        raise InvalidStateError("Game is not accepting new players")
    if game.is_full:  # pragma: no cover, a full game is never WAITING
        raise InvalidStateError("Game is full")
    if game.has_player(player_id):
        raise InvalidStateError("Player is already in the game")

    game.symbols[player_id] = SYMBOLS_BY_JOIN_ORDER[len(game.player_ids)]
    game.player_ids.append(player_id)
    game.updated_at = utcnow()
    logger.info("player joined", game_id=game.id, player_id=player_id, symbol=game.symbols[player_id])

    if len(game.player_ids) == MAX_PLAYERS:
        game.status = GameStatus.ACTIVE
        game.current_player_id = game.player_ids[0]
        logger.info("game started", game_id=game.id, first_player_id=game.current_player_id)


def _validate_move(game: Game, player_id: str, position: int) -> None:
    if game.status != GameStatus.ACTIVE:
        raise InvalidStateError(f"Game is not active (status {game.status})")
    if not game.has_player(player_id):
        raise InvalidStateError("Player is not in this game")
    if player_id != game.current_player_id:
        raise InvalidStateError("Not player's turn")
    if not is_valid_position(position):
        raise InvalidArgumentError(f"Move position must be between 0 and 8, got {position}")
    if game.board[position] is not None:
        raise InvalidStateError(f"Position {position} is already occupied")


def _record_finished_game(game: Game, stats: Mapping[str, PlayerStats]) -> None:
    for pid in game.player_ids:
        player_stats = stats.get(pid)
        if player_stats is None:
            logger.warning("player missing at game end, stats not updated", game_id=game.id, player_id=pid)
            continue
        player_stats.increment_games_played()
        # one unit per finished game, not per placed mark
        player_stats.add_moves(1)
        if game.status == GameStatus.DRAW:
            player_stats.increment_games_drawn()
        elif pid == game.winner_id:
            player_stats.increment_games_won()
        else:
            player_stats.increment_games_lost()


def make_move(
    game: Game,
    player_id: str,
    position: int,
    stats: Mapping[str, PlayerStats],
) -> MoveResult:
    """Place the current player's mark and advance the game.

    stats maps player id to the PlayerStats to update when the game ends.
    A participant missing from it (deleted player) is skipped.
    """
    _validate_move(game, player_id, position)

    symbol = game.symbols[player_id]
    game.board[position] = symbol
    move = Move(
        game_id=game.id,
        player_id=player_id,
        position=position,
        symbol=symbol,
        move_number=len(game.moves) + 1,
    )
    game.moves.append(move)
    game.updated_at = move.created_at

    if is_win(game.board, symbol):
        game.status = GameStatus.COMPLETED
        game.winner_id = player_id
        _record_finished_game(game, stats)
        logger.info("game completed", game_id=game.id, winner_id=player_id, moves=len(game.moves))
        return MoveResult(game=game, move=move, outcome=MoveOutcome.WIN, status=game.status)

    if is_draw(game.board):
        game.status = GameStatus.DRAW
        _record_finished_game(game, stats)
        logger.info("game drawn", game_id=game.id)
        return MoveResult(game=game, move=move, outcome=MoveOutcome.DRAW, status=game.status)

    next_player_id = game.opponent_of(player_id)
    game.current_player_id = next_player_id
    logger.debug("move accepted", game_id=game.id, player_id=player_id, position=position, symbol=symbol)
    return MoveResult(
        game=game,
        move=move,
        outcome=MoveOutcome.CONTINUE,
        status=game.status,
        next_player_id=next_player_id,
    )
