from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tictactoe.logic.enums import GameStatus, Symbol
from tictactoe.logic.state import Game
from tictactoe.registry.games import GameRegistry
from tictactoe.registry.players import PlayerRegistry
from tictactoe.service import TicTacToeService

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tictactoe.logic.state import Player

# X takes the left column {0, 3, 6} on its third move.
LEFT_COLUMN_WIN = (0, 1, 3, 4, 6)
# Fills the board with no line owned by either symbol:
#   X O X
#   X O O
#   O X X
FULL_BOARD_DRAW = (0, 1, 2, 4, 3, 5, 7, 6, 8)


def create_game(
    *,
    name: str = "G",
    x_id: str = "px",
    o_id: str = "po",
    board: Iterable[Symbol | None] | None = None,
    status: GameStatus = GameStatus.ACTIVE,
    current_player_id: str | None = None,
) -> Game:
    """Build a Game directly, bypassing the join flow. Defaults to an ACTIVE game with X to move."""
    return Game(
        name=name,
        status=status,
        board=list(board) if board is not None else [None] * 9,
        player_ids=[x_id, o_id],
        symbols={x_id: Symbol.X, o_id: Symbol.O},
        current_player_id=current_player_id if current_player_id is not None else x_id,
    )


def start_game(service: TicTacToeService, name: str = "G") -> tuple[Game, Player, Player]:
    """Create a game and two players and seat them. The first player returned plays X."""
    game = service.create_game(name)
    alice = service.create_player("Alice", "alice@example.com")
    bob = service.create_player("Bob", "bob@example.com")
    service.add_player_to_game(game.id, alice.id)
    game = service.add_player_to_game(game.id, bob.id)
    return game, alice, bob


def play(service: TicTacToeService, game_id: str, first_id: str, second_id: str, positions: Iterable[int]) -> None:
    """Submit positions alternately for the two players, first player first."""
    for index, position in enumerate(positions):
        service.make_move(game_id, first_id if index % 2 == 0 else second_id, position)


@pytest.fixture
def player_registry() -> PlayerRegistry:
    return PlayerRegistry()


@pytest.fixture
def game_registry(player_registry: PlayerRegistry) -> GameRegistry:
    return GameRegistry(player_registry)


@pytest.fixture
def service(player_registry: PlayerRegistry, game_registry: GameRegistry) -> TicTacToeService:
    return TicTacToeService(player_registry, game_registry)
