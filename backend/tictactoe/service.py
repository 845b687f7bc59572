"""
Function-call contract between the HTTP layer and the game core.

TicTacToeService owns one GameRegistry and one PlayerRegistry, built once
at process start and injected wherever needed. Every method returns a
value or raises a GameRuleError subclass (NotFoundError, ConflictError,
InvalidStateError, InvalidArgumentError).
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from shared.storage import InMemoryStore, JsonFileStore
from tictactoe.logic.enums import GameListing
from tictactoe.logic.state import Game, Player
from tictactoe.registry.games import GameRegistry
from tictactoe.registry.players import PlayerRegistry

if TYPE_CHECKING:
    from datetime import datetime

    from tictactoe.logic.enums import GameSort, GameStatus, LeaderboardSort, Symbol
    from tictactoe.logic.game import MoveResult
    from tictactoe.logic.state import Move
    from tictactoe.logic.stats import PlayerStats
    from tictactoe.registry.pagination import Page


class TicTacToeService:
    def __init__(self, players: PlayerRegistry | None = None, games: GameRegistry | None = None) -> None:
        self.players = players if players is not None else PlayerRegistry()
        self.games = games if games is not None else GameRegistry(self.players)

    @classmethod
    def from_data_dir(cls, data_dir: str | Path | None) -> TicTacToeService:
        """Build a service backed by JSON files under data_dir, or in memory when it is None."""
        if data_dir is None:
            players = PlayerRegistry(InMemoryStore[Player]())
            return cls(players, GameRegistry(players, InMemoryStore[Game]()))
        root = Path(data_dir)
        players = PlayerRegistry(JsonFileStore(root / "players", Player))
        return cls(players, GameRegistry(players, JsonFileStore(root / "games", Game)))

    # --- games ---

    def create_game(self, name: str) -> Game:
        return self.games.create(name)

    def get_game(self, game_id: str) -> Game:
        return self.games.get(game_id)

    def list_games(
        self,
        status: str | GameStatus | None = None,
        *,
        listing: GameListing | None = None,
        player_id: str | None = None,
        name_contains: str | None = None,
        sort: str | GameSort | None = None,
        limit: int | None = None,
    ) -> list[Game]:
        return self.games.list_games(
            status=status,
            listing=listing,
            player_id=player_id,
            name_contains=name_contains,
            sort=sort,
            limit=limit,
        )

    def games_created_between(self, start: datetime, end: datetime) -> list[Game]:
        return self.games.list_games(created_after=start, created_before=end)

    def player_active_games(self, player_id: str) -> list[Game]:
        return self.games.list_games(listing=GameListing.ACTIVE, player_id=player_id)

    def add_player_to_game(self, game_id: str, player_id: str) -> Game:
        return self.games.add_player(game_id, player_id)

    def make_move(self, game_id: str, player_id: str, position: int) -> MoveResult:
        return self.games.make_move(game_id, player_id, position)

    def get_game_status(self, game_id: str) -> GameStatus:
        return self.games.get_status(game_id)

    def get_game_board(self, game_id: str) -> list[Symbol | None]:
        return self.games.get_board(game_id)

    def _resolve_player(self, player_id: str | None) -> Player | None:
        if player_id is None:
            return None
        return self.players.get(player_id)

    def get_current_player(self, game_id: str) -> Player | None:
        """Player whose turn it is; None until two players have joined."""
        return self._resolve_player(self.games.get_current_player_id(game_id))

    def get_winner(self, game_id: str) -> Player | None:
        """Winning player; None unless the game is COMPLETED."""
        return self._resolve_player(self.games.get_winner_id(game_id))

    def get_game_moves(self, game_id: str) -> list[Move]:
        return self.games.get_moves(game_id)

    def delete_game(self, game_id: str) -> bool:
        return self.games.delete(game_id)

    def count_games(self) -> int:
        return self.games.count()

    # --- players ---

    def create_player(self, name: str, email: str) -> Player:
        return self.players.create(name, email)

    def get_player(self, player_id: str) -> Player:
        return self.players.get(player_id)

    def get_player_by_email(self, email: str) -> Player:
        return self.players.get_by_email(email)

    def players_created_between(self, start: datetime, end: datetime) -> list[Player]:
        return self.players.created_between(start, end)

    def search_players(self, name: str | None = None) -> list[Player]:
        return self.players.search_by_name(name)

    def update_player(self, player_id: str, name: str, email: str) -> Player:
        return self.players.update(player_id, name, email)

    def delete_player(self, player_id: str) -> bool:
        return self.players.delete(player_id)

    def get_player_stats(self, player_id: str) -> PlayerStats:
        return self.players.get_stats(player_id)

    def leaderboard(self, limit: int = 10, sort: str | LeaderboardSort | None = None) -> list[Player]:
        return self.players.leaderboard(limit, sort)

    def leaderboard_paginated(
        self,
        page: int = 0,
        size: int = 10,
        sort: str | LeaderboardSort | None = None,
    ) -> Page[Player]:
        return self.players.leaderboard_paginated(page, size, sort)

    def most_active_players(self, limit: int = 10) -> list[Player]:
        return self.players.most_active(limit)

    def most_efficient_players(self, limit: int = 10) -> list[Player]:
        return self.players.most_efficient(limit)

    def count_players(self) -> int:
        return self.players.count()
