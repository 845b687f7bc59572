"""Game registry: creation, lookup, listing, and serialized per-game mutation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from shared.storage import InMemoryStore
from shared.validators import validate_name
from tictactoe.logic import game as game_rules
from tictactoe.logic.enums import TERMINAL_STATUSES, GameListing, GameSort, GameStatus
from tictactoe.logic.exceptions import InvalidArgumentError, NotFoundError
from tictactoe.logic.state import Game
from tictactoe.registry.locks import KeyedLocks

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from shared.storage import EntityStore
    from tictactoe.logic.enums import Symbol
    from tictactoe.logic.game import MoveResult
    from tictactoe.logic.state import Move
    from tictactoe.registry.players import PlayerRegistry

logger = structlog.get_logger()

_LISTING_STATUSES: dict[GameListing, frozenset[GameStatus]] = {
    GameListing.ACTIVE: frozenset({GameStatus.ACTIVE}),
    GameListing.WAITING: frozenset({GameStatus.WAITING}),
    GameListing.FINISHED: TERMINAL_STATUSES,
}

_SORT_KEYS: dict[GameSort, Callable[[Game], tuple]] = {
    GameSort.RECENT: lambda g: (g.created_at, g.id),
    GameSort.MOVES: lambda g: (len(g.moves), g.id),
}


def parse_game_status(value: str | GameStatus) -> GameStatus:
    try:
        return GameStatus(value.upper())
    except ValueError:
        raise InvalidArgumentError(f"Unknown game status {value!r}") from None


def parse_game_sort(value: str | GameSort) -> GameSort:
    try:
        return GameSort(value.lower())
    except ValueError:
        valid = ", ".join(s.value for s in GameSort)
        raise InvalidArgumentError(f"Unknown game sort {value!r}. Must be one of: {valid}") from None


class GameRegistry:
    """Owns game storage and serializes mutations per game id.

    add_player and make_move run load, mutate, save under the game's lock.
    make_move also takes both participants' player locks (after the game
    lock, in sorted id order) and stores their updated stats before the game
    itself, so no reader, locked or not, sees a finished game next to stale
    stats.
    """

    def __init__(self, players: PlayerRegistry, store: EntityStore[Game] | None = None) -> None:
        self._players = players
        self._store: EntityStore[Game] = store if store is not None else InMemoryStore[Game]()
        self._locks = KeyedLocks()

    def create(self, name: str) -> Game:
        try:
            name = validate_name(name, label="Game name")
        except ValueError as e:
            raise InvalidArgumentError(str(e)) from e
        game = Game(name=name)
        self._store.save(game)
        logger.info("game created", game_id=game.id, name=game.name)
        return game

    def _load(self, game_id: str) -> Game:
        game = self._store.load(game_id)
        if game is None:
            raise NotFoundError(f"Game {game_id} not found")
        return game

    def get(self, game_id: str) -> Game:
        with self._locks.hold(game_id):
            return self._load(game_id)

    def delete(self, game_id: str) -> bool:
        with self._locks.hold(game_id):
            deleted = self._store.delete(game_id)
        if deleted:
            logger.info("game deleted", game_id=game_id)
        return deleted

    def list_games(
        self,
        *,
        status: str | GameStatus | None = None,
        listing: GameListing | None = None,
        player_id: str | None = None,
        name_contains: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        sort: str | GameSort | None = None,
        limit: int | None = None,
    ) -> list[Game]:
        """Games matching every given filter.

        Unordered unless sort is given; sorted listings are descending
        (newest first, or most moves first) with game id as tie-breaker.
        """
        statuses: frozenset[GameStatus] | None = None
        if status is not None:
            statuses = frozenset({parse_game_status(status)})
        if listing is not None:
            wanted = _LISTING_STATUSES[listing]
            statuses = wanted if statuses is None else statuses & wanted
        term = name_contains.strip().lower() if name_contains and name_contains.strip() else None
        if limit is not None and limit < 0:
            raise InvalidArgumentError("Limit must be non-negative")
        sort_key = _SORT_KEYS[parse_game_sort(sort)] if sort is not None else None

        def matches(game: Game) -> bool:
            if statuses is not None and game.status not in statuses:
                return False
            if player_id is not None and not game.has_player(player_id):
                return False
            if term is not None and term not in game.name.lower():
                return False
            if created_after is not None and game.created_at <= created_after:
                return False
            return created_before is None or game.created_at < created_before

        games = self._store.scan(matches)
        if sort_key is not None:
            games.sort(key=sort_key, reverse=True)
        return games if limit is None else games[:limit]

    def count(self) -> int:
        return self._store.count()

    def clear(self) -> None:
        self._store.clear()

    def add_player(self, game_id: str, player_id: str) -> Game:
        """Seat an existing player. Raises NotFoundError for unknown game or player."""
        self._players.get(player_id)
        with self._locks.hold(game_id):
            game = self._load(game_id)
            game_rules.add_player(game, player_id)
            self._store.save(game)
        return game

    def make_move(self, game_id: str, player_id: str, position: int) -> MoveResult:
        with self._locks.hold(game_id):
            game = self._load(game_id)
            with self._players.locked_stats(game.player_ids) as stats:
                result = game_rules.make_move(game, player_id, position, stats)
            # players were saved on leaving locked_stats
            self._store.save(game)
        return result

    def get_status(self, game_id: str) -> GameStatus:
        return self.get(game_id).status

    def get_board(self, game_id: str) -> list[Symbol | None]:
        return list(self.get(game_id).board)

    def get_current_player_id(self, game_id: str) -> str | None:
        return self.get(game_id).current_player_id

    def get_winner_id(self, game_id: str) -> str | None:
        return self.get(game_id).winner_id

    def get_moves(self, game_id: str) -> list[Move]:
        return list(self.get(game_id).moves)

    def is_full(self, game_id: str) -> bool:
        return self.get(game_id).is_full

    def is_player_in_game(self, game_id: str, player_id: str) -> bool:
        return self.get(game_id).has_player(player_id)
