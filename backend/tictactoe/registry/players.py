"""Player registry: accounts, search, and leaderboard queries."""

from __future__ import annotations

import contextlib
import threading
from typing import TYPE_CHECKING

import structlog

from shared.storage import InMemoryStore
from shared.validators import normalize_email, validate_email, validate_name
from tictactoe.logic.enums import LeaderboardSort
from tictactoe.logic.exceptions import ConflictError, InvalidArgumentError, NotFoundError
from tictactoe.logic.state import Player
from tictactoe.registry.locks import KeyedLocks
from tictactoe.registry.pagination import paginate

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator
    from datetime import datetime

    from shared.storage import EntityStore
    from tictactoe.logic.stats import PlayerStats
    from tictactoe.registry.pagination import Page

logger = structlog.get_logger()

_SORT_VALUES: dict[LeaderboardSort, Callable[[PlayerStats], float]] = {
    LeaderboardSort.WINRATE: lambda s: s.win_rate,
    LeaderboardSort.WINS: lambda s: s.games_won,
    LeaderboardSort.EFFICIENCY: lambda s: s.efficiency,
    LeaderboardSort.PLAYED: lambda s: s.games_played,
}


def parse_leaderboard_sort(value: str | LeaderboardSort | None) -> LeaderboardSort:
    """Resolve a sort key, defaulting to win rate. Unknown keys raise InvalidArgumentError."""
    if value is None:
        return LeaderboardSort.WINRATE
    try:
        return LeaderboardSort(value.lower())
    except ValueError:
        valid = ", ".join(s.value for s in LeaderboardSort)
        raise InvalidArgumentError(f"Unknown sort key {value!r}. Must be one of: {valid}") from None


def _ranked(players: Iterable[Player], sort: LeaderboardSort) -> list[Player]:
    # descending by stat, then player id ascending for reproducible ties
    value_of = _SORT_VALUES[sort]
    return sorted(players, key=lambda p: (-value_of(p.stats), p.id))


def _check_limit(limit: int) -> None:
    if limit < 0:
        raise InvalidArgumentError("Limit must be non-negative")


def _validated(name: str, email: str) -> tuple[str, str]:
    try:
        return validate_name(name, label="Player name"), validate_email(email)
    except ValueError as e:
        raise InvalidArgumentError(str(e)) from e


class PlayerRegistry:
    """Owns player storage. Safe for concurrent callers.

    Email uniqueness is checked and enforced under a registry-wide lock;
    per-player mutations run under that player's own lock.
    """

    def __init__(self, store: EntityStore[Player] | None = None) -> None:
        self._store: EntityStore[Player] = store if store is not None else InMemoryStore[Player]()
        self._locks = KeyedLocks()
        self._email_lock = threading.Lock()

    def create(self, name: str, email: str) -> Player:
        name, email = _validated(name, email)
        with self._email_lock:
            if self._find_by_email(email) is not None:
                raise ConflictError("Player with this email already exists")
            player = Player(name=name, email=email)
            self._store.save(player)
        logger.info("player created", player_id=player.id)
        return player

    def get(self, player_id: str) -> Player:
        with self._locks.hold(player_id):
            player = self._store.load(player_id)
        if player is None:
            raise NotFoundError(f"Player {player_id} not found")
        return player

    def _find_by_email(self, email: str) -> Player | None:
        matches = self._store.scan(lambda p: p.email == email)
        return matches[0] if matches else None

    def get_by_email(self, email: str) -> Player:
        player = self._find_by_email(normalize_email(email))
        if player is None:
            raise NotFoundError("Player with this email not found")
        return player

    def update(self, player_id: str, name: str, email: str) -> Player:
        name, email = _validated(name, email)
        with self._email_lock, self._locks.hold(player_id):
            player = self._store.load(player_id)
            if player is None:
                raise NotFoundError(f"Player {player_id} not found")
            if player.email != email:
                existing = self._find_by_email(email)
                if existing is not None and existing.id != player_id:
                    raise ConflictError("Email already in use by another player")
            player.name = name
            player.email = email
            self._store.save(player)
        logger.info("player updated", player_id=player_id)
        return player

    def delete(self, player_id: str) -> bool:
        with self._locks.hold(player_id):
            deleted = self._store.delete(player_id)
        if deleted:
            logger.info("player deleted", player_id=player_id)
        return deleted

    def search_by_name(self, name: str | None = None) -> list[Player]:
        """Case-insensitive substring match. Empty or missing search returns everyone."""
        if name is None or not name.strip():
            return self._store.scan()
        term = name.strip().lower()
        return self._store.scan(lambda p: term in p.name.lower())

    def get_stats(self, player_id: str) -> PlayerStats:
        return self.get(player_id).stats

    def leaderboard(self, limit: int = 10, sort: str | LeaderboardSort | None = None) -> list[Player]:
        """Players with at least one finished game, ranked by sort key descending."""
        _check_limit(limit)
        ranked = _ranked(self._store.scan(lambda p: p.stats.games_played > 0), parse_leaderboard_sort(sort))
        return ranked[:limit]

    def leaderboard_paginated(
        self,
        page: int = 0,
        size: int = 10,
        sort: str | LeaderboardSort | None = None,
    ) -> Page[Player]:
        sort_key = parse_leaderboard_sort(sort)
        if page < 0:
            raise InvalidArgumentError("Page number must be non-negative")
        if size <= 0:
            raise InvalidArgumentError("Page size must be positive")
        ranked = _ranked(self._store.scan(lambda p: p.stats.games_played > 0), sort_key)
        return paginate(ranked, page, size)

    def most_active(self, limit: int = 10) -> list[Player]:
        """All players ordered by games played, including those with none."""
        _check_limit(limit)
        return _ranked(self._store.scan(), LeaderboardSort.PLAYED)[:limit]

    def most_efficient(self, limit: int = 10) -> list[Player]:
        """Players with at least one win, ordered by efficiency."""
        _check_limit(limit)
        return _ranked(self._store.scan(lambda p: p.stats.games_won > 0), LeaderboardSort.EFFICIENCY)[:limit]

    def created_between(self, start: datetime, end: datetime) -> list[Player]:
        return self._store.scan(lambda p: start < p.created_at < end)

    def count(self) -> int:
        return self._store.count()

    def clear(self) -> None:
        self._store.clear()

    @contextlib.contextmanager
    def locked_stats(self, player_ids: Iterable[str]) -> Iterator[dict[str, PlayerStats]]:
        """Lock the given players and yield their stats for in-place updates.

        Ids with no stored player are left out of the mapping. Every loaded
        player is saved when the block exits without an exception.
        """
        ids = list(player_ids)
        with self._locks.hold_many(ids):
            players = {pid: p for pid in ids if (p := self._store.load(pid)) is not None}
            yield {pid: p.stats for pid, p in players.items()}
            for player in players.values():
                self._store.save(player)
