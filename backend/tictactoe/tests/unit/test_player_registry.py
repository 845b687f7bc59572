from datetime import timedelta

import pytest

from tictactoe.logic.enums import LeaderboardSort
from tictactoe.logic.exceptions import ConflictError, InvalidArgumentError, NotFoundError
from tictactoe.logic.state import utcnow
from tictactoe.registry.players import PlayerRegistry, parse_leaderboard_sort


def seed_stats(registry: PlayerRegistry, player_id: str, *, won: int = 0, lost: int = 0, drawn: int = 0) -> None:
    with registry.locked_stats([player_id]) as stats:
        player_stats = stats[player_id]
        for _ in range(won + lost + drawn):
            player_stats.increment_games_played()
            player_stats.add_moves(1)
        for _ in range(won):
            player_stats.increment_games_won()
        for _ in range(lost):
            player_stats.increment_games_lost()
        for _ in range(drawn):
            player_stats.increment_games_drawn()


class TestPlayerAccounts:
    def test_create_normalizes_input(self, player_registry):
        player = player_registry.create("  Alice ", " Alice@Example.com ")

        assert player.name == "Alice"
        assert player.email == "alice@example.com"
        assert player.stats.games_played == 0

    def test_duplicate_email_conflicts(self, player_registry):
        player_registry.create("Alice", "alice@example.com")

        with pytest.raises(ConflictError):
            player_registry.create("Other Alice", "ALICE@example.com")
        assert player_registry.count() == 1

    @pytest.mark.parametrize(("name", "email"), [("", "a@example.com"), ("Alice", "not-an-email"), ("<b>", "a@x.io")])
    def test_invalid_input_rejected(self, player_registry, name, email):
        with pytest.raises(InvalidArgumentError):
            player_registry.create(name, email)

    def test_get_unknown_raises(self, player_registry):
        with pytest.raises(NotFoundError):
            player_registry.get("missing")

    def test_get_by_email_is_case_insensitive(self, player_registry):
        player = player_registry.create("Alice", "alice@example.com")

        assert player_registry.get_by_email("ALICE@EXAMPLE.COM").id == player.id
        with pytest.raises(NotFoundError):
            player_registry.get_by_email("nobody@example.com")

    def test_update(self, player_registry):
        player = player_registry.create("Alice", "alice@example.com")

        updated = player_registry.update(player.id, "Alicia", "alicia@example.com")

        assert updated.name == "Alicia"
        assert player_registry.get(player.id).email == "alicia@example.com"

    def test_update_keeping_own_email_is_allowed(self, player_registry):
        player = player_registry.create("Alice", "alice@example.com")
        assert player_registry.update(player.id, "Alicia", "alice@example.com").name == "Alicia"

    def test_update_to_taken_email_conflicts(self, player_registry):
        player_registry.create("Alice", "alice@example.com")
        bob = player_registry.create("Bob", "bob@example.com")

        with pytest.raises(ConflictError):
            player_registry.update(bob.id, "Bob", "alice@example.com")
        assert player_registry.get(bob.id).email == "bob@example.com"

    def test_update_unknown_raises(self, player_registry):
        with pytest.raises(NotFoundError):
            player_registry.update("missing", "Name", "x@example.com")

    def test_delete(self, player_registry):
        player = player_registry.create("Alice", "alice@example.com")

        assert player_registry.delete(player.id) is True
        assert player_registry.delete(player.id) is False
        # the email is free again
        player_registry.create("Alice", "alice@example.com")

    def test_search_by_name(self, player_registry):
        player_registry.create("Alice", "alice@example.com")
        player_registry.create("Malice", "malice@example.com")
        player_registry.create("Bob", "bob@example.com")

        assert sorted(p.name for p in player_registry.search_by_name("ALIC")) == ["Alice", "Malice"]
        assert len(player_registry.search_by_name("")) == 3
        assert len(player_registry.search_by_name(None)) == 3
        assert player_registry.search_by_name("zed") == []

    def test_returned_players_are_snapshots(self, player_registry):
        player = player_registry.create("Alice", "alice@example.com")
        player.stats.increment_games_played()

        assert player_registry.get_stats(player.id).games_played == 0

    def test_created_between_uses_exclusive_bounds(self, service):
        alice = service.create_player("Alice", "alice@example.com")
        bob = service.create_player("Bob", "bob@example.com")
        now = utcnow()

        found = service.players_created_between(now - timedelta(minutes=5), now + timedelta(minutes=5))
        assert {p.id for p in found} == {alice.id, bob.id}
        assert service.players_created_between(now + timedelta(minutes=1), now + timedelta(minutes=5)) == []
        after_alice = service.players_created_between(alice.created_at, now + timedelta(minutes=5))
        before_alice = service.players_created_between(now - timedelta(minutes=5), alice.created_at)
        assert alice.id not in {p.id for p in after_alice}
        assert alice.id not in {p.id for p in before_alice}

    def test_locked_stats_skips_unknown_ids(self, player_registry):
        player = player_registry.create("Alice", "alice@example.com")

        with player_registry.locked_stats([player.id, "ghost"]) as stats:
            assert set(stats) == {player.id}
            stats[player.id].increment_games_played()

        assert player_registry.get_stats(player.id).games_played == 1

    def test_locked_stats_discards_changes_on_error(self, player_registry):
        player = player_registry.create("Alice", "alice@example.com")

        with pytest.raises(RuntimeError), player_registry.locked_stats([player.id]) as stats:
            stats[player.id].increment_games_played()
            raise RuntimeError

        assert player_registry.get_stats(player.id).games_played == 0


class TestLeaderboard:
    @pytest.fixture
    def ranked(self, player_registry):
        """Four players: three with finished games, one who has never played."""
        ids = {}
        for name in ("Ann", "Ben", "Cat", "Dan"):
            ids[name] = player_registry.create(name, f"{name.lower()}@example.com").id
        seed_stats(player_registry, ids["Ann"], won=1, lost=3)  # 0.25
        seed_stats(player_registry, ids["Ben"], won=3, lost=1)  # 0.75
        seed_stats(player_registry, ids["Cat"], won=2, drawn=4)  # 0.33, efficiency 0.67
        return ids

    def test_excludes_players_without_games(self, player_registry, ranked):
        board = player_registry.leaderboard(limit=100)

        assert ranked["Dan"] not in [p.id for p in board]
        assert len(board) == 3

    def test_default_sort_is_win_rate(self, player_registry, ranked):
        assert [p.name for p in player_registry.leaderboard()] == ["Ben", "Cat", "Ann"]

    def test_sort_by_wins(self, player_registry, ranked):
        assert [p.name for p in player_registry.leaderboard(sort="wins")] == ["Ben", "Cat", "Ann"]

    def test_sort_by_efficiency(self, player_registry, ranked):
        assert [p.name for p in player_registry.leaderboard(sort="EFFICIENCY")] == ["Ben", "Cat", "Ann"]

    def test_sort_by_played(self, player_registry, ranked):
        ids = [p.id for p in player_registry.leaderboard(sort=LeaderboardSort.PLAYED)]

        assert ids[0] == ranked["Cat"]
        # Ann and Ben both played four games
        assert ids[1:] == sorted([ranked["Ann"], ranked["Ben"]])

    def test_limit_truncates(self, player_registry, ranked):
        assert [p.name for p in player_registry.leaderboard(limit=1)] == ["Ben"]
        assert player_registry.leaderboard(limit=0) == []

    def test_ties_break_on_player_id(self, player_registry):
        ids = [player_registry.create(f"P{i}", f"p{i}@example.com").id for i in range(5)]
        for pid in ids:
            seed_stats(player_registry, pid, won=1, lost=1)

        assert [p.id for p in player_registry.leaderboard()] == sorted(ids)

    def test_unknown_sort_rejected(self, player_registry, ranked):
        with pytest.raises(InvalidArgumentError, match="Unknown sort key"):
            player_registry.leaderboard(sort="elo")

    def test_negative_limit_rejected(self, player_registry):
        with pytest.raises(InvalidArgumentError):
            player_registry.leaderboard(limit=-1)

    def test_most_active_includes_everyone(self, player_registry, ranked):
        names = [p.name for p in player_registry.most_active()]

        assert names[0] == "Cat"
        assert names[-1] == "Dan"
        assert len(names) == 4

    def test_most_efficient_requires_a_win(self, player_registry, ranked):
        seed_stats(player_registry, ranked["Dan"], drawn=2)

        assert [p.name for p in player_registry.most_efficient()] == ["Ben", "Cat", "Ann"]


class TestLeaderboardPagination:
    @pytest.fixture
    def five_players(self, player_registry):
        for i in range(5):
            pid = player_registry.create(f"P{i}", f"p{i}@example.com").id
            seed_stats(player_registry, pid, won=i, lost=5 - i)

    def test_first_page(self, player_registry, five_players):
        page = player_registry.leaderboard_paginated(page=0, size=3)

        assert [p.name for p in page.content] == ["P4", "P3", "P2"]
        assert page.page.number == 0
        assert page.page.size == 3
        assert page.page.total_elements == 5
        assert page.page.total_pages == 2
        assert page.page.first is True
        assert page.page.last is False

    def test_last_page(self, player_registry, five_players):
        page = player_registry.leaderboard_paginated(page=1, size=3)

        assert [p.name for p in page.content] == ["P1", "P0"]
        assert page.page.first is False
        assert page.page.last is True

    @pytest.mark.parametrize("page", [2, 3, 50])
    def test_page_past_end_rejected(self, player_registry, five_players, page):
        with pytest.raises(InvalidArgumentError, match="out of range"):
            player_registry.leaderboard_paginated(page=page, size=3)

    @pytest.mark.parametrize("size", [1, 10, 1000])
    def test_empty_leaderboard(self, player_registry, size):
        player_registry.create("Idle", "idle@example.com")

        page = player_registry.leaderboard_paginated(page=0, size=size)

        assert page.content == []
        assert page.page.model_dump() == {
            "number": 0,
            "size": size,
            "total_elements": 0,
            "total_pages": 0,
            "first": True,
            "last": True,
        }

    @pytest.mark.parametrize(("page", "size"), [(-1, 3), (0, 0), (0, -5)])
    def test_invalid_parameters_rejected(self, player_registry, page, size):
        with pytest.raises(InvalidArgumentError):
            player_registry.leaderboard_paginated(page=page, size=size)


class TestParseLeaderboardSort:
    def test_default(self):
        assert parse_leaderboard_sort(None) == LeaderboardSort.WINRATE

    def test_case_insensitive(self):
        assert parse_leaderboard_sort("WinRate") == LeaderboardSort.WINRATE
