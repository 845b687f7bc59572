"""Per-player aggregate counters and the rates derived from them."""

from pydantic import BaseModel

# A draw counts half a win towards efficiency.
DRAW_EFFICIENCY_WEIGHT = 0.5


class PlayerStats(BaseModel):
    """Counters embedded in a Player.

    Counters change only through the increment/add methods. The derived
    fields (win_rate, average_moves_per_win, efficiency) are recomputed
    after every counter change and are never assigned directly.

    total_moves grows by one per finished game, not per placed mark, so
    average_moves_per_win reads as finished games per win.
    """

    games_played: int = 0
    games_won: int = 0
    games_lost: int = 0
    games_drawn: int = 0
    total_moves: int = 0
    win_rate: float = 0.0
    average_moves_per_win: float = 0.0
    efficiency: float = 0.0

    def increment_games_played(self) -> None:
        self.games_played += 1
        self._recompute()

    def increment_games_won(self) -> None:
        self.games_won += 1
        self._recompute()

    def increment_games_lost(self) -> None:
        self.games_lost += 1
        self._recompute()

    def increment_games_drawn(self) -> None:
        self.games_drawn += 1
        self._recompute()

    def add_moves(self, moves: int) -> None:
        if moves < 0:
            raise ValueError(f"moves must be non-negative, got {moves}")
        self.total_moves += moves
        self._recompute()

    def _recompute(self) -> None:
        if self.games_played > 0:
            self.win_rate = self.games_won / self.games_played
            self.efficiency = (self.games_won + DRAW_EFFICIENCY_WEIGHT * self.games_drawn) / self.games_played
        else:
            self.win_rate = 0.0
            self.efficiency = 0.0
        self.average_moves_per_win = self.total_moves / self.games_won if self.games_won > 0 else 0.0
