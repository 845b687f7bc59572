"""
Pure rules over a 3x3 tic-tac-toe board.

The board is a row-major sequence of 9 cells, each None (empty) or a Symbol.
Nothing here mutates its input or raises for out-of-range positions;
callers validate positions before placing a mark.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tictactoe.logic.enums import Symbol

BOARD_SIZE = 9
BOARD_WIDTH = 3

# 3 rows, 3 columns, 2 diagonals
WINNING_LINES: tuple[tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)

type Cell = Symbol | None


def empty_board() -> list[Cell]:
    return [None] * BOARD_SIZE


def is_valid_position(position: int) -> bool:
    return 0 <= position < BOARD_SIZE


def is_win(board: Sequence[Cell], symbol: Symbol) -> bool:
    """Check whether any line is fully occupied by symbol."""
    return any(all(board[i] == symbol for i in line) for line in WINNING_LINES)


def is_draw(board: Sequence[Cell]) -> bool:
    """Check whether every cell is occupied.

    Does not look for a win; callers check is_win for the last mover first.
    """
    return all(cell is not None for cell in board)


def is_legal_move(board: Sequence[Cell], position: int) -> bool:
    return is_valid_position(position) and board[position] is None


def position_to_row_col(position: int) -> tuple[int, int]:
    return divmod(position, BOARD_WIDTH)
