"""3x3 board primitives shared by the rule engine, advisor and codec."""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

Player = str  # "X" or "O"
Cell = Optional[Player]
Board = Tuple[Cell, ...]
PositionLike = Union[int, Sequence[int], Mapping[str, int]]

PLAYERS: Tuple[Player, Player] = ("X", "O")
BOARD_SIZE = 3
CELL_COUNT = BOARD_SIZE * BOARD_SIZE

WINNING_LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)

# Index -> the (up to four) winning lines passing through that cell
LINES_THROUGH: Dict[int, Tuple[Tuple[int, int, int], ...]] = {
    idx: tuple(line for line in WINNING_LINES if idx in line)
    for idx in range(CELL_COUNT)
}


# ---------- Positions ----------


def is_in_bounds(row: int, col: int) -> bool:
    return 0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE


def position_to_index(row: int, col: int) -> int:
    return row * BOARD_SIZE + col


def index_to_position(index: int) -> Tuple[int, int]:
    return divmod(index, BOARD_SIZE)


def coerce_index(position: PositionLike) -> Optional[int]:
    """
    Normalize a boundary position to a flat index.

    Accepts a flat index, a ``(row, col)`` pair or a ``{"row", "col"}``
    mapping. Returns None when the position is off the board or is not
    shaped like a position at all.
    """
    if isinstance(position, bool):
        return None
    if isinstance(position, int):
        return position if 0 <= position < CELL_COUNT else None
    if isinstance(position, Mapping):
        row, col = position.get("row"), position.get("col")
    elif isinstance(position, Sequence) and not isinstance(position, str):
        if len(position) != 2:
            return None
        row, col = position
    else:
        return None
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in (row, col)):
        return None
    if not is_in_bounds(row, col):
        return None
    return position_to_index(row, col)


# ---------- Board ----------


def empty_board() -> Board:
    return (None,) * CELL_COUNT


def is_empty(board: Board, index: int) -> bool:
    return board[index] is None


def is_valid_move(board: Board, index: int) -> bool:
    return 0 <= index < CELL_COUNT and is_empty(board, index)


def available_moves(board: Board) -> List[int]:
    """Empty cells in row-major order."""
    return [idx for idx, cell in enumerate(board) if cell is None]


def place(board: Board, index: int, player: Player) -> Board:
    cells = list(board)
    cells[index] = player
    return tuple(cells)


def clear(board: Board, index: int) -> Board:
    cells = list(board)
    cells[index] = None
    return tuple(cells)


def pieces_of(board: Board, player: Player) -> List[int]:
    return [idx for idx, cell in enumerate(board) if cell == player]


def is_full(board: Board) -> bool:
    return all(cell is not None for cell in board)


def find_winning_line(
    board: Board, through: Optional[int] = None
) -> Optional[Tuple[int, int, int]]:
    """
    Return the first completed line, or None.

    With ``through`` set only the lines crossing that cell are checked; after
    a single placement this gives the same answer as scanning all eight.
    """
    lines = WINNING_LINES if through is None else LINES_THROUGH[through]
    for a, b, c in lines:
        v = board[a]
        if v is not None and v == board[b] == board[c]:
            return (a, b, c)
    return None


def other_player(player: Player) -> Player:
    return "O" if player == "X" else "X"
