"""Core rules for InfiniXO: classic tic-tac-toe and the three-piece infinite mode."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .board import (
    PLAYERS,
    Board,
    Player,
    PositionLike,
    available_moves,
    clear,
    coerce_index,
    empty_board,
    find_winning_line,
    is_empty,
    is_full,
    other_player,
    place,
)
from .ledger import Ledger, Move, append, live_moves, next_sequence


class GameMode(str, Enum):
    CLASSIC = "classic"
    INFINITE = "infinite"


DEFAULT_MAX_PIECES: Dict[GameMode, int] = {
    GameMode.CLASSIC: 9,
    GameMode.INFINITE: 3,
}
# With five or more pieces each, both sides could fill the board and the
# side to act would have no empty cell left to play.
MAX_INFINITE_PIECES = 4


class Rejection(str, Enum):
    GAME_OVER = "game_over"
    OUT_OF_BOUNDS = "out_of_bounds"
    OCCUPIED = "occupied"
    WRONG_TURN = "wrong_turn"


REJECTION_MESSAGES: Dict[Rejection, str] = {
    Rejection.GAME_OVER: "Game already finished",
    Rejection.OUT_OF_BOUNDS: "Position is outside the board",
    Rejection.OCCUPIED: "Cell already occupied",
    Rejection.WRONG_TURN: "It is not this player's turn",
}


# ---------- State ----------


@dataclass(frozen=True)
class GameState:
    board: Board = field(default_factory=empty_board)
    current_player: Player = "X"
    mode: GameMode = GameMode.INFINITE
    moves: Ledger = ()
    winner: Optional[Player] = None
    drawn: bool = False
    winning_line: Optional[Tuple[int, int, int]] = None
    max_pieces_per_player: int = DEFAULT_MAX_PIECES[GameMode.INFINITE]

    @property
    def is_game_over(self) -> bool:
        return self.winner is not None or self.drawn

    def available_moves(self) -> List[int]:
        """Legal target cells for the side to act, row-major."""
        if self.is_game_over:
            return []
        return available_moves(self.board)

    def live_pieces(self, player: Player) -> List[int]:
        """Positions of ``player``'s pieces on the board, oldest first."""
        return [m.position for m in live_moves(self.moves, player)]


@dataclass(frozen=True)
class MoveResult:
    """Outcome of ``apply_move``: a new state, or the unchanged one plus a reason."""

    state: GameState
    move: Optional[Move] = None
    rejection: Optional[Rejection] = None

    @property
    def accepted(self) -> bool:
        return self.rejection is None

    @property
    def message(self) -> Optional[str]:
        return REJECTION_MESSAGES[self.rejection] if self.rejection else None


# ---------- Transitions ----------


def new_game(
    mode: GameMode | str = GameMode.INFINITE,
    starting_player: Player = "X",
    max_pieces_per_player: Optional[int] = None,
) -> GameState:
    """Fresh game. Choosing a random opener is left to the caller."""
    mode = GameMode(mode)
    if starting_player not in PLAYERS:
        raise ValueError(f"Unknown player {starting_player!r}")
    cap = validate_piece_cap(mode, max_pieces_per_player)
    return GameState(
        current_player=starting_player, mode=mode, max_pieces_per_player=cap
    )


def validate_piece_cap(mode: GameMode, cap: Optional[int]) -> int:
    if cap is None:
        return DEFAULT_MAX_PIECES[mode]
    if mode == GameMode.CLASSIC and cap != DEFAULT_MAX_PIECES[mode]:
        raise ValueError("Classic games always allow 9 pieces per player")
    if mode == GameMode.INFINITE and not 1 <= cap <= MAX_INFINITE_PIECES:
        raise ValueError(
            f"Infinite games allow 1 to {MAX_INFINITE_PIECES} pieces per player"
        )
    return cap


def apply_move(
    state: GameState,
    position: PositionLike,
    player: Optional[Player] = None,
    *,
    timestamp: Optional[datetime] = None,
) -> MoveResult:
    """
    Play ``position`` for the side to act.

    ``player`` is optional: when given, a move by the other side is rejected
    as ``WRONG_TURN``. Mapping a remote participant to a side is the caller's
    job. A rejected move returns the very same ``state`` object.
    """
    if state.is_game_over:
        return MoveResult(state=state, rejection=Rejection.GAME_OVER)

    index = coerce_index(position)
    if index is None:
        return MoveResult(state=state, rejection=Rejection.OUT_OF_BOUNDS)
    if not is_empty(state.board, index):
        return MoveResult(state=state, rejection=Rejection.OCCUPIED)
    if player is not None and player != state.current_player:
        return MoveResult(state=state, rejection=Rejection.WRONG_TURN)

    mover = state.current_player
    board = state.board

    # Infinite mode: the oldest piece leaves before the new one lands
    retired: Optional[int] = None
    if state.mode == GameMode.INFINITE:
        live = live_moves(state.moves, mover)
        if len(live) >= state.max_pieces_per_player:
            retired = live[0].position
            board = clear(board, retired)

    board = place(board, index, mover)
    move = Move(
        player=mover,
        position=index,
        sequence=next_sequence(state.moves),
        timestamp=timestamp or datetime.now(timezone.utc),
        retired_position=retired,
    )

    # Only lines through the new piece can have been completed
    line = find_winning_line(board, through=index)
    winner = board[index] if line else None
    drawn = (
        winner is None and state.mode == GameMode.CLASSIC and is_full(board)
    )
    next_player = mover if winner or drawn else other_player(mover)

    new_state = replace(
        state,
        board=board,
        current_player=next_player,
        moves=append(state.moves, move),
        winner=winner,
        drawn=drawn,
        winning_line=line,
    )
    return MoveResult(state=new_state, move=move)


def declare_draw(state: GameState) -> GameState:
    """End an unfinished game as a draw, e.g. when a caller's move cap is hit."""
    if state.is_game_over:
        return state
    return replace(state, drawn=True)
