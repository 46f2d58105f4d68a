"""Depth-limited minimax with alpha-beta pruning for InfiniXO practice games."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .board import LINES_THROUGH, Board, Player, other_player
from .game import GameMode, GameState, apply_move

logger = logging.getLogger(__name__)

DEFAULT_DEPTH = 6
WIN_SCORE = 10

# Timestamps are irrelevant inside the search tree; a constant keeps
# child states comparable and avoids reading the clock per node.
_SEARCH_TIMESTAMP = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class MinimaxAI:
    """Alpha-beta advisor recommending a move for one side.

    ``player`` fixes the side this AI plays for; ``None`` means "whichever
    side is to act", which is what ``recommend`` uses.
      - MinimaxAI(player="O", depth=6)
      - choose(state) -> flat cell index or None
    """

    player: Optional[Player] = None
    depth: int = DEFAULT_DEPTH
    nodes: int = field(default=0, init=False, repr=False)

    # ---- public API ----

    def choose(self, state: GameState) -> Optional[int]:
        moves = state.available_moves()
        if not moves:
            return None
        if self.player is not None and state.current_player != self.player:
            raise ValueError("It is not this AI player's turn")
        if self.depth <= 0:
            return moves[0]

        maximizer = state.current_player
        self.nodes = 0
        alpha, beta = -math.inf, math.inf
        best_move: Optional[int] = None
        best_score = -math.inf

        for move in self._ordered_moves(state, moves):
            child = apply_move(state, move, timestamp=_SEARCH_TIMESTAMP).state
            score = self._minimax(child, self.depth - 1, alpha, beta, maximizer)
            if score > best_score:
                best_score, best_move = score, move
            alpha = max(alpha, best_score)

        logger.debug(
            "minimax depth=%d side=%s best=%s score=%s nodes=%d",
            self.depth,
            maximizer,
            best_move,
            best_score,
            self.nodes,
        )
        return best_move

    # ---- core search ----

    def _minimax(
        self,
        state: GameState,
        depth: int,
        alpha: float,
        beta: float,
        maximizer: Player,
    ) -> float:
        self.nodes += 1
        # Terminal/leaf: faster wins and slower losses score better
        if state.winner is not None:
            if state.winner == maximizer:
                return WIN_SCORE + depth
            return -WIN_SCORE - depth
        if state.drawn or depth == 0:
            return 0

        moves = state.available_moves()
        if not moves:
            return 0

        if state.current_player == maximizer:
            value = -math.inf
            for move in self._ordered_moves(state, moves):
                child = apply_move(state, move, timestamp=_SEARCH_TIMESTAMP).state
                value = max(
                    value, self._minimax(child, depth - 1, alpha, beta, maximizer)
                )
                alpha = max(alpha, value)
                if beta <= alpha:
                    break
        else:
            value = math.inf
            for move in self._ordered_moves(state, moves):
                child = apply_move(state, move, timestamp=_SEARCH_TIMESTAMP).state
                value = min(
                    value, self._minimax(child, depth - 1, alpha, beta, maximizer)
                )
                beta = min(beta, value)
                if beta <= alpha:
                    break
        return value

    # ---- move ordering ----

    def _ordered_moves(self, state: GameState, moves: List[int]) -> List[int]:
        me = state.current_player
        opp = other_player(me)
        retiring = {me: _retiring(state, me), opp: _retiring(state, opp)}
        # sorted() is stable, so equal keys keep row-major order
        return sorted(
            moves,
            key=lambda m: self._move_heuristic(state, m, retiring),
            reverse=True,
        )

    def _completes_line(
        self, board: Board, player: Player, cell: int, retiring: Optional[int]
    ) -> bool:
        for line in LINES_THROUGH[cell]:
            others = [board[i] for i in line if i != cell and i != retiring]
            if others.count(player) == 2:
                return True
        return False

    def _move_heuristic(
        self, state: GameState, move: int, retiring: Dict[Player, Optional[int]]
    ) -> float:
        """Lightweight ordering score: win, block, then geometry.

        In infinite mode a piece about to retire does not count towards a line.
        """
        me = state.current_player
        opp = other_player(me)
        if self._completes_line(state.board, me, move, retiring[me]):
            return 1_000.0
        if self._completes_line(state.board, opp, move, retiring[opp]):
            return 900.0
        # center > corner > edge
        return 0.4 if move == 4 else (0.2 if move in (0, 2, 6, 8) else 0.1)


def _retiring(state: GameState, player: Player) -> Optional[int]:
    """Cell that leaves the board if ``player`` places a piece now."""
    if state.mode != GameMode.INFINITE:
        return None
    live = state.live_pieces(player)
    return live[0] if len(live) >= state.max_pieces_per_player else None


def recommend(state: GameState, depth: int = DEFAULT_DEPTH) -> Optional[int]:
    """Best cell for the side to act, or None when no move is legal."""
    return MinimaxAI(depth=depth).choose(state)
