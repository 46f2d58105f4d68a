"""Append-only move history used to decide which piece retires next."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, List, Optional, Tuple

from .board import Player


@dataclass(frozen=True)
class Move:
    """
    One applied move.

    ``retired_position`` is set when placing this piece removed the same
    player's oldest live piece. Moves are never edited afterwards: whether a
    piece is still live is derived from the moves that follow it.
    """

    player: Player
    position: int
    sequence: int
    timestamp: datetime
    retired_position: Optional[int] = None


Ledger = Tuple[Move, ...]


def append(ledger: Ledger, move: Move) -> Ledger:
    """Return a new ledger ending in ``move``; ``ledger`` itself is untouched."""
    return ledger + (move,)


def next_sequence(ledger: Ledger) -> int:
    return ledger[-1].sequence + 1 if ledger else 1


def live_moves(ledger: Ledger, player: Player) -> List[Move]:
    """
    Moves by ``player`` whose piece is still on the board, oldest first.

    Replays the player's moves as a queue: each retirement pops the front,
    which is always the lowest sequence number still live.
    """
    live: Deque[Move] = deque()
    for move in ledger:
        if move.player != player:
            continue
        if move.retired_position is not None and live:
            live.popleft()
        live.append(move)
    return list(live)


def oldest_live_position(ledger: Ledger, player: Player) -> Optional[int]:
    live = live_moves(ledger, player)
    return live[0].position if live else None
