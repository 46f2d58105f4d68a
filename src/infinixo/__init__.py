"""InfiniXO package exposing the game rules, the minimax advisor and the state codec."""

from .ai import MinimaxAI, recommend
from .codec import deserialize, serialize
from .game import GameMode, GameState, MoveResult, Rejection, apply_move, new_game

__all__ = [
    "GameMode",
    "GameState",
    "MinimaxAI",
    "MoveResult",
    "Rejection",
    "apply_move",
    "deserialize",
    "new_game",
    "recommend",
    "serialize",
]
