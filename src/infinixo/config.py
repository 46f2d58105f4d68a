"""Environment-driven settings for the InfiniXO service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .ai import DEFAULT_DEPTH
from .errors import ConfigurationError
from .game import GameMode

STARTING_PLAYER_CHOICES = ("X", "O", "random")
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    game_mode: GameMode = GameMode.INFINITE
    # "X", "O" or "random"; resolved per game by the service
    starting_player: str = "X"
    ai_depth: int = DEFAULT_DEPTH
    max_ai_depth: int = 9
    # Infinite games end in a draw once this many moves were played (0 = never)
    move_limit: int = 0


def _int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{name} must be an integer", context={name: raw}
        ) from exc
    if value < minimum:
        raise ConfigurationError(
            f"{name} must be at least {minimum}", context={name: raw}
        )
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from ``INFINIXO_*`` variables (``os.environ`` by default)."""
    env = os.environ if env is None else env

    log_level = env.get("INFINIXO_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(log_level)
    # WARN and FATAL map to the names uvicorn also understands
    if isinstance(level, int):
        log_level = logging.getLevelName(level)
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(
            "INFINIXO_LOG_LEVEL is not a logging level",
            context={"INFINIXO_LOG_LEVEL": log_level},
        )

    raw_mode = env.get("INFINIXO_GAME_MODE", GameMode.INFINITE.value).lower()
    try:
        game_mode = GameMode(raw_mode)
    except ValueError as exc:
        raise ConfigurationError(
            "INFINIXO_GAME_MODE must be 'classic' or 'infinite'",
            context={"INFINIXO_GAME_MODE": raw_mode},
        ) from exc

    starting_player = env.get("INFINIXO_STARTING_PLAYER", "X").strip()
    starting_player = (
        "random" if starting_player.lower() == "random" else starting_player.upper()
    )
    if starting_player not in STARTING_PLAYER_CHOICES:
        raise ConfigurationError(
            "INFINIXO_STARTING_PLAYER must be X, O or random",
            context={"INFINIXO_STARTING_PLAYER": starting_player},
        )

    max_ai_depth = _int(env, "INFINIXO_MAX_AI_DEPTH", 9, minimum=1)
    ai_depth = _int(env, "INFINIXO_AI_DEPTH", min(DEFAULT_DEPTH, max_ai_depth))
    if ai_depth > max_ai_depth:
        raise ConfigurationError(
            "INFINIXO_AI_DEPTH exceeds INFINIXO_MAX_AI_DEPTH",
            context={
                "INFINIXO_AI_DEPTH": ai_depth,
                "INFINIXO_MAX_AI_DEPTH": max_ai_depth,
            },
        )

    return Settings(
        host=env.get("INFINIXO_HOST", "0.0.0.0"),
        port=_int(env, "INFINIXO_PORT", 8000, minimum=1),
        log_level=log_level,
        game_mode=game_mode,
        starting_player=starting_player,
        ai_depth=ai_depth,
        max_ai_depth=max_ai_depth,
        move_limit=_int(env, "INFINIXO_MOVE_LIMIT", 0),
    )
