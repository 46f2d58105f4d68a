"""FastAPI service hosting InfiniXO games between two players or against the AI."""

from __future__ import annotations

import logging
import random
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Tuple, Union

from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .ai import MinimaxAI, recommend
from .board import PLAYERS, Player, other_player
from .codec import deserialize, from_wire, to_wire
from .config import Settings, load_settings
from .errors import InfiniXOError
from .game import GameMode, GameState, apply_move, declare_draw, new_game

logger = logging.getLogger(__name__)

AI_PLAYER_ID = "ai"


@dataclass
class GameSession:
    """An active game plus the identities seated at it.

    ``lock`` makes each session single-writer: the rule engine trusts the
    state it is handed to be current.
    """

    state: GameState
    players: Dict[str, Player] = field(default_factory=dict)
    ai: Optional[MinimaxAI] = None
    ai_pending: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def player_for(self, side: Player) -> Optional[str]:
        for player_id, seat in self.players.items():
            if seat == side:
                return player_id
        return None


SESSIONS: Dict[str, GameSession] = {}
SETTINGS: Settings = load_settings()
app = FastAPI(title="InfiniXO", description="Infinite tic-tac-toe game service")

AI_THINK_DELAY: Tuple[float, float] = (1.0, 2.0)


def _check_depth(value: Optional[int]) -> Optional[int]:
    if value is not None and value > SETTINGS.max_ai_depth:
        raise ValueError(
            f"Unsupported search depth {value}. "
            f"Maximum is {SETTINGS.max_ai_depth}."
        )
    return value


class NewGameRequest(BaseModel):
    """Request payload for starting a new game."""

    model_config = ConfigDict(populate_by_name=True)

    player_id: str = Field(alias="playerId", min_length=1)
    mode: Optional[GameMode] = None
    opponent: Literal["human", "ai"] = "human"
    depth: Optional[int] = Field(
        default=None, ge=0, description="Minimax depth controlling AI strength"
    )
    starting_player: Optional[Literal["X", "O", "random"]] = Field(
        default=None, alias="startingPlayer"
    )

    @field_validator("depth")
    @classmethod
    def ensure_supported_depth(cls, value: Optional[int]) -> Optional[int]:
        return _check_depth(value)


class JoinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    player_id: str = Field(alias="playerId", min_length=1)


class MoveRequest(BaseModel):
    """Request payload for submitting a move on an existing game."""

    model_config = ConfigDict(populate_by_name=True)

    player_id: str = Field(alias="playerId", min_length=1)
    # Flat index or {"row": r, "col": c}; off-board values reach the rules
    position: Union[int, Dict[str, int]]


class RecommendRequest(BaseModel):
    """A serialized state (JSON text or object) to advise on."""

    state: Union[str, Dict[str, Any]]
    depth: Optional[int] = Field(default=None, ge=0)

    @field_validator("depth")
    @classmethod
    def ensure_supported_depth(cls, value: Optional[int]) -> Optional[int]:
        return _check_depth(value)


# ---------- Sessions ----------


def _resolve_starting_player(requested: Optional[str]) -> Player:
    choice = requested or SETTINGS.starting_player
    if choice == "random":
        return random.choice(PLAYERS)
    return choice


def _create_session(request: NewGameRequest) -> Tuple[str, GameSession]:
    """Create a new game session and register it for later access."""

    mode = request.mode or SETTINGS.game_mode
    state = new_game(mode, _resolve_starting_player(request.starting_player))
    session = GameSession(state=state, players={request.player_id: "X"})
    if request.opponent == "ai":
        depth = SETTINGS.ai_depth if request.depth is None else request.depth
        session.ai = MinimaxAI(player="O", depth=depth)
        session.players[AI_PLAYER_ID] = "O"
    session_id = uuid.uuid4().hex
    SESSIONS[session_id] = session
    logger.info(
        "game %s created: mode=%s opponent=%s first=%s",
        session_id,
        state.mode.value,
        request.opponent,
        state.current_player,
    )
    return session_id, session


def _get_session(game_id: str) -> GameSession:
    try:
        return SESSIONS[game_id]
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Game not found") from exc


def _status(session: GameSession) -> str:
    if session.state.is_game_over:
        return "finished"
    if len(session.players) < 2:
        return "waiting"
    return "playing"


def _enforce_move_limit(state: GameState) -> GameState:
    limit = SETTINGS.move_limit
    if (
        limit
        and state.mode == GameMode.INFINITE
        and len(state.moves) >= limit
        and not state.is_game_over
    ):
        logger.info("move limit %d reached, declaring a draw", limit)
        return declare_draw(state)
    return state


def _ai_should_move(session: GameSession) -> bool:
    return bool(
        session.ai
        and not session.state.is_game_over
        and session.state.current_player == session.ai.player
    )


def _run_ai_turn(game_id: str) -> None:
    session = SESSIONS.get(game_id)
    if not session:
        return

    time.sleep(max(0.0, random.uniform(*AI_THINK_DELAY)))

    with session.lock:
        try:
            if not _ai_should_move(session):
                return
            position = session.ai.choose(session.state)
            if position is None:
                return
            result = apply_move(session.state, position, session.ai.player)
            if not result.accepted:
                logger.error(
                    "game %s: AI move %s rejected (%s)",
                    game_id,
                    position,
                    result.rejection.value,
                )
                return
            session.state = _enforce_move_limit(result.state)
            logger.info("game %s: AI played %d", game_id, position)
        finally:
            session.ai_pending = False


def _serialize_session(game_id: str, session: GameSession) -> Dict[str, object]:
    with session.lock:
        state = session.state
        wire = to_wire(state)
        payload: Dict[str, object] = {
            "id": game_id,
            "status": _status(session),
            "state": wire,
            "currentPlayer": state.current_player,
            "players": {side: session.player_for(side) for side in PLAYERS},
            "availableMoves": state.available_moves(),
            "livePieces": {side: state.live_pieces(side) for side in PLAYERS},
            "aiPending": session.ai_pending,
        }
        if wire["moves"]:
            payload["lastMove"] = wire["moves"][-1]
        return payload


def _reject(reason: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=400, detail={"reason": reason, "message": message}
    )


def _apply_player_move(
    game_id: str,
    session: GameSession,
    player_id: str,
    position: Union[int, Dict[str, int]],
    background_tasks: Optional[BackgroundTasks] = None,
) -> None:
    should_schedule_ai = False
    with session.lock:
        side = session.players.get(player_id)
        if side is None or player_id == AI_PLAYER_ID:
            raise HTTPException(
                status_code=403, detail="Player is not seated at this game"
            )
        if _status(session) == "waiting":
            raise _reject("waiting_for_opponent", "Waiting for an opponent to join")
        if session.ai_pending:
            raise _reject("ai_pending", "AI is completing its move")

        result = apply_move(session.state, position, side)
        if not result.accepted:
            logger.info(
                "game %s: move by %s at %r rejected (%s)",
                game_id,
                player_id,
                position,
                result.rejection.value,
            )
            raise _reject(result.rejection.value, result.message or "")

        session.state = _enforce_move_limit(result.state)
        logger.debug("game %s: %s played %d", game_id, side, result.move.position)

        should_schedule_ai = _ai_should_move(session)
        if should_schedule_ai:
            session.ai_pending = True

    if should_schedule_ai and background_tasks is not None:
        background_tasks.add_task(_run_ai_turn, game_id)


# ---------- Routes ----------


@app.post("/api/game")
def create_game(
    request: NewGameRequest, background_tasks: BackgroundTasks
) -> Dict[str, object]:
    game_id, session = _create_session(request)
    # The AI may have been drawn to open the game
    if _ai_should_move(session):
        session.ai_pending = True
        background_tasks.add_task(_run_ai_turn, game_id)
    return _serialize_session(game_id, session)


@app.get("/api/game/{game_id}")
def get_game(game_id: str) -> Dict[str, object]:
    session = _get_session(game_id)
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/join")
def join_game(game_id: str, request: JoinRequest) -> Dict[str, object]:
    session = _get_session(game_id)
    with session.lock:
        if request.player_id not in session.players:
            if len(session.players) >= 2:
                raise HTTPException(status_code=409, detail="Game is full")
            taken = next(iter(session.players.values()))
            session.players[request.player_id] = other_player(taken)
            logger.info("game %s: %s joined", game_id, request.player_id)
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/move")
def make_move(
    game_id: str, request: MoveRequest, background_tasks: BackgroundTasks
) -> Dict[str, object]:
    session = _get_session(game_id)
    _apply_player_move(
        game_id, session, request.player_id, request.position, background_tasks
    )
    return _serialize_session(game_id, session)


@app.post("/api/recommend")
def recommend_move(request: RecommendRequest) -> Dict[str, object]:
    try:
        if isinstance(request.state, str):
            state = deserialize(request.state, SETTINGS.game_mode)
        else:
            state = from_wire(request.state, SETTINGS.game_mode)
    except InfiniXOError as exc:
        logger.warning("recommend: undecodable state: %s", exc)
        raise HTTPException(status_code=422, detail=exc.to_dict()) from exc

    depth = SETTINGS.ai_depth if request.depth is None else request.depth
    position = recommend(state, depth)
    return {"position": position, "player": state.current_player, "depth": depth}
