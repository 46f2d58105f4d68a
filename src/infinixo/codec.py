"""
JSON encoding of ``GameState``.

One canonical shape is written: nested 3x3 board, ``moves`` with flat
positions and ISO-8601 UTC timestamps, explicit ``isDraw``/``isGameOver``.
Older payloads are still read: flat boards, ``moveHistory``, ``{row, col}``
positions, epoch-millisecond timestamps, ``winner: "draw"`` and the session
modes (``demo``, ``online``, ...) that all played infinite rules.

Decoding never trusts derived fields. The move history is replayed through
the rule engine and everything else has to agree with the replay.
"""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Tuple

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .board import (
    BOARD_SIZE,
    CELL_COUNT,
    PLAYERS,
    WINNING_LINES,
    coerce_index,
    index_to_position,
    pieces_of,
)
from .errors import StateDecodeError, StateInvariantError
from .game import (
    GameMode,
    GameState,
    apply_move,
    declare_draw,
    new_game,
    validate_piece_cap,
)
from .ledger import Move

LEGACY_INFINITE_MODES = frozenset({"demo", "online", "quick-match", "private"})
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ---------- Wire models ----------


def _flat_position(value: Any) -> Any:
    """Accept a flat index or a ``{row, col}`` pair; reject anything off-board."""
    if value is None or isinstance(value, bool):
        raise ValueError("position must be an index or a {row, col} pair")
    if isinstance(value, dict) and not all(
        isinstance(value.get(key), int) and not isinstance(value.get(key), bool)
        for key in ("row", "col")
    ):
        raise ValueError(f"position {value!r} needs integer row and col")
    if isinstance(value, (int, dict)):
        index = coerce_index(value)
        if index is None:
            raise ValueError(f"position {value!r} is outside the board")
        return index
    return value


class WireMove(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    player: Literal["X", "O"]
    position: int = Field(ge=0, lt=CELL_COUNT)
    move_number: Optional[int] = Field(default=None, alias="moveNumber", ge=1)
    timestamp: datetime
    removed_position: Optional[int] = Field(
        default=None, alias="removedPosition", ge=0, lt=CELL_COUNT
    )

    @field_validator("position", mode="before")
    @classmethod
    def normalize_position(cls, value: Any) -> Any:
        return _flat_position(value)

    @field_validator("removed_position", mode="before")
    @classmethod
    def normalize_removed(cls, value: Any) -> Any:
        return None if value is None else _flat_position(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def epoch_millis(cls, value: Any) -> Any:
        # JavaScript Date.now(): milliseconds since the epoch
        if isinstance(value, bool):
            raise ValueError("timestamp must be a number or a date-time string")
        if isinstance(value, (int, float)):
            try:
                return _EPOCH + timedelta(milliseconds=value)
            except (OverflowError, ValueError) as exc:
                raise ValueError(f"timestamp {value!r} is out of range") from exc
        return value

    @field_validator("timestamp")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class WirePosition(BaseModel):
    row: int = Field(ge=0, le=BOARD_SIZE - 1)
    col: int = Field(ge=0, le=BOARD_SIZE - 1)


class WireState(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    board: List[Optional[Literal["X", "O"]]]
    current_player: Literal["X", "O"] = Field(
        default="X",
        validation_alias=AliasChoices("currentPlayer", "sideToAct", "current_player"),
    )
    game_mode: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("gameMode", "mode")
    )
    moves: List[WireMove] = Field(
        default_factory=list, validation_alias=AliasChoices("moves", "moveHistory")
    )
    winner: Optional[Literal["X", "O", "draw"]] = None
    is_draw: Optional[bool] = Field(default=None, alias="isDraw")
    is_game_over: Optional[bool] = Field(default=None, alias="isGameOver")
    winning_line: Optional[
        Annotated[List[WirePosition], Field(min_length=2, max_length=3)]
    ] = Field(default=None, alias="winningLine")
    max_pieces_per_player: Optional[int] = Field(
        default=None, alias="maxPiecesPerPlayer"
    )

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        # null and "" mean "absent" for every top-level field
        if not isinstance(data, dict):
            raise ValueError("game state must be a JSON object")
        return {k: v for k, v in data.items() if v is not None and v != ""}

    @field_validator("board", mode="before")
    @classmethod
    def flatten_board(cls, value: Any) -> Any:
        if not isinstance(value, list):
            raise ValueError("board must be an array")
        if value and all(isinstance(row, list) for row in value):
            if len(value) != BOARD_SIZE or any(
                len(row) != BOARD_SIZE for row in value
            ):
                raise ValueError("nested board must be 3x3")
            value = [cell for row in value for cell in row]
        if len(value) != CELL_COUNT:
            raise ValueError(f"board must have {CELL_COUNT} cells")
        return [None if cell in ("", " ") else cell for cell in value]

    @field_validator("winning_line", mode="before")
    @classmethod
    def pairs_or_indices(cls, value: Any) -> Any:
        if isinstance(value, list):
            if not value:
                return None
            return [
                dict(zip(("row", "col"), index_to_position(v)))
                if isinstance(v, int) and not isinstance(v, bool)
                else v
                for v in value
            ]
        return value


# ---------- Encoding ----------


def to_wire(state: GameState) -> Dict[str, Any]:
    """Canonical JSON-ready dict for ``state``."""
    board = [
        list(state.board[row * BOARD_SIZE : (row + 1) * BOARD_SIZE])
        for row in range(BOARD_SIZE)
    ]
    winning_line: Optional[List[Dict[str, int]]] = None
    if state.winning_line:
        winning_line = [
            {"row": row, "col": col}
            for row, col in map(index_to_position, state.winning_line)
        ]
    return {
        "board": board,
        "currentPlayer": state.current_player,
        "gameMode": GameMode(state.mode).value,
        "moves": [_move_to_wire(m) for m in state.moves],
        "winner": "draw" if state.drawn else state.winner,
        "isDraw": state.drawn,
        "isGameOver": state.is_game_over,
        "winningLine": winning_line,
        "maxPiecesPerPlayer": state.max_pieces_per_player,
    }


def _move_to_wire(move: Move) -> Dict[str, Any]:
    return {
        "player": move.player,
        "position": move.position,
        "moveNumber": move.sequence,
        "timestamp": move.timestamp.isoformat(),
        "removedPosition": move.retired_position,
    }


def serialize(state: GameState) -> str:
    return json.dumps(to_wire(state))


# ---------- Decoding ----------


def deserialize(
    text: str | bytes, default_mode: GameMode | str = GameMode.INFINITE
) -> GameState:
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise StateDecodeError("Game state is not valid JSON") from exc
    return from_wire(data, default_mode)


def from_wire(
    data: Any, default_mode: GameMode | str = GameMode.INFINITE
) -> GameState:
    """
    Decode an already-parsed payload.

    Raises ``StateDecodeError`` for malformed input and
    ``StateInvariantError`` when the payload parses but describes a position
    the rules could not have produced.
    """
    try:
        wire = WireState.model_validate(data)
    except ValidationError as exc:
        raise StateDecodeError(
            "Malformed game state", context={"errors": _summarize(exc)}
        ) from exc
    return _build_state(wire, GameMode(default_mode))


def _summarize(exc: ValidationError) -> List[str]:
    return [
        f"{'.'.join(str(p) for p in err['loc']) or 'state'}: {err['msg']}"
        for err in exc.errors()
    ]


def _resolve_mode(raw: Optional[str], default_mode: GameMode) -> GameMode:
    if raw is None:
        return default_mode
    if raw in LEGACY_INFINITE_MODES:
        return GameMode.INFINITE
    try:
        return GameMode(raw)
    except ValueError as exc:
        raise StateDecodeError(
            f"Unknown game mode {raw!r}", context={"gameMode": raw}
        ) from exc


def _build_state(wire: WireState, default_mode: GameMode) -> GameState:
    mode = _resolve_mode(wire.game_mode, default_mode)
    try:
        cap = validate_piece_cap(mode, wire.max_pieces_per_player)
    except ValueError as exc:
        raise StateInvariantError(
            str(exc), context={"maxPiecesPerPlayer": wire.max_pieces_per_player}
        ) from exc

    board = tuple(wire.board)
    if mode == GameMode.INFINITE:
        for player in PLAYERS:
            count = len(pieces_of(board, player))
            if count > cap:
                raise StateInvariantError(
                    "Player holds more live pieces than allowed",
                    context={"player": player, "pieces": count, "max": cap},
                )

    state = _replay(wire.moves, mode, cap, wire.current_player)
    state = _reconcile_result(state, wire)

    if state.board != board:
        raise StateInvariantError("Board does not match the move history")
    if wire.moves and state.current_player != wire.current_player:
        raise StateInvariantError(
            "Side to act does not match the move history",
            context={
                "currentPlayer": wire.current_player,
                "expected": state.current_player,
            },
        )

    if wire.winning_line:
        indices = [p.row * BOARD_SIZE + p.col for p in wire.winning_line]
        state = replace(state, winning_line=_resolve_line(indices, state))
    return state


def _replay(
    records: Sequence[WireMove], mode: GameMode, cap: int, current_player: str
) -> GameState:
    starting_player = records[0].player if records else current_player
    state = new_game(mode, starting_player, cap)
    for number, record in enumerate(records, start=1):
        if record.move_number is not None and record.move_number != number:
            raise StateInvariantError(
                "Move numbers must run 1, 2, 3, ... in order",
                context={"index": number, "moveNumber": record.move_number},
            )
        result = apply_move(
            state, record.position, record.player, timestamp=record.timestamp
        )
        if not result.accepted:
            raise StateInvariantError(
                f"Move {number} cannot be replayed: {result.message}",
                context={"move": number, "reason": result.rejection.value},
            )
        if (
            "removed_position" in record.model_fields_set
            and record.removed_position != result.move.retired_position
        ):
            raise StateInvariantError(
                "Recorded retirement does not match the oldest live piece",
                context={
                    "move": number,
                    "removedPosition": record.removed_position,
                    "expected": result.move.retired_position,
                },
            )
        state = result.state
    return state


def _reconcile_result(state: GameState, wire: WireState) -> GameState:
    claims_draw = wire.winner == "draw" or bool(wire.is_draw)
    claimed_winner = wire.winner if wire.winner in PLAYERS else None

    if claims_draw and claimed_winner:
        raise StateInvariantError("State claims both a winner and a draw")
    if claimed_winner != state.winner:
        raise StateInvariantError(
            "Winner does not match the board",
            context={"winner": claimed_winner, "expected": state.winner},
        )
    if claims_draw and not state.drawn:
        if state.is_game_over:
            raise StateInvariantError("Draw claimed for a game that was won")
        # Draws outside the rules (move caps) are the caller's call
        state = declare_draw(state)
    elif state.drawn and not claims_draw:
        raise StateInvariantError("Board is a finished draw but no draw is recorded")

    if wire.is_game_over is not None and wire.is_game_over != state.is_game_over:
        raise StateInvariantError(
            "isGameOver disagrees with winner/isDraw",
            context={"isGameOver": wire.is_game_over},
        )
    return state


def _resolve_line(indices: List[int], state: GameState) -> Tuple[int, int, int]:
    """Map a recorded 2-3 cell line onto the canonical triple it belongs to."""
    if state.winner is None:
        raise StateInvariantError("Winning line recorded without a winner")
    for line in WINNING_LINES:
        if set(indices) <= set(line) and all(
            state.board[i] == state.winner for i in line
        ):
            return line
    raise StateInvariantError(
        "Winning line is not a completed line of the winner",
        context={"winningLine": indices},
    )
