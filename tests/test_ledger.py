"""Tests for the append-only move ledger."""

from datetime import datetime, timezone

from infinixo.ledger import Move, append, live_moves, next_sequence, oldest_live_position

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _move(player, position, sequence, retired=None):
    return Move(
        player=player,
        position=position,
        sequence=sequence,
        timestamp=T0,
        retired_position=retired,
    )


def test_append_copies_instead_of_mutating():
    ledger = ()
    first = append(ledger, _move("X", 0, 1))
    second = append(first, _move("O", 4, 2))
    assert ledger == ()
    assert len(first) == 1
    assert [m.position for m in second] == [0, 4]


def test_next_sequence_starts_at_one():
    assert next_sequence(()) == 1
    assert next_sequence((_move("X", 0, 1), _move("O", 4, 2))) == 3


def test_oldest_live_position_without_pieces():
    ledger = (_move("X", 0, 1),)
    assert oldest_live_position((), "X") is None
    assert oldest_live_position(ledger, "O") is None
    assert oldest_live_position(ledger, "X") == 0


def test_retirement_marker_advances_oldest_piece():
    ledger = (
        _move("X", 0, 1),
        _move("O", 4, 2),
        _move("X", 1, 3),
        _move("O", 8, 4),
        _move("X", 5, 5),
        _move("O", 6, 6),
        _move("X", 3, 7, retired=0),
    )
    assert [m.position for m in live_moves(ledger, "X")] == [1, 5, 3]
    assert oldest_live_position(ledger, "X") == 1
    assert [m.position for m in live_moves(ledger, "O")] == [4, 8, 6]
    # Retired moves stay in the ledger
    assert len(ledger) == 7
