"""Core 2048 board mechanics shared by the game session, the API and tests."""

from enum import Enum
from typing import Iterable, List, Sequence, Tuple, Union

import numpy as np

BOARD_SIZE = 4


class Direction(str, Enum):
    UP = "UP"
    RIGHT = "RIGHT"
    DOWN = "DOWN"
    LEFT = "LEFT"

    @classmethod
    def parse(cls, value: Union["Direction", str]) -> "Direction":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown direction: {value}") from None


DIRECTION_NAMES: Sequence[str] = tuple(d.value for d in Direction)


def collapse_line(line: Iterable[int]) -> Tuple[List[int], bool, int]:
    """Slide one line towards index 0, merging equal neighbours once.

    Returns the new line, whether it differs from the input, and the points
    scored (the sum of the merged values).
    """
    original = [int(v) for v in line]
    non_zero = [v for v in original if v != 0]
    merged: List[int] = []
    points = 0
    idx = 0

    while idx < len(non_zero):
        value = non_zero[idx]
        if idx + 1 < len(non_zero) and non_zero[idx + 1] == value:
            merged.append(value * 2)
            points += value * 2
            idx += 2
        else:
            merged.append(value)
            idx += 1

    merged.extend([0] * (len(original) - len(merged)))
    return merged, merged != original, points


def _apply_left(board: np.ndarray) -> Tuple[np.ndarray, bool, int]:
    rows = []
    changed_any = False
    total = 0
    for row in board:
        new_row, changed, points = collapse_line(row.tolist())
        rows.append(new_row)
        changed_any = changed_any or changed
        total += points
    return np.array(rows, dtype=np.int64), changed_any, total


def simulate_move(
    grid: Sequence[Sequence[int]], direction: Union[Direction, str]
) -> Tuple[np.ndarray, bool, int]:
    """Return ``(next_board, changed, points)`` for ``direction``; ``grid`` is untouched."""
    direction = Direction.parse(direction)
    arr = np.array(grid, dtype=np.int64)

    if direction is Direction.LEFT:
        next_board, changed, points = _apply_left(arr)
    elif direction is Direction.RIGHT:
        moved, changed, points = _apply_left(np.fliplr(arr))
        next_board = np.fliplr(moved)
    elif direction is Direction.UP:
        moved, changed, points = _apply_left(arr.T)
        next_board = moved.T
    else:
        moved, changed, points = _apply_left(np.fliplr(arr.T))
        next_board = np.fliplr(moved).T

    return np.ascontiguousarray(next_board), changed, points


def valid_moves(grid: Sequence[Sequence[int]]) -> List[str]:
    allowed: List[str] = []
    for direction in Direction:
        _, changed, _ = simulate_move(grid, direction)
        if changed:
            allowed.append(direction.value)
    return allowed


def empty_cells(grid: Sequence[Sequence[int]]) -> List[Tuple[int, int]]:
    rows, cols = np.nonzero(np.asarray(grid) == 0)
    return [(int(r), int(c)) for r, c in zip(rows, cols)]


def has_adjacent_pair(grid: Sequence[Sequence[int]]) -> bool:
    """True if two horizontally or vertically adjacent cells hold the same value."""
    arr = np.asarray(grid)
    horizontal = arr[:, :-1] == arr[:, 1:]
    vertical = arr[:-1, :] == arr[1:, :]
    return bool(horizontal.any() or vertical.any())


def highest_tile(grid: Sequence[Sequence[int]]) -> int:
    return int(np.max(grid))


def is_terminal(grid: Sequence[Sequence[int]]) -> bool:
    # Empty cells compare equal to each other, so check emptiness first.
    return not empty_cells(grid) and not has_adjacent_pair(grid)


MAX_TILE = 2 ** 62


def _tile_value(value) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Grid values must be integers, got {value!r}")
    if isinstance(value, (float, np.floating)):
        if not float(value).is_integer():
            raise ValueError(f"Grid values must be integers, got {value!r}")
        value = int(value)
    elif not isinstance(value, (int, np.integer)):
        raise ValueError(f"Grid values must be integers, got {value!r}")
    value = int(value)
    if value == 0:
        return value
    if value < 2 or value > MAX_TILE or value & (value - 1):
        raise ValueError(f"Grid values must be 0 or a power of two between 2 and 2**62, got {value}")
    return value


def validate_grid(grid) -> np.ndarray:
    raw = np.array(grid, dtype=object)
    if raw.shape != (BOARD_SIZE, BOARD_SIZE):
        raise ValueError(f"Expected 4x4 grid, received shape {raw.shape}")
    values = [[_tile_value(v) for v in row] for row in raw.tolist()]
    return np.array(values, dtype=np.int64)


__all__ = [
    "BOARD_SIZE",
    "DIRECTION_NAMES",
    "Direction",
    "collapse_line",
    "empty_cells",
    "has_adjacent_pair",
    "highest_tile",
    "is_terminal",
    "simulate_move",
    "valid_moves",
    "validate_grid",
]
