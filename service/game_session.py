"""A single game of 2048: board, score, move counter and win/loss flags."""

import logging
from typing import Any, Dict, List, NamedTuple, Optional, Tuple, Union

import numpy as np

from board_rules import (
    BOARD_SIZE,
    Direction,
    empty_cells,
    highest_tile,
    is_terminal,
    simulate_move,
    valid_moves,
)
from history_store import GameRecord

logger = logging.getLogger(__name__)

WIN_TILE = 2048


class RandomSource:
    """Picks where a new tile goes and what it is worth."""

    def choose(self, count: int) -> Tuple[int, int]:
        """Return ``(index, value)`` with ``0 <= index < count`` and value 2 or 4."""
        raise NotImplementedError


class NumpyRandomSource(RandomSource):
    def __init__(self, seed: Optional[int] = None) -> None:
        self._rng = np.random.default_rng(seed)

    def choose(self, count: int) -> Tuple[int, int]:
        index = int(self._rng.integers(count))
        value = int(self._rng.integers(1, 3)) * 2
        return index, value


class MoveOutcome(NamedTuple):
    moved: bool
    points: int


class GameSession:
    """Owns the live board. All mutation goes through ``move`` and ``reset``.

    ``history`` is anything with an ``append(record)`` method; when the game is
    lost a :class:`GameRecord` summary is handed to it exactly once.
    """

    def __init__(
        self,
        history=None,
        random_source: Optional[RandomSource] = None,
        win_tile: int = WIN_TILE,
    ) -> None:
        self._history = history
        self._random = random_source or NumpyRandomSource()
        self.win_tile = win_tile
        self._board = np.zeros((BOARD_SIZE, BOARD_SIZE), dtype=np.int64)
        self._score = 0
        self._moves = 0
        self._game_won = False
        self._game_over = False
        self.initialize()

    @property
    def board(self) -> np.ndarray:
        return self._board.copy()

    @property
    def score(self) -> int:
        return self._score

    @property
    def moves(self) -> int:
        return self._moves

    @property
    def game_won(self) -> bool:
        return self._game_won

    @property
    def game_over(self) -> bool:
        return self._game_over

    @property
    def highest_tile(self) -> int:
        return highest_tile(self._board)

    def initialize(self) -> None:
        self._board = np.zeros((BOARD_SIZE, BOARD_SIZE), dtype=np.int64)
        self._score = 0
        self._moves = 0
        self._game_won = False
        self._game_over = False
        self._spawn_tile()
        self._spawn_tile()

    def reset(self) -> None:
        self.initialize()

    def move(self, direction: Union[Direction, str]) -> MoveOutcome:
        next_board, moved, points = simulate_move(self._board, direction)
        if not moved:
            return MoveOutcome(False, 0)

        self._board = next_board
        self._moves += 1
        self._score += points
        self._spawn_tile()
        self._check_status()
        return MoveOutcome(True, points)

    def valid_moves(self) -> List[str]:
        return valid_moves(self._board)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "board": self._board.tolist(),
            "score": self._score,
            "moves": self._moves,
            "game_over": self._game_over,
            "game_won": self._game_won,
            "highest_tile": self.highest_tile,
            "valid_moves": self.valid_moves(),
        }

    def _spawn_tile(self) -> None:
        cells = empty_cells(self._board)
        if not cells:
            return
        index, value = self._random.choose(len(cells))
        row, col = cells[index]
        self._board[row, col] = value

    def _check_status(self) -> None:
        top = highest_tile(self._board)
        if top >= self.win_tile and not self._game_won:
            self._game_won = True
            logger.info("Reached %s after %s moves", top, self._moves)

        if not self._game_over and is_terminal(self._board):
            self._game_over = True
            logger.info("Game over: score=%s highest_tile=%s moves=%s", self._score, top, self._moves)
            if self._history is not None:
                self._history.append(GameRecord(score=self._score, highest_tile=top, moves=self._moves))


__all__ = ["GameSession", "MoveOutcome", "NumpyRandomSource", "RandomSource", "WIN_TILE"]
