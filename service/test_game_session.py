"""Tests for GameSession state transitions."""

import unittest
from unittest.mock import Mock

import numpy as np

from board_rules import Direction, is_terminal, simulate_move
from game_session import GameSession, NumpyRandomSource, RandomSource
from history_store import GameRecord


class ScriptedRandom(RandomSource):
    """Replays ``(index, value)`` picks, then keeps choosing the first empty cell with a 2."""

    def __init__(self, picks=()):
        self.picks = list(picks)
        self.calls = []

    def choose(self, count):
        self.calls.append(count)
        if self.picks:
            return self.picks.pop(0)
        return 0, 2


def load_board(session: GameSession, grid) -> None:
    session._board = np.array(grid, dtype=np.int64)


class InitializeTests(unittest.TestCase):
    def test_starts_with_two_tiles(self) -> None:
        session = GameSession(random_source=NumpyRandomSource(seed=3))
        board = session.board
        self.assertEqual(np.count_nonzero(board), 2)
        self.assertTrue(set(board[board != 0].tolist()) <= {2, 4})
        self.assertEqual(session.score, 0)
        self.assertEqual(session.moves, 0)
        self.assertFalse(session.game_over)
        self.assertFalse(session.game_won)

    def test_board_property_is_a_copy(self) -> None:
        session = GameSession(random_source=ScriptedRandom())
        board = session.board
        board[:] = 1024
        self.assertEqual(np.count_nonzero(session.board), 2)


class MoveTests(unittest.TestCase):
    def test_scripted_opening_then_left(self) -> None:
        rng = ScriptedRandom([(0, 2), (0, 2), (5, 4)])
        session = GameSession(random_source=rng)
        self.assertEqual(session.board[0].tolist(), [2, 2, 0, 0])

        outcome = session.move(Direction.LEFT)

        self.assertTrue(outcome.moved)
        self.assertEqual(outcome.points, 4)
        board = session.board
        self.assertEqual(board[0].tolist(), [4, 0, 0, 0])
        self.assertEqual(session.score, 4)
        self.assertEqual(session.moves, 1)
        self.assertEqual(np.count_nonzero(board), 2)
        # Sixth empty cell in row-major order once (0, 0) is taken.
        self.assertEqual(board[1, 2], 4)
        self.assertEqual(rng.calls, [16, 15, 15])

    def test_move_into_wall_is_a_noop(self) -> None:
        rng = ScriptedRandom()
        session = GameSession(random_source=rng)
        load_board(session, [[2, 4, 8, 16], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0]])
        before = session.board
        spawns = len(rng.calls)

        outcome = session.move("left")

        self.assertFalse(outcome.moved)
        self.assertEqual(outcome.points, 0)
        np.testing.assert_array_equal(session.board, before)
        self.assertEqual(session.score, 0)
        self.assertEqual(session.moves, 0)
        self.assertEqual(len(rng.calls), spawns)

    def test_each_successful_move_spawns_one_tile(self) -> None:
        session = GameSession(random_source=NumpyRandomSource(seed=11))
        directions = list(Direction)
        previous_score = 0
        for step in range(400):
            if session.game_over:
                break
            direction = directions[step % 4]
            slid, changed, points = simulate_move(session.board, direction)
            moves_before = session.moves

            outcome = session.move(direction)

            self.assertEqual(outcome.moved, changed)
            if changed:
                self.assertEqual(np.count_nonzero(session.board), np.count_nonzero(slid) + 1)
                self.assertEqual(session.moves, moves_before + 1)
                self.assertEqual(session.score, previous_score + points)
            self.assertGreaterEqual(session.score, previous_score)
            self.assertEqual(session.game_over, is_terminal(session.board))
            previous_score = session.score


class StatusTests(unittest.TestCase):
    def test_win_is_sticky_until_reset(self) -> None:
        session = GameSession(random_source=ScriptedRandom())
        load_board(session, [[1024, 1024, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0]])

        session.move(Direction.LEFT)
        self.assertTrue(session.game_won)
        self.assertFalse(session.game_over)

        # Play continues past the winning tile.
        outcome = session.move(Direction.RIGHT)
        self.assertTrue(outcome.moved)
        self.assertTrue(session.game_won)

        session.reset()
        self.assertFalse(session.game_won)
        self.assertEqual(session.score, 0)

    def test_custom_win_tile(self) -> None:
        session = GameSession(random_source=ScriptedRandom(), win_tile=16)
        load_board(session, [[8, 8, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0]])
        session.move(Direction.LEFT)
        self.assertTrue(session.game_won)

    def test_game_over_records_history_once(self) -> None:
        history = Mock()
        session = GameSession(history=history, random_source=ScriptedRandom())
        load_board(
            session,
            [
                [2, 4, 2, 4],
                [4, 2, 4, 2],
                [2, 4, 2, 4],
                [0, 8, 16, 32],
            ],
        )
        session._score = 500
        session._moves = 41

        outcome = session.move(Direction.LEFT)

        self.assertTrue(outcome.moved)
        self.assertEqual(session.board[3].tolist(), [8, 16, 32, 2])
        self.assertTrue(session.game_over)
        history.append.assert_called_once()
        record = history.append.call_args[0][0]
        self.assertIsInstance(record, GameRecord)
        self.assertEqual(record.score, 500)
        self.assertEqual(record.highest_tile, 32)
        self.assertEqual(record.moves, 42)

        for direction in Direction:
            self.assertFalse(session.move(direction).moved)
        self.assertTrue(session.game_over)
        history.append.assert_called_once()

    def test_reset_from_game_over(self) -> None:
        history = Mock()
        session = GameSession(history=history, random_source=ScriptedRandom())
        load_board(session, [[2, 4, 2, 4], [4, 2, 4, 2], [2, 4, 2, 4], [0, 4, 2, 4]])
        session.move(Direction.LEFT)
        self.assertTrue(session.game_over)

        session.reset()

        self.assertFalse(session.game_over)
        self.assertEqual(session.moves, 0)
        self.assertEqual(np.count_nonzero(session.board), 2)
        history.append.assert_called_once()
        history.clear.assert_not_called()

    def test_snapshot_is_json_ready(self) -> None:
        session = GameSession(random_source=ScriptedRandom([(0, 2), (0, 4)]))
        snapshot = session.snapshot()
        self.assertEqual(snapshot["board"][0], [2, 4, 0, 0])
        self.assertEqual(snapshot["highest_tile"], 4)
        self.assertEqual(snapshot["valid_moves"], ["RIGHT", "DOWN"])
        self.assertIsInstance(snapshot["board"][0][0], int)


class NumpyRandomSourceTests(unittest.TestCase):
    def test_draws_stay_in_range(self) -> None:
        rng = NumpyRandomSource(seed=0)
        values = set()
        for count in range(1, 17):
            for _ in range(20):
                index, value = rng.choose(count)
                self.assertGreaterEqual(index, 0)
                self.assertLess(index, count)
                values.add(value)
        self.assertEqual(values, {2, 4})

    def test_seed_is_reproducible(self) -> None:
        a = NumpyRandomSource(seed=5)
        b = NumpyRandomSource(seed=5)
        self.assertEqual([a.choose(16) for _ in range(10)], [b.choose(16) for _ in range(10)])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
