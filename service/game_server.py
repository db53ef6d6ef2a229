import logging
import os
import threading
from typing import Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from board_rules import Direction, simulate_move, valid_moves, validate_grid
from game_session import WIN_TILE, GameSession, NumpyRandomSource
from history_store import HistoryStore, JsonFileStorage
from remote_store import InMemoryRemoteStore

logger = logging.getLogger(__name__)


def resolve_history_path() -> str:
    env_path = os.environ.get("GAME_HISTORY_PATH")
    if env_path:
        return os.path.abspath(env_path)

    here = os.path.dirname(__file__)
    return os.path.abspath(os.path.join(here, "..", "game_history.json"))


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def create_app(
    session: Optional[GameSession] = None,
    history: Optional[HistoryStore] = None,
) -> Flask:
    if history is None:
        history = HistoryStore(
            storage=JsonFileStorage(resolve_history_path()),
            remote=InMemoryRemoteStore(),
            sync_on_start=True,
        )
    if session is None:
        session = GameSession(
            history=history,
            random_source=NumpyRandomSource(_env_int("GAME_SEED", None)),
            win_tile=_env_int("GAME_WIN_TILE", WIN_TILE),
        )

    app = Flask(__name__)
    allowed_origins = os.environ.get("GAME_ALLOWED_ORIGINS", "*")
    CORS(app, resources={r"/*": {"origins": allowed_origins}})

    # Flask may serve requests on several threads; moves must not interleave.
    session_lock = threading.Lock()
    app.extensions["game_session"] = session
    app.extensions["history_store"] = history

    def history_payload() -> Dict:
        return {
            "records": [r.to_dict() for r in history.records],
            "statistics": history.statistics(),
            "syncing": history.syncing,
            "last_sync_error": history.last_sync_error,
        }

    def json_object() -> Optional[Dict]:
        payload = request.get_json(force=True, silent=True)
        if payload is None:
            return {}
        return payload if isinstance(payload, dict) else None

    @app.get("/state")
    def state():
        with session_lock:
            return jsonify(session.snapshot())

    @app.post("/move")
    def move():
        payload = json_object()
        if payload is None:
            return jsonify({"error": "Payload must be a JSON object"}), 400
        raw_direction = payload.get("direction")
        if raw_direction is None:
            return jsonify({"error": "Payload must include 'direction' key"}), 400
        try:
            direction = Direction.parse(raw_direction)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        with session_lock:
            outcome = session.move(direction)
            snapshot = session.snapshot()
        return jsonify({"moved": outcome.moved, "points": outcome.points, "state": snapshot})

    @app.post("/reset")
    def reset():
        with session_lock:
            session.reset()
            return jsonify(session.snapshot())

    @app.get("/history")
    def get_history():
        return jsonify(history_payload())

    @app.delete("/history")
    def clear_history():
        history.clear()
        return jsonify(history_payload())

    @app.post("/simulate")
    def simulate():
        payload = json_object()
        if payload is None:
            return jsonify({"error": "Payload must be a JSON object"}), 400
        grid = payload.get("grid")
        if grid is None:
            return jsonify({"error": "Payload must include 'grid' key"}), 400
        try:
            board = validate_grid(grid)
            next_grid, changed, points = simulate_move(board, payload.get("direction", "LEFT"))
        except (OverflowError, TypeError, ValueError) as exc:
            return jsonify({"error": str(exc)}), 400

        return jsonify(
            {
                "next_grid": next_grid.tolist(),
                "changed": changed,
                "points": points,
                "valid_moves": valid_moves(board),
            }
        )

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # Use 0.0.0.0 so a front end on the same machine can reach it from another process.
    port = int(os.environ.get("PORT", 5050))
    create_app().run(host="0.0.0.0", port=port, debug=bool(os.environ.get("FLASK_DEBUG")))
