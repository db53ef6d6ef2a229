import os
import sys

import matplotlib.pyplot as plt
import numpy as np

from history_store import HistoryStore, JsonFileStorage

path = sys.argv[1] if len(sys.argv) > 1 else os.environ.get("GAME_HISTORY_PATH", "game_history.json")
store = HistoryStore(storage=JsonFileStorage(path))
records = sorted(store.records, key=lambda r: r.date)  # oldest first so the x axis reads left to right

if not records:
    print(f"No game history yet ({path})")
    sys.exit(0)

stats = store.statistics()
print(f"Total games: {stats['total_games']}")
print(f"Best score:  {stats['best_score']}")
print(f"Average:     {stats['average_score']:.0f}")

scores = np.array([r.score for r in records])
games = np.arange(1, len(records) + 1)
best_idx = int(np.argmax(scores))

fig, (ax_scores, ax_tiles) = plt.subplots(1, 2, figsize=(12, 5))

ax_scores.plot(games, scores, marker="o", color="tab:orange", label="Score")
ax_scores.axhline(stats["average_score"], linestyle="--", color="gray", label="Average")
ax_scores.scatter([games[best_idx]], [scores[best_idx]], s=120, color="tab:red", zorder=3, label="Best")
ax_scores.set_xlabel("Game")
ax_scores.set_ylabel("Score")
ax_scores.set_title("Score per game")
ax_scores.legend()

# One bar per power of two that was reached as the highest tile.
exponents = np.log2([r.highest_tile for r in records]).astype(int)
labels, counts = np.unique(exponents, return_counts=True)
ax_tiles.bar([str(2 ** e) for e in labels], counts, color="tab:purple")
ax_tiles.set_xlabel("Highest tile")
ax_tiles.set_ylabel("Games")
ax_tiles.set_title("Highest tile reached")

plt.tight_layout()
plt.show()
