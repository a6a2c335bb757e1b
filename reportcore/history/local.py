"""Local history file: one JSON data point per line, oldest first."""

from __future__ import annotations

import json
from pathlib import Path

from reportcore.history.diff import limit_history
from reportcore.model.history import HistoryDataPoint


class LocalHistory:
    """Append-only JSON lines history with an optional retention limit.

    Without a limit every new point is appended as one line. With a limit
    the whole file is rewritten so only the most recent points remain.
    """

    def __init__(self, path: str | Path, limit: int | None = None) -> None:
        self.path = Path(path)
        self.limit = limit

    async def read_history(self) -> list[HistoryDataPoint]:
        """Read the stored points, oldest first.

        A missing file reads as empty history. Corrupt lines are not
        skipped: they raise ``json.JSONDecodeError``.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []

        points = [
            HistoryDataPoint.from_dict(json.loads(line))
            for line in text.splitlines()
            if line.strip()
        ]
        return limit_history(points, self.limit)

    async def append_history(self, point: HistoryDataPoint) -> None:
        """Persist a new point, enforcing the retention limit."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        if self.limit is None:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(point.to_dict()))
                f.write("\n")
            return

        existing = await self.read_history()
        kept = limit_history([*existing, point], self.limit)
        with open(self.path, "w", encoding="utf-8") as f:
            for p in kept:
                f.write(json.dumps(p.to_dict()))
                f.write("\n")
