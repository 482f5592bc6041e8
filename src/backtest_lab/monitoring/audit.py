"""Append-only JSONL record of request outcomes."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AuditLog:
    """One JSON object per line: ``ts``, ``run_id``, ``config_hash``, ``event``, ``payload``.

    Writes are serialised with a lock because the service may log from
    several request handlers at once.
    """

    def __init__(self, path: str | Path, run_id: Optional[str] = None, config_hash: Optional[str] = None) -> None:
        self.path = Path(path)
        self.run_id = run_id
        self.config_hash = config_hash
        self._lock = threading.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: str, payload: dict[str, Any]) -> None:
        line = json.dumps(
            {
                "ts": _utc_stamp(),
                "run_id": self.run_id,
                "config_hash": self.config_hash,
                "event": event,
                "payload": payload,
            },
            default=str,
        )
        with self._lock, self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def records(self, event: Optional[str] = None) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as handle:
            entries = [json.loads(line) for line in handle if line.strip()]
        if event is None:
            return entries
        return [entry for entry in entries if entry["event"] == event]
