from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def preview_text(text: str, limit: int = 400) -> str:
    """Stripped ``text``, cut to ``limit`` characters with an ellipsis."""
    normalized = (text or "").strip()
    if len(normalized) <= limit:
        return normalized
    return f"{normalized[:limit]}…"


class RunEventLog:
    """
    Appends loop events for one run to ``<base_dir>/<run_id>.jsonl``.
    """

    def __init__(self, base_dir: str | Path, run_id: str | None = None) -> None:
        self.base_dir = Path(base_dir).expanduser().resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.run_id = run_id or datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S") + f"-{uuid.uuid4().hex[:6]}"
        self.path = self.base_dir / f"{self.run_id.replace('/', '_')}.jsonl"
        self._lock = threading.Lock()

    def record(self, event: str, payload: Mapping[str, Any] | None = None) -> None:
        """
        Appends one JSON line for ``event``.

        Args:
            event: Event name, e.g. ``iteration_end`` or ``judge_verdict``.
            payload: Extra fields merged into the entry next to timestamp and run id.
        """
        entry = {"timestamp": _utc_iso(), "run_id": self.run_id, "event": event, **dict(payload or {})}
        with self._lock, self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, ensure_ascii=False, default=str))
            handle.write("\n")

    def read(self) -> list[dict[str, Any]]:
        """Every event recorded so far, oldest first."""
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]


__all__ = ["RunEventLog", "preview_text"]
