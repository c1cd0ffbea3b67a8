"""JSON-file history store, one file per user scope.

With ``scoped=False`` every caller shares a single ``history.json``; this is
the single-tenant deployment. Records are kept newest-first.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from suno_relay.models import TaskRecord

logger = logging.getLogger(__name__)

_SCOPE_RE = re.compile(r"[^a-zA-Z0-9-]")


class HistoryFileError(ValueError):
    """Raised when a history file cannot be parsed and would be overwritten."""


def _is_record(item: Any) -> bool:
    return isinstance(item, dict) and bool(item.get("task_id"))


def _has_id(item: Any, task_id: str) -> bool:
    return _is_record(item) and item["task_id"] == task_id


def sanitize_scope(scope: str | None) -> str | None:
    """Strip everything but letters, digits and dashes from a user id."""
    if not scope:
        return None
    return _SCOPE_RE.sub("", scope) or None


class JsonHistoryStore:
    """Per-user task history persisted as JSON lists."""

    def __init__(self, data_dir: str | Path, scoped: bool = True) -> None:
        self.data_dir = Path(data_dir)
        self.scoped = scoped

    def _path(self, scope: str | None) -> Path:
        if not self.scoped:
            return self.data_dir / "history.json"
        clean = sanitize_scope(scope)
        if clean is None:
            raise ValueError("A user scope is required for scoped history")
        return self.data_dir / f"history_{clean}.json"

    def _read(self, scope: str | None, strict: bool) -> list[Any]:
        """Return the raw list stored for ``scope``.

        With ``strict`` a file that cannot be parsed raises instead of reading
        as empty, so writers never save over history they failed to load.
        """
        path = self._path(scope)
        if not path.exists():
            return []
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            if strict:
                raise HistoryFileError(f"Unreadable history file {path}: {exc}") from exc
            logger.warning("Unreadable history file %s: %s", path, exc)
            return []
        if not isinstance(data, list):
            if strict:
                raise HistoryFileError(f"History file {path} does not hold a list")
            logger.warning("History file %s does not hold a list, ignoring", path)
            return []
        return data

    def _load(self, scope: str | None) -> list[dict[str, Any]]:
        return [item for item in self._read(scope, strict=False) if _is_record(item)]

    def _save(self, scope: str | None, items: list[Any]) -> None:
        path = self._path(scope)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(items, f, indent=2, ensure_ascii=False)

    def get(self, scope: str | None) -> list[TaskRecord]:
        return [TaskRecord.from_dict(item) for item in self._load(scope)]

    def find(self, scope: str | None, task_id: str) -> TaskRecord | None:
        for item in self._load(scope):
            if item["task_id"] == task_id:
                return TaskRecord.from_dict(item)
        return None

    # Writers work on the raw list so entries without a task_id survive.

    def add(self, scope: str | None, record: TaskRecord) -> None:
        """Insert a new record at the front, replacing any with the same id."""
        items = [i for i in self._read(scope, strict=True) if not _has_id(i, record.task_id)]
        items.insert(0, record.to_dict())
        self._save(scope, items)

    def put(self, scope: str | None, task_id: str, patch: dict[str, Any]) -> None:
        """Merge ``patch`` into the record for ``task_id``, inserting it if absent."""
        items = self._read(scope, strict=True)
        for i, item in enumerate(items):
            if _has_id(item, task_id):
                items[i] = {**item, **patch, "task_id": task_id}
                break
        else:
            logger.info("Task %s not in history, inserting", task_id)
            record = TaskRecord(task_id=task_id, created_at=datetime.now(timezone.utc).isoformat())
            items.insert(0, {**record.to_dict(), **patch, "task_id": task_id})
        self._save(scope, items)

    def delete(self, scope: str | None, task_id: str) -> bool:
        items = self._read(scope, strict=True)
        kept = [i for i in items if not _has_id(i, task_id)]
        if len(kept) == len(items):
            return False
        self._save(scope, kept)
        return True
