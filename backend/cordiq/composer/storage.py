"""Local draft storage: the fast, device-local tier of auto-save.

Storage is synchronous and keyed by a plain string. Implementations raise on
failure (a full disk, an unwritable directory); callers decide whether that
matters.
"""

import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

logger = logging.getLogger(__name__)


def local_draft_key(user_id: str, contact_id: str) -> str:
    """Storage key for the local snapshot of a user's draft to a contact."""
    return f"email-draft-{user_id}-{contact_id}"


class LocalDraftStorage(Protocol):
    """Synchronous string key-value store."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryDraftStorage:
    """Dict-backed storage; lives as long as the process."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._items


class FileDraftStorage:
    """One file per key under a directory, surviving process restarts."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self._directory / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        # Write then rename so readers never see a half-written snapshot
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
