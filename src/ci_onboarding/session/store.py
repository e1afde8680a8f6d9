"""Single-slot holders for the bearer credential."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol


class SessionStore(Protocol):
    """Synchronous get/set/clear of the raw credential; no business logic."""

    def get(self) -> str | None:
        ...

    def set(self, token: str) -> None:
        ...

    def clear(self) -> None:
        ...


class FileSessionStore:
    """Keep the credential in a private file so it survives restarts."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> str | None:
        try:
            token = self._path.read_text(encoding="utf-8").strip()
        except (FileNotFoundError, IsADirectoryError):
            return None
        return token or None

    def set(self, token: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(token)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class MemorySessionStore:
    """Volatile store, useful for embedding and tests."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token

    def get(self) -> str | None:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


__all__ = ["FileSessionStore", "MemorySessionStore", "SessionStore"]
