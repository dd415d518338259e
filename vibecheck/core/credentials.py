"""Persistence of the cloud API credential."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Protocol

from .errors import StorageError

logger = logging.getLogger(__name__)


def mask_secret(value: str | None) -> str:
    """Return a display-safe rendering of ``value``."""

    if not value:
        return ""
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}...{value[-4:]}"


class CredentialStore(Protocol):
    async def load(self) -> str | None: ...

    async def save(self, value: str | None) -> None: ...


class MemoryCredentialStore:
    """Keep the credential in process memory only."""

    def __init__(self, value: str | None = None) -> None:
        self._value = value or None

    async def load(self) -> str | None:
        return self._value

    async def save(self, value: str | None) -> None:
        self._value = value or None


class JsonFileCredentialStore:
    """Store the credential under one key of a JSON document on disk.

    Other keys in the document belong to other collaborators and are left
    untouched.
    """

    def __init__(self, path: str | Path, *, key: str = "geminiApiKey") -> None:
        self._path = Path(path).expanduser()
        self._key = key

    @property
    def path(self) -> Path:
        return self._path

    def _read_document(self) -> dict[str, Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StorageError(f"Could not read {self._path}: {exc}") from exc
        if not raw.strip():
            return {}
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Credential store {self._path} is corrupt") from exc
        if not isinstance(document, dict):
            raise StorageError(f"Credential store {self._path} is not a JSON object")
        return document

    def _load_sync(self) -> str | None:
        value = self._read_document().get(self._key)
        if isinstance(value, str) and value.strip():
            return value
        return None

    def _save_sync(self, value: str | None) -> None:
        document = self._read_document()
        if value:
            document[self._key] = value
        else:
            document.pop(self._key, None)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(
                json.dumps(document, ensure_ascii=False, indent=2, sort_keys=True),
                encoding="utf-8",
            )
            tmp_path.replace(self._path)
        except OSError as exc:
            raise StorageError(f"Could not write {self._path}: {exc}") from exc

    async def load(self) -> str | None:
        return await asyncio.to_thread(self._load_sync)

    async def save(self, value: str | None) -> None:
        await asyncio.to_thread(self._save_sync, value)
        logger.info(
            "credentials.saved",
            extra={"path": str(self._path), "credential": mask_secret(value)},
        )
