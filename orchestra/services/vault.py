"""Vault collaborator: the user's file tree the tools read and write."""

import asyncio
import base64
from pathlib import Path
from typing import Protocol

from orchestra.utils.logging import get_logger

logger = get_logger(__name__)


class Vault(Protocol):
    """Vault-relative file access used by the built-in tools."""

    async def exists(self, path: str) -> bool: ...

    async def is_dir(self, path: str) -> bool: ...

    async def read_text(self, path: str) -> str: ...

    async def write_text(self, path: str, content: str, provenance: dict[str, str] | None = None) -> None: ...

    async def list_dir(self, path: str) -> list[tuple[str, bool]]:
        """List ``(name, is_dir)`` entries of a directory."""
        ...


class LocalVault:
    """Vault backed by a directory on the local filesystem.

    Paths are validated by the tools before they get here; the vault only
    joins them onto its root.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        return self.root / path

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).exists)

    async def is_dir(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).is_dir)

    async def read_text(self, path: str) -> str:
        return await asyncio.to_thread(self._resolve(path).read_text, encoding="utf-8")

    async def read_base64(self, path: str) -> str:
        """Read a binary file (e.g. an image attachment) as base64."""
        data = await asyncio.to_thread(self._resolve(path).read_bytes)
        return base64.b64encode(data).decode("ascii")

    async def write_text(self, path: str, content: str, provenance: dict[str, str] | None = None) -> None:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        logger.info(f"Wrote {path} ({len(content)} chars) provenance={provenance or {}}")

    async def list_dir(self, path: str) -> list[tuple[str, bool]]:
        def _list() -> list[tuple[str, bool]]:
            return sorted((entry.name, entry.is_dir()) for entry in self._resolve(path).iterdir())

        return await asyncio.to_thread(_list)
