"""
ExtractionWorkspace: where extract files are written and served from.

Each identity owns one directory under ``EXTRACT_DIR``.  Every extraction
request writes into a fresh subdirectory of it; earlier request
subdirectories are removed when a new extraction starts, so the identity
only ever sees its latest files.  Extractions for the same identity are
serialized with a per-identity lock.
"""

from __future__ import annotations

import asyncio
import re
import shutil
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from app.core.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_IDENTITY_RE = re.compile(r"[^A-Za-z0-9_-]")


def identity_key(identity: str | None) -> str:
    """Directory-safe form of a user name (``a.b@c.com`` → ``a_b_c_com``)."""
    return _UNSAFE_IDENTITY_RE.sub("_", (identity or "").strip()) or "anonymous"


class ExtractionWorkspace:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def identity_dir(self, identity: str | None) -> Path:
        return self.root / identity_key(identity)

    @asynccontextmanager
    async def _lock(self, identity: str | None) -> AsyncIterator[None]:
        """Per-identity lock, forgotten once nobody holds or waits for it."""
        key = identity_key(identity)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]

    @asynccontextmanager
    async def request(self, identity: str | None) -> AsyncIterator[Path]:
        """
        Reserve a clean output directory for one extraction.

        The directory is removed again if the extraction raises.
        """
        async with self._lock(identity):
            base = self.identity_dir(identity)
            if base.exists():
                for previous in base.iterdir():
                    if previous.is_dir():
                        shutil.rmtree(previous, ignore_errors=True)
                    else:
                        previous.unlink(missing_ok=True)
            path = base / uuid.uuid4().hex
            path.mkdir(parents=True)
            logger.debug("Extraction workspace ready", identity=identity_key(identity), path=str(path))
            try:
                yield path
            except BaseException:
                shutil.rmtree(path, ignore_errors=True)
                raise

    def resolve(self, identity: str | None, filename: str) -> Path:
        """
        Locate a previously written file for this identity.

        Raises:
            PermissionError: the name escapes the identity's directory.
            FileNotFoundError: no such file.
        """
        base = self.identity_dir(identity).resolve()
        if not filename or Path(filename).name != filename:
            raise PermissionError("Invalid file path")
        if not base.exists():
            raise FileNotFoundError(filename)
        candidates = sorted(
            (d for d in base.iterdir() if d.is_dir()),
            key=lambda d: d.stat().st_mtime,
            reverse=True,
        )
        for directory in candidates:
            path = (directory / filename).resolve()
            if not path.is_relative_to(base):
                raise PermissionError("Invalid file path")
            if path.is_file():
                return path
        raise FileNotFoundError(filename)

    def cleanup(self, identity: str | None) -> bool:
        """Remove the identity's directory.  Returns False if there was none."""
        base = self.identity_dir(identity)
        if not base.exists():
            return False
        shutil.rmtree(base)
        logger.info("Extraction workspace removed", identity=identity_key(identity))
        return True
