# storage/cache_store.py
"""On-disk memoization of generation results keyed by node signature."""

from __future__ import annotations

import os
import re
import tempfile
import time

import structlog
from core.errors import CacheCorruptionError
from pydantic import ValidationError

from models import CacheEntry

logger = structlog.get_logger(__name__)

_SIGNATURE_RE = re.compile(r"^[0-9a-f]{64}$")
_TEMP_RE = re.compile(r"^\.[0-9a-f]{12}\..*\.tmp$")


class CacheStore:
    """One JSON file per signature inside ``cache_dir``.

    Entries are published with a rename, so a lookup never observes a
    partially written file. Deleting the directory forces regeneration.
    """

    def __init__(self, cache_dir: str) -> None:
        self.cache_dir = cache_dir
        os.makedirs(self.cache_dir, exist_ok=True)

    def _entry_path(self, signature: str) -> str:
        if not _SIGNATURE_RE.match(signature):
            raise ValueError(f"Invalid cache signature: {signature!r}")
        return os.path.join(self.cache_dir, f"{signature}.json")

    def __contains__(self, signature: object) -> bool:
        return isinstance(signature, str) and self.lookup(signature) is not None

    def __len__(self) -> int:
        if not os.path.isdir(self.cache_dir):
            return 0
        return sum(
            1
            for name in os.listdir(self.cache_dir)
            if name.endswith(".json") and _SIGNATURE_RE.match(name[:-5])
        )

    def _read_entry(self, signature: str, path: str) -> CacheEntry:
        try:
            with open(path, encoding="utf-8") as f:
                raw = f.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise CacheCorruptionError(signature, f"unreadable: {exc}") from exc
        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError as exc:
            raise CacheCorruptionError(
                signature, f"invalid content: {exc.error_count()} error(s)"
            ) from exc
        if entry.signature != signature:
            raise CacheCorruptionError(
                signature, f"entry belongs to {entry.signature[:12]}..."
            )
        if not entry.localisation:
            raise CacheCorruptionError(signature, "entry holds no names")
        return entry

    def lookup(self, signature: str) -> CacheEntry | None:
        """Return the entry for ``signature`` or ``None`` on a miss.

        A corrupted entry is logged and reported as a miss.
        """
        path = self._entry_path(signature)
        if not os.path.exists(path):
            return None
        try:
            return self._read_entry(signature, path)
        except CacheCorruptionError as exc:
            logger.warning(
                "Ignoring corrupted cache entry; treating as a miss.",
                path=path,
                reason=exc.reason,
            )
            return None

    def store(self, signature: str, entry: CacheEntry) -> bool:
        """Persist ``entry`` atomically. Returns ``False`` if it could not be written."""
        path = self._entry_path(signature)
        if entry.signature != signature:
            raise ValueError("Cache entry signature does not match its key.")
        if self.lookup(signature) is not None:
            logger.debug("Cache entry already present; keeping it.", path=path)
            return True
        if not entry.created_at:
            entry = entry.model_copy(update={"created_at": time.time()})
        tmp_path: str | None = None
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{signature[:12]}.", suffix=".tmp", dir=self.cache_dir
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(entry.model_dump_json(indent=2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
            tmp_path = None
        except OSError as exc:
            logger.error(
                "Failed to write cache entry.", path=path, error=str(exc), exc_info=True
            )
            return False
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
        logger.info(
            "Cached generation result.",
            path=path,
            names=len(entry.localisation),
        )
        return True

    def clear(self) -> None:
        """Delete every cache entry and leftover temp file, nothing else."""
        if not os.path.isdir(self.cache_dir):
            os.makedirs(self.cache_dir, exist_ok=True)
            return
        removed = 0
        for name in os.listdir(self.cache_dir):
            is_entry = name.endswith(".json") and _SIGNATURE_RE.match(name[:-5])
            is_leftover = bool(_TEMP_RE.match(name))
            path = os.path.join(self.cache_dir, name)
            if (is_entry or is_leftover) and os.path.isfile(path):
                os.remove(path)
                removed += 1
        logger.info("Cache cleared.", cache_dir=self.cache_dir, removed=removed)
