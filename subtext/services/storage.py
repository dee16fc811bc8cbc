"""
Artifact Storage

Key/value blob store with per-key expiry, used for staged files, timelines,
findings, reports and progress records.

Design Decisions:
- Keys are slash-separated paths, e.g. cases/{case_id}/timeline
- Values are JSON-serializable; every read returns a fresh copy
- Expired entries read as missing and are removed on access
- FileArtifactStore writes JSON envelopes with aiofiles, atomically via replace
"""

import json
import os
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

import aiofiles
import aiofiles.os
import structlog

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """Generate a unique ID for cases and jobs."""
    return str(uuid.uuid4())[:12]


class ArtifactStore(Protocol):
    async def put(self, key: str, blob: Any, ttl: Optional[int] = None) -> None: ...

    async def get(self, key: str) -> Optional[Any]: ...

    async def delete_by_prefix(self, prefix: str) -> int: ...


def _expiry(clock: Clock, ttl: Optional[int]) -> Optional[datetime]:
    return clock() + timedelta(seconds=ttl) if ttl else None


def _is_expired(expires_at: Optional[str], clock: Clock) -> bool:
    return expires_at is not None and datetime.fromisoformat(expires_at) <= clock()


# =============================================================================
# In-Memory Store
# =============================================================================

class MemoryArtifactStore:
    """Process-local store; used by tests and single-shot CLI runs."""

    def __init__(self, clock: Clock = _utcnow):
        self._clock = clock
        self._entries: dict[str, tuple[Optional[str], str]] = {}

    async def put(self, key: str, blob: Any, ttl: Optional[int] = None) -> None:
        expires_at = _expiry(self._clock, ttl)
        self._entries[key] = (
            expires_at.isoformat() if expires_at else None,
            json.dumps(blob, default=str),
        )

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if _is_expired(expires_at, self._clock):
            del self._entries[key]
            return None
        return json.loads(payload)

    async def delete_by_prefix(self, prefix: str) -> int:
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)


# =============================================================================
# File Store
# =============================================================================

class FileArtifactStore:
    """JSON files on disk under a base directory, one file per key."""

    SUFFIX = ".json"

    def __init__(self, base_dir: str | Path, clock: Clock = _utcnow):
        self.base_dir = Path(base_dir)
        self._clock = clock

    def _path_for(self, key: str) -> Path:
        parts = key.split("/")
        if not key or any(part in ("", ".", "..") for part in parts):
            raise ValueError(f"Invalid artifact key: {key!r}")
        return self.base_dir.joinpath(*parts[:-1], parts[-1] + self.SUFFIX)

    async def put(self, key: str, blob: Any, ttl: Optional[int] = None) -> None:
        """Save a value, replacing any previous value for the key."""
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        expires_at = _expiry(self._clock, ttl)
        envelope = {
            "key": key,
            "expires_at": expires_at.isoformat() if expires_at else None,
            "value": blob,
        }

        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(envelope, indent=2, default=str))
        await aiofiles.os.replace(tmp_path, path)

    async def get(self, key: str) -> Optional[Any]:
        """Load a value, or None if missing or expired."""
        path = self._path_for(key)
        if not path.exists():
            return None

        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = await f.read()
        envelope = json.loads(content)

        if _is_expired(envelope.get("expires_at"), self._clock):
            logger.debug("artifact_expired", key=key)
            await aiofiles.os.remove(path)
            return None
        return envelope.get("value")

    async def delete_by_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix."""
        if not self.base_dir.exists():
            return 0

        deleted = 0
        for root, _dirs, files in os.walk(self.base_dir):
            for name in files:
                if not name.endswith(self.SUFFIX) or name.startswith("."):
                    continue
                path = Path(root) / name
                key = path.relative_to(self.base_dir).as_posix()[: -len(self.SUFFIX)]
                if key.startswith(prefix):
                    await aiofiles.os.remove(path)
                    deleted += 1

        logger.debug("artifacts_deleted", prefix=prefix, count=deleted)
        return deleted
