"""Content-addressed response cache stored as JSON files."""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from gaia.exceptions import CacheError
from gaia.logging import get_logger

log = get_logger(__name__)


@dataclass
class CacheStats:
    """Number of entries and their total size on disk."""

    count: int = 0
    size_bytes: int = 0


@dataclass
class CacheEntry:
    key: str
    response: str
    created_at: str = ""
    size_bytes: int = 0


def build_key(payload: dict[str, Any]) -> str:
    """Hash a request payload into a stable cache key."""
    canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def build_response_key(
    provider: str,
    host: str,
    port: int,
    model: str,
    system_role: str,
    role_template: str,
    messages: list[dict[str, str]],
) -> str:
    """Cache key for one completion request."""
    return build_key(
        {
            "provider": provider,
            "host": host,
            "port": port,
            "model": model,
            "system_role": system_role,
            "role_template": role_template,
            "messages": messages,
        }
    )


class ResponseCache:
    """JSON file store keyed by request hash.

    Each entry is `<key>.json` holding `{"key", "response", "created_at"}`.
    """

    def __init__(self, directory: Path | str, enabled: bool = True, refresh: bool = False):
        self.directory = Path(directory).expanduser()
        self.enabled = enabled
        self.refresh = refresh

    def _path(self, key: str) -> Path:
        cleaned = str(key or "").strip()
        if not cleaned or "/" in cleaned or "\\" in cleaned or cleaned.startswith("."):
            raise CacheError(f"invalid cache key: {key!r}")
        return self.directory / f"{cleaned}.json"

    def _entry_files(self) -> list[Path]:
        if not self.directory.exists():
            return []
        if not self.directory.is_dir():
            raise CacheError(f"cache path is not a directory: {self.directory}")
        return sorted(
            path for path in self.directory.iterdir() if path.is_file() and path.suffix == ".json"
        )

    def get(self, key: str) -> str | None:
        """Return a cached response, or None on miss."""
        if not self.enabled or self.refresh:
            return None
        path = self._path(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            log.warning("Unreadable cache entry", path=str(path), error=str(e))
            return None
        response = data.get("response") if isinstance(data, dict) else None
        if not isinstance(response, str):
            return None
        log.debug("Cache hit", key=key)
        return response

    def put(self, key: str, response: str) -> None:
        """Store a response under `key`."""
        if not self.enabled:
            return
        path = self._path(key)
        entry = {
            "key": key,
            "response": response,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(entry, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            raise CacheError(f"failed to write cache entry {path}: {e}") from e
        log.debug("Cache stored", key=key)

    def get_json(self, key: str) -> Any | None:
        """Return a cached JSON document, or None on miss."""
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            log.warning("Cached value is not JSON", key=key)
            return None

    def put_json(self, key: str, value: Any) -> None:
        self.put(key, json.dumps(value, ensure_ascii=False))

    def stats(self) -> CacheStats:
        stats = CacheStats()
        for path in self._entry_files():
            stats.count += 1
            stats.size_bytes += path.stat().st_size
        return stats

    def clear(self) -> int:
        """Delete every entry; returns how many were removed."""
        removed = 0
        for path in self._entry_files():
            try:
                path.unlink()
            except OSError as e:
                raise CacheError(f"failed to remove cache entry {path}: {e}") from e
            removed += 1
        return removed

    def _load_entry(self, path: Path) -> CacheEntry | None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            size = path.stat().st_size
        except (OSError, json.JSONDecodeError) as e:
            log.warning("Skipping unreadable cache entry", path=str(path), error=str(e))
            return None
        if not isinstance(data, dict):
            return None
        return CacheEntry(
            key=str(data.get("key") or path.stem),
            response=str(data.get("response") or ""),
            created_at=str(data.get("created_at") or ""),
            size_bytes=size,
        )

    def list_entries(self) -> list[CacheEntry]:
        """Entry metadata in key order, without response bodies."""
        entries = []
        for path in self._entry_files():
            entry = self._load_entry(path)
            if entry is not None:
                entry.response = ""
                entries.append(entry)
        return sorted(entries, key=lambda entry: entry.key)

    def read_entries(self) -> list[CacheEntry]:
        """All readable entries in key order (for `gaia cache dump`)."""
        entries = [entry for path in self._entry_files() if (entry := self._load_entry(path)) is not None]
        return sorted(entries, key=lambda entry: entry.key)
