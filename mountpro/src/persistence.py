"""
Persistence backends for the POI store blob.

A backend stores one serialized blob per key:
- `JsonFileStorage`: one `<key>.json` file in a directory (default)
- `MemoryStorage`: process-local dict, used by tests and ephemeral sessions
- `RedisStorage`: a Redis string key, for shared server deployments
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import redis

logger = logging.getLogger(__name__)

# Blob schema version, bumped when the serialized POI shape changes
BLOB_VERSION = "1.0.0"


class PersistenceCorruptError(Exception):
    """Raised when a stored blob cannot be decoded into POI records."""


class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.blobs: Dict[str, str] = dict(initial or {})

    def load(self, key: str) -> Optional[str]:
        return self.blobs.get(key)

    def save(self, key: str, blob: str) -> None:
        self.blobs[key] = blob


class JsonFileStorage:
    """Store each key as a JSON file under `directory`."""

    def __init__(self, directory):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        safe_key = "".join(c if c.isalnum() or c in "-_" else "_" for c in key)
        return self.directory / f"{safe_key}.json"

    def load(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def save(self, key: str, blob: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(blob, encoding="utf-8")
        os.replace(tmp_path, path)


class RedisStorage:
    def __init__(self, url: str = "redis://localhost:6379", client: Optional[redis.Redis] = None,
                 socket_timeout: float = 5.0):
        self.client = client or redis.Redis.from_url(url, socket_timeout=socket_timeout)

    def load(self, key: str) -> Optional[str]:
        value = self.client.get(key)
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, (bytes, bytearray)) else value

    def save(self, key: str, blob: str) -> None:
        self.client.set(key, blob)


def create_storage(config=None):
    """Build the backend named by the storage config."""
    if config is None:
        from mountpro.config import get_config
        config = get_config()
    storage_config = config.storage_config
    if storage_config.backend == "memory":
        return MemoryStorage()
    if storage_config.backend == "redis":
        return RedisStorage(storage_config.redis_url, socket_timeout=config.get_timeout("storage"))
    return JsonFileStorage(storage_config.path)


def encode_blob(records: List[Dict[str, Any]]) -> str:
    return json.dumps({
        "metadata": {
            "version": BLOB_VERSION,
            "count": len(records),
            "last_updated": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        },
        "pois": records,
    }, ensure_ascii=False)


def decode_blob(blob: str) -> List[Dict[str, Any]]:
    """Return the POI records in a blob.

    Bare JSON arrays (the web client's localStorage format) are accepted too.

    Raises:
        PersistenceCorruptError: If the blob is not valid JSON or has the wrong shape
    """
    try:
        data = json.loads(blob)
    except (TypeError, ValueError) as e:
        raise PersistenceCorruptError(f"Blob is not valid JSON: {e}")
    if isinstance(data, list):
        records = data
    elif isinstance(data, dict):
        metadata = data.get("metadata")
        if not isinstance(metadata, dict):
            raise PersistenceCorruptError("Blob metadata is missing or not an object")
        version = metadata.get("version")
        if version != BLOB_VERSION:
            raise PersistenceCorruptError(f"Unsupported blob version: {version!r}")
        records = data.get("pois")
    else:
        records = None
    if not isinstance(records, list):
        raise PersistenceCorruptError("Blob does not contain a POI list")
    return records
