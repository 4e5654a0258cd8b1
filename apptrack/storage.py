"""Blob storage for backup payloads.

Backends:
- Local filesystem (default, tests and single-host installs)
- GCS (Google Cloud Storage) for hosted deployments

Usage:
    backend = get_storage_backend(get_config().backup)
    meta = backend.put("user-id/backup-id.json", payload_bytes)
    payload = backend.get("user-id/backup-id.json")
"""

import hashlib
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import BackupConfig

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a backend cannot complete a write."""


# ============================================================
# Backend interface
# ============================================================


class StorageBackend(ABC):
    """Key/value blob store addressed by slash-separated keys."""

    name = "abstract"

    @abstractmethod
    def put(self, key: str, data: bytes) -> dict:
        """Store bytes under key.

        Returns:
            Metadata dict: {key, size, md5, stored_at}
        """
        ...

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Bytes stored under key, None if missing."""
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key. Returns True if something was deleted."""
        ...

    @abstractmethod
    def list_keys(self, prefix: str = "") -> list[str]:
        ...


# ============================================================
# Local filesystem
# ============================================================


class LocalStorageBackend(StorageBackend):
    """Stores blobs as files below ``base_dir``."""

    name = "local"

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        path = (self.base_dir / key).resolve()
        if self.base_dir.resolve() not in path.parents:
            raise StorageError(f"Key escapes storage directory: {key}")
        return path

    def put(self, key: str, data: bytes) -> dict:
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Could not write {key}: {e}") from e
        logger.info(f"LocalStorage: stored {key} ({len(data)} bytes)")
        return {
            "key": key,
            "size": len(data),
            "md5": hashlib.md5(data).hexdigest(),
            "stored_at": datetime.now(timezone.utc).isoformat(),
        }

    def get(self, key: str) -> Optional[bytes]:
        path = self._resolve(key)
        if not path.exists():
            logger.warning(f"LocalStorage: {key} not found")
            return None
        return path.read_bytes()

    def exists(self, key: str) -> bool:
        return self._resolve(key).exists()

    def delete(self, key: str) -> bool:
        path = self._resolve(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def list_keys(self, prefix: str = "") -> list[str]:
        keys = [
            str(p.relative_to(self.base_dir)).replace(os.sep, "/")
            for p in self.base_dir.rglob("*")
            if p.is_file()
        ]
        return sorted(k for k in keys if k.startswith(prefix))


# ============================================================
# Google Cloud Storage
# ============================================================


def _get_gcs_client():
    """Authenticated GCS client.

    Priority:
      1. GCP_SA_KEY env var (JSON string, CI)
      2. GOOGLE_APPLICATION_CREDENTIALS file
      3. Default credentials (metadata server)
    """
    from google.cloud import storage

    sa_key = os.getenv("GCP_SA_KEY") or os.getenv("GCP_SERVICE_ACCOUNT_KEY")
    if sa_key:
        key_data = json.loads(sa_key)
        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            json.dump(key_data, f)
            key_path = f.name
        try:
            return storage.Client.from_service_account_json(key_path)
        finally:
            os.unlink(key_path)

    return storage.Client()


class GCSStorageBackend(StorageBackend):
    """Blobs in ``gs://bucket/prefix/key``."""

    name = "gcs"

    def __init__(self, bucket: str, prefix: str = "", client=None):
        self.bucket_name = bucket
        self.prefix = prefix.strip("/")
        self._client = client

    def _get_bucket(self):
        if self._client is None:
            self._client = _get_gcs_client()
        return self._client.bucket(self.bucket_name)

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def put(self, key: str, data: bytes) -> dict:
        try:
            blob = self._get_bucket().blob(self._full_key(key))
            blob.upload_from_string(data, content_type="application/json")
            blob.reload()
        except Exception as e:
            raise StorageError(f"GCS upload of {key} failed: {e}") from e
        logger.info(f"GCS: stored gs://{self.bucket_name}/{self._full_key(key)} ({len(data)} bytes)")
        return {
            "key": key,
            "size": blob.size,
            "md5": blob.md5_hash,
            "stored_at": blob.updated.isoformat() if blob.updated else None,
        }

    def get(self, key: str) -> Optional[bytes]:
        blob = self._get_bucket().blob(self._full_key(key))
        if not blob.exists():
            logger.warning(f"GCS: gs://{self.bucket_name}/{self._full_key(key)} not found")
            return None
        return blob.download_as_bytes()

    def exists(self, key: str) -> bool:
        return self._get_bucket().blob(self._full_key(key)).exists()

    def delete(self, key: str) -> bool:
        blob = self._get_bucket().blob(self._full_key(key))
        if not blob.exists():
            return False
        blob.delete()
        return True

    def list_keys(self, prefix: str = "") -> list[str]:
        full_prefix = self._full_key(prefix)
        strip = len(self.prefix) + 1 if self.prefix else 0
        return sorted(
            blob.name[strip:]
            for blob in self._get_bucket().list_blobs(prefix=full_prefix)
        )


def get_storage_backend(config: BackupConfig) -> StorageBackend:
    if config.storage == "gcs":
        if not config.gcs_bucket:
            raise StorageError("backup.gcs_bucket is required for GCS storage")
        return GCSStorageBackend(config.gcs_bucket, config.gcs_prefix)
    return LocalStorageBackend(config.local_dir)
