"""
Content-Addressed Store (CAS)

The foundational storage layer. Every blob is stored exactly once,
addressed by the SHA-1 of its bytes. Commits live in the same store,
addressed by their commit id. This gives us:

- Automatic deduplication (re-adding unchanged files costs nothing)
- Integrity verification (an object's bytes re-hash to its address)
- Write-once history (nothing is ever updated or deleted)

Objects are plain files under ``objects/<kind>/<aa>/<rest>``, the same
two-character fan-out git uses for loose objects.
"""

import hashlib
import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class ObjectType(Enum):
    BLOB = "blob"  # Raw file content
    COMMIT = "commit"  # Serialized commit record


@dataclass(frozen=True)
class CASObject:
    """An immutable content-addressed object."""

    hash: str
    type: ObjectType
    data: bytes
    size: int


class ContentStoreLimitError(ValueError):
    """Raised when a store operation exceeds configured limits."""


def sha1_hex(*parts) -> str:
    """SHA-1 over the concatenation of ``parts`` (str parts are UTF-8 encoded)."""
    h = hashlib.sha1()
    for part in parts:
        if isinstance(part, str):
            part = part.encode("utf-8")
        h.update(part)
    return h.hexdigest()


class ContentStore:
    """
    Directory-backed content-addressed store.

    Append-only: there is no update and no delete. Writes go through a
    temp file + rename so a crash never leaves a half-written object
    under a valid address.
    """

    # Default: 100 MB max blob size
    # Note: 0 or missing value uses DEFAULT_MAX_BLOB_SIZE
    DEFAULT_MAX_BLOB_SIZE = 100 * 1024 * 1024

    def __init__(self, objects_dir: Path, max_blob_size: int = 0):
        self.objects_dir = Path(objects_dir)
        self.max_blob_size = max_blob_size if max_blob_size > 0 else self.DEFAULT_MAX_BLOB_SIZE
        for obj_type in ObjectType:
            (self.objects_dir / f"{obj_type.value}s").mkdir(parents=True, exist_ok=True)

    # ── Core Operations ───────────────────────────────────────────

    def hash_content(self, content: bytes) -> str:
        return sha1_hex(content)

    def store_blob(self, content: bytes) -> str:
        """
        Store raw file content and return its digest. Idempotent: storing
        the same content twice is a no-op that returns the same digest.

        Size limit is checked AFTER deduplication so existing large blobs
        can always be re-stored.
        """
        digest = self.hash_content(content)
        if self.exists(digest, ObjectType.BLOB):
            return digest

        self.check_blob_size(digest, len(content))
        self._write_object(digest, ObjectType.BLOB, content)
        return digest

    def check_blob_size(self, digest: str, size: int):
        """Raise if a blob of ``size`` bytes could not be stored."""
        if size > self.max_blob_size and not self.exists(digest, ObjectType.BLOB):
            raise ContentStoreLimitError(
                f"Blob size {size} bytes exceeds limit of {self.max_blob_size} bytes"
            )

    def store_commit(self, commit_id: str, data: bytes) -> str:
        """Store a serialized commit under its id. Write-once."""
        if not self.exists(commit_id, ObjectType.COMMIT):
            self._write_object(commit_id, ObjectType.COMMIT, data)
        return commit_id

    def retrieve(
        self, content_hash: str, obj_type: ObjectType = ObjectType.BLOB
    ) -> CASObject | None:
        """Retrieve an object by its hash."""
        path = self._object_path(content_hash, obj_type)
        if not path.is_file():
            return None
        data = path.read_bytes()
        return CASObject(hash=content_hash, type=obj_type, data=data, size=len(data))

    def exists(self, content_hash: str, obj_type: ObjectType = ObjectType.BLOB) -> bool:
        return self._object_path(content_hash, obj_type).is_file()

    def iter_ids(self, obj_type: ObjectType):
        """Yield the address of every stored object of one kind."""
        root = self.objects_dir / f"{obj_type.value}s"
        for fanout in sorted(root.iterdir()):
            if not fanout.is_dir() or len(fanout.name) != 2:
                continue
            for obj in sorted(fanout.iterdir()):
                if obj.is_file() and not obj.name.startswith("."):
                    yield fanout.name + obj.name

    def resolve_prefix(self, prefix: str, obj_type: ObjectType) -> list[str]:
        """Return every stored address starting with ``prefix``."""
        if len(prefix) < 2:
            return [h for h in self.iter_ids(obj_type) if h.startswith(prefix)]
        fanout = self.objects_dir / f"{obj_type.value}s" / prefix[:2]
        if not fanout.is_dir():
            return []
        rest = prefix[2:]
        return sorted(
            fanout.name + obj.name
            for obj in fanout.iterdir()
            if obj.is_file() and obj.name.startswith(rest) and not obj.name.startswith(".")
        )

    # ── Filesystem Storage ────────────────────────────────────────

    def _object_path(self, content_hash: str, obj_type: ObjectType) -> Path:
        """2-character fanout path for an object."""
        return self.objects_dir / f"{obj_type.value}s" / content_hash[:2] / content_hash[2:]

    def _write_object(self, content_hash: str, obj_type: ObjectType, content: bytes):
        """Write an object atomically via temp file + rename."""
        fs_path = self._object_path(content_hash, obj_type)
        if fs_path.exists():
            return  # Already written (idempotent)
        fs_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(fs_path.parent), prefix=".obj.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            Path(tmp_path).replace(fs_path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug("Stored %s %s (%d bytes)", obj_type.value, content_hash[:12], len(content))

    # ── Statistics ────────────────────────────────────────────────

    def stats(self) -> dict:
        """Storage statistics."""
        by_type = {}
        total_objects = 0
        total_bytes = 0
        for obj_type in ObjectType:
            count = 0
            size = 0
            for h in self.iter_ids(obj_type):
                count += 1
                size += self._object_path(h, obj_type).stat().st_size
            by_type[obj_type.value] = {"count": count, "bytes": size}
            total_objects += count
            total_bytes += size

        return {
            "total_objects": total_objects,
            "total_bytes": total_bytes,
            "by_type": by_type,
        }
