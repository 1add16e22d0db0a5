"""
Commits

The unit of history is a Commit: an immutable, hash-identified record
of a message, a timestamp, a parent pointer and a flat snapshot of
tracked files (filename -> blob digest).

Commits form a graph through parent references. Branches only hold a
head id; history is derived by walking parents through the commit
arena, so a second (merge) parent can be added without touching how
branches are stored.

The commit id is a pure function of the commit's fields. The root
commit has a fixed message, a fixed epoch timestamp, no parent and an
empty snapshot, so every repository shares the same root id.
"""

import json
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar

from .cas import ContentStore, ObjectType, sha1_hex
from .errors import RepositoryStateError, UsageError
from .serializable import Serializable

logger = logging.getLogger(__name__)

ROOT_MESSAGE = "initial commit"
ROOT_TIMESTAMP = "Thu Jan 1 00:00:00 1970 -0800"


def format_timestamp(when: datetime | None = None) -> str:
    """Local time as ``Thu Nov 9 20:00:05 2017 -0800`` (day not zero-padded)."""
    dt = (when or datetime.now()).astimezone()
    return f"{dt:%a %b} {dt.day} {dt:%H:%M:%S %Y %z}"


def compute_commit_id(
    message: str,
    timestamp: str,
    parent: str | None,
    contents: dict[str, bytes],
    merge_parent: str | None = None,
) -> str:
    """
    Derive a commit id.

    Hashes message, timestamp, parent, every filename (sorted), then
    every file's content in the same order. A null parent and a null
    merge parent contribute nothing.
    """
    names = sorted(contents)
    parts: list = [message, timestamp]
    if parent is not None:
        parts.append(parent)
    parts.extend(names)
    parts.extend(contents[name] for name in names)
    if merge_parent is not None:
        parts.append(merge_parent)
    return sha1_hex(*parts)


@dataclass(frozen=True)
class Blob:
    """A file's content as read from the working tree."""

    type: ClassVar[ObjectType] = ObjectType.BLOB

    name: str
    digest: str
    data: bytes = field(default=b"", repr=False, compare=False)

    @classmethod
    def from_bytes(cls, name: str, data: bytes) -> "Blob":
        return cls(name=name, digest=sha1_hex(data), data=data)


@dataclass(frozen=True)
class Commit(Serializable):
    """An immutable snapshot record."""

    type: ClassVar[ObjectType] = ObjectType.COMMIT

    id: str
    message: str
    timestamp: str
    parent: str | None
    snapshot: dict[str, str] = field(default_factory=dict)  # filename -> blob digest
    merge_parent: str | None = None

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def is_merge(self) -> bool:
        return self.merge_parent is not None

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Commit":
        return cls.from_dict(json.loads(data.decode("utf-8")))


class CommitGraph:
    """
    The commit arena: every persisted commit, looked up by id.

    Commits are loaded from the content store on first access and
    cached for the rest of the invocation.
    """

    def __init__(self, store: ContentStore):
        self.store = store
        self._cache: dict[str, Commit] = {}

    # ── Creation ──────────────────────────────────────────────────

    def create(
        self,
        message: str,
        parent_id: str | None,
        snapshot: dict[str, str] | None = None,
        read_blob: Callable[[str], bytes] | None = None,
        timestamp: str | None = None,
    ) -> Commit:
        """
        Build (but do not persist) a commit.

        ``read_blob`` maps a blob digest to its bytes; the content of every
        tracked file goes into the id. A null parent yields the root
        commit regardless of the other arguments except the message.
        """
        if not message:
            raise UsageError("Please enter a commit message.")

        if parent_id is None:
            return Commit(
                id=compute_commit_id(message, ROOT_TIMESTAMP, None, {}),
                message=message,
                timestamp=ROOT_TIMESTAMP,
                parent=None,
            )

        snapshot = dict(snapshot or {})
        read_blob = read_blob or self._read_stored_blob
        contents = {name: read_blob(digest) for name, digest in snapshot.items()}
        timestamp = timestamp or format_timestamp()
        return Commit(
            id=compute_commit_id(message, timestamp, parent_id, contents),
            message=message,
            timestamp=timestamp,
            parent=parent_id,
            snapshot=snapshot,
        )

    def create_root(self) -> Commit:
        return self.create(ROOT_MESSAGE, None)

    def add(self, commit: Commit) -> Commit:
        """Persist a commit under its id. Write-once."""
        self.store.store_commit(commit.id, commit.to_bytes())
        self._cache[commit.id] = commit
        logger.debug("Persisted commit %s (%s)", commit.id[:12], commit.message)
        return commit

    # ── Lookup ────────────────────────────────────────────────────

    def get(self, commit_id: str) -> Commit | None:
        """Exact-id lookup."""
        commit = self._cache.get(commit_id)
        if commit is not None:
            return commit
        obj = self.store.retrieve(commit_id, ObjectType.COMMIT)
        if obj is None:
            return None
        commit = Commit.from_bytes(obj.data)
        self._cache[commit_id] = commit
        return commit

    def resolve(self, id_or_prefix: str) -> Commit:
        """Look up a commit by full id or unique id prefix."""
        if not id_or_prefix:
            raise RepositoryStateError("No commit with that id exists.")
        commit = self.get(id_or_prefix)
        if commit is not None:
            return commit
        matches = self.store.resolve_prefix(id_or_prefix, ObjectType.COMMIT)
        if not matches:
            raise RepositoryStateError("No commit with that id exists.")
        if len(matches) > 1:
            raise RepositoryStateError(
                f"Ambiguous commit id '{id_or_prefix}' matches {len(matches)} commits."
            )
        return self.get(matches[0])

    def exists(self, commit_id: str) -> bool:
        return commit_id in self._cache or self.store.exists(commit_id, ObjectType.COMMIT)

    # ── Traversal ─────────────────────────────────────────────────

    def history(self, head_id: str) -> Iterator[Commit]:
        """Walk first parents from ``head_id`` back to the root."""
        commit_id: str | None = head_id
        while commit_id is not None:
            commit = self.get(commit_id)
            if commit is None:
                raise RepositoryStateError(f"Commit {commit_id} is missing from the store.")
            yield commit
            commit_id = commit.parent

    def all(self) -> Iterator[Commit]:
        """Every persisted commit, in store enumeration order."""
        for commit_id in self.store.iter_ids(ObjectType.COMMIT):
            commit = self.get(commit_id)
            if commit is not None:
                yield commit

    def _read_stored_blob(self, digest: str) -> bytes:
        obj = self.store.retrieve(digest, ObjectType.BLOB)
        if obj is None:
            raise RepositoryStateError(f"Blob {digest} is missing from the store.")
        return obj.data
