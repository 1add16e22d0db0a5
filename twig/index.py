"""
Repository State

The single mutable record of a repository: which branch is active,
where every branch points, what is staged for addition or removal, and
which files the working tree is tracking. It is loaded once at the
start of a command, mutated by exactly one operation, and written back
whole at the end.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from .serializable import Serializable

logger = logging.getLogger(__name__)


@dataclass
class RepositoryState(Serializable):
    current_branch: str
    branches: dict[str, str] = field(default_factory=dict)  # branch -> head commit id
    staged: dict[str, str] = field(default_factory=dict)  # filename -> staged blob digest
    removed: list[str] = field(default_factory=list)  # filenames staged for removal
    tracked: dict[str, str] = field(default_factory=dict)  # filename -> blob digest
    previously_staged: list[str] = field(default_factory=list)
    messages: dict[str, list[str]] = field(default_factory=dict)  # message -> commit ids

    # ── Queries ───────────────────────────────────────────────────

    @property
    def head(self) -> str:
        return self.branches[self.current_branch]

    @property
    def is_clean(self) -> bool:
        return not self.staged and not self.removed

    def is_untracked(self, name: str) -> bool:
        return name not in self.tracked and name not in self.staged

    # ── Staging ───────────────────────────────────────────────────

    def stage(self, name: str, digest: str):
        self.staged[name] = digest
        if name in self.previously_staged:
            self.previously_staged.remove(name)

    def unstage(self, name: str) -> str | None:
        digest = self.staged.pop(name, None)
        if digest is not None and name not in self.previously_staged:
            self.previously_staged.append(name)
        return digest

    def mark_removed(self, name: str):
        if name not in self.removed:
            self.removed.append(name)
            self.removed.sort()
        if name in self.previously_staged:
            self.previously_staged.remove(name)

    def unmark_removed(self, name: str) -> bool:
        if name in self.removed:
            self.removed.remove(name)
            return True
        return False

    def clear_staging(self):
        self.staged.clear()
        self.removed.clear()

    # ── Index ─────────────────────────────────────────────────────

    def record_commit(self, commit_id: str, message: str):
        ids = self.messages.setdefault(message, [])
        if commit_id not in ids:
            ids.append(commit_id)

    # ── Persistence ───────────────────────────────────────────────

    @classmethod
    def load(cls, path: Path) -> "RepositoryState":
        return cls.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))

    def save(self, path: Path):
        _atomic_write(Path(path), json.dumps(self.to_dict(), indent=2, sort_keys=True))
        logger.debug("Saved repository state to %s", path)


def _atomic_write(path: Path, content: str):
    """Write content to a file atomically via write-to-temp + rename."""
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        Path(tmp_path).replace(path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
