"""
Working Tree

The repository root is the working directory. This module owns every
read and write of user files: turning a working file into a Blob,
holding staged content in the transient staging area until it is
committed, checking that a checkout won't clobber untracked files, and
materializing a commit snapshot onto disk.

Safety rule: ``check_untracked`` is always called before the first
destructive write, and every blob is read before the working tree is
touched. Once the check passes, materialization is expected to
complete; there is no rollback.
"""

import logging
import os
import tempfile
from collections.abc import Callable
from pathlib import Path, PurePosixPath

from .errors import RepositoryStateError, SafetyViolation, UsageError
from .index import RepositoryState
from .state import Blob

logger = logging.getLogger(__name__)

UNTRACKED_IN_THE_WAY = (
    "There is an untracked file in the way; delete it, or add and commit it first."
)


class Workspace:
    """File-level access to the working tree and the staging area."""

    def __init__(self, root: Path, repo_dir: Path):
        self.root = Path(root)
        self.repo_dir = Path(repo_dir)
        self.staging_dir = self.repo_dir / "staging"
        self.staging_dir.mkdir(parents=True, exist_ok=True)

    # ── Paths ─────────────────────────────────────────────────────

    def normalize(self, name: str) -> str:
        """Turn a user-supplied path into a snapshot key (POSIX, root-relative)."""
        if not name:
            raise UsageError("Incorrect operands.")
        path = Path(name)
        if not path.is_absolute():
            path = self.root / path
        try:
            rel = path.resolve().relative_to(self.root.resolve())
        except ValueError:
            raise UsageError(f"Path '{name}' is outside the repository.") from None
        key = PurePosixPath(*rel.parts)
        if not rel.parts or rel.parts[0] == self.repo_dir.name:
            raise UsageError(f"Path '{name}' is not a working file.")
        return str(key)

    def path(self, name: str) -> Path:
        return self.root / PurePosixPath(name)

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    # ── Working Files ─────────────────────────────────────────────

    def read_blob(self, name: str) -> Blob:
        file_path = self.path(name)
        if not file_path.is_file():
            raise RepositoryStateError("File does not exist.")
        return Blob.from_bytes(name, file_path.read_bytes())

    def write_file(self, name: str, data: bytes):
        file_path = self.path(name)
        if file_path.is_dir() and not file_path.is_symlink():
            self._remove_empty_tree(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(data)

    @staticmethod
    def _remove_empty_tree(dir_path: Path):
        """Remove a directory that holds only (possibly nested) empty directories."""
        for sub in sorted(dir_path.rglob("*"), reverse=True):
            sub.rmdir()
        dir_path.rmdir()

    def delete_file(self, name: str) -> bool:
        file_path = self.path(name)
        if not (file_path.is_file() or file_path.is_symlink()):
            return False
        file_path.unlink()
        self._cleanup_empty_parents(file_path.parent)
        return True

    def _cleanup_empty_parents(self, dir_path: Path):
        """Remove now-empty directories up to (not including) the root."""
        root = self.root.resolve()
        current = dir_path.resolve()
        while current != root and root in current.parents:
            try:
                current.rmdir()
            except OSError:
                break
            current = current.parent

    # ── Staging Area ──────────────────────────────────────────────

    def stage(self, blob: Blob):
        """Hold a blob's bytes in the staging area until commit."""
        target = self.staging_dir / blob.digest
        if target.exists():
            return
        fd, tmp_path = tempfile.mkstemp(dir=str(self.staging_dir), prefix=".stage.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(blob.data)
                f.flush()
                os.fsync(f.fileno())
            Path(tmp_path).replace(target)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug("Staged %s as %s", blob.name, blob.digest[:12])

    def staged_content(self, digest: str) -> bytes | None:
        target = self.staging_dir / digest
        return target.read_bytes() if target.is_file() else None

    def discard_staged(self, digest: str, state: RepositoryState):
        """Drop a staged file unless another path still stages the same content."""
        if digest in state.staged.values():
            return
        (self.staging_dir / digest).unlink(missing_ok=True)

    def clear_staging(self):
        for item in self.staging_dir.iterdir():
            if item.is_file():
                item.unlink()

    # ── Checkout Support ──────────────────────────────────────────

    def check_untracked(self, state: RepositoryState, snapshot: dict[str, str]):
        """
        Refuse if writing ``snapshot`` would overwrite an untracked file.

        Besides a plain file at a snapshot path, two collisions count:
        a directory at a snapshot path that holds files the overlay does
        not track, and an untracked non-directory where a snapshot path
        needs a parent directory. Materialization only deletes tracked
        files, so anything else there would be destroyed or would block
        the write halfway through.
        """
        for name in sorted(snapshot):
            blocker = self._untracked_blocker(state, name)
            if blocker is not None:
                logger.info("Untracked file in the way: %s", blocker)
                raise SafetyViolation(UNTRACKED_IN_THE_WAY)

    def _untracked_blocker(self, state: RepositoryState, name: str) -> str | None:
        target = self.path(name)
        if target.is_dir() and not target.is_symlink():
            for item in sorted(target.rglob("*")):
                if item.is_dir() and not item.is_symlink():
                    continue
                key = PurePosixPath(*item.relative_to(self.root).parts).as_posix()
                if key not in state.tracked:
                    return key
        elif (target.is_file() or target.is_symlink()) and state.is_untracked(name):
            return name

        for parent in reversed(PurePosixPath(name).parents[:-1]):
            parent_path = self.path(str(parent))
            if parent_path.is_symlink() or (
                parent_path.exists() and not parent_path.is_dir()
            ):
                if str(parent) not in state.tracked:
                    return str(parent)
        return None

    def materialize(
        self,
        state: RepositoryState,
        snapshot: dict[str, str],
        read_blob: Callable[[str], bytes],
    ) -> dict:
        """
        Make the working tree match ``snapshot``.

        Deletes every file the current overlay tracks that the snapshot
        does not, then writes every file in the snapshot. Deleting first
        clears tracked files and directories that sit where a snapshot
        path goes. Untracked files are left alone. Returns a summary of
        what changed.
        """
        contents = {name: read_blob(digest) for name, digest in sorted(snapshot.items())}

        removed = 0
        for name in sorted(state.tracked):
            if name not in snapshot and self.delete_file(name):
                removed += 1

        written = 0
        for name, data in contents.items():
            self.write_file(name, data)
            written += 1

        logger.debug("Materialized snapshot: %d written, %d removed", written, removed)
        return {"written": written, "removed": removed}
