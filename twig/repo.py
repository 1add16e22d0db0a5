"""
Repository

The high-level API the CLI talks to. It ties together the content
store, the commit graph, the repository state and the working tree.

Each command follows the same shape:

    repo = Repository.find(path)     # load state once
    repo.commit("message")           # exactly one operation
    repo.save()                      # persist state whole

Operations raise on failure and never persist anything themselves, so
a failed command leaves state.json exactly as it found it. Operations
that touch the working tree check for dangerous overwrites before the
first write.

State machine:
    Clean (nothing staged, nothing removed) --add/rm--> Dirty
    Dirty --commit--> Clean (history advances)
    Dirty --checkout/reset--> Clean (pending changes discarded)
"""

import json
import logging
import time
from pathlib import Path

from .cas import ContentStore, ObjectType
from .errors import NoOpWarning, NotARepository, RepositoryStateError, UsageError
from .index import RepositoryState
from .state import Commit, CommitGraph, compute_commit_id
from .workspace import Workspace

logger = logging.getLogger(__name__)

REPO_DIR_NAME = ".twig"
CONFIG_VERSION = "0.1.0"
DEFAULT_BRANCH = "master"
KNOWN_CONFIG_KEYS = {"version", "default_branch", "created_at", "max_blob_size"}


def _version_tuple(version: str) -> tuple:
    return tuple(int(p) for p in str(version).split(".") if p.isdigit())


class Repository:
    """
    A Twig repository.

    Stores all data in a .twig directory at the repository root; the
    root itself is the working tree.
    """

    def __init__(self, root: Path):
        self.root = Path(root).resolve()
        self.twig_dir = self.root / REPO_DIR_NAME
        self.state_path = self.twig_dir / "state.json"

        if not self.twig_dir.is_dir():
            raise NotARepository(self.root)

        self.config = self._read_config()
        self._validate_config(self.config)
        max_blob_size = self.config.get("max_blob_size", 0)
        if max_blob_size < 0:
            raise ValueError(
                f"Invalid config: max_blob_size must be >= 0, got {max_blob_size}\n"
                f"  Use 0 for default limit ({ContentStore.DEFAULT_MAX_BLOB_SIZE} bytes)"
            )

        self.store = ContentStore(self.twig_dir / "objects", max_blob_size=max_blob_size)
        self.commits = CommitGraph(self.store)
        self.workspace = Workspace(self.root, self.twig_dir)

        if not self.state_path.is_file():
            raise RepositoryStateError(f"Repository state is missing: {self.state_path}")
        self.state = RepositoryState.load(self.state_path)

    @classmethod
    def init(cls, path: Path, default_branch: str = DEFAULT_BRANCH) -> "Repository":
        """
        Initialize a new repository.

        Creates the .twig directory, the root commit and a single branch
        pointing at it. The root commit is identical in every repository.
        """
        root = Path(path).resolve()
        twig_dir = root / REPO_DIR_NAME

        if twig_dir.exists():
            raise RepositoryStateError(
                "A Twig version-control system already exists in the current directory."
            )

        twig_dir.mkdir(parents=True)
        (twig_dir / "config.json").write_text(
            json.dumps(
                {
                    "version": CONFIG_VERSION,
                    "default_branch": default_branch,
                    "created_at": time.time(),
                    "max_blob_size": ContentStore.DEFAULT_MAX_BLOB_SIZE,
                },
                indent=2,
            )
        )

        graph = CommitGraph(ContentStore(twig_dir / "objects"))
        initial = graph.add(graph.create_root())

        state = RepositoryState(
            current_branch=default_branch,
            branches={default_branch: initial.id},
        )
        state.record_commit(initial.id, initial.message)
        state.save(twig_dir / "state.json")

        logger.info("Initialized repository at %s (root %s)", root, initial.id[:12])
        return cls(root)

    @classmethod
    def find(cls, start_path: Path | None = None) -> "Repository":
        """Find a repository by walking up from the given path."""
        path = Path(start_path or Path.cwd()).resolve()
        while True:
            if (path / REPO_DIR_NAME).is_dir():
                return cls(path)
            parent = path.parent
            if parent == path:
                break
            path = parent
        raise NotARepository(start_path or Path.cwd())

    def save(self):
        """Persist the repository state. Call once, after a successful operation."""
        self.state.save(self.state_path)

    # ── Queries ───────────────────────────────────────────────────

    @property
    def current_branch(self) -> str:
        return self.state.current_branch

    def head(self, branch: str | None = None) -> str:
        """Get the head commit id of a branch (default: the active one)."""
        branch = branch or self.state.current_branch
        if branch not in self.state.branches:
            raise RepositoryStateError("No such branch exists.")
        return self.state.branches[branch]

    def head_commit(self) -> Commit:
        commit = self.commits.get(self.head())
        if commit is None:
            raise RepositoryStateError(f"Head commit {self.head()} is missing from the store.")
        return commit

    # ── Staging ───────────────────────────────────────────────────

    def add(self, name: str) -> str:
        """
        Stage a working file for addition.

        Returns what happened: "unremoved" (a pending rm was cancelled),
        "unchanged" (content matches the head; any stale staged entry is
        dropped) or "staged".
        """
        name = self.workspace.normalize(name)
        blob = self.workspace.read_blob(name)
        state = self.state

        if state.unmark_removed(name):
            logger.debug("Cancelled pending removal of %s", name)
            return "unremoved"

        if self.head_commit().snapshot.get(name) == blob.digest:
            stale = state.staged.pop(name, None)
            if stale is not None:
                self.workspace.discard_staged(stale, state)
            return "unchanged"

        self.store.check_blob_size(blob.digest, len(blob.data))
        previous = state.staged.get(name)
        state.stage(name, blob.digest)
        self.workspace.stage(blob)
        if previous is not None and previous != blob.digest:
            self.workspace.discard_staged(previous, state)
        return "staged"

    def commit(self, message: str) -> Commit:
        """
        Fold the staging area into a new commit on the active branch.

        The snapshot is the parent's snapshot, overlaid with staged files,
        minus files staged for removal.
        """
        if not message:
            raise UsageError("Please enter a commit message.")
        state = self.state
        if state.is_clean:
            raise NoOpWarning("No changes added to the commit.")

        parent = self.head_commit()
        snapshot = dict(parent.snapshot)
        snapshot.update(state.staged)
        for name in state.removed:
            snapshot.pop(name, None)

        candidate = self.commits.create(message, parent.id, snapshot, read_blob=self._read_blob)
        if candidate.id == parent.id:
            raise NoOpWarning("No changes added to the commit.")

        for digest in sorted(set(state.staged.values())):
            self.store.store_blob(self._read_blob(digest))
        self.commits.add(candidate)

        state.branches[state.current_branch] = candidate.id
        state.record_commit(candidate.id, candidate.message)
        state.tracked = dict(snapshot)
        state.clear_staging()
        state.previously_staged.clear()
        self.workspace.clear_staging()

        logger.info(
            "Committed %s on %s: %s", candidate.id[:12], state.current_branch, candidate.message
        )
        return candidate

    def rm(self, name: str):
        """Unstage a file, and stage it for removal if the head tracks it."""
        name = self.workspace.normalize(name)
        state = self.state
        removed = False

        digest = state.unstage(name)
        if digest is not None:
            self.workspace.discard_staged(digest, state)
            removed = True

        if name in self.head_commit().snapshot:
            state.mark_removed(name)
            self.workspace.delete_file(name)
            removed = True

        if not removed:
            raise NoOpWarning("No reason to remove the file.")

    # ── Checkout / Reset ──────────────────────────────────────────

    def checkout_file(self, name: str, commit_id: str | None = None):
        """
        Restore one file from a commit (default: the active head).

        The working copy is overwritten; the file is not staged.
        """
        commit = self.head_commit() if commit_id is None else self.commits.resolve(commit_id)
        name = self.workspace.normalize(name)
        digest = commit.snapshot.get(name)
        if digest is None:
            raise RepositoryStateError("File does not exist in that commit.")
        self.workspace.write_file(name, self._read_blob(digest))

    def checkout_branch(self, branch: str) -> Commit:
        """Switch the working tree and the active branch to ``branch``."""
        state = self.state
        if branch not in state.branches:
            raise RepositoryStateError("No such branch exists.")
        if branch == state.current_branch:
            raise NoOpWarning("No need to checkout the current branch.")

        target = self.commits.get(state.branches[branch])
        if target is None:
            raise RepositoryStateError(f"Head commit of '{branch}' is missing from the store.")
        self._switch_to(target)
        state.current_branch = branch
        logger.info("Switched to branch %s at %s", branch, target.id[:12])
        return target

    def reset(self, commit_id: str) -> Commit:
        """Check out an arbitrary commit and move the active branch to it."""
        target = self.commits.resolve(commit_id)
        self._switch_to(target)
        self.state.branches[self.state.current_branch] = target.id
        logger.info("Reset %s to %s", self.state.current_branch, target.id[:12])
        return target

    def _switch_to(self, target: Commit):
        state = self.state
        self.workspace.check_untracked(state, target.snapshot)
        self.workspace.materialize(state, target.snapshot, self._read_blob)
        state.tracked = dict(target.snapshot)
        state.clear_staging()
        self.workspace.clear_staging()

    # ── Branches ──────────────────────────────────────────────────

    def branch(self, name: str) -> str:
        """Create a branch at the current head without switching to it."""
        if not name or name != name.strip() or any(c.isspace() for c in name):
            raise UsageError("Incorrect operands.")
        if name in self.state.branches:
            raise RepositoryStateError("A branch with that name already exists.")
        self.state.branches[name] = self.head()
        logger.debug("Created branch %s at %s", name, self.head()[:12])
        return name

    def rm_branch(self, name: str):
        if name not in self.state.branches:
            raise RepositoryStateError("A branch with that name does not exist.")
        if name == self.state.current_branch:
            raise RepositoryStateError("Cannot remove the current branch.")
        del self.state.branches[name]

    def merge(self, name: str):
        """
        Check that ``name`` could be merged into the active branch.

        Only the preconditions are enforced; no snapshot combination
        happens and nothing is committed.

        The untracked check compares against the active head's snapshot,
        which the overlay always equals once the state is clean, so it
        never fires here. It becomes a real guard only when merge starts
        writing the other branch's files.
        """
        state = self.state
        if not state.is_clean:
            raise RepositoryStateError("You have uncommitted changes.")
        if name not in state.branches:
            raise RepositoryStateError("A branch with that name does not exist.")
        if name == state.current_branch:
            raise RepositoryStateError("Cannot merge a branch with itself.")
        self.workspace.check_untracked(state, self.head_commit().snapshot)
        logger.info("Merge preconditions satisfied: %s into %s", name, state.current_branch)

    # ── History ───────────────────────────────────────────────────

    def log(self) -> list[Commit]:
        """The active branch's history, newest first."""
        return list(self.commits.history(self.head()))

    def global_log(self) -> list[Commit]:
        """Every commit ever made, in store order."""
        return list(self.commits.all())

    def find_commits(self, message: str) -> list[str]:
        ids = self.state.messages.get(message)
        if not ids:
            raise NoOpWarning("Found no commit with that message.")
        return list(ids)

    def status(self) -> dict:
        state = self.state
        return {
            "root": str(self.root),
            "current_branch": state.current_branch,
            "head": self.head(),
            "branches": sorted(state.branches),
            "staged": sorted(state.staged),
            "removed": sorted(state.removed),
            # Reported structurally; not computed
            "modified": [],
            "untracked": [],
        }

    # ── Integrity ─────────────────────────────────────────────────

    def verify(self, fix: bool = False) -> list[dict]:
        """
        Check repository integrity. Returns a list of findings.

        With ``fix``, rebuildable problems (the message index, staged
        entries whose content is gone) are repaired in memory; the caller
        persists them with save().
        """
        state = self.state
        findings = []

        if state.current_branch not in state.branches:
            findings.append({
                "check": "current_branch",
                "detail": f"Active branch '{state.current_branch}' has no head",
                "fixable": False,
            })

        for branch, head in sorted(state.branches.items()):
            if not self.commits.exists(head):
                findings.append({
                    "check": "branch_head",
                    "detail": f"Branch '{branch}' points at missing commit {head}",
                    "fixable": False,
                })

        checked_blobs: dict[str, bool] = {}
        expected_messages: dict[str, list[str]] = {}
        for commit in self.commits.all():
            expected_messages.setdefault(commit.message, []).append(commit.id)

            if commit.parent is not None and not self.commits.exists(commit.parent):
                findings.append({
                    "check": "commit_parent",
                    "detail": f"Commit {commit.id} has missing parent {commit.parent}",
                    "fixable": False,
                })

            contents = {}
            for name, digest in sorted(commit.snapshot.items()):
                if digest not in checked_blobs:
                    obj = self.store.retrieve(digest, ObjectType.BLOB)
                    ok = obj is not None and self.store.hash_content(obj.data) == digest
                    checked_blobs[digest] = ok
                    if not ok:
                        findings.append({
                            "check": "blob",
                            "detail": f"Blob {digest} ({name}) is missing or corrupt",
                            "fixable": False,
                        })
                if checked_blobs[digest]:
                    contents[name] = self.store.retrieve(digest, ObjectType.BLOB).data

            if len(contents) == len(commit.snapshot):
                recomputed = compute_commit_id(
                    commit.message, commit.timestamp, commit.parent, contents, commit.merge_parent
                )
                if recomputed != commit.id:
                    findings.append({
                        "check": "commit_id",
                        "detail": f"Commit {commit.id} does not hash to its id",
                        "fixable": False,
                    })

        indexed = {m: sorted(ids) for m, ids in state.messages.items()}
        if indexed != {m: sorted(ids) for m, ids in expected_messages.items()}:
            finding = {
                "check": "message_index",
                "detail": "Commit message index does not match the stored commits",
                "fixable": True,
            }
            if fix:
                state.messages = expected_messages
                finding["fixed"] = True
            findings.append(finding)

        for name, digest in sorted(state.staged.items()):
            if self.workspace.staged_content(digest) is None:
                finding = {
                    "check": "staged_content",
                    "detail": f"Staged content for '{name}' is missing",
                    "fixable": True,
                }
                if fix:
                    del state.staged[name]
                    finding["fixed"] = True
                findings.append(finding)

        return findings

    # ── Helpers ───────────────────────────────────────────────────

    def _read_blob(self, digest: str) -> bytes:
        """Blob bytes from the staging area or the store."""
        data = self.workspace.staged_content(digest)
        if data is not None:
            return data
        obj = self.store.retrieve(digest, ObjectType.BLOB)
        if obj is None:
            raise RepositoryStateError(f"Blob {digest} is missing from the store.")
        return obj.data

    def _read_config(self) -> dict:
        """Read repository configuration."""
        config_path = self.twig_dir / "config.json"
        if config_path.exists():
            return json.loads(config_path.read_text())
        return {}

    @staticmethod
    def _validate_config(config: dict) -> None:
        """Validate config version and warn on unknown keys."""
        repo_version = config.get("version")
        if repo_version and _version_tuple(repo_version) > _version_tuple(CONFIG_VERSION):
            raise ValueError(
                f"Repository config version {repo_version} is newer than "
                f"this version of Twig ({CONFIG_VERSION}). "
                f"Please upgrade Twig to open this repository."
            )

        unknown_keys = set(config.keys()) - KNOWN_CONFIG_KEYS
        if unknown_keys:
            logger.warning("Unknown config keys (ignored): %s", ", ".join(sorted(unknown_keys)))
