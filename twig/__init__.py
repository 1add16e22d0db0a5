"""
Twig: a minimal, single-user, local version-control system.

A content-addressed blob store, an immutable commit history keyed by
content-derived ids, and a repository state machine that keeps the
staging area, branch pointers and working tree consistent.
"""

__version__ = "0.1.0"

__all__ = [
    # Core
    "Repository",
    # Content-addressed store
    "ContentStore",
    "CASObject",
    "ObjectType",
    "ContentStoreLimitError",
    # Commits
    "Blob",
    "Commit",
    "CommitGraph",
    # Repository state
    "RepositoryState",
    # Errors
    "TwigError",
    "UsageError",
    "RepositoryStateError",
    "NoOpWarning",
    "SafetyViolation",
    "NotARepository",
]


# Lazy imports, resolved on first access
def __getattr__(name):
    if name == "Repository":
        from .repo import Repository

        return Repository
    if name in ("ContentStore", "CASObject", "ObjectType", "ContentStoreLimitError"):
        from .cas import CASObject, ContentStore, ContentStoreLimitError, ObjectType

        return {
            "ContentStore": ContentStore,
            "CASObject": CASObject,
            "ObjectType": ObjectType,
            "ContentStoreLimitError": ContentStoreLimitError,
        }[name]
    if name in ("Blob", "Commit", "CommitGraph"):
        from . import state

        return getattr(state, name)
    if name == "RepositoryState":
        from .index import RepositoryState

        return RepositoryState
    if name in (
        "TwigError",
        "UsageError",
        "RepositoryStateError",
        "NoOpWarning",
        "SafetyViolation",
        "NotARepository",
    ):
        from . import errors

        return getattr(errors, name)
    raise AttributeError(f"module 'twig' has no attribute {name!r}")
