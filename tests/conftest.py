"""Shared pytest fixtures."""

import pytest

from twig.repo import Repository


@pytest.fixture
def repo(tmp_path):
    """Freshly initialized repository (root commit only)."""
    return Repository.init(tmp_path / "project")


@pytest.fixture
def write(repo):
    """Write a working file in the repository root."""

    def _write(name: str, content: str):
        path = repo.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path

    return _write
