#!/usr/bin/env python3
"""
Twig Branch Workflow Example

Demonstrates the Python API end to end:
  1. Initialize a repository
  2. Stage and commit a file
  3. Branch, diverge, and switch back and forth
  4. Reset a branch to an older commit
  5. Query history

Usage:
    python examples/branch_workflow.py          # Run with temp directory (cleaned up)
    python examples/branch_workflow.py --keep    # Keep repo for inspection
"""

import argparse
import shutil
import sys
import tempfile
from pathlib import Path

# Ensure the twig package is importable when running from the repo root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from twig.errors import SafetyViolation
from twig.repo import Repository


def step(n: int, msg: str):
    print(f"\n{'='*60}")
    print(f"  Step {n}: {msg}")
    print(f"{'='*60}\n")


def run_demo(repo_path: Path):
    step(1, "Initialize a Twig repository")
    repo = Repository.init(repo_path)
    print(f"  Root commit: {repo.head()[:12]} on {repo.current_branch}")

    step(2, "Stage and commit a file")
    (repo_path / "README.md").write_text("# Demo\n")
    repo.add("README.md")
    first = repo.commit("add readme")
    print(f"  Committed {first.id[:12]}: {first.message}")

    step(3, "Branch and diverge")
    repo.branch("feature")
    repo.checkout_branch("feature")
    (repo_path / "feature.txt").write_text("feature work\n")
    repo.add("feature.txt")
    repo.commit("feature work")
    repo.checkout_branch("master")
    print(f"  feature.txt on master? {(repo_path / 'feature.txt').exists()}")

    (repo_path / "feature.txt").write_text("not tracked here\n")
    try:
        repo.checkout_branch("feature")
    except SafetyViolation as e:
        print(f"  Refused: {e}")
    (repo_path / "feature.txt").unlink()

    step(4, "Reset master to the root commit")
    root_id = repo.log()[-1].id
    repo.reset(root_id)
    print(f"  README.md present? {(repo_path / 'README.md').exists()}")

    step(5, "Query history")
    for commit in repo.global_log():
        print(f"  {commit.id[:12]}  {commit.timestamp}  {commit.message}")
    print(f"  'feature work' -> {repo.find_commits('feature work')}")

    repo.save()


def main():
    parser = argparse.ArgumentParser(description="Twig branch workflow demo")
    parser.add_argument("--keep", action="store_true", help="Keep the repository")
    args = parser.parse_args()

    tmp = Path(tempfile.mkdtemp(prefix="twig_demo_"))
    try:
        run_demo(tmp / "project")
        if args.keep:
            print(f"\nRepository kept at: {tmp / 'project'}")
    finally:
        if not args.keep:
            shutil.rmtree(tmp, ignore_errors=True)


if __name__ == "__main__":
    main()
