"""
CLI tests.

Uses subprocess to invoke the CLI and verify exit codes and output.
"""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest


def run_twig(*args, cwd=None, expect_fail=False):
    """Run a twig CLI command and return (returncode, stdout, stderr)."""
    cmd = [sys.executable, "-X", "utf8", "-m", "twig.cli"] + list(args)
    result = subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        cwd=cwd,
        env={**os.environ, "PYTHONPATH": str(Path(__file__).parent.parent)},
    )
    if not expect_fail:
        if result.returncode != 0:
            print(f"STDOUT: {result.stdout}")
            print(f"STDERR: {result.stderr}")
    return result.returncode, result.stdout, result.stderr


@pytest.fixture
def repo_dir(tmp_path):
    """A temporary directory with an initialized repository."""
    rc, out, err = run_twig("init", cwd=tmp_path)
    assert rc == 0, f"Init failed: {err}"
    return tmp_path


def _state(repo_dir):
    return json.loads((repo_dir / ".twig" / "state.json").read_text())


class TestUsage:
    def test_no_command(self, tmp_path):
        rc, out, err = run_twig(cwd=tmp_path, expect_fail=True)
        assert rc == 1
        assert "Please enter a command." in err

    def test_unknown_command(self, tmp_path):
        rc, out, err = run_twig("frobnicate", cwd=tmp_path, expect_fail=True)
        assert rc == 1
        assert "No command with that name exists." in err

    def test_unknown_command_suggestion(self, tmp_path):
        rc, out, err = run_twig("comit", "m", cwd=tmp_path, expect_fail=True)
        assert rc == 1
        assert "Did you mean: commit" in err

    def test_wrong_arity_touches_nothing(self, repo_dir):
        before = _state(repo_dir)
        rc, out, err = run_twig("add", "a.txt", "b.txt", cwd=repo_dir, expect_fail=True)
        assert rc == 1
        assert "Incorrect operands." in err
        assert _state(repo_dir) == before

    def test_commit_without_message(self, repo_dir):
        rc, out, err = run_twig("commit", cwd=repo_dir, expect_fail=True)
        assert rc == 1
        assert "Please enter a commit message." in err

    def test_outside_repository(self, tmp_path):
        rc, out, err = run_twig("status", cwd=tmp_path, expect_fail=True)
        assert rc == 1
        assert "Not in an initialized Twig directory." in err

    def test_error_json_mode(self, tmp_path):
        rc, out, err = run_twig("--json", "status", cwd=tmp_path, expect_fail=True)
        assert rc == 1
        assert "error" in json.loads(out)

    def test_init_twice(self, repo_dir):
        rc, out, err = run_twig("init", cwd=repo_dir, expect_fail=True)
        assert rc == 1
        assert "already exists" in err

    def test_bad_checkout_form(self, repo_dir):
        rc, out, err = run_twig("checkout", "a", "b", cwd=repo_dir, expect_fail=True)
        assert rc == 1
        assert "Incorrect operands." in err


class TestNoOps:
    def test_empty_commit_exits_zero(self, repo_dir):
        before = _state(repo_dir)
        rc, out, err = run_twig("commit", "nothing", cwd=repo_dir)
        assert rc == 0
        assert "No changes added to the commit." in out
        assert _state(repo_dir) == before

    def test_find_nothing(self, repo_dir):
        rc, out, _ = run_twig("find", "missing", cwd=repo_dir)
        assert rc == 0
        assert "Found no commit with that message." in out

    def test_checkout_current_branch(self, repo_dir):
        rc, out, _ = run_twig("checkout", "master", cwd=repo_dir)
        assert rc == 0
        assert "No need to checkout the current branch." in out


class TestEndToEnd:
    def test_add_commit_log(self, repo_dir):
        (repo_dir / "hello.txt").write_text("hi")
        assert run_twig("add", "hello.txt", cwd=repo_dir)[0] == 0
        assert run_twig("commit", "add hello", cwd=repo_dir)[0] == 0

        rc, out, _ = run_twig("log", cwd=repo_dir)
        assert rc == 0
        entries = [block for block in out.split("===\n") if block.strip()]
        assert len(entries) == 2
        assert entries[0].rstrip().endswith("add hello")
        assert entries[1].rstrip().endswith("initial commit")
        assert "Date: Thu Jan 1 00:00:00 1970 -0800" in entries[1]

    def test_checkout_root_commit_file(self, repo_dir):
        rc, out, _ = run_twig("--json", "log", cwd=repo_dir)
        root_id = json.loads(out)[0]["id"]

        (repo_dir / "hello.txt").write_text("hi")
        run_twig("add", "hello.txt", cwd=repo_dir)
        run_twig("commit", "add hello", cwd=repo_dir)
        (repo_dir / "hello.txt").unlink()

        rc, out, err = run_twig(
            "checkout", root_id, "--", "hello.txt", cwd=repo_dir, expect_fail=True
        )
        assert rc == 1
        assert "File does not exist in that commit." in err
        assert not (repo_dir / "hello.txt").exists()

    def test_checkout_file_from_head(self, repo_dir):
        (repo_dir / "a.txt").write_text("committed")
        run_twig("add", "a.txt", cwd=repo_dir)
        run_twig("commit", "m", cwd=repo_dir)
        (repo_dir / "a.txt").write_text("scribbled")
        rc, _, _ = run_twig("checkout", "--", "a.txt", cwd=repo_dir)
        assert rc == 0
        assert (repo_dir / "a.txt").read_text() == "committed"

    def test_branch_switch_and_untracked_guard(self, repo_dir):
        run_twig("branch", "dev", cwd=repo_dir)
        run_twig("checkout", "dev", cwd=repo_dir)
        (repo_dir / "a.txt").write_text("dev")
        run_twig("add", "a.txt", cwd=repo_dir)
        run_twig("commit", "dev adds a", cwd=repo_dir)
        run_twig("checkout", "master", cwd=repo_dir)
        assert not (repo_dir / "a.txt").exists()

        (repo_dir / "a.txt").write_text("untracked")
        before = _state(repo_dir)
        rc, out, err = run_twig("checkout", "dev", cwd=repo_dir, expect_fail=True)
        assert rc == 1
        assert "There is an untracked file in the way" in err
        assert _state(repo_dir) == before
        assert (repo_dir / "a.txt").read_text() == "untracked"


class TestStatus:
    def test_status_sections(self, repo_dir):
        run_twig("branch", "dev", cwd=repo_dir)
        (repo_dir / "a.txt").write_text("a")
        run_twig("add", "a.txt", cwd=repo_dir)
        rc, out, _ = run_twig("status", cwd=repo_dir)
        assert rc == 0
        assert out.startswith("=== Branches ===\ndev\n*master\n\n")
        assert "=== Staged Files ===\na.txt\n" in out
        assert "=== Removed Files ===" in out
        assert "=== Modifications Not Staged For Commit ===" in out
        assert "=== Untracked Files ===" in out

    def test_status_json(self, repo_dir):
        rc, out, _ = run_twig("--json", "status", cwd=repo_dir)
        data = json.loads(out)
        assert data["current_branch"] == "master"
        assert data["branches"] == ["master"]


class TestFindAndGlobalLog:
    def test_find_prints_ids(self, repo_dir):
        (repo_dir / "a.txt").write_text("a")
        run_twig("add", "a.txt", cwd=repo_dir)
        run_twig("commit", "needle", cwd=repo_dir)
        rc, out, _ = run_twig("find", "needle", cwd=repo_dir)
        assert rc == 0
        assert len(out.split()) == 1
        assert len(out.strip()) == 40

    def test_global_log_lists_all(self, repo_dir):
        (repo_dir / "a.txt").write_text("a")
        run_twig("add", "a.txt", cwd=repo_dir)
        run_twig("commit", "one", cwd=repo_dir)
        rc, out, _ = run_twig("--json", "global-log", cwd=repo_dir)
        assert {c["message"] for c in json.loads(out)} == {"initial commit", "one"}


class TestExtras:
    def test_doctor_healthy(self, repo_dir):
        rc, out, _ = run_twig("doctor", cwd=repo_dir)
        assert rc == 0
        assert "No problems found." in out

    def test_doctor_fix_rebuilds_index(self, repo_dir):
        state_path = repo_dir / ".twig" / "state.json"
        state = json.loads(state_path.read_text())
        state["messages"] = {}
        state_path.write_text(json.dumps(state))

        rc, out, _ = run_twig("--json", "doctor", "--fix", cwd=repo_dir)
        assert rc == 0
        assert json.loads(out)["findings"][0]["fixed"]
        assert "initial commit" in _state(repo_dir)["messages"]

    def test_completion(self, tmp_path):
        rc, out, _ = run_twig("completion", "bash", cwd=tmp_path)
        assert rc == 0
        assert "complete -F _twig_completions twig" in out

    def test_path_option(self, tmp_path):
        target = tmp_path / "elsewhere"
        rc, _, _ = run_twig("-C", str(target), "init", cwd=tmp_path)
        assert rc == 0
        assert (target / ".twig" / "state.json").is_file()
