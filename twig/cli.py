"""
Twig CLI

A thin dispatcher: it validates the command word and operand count
before anything is loaded, opens the repository, runs exactly one
operation, and saves the repository state only if that operation
succeeded.

Usage:
    twig init
    twig add FILE
    twig commit MESSAGE
    twig rm FILE
    twig log
    twig global-log
    twig find MESSAGE
    twig status
    twig branch NAME
    twig rm-branch NAME
    twig checkout -- FILE
    twig checkout COMMIT_ID -- FILE
    twig checkout BRANCH
    twig reset COMMIT_ID
    twig merge BRANCH
    twig doctor [--fix]
    twig completion SHELL

Global options go before the command word:
    -C/--path PATH, --json, -v/--verbose, -q/--quiet, -V/--version
"""

import argparse
import difflib
import json
import logging
import sys
from contextlib import contextmanager
from pathlib import Path

import twig as _twig_pkg

from .completions import BASH_COMPLETION, ZSH_COMPLETION
from .errors import NoOpWarning, TwigError, UsageError
from .repo import Repository


@contextmanager
def open_repo(args, write: bool = True):
    """Open the repository; persist its state if the block completes."""
    repo = Repository.find(Path(args.path or "."))
    yield repo
    if write:
        repo.save()


def print_json(data):
    print(json.dumps(data, indent=2, default=str))


def get_verbosity(args) -> int:
    """Return verbosity level: 0=quiet, 1=normal, 2=verbose."""
    if getattr(args, "verbose", False):
        return 2
    if getattr(args, "quiet", False):
        return 0
    return 1


def _configure_logging(args):
    level = {0: logging.ERROR, 1: logging.WARNING, 2: logging.DEBUG}[get_verbosity(args)]
    logging.basicConfig(
        level=level, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s"
    )


def _commit_entry(commit) -> dict:
    return {
        "id": commit.id,
        "timestamp": commit.timestamp,
        "message": commit.message,
        "parent": commit.parent,
        "merge_parent": commit.merge_parent,
    }


def _print_commits(commits):
    for commit in commits:
        print("===")
        print(f"commit {commit.id}")
        if commit.is_merge:
            print(f"Merge: {commit.parent[:7]} {commit.merge_parent[:7]}")
        print(f"Date: {commit.timestamp}")
        print(commit.message)
        print()


# ── Commands ──────────────────────────────────────────────────


def cmd_init(args):
    path = Path(args.path or ".").resolve()
    repo = Repository.init(path)
    if args.json:
        print_json({"root": str(path), "branch": repo.current_branch, "head": repo.head()})
    elif get_verbosity(args) >= 2:
        print(f"Initialized Twig repository at {path}")
        print(f"  Branch: {repo.current_branch}")
        print(f"  Root commit: {repo.head()}")


def cmd_add(args):
    with open_repo(args) as repo:
        result = repo.add(args.operands[0])
        if args.json:
            print_json({"file": args.operands[0], "result": result})


def cmd_commit(args):
    with open_repo(args) as repo:
        commit = repo.commit(args.operands[0])
        if args.json:
            print_json(_commit_entry(commit))
        elif get_verbosity(args) >= 2:
            print(f"[{repo.current_branch} {commit.id[:12]}] {commit.message}")


def cmd_rm(args):
    with open_repo(args) as repo:
        repo.rm(args.operands[0])


def cmd_log(args):
    with open_repo(args, write=False) as repo:
        commits = repo.log()
        if args.json:
            print_json([_commit_entry(c) for c in commits])
        else:
            _print_commits(commits)


def cmd_global_log(args):
    with open_repo(args, write=False) as repo:
        commits = repo.global_log()
        if args.json:
            print_json([_commit_entry(c) for c in commits])
        else:
            _print_commits(commits)


def cmd_find(args):
    with open_repo(args, write=False) as repo:
        ids = repo.find_commits(args.operands[0])
        if args.json:
            print_json(ids)
        else:
            for commit_id in ids:
                print(commit_id)


def cmd_status(args):
    with open_repo(args, write=False) as repo:
        status = repo.status()
        if args.json:
            print_json(status)
            return

        print("=== Branches ===")
        for branch in status["branches"]:
            marker = "*" if branch == status["current_branch"] else ""
            print(f"{marker}{branch}")
        print()
        print("=== Staged Files ===")
        for name in status["staged"]:
            print(name)
        print()
        print("=== Removed Files ===")
        for name in status["removed"]:
            print(name)
        print()
        print("=== Modifications Not Staged For Commit ===")
        print()
        print("=== Untracked Files ===")
        print()


def cmd_branch(args):
    with open_repo(args) as repo:
        repo.branch(args.operands[0])


def cmd_rm_branch(args):
    with open_repo(args) as repo:
        repo.rm_branch(args.operands[0])


def cmd_checkout(args):
    ops = args.operands
    with open_repo(args) as repo:
        if len(ops) == 2 and ops[0] == "--":
            repo.checkout_file(ops[1])
        elif len(ops) == 3 and ops[1] == "--":
            repo.checkout_file(ops[2], commit_id=ops[0])
        elif len(ops) == 1 and ops[0] != "--":
            repo.checkout_branch(ops[0])
        else:
            raise UsageError("Incorrect operands.")


def cmd_reset(args):
    with open_repo(args) as repo:
        repo.reset(args.operands[0])


def cmd_merge(args):
    with open_repo(args) as repo:
        repo.merge(args.operands[0])


def cmd_doctor(args):
    """Check repository health and optionally fix issues."""
    fix = "--fix" in args.operands
    if any(op != "--fix" for op in args.operands):
        raise UsageError("Incorrect operands.")
    with open_repo(args, write=fix) as repo:
        findings = repo.verify(fix=fix)
        if args.json:
            print_json({"healthy": not findings, "findings": findings})
        elif not findings:
            print("No problems found.")
        else:
            for finding in findings:
                suffix = " (fixed)" if finding.get("fixed") else ""
                print(f"[{finding['check']}] {finding['detail']}{suffix}")
    if any(not f.get("fixed") for f in findings):
        sys.exit(1)


def cmd_completion(args):
    shell = args.operands[0]
    scripts = {"bash": BASH_COMPLETION, "zsh": ZSH_COMPLETION}
    if shell not in scripts:
        raise UsageError(f"Unsupported shell '{shell}' (choose from: bash, zsh)")
    print(scripts[shell].strip())


# command -> (handler, min operands, max operands)
COMMANDS = {
    "init": (cmd_init, 0, 0),
    "add": (cmd_add, 1, 1),
    "commit": (cmd_commit, 1, 1),
    "rm": (cmd_rm, 1, 1),
    "log": (cmd_log, 0, 0),
    "global-log": (cmd_global_log, 0, 0),
    "find": (cmd_find, 1, 1),
    "status": (cmd_status, 0, 0),
    "branch": (cmd_branch, 1, 1),
    "rm-branch": (cmd_rm_branch, 1, 1),
    "checkout": (cmd_checkout, 1, 3),
    "reset": (cmd_reset, 1, 1),
    "merge": (cmd_merge, 1, 1),
    "doctor": (cmd_doctor, 0, 1),
    "completion": (cmd_completion, 1, 1),
}

# Global options that consume the following token
_OPTIONS_WITH_VALUE = {"-C", "--path"}


def build_parser() -> argparse.ArgumentParser:
    """Parser for the global options that precede the command word."""
    parser = argparse.ArgumentParser(
        prog="twig",
        description="Twig: a minimal local version-control system",
        usage="twig [options] COMMAND [OPERANDS...]",
        epilog="Commands: " + ", ".join(COMMANDS),
    )
    ver = _twig_pkg.__version__
    parser.add_argument("--version", "-V", action="version", version=f"twig {ver}")
    parser.add_argument("--path", "-C", default=".", help="Repository path")
    parser.add_argument("--json", "-j", action="store_true", help="JSON output")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    verbosity.add_argument("--quiet", "-q", action="store_true", help="Quiet output")
    return parser


def split_argv(argv: list[str]) -> tuple[list[str], list[str]]:
    """Split argv into (global options, [command, operands...])."""
    i = 0
    while i < len(argv):
        token = argv[i]
        if token in _OPTIONS_WITH_VALUE:
            i += 2
        elif token.startswith("-") and token != "--":
            i += 1
        else:
            break
    return argv[:i], argv[i:]


def dispatch(args, rest: list[str]):
    """Validate the command word and operand count, then run the handler."""
    if not rest:
        raise UsageError("Please enter a command.")

    command, operands = rest[0], rest[1:]
    if command not in COMMANDS:
        matches = difflib.get_close_matches(command, list(COMMANDS), n=3, cutoff=0.6)
        if matches:
            print(f"  Did you mean: {', '.join(matches)}?", file=sys.stderr)
        raise UsageError("No command with that name exists.")

    handler, low, high = COMMANDS[command]
    if command == "commit" and not operands:
        raise UsageError("Please enter a commit message.")
    if not low <= len(operands) <= high:
        raise UsageError("Incorrect operands.")

    args.command = command
    args.operands = operands
    handler(args)


def main(argv: list[str] | None = None):
    argv = sys.argv[1:] if argv is None else list(argv)
    global_argv, rest = split_argv(argv)
    args = build_parser().parse_args(global_argv)
    _configure_logging(args)

    try:
        dispatch(args, rest)
    except NoOpWarning as e:
        if args.json:
            print_json({"warning": str(e)})
        else:
            print(str(e))
    except TwigError as e:
        if args.json:
            print_json({"error": str(e)})
        else:
            print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        logging.getLogger(__name__).debug("Command failed", exc_info=True)
        if args.json:
            print_json({"error": str(e)})
        else:
            print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
