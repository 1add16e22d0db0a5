"""
Error kinds raised by repository operations.

Operations raise; only the CLI catches. Nothing is persisted when an
operation raises, so every error leaves the repository as it was.
"""


class TwigError(Exception):
    """Base class for all errors reported to the user."""


class UsageError(TwigError):
    """Bad operands, unknown command, or no repository to operate on."""


class RepositoryStateError(TwigError):
    """The request names something the repository doesn't have (or forbids)."""


class NoOpWarning(TwigError):
    """Nothing to do. Reported, but not a failure."""


class SafetyViolation(TwigError):
    """An untracked working file would be overwritten."""


class NotARepository(UsageError, ValueError):
    """Raised when a command is run outside a Twig repository."""

    def __init__(self, start_path=None):
        self.start_path = start_path
        super().__init__("Not in an initialized Twig directory.")
