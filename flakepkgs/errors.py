"""Errors raised while evaluating a flake.

Evaluation is a pure computation over data that is known up front, so
every error here is fatal: nothing is retried, and the caller gets the
first problem found.
"""


class EvalError(Exception):
    """Base class for every evaluation failure."""


class MissingDependency(EvalError):
    """An attribute path could not be resolved against a package index."""

    def __init__(self, path: str, required_by: str | None = None):
        self.path = path
        self.required_by = required_by
        msg = f"attribute {path!r} missing"
        if required_by:
            msg += f" (required by {required_by})"
        super().__init__(msg)


class ConfigurationConflict(EvalError):
    """A descriptor was requested with mutually exclusive settings."""


class InfiniteRecursion(EvalError):
    """A lazy attribute needed its own value to compute itself."""


class ConfigError(EvalError):
    """The flake configuration is unreadable or invalid."""


class LockFileError(EvalError):
    """The dependency lock file is unreadable or unsupported."""


class FlakeCheckError(EvalError):
    """One or more flake outputs break the registry invariants."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("flake check failed:\n" + "\n".join(f"  - {p}" for p in self.problems))
