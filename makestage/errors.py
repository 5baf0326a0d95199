"""
errors.py

Responsibility: the exception hierarchy shared by every makestage module.

All failures are terminal for the current command; the CLI turns any
`MakestageError` into a one-line message and a non-zero exit status.
"""

from __future__ import annotations

from collections.abc import Sequence


class MakestageError(RuntimeError):
    pass


class ConfigError(MakestageError, ValueError):
    pass


class RecipeNotFound(MakestageError):
    pass


class MissingTemplate(RecipeNotFound):
    pass


class MalformedRecipe(MakestageError):
    """The build script lacks a target makestage relies on."""


class BuildToolError(MakestageError):
    def __init__(self, command: Sequence[str], returncode: int, output: str) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        super().__init__(f"Command failed ({returncode}): {' '.join(command)}\n\n{output}".rstrip())


class NotStaged(MakestageError):
    pass


class NamingInvariantViolation(MakestageError):
    pass


class StagingError(MakestageError):
    pass


class AlreadyStaged(StagingError):
    pass


class MissingRequirement(StagingError):
    pass


class NoOutputs(StagingError):
    pass


class MissingOutput(StagingError):
    pass


class OutputConflict(StagingError):
    pass
