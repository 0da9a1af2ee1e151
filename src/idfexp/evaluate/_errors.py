"""Errors raised while parsing and evaluating expressions and scripts."""

from __future__ import annotations

from pathlib import Path


class IDFExpError(Exception):
    """Base class for fatal expression and script errors."""


class ExpressionSyntaxError(IDFExpError):
    """Malformed expression or statement (parentheses, operands, arguments)."""


class ExpressionDepthError(ExpressionSyntaxError):
    """Nesting of groups and function calls exceeds the configured maximum."""

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        super().__init__(f"Expression nesting exceeds maximum depth of {max_depth}")


class ResolutionError(IDFExpError):
    """Token is not a number, variable, ``.idf`` file or function."""


class MissingFileError(IDFExpError):
    """Referenced ``.idf`` file does not exist."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        super().__init__(f"IDF-file does not exist: {self.path}")


class ArgumentTypeError(IDFExpError):
    """Function argument has the wrong kind (constant vs. grid)."""


class QuietStop(Exception):
    """Signals a graceful end of the run; not an error."""


class ScriptError(IDFExpError):
    """Failure of a script line, annotated with its number and text.

    The underlying error is chained as ``__cause__``.
    """

    def __init__(self, line_number: int, line: str, cause: BaseException):
        self.line_number = line_number
        self.line = line
        self.cause = cause
        super().__init__(f"Error in line {line_number}: {cause}: {line}")
