"""Reading script text into statements.

A script is line oriented.  A trailing underscore continues a logical
line on the next physical line.  Each logical line is one statement:
blank, comment, ``FOR`` header, ``NEXT`` or ``name = expression``.
"""

from __future__ import annotations

import os
import re

from idfexp.evaluate import ExpressionSyntaxError
from idfexp.model.statements import (
    Assignment,
    BlankLine,
    CommentLine,
    ForHeader,
    NextStatement,
    ScriptStatement,
)

CONTINUATION = "_"
COMMENT_PREFIXES = ("REM ", "//", "'")

_ENV_VAR = re.compile(r"%([^%\s]+)%")
_FOR_HEADER = re.compile(
    r"^\s*FOR\s+(?P<var>\w+)\s*=\s*(?P<start>[-+]?\d+)\s+TO\s+(?P<end>.+?)\s*$",
    re.IGNORECASE,
)
_COUNT = re.compile(r'^count\(\s*"(?P<pattern>[^"]*)"\s*\)$', re.IGNORECASE)
_NEXT = re.compile(r"^\s*NEXT(?:\s+(?P<var>\w+))?\s*$", re.IGNORECASE)

# Two-character comparison operators are hidden while splitting an
# assignment on its single '='.
_PROTECTED = {
    "==": "#@1#",
    "!=": "#@2#",
    ">=": "#@3#",
    "<=": "#@4#",
}


def read_logical_lines(text: str) -> list[tuple[int, str]]:
    """Join continued lines; returns ``(first line number, text)`` pairs."""
    lines: list[tuple[int, str]] = []
    pending: list[str] = []
    start = 0
    for number, raw in enumerate(text.splitlines(), start=1):
        if not pending:
            start = number
        stripped = raw.rstrip()
        if stripped.endswith(CONTINUATION):
            pending.append(stripped[:-1])
            continue
        pending.append(raw)
        lines.append((start, "".join(pending)))
        pending = []
    if pending:
        lines.append((start, "".join(pending)))
    return lines


def expand_environment(text: str, environ=None) -> str:
    """Replace ``%NAME%`` by environment values; unknown names are kept."""
    environ = os.environ if environ is None else environ

    def _lookup(match: re.Match) -> str:
        return environ.get(match.group(1), match.group(0))

    return _ENV_VAR.sub(_lookup, text)


def is_comment(text: str) -> bool:
    stripped = text.strip()
    upper = stripped.upper()
    return upper == "REM" or any(upper.startswith(prefix) for prefix in COMMENT_PREFIXES)


def is_for_header(text: str) -> bool:
    """Cheap check used while scanning; bounds may still hold loop variables."""
    return text.strip().upper().startswith("FOR ")


def match_for_header(line_number: int, text: str) -> ForHeader | None:
    match = _FOR_HEADER.match(text)
    if match is None:
        if is_for_header(text):
            raise ExpressionSyntaxError(f"Invalid FOR-statement: {text.strip()}")
        return None
    end_text = match.group("end")
    end = None
    pattern = None
    count = _COUNT.match(end_text)
    if count is not None:
        pattern = count.group("pattern")
    else:
        try:
            end = int(end_text)
        except ValueError:
            raise ExpressionSyntaxError(
                f"FOR-loop end should be an integer or count(\"<filter>\"): {end_text}"
            ) from None
    return ForHeader(
        line_number=line_number,
        text=text,
        loop_var=match.group("var"),
        start=int(match.group("start")),
        end=end,
        count_pattern=pattern,
    )


def match_next(line_number: int, text: str) -> NextStatement | None:
    match = _NEXT.match(text)
    if match is None:
        return None
    return NextStatement(line_number=line_number, text=text, loop_var=match.group("var"))


def split_prefix(name: str) -> tuple[str | None, str]:
    """Split ``sub\\dir\\NAME`` into the subdirectory prefix and the name."""
    position = max(name.rfind("/"), name.rfind("\\"))
    if position < 0:
        return None, name
    return name[:position], name[position + 1:]


def parse_assignment(line_number: int, text: str) -> Assignment:
    for sequence in _PROTECTED.values():
        if sequence in text:
            raise ExpressionSyntaxError(f"Invalid character sequence '{sequence}' in statement")
    protected = text
    for operator, sequence in _PROTECTED.items():
        protected = protected.replace(operator, sequence)

    if protected.count("=") != 1:
        raise ExpressionSyntaxError("Exactly one equal sign is expected in an assignment")
    left, right = protected.split("=")
    for operator, sequence in _PROTECTED.items():
        right = right.replace(sequence, operator)
        left = left.replace(sequence, operator)

    target = left.strip()
    expression = right.strip()
    if not target:
        raise ExpressionSyntaxError("Missing variable name before '='")
    if not expression:
        raise ExpressionSyntaxError(f"Missing expression for variable '{target}'")
    prefix, name = split_prefix(target)
    if not name:
        raise ExpressionSyntaxError(f"Missing variable name after prefix '{prefix}'")
    return Assignment(
        line_number=line_number,
        text=text,
        name=name,
        expression=expression,
        prefix=prefix,
    )


def parse_statement(line_number: int, text: str) -> ScriptStatement:
    """Parse one logical line into a statement model."""
    stripped = text.strip()
    if not stripped:
        return BlankLine(line_number=line_number, text=text)
    if is_comment(stripped):
        comment = stripped
        for prefix in ("REM", "//", "'"):
            if comment.upper().startswith(prefix):
                comment = comment[len(prefix):].strip()
                break
        return CommentLine(line_number=line_number, text=text, comment=comment)

    header = match_for_header(line_number, stripped)
    if header is not None:
        return header
    next_statement = match_next(line_number, stripped)
    if next_statement is not None:
        return next_statement
    if "=" in stripped:
        return parse_assignment(line_number, stripped)
    raise ExpressionSyntaxError(f"Invalid statement, assignment expected: {stripped}")
