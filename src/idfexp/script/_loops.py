"""FOR-loop expansion.

Loops are unrolled textually before execution::

    FOR i = 1 TO 3
      KD_L%i% = KH_L%i%.IDF * D_L%i%.IDF
    NEXT

repeats the body once per value, with ``%i%`` replaced by the value.
Loops nest; expanded lines keep the number of their source line.
"""

from __future__ import annotations

import glob
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from idfexp.evaluate import ExpressionSyntaxError, ScriptError
from idfexp.model.statements import ForHeader

from ._reader import is_for_header, match_for_header, match_next


@dataclass
class ForLoopFrame:
    """State of one (possibly nested) loop during expansion."""

    loop_var: str
    values: list[int] = field(default_factory=list)
    index: int = 0

    def __iter__(self):
        for index, value in enumerate(self.values):
            self.index = index
            yield value

    def substitute(self, text: str, value: int) -> str:
        pattern = re.compile(rf"%{re.escape(self.loop_var)}%", re.IGNORECASE)
        return pattern.sub(str(value), text)


def count_files(pattern: str, base_path: str | Path | None = None) -> int:
    """Number of files matching *pattern*; a directory counts all its files."""
    base = Path(base_path) if base_path is not None else Path.cwd()
    target = os.path.join(base, pattern)
    if os.path.isdir(target):
        return sum(1 for entry in Path(target).iterdir() if entry.is_file())
    return sum(1 for match in glob.glob(target) if os.path.isfile(match))


def loop_values(header: ForHeader, base_path: str | Path | None = None) -> list[int]:
    end = header.end
    if header.count_pattern is not None:
        end = count_files(header.count_pattern, base_path)
    return list(range(header.start, end + 1))


def _header(number: int, text: str) -> ForHeader | None:
    try:
        return match_for_header(number, text)
    except ExpressionSyntaxError as exc:
        raise ScriptError(number, text.strip(), exc) from exc


def _find_next(lines: list[tuple[int, str]], start: int, header: ForHeader) -> int:
    depth = 0
    for position in range(start + 1, len(lines)):
        number, text = lines[position]
        if is_for_header(text):
            depth += 1
            continue
        statement = match_next(number, text)
        if statement is None:
            continue
        if depth == 0:
            if statement.loop_var and statement.loop_var.upper() != header.loop_var.upper():
                exc = ExpressionSyntaxError(
                    f"NEXT {statement.loop_var} does not match FOR {header.loop_var}"
                )
                raise ScriptError(number, text.strip(), exc) from exc
            return position
        depth -= 1
    exc = ExpressionSyntaxError(f"FOR {header.loop_var} without NEXT")
    raise ScriptError(header.line_number, header.text.strip(), exc) from exc


def expand_loops(
    lines: list[tuple[int, str]],
    base_path: str | Path | None = None,
) -> list[tuple[int, str]]:
    """Unroll all FOR-loops in *lines* (``(line number, text)`` pairs)."""
    result: list[tuple[int, str]] = []
    position = 0
    while position < len(lines):
        number, text = lines[position]
        header = _header(number, text)
        if header is None:
            if match_next(number, text) is not None:
                exc = ExpressionSyntaxError("NEXT without FOR")
                raise ScriptError(number, text.strip(), exc) from exc
            result.append((number, text))
            position += 1
            continue

        end = _find_next(lines, position, header)
        body = lines[position + 1:end]
        frame = ForLoopFrame(header.loop_var, loop_values(header, base_path))
        for value in frame:
            substituted = [(n, frame.substitute(t, value)) for n, t in body]
            result.extend(expand_loops(substituted, base_path))
        position = end + 1
    return result
