"""Expression preprocessing: whitespace, parentheses and variable names.

Bound variable names are replaced by ``#<n>#`` placeholder tokens before
splitting, so a name can never be confused with an operator, a number or
part of another name.  Names are processed longest-first and only whole
tokens are replaced.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from idfexp.model.variables import VariableBinding, VariableTable

from ._errors import ExpressionSyntaxError

_WHITESPACE = re.compile(r"\s+")
_PLACEHOLDER = re.compile(r"#(\d+)#")

# Characters that may appear inside a token next to a name (identifiers,
# numbers, file paths, placeholders); a name touching one of these is part
# of a longer token and is left alone.
_TOKEN_CHARS = r"\w.#%\\:"


def placeholder(index: int) -> str:
    return f"#{index}#"


@dataclass
class PreprocessedExpression:
    """Cleaned expression text plus its placeholder table."""

    source: str
    text: str
    placeholders: dict[str, VariableBinding] = field(default_factory=dict)

    def binding(self, token: str) -> VariableBinding | None:
        return self.placeholders.get(token)

    def expand(self, text: str) -> str:
        """Replace placeholders in *text* by the original variable names."""
        def _name(match: re.Match) -> str:
            binding = self.placeholders.get(match.group(0))
            return binding.name if binding is not None else match.group(0)
        return _PLACEHOLDER.sub(_name, text)


def strip_whitespace(expression: str) -> str:
    return _WHITESPACE.sub("", expression)


def check_parentheses(expression: str) -> None:
    depth = 0
    for position, char in enumerate(expression):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise ExpressionSyntaxError(
                    f"Unexpected ')' at position {position + 1} in expression: {expression}"
                )
    if depth != 0:
        raise ExpressionSyntaxError(
            f"Uneven number of parentheses ({depth} unclosed) in expression: {expression}"
        )


def substitute_names(expression: str, bindings: VariableTable | None) -> tuple[str, dict[str, VariableBinding]]:
    placeholders: dict[str, VariableBinding] = {}
    if bindings is None:
        return expression, placeholders
    for index, name in enumerate(bindings.names_longest_first()):
        pattern = re.compile(
            rf"(?<![{_TOKEN_CHARS}]){re.escape(name)}(?![{_TOKEN_CHARS}(])",
            re.IGNORECASE,
        )
        token = placeholder(index)
        expression, count = pattern.subn(token, expression)
        if count:
            placeholders[token] = bindings[name]
    return expression, placeholders


def preprocess(expression: str, bindings: VariableTable | None = None) -> PreprocessedExpression:
    """Strip whitespace, validate parentheses and substitute bound names."""
    text = strip_whitespace(expression)
    if not text:
        raise ExpressionSyntaxError("Empty expression")
    check_parentheses(text)
    text, placeholders = substitute_names(text, bindings)
    return PreprocessedExpression(source=expression, text=text, placeholders=placeholders)
