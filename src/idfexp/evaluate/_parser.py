"""Split-and-merge expression parser.

The parser never builds a tree.  An expression is split into an ordered
list of ``ExpressionCell`` objects, each holding an evaluated operand and
the operator that follows it.  The list is then merged left to right,
honouring operator priority:

    2 + 3 * 4       ->  [2 +] [3 *] [4 ;]
                    ->  [2 +] [12 ;]      (3*4 first, '+' < '*')
                    ->  [14 ;]

Parenthesised groups and function arguments are evaluated recursively
while splitting, so every cell already holds a grid when merging starts.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass

from idfexp.model.expressions import OPERATOR_CHARS, ExpressionType, Operator
from idfexp.model.variables import VariableTable
from idfexp.grid import ConstantGrid

from ._context import EvaluationContext
from ._errors import ExpressionDepthError, ExpressionSyntaxError
from ._extent import ExtentPolicy, reconcile, target_extent
from ._functions import NODATA_VALUE, LiteralOrVariable, create_function
from ._preprocess import PreprocessedExpression, preprocess

logger = logging.getLogger(__name__)

NODATA_TOKEN = "NODATA"

# Mantissa of a number in scientific notation, just before the exponent sign
_MANTISSA = re.compile(r"-?(\d+\.?\d*|\.\d+)[eE]")

_TWO_CHAR_OPERATORS = {op.value: op for op in Operator if len(op.value) == 2}
_ONE_CHAR_OPERATORS = {
    op.value: op for op in Operator if len(op.value) == 1 and op is not Operator.SENTINEL
}


# ---------------------------------------------------------------------------
# Cursor and cells
# ---------------------------------------------------------------------------

class Cursor:
    """Read position in a preprocessed expression, owned by one parse."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.text[index] if index < len(self.text) else ""

    def advance(self, count: int = 1) -> None:
        self.pos += count

    def expect(self, char: str) -> None:
        if self.peek() != char:
            found = self.peek() or "end of expression"
            raise ExpressionSyntaxError(
                f"Expected '{char}' at position {self.pos + 1}, found {found!r}: {self.text}"
            )
        self.advance()


@dataclass
class ExpressionCell:
    """An evaluated operand and the operator that follows it."""

    value: object
    token_id: str
    action: Operator
    expr_id: str
    depth: int = 0
    expr_type: ExpressionType = ExpressionType.UNDEFINED


def can_merge(left: ExpressionCell, right: ExpressionCell) -> bool:
    return left.action.priority >= right.action.priority


def nodata_constant(other) -> ConstantGrid:
    """The NoData keyword as a constant equal to the NoData value of *other*.

    Plain constants carry a NaN sentinel; they get the default NoData value.
    """
    nodata = other.nodata_value
    if other.is_constant and math.isnan(nodata):
        nodata = NODATA_VALUE
    return ConstantGrid(nodata, nodata, "NoData")


# ---------------------------------------------------------------------------
# ExpressionParser
# ---------------------------------------------------------------------------

class ExpressionParser:
    """Evaluates expressions against a table of bound variables.

    Parameters
    ----------
    context : EvaluationContext
        Settings, expression counter and debug side channel.  A parser
        created without one gets private defaults.
    """

    def __init__(self, context: EvaluationContext | None = None) -> None:
        self.context = context or EvaluationContext()
        self.expression: PreprocessedExpression | None = None

    @property
    def settings(self):
        return self.context.settings

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def parse(self, expression: str, bindings: VariableTable | None = None):
        """Evaluate *expression*; returns ``(grid, ExpressionType)``."""
        self.expression = preprocess(expression, bindings)
        cursor = Cursor(self.expression.text)
        cell = self.split_and_merge(cursor, "", depth=0)
        if not cursor.at_end:
            raise ExpressionSyntaxError(
                f"Unexpected '{cursor.peek()}' at position {cursor.pos + 1}: {expression}"
            )
        expr_type = cell.expr_type
        if cell.value.is_constant:
            expr_type = ExpressionType.CONSTANT
        return cell.value, expr_type

    def expand(self, text: str) -> str:
        """Expression text with placeholders replaced by variable names."""
        if self.expression is None:
            return text
        return self.expression.expand(text)

    # -----------------------------------------------------------------------
    # Split
    # -----------------------------------------------------------------------

    def split_and_merge(self, cursor: Cursor, terminators: str, depth: int) -> ExpressionCell:
        """Evaluate from *cursor* up to (not past) one of *terminators*."""
        if depth > self.settings.max_depth:
            raise ExpressionDepthError(self.settings.max_depth)
        cells = self.split(cursor, terminators, depth)
        return self.merge(cells)

    def split(self, cursor: Cursor, terminators: str, depth: int) -> list[ExpressionCell]:
        cells: list[ExpressionCell] = []
        while True:
            token = self._collect_token(cursor, terminators)
            if cursor.peek() == "(":
                cursor.advance()
                negate = token.startswith("-")
                function = create_function(token[1:] if negate else token)
                value, expr_type, token_id = function.evaluate(self, cursor, depth + 1)
                if negate:
                    value = -value
                    token_id = "-" + token_id
            else:
                if not token:
                    found = cursor.peek() or "end of expression"
                    raise ExpressionSyntaxError(
                        f"Missing operand at position {cursor.pos + 1} (found {found!r}): "
                        f"{self.expand(cursor.text)}"
                    )
                value, expr_type, token_id = LiteralOrVariable(token).evaluate(self, cursor, depth)

            action = self._read_action(cursor, terminators)
            cells.append(ExpressionCell(
                value=value,
                token_id=token_id,
                action=action,
                expr_id=self.context.next_id(),
                depth=depth,
                expr_type=expr_type,
            ))
            if action is Operator.SENTINEL:
                return cells

    def parse_arguments(self, cursor: Cursor, depth: int) -> list[ExpressionCell]:
        """Evaluate a comma separated argument list and consume the closing ')'."""
        if cursor.peek() == ")":
            cursor.advance()
            return []
        arguments = []
        while True:
            arguments.append(self.split_and_merge(cursor, ",)", depth))
            char = cursor.peek()
            cursor.advance()
            if char == ")":
                return arguments

    def _collect_token(self, cursor: Cursor, terminators: str) -> str:
        start = cursor.pos
        while not cursor.at_end:
            char = cursor.peek()
            token = cursor.text[start:cursor.pos]
            if char == "-" and not token:
                cursor.advance()
            elif char in "+-" and _MANTISSA.fullmatch(token):
                cursor.advance()
            elif char in OPERATOR_CHARS or char in "(),":
                break
            elif char in terminators:
                break
            else:
                cursor.advance()
        return cursor.text[start:cursor.pos]

    def _read_action(self, cursor: Cursor, terminators: str) -> Operator:
        char = cursor.peek()
        if not char:
            if terminators:
                raise ExpressionSyntaxError(
                    f"Unexpected end of expression, expected one of {terminators!r}: "
                    f"{self.expand(cursor.text)}"
                )
            return Operator.SENTINEL
        if char in terminators:
            return Operator.SENTINEL
        pair = char + cursor.peek(1)
        if pair in _TWO_CHAR_OPERATORS:
            cursor.advance(2)
            return _TWO_CHAR_OPERATORS[pair]
        if char in _ONE_CHAR_OPERATORS:
            cursor.advance()
            return _ONE_CHAR_OPERATORS[char]
        raise ExpressionSyntaxError(
            f"Unexpected '{char}' at position {cursor.pos + 1}: {self.expand(cursor.text)}"
        )

    # -----------------------------------------------------------------------
    # Merge
    # -----------------------------------------------------------------------

    def merge(self, cells: list[ExpressionCell]) -> ExpressionCell:
        """Reduce *cells* to a single cell holding the result."""
        current = cells[0]
        index = [1]
        self._merge_list(current, index, cells, merge_one_only=False)
        return current

    def _merge_list(
        self,
        current: ExpressionCell,
        index: list[int],
        cells: list[ExpressionCell],
        merge_one_only: bool,
    ) -> None:
        while index[0] < len(cells):
            following = cells[index[0]]
            index[0] += 1
            while not can_merge(current, following):
                # Reduce the right side first, e.g. 2*3 in 1+2*3
                self._merge_list(following, index, cells, merge_one_only=True)
            self._merge_cells(current, following)
            if merge_one_only:
                return

    def _merge_cells(self, left: ExpressionCell, right: ExpressionCell) -> None:
        new_id = self.context.next_id()
        text = f"{left.token_id}{left.action.value}{right.token_id}"

        left_value, right_value = left.value, right.value
        if left.token_id.upper() == NODATA_TOKEN:
            left_value = nodata_constant(right_value)
        if right.token_id.upper() == NODATA_TOKEN:
            right_value = nodata_constant(left_value)

        target = target_extent([left_value, right_value], ExtentPolicy.FIRST, self.settings)
        left_value = reconcile(left_value, target, "left operand")
        right_value = reconcile(right_value, target, "right operand")

        result = left_value.apply(left.action.value, right_value)
        self.context.writer.emit(new_id, self.expand(text), result)

        left.value = result
        left.token_id = new_id
        left.expr_id = new_id
        left.action = right.action
        left.expr_type = ExpressionType.COMPLEX


def evaluate_expression(expression: str, bindings: VariableTable | None = None, settings=None):
    """Evaluate a single expression; returns ``(grid, ExpressionType)``."""
    context = EvaluationContext(settings) if settings is not None else EvaluationContext()
    return ExpressionParser(context).parse(expression, bindings)
