"""Expression vocabulary: provenance types and binary operators.

The engine never builds an expression tree.  These enums only describe
what kind of expression produced a grid and which operator joins two
operands in the split-and-merge cell list.
"""

from __future__ import annotations

from enum import Enum


class ExpressionType(str, Enum):
    """Provenance of an evaluated expression.

    Drives persistence: results of type Undefined, Constant or File are
    never written by the script interpreter.
    """

    UNDEFINED = "Undefined"
    CONSTANT = "Constant"
    FILE = "File"
    VARIABLE = "Variable"
    FUNCTION = "Function"
    IF_THEN_ELSE = "IfThenElse"
    ARITHMETIC = "Arithmetic"
    COMPLEX = "Complex"

    @property
    def is_persisted(self) -> bool:
        """Whether a result of this type already exists on disk (or needn't)."""
        return self in _PERSISTED_TYPES


_PERSISTED_TYPES = frozenset(
    {ExpressionType.UNDEFINED, ExpressionType.CONSTANT, ExpressionType.FILE}
)


class Operator(str, Enum):
    """Action following an operand in the cell list."""

    POWER = "^"
    MULTIPLY = "*"
    DIVIDE = "/"
    ADD = "+"
    SUBTRACT = "-"
    EQUAL = "=="
    NOT_EQUAL = "!="
    GREATER = ">"
    GREATER_EQUAL = ">="
    LESSER = "<"
    LESSER_EQUAL = "<="
    AND = "&&"
    OR = "||"
    SENTINEL = ";"

    @property
    def priority(self) -> int:
        return OPERATOR_PRIORITY[self]


# Logical operators share the sentinel's priority so that comparisons on
# both sides reduce before they are combined: 1>0 && 2>1 -> (1>0) && (2>1).
OPERATOR_PRIORITY: dict[Operator, int] = {
    Operator.POWER: 4,
    Operator.MULTIPLY: 3,
    Operator.DIVIDE: 3,
    Operator.ADD: 2,
    Operator.SUBTRACT: 2,
    Operator.EQUAL: 1,
    Operator.NOT_EQUAL: 1,
    Operator.GREATER: 1,
    Operator.GREATER_EQUAL: 1,
    Operator.LESSER: 1,
    Operator.LESSER_EQUAL: 1,
    Operator.AND: 0,
    Operator.OR: 0,
    Operator.SENTINEL: 0,
}

# Characters that start an operator
OPERATOR_CHARS = "^*/+-=!<>&|"
