"""idfexp expression engine: split-and-merge evaluation of grid expressions.

Entry point::

    from idfexp.evaluate import evaluate_expression

    grid, expr_type = evaluate_expression("if(A > 0, A * 2, NoData)", bindings)
"""

from __future__ import annotations

from ._context import EvaluationContext, ExpressionCounter, IntermediateResultWriter
from ._errors import (
    ArgumentTypeError,
    ExpressionDepthError,
    ExpressionSyntaxError,
    IDFExpError,
    MissingFileError,
    QuietStop,
    ResolutionError,
    ScriptError,
)
from ._extent import ExtentPolicy, clip_or_dummy, reconcile, target_extent
from ._functions import PARSER_FUNCTIONS, create_function
from ._parser import Cursor, ExpressionCell, ExpressionParser, evaluate_expression
from ._preprocess import PreprocessedExpression, preprocess

__all__ = [
    "ArgumentTypeError",
    "Cursor",
    "EvaluationContext",
    "ExpressionCell",
    "ExpressionCounter",
    "ExpressionDepthError",
    "ExpressionParser",
    "ExpressionSyntaxError",
    "ExtentPolicy",
    "IDFExpError",
    "IntermediateResultWriter",
    "MissingFileError",
    "PARSER_FUNCTIONS",
    "PreprocessedExpression",
    "QuietStop",
    "ResolutionError",
    "ScriptError",
    "clip_or_dummy",
    "create_function",
    "evaluate_expression",
    "preprocess",
    "reconcile",
    "target_extent",
]
