"""Token resolution and the built-in expression functions.

Every construct the splitter meets is resolved by a ``ParserFunction``:
plain tokens by ``LiteralOrVariable``, parenthesised groups by
``Identity`` and ``name(...)`` calls by the class registered under that
name in ``PARSER_FUNCTIONS``.  A function consumes its own argument list
from the shared cursor, up to and including the closing parenthesis.
"""

from __future__ import annotations

import logging
import math
import re
from typing import TYPE_CHECKING

from idfexp.grid import ConstantGrid, DownscaleMethod, Grid, UpscaleMethod
from idfexp.model.expressions import ExpressionType

from ._errors import ArgumentTypeError, ExpressionSyntaxError, MissingFileError, QuietStop, ResolutionError
from ._extent import ExtentPolicy, clip_or_dummy, reconcile, target_extent

if TYPE_CHECKING:
    from ._parser import Cursor, ExpressionCell, ExpressionParser

logger = logging.getLogger(__name__)

NODATA_NAME = "NoData"
NODATA_VALUE = -9999.0

_NUMBER = re.compile(r"[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")

# Relative tolerance when comparing cellsizes
_CELLSIZE_TOLERANCE = 1e-6


def _is_nodata_argument(cell: ExpressionCell) -> bool:
    value = cell.value
    return cell.token_id.upper() == NODATA_NAME.upper() or (
        value.is_constant and value.is_nodata
    )


# ---------------------------------------------------------------------------
# Base classes
# ---------------------------------------------------------------------------

class ParserFunction:
    """Resolves one construct of an expression to a grid."""

    def evaluate(self, parser: ExpressionParser, cursor: Cursor, depth: int):
        """Return ``(grid, ExpressionType, token_id)`` and advance *cursor*."""
        raise NotImplementedError


class Identity(ParserFunction):
    """Parenthesised group: ``( expression )``."""

    def evaluate(self, parser, cursor, depth):
        cell = parser.split_and_merge(cursor, ")", depth)
        cursor.expect(")")
        return cell.value, cell.expr_type, cell.token_id


class LiteralOrVariable(ParserFunction):
    """Number, bound variable, ``NoData`` keyword or ``.idf`` file reference.

    A leading ``-`` on anything but a number negates the resolved grid.
    """

    def __init__(self, token: str) -> None:
        self.token = token

    def evaluate(self, parser, cursor, depth):
        token = self.token
        if _NUMBER.fullmatch(token):
            return ConstantGrid(float(token)), ExpressionType.CONSTANT, token

        negate = token.startswith("-")
        name = token[1:] if negate else token
        grid, expr_type, token_id = self._resolve(parser, name)
        if negate:
            grid = -grid
            token_id = "-" + token_id
        return grid, expr_type, token_id

    def _resolve(self, parser, name: str):
        settings = parser.settings
        binding = parser.expression.binding(name) if parser.expression else None
        if binding is not None:
            grid = binding.grid.ensure_loaded()
            _apply_nodata_policy(grid, settings)
            expr_type = ExpressionType.CONSTANT if grid.is_constant else ExpressionType.VARIABLE
            return grid, expr_type, binding.name

        if name.upper() == NODATA_NAME.upper():
            return ConstantGrid(NODATA_VALUE, NODATA_VALUE, NODATA_NAME), ExpressionType.CONSTANT, NODATA_NAME

        if name.lower().endswith(".idf"):
            path = settings.resolve_input(name)
            if not path.exists():
                if settings.quiet:
                    raise QuietStop(f"IDF-file does not exist: {path}")
                raise MissingFileError(path)
            grid = Grid.read(path).ensure_loaded()
            _apply_nodata_policy(grid, settings)
            return grid, ExpressionType.FILE, name

        raise ResolutionError(f"Unknown token '{parser.expand(name)}'")


def _apply_nodata_policy(grid, settings) -> None:
    if not settings.use_nodata_as_value or grid.is_constant:
        return
    if settings.nodata_value is not None:
        grid.nodata_calculation_value = settings.nodata_value
    else:
        grid.nodata_calculation_value = grid.nodata_value


class NamedFunction(ParserFunction):
    """``name(arg, ...)`` with a fixed range of argument counts."""

    name = ""
    min_args = 1
    max_args = 1
    expr_type = ExpressionType.FUNCTION

    def evaluate(self, parser, cursor, depth):
        arguments = parser.parse_arguments(cursor, depth)
        self.check_argument_count(arguments)
        result = self.compute(parser, arguments)
        expr_id = parser.context.next_id()
        text = f"{self.name}({','.join(a.token_id for a in arguments)})"
        parser.context.writer.emit(expr_id, parser.expand(text), result)
        return result, self.expr_type, expr_id

    def check_argument_count(self, arguments: list) -> None:
        count = len(arguments)
        if self.min_args <= count <= self.max_args:
            return
        if self.min_args == self.max_args:
            expected = str(self.min_args)
        else:
            expected = f"{self.min_args} to {self.max_args}"
        raise ExpressionSyntaxError(
            f"Function '{self.name}' expects {expected} argument(s), got {count}"
        )

    def compute(self, parser, arguments: list[ExpressionCell]):
        raise NotImplementedError

    def require_grid(self, cell: ExpressionCell, position: int, parser) -> Grid:
        if cell.value.is_constant:
            raise ArgumentTypeError(
                f"Argument {position} of '{self.name}' should be a grid, "
                f"constant found: {parser.expand(cell.token_id)}"
            )
        return cell.value

    def require_constant(self, cell: ExpressionCell, position: int, parser) -> float:
        if not cell.value.is_constant:
            raise ArgumentTypeError(
                f"Argument {position} of '{self.name}' should be a constant value, "
                f"grid found: {parser.expand(cell.token_id)}"
            )
        return cell.value.value


# ---------------------------------------------------------------------------
# Conditional and comparison functions
# ---------------------------------------------------------------------------

class IfThenElse(NamedFunction):
    """``if(condition, then, else)``: then where condition is nonzero.

    Cells where the condition grid is NoData take the else value.  The result
    takes the geometry and NoData value of the condition grid, or of the
    first grid among the other operands when the condition is constant.
    """

    name = "if"
    min_args = max_args = 3
    expr_type = ExpressionType.IF_THEN_ELSE

    def compute(self, parser, arguments):
        condition, then_cell, else_cell = arguments
        values = [condition.value, then_cell.value, else_cell.value]
        if all(v.is_constant for v in values):
            chosen = then_cell if condition.value.value != 0 else else_cell
            return chosen.value.copy()

        target = target_extent(values, ExtentPolicy.UNION, parser.settings)
        logger.debug("if-then-else extent: %s", target)
        cond = reconcile(condition.value, target, "condition grid")
        then_value = reconcile(then_cell.value, target, "then grid")
        else_value = reconcile(else_cell.value, target, "else grid")

        reference = next(g for g in (cond, then_value, else_value) if not g.is_constant)
        then_value = self._operand(then_cell, then_value, reference)
        else_value = self._operand(else_cell, else_value, reference)

        if else_value.is_constant:
            base = else_value.allocate(reference)
        elif else_value.same_geometry(reference):
            base = else_value
        else:
            base = else_value.sample_to(reference)
        base = base.with_nodata_value(reference.nodata_value)

        mask = cond.allocate(reference) if cond.is_constant else cond
        return base.replace_values(mask, then_value)

    @staticmethod
    def _operand(cell, value, reference):
        if value.is_constant and _is_nodata_argument(cell):
            nodata = reference.nodata_calculation_value
            if nodata is None:
                nodata = reference.nodata_value
            return ConstantGrid(nodata, reference.nodata_value)
        return value


class _Extremum(NamedFunction):
    min_args = max_args = 2
    # Operator selecting cells where the second operand wins
    replace_when = ""

    def compute(self, parser, arguments):
        first, second = arguments[0].value, arguments[1].value
        if first.is_constant and second.is_constant:
            return ConstantGrid(self.pick(first.value, second.value))
        if first.is_constant:
            first, second = second, first

        target = target_extent([first, second], ExtentPolicy.FIRST, parser.settings)
        first = reconcile(first, target, f"{self.name} grid 1")
        second = reconcile(second, target, f"{self.name} grid 2")
        mask = first.apply(self.replace_when, second)
        return first.replace_values(mask, second)

    def pick(self, a: float, b: float) -> float:
        raise NotImplementedError


class Min(_Extremum):
    name = "min"
    replace_when = ">"

    def pick(self, a, b):
        return min(a, b)


class Max(_Extremum):
    name = "max"
    replace_when = "<"

    def pick(self, a, b):
        return max(a, b)


# ---------------------------------------------------------------------------
# Value functions
# ---------------------------------------------------------------------------

class Round(NamedFunction):
    name = "round"
    min_args = max_args = 2

    def compute(self, parser, arguments):
        grid = self.require_grid(arguments[0], 1, parser)
        decimals = self.require_constant(arguments[1], 2, parser)
        return grid.round_values(int(decimals))


class RedefineNoData(NamedFunction):
    """``nd(grid, value|grid)``: change the NoData value of a grid.

    A grid second argument supplies its own NoData value.
    """

    name = "nd"
    min_args = max_args = 2

    def compute(self, parser, arguments):
        value = arguments[0].value
        new_nodata = arguments[1].value
        if new_nodata.is_constant:
            return value.with_nodata_value(new_nodata.value)
        return value.with_nodata_value(new_nodata.nodata_value)


class CellSize(NamedFunction):
    name = "cellsize"

    def compute(self, parser, arguments):
        grid = self.require_grid(arguments[0], 1, parser)
        return ConstantGrid(grid.x_cellsize)


# ---------------------------------------------------------------------------
# Extent functions
# ---------------------------------------------------------------------------

class Enlarge(NamedFunction):
    """``enlarge(grid, reference)``: grow to the extent of *reference*."""

    name = "enlarge"
    min_args = max_args = 2

    def compute(self, parser, arguments):
        value = arguments[0].value
        if value.is_constant:
            return value
        extent = self.require_grid(arguments[1], 2, parser).extent
        if value.extent.matches(extent):
            return value.copy()
        return value.enlarge(extent)


class Clip(NamedFunction):
    """``clip(grid, reference)``: shrink to the extent of *reference*."""

    name = "clip"
    min_args = max_args = 2

    def compute(self, parser, arguments):
        value = arguments[0].value
        if value.is_constant:
            return value
        extent = self.require_grid(arguments[1], 2, parser).extent
        if value.extent.matches(extent):
            return value.copy()
        return clip_or_dummy(value, extent)


class BoundingBox(NamedFunction):
    name = "bbox"

    def compute(self, parser, arguments):
        value = arguments[0].value
        if value.is_constant:
            return value
        return value.bounding_box()


class Scale(NamedFunction):
    """``scale(grid, cellsize[, method[, upscale_method]])``.

    With three arguments the method applies to whichever direction is
    taken; with four, argument 3 is the downscale method and argument 4
    the upscale method.  Defaults: Block for downscaling, Mean for
    upscaling.
    """

    name = "scale"
    min_args = 2
    max_args = 4

    def compute(self, parser, arguments):
        value = arguments[0].value
        if value.is_constant:
            return value

        target = arguments[1].value
        cellsize = target.value if target.is_constant else target.x_cellsize
        if not cellsize > 0 or math.isinf(cellsize):
            raise ArgumentTypeError(f"Invalid cellsize for '{self.name}': {cellsize}")
        methods = [
            int(self.require_constant(cell, position, parser))
            for position, cell in enumerate(arguments[2:], start=3)
        ]

        source = value.x_cellsize
        if math.isclose(cellsize, source, rel_tol=_CELLSIZE_TOLERANCE):
            return value.copy()
        if cellsize < source:
            method = methods[0] if methods else DownscaleMethod.BLOCK
            logger.debug("Downscaling %s from %g to %g", value.name, source, cellsize)
            return value.scale_down(cellsize, self._method(DownscaleMethod, method))
        if len(methods) == 2:
            method = methods[1]
        elif methods:
            method = methods[0]
        else:
            method = UpscaleMethod.MEAN
        logger.debug("Upscaling %s from %g to %g", value.name, source, cellsize)
        return value.scale_up(cellsize, self._method(UpscaleMethod, method))

    def _method(self, enum, index: int):
        try:
            return enum(index)
        except ValueError:
            valid = ", ".join(f"{m.value}={m.name.title()}" for m in enum)
            raise ArgumentTypeError(
                f"Invalid {enum.__name__} {index} for '{self.name}', valid: {valid}"
            ) from None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

PARSER_FUNCTIONS: dict[str, type[NamedFunction]] = {
    "if": IfThenElse,
    "min": Min,
    "max": Max,
    "round": Round,
    "enlarge": Enlarge,
    "clip": Clip,
    "scale": Scale,
    "bbox": BoundingBox,
    "cellsize": CellSize,
    "nd": RedefineNoData,
}


def create_function(name: str) -> ParserFunction:
    """Function for ``name(``; an empty name is a plain group."""
    if not name:
        return Identity()
    function_class = PARSER_FUNCTIONS.get(name.lower())
    if function_class is None:
        raise ResolutionError(f"Unknown function '{name}'")
    return function_class()
