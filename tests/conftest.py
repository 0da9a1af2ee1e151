"""Shared test helpers for the idfexp test suite."""

import textwrap

import numpy as np

from idfexp.evaluate import EvaluationContext, ExpressionParser
from idfexp.grid import ConstantGrid, Grid
from idfexp.model.expressions import ExpressionType
from idfexp.model.settings import ExpressionSettings
from idfexp.model.variables import VariableBinding, VariableTable


def make_grid(values, xll=0.0, yll=0.0, cellsize=1.0, nodata=-9999.0, name=None) -> Grid:
    """Grid from a nested list, top row first."""
    return Grid.from_array(values, xll=xll, yll=yll, cellsize=cellsize, nodata_value=nodata, name=name)


def make_bindings(**grids) -> VariableTable:
    """Variable table from keyword arguments; numbers become constant grids."""
    table = VariableTable()
    for name, value in grids.items():
        if isinstance(value, (int, float)):
            table.bind(VariableBinding(name=name, grid=ConstantGrid(value),
                                       expression_type=ExpressionType.CONSTANT))
        else:
            table.bind(VariableBinding(name=name, grid=value,
                                       expression_type=ExpressionType.VARIABLE))
    return table


def make_parser(**settings) -> ExpressionParser:
    return ExpressionParser(EvaluationContext(ExpressionSettings(**settings)))


def evaluate(text, bindings=None, **settings):
    """Evaluate an expression; returns ``(grid, ExpressionType)``."""
    return make_parser(**settings).parse(text, bindings)


def value_of(text, bindings=None, **settings) -> float:
    """Evaluate an expression that must produce a constant."""
    grid, _ = evaluate(text, bindings, **settings)
    assert grid.is_constant, f"{text!r} did not evaluate to a constant"
    return grid.value


def write_script(directory, source, name="script.ini"):
    """Write a dedented script file and return its path."""
    path = directory / name
    path.write_text(textwrap.dedent(source).lstrip("\n"), encoding="utf-8")
    return path


def write_idf(path, values, **kwargs) -> Grid:
    """Write a grid with *values* to *path* and return it re-read lazily."""
    make_grid(values, **kwargs).write(path)
    return Grid.read(path)


def assert_values(grid, expected):
    np.testing.assert_allclose(grid.values, np.asarray(expected, dtype=np.float32), rtol=1e-6)
