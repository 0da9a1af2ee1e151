"""Tests for extent reconciliation of operands."""

import logging

import pytest

from conftest import assert_values, evaluate, make_bindings, make_grid

from idfexp.evaluate import ExtentPolicy, clip_or_dummy, reconcile, target_extent
from idfexp.grid import ConstantGrid, Grid
from idfexp.model.extent import Extent
from idfexp.model.settings import ExpressionSettings

ND = -9999.0


def ext(xll, yll, xur, yur):
    return Extent(xll=xll, yll=yll, xur=xur, yur=yur)


@pytest.fixture
def no_resize(monkeypatch):
    """Fail the test if any grid is clipped or enlarged."""
    def fail(self, extent):
        raise AssertionError(f"unexpected resize of {self.name} to {extent}")

    monkeypatch.setattr(Grid, "clip", fail)
    monkeypatch.setattr(Grid, "enlarge", fail)


# ---------------------------------------------------------------------------
# target_extent
# ---------------------------------------------------------------------------

class TestTargetExtent:
    def test_first_non_constant(self):
        a = make_grid([[1]], xll=5)
        b = make_grid([[1]], xll=0)
        target = target_extent([ConstantGrid(1), a, b], ExtentPolicy.FIRST, ExpressionSettings())
        assert target == a.extent

    def test_union(self):
        a = make_grid([[1]], xll=0)
        b = make_grid([[1]], xll=3, yll=2)
        target = target_extent([a, ConstantGrid(1), b], ExtentPolicy.UNION, ExpressionSettings())
        assert target == ext(0, 0, 4, 3)

    def test_fixed_extent_wins(self):
        fixed = ext(0, 0, 10, 10)
        target = target_extent([make_grid([[1]])], ExtentPolicy.FIRST, ExpressionSettings(extent=fixed))
        assert target == fixed

    def test_all_constant(self):
        assert target_extent([ConstantGrid(1)], ExtentPolicy.UNION, ExpressionSettings()) is None


# ---------------------------------------------------------------------------
# reconcile
# ---------------------------------------------------------------------------

class TestReconcile:
    def test_already_at_target_is_untouched(self, no_resize):
        g = make_grid([[1, 2], [3, 4]])
        assert reconcile(g, g.extent) is g

    def test_constant_is_untouched(self, no_resize):
        c = ConstantGrid(3)
        assert reconcile(c, ext(0, 0, 1, 1)) is c

    def test_no_target(self, no_resize):
        g = make_grid([[1]])
        assert reconcile(g, None) is g

    def test_enlarge_only(self):
        g = make_grid([[1]])
        result = reconcile(g, ext(0, 0, 2, 1))
        assert result.extent == ext(0, 0, 2, 1)
        assert_values(result, [[1, ND]])

    def test_clip_only(self):
        g = make_grid([[1, 2]])
        result = reconcile(g, ext(1, 0, 2, 1))
        assert result.extent == ext(1, 0, 2, 1)
        assert_values(result, [[2]])

    def test_enlarge_then_clip(self):
        g = make_grid([[1, 2]])
        result = reconcile(g, ext(1, 0, 3, 1))
        assert result.extent == ext(1, 0, 3, 1)
        assert_values(result, [[2, ND]])

    def test_idempotent(self):
        g = make_grid([[1, 2]])
        target = ext(1, 0, 3, 1)
        once = reconcile(g, target)
        assert reconcile(once, target) is once

    def test_binary_operation_on_equal_extents_does_not_resize(self, no_resize):
        bindings = make_bindings(A=make_grid([[1, 2]]), B=make_grid([[3, 4]]))
        grid, _ = evaluate("A+B", bindings)
        assert_values(grid, [[4, 6]])

    def test_arithmetic_uses_first_operand_extent(self):
        a = make_grid([[1, 2]])
        b = make_grid([[10, 20, 30]], xll=-1)
        grid, _ = evaluate("A+B", make_bindings(A=a, B=b))
        assert grid.extent == a.extent
        assert_values(grid, [[21, 32]])

    def test_fixed_extent_applies_to_both(self):
        a = make_grid([[1, 2]])
        b = make_grid([[10, 20]], xll=1)
        grid, _ = evaluate("A+B", make_bindings(A=a, B=b), extent=ext(0, 0, 3, 1))
        assert grid.extent == ext(0, 0, 3, 1)
        assert_values(grid, [[ND, 12, ND]])


# ---------------------------------------------------------------------------
# clip_or_dummy
# ---------------------------------------------------------------------------

class TestClipOrDummy:
    def test_regular_clip(self):
        result = clip_or_dummy(make_grid([[1, 2]]), ext(0, 0, 1, 1))
        assert_values(result, [[1]])

    def test_degenerate_extent_gives_dummy(self, caplog):
        g = make_grid([[5, 6]], cellsize=2)
        with caplog.at_level(logging.WARNING):
            result = clip_or_dummy(g, ext(1, 0, 1, 2))
        assert result.extent == ext(1, 0, 3, 2)
        assert_values(result, [[1]])
        assert "dummy grid" in caplog.text
