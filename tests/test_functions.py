"""Tests for the built-in expression functions."""

import numpy as np
import pytest

from conftest import assert_values, evaluate, make_bindings, make_grid, value_of

from idfexp.evaluate import ArgumentTypeError, ExpressionSyntaxError, PARSER_FUNCTIONS
from idfexp.grid import DownscaleMethod, Grid, UpscaleMethod
from idfexp.model.expressions import ExpressionType
from idfexp.model.extent import Extent

ND = -9999.0


# ---------------------------------------------------------------------------
# if
# ---------------------------------------------------------------------------

class TestIf:
    def test_constant_condition_with_logic(self):
        assert value_of("if(1>0&&2>1,5,9)") == 5

    def test_constant_false(self):
        assert value_of("if(0,5,9)") == 9

    def test_grid_condition(self):
        bindings = make_bindings(A=make_grid([[1, -2, 3]]))
        grid, expr_type = evaluate("if(A>0,A,0)", bindings)
        assert expr_type == ExpressionType.IF_THEN_ELSE
        assert_values(grid, [[1, 0, 3]])

    def test_nodata_else(self):
        bindings = make_bindings(A=make_grid([[1, -2]]))
        grid, _ = evaluate("if(A>0,A,NoData)", bindings)
        assert_values(grid, [[1, ND]])

    def test_nodata_condition_takes_else(self):
        bindings = make_bindings(A=make_grid([[1, ND, 0]]))
        grid, _ = evaluate("if(A,10,20)", bindings)
        assert_values(grid, [[10, 20, 20]])

    def test_union_extent(self):
        a = make_grid([[1]], xll=0)
        b = make_grid([[2]], xll=1)
        grid, _ = evaluate("if(A>0,A,B)", make_bindings(A=a, B=b))
        assert grid.extent == Extent(xll=0, yll=0, xur=2, yur=1)
        assert_values(grid, [[1, 2]])

    def test_fixed_extent(self):
        a = make_grid([[1, 2, 3]])
        grid, _ = evaluate("if(A>1,A,0)", make_bindings(A=a),
                           extent=Extent(xll=1, yll=0, xur=3, yur=1))
        assert grid.extent == Extent(xll=1, yll=0, xur=3, yur=1)
        assert_values(grid, [[2, 3]])

    def test_constant_condition_with_grids(self):
        bindings = make_bindings(A=make_grid([[1, 2]]))
        grid, _ = evaluate("if(1,A*10,A)", bindings)
        assert_values(grid, [[10, 20]])

    def test_argument_count(self):
        with pytest.raises(ExpressionSyntaxError, match="expects 3 argument"):
            evaluate("if(1,2)")


# ---------------------------------------------------------------------------
# min / max
# ---------------------------------------------------------------------------

class TestMinMax:
    def test_constants(self):
        assert value_of("min(3,2)") == 2
        assert value_of("max(3,2)") == 3

    def test_grid_and_constant(self):
        bindings = make_bindings(A=make_grid([[1, 5]]))
        assert_values(evaluate("max(A,3)", bindings)[0], [[3, 5]])
        assert_values(evaluate("min(A,3)", bindings)[0], [[1, 3]])

    def test_constant_first_is_swapped(self):
        bindings = make_bindings(A=make_grid([[1, 5]], xll=10))
        grid, _ = evaluate("max(3,A)", bindings)
        assert grid.extent.xll == 10
        assert_values(grid, [[3, 5]])

    def test_max_equals_if(self):
        rng = np.random.default_rng(42)
        a = make_grid(rng.uniform(-5, 5, (4, 5)))
        b = make_grid(rng.uniform(-5, 5, (4, 5)))
        a.values[0, 0] = ND
        b.values[1, 1] = ND
        bindings = make_bindings(A=a, B=b)
        maximum, _ = evaluate("max(A,B)", bindings)
        conditional, _ = evaluate("if(A>B,A,B)", bindings)
        np.testing.assert_array_equal(maximum.values, conditional.values)

    def test_commutative(self):
        a = make_grid([[1, 5, 2]])
        b = make_grid([[4, 0, 2]])
        bindings = make_bindings(A=a, B=b)
        np.testing.assert_array_equal(
            evaluate("min(A,B)", bindings)[0].values,
            evaluate("min(B,A)", bindings)[0].values,
        )


# ---------------------------------------------------------------------------
# round / cellsize / nd / bbox
# ---------------------------------------------------------------------------

class TestValueFunctions:
    def test_round(self):
        bindings = make_bindings(A=make_grid([[1.234, 5.678]]))
        grid, _ = evaluate("round(A,1)", bindings)
        assert_values(grid, [[1.2, 5.7]])

    def test_round_requires_constant_decimals(self):
        bindings = make_bindings(A=make_grid([[1.5]]))
        with pytest.raises(ArgumentTypeError, match="Argument 2 of 'round'"):
            evaluate("round(A,A)", bindings)

    def test_round_requires_grid(self):
        with pytest.raises(ArgumentTypeError, match="Argument 1 of 'round'"):
            evaluate("round(1.5,0)")

    def test_cellsize(self):
        bindings = make_bindings(A=make_grid([[1]], cellsize=25))
        assert value_of("cellsize(A)", bindings) == 25

    def test_nd_constant(self):
        bindings = make_bindings(A=make_grid([[1, ND]]))
        grid, _ = evaluate("nd(A,-1)", bindings)
        assert grid.nodata_value == -1
        assert_values(grid, [[1, -1]])

    def test_nd_unchanged_returns_same_grid(self):
        a = make_grid([[1, ND]])
        grid, _ = evaluate("nd(A,-9999)", make_bindings(A=a))
        assert grid is a

    def test_nd_grid_supplies_nodata(self):
        a = make_grid([[1, ND], [3, 4]])
        b = make_grid([[0, -1], [0, 0]], nodata=-1)
        grid, _ = evaluate("nd(A,B)", make_bindings(A=a, B=b))
        assert grid.nodata_value == -1
        assert_values(grid, [[1, -1], [3, 4]])

    def test_nd_grid_with_same_nodata_returns_same_grid(self):
        a = make_grid([[1, ND]])
        b = make_grid([[0, 0]])
        grid, _ = evaluate("nd(A,B)", make_bindings(A=a, B=b))
        assert grid is a

    def test_bbox(self):
        bindings = make_bindings(A=make_grid([[ND, ND], [ND, 4]]))
        grid, _ = evaluate("bbox(A)", bindings)
        assert grid.extent == Extent(xll=1, yll=0, xur=2, yur=1)


# ---------------------------------------------------------------------------
# enlarge / clip
# ---------------------------------------------------------------------------

class TestExtentFunctions:
    def test_enlarge(self):
        a = make_grid([[1]])
        b = make_grid([[0, 0], [0, 0]])
        grid, _ = evaluate("enlarge(A,B)", make_bindings(A=a, B=b))
        assert grid.extent == b.extent
        assert_values(grid, [[ND, ND], [1, ND]])

    def test_clip(self):
        a = make_grid([[1, 2], [3, 4]])
        b = make_grid([[0]], xll=1, yll=1)
        grid, _ = evaluate("clip(A,B)", make_bindings(A=a, B=b))
        assert grid.extent == b.extent
        assert_values(grid, [[2]])

    def test_clip_equal_extent_is_copy(self):
        a = make_grid([[1, 2]])
        b = make_grid([[0, 0]])
        grid, _ = evaluate("clip(A,B)", make_bindings(A=a, B=b))
        assert grid is not a
        assert_values(grid, [[1, 2]])

    def test_clip_disjoint_gives_dummy(self):
        a = make_grid([[1]])
        b = make_grid([[0]], xll=10, yll=10)
        grid, _ = evaluate("clip(A,B)", make_bindings(A=a, B=b))
        assert (grid.nrows, grid.ncols) == (1, 1)
        assert_values(grid, [[1]])

    def test_clip_constant_passes_through(self):
        bindings = make_bindings(B=make_grid([[0]]))
        assert value_of("clip(5,B)", bindings) == 5

    def test_clip_to_constant_is_error(self):
        bindings = make_bindings(A=make_grid([[0]]))
        with pytest.raises(ArgumentTypeError, match="Argument 2 of 'clip'"):
            evaluate("clip(A,5)", bindings)


# ---------------------------------------------------------------------------
# scale
# ---------------------------------------------------------------------------

class TestScale:
    @pytest.fixture
    def calls(self, monkeypatch):
        recorded = []
        original_up, original_down = Grid.scale_up, Grid.scale_down

        def scale_up(self, cellsize, method=0):
            recorded.append(("up", cellsize, method))
            return original_up(self, cellsize, method)

        def scale_down(self, cellsize, method=0):
            recorded.append(("down", cellsize, method))
            return original_down(self, cellsize, method)

        monkeypatch.setattr(Grid, "scale_up", scale_up)
        monkeypatch.setattr(Grid, "scale_down", scale_down)
        return recorded

    def bindings(self):
        return make_bindings(G=make_grid([[1, 2], [3, 4]]))

    def test_upscale_default_mean(self, calls):
        grid, _ = evaluate("scale(G,2*cellsize(G))", self.bindings())
        assert calls == [("up", 2, UpscaleMethod.MEAN)]
        assert_values(grid, [[2.5]])

    def test_downscale_default_block(self, calls):
        grid, _ = evaluate("scale(G,0.5*cellsize(G))", self.bindings())
        assert calls == [("down", 0.5, DownscaleMethod.BLOCK)]
        assert grid.x_cellsize == 0.5
        assert (grid.nrows, grid.ncols) == (4, 4)

    def test_equal_cellsize_copies(self, calls):
        grid, _ = evaluate("scale(G,1)", self.bindings())
        assert calls == []
        assert_values(grid, [[1, 2], [3, 4]])

    def test_three_arguments_apply_to_direction(self, calls):
        evaluate("scale(G,2,6)", self.bindings())
        evaluate("scale(G,0.5,1)", self.bindings())
        assert calls == [("up", 2, UpscaleMethod.SUM), ("down", 0.5, DownscaleMethod.DIVIDE)]

    def test_four_arguments(self, calls):
        evaluate("scale(G,2,1,3)", self.bindings())
        assert calls == [("up", 2, UpscaleMethod.MAXIMUM)]

    def test_grid_cellsize_argument(self, calls):
        bindings = self.bindings()
        bindings.bind(make_bindings(H=make_grid([[0]], cellsize=2))["H"])
        evaluate("scale(G,H)", bindings)
        assert calls == [("up", 2, UpscaleMethod.MEAN)]

    def test_method_must_be_constant(self):
        with pytest.raises(ArgumentTypeError, match="Argument 3 of 'scale'"):
            evaluate("scale(G,2,G)", self.bindings())

    def test_invalid_method(self):
        with pytest.raises(ArgumentTypeError, match="Invalid UpscaleMethod 12"):
            evaluate("scale(G,2,12)", self.bindings())

    def test_argument_count(self):
        with pytest.raises(ExpressionSyntaxError, match="2 to 4"):
            evaluate("scale(G)", self.bindings())


class TestRegistry:
    def test_all_functions_registered(self):
        assert set(PARSER_FUNCTIONS) == {
            "if", "min", "max", "round", "enlarge", "clip", "scale", "bbox", "cellsize", "nd",
        }
