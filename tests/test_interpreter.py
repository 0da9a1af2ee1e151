"""End-to-end tests for the script interpreter."""

import logging

import pytest

from conftest import assert_values, write_idf, write_script

from idfexp.evaluate import ExpressionSyntaxError, MissingFileError, ResolutionError, ScriptError
from idfexp.grid import Grid
from idfexp.model.expressions import ExpressionType
from idfexp.model.settings import ExpressionSettings
from idfexp.script import ScriptInterpreter

ND = -9999.0


def run(source, tmp_path, environ=None, **settings):
    """Run *source* with ``tmp_path`` as base directory; returns the interpreter."""
    settings.setdefault("base_path", tmp_path)
    interpreter = ScriptInterpreter(ExpressionSettings(**settings), environ=environ)
    interpreter.run_script(source)
    return interpreter


# ---------------------------------------------------------------------------
# Constants and bindings
# ---------------------------------------------------------------------------

class TestConstants:
    def test_constant_script_writes_nothing(self, tmp_path):
        interpreter = run("A = 1\nB = 2\nC = A+B*3", tmp_path)
        binding = interpreter.bindings["C"]
        assert binding.grid.value == 7
        assert binding.expression_type == ExpressionType.CONSTANT
        assert list(tmp_path.iterdir()) == []

    def test_rebinding_replaces(self, tmp_path):
        interpreter = run("A = 1\nA = A + 1", tmp_path)
        assert interpreter.bindings["a"].grid.value == 2
        # NoData and A
        assert len(interpreter.bindings) == 2

    def test_names_are_case_insensitive(self, tmp_path):
        interpreter = run("a = 1\nA = 2\nb = a + 1", tmp_path)
        assert interpreter.bindings["B"].grid.value == 3
        assert len(interpreter.bindings) == 3

    def test_nodata_is_predefined(self):
        interpreter = ScriptInterpreter()
        assert interpreter.bindings["NODATA"].grid.is_nodata

    def test_environment_expansion(self, tmp_path):
        interpreter = run("A = %FACTOR% * 2", tmp_path, environ={"FACTOR": "3"})
        assert interpreter.bindings["A"].grid.value == 6

    def test_comments_and_continuation(self, tmp_path, caplog):
        source = "REM start\nA = 1 + _\n    2\n// end"
        with caplog.at_level(logging.INFO):
            interpreter = run(source, tmp_path, verbose=True)
        assert interpreter.bindings["A"].grid.value == 3
        assert "Remark: start" in caplog.text

    def test_loop_script(self, tmp_path):
        source = "FOR i = 1 TO 3\nA%i% = %i% * 10\nNEXT\nS = A1 + A2 + A3"
        interpreter = run(source, tmp_path)
        assert interpreter.bindings["S"].grid.value == 60


# ---------------------------------------------------------------------------
# Grid results
# ---------------------------------------------------------------------------

class TestGridResults:
    def test_result_written_as_idf(self, tmp_path):
        write_idf(tmp_path / "K.idf", [[1, 2]])
        interpreter = run("KD = K.idf * 10", tmp_path)
        assert_values(Grid.read(tmp_path / "KD.IDF"), [[10, 20]])
        assert interpreter.bindings["KD"].expression_type == ExpressionType.COMPLEX

    def test_memory_released_and_reloaded(self, tmp_path):
        write_idf(tmp_path / "K.idf", [[1.5, 2.5]])
        interpreter = run("KD = K.idf * 2", tmp_path)
        grid = interpreter.bindings["KD"].grid
        assert not grid.is_loaded
        assert_values(grid, [[3, 5]])

    def test_file_assignment_is_not_rewritten(self, tmp_path):
        write_idf(tmp_path / "K.idf", [[1, 2]])
        interpreter = run("A = K.idf", tmp_path)
        assert interpreter.bindings["A"].expression_type == ExpressionType.FILE
        assert not (tmp_path / "A.IDF").exists()

    def test_file_in_subdirectory(self, tmp_path):
        write_idf(tmp_path / "sub-dir" / "K.idf", [[1, 2]])
        interpreter = run("A = sub-dir/K.idf", tmp_path)
        assert interpreter.bindings["A"].expression_type == ExpressionType.FILE
        assert_values(interpreter.bindings["A"].grid, [[1, 2]])

    def test_variable_assignment_copies(self, tmp_path):
        write_idf(tmp_path / "K.idf", [[1, 2]])
        interpreter = run("A = K.idf\nB = A", tmp_path)
        assert interpreter.bindings["B"].grid is not interpreter.bindings["A"].grid
        assert_values(Grid.read(tmp_path / "B.IDF"), [[1, 2]])

    def test_variables_chain(self, tmp_path):
        write_idf(tmp_path / "K.idf", [[1, 2]])
        write_idf(tmp_path / "D.idf", [[10, 10]])
        run("KD = K.idf * D.idf\nT = KD + 1", tmp_path)
        assert_values(Grid.read(tmp_path / "T.IDF"), [[11, 21]])

    def test_nodata_keyword(self, tmp_path):
        write_idf(tmp_path / "K.idf", [[1, 2]])
        run("A = K.idf\nB = if(A>1,A,NoData)", tmp_path)
        assert_values(Grid.read(tmp_path / "B.IDF"), [[ND, 2]])

    def test_output_path(self, tmp_path):
        write_idf(tmp_path / "K.idf", [[1]])
        run("A = K.idf + 1", tmp_path, output_path=tmp_path / "out")
        assert (tmp_path / "out" / "A.IDF").exists()

    def test_prefix_subdirectory(self, tmp_path):
        write_idf(tmp_path / "K.idf", [[1]])
        run("results/A = K.idf + 1", tmp_path)
        assert (tmp_path / "results" / "A.IDF").exists()

    def test_metadata(self, tmp_path):
        write_idf(tmp_path / "K.idf", [[1]])
        run("A = K.idf + 1", tmp_path, add_metadata=True)
        met = (tmp_path / "A.MET").read_text()
        assert "Expression evaluation using IDF files: K.idf + 1" in met

    def test_rounding(self, tmp_path):
        write_idf(tmp_path / "K.idf", [[1.26, 2.34]])
        run("R = K.idf * 1", tmp_path, round_results=True, decimal_count=1)
        assert_values(Grid.read(tmp_path / "R.IDF"), [[1.3, 2.3]])


# ---------------------------------------------------------------------------
# Script files
# ---------------------------------------------------------------------------

class TestScriptFiles:
    def test_run_file(self, tmp_path):
        path = write_script(tmp_path, """
            A = 2
            B = A ^ 3
        """)
        interpreter = ScriptInterpreter(ExpressionSettings(base_path=tmp_path))
        assert interpreter.run_file(path) == 0
        assert interpreter.bindings["B"].grid.value == 8

    def test_only_ini_files(self, tmp_path):
        path = write_script(tmp_path, "A = 1", name="script.txt")
        with pytest.raises(ExpressionSyntaxError, match="Only .ini"):
            ScriptInterpreter().run_file(path)

    def test_missing_script(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ScriptInterpreter().run_file(tmp_path / "missing.ini")

    def test_debug_writes_expanded_script(self, tmp_path):
        path = write_script(tmp_path, """
            FOR i = 1 TO 2
            A%i% = %i%
            NEXT
        """)
        interpreter = ScriptInterpreter(ExpressionSettings(base_path=tmp_path, debug=True))
        interpreter.run_file(path)
        expanded = (tmp_path / "script_expanded.ini").read_text()
        assert expanded == "A1 = 1\nA2 = 2\n"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestErrors:
    def test_error_carries_line_number(self, tmp_path):
        with pytest.raises(ScriptError, match="Error in line 3") as excinfo:
            run("A = 1\n\nB = foo + 1", tmp_path)
        assert excinfo.value.line_number == 3
        assert excinfo.value.line == "B = foo + 1"
        assert isinstance(excinfo.value.__cause__, ResolutionError)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ScriptError) as excinfo:
            run("A = missing.idf", tmp_path)
        assert isinstance(excinfo.value.__cause__, MissingFileError)

    def test_missing_file_in_subdirectory(self, tmp_path):
        with pytest.raises(ScriptError) as excinfo:
            run("X = sub-dir/top.idf", tmp_path)
        assert isinstance(excinfo.value.__cause__, MissingFileError)

    def test_quiet_stop_on_missing_file_in_subdirectory(self, tmp_path):
        interpreter = ScriptInterpreter(ExpressionSettings(base_path=tmp_path, quiet=True))
        assert interpreter.run_script("X = data/top.idf\n") == 0
        assert "X" not in interpreter.bindings

    def test_quiet_stop(self, tmp_path):
        interpreter = ScriptInterpreter(ExpressionSettings(base_path=tmp_path, quiet=True))
        assert interpreter.run_script("A = 1\nB = missing.idf\nC = 3") == 0
        assert "A" in interpreter.bindings
        assert "C" not in interpreter.bindings

    def test_statement_without_assignment(self, tmp_path):
        with pytest.raises(ScriptError, match="assignment expected"):
            run("A + 1", tmp_path)
