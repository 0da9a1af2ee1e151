"""Script interpreter: executes an expression script line by line.

For every assignment the right-hand side is evaluated, computed results
are written to the output directory, the name is (re)bound and the
in-memory values of all bound grids are released.  A failing line aborts
the run with a ``ScriptError`` carrying the line number and text.
"""

from __future__ import annotations

import logging
from pathlib import Path

from idfexp.evaluate import (
    EvaluationContext,
    ExpressionParser,
    ExpressionSyntaxError,
    MissingFileError,
    QuietStop,
    ScriptError,
)
from idfexp.grid import ConstantGrid, Grid
from idfexp.model.expressions import ExpressionType
from idfexp.model.metadata import Metadata
from idfexp.model.settings import ExpressionSettings
from idfexp.model.statements import Assignment, BlankLine, CommentLine
from idfexp.model.variables import VariableBinding, VariableTable

from ._loops import expand_loops
from ._reader import expand_environment, parse_statement, read_logical_lines

logger = logging.getLogger(__name__)

SCRIPT_SUFFIX = ".ini"
RESULT_SUFFIX = ".IDF"
NODATA_NAME = "NoData"
NODATA_VALUE = -9999.0
PROCESS_DESCRIPTION = "Automatically generated with idfexp"

# Characters that make a right-hand side ending in .idf an expression;
# path separators, drive colons and dashes are part of a filename.
_EXPRESSION_CHARS = "(),*+^=!<>&|"


class ScriptInterpreter:
    """Runs expression scripts against one set of variable bindings.

    Parameters
    ----------
    settings : ExpressionSettings
        Paths, flags and evaluation options for this run.
    environ : dict[str, str] | None
        Environment for ``%NAME%`` expansion; defaults to ``os.environ``.
    """

    def __init__(self, settings: ExpressionSettings | None = None, environ=None) -> None:
        self.settings = settings or ExpressionSettings()
        self.environ = environ
        self.context = EvaluationContext(self.settings)
        self.parser = ExpressionParser(self.context)
        self.bindings = VariableTable()
        self.source: str = ""
        self.bind_constant(NODATA_NAME, ConstantGrid(NODATA_VALUE, NODATA_VALUE, NODATA_NAME))

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def run_file(self, path: str | Path) -> int:
        """Execute the script in *path*; returns the process exit code."""
        path = Path(path)
        if path.suffix.lower() != SCRIPT_SUFFIX:
            raise ExpressionSyntaxError(
                f"Only {SCRIPT_SUFFIX} script files are supported, got: {path.name}"
            )
        if not path.exists():
            raise FileNotFoundError(f"Script file does not exist: {path}")
        text = path.read_text(encoding="utf-8-sig")
        return self.run_script(text, source=str(path))

    def run_script(self, text: str, source: str | None = None) -> int:
        """Execute script *text*; returns 0 on success or quiet stop.

        Raises
        ------
        ScriptError
            When any line fails; the cause is chained.
        """
        self.source = source or ""
        try:
            lines = expand_loops(read_logical_lines(text), self.settings.base_path)
            lines = [(n, expand_environment(t, self.environ)) for n, t in lines]
            if self.settings.debug and source:
                self._write_expanded_script(lines, Path(source))
            for line_number, line in lines:
                self.execute_line(line_number, line)
        except QuietStop as exc:
            logger.info("Stopping quietly: %s", exc)
            return 0
        logger.info("Finished processing script")
        return 0

    def execute_line(self, line_number: int, line: str) -> VariableBinding | None:
        try:
            statement = parse_statement(line_number, line)
            if isinstance(statement, BlankLine):
                return None
            if isinstance(statement, CommentLine):
                if self.settings.verbose or self.settings.debug:
                    logger.info("Remark: %s", statement.comment)
                return None
            if not isinstance(statement, Assignment):
                raise ExpressionSyntaxError(f"Unexpected statement: {line.strip()}")
            logger.info("Evaluating expression at line %d: '%s' ...", line_number, line.strip())
            return self.execute_assignment(statement)
        except QuietStop:
            raise
        except ScriptError:
            raise
        except Exception as exc:
            raise ScriptError(line_number, line.strip(), exc) from exc

    def execute_assignment(self, statement: Assignment) -> VariableBinding:
        grid, expr_type = self.evaluate(statement.expression)
        if self.bindings.owns_grid(grid):
            grid = grid.copy(statement.name)

        metadata = None
        if not expr_type.is_persisted:
            path, metadata = self._write_result(statement, grid)
            grid.path = path
            grid.name = statement.name

        binding = self.bindings.bind(VariableBinding(
            name=statement.name,
            grid=grid,
            expression_type=expr_type,
            prefix=statement.prefix,
            metadata=metadata,
            is_persisted=True,
        ))
        self.bindings.release_all()
        return binding

    def evaluate(self, expression: str):
        """Evaluate a right-hand side; returns ``(grid, ExpressionType)``."""
        if self._is_bare_filename(expression):
            return self._load_file(expression), ExpressionType.FILE
        return self.parser.parse(expression, self.bindings)

    def bind_constant(self, name: str, grid: ConstantGrid) -> VariableBinding:
        return self.bindings.bind(VariableBinding(
            name=name,
            grid=grid,
            expression_type=ExpressionType.CONSTANT,
            is_persisted=True,
        ))

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _is_bare_filename(self, expression: str) -> bool:
        if not expression.lower().endswith(".idf"):
            return False
        if self.settings.resolve_input(expression).exists():
            return True
        return not any(char in _EXPRESSION_CHARS for char in expression)

    def _load_file(self, filename: str) -> Grid:
        path = self.settings.resolve_input(filename)
        if not path.exists():
            if self.settings.quiet:
                raise QuietStop(f"IDF-file not found: {filename}")
            raise MissingFileError(path)
        return Grid.read(path)

    def _output_path(self, statement: Assignment) -> Path:
        directory = self.settings.resolve_output_dir()
        if statement.prefix:
            prefix = Path(statement.prefix)
            directory = prefix if prefix.is_absolute() else directory / prefix
        return directory / f"{statement.name}{RESULT_SUFFIX}"

    def _write_result(self, statement: Assignment, grid: Grid) -> tuple[Path, Metadata | None]:
        path = self._output_path(statement)
        metadata = None
        if self.settings.add_metadata:
            metadata = Metadata(
                description=f"Expression evaluation using IDF files: {statement.expression}",
                process_description=PROCESS_DESCRIPTION,
                source=self.source,
            )
        output = grid
        if self.settings.round_results:
            output = grid.round_values(self.settings.decimal_count)
        output.write(path, metadata)
        logger.info("Expression file has been written to: %s", path.name)
        return path, metadata

    def _write_expanded_script(self, lines: list[tuple[int, str]], source: Path) -> Path:
        directory = self.settings.resolve_output_dir()
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{source.stem}_expanded{SCRIPT_SUFFIX}"
        path.write_text("\n".join(text for _, text in lines) + "\n", encoding="utf-8")
        logger.info("Script with expanded environment variables written to: %s", path)
        return path
