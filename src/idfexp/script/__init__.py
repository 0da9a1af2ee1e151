"""idfexp scripts: line-oriented assignment scripts over grid expressions.

Entry point::

    from idfexp.script import ScriptInterpreter

    interpreter = ScriptInterpreter(ExpressionSettings(output_path="results"))
    interpreter.run_file("model.ini")
    kd = interpreter.bindings["KD"].grid
"""

from __future__ import annotations

from ._interpreter import ScriptInterpreter
from ._loops import ForLoopFrame, count_files, expand_loops, loop_values
from ._reader import (
    expand_environment,
    parse_assignment,
    parse_statement,
    read_logical_lines,
    split_prefix,
)

__all__ = [
    "ForLoopFrame",
    "ScriptInterpreter",
    "count_files",
    "expand_environment",
    "expand_loops",
    "loop_values",
    "parse_assignment",
    "parse_statement",
    "read_logical_lines",
    "split_prefix",
]
