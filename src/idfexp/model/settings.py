"""Run configuration for expression evaluation.

One ``ExpressionSettings`` instance is created per run and shared,
read-only, by every recursive parser call through the evaluation context.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from .extent import Extent

DEFAULT_MAX_DEPTH = 100


class ExpressionSettings(BaseModel):
    """Options that influence parsing, evaluation and result output."""

    base_path: Path | None = None
    """Directory against which relative ``.idf`` references resolve."""

    output_path: Path | None = None
    """Directory for result grids; falls back to ``base_path``."""

    extent: Extent | None = None
    """Fixed extent every non-constant operand is aligned to."""

    use_nodata_as_value: bool = False
    nodata_value: float | None = None
    """Value substituted for NoData cells; None means each grid's own NoData value."""

    debug: bool = False
    write_intermediate: bool = False
    verbose: bool = False
    quiet: bool = False
    add_metadata: bool = False

    round_results: bool = False
    decimal_count: int = -1

    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1)

    @model_validator(mode="after")
    def _check_rounding(self) -> ExpressionSettings:
        if self.round_results and self.decimal_count < 0:
            raise ValueError("round_results requires a non-negative decimal_count")
        return self

    @property
    def trace_intermediate(self) -> bool:
        """Whether sub-expression results go to the debug side channel."""
        return self.debug or self.write_intermediate

    def resolve_input(self, filename: str | Path) -> Path:
        path = Path(filename)
        if not path.is_absolute() and self.base_path is not None:
            path = self.base_path / path
        return path

    def resolve_output_dir(self) -> Path:
        if self.output_path is not None:
            return self.output_path
        if self.base_path is not None:
            return self.base_path
        return Path.cwd()
