"""Evaluation context shared by every recursive parser call.

The context replaces process-wide state: it carries the run settings,
the expression counter owned by one interpreter, and the side channel for
intermediate results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from idfexp.model.metadata import Metadata
from idfexp.model.settings import ExpressionSettings

logger = logging.getLogger(__name__)

DEBUG_SUBDIR = "debug"


class ExpressionCounter:
    """Hands out ``Exp<n>`` ids; never reset during a run."""

    def __init__(self) -> None:
        self.value = 0

    def next_id(self) -> str:
        self.value += 1
        return f"Exp{self.value}"


class IntermediateResultWriter:
    """Logs sub-expressions and writes their grids to ``<output>/debug``."""

    def __init__(self, settings: ExpressionSettings) -> None:
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return self.settings.trace_intermediate

    def emit(self, expr_id: str, text: str, grid) -> None:
        if not self.enabled:
            return
        logger.info("Evaluating expression '%s = %s'", expr_id, text)
        if grid.is_constant:
            logger.info("  %s = %g", expr_id, grid.value)
            return
        path = self.settings.resolve_output_dir() / DEBUG_SUBDIR / f"{expr_id}.IDF"
        metadata = None
        if self.settings.add_metadata:
            metadata = Metadata(
                description=f"Intermediate result of expression evaluation: {text}",
                process_description=f"{expr_id} = {text}",
            )
        grid.write(path, metadata)
        logger.debug("  written to %s", path)


@dataclass
class EvaluationContext:
    """Read-mostly state threaded through the parser."""

    settings: ExpressionSettings = field(default_factory=ExpressionSettings)
    """Run configuration."""

    counter: ExpressionCounter = field(default_factory=ExpressionCounter)
    """Expression id counter, owned by the interpreter."""

    writer: IntermediateResultWriter | None = None
    """Debug side channel; created from ``settings`` when omitted."""

    def __post_init__(self) -> None:
        if self.writer is None:
            self.writer = IntermediateResultWriter(self.settings)

    def next_id(self) -> str:
        return self.counter.next_id()
