"""Provenance metadata written beside result grids."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel


class Metadata(BaseModel):
    """Describes how a result grid was produced.

    Serialised as a small ``key: value`` text file with the ``.MET``
    extension next to the grid file.
    """

    description: str = ""
    process_description: str = ""
    source: str = ""
    producer: str = "idfexp"

    def to_text(self) -> str:
        lines = [
            f"Description: {self.description}",
            f"Process: {self.process_description}",
            f"Source: {self.source}",
            f"Producer: {self.producer}",
        ]
        return "\n".join(lines) + "\n"

    def write(self, grid_path: str | Path) -> Path:
        """Write the metadata file for *grid_path* and return its path."""
        met_path = Path(grid_path).with_suffix(".MET")
        met_path.write_text(self.to_text(), encoding="utf-8")
        return met_path
