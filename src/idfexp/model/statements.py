"""Script statement models.

Each logical script line parses into exactly one statement.  ``kind`` is
the discriminator so statements can be serialised and dispatched on.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class _StatementBase(BaseModel):
    line_number: int = 0
    text: str = ""


class BlankLine(_StatementBase):
    kind: Literal["blank"] = "blank"


class CommentLine(_StatementBase):
    kind: Literal["comment"] = "comment"
    comment: str = ""


class Assignment(_StatementBase):
    """``name = expression``, where *name* may carry a subdirectory prefix."""

    kind: Literal["assignment"] = "assignment"
    name: str
    expression: str
    prefix: str | None = None


class ForHeader(_StatementBase):
    """``FOR var = start TO end`` with *end* a literal or ``count("glob")``."""

    kind: Literal["for"] = "for"
    loop_var: str
    start: int
    end: int | None = None
    count_pattern: str | None = None


class NextStatement(_StatementBase):
    kind: Literal["next"] = "next"
    loop_var: str | None = None


ScriptStatement = Annotated[
    Union[BlankLine, CommentLine, Assignment, ForHeader, NextStatement],
    Field(discriminator="kind"),
]
