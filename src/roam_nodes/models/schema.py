"""Data models for node retrieval and candidate display."""

import datetime
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


def unique_in_order(values: Iterable[str]) -> Tuple[str, ...]:
    """Drop duplicates while keeping first-seen order.

    Tags and aliases behave as sets, but a stable order keeps candidate
    emission and label rendering reproducible.
    """
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return tuple(result)


class Ref(BaseModel):
    """An external reference attached to a node (e.g. a citation key)."""

    type: str = Field(..., description="Reference type, e.g. 'cite' or 'https'")
    value: str = Field(..., description="Reference value")

    model_config = {"frozen": True}

    def __str__(self) -> str:
        """Return string representation of the reference."""
        return f"{self.type}:{self.value}"


class Node(BaseModel):
    """A single note heading with a stable identity.

    ``title`` holds the title variant this record was expanded for; every
    other field is shared by all records expanded from the same node.
    """

    id: str = Field(..., description="Stable node identifier")
    file: str = Field(..., description="Path of the containing file")
    file_title: Optional[str] = Field(
        default=None, description="Display title of the containing file"
    )
    point: int = Field(default=1, description="Offset of the heading in the file")
    level: int = Field(default=0, description="Outline depth (0 for file nodes)")
    olp: Tuple[str, ...] = Field(
        default=(), description="Outline path from the file root to the heading"
    )
    title: str = Field(..., description="Selected title variant")
    todo: Optional[str] = Field(default=None, description="TODO keyword")
    priority: Optional[str] = Field(default=None, description="Priority cookie")
    scheduled: Optional[str] = Field(default=None, description="Scheduled date")
    deadline: Optional[str] = Field(default=None, description="Deadline date")
    properties: Dict[str, str] = Field(
        default_factory=dict, description="Heading property drawer"
    )
    file_atime: Optional[datetime.datetime] = Field(
        default=None, description="Last access time of the containing file"
    )
    file_mtime: Optional[datetime.datetime] = Field(
        default=None, description="Last modification time of the containing file"
    )
    tags: Tuple[str, ...] = Field(default=(), description="Tags (no duplicates)")
    aliases: Tuple[str, ...] = Field(
        default=(), description="Alternate titles (no duplicates)"
    )
    refs: Tuple[Ref, ...] = Field(default=(), description="External references")

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("tags", "aliases")
    @classmethod
    def validate_unique(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """Collapse duplicate tags/aliases."""
        return unique_in_order(v)

    def title_variants(self) -> Tuple[str, ...]:
        """Primary title followed by aliases, without repeats."""
        return unique_in_order((self.title, *self.aliases))

    def with_title(self, title: str) -> "Node":
        """Return a copy of this node that carries a different title variant."""
        return self.model_copy(update={"title": title})


@dataclass(frozen=True)
class StyleSpan:
    """Presentation hint for a slice of a candidate label.

    Attributes:
        start: Index of the first styled character.
        end: Index one past the last styled character.
        face: Name of the style to apply (e.g. "roam-tag").
    """

    start: int
    end: int
    face: str


@dataclass(frozen=True)
class Candidate:
    """A display label paired with the node it was rendered from.

    The label is plain text; styling lives in ``styles`` so consumers that
    do not render faces can ignore it.
    """

    label: str
    node: Node
    styles: Tuple[StyleSpan, ...] = ()

    @property
    def node_id(self) -> str:
        """Identity of the underlying node."""
        return self.node.id
