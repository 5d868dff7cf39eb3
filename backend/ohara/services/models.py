"""
Data models for the notes core.

Uses Pydantic for validation and serialization.
"""

from datetime import datetime
from enum import Enum
from typing import Iterator, List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field


class CalloutKind(str, Enum):
    """Obsidian-style admonition kinds"""
    note = "note"
    info = "info"
    tip = "tip"
    success = "success"
    question = "question"
    warning = "warning"
    danger = "danger"
    bug = "bug"
    example = "example"
    quote = "quote"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "CalloutKind":
        """Case-insensitive lookup; unknown kinds fall back to `note`."""
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.note


class Callout(BaseModel):
    """Callout block extracted from markdown"""
    kind: CalloutKind = CalloutKind.note
    title: str
    body_markdown: str = ""
    fold: Optional[Literal["+", "-"]] = Field(
        None, description="Obsidian fold marker: '+' expanded, '-' collapsed"
    )
    placeholder: str = Field(..., description="Token standing in for the callout in the HTML")


class RenderResult(BaseModel):
    """Rendered HTML plus the callouts cut out of it"""
    html: str = ""
    callouts: List[Callout] = Field(default_factory=list)

    def segments(self) -> Iterator[Tuple[str, Union[str, Callout]]]:
        """
        Split the HTML on callout placeholders.

        Yields ("html", fragment) and ("callout", Callout) pairs in document
        order, which is how a consumer interleaves rich callout components
        with the plain HTML around them. Empty fragments are skipped.
        """
        rest = self.html
        for callout in self.callouts:
            before, sep, after = rest.partition(callout.placeholder)
            if not sep:
                continue
            if before:
                yield "html", before
            yield "callout", callout
            rest = after
        if rest:
            yield "html", rest


class RenderStats(BaseModel):
    """Word/character/line counts for the editor status bar"""
    model_config = ConfigDict(populate_by_name=True)

    words: int = Field(default=0, ge=0)
    characters: int = Field(default=0, ge=0)
    lines: int = Field(default=1, ge=0)
    reading_time: str = Field(default="< 1 min read", alias="readingTime")


class ItemType(str, Enum):
    file = "file"
    folder = "folder"


class NotesItem(BaseModel):
    """File or folder inside a vault"""
    id: str
    vault_id: Optional[str] = None
    parent_id: Optional[str] = None
    name: str
    item_type: ItemType
    content: Optional[str] = Field(None, description="Only present for files")
    color: Optional[str] = Field(None, description="Folder accent color (#rrggbb)")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    children: Optional[List['NotesItem']] = Field(
        None, description="Populated by the tree builder, folders only"
    )

    @property
    def is_folder(self) -> bool:
        return self.item_type == ItemType.folder


class MoveErrorCode(str, Enum):
    self_move = "self_move"
    cycle = "cycle"
    item_not_found = "item_not_found"
    target_not_found = "target_not_found"


class MoveResult(BaseModel):
    """Outcome of a reparent validation"""
    ok: bool
    item_id: str
    requested_parent_id: Optional[str] = None
    new_parent_id: Optional[str] = Field(
        None, description="Effective parent after drop-on-file redirection"
    )
    error: Optional[MoveErrorCode] = None
    message: Optional[str] = None


class ForestIssueCode(str, Enum):
    duplicate_id = "duplicate_id"
    dangling_parent = "dangling_parent"
    file_parent = "file_parent"
    cycle = "cycle"


class ForestIssue(BaseModel):
    code: ForestIssueCode
    item_id: str
    detail: str


class ForestReport(BaseModel):
    """Shape check of a flat item list (e.g. an imported vault)"""
    item_count: int = Field(default=0, ge=0)
    root_count: int = Field(default=0, ge=0)
    issues: List[ForestIssue] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


# Update forward references for recursive models
NotesItem.model_rebuild()
