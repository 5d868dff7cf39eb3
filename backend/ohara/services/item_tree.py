"""
Vault item hierarchy: tree building and reparent validation.

Items arrive from storage as a flat list with parent references. Everything
here works on that flat list through an id index (no nested structure is
mutated in place); nesting is only produced at the very end by build_tree.

Invariants kept by these helpers:
- the parent graph stays a forest (moves that would create a cycle are refused)
- only folders get children; files targeted by a drop redirect to their parent
- no item is ever dropped: dangling, file-parented and looping items surface as roots
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
from uuid import uuid4

from .models import (
    ForestIssue,
    ForestIssueCode,
    ForestReport,
    ItemType,
    MoveErrorCode,
    MoveResult,
    NotesItem,
)

logger = logging.getLogger(__name__)

COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


class ItemNotFoundError(KeyError):
    pass


class InvalidMoveError(ValueError):
    def __init__(self, result: MoveResult):
        super().__init__(result.message or (result.error.value if result.error else "invalid move"))
        self.result = result


class ItemIndex:
    """Id-indexed view over a flat item list; the first occurrence of an id wins."""

    def __init__(self, items: Iterable[NotesItem]):
        self.items: List[NotesItem] = list(items)
        self.by_id: Dict[str, NotesItem] = {}
        for item in self.items:
            self.by_id.setdefault(item.id, item)

    def __contains__(self, item_id: Optional[str]) -> bool:
        return item_id in self.by_id

    def get(self, item_id: Optional[str]) -> Optional[NotesItem]:
        if item_id is None:
            return None
        return self.by_id.get(item_id)

    def require(self, item_id: str) -> NotesItem:
        item = self.get(item_id)
        if item is None:
            raise ItemNotFoundError(f"Item {item_id} not found")
        return item

    def folder_parent(self, item: NotesItem) -> Optional[str]:
        """Parent id if it names an existing folder other than the item itself."""
        parent = self.get(item.parent_id)
        if parent is None or parent.id == item.id or not parent.is_folder:
            return None
        return parent.id

    def children_of(self) -> Dict[Optional[str], List[str]]:
        children: Dict[Optional[str], List[str]] = {}
        for item_id, item in self.by_id.items():
            children.setdefault(self.folder_parent(item), []).append(item_id)
        return children

    def ancestors(self, item_id: Optional[str]) -> List[str]:
        """Ids from item_id up to its root (inclusive), stopping at a loop."""
        chain: List[str] = []
        seen: Set[str] = set()
        current = item_id
        while current is not None and current not in seen:
            item = self.get(current)
            if item is None:
                break
            seen.add(current)
            chain.append(current)
            current = self.folder_parent(item)
        return chain


# ============================================================================
# Tree building
# ============================================================================


def _presentation_key(item: NotesItem) -> Tuple[int, str, str]:
    # Folders first, then name (matches the vault listing order)
    return (0 if item.is_folder else 1, item.name.casefold(), item.id)


def _effective_parents(index: ItemIndex) -> Dict[str, Optional[str]]:
    """Parent each indexed item hangs under; loops are broken by promoting one member."""
    parents = {item_id: index.folder_parent(item) for item_id, item in index.by_id.items()}
    resolved: Set[str] = set()

    for item_id in parents:
        path: List[str] = []
        on_path: Set[str] = set()
        current: Optional[str] = item_id
        while current is not None and current not in resolved:
            if current in on_path:
                logger.debug(f"Parent loop at item {current}; promoting it to root")
                parents[current] = None
                break
            on_path.add(current)
            path.append(current)
            current = parents[current]
        resolved.update(path)

    return parents


def build_tree(items: Iterable[NotesItem], sort: bool = True) -> List[NotesItem]:
    """
    Nest a flat item list into root items with populated `children`.

    Inputs are copied, never mutated. Items whose parent is missing, is a file,
    or sits in a parent loop become roots, so flatten(build_tree(items)) always
    has as many items as the input.
    """
    index = ItemIndex(items)
    if not index.items:
        return []

    parents = _effective_parents(index)
    nodes: Dict[str, NotesItem] = {}
    roots: List[NotesItem] = []

    for item in index.items:
        node = item.model_copy(update={"children": [] if item.is_folder else None})
        if index.by_id[item.id] is not item:
            # Duplicate id: nothing can reference it, so it stays a root
            roots.append(node)
            continue
        nodes[item.id] = node

    for item_id, node in nodes.items():
        parent_id = parents[item_id]
        if parent_id is None:
            if node.parent_id is not None:
                logger.debug(f"Promoting orphaned item {item_id} (parent {node.parent_id}) to root")
            roots.append(node)
        else:
            nodes[parent_id].children.append(node)

    if sort:
        roots.sort(key=_presentation_key)
        for node in nodes.values():
            if node.children:
                node.children.sort(key=_presentation_key)

    return roots


def flatten(tree: Iterable[NotesItem]) -> List[NotesItem]:
    """Depth-first, pre-order flat list of a tree, with `children` cleared."""
    flat: List[NotesItem] = []

    def visit(node: NotesItem) -> None:
        flat.append(node.model_copy(update={"children": None}))
        for child in node.children or []:
            visit(child)

    for root in tree:
        visit(root)
    return flat


# ============================================================================
# Moving
# ============================================================================


def _rejected(item_id: str, requested: Optional[str], code: MoveErrorCode, message: str) -> MoveResult:
    logger.debug(f"Rejected move of {item_id} to {requested}: {message}")
    return MoveResult(
        ok=False,
        item_id=item_id,
        requested_parent_id=requested,
        new_parent_id=None,
        error=code,
        message=message,
    )


def validate_move(
    item_id: str, new_parent_id: Optional[str], items: Iterable[NotesItem]
) -> MoveResult:
    """
    Check whether `item_id` may be reparented under `new_parent_id`.

    `None` means the vault root. Dropping onto a file means "become its
    sibling", so a file target resolves to that file's parent before the
    cycle check. Nothing is mutated; the caller persists an ok result.
    """
    index = items if isinstance(items, ItemIndex) else ItemIndex(items)

    if new_parent_id is not None and new_parent_id == item_id:
        return _rejected(item_id, new_parent_id, MoveErrorCode.self_move, "Cannot move an item into itself")

    if item_id not in index:
        return _rejected(item_id, new_parent_id, MoveErrorCode.item_not_found, f"Item {item_id} not found")

    target_id = new_parent_id
    if target_id is not None:
        target = index.get(target_id)
        if target is None:
            return _rejected(
                item_id, new_parent_id, MoveErrorCode.target_not_found, f"Target {target_id} not found"
            )
        if not target.is_folder:
            target_id = index.folder_parent(target)
            if target_id == item_id:
                return _rejected(
                    item_id, new_parent_id, MoveErrorCode.self_move, "Cannot move an item into itself"
                )

    if target_id is not None and item_id in index.ancestors(target_id):
        return _rejected(
            item_id, new_parent_id, MoveErrorCode.cycle, "Cannot move a folder into one of its descendants"
        )

    return MoveResult(ok=True, item_id=item_id, requested_parent_id=new_parent_id, new_parent_id=target_id)


def apply_move(
    item_id: str, new_parent_id: Optional[str], items: Iterable[NotesItem]
) -> List[NotesItem]:
    """
    Validate a move and return the flat list with only that item reparented.

    Raises:
        InvalidMoveError carrying the MoveResult when the move is refused.
    """
    items = list(items)
    result = validate_move(item_id, new_parent_id, items)
    if not result.ok:
        raise InvalidMoveError(result)

    moved = False
    updated: List[NotesItem] = []
    for item in items:
        if item.id == item_id and not moved:
            updated.append(item.model_copy(update={"parent_id": result.new_parent_id}))
            moved = True
        else:
            updated.append(item)
    return updated


# ============================================================================
# Subtrees, renames, colors
# ============================================================================


def descendant_ids(item_id: str, items: Iterable[NotesItem]) -> Set[str]:
    """Ids of everything below `item_id` (the item itself excluded)."""
    index = ItemIndex(items)
    index.require(item_id)
    children = index.children_of()

    found: Set[str] = set()
    stack = list(children.get(item_id, []))
    while stack:
        current = stack.pop()
        if current in found or current == item_id:
            continue
        found.add(current)
        stack.extend(children.get(current, []))
    return found


def remove_subtree(item_id: str, items: Iterable[NotesItem]) -> List[NotesItem]:
    """Flat list without the item and its descendants (cascading delete)."""
    items = list(items)
    doomed = descendant_ids(item_id, items) | {item_id}
    return [item for item in items if item.id not in doomed]


def ensure_markdown_name(name: str) -> str:
    return name if name.endswith(".md") else f"{name}.md"


def clean_item_name(name: Optional[str], item_type: ItemType) -> str:
    """Validate a display name; files always end in .md."""
    name = (name or "").strip()
    if not name:
        raise ValueError("Name is required")
    if "/" in name:
        raise ValueError("Name cannot contain '/'")
    return ensure_markdown_name(name) if item_type == ItemType.file else name


def _replace_item(items: List[NotesItem], item_id: str, **changes) -> List[NotesItem]:
    replaced = False
    updated: List[NotesItem] = []
    for item in items:
        if item.id == item_id and not replaced:
            updated.append(item.model_copy(update=changes))
            replaced = True
        else:
            updated.append(item)
    return updated


def rename_item(item_id: str, new_name: str, items: Iterable[NotesItem]) -> List[NotesItem]:
    items = list(items)
    item = ItemIndex(items).require(item_id)
    return _replace_item(items, item_id, name=clean_item_name(new_name, item.item_type))


def set_folder_color(item_id: str, color: Optional[str], items: Iterable[NotesItem]) -> List[NotesItem]:
    """Set (or clear with None) a folder's accent color."""
    items = list(items)
    item = ItemIndex(items).require(item_id)
    if not item.is_folder:
        raise ValueError("Only folders can have a color")
    if color is not None and not COLOR_RE.match(color):
        raise ValueError(f"Invalid color {color!r}; expected #rrggbb")
    return _replace_item(items, item_id, color=color)


def item_path(item_id: str, items: Iterable[NotesItem]) -> str:
    """Slash-joined names from the root down to the item, e.g. 'projects/ideas/todo.md'."""
    index = ItemIndex(items)
    index.require(item_id)
    names = [index.by_id[i].name for i in reversed(index.ancestors(item_id))]
    return "/".join(names)


# ============================================================================
# Folder import
# ============================================================================


def items_from_paths(
    entries: Iterable[Tuple[str, str]],
    vault_id: Optional[str] = None,
    parent_id: Optional[str] = None,
    id_factory: Callable[[], str] = lambda: str(uuid4()),
) -> List[NotesItem]:
    """
    Turn (relative_path, content) pairs from a folder upload into flat items.

    Intermediate folders are created once and reused; folders always come
    before their contents in the returned list, so it can be inserted in order.
    """
    items: List[NotesItem] = []
    folder_map: Dict[str, str] = {}

    for relative_path, content in entries:
        parts = [p for p in relative_path.replace("\\", "/").split("/") if p]
        if not parts:
            continue

        current_path = ""
        current_parent = parent_id
        for part in parts[:-1]:
            current_path = f"{current_path}/{part}".strip("/")
            if current_path not in folder_map:
                folder = NotesItem(
                    id=id_factory(),
                    vault_id=vault_id,
                    parent_id=current_parent,
                    name=part,
                    item_type=ItemType.folder,
                )
                folder_map[current_path] = folder.id
                items.append(folder)
            current_parent = folder_map[current_path]

        items.append(
            NotesItem(
                id=id_factory(),
                vault_id=vault_id,
                parent_id=current_parent,
                name=ensure_markdown_name(parts[-1]),
                item_type=ItemType.file,
                content=content or "",
            )
        )

    return items


def check_forest(items: Iterable[NotesItem]) -> ForestReport:
    """
    Report shape problems in a flat list before it is inserted (e.g. an import).

    build_tree tolerates all of these; this is for callers that want to refuse
    or warn instead.
    """
    index = ItemIndex(items)
    issues: List[ForestIssue] = []

    seen: Set[str] = set()
    for item in index.items:
        if item.id in seen:
            issues.append(ForestIssue(code=ForestIssueCode.duplicate_id, item_id=item.id, detail="Duplicate id"))
        seen.add(item.id)

    for item_id, item in index.by_id.items():
        if item.parent_id is None:
            continue
        parent = index.get(item.parent_id)
        if parent is None:
            issues.append(
                ForestIssue(
                    code=ForestIssueCode.dangling_parent,
                    item_id=item_id,
                    detail=f"Parent {item.parent_id} does not exist",
                )
            )
        elif not parent.is_folder:
            issues.append(
                ForestIssue(
                    code=ForestIssueCode.file_parent,
                    item_id=item_id,
                    detail=f"Parent {item.parent_id} is a file",
                )
            )

    resolved: Set[str] = set()
    for item_id in index.by_id:
        path: List[str] = []
        current: Optional[str] = item_id
        while current is not None and current not in resolved:
            if current in path:
                loop = path[path.index(current):]
                issues.append(
                    ForestIssue(
                        code=ForestIssueCode.cycle,
                        item_id=current,
                        detail="Parent loop: " + " -> ".join(loop + [current]),
                    )
                )
                break
            path.append(current)
            item = index.get(current)
            current = item.parent_id if item is not None and item.parent_id in index else None
        resolved.update(path)

    return ForestReport(
        item_count=len(index.items),
        root_count=sum(1 for item in index.items if item.parent_id is None),
        issues=issues,
    )
