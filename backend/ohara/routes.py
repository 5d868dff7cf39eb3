"""
REST API routes for the notes core.

Organized into logical groups:
- Markdown: Live-preview rendering and editor stats
- Tree: Vault item tree building, move validation, import checks

Every endpoint is a pure transformation of the request body; persistence,
auth and CRUD live elsewhere.
"""

from typing import Any, Dict, List, Optional

from flask import Blueprint, request, jsonify
from pydantic import ValidationError

from .config import Config
from .services.container import get_services
from .services.item_tree import ItemIndex, build_tree, check_forest, validate_move
from .services.models import NotesItem
from .services.stats import compute_stats

bp = Blueprint("api", __name__)


def _json_error(message: str, status: int = 400):
    return jsonify({"error": message}), status


def _item_json(item: NotesItem) -> Dict[str, Any]:
    """Serialize an item, leaving out `children` on files and `content` on folders."""
    data = item.model_dump(mode="json")
    if item.children is None:
        data.pop("children")
    else:
        data["children"] = [_item_json(child) for child in item.children]
    if item.content is None:
        data.pop("content")
    return data


def _request_data() -> Optional[Dict[str, Any]]:
    """JSON object body, {} when absent, None when the body is some other JSON value."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


def _parse_items(data: Dict[str, Any]) -> List[NotesItem]:
    raw_items = data.get("items")
    if raw_items is None:
        raise ValueError("Body field 'items' is required")
    if not isinstance(raw_items, list):
        raise ValueError("Body field 'items' must be a list")
    return [NotesItem.model_validate(raw) for raw in raw_items]


@bp.get("/health")
def health():
    return jsonify({"status": "ok"})


# ============================================================================
# MARKDOWN ENDPOINTS
# ============================================================================


@bp.post("/markdown/render")
def render_markdown():
    """
    Render markdown for the live preview.

    Body:
        JSON: {"markdown": str}

    Returns:
        JSON: {
            "html": str,
            "callouts": [{"kind", "title", "body_markdown", "fold", "placeholder"}],
            "stats": {"words", "characters", "lines", "readingTime"}
        }
    """
    svc = get_services()
    data = _request_data()
    if data is None:
        return _json_error("Request body must be a JSON object")

    markdown = data.get("markdown")
    if markdown is not None and not isinstance(markdown, str):
        return _json_error("Body field 'markdown' must be a string")
    if markdown and len(markdown) > Config.MAX_PREVIEW_CHARS:
        return _json_error("Document too large to preview", 413)

    try:
        result = svc.renderer.render(markdown)
        stats = compute_stats(markdown, svc.words_per_minute)

        return jsonify(
            {
                "html": result.html,
                "callouts": [c.model_dump(mode="json") for c in result.callouts],
                "stats": stats.model_dump(by_alias=True),
            }
        )

    except Exception as e:
        return jsonify({"error": str(e)}), 500


@bp.post("/markdown/stats")
def markdown_stats():
    """
    Word count and reading time for raw text.

    Body:
        JSON: {"text": str}
    """
    svc = get_services()
    data = _request_data()
    if data is None:
        return _json_error("Request body must be a JSON object")

    text = data.get("text")
    if text is not None and not isinstance(text, str):
        return _json_error("Body field 'text' must be a string")

    return jsonify(compute_stats(text, svc.words_per_minute).model_dump(by_alias=True))


# ============================================================================
# TREE ENDPOINTS
# ============================================================================


@bp.post("/notes/tree")
def notes_tree():
    """
    Nest a flat vault item list for the sidebar.

    Body:
        JSON: {"items": [NotesItem, ...]}

    Returns:
        JSON: {"tree": [NotesItem with children, ...]}
    """
    data = _request_data()
    if data is None:
        return _json_error("Request body must be a JSON object")

    try:
        items = _parse_items(data)
    except (ValueError, ValidationError) as e:
        return _json_error(str(e))

    try:
        tree = build_tree(items)
        return jsonify({"tree": [_item_json(node) for node in tree]})

    except Exception as e:
        return jsonify({"error": str(e)}), 500


@bp.post("/notes/move/validate")
def validate_item_move():
    """
    Check a drag-and-drop reparent before it is persisted.

    Body:
        JSON: {"item_id": str, "new_parent_id": str | null, "items": [NotesItem, ...]}

    Returns:
        JSON: MoveResult (200 when allowed, 409 when refused)
    """
    data = _request_data()
    if data is None:
        return _json_error("Request body must be a JSON object")

    item_id = data.get("item_id")
    if not item_id or not isinstance(item_id, str):
        return _json_error("Body field 'item_id' is required")
    new_parent_id = data.get("new_parent_id")
    if new_parent_id is not None and not isinstance(new_parent_id, str):
        return _json_error("Body field 'new_parent_id' must be a string or null")

    try:
        items = _parse_items(data)
    except (ValueError, ValidationError) as e:
        return _json_error(str(e))

    result = validate_move(item_id, new_parent_id, ItemIndex(items))
    return jsonify(result.model_dump(mode="json")), (200 if result.ok else 409)


@bp.post("/notes/forest/check")
def check_item_forest():
    """
    Validate an imported flat item list (duplicate ids, dangling parents, loops).

    Body:
        JSON: {"items": [NotesItem, ...]}
    """
    data = _request_data()
    if data is None:
        return _json_error("Request body must be a JSON object")

    try:
        items = _parse_items(data)
    except (ValueError, ValidationError) as e:
        return _json_error(str(e))

    report = check_forest(items)
    return jsonify({"ok": report.ok, **report.model_dump(mode="json")})
