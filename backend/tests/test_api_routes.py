from __future__ import annotations

import pytest

from ohara import create_app
from ohara.config import Config
from ohara.services.container import Services
from ohara.services.markdown import MarkdownRenderer


class _FakeMath:
    def render_math(self, latex, display_mode):  # noqa: ANN001 - test fake
        return f"<math-fake>{latex}</math-fake>"


def _items_payload():
    return [
        {"id": "F", "parent_id": None, "name": "Projects", "item_type": "folder"},
        {"id": "G", "parent_id": "F", "name": "Ideas", "item_type": "folder"},
        {"id": "A", "parent_id": "F", "name": "todo.md", "item_type": "file", "content": "- [ ] ship"},
        {"id": "K", "parent_id": None, "name": "Archive", "item_type": "folder"},
    ]


@pytest.fixture()
def app():
    services = Services(renderer=MarkdownRenderer(math_renderer=_FakeMath()), words_per_minute=200)
    app = create_app(testing=True, services=services)
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


# ============================================================================
# Markdown
# ============================================================================


def test_health(client):  # noqa: ANN001
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_render_returns_html_callouts_and_stats(client):  # noqa: ANN001
    resp = client.post(
        "/api/markdown/render",
        json={"markdown": "# Hi\n\n> [!warning] Heads up\n> This is risky."},
    )
    assert resp.status_code == 200
    payload = resp.get_json()

    assert "<h1" in payload["html"]
    assert payload["html"].count("__CALLOUT_0__") == 1
    assert payload["callouts"] == [
        {
            "kind": "warning",
            "title": "Heads up",
            "body_markdown": "This is risky.",
            "fold": None,
            "placeholder": "__CALLOUT_0__",
        }
    ]
    assert payload["stats"]["words"] == 10
    assert payload["stats"]["readingTime"] == "< 1 min read"


def test_render_uses_injected_math_renderer(client):  # noqa: ANN001
    resp = client.post("/api/markdown/render", json={"markdown": "$x^2$"})
    assert resp.status_code == 200
    assert "<math-fake>x^2</math-fake>" in resp.get_json()["html"]


def test_render_empty_body(client):  # noqa: ANN001
    resp = client.post("/api/markdown/render", json={})
    assert resp.status_code == 200
    payload = resp.get_json()
    assert payload["html"] == ""
    assert payload["callouts"] == []
    assert payload["stats"]["lines"] == 1


def test_render_rejects_non_string(client):  # noqa: ANN001
    resp = client.post("/api/markdown/render", json={"markdown": 42})
    assert resp.status_code == 400
    assert "error" in resp.get_json()


def test_render_rejects_oversized_documents(client, monkeypatch):  # noqa: ANN001
    monkeypatch.setattr(Config, "MAX_PREVIEW_CHARS", 10)
    resp = client.post("/api/markdown/render", json={"markdown": "x" * 11})
    assert resp.status_code == 413


def test_stats_endpoint(client):  # noqa: ANN001
    resp = client.post("/api/markdown/stats", json={"text": "one two three"})
    assert resp.status_code == 200
    assert resp.get_json() == {"words": 3, "characters": 13, "lines": 1, "readingTime": "< 1 min read"}


# ============================================================================
# Tree
# ============================================================================


def test_tree_nests_items(client):  # noqa: ANN001
    resp = client.post("/api/notes/tree", json={"items": _items_payload()})
    assert resp.status_code == 200
    tree = resp.get_json()["tree"]

    assert [node["name"] for node in tree] == ["Archive", "Projects"]
    projects = tree[1]
    assert [child["name"] for child in projects["children"]] == ["Ideas", "todo.md"]

    todo = projects["children"][1]
    assert "children" not in todo
    assert todo["content"] == "- [ ] ship"
    assert "content" not in projects


def test_tree_requires_items(client):  # noqa: ANN001
    resp = client.post("/api/notes/tree", json={})
    assert resp.status_code == 400


def test_tree_rejects_malformed_items(client):  # noqa: ANN001
    resp = client.post("/api/notes/tree", json={"items": [{"id": "X", "item_type": "folder"}]})
    assert resp.status_code == 400


def test_move_validate_ok(client):  # noqa: ANN001
    resp = client.post(
        "/api/notes/move/validate",
        json={"item_id": "A", "new_parent_id": "K", "items": _items_payload()},
    )
    assert resp.status_code == 200
    payload = resp.get_json()
    assert payload["ok"] is True
    assert payload["new_parent_id"] == "K"


def test_move_validate_cycle_is_conflict(client):  # noqa: ANN001
    resp = client.post(
        "/api/notes/move/validate",
        json={"item_id": "F", "new_parent_id": "G", "items": _items_payload()},
    )
    assert resp.status_code == 409
    payload = resp.get_json()
    assert payload["ok"] is False
    assert payload["error"] == "cycle"


def test_move_validate_requires_item_id(client):  # noqa: ANN001
    resp = client.post("/api/notes/move/validate", json={"items": _items_payload()})
    assert resp.status_code == 400


def test_forest_check(client):  # noqa: ANN001
    items = _items_payload() + [{"id": "Z", "parent_id": "gone", "name": "z.md", "item_type": "file"}]
    resp = client.post("/api/notes/forest/check", json={"items": items})
    assert resp.status_code == 200
    payload = resp.get_json()
    assert payload["ok"] is False
    assert payload["issues"][0]["code"] == "dangling_parent"
    assert payload["item_count"] == 5


# ============================================================================
# Request bodies
# ============================================================================


@pytest.mark.parametrize(
    "path",
    ["/api/markdown/render", "/api/markdown/stats", "/api/notes/tree", "/api/notes/move/validate", "/api/notes/forest/check"],
)
@pytest.mark.parametrize("body", [[1, 2], "text", 7])
def test_non_object_json_body_is_bad_request(client, path, body):  # noqa: ANN001
    resp = client.post(path, json=body)
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Request body must be a JSON object"}
