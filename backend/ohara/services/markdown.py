"""
Markdown -> HTML renderer for the notes editor live preview.

Source text is scanned line by line into blocks (fences, callouts, math,
headings, lists, quotes, tables, paragraphs). Each block is rendered on its
own and inline formatting only ever runs inside a block's text spans, so
HTML emitted by one rule is never re-read as markdown by another.

Callouts are not rendered inline: each one is replaced by a
`__CALLOUT_<n>__` token and returned next to the HTML, so the caller can
splice in a rich component at exactly that spot (see RenderResult.segments).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from markupsafe import escape
from pydantic import BaseModel

from .math_renderer import MathRenderer, render_math_safe
from .models import Callout, CalloutKind, RenderResult

logger = logging.getLogger(__name__)


class RendererOptions(BaseModel):
    """Feature switches for the single renderer implementation"""
    tables: bool = True
    math: bool = True
    callouts: bool = True
    mermaid: bool = True
    task_lists: bool = True
    group_lists: bool = True


CALLOUT_PLACEHOLDER = "__CALLOUT_{index}__"
# Placeholder-shaped text coming from the document or a math engine
CALLOUT_TOKEN_RE = re.compile(r"__(CALLOUT_\d+__)")

# ============================================================================
# Block patterns
# ============================================================================

FENCE_OPEN_RE = re.compile(r"^\s*```\s*([\w+#.-]+)?\s*$")
FENCE_CLOSE_RE = re.compile(r"^\s*```\s*$")
CALLOUT_RE = re.compile(r"^> \[!(\w+)\]([+-]?)(.*)$")
QUOTE_CONTINUATION_RE = re.compile(r"^>(?: (.*))?$")
HEADING_RE = re.compile(r"^(#{1,6}) (.*)$")
HR_RE = re.compile(r"^---\s*$")
TASK_RE = re.compile(r"^\s*[-*+] \[([ xX])\] (.+)$")
BULLET_RE = re.compile(r"^\s*[-*+] (.+)$")
ORDERED_RE = re.compile(r"^\s*(\d+)\. (.+)$")
QUOTE_RE = re.compile(r"^> ?(.*)$")
TABLE_ROW_RE = re.compile(r"^\s*\|(.+)\|\s*$")
TABLE_SEPARATOR_RE = re.compile(r"^\s*\|?[\s:|-]*-[\s:|-]*\|?\s*$")

# ============================================================================
# Inline patterns
# ============================================================================

INLINE_CODE_RE = re.compile(r"`([^`]+)`")
INLINE_MATH_RE = re.compile(r"\$(?!\s)([^$\n]+?)(?<!\s)\$(?!\d)")
IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)\s]+)\)")
LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
STRIKE_RE = re.compile(r"~~(?!\s)(.+?)(?<!\s)~~")
BOLD_ITALIC_RE = re.compile(r"\*\*\*(?!\s)(.+?)(?<!\s)\*\*\*")
BOLD_RE = re.compile(r"\*\*(?!\s)(.+?)(?<!\s)\*\*")
ITALIC_RE = re.compile(r"\*(?!\s)(.+?)(?<!\s)\*")

# Protected fragments are parked behind NUL-delimited tokens; NUL in the source is replaced up front.
SENTINEL = "\x00"
SENTINEL_RE = re.compile(r"\x00(\d+)\x00")

UNSAFE_URL_SCHEMES = ("javascript:", "vbscript:", "data:")

# ============================================================================
# Styling hooks
# ============================================================================

HEADING_CLASSES = {
    1: "text-3xl font-bold mt-6 mb-4 text-gray-900 dark:text-gray-100 border-b-2 border-gray-200 dark:border-gray-700 pb-2",
    2: "text-2xl font-bold mt-6 mb-3 text-blue-600 dark:text-blue-400",
    3: "text-xl font-bold mt-5 mb-2 text-gray-900 dark:text-gray-100 border-b border-gray-200 dark:border-gray-700 pb-1",
    4: "text-lg font-bold mt-4 mb-2 text-gray-800 dark:text-gray-200",
    5: "text-base font-bold mt-3 mb-1 text-gray-800 dark:text-gray-200",
    6: "text-sm font-bold mt-2 mb-1 text-gray-700 dark:text-gray-300",
}
PARAGRAPH_CLASS = "my-3 text-gray-800 dark:text-gray-200 leading-relaxed"
CODE_BLOCK_CLASS = "code-block bg-gray-900 text-gray-100 p-4 rounded-lg my-4 overflow-x-auto text-sm leading-relaxed"
INLINE_CODE_CLASS = "bg-gray-200 dark:bg-gray-700 px-1.5 py-0.5 rounded text-sm font-mono text-pink-600 dark:text-pink-400"
LINK_CLASS = "text-blue-600 dark:text-blue-400 underline hover:text-blue-500 transition-colors"
BLOCKQUOTE_CLASS = "border-l-4 border-purple-400 dark:border-purple-600 pl-4 italic text-gray-600 dark:text-gray-400 my-3 bg-purple-50/30 dark:bg-purple-900/10 py-1 rounded-r"
HR_CLASS = "my-6 border-t-2 border-gray-200 dark:border-gray-700"
LIST_CLASSES = {
    "bullet": ("ul", "list-disc list-inside my-4 space-y-1", "ml-4 my-0.5 list-disc list-inside"),
    "ordered": ("ol", "list-decimal list-inside my-4 space-y-1", "ml-4 my-0.5 list-decimal list-inside"),
    "task": ("ul", "task-list my-4 space-y-1", "task-item ml-4 my-0.5 flex items-start gap-2"),
}
TABLE_WRAPPER_CLASS = "table-wrapper overflow-x-auto my-4"
TABLE_CLASS = "w-full border border-gray-200 dark:border-gray-700 rounded-lg overflow-hidden text-sm"
TABLE_HEADER_CELL_CLASS = "px-3 py-2 text-left font-semibold bg-gray-50 dark:bg-gray-800"
TABLE_CELL_CLASS = "px-3 py-2 border-t border-gray-200 dark:border-gray-700"

MERMAID_TEMPLATE = (
    '<div class="mermaid-placeholder bg-blue-50 dark:bg-blue-900/20 border-l-4 border-blue-500 rounded-r-lg p-4 my-6">'
    '<div class="font-semibold text-blue-700 dark:text-blue-300 mb-2 text-sm">Mermaid Diagram</div>'
    '<pre class="bg-white dark:bg-gray-800 p-3 rounded text-sm overflow-x-auto"><code>{code}</code></pre>'
    '<p class="text-xs text-blue-500 dark:text-blue-400 mt-2">Paste into mermaid.live to render</p>'
    "</div>"
)


def neutralize_placeholders(html: str) -> str:
    """Turn `__CALLOUT_<n>__` look-alikes into `&#95;_CALLOUT_<n>__` so only real callouts split the HTML."""
    return CALLOUT_TOKEN_RE.sub(r"&#95;_\1", html)


def escape_html(text: str) -> str:
    """Escape &, <, >, " and ' for safe insertion into HTML."""
    return neutralize_placeholders(str(escape(text)))


def safe_url(url: str) -> str:
    """Neutralise script-capable URL schemes; the result still needs escaping."""
    url = url.strip()
    compact = re.sub(r"[\s\x00-\x1f]", "", url).lower()
    if compact.startswith(UNSAFE_URL_SCHEMES):
        return "#"
    return url


@dataclass
class Block:
    kind: str
    text: str = ""
    level: int = 0
    lang: str = ""
    checked: bool = False
    number: int = 1
    rows: List[str] = field(default_factory=list)
    callout: Optional[Callout] = None


class _RenderPass:
    """Per-call state: callouts found so far and parked inline fragments."""

    def __init__(self, options: RendererOptions, math_renderer: Optional[MathRenderer]):
        self.options = options
        self.math_renderer = math_renderer
        self.callouts: List[Callout] = []
        self.fragments: List[str] = []

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan(self, text: str) -> List[Block]:
        lines = text.split("\n")
        blocks: List[Block] = []
        i = 0
        n = len(lines)

        while i < n:
            line = lines[i]

            fence = FENCE_OPEN_RE.match(line)
            if fence:
                lang = fence.group(1) or ""
                body = []
                i += 1
                while i < n and not FENCE_CLOSE_RE.match(lines[i]):
                    body.append(lines[i])
                    i += 1
                i += 1  # closing fence; an unterminated fence runs to the end
                code = "\n".join(body).strip()
                if self.options.mermaid and lang.lower() == "mermaid":
                    blocks.append(Block("mermaid", text=code))
                else:
                    blocks.append(Block("code", text=code, lang=lang or "plaintext"))
                continue

            if self.options.math and line.strip().startswith("$$"):
                found = self._scan_math_block(lines, i)
                if found is not None:
                    latex, i = found
                    blocks.append(Block("math", text=latex))
                    continue

            if self.options.callouts:
                match = CALLOUT_RE.match(line)
                if match:
                    body = []
                    i += 1
                    while i < n:
                        cont = QUOTE_CONTINUATION_RE.match(lines[i])
                        if not cont:
                            break
                        body.append(cont.group(1) or "")
                        i += 1
                    blocks.append(Block("callout", callout=self._make_callout(match, body)))
                    continue

            match = HEADING_RE.match(line)
            if match:
                blocks.append(Block("heading", text=match.group(2).strip(), level=len(match.group(1))))
                i += 1
                continue

            if HR_RE.match(line):
                blocks.append(Block("hr"))
                i += 1
                continue

            if self.options.task_lists:
                match = TASK_RE.match(line)
                if match:
                    blocks.append(Block("task", text=match.group(2), checked=match.group(1) in "xX"))
                    i += 1
                    continue

            match = BULLET_RE.match(line)
            if match:
                blocks.append(Block("bullet", text=match.group(1)))
                i += 1
                continue

            match = ORDERED_RE.match(line)
            if match:
                blocks.append(Block("ordered", text=match.group(2), number=int(match.group(1))))
                i += 1
                continue

            match = QUOTE_RE.match(line)
            if match:
                blocks.append(Block("quote", text=match.group(1)))
                i += 1
                continue

            if self.options.tables and TABLE_ROW_RE.match(line):
                rows = []
                while i < n and TABLE_ROW_RE.match(lines[i]):
                    rows.append(lines[i])
                    i += 1
                blocks.append(Block("table", rows=rows))
                continue

            if not line.strip():
                blocks.append(Block("blank"))
            else:
                blocks.append(Block("text", text=line))
            i += 1

        return blocks

    @staticmethod
    def _scan_math_block(lines: List[str], start: int):
        """Return (latex, next_index) for a $$ block, or None when it never closes."""
        first = lines[start].strip()[2:]
        if first.endswith("$$"):
            latex = first[:-2].strip()
            return (latex, start + 1) if latex else None

        body = [first]
        for j in range(start + 1, len(lines)):
            current = lines[j].rstrip()
            if current.endswith("$$"):
                body.append(current[:-2])
                latex = "\n".join(body).strip()
                return (latex, j + 1) if latex else None
            body.append(current)
        return None

    def _make_callout(self, match: re.Match, body: List[str]) -> Callout:
        raw_kind, fold, title = match.group(1), match.group(2), match.group(3).strip()
        # Blank lines inside the body separate paragraphs; only the edges are trimmed
        while body and not body[0].strip():
            body.pop(0)
        while body and not body[-1].strip():
            body.pop()
        callout = Callout(
            kind=CalloutKind.parse(raw_kind),
            title=title or raw_kind.capitalize(),
            body_markdown="\n".join(body),
            fold=fold or None,
            placeholder=CALLOUT_PLACEHOLDER.format(index=len(self.callouts)),
        )
        self.callouts.append(callout)
        return callout

    # ------------------------------------------------------------------
    # Block rendering
    # ------------------------------------------------------------------

    def render_blocks(self, blocks: List[Block]) -> str:
        out: List[str] = []
        i = 0
        n = len(blocks)

        while i < n:
            block = blocks[i]
            kind = block.kind

            if kind == "blank":
                i += 1
                continue

            if kind in ("text", "quote"):
                j = i
                while j < n and blocks[j].kind == kind:
                    j += 1
                lines = "<br/>".join(self.inline(b.text) for b in blocks[i:j])
                if kind == "text":
                    out.append(f'<p class="{PARAGRAPH_CLASS}">{lines}</p>')
                else:
                    out.append(f'<blockquote class="{BLOCKQUOTE_CLASS}">{lines}</blockquote>')
                i = j
                continue

            if kind in LIST_CLASSES:
                j = i
                while j < n and blocks[j].kind == kind:
                    j += 1
                out.append(self._render_list(kind, blocks[i:j]))
                i = j
                continue

            if kind == "code":
                lang = escape_html(block.lang)
                out.append(
                    f'<pre class="{CODE_BLOCK_CLASS}"><code class="language-{lang}">'
                    f"{escape_html(block.text)}</code></pre>"
                )
            elif kind == "mermaid":
                out.append(MERMAID_TEMPLATE.format(code=escape_html(block.text)))
            elif kind == "math":
                rendered = self._math(block.text, True)
                out.append(f'<div class="math-display my-6 overflow-x-auto flex justify-center">{rendered}</div>')
            elif kind == "callout":
                out.append(block.callout.placeholder)
            elif kind == "heading":
                level = block.level
                out.append(f'<h{level} class="{HEADING_CLASSES[level]}">{self.inline(block.text)}</h{level}>')
            elif kind == "hr":
                out.append(f'<hr class="{HR_CLASS}" />')
            elif kind == "table":
                out.append(self._render_table(block.rows))
            i += 1

        return "\n".join(out)

    def _render_list(self, kind: str, items: List[Block]) -> str:
        tag, list_class, item_class = LIST_CLASSES[kind]
        rows = [f'<li class="{item_class}">{self._render_list_body(kind, item)}</li>' for item in items]
        if not self.options.group_lists:
            return "\n".join(rows)
        start = ""
        if kind == "ordered" and items[0].number != 1:
            start = f' start="{items[0].number}"'
        return f'<{tag} class="{list_class}"{start}>' + "".join(rows) + f"</{tag}>"

    def _render_list_body(self, kind: str, item: Block) -> str:
        text = self.inline(item.text)
        if kind != "task":
            return text
        if item.checked:
            return (
                '<input type="checkbox" checked disabled class="rounded mt-1" />'
                f'<span class="line-through text-gray-500">{text}</span>'
            )
        return f'<input type="checkbox" disabled class="rounded mt-1" /><span>{text}</span>'

    def _render_table(self, rows: List[str]) -> str:
        header: Optional[List[str]] = None
        body: List[List[str]] = []

        for row in rows:
            if TABLE_SEPARATOR_RE.match(row):
                # The separator promotes the row above it to a header
                if header is None and len(body) == 1:
                    header = body.pop()
                continue
            body.append(self._split_cells(row))

        parts = [f'<div class="{TABLE_WRAPPER_CLASS}"><table class="{TABLE_CLASS}">']
        if header is not None:
            cells = "".join(f'<th class="{TABLE_HEADER_CELL_CLASS}">{self.inline(c)}</th>' for c in header)
            parts.append(f"<thead><tr>{cells}</tr></thead>")
        parts.append("<tbody>")
        for cells in body:
            parts.append(
                "<tr>" + "".join(f'<td class="{TABLE_CELL_CLASS}">{self.inline(c)}</td>' for c in cells) + "</tr>"
            )
        parts.append("</tbody></table></div>")
        return "".join(parts)

    @staticmethod
    def _split_cells(row: str) -> List[str]:
        inner = row.strip()[1:-1]
        return [cell.strip() for cell in inner.split("|")]

    # ------------------------------------------------------------------
    # Inline rendering
    # ------------------------------------------------------------------

    def _park(self, html: str) -> str:
        self.fragments.append(html)
        return f"{SENTINEL}{len(self.fragments) - 1}{SENTINEL}"

    def inline(self, text: str) -> str:
        """Render one text span: protect code/math/links, escape, then emphasis."""
        text = INLINE_CODE_RE.sub(
            lambda m: self._park(f'<code class="{INLINE_CODE_CLASS}">{escape_html(m.group(1))}</code>'),
            text,
        )
        if self.options.math:
            text = INLINE_MATH_RE.sub(
                lambda m: self._park(
                    f'<span class="math-inline">{self._math(m.group(1).strip(), False)}</span>'
                ),
                text,
            )
        text = IMAGE_RE.sub(self._image, text)
        text = LINK_RE.sub(self._link, text)
        return self._restore(self._emphasis(escape_html(text)))

    def _math(self, latex: str, display_mode: bool) -> str:
        return neutralize_placeholders(render_math_safe(self.math_renderer, latex, display_mode))

    def _image(self, match: re.Match) -> str:
        # Parked code/math cannot live inside an attribute; leave the text as written
        if SENTINEL in match.group(0):
            return match.group(0)
        alt = escape_html(match.group(1))
        src = escape_html(safe_url(match.group(2)))
        return self._park(f'<img src="{src}" alt="{alt}" class="max-w-full rounded my-2" loading="lazy" />')

    def _link(self, match: re.Match) -> str:
        if SENTINEL in match.group(2):
            return match.group(0)
        label = self._emphasis(escape_html(match.group(1)))
        href = escape_html(safe_url(match.group(2)))
        return self._park(
            f'<a href="{href}" class="{LINK_CLASS}" target="_blank" rel="noopener noreferrer">{label}</a>'
        )

    @staticmethod
    def _emphasis(html: str) -> str:
        html = STRIKE_RE.sub(r'<del class="text-gray-400 line-through">\1</del>', html)
        html = BOLD_ITALIC_RE.sub(r'<strong class="font-bold italic text-gray-900 dark:text-gray-100">\1</strong>', html)
        html = BOLD_RE.sub(r'<strong class="font-semibold text-gray-900 dark:text-gray-100">\1</strong>', html)
        html = ITALIC_RE.sub(r'<em class="italic text-gray-800 dark:text-gray-200">\1</em>', html)
        return html

    def _restore(self, html: str) -> str:
        # Fragments can hold other fragments (a link label with inline code)
        while SENTINEL in html:
            restored = SENTINEL_RE.sub(lambda m: self.fragments[int(m.group(1))], html)
            if restored == html:
                break
            html = restored
        return html


class MarkdownRenderer:
    """
    Configurable markdown renderer.

    Table/math/mermaid/callout/task-list support and list grouping are
    switched through RendererOptions instead of separate parser variants.
    Instances hold no per-render state and can be shared between threads.
    """

    def __init__(
        self,
        options: Optional[RendererOptions] = None,
        math_renderer: Optional[MathRenderer] = None,
    ):
        self.options = options or RendererOptions()
        self.math_renderer = math_renderer

    def render(self, markdown: Optional[str]) -> RenderResult:
        if not markdown:
            return RenderResult(html="", callouts=[])

        text = markdown.replace("\r\n", "\n").replace("\r", "\n").replace(SENTINEL, "\ufffd")
        render_pass = _RenderPass(self.options, self.math_renderer)
        try:
            html = render_pass.render_blocks(render_pass.scan(text))
        except Exception:
            logger.exception("Markdown rendering failed; returning escaped source")
            return RenderResult(html=f'<pre class="{CODE_BLOCK_CLASS}">{escape_html(text)}</pre>', callouts=[])
        return RenderResult(html=html, callouts=render_pass.callouts)


_default_renderer = MarkdownRenderer()


def render(
    markdown: Optional[str],
    options: Optional[RendererOptions] = None,
    math_renderer: Optional[MathRenderer] = None,
) -> RenderResult:
    """Render markdown with the given options (defaults: every feature on)."""
    if options is None and math_renderer is None:
        return _default_renderer.render(markdown)
    return MarkdownRenderer(options, math_renderer).render(markdown)


def render_callout_body(callout: Callout, renderer: Optional[MarkdownRenderer] = None) -> RenderResult:
    """Render a callout's inner markdown the same way the document was rendered."""
    return (renderer or _default_renderer).render(callout.body_markdown)
