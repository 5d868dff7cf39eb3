"""
Math rendering capability for the markdown renderer.

The host application injects something that can turn LaTeX into HTML
(a KaTeX bridge, a MathML converter, ...). The renderer only talks to the
`MathRenderer` protocol and falls back to escaped source when nothing is
injected or the engine fails.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, runtime_checkable

from markupsafe import escape

logger = logging.getLogger(__name__)


@runtime_checkable
class MathRenderer(Protocol):
    def render_math(self, latex: str, display_mode: bool) -> str: ...


def fallback_math(latex: str) -> str:
    return f'<code class="math-fallback">{escape(latex)}</code>'


def render_math_safe(
    renderer: Optional[MathRenderer], latex: str, display_mode: bool = False
) -> str:
    """
    Render LaTeX through the injected engine, or return the fallback markup.

    Never raises: engine errors are logged and converted to the fallback.
    """
    if renderer is None:
        return fallback_math(latex)
    try:
        rendered = renderer.render_math(latex, display_mode)
    except Exception as e:
        logger.warning(f"Math renderer failed, using fallback: {e}")
        return fallback_math(latex)
    if not isinstance(rendered, str) or not rendered:
        return fallback_math(latex)
    return rendered
