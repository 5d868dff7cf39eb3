"""
Dependency injection container for backend services.

We store a single Services instance on the Flask app (app.extensions["services"]).
Routes can then fetch dependencies via get_services() which makes route tests able
to inject fakes (e.g. a math renderer) without touching global singletons.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app

from ..config import Config
from .markdown import MarkdownRenderer, RendererOptions
from .math_renderer import MathRenderer


@dataclass(frozen=True)
class Services:
    renderer: MarkdownRenderer
    words_per_minute: int = 200


def create_services(
    *,
    options: Optional[RendererOptions] = None,
    math_renderer: Optional[MathRenderer] = None,
) -> Services:
    """
    Build the production Services container.

    Args:
        options: Optional renderer feature overrides (defaults come from Config).
        math_renderer: Optional LaTeX engine; without one math renders as escaped source.
    """
    return Services(
        renderer=MarkdownRenderer(options or Config.renderer_options(), math_renderer),
        words_per_minute=Config.READING_WORDS_PER_MINUTE,
    )


def get_services() -> Services:
    """
    Fetch the Services container from the current Flask app.

    Raises:
        RuntimeError if services have not been attached to the app.
    """
    services = current_app.extensions.get("services")
    if services is None:
        raise RuntimeError('Services not configured. Expected app.extensions["services"].')
    return services
