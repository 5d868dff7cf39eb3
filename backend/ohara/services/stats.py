"""
Word / reading statistics for the editor status bar.
"""

from __future__ import annotations

import math
from typing import Optional

from ..config import Config
from .models import RenderStats


def reading_time_label(words: int, words_per_minute: Optional[int] = None) -> str:
    wpm = words_per_minute or Config.READING_WORDS_PER_MINUTE
    minutes = math.ceil(words / wpm)
    return "< 1 min read" if minutes <= 1 else f"{minutes} min read"


def compute_stats(text: Optional[str], words_per_minute: Optional[int] = None) -> RenderStats:
    """
    Count words, characters and lines of raw markdown.

    An empty string still counts as one line (it is one empty segment).
    """
    text = text or ""
    stripped = text.strip()
    words = len(stripped.split()) if stripped else 0
    return RenderStats(
        words=words,
        characters=len(text),
        lines=len(text.split("\n")),
        reading_time=reading_time_label(words, words_per_minute),
    )
