"""Text helpers for Telegram HTML messages."""

import html


def truncate(text: str, max_len: int, suffix: str = "...") -> str:
    """Cut ``text`` to ``max_len`` characters, appending ``suffix`` when cut."""
    if len(text) <= max_len:
        return text
    return text[:max_len] + suffix


def escape_html(text: str) -> str:
    """Escape characters Telegram's HTML parse mode rejects (&, <, >)."""
    return html.escape(text, quote=False)
