"""
Answer text formatting for display.

Converts the markdown-ish answer returned by the backend into the display
markup stored in the chat log. Pure and stateless; runs once per delivered
answer. The raw answer (not this output) is what gets synthesized.
"""

from __future__ import annotations

import html
import re

_BOLD = re.compile(r"\*\*(.*?)\*\*")
_BULLET = re.compile(r"- ([^\n]+)")
_NUMBERED = re.compile(r"\d+\.\s")
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def format_response(text: str) -> str:
    """
    Render an answer for the chat transcript.

    Rules (applied in order):
    - HTML-special characters are escaped first; the output is inserted as markup
    - **bold** -> <strong>bold</strong>
    - "- item" -> "• item"
    - "1. " -> <br /><br /><strong>1. </strong>
    - line breaks -> <br />

    >>> format_response("- Coconut Curry\\n- Coconut Rice")
    '• Coconut Curry<br />• Coconut Rice'
    """
    out = html.escape(text, quote=False)
    out = _BOLD.sub(r"<strong>\1</strong>", out)
    out = _BULLET.sub(r"• \1", out)
    out = _NUMBERED.sub(lambda m: f"<br /><br /><strong>{m.group(0)}</strong>", out)
    return _LINE_BREAK.sub("<br />", out)
