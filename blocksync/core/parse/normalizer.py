import re
from typing import List, Tuple

_HTML_TAG = re.compile(r"<[^>]+>")

# Order matters: longer markers must be consumed before their single-char forms
_EMPHASIS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\*\*\*(.+?)\*\*\*"), r"\1"),   # bold italic
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),       # bold
    (re.compile(r"\*(.+?)\*"), r"\1"),           # italic
    (re.compile(r"__(.+?)__"), r"\1"),           # bold (underscore)
    (re.compile(r"_(.+?)_"), r"\1"),             # italic (underscore)
    (re.compile(r"~~(.+?)~~"), r"\1"),           # strikethrough
    (re.compile(r"==(.+?)=="), r"\1"),           # highlight
    (re.compile(r"<u>(.+?)</u>"), r"\1"),        # underline
]

_INLINE_CODE = re.compile(r"`([^`]+)`")
_INLINE_FORMULA = re.compile(r"\\\((.+?)\\\)")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_SUPERSCRIPT = re.compile(r"\^\^([^^]+)\^\^")
_SUBSCRIPT = re.compile(r"~([^~]+)~")
_WHITESPACE = re.compile(r"\s+")

def normalize(text: str) -> str:
    """
    Canonical plain-text form of inline markdown, used as hash and embedding input.
    Pure and total: empty input gives empty output.
    """
    if not text:
        return ""

    normalized = _HTML_TAG.sub("", text)

    for pattern, replacement in _EMPHASIS:
        normalized = pattern.sub(replacement, normalized)

    normalized = _INLINE_CODE.sub(r"INLINE_CODE: \1", normalized)
    normalized = _INLINE_FORMULA.sub(r"FORMULA_INLINE: \1", normalized)
    normalized = _LINK.sub(r"\1", normalized)

    # ~~x~~ is already gone, so a single ~ pair here is always subscript
    normalized = _SUPERSCRIPT.sub(r"\1", normalized)
    normalized = _SUBSCRIPT.sub(r"\1", normalized)

    return _WHITESPACE.sub(" ", normalized).strip()
