"""Text normalization helpers for scraped archive markup.

Deterministic and site-agnostic: byte decoding, mojibake repair, and the
markup-to-plain-text conversion used for work summaries.
"""

from __future__ import annotations

import logging
import re
import unicodedata

import ftfy
from charset_normalizer import from_bytes

logger = logging.getLogger(__name__)

__all__ = [
    "decode_body",
    "minimal_text_fix",
    "markup_to_text",
    "clean_inline",
]

# Zero-width marks and stray control bytes vanish; C1 controls become spaces.
_INVISIBLE = dict.fromkeys([0x00, 0x0B, 0x0C, 0x200B, 0x200C, 0x200D, 0x2060, 0xFEFF])
_INVISIBLE.update({cp: " " for cp in range(0x80, 0xA0)})

_RE_CHARSET = re.compile(r"charset=([^\s;]+)", re.I)
_RE_BR = re.compile(r"<br\s*/?>", re.I)
_RE_P_CLOSE = re.compile(r"</p\s*>", re.I)
_RE_TAG = re.compile(r"<[^>]+>")
_RE_MANY_NEWLINES = re.compile(r"\n\s*\n\s*\n+")
_RE_WS = re.compile(r"\s+")

# Only these entities are decoded; anything else is left literal.
_ENTITIES = (
    ("&quot;", '"'),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&nbsp;", " "),
    ("&#160;", " "),
    ("&amp;", "&"),
)


def decode_body(body: bytes, content_type: str = "") -> str:
    """Decode a response body; the declared charset wins, else charset-normalizer guesses."""

    if not body:
        return ""
    declared = _RE_CHARSET.search(content_type or "")
    if declared:
        try:
            return body.decode(declared.group(1).strip(" \"'").lower(), errors="replace")
        except LookupError:
            logger.debug("Unknown declared charset %r; guessing", declared.group(1))
    guess = from_bytes(body).best()
    return str(guess) if guess is not None else body.decode("utf-8", errors="replace")


def minimal_text_fix(text: str) -> str:
    """Repair mojibake and drop invisible characters; newlines are left alone."""

    if not text:
        return ""
    repaired = ftfy.fix_text(unicodedata.normalize("NFC", text), normalization="NFC")
    return repaired.translate(_INVISIBLE)


def markup_to_text(markup: str) -> str:
    """Convert a summary's inner markup to newline-preserving plain text.

    ``<br>`` becomes a newline, ``</p>`` a blank line; other tags are dropped.
    Runs of three or more newlines collapse to two and the result is trimmed.
    """

    if not markup:
        return ""
    text = _RE_BR.sub("\n", markup)
    text = _RE_P_CLOSE.sub("\n\n", text)
    text = _RE_TAG.sub("", text)
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    text = text.replace("\u00a0", " ")
    text = _RE_MANY_NEWLINES.sub("\n\n", text)
    return minimal_text_fix(text).strip()


def clean_inline(text: str) -> str:
    """Collapse whitespace in a single-line field (titles, tags, names)."""

    return _RE_WS.sub(" ", minimal_text_fix(text or "")).strip()
