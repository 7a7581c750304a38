"""
Derived note statistics.

Computed by the HTTP layer on every content write and persisted verbatim by
the storage adapters.
"""

from __future__ import annotations

import hashlib
import math
import re

from .models import NoteStats

_CJK = re.compile(r"[\u4e00-\u9fa5]")
_KANA = re.compile(r"[\u3040-\u309f\u30a0-\u30ff]")
_HANGUL = re.compile(r"[\uac00-\ud7af]")
_LATIN_WORD = re.compile(r"[a-zA-Z]+")
_IMAGE = re.compile(r"!\[.*?\]\((.*?)\)")
_LINK = re.compile(r"\[.*?\]\(.*?\)")
_LINK_TEXT = re.compile(r"\[(.*?)\]\(.*?\)")
_CODE_FENCE = re.compile(r"```[^\n]*")
_LINE_MARKER = re.compile(r"^\s*(?:#{1,6}\s+|>\s?|[-*+]\s+|\d+\.\s+)", re.MULTILINE)
_EMPHASIS = re.compile(r"[*_~`]")

PREVIEW_LENGTH = 120


def plain_text_preview(content: str, limit: int = PREVIEW_LENGTH) -> str:
    """First `limit` characters of content with Markdown syntax removed."""
    text = _IMAGE.sub("", content)
    text = _LINK_TEXT.sub(r"\1", text)
    text = _CODE_FENCE.sub("", text)
    text = _LINE_MARKER.sub("", text)
    text = _EMPHASIS.sub("", text)
    return " ".join(text.split())[:limit]


def detect_language(content: str) -> str:
    cjk = len(_CJK.findall(content))
    kana = len(_KANA.findall(content))
    hangul = len(_HANGUL.findall(content))

    if cjk > kana and cjk > hangul:
        return "zh" if cjk > len(content) * 0.1 else "en"
    if kana > hangul:
        return "ja"
    if hangul > 0:
        return "ko"
    return "en"


def calculate_note_stats(title: str, content: str) -> NoteStats:
    cjk_chars = len(_CJK.findall(content))
    latin_words = len(_LATIN_WORD.findall(content))

    # 200 CJK characters or 300 latin words per minute, never below one minute
    read_time = math.ceil(cjk_chars / 200 + latin_words / 300) or 1

    images = _IMAGE.findall(content)
    link_count = len(_LINK.findall(content)) - len(images)

    paragraphs = [p for p in content.split("\n\n") if p.strip()]

    return NoteStats(
        word_count=cjk_chars + latin_words,
        char_count=len(content),
        read_time_minutes=read_time,
        code_blocks=content.count("```") // 2,
        image_count=len(images),
        link_count=max(link_count, 0),
        content_hash=hashlib.sha256(f"{title}{content}".encode("utf-8")).hexdigest()[:16],
        cover_image=images[0] if images else None,
        first_paragraph=paragraphs[0][:200] if paragraphs else None,
        preview=plain_text_preview(content) or None,
        language=detect_language(content),
    )
