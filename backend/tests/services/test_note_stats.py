"""
Tests for derived note statistics in easynote/services/note_stats.py.
"""
from __future__ import annotations

from easynote.services.note_stats import calculate_note_stats, detect_language, plain_text_preview


def test_latin_content():
    content = "Hello world, this is a note.\n\nSecond paragraph here."
    stats = calculate_note_stats("Title", content)

    assert stats.word_count == 9
    assert stats.char_count == len(content)
    assert stats.read_time_minutes == 1
    assert stats.first_paragraph == "Hello world, this is a note."
    assert stats.language == "en"


def test_empty_content_still_reads_in_one_minute():
    stats = calculate_note_stats("Title", "")
    assert stats.word_count == 0
    assert stats.read_time_minutes == 1
    assert stats.first_paragraph is None
    assert stats.cover_image is None


def test_long_content_read_time():
    stats = calculate_note_stats("T", "word " * 601)
    assert stats.read_time_minutes == 3


def test_markdown_counts():
    content = (
        "![cover](https://img.example/a.png)\n\n"
        "See [docs](https://docs.example) and [more](https://more.example).\n\n"
        "```python\nprint(1)\n```\n"
        "![second](https://img.example/b.png)"
    )
    stats = calculate_note_stats("T", content)

    assert stats.image_count == 2
    assert stats.link_count == 2
    assert stats.code_blocks == 1
    assert stats.cover_image == "https://img.example/a.png"


def test_content_hash_covers_title():
    a = calculate_note_stats("One", "body")
    b = calculate_note_stats("Two", "body")
    assert a.content_hash != b.content_hash
    assert len(a.content_hash) == 16
    assert a.content_hash == calculate_note_stats("One", "body").content_hash


def test_detect_language():
    assert detect_language("plain english text") == "en"
    assert detect_language("这是一个中文笔记") == "zh"
    assert detect_language("これはひらがなのノートです") == "ja"
    assert detect_language("한국어 노트입니다") == "ko"


def test_cjk_words_counted_per_character():
    stats = calculate_note_stats("T", "中文笔记")
    assert stats.word_count == 4
    assert stats.language == "zh"


def test_preview_strips_markdown():
    content = (
        "# Heading\n\n"
        "![cover](https://img.example/a.png)\n"
        "Some **bold** text with a [link](https://x.example).\n\n"
        "- item one\n"
        "> quoted `code`"
    )
    assert plain_text_preview(content) == (
        "Heading Some bold text with a link. item one quoted code"
    )


def test_preview_is_truncated():
    stats = calculate_note_stats("T", "word " * 100)
    assert len(stats.preview) == 120


def test_empty_content_has_no_preview():
    assert calculate_note_stats("T", "").preview is None
