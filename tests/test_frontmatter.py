"""Tests for frontmatter parsing and serialisation."""

from __future__ import annotations

import pytest

from blogforge.frontmatter import dump_front_matter, parse_front_matter, parse_list


def test_parses_scalars_lists_and_body() -> None:
    text = '---\ntitle: "Hello"\ndate: 2024-01-01\ntags: ["a", "b"]\n---\n# Hello\n\nWorld'
    meta, body = parse_front_matter(text)
    assert meta == {"title": "Hello", "date": "2024-01-01", "tags": ["a", "b"]}
    assert body == "# Hello\n\nWorld"


@pytest.mark.parametrize(
    "text",
    [
        "# Just a heading\n\nNo metadata here.",
        "---\ntitle: Never closed\n\nBody",
        "Intro line\n---\ntitle: Late\n---\nBody",
    ],
)
def test_text_without_leading_block_is_all_body(text: str) -> None:
    meta, body = parse_front_matter(text)
    assert meta == {}
    assert body == text


def test_unrecognised_lines_are_ignored() -> None:
    text = "---\n# a comment\njust words\nbad key: value\nTitle: Kept\n---\nBody"
    meta, body = parse_front_matter(text)
    assert meta == {"title": "Kept"}
    assert body == "Body"


def test_leading_byte_order_mark_is_ignored() -> None:
    meta, body = parse_front_matter("\ufeff---\ntitle: BOM\n---\nBody")
    assert meta == {"title": "BOM"}
    assert body == "Body"


@pytest.mark.parametrize("newline", ["\r\n", "\r"])
def test_windows_line_endings(newline: str) -> None:
    text = newline.join(["---", "title: Hello", "date: 2024-01-01", "---", "World", ""])
    meta, body = parse_front_matter(text)
    assert meta == {"title": "Hello", "date": "2024-01-01"}
    assert body == "World\n"


def test_single_quoted_value_is_unquoted() -> None:
    meta, _ = parse_front_matter("---\nsummary: 'colon: inside'\n---\n")
    assert meta["summary"] == "colon: inside"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ('["a", "b"]', ["a", "b"]),
        ("['a', 'b']", ["a", "b"]),
        ("[it's, fine]", ["it's", "fine"]),
        ("[a, , b]", ["a", "b"]),
        ("[]", []),
        ("[\"a, it's\"]", ["a, it's"]),
        ("x, y", ["x", "y"]),
    ],
)
def test_parse_list_falls_back_to_comma_split(value: str, expected: list[str]) -> None:
    assert parse_list(value) == expected


@pytest.mark.parametrize(
    "meta",
    [
        {"title": "Hello", "date": "2024-01-01"},
        {"title": "Hello: world", "tags": ["a", "b c", "C++"]},
        {"summary": "", "author": '"quoted"'},
        {"title": "  padded  ", "tags": []},
        {"title": "[not a list]"},
        {"tags": ["a, it's", 'say "hi"', "back\\slash"]},
        {"title": "It's here", "tags": ["it's"]},
    ],
)
def test_dump_then_parse_round_trips(meta: dict[str, object]) -> None:
    parsed, body = parse_front_matter(dump_front_matter(meta, "Body"))
    assert parsed == meta
    assert body.strip() == "Body"
