from __future__ import annotations

import dataclasses as dc
import html as html_lib
import math
import re

import markdown
from markdown.extensions.toc import slugify_unicode

from .markdown_ext import ContentLinksExtension

TAG_RE = re.compile(r"<[^>]+>")
HEADING_RE = re.compile(r"<h(?P<level>[1-6])(?P<attrs>[^>]*)>(?P<body>.*?)</h(?P=level)>", re.DOTALL)
ID_ATTR_RE = re.compile(r'\bid="(?P<id>[^"]*)"')
PARAGRAPH_RE = re.compile(r"<p>(?P<body>.*?)</p>", re.DOTALL)
MD_IMAGE_RE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
MD_LINK_RE = re.compile(r"\[(?P<text>[^\]]*)\]\([^)]*\)")
EMPHASIS_RE = re.compile(r"(?<![\w*_~`])[*_~`]+|[*_~`]+(?![\w*_~`])")
CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")
WORD_CHAR_RE = re.compile(r"\w")


@dc.dataclass(frozen=True, slots=True)
class Heading:
    id: str
    text: str
    level: int


class MarkdownRenderer:
    """Markdown to HTML conversion with GFM-style additions and heading anchors."""

    def __init__(self, heading_levels: tuple[int, ...] = (2, 3)) -> None:
        self.heading_levels = heading_levels

    def _markdown(self) -> markdown.Markdown:
        return markdown.Markdown(
            extensions=[
                "fenced_code",
                "tables",
                "toc",
                "pymdownx.tilde",
                "pymdownx.tasklist",
                ContentLinksExtension(),
            ],
            extension_configs={
                "toc": {"slugify": slugify_unicode, "separator": "-"},
                "pymdownx.tilde": {"subscript": False},
            },
        )

    def render(self, body: str) -> str:
        if not body.strip():
            return ""
        return self._markdown().convert(body)

    def extract_headings(self, html_text: str) -> list[Heading]:
        return extract_headings(html_text, self.heading_levels)


def strip_tags(html_text: str) -> str:
    return TAG_RE.sub("", html_text)


def extract_headings(html_text: str, levels: tuple[int, ...] = (2, 3)) -> list[Heading]:
    headings = []
    for match in HEADING_RE.finditer(html_text):
        level = int(match.group("level"))
        if level not in levels:
            continue
        id_match = ID_ATTR_RE.search(match.group("attrs"))
        if not id_match:
            continue
        text = html_lib.unescape(strip_tags(match.group("body"))).strip()
        headings.append(Heading(id=id_match.group("id"), text=text, level=level))
    return headings


def first_paragraph(html_text: str) -> str:
    match = PARAGRAPH_RE.search(html_text)
    return match.group("body").strip() if match else ""


def count_words(text: str) -> int:
    text = MD_IMAGE_RE.sub(" ", text)
    text = MD_LINK_RE.sub(r" \g<text> ", text)
    text = TAG_RE.sub(" ", text)
    text = html_lib.unescape(text)
    text = EMPHASIS_RE.sub("", text)
    cjk_count = len(CJK_RE.findall(text))
    text = CJK_RE.sub(" ", text)
    word_count = sum(1 for token in text.split() if WORD_CHAR_RE.search(token))
    return cjk_count + word_count


def reading_time(text: str, words_per_minute: int = 200) -> int:
    return max(1, math.ceil(count_words(text) / max(1, words_per_minute)))
