from __future__ import annotations

import re
import xml.etree.ElementTree as etree

from markdown import Markdown
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")


class ExternalLinkProcessor(Treeprocessor):
    def run(self, root: etree.Element) -> None:
        for link in root.iter("a"):
            href = link.get("href", "")
            if SCHEME_RE.match(href):
                link.set("target", "_blank")
                link.set("rel", "noopener noreferrer")


class FigureProcessor(Treeprocessor):
    """Turn paragraphs holding a single image into ``<figure>`` blocks."""

    def run(self, root: etree.Element) -> None:
        for paragraph in list(root.iter("p")):
            if len(paragraph) != 1 or paragraph[0].tag != "img":
                continue
            image = paragraph[0]
            if (paragraph.text or "").strip() or (image.tail or "").strip():
                continue
            paragraph.tag = "figure"
            paragraph.text = None
            image.tail = None
            alt = image.get("alt", "")
            if alt:
                caption = etree.SubElement(paragraph, "figcaption")
                caption.text = alt


class ContentLinksExtension(Extension):
    def extendMarkdown(self, md: Markdown) -> None:
        md.treeprocessors.register(ExternalLinkProcessor(md), "external_links", 15)
        md.treeprocessors.register(FigureProcessor(md), "figures", 14)
