from __future__ import annotations

import dataclasses as dc
import datetime as dt
import logging
import threading
import typing as typ
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from types import MappingProxyType

from .config import SiteConfig
from .errors import ContentParseError
from .files import list_files, read_text
from .frontmatter import parse_front_matter, parse_list
from .render import Heading, MarkdownRenderer, first_paragraph, reading_time
from .utils import iso_date, parse_flag, slugify

logger = logging.getLogger(__name__)

RESERVED_KEYS = frozenset(
    {"title", "date", "tags", "summary", "description", "author", "slug", "excerpt", "draft"}
)


@dc.dataclass(frozen=True, slots=True)
class Document:
    """One rendered content file. Instances are never mutated after loading."""

    slug: str
    title: str
    date: dt.date
    tags: tuple[str, ...]
    summary: str
    author: str
    raw_body: str
    rendered_html: str
    reading_time: int
    headings: tuple[Heading, ...]
    url: str
    excerpt: str = ""
    source: str = ""
    formatted_date: str = ""
    meta: typ.Mapping[str, typ.Any] = dc.field(default_factory=lambda: MappingProxyType({}))

    @property
    def iso_date(self) -> str:
        return iso_date(self.date)

    def to_summary(self) -> dict[str, typ.Any]:
        return {
            "slug": self.slug,
            "title": self.title,
            "url": self.url,
            "date": self.iso_date,
            "tags": list(self.tags),
            "author": self.author,
            "excerpt": self.excerpt,
            "readingTime": self.reading_time,
        }


def sort_documents(documents: typ.Iterable[Document], tie_key: str = "source") -> list[Document]:
    ordered = sorted(documents, key=lambda doc: getattr(doc, tie_key))
    ordered.sort(key=lambda doc: doc.date, reverse=True)
    return ordered


def title_from_filename(path: Path) -> str:
    return path.stem.replace("-", " ").replace("_", " ").strip() or path.stem


def parse_date(value: str) -> dt.date | None:
    value = value.strip()
    if not value:
        return None
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return dt.datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _text(meta: typ.Mapping[str, typ.Any], key: str) -> str:
    value = meta.get(key)
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(value)
    return value.strip()


def get_tags(meta: typ.Mapping[str, typ.Any]) -> tuple[str, ...]:
    value = meta.get("tags")
    if not value:
        return ()
    items = value if isinstance(value, list) else parse_list(value)
    tags: list[str] = []
    for item in items:
        tag = item.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tuple(tags)


class ContentLoader:
    """Turn a directory of Markdown files into sorted ``Document`` records.

    A file that cannot be read or decoded is skipped; the reason is logged as a
    warning and kept on ``warnings`` so the caller can report it.
    """

    def __init__(
        self,
        config: SiteConfig | None = None,
        renderer: MarkdownRenderer | None = None,
        workers: int = 1,
    ) -> None:
        self.config = config or SiteConfig()
        self.renderer = renderer or MarkdownRenderer(self.config.content.heading_levels)
        self.workers = max(1, workers)
        self.warnings: list[str] = []
        self._lock = threading.Lock()

    def warn(self, message: str) -> None:
        logger.warning(message)
        with self._lock:
            self.warnings.append(message)

    def load_file(self, path: Path, source: str, page: bool = False) -> Document | None:
        try:
            raw_text = read_text(path)
        except (OSError, UnicodeDecodeError) as exc:
            raise ContentParseError(path, f"cannot read file: {exc}") from exc

        meta, body = parse_front_matter(raw_text)
        if parse_flag(meta.get("draft")):
            logger.info("Skipping draft %s", source)
            return None

        title = _text(meta, "title")
        if not title and page:
            title = "About"
        elif not title:
            title = title_from_filename(path)
            self.warn(f"{source}: missing title, using '{title}'")

        date_value = _text(meta, "date")
        date = parse_date(date_value)
        if date is None:
            if date_value:
                self.warn(f"{source}: invalid date '{date_value}', using file modification time")
            elif not page:
                self.warn(f"{source}: missing date, using file modification time")
            date = dt.date.fromtimestamp(path.stat().st_mtime)

        explicit_slug = _text(meta, "slug")
        slug = slugify(explicit_slug or path.stem)
        url = f"/{slug}/" if page else f"/posts/{slug}/"
        rendered = self.renderer.render(body)
        excerpt = _text(meta, "excerpt") or first_paragraph(rendered)
        extra = {key: value for key, value in meta.items() if key not in RESERVED_KEYS}

        return Document(
            slug=slug,
            title=title,
            date=date,
            tags=get_tags(meta),
            summary=_text(meta, "summary") or _text(meta, "description"),
            author=_text(meta, "author") or self.config.author,
            raw_body=body,
            rendered_html=rendered,
            reading_time=reading_time(body, self.config.content.words_per_minute),
            headings=tuple(self.renderer.extract_headings(rendered)),
            url=url,
            excerpt=excerpt,
            source=source,
            formatted_date=date.strftime(self.config.content.date_format),
            meta=MappingProxyType(extra),
        )

    def _load_entry(self, entry: tuple[Path, str]) -> Document | None:
        path, source = entry
        try:
            return self.load_file(path, source)
        except ContentParseError as exc:
            self.warn(f"Skipping {exc}")
            return None

    def load_all(self, content_dir: Path) -> list[Document]:
        if not content_dir.exists():
            self.warn(f"Content directory not found: {content_dir}")
            return []
        entries = [
            (path, path.relative_to(content_dir).as_posix())
            for path in list_files(content_dir, ".md")
        ]
        if self.workers > 1 and len(entries) > 1:
            with ThreadPoolExecutor(max_workers=min(self.workers, len(entries))) as executor:
                loaded = list(executor.map(self._load_entry, entries))
        else:
            loaded = [self._load_entry(entry) for entry in entries]
        documents = sort_documents(doc for doc in loaded if doc is not None)
        logger.info("Loaded %d documents from %s", len(documents), content_dir)
        return documents

    def load_about(self, content_dir: Path) -> Document | None:
        path = content_dir / "about.md"
        if not path.is_file():
            return None
        try:
            return self.load_file(path, "about.md", page=True)
        except ContentParseError as exc:
            self.warn(f"Skipping {exc}")
            return None


def load_all(content_dir: Path, config: SiteConfig | None = None) -> list[Document]:
    return ContentLoader(config).load_all(content_dir)
