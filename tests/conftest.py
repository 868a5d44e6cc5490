"""Shared fixtures for the blogforge test suite.

``write_post`` writes Markdown files with a frontmatter block into a temporary
content tree, ``make_document`` builds ``Document`` records directly for tests
that do not need the loader, and ``site_config`` returns a validated
``SiteConfig`` anchored in ``tmp_path``.

Usage
-----
Run ``pytest`` from the repository root after installing the test extra
(``pip install -e .[test]``).
"""

from __future__ import annotations

import datetime as dt
import logging
import typing as typ
from pathlib import Path
from types import MappingProxyType

import pytest

from blogforge.config import SiteConfig, merge_with_defaults
from blogforge.content import Document


def frontmatter_text(body: str = "", **fields: str) -> str:
    lines = ["---", *(f"{key}: {value}" for key, value in fields.items()), "---", ""]
    return "\n".join(lines) + body


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    """Return an empty ``content`` directory with a ``posts`` folder."""
    posts = tmp_path / "content" / "posts"
    posts.mkdir(parents=True)
    return tmp_path / "content"


@pytest.fixture
def write_post(content_dir: Path) -> typ.Callable[..., Path]:
    """Return a helper writing ``posts/<name>`` with the given frontmatter."""

    def _write(name: str, body: str = "", **fields: str) -> Path:
        path = content_dir / "posts" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(frontmatter_text(body, **fields), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_document() -> typ.Callable[..., Document]:
    """Return a factory for ``Document`` records with sensible defaults."""

    def _make(
        slug: str,
        date: str = "2024-01-01",
        tags: typ.Sequence[str] = (),
        title: str | None = None,
        body: str = "Body text.",
        **extra: typ.Any,
    ) -> Document:
        fields = {
            "slug": slug,
            "title": title or slug.replace("-", " ").title(),
            "date": dt.date.fromisoformat(date),
            "tags": tuple(tags),
            "summary": "",
            "author": "",
            "raw_body": body,
            "rendered_html": f"<p>{body}</p>",
            "reading_time": 1,
            "headings": (),
            "url": f"/posts/{slug}/",
            "excerpt": body,
            "source": f"{slug}.md",
            "formatted_date": date,
            "meta": MappingProxyType({}),
        }
        fields.update(extra)
        return Document(**fields)

    return _make


@pytest.fixture
def site_config(tmp_path: Path) -> typ.Callable[..., SiteConfig]:
    """Return a factory merging overrides onto a small test configuration."""

    def _config(**sections: typ.Mapping[str, typ.Any]) -> SiteConfig:
        data: dict[str, typ.Any] = {
            "site": {"title": "Test Site", "description": "Notes", "author": "Ada"},
            "navigation": {
                "items": [
                    {"label": "Home", "url": "/"},
                    {"label": "Tags", "url": "/tags/"},
                    {"label": "About", "url": "/about/"},
                ]
            },
            "social": {"links": [{"platform": "GitHub", "url": "https://github.com/ada"}]},
        }
        for name, values in sections.items():
            data[name] = {**data.get(name, {}), **values}
        return merge_with_defaults(data, base_dir=tmp_path)

    return _config


@pytest.fixture(autouse=True)
def reset_package_logger() -> typ.Iterator[None]:
    """Undo handlers and levels installed by ``configure_logging``."""
    logger = logging.getLogger("blogforge")
    handlers, level = logger.handlers[:], logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
