from __future__ import annotations

import dataclasses as dc
import datetime as dt
import html
import json
import logging
import typing as typ
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor

from .config import SiteConfig
from .content import Document
from .errors import OutputCollisionError, SiteError
from .files import url_parts
from .pagination import Page, page_url, page_window, paginate
from .taxonomy import TagIndex, tag_counts
from .template import TemplateEngine, quote_segment
from .utils import iso_date, join_url, rfc822_date

logger = logging.getLogger(__name__)

HTML = "html"
XML = "xml"
JSON = "json"


@dc.dataclass(frozen=True, slots=True)
class OutputFile:
    content: str
    kind: str = HTML


@dc.dataclass(frozen=True, slots=True)
class RenderFailure:
    path: str
    template: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.path} (template {self.template}): {self.error}"


@dc.dataclass(frozen=True, slots=True)
class Route:
    """One planned output page; ``data`` holds its page-specific context."""

    path: str
    source: str
    template: str | None = None
    kind: str = HTML
    data: typ.Mapping[str, typ.Any] = dc.field(default_factory=dict)
    lastmod: dt.date | None = None


class RenderedOutput(Mapping):
    """Output path to ``OutputFile``, plus the pages that failed to render."""

    def __init__(
        self, files: dict[str, OutputFile], failures: typ.Sequence[RenderFailure] = ()
    ) -> None:
        self.files = files
        self.failures = list(failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    def __getitem__(self, path: str) -> OutputFile:
        return self.files[path]

    def __iter__(self) -> typ.Iterator[str]:
        return iter(self.files)

    def __len__(self) -> int:
        return len(self.files)


def tag_url(tag: str) -> str:
    return f"/tags/{quote_segment(tag)}/"


def adjacent_link(document: Document | None) -> dict[str, str] | None:
    if document is None:
        return None
    return {"title": document.title, "url": document.url}


def pagination_context(page: Page, base: str = "/") -> dict[str, typ.Any]:
    return {
        "current_page": page.page_number,
        "total_pages": page.total_pages,
        "has_previous": page.has_previous,
        "has_next": page.has_next,
        "previous_url": page_url(base, page.page_number - 1) if page.has_previous else "",
        "next_url": page_url(base, page.page_number + 1) if page.has_next else "",
        "pages": [
            {"gap": True}
            if number is None
            else {
                "number": number,
                "url": page_url(base, number),
                "current": number == page.page_number,
            }
            for number in page_window(page.page_number, page.total_pages)
        ],
    }


def _claim(routes: dict[str, Route], route: Route) -> None:
    url_parts(route.path, route.source)
    existing = routes.get(route.path)
    if existing is not None:
        raise OutputCollisionError(route.path, existing.source, route.source)
    routes[route.path] = route


def plan_routes(
    documents: typ.Sequence[Document],
    tag_index: TagIndex,
    config: SiteConfig,
    about: Document | None = None,
) -> list[Route]:
    """Map every logical page to its output path.

    Raises ``OutputCollisionError`` as soon as two pages claim the same path,
    before anything is rendered or written.
    """
    routes: dict[str, Route] = {}
    site_title = config.site.title

    for page in paginate(documents, config.content.posts_per_page):
        path = page_url("/", page.page_number)
        title = site_title if page.page_number == 1 else f"{site_title} | Page {page.page_number}"
        _claim(
            routes,
            Route(
                path,
                f"home page {page.page_number}",
                "pages/home",
                data={
                    "title": title,
                    "posts": list(page.items),
                    "pagination": pagination_context(page),
                },
            ),
        )

    for index, document in enumerate(documents):
        newer = documents[index - 1] if index > 0 else None
        older = documents[index + 1] if index + 1 < len(documents) else None
        _claim(
            routes,
            Route(
                document.url,
                document.source or document.slug,
                "pages/post",
                data={
                    "title": f"{document.title} | {site_title}",
                    "post": document,
                    "newer_post": adjacent_link(newer),
                    "older_post": adjacent_link(older),
                },
                lastmod=document.date,
            ),
        )

    tags = [
        {"name": tag, "count": count, "url": tag_url(tag)} for tag, count in tag_counts(tag_index)
    ]
    _claim(
        routes,
        Route("/tags/", "tags index", "pages/tags", data={"title": f"Tags | {site_title}", "tags": tags}),
    )
    for tag in sorted(tag_index):
        _claim(
            routes,
            Route(
                tag_url(tag),
                f"tag '{tag}'",
                "pages/tag",
                data={
                    "title": f"{tag} | {site_title}",
                    "tag": tag,
                    "posts": list(tag_index[tag]),
                },
            ),
        )

    if about is not None:
        _claim(
            routes,
            Route(
                about.url,
                about.source or "about page",
                "pages/about",
                data={"title": f"{about.title} | {site_title}", "page": about},
            ),
        )

    _claim(
        routes,
        Route("/404.html", "not found page", "pages/404", data={"title": f"Not Found | {site_title}"}),
    )
    _claim(routes, Route("/sitemap.xml", "sitemap", kind=XML))
    if config.site.url:
        _claim(routes, Route("/rss.xml", "feed", kind=XML))
    _claim(routes, Route("/posts/index.json", "post index", kind=JSON))
    return list(routes.values())


def build_sitemap(routes: typ.Iterable[Route], site_url: str = "") -> str:
    items = []
    for route in routes:
        if route.kind != HTML:
            continue
        loc = join_url(site_url, route.path) if site_url else route.path
        lines = ["<url>", f"<loc>{html.escape(loc)}</loc>"]
        if route.lastmod is not None:
            lines.append(f"<lastmod>{iso_date(route.lastmod)}</lastmod>")
        lines.append("</url>")
        items.append("\n".join(lines))
    return "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            "\n".join(items),
            "</urlset>",
        ]
    )


def build_rss(documents: typ.Sequence[Document], config: SiteConfig, now: dt.datetime) -> str:
    site_url = config.site.url.rstrip("/")
    items = []
    for document in documents[: config.content.feed_limit]:
        link = join_url(site_url, document.url)
        description = document.summary or document.excerpt
        items.append(
            "\n".join(
                [
                    "<item>",
                    f"<title>{html.escape(document.title)}</title>",
                    f"<link>{html.escape(link)}</link>",
                    f"<guid>{html.escape(link)}</guid>",
                    f"<pubDate>{rfc822_date(document.date)}</pubDate>",
                    f"<description>{html.escape(description)}</description>",
                    "</item>",
                ]
            )
        )
    last_build = rfc822_date(documents[0].date) if documents else rfc822_date(now)
    return "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0">',
            "<channel>",
            f"<title>{html.escape(config.site.title)}</title>",
            f"<link>{html.escape(site_url)}/</link>",
            f"<description>{html.escape(config.site.description)}</description>",
            f"<language>{html.escape(config.site.language)}</language>",
            f"<lastBuildDate>{last_build}</lastBuildDate>",
            "\n".join(items),
            "</channel>",
            "</rss>",
        ]
    )


def build_post_index(documents: typ.Iterable[Document]) -> str:
    index = [document.to_summary() for document in documents]
    return json.dumps(index, indent=2, ensure_ascii=False)


def page_context(route: Route, config: SiteConfig, now: dt.datetime) -> dict[str, typ.Any]:
    context = config.to_context()
    context["current_year"] = now.year
    context["page_path"] = route.path
    context.update(route.data)
    return context


def assemble(
    documents: typ.Sequence[Document],
    tag_index: TagIndex,
    config: SiteConfig,
    engine: TemplateEngine | None = None,
    about: Document | None = None,
    workers: int = 1,
    now: dt.datetime | None = None,
) -> RenderedOutput:
    """Render the whole site into a ``RenderedOutput``.

    Every HTML page is attempted; pages whose template fails are recorded on
    ``RenderedOutput.failures`` and left out of the file mapping. Output path
    collisions raise before any page is rendered.
    """
    engine = engine or TemplateEngine.for_config(config)
    now = now or dt.datetime.now(dt.timezone.utc)
    routes = plan_routes(documents, tag_index, config, about)

    def render(route: Route) -> OutputFile | RenderFailure:
        try:
            return OutputFile(engine.render(route.template, page_context(route, config, now)))
        except SiteError as exc:
            return RenderFailure(route.path, route.template, exc)

    html_routes = [route for route in routes if route.kind == HTML]
    if workers > 1 and len(html_routes) > 1:
        with ThreadPoolExecutor(max_workers=min(workers, len(html_routes))) as executor:
            results = list(executor.map(render, html_routes))
    else:
        results = [render(route) for route in html_routes]
    rendered = {route.path: result for route, result in zip(html_routes, results)}

    files: dict[str, OutputFile] = {}
    failures: list[RenderFailure] = []
    for route in routes:
        if route.path == "/sitemap.xml":
            files[route.path] = OutputFile(build_sitemap(routes, config.site.url), XML)
        elif route.path == "/rss.xml":
            files[route.path] = OutputFile(build_rss(documents, config, now), XML)
        elif route.path == "/posts/index.json":
            files[route.path] = OutputFile(build_post_index(documents), JSON)
        else:
            result = rendered[route.path]
            if isinstance(result, RenderFailure):
                logger.debug("Render failed for %s", result)
                failures.append(result)
            else:
                files[route.path] = result
    logger.info("Rendered %d pages (%d failed)", len(files), len(failures))
    return RenderedOutput(files, failures)
