from __future__ import annotations

import argparse
import dataclasses as dc
import json
import logging
import os
import sys
import time
import typing as typ
from pathlib import Path

from .config import SiteConfig, load_site_config, replace_settings, resolve_workers
from .content import ContentLoader, Document
from .errors import SiteError
from .files import clean_output_dir, copy_static, write_output, write_text
from .frontmatter import dump_front_matter
from .pages import RenderedOutput, Route, assemble, plan_routes
from .render import MarkdownRenderer
from .taxonomy import TagIndex, build_tag_index
from .template import TemplateEngine

logger = logging.getLogger("blogforge")

POSTS_DIR = "posts"
ABOUT_FILE = "about.md"
LOG_FORMAT = "%(levelname)s: %(message)s"


class BuildFailed(SiteError):
    pass


@dc.dataclass(frozen=True, slots=True)
class SiteContent:
    documents: list[Document]
    tag_index: TagIndex
    about: Document | None
    warnings: list[str]


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.handlers[:] = [handler]
    logger.setLevel(level)


def load_content(config: SiteConfig, workers: int = 1) -> SiteContent:
    renderer = MarkdownRenderer(config.content.heading_levels)
    loader = ContentLoader(config, renderer, workers)
    documents = loader.load_all(config.paths.content / POSTS_DIR)
    about = loader.load_about(config.paths.content)
    return SiteContent(documents, build_tag_index(documents), about, loader.warnings)


def validate_site(config: SiteConfig) -> list[Route]:
    """Load content and plan every output path without rendering anything."""
    site = load_content(config, resolve_workers(config, os.cpu_count()))
    routes = plan_routes(site.documents, site.tag_index, config, site.about)
    logger.info(
        "Validated %d posts, %d tags, %d output paths (%d warnings)",
        len(site.documents),
        len(site.tag_index),
        len(routes),
        len(site.warnings),
    )
    return routes


def build_site(
    config: SiteConfig,
    output_dir: Path | None = None,
    project_root: Path | None = None,
    engine: TemplateEngine | None = None,
) -> RenderedOutput:
    """Run the full pipeline and write the site.

    Nothing is written unless every page rendered; render failures are logged
    and turned into ``BuildFailed``.
    """
    started = time.perf_counter()
    output_dir = output_dir or config.paths.output
    project_root = project_root or Path.cwd()
    workers = resolve_workers(config, os.cpu_count())

    site = load_content(config, workers)
    engine = engine or TemplateEngine.for_config(config)
    output = assemble(
        site.documents, site.tag_index, config, engine=engine, about=site.about, workers=workers
    )
    if not output.ok:
        for failure in output.failures:
            logger.error("Failed to render %s", failure)
        raise BuildFailed(f"{len(output.failures)} page(s) failed to render, nothing written")

    if config.build.clean:
        clean_output_dir(output_dir, project_root)
    written = write_output(output, output_dir)
    if config.paths.static.is_dir():
        copied = copy_static(config.paths.static, output_dir, reserved=set(written))
        logger.debug("Copied %d static files", copied)
    logger.info(
        "Built %d posts into %s in %.2fs", len(site.documents), output_dir, time.perf_counter() - started
    )
    return output


SAMPLE_POST = """Welcome to your new blog. Edit this file or add more Markdown files
next to it, then run `blogforge build`.

## Writing posts

Every post starts with a frontmatter block holding its title, date and tags.
"""

SAMPLE_ABOUT = """This page is rendered from `content/about.md`.
"""


def init_project(target: Path, today: str | None = None) -> list[Path]:
    """Scaffold a config file and sample content, keeping existing files."""
    today = today or time.strftime("%Y-%m-%d")
    files = {
        target / "config.json": json.dumps(
            {
                "site": {"title": "My Blog", "description": "", "language": "en", "url": ""},
                "content": {"postsPerPage": 10, "wordsPerMinute": 200, "defaultAuthor": ""},
                "navigation": {
                    "items": [
                        {"label": "Home", "url": "/"},
                        {"label": "Tags", "url": "/tags/"},
                        {"label": "About", "url": "/about/"},
                    ]
                },
                "social": {"links": []},
            },
            indent=2,
        )
        + "\n",
        target / "content" / POSTS_DIR / "hello-world.md": dump_front_matter(
            {"title": "Hello World", "date": today, "tags": ["welcome"]}, SAMPLE_POST
        ),
        target / "content" / ABOUT_FILE: dump_front_matter({"title": "About"}, SAMPLE_ABOUT),
    }
    created = []
    for path, text in files.items():
        if path.exists():
            logger.info("Keeping existing %s", path)
            continue
        write_text(path, text)
        created.append(path)
    return created


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="blogforge", description="Markdown blog generator.")
    parser.add_argument("--config", default="config.json", help="Path to the site config file.")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log debug output.")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors.")
    commands = parser.add_subparsers(dest="command", required=True)

    build = commands.add_parser("build", help="Render the site into the output directory.")
    build.add_argument("--output", help="Output directory (overrides paths.output).")
    build.add_argument("--posts-per-page", type=int, help="Posts per home page.")
    build.add_argument("--workers", type=int, help="Worker threads, 0 for one per CPU.")
    build.add_argument(
        "--clean",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Clean output directory before build.",
    )

    validate = commands.add_parser("validate", help="Check content and routes without rendering.")
    validate.add_argument("--posts-per-page", type=int, help="Posts per home page.")

    init = commands.add_parser("init", help="Create a config file and sample content.")
    init.add_argument("directory", nargs="?", default=".", help="Project directory.")
    return parser


def main(argv: typ.Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.quiet)
    try:
        if args.command == "init":
            created = init_project(Path(args.directory))
            for path in created:
                logger.info("Created %s", path)
            return 0

        config = load_site_config(Path(args.config))
        config = replace_settings(
            config,
            content={"posts_per_page": args.posts_per_page},
            build={
                "workers": getattr(args, "workers", None),
                "clean": getattr(args, "clean", None),
            },
        )
        if args.command == "validate":
            validate_site(config)
        else:
            output_dir = Path(args.output) if args.output else None
            build_site(config, output_dir)
    except SiteError as exc:
        logger.error("%s", exc)
        return 1
    return 0
