from __future__ import annotations

import dataclasses as dc
import json
import logging
import tomllib
import typing as typ
from pathlib import Path

import yaml

from .errors import ConfigurationError
from .utils import parse_flag

logger = logging.getLogger(__name__)

MAX_WORKERS = 32


@dc.dataclass(frozen=True, slots=True)
class SiteSettings:
    title: str = "My Blog"
    description: str = ""
    language: str = "en"
    url: str = ""
    author: str = ""


@dc.dataclass(frozen=True, slots=True)
class ContentSettings:
    posts_per_page: int = 10
    words_per_minute: int = 200
    default_author: str = ""
    heading_levels: tuple[int, ...] = (2, 3)
    feed_limit: int = 20
    date_format: str = "%B %d, %Y"


@dc.dataclass(frozen=True, slots=True)
class NavItem:
    label: str
    url: str


@dc.dataclass(frozen=True, slots=True)
class SocialLink:
    name: str
    url: str
    icon: str = ""


@dc.dataclass(frozen=True, slots=True)
class PathSettings:
    content: Path = Path("content")
    output: Path = Path("dist")
    templates: Path | None = None
    static: Path = Path("static")


@dc.dataclass(frozen=True, slots=True)
class BuildSettings:
    workers: int = 0
    clean: bool = True


DEFAULT_NAVIGATION = (
    NavItem("Home", "/"),
    NavItem("Tags", "/tags/"),
    NavItem("About", "/about/"),
)
DEFAULT_SITE = SiteSettings()
DEFAULT_CONTENT = ContentSettings()
DEFAULT_PATHS = PathSettings()


@dc.dataclass(frozen=True, slots=True)
class SiteConfig:
    """Validated configuration for one build."""

    site: SiteSettings = dc.field(default_factory=SiteSettings)
    content: ContentSettings = dc.field(default_factory=ContentSettings)
    navigation: tuple[NavItem, ...] = DEFAULT_NAVIGATION
    social: tuple[SocialLink, ...] = ()
    paths: PathSettings = dc.field(default_factory=PathSettings)
    build: BuildSettings = dc.field(default_factory=BuildSettings)

    @property
    def author(self) -> str:
        return self.content.default_author or self.site.author

    def to_context(self) -> dict[str, typ.Any]:
        site = dc.asdict(self.site)
        site["author"] = self.author
        return {
            "site": site,
            "navigation": {"items": [dc.asdict(item) for item in self.navigation]},
            "social": {"links": [dc.asdict(link) for link in self.social]},
        }


def load_config(path: Path) -> dict:
    if not path.exists():
        logger.warning("Config file not found: %s, using defaults", path)
        return {}
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"cannot read config file: {exc}", path) from exc
    if suffix == ".toml":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(f"invalid TOML: {exc}", path) from exc
    elif suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"invalid YAML: {exc}", path) from exc
        if data is None:
            return {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"invalid JSON: {exc}", path) from exc
    if not isinstance(data, dict):
        raise ConfigurationError("config must be a mapping", path)
    return data


def _pick(section: typ.Mapping[str, typ.Any], *names: str) -> typ.Any:
    for name in names:
        if name in section and section[name] is not None:
            return section[name]
    return None


def _section(data: typ.Mapping[str, typ.Any], key: str) -> typ.Mapping[str, typ.Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, typ.Mapping):
        raise ConfigurationError(f"'{key}' must be a mapping, got {type(value).__name__}")
    return value


def _str(section: typ.Mapping[str, typ.Any], default: str, *names: str) -> str:
    value = _pick(section, *names)
    return default if value is None else str(value)


def _int(
    section: typ.Mapping[str, typ.Any],
    default: int,
    key: str,
    *names: str,
    minimum: int | None = None,
) -> int:
    value = _pick(section, *names)
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    try:
        number = int(str(value).strip())
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from exc
    if minimum is not None and number < minimum:
        raise ConfigurationError(f"{key} must be at least {minimum}, got {number}")
    return number


def _path(
    section: typ.Mapping[str, typ.Any], default: Path | None, base: Path | None, name: str
) -> Path | None:
    value = section.get(name)
    if value is None or value == "":
        path = default
    else:
        path = Path(str(value))
    if path is not None and base is not None and not path.is_absolute():
        path = base / path
    return path


def _entries(section: typ.Mapping[str, typ.Any], key: str, name: str) -> list[typ.Mapping]:
    value = section.get(name)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"{key}.{name} must be a list, got {type(value).__name__}")
    entries = []
    for index, item in enumerate(value):
        if not isinstance(item, typ.Mapping):
            raise ConfigurationError(f"{key}.{name}[{index}] must be a mapping, got {item!r}")
        entries.append(item)
    return entries


def _heading_levels(section: typ.Mapping[str, typ.Any]) -> tuple[int, ...]:
    value = _pick(section, "heading_levels", "headingLevels")
    if value is None:
        return DEFAULT_CONTENT.heading_levels
    if not isinstance(value, list) or not value:
        raise ConfigurationError(f"content.headingLevels must be a non-empty list, got {value!r}")
    levels = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, int) or not 1 <= item <= 6:
            raise ConfigurationError(f"content.headingLevels entries must be 1-6, got {item!r}")
        levels.append(item)
    return tuple(sorted(set(levels)))


def merge_with_defaults(loaded: typ.Mapping[str, typ.Any], base_dir: Path | None = None) -> SiteConfig:
    """Build a validated ``SiteConfig`` from a loaded mapping.

    Missing keys fall back to their defaults; present keys with unusable values
    raise ``ConfigurationError`` naming the dotted key. ``base_dir`` anchors
    relative entries of the ``paths`` section.
    """
    if not isinstance(loaded, typ.Mapping):
        raise ConfigurationError(f"config must be a mapping, got {type(loaded).__name__}")

    site_data = _section(loaded, "site")
    site = SiteSettings(
        title=_str(site_data, DEFAULT_SITE.title, "title"),
        description=_str(site_data, DEFAULT_SITE.description, "description"),
        language=_str(site_data, DEFAULT_SITE.language, "language"),
        url=_str(site_data, DEFAULT_SITE.url, "url").rstrip("/"),
        author=_str(site_data, DEFAULT_SITE.author, "author"),
    )

    content_data = _section(loaded, "content")
    content = ContentSettings(
        posts_per_page=_int(
            content_data, 10, "content.postsPerPage", "posts_per_page", "postsPerPage", minimum=1
        ),
        words_per_minute=_int(
            content_data, 200, "content.wordsPerMinute", "words_per_minute", "wordsPerMinute", minimum=1
        ),
        default_author=_str(content_data, "", "default_author", "defaultAuthor"),
        heading_levels=_heading_levels(content_data),
        feed_limit=_int(content_data, 20, "content.feedLimit", "feed_limit", "feedLimit", minimum=0),
        date_format=_str(content_data, DEFAULT_CONTENT.date_format, "date_format", "dateFormat"),
    )

    navigation_data = _section(loaded, "navigation")
    if "items" in navigation_data:
        navigation = tuple(
            NavItem(
                label=_str(item, "", "label", "text", "title"),
                url=_str(item, "/", "url", "href"),
            )
            for item in _entries(navigation_data, "navigation", "items")
        )
    else:
        navigation = DEFAULT_NAVIGATION

    social_data = _section(loaded, "social")
    social = tuple(
        SocialLink(
            name=_str(item, "", "name", "platform"),
            url=_str(item, "", "url"),
            icon=_str(item, "", "icon"),
        )
        for item in _entries(social_data, "social", "links")
    )

    paths_data = _section(loaded, "paths")
    paths = PathSettings(
        content=_path(paths_data, DEFAULT_PATHS.content, base_dir, "content"),
        output=_path(paths_data, DEFAULT_PATHS.output, base_dir, "output"),
        templates=_path(paths_data, None, base_dir, "templates"),
        static=_path(paths_data, DEFAULT_PATHS.static, base_dir, "static"),
    )

    build_data = _section(loaded, "build")
    build = BuildSettings(
        workers=min(_int(build_data, 0, "build.workers", "workers", minimum=0), MAX_WORKERS),
        clean=parse_flag(build_data.get("clean"), default=True),
    )

    return SiteConfig(
        site=site,
        content=content,
        navigation=navigation,
        social=social,
        paths=paths,
        build=build,
    )


def load_site_config(path: Path) -> SiteConfig:
    data = load_config(path)
    try:
        return merge_with_defaults(data, base_dir=path.resolve().parent)
    except ConfigurationError as exc:
        if exc.source is None:
            raise ConfigurationError(str(exc), path) from exc
        raise


def replace_settings(config: SiteConfig, **sections: typ.Mapping[str, typ.Any]) -> SiteConfig:
    """Return ``config`` with individual settings overridden, e.g. from CLI flags."""
    changes = {}
    for name, values in sections.items():
        values = {key: value for key, value in values.items() if value is not None}
        if values:
            changes[name] = dc.replace(getattr(config, name), **values)
    if "content" in changes and changes["content"].posts_per_page < 1:
        raise ConfigurationError(
            f"content.postsPerPage must be at least 1, got {changes['content'].posts_per_page}"
        )
    if "build" in changes:
        workers = changes["build"].workers
        if workers < 0:
            raise ConfigurationError(f"build.workers must be at least 0, got {workers}")
        changes["build"] = dc.replace(changes["build"], workers=min(workers, MAX_WORKERS))
    return dc.replace(config, **changes)


def resolve_workers(config: SiteConfig, cpu_count: int | None) -> int:
    workers = config.build.workers
    if workers <= 0:
        workers = cpu_count or 1
    return max(1, min(workers, MAX_WORKERS))
