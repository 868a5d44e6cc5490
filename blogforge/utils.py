from __future__ import annotations

import datetime as dt
import re

SLUG_RE = re.compile(r"[^\w]+", re.UNICODE)
TRUE_WORDS = frozenset({"1", "true", "yes", "y", "on"})
FALSE_WORDS = frozenset({"0", "false", "no", "n", "off", ""})


def parse_flag(value: object, default: bool = False) -> bool:
    """Read a front matter or config switch; unrecognised words keep ``default``."""
    if value is None:
        return default
    if isinstance(value, (bool, int, float)):
        return bool(value)
    word = str(value).strip().lower()
    if word in TRUE_WORDS:
        return True
    if word in FALSE_WORDS:
        return False
    return default


def slugify(text: str) -> str:
    text = text.lower()
    text = SLUG_RE.sub("-", text)
    text = text.strip("-_").replace("_", "-")
    return text or "post"


def join_url(base: str, path: str) -> str:
    base = base.rstrip("/")
    path = path.lstrip("/")
    if not path:
        return f"{base}/" if base else "/"
    return f"{base}/{path}"


def as_datetime(value: dt.date) -> dt.datetime:
    if isinstance(value, dt.datetime):
        return value
    return dt.datetime.combine(value, dt.time())


def rfc822_date(value: dt.date) -> str:
    value = as_datetime(value).replace(tzinfo=dt.timezone.utc)
    return value.strftime("%a, %d %b %Y %H:%M:%S %z")


def iso_date(value: dt.date) -> str:
    if isinstance(value, dt.datetime):
        value = value.date()
    return value.isoformat()
