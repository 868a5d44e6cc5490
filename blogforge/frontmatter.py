from __future__ import annotations

import json
import re
import typing as typ

FENCE = "---"
BLOCK_RE = re.compile(r"\A---[ \t]*\n(?P<meta>.*?)^---[ \t]*(?:\n|\Z)", re.DOTALL | re.MULTILINE)
FIELD_RE = re.compile(r"^(?P<key>[^\s:]+)\s*:(?P<value>.*)$")
QUOTES = ("'", '"')

Value = typ.Union[str, list[str]]


def _unquote(value: str) -> tuple[str, bool]:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in QUOTES:
        return value[1:-1], True
    return value, False


def _json_list(value: str) -> list[typ.Any] | None:
    try:
        items = json.loads(value)
    except json.JSONDecodeError:
        return None
    return items if isinstance(items, list) else None


def parse_list(value: str) -> list[str]:
    value = value.strip()
    if value.startswith("[") and value.endswith("]"):
        items = _json_list(value)
        if items is None:
            items = _json_list(value.replace("'", '"'))
        if items is not None:
            return [str(item) for item in items if item is not None and str(item) != ""]
        inner = value[1:-1]
        parts = [_unquote(item.strip())[0].strip() for item in inner.split(",")]
    else:
        parts = [item.strip() for item in value.split(",")]
    return [item for item in parts if item]


def parse_value(raw: str) -> Value:
    value = raw.strip()
    unquoted, quoted = _unquote(value)
    if quoted:
        return unquoted
    if value.startswith("[") and value.endswith("]"):
        return parse_list(value)
    return value


def parse_front_matter(text: str) -> tuple[dict[str, Value], str]:
    """Split ``text`` into its leading ``---`` block and the Markdown body.

    Text without a closed leading block is returned whole as the body.
    Windows and old Mac line endings are read as plain newlines.
    Lines that are not ``key: value`` pairs are ignored; keys are lower-cased.
    """
    text = text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    match = BLOCK_RE.match(text)
    if match is None:
        return {}, text

    meta: dict[str, Value] = {}
    for line in match.group("meta").splitlines():
        field = FIELD_RE.match(line.strip())
        if field is None or field.group("key").startswith("#"):
            continue
        meta[field.group("key").lower()] = parse_value(field.group("value"))
    return meta, text[match.end() :]


def _dump_scalar(value: object) -> str:
    text = str(value)
    if text != text.strip() or text[:1] in QUOTES + ("[",) or text == "":
        return f'"{text}"'
    return text


def dump_front_matter(meta: typ.Mapping[str, object], body: str = "") -> str:
    lines = [FENCE]
    for key, value in meta.items():
        if isinstance(value, (list, tuple)):
            items = ", ".join(json.dumps(str(item), ensure_ascii=False) for item in value)
            lines.append(f"{key}: [{items}]")
        else:
            lines.append(f"{key}: {_dump_scalar(value)}")
    lines.append(FENCE)
    text = "\n".join(lines) + "\n"
    if body:
        text += "\n" + body
    return text
