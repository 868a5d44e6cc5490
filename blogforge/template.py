"""Template engine used to render every HTML page of the site.

Templates are plain text with four kinds of markup:

``{{ path | filter }}``
    Interpolate a dot-path from the context, optionally through filters.
``{% if expr %}...{% elif expr %}...{% else %}...{% endif %}``
    Conditionals. ``expr`` supports dot-paths, literals, ``and``, ``or``,
    ``not``, comparisons and parentheses. Missing paths are falsy.
``{% for item in path %}...{% else %}...{% endfor %}``
    Loops over a list or tuple; ``loop.index``, ``loop.first`` and friends are
    available in the body.
``{% extends "base" %}``, ``{% block name %}...{% endblock %}``, ``{% include "partial" %}``
    Layout inheritance and static includes, resolved when the template is
    compiled and checked for cycles.

Compilation turns a template into an immutable node tree that is cached per
engine; rendering walks that tree against a read-only ``Context``.
"""

from __future__ import annotations

import collections
import dataclasses as dc
import datetime as dt
import html
import inspect
import logging
import re
import typing as typ
from collections.abc import Mapping
from pathlib import Path, PurePosixPath
from urllib.parse import quote

from .cache import TemplateCache
from .config import SiteConfig
from .errors import TemplateError

logger = logging.getLogger(__name__)

PACKAGE_TEMPLATES = Path(__file__).resolve().parent / "templates"
TEMPLATE_SUFFIX = ".html"

TOKEN_RE = re.compile(r"(\{\{.*?\}\}|\{%.*?%\}|\{#.*?#\})", re.DOTALL)
STRAY_RE = re.compile(r"\{\{|\{%|%\}")
FOR_RE = re.compile(r"^(?P<target>[A-Za-z_]\w*)\s+in\s+(?P<iterable>.+)$", re.DOTALL)
NAME_RE = re.compile(r"""^(?P<quote>["']?)(?P<name>[^"'\s]+)(?P=quote)$""")
BLOCK_NAME_RE = re.compile(r"^\w+$")
EXPR_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<number>\d+(?:\.\d+)?)
      | (?P<op>==|!=|<=|>=|<|>|\(|\)|!)
      | (?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*)
    )""",
    re.VERBOSE,
)
ESCAPE_RE = re.compile(r"\\(.)")
URI_SAFE = "-_.!~*'()"
DOT_SEGMENTS = frozenset({".", ".."})
KEYWORDS = {"and", "or", "not"}
LITERALS = {"true": True, "false": False, "none": None, "null": None}


class _Missing:
    __slots__ = ()

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def _lookup(value: typ.Any, key: str) -> typ.Any:
    if isinstance(value, Mapping):
        return value.get(key, MISSING)
    if isinstance(value, (list, tuple)):
        if key.isdigit():
            index = int(key)
            return value[index] if index < len(value) else MISSING
        if key == "length":
            return len(value)
        return MISSING
    if key.startswith("_"):
        return MISSING
    return getattr(value, key, MISSING)


class Context(Mapping):
    """Read-only, layered data environment for one render."""

    __slots__ = ("_maps",)

    def __init__(self, data: typ.Mapping[str, typ.Any] | None = None) -> None:
        self._maps = collections.ChainMap(dict(data or {}))

    def child(self, values: typ.Mapping[str, typ.Any]) -> Context:
        context = Context.__new__(Context)
        context._maps = self._maps.new_child(dict(values))
        return context

    def resolve(self, parts: tuple[str, ...]) -> typ.Any:
        value = self._maps.get(parts[0], MISSING)
        for part in parts[1:]:
            if value is MISSING or value is None:
                return MISSING
            value = _lookup(value, part)
        return value

    def __getitem__(self, key: str) -> typ.Any:
        return self._maps[key]

    def __iter__(self) -> typ.Iterator[str]:
        return iter(self._maps)

    def __len__(self) -> int:
        return len(self._maps)


def to_text(value: typ.Any) -> str:
    if value is MISSING or value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ", ".join(to_text(item) for item in value)
    if isinstance(value, dt.date):
        return value.isoformat()
    return str(value)


# Expressions


@dc.dataclass(frozen=True, slots=True)
class Literal:
    value: typ.Any

    def evaluate(self, context: Context) -> typ.Any:
        return self.value


@dc.dataclass(frozen=True, slots=True)
class PathRef:
    parts: tuple[str, ...]

    def evaluate(self, context: Context) -> typ.Any:
        return context.resolve(self.parts)


@dc.dataclass(frozen=True, slots=True)
class Not:
    operand: Expression

    def evaluate(self, context: Context) -> bool:
        return not self.operand.evaluate(context)


@dc.dataclass(frozen=True, slots=True)
class BoolOp:
    op: str
    operands: tuple[Expression, ...]

    def evaluate(self, context: Context) -> bool:
        if self.op == "and":
            return all(operand.evaluate(context) for operand in self.operands)
        return any(operand.evaluate(context) for operand in self.operands)


COMPARATORS: dict[str, typ.Callable[[typ.Any, typ.Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}


@dc.dataclass(frozen=True, slots=True)
class Compare:
    op: str
    left: Expression
    right: Expression

    def evaluate(self, context: Context) -> bool:
        left = self.left.evaluate(context)
        right = self.right.evaluate(context)
        if left is MISSING:
            left = None
        if right is MISSING:
            right = None
        try:
            return bool(COMPARATORS[self.op](left, right))
        except TypeError:
            return False


Expression = typ.Union[Literal, PathRef, Not, BoolOp, Compare]


class ExpressionParser:
    """Recursive-descent parser for condition and output expressions.

    Grammar::

        expr    := and ("or" and)*
        and     := not ("and" not)*
        not     := ("not" | "!") not | compare
        compare := primary (("==" | "!=" | "<" | "<=" | ">" | ">=") primary)?
        primary := STRING | NUMBER | "true" | "false" | "none" | PATH | "(" expr ")"
    """

    def __init__(self, text: str, template: str | None = None) -> None:
        self.text = text
        self.template = template
        self.tokens = self._tokenize(text)
        self.pos = 0

    def _error(self, message: str) -> TemplateError:
        return TemplateError(f"{message} in expression {self.text.strip()!r}", self.template)

    def _tokenize(self, text: str) -> list[tuple[str, str]]:
        tokens = []
        pos = 0
        text = text.rstrip()
        while pos < len(text):
            match = EXPR_TOKEN_RE.match(text, pos)
            if not match or match.end() == pos:
                raise self._error(f"unexpected character {text[pos:].lstrip()[:1]!r}")
            kind = match.lastgroup
            tokens.append((kind, match.group(kind)))
            pos = match.end()
        return tokens

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _accept(self, kind: str, *values: str) -> str | None:
        token = self._peek()
        if token and token[0] == kind and (not values or token[1] in values):
            self.pos += 1
            return token[1]
        return None

    def parse(self) -> Expression:
        if not self.tokens:
            raise self._error("empty expression")
        expression = self._or()
        if self.pos != len(self.tokens):
            raise self._error(f"unexpected {self.tokens[self.pos][1]!r}")
        return expression

    def _or(self) -> Expression:
        operands = [self._and()]
        while self._accept("name", "or"):
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else BoolOp("or", tuple(operands))

    def _and(self) -> Expression:
        operands = [self._not()]
        while self._accept("name", "and"):
            operands.append(self._not())
        return operands[0] if len(operands) == 1 else BoolOp("and", tuple(operands))

    def _not(self) -> Expression:
        if self._accept("name", "not") or self._accept("op", "!"):
            return Not(self._not())
        return self._compare()

    def _compare(self) -> Expression:
        left = self._primary()
        op = self._accept("op", *COMPARATORS)
        if op is None:
            return left
        return Compare(op, left, self._primary())

    def _primary(self) -> Expression:
        token = self._peek()
        if token is None:
            raise self._error("unexpected end")
        kind, value = token
        self.pos += 1
        if kind == "string":
            return Literal(ESCAPE_RE.sub(r"\1", value[1:-1]))
        if kind == "number":
            return Literal(float(value) if "." in value else int(value))
        if kind == "op" and value == "(":
            expression = self._or()
            if not self._accept("op", ")"):
                raise self._error("missing ')'")
            return expression
        if kind == "name":
            if value in KEYWORDS:
                raise self._error(f"unexpected {value!r}")
            if value.lower() in LITERALS:
                return Literal(LITERALS[value.lower()])
            return PathRef(tuple(value.split(".")))
        raise self._error(f"unexpected {value!r}")


def parse_expression(text: str, template: str | None = None) -> Expression:
    return ExpressionParser(text, template).parse()


# Filters


def quote_segment(value: typ.Any) -> str:
    """Percent-encode ``value`` for use as one URL path segment.

    ``.`` and ``..`` are encoded as ``%2E`` so they never act as relative segments.
    """
    text = quote(to_text(value), safe=URI_SAFE)
    if text in DOT_SEGMENTS:
        return text.replace(".", "%2E")
    return text


def _default(value: typ.Any, fallback: typ.Any = "") -> typ.Any:
    if value is MISSING or value is None or value == "":
        return fallback
    return value


def _join(value: typ.Any, separator: typ.Any = ", ") -> str:
    if isinstance(value, (list, tuple)):
        return to_text(separator).join(to_text(item) for item in value)
    return to_text(value)


def _date(value: typ.Any, fmt: typ.Any = "%Y-%m-%d") -> str:
    if isinstance(value, str):
        try:
            value = dt.date.fromisoformat(value)
        except ValueError:
            return value
    if isinstance(value, dt.date):
        return value.strftime(to_text(fmt))
    return to_text(value)


def _length(value: typ.Any) -> int:
    if isinstance(value, (str, list, tuple, Mapping)):
        return len(value)
    return 0


FILTERS: dict[str, typ.Callable[..., typ.Any]] = {
    "urlencode": quote_segment,
    "encodeURIComponent": quote_segment,
    "escape": lambda value: html.escape(to_text(value)),
    "e": lambda value: html.escape(to_text(value)),
    "lower": lambda value: to_text(value).lower(),
    "upper": lambda value: to_text(value).upper(),
    "default": _default,
    "join": _join,
    "date": _date,
    "length": _length,
}


@dc.dataclass(frozen=True, slots=True)
class FilterCall:
    name: str
    args: tuple[Expression, ...] = ()

    def apply(self, value: typ.Any, context: Context) -> typ.Any:
        args = [arg.evaluate(context) for arg in self.args]
        try:
            return FILTERS[self.name](value, *args)
        except (TypeError, ValueError) as exc:
            raise TemplateError(f"filter '{self.name}' failed: {exc}") from exc


# Template nodes


@dc.dataclass(frozen=True, slots=True)
class Text:
    text: str


@dc.dataclass(frozen=True, slots=True)
class Output:
    expression: Expression
    filters: tuple[FilterCall, ...] = ()


@dc.dataclass(frozen=True, slots=True)
class If:
    branches: tuple[tuple[Expression, tuple[Node, ...]], ...]
    otherwise: tuple[Node, ...] = ()


@dc.dataclass(frozen=True, slots=True)
class For:
    target: str
    iterable: Expression
    body: tuple[Node, ...]
    otherwise: tuple[Node, ...] = ()


@dc.dataclass(frozen=True, slots=True)
class Block:
    name: str
    body: tuple[Node, ...]


@dc.dataclass(frozen=True, slots=True)
class Include:
    name: str


@dc.dataclass(frozen=True, slots=True)
class Extends:
    name: str


Node = typ.Union[Text, Output, If, For, Block, Include, Extends]


def _split_pipes(text: str) -> list[str]:
    parts = []
    current = []
    quote_char = ""
    escaped = False
    for char in text:
        if escaped:
            escaped = False
        elif char == "\\" and quote_char:
            escaped = True
        elif quote_char:
            if char == quote_char:
                quote_char = ""
        elif char in "\"'":
            quote_char = char
        elif char == "|":
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


class TemplateParser:
    def __init__(self, source: str, name: str) -> None:
        self.name = name
        self.tokens = self._tokenize(source)
        self.pos = 0

    @staticmethod
    def _tokenize(source: str) -> list[tuple[str, str]]:
        tokens = []
        for index, part in enumerate(TOKEN_RE.split(source)):
            if not part:
                continue
            if index % 2 == 0:
                text = STRAY_RE.sub("", part)
                if text:
                    tokens.append(("text", text))
            elif part.startswith("{{"):
                tokens.append(("var", part[2:-2].strip()))
            elif part.startswith("{%"):
                tokens.append(("tag", part[2:-2].strip()))
        return tokens

    def _error(self, message: str) -> TemplateError:
        return TemplateError(message, self.name)

    def parse(self) -> tuple[Node, ...]:
        nodes, _, _ = self._parse_until(())
        return nodes

    def _parse_until(self, ends: tuple[str, ...]) -> tuple[tuple[Node, ...], str | None, str]:
        nodes: list[Node] = []
        while self.pos < len(self.tokens):
            kind, value = self.tokens[self.pos]
            self.pos += 1
            if kind == "text":
                nodes.append(Text(value))
                continue
            if kind == "var":
                if value:
                    nodes.append(self._output(value))
                continue
            keyword, _, rest = value.partition(" ")
            rest = rest.strip()
            if keyword in ends:
                return tuple(nodes), keyword, rest
            if keyword == "if":
                nodes.append(self._if(rest))
            elif keyword == "for":
                nodes.append(self._for(rest))
            elif keyword == "block":
                nodes.append(self._block(rest))
            elif keyword == "extends":
                nodes.append(Extends(self._template_name(rest, keyword)))
            elif keyword == "include":
                nodes.append(Include(self._template_name(rest, keyword)))
            elif keyword in {"elif", "else", "endif", "endfor", "endblock"}:
                raise self._error(f"unexpected {{% {keyword} %}}")
            else:
                logger.debug("Dropping unknown tag {%% %s %%} in %s", value, self.name)
        if ends:
            raise self._error(f"missing {{% {ends[-1]} %}}")
        return tuple(nodes), None, ""

    def _output(self, value: str) -> Output:
        head, *filter_parts = _split_pipes(value)
        expression = parse_expression(head, self.name)
        filters = []
        for part in filter_parts:
            name, _, arg_text = part.strip().partition(":")
            name = name.strip()
            if name not in FILTERS:
                raise self._error(f"unknown filter '{name}'")
            args = (parse_expression(arg_text, self.name),) if arg_text.strip() else ()
            try:
                inspect.signature(FILTERS[name]).bind(None, *args)
            except TypeError:
                raise self._error(f"filter '{name}' does not take {len(args)} argument(s)") from None
            filters.append(FilterCall(name, args))
        return Output(expression, tuple(filters))

    def _if(self, condition: str) -> If:
        branches = []
        expression = parse_expression(condition, self.name)
        while True:
            body, end, rest = self._parse_until(("elif", "else", "endif"))
            branches.append((expression, body))
            if end == "elif":
                expression = parse_expression(rest, self.name)
                continue
            otherwise: tuple[Node, ...] = ()
            if end == "else":
                otherwise, _, _ = self._parse_until(("endif",))
            return If(tuple(branches), otherwise)

    def _for(self, header: str) -> For:
        match = FOR_RE.match(header)
        if not match:
            raise self._error(f"malformed for loop '{header}'")
        iterable = parse_expression(match.group("iterable"), self.name)
        body, end, _ = self._parse_until(("else", "endfor"))
        otherwise: tuple[Node, ...] = ()
        if end == "else":
            otherwise, _, _ = self._parse_until(("endfor",))
        return For(match.group("target"), iterable, body, otherwise)

    def _block(self, name: str) -> Block:
        if not BLOCK_NAME_RE.match(name):
            raise self._error(f"invalid block name '{name}'")
        body, _, end_name = self._parse_until(("endblock",))
        if end_name and end_name != name:
            raise self._error(f"block '{name}' closed by endblock '{end_name}'")
        return Block(name, body)

    def _template_name(self, text: str, keyword: str) -> str:
        match = NAME_RE.match(text)
        if not match:
            raise self._error(f"malformed {keyword} '{text}'")
        return match.group("name")


# Tree helpers


def _map_bodies(node: Node, fn: typ.Callable[[tuple[Node, ...]], tuple[Node, ...]]) -> Node:
    if isinstance(node, If):
        return If(
            tuple((condition, fn(body)) for condition, body in node.branches),
            fn(node.otherwise),
        )
    if isinstance(node, For):
        return dc.replace(node, body=fn(node.body), otherwise=fn(node.otherwise))
    if isinstance(node, Block):
        return dc.replace(node, body=fn(node.body))
    return node


def _collect_blocks(nodes: tuple[Node, ...], blocks: dict[str, Block] | None = None) -> dict[str, Block]:
    blocks = {} if blocks is None else blocks
    for node in nodes:
        if isinstance(node, Block):
            blocks.setdefault(node.name, node)
            _collect_blocks(node.body, blocks)
        elif isinstance(node, If):
            for _, body in node.branches:
                _collect_blocks(body, blocks)
            _collect_blocks(node.otherwise, blocks)
        elif isinstance(node, For):
            _collect_blocks(node.body, blocks)
            _collect_blocks(node.otherwise, blocks)
    return blocks


def _substitute_blocks(nodes: tuple[Node, ...], blocks: dict[str, Block]) -> tuple[Node, ...]:
    result = []
    for node in nodes:
        if isinstance(node, Block) and node.name in blocks:
            node = Block(node.name, blocks[node.name].body)
        result.append(_map_bodies(node, lambda body: _substitute_blocks(body, blocks)))
    return tuple(result)


def normalize_name(name: str) -> str:
    name = name.strip()
    path = PurePosixPath(name)
    if not name or path.is_absolute() or ".." in path.parts:
        raise TemplateError("invalid template name", name)
    if not path.suffix:
        path = path.with_suffix(TEMPLATE_SUFFIX)
    return path.as_posix()


# Loaders


class FileSystemLoader:
    def __init__(self, root: Path) -> None:
        self.root = root

    def get_source(self, name: str) -> str | None:
        path = self.root / name
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise TemplateError(f"cannot read {path}: {exc}", name) from exc


class DictLoader:
    def __init__(self, templates: typ.Mapping[str, str]) -> None:
        self.templates = {normalize_name(name): source for name, source in templates.items()}

    def get_source(self, name: str) -> str | None:
        return self.templates.get(name)


class ChoiceLoader:
    def __init__(self, loaders: typ.Sequence[typ.Any]) -> None:
        self.loaders = list(loaders)

    def get_source(self, name: str) -> str | None:
        for loader in self.loaders:
            source = loader.get_source(name)
            if source is not None:
                return source
        return None


class TemplateEngine:
    """Compile and render templates from a loader.

    Each engine owns its ``TemplateCache``; call ``invalidate`` (or create a new
    engine) before rebuilding in a long-lived process.
    """

    def __init__(self, loader: typ.Any, cache: TemplateCache | None = None) -> None:
        self.loader = loader
        self.cache = cache or TemplateCache()

    @classmethod
    def for_config(cls, config: SiteConfig) -> TemplateEngine:
        loaders: list[typ.Any] = []
        if config.paths.templates is not None:
            loaders.append(FileSystemLoader(config.paths.templates))
        loaders.append(FileSystemLoader(PACKAGE_TEMPLATES))
        return cls(ChoiceLoader(loaders))

    def invalidate(self) -> None:
        self.cache.invalidate()

    def get_source(self, name: str) -> str:
        name = normalize_name(name)

        def load() -> str:
            source = self.loader.get_source(name)
            if source is None:
                raise TemplateError("template not found", name)
            return source

        return self.cache.get_or_load(("source", name), load)

    def compile(self, name: str) -> tuple[Node, ...]:
        name = normalize_name(name)
        return self._compile_named(name, ())

    def _compile_named(self, name: str, chain: tuple[str, ...]) -> tuple[Node, ...]:
        if name in chain:
            cycle = " -> ".join((*chain, name))
            raise TemplateError(f"template cycle detected: {cycle}", chain[0])
        return self.cache.get_or_load(
            ("compiled", name),
            lambda: self._compile_source(self.get_source(name), name, (*chain, name)),
        )

    def _compile_source(self, source: str, name: str, chain: tuple[str, ...]) -> tuple[Node, ...]:
        nodes = TemplateParser(source, name).parse()
        nodes = self._expand_includes(nodes, chain)
        parents = [node for node in nodes if isinstance(node, Extends)]
        if not parents:
            return nodes
        if len(parents) > 1:
            raise TemplateError("multiple extends tags", name)
        parent_nodes = self._compile_named(normalize_name(parents[0].name), chain)
        return _substitute_blocks(parent_nodes, _collect_blocks(nodes))

    def _expand_includes(self, nodes: tuple[Node, ...], chain: tuple[str, ...]) -> tuple[Node, ...]:
        result: list[Node] = []
        for node in nodes:
            if isinstance(node, Include):
                result.extend(self._compile_named(normalize_name(node.name), chain))
            else:
                result.append(_map_bodies(node, lambda body: self._expand_includes(body, chain)))
        return tuple(result)

    def render(self, name: str, context: typ.Mapping[str, typ.Any] | Context) -> str:
        return self._render(self.compile(name), context)

    def render_string(
        self,
        source: str,
        context: typ.Mapping[str, typ.Any] | Context,
        name: str = "<string>",
    ) -> str:
        return self._render(self._compile_source(source, name, (name,)), context)

    def _render(self, nodes: tuple[Node, ...], context: typ.Mapping[str, typ.Any] | Context) -> str:
        if not isinstance(context, Context):
            context = Context(context)
        out: list[str] = []
        _render_nodes(nodes, context, out)
        return "".join(out)


def _render_nodes(nodes: tuple[Node, ...], context: Context, out: list[str]) -> None:
    for node in nodes:
        if isinstance(node, Text):
            out.append(node.text)
        elif isinstance(node, Output):
            value = node.expression.evaluate(context)
            for call in node.filters:
                value = call.apply(value, context)
            out.append(to_text(value))
        elif isinstance(node, If):
            for condition, body in node.branches:
                if condition.evaluate(context):
                    _render_nodes(body, context, out)
                    break
            else:
                _render_nodes(node.otherwise, context, out)
        elif isinstance(node, For):
            items = node.iterable.evaluate(context)
            if not isinstance(items, (list, tuple)) or not items:
                _render_nodes(node.otherwise, context, out)
                continue
            length = len(items)
            for index, item in enumerate(items):
                loop = {
                    "index": index + 1,
                    "index0": index,
                    "first": index == 0,
                    "last": index == length - 1,
                    "length": length,
                }
                _render_nodes(node.body, context.child({node.target: item, "loop": loop}), out)
        elif isinstance(node, Block):
            _render_nodes(node.body, context, out)
