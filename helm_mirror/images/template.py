"""Go-template engine used to render chart templates in-process.

This module handles:
- Splitting template source into text and ``{{ }}`` actions, with
  ``{{-`` / ``-}}`` whitespace trimming and ``{{/* */}}`` comments
- Parsing actions into a tree: ``if``/``else if``/``else``, ``with``,
  ``range`` (with ``break``/``continue``), ``define``, ``template``,
  ``block`` and variable declarations
- Evaluating pipelines: field chains (``.Values.a``, ``$.Chart.Name``,
  ``$v.name``, ``(pipeline).field``), literals, parenthesized pipelines
  and the Helm/Sprig functions charts use to build image references
  (``default``, ``include``, ``tpl``, ``printf``, ``toYaml``, ...)

Anything outside that subset is an error, never silently empty output:
unknown functions fail when the template is parsed, field access on a
missing or non-map value fails when it is executed.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import re
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import yaml

from helm_mirror.errors import RenderError

logger = logging.getLogger(__name__)

ACTION_OPEN = "{{"
ACTION_CLOSE = "}}"

# include/template/tpl nesting allowed before a render is aborted
MAX_INCLUDE_DEPTH = 50

# Functions whose arguments are evaluated only as far as needed
SHORT_CIRCUIT = frozenset({"and", "or"})

_EXPR_TOKEN_RE = re.compile(
    r'"(?:\\.|[^"\\])*"|`[^`]*`|:=|[()|,=]|[^\s()|,:=]+|\S'
)
_NUMBER_RE = re.compile(r"^[-+]?\d+(\.\d*)?([eE][-+]?\d+)?$")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_]\w*$")
_VARIABLE_RE = re.compile(r"^\$\w*$")
_TEMPLATE_NAME_RE = re.compile(r'^("(?:\\.|[^"\\])*"|`[^`]*`)\s*(.*)$', re.DOTALL)
_PRINTF_VERB_RE = re.compile(r"%([-+# 0]*)(\d*)(?:\.(\d+))?([%svdqftxT])")
_TRIM_CHARS = " \t\r\n"


@dataclass
class Action:
    """One ``{{ }}`` action in a template."""

    body: str
    trim_left: bool = False
    trim_right: bool = False
    line: int = field(default=1, compare=False)


def tokenize(source: str, name: str = "template") -> Iterator[str | Action]:
    """Split template source into text chunks and actions.

    Raises:
        RenderError: If an action is not closed.
    """
    pos = 0
    line = 1
    while True:
        start = source.find(ACTION_OPEN, pos)
        if start < 0:
            if pos < len(source):
                yield source[pos:]
            return
        if start > pos:
            yield source[pos:start]
        line += source.count("\n", pos, start)

        end = source.find(ACTION_CLOSE, start + len(ACTION_OPEN))
        if end < 0:
            raise RenderError(f"{name}:{line}: unclosed action")

        body = source[start + len(ACTION_OPEN) : end]
        trim_left = body[:1] == "-" and body[1:2].isspace()
        trim_right = body[-1:] == "-" and body[-2:-1].isspace()
        if trim_left:
            body = body[1:]
        if trim_right:
            body = body[:-1]
        yield Action(
            body=body.strip(), trim_left=trim_left, trim_right=trim_right, line=line
        )
        line += body.count("\n")
        pos = end + len(ACTION_CLOSE)


def _trimmed(tokens: list[str | Action]) -> list[str | Action]:
    """Apply trim markers to the text around each action."""
    for index, token in enumerate(tokens):
        if not isinstance(token, Action):
            continue
        if token.trim_left and index > 0 and isinstance(tokens[index - 1], str):
            tokens[index - 1] = tokens[index - 1].rstrip(_TRIM_CHARS)
        if (
            token.trim_right
            and index + 1 < len(tokens)
            and isinstance(tokens[index + 1], str)
        ):
            tokens[index + 1] = tokens[index + 1].lstrip(_TRIM_CHARS)
    return tokens


# --- Values ---------------------------------------------------------------


def to_text(value: Any) -> str:
    """Format a value the way templates print it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(to_text(v) for v in value) + "]"
    if isinstance(value, Mapping):
        items = " ".join(f"{k}:{to_text(value[k])}" for k in sorted(value, key=str))
        return f"map[{items}]"
    return str(value)


def _is_empty(value: Any) -> bool:
    if value is None or value is False or value == "":
        return True
    if isinstance(value, (int, float)) and value == 0:
        return True
    return isinstance(value, (list, tuple, Mapping)) and not value


def _truth(value: Any) -> bool:
    return not _is_empty(value)


def _quote(*args: Any) -> str:
    parts = []
    for arg in args:
        text = to_text(arg).replace("\\", "\\\\").replace('"', '\\"')
        parts.append(f'"{text}"')
    return " ".join(parts)


def _format_verb(verb: str, value: Any, precision: str | None) -> str:
    number = isinstance(value, (int, float)) and not isinstance(value, bool)
    if verb == "q":
        return _quote(value)
    if verb == "d" and number:
        return str(int(value))
    if verb == "f" and number:
        return f"{float(value):.{int(precision) if precision else 6}f}"
    if verb == "x":
        if isinstance(value, int) and not isinstance(value, bool):
            return format(value, "x")
        return to_text(value).encode().hex()
    if verb == "T":
        return type(value).__name__
    return to_text(value)


def _printf(fmt: Any, *args: Any) -> str:
    values = iter(args)
    missing = object()

    def substitute(match: re.Match[str]) -> str:
        flags, width, precision, verb = match.groups()
        if verb == "%":
            return "%"
        value = next(values, missing)
        if value is missing:
            return f"%!{verb}(MISSING)"
        text = _format_verb(verb, value, precision)
        if width:
            if "-" in flags:
                return text.ljust(int(width))
            fill = "0" if "0" in flags and verb in "df" else " "
            return text.rjust(int(width), fill)
        return text

    return _PRINTF_VERB_RE.sub(substitute, to_text(fmt))


def _print(*args: Any) -> str:
    # Operands are separated by a space when neither side is a string
    parts = []
    for index, arg in enumerate(args):
        if index and not isinstance(arg, str) and not isinstance(args[index - 1], str):
            parts.append(" ")
        parts.append(to_text(arg))
    return "".join(parts)


def _to_yaml(value: Any) -> str:
    if value is None:
        return "null"
    text = yaml.safe_dump(value, default_flow_style=False, allow_unicode=True)
    return text.removesuffix("\n...\n").removesuffix("\n")


def _indent(spaces: int, text: Any) -> str:
    pad = " " * int(spaces)
    return pad + to_text(text).replace("\n", "\n" + pad)


def _dict(*pairs: Any) -> dict[str, Any]:
    result = {}
    for index in range(0, len(pairs), 2):
        value = pairs[index + 1] if index + 1 < len(pairs) else ""
        result[to_text(pairs[index])] = value
    return result


def _index(collection: Any, *keys: Any) -> Any:
    for key in keys:
        if isinstance(collection, Mapping):
            collection = collection.get(to_text(key))
        elif isinstance(collection, (list, tuple, str)):
            collection = collection[int(key)]
        elif collection is None:
            raise ValueError("index of nil pointer")
        else:
            raise ValueError(f"can't index item of type {type(collection).__name__}")
    return collection


def _trunc(length: int, text: Any) -> str:
    text = to_text(text)
    return text[: int(length)] if length >= 0 else text[int(length) :]


# --- Parse tree -----------------------------------------------------------


@dataclass
class Literal:
    value: Any


@dataclass
class Identifier:
    """A function name."""

    name: str


@dataclass
class Field:
    """A field chain rooted at ``.``, a variable or a parenthesized pipeline."""

    base: str | Pipeline
    path: tuple[str, ...] = ()


@dataclass
class Command:
    args: list[Any]


@dataclass
class Pipeline:
    """Commands joined by ``|``, optionally declaring or assigning variables."""

    commands: list[Command]
    variables: list[str] = field(default_factory=list)
    assign: bool = False


@dataclass
class TextNode:
    text: str
    line: int = 0


@dataclass
class ActionNode:
    pipeline: Pipeline
    line: int = 0


@dataclass
class Branch:
    pipeline: Pipeline | None
    body: list[Any]


@dataclass
class ConditionalNode:
    """An ``if`` or ``with`` chain; ``with`` rebinds dot in taken branches."""

    keyword: str
    branches: list[Branch]
    line: int = 0


@dataclass
class RangeNode:
    pipeline: Pipeline
    body: list[Any]
    else_body: list[Any]
    line: int = 0


@dataclass
class TemplateNode:
    name: str
    pipeline: Pipeline | None
    line: int = 0


@dataclass
class LoopControl:
    keyword: str
    line: int = 0


class _ExecError(Exception):
    """Execution failure not yet tagged with its template location."""


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


def _split_keyword(body: str) -> tuple[str, str]:
    parts = body.split(None, 1)
    if not parts:
        return "", ""
    return parts[0], parts[1] if len(parts) > 1 else ""


def _unquote(token: str) -> str:
    if token.startswith("`"):
        return token[1:-1]
    try:
        return json.loads(token)
    except ValueError:
        return token[1:-1]


class _ExpressionParser:
    """Parse the pipeline inside one action."""

    def __init__(self, text: str, where: str, functions: Mapping[str, Any]) -> None:
        self.tokens = [
            (m.group(0), m.start(), m.end()) for m in _EXPR_TOKEN_RE.finditer(text)
        ]
        self.pos = 0
        self.where = where
        self.functions = functions

    def fail(self, message: str) -> RenderError:
        return RenderError(f"{self.where}: {message}")

    def peek(self) -> str | None:
        return self.tokens[self.pos][0] if self.pos < len(self.tokens) else None

    def parse(self, max_variables: int = 1) -> Pipeline:
        pipeline = self.pipeline(max_variables)
        if self.peek() is not None:
            raise self.fail(f"unexpected {self.peek()!r} in operand")
        return pipeline

    def pipeline(self, max_variables: int = 1) -> Pipeline:
        variables, assign = self.declaration()
        if len(variables) > max_variables:
            raise self.fail("too many declarations")
        commands = [self.command()]
        while self.peek() == "|":
            self.pos += 1
            commands.append(self.command())
        return Pipeline(commands=commands, variables=variables, assign=assign)

    def declaration(self) -> tuple[list[str], bool]:
        texts = [t[0] for t in self.tokens[self.pos : self.pos + 4]]
        if not texts or not _VARIABLE_RE.match(texts[0]):
            return [], False
        if len(texts) >= 2 and texts[1] in (":=", "="):
            self.pos += 2
            return [texts[0]], texts[1] == "="
        if (
            len(texts) == 4
            and texts[1] == ","
            and _VARIABLE_RE.match(texts[2])
            and texts[3] in (":=", "=")
        ):
            self.pos += 4
            return [texts[0], texts[2]], texts[3] == "="
        return [], False

    def command(self) -> Command:
        args = []
        while self.peek() not in (None, "|", ")"):
            args.append(self.operand())
        if not args:
            raise self.fail("missing value for command")
        if len(args) > 1 and not isinstance(args[0], Identifier):
            raise self.fail("can't give argument to non-function")
        return Command(args=args)

    def operand(self) -> Any:
        text = self.tokens[self.pos][0]
        self.pos += 1
        if text == "(":
            inner = self.pipeline()
            if self.peek() != ")":
                raise self.fail("unclosed left paren")
            close_end = self.tokens[self.pos][2]
            self.pos += 1
            after = self.tokens[self.pos] if self.pos < len(self.tokens) else None
            if after and after[0].startswith(".") and after[1] == close_end:
                self.pos += 1
                return Field(base=inner, path=self.field_path(after[0]))
            return inner
        if text in (",", ":=", "="):
            raise self.fail(f"unexpected {text!r} in operand")
        return self.term(text)

    def field_path(self, text: str) -> tuple[str, ...]:
        path = tuple(text[1:].split("."))
        if not all(_IDENTIFIER_RE.match(part) for part in path):
            raise self.fail(f"bad field {text!r}")
        return path

    def term(self, text: str) -> Any:
        if text[0] in "\"`":
            return Literal(_unquote(text))
        if text in ("true", "false"):
            return Literal(text == "true")
        if text == "nil":
            return Literal(None)
        if _NUMBER_RE.match(text):
            if text.lstrip("+-").isdigit():
                return Literal(int(text))
            return Literal(float(text))
        if text == ".":
            return Field(base=".")
        if text.startswith("."):
            return Field(base=".", path=self.field_path(text))
        if text.startswith("$"):
            variable, _, rest = text.partition(".")
            if not _VARIABLE_RE.match(variable):
                raise self.fail(f"bad variable {text!r}")
            path = self.field_path("." + rest) if rest else ()
            return Field(base=variable, path=path)
        if _IDENTIFIER_RE.match(text):
            if text in self.functions or text in SHORT_CIRCUIT:
                return Identifier(text)
            raise self.fail(f'function "{text}" not defined')
        raise self.fail(f"unexpected {text!r} in operand")


class _Parser:
    """Build the node tree of one template source."""

    def __init__(self, engine: TemplateEngine, name: str) -> None:
        self.engine = engine
        self.name = name
        self.items: list[str | Action] = []
        self.pos = 0
        self.loop_depth = 0

    def fail(self, action: Action, message: str) -> RenderError:
        return RenderError(f"{self.name}:{action.line}: {message}")

    def parse(self, source: str) -> list[Any]:
        self.items = _trimmed(list(tokenize(source, self.name)))
        self.pos = 0
        nodes, stop = self.node_list()
        if stop is not None:
            keyword, _ = _split_keyword(stop.body)
            raise self.fail(stop, f"unexpected {{{{{keyword}}}}}")
        return nodes

    def pipeline(self, text: str, action: Action, max_variables: int = 1) -> Pipeline:
        where = f"{self.name}:{action.line}"
        parser = _ExpressionParser(text, where, self.engine.functions)
        return parser.parse(max_variables)

    def node_list(self) -> tuple[list[Any], Action | None]:
        """Parse nodes up to an ``end`` or ``else`` action, returned as the stop."""
        nodes: list[Any] = []
        while self.pos < len(self.items):
            item = self.items[self.pos]
            self.pos += 1
            if isinstance(item, str):
                if item:
                    nodes.append(TextNode(item))
                continue
            if item.body.startswith("/*"):
                if not item.body.endswith("*/"):
                    raise self.fail(item, "unclosed comment")
                continue
            keyword, rest = _split_keyword(item.body)
            if keyword in ("end", "else"):
                return nodes, item
            node = self.action(item, keyword, rest)
            if node is not None:
                nodes.append(node)
        return nodes, None

    def expect_end(self, opening: Action, stop: Action | None) -> None:
        if stop is None:
            raise self.fail(opening, "unexpected EOF")
        if stop.body != "end":
            raise self.fail(stop, f"unexpected {{{{{stop.body}}}}}")

    def action(self, item: Action, keyword: str, rest: str) -> Any:
        if keyword in ("if", "with"):
            return self.conditional(item, keyword, rest)
        if keyword == "range":
            return self.range(item, rest)
        if keyword in ("define", "block", "template"):
            return self.template(item, keyword, rest)
        if keyword in ("break", "continue"):
            if rest:
                raise self.fail(item, f"unexpected {rest!r} in {keyword}")
            if not self.loop_depth:
                raise self.fail(item, f"{{{{{keyword}}}}} outside {{{{range}}}}")
            return LoopControl(keyword=keyword, line=item.line)
        return ActionNode(pipeline=self.pipeline(item.body, item), line=item.line)

    def conditional(self, item: Action, keyword: str, rest: str) -> ConditionalNode:
        branches = []
        pipeline: Pipeline | None = self.pipeline(rest, item)
        while True:
            body, stop = self.node_list()
            branches.append(Branch(pipeline=pipeline, body=body))
            if stop is None:
                raise self.fail(item, "unexpected EOF")
            if stop.body == "end":
                break
            stop_keyword, stop_rest = _split_keyword(stop.body)
            if stop_keyword != "else" or pipeline is None:
                raise self.fail(stop, f"unexpected {{{{{stop.body}}}}}")
            chained, chained_rest = _split_keyword(stop_rest)
            if not stop_rest:
                pipeline = None
            elif chained == keyword:
                pipeline = self.pipeline(chained_rest, stop)
            else:
                raise self.fail(stop, f"unexpected {stop_rest!r} after else")
        return ConditionalNode(keyword=keyword, branches=branches, line=item.line)

    def range(self, item: Action, rest: str) -> RangeNode:
        pipeline = self.pipeline(rest, item, max_variables=2)
        self.loop_depth += 1
        try:
            body, stop = self.node_list()
        finally:
            self.loop_depth -= 1
        else_body: list[Any] = []
        if stop is not None and stop.body == "else":
            else_body, stop = self.node_list()
        self.expect_end(item, stop)
        return RangeNode(
            pipeline=pipeline, body=body, else_body=else_body, line=item.line
        )

    def template(self, item: Action, keyword: str, rest: str) -> Any:
        match = _TEMPLATE_NAME_RE.match(rest)
        if match is None:
            raise self.fail(item, f"{keyword} needs a quoted template name")
        name, argument = _unquote(match.group(1)), match.group(2).strip()
        if keyword == "define" and argument:
            raise self.fail(item, f"unexpected {argument!r} in define")
        pipeline = self.pipeline(argument, item) if argument else None
        if keyword == "template":
            return TemplateNode(name=name, pipeline=pipeline, line=item.line)

        loop_depth, self.loop_depth = self.loop_depth, 0
        try:
            body, stop = self.node_list()
        finally:
            self.loop_depth = loop_depth
        self.expect_end(item, stop)
        self.engine.define(name, body)
        if keyword == "block":
            return TemplateNode(name=name, pipeline=pipeline, line=item.line)
        return None


# --- Engine ---------------------------------------------------------------


class TemplateEngine:
    """Parse and execute templates against a render context.

    Named templates (``define``/``block``) registered while parsing are
    shared by every template the engine renders, so partials parsed once
    can be included from any other template.

    Args:
        strict: Fail on ``required`` values that are missing. When False,
            missing required values render empty (Helm's lint mode).
    """

    def __init__(self, strict: bool = False) -> None:
        self.strict = strict
        self.templates: dict[str, list[Any]] = {}
        self._depth = 0
        self.functions: dict[str, Callable[..., Any]] = {
            "default": lambda fallback, value=None: (
                fallback if _is_empty(value) else value
            ),
            "required": self._required,
            "include": self._include,
            "tpl": self._tpl,
            "quote": _quote,
            "squote": lambda *a: " ".join(f"'{to_text(v)}'" for v in a),
            "upper": lambda v: to_text(v).upper(),
            "lower": lambda v: to_text(v).lower(),
            "trim": lambda v: to_text(v).strip(),
            "trimPrefix": lambda p, v: to_text(v).removeprefix(to_text(p)),
            "trimSuffix": lambda s, v: to_text(v).removesuffix(to_text(s)),
            "trunc": _trunc,
            "replace": lambda old, new, v: to_text(v).replace(
                to_text(old), to_text(new)
            ),
            "contains": lambda sub, v: to_text(sub) in to_text(v),
            "hasPrefix": lambda p, v: to_text(v).startswith(to_text(p)),
            "hasSuffix": lambda s, v: to_text(v).endswith(to_text(s)),
            "join": lambda sep, items: to_text(sep).join(
                to_text(v) for v in items or []
            ),
            "cat": lambda *a: " ".join(to_text(v) for v in a if v is not None),
            "toString": to_text,
            "print": _print,
            "printf": _printf,
            "toYaml": _to_yaml,
            "toJson": lambda v: json.dumps(v, separators=(",", ":"), sort_keys=True),
            "indent": _indent,
            "nindent": lambda n, text: "\n" + _indent(n, text),
            "b64enc": lambda v: base64.b64encode(to_text(v).encode()).decode(),
            "b64dec": lambda v: base64.b64decode(to_text(v)).decode(),
            "sha256sum": lambda v: hashlib.sha256(to_text(v).encode()).hexdigest(),
            "eq": lambda a, *others: any(a == b for b in others),
            "ne": lambda a, b: a != b,
            "lt": lambda a, b: a < b,
            "le": lambda a, b: a <= b,
            "gt": lambda a, b: a > b,
            "ge": lambda a, b: a >= b,
            "not": lambda v: not _truth(v),
            "empty": _is_empty,
            "coalesce": lambda *a: next((v for v in a if _truth(v)), None),
            "ternary": lambda yes, no, condition: yes if _truth(condition) else no,
            "list": lambda *a: list(a),
            "dict": _dict,
            "hasKey": lambda d, key: isinstance(d, Mapping) and to_text(key) in d,
            "get": lambda d, key: d.get(to_text(key), ""),
            "index": _index,
            "len": len,
        }

    def define(self, name: str, nodes: list[Any]) -> None:
        """Register a named template.

        An empty redefinition does not replace an existing template.
        """
        empty = all(isinstance(n, TextNode) and not n.text.strip() for n in nodes)
        if name in self.templates and empty:
            return
        logger.debug("Defined template %r", name)
        self.templates[name] = nodes

    def parse(self, source: str, name: str) -> list[Any]:
        """Parse a template and register the templates it defines.

        Raises:
            RenderError: On syntax errors and unknown functions.
        """
        return _Parser(self, name).parse(source)

    def execute(self, nodes: list[Any], context: Any, name: str) -> str:
        """Execute parsed nodes with ``.`` and ``$`` bound to context.

        Raises:
            RenderError: On execution errors or failing ``required`` calls.
        """
        out: list[str] = []
        self._run(nodes, context, [{"$": context}], out, name)
        return "".join(out)

    def render(self, source: str, context: Any, name: str) -> str:
        """Parse and execute one template.

        Args:
            source: Template source.
            context: Root context (the ``.`` of the template).
            name: Template name used in error messages.

        Returns:
            Rendered text.
        """
        return self.execute(self.parse(source, name), context, name)

    # Functions bound to the engine

    def _required(self, message: Any, value: Any = None) -> Any:
        if _is_empty(value):
            if self.strict:
                raise RenderError(to_text(message))
            return ""
        return value

    def _include(self, name: Any, data: Any = None) -> str:
        name = to_text(name)
        nodes = self.templates.get(name)
        if nodes is None:
            raise _ExecError(f'no template "{name}" associated with template')
        return self._nested(nodes, data, name)

    def _tpl(self, source: Any, data: Any) -> str:
        nodes = self.parse(to_text(source), "tpl")
        return self._nested(nodes, data, "tpl")

    def _nested(self, nodes: list[Any], data: Any, name: str) -> str:
        if self._depth >= MAX_INCLUDE_DEPTH:
            raise _ExecError(f"rendering template has a nested reference name: {name}")
        self._depth += 1
        try:
            return self.execute(nodes, data, name)
        finally:
            self._depth -= 1

    # Execution

    def _run(
        self, nodes: list[Any], dot: Any, scope: list[dict], out: list[str], name: str
    ) -> None:
        for node in nodes:
            try:
                self._run_node(node, dot, scope, out, name)
            except _ExecError as e:
                raise RenderError(f"{name}:{node.line}: {e}") from None

    def _run_node(
        self, node: Any, dot: Any, scope: list[dict], out: list[str], name: str
    ) -> None:
        if isinstance(node, TextNode):
            out.append(node.text)
        elif isinstance(node, ActionNode):
            value = self._pipeline(node.pipeline, dot, scope)
            if not node.pipeline.variables:
                out.append(to_text(value))
        elif isinstance(node, ConditionalNode):
            self._conditional(node, dot, scope, out, name)
        elif isinstance(node, RangeNode):
            self._range(node, dot, scope, out, name)
        elif isinstance(node, TemplateNode):
            data = self._pipeline(node.pipeline, dot, scope) if node.pipeline else None
            nodes = self.templates.get(node.name)
            if nodes is None:
                raise _ExecError(f'no such template "{node.name}"')
            out.append(self._nested(nodes, data, node.name))
        elif isinstance(node, LoopControl):
            raise _Break() if node.keyword == "break" else _Continue()

    def _conditional(
        self,
        node: ConditionalNode,
        dot: Any,
        scope: list[dict],
        out: list[str],
        name: str,
    ) -> None:
        for branch in node.branches:
            inner = [*scope, {}]
            if branch.pipeline is None:
                self._run(branch.body, dot, inner, out, name)
                return
            value = self._pipeline(branch.pipeline, dot, inner)
            if _truth(value):
                rebound = value if node.keyword == "with" else dot
                self._run(branch.body, rebound, inner, out, name)
                return

    def _range(
        self, node: RangeNode, dot: Any, scope: list[dict], out: list[str], name: str
    ) -> None:
        value = self._pipeline(node.pipeline, dot, [*scope, {}], declare=False)
        if value is None:
            items: list[tuple[Any, Any]] = []
        elif isinstance(value, Mapping):
            items = [(key, value[key]) for key in sorted(value, key=str)]
        elif isinstance(value, (list, tuple)):
            items = list(enumerate(value))
        elif isinstance(value, int) and not isinstance(value, bool):
            items = [(i, i) for i in range(value)]
        else:
            raise _ExecError(f"range can't iterate over {to_text(value)}")

        if not items:
            self._run(node.else_body, dot, [*scope, {}], out, name)
            return

        variables = node.pipeline.variables
        for key, element in items:
            inner: list[dict] = [*scope, {}]
            if len(variables) == 1:
                inner[-1][variables[0]] = element
            elif len(variables) == 2:
                inner[-1][variables[0]] = key
                inner[-1][variables[1]] = element
            try:
                self._run(node.body, element, inner, out, name)
            except _Continue:
                continue
            except _Break:
                break

    def _pipeline(
        self, pipeline: Pipeline, dot: Any, scope: list[dict], declare: bool = True
    ) -> Any:
        value: Any = None
        for index, command in enumerate(pipeline.commands):
            piped = (value,) if index else ()
            value = self._command(command, piped, dot, scope)
        if declare and pipeline.variables:
            variable = pipeline.variables[0]
            if pipeline.assign:
                self._frame_of(variable, scope)[variable] = value
            else:
                scope[-1][variable] = value
        return value

    def _command(
        self, command: Command, piped: tuple[Any, ...], dot: Any, scope: list[dict]
    ) -> Any:
        head, args = command.args[0], command.args[1:]
        if not isinstance(head, Identifier):
            if piped:
                raise _ExecError("can't give argument to non-function")
            return self._operand(head, dot, scope)

        if head.name in SHORT_CIRCUIT:
            return self._short_circuit(head.name, args, piped, dot, scope)

        values = [self._operand(arg, dot, scope) for arg in args] + list(piped)
        try:
            return self.functions[head.name](*values)
        except (TypeError, ValueError, KeyError, IndexError, AttributeError) as e:
            raise _ExecError(f"error calling {head.name}: {e}") from e

    def _short_circuit(
        self,
        function: str,
        args: list[Any],
        piped: tuple[Any, ...],
        dot: Any,
        scope: list[dict],
    ) -> Any:
        operands = [lambda arg=arg: self._operand(arg, dot, scope) for arg in args]
        operands += [lambda value=value: value for value in piped]
        if not operands:
            raise _ExecError(f"wrong number of args for {function}")
        # and yields its first false operand, or its first true one
        for evaluate in operands:
            value = evaluate()
            if _truth(value) == (function == "or"):
                break
        return value

    def _operand(self, node: Any, dot: Any, scope: list[dict]) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Pipeline):
            return self._pipeline(node, dot, scope)
        if isinstance(node, Identifier):
            return self._command(Command(args=[node]), (), dot, scope)
        return self._field(node, dot, scope)

    def _field(self, node: Field, dot: Any, scope: list[dict]) -> Any:
        if node.base == ".":
            value = dot
        elif isinstance(node.base, Pipeline):
            value = self._pipeline(node.base, dot, scope)
        else:
            value = self._frame_of(node.base, scope)[node.base]
        for key in node.path:
            if isinstance(value, Mapping):
                value = value.get(key)
            elif value is None:
                raise _ExecError(f"nil pointer evaluating interface {{}}.{key}")
            else:
                raise _ExecError(
                    f"can't evaluate field {key} in type {type(value).__name__}"
                )
        return value

    @staticmethod
    def _frame_of(variable: str, scope: list[dict]) -> dict:
        for frame in reversed(scope):
            if variable in frame:
                return frame
        raise _ExecError(f"undefined variable: {variable}")


__all__ = ["Action", "MAX_INCLUDE_DEPTH", "TemplateEngine", "to_text", "tokenize"]
