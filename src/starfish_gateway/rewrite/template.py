"""Sandboxed path template language.

A template is literal text with ``{{ expression }}`` placeholders. The
expression grammar is deliberately small::

    expression := primary ("|" NAME ["(" arguments ")"])*
    primary    := STRING | INTEGER | "true" | "false"
                | NAME "(" arguments ")"          # function call
                | NAME ("." NAME)*                # field reference
                | "(" expression ")"
    arguments  := [expression ("," expression)*]

A filter pipe passes the value on its left as the first argument, so
``filename | upper`` and ``upper(filename)`` are equivalent. Only the
functions registered in a `FunctionTable` are callable; nothing else in
Python is reachable from a template.
"""

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

from starfish_gateway.exceptions import TemplateError, TemplateRuntimeError, TemplateSyntaxError

OPEN = "{{"
CLOSE = "}}"

TOKEN_RE = re.compile(
    r"""
    (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    | (?P<integer>-?\d+)
    | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<op>[().,|])
    """,
    re.VERBOSE | re.DOTALL,
)

ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)
ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}


class FunctionTable:
    """Registry of the pure functions a template may call.

    Example:
        table = FunctionTable().register("upper", str.upper).register("lower", str.lower)
        template = compile_template("{{ filename | upper }}", table)
    """

    def __init__(self) -> None:
        self._functions: dict[str, Callable[..., Any]] = {}

    def register(self, name: str, func: Callable[..., Any]) -> "FunctionTable":
        """Register a function under a template name. Returns the table."""
        self._functions[name] = func
        return self

    def get(self, name: str) -> Callable[..., Any] | None:
        return self._functions.get(name)

    def names(self) -> list[str]:
        return sorted(self._functions)

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)


def to_text(value: Any) -> str:
    """Render an evaluated value into template output."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(to_text(item) for item in value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class Literal:
    """A string, integer or boolean constant."""

    value: Any

    def evaluate(self, context: Mapping[str, Any], functions: FunctionTable) -> Any:
        return self.value


@dataclass(frozen=True)
class FieldRef:
    """A dotted lookup into the render context."""

    path: tuple[str, ...]

    def evaluate(self, context: Mapping[str, Any], functions: FunctionTable) -> Any:
        head, *rest = self.path
        if head not in context:
            raise TemplateRuntimeError(f"Unknown field: {head}")
        value = context[head]
        for part in rest:
            if isinstance(value, Mapping):
                if part not in value:
                    raise TemplateRuntimeError(f"Unknown field: {'.'.join(self.path)}")
                value = value[part]
            elif part.startswith("_") or not hasattr(value, part):
                raise TemplateRuntimeError(f"Unknown field: {'.'.join(self.path)}")
            else:
                value = getattr(value, part)
                # Methods are not fields
                if callable(value):
                    raise TemplateRuntimeError(f"Unknown field: {'.'.join(self.path)}")
        return value


@dataclass(frozen=True)
class Call:
    """Invocation of a registered function."""

    name: str
    args: tuple["Node", ...]

    def evaluate(self, context: Mapping[str, Any], functions: FunctionTable) -> Any:
        func = functions.get(self.name)
        if func is None:
            raise TemplateRuntimeError(f"Unknown function: {self.name}")
        args = [arg.evaluate(context, functions) for arg in self.args]
        try:
            return func(*args)
        except TemplateError:
            raise
        except Exception as e:
            raise TemplateRuntimeError(f"{self.name}() failed: {e}") from e


Node = Union[Literal, FieldRef, Call]


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    position: int


def _unescape(raw: str) -> str:
    return ESCAPE_RE.sub(lambda m: ESCAPES.get(m.group(1), m.group(1)), raw[1:-1])


def tokenize(source: str) -> list[Token]:
    """Split an expression into tokens."""
    tokens: list[Token] = []
    pos = 0
    while pos < len(source):
        if source[pos].isspace():
            pos += 1
            continue
        match = TOKEN_RE.match(source, pos)
        if match is None:
            raise TemplateSyntaxError(f"Unexpected character {source[pos]!r} at {pos}")
        kind = match.lastgroup or ""
        tokens.append(Token(kind, match.group(kind), pos))
        pos = match.end()
    return tokens


class _Parser:
    """Recursive descent parser for one placeholder expression."""

    def __init__(self, source: str, functions: FunctionTable) -> None:
        self.source = source
        self.functions = functions
        self.tokens = tokenize(source)
        self.index = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise TemplateSyntaxError("Empty placeholder")
        node = self._expression()
        if self.index < len(self.tokens):
            token = self.tokens[self.index]
            raise TemplateSyntaxError(f"Unexpected {token.value!r} at {token.position}")
        return node

    def _peek(self) -> Token | None:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            raise TemplateSyntaxError(f"Unexpected end of expression: {self.source.strip()!r}")
        self.index += 1
        return token

    def _accept(self, value: str) -> bool:
        token = self._peek()
        if token is not None and token.kind == "op" and token.value == value:
            self.index += 1
            return True
        return False

    def _expect(self, value: str) -> None:
        if not self._accept(value):
            token = self._peek()
            found = repr(token.value) if token else "end of expression"
            raise TemplateSyntaxError(f"Expected {value!r}, found {found}")

    def _function_name(self) -> str:
        token = self._next()
        if token.kind != "name":
            raise TemplateSyntaxError(f"Expected function name, found {token.value!r}")
        if token.value not in self.functions:
            raise TemplateSyntaxError(f"Unknown function: {token.value}")
        return token.value

    def _arguments(self) -> list[Node]:
        args: list[Node] = []
        if self._accept(")"):
            return args
        while True:
            args.append(self._expression())
            if self._accept(")"):
                return args
            self._expect(",")

    def _expression(self) -> Node:
        node = self._primary()
        while self._accept("|"):
            name = self._function_name()
            extra = self._arguments() if self._accept("(") else []
            node = Call(name, (node, *extra))
        return node

    def _primary(self) -> Node:
        token = self._next()
        if token.kind == "string":
            return Literal(_unescape(token.value))
        if token.kind == "integer":
            return Literal(int(token.value))
        if token.kind == "op":
            if token.value == "(":
                node = self._expression()
                self._expect(")")
                return node
            raise TemplateSyntaxError(f"Unexpected {token.value!r} at {token.position}")
        if token.value == "true":
            return Literal(True)
        if token.value == "false":
            return Literal(False)
        if self._accept("("):
            self.index -= 2
            name = self._function_name()
            self._expect("(")
            return Call(name, tuple(self._arguments()))
        path = [token.value]
        while self._accept("."):
            part = self._next()
            if part.kind != "name":
                raise TemplateSyntaxError(f"Expected field name after '.', found {part.value!r}")
            path.append(part.value)
        return FieldRef(tuple(path))


class Template:
    """A parsed template ready for rendering."""

    def __init__(self, source: str, parts: list[str | Node], functions: FunctionTable) -> None:
        self.source = source
        self.parts = parts
        self.functions = functions

    def render(self, context: Mapping[str, Any]) -> str:
        """Evaluate every placeholder against the context.

        Raises:
            TemplateRuntimeError: If a field is unknown or a function fails
        """
        out: list[str] = []
        for part in self.parts:
            if isinstance(part, str):
                out.append(part)
            else:
                out.append(to_text(part.evaluate(context, self.functions)))
        return "".join(out)


def _placeholder_end(source: str, pos: int) -> int:
    """Index of the `}}` closing a placeholder, or -1 if there is none.

    Quoted strings are skipped, so a literal ``"}}"`` does not close it.
    """
    while pos < len(source):
        char = source[pos]
        if char in "\"'":
            pos += 1
            while pos < len(source) and source[pos] != char:
                pos += 2 if source[pos] == "\\" else 1
            if pos >= len(source):
                return -1
        elif source.startswith(CLOSE, pos):
            return pos
        pos += 1
    return -1


def compile_template(source: str, functions: FunctionTable) -> Template:
    """Parse template source into a `Template`.

    Raises:
        TemplateSyntaxError: On malformed placeholders or unknown functions
    """
    parts: list[str | Node] = []
    pos = 0
    while True:
        start = source.find(OPEN, pos)
        text = source[pos:] if start == -1 else source[pos:start]
        if CLOSE in text:
            raise TemplateSyntaxError(f"Unbalanced braces in template: {source!r}")
        if text:
            parts.append(text)
        if start == -1:
            break
        end = _placeholder_end(source, start + len(OPEN))
        if end == -1:
            raise TemplateSyntaxError(f"Unbalanced braces in template: {source!r}")
        parts.append(_Parser(source[start + len(OPEN):end], functions).parse())
        pos = end + len(CLOSE)
    return Template(source, parts, functions)
