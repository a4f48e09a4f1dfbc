"""Compilation and execution of subscription templates.

Templates are rendered by a sandboxed Jinja environment. Subscription files
written for the Go ``text/template`` action syntax keep working: each action
is rewritten to a Jinja call before compiling::

    {{.Topic 2}}            third segment of the message topic
    {{.JSON "foo.bar"}}     value at a dotted path in a JSON payload
    {{.CSV 1}}              second column of a CSV payload
    {{.FullTopic}}          the complete topic
    {{.Payload}}            the raw payload

``{{-`` and ``-}}`` trim whitespace around an action and ``{{/* ... */}}`` is
a comment. Plain Jinja (``{{ Topic(2) | upper }}``) is accepted as well.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Callable, Dict, Tuple, Union

import jinja2
from jinja2 import StrictUndefined, meta
from jinja2.sandbox import SandboxedEnvironment

from models.errors import ParseError, TemplateSyntaxError

if TYPE_CHECKING:
    from services.context import TemplateContext

# callable accessor -> argument types
_SIGNATURES: Dict[str, Tuple[type, ...]] = {
    "Topic": (int,),
    "JSON": (str,),
    "CSV": (int,),
}
_VALUES = ("FullTopic", "Payload")
_NAMES = frozenset(_SIGNATURES) | frozenset(_VALUES)

_ARG = r"""(?:[+-]?[0-9]+(?![\w.])|"(?:[^"\\\n]|\\.)*"|`[^`]*`)"""
_ACTION = re.compile(
    r"\{\{(?P<ltrim>-\s)?\s*\.(?P<accessor>[A-Za-z_][A-Za-z0-9_]*)"
    r"(?P<args>(?:\s+" + _ARG + r")*)\s*(?P<rtrim>\s-)?\}\}"
)
_ARG_TOKEN = re.compile(
    r"""\s*(?:(?P<int>[+-]?[0-9]+)|(?P<string>"(?:[^"\\\n]|\\.)*")|`(?P<raw>[^`]*)`)"""
)
_COMMENT = re.compile(r"\{\{(?P<ltrim>-\s+)?/\*.*?\*/(?P<rtrim>\s+-)?\}\}", re.DOTALL)

Argument = Union[int, str]


@lru_cache
def _environment() -> SandboxedEnvironment:
    return SandboxedEnvironment(
        undefined=StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )


@dataclass(frozen=True)
class Template:
    """A compiled template bound to its name."""

    name: str
    source: str
    compiled: jinja2.Template

    def execute(self, context: TemplateContext) -> str:
        try:
            return self.compiled.render(_namespace(self.name, context))
        except jinja2.TemplateError as exc:
            raise ParseError(f"template {self.name!r}: {exc}") from exc


def compile_template(name: str, text: str) -> Template:
    """Compile ``text`` into a ``Template`` named ``name``.

    Raises ``TemplateSyntaxError`` for malformed templates, unknown
    accessors and arguments that do not fit the accessor.
    """
    source = rewrite_actions(name, text)
    env = _environment()
    try:
        tree = env.parse(source)
        unknown = meta.find_undeclared_variables(tree) - _NAMES
        if unknown:
            raise TemplateSyntaxError(
                f"template {name!r}: unknown accessor {sorted(unknown)[0]!r}"
            )
        compiled = env.from_string(source)
    except jinja2.TemplateSyntaxError as exc:
        raise TemplateSyntaxError(f"template {name!r}: {exc.message}") from exc
    return Template(name=name, source=source, compiled=compiled)


def rewrite_actions(name: str, text: str) -> str:
    """Translate Go-style ``{{.Accessor args}}`` actions into Jinja syntax."""

    def comment(match: re.Match[str]) -> str:
        ltrim = "-" if match.group("ltrim") else ""
        rtrim = "-" if match.group("rtrim") else ""
        return f"{{#{ltrim} {rtrim}#}}"

    def action(match: re.Match[str]) -> str:
        accessor = match.group("accessor")
        args = tuple(_literal(name, token) for token in _ARG_TOKEN.finditer(match.group("args")))
        _check_args(name, accessor, args)
        if accessor in _VALUES:
            call = accessor
        else:
            call = f"{accessor}({', '.join(json.dumps(arg) for arg in args)})"
        ltrim = "-" if match.group("ltrim") else ""
        rtrim = "-" if match.group("rtrim") else ""
        return f"{{{{{ltrim} {call} {rtrim}}}}}"

    return _ACTION.sub(action, _COMMENT.sub(comment, text))


def _literal(name: str, token: re.Match[str]) -> Argument:
    if token.group("int") is not None:
        return int(token.group("int"))
    if token.group("raw") is not None:
        return token.group("raw")
    value = token.group("string")
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        raise TemplateSyntaxError(f"template {name!r}: invalid string {value}") from exc


def _check_args(name: str, accessor: str, args: Tuple[Any, ...]) -> None:
    if accessor in _VALUES:
        signature: Tuple[type, ...] = ()
    elif accessor in _SIGNATURES:
        signature = _SIGNATURES[accessor]
    else:
        raise TemplateSyntaxError(f"template {name!r}: unknown accessor {accessor!r}")

    if len(args) != len(signature):
        raise TemplateSyntaxError(
            f"template {name!r}: {accessor} expects {len(signature)} argument(s), got {len(args)}"
        )
    for arg, expected in zip(args, signature):
        if isinstance(arg, bool) or not isinstance(arg, expected):
            raise TemplateSyntaxError(
                f"template {name!r}: {accessor} expects {expected.__name__}, got {arg!r}"
            )


def _namespace(name: str, context: TemplateContext) -> Dict[str, Any]:
    def bind(accessor: str, func: Callable[..., str]) -> Callable[..., str]:
        def call(*args: Any) -> str:
            _check_args(name, accessor, args)
            return func(*args)

        return call

    return {
        "Topic": bind("Topic", context.topic),
        "JSON": bind("JSON", context.json),
        "CSV": bind("CSV", context.csv),
        "FullTopic": context.full_topic,
        "Payload": context.payload,
    }
