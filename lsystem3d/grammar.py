"""Axiom and rule text parsing.

Symbol syntax::

    name                  a bare symbol
    name{e1, e2, ...}     a symbol with parameters

Symbols are separated by whitespace. A name is any run of characters other
than whitespace, braces and commas, so ``+x``, ``[`` and ``sphere`` are all
valid names.

Rule syntax (one rule per line)::

    A{r} -> f{r} A{r/2}

The left-hand side is a single symbol whose parameters are binding names;
the right-hand side parameters are expressions over those names (see
``lsystem3d.expr``). Several lines with the same left-hand side are kept as
alternatives and one is picked at random on each rewrite.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import NamedTuple

from .errors import ParseError
from .expr import Expression, RandomSource, compile_expression

logger = logging.getLogger(__name__)

ARROW = "->"

_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\Z")
_RESERVED = frozenset({"true", "false", "random"})


# -------------------------
# Data model
# -------------------------


def format_number(x: float) -> str:
    x = float(x)
    if x.is_integer() and abs(x) < 1e15:
        return str(int(x))
    return repr(x)


class Symbol(NamedTuple):
    """A concrete symbol; doubles as a ``(name, params)`` turtle command."""

    name: str
    params: tuple[float, ...] = ()

    def __str__(self) -> str:
        if not self.params:
            return self.name
        return f"{self.name}{{{', '.join(format_number(p) for p in self.params)}}}"


class SymbolTemplate(NamedTuple):
    """A successor symbol whose parameters are still expressions."""

    name: str
    exprs: tuple[Expression, ...] = ()

    def instantiate(
        self, env: Mapping[str, float], rng: RandomSource | None
    ) -> Symbol:
        return Symbol(self.name, tuple(e.evaluate(env, rng) for e in self.exprs))

    def __str__(self) -> str:
        if not self.exprs:
            return self.name
        return f"{self.name}{{{', '.join(e.source for e in self.exprs)}}}"


@dataclass(frozen=True)
class Production:
    predecessor: str
    bindings: tuple[str, ...]
    successor: tuple[SymbolTemplate, ...]
    line: int | None = None

    @property
    def arity(self) -> int:
        return len(self.bindings)

    def apply(
        self, values: tuple[float, ...], rng: RandomSource | None
    ) -> list[Symbol]:
        env = dict(zip(self.bindings, values))
        return [tpl.instantiate(env, rng) for tpl in self.successor]

    def __str__(self) -> str:
        lhs = self.predecessor
        if self.bindings:
            lhs = f"{lhs}{{{', '.join(self.bindings)}}}"
        rhs = " ".join(str(t) for t in self.successor)
        return f"{lhs} {ARROW} {rhs}".rstrip()


@dataclass
class RuleTable:
    """Symbol name -> candidate productions, in source order."""

    productions: dict[str, list[Production]] = field(default_factory=dict)

    def add(self, production: Production) -> None:
        self.productions.setdefault(production.predecessor, []).append(production)

    def candidates(self, name: str, arity: int) -> list[Production]:
        return [p for p in self.productions.get(name, ()) if p.arity == arity]

    def __iter__(self) -> Iterator[Production]:
        for group in self.productions.values():
            yield from group

    def __len__(self) -> int:
        return sum(len(group) for group in self.productions.values())


@dataclass(frozen=True)
class Grammar:
    axiom: tuple[Symbol, ...]
    rules: RuleTable


# -------------------------
# Scanning
# -------------------------


def _split_params(body: str, *, line: int | None, source: str) -> list[str]:
    if not body.strip():
        return []
    parts: list[str] = []
    depth = 0
    start = 0
    for i, ch in enumerate(body):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append(body[start:i])
            start = i + 1
    parts.append(body[start:])

    out = [p.strip() for p in parts]
    if any(not p for p in out):
        raise ParseError("empty parameter", line=line, source=source)
    return out


def scan_symbols(
    text: str, *, line: int | None = None, source: str | None = None
) -> list[tuple[str, list[str]]]:
    """Split ``text`` into ``(name, raw parameter strings)`` pairs."""
    src = text if source is None else source
    out: list[tuple[str, list[str]]] = []
    i, n = 0, len(text)

    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        if ch == "{":
            raise ParseError("missing symbol name before '{'", line=line, source=src)
        if ch == "}":
            raise ParseError("unbalanced '}'", line=line, source=src)
        if ch == ",":
            raise ParseError("unexpected ','", line=line, source=src)

        start = i
        while i < n and not text[i].isspace() and text[i] not in "{},":
            i += 1
        name = text[start:i]

        params: list[str] = []
        if i < n and text[i] == "{":
            close = text.find("}", i + 1)
            if close < 0:
                raise ParseError("unbalanced '{'", line=line, source=src)
            body = text[i + 1 : close]
            if "{" in body:
                raise ParseError("nested '{'", line=line, source=src)
            params = _split_params(body, line=line, source=src)
            i = close + 1

        out.append((name, params))

    return out


def _compile(raw: str, *, line: int | None, source: str) -> Expression:
    try:
        return compile_expression(raw)
    except ParseError as e:
        raise ParseError(f"invalid expression {raw!r}", line=line, source=source) from e


# -------------------------
# Axiom / rules
# -------------------------


def parse_axiom(text: str) -> tuple[Symbol, ...]:
    """Parse an axiom into concrete symbols.

    Axiom parameters must be constants (numbers, hex colors, true/false and
    arithmetic over them).
    """
    symbols: list[Symbol] = []
    for name, raw_params in scan_symbols(text, source=text):
        values: list[float] = []
        for raw in raw_params:
            expr = _compile(raw, line=None, source=text)
            if not expr.is_constant:
                raise ParseError(
                    f"axiom parameter {raw!r} is not a constant", source=text
                )
            values.append(expr.evaluate({}))
        symbols.append(Symbol(name, tuple(values)))
    return tuple(symbols)


def parse_production(text: str, *, line: int | None = None) -> Production:
    source = text.strip()
    if ARROW not in source:
        raise ParseError(f"missing '{ARROW}'", line=line, source=source)

    lhs_text, rhs_text = source.split(ARROW, 1)
    lhs = scan_symbols(lhs_text, line=line, source=source)
    if not lhs:
        raise ParseError("missing left-hand side symbol", line=line, source=source)
    if len(lhs) > 1:
        raise ParseError(
            "left-hand side must be a single symbol", line=line, source=source
        )

    name, bindings = lhs[0]
    for b in bindings:
        if not _IDENT.match(b) or b in _RESERVED:
            raise ParseError(f"invalid binding name {b!r}", line=line, source=source)
    if len(set(bindings)) != len(bindings):
        raise ParseError("duplicate binding name", line=line, source=source)

    bound = set(bindings)
    successor: list[SymbolTemplate] = []
    for rhs_name, raw_params in scan_symbols(rhs_text, line=line, source=source):
        exprs = tuple(_compile(raw, line=line, source=source) for raw in raw_params)
        for expr in exprs:
            unbound = sorted(expr.names - bound)
            if unbound:
                raise ParseError(
                    f"unbound identifier '{unbound[0]}' in right-hand side",
                    line=line,
                    source=source,
                )
        successor.append(SymbolTemplate(rhs_name, exprs))

    return Production(name, tuple(bindings), tuple(successor), line)


def parse_rules(text: str | Iterable[str]) -> RuleTable:
    """Parse a rule block. Blank lines and ``#`` comments are skipped."""
    lines = text.splitlines() if isinstance(text, str) else list(text)

    table = RuleTable()
    for line_no, raw in enumerate(lines, start=1):
        s = raw.strip()
        if not s or s.startswith("#"):
            continue
        table.add(parse_production(s, line=line_no))

    logger.debug(
        "parsed %d productions for %d symbols", len(table), len(table.productions)
    )
    return table


def parse_grammar(axiom: str, rules: str | Iterable[str]) -> Grammar:
    return Grammar(parse_axiom(axiom), parse_rules(rules))


def format_symbols(symbols: Iterable[Symbol]) -> str:
    return " ".join(str(s) for s in symbols)
