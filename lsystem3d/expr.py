"""Arithmetic parameter expressions.

Expressions appear in the parameter slots of production successors, e.g. the
``r/2`` in ``A{r} -> f{r} A{r/2}``. They are compiled once, when the rule text
is parsed, and evaluated once per rewritten symbol occurrence.

Supported syntax:
  - binary ``+ - * /`` with the usual precedence, unary ``-``/``+``
  - parentheses
  - decimal literals (``1``, ``0.25``, ``.5``, ``1e-3``) and hex literals
    (``0xf695c3``)
  - ``true`` / ``false`` (1 and 0)
  - identifiers bound by the production's left-hand side
  - ``random()``, a uniform draw in [0, 1) from the caller's random source

Division follows IEEE rules: ``1/0`` is ``inf`` and ``0/0`` is ``nan``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np
from lark import Lark, Token, Tree
from lark.exceptions import LarkError

from .errors import EvalError, ParseError


class RandomSource(Protocol):
    def random(self) -> float: ...

    def randrange(self, stop: int) -> int: ...


_EXPR_GRAMMAR = r"""
    ?start: sum

    ?sum: product
        | sum "+" product       -> add
        | sum "-" product       -> sub

    ?product: unary
        | product "*" unary     -> mul
        | product "/" unary     -> div

    ?unary: atom
        | "-" unary             -> neg
        | "+" unary             -> pos

    ?atom: NUMBER               -> number
         | HEX                  -> hex
         | "true"               -> true
         | "false"              -> false
         | "random" "(" ")"     -> random
         | NAME                 -> var
         | "(" sum ")"

    HEX.2: /0[xX][0-9a-fA-F]+/

    %import common.NUMBER
    %import common.CNAME -> NAME
    %import common.WS
    %ignore WS
"""

_parser = Lark(_EXPR_GRAMMAR, parser="lalr")


def _divide(a: float, b: float) -> float:
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.float64(a) / np.float64(b))


@dataclass(frozen=True)
class Expression:
    """A compiled parameter expression."""

    source: str
    tree: Tree = field(repr=False)
    names: frozenset[str] = field(init=False, repr=False, compare=False)
    uses_random: bool = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        names = self.tree.scan_values(
            lambda v: isinstance(v, Token) and v.type == "NAME"
        )
        object.__setattr__(self, "names", frozenset(str(n) for n in names))
        object.__setattr__(
            self, "uses_random", any(True for _ in self.tree.find_data("random"))
        )

    @property
    def is_constant(self) -> bool:
        return not self.names and not self.uses_random

    def evaluate(
        self, env: Mapping[str, float], rng: RandomSource | None = None
    ) -> float:
        return _eval(self.tree, env, rng)

    def __str__(self) -> str:
        return self.source


def compile_expression(text: str) -> Expression:
    source = text.strip()
    try:
        tree = _parser.parse(source)
    except LarkError as e:
        raise ParseError("invalid expression", source=source) from e
    return Expression(source, tree)


def evaluate(
    text: str, env: Mapping[str, float] | None = None, rng: RandomSource | None = None
) -> float:
    """Compile and evaluate ``text`` in one step."""
    return compile_expression(text).evaluate(env or {}, rng)


def _eval(t: Tree, env: Mapping[str, float], rng: RandomSource | None) -> float:
    kind = t.data

    if kind == "number":
        return float(t.children[0])
    if kind == "hex":
        try:
            return float(int(t.children[0], 16))
        except OverflowError:
            return math.inf
    if kind == "true":
        return 1.0
    if kind == "false":
        return 0.0

    if kind == "var":
        name = str(t.children[0])
        try:
            return float(env[name])
        except KeyError:
            raise EvalError(f"unbound identifier '{name}'") from None

    if kind == "random":
        if rng is None:
            raise EvalError("random() used without a random source")
        return float(rng.random())

    if kind == "neg":
        return -_eval(t.children[0], env, rng)
    if kind == "pos":
        return _eval(t.children[0], env, rng)

    a = _eval(t.children[0], env, rng)
    b = _eval(t.children[1], env, rng)
    if kind == "add":
        return a + b
    if kind == "sub":
        return a - b
    if kind == "mul":
        return a * b
    if kind == "div":
        return _divide(a, b)

    raise EvalError(f"unknown expression node '{kind}'")
