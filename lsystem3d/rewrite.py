"""Parallel rewriting of a symbol sequence.

Every pass rewrites all symbols of the current derivation at once. A symbol
is replaced by the successor of a production with the same name and number
of parameters; when several productions match, one is drawn uniformly at
random for that occurrence alone. Symbols with no matching production are
copied through unchanged.

Randomness comes only from the ``rng`` argument. Pass a seeded
``random.Random`` for repeatable output.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Generator, Iterable

from .errors import ExpansionError
from .expr import RandomSource
from .grammar import RuleTable, Symbol, parse_grammar

logger = logging.getLogger(__name__)


def rewrite_once(
    symbols: Iterable[Symbol], rules: RuleTable, rng: RandomSource
) -> list[Symbol]:
    out: list[Symbol] = []
    for sym in symbols:
        candidates = rules.candidates(sym.name, len(sym.params))
        if not candidates:
            out.append(sym)
            continue
        if len(candidates) == 1:
            production = candidates[0]
        else:
            production = candidates[rng.randrange(len(candidates))]
        out.extend(production.apply(sym.params, rng))
    return out


def iter_derivations(
    axiom: Iterable[Symbol],
    rules: RuleTable,
    iterations: int,
    *,
    rng: RandomSource | None = None,
    max_symbols: int | None = None,
) -> Generator[tuple[Symbol, ...], None, None]:
    """Yield the axiom followed by each of the ``iterations`` derivations."""
    if iterations < 0:
        raise ExpansionError(f"iterations must be >= 0, got {iterations}")
    if rng is None:
        rng = random.Random()

    current = tuple(axiom)
    yield current
    for step in range(1, iterations + 1):
        current = tuple(rewrite_once(current, rules, rng))
        logger.debug("pass %d: %d symbols", step, len(current))
        if max_symbols is not None and len(current) > max_symbols:
            raise ExpansionError(
                f"derivation exceeds {max_symbols} symbols after pass {step}"
            )
        yield current


def expand(
    axiom: Iterable[Symbol],
    rules: RuleTable,
    iterations: int,
    *,
    rng: RandomSource | None = None,
    max_symbols: int | None = None,
) -> tuple[Symbol, ...]:
    """Rewrite ``axiom`` ``iterations`` times and return the command stream."""
    result: tuple[Symbol, ...] = ()
    for result in iter_derivations(
        axiom, rules, iterations, rng=rng, max_symbols=max_symbols
    ):
        pass
    return result


def derive(
    axiom: str,
    rules: str | Iterable[str],
    iterations: int,
    *,
    rng: RandomSource | None = None,
    max_symbols: int | None = None,
) -> tuple[Symbol, ...]:
    """Parse grammar text and expand it."""
    grammar = parse_grammar(axiom, rules)
    return expand(
        grammar.axiom, grammar.rules, iterations, rng=rng, max_symbols=max_symbols
    )
