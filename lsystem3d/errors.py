"""Exception types raised by the grammar, rewriting and config layers."""

from __future__ import annotations


class LSystemError(ValueError):
    pass


class ParseError(LSystemError):
    """Malformed axiom or rule text.

    ``line`` is the 1-based line in the rule block (None for the axiom) and
    ``source`` the offending text, when known.
    """

    def __init__(
        self, message: str, *, line: int | None = None, source: str | None = None
    ) -> None:
        self.message = message
        self.line = line
        self.source = source
        super().__init__(str(self))

    def __str__(self) -> str:
        out = self.message
        if self.line is not None:
            out = f"line {self.line}: {out}"
        if self.source is not None:
            out = f"{out}: {self.source!r}"
        return out


class EvalError(LSystemError):
    pass


class ConfigError(LSystemError):
    pass


class ExpansionError(LSystemError):
    pass


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigError(msg)
