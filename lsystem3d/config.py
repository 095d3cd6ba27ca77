"""JSON generation configs.

A config names a grammar (inline, or through a preset), the number of
rewriting passes, an optional seed and turtle default overrides::

    {
      "name": "Sakura",
      "preset": "sakura",
      "iterations": 4,
      "seed": 7,
      "defaults": {"angle": 30},
      "export": {"precision": 5}
    }

``axiom`` and ``rules`` given next to ``preset`` take precedence over the
preset's own. ``rules`` is either one string with a rule per line or a list
of rule strings.
"""

from __future__ import annotations

import json
import logging
import os
import random
from dataclasses import dataclass, field
from typing import Any, cast

from .errors import ConfigError, _require
from .grammar import Grammar, parse_grammar
from .presets import get_preset
from .turtle import DEFAULTS

logger = logging.getLogger(__name__)


# -------------------------
# Validation helpers
# -------------------------


def _as_float(x: Any, path: str) -> float:
    _require(
        isinstance(x, (int, float)) and not isinstance(x, bool),
        f"{path} must be a number",
    )
    return float(x)


def _as_int(x: Any, path: str) -> int:
    _require(
        isinstance(x, int) and not isinstance(x, bool), f"{path} must be an integer"
    )
    return int(x)


def _as_str(x: Any, path: str) -> str:
    _require(isinstance(x, str), f"{path} must be a string")
    return cast(str, x)


def _as_dict(x: Any, path: str) -> dict[str, Any]:
    _require(isinstance(x, dict), f"{path} must be an object")
    return cast(dict[str, Any], x)


def _as_rules(x: Any, path: str) -> str:
    if isinstance(x, list):
        return "\n".join(_as_str(r, f"{path}[{i}]") for i, r in enumerate(x))
    return _as_str(x, path)


# -------------------------
# Config model
# -------------------------


@dataclass(frozen=True)
class GenerationConfig:
    name: str
    axiom: str
    rules: str
    iterations: int
    seed: int | None = None
    defaults: dict[str, float] = field(default_factory=dict)
    precision: int = 5

    def grammar(self) -> Grammar:
        return parse_grammar(self.axiom, self.rules)

    def rng(self, seed: int | None = None) -> random.Random:
        return random.Random(self.seed if seed is None else seed)


def parse_config(obj: dict[str, Any]) -> GenerationConfig:
    obj = _as_dict(obj, "root")

    axiom: str | None = None
    rules: str | None = None
    iterations: int | None = None
    name = "L-System"

    if "preset" in obj:
        preset = get_preset(_as_str(obj["preset"], "preset"))
        axiom, rules, iterations, name = (
            preset.axiom,
            preset.rules,
            preset.iterations,
            preset.name,
        )

    name = _as_str(obj.get("name", name), "name")
    if "axiom" in obj:
        axiom = _as_str(obj["axiom"], "axiom")
    if "rules" in obj:
        rules = _as_rules(obj["rules"], "rules")
    if "iterations" in obj:
        iterations = _as_int(obj["iterations"], "iterations")

    _require(axiom is not None and len(axiom.strip()) > 0, "axiom must be non-empty")
    iterations = 0 if iterations is None else iterations
    _require(iterations >= 0, "iterations must be >= 0")

    seed = obj.get("seed")
    if seed is not None:
        seed = _as_int(seed, "seed")

    defaults_obj = _as_dict(obj.get("defaults", {}), "defaults")
    defaults: dict[str, float] = {}
    for key, value in defaults_obj.items():
        _require(
            key in DEFAULTS,
            f"defaults.{key} is not a turtle default "
            f"(expected one of: {', '.join(DEFAULTS)})",
        )
        defaults[key] = _as_float(value, f"defaults.{key}")

    export = _as_dict(obj.get("export", {}), "export")
    precision = _as_int(export.get("precision", 5), "export.precision")
    _require(0 <= precision <= 10, "export.precision must be between 0 and 10")

    return GenerationConfig(
        name=name,
        axiom=cast(str, axiom),
        rules=rules or "",
        iterations=iterations,
        seed=seed,
        defaults=defaults,
        precision=precision,
    )


def load_json(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        try:
            return cast(dict[str, Any], json.load(f))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e


def load_config(path: str) -> GenerationConfig:
    cfg = parse_config(load_json(path))
    logger.debug("loaded config %r from %s", cfg.name, path)
    return cfg


# -------------------------
# Random config generator
# -------------------------

_AXES = ("x", "y", "z")


def _random_successor(
    rng: random.Random, length: int, *, p_branch: float = 0.20
) -> str:
    """Generate a random successor for ``A{r}`` with balanced brackets.

    Produces tapered segments, rotations, recursive ``A`` symbols and
    branches. Always starts with a segment and contains at least one ``A``.
    """
    shrink = rng.choice([0.5, 0.6, 0.7, 0.8])
    seg = rng.choice([0.1, 0.2, 0.3])
    word: list[str] = [f"l{{{seg}, r, r*{shrink}}}"]
    depth = 0

    for _ in range(length):
        roll = rng.random()
        if roll < p_branch and depth < 3:
            word.append("[")
            depth += 1
            continue
        if roll < p_branch * 2 and depth > 0:
            word.append("]")
            depth -= 1
            continue

        t = rng.random()
        if t < 0.3:
            word.append(f"l{{{seg}, r*{shrink}, r*{shrink}}}")
        elif t < 0.5:
            word.append(f"A{{r*{shrink}}}")
        else:
            sign = rng.choice("+-")
            axis = rng.choice(_AXES)
            if rng.random() < 0.5:
                word.append(f"{sign}{axis}")
            else:
                word.append(f"{sign}{axis}{{{rng.randint(10, 60)}}}")

    word.extend(["]"] * depth)

    if not any(w.startswith("A{") for w in word):
        word.append(f"A{{r*{shrink}}}")

    return " ".join(word)


def generate_random_config(seed: int | None = None) -> dict[str, Any]:
    rng = random.Random(seed)

    iterations = rng.randint(3, 5)
    angle = rng.choice([15, 20, 25, 30, 45])
    radius = rng.choice([0.05, 0.1, 0.2])
    bark = rng.choice([0x594D30, 0x6B4F2A, 0x3E3A2F])
    leaf = rng.choice([0xF695C3, 0x7BC86C, 0xF2C94C])

    rules = [f"A{{r}} -> {_random_successor(rng, rng.randint(6, 14))}"]
    # Optional second alternative makes the grammar stochastic.
    if rng.random() < 0.5:
        rules.append(f"A{{r}} -> {_random_successor(rng, rng.randint(6, 14))}")
    rules.append(f"A{{r}} -> m{{{leaf:#08x}, 0.7, 0}} sphere{{r + random()/10}}")

    cfg: dict[str, Any] = {
        "name": "Random L-System",
        "axiom": f"m{{{bark:#08x}, 0.9, 0}} A{{{radius}}}",
        "rules": rules,
        "iterations": iterations,
        "seed": rng.randint(0, 2**31 - 1),
        "defaults": {"angle": angle},
    }

    # Internal sanity check: generated config must always parse cleanly.
    parse_config(cfg).grammar()
    return cfg


def ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)) or ".", exist_ok=True)


def dump_json(obj: dict[str, Any], path: str) -> None:
    ensure_parent_dir(path)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, ensure_ascii=False)
        f.write("\n")
