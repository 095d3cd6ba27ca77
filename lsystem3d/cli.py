"""Command-line entry point.

Run:
  lsystem3d render config.json tree.obj --seed 7
  lsystem3d expand config.json
  lsystem3d validate config.json
  lsystem3d random out.json --seed 123
  lsystem3d --help
"""

from __future__ import annotations

import argparse
import logging
import sys

from .config import (
    GenerationConfig,
    dump_json,
    generate_random_config,
    load_config,
)
from .errors import ConfigError, EvalError, ExpansionError, ParseError
from .export import write_obj
from .grammar import format_symbols
from .presets import PRESETS
from .rewrite import expand
from .turtle import Generation, Turtle

logger = logging.getLogger(__name__)

HELP_EPILOG = r"""
INPUT JSON SYNTAX

  name: string (optional)
      Written as a comment at the top of the OBJ file.

  preset: string (optional)
      Start from a named grammar (axiom, rules, iterations). Known: {presets}

  axiom: string
      Initial symbols, e.g. "m{{0x594d30, 0.9, 0}} A{{0.2}}".
      Parameters must be constants (numbers, hex colors, true/false).

  rules: string or list of strings
      One production per line: "A{{r}} -> f{{r}} A{{r/2}}".
      Several lines with the same left-hand side are picked at random.
      Parameter expressions support + - * / ( ), hex literals and random().

  iterations: integer >= 0 (default 0)
      Number of rewriting passes.

  seed: integer (optional)
      Seed for the random source. Without one, output differs per run.

  defaults: object (optional)
      Turtle defaults: length (0.2), angle (25), radius (0.05), size (0.3).

  export.precision: integer 0..10 (default 5)
      Decimal places for OBJ coordinates.

TURTLE COMMANDS

  +x -x +y -y +z -z {{angle}}   rotate about local axis (degrees)
  f{{length}}                   move forward
  s / e                       start / end a smoothed tube
  l{{length, r0, r1}}           tapered segment
  [ / ]                       push / pop turtle state
  sphere box cube cone        primitives
  r{{radius}} t{{tension}}        line radius / spline tension
  m{{color, roughness, metalness, ...}}  material

Unknown symbols are ignored.
"""


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lsystem3d",
        description="Parametric stochastic L-system to 3D mesh generator.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=HELP_EPILOG.format(presets=", ".join(sorted(PRESETS))),
    )
    p.add_argument(
        "-v", "--verbose", action="store_true", help="Log progress to stderr."
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    pr = sub.add_parser("render", help="Generate a config and write an OBJ file.")
    pr.add_argument("config", help="Path to the input JSON config.")
    pr.add_argument("output", help="Path to write the OBJ output (.mtl alongside).")
    pr.add_argument("--seed", type=int, default=None, help="Override config seed.")
    pr.add_argument(
        "--iterations", type=int, default=None, help="Override config iterations."
    )

    pe = sub.add_parser("expand", help="Print the derived symbol sequence.")
    pe.add_argument("config", help="Path to the input JSON config.")
    pe.add_argument("--seed", type=int, default=None, help="Override config seed.")
    pe.add_argument(
        "--iterations", type=int, default=None, help="Override config iterations."
    )

    pv = sub.add_parser(
        "validate", help="Validate a JSON config and print a brief summary."
    )
    pv.add_argument("config", help="Path to the input JSON config.")

    pg = sub.add_parser(
        "random", help="Generate a random JSON config for experimentation."
    )
    pg.add_argument("output", help="Where to write the generated JSON file.")
    pg.add_argument(
        "--seed", type=int, default=None, help="Seed for repeatable randomness."
    )

    return p


# -------------------------
# Commands
# -------------------------

_VALIDATE_SYMBOL_LIMIT = 100_000


def _generate(
    cfg: GenerationConfig, seed: int | None, iterations: int | None
) -> Generation:
    grammar = cfg.grammar()
    commands = expand(
        grammar.axiom,
        grammar.rules,
        cfg.iterations if iterations is None else iterations,
        rng=cfg.rng(seed),
    )
    return Turtle(cfg.defaults).generate(commands)


def cmd_render(
    config_path: str, output_path: str, seed: int | None, iterations: int | None
) -> None:
    cfg = load_config(config_path)
    with _generate(cfg, seed, iterations) as gen:
        write_obj(
            gen.group, out_path=output_path, precision=cfg.precision, title=cfg.name
        )
        logger.info("camera target: %s", gen.target)


def cmd_expand(config_path: str, seed: int | None, iterations: int | None) -> None:
    cfg = load_config(config_path)
    grammar = cfg.grammar()
    symbols = expand(
        grammar.axiom,
        grammar.rules,
        cfg.iterations if iterations is None else iterations,
        rng=cfg.rng(seed),
    )
    print(format_symbols(symbols))


def cmd_validate(config_path: str) -> None:
    cfg = load_config(config_path)
    grammar = cfg.grammar()

    print(f"name: {cfg.name}")
    print(f"axiom symbols: {len(grammar.axiom)}")
    print(f"iterations: {cfg.iterations}")
    print(f"productions: {len(grammar.rules)}")
    stochastic = sorted(
        name for name, group in grammar.rules.productions.items() if len(group) > 1
    )
    if stochastic:
        print(f"stochastic symbols: {', '.join(stochastic)}")
    print(f"seed: {cfg.seed if cfg.seed is not None else 'none'}")
    if cfg.defaults:
        print(
            "defaults: "
            + " ".join(f"{k}={v}" for k, v in sorted(cfg.defaults.items()))
        )

    # Bounded dry run: catches empty output and runaway growth.
    try:
        symbols = expand(
            grammar.axiom,
            grammar.rules,
            cfg.iterations,
            rng=cfg.rng(),
            max_symbols=_VALIDATE_SYMBOL_LIMIT,
        )
    except ExpansionError:
        print(
            f"warning: expansion exceeds {_VALIDATE_SYMBOL_LIMIT} symbols; "
            "skipping geometry check"
        )
        return

    print(f"symbols: {len(symbols)}")
    with Turtle(cfg.defaults).generate(symbols) as gen:
        print(f"meshes: {len(gen.group)}")
        if not len(gen.group):
            raise ConfigError("Config produces no geometry")


def cmd_random(output_path: str, seed: int | None) -> None:
    cfg = generate_random_config(seed)
    dump_json(cfg, output_path)


def main(argv: list[str] | None = None) -> int:
    ap = build_argparser()
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.cmd == "render":
            cmd_render(args.config, args.output, args.seed, args.iterations)
        elif args.cmd == "expand":
            cmd_expand(args.config, args.seed, args.iterations)
        elif args.cmd == "validate":
            cmd_validate(args.config)
        elif args.cmd == "random":
            cmd_random(args.output, args.seed)
        else:
            raise AssertionError("unreachable")
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    except (ParseError, EvalError, ExpansionError) as e:
        print(f"Grammar error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"File error: {e}", file=sys.stderr)
        return 2
    return 0
