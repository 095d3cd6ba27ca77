"""Parametric, stochastic L-systems interpreted by a 3D turtle.

Typical use::

    import random
    from lsystem3d import grow

    gen = grow("A{1}", "A{r} -> l{0.5, r/10, r/20} +x [ A{r/2} ] -x A{r/2}", 4,
               rng=random.Random(7))
    gen.group      # meshes with materials
    gen.target     # camera look-at point
    gen.release()  # drop every geometry and material of this run
"""

from .errors import ConfigError, EvalError, ExpansionError, LSystemError, ParseError
from .expr import Expression, compile_expression, evaluate
from .grammar import (
    Grammar,
    Production,
    RuleTable,
    Symbol,
    SymbolTemplate,
    format_symbols,
    parse_axiom,
    parse_grammar,
    parse_rules,
)
from .rewrite import derive, expand, iter_derivations, rewrite_once
from .geometry import BoundingBox, Frame, Group, Material, Mesh, ResourceArena
from .curve import CatmullRomCurve, CurveBuilder
from .turtle import DEFAULTS, Generation, Snapshot, Turtle, frame_target, grow
from .presets import PRESETS, SAKURA, get_preset, sakura

__all__ = [
    "BoundingBox",
    "CatmullRomCurve",
    "ConfigError",
    "CurveBuilder",
    "DEFAULTS",
    "EvalError",
    "ExpansionError",
    "Expression",
    "Frame",
    "Generation",
    "Grammar",
    "Group",
    "LSystemError",
    "Material",
    "Mesh",
    "PRESETS",
    "ParseError",
    "Production",
    "ResourceArena",
    "RuleTable",
    "SAKURA",
    "Snapshot",
    "Symbol",
    "SymbolTemplate",
    "Turtle",
    "compile_expression",
    "derive",
    "evaluate",
    "expand",
    "format_symbols",
    "frame_target",
    "get_preset",
    "grow",
    "iter_derivations",
    "parse_axiom",
    "parse_grammar",
    "parse_rules",
    "rewrite_once",
    "sakura",
]
