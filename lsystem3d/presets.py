"""Named grammars."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ConfigError
from .expr import RandomSource
from .turtle import Generation, Turtle, grow


@dataclass(frozen=True)
class Preset:
    name: str
    axiom: str
    rules: str
    iterations: int


# Cherry tree: brown tapered branches that split in two at every level, with
# pink blossoms of random size on the side shoots. The two `l` rules stretch
# older segments by a random factor each pass.
SAKURA = Preset(
    name="sakura",
    axiom="m{0x594d30, 0.9, 0} A{0.2}",
    rules="\n".join(
        [
            "A{r} -> l{0.2, r, r} +x +y +z [ [ A{r/2} ] -x A{r/2} ] -x -y -z "
            "l{0.2, r, r} [ -x l{0.2, r, r/2} A{r/2} m{0xf695c3, 0.7, 0} sphere ] "
            "+x A{r/2}",
            "l{a, b, c} -> l{a*2.5, b, c}",
            "l{a, b, c} -> l{a*2, b, c}",
            "sphere -> sphere{random()/7+0.1}",
        ]
    ),
    iterations=4,
)

PRESETS: Mapping[str, Preset] = {p.name: p for p in (SAKURA,)}


def get_preset(name: str) -> Preset:
    try:
        return PRESETS[name.lower()]
    except KeyError:
        known = ", ".join(sorted(PRESETS))
        raise ConfigError(f"unknown preset {name!r} (known: {known})") from None


def sakura(
    iterations: int = SAKURA.iterations,
    *,
    rng: RandomSource | None = None,
    turtle: Turtle | None = None,
) -> Generation:
    return grow(SAKURA.axiom, SAKURA.rules, iterations, rng=rng, turtle=turtle)
