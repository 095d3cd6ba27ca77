"""3D turtle interpreter.

Consumes a command stream of ``(name, params)`` pairs and emits meshes into a
``Group``. The turtle carries a cursor frame (local +Z is forward), a
current radius, spline tension and material, and a stack of snapshots for
branching.

Commands:
  +x -x +y -y +z -z {angle}     rotate about the local axis (degrees)
  f{length}                     move forward; records a point while drawing
  s / e                         start / end a smoothed line (tube)
  l{length, r0, r1}             tapered straight segment, then move forward
  [ / ]                         push / pop {frame, material, tension, radius}
  sphere{radius, wseg, hseg}    box{w, h, d}    cube{side}    cone{r, h, seg}
  r{radius}  t{tension}         set line radius / spline tension
  m{color, roughness, metalness, flat, fog, wireframe, transparent,
    opacity, side}              switch to a new material

Anything else is ignored. Missing parameters fall back to the turtle
defaults; extra parameters are ignored.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .curve import CurveBuilder
from .expr import RandomSource
from .geometry import (
    BoundingBox,
    Frame,
    Geometry,
    Group,
    Material,
    Mesh,
    ResourceArena,
    box_geometry,
    cone_geometry,
    segment_geometry,
    sphere_geometry,
)
from .rewrite import derive

logger = logging.getLogger(__name__)

DEFAULTS: Mapping[str, float] = MappingProxyType(
    {
        "length": 0.2,
        "angle": 25.0,
        "radius": 0.05,
        "size": 0.3,
    }
)

DEFAULT_TENSION = 0.5
CAMERA_DISTANCE = -15.0

_ROTATIONS: dict[str, tuple[str, float]] = {
    "+x": ("x", 1.0),
    "-x": ("x", -1.0),
    "+y": ("y", 1.0),
    "-y": ("y", -1.0),
    "+z": ("z", 1.0),
    "-z": ("z", -1.0),
}

# symbol -> (method, max number of parameters used)
_COMMANDS: dict[str, tuple[str, int]] = {
    "f": ("forward", 1),
    "s": ("start_line", 0),
    "e": ("end_line", 0),
    "l": ("line", 3),
    "[": ("push", 0),
    "]": ("pop", 0),
    "sphere": ("sphere", 3),
    "box": ("box", 3),
    "cube": ("cube", 1),
    "cone": ("cone", 3),
    "r": ("set_radius", 1),
    "t": ("set_tension", 1),
    "m": ("set_material", 9),
}


MAX_SEGMENTS = 256


def _count(x: float | None, default: int) -> int:
    if x is None or not math.isfinite(x):
        return default
    return min(int(x), MAX_SEGMENTS)


@dataclass(frozen=True)
class Snapshot:
    frame: Frame
    material: Material
    tension: float
    radius: float


def frame_target(box: BoundingBox) -> tuple[float, float, float]:
    """Camera look-at point: the box center moved onto the x=0 plane."""
    _, y, z = box.center
    return (0.0, y, z)


@dataclass(eq=False)
class Generation:
    """Output of one turtle run. Owns every mesh and material it contains."""

    group: Group
    target: tuple[float, float, float]
    camera_position: tuple[float, float, float]
    bounding_box: BoundingBox
    arena: ResourceArena = field(repr=False)
    command_count: int = 0

    @property
    def released(self) -> bool:
        return self.arena.released

    def release(self) -> None:
        self.arena.release()
        self.group.clear()

    def __enter__(self) -> Generation:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.release()


class Turtle:
    DEFAULTS = DEFAULTS

    def __init__(self, defaults: Mapping[str, float] | None = None) -> None:
        self.overrides: dict[str, float] = {}
        self.defaults: dict[str, float] = dict(self.DEFAULTS)
        self.arena = ResourceArena()
        self.group = Group()
        self.generation: Generation | None = None
        if defaults:
            self.set_defaults(**defaults)
        self.reset()

    # -------------------------
    # State
    # -------------------------

    @property
    def position(self) -> tuple[float, float, float]:
        p = self.frame.position
        return (float(p[0]), float(p[1]), float(p[2]))

    def snapshot(self) -> Snapshot:
        return Snapshot(self.frame, self.material, self.tension, self.radius)

    def set_defaults(self, **overrides: float) -> Turtle:
        """Override turtle defaults; only length/angle/radius/size apply."""
        for key, value in overrides.items():
            if key not in self.DEFAULTS:
                logger.warning("ignoring unknown turtle default %r", key)
                continue
            self.overrides[key] = float(value)
        self.defaults = {**self.DEFAULTS, **self.overrides}
        return self

    def reset(self) -> Turtle:
        """Release everything from the previous run and return to the origin."""
        self.arena.release()
        self.group.clear()
        self.arena = ResourceArena()
        self.group = Group()
        self.generation = None

        self.frame = Frame.initial()
        self.tension = DEFAULT_TENSION
        self.radius = self.defaults["radius"]
        self.stack: list[Snapshot] = []
        self.curve = CurveBuilder()
        self.drawing = False

        self.reset_material()
        return self

    def reset_material(self) -> Turtle:
        return self.set_material()

    def set_material(self, *params: float) -> Turtle:
        self.material = self.arena.track(Material.from_params(params))
        return self

    def set_tension(self, tension: float = DEFAULT_TENSION) -> Turtle:
        self.tension = tension
        return self

    def set_radius(self, radius: float | None = None) -> Turtle:
        self.radius = self.defaults["radius"] if radius is None else radius
        return self

    # -------------------------
    # Movement
    # -------------------------

    def rotate(self, axis: str, angle: float | None = None) -> Turtle:
        if angle is None:
            angle = self.defaults["angle"]
        self.frame = self.frame.rotated(axis, angle)
        return self

    def rotate_x(self, angle: float | None = None) -> Turtle:
        return self.rotate("x", angle)

    def rotate_y(self, angle: float | None = None) -> Turtle:
        return self.rotate("y", angle)

    def rotate_z(self, angle: float | None = None) -> Turtle:
        return self.rotate("z", angle)

    def forward(self, length: float | None = None) -> Turtle:
        if length is None:
            length = self.defaults["length"]
        self.frame = self.frame.translated(length)
        if self.drawing:
            self.curve.add(self.frame.position)
        return self

    # -------------------------
    # Lines
    # -------------------------

    def start_line(self) -> Turtle:
        if self.drawing:
            return self
        self.drawing = True
        self.curve.start(self.frame.position)
        return self

    def end_line(self) -> Turtle:
        if not self.drawing:
            return self
        self.drawing = False
        mesh = self.curve.flush(self.radius, self.tension, self.material)
        if mesh is not None:
            self.arena.track(mesh.geometry)
            self.group.add(mesh)
        return self

    def _break_line(self) -> None:
        if self.drawing:
            self.end_line()
            self.start_line()

    def line(
        self,
        length: float | None = None,
        start_radius: float | None = None,
        end_radius: float | None = None,
    ) -> Turtle:
        if length is None:
            length = self.defaults["length"]
        r0 = self.radius if start_radius is None else start_radius
        r1 = self.radius if end_radius is None else end_radius
        self._emit("line", segment_geometry(length, r0, r1))
        return self.forward(length)

    # -------------------------
    # Branching
    # -------------------------

    def push(self) -> Turtle:
        self._break_line()
        self.stack.append(self.snapshot())
        return self

    def pop(self) -> Turtle:
        self._break_line()
        if not self.stack:
            return self
        snap = self.stack.pop()
        self.frame = snap.frame
        self.material = snap.material
        self.tension = snap.tension
        self.radius = snap.radius
        return self

    # -------------------------
    # Primitives
    # -------------------------

    def _emit(self, kind: str, geometry: Geometry) -> Mesh:
        self.arena.track(geometry)
        return self.group.add(Mesh(kind, geometry, self.material, self.frame))

    def sphere(
        self,
        radius: float | None = None,
        width_segments: float | None = None,
        height_segments: float | None = None,
    ) -> Turtle:
        if radius is None:
            radius = self.defaults["size"] / 2
        geometry = sphere_geometry(
            radius, _count(width_segments, 12), _count(height_segments, 6)
        )
        self._emit("sphere", geometry)
        return self

    def box(
        self,
        width: float | None = None,
        height: float | None = None,
        depth: float | None = None,
    ) -> Turtle:
        size = self.defaults["size"]
        geometry = box_geometry(
            size if width is None else width,
            size if height is None else height,
            size if depth is None else depth,
        )
        self._emit("box", geometry)
        return self

    def cube(self, side: float | None = None) -> Turtle:
        if side is None:
            side = self.defaults["size"]
        return self.box(side, side, side)

    def cone(
        self,
        radius: float | None = None,
        height: float | None = None,
        radial_segments: float | None = None,
    ) -> Turtle:
        size = self.defaults["size"]
        geometry = cone_geometry(
            size / 2 if radius is None else radius,
            size if height is None else height,
            _count(radial_segments, 32),
        )
        self._emit("cone", geometry)
        return self

    # -------------------------
    # Interpretation
    # -------------------------

    def do(self, command: tuple[str, Sequence[float]]) -> None:
        name, params = command

        rotation = _ROTATIONS.get(name)
        if rotation is not None:
            axis, sign = rotation
            angle = params[0] if params else self.defaults["angle"]
            self.rotate(axis, sign * angle)
            return

        entry = _COMMANDS.get(name)
        if entry is None:
            return
        method, max_params = entry
        getattr(self, method)(*params[:max_params])

    def generate(
        self,
        commands: Iterable[tuple[str, Sequence[float]]],
        defaults: Mapping[str, float] | None = None,
    ) -> Generation:
        """Interpret ``commands`` from a clean state and frame the result.

        The previous generation of this turtle is released first.
        """
        if defaults:
            self.set_defaults(**defaults)
        self.reset()

        count = 0
        for command in commands:
            self.do(command)
            count += 1

        if self.drawing:
            logger.debug("discarding unterminated line of %d points", len(self.curve))
            self.curve.clear()
            self.drawing = False

        box = self.group.bounding_box()
        target = frame_target(box)
        self.generation = Generation(
            group=self.group,
            target=target,
            camera_position=(0.0, target[1], CAMERA_DISTANCE),
            bounding_box=box,
            arena=self.arena,
            command_count=count,
        )
        logger.debug("generated %d meshes from %d commands", len(self.group), count)
        return self.generation


def grow(
    axiom: str,
    rules: str | Iterable[str],
    iterations: int,
    *,
    rng: RandomSource | None = None,
    defaults: Mapping[str, float] | None = None,
    turtle: Turtle | None = None,
    max_symbols: int | None = None,
) -> Generation:
    """Parse, rewrite and interpret a grammar in one call."""
    commands = derive(axiom, rules, iterations, rng=rng, max_symbols=max_symbols)
    if turtle is None:
        turtle = Turtle()
    return turtle.generate(commands, defaults)
