"""Renderer-independent geometry: frames, meshes, materials and groups.

Everything here is plain numpy. A ``Frame`` is the turtle cursor: a world
position plus a rotation matrix whose columns are the local X, Y and Z axes.
Local +Z is the forward direction. Frames are immutable, so a frame saved
on the turtle's stack can never be changed by later cursor moves.

Primitive builders return vertices in the primitive's local space with its
main axis along +Z; a ``Mesh`` pairs that geometry with the frame it was
emitted at.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

import numpy as np

logger = logging.getLogger(__name__)


# -------------------------
# Frame (turtle cursor)
# -------------------------


def _axis_rotation(axis: str, radians: float) -> np.ndarray:
    c, s = math.cos(radians), math.sin(radians)
    if axis == "x":
        return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])
    if axis == "y":
        return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])
    if axis == "z":
        return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])
    raise ValueError(f"unknown rotation axis {axis!r}")


def _frozen(a: np.ndarray, shape: tuple[int, ...]) -> np.ndarray:
    out = np.array(a, dtype=np.float64).reshape(shape)
    out.setflags(write=False)
    return out


@dataclass(frozen=True, eq=False)
class Frame:
    position: np.ndarray
    rotation: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", _frozen(self.position, (3,)))
        object.__setattr__(self, "rotation", _frozen(self.rotation, (3, 3)))

    @classmethod
    def identity(cls) -> Frame:
        return cls(np.zeros(3), np.eye(3))

    @classmethod
    def initial(cls) -> Frame:
        """Origin frame looking up the world Y axis (local X = world X)."""
        rotation = np.array(
            [
                [1.0, 0.0, 0.0],
                [0.0, 0.0, 1.0],
                [0.0, -1.0, 0.0],
            ]
        )
        return cls(np.zeros(3), rotation)

    @property
    def forward(self) -> np.ndarray:
        return self.rotation[:, 2]

    def rotated(self, axis: str, degrees: float) -> Frame:
        """Rotate about one of the frame's own axes."""
        rot = self.rotation @ _axis_rotation(axis, math.radians(degrees))
        return Frame(self.position, rot)

    def translated(self, distance: float) -> Frame:
        return Frame(self.position + self.forward * distance, self.rotation)

    def transform(self, points: np.ndarray) -> np.ndarray:
        """Map local-space points (N, 3) to world space."""
        return np.asarray(points, dtype=np.float64) @ self.rotation.T + self.position

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Frame):
            return NotImplemented
        return np.array_equal(self.position, other.position) and np.array_equal(
            self.rotation, other.rotation
        )

    def __hash__(self) -> int:
        return hash((self.position.tobytes(), self.rotation.tobytes()))

    def __repr__(self) -> str:
        return f"Frame(position={self.position.tolist()})"


# -------------------------
# Resources
# -------------------------


class Disposable(Protocol):
    def dispose(self) -> None: ...


_R = TypeVar("_R", bound=Disposable)


@dataclass(eq=False)
class Geometry:
    vertices: np.ndarray
    faces: np.ndarray
    disposed: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)

    def dispose(self) -> None:
        self.vertices = np.zeros((0, 3))
        self.faces = np.zeros((0, 3), dtype=np.int64)
        self.disposed = True


SIDES = ("front", "back", "double")


def _finite_or(x: float, default: float) -> float:
    return float(x) if math.isfinite(x) else default


@dataclass(eq=False)
class Material:
    color: int = 0xFFFFFF
    roughness: float = 0.1
    metalness: float = 0.1
    flat_shading: bool = False
    fog: bool = True
    wireframe: bool = False
    transparent: bool = False
    opacity: float = 1.0
    side: str = "front"
    disposed: bool = field(default=False, init=False)

    @classmethod
    def from_params(cls, params: Sequence[float]) -> Material:
        """Build a material from ``m{...}`` parameters; missing ones default.

        Order: color, roughness, metalness, flat_shading, fog, wireframe,
        transparent, opacity, side (0 front, 1 back, 2 double).
        """
        d = cls()
        p = list(params)

        def get(i: int, default: float) -> float:
            return _finite_or(p[i], default) if i < len(p) else default

        side = int(get(8, 0))
        return cls(
            color=int(get(0, d.color)) & 0xFFFFFF,
            roughness=get(1, d.roughness),
            metalness=get(2, d.metalness),
            flat_shading=bool(get(3, d.flat_shading)),
            fog=bool(get(4, d.fog)),
            wireframe=bool(get(5, d.wireframe)),
            transparent=bool(get(6, d.transparent)),
            opacity=get(7, d.opacity),
            side=SIDES[side] if 0 <= side < len(SIDES) else d.side,
        )

    @property
    def rgb(self) -> tuple[float, float, float]:
        return (
            ((self.color >> 16) & 0xFF) / 255.0,
            ((self.color >> 8) & 0xFF) / 255.0,
            (self.color & 0xFF) / 255.0,
        )

    def dispose(self) -> None:
        self.disposed = True


class ResourceArena:
    """Owns every geometry and material allocated by one generation run."""

    def __init__(self) -> None:
        self._resources: list[Disposable] = []
        self.released = False

    def track(self, resource: _R) -> _R:
        self._resources.append(resource)
        return resource

    def release(self) -> int:
        count = len(self._resources)
        for r in self._resources:
            r.dispose()
        self._resources = []
        self.released = True
        logger.debug("released %d resources", count)
        return count

    def __len__(self) -> int:
        return len(self._resources)


# -------------------------
# Scene tree
# -------------------------


@dataclass(eq=False)
class Mesh:
    kind: str
    geometry: Geometry
    material: Material
    frame: Frame = field(default_factory=Frame.identity)

    def world_vertices(self) -> np.ndarray:
        return self.frame.transform(self.geometry.vertices)


@dataclass(frozen=True)
class BoundingBox:
    min: tuple[float, float, float]
    max: tuple[float, float, float]

    @classmethod
    def empty(cls) -> BoundingBox:
        return cls((math.inf,) * 3, (-math.inf,) * 3)

    @classmethod
    def from_points(cls, points: np.ndarray) -> BoundingBox:
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if not len(pts):
            return cls.empty()
        lo = pts.min(axis=0)
        hi = pts.max(axis=0)
        return cls(
            (float(lo[0]), float(lo[1]), float(lo[2])),
            (float(hi[0]), float(hi[1]), float(hi[2])),
        )

    @property
    def is_empty(self) -> bool:
        return any(lo > hi for lo, hi in zip(self.min, self.max))

    @property
    def center(self) -> tuple[float, float, float]:
        if self.is_empty:
            return (0.0, 0.0, 0.0)
        c = [(lo + hi) / 2 for lo, hi in zip(self.min, self.max)]
        return (c[0], c[1], c[2])

    @property
    def size(self) -> tuple[float, float, float]:
        if self.is_empty:
            return (0.0, 0.0, 0.0)
        s = [hi - lo for lo, hi in zip(self.min, self.max)]
        return (s[0], s[1], s[2])


@dataclass
class Group:
    children: list[Mesh] = field(default_factory=list)

    def add(self, mesh: Mesh) -> Mesh:
        self.children.append(mesh)
        return mesh

    def clear(self) -> None:
        self.children = []

    def bounding_box(self) -> BoundingBox:
        parts = [m.world_vertices() for m in self.children if len(m.geometry.vertices)]
        if not parts:
            return BoundingBox.empty()
        return BoundingBox.from_points(np.concatenate(parts, axis=0))

    def __iter__(self) -> Iterator[Mesh]:
        return iter(self.children)

    def __len__(self) -> int:
        return len(self.children)


# -------------------------
# Primitive builders
# -------------------------


def sphere_geometry(
    radius: float, width_segments: int = 12, height_segments: int = 6
) -> Geometry:
    """UV sphere centered on the origin with its poles on the Z axis."""
    w = max(3, int(width_segments))
    h = max(2, int(height_segments))

    u = np.linspace(0.0, 1.0, w + 1)
    v = np.linspace(0.0, 1.0, h + 1)
    uu, vv = np.meshgrid(u, v)
    sin_v = np.sin(vv * math.pi)
    x = -radius * np.cos(uu * 2 * math.pi) * sin_v
    y = -radius * np.sin(uu * 2 * math.pi) * sin_v
    z = radius * np.cos(vv * math.pi)
    vertices = np.stack([x, y, z], axis=-1).reshape(-1, 3)

    grid = np.arange((h + 1) * (w + 1)).reshape(h + 1, w + 1)
    faces: list[tuple[int, int, int]] = []
    for iy in range(h):
        for ix in range(w):
            a = grid[iy, ix + 1]
            b = grid[iy, ix]
            c = grid[iy + 1, ix]
            d = grid[iy + 1, ix + 1]
            if iy != 0:
                faces.append((a, b, d))
            if iy != h - 1:
                faces.append((b, c, d))
    return Geometry(vertices, np.array(faces, dtype=np.int64))


def box_geometry(width: float, height: float, depth: float) -> Geometry:
    """Axis-aligned box centered on the origin; depth runs along Z."""
    hx, hy, hz = width / 2, height / 2, depth / 2
    vertices = np.array(
        [
            [-hx, -hy, -hz],
            [hx, -hy, -hz],
            [hx, hy, -hz],
            [-hx, hy, -hz],
            [-hx, -hy, hz],
            [hx, -hy, hz],
            [hx, hy, hz],
            [-hx, hy, hz],
        ]
    )
    faces = np.array(
        [
            [0, 2, 1], [0, 3, 2],  # -z
            [4, 5, 6], [4, 6, 7],  # +z
            [0, 1, 5], [0, 5, 4],  # -y
            [3, 7, 6], [3, 6, 2],  # +y
            [0, 4, 7], [0, 7, 3],  # -x
            [1, 2, 6], [1, 6, 5],  # +x
        ]
    )
    return Geometry(vertices, faces)


def _frustum(
    r0: float, r1: float, z0: float, z1: float, radial_segments: int
) -> Geometry:
    n = max(3, int(radial_segments))
    theta = np.linspace(0.0, 2 * math.pi, n, endpoint=False)
    ring = np.stack([np.cos(theta), np.sin(theta)], axis=-1)

    bottom = np.column_stack([ring * r0, np.full(n, z0)])
    top = np.column_stack([ring * r1, np.full(n, z1)])
    centers = np.array([[0.0, 0.0, z0], [0.0, 0.0, z1]])
    vertices = np.concatenate([bottom, top, centers], axis=0)

    i = np.arange(n)
    j = (i + 1) % n
    side = np.concatenate(
        [np.stack([i, j, n + j], axis=-1), np.stack([i, n + j, n + i], axis=-1)]
    )
    cap0 = np.stack([np.full(n, 2 * n), j, i], axis=-1)
    cap1 = np.stack([np.full(n, 2 * n + 1), n + i, n + j], axis=-1)
    return Geometry(vertices, np.concatenate([side, cap0, cap1]))


def segment_geometry(
    length: float, start_radius: float, end_radius: float, radial_segments: int = 32
) -> Geometry:
    """Tapered cylinder from z=0 (start radius) to z=length (end radius)."""
    return _frustum(start_radius, end_radius, 0.0, length, radial_segments)


def cone_geometry(radius: float, height: float, radial_segments: int = 32) -> Geometry:
    """Cone centered on the origin with its apex on +Z."""
    return _frustum(radius, 0.0, -height / 2, height / 2, radial_segments)
