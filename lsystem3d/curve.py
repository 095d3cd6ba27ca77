"""Smoothed tube geometry through the points collected while a line is open.

The path is an open Catmull-Rom spline with adjustable tension (the end
segments use mirrored phantom points). It is resampled by arc length and
swept with a circular cross-section using parallel-transport frames, so the
tube does not twist around sharp bends.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

import numpy as np

from .geometry import Geometry, Material, Mesh

logger = logging.getLogger(__name__)

SEGMENTS_PER_POINT = 5
RADIAL_SEGMENTS = 8
ARC_LENGTH_DIVISIONS = 200

_TANGENT_DELTA = 1e-4


class CatmullRomCurve:
    def __init__(self, points: Sequence[Sequence[float]], tension: float = 0.5):
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if len(pts) < 2:
            raise ValueError("a curve needs at least two points")
        self.points = pts
        self.tension = float(tension)
        self._lengths = self._arc_lengths(ARC_LENGTH_DIVISIONS)

    def point(self, t: np.ndarray) -> np.ndarray:
        """Evaluate the curve at parameters ``t`` in [0, 1]; returns (N, 3)."""
        pts = self.points
        n = len(pts)
        t = np.clip(np.atleast_1d(np.asarray(t, dtype=np.float64)), 0.0, 1.0)

        p = (n - 1) * t
        idx = np.floor(p).astype(np.int64)
        weight = p - idx
        at_end = idx >= n - 1
        idx = np.where(at_end, n - 2, idx)
        weight = np.where(at_end, 1.0, weight)

        first = 2 * pts[0] - pts[1]
        last = 2 * pts[n - 1] - pts[n - 2]
        padded = np.concatenate([first[None], pts, last[None]], axis=0)
        p0 = padded[idx]
        p1 = padded[idx + 1]
        p2 = padded[idx + 2]
        p3 = padded[idx + 3]

        t0 = self.tension * (p2 - p0)
        t1 = self.tension * (p3 - p1)
        c0 = p1
        c1 = t0
        c2 = -3 * p1 + 3 * p2 - 2 * t0 - t1
        c3 = 2 * p1 - 2 * p2 + t0 + t1

        w = weight[:, None]
        return c0 + c1 * w + c2 * w**2 + c3 * w**3

    def _arc_lengths(self, divisions: int) -> np.ndarray:
        samples = self.point(np.linspace(0.0, 1.0, divisions + 1))
        steps = np.linalg.norm(np.diff(samples, axis=0), axis=1)
        return np.concatenate([[0.0], np.cumsum(steps)])

    def u_to_t(self, u: np.ndarray) -> np.ndarray:
        """Map arc-length fractions ``u`` to curve parameters ``t``."""
        u = np.asarray(u, dtype=np.float64)
        total = self._lengths[-1]
        grid = np.linspace(0.0, 1.0, len(self._lengths))
        if total <= 0:
            return u
        return np.interp(u * total, self._lengths, grid)

    def point_at(self, u: np.ndarray) -> np.ndarray:
        return self.point(self.u_to_t(u))

    def tangent_at(self, u: np.ndarray) -> np.ndarray:
        t = self.u_to_t(u)
        a = self.point(np.clip(t - _TANGENT_DELTA, 0.0, 1.0))
        b = self.point(np.clip(t + _TANGENT_DELTA, 0.0, 1.0))
        return _normalize_rows(b - a)


def _normalize_rows(v: np.ndarray) -> np.ndarray:
    """Normalize each row; zero rows copy the previous usable direction."""
    norms = np.linalg.norm(v, axis=1)
    out = np.zeros_like(v)
    prev = np.array([0.0, 0.0, 1.0])
    good = np.flatnonzero(norms > 1e-12)
    if len(good):
        prev = v[good[0]] / norms[good[0]]
    for i in range(len(v)):
        if norms[i] > 1e-12:
            prev = v[i] / norms[i]
        out[i] = prev
    return out


def _rotate(v: np.ndarray, axis: np.ndarray, angle: float) -> np.ndarray:
    # Rodrigues' rotation formula
    c, s = math.cos(angle), math.sin(angle)
    return v * c + np.cross(axis, v) * s + axis * np.dot(axis, v) * (1 - c)


def parallel_transport_frames(
    tangents: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """Return (normals, binormals) that follow ``tangents`` without twisting."""
    n = len(tangents)
    normals = np.zeros((n, 3))
    binormals = np.zeros((n, 3))

    t0 = tangents[0]
    seed = np.zeros(3)
    seed[int(np.argmin(np.abs(t0)))] = 1.0
    vec = np.cross(t0, seed)
    vec /= np.linalg.norm(vec)
    normals[0] = np.cross(t0, vec)
    binormals[0] = np.cross(t0, normals[0])

    for i in range(1, n):
        normals[i] = normals[i - 1]
        axis = np.cross(tangents[i - 1], tangents[i])
        norm = np.linalg.norm(axis)
        if norm > 1e-12:
            axis /= norm
            theta = math.acos(float(np.clip(np.dot(tangents[i - 1], tangents[i]), -1, 1)))
            normals[i] = _rotate(normals[i], axis, theta)
        binormals[i] = np.cross(tangents[i], normals[i])

    return normals, binormals


def tube_geometry(
    curve: CatmullRomCurve,
    tubular_segments: int,
    radius: float,
    radial_segments: int = RADIAL_SEGMENTS,
) -> Geometry:
    """Open tube of ``tubular_segments + 1`` rings swept along ``curve``."""
    segs = max(1, int(tubular_segments))
    radial = max(3, int(radial_segments))

    u = np.linspace(0.0, 1.0, segs + 1)
    centers = curve.point_at(u)
    tangents = curve.tangent_at(u)
    normals, binormals = parallel_transport_frames(tangents)

    v = np.linspace(0.0, 2 * math.pi, radial + 1)
    sin = np.sin(v)[None, :, None]
    cos = -np.cos(v)[None, :, None]
    offsets = cos * normals[:, None, :] + sin * binormals[:, None, :]
    vertices = (centers[:, None, :] + radius * offsets).reshape(-1, 3)

    faces: list[tuple[int, int, int]] = []
    ring = radial + 1
    for j in range(1, segs + 1):
        for i in range(1, radial + 1):
            a = ring * (j - 1) + (i - 1)
            b = ring * j + (i - 1)
            c = ring * j + i
            d = ring * (j - 1) + i
            faces.append((a, b, d))
            faces.append((b, c, d))

    return Geometry(vertices, np.array(faces, dtype=np.int64))


class CurveBuilder:
    """Accumulates cursor positions and turns them into one tube on flush."""

    def __init__(self) -> None:
        self._points: list[np.ndarray] = []

    @property
    def points(self) -> list[tuple[float, float, float]]:
        return [(float(p[0]), float(p[1]), float(p[2])) for p in self._points]

    def __len__(self) -> int:
        return len(self._points)

    def start(self, position: np.ndarray) -> None:
        self._points = [np.array(position, dtype=np.float64)]

    def add(self, position: np.ndarray) -> None:
        self._points.append(np.array(position, dtype=np.float64))

    def clear(self) -> None:
        self._points = []

    def flush(self, radius: float, tension: float, material: Material) -> Mesh | None:
        """Build the tube for the collected points and clear them.

        Returns None when there are fewer than two points.
        """
        points = self._points
        self._points = []
        if len(points) <= 1:
            return None

        curve = CatmullRomCurve(points, tension)
        geometry = tube_geometry(curve, len(points) * SEGMENTS_PER_POINT, radius)
        logger.debug(
            "tube: %d points, %d vertices", len(points), len(geometry.vertices)
        )
        return Mesh("tube", geometry, material)
