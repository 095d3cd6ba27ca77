"""Wavefront OBJ/MTL output for a generated group.

Each mesh becomes an ``o`` object with world-space vertices. Materials are
written to a sibling ``.mtl`` file and referenced with ``usemtl``; meshes that
share a material object share one MTL entry.
"""

from __future__ import annotations

import logging
import os

from .config import ensure_parent_dir
from .errors import _require
from .geometry import Group, Material

logger = logging.getLogger(__name__)


def _fmt(x: float, precision: int) -> str:
    # Normalise -0.0 so it never produces "-0" in the output.
    if not x:
        x = 0.0
    s = f"{x:.{precision}f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s or "0"


def _mtl_lines(name: str, material: Material, precision: int) -> list[str]:
    r, g, b = material.rgb
    # MTL has no roughness; map it onto the specular exponent.
    shininess = (1.0 - min(max(material.roughness, 0.0), 1.0)) * 1000.0
    opacity = material.opacity if material.transparent else 1.0
    return [
        f"newmtl {name}",
        f"Kd {_fmt(r, precision)} {_fmt(g, precision)} {_fmt(b, precision)}",
        f"Ks {_fmt(material.metalness, precision)} "
        f"{_fmt(material.metalness, precision)} {_fmt(material.metalness, precision)}",
        f"Ns {_fmt(shininess, precision)}",
        f"d {_fmt(opacity, precision)}",
        "illum 2",
        "",
    ]


def write_obj(
    group: Group,
    *,
    out_path: str,
    precision: int = 5,
    title: str | None = None,
) -> tuple[str, str]:
    """Write ``group`` to ``out_path`` plus a ``.mtl`` next to it.

    Returns the (obj, mtl) paths.
    """
    _require(0 <= precision <= 10, "precision must be between 0 and 10")
    mtl_path = os.path.splitext(out_path)[0] + ".mtl"

    material_names: dict[int, str] = {}
    mtl: list[str] = []
    lines: list[str] = []
    if title:
        lines.append(f"# {title}")
    lines.append(f"mtllib {os.path.basename(mtl_path)}")

    offset = 1
    for i, mesh in enumerate(group):
        key = id(mesh.material)
        if key not in material_names:
            material_names[key] = f"material_{len(material_names)}"
            mtl.extend(_mtl_lines(material_names[key], mesh.material, precision))

        lines.append(f"o {mesh.kind}_{i}")
        lines.append(f"usemtl {material_names[key]}")
        for x, y, z in mesh.world_vertices():
            lines.append(
                f"v {_fmt(x, precision)} {_fmt(y, precision)} {_fmt(z, precision)}"
            )
        if mesh.material.flat_shading:
            lines.append("s off")
        for a, b, c in mesh.geometry.faces:
            lines.append(f"f {a + offset} {b + offset} {c + offset}")
        offset += len(mesh.geometry.vertices)

    ensure_parent_dir(out_path)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))
        f.write("\n")
    with open(mtl_path, "w", encoding="utf-8") as f:
        f.write("\n".join(mtl))

    logger.info(
        "wrote %d meshes (%d vertices) to %s", len(group), offset - 1, out_path
    )
    return out_path, mtl_path
