#!/usr/bin/env python3
import random

import numpy as np
import pytest

from lsystem3d.curve import CatmullRomCurve, CurveBuilder
from lsystem3d.geometry import (
    BoundingBox,
    Frame,
    Group,
    Material,
    Mesh,
    ResourceArena,
    box_geometry,
    cone_geometry,
    segment_geometry,
    sphere_geometry,
)
from lsystem3d.grammar import Symbol
from lsystem3d.presets import get_preset, sakura
from lsystem3d.turtle import MAX_SEGMENTS, Turtle, grow


def cmd(name: str, *params: float) -> Symbol:
    return Symbol(name, tuple(float(p) for p in params))


class TestFrame:
    def test_initial_frame_looks_up(self) -> None:
        frame = Frame.initial()
        assert frame.forward == pytest.approx([0, 1, 0])
        assert frame.position == pytest.approx([0, 0, 0])
        assert np.linalg.det(frame.rotation) == pytest.approx(1.0)

    def test_translate_along_forward(self) -> None:
        frame = Frame.initial().translated(2.0)
        assert frame.position == pytest.approx([0, 2, 0])

    def test_rotations_are_local(self) -> None:
        frame = Frame.initial().rotated("x", 90)
        assert frame.forward == pytest.approx([0, 0, 1], abs=1e-12)
        frame = Frame.initial().rotated("y", 90)
        assert frame.forward == pytest.approx([1, 0, 0], abs=1e-12)
        # rolling about the forward axis keeps the heading
        frame = Frame.initial().rotated("z", 45)
        assert frame.forward == pytest.approx([0, 1, 0], abs=1e-12)

    def test_frames_are_immutable_values(self) -> None:
        frame = Frame.initial()
        moved = frame.translated(1.0).rotated("x", 30)
        assert frame == Frame.initial()
        assert moved != frame
        assert not frame.position.flags.writeable
        with pytest.raises(ValueError):
            frame.position[0] = 5.0

    def test_transform(self) -> None:
        frame = Frame.initial().translated(1.0)
        # local +Z maps to world +Y
        assert frame.transform(np.array([[0.0, 0.0, 1.0]]))[0] == pytest.approx(
            [0, 2, 0]
        )


class TestPrimitives:
    def test_sphere(self) -> None:
        geo = sphere_geometry(0.5, 12, 6)
        assert np.linalg.norm(geo.vertices, axis=1) == pytest.approx(0.5)
        assert geo.faces.max() < len(geo.vertices)
        # poles on the z axis
        assert geo.vertices[:, 2].max() == pytest.approx(0.5)

    def test_box(self) -> None:
        geo = box_geometry(1.0, 2.0, 3.0)
        assert len(geo.faces) == 12
        box = BoundingBox.from_points(geo.vertices)
        assert box.size == pytest.approx((1.0, 2.0, 3.0))

    def test_segment_spans_length(self) -> None:
        geo = segment_geometry(2.0, 0.3, 0.1, 16)
        assert geo.vertices[:, 2].min() == pytest.approx(0.0)
        assert geo.vertices[:, 2].max() == pytest.approx(2.0)
        start = geo.vertices[:16]
        end = geo.vertices[16:32]
        assert np.hypot(start[:, 0], start[:, 1]) == pytest.approx(0.3)
        assert np.hypot(end[:, 0], end[:, 1]) == pytest.approx(0.1)

    def test_cone_apex_forward(self) -> None:
        geo = cone_geometry(0.5, 1.0)
        apex = geo.vertices[geo.vertices[:, 2].argmax()]
        assert apex == pytest.approx([0, 0, 0.5])
        assert geo.vertices[:, 2].min() == pytest.approx(-0.5)

    def test_empty_bounding_box(self) -> None:
        box = Group().bounding_box()
        assert box.is_empty
        assert box.center == (0.0, 0.0, 0.0)


class TestMaterial:
    def test_defaults(self) -> None:
        m = Material.from_params(())
        assert m.color == 0xFFFFFF
        assert m.roughness == pytest.approx(0.1)
        assert m.metalness == pytest.approx(0.1)
        assert m.fog and not m.wireframe
        assert m.side == "front"

    def test_from_params(self) -> None:
        m = Material.from_params((0xF695C3, 0.7, 0.0, 1, 0, 1, 1, 0.5, 2))
        assert m.color == 0xF695C3
        assert m.roughness == pytest.approx(0.7)
        assert m.flat_shading and not m.fog and m.wireframe and m.transparent
        assert m.opacity == pytest.approx(0.5)
        assert m.side == "double"

    def test_rgb(self) -> None:
        assert Material(color=0xFF8000).rgb == pytest.approx((1.0, 128 / 255, 0.0))

    def test_arena_releases_everything(self) -> None:
        arena = ResourceArena()
        geo = arena.track(sphere_geometry(1.0))
        mat = arena.track(Material())
        assert arena.release() == 2
        assert geo.disposed and mat.disposed
        assert len(geo.vertices) == 0
        assert arena.released and len(arena) == 0


class TestCurve:
    def test_interpolates_control_points(self) -> None:
        pts = [(0, 0, 0), (1, 1, 0), (2, 0, 1)]
        curve = CatmullRomCurve(pts, tension=0.5)
        assert curve.point(np.array([0.0, 0.5, 1.0])) == pytest.approx(
            np.array(pts, dtype=float)
        )

    def test_needs_two_points(self) -> None:
        with pytest.raises(ValueError):
            CatmullRomCurve([(0, 0, 0)])

    def test_builder_drops_degenerate_curves(self) -> None:
        builder = CurveBuilder()
        builder.start(np.zeros(3))
        assert builder.flush(0.1, 0.5, Material()) is None
        assert len(builder) == 0

    def test_builder_emits_tube(self) -> None:
        builder = CurveBuilder()
        builder.start(np.array([0.0, 0.0, 0.0]))
        builder.add(np.array([0.0, 1.0, 0.0]))
        builder.add(np.array([0.0, 2.0, 0.0]))
        assert builder.points == [(0.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 2.0, 0.0)]
        mesh = builder.flush(0.1, 0.5, Material())
        assert mesh is not None
        assert mesh.kind == "tube"
        # 3 points * 5 segments -> 16 rings of 8 + 1 vertices
        assert mesh.geometry.vertices.shape == (16 * 9, 3)
        assert len(mesh.geometry.faces) == 15 * 8 * 2
        v = mesh.geometry.vertices
        assert np.hypot(v[:, 0], v[:, 2]) == pytest.approx(0.1)
        assert len(builder) == 0


class TestTurtle:
    def setup_method(self) -> None:
        self.turtle = Turtle()

    def test_push_pop_round_trip(self) -> None:
        t = self.turtle
        t.rotate_x(30).forward(1.0).set_radius(0.3).set_tension(0.2)
        t.set_material(0xFF0000)
        before = t.snapshot()
        t.do(cmd("["))
        t.do(cmd("]"))
        after = t.snapshot()
        assert after == before
        assert after.material is before.material

    def test_pop_restores_saved_state(self) -> None:
        t = self.turtle
        t.do(cmd("["))
        saved = t.stack[-1]
        t.do(cmd("+x", 40))
        t.do(cmd("f", 2))
        t.do(cmd("r", 0.5))
        t.do(cmd("m", 0x00FF00))
        assert t.stack[-1] is saved
        assert saved.frame == Frame.initial()
        t.do(cmd("]"))
        assert t.frame == Frame.initial()
        assert t.radius == pytest.approx(0.05)
        assert t.material.color == 0xFFFFFF

    def test_pop_on_empty_stack_is_noop(self) -> None:
        t = self.turtle
        before = t.snapshot()
        t.do(cmd("]"))
        assert t.snapshot() == before
        assert len(t.group) == 0

    def test_default_rotation_angles(self) -> None:
        t = self.turtle
        t.do(cmd("+x"))
        assert t.frame == Frame.initial().rotated("x", 25)

        t = Turtle()
        t.do(cmd("-y"))
        assert t.frame == Frame.initial().rotated("y", -25)

        t = Turtle()
        t.do(cmd("-z", 10))
        assert t.frame == Frame.initial().rotated("z", -10)

    def test_forward_default_length(self) -> None:
        t = self.turtle
        t.do(cmd("f"))
        assert t.position == pytest.approx((0, 0.2, 0))
        t.do(cmd("f", 1, 99))
        assert t.position == pytest.approx((0, 1.2, 0))

    def test_line_with_three_points_emits_one_tube(self) -> None:
        gen = self.turtle.generate([cmd("s"), cmd("f", 1), cmd("f", 1), cmd("e")])
        assert [m.kind for m in gen.group] == ["tube"]

    def test_line_with_one_point_emits_nothing(self) -> None:
        gen = self.turtle.generate([cmd("s"), cmd("e")])
        assert len(gen.group) == 0

    def test_start_twice_keeps_drawing(self) -> None:
        t = self.turtle
        t.do(cmd("s"))
        t.do(cmd("f", 1))
        t.do(cmd("s"))
        assert len(t.curve) == 2

    def test_unterminated_line_is_discarded(self) -> None:
        gen = self.turtle.generate([cmd("s"), cmd("f", 1), cmd("f", 1)])
        assert len(gen.group) == 0

    def test_push_flushes_and_continues_line(self) -> None:
        t = self.turtle
        for c in [cmd("s"), cmd("f", 1), cmd("[")]:
            t.do(c)
        assert len(t.group) == 1
        assert t.drawing
        assert len(t.curve) == 1

    def test_tube_uses_current_radius(self) -> None:
        gen = self.turtle.generate(
            [cmd("r", 0.2), cmd("s"), cmd("f", 1), cmd("f", 1), cmd("e")]
        )
        v = gen.group.children[0].geometry.vertices
        assert np.hypot(v[:, 0], v[:, 2]) == pytest.approx(0.2)

    def test_segment_advances_cursor(self) -> None:
        t = self.turtle
        t.do(cmd("l", 1, 0.1, 0.05))
        assert t.position == pytest.approx((0, 1, 0))
        (mesh,) = t.group
        assert mesh.kind == "line"
        box = BoundingBox.from_points(mesh.world_vertices())
        assert box.min[1] == pytest.approx(0.0)
        assert box.max[1] == pytest.approx(1.0)

    def test_primitives_use_current_material(self) -> None:
        t = self.turtle
        t.do(cmd("m", 0xFF0000, 0.5, 0.2))
        for name in ["sphere", "box", "cube", "cone"]:
            t.do(cmd(name))
        assert [m.kind for m in t.group] == ["sphere", "box", "box", "cone"]
        assert all(m.material is t.material for m in t.group)
        assert t.material.color == 0xFF0000
        assert t.material.roughness == pytest.approx(0.5)

    def test_primitive_default_sizes(self) -> None:
        t = self.turtle
        t.do(cmd("sphere"))
        t.do(cmd("cube"))
        sphere, cube = t.group
        assert np.linalg.norm(sphere.world_vertices(), axis=1) == pytest.approx(0.15)
        assert BoundingBox.from_points(cube.world_vertices()).size == pytest.approx(
            (0.3, 0.3, 0.3)
        )

    def test_segment_counts_are_bounded(self) -> None:
        t = self.turtle
        t.do(cmd("sphere", 1, 1e12, 1e12))
        t.do(cmd("cone", 1, 1, 1e12))
        sphere, cone = t.group
        assert len(sphere.geometry.vertices) == (MAX_SEGMENTS + 1) ** 2
        assert len(cone.geometry.vertices) == 2 * MAX_SEGMENTS + 2

    def test_primitives_sit_at_cursor(self) -> None:
        t = self.turtle
        t.do(cmd("f", 2))
        t.do(cmd("sphere", 0.5))
        center = BoundingBox.from_points(t.group.children[0].world_vertices()).center
        assert center == pytest.approx((0, 2, 0), abs=1e-9)

    def test_unknown_commands_are_ignored(self) -> None:
        t = self.turtle
        before = t.snapshot()
        t.do(cmd("A", 1, 2))
        t.do(cmd("X"))
        assert t.snapshot() == before
        assert len(t.group) == 0

    def test_tension_and_radius(self) -> None:
        t = self.turtle
        t.do(cmd("t", 0.9))
        t.do(cmd("r", 0.4))
        assert t.tension == pytest.approx(0.9)
        assert t.radius == pytest.approx(0.4)
        t.do(cmd("r"))
        assert t.radius == pytest.approx(0.05)

    def test_camera_target_ignores_lateral_offset(self) -> None:
        gen = self.turtle.generate([cmd("+y", 90), cmd("f", 3), cmd("cube", 1)])
        assert gen.bounding_box.center == pytest.approx((3, 0, 0), abs=1e-9)
        assert gen.target == pytest.approx((0, 0, 0), abs=1e-9)

    def test_camera_target_height(self) -> None:
        gen = self.turtle.generate([cmd("l", 2, 0.1, 0.1)])
        assert gen.target == pytest.approx((0, 1, 0), abs=1e-9)
        assert gen.camera_position == pytest.approx((0, 1, -15), abs=1e-9)

    def test_empty_generation(self) -> None:
        gen = self.turtle.generate([])
        assert gen.target == (0.0, 0.0, 0.0)
        assert gen.command_count == 0

    def test_release(self) -> None:
        gen = self.turtle.generate([cmd("sphere")])
        mesh = gen.group.children[0]
        gen.release()
        assert gen.released
        assert mesh.geometry.disposed and mesh.material.disposed
        assert len(gen.group) == 0

    def test_regenerate_releases_previous_run(self) -> None:
        first = self.turtle.generate([cmd("sphere")])
        mesh = first.group.children[0]
        second = self.turtle.generate([cmd("cube")])
        assert first.released
        assert mesh.geometry.disposed
        assert not second.released
        assert [m.kind for m in second.group] == ["box"]

    def test_generation_context_manager(self) -> None:
        with self.turtle.generate([cmd("cone")]) as gen:
            assert len(gen.group) == 1
        assert gen.released

    def test_defaults_overrides(self) -> None:
        t = Turtle(defaults={"length": 1.0, "bogus": 3.0})
        assert "bogus" not in t.defaults
        t.do(cmd("f"))
        assert t.position == pytest.approx((0, 1, 0))

        gen = Turtle().generate([cmd("cube")], defaults={"size": 2.0})
        box = gen.bounding_box
        assert box.size == pytest.approx((2.0, 2.0, 2.0))

    def test_mesh_frame_is_snapshot(self) -> None:
        t = self.turtle
        t.do(cmd("sphere"))
        t.do(cmd("f", 5))
        mesh: Mesh = t.group.children[0]
        assert mesh.frame == Frame.initial()


class TestGrow:
    def test_grow(self) -> None:
        gen = grow(
            "A{1}",
            "A{r} -> l{0.5, r/10, r/20} +x [ A{r/2} ] -x A{r/2}",
            3,
            rng=random.Random(1),
        )
        assert len(gen.group) == 7
        assert all(m.kind == "line" for m in gen.group)
        assert gen.command_count > 0

    def test_sakura(self) -> None:
        gen = sakura(3, rng=random.Random(1))
        kinds = {m.kind for m in gen.group}
        assert kinds == {"line", "sphere"}
        colors = {m.material.color for m in gen.group}
        assert colors == {0x594D30, 0xF695C3}
        assert gen.target[0] == 0.0

    def test_sakura_is_repeatable_with_seed(self) -> None:
        a = sakura(3, rng=random.Random(9))
        b = sakura(3, rng=random.Random(9))
        va = np.concatenate([m.world_vertices() for m in a.group])
        vb = np.concatenate([m.world_vertices() for m in b.group])
        assert np.array_equal(va, vb)

    def test_get_preset(self) -> None:
        assert get_preset("Sakura").iterations == 4
