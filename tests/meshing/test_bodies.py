"""Tests for immersed bodies and their prescribed motion."""

import numpy as np
import pytest

from meshing.bodies import Body, BodySystem, Oscillation, circle, load_body
from utilities.errors import ConfigurationError


class TestBody:
    """Marker positions and velocities."""

    def test_circle_markers(self):
        body = circle((1.0, -0.5), radius=0.25, n_points=16)
        r = np.hypot(body.x0 - 1.0, body.y0 + 0.5)
        assert body.num_points == 16
        assert np.allclose(r, 0.25)
        assert not body.is_moving

    def test_stationary_body(self):
        body = circle(n_points=8)
        x, y = body.position(3.0)
        u, v = body.marker_velocity(3.0)
        assert np.array_equal(x, body.x0) and np.array_equal(y, body.y0)
        assert np.all(u == 0.0) and np.all(v == 0.0)

    def test_translation(self):
        body = circle(n_points=8, velocity=(0.5, -1.0))
        x, y = body.position(2.0)
        u, v = body.marker_velocity(2.0)
        assert np.allclose(x, body.x0 + 1.0)
        assert np.allclose(y, body.y0 - 2.0)
        assert np.allclose(u, 0.5) and np.allclose(v, -1.0)

    def test_rotation_is_tangential(self):
        body = circle((0.0, 0.0), radius=0.5, n_points=12, omega=2.0)
        x, y = body.position(0.3)
        u, v = body.marker_velocity(0.3)
        assert np.allclose(np.hypot(x, y), 0.5)
        assert np.allclose(u * x + v * y, 0.0)
        assert np.allclose(np.hypot(u, v), 1.0)

    def test_oscillation_velocity_matches_displacement(self):
        osc = Oscillation(amplitude=0.1, frequency=2.0, phase=0.3)
        t, h = 0.17, 1e-6
        numeric = (osc.displacement(t + h) - osc.displacement(t - h)) / (2 * h)
        assert np.isclose(osc.velocity(t), numeric, rtol=1e-6)

    def test_invalid_bodies(self):
        with pytest.raises(ConfigurationError):
            Body(np.zeros(3), np.zeros(4))
        with pytest.raises(ConfigurationError):
            circle(radius=0.0)


class TestLoadBody:
    """Marker files: count on the first line, then x y pairs."""

    def test_load(self, tmp_path):
        path = tmp_path / "square.body"
        path.write_text("4\n0 0\n1 0\n1 1\n0 1\n")
        body = load_body(path)
        assert body.num_points == 4
        assert body.name == "square"
        assert body.center == (0.5, 0.5)

    def test_wrong_count(self, tmp_path):
        path = tmp_path / "bad.body"
        path.write_text("3\n0 0\n1 0\n")
        with pytest.raises(ConfigurationError):
            load_body(path)


class TestBodySystem:
    """Stacking of several bodies."""

    def test_stacking(self):
        system = BodySystem([circle(n_points=4), circle((2.0, 0.0), n_points=6, velocity=(1.0, 0.0))])
        x, y = system.positions(0.0)
        u, v = system.velocities(0.0)
        assert system.num_points == 10 and len(system) == 2
        assert x.size == 10 and u.size == 10
        assert system.is_moving
        assert np.allclose(u[4:], 1.0) and np.allclose(u[:4], 0.0)

    def test_empty(self):
        system = BodySystem([])
        x, y = system.positions(1.0)
        assert system.num_points == 0 and x.size == 0
        assert not system.is_moving
