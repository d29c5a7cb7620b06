"""Tests for the time-integration coefficients."""

import numpy as np
import pytest

from solvers.integration import IntegrationScheme, TimeScheme
from utilities.errors import ConfigurationError


class TestIntegrationScheme:

    def test_adams_bashforth_crank_nicolson(self):
        scheme = IntegrationScheme.create("adams_bashforth_2", "crank_nicolson")
        assert scheme.sub_steps == 1
        assert scheme.gamma == (1.5,) and scheme.zeta == (-0.5,)
        assert scheme.alpha_implicit == (0.5,) and scheme.alpha_explicit == (0.5,)

    def test_euler(self):
        scheme = IntegrationScheme.create("euler_explicit", "euler_implicit")
        assert scheme.weight(0) == 1.0
        assert scheme.alpha_implicit == (1.0,) and scheme.alpha_explicit == (0.0,)

    def test_runge_kutta_sub_steps(self):
        scheme = IntegrationScheme.create(TimeScheme.RUNGE_KUTTA_3, "crank_nicolson")
        weights = [scheme.weight(k) for k in range(scheme.sub_steps)]
        assert scheme.sub_steps == 3
        assert np.allclose(weights, [8 / 15, 2 / 15, 1 / 3])
        assert np.isclose(scheme.time_fraction(0), 8 / 15)
        assert np.isclose(scheme.time_fraction(2), 1.0)
        assert np.allclose(np.add(scheme.alpha_implicit, scheme.alpha_explicit), weights)

    @pytest.mark.parametrize(
        "convection, diffusion",
        [("leapfrog", "crank_nicolson"), ("crank_nicolson", "crank_nicolson"), ("euler_explicit", "adams_bashforth_2")],
    )
    def test_unsupported(self, convection, diffusion):
        with pytest.raises(ConfigurationError):
            IntegrationScheme.create(convection, diffusion)

    def test_enum_members(self):
        scheme = IntegrationScheme.create(TimeScheme.ADAMS_BASHFORTH_2, TimeScheme.CRANK_NICOLSON)
        assert scheme == IntegrationScheme.create("adams_bashforth_2", "crank_nicolson")
