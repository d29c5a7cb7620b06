"""Time-integration coefficients for the fractional-step method.

The momentum equation of sub-step k is advanced as

    M (q^{k+1} - q^k) = gamma[k] H^k + zeta[k] H^{k-1}
                        + nu L (alpha_explicit[k] q^k + alpha_implicit[k] q^{k+1})
                        - Q lambda

where H is the explicit convection term. Convection schemes set the number of
sub-steps and (gamma, zeta); diffusion schemes split the per-sub-step weight
gamma + zeta between the explicit and implicit parts.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

import numpy as np

from utilities.errors import ConfigurationError


class TimeScheme(str, Enum):
    EULER_EXPLICIT = "euler_explicit"
    EULER_IMPLICIT = "euler_implicit"
    ADAMS_BASHFORTH_2 = "adams_bashforth_2"
    CRANK_NICOLSON = "crank_nicolson"
    RUNGE_KUTTA_3 = "runge_kutta_3"


CONVECTION_COEFFICIENTS = {
    TimeScheme.EULER_EXPLICIT: ((1.0,), (0.0,)),
    TimeScheme.ADAMS_BASHFORTH_2: ((1.5,), (-0.5,)),
    # Low-storage RK3 (Le & Moin 1991)
    TimeScheme.RUNGE_KUTTA_3: ((8.0 / 15.0, 5.0 / 12.0, 3.0 / 4.0), (0.0, -17.0 / 60.0, -5.0 / 12.0)),
}

# Fraction of the diffusion term treated implicitly
DIFFUSION_IMPLICIT_FRACTION = {
    TimeScheme.EULER_EXPLICIT: 0.0,
    TimeScheme.EULER_IMPLICIT: 1.0,
    TimeScheme.CRANK_NICOLSON: 0.5,
}


def _parse(name, allowed, kind):
    try:
        scheme = TimeScheme(str(getattr(name, "value", name)).lower())
    except ValueError:
        scheme = None
    if scheme not in allowed:
        options = ", ".join(s.value for s in allowed)
        raise ConfigurationError(f"Unsupported {kind} scheme '{name}' (choose from: {options})")
    return scheme


@dataclass(frozen=True)
class IntegrationScheme:
    """Per-sub-step coefficients (all tuples have `sub_steps` entries)."""

    convection: TimeScheme
    diffusion: TimeScheme
    gamma: Tuple[float, ...]
    zeta: Tuple[float, ...]
    alpha_implicit: Tuple[float, ...]
    alpha_explicit: Tuple[float, ...]

    @classmethod
    def create(cls, convection="adams_bashforth_2", diffusion="crank_nicolson"):
        conv = _parse(convection, CONVECTION_COEFFICIENTS, "convection")
        diff = _parse(diffusion, DIFFUSION_IMPLICIT_FRACTION, "diffusion")

        gamma, zeta = CONVECTION_COEFFICIENTS[conv]
        implicit = DIFFUSION_IMPLICIT_FRACTION[diff]
        weights = np.add(gamma, zeta)

        return cls(
            convection=conv,
            diffusion=diff,
            gamma=tuple(gamma),
            zeta=tuple(zeta),
            alpha_implicit=tuple(float(w) * implicit for w in weights),
            alpha_explicit=tuple(float(w) * (1.0 - implicit) for w in weights),
        )

    @property
    def sub_steps(self) -> int:
        return len(self.gamma)

    def weight(self, sub_step: int) -> float:
        """Fraction of the timestep covered by a sub-step (gamma + zeta)."""
        return self.gamma[sub_step] + self.zeta[sub_step]

    def time_fraction(self, sub_step: int) -> float:
        """Fraction of the timestep reached at the end of a sub-step."""
        return float(sum(self.weight(k) for k in range(sub_step + 1)))
