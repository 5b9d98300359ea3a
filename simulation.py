"""Double pendulum physics engine.

Implements the Hamiltonian equations of motion for a double pendulum
with point masses on massless rods, a fixed-step classical RK4 stepper,
and a total-energy diagnostic. A SciPy DOP853 integrator of the same
vector field is provided as a high-precision reference.

States are (a1, a2, p1, p2): arm angles from the downward vertical and
their conjugate canonical momenta. Angles are never wrapped.
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np
from scipy.integrate import solve_ivp

# Physical constants (fixed for the process)
G = 3.0
M1 = 1.5
M2 = 1.0
L1 = 1.0
L2 = 1.25


class PendulumState(NamedTuple):
    """Immutable phase-space point. Also used for its time derivative."""

    a1: float
    a2: float
    p1: float
    p2: float


def derivative(state):
    """Evaluate the Hamiltonian vector field at a state.

    Returns a PendulumState of rates (d_a1, d_a2, d_p1, d_p2).
    No validation: non-finite inputs give non-finite rates.
    """
    a1, a2, p1, p2 = state

    cos12 = np.cos(a1 - a2)
    sin12 = np.sin(a1 - a2)
    denom = M1 + M2 * sin12 * sin12

    c1 = (p1 * p2 * sin12) / (L1 * L2 * denom)
    c2 = (
        np.sin(2 * (a1 - a2))
        * (
            L2 * L2 * M2 * p1 * p1
            + L1 * L1 * (M1 + M2) * p2 * p2
            - L1 * L2 * M2 * p1 * p2 * cos12
        )
        / (2 * L1 * L1 * L2 * L2 * denom * denom)
    )

    d_a1 = (L2 * p1 - L1 * p2 * cos12) / (L1 * L1 * L2 * denom)
    d_a2 = (L1 * (M1 + M2) * p2 - L2 * M2 * p1 * cos12) / (L1 * L2 * L2 * M2 * denom)
    d_p1 = -(M1 + M2) * G * L1 * np.sin(a1) - c1 + c2
    d_p2 = -M2 * G * L2 * np.sin(a2) + c1 - c2

    return PendulumState(d_a1, d_a2, d_p1, d_p2)


def _offset(state, rate, dt, divisor):
    """Return state + rate * dt / divisor as a new state."""
    return PendulumState(*(s + r * dt / divisor for s, r in zip(state, rate)))


def rk4_step(state, dt):
    """Advance a state by dt with one classical RK4 step.

    Pure: every stage is a new PendulumState and the input is untouched.
    """
    k1 = derivative(state)
    k2 = derivative(_offset(state, k1, dt, 2))
    k3 = derivative(_offset(state, k2, dt, 2))
    k4 = derivative(_offset(state, k3, dt, 1))

    return PendulumState(*(
        s + (r1 + 2 * r2 + 2 * r3 + r4) * dt / 6
        for s, r1, r2, r3, r4 in zip(state, k1, k2, k3, k4)
    ))


def energy(state):
    """Compute total mechanical energy (T + V) for a single state.

    Angular velocities come from derivative(), so this is the
    Hamiltonian evaluated at the state. Potential is measured from
    the pivot.
    """
    a1, a2 = state.a1, state.a2
    rate = derivative(state)
    w1, w2 = rate.a1, rate.a2

    potential = -(M1 + M2) * G * L1 * np.cos(a1) - M2 * G * L2 * np.cos(a2)
    kinetic = (
        M1 / 2 * L1 * L1 * w1 * w1
        + M2 / 2 * (
            L1 * L1 * w1 * w1
            + L2 * L2 * w2 * w2
            + 2 * L1 * L2 * w1 * w2 * np.cos(a1 - a2)
        )
    )
    return potential + kinetic


def positions(state):
    """Convert a single state to Cartesian coordinates.

    Returns (x1, y1, x2, y2) with the pivot at the origin and y pointing
    up, so a pendulum hanging at rest has negative y.
    """
    a1, a2 = state[0], state[1]

    x1 = L1 * np.sin(a1)
    y1 = -L1 * np.cos(a1)

    x2 = x1 + L2 * np.sin(a2)
    y2 = y1 - L2 * np.cos(a2)

    return x1, y1, x2, y2


def simulate_reference(state, t_end, dt):
    """Integrate the same vector field with DOP853 at tight tolerance.

    Samples at t = 0, dt, 2*dt, ... up to and including t_end when it
    falls on the grid.

    Returns:
        t_array: 1D array of sample times
        state_array: 2D array of shape (len(t_array), 4)
    """
    n_samples = int(round(t_end / dt)) + 1
    t_eval = np.linspace(0.0, (n_samples - 1) * dt, n_samples)

    sol = solve_ivp(
        fun=lambda t, y: list(derivative(y)),
        t_span=(0.0, t_eval[-1]),
        y0=list(state),
        method="DOP853",
        t_eval=t_eval,
        rtol=1e-13,
        atol=1e-13,
    )

    return sol.t, sol.y.T  # shape: (n_samples, 4)
