"""NumPy vectorized RK4 backend for ensemble runs.

All N trajectories advance through each timestep simultaneously as a
single (N, 4) NumPy array, with no Python-level loop over trajectories.

IMPORTANT: No in-place mutation (uses states = states + delta, never +=).

Physics equations here duplicate simulation.py's derivative() but operate
on (N, 4) arrays. See test_ensemble.py for cross-validation tests.
"""

from __future__ import annotations

import logging

import numpy as np

from ensemble.compute import CHECK_INTERVAL, EnsembleResult, validate_ensemble_args
from simulation import G, L1, L2, M1, M2

logger = logging.getLogger(__name__)


class NumpyBackend:
    """Pure NumPy vectorized RK4 ensemble backend."""

    def simulate_ensemble(
        self,
        initial_states: np.ndarray,
        dt: float,
        n_steps: int,
        cancel_check: callable | None = None,
        progress_callback: callable | None = None,
    ) -> EnsembleResult:
        """Advance N states by n_steps RK4 steps.

        Args:
            initial_states: (N, 4) array [a1, a2, p1, p2].
            dt: RK4 step size.
            n_steps: Number of steps.
            cancel_check: Optional callable returning True to abort.
            progress_callback: Optional callable(steps_done, total_steps).

        Returns:
            EnsembleResult. If cancelled, final_states holds the state
            reached at cancellation.
        """
        return rk4_ensemble(
            initial_states, dt, n_steps, cancel_check, progress_callback,
        )


def derivative_batch(states: np.ndarray) -> np.ndarray:
    """Compute Hamiltonian rates for N states simultaneously.

    Args:
        states: (N, 4) array with columns [a1, a2, p1, p2].

    Returns:
        (N, 4) array of rates [d_a1, d_a2, d_p1, d_p2].
    """
    a1 = states[:, 0]
    a2 = states[:, 1]
    p1 = states[:, 2]
    p2 = states[:, 3]

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

    # Build result as new array
    result = np.empty_like(states)
    result[:, 0] = (L2 * p1 - L1 * p2 * cos12) / (L1 * L1 * L2 * denom)
    result[:, 1] = (
        (L1 * (M1 + M2) * p2 - L2 * M2 * p1 * cos12)
        / (L1 * L2 * L2 * M2 * denom)
    )
    result[:, 2] = -(M1 + M2) * G * L1 * np.sin(a1) - c1 + c2
    result[:, 3] = -M2 * G * L2 * np.sin(a2) + c1 - c2

    return result


def energy_batch(states: np.ndarray) -> np.ndarray:
    """Compute total energy for N states simultaneously.

    Args:
        states: (N, 4) float64 array [a1, a2, p1, p2].

    Returns:
        (N,) float64 array of total energies (T + V).
    """
    a1 = states[:, 0]
    a2 = states[:, 1]
    rates = derivative_batch(states)
    w1 = rates[:, 0]
    w2 = rates[:, 1]

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


def rk4_ensemble(
    initial_states: np.ndarray,
    dt: float,
    n_steps: int,
    cancel_check: callable | None = None,
    progress_callback: callable | None = None,
) -> EnsembleResult:
    """Run vectorized RK4 integration over an ensemble.

    Args:
        initial_states: (N, 4) array.
        dt: Step size.
        n_steps: Number of steps.
        cancel_check: If callable returns True, abort early.
        progress_callback: Called with (steps_done, total_steps).

    Returns:
        EnsembleResult with final states and initial/final energies.
    """
    states = validate_ensemble_args(initial_states, dt, n_steps)
    initial_energy = energy_batch(states)

    for step in range(n_steps):
        if step % CHECK_INTERVAL == 0:
            if cancel_check is not None and cancel_check():
                logger.debug("Ensemble cancelled at step %d/%d", step, n_steps)
                break
            if progress_callback is not None:
                progress_callback(step, n_steps)

        # RK4 step (no in-place mutation)
        k1 = derivative_batch(states)
        k2 = derivative_batch(states + k1 * dt / 2)
        k3 = derivative_batch(states + k2 * dt / 2)
        k4 = derivative_batch(states + k3 * dt)

        states = states + (k1 + 2 * k2 + 2 * k3 + k4) * dt / 6

    # Final progress
    if progress_callback is not None:
        progress_callback(n_steps, n_steps)

    return EnsembleResult(states, initial_energy, energy_batch(states))
