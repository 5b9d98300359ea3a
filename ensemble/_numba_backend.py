"""Numba JIT-compiled backend for ensemble runs.

Uses @njit(parallel=True) with prange over independent trajectories.
This module is optional: if numba is not installed, get_default_backend()
falls back to the NumPy backend automatically.

IMPORTANT: The JIT-compiled functions use explicit scalar arithmetic (not
NumPy vectorization) since Numba compiles them to native machine code.
The physical constants are frozen into the compiled code.
"""

from __future__ import annotations

import numpy as np
from numba import njit, prange

from ensemble.compute import EnsembleResult, validate_ensemble_args
from simulation import G, L1, L2, M1, M2


@njit(cache=True)
def _derivative_single(a1, a2, p1, p2):
    """Compute Hamiltonian rates for a single state (Numba-compiled).

    Returns (d_a1, d_a2, d_p1, d_p2).
    """
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
    return d_a1, d_a2, d_p1, d_p2


@njit(cache=True)
def _energy_single(a1, a2, p1, p2):
    """Compute total energy for a single state (Numba-compiled)."""
    w1, w2, _, _ = _derivative_single(a1, a2, p1, p2)
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


@njit(parallel=True, cache=True)
def _rk4_ensemble_numba(initial_states, dt, n_steps):
    """Numba-compiled parallel RK4 ensemble integration.

    Each trajectory is computed independently in parallel via prange.
    Returns (final_states, initial_energy, final_energy).
    """
    n_traj = initial_states.shape[0]
    final_states = np.zeros((n_traj, 4), dtype=np.float64)
    initial_energy = np.zeros(n_traj, dtype=np.float64)
    final_energy = np.zeros(n_traj, dtype=np.float64)

    for i in prange(n_traj):
        a1 = initial_states[i, 0]
        a2 = initial_states[i, 1]
        p1 = initial_states[i, 2]
        p2 = initial_states[i, 3]
        initial_energy[i] = _energy_single(a1, a2, p1, p2)

        for _step in range(n_steps):
            k1_a1, k1_a2, k1_p1, k1_p2 = _derivative_single(a1, a2, p1, p2)

            k2_a1, k2_a2, k2_p1, k2_p2 = _derivative_single(
                a1 + k1_a1 * dt / 2, a2 + k1_a2 * dt / 2,
                p1 + k1_p1 * dt / 2, p2 + k1_p2 * dt / 2,
            )

            k3_a1, k3_a2, k3_p1, k3_p2 = _derivative_single(
                a1 + k2_a1 * dt / 2, a2 + k2_a2 * dt / 2,
                p1 + k2_p1 * dt / 2, p2 + k2_p2 * dt / 2,
            )

            k4_a1, k4_a2, k4_p1, k4_p2 = _derivative_single(
                a1 + k3_a1 * dt, a2 + k3_a2 * dt,
                p1 + k3_p1 * dt, p2 + k3_p2 * dt,
            )

            a1 = a1 + (k1_a1 + 2 * k2_a1 + 2 * k3_a1 + k4_a1) * dt / 6
            a2 = a2 + (k1_a2 + 2 * k2_a2 + 2 * k3_a2 + k4_a2) * dt / 6
            p1 = p1 + (k1_p1 + 2 * k2_p1 + 2 * k3_p1 + k4_p1) * dt / 6
            p2 = p2 + (k1_p2 + 2 * k2_p2 + 2 * k3_p2 + k4_p2) * dt / 6

        final_states[i, 0] = a1
        final_states[i, 1] = a2
        final_states[i, 2] = p1
        final_states[i, 3] = p2
        final_energy[i] = _energy_single(a1, a2, p1, p2)

    return final_states, initial_energy, final_energy


class NumbaBackend:
    """Numba JIT-compiled ensemble backend.

    First call incurs JIT compilation overhead (~2-5s). Subsequent calls
    use the cached compiled version.
    """

    def simulate_ensemble(
        self,
        initial_states: np.ndarray,
        dt: float,
        n_steps: int,
        cancel_check: callable | None = None,
        progress_callback: callable | None = None,
    ) -> EnsembleResult:
        """Advance N states using Numba-parallelized RK4.

        Note: cancel_check is only polled once before the kernel starts;
        a running kernel cannot be interrupted.
        """
        states = validate_ensemble_args(initial_states, dt, n_steps)

        if cancel_check is not None and cancel_check():
            energies = np.array(
                [_energy_single(*row) for row in states], dtype=np.float64,
            )
            return EnsembleResult(states.copy(), energies, energies.copy())

        final_states, initial_energy, final_energy = _rk4_ensemble_numba(
            states, float(dt), int(n_steps),
        )

        if progress_callback is not None:
            progress_callback(n_steps, n_steps)

        return EnsembleResult(final_states, initial_energy, final_energy)

    @staticmethod
    def warmup() -> None:
        """Trigger JIT compilation with a tiny dummy ensemble."""
        dummy = np.zeros((4, 4), dtype=np.float64)
        dummy[:, 0] = [2.0, 2.5, 3.0, 3.5]
        dummy[:, 1] = [2.0, 2.5, 3.0, 3.5]
        _rk4_ensemble_numba(dummy, 1.0 / 60.0, 10)
