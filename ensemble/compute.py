"""Ensemble compute: EnsembleBackend Protocol, IC sampling, backend selection.

An ensemble is N independent double pendulum runs advanced in lockstep
with the same fixed-step RK4 scheme as simulation.rk4_step.
Two backends are auto-selected via try/except ImportError:
  Numba > NumPy
"""

from __future__ import annotations

import logging
import math
from typing import NamedTuple, Protocol

import numpy as np

from seeding import SplitMix64, generate_state

logger = logging.getLogger(__name__)

# Steps between cancellation checks and progress reports
CHECK_INTERVAL = 100


class EnsembleResult(NamedTuple):
    """Immutable result from an ensemble run.

    Supports tuple unpacking: ``final, e0, e1 = result``.
    """

    final_states: np.ndarray    # (N, 4) float64 [a1, a2, p1, p2]
    initial_energy: np.ndarray  # (N,) float64
    final_energy: np.ndarray    # (N,) float64

    @property
    def energy_drift(self) -> np.ndarray:
        """Absolute energy change per trajectory."""
        return np.abs(self.final_energy - self.initial_energy)


class EnsembleBackend(Protocol):
    """Protocol for pluggable ensemble compute backends."""

    def simulate_ensemble(
        self,
        initial_states: np.ndarray,  # (N, 4)
        dt: float,
        n_steps: int,
        cancel_check: callable | None = None,
        progress_callback: callable | None = None,
    ) -> EnsembleResult:
        """Advance N states by n_steps RK4 steps of size dt."""
        ...


def validate_ensemble_args(initial_states, dt, n_steps) -> np.ndarray:
    """Check ensemble inputs and return the states as float64 (N, 4)."""
    states = np.asarray(initial_states, dtype=np.float64)
    if states.ndim != 2 or states.shape[1] != 4:
        raise ValueError(
            f"initial_states must have shape (N, 4), got {states.shape}"
        )
    if not math.isfinite(dt):
        raise ValueError(f"dt must be finite, got {dt}")
    if n_steps < 0:
        raise ValueError(f"n_steps must be >= 0, got {n_steps}")
    return states


def generate_ensemble(rng: SplitMix64, n: int) -> np.ndarray:
    """Draw n initial states from rng, in order, as an (n, 4) array."""
    if n < 0:
        raise ValueError(f"n must be >= 0, got {n}")
    states = np.zeros((n, 4), dtype=np.float64)
    for i in range(n):
        states[i] = generate_state(rng)
    return states


def get_default_backend() -> EnsembleBackend:
    """Auto-select the best available ensemble backend.

    Priority: Numba > NumPy.
    """
    try:
        from ensemble._numba_backend import NumbaBackend
        logger.info("Using Numba ensemble backend")
        return NumbaBackend()
    except ImportError:
        pass

    from ensemble._numpy_backend import NumpyBackend
    logger.info("Using NumPy ensemble backend")
    return NumpyBackend()
