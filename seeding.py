"""Initial condition sampling from a seeded SplitMix64 generator.

The generator is an explicit object owned by the caller, so a seed
fully determines every draw and therefore the initial state.
"""

from __future__ import annotations

import math

from simulation import PendulumState

_MASK64 = (1 << 64) - 1
_UINT64_MAX = float(_MASK64)

_GOLDEN_GAMMA = 0x9E3779B97F4A7C15
_MIX1 = 0xBF58476D1CE4E5B9
_MIX2 = 0x94D049BB133111EB


class SplitMix64:
    """64-bit SplitMix generator.

    Each draw advances the counter by the golden-ratio increment and
    returns the mixed counter value. Seeds are reduced modulo 2**64.
    """

    def __init__(self, seed: int):
        self._state = seed & _MASK64

    @property
    def state(self) -> int:
        """Current 64-bit counter value."""
        return self._state

    def next(self) -> int:
        """Return the next unsigned 64-bit output."""
        self._state = (self._state + _GOLDEN_GAMMA) & _MASK64
        z = self._state
        z = ((z ^ (z >> 30)) * _MIX1) & _MASK64
        z = ((z ^ (z >> 27)) * _MIX2) & _MASK64
        return z ^ (z >> 31)

    def uniform(self) -> float:
        """Return next() scaled into [0, 1] by the largest 64-bit value.

        The int-to-float conversion rounds, so outputs within 2**10 of
        the top of the range map to exactly 1.0.
        """
        return self.next() / _UINT64_MAX


def generate_state(rng: SplitMix64) -> PendulumState:
    """Draw an initial state with both arms at or above horizontal.

    a1 and a2 are drawn in that order from [pi/2, 3pi/2); both
    momenta start at zero.
    """
    a1 = rng.uniform() * math.pi + math.pi / 2
    a2 = rng.uniform() * math.pi + math.pi / 2
    return PendulumState(a1, a2, 0.0, 0.0)
