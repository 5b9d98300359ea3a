"""Entry point: stream a double pendulum simulation to stdout.

Each integration step prints one line ``energy a1 a2``. With no flags
the initial state is seeded from wall-clock time and the run never ends.

Usage:
    python main.py [--seed N] [--dt DT] [--steps N]
"""

from __future__ import annotations

import argparse
import itertools
import logging
import math
import os
import sys
import time
from dataclasses import dataclass

from seeding import SplitMix64, generate_state
from simulation import PendulumState, energy, rk4_step

logger = logging.getLogger(__name__)

DEFAULT_DT = 1 / 60


@dataclass(frozen=True)
class RunConfig:
    """Immutable parameters for a streaming run."""

    seed: int
    dt: float = DEFAULT_DT
    steps: int | None = None  # None runs forever
    # energy() is not an exact invariant of derivative(), so drift is
    # only reported on request
    drift_tolerance: float | None = None

    def __post_init__(self):
        if not (math.isfinite(self.dt) and self.dt > 0):
            raise ValueError(f"dt must be positive and finite, got {self.dt}")
        if self.steps is not None and self.steps < 0:
            raise ValueError(f"steps must be >= 0, got {self.steps}")
        if self.drift_tolerance is not None and not self.drift_tolerance > 0:
            raise ValueError(
                f"drift_tolerance must be positive, got {self.drift_tolerance}"
            )


def format_line(e: float, state: PendulumState) -> str:
    """Format one output line: energy (signed, width 16, 8 places), a1, a2."""
    return "%- 16.8f %f %f\n" % (e, state.a1, state.a2)


def _drifted(e: float, e0: float, tolerance: float) -> bool:
    return abs(e - e0) > tolerance * max(1.0, abs(e0))


def stream(config: RunConfig, out) -> PendulumState:
    """Integrate from the seeded initial state, writing one line per step.

    Returns the last state. Only returns when config.steps is set.
    """
    rng = SplitMix64(config.seed)
    state = generate_state(rng)
    e0 = energy(state)
    logger.info(
        "Seed %d: a1=%.6f a2=%.6f energy=%.8f",
        config.seed, state.a1, state.a2, e0,
    )

    drift_reported = False
    nonfinite_reported = False
    steps = itertools.count(1) if config.steps is None else range(1, config.steps + 1)
    for step in steps:
        state = rk4_step(state, config.dt)
        e = energy(state)
        out.write(format_line(e, state))

        if not nonfinite_reported and not all(map(math.isfinite, state)):
            logger.warning("State became non-finite at step %d: %s", step, state)
            nonfinite_reported = True
        elif (
            config.drift_tolerance is not None
            and not drift_reported
            and _drifted(e, e0, config.drift_tolerance)
        ):
            logger.warning(
                "Energy drift exceeded %g at step %d (%.8f -> %.8f)",
                config.drift_tolerance, step, e0, e,
            )
            drift_reported = True

    return state


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Stream energy and angles of a chaotic double pendulum.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Generator seed (default: current Unix time)",
    )
    parser.add_argument(
        "--dt",
        type=float,
        default=DEFAULT_DT,
        help="RK4 step size in seconds (default: 1/60)",
    )
    parser.add_argument(
        "--steps",
        type=int,
        default=None,
        help="Stop after this many steps (default: run forever)",
    )
    parser.add_argument(
        "--drift-tolerance",
        type=float,
        default=None,
        help="Warn once when energy drifts by this fraction (default: off)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for stderr diagnostics (default: WARNING)",
    )
    return parser


def main(argv=None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    seed = args.seed if args.seed is not None else int(time.time())
    try:
        config = RunConfig(
            seed=seed,
            dt=args.dt,
            steps=args.steps,
            drift_tolerance=args.drift_tolerance,
        )
    except ValueError as exc:
        parser.error(str(exc))

    try:
        stream(config, sys.stdout)
        sys.stdout.flush()
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except BrokenPipeError:
        # Downstream closed (e.g. piped into head); silence the flush at exit
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        return 0
    return 0


if __name__ == "__main__":
    sys.exit(main())
