"""Tests for main.py: output format, streaming loop and CLI."""

import io
import logging

import pytest

import main
from main import RunConfig, format_line, stream
from seeding import SplitMix64, generate_state
from simulation import PendulumState, energy, rk4_step


class TestFormatLine:

    def test_positive_energy(self):
        line = format_line(1.5, PendulumState(4.712389, 5.890486, 0.0, 0.0))
        assert line == " 1.50000000      4.712389 5.890486\n"

    def test_negative_energy(self):
        line = format_line(-2.25, PendulumState(0.0, -1.0, 0.0, 0.0))
        assert line == "-2.25000000      0.000000 -1.000000\n"

    def test_energy_field_width(self):
        line = format_line(-11.25, PendulumState(1.0, 2.0, 0.0, 0.0))
        assert len(line.split(" ")[0]) == 12
        assert line.index("1.000000") == 17

    def test_wide_energy_not_truncated(self):
        line = format_line(123456789.0, PendulumState(0.0, 0.0, 0.0, 0.0))
        assert line.startswith(" 123456789.00000000 ")


class TestRunConfig:

    def test_defaults(self):
        config = RunConfig(seed=1)
        assert config.dt == 1 / 60
        assert config.steps is None
        assert config.drift_tolerance is None

    @pytest.mark.parametrize("dt", [0.0, -0.1, float("nan"), float("inf")])
    def test_rejects_bad_dt(self, dt):
        with pytest.raises(ValueError, match="dt"):
            RunConfig(seed=1, dt=dt)

    def test_rejects_negative_steps(self):
        with pytest.raises(ValueError, match="steps"):
            RunConfig(seed=1, steps=-1)

    @pytest.mark.parametrize("tolerance", [0.0, -1e-3])
    def test_rejects_non_positive_drift_tolerance(self, tolerance):
        with pytest.raises(ValueError, match="drift_tolerance"):
            RunConfig(seed=1, drift_tolerance=tolerance)

    def test_frozen(self):
        config = RunConfig(seed=1)
        with pytest.raises(AttributeError):
            config.seed = 2


class TestStream:

    def test_writes_one_line_per_step(self):
        out = io.StringIO()
        stream(RunConfig(seed=12345, steps=5), out)
        lines = out.getvalue().splitlines()
        assert len(lines) == 5
        for line in lines:
            assert len([float(f) for f in line.split()]) == 3

    def test_matches_manual_loop(self):
        out = io.StringIO()
        final = stream(RunConfig(seed=12345, steps=60), out)

        state = generate_state(SplitMix64(12345))
        expected = []
        for _ in range(60):
            state = rk4_step(state, 1 / 60)
            expected.append(format_line(energy(state), state))

        assert final == state
        assert out.getvalue() == "".join(expected)

    def test_seed_12345_recorded_lines(self):
        """First and sixtieth lines as printed by the C program for seed 12345."""
        out = io.StringIO()
        stream(RunConfig(seed=12345, steps=60), out)
        lines = out.getvalue().splitlines()
        assert lines[0] == " 5.29491180      1.988474 2.214296"
        assert lines[59] == " 5.66500246      0.601294 1.934497"

    def test_zero_steps(self):
        out = io.StringIO()
        final = stream(RunConfig(seed=9, steps=0), out)
        assert out.getvalue() == ""
        assert final == generate_state(SplitMix64(9))

    def test_same_seed_same_output(self):
        a, b = io.StringIO(), io.StringIO()
        stream(RunConfig(seed=77, steps=20), a)
        stream(RunConfig(seed=77, steps=20), b)
        assert a.getvalue() == b.getvalue()

    def test_silent_by_default(self, caplog):
        with caplog.at_level(logging.WARNING, logger="main"):
            stream(RunConfig(seed=12345, steps=120), io.StringIO())
        assert caplog.records == []

    def test_drift_warning_logged_once(self, caplog):
        with caplog.at_level(logging.WARNING, logger="main"):
            stream(RunConfig(seed=5, dt=0.5, steps=20, drift_tolerance=1e-12), io.StringIO())
        drift = [r for r in caplog.records if "Energy drift" in r.getMessage()]
        assert len(drift) == 1

    def test_non_finite_warning(self, caplog, monkeypatch):
        monkeypatch.setattr(
            main, "generate_state",
            lambda rng: PendulumState(float("nan"), 0.0, 0.0, 0.0),
        )
        out = io.StringIO()
        with caplog.at_level(logging.WARNING, logger="main"):
            stream(RunConfig(seed=1, steps=3), out)
        assert len(out.getvalue().splitlines()) == 3
        assert "nan" in out.getvalue()
        messages = [r.getMessage() for r in caplog.records]
        assert sum("non-finite" in m for m in messages) == 1


class TestMain:

    def test_fixed_run(self, capsys):
        assert main.main(["--seed", "12345", "--steps", "3"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 3

        expected = io.StringIO()
        stream(RunConfig(seed=12345, steps=3), expected)
        assert lines == expected.getvalue().splitlines()

    def test_custom_dt(self, capsys):
        main.main(["--seed", "1", "--steps", "2", "--dt", "0.01"])
        expected = io.StringIO()
        stream(RunConfig(seed=1, dt=0.01, steps=2), expected)
        assert capsys.readouterr().out == expected.getvalue()

    def test_invalid_dt_is_usage_error(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main.main(["--seed", "1", "--dt", "0"])
        assert excinfo.value.code == 2
        assert "dt" in capsys.readouterr().err

    def test_seed_defaults_to_clock(self, capsys, monkeypatch):
        monkeypatch.setattr(main.time, "time", lambda: 1234.9)
        main.main(["--steps", "1"])
        expected = io.StringIO()
        stream(RunConfig(seed=1234, steps=1), expected)
        assert capsys.readouterr().out == expected.getvalue()

    def test_keyboard_interrupt_exit_code(self, monkeypatch):
        def interrupted(config, out):
            raise KeyboardInterrupt

        monkeypatch.setattr(main, "stream", interrupted)
        assert main.main(["--seed", "1"]) == 130
