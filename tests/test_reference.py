"""
Test suite for the analytical and statistical references.

Tests cover:
- Closed-form oscillator solution (values, energy, alignment)
- Circular-orbit closed forms
- Standard error and confidence band formulas
- ReferenceSeries export
"""

import math

import pytest
import numpy as np
from physics_snippets import (
    OscillatorParams, OscillatorReference, ReferenceSeries, DOFLayout,
    harmonic_oscillator, inner_solar_system, temp_config
)
from physics_snippets.reference import (
    circular_velocity, circular_period, standard_error, confidence_halfwidth
)
from physics_snippets.defaults import MARS, MARS_YEAR


class TestOscillatorReference:
    """Test x(t) = A cos(wt + phi)."""

    def test_values(self):
        """Position and velocity follow the closed form."""
        p = OscillatorParams(mass=1.0, spring_constant=4.0, amplitude=3.0, phase=0.2)
        ref = OscillatorReference(p)
        t = np.array([0.0, 0.7, 2.5])
        np.testing.assert_allclose(ref.position(t), 3.0 * np.cos(2.0 * t + 0.2))
        np.testing.assert_allclose(ref.velocity(t), -6.0 * np.sin(2.0 * t + 0.2))

    def test_scalar_time(self):
        """Scalar times give a single state."""
        ref = OscillatorReference(OscillatorParams(mass=1.0, spring_constant=1.0))
        assert ref.state(0.0).shape == (2,)
        np.testing.assert_allclose(ref.state(np.pi), [-1.0, 0.0], atol=1e-15)

    def test_matches_initial_state(self):
        """The reference at t = 0 is the system's packed initial state."""
        system = harmonic_oscillator(OscillatorParams(mass=2.0, spring_constant=3.0,
                                                      amplitude=0.4, phase=1.1))
        np.testing.assert_allclose(system.analytical.state(0.0), system.initial_state(),
                                   rtol=1e-15)

    def test_energy_constant(self):
        """The exact solution has constant energy 1/2 k A^2."""
        p = OscillatorParams(mass=2.0, spring_constant=5.0, amplitude=0.3)
        ref = OscillatorReference(p)
        np.testing.assert_allclose(ref.energy(np.linspace(0.0, 20.0, 50)),
                                   p.total_energy, rtol=1e-12)

    def test_periodic(self):
        """The state repeats after one period."""
        p = OscillatorParams(mass=3.0, spring_constant=2.0, phase=0.5)
        ref = OscillatorReference(p)
        np.testing.assert_allclose(ref.state(p.period), ref.state(0.0), atol=1e-12)

    def test_series(self):
        """series() is aligned with the requested times."""
        ref = harmonic_oscillator().reference([0.0, 1.0, 2.0])
        assert isinstance(ref, ReferenceSeries)
        assert ref.layout == DOFLayout(1)
        np.testing.assert_array_equal(ref.times, [0.0, 1.0, 2.0])
        np.testing.assert_allclose(ref.positions(), np.cos([[0.0], [1.0], [2.0]]))
        assert ref.source == "analytical"


class TestReferenceSeries:
    """Test the ReferenceSeries container."""

    def test_read_only(self):
        series = ReferenceSeries([0.0, 1.0], [[1.0, 0.0], [0.5, -0.5]], DOFLayout(1))
        with pytest.raises(ValueError):
            series.states[0, 0] = 2.0

    def test_to_dataframe(self):
        series = ReferenceSeries([0.0, 1.0], [[1.0, 0.0], [0.5, -0.5]], DOFLayout(1))
        df = series.to_dataframe()
        assert list(df.columns) == ["time", "x", "v_x"]
        assert len(series) == 2


class TestOrbitalClosedForms:
    """Test circular-orbit formulas."""

    def test_circular_velocity_of_mars(self):
        """Mars was set up with the circular speed."""
        params = inner_solar_system().params
        assert circular_velocity(params, MARS.radius) == pytest.approx(MARS.velocity[1],
                                                                      rel=1e-12)

    def test_mars_period_close_to_687_days(self):
        """2 pi sqrt(r^3 / mu) at 1.524 AU is within a day of 687 days."""
        params = inner_solar_system().params
        assert circular_period(params, MARS.radius) == pytest.approx(MARS_YEAR, abs=86_400)

    def test_invalid_radius(self):
        params = inner_solar_system().params
        with pytest.raises(ValueError):
            circular_velocity(params, 0.0)
        with pytest.raises(ValueError):
            circular_period(params, -1.0)


class TestStatisticalReference:
    """Test 1/sqrt(n) formulas."""

    @pytest.mark.parametrize("n", [1, 100, 100_000, 10 ** 8])
    def test_standard_error_formula(self, n):
        """Standard error is exactly 1/sqrt(n)."""
        assert standard_error(n) == 1.0 / math.sqrt(n)

    def test_standard_error_invalid(self):
        with pytest.raises(ValueError):
            standard_error(0)

    def test_confidence_halfwidth(self):
        """Default band is 1.96/sqrt(n)."""
        assert confidence_halfwidth(10_000) == pytest.approx(0.0196)
        assert confidence_halfwidth(10_000, z=1.0) == pytest.approx(0.01)

    def test_confidence_z_from_config(self):
        """The default quantile comes from config.CONFIDENCE_Z."""
        with temp_config(CONFIDENCE_Z=2.576):
            assert confidence_halfwidth(100) == pytest.approx(0.2576)
