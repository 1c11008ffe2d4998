"""
Test suite for Trajectory class.

Tests cover:
- Construction invariants (strictly increasing times, immutability)
- Sample lookup and interpolation
- Per-body extraction for orbital layouts
- Energy from the trajectory's own states
- Export and slicing
- String representations
"""

import pytest
import numpy as np
import pandas as pd
from physics_snippets import (
    Trajectory, DOFLayout, BodyLayout, IntegratorStatus, harmonic_oscillator,
    inner_solar_system, SimulationBounds
)
from physics_snippets.defaults import oscillator_bounds, DAY


@pytest.fixture(scope="module")
def oscillator_traj():
    return harmonic_oscillator().propagate(oscillator_bounds(t_end=2.0, dt=0.01))


@pytest.fixture(scope="module")
def planets_traj():
    system = inner_solar_system()
    bounds = SimulationBounds(t_start=0.0, t_end=10 * DAY,
                              save_times=np.arange(11) * DAY)
    return system.propagate(bounds)


class TestConstruction:
    """Test Trajectory invariants."""

    def test_times_must_increase(self):
        """Repeated or decreasing timestamps are rejected."""
        with pytest.raises(ValueError, match="strictly increasing"):
            Trajectory([0.0, 1.0, 1.0], np.zeros((3, 2)), DOFLayout(1))

    def test_needs_samples(self):
        """An empty trajectory is rejected."""
        with pytest.raises(ValueError, match="at least one sample"):
            Trajectory([], np.zeros((0, 2)), DOFLayout(1))

    def test_state_size_checked(self):
        """States must match the layout."""
        with pytest.raises(ValueError, match="layout expects"):
            Trajectory([0.0, 1.0], np.zeros((2, 3)), DOFLayout(1))

    def test_arrays_read_only(self, oscillator_traj):
        """Recorded samples cannot be modified."""
        with pytest.raises(ValueError):
            oscillator_traj.states[0, 0] = 5.0
        with pytest.raises(ValueError):
            oscillator_traj.times[0] = 5.0

    def test_default_status(self):
        """A hand-built trajectory is COMPLETED."""
        traj = Trajectory([0.0, 1.0], np.zeros((2, 2)), DOFLayout(1))
        assert traj.status == IntegratorStatus.COMPLETED
        assert traj.failure is None
        assert traj.system is None


class TestLookup:
    """Test sample lookup and interpolation."""

    def test_properties(self, oscillator_traj):
        """t0, tf, duration and end states."""
        assert oscillator_traj.t0 == 0.0
        assert oscillator_traj.tf == 2.0
        assert oscillator_traj.duration == 2.0
        np.testing.assert_array_equal(oscillator_traj.initial_state, [1.0, 0.0])
        np.testing.assert_array_equal(oscillator_traj.final_state, oscillator_traj.states[-1])

    def test_state_at_sample_is_exact(self, oscillator_traj):
        """Sampled instants return the stored state."""
        i = 37
        np.testing.assert_array_equal(oscillator_traj.state_at(oscillator_traj.times[i]),
                                      oscillator_traj.states[i])

    def test_state_at_interpolates(self):
        """Between samples the state is linearly interpolated."""
        traj = Trajectory([0.0, 1.0], [[0.0, 2.0], [1.0, 4.0]], DOFLayout(1))
        np.testing.assert_allclose(traj.state_at(0.25), [0.25, 2.5])

    def test_state_at_out_of_bounds(self, oscillator_traj):
        """Queries outside [t0, tf] are rejected."""
        with pytest.raises(ValueError, match="outside trajectory bounds"):
            oscillator_traj.state_at(2.5)

    def test_evaluate_array(self, oscillator_traj):
        """evaluate returns one row per requested time."""
        out = oscillator_traj.evaluate([0.0, 0.5, 1.0])
        assert out.shape == (3, 2)
        assert oscillator_traj.evaluate(0.5).shape == (2,)

    def test_index_of(self, oscillator_traj):
        """index_of finds sampled instants only."""
        assert oscillator_traj.index_of(0.0) == 0
        assert oscillator_traj.index_of(2.0) == len(oscillator_traj) - 1
        assert oscillator_traj.index_of(0.005) is None

    def test_iteration(self, oscillator_traj):
        """Iterating yields (t, state) pairs in order."""
        pairs = list(oscillator_traj)
        assert len(pairs) == len(oscillator_traj)
        t, state = pairs[3]
        assert t == oscillator_traj.times[3]
        np.testing.assert_array_equal(state, oscillator_traj.states[3])
        assert oscillator_traj[3][0] == t

    def test_contains_time(self, oscillator_traj):
        assert oscillator_traj.contains_time(1.0)
        assert not oscillator_traj.contains_time(-1.0)


class TestBodies:
    """Test per-body extraction."""

    def test_body_by_name(self, planets_traj):
        """Bodies can be looked up by name."""
        r, v = planets_traj.body("Mars")
        assert r.shape == (11, 3)
        assert v.shape == (11, 3)
        np.testing.assert_array_equal(r[0], planets_traj.system.params.body("Mars").position)

    def test_body_by_index(self, planets_traj):
        """Index 0 is the first body (Mercury)."""
        r, _ = planets_traj.body(0)
        np.testing.assert_array_equal(r, planets_traj.states[:, 0:3])

    def test_name_lookup_requires_bodies(self, oscillator_traj):
        """Names are meaningless for DOF layouts."""
        with pytest.raises(TypeError):
            oscillator_traj.body("x")

    def test_positions_shape(self, planets_traj):
        """positions() collects 3N components per sample."""
        assert planets_traj.positions().shape == (11, 12)
        assert planets_traj.velocities().shape == (11, 12)

    def test_layout(self, planets_traj):
        assert isinstance(planets_traj.layout, BodyLayout)
        assert planets_traj.layout.names == ("Mercury", "Venus", "Earth", "Mars")


class TestEnergy:
    """Test energy bookkeeping from the trajectory's own states."""

    def test_oscillator_energy(self, oscillator_traj):
        """Energy is computed per sample."""
        energy = oscillator_traj.energy()
        assert energy.shape == (len(oscillator_traj),)
        assert energy[0] == pytest.approx(0.5)

    def test_orbital_energy_conserved(self, planets_traj):
        """Adaptive RK conserves orbital energy closely over ten days."""
        energy = planets_traj.energy()
        assert np.max(np.abs(energy - energy[0])) / abs(energy[0]) < 1e-6

    def test_energy_requires_system(self):
        """Hand-built trajectories have no energy function."""
        traj = Trajectory([0.0, 1.0], np.zeros((2, 2)), DOFLayout(1))
        with pytest.raises(ValueError, match="no system"):
            traj.energy()


class TestExport:
    """Test export and slicing."""

    def test_to_dataframe(self, oscillator_traj):
        """DataFrame has time plus one column per component."""
        df = oscillator_traj.to_dataframe()
        assert isinstance(df, pd.DataFrame)
        assert list(df.columns) == ["time", "x", "v_x"]
        assert len(df) == len(oscillator_traj)

    def test_orbital_dataframe_columns(self, planets_traj):
        """Orbital columns are named per body and component."""
        df = planets_traj.to_dataframe()
        assert "Mars_vy" in df.columns
        assert len(df.columns) == 1 + 24

    def test_slice(self, oscillator_traj):
        """slice keeps the samples inside the window."""
        sub = oscillator_traj.slice(0.5, 1.0)
        assert sub.t0 == pytest.approx(0.5)
        assert sub.tf == pytest.approx(1.0)
        assert len(sub) == 51
        assert sub.system is oscillator_traj.system

    def test_slice_invalid(self, oscillator_traj):
        with pytest.raises(ValueError):
            oscillator_traj.slice(1.0, 0.5)

    def test_repr_and_str(self, oscillator_traj):
        assert "Trajectory(" in repr(oscillator_traj)
        assert "completed" in str(oscillator_traj)
