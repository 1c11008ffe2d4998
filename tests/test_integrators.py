"""
Test suite for the integrators.

Tests cover:
- Integrator state machine (INITIALIZED -> STEPPING -> COMPLETED / FAILED)
- Leapfrog energy conservation and accuracy on the oscillator
- Adaptive Runge-Kutta with fixed-output sampling
- Failure modes: divergence, step budget, singularity
- Partial trajectories retained on failure
"""

import pytest
import numpy as np
from physics_snippets import (
    OscillatorParams, SimulationBounds, IntegratorStatus,
    LeapfrogIntegrator, AdaptiveRKIntegrator, DOFLayout, Trajectory,
    IntegrationError, IntegrationDivergedError, StepBudgetExceededError,
    SingularityError, harmonic_oscillator, inner_solar_system, temp_config
)
from physics_snippets.defaults import oscillator_bounds
from physics_snippets.dynamics import (
    oscillator_position_rate, oscillator_velocity_rate, oscillator_derivative
)

UNIT = OscillatorParams(mass=1.0, spring_constant=1.0, amplitude=1.0, phase=0.0)


def _diverging_velocity_rate(v, q, params, t):
    """Oscillator acceleration that blows up after t = 0.5."""
    if t > 0.5:
        return np.full_like(np.asarray(q, dtype=float), np.inf)
    return oscillator_velocity_rate(v, q, params, t)


def _diverging_derivative(state, params, t):
    if t > 0.5:
        return np.full_like(np.asarray(state, dtype=float), np.nan)
    return oscillator_derivative(state, params, t)


class TestStateMachine:
    """Test integrator status transitions."""

    def test_initial_status(self):
        """A new integrator is INITIALIZED with one recorded sample."""
        integrator = harmonic_oscillator().integrator(oscillator_bounds(t_end=1.0, dt=0.1))
        assert integrator.status == IntegratorStatus.INITIALIZED
        assert integrator.n_steps == 0
        assert len(integrator.trajectory) == 1

    def test_stepping_then_completed(self):
        """step() moves to STEPPING and finally COMPLETED."""
        integrator = harmonic_oscillator().integrator(oscillator_bounds(t_end=0.3, dt=0.1))
        assert integrator.step() == IntegratorStatus.STEPPING
        assert integrator.step() == IntegratorStatus.STEPPING
        assert integrator.step() == IntegratorStatus.COMPLETED
        assert integrator.time == pytest.approx(0.3)
        assert integrator.n_steps == 3

    def test_cannot_step_after_completion(self):
        """A finished run cannot be stepped again."""
        integrator = harmonic_oscillator().integrator(oscillator_bounds(t_end=0.2, dt=0.1))
        integrator.run()
        with pytest.raises(RuntimeError, match="completed"):
            integrator.step()

    def test_run_returns_complete_trajectory(self):
        """run() returns a COMPLETED trajectory owned by the system."""
        system = harmonic_oscillator()
        traj = system.propagate(oscillator_bounds(t_end=1.0, dt=0.1))
        assert isinstance(traj, Trajectory)
        assert traj.status == IntegratorStatus.COMPLETED
        assert traj.is_complete
        assert traj.system is system
        assert traj.method == "leapfrog"

    def test_end_time_is_exact(self):
        """The final sample is at t_end exactly."""
        traj = harmonic_oscillator().propagate(oscillator_bounds(t_end=10.0, dt=0.001))
        assert traj.tf == 10.0
        assert len(traj) == 10_001


class TestLeapfrog:
    """Test the fixed-step symplectic integrator."""

    def test_energy_drift_bound(self):
        """Energy error stays below 1e-6 over [0, 10] with dt = 0.001."""
        traj = harmonic_oscillator().propagate(oscillator_bounds(t_end=10.0, dt=0.001))
        energy = traj.energy()
        assert np.max(np.abs(energy - energy[0])) < 1e-6

    def test_energy_bounded_over_long_run(self):
        """Energy error stays bounded (no secular drift) over many periods."""
        traj = harmonic_oscillator().propagate(oscillator_bounds(t_end=1000.0, dt=0.01))
        energy = traj.energy()
        first = np.max(np.abs(energy[:10_000] - energy[0]))
        last = np.max(np.abs(energy[-10_000:] - energy[0]))
        assert last < 2 * first

    def test_matches_analytical(self):
        """Leapfrog follows x(t) = cos(t)."""
        system = harmonic_oscillator()
        traj = system.propagate(oscillator_bounds(t_end=10.0, dt=0.001))
        expected = system.reference(traj.times).states
        assert np.max(np.abs(traj.states - expected)) < 1e-5

    def test_second_order_convergence(self):
        """Halving dt reduces the error roughly fourfold."""
        system = harmonic_oscillator()
        errors = []
        for dt in (0.02, 0.01):
            traj = system.propagate(oscillator_bounds(t_end=10.0, dt=dt))
            errors.append(abs(traj.final_state[0] - np.cos(10.0)))
        assert 3.0 < errors[0] / errors[1] < 5.0

    def test_save_every(self):
        """Only every n-th step is recorded, plus the last."""
        traj = harmonic_oscillator().propagate(
            oscillator_bounds(t_end=1.0, dt=0.01, save_every=10))
        assert len(traj) == 11
        np.testing.assert_allclose(traj.times, np.linspace(0.0, 1.0, 11), atol=1e-12)

    def test_step_not_dividing_span_strict(self):
        """A step that does not divide the span is rejected."""
        with temp_config(STRICT_VALIDATION=True):
            with pytest.raises(ValueError, match="does not divide"):
                LeapfrogIntegrator(oscillator_position_rate, oscillator_velocity_rate,
                                   [1.0, 0.0], (0.0, 1.0), 0.3, params=UNIT)

    def test_step_not_dividing_span_lenient(self):
        """In lenient mode the step is adjusted to divide the span."""
        with temp_config(STRICT_VALIDATION=False):
            with pytest.warns(UserWarning, match="does not divide"):
                integrator = LeapfrogIntegrator(
                    oscillator_position_rate, oscillator_velocity_rate,
                    [1.0, 0.0], (0.0, 1.0), 0.3, params=UNIT)
        assert integrator.n_total == 3
        assert integrator.dt == pytest.approx(1.0 / 3.0)

    def test_layout_inferred(self):
        """Without a layout, an even-length state gets a DOFLayout."""
        integrator = LeapfrogIntegrator(oscillator_position_rate, oscillator_velocity_rate,
                                        [1.0, 0.0], (0.0, 1.0), 0.5, params=UNIT)
        assert integrator.layout == DOFLayout(1)

    def test_invalid_initial_state(self):
        """NaN initial states are rejected before stepping."""
        with pytest.raises(ValueError, match="NaN or Inf"):
            LeapfrogIntegrator(oscillator_position_rate, oscillator_velocity_rate,
                               [np.nan, 0.0], (0.0, 1.0), 0.1, params=UNIT)


class TestAdaptiveRK:
    """Test the adaptive Runge-Kutta integrator."""

    def test_save_times_respected(self):
        """The trajectory is sampled exactly at the requested instants."""
        save_times = np.linspace(0.0, 10.0, 101)
        bounds = SimulationBounds(t_start=0.0, t_end=10.0, rtol=1e-10, atol=1e-12,
                                  save_times=save_times)
        traj = harmonic_oscillator().propagate(bounds)
        np.testing.assert_array_equal(traj.times, save_times)
        assert traj.method == "RK45"

    @pytest.mark.parametrize("method", ["RK45", "DOP853", "RK23"])
    def test_accuracy(self, method):
        """Each method tracks the analytical solution at tight tolerance."""
        system = harmonic_oscillator()
        save_times = np.linspace(0.0, 10.0, 51)
        bounds = SimulationBounds(t_start=0.0, t_end=10.0, rtol=1e-10, atol=1e-12,
                                  save_times=save_times)
        traj = system.propagate(bounds, method=method)
        expected = system.reference(save_times).states
        assert np.max(np.abs(traj.states - expected)) < 1e-6

    def test_every_step_recorded_without_save_times(self):
        """Without save_times every accepted step is a sample."""
        integrator = harmonic_oscillator().integrator(
            SimulationBounds(t_start=0.0, t_end=5.0))
        traj = integrator.run()
        assert len(traj) == integrator.n_steps + 1
        assert traj.t0 == 0.0
        assert traj.tf == pytest.approx(5.0)

    def test_save_times_without_start(self):
        """t_start is only recorded when it is a requested instant."""
        bounds = SimulationBounds(t_start=0.0, t_end=2.0, save_times=[0.5, 1.0, 2.0])
        traj = harmonic_oscillator().propagate(bounds)
        np.testing.assert_array_equal(traj.times, [0.5, 1.0, 2.0])

    def test_save_times_outside_span(self):
        """Save times beyond t_end are rejected."""
        bounds = SimulationBounds(t_start=0.0, t_end=1.0, save_times=[0.5, 2.0])
        with pytest.raises(ValueError, match="inside"):
            harmonic_oscillator().integrator(bounds)

    def test_save_times_not_increasing(self):
        """Save times must be strictly increasing."""
        bounds = SimulationBounds(t_start=0.0, t_end=1.0, save_times=[0.5, 0.5])
        with pytest.raises(ValueError, match="strictly increasing"):
            harmonic_oscillator().integrator(bounds)

    def test_unknown_method(self):
        """Unknown method names are rejected."""
        with pytest.raises(ValueError, match="Unknown method"):
            harmonic_oscillator().propagate(SimulationBounds(t_start=0.0, t_end=1.0),
                                            method="Euler")

    def test_verlet_alias(self):
        """'verlet' selects the leapfrog integrator."""
        traj = harmonic_oscillator().propagate(oscillator_bounds(t_end=1.0, dt=0.1),
                                               method="verlet")
        assert traj.method == "leapfrog"

    def test_leapfrog_requires_dt(self):
        """Asking for leapfrog without a step size fails."""
        with pytest.raises(ValueError, match="fixed step"):
            harmonic_oscillator().integrator(SimulationBounds(t_start=0.0, t_end=1.0),
                                             method="leapfrog")


class TestFailures:
    """Test failure modes and partial trajectories."""

    def test_leapfrog_divergence(self):
        """A non-finite acceleration fails the run with a partial trajectory."""
        integrator = LeapfrogIntegrator(oscillator_position_rate, _diverging_velocity_rate,
                                        [1.0, 0.0], (0.0, 1.0), 0.1, params=UNIT)
        with pytest.raises(IntegrationDivergedError) as excinfo:
            integrator.run()
        err = excinfo.value
        assert integrator.status == IntegratorStatus.FAILED
        assert err.time == pytest.approx(0.5)
        assert np.all(np.isfinite(err.last_state))
        partial = err.trajectory
        assert partial.status == IntegratorStatus.FAILED
        assert partial.tf == pytest.approx(0.5)
        assert len(partial) == 6
        assert partial.failure.time == pytest.approx(0.5)

    def test_adaptive_divergence(self):
        """A NaN derivative inside the RK solver fails the run."""
        integrator = AdaptiveRKIntegrator(_diverging_derivative, [1.0, 0.0], (0.0, 2.0),
                                          params=UNIT, max_step=0.05)
        with pytest.raises(IntegrationDivergedError):
            integrator.run()
        assert integrator.status == IntegratorStatus.FAILED
        assert integrator.time <= 0.5
        assert integrator.trajectory.tf <= 0.5

    def test_divergence_without_raising(self):
        """raise_on_failure=False returns the partial trajectory."""
        integrator = LeapfrogIntegrator(oscillator_position_rate, _diverging_velocity_rate,
                                        [1.0, 0.0], (0.0, 1.0), 0.1, params=UNIT)
        traj = integrator.run(raise_on_failure=False)
        assert traj.status == IntegratorStatus.FAILED
        assert not traj.is_complete
        assert "Non-finite" in traj.failure.reason

    def test_failure_before_first_save_time(self):
        """A run that fails before any save time still returns a Trajectory
        holding the last valid state."""
        def nan_derivative(state, params, t):
            return np.full_like(np.asarray(state, dtype=float), np.nan)

        integrator = AdaptiveRKIntegrator(nan_derivative, [1.0, 0.0], (0.0, 10.0),
                                          params=UNIT, save_times=[5.0, 10.0])
        traj = integrator.run(raise_on_failure=False)
        assert isinstance(traj, Trajectory)
        assert traj.status == IntegratorStatus.FAILED
        assert len(traj) == 1
        assert traj.t0 == 0.0
        np.testing.assert_array_equal(traj.final_state, [1.0, 0.0])
        assert integrator.trajectory.failure is not None

    def test_step_budget(self):
        """Exhausting the step budget fails the run."""
        bounds = SimulationBounds(t_start=0.0, t_end=1.0, dt=0.01, max_steps=10)
        with pytest.raises(StepBudgetExceededError) as excinfo:
            harmonic_oscillator().propagate(bounds)
        partial = excinfo.value.trajectory
        assert len(partial) == 11
        assert partial.tf == pytest.approx(0.1)

    def test_step_budget_from_config(self):
        """The default budget comes from config.DEFAULT_MAX_STEPS."""
        with temp_config(DEFAULT_MAX_STEPS=5):
            with pytest.raises(StepBudgetExceededError):
                harmonic_oscillator().propagate(
                    SimulationBounds(t_start=0.0, t_end=100.0, rtol=1e-12, atol=1e-14))

    def test_integration_errors_share_base(self):
        """Both failure types are IntegrationErrors (and RuntimeErrors)."""
        assert issubclass(IntegrationDivergedError, IntegrationError)
        assert issubclass(StepBudgetExceededError, IntegrationError)
        assert issubclass(IntegrationError, RuntimeError)

    def test_singularity_marks_failed(self):
        """A body at the central mass raises SingularityError and fails the run."""
        system = inner_solar_system()
        state = system.initial_state()
        state[0:3] = 0.0
        integrator = system.integrator(SimulationBounds(t_start=0.0, t_end=10.0, dt=1.0),
                                       initial_state=state)
        with pytest.raises(SingularityError):
            integrator.run()
        assert integrator.status == IntegratorStatus.FAILED

    def test_singularity_in_adaptive_run(self):
        """The adaptive path propagates SingularityError as well."""
        system = inner_solar_system()
        state = system.initial_state()
        state[6:9] = 0.0
        with pytest.raises(SingularityError):
            system.propagate(SimulationBounds(t_start=0.0, t_end=10.0), initial_state=state)
