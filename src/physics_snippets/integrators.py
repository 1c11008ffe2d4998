'''Integrator class definitions

Two strategies advance a state vector in time:

* LeapfrogIntegrator -- fixed-step, kick-drift-kick velocity Verlet on a
  partitioned ODE. Symplectic, so the energy of a Hamiltonian system
  oscillates with bounded amplitude instead of drifting.
* AdaptiveRKIntegrator -- explicit embedded Runge-Kutta pairs from
  scipy.integrate, stepped one accepted step at a time, with output at
  caller-specified instants taken from the method's dense interpolant.

Both share the Integrator state machine:
INITIALIZED -> STEPPING -> COMPLETED (or FAILED).'''

import numpy as np
from typing import Callable, Optional, Sequence, Tuple, Any, List, Type
from scipy.integrate import RK23, RK45, DOP853

from .config import config
from .errors import (IntegrationError, IntegrationDivergedError,
                     StepBudgetExceededError, SingularityError)
from .state import StateLayout, DOFLayout
from .trajectory import Trajectory, IntegratorStatus, FailureInfo
from .utils import validation_error

# Dynamics signatures
Derivative = Callable[[np.ndarray, Any, float], np.ndarray]
PartitionedRate = Callable[[np.ndarray, np.ndarray, Any, float], np.ndarray]


class _NonFiniteDerivative(Exception):
    """Raised from inside a solver callback when f(t, y) is not finite."""


class Integrator:
    """
    Base class holding the state machine and the recorded samples.

    Subclasses implement ``_advance()``, which performs exactly one step and
    returns True once the end of the time span has been reached.

    Parameters
    ----------
    y0 : array_like
        Initial state vector
    t_span : (float, float)
        Start and end time, ``t_end > t_start``
    params : Any
        Immutable parameter record passed to the dynamics at every step
    layout : StateLayout, optional
        Layout of the state vector (DOFLayout inferred when omitted)
    max_steps : int, optional
        Internal step budget (config.DEFAULT_MAX_STEPS when None)
    system : System, optional
        Owner recorded on the produced Trajectory
    """
    method = "base"

    def __init__(self, y0, t_span: Tuple[float, float], params: Any = None,
                 layout: Optional[StateLayout] = None,
                 max_steps: Optional[int] = None, system=None):
        y0 = np.array(y0, dtype=float).ravel()
        if not np.all(np.isfinite(y0)):
            raise ValueError(f"Initial state contains NaN or Inf values: {y0}")
        t_start, t_end = float(t_span[0]), float(t_span[1])
        if not t_end > t_start:
            raise ValueError(f"t_end ({t_end}) must be greater than t_start ({t_start})")
        if layout is None:
            if y0.size % 2:
                raise ValueError("A layout is required for odd-length state vectors")
            layout = DOFLayout(y0.size // 2)
        if layout.size != y0.size:
            raise ValueError(
                f"Initial state has {y0.size} components, layout expects {layout.size}"
            )

        self._params = params
        self._layout = layout
        self._system = system
        self._t_start = t_start
        self._t_end = t_end
        self._max_steps = int(max_steps if max_steps is not None
                              else config.DEFAULT_MAX_STEPS)
        if self._max_steps < 1:
            raise ValueError(f"max_steps must be at least 1, got {self._max_steps}")

        self._t = t_start
        self._y = y0.copy()
        self._n_steps = 0
        self._status = IntegratorStatus.INITIALIZED
        self._failure: Optional[FailureInfo] = None
        self._times: List[float] = []
        self._states: List[np.ndarray] = []

    # ========== PROPERTY ACCESS ==========
    @property
    def status(self) -> IntegratorStatus:
        return self._status

    @property
    def time(self) -> float:
        """Current integration time (last valid time after a failure)."""
        return self._t

    @property
    def state(self) -> np.ndarray:
        """Current state (last valid state after a failure)."""
        return self._y.copy()

    @property
    def n_steps(self) -> int:
        return self._n_steps

    @property
    def failure(self) -> Optional[FailureInfo]:
        return self._failure

    @property
    def layout(self) -> StateLayout:
        return self._layout

    @property
    def t_span(self) -> Tuple[float, float]:
        return (self._t_start, self._t_end)

    @property
    def trajectory(self) -> Trajectory:
        """Samples recorded so far (complete once status is COMPLETED)."""
        times, states = self._times, self._states
        if not times and self._failure is not None:
            # Failed before the first save time; keep the last valid state
            times, states = [self._failure.time], [self._failure.state]
        return Trajectory(times, states, self._layout,
                          system=self._system, status=self._status,
                          failure=self._failure, method=self.method)

    # ========== STEPPING ==========
    def step(self) -> IntegratorStatus:
        """
        Advance by one step and record any samples it produces.

        Returns
        -------
        IntegratorStatus
            Status after the step

        Raises
        ------
        RuntimeError
            If the run has already completed or failed
        IntegrationDivergedError
            If a non-finite derivative or state is produced
        StepBudgetExceededError
            If the step budget is exhausted before the end time
        SingularityError
            If the dynamics hit an undefined point; the run is marked FAILED
        """
        if self._status in (IntegratorStatus.COMPLETED, IntegratorStatus.FAILED):
            raise RuntimeError(f"Cannot step an integrator whose run has {self._status.value}")
        if self._status == IntegratorStatus.INITIALIZED:
            self._status = IntegratorStatus.STEPPING

        if self._n_steps >= self._max_steps:
            self._fail(StepBudgetExceededError,
                       f"Step budget of {self._max_steps} steps exhausted at "
                       f"t={self._t} before reaching t={self._t_end}")
        try:
            finished = self._advance()
        except SingularityError as err:
            self._mark_failed(str(err))
            raise
        except _NonFiniteDerivative as err:
            self._fail(IntegrationDivergedError, str(err))

        self._n_steps += 1
        if finished:
            self._status = IntegratorStatus.COMPLETED
        return self._status

    def run(self, raise_on_failure: bool = True) -> Trajectory:
        """
        Step until the end of the time span.

        Parameters
        ----------
        raise_on_failure : bool
            If True (default) integration failures raise an IntegrationError
            carrying the partial trajectory. If False, the partial trajectory
            is returned with status FAILED.
        """
        try:
            while self._status in (IntegratorStatus.INITIALIZED, IntegratorStatus.STEPPING):
                self.step()
        except IntegrationError as err:
            if raise_on_failure:
                raise
            return err.trajectory
        return self.trajectory

    def _advance(self) -> bool:
        raise NotImplementedError

    # ========== RECORDING / FAILURE ==========
    def _record(self, t: float, y: np.ndarray):
        self._times.append(float(t))
        self._states.append(np.array(y, dtype=float))

    def _mark_failed(self, reason: str):
        self._status = IntegratorStatus.FAILED
        self._failure = FailureInfo(self._t, self._y.copy(), reason)

    def _fail(self, error_class: Type[IntegrationError], reason: str):
        self._mark_failed(reason)
        raise error_class(reason, time=self._t, last_state=self._y,
                          trajectory=self.trajectory)

    def _check_finite(self, t: float, y: np.ndarray, what: str):
        if not np.all(np.isfinite(y)):
            self._fail(IntegrationDivergedError,
                       f"Non-finite {what} produced at t={t}: {y}")

    def __repr__(self):
        return (f"{type(self).__name__}(t={self._t}, t_span={self.t_span}, "
                f"status='{self._status.value}', n_steps={self._n_steps})")


class LeapfrogIntegrator(Integrator):
    """
    Fixed-step velocity Verlet (kick-drift-kick leapfrog) for partitioned ODEs.

    The dynamics must be split into a position update ``dq/dt = f(v, q, p, t)``
    and a velocity update ``dv/dt = g(v, q, p, t)`` where ``g`` does not depend
    on ``v`` (separable Hamiltonian). The step size is fixed for the whole run
    and must divide the time span.

    Parameters
    ----------
    position_rate, velocity_rate : callable
        Partitioned dynamics
    y0, t_span, params, layout, max_steps, system
        See Integrator
    dt : float
        Step size
    save_every : int
        Record every ``save_every``-th step (the final step is always recorded)
    """
    method = "leapfrog"

    def __init__(self, position_rate: PartitionedRate, velocity_rate: PartitionedRate,
                 y0, t_span: Tuple[float, float], dt: float, params: Any = None,
                 layout: Optional[StateLayout] = None, save_every: int = 1,
                 max_steps: Optional[int] = None, system=None):
        super().__init__(y0, t_span, params=params, layout=layout,
                         max_steps=max_steps, system=system)
        if dt <= 0:
            raise ValueError(f"Step size must be positive, got {dt}")
        if save_every < 1:
            raise ValueError(f"save_every must be at least 1, got {save_every}")

        span = self._t_end - self._t_start
        n_total = max(int(round(span / dt)), 1)
        if abs(n_total * dt - span) > 1e-9 * span:
            validation_error(
                f"Step size {dt} does not divide the time span {span}; "
                f"a fixed-step symplectic run needs an integer number of steps"
            )
        self._n_total = n_total
        self._dt = span / n_total
        self._save_every = int(save_every)
        self._position_rate = position_rate
        self._velocity_rate = velocity_rate
        self._q = self._layout.positions(self._y).copy()
        self._v = self._layout.velocities(self._y).copy()
        self._a: Optional[np.ndarray] = None
        self._record(self._t, self._y)

    @property
    def dt(self) -> float:
        return self._dt

    @property
    def n_total(self) -> int:
        """Number of steps needed to cover the time span."""
        return self._n_total

    def _rate(self, fun: PartitionedRate, v, q, t, what: str) -> np.ndarray:
        out = np.asarray(fun(v, q, self._params, t), dtype=float)
        if not np.all(np.isfinite(out)):
            raise _NonFiniteDerivative(f"Non-finite {what} at t={t}: {out}")
        return out

    def _advance(self) -> bool:
        h = self._dt
        t = self._t
        if self._a is None:
            self._a = self._rate(self._velocity_rate, self._v, self._q, t, "acceleration")

        # kick - drift - kick
        v_half = self._v + 0.5 * h * self._a
        q_new = self._q + h * self._rate(self._position_rate, v_half, self._q,
                                         t + 0.5 * h, "position rate")
        k = self._n_steps + 1
        t_new = self._t_end if k == self._n_total else self._t_start + k * h
        a_new = self._rate(self._velocity_rate, v_half, q_new, t_new, "acceleration")
        v_new = v_half + 0.5 * h * a_new

        y_new = self._layout.combine(q_new, v_new)
        self._check_finite(t_new, y_new, "state")

        self._q, self._v, self._a = q_new, v_new, a_new
        self._t, self._y = t_new, y_new

        finished = k >= self._n_total
        if finished or k % self._save_every == 0:
            self._record(t_new, y_new)
        return finished


class AdaptiveRKIntegrator(Integrator):
    """
    Adaptive explicit Runge-Kutta integration with fixed-output sampling.

    Parameters
    ----------
    derivative : callable
        ``derivative(state, params, t)`` returning d(state)/dt
    y0, t_span, params, layout, max_steps, system
        See Integrator
    method : str
        'RK45' (Dormand-Prince 5(4), default), 'DOP853' or 'RK23'
    rtol, atol : float, optional
        Error tolerances (config defaults when None)
    save_times : sequence of float, optional
        Instants at which to report the state, inside ``t_span`` and strictly
        increasing. When omitted every accepted step is recorded.
    max_step : float
        Largest internal step allowed
    """
    METHODS = {'RK45': RK45, 'DOP853': DOP853, 'RK23': RK23}

    def __init__(self, derivative: Derivative, y0, t_span: Tuple[float, float],
                 params: Any = None, method: str = 'RK45',
                 rtol: Optional[float] = None, atol: Optional[float] = None,
                 save_times: Optional[Sequence[float]] = None,
                 max_step: float = np.inf, layout: Optional[StateLayout] = None,
                 max_steps: Optional[int] = None, system=None):
        super().__init__(y0, t_span, params=params, layout=layout,
                         max_steps=max_steps, system=system)
        if method not in self.METHODS:
            raise ValueError(f"Unknown method '{method}'. Use: {list(self.METHODS)}")
        self.method = method
        self._solver_class = self.METHODS[method]
        self._derivative = derivative
        self._rtol = float(rtol if rtol is not None else config.DEFAULT_RTOL)
        self._atol = float(atol if atol is not None else config.DEFAULT_ATOL)
        self._max_step = max_step
        self._solver = None

        atol_t = config.TIME_MATCH_ATOL
        if save_times is None:
            self._save_times = None
            self._record(self._t, self._y)
        else:
            save_times = np.asarray(save_times, dtype=float).ravel()
            if save_times.size == 0:
                raise ValueError("save_times must not be empty")
            if np.any(np.diff(save_times) <= 0):
                raise ValueError("save_times must be strictly increasing")
            if save_times[0] < self._t_start - atol_t or save_times[-1] > self._t_end + atol_t:
                raise ValueError(
                    f"save_times must lie inside [{self._t_start}, {self._t_end}]"
                )
            if abs(save_times[0] - self._t_start) <= atol_t:
                self._record(save_times[0], self._y)
                save_times = save_times[1:]
            self._save_times = save_times
        self._next_save = 0

    @property
    def rtol(self) -> float:
        return self._rtol

    @property
    def atol(self) -> float:
        return self._atol

    def _fun(self, t, y):
        dydt = np.asarray(self._derivative(y, self._params, t), dtype=float)
        if not np.all(np.isfinite(dydt)):
            raise _NonFiniteDerivative(f"Non-finite derivative at t={t}: {dydt}")
        return dydt

    def _advance(self) -> bool:
        if self._solver is None:
            self._solver = self._solver_class(
                self._fun, self._t_start, self._y, self._t_end,
                rtol=self._rtol, atol=self._atol, max_step=self._max_step,
            )
        solver = self._solver

        t_old = self._t
        message = solver.step()
        if solver.status == 'failed':
            self._fail(IntegrationDivergedError,
                       f"{self.method} step failed at t={t_old}: {message}")
        t_new = float(solver.t)
        y_new = np.array(solver.y, dtype=float)
        self._check_finite(t_new, y_new, "state")

        finished = solver.status == 'finished'
        if self._save_times is None:
            self._record(t_new, y_new)
        else:
            self._emit_saved(solver, t_new, y_new, finished)

        self._t, self._y = t_new, y_new
        return finished

    def _emit_saved(self, solver, t_new: float, y_new: np.ndarray, finished: bool):
        """Record every pending save time covered by the last step."""
        atol_t = config.TIME_MATCH_ATOL
        pending = self._save_times[self._next_save:]
        if finished:
            covered = pending.size
        else:
            covered = int(np.searchsorted(pending, t_new + atol_t, side='right'))
        if covered == 0:
            return
        dense = solver.dense_output()
        for ts in pending[:covered]:
            if abs(ts - t_new) <= atol_t:
                self._record(ts, y_new)
            else:
                self._record(ts, dense(ts))
        self._next_save += covered
