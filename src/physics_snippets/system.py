'''System class definitions

A System binds an immutable parameter record to its dynamics, its state
layout, its energy function and its reference solution, and runs
integrations that produce Trajectory objects.'''

import numpy as np
import warnings
from typing import Optional, List, Tuple, Any, Union
import heyoka as hy

from .config import config
from .dynamics import (oscillator_derivative, oscillator_position_rate,
                       oscillator_velocity_rate, oscillator_energy,
                       orbital_derivative, orbital_position_rate,
                       orbital_acceleration, orbital_energy)
from .integrators import Integrator, LeapfrogIntegrator, AdaptiveRKIntegrator
from .params import OscillatorParams, OrbitalParams, SimulationBounds
from .reference import OscillatorReference, ReferenceSeries
from .state import BodyLayout, DOFLayout, StateLayout
from .trajectory import Trajectory


class System:
    """
    Base class: one physical system with fixed parameters.

    Subclasses provide the layout, the packed initial state, the dynamics
    (full and partitioned), the energy function and a reference solution.

    Notes
    -----
    - System is immutable - create a new instance to change parameters
    - ``propagate`` chooses the fixed-step symplectic scheme when the bounds
      carry a step size and the adaptive Runge-Kutta scheme otherwise
    """
    # ========== CLASS CONSTANTS ==========
    _VALID_METHODS = frozenset(("leapfrog",) + tuple(AdaptiveRKIntegrator.METHODS))

    def __init__(self, params: Any, layout: StateLayout):
        self._params = params
        self._layout = layout

    # ========== PROPERTY ACCESS ==========
    @property
    def params(self) -> Any:
        return self._params

    @property
    def layout(self) -> StateLayout:
        return self._layout

    # ========== DYNAMICS ==========
    def initial_state(self) -> np.ndarray:
        raise NotImplementedError

    def derivative(self, state: np.ndarray, t: float = 0.0) -> np.ndarray:
        raise NotImplementedError

    def energy(self, state: np.ndarray) -> Union[float, np.ndarray]:
        raise NotImplementedError

    def reference(self, times) -> ReferenceSeries:
        raise NotImplementedError

    # Partitioned dynamics, with the (v, q, params, t) signature the
    # symplectic integrator expects
    _position_rate = None
    _velocity_rate = None
    _derivative_fn = None

    # ========== PROPAGATION ==========
    def integrator(self, bounds: SimulationBounds, method: Optional[str] = None,
                   initial_state=None) -> Integrator:
        """
        Build an integrator for this system without running it.

        Parameters
        ----------
        bounds : SimulationBounds
            Time span and numerical settings
        method : str, optional
            'leapfrog', 'RK45', 'DOP853' or 'RK23'. Defaults to 'leapfrog'
            when ``bounds.dt`` is set and 'RK45' otherwise.
        initial_state : array_like, optional
            Overrides the state packed from the parameter record

        Returns
        -------
        Integrator
            Integrator in the INITIALIZED state
        """
        method = self._parse_method(method, bounds)
        y0 = self._condition_state(initial_state)

        if method == "leapfrog":
            if bounds.dt is None:
                raise ValueError("The leapfrog integrator requires a fixed step size (bounds.dt)")
            return LeapfrogIntegrator(
                type(self)._position_rate, type(self)._velocity_rate,
                y0, bounds.t_span, bounds.dt, params=self._params,
                layout=self._layout, save_every=bounds.save_every,
                max_steps=bounds.max_steps, system=self,
            )
        return AdaptiveRKIntegrator(
            type(self)._derivative_fn, y0, bounds.t_span, params=self._params,
            method=method, rtol=bounds.rtol, atol=bounds.atol,
            save_times=bounds.save_times,
            max_step=bounds.dt if bounds.dt is not None else np.inf,
            layout=self._layout, max_steps=bounds.max_steps, system=self,
        )

    def propagate(self, bounds: SimulationBounds, method: Optional[str] = None,
                  initial_state=None, raise_on_failure: bool = True) -> Trajectory:
        """
        Integrate from ``bounds.t_start`` to ``bounds.t_end``.

        Returns
        -------
        Trajectory
            Complete trajectory, or the partial one (status FAILED) when
            ``raise_on_failure`` is False and the run failed

        Raises
        ------
        IntegrationError
            If integration fails and ``raise_on_failure`` is True; the
            exception carries the partial trajectory
        SingularityError
            If the dynamics are evaluated at an undefined point
        """
        return self.integrator(bounds, method, initial_state).run(
            raise_on_failure=raise_on_failure)

    def _condition_state(self, initial_state) -> np.ndarray:
        """Validate an explicit initial state, or pack the default one."""
        if initial_state is None:
            return self.initial_state()
        state_array = np.asarray(initial_state, dtype=float).ravel()
        if state_array.size != self._layout.size:
            raise ValueError(
                f"Initial state has {state_array.size} components, "
                f"expected {self._layout.size}"
            )
        if not np.all(np.isfinite(state_array)):
            raise ValueError(f"Initial state contains NaN or Inf values: {state_array}")
        return state_array

    @classmethod
    def _parse_method(cls, method: Optional[str], bounds: SimulationBounds) -> str:
        """Resolve the integration method name"""
        if method is None:
            return "leapfrog" if bounds.dt is not None else "RK45"
        if not isinstance(method, str):
            raise TypeError(f"method must be str, got {type(method)}")
        if method.lower() == "leapfrog" or method.lower() == "verlet":
            return "leapfrog"
        if method.upper() in AdaptiveRKIntegrator.METHODS:
            return method.upper()
        raise ValueError(f"Unknown method '{method}'. Use: {sorted(cls._VALID_METHODS)}")


class OscillatorSystem(System):
    """
    One-dimensional simple harmonic oscillator ``m x'' + k x = 0``.

    The initial condition is ``x(0) = A cos(phi)``, ``v(0) = -A w sin(phi)``
    from the parameter record, and the reference is the closed-form solution.

    Parameters
    ----------
    params : OscillatorParams
        Mass, spring constant, amplitude and phase
    """
    _position_rate = staticmethod(oscillator_position_rate)
    _velocity_rate = staticmethod(oscillator_velocity_rate)
    _derivative_fn = staticmethod(oscillator_derivative)

    def __init__(self, params: OscillatorParams):
        if not isinstance(params, OscillatorParams):
            raise TypeError(f"params must be OscillatorParams, got {type(params)}")
        super().__init__(params, DOFLayout(1, names=("x",)))
        self._analytical = OscillatorReference(params)

    @property
    def analytical(self) -> OscillatorReference:
        return self._analytical

    def initial_state(self) -> np.ndarray:
        return self._layout.pack(self._params.initial_position,
                                 self._params.initial_velocity)

    def derivative(self, state: np.ndarray, t: float = 0.0) -> np.ndarray:
        return oscillator_derivative(state, self._params, t)

    def energy(self, state: np.ndarray) -> Union[float, np.ndarray]:
        return oscillator_energy(state, self._params)[2]

    def energy_components(self, state: np.ndarray):
        """(kinetic, potential, total) energy of one state or a stack of states."""
        return oscillator_energy(state, self._params)

    def reference(self, times) -> ReferenceSeries:
        return self._analytical.series(times)

    def __repr__(self):
        p = self._params
        return (f"OscillatorSystem(m={p.mass}, k={p.spring_constant}, "
                f"A={p.amplitude}, phi={p.phase})")


class OrbitalSystem(System):
    """
    Bodies orbiting a fixed central mass at the origin.

    The state vector holds one ``(x, y, z, vx, vy, vz)`` block per body in
    the order of ``params.bodies``. By default each body feels only the
    central mass; ``params.mutual_gravity`` adds body-body attraction.

    The reference solution is a high-accuracy Taylor-series integration of
    the same equations of motion with Heyoka, compiled on first use.

    Parameters
    ----------
    params : OrbitalParams
        Bodies, gravitational constant and central mass
    compile : bool
        If True, compile the reference integrator immediately
        (default False: compile lazily)

    Notes
    -----
    - Instance counting: Warning issued when more compiled reference
      integrators than config.INSTANCE_WARNING_THRESHOLD exist simultaneously
    """
    # Class variable for instance counting
    _instance_count = 0

    _position_rate = staticmethod(orbital_position_rate)
    _velocity_rate = staticmethod(orbital_acceleration)
    _derivative_fn = staticmethod(orbital_derivative)

    def __init__(self, params: OrbitalParams, compile: bool = False):
        if not isinstance(params, OrbitalParams):
            raise TypeError(f"params must be OrbitalParams, got {type(params)}")
        super().__init__(params, BodyLayout(params.n_bodies, names=params.names))

        self._cached_eom = None
        self._cached_integrator = None
        if compile:
            self._compile_integrator()

    @property
    def mutual_gravity(self) -> bool:
        return self._params.mutual_gravity

    @property
    def is_compiled(self) -> bool:
        return self._cached_integrator is not None

    def initial_state(self) -> np.ndarray:
        return self._layout.pack(self._params.bodies)

    def derivative(self, state: np.ndarray, t: float = 0.0) -> np.ndarray:
        return orbital_derivative(state, self._params, t)

    def energy(self, state: np.ndarray) -> Union[float, np.ndarray]:
        return orbital_energy(state, self._params)

    def body_index(self, name: str) -> int:
        return self._layout.index_of(name)

    # ========== TAYLOR REFERENCE ==========
    def reference(self, times, initial_state=None) -> ReferenceSeries:
        """
        High-accuracy reference states on the given time grid.

        The reference is integrated from the first requested time with
        Heyoka's adaptive Taylor method and evaluated through its
        continuous output.

        Parameters
        ----------
        times : array_like
            Strictly increasing evaluation times; ``times[0]`` is the epoch
            of the initial state
        initial_state : array_like, optional
            Overrides the state packed from the parameter record
        """
        times = np.atleast_1d(np.asarray(times, dtype=float))
        if times.size < 2 or np.any(np.diff(times) <= 0):
            raise ValueError("Reference times must be strictly increasing with at least 2 entries")
        state_array = self._condition_state(initial_state)

        if not self.is_compiled:
            self._compile_integrator()
        ta = self._cached_integrator
        assert ta is not None, "Integrator should be compiled"

        # Set initial conditions (heyoka requires float times)
        ta.time = float(times[0])
        ta.state[:] = state_array

        # Propagate until the last time with continuous output
        c_output = ta.propagate_until(float(times[-1]), c_output=True)[4]

        if not np.all(np.isfinite(ta.state)):
            raise ValueError(
                f"Reference integration failed: state became invalid.\n"
                f"Initial state: {state_array}\n"
                f"Final time: {ta.time}\n"
                f"Final state: {ta.state}"
            )
        if c_output is None:
            raise ValueError("Reference integration produced no continuous output")

        states = np.asarray(c_output(times), dtype=float)
        return ReferenceSeries(times, states, self._layout, source="taylor")

    def _build_eom(self) -> List[Tuple]:
        """
        Build symbolic Heyoka equations of motion.

        Returns
        -------
        sys : list of (var, rhs) tuples
            Heyoka ODE system in BodyLayout order:
            [x0, y0, z0, vx0, vy0, vz0, x1, ...]

        Notes
        -----
        - All constants (mu, G, masses) are hardcoded into the symbolic
          expressions since they're part of the immutable parameter record
        """
        p = self._params
        n = p.n_bodies
        names = []
        for i in range(n):
            names.extend([f"x{i}", f"y{i}", f"z{i}", f"vx{i}", f"vy{i}", f"vz{i}"])
        variables = hy.make_vars(*names)
        blocks = [variables[6 * i:6 * i + 6] for i in range(n)]

        sys = []
        for i, (x, y, z, vx, vy, vz) in enumerate(blocks):
            # Central-body acceleration
            r = hy.sqrt(x**2 + y**2 + z**2)
            a_x = -p.mu * x / r**3
            a_y = -p.mu * y / r**3
            a_z = -p.mu * z / r**3

            if p.mutual_gravity:
                for j, (xj, yj, zj, _, _, _) in enumerate(blocks):
                    if j == i:
                        continue
                    r_ij = hy.sqrt((xj - x)**2 + (yj - y)**2 + (zj - z)**2)
                    gm_j = p.G * p.bodies[j].mass
                    a_x = a_x + gm_j * (xj - x) / r_ij**3
                    a_y = a_y + gm_j * (yj - y) / r_ij**3
                    a_z = a_z + gm_j * (zj - z) / r_ij**3

            sys.extend([(x, vx), (y, vy), (z, vz),
                        (vx, a_x), (vy, a_y), (vz, a_z)])
        return sys

    def _compile_integrator(self):
        """
        Compile the Heyoka reference integrator (expensive operation).

        This performs automatic differentiation and LLVM compilation,
        which can take a few seconds for many bodies.
        """
        if self._cached_integrator is not None:
            return  # Already compiled

        if self._cached_eom is None:
            self._cached_eom = self._build_eom()

        msg = f"Compiling {self._params.n_bodies}-body Taylor reference integrator"
        if self._params.mutual_gravity:
            msg += " with mutual gravity"
        print(msg + "...")

        # EXPENSIVE: Compile integrator
        self._cached_integrator = hy.taylor_adaptive(
            sys=self._cached_eom,
            state=[0.0] * self._layout.size,  # Dummy state
        )
        print("Compilation complete")

        # Instance counting
        OrbitalSystem._instance_count += 1
        if OrbitalSystem._instance_count > config.INSTANCE_WARNING_THRESHOLD:
            warnings.warn(
                f"{OrbitalSystem._instance_count} compiled reference integrators "
                f"exist. Each OrbitalSystem caches a compiled Heyoka integrator, "
                f"which can consume significant memory. Consider reusing "
                f"OrbitalSystem objects when possible.",
                ResourceWarning,
                stacklevel=3
            )

    def compile(self):
        """
        Explicitly compile the reference integrator if not already compiled.

        Returns
        -------
        self
            Returns self for method chaining
        """
        self._compile_integrator()
        return self

    @classmethod
    def get_instance_count(cls):
        return cls._instance_count

    @classmethod
    def reset_instance_count(cls):
        cls._instance_count = 0

    # ========== SPECIAL METHODS ==========
    def __del__(self):
        """Decrement instance count when a compiled System is garbage collected."""
        if getattr(self, "_cached_integrator", None) is not None:
            OrbitalSystem._instance_count -= 1

    def __repr__(self):
        p = self._params
        parts = [f"OrbitalSystem(bodies={list(p.names)}",
                 f"mu={p.mu:.4e} m^3/s^2"]
        if p.mutual_gravity:
            parts.append("mutual_gravity=True")
        return ", ".join(parts) + ")"
