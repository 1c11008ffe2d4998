"""
Immutable parameter records.

Every physical constant a run needs is carried by one of these frozen
dataclasses and passed explicitly into dynamics, integrators and references.
Unit-bearing (pint) inputs are reduced to SI magnitudes on construction.
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple, Sequence

import numpy as np

from .state import Body
from .units import (strip_units, MASS, LENGTH, TIME, SPRING_CONSTANT,
                    GRAVITATIONAL_CONSTANT)


@dataclass(frozen=True)
class OscillatorParams:
    """
    Immutable parameters of a 1-D simple harmonic oscillator ``m x'' + k x = 0``.

    Attributes
    ----------
    mass : float
        Oscillating mass [kg]
    spring_constant : float
        Spring constant [N/m]
    amplitude : float
        Amplitude A of ``x(t) = A cos(wt + phi)`` [m]
    phase : float
        Phase phi [rad]
    """
    mass: float
    spring_constant: float
    amplitude: float = 1.0
    phase: float = 0.0

    def __post_init__(self):
        # Strip units (frozen, so go through object.__setattr__)
        object.__setattr__(self, "mass", strip_units(self.mass, MASS))
        object.__setattr__(self, "spring_constant",
                           strip_units(self.spring_constant, SPRING_CONSTANT))
        object.__setattr__(self, "amplitude", strip_units(self.amplitude, LENGTH))
        object.__setattr__(self, "phase", float(self.phase))

        # Validate parameters
        if self.mass <= 0:
            raise ValueError(f"Mass must be positive, got {self.mass}")
        if self.spring_constant <= 0:
            raise ValueError(f"Spring constant must be positive, got {self.spring_constant}")
        if not (math.isfinite(self.amplitude) and math.isfinite(self.phase)):
            raise ValueError("Amplitude and phase must be finite")

    @property
    def angular_frequency(self) -> float:
        """omega = sqrt(k/m) [rad/s]"""
        return math.sqrt(self.spring_constant / self.mass)

    @property
    def period(self) -> float:
        """2 pi / omega [s]"""
        return 2.0 * math.pi / self.angular_frequency

    @property
    def total_energy(self) -> float:
        """Exact mechanical energy 1/2 k A^2 [J]"""
        return 0.5 * self.spring_constant * self.amplitude ** 2

    @property
    def initial_position(self) -> float:
        """x(0) = A cos(phi) [m]"""
        return self.amplitude * math.cos(self.phase)

    @property
    def initial_velocity(self) -> float:
        """v(0) = -A omega sin(phi) [m/s]"""
        return -self.amplitude * self.angular_frequency * math.sin(self.phase)


@dataclass(frozen=True)
class OrbitalParams:
    """
    Immutable parameters of bodies orbiting a fixed central mass at the origin.

    Attributes
    ----------
    bodies : tuple of Body
        Orbiting bodies, in state-vector order
    G : float
        Gravitational constant [m^3 kg^-1 s^-2]
    central_mass : float
        Mass of the fixed central body [kg]
    mutual_gravity : bool
        If False (default) each body feels only the central mass; this is the
        two-body-per-body approximation. If True, body-body attraction is
        included as well.
    """
    bodies: Tuple[Body, ...]
    G: float
    central_mass: float
    mutual_gravity: bool = False

    def __post_init__(self):
        object.__setattr__(self, "bodies", tuple(self.bodies))
        object.__setattr__(self, "G", strip_units(self.G, GRAVITATIONAL_CONSTANT))
        object.__setattr__(self, "central_mass", strip_units(self.central_mass, MASS))

        if not self.bodies:
            raise ValueError("At least one body is required")
        for body in self.bodies:
            if not isinstance(body, Body):
                raise TypeError(f"bodies must be Body instances, got {type(body)}")
        names = [body.name for body in self.bodies]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate body names found: {names}")
        if self.G <= 0:
            raise ValueError(f"Gravitational constant must be positive, got {self.G}")
        if self.central_mass <= 0:
            raise ValueError(f"Central mass must be positive, got {self.central_mass}")

    @property
    def mu(self) -> float:
        """Gravitational parameter of the central body G*M [m^3/s^2]"""
        return self.G * self.central_mass

    @property
    def n_bodies(self) -> int:
        return len(self.bodies)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(body.name for body in self.bodies)

    @property
    def masses(self) -> np.ndarray:
        """Body masses [kg] in state-vector order"""
        return np.array([body.mass for body in self.bodies], dtype=float)

    def body(self, name: str) -> Body:
        """Look up a body by name."""
        for body in self.bodies:
            if body.name == name:
                return body
        raise KeyError(f"No body named '{name}'. Bodies: {list(self.names)}")


@dataclass(frozen=True)
class SimulationBounds:
    """
    Time span and numerical settings of one simulation run.

    Attributes
    ----------
    t_start, t_end : float
        Integration interval [s]
    dt : float, optional
        Fixed step for symplectic integration [s]
    rtol, atol : float, optional
        Adaptive integrator tolerances (config defaults when None)
    max_steps : int, optional
        Internal step budget (config default when None)
    save_every : int
        Fixed-step runs record every ``save_every``-th step
    save_times : tuple of float, optional
        Instants at which adaptive runs report the state
    seed : int, optional
        Random seed for stochastic runs
    """
    t_start: float
    t_end: float
    dt: Optional[float] = None
    rtol: Optional[float] = None
    atol: Optional[float] = None
    max_steps: Optional[int] = None
    save_every: int = 1
    save_times: Optional[Sequence[float]] = field(default=None)
    seed: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "t_start", strip_units(self.t_start, TIME))
        object.__setattr__(self, "t_end", strip_units(self.t_end, TIME))
        if self.dt is not None:
            object.__setattr__(self, "dt", strip_units(self.dt, TIME))
        if self.save_times is not None:
            times = np.atleast_1d(strip_units(self.save_times, TIME))
            object.__setattr__(self, "save_times", tuple(float(t) for t in times))

        if not self.t_end > self.t_start:
            raise ValueError(
                f"t_end ({self.t_end}) must be greater than t_start ({self.t_start})"
            )
        if self.dt is not None and self.dt <= 0:
            raise ValueError(f"Step size must be positive, got {self.dt}")
        if self.rtol is not None and self.rtol <= 0:
            raise ValueError(f"rtol must be positive, got {self.rtol}")
        if self.atol is not None and self.atol < 0:
            raise ValueError(f"atol must be non-negative, got {self.atol}")
        if self.max_steps is not None and self.max_steps < 1:
            raise ValueError(f"max_steps must be at least 1, got {self.max_steps}")
        if self.save_every < 1:
            raise ValueError(f"save_every must be at least 1, got {self.save_every}")

    @property
    def t_span(self) -> Tuple[float, float]:
        return (self.t_start, self.t_end)

    @property
    def duration(self) -> float:
        return self.t_end - self.t_start
