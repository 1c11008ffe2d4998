"""
Analytical and statistical references.

References are computed independently of any integrator and evaluated on
whatever time grid the caller supplies, so they can be aligned with a
Trajectory sample-for-sample.
"""

import math
from typing import Union

import numpy as np
import pandas as pd

from .config import config
from .params import OscillatorParams, OrbitalParams
from .state import StateLayout, DOFLayout

# Target of the Monte Carlo estimator
PI = math.pi


class ReferenceSeries:
    """
    Expected states aligned to a set of timestamps.

    Attributes
    ----------
    times : np.ndarray
        Timestamps (read-only)
    states : np.ndarray
        Expected states, shape (n_times, layout.size) (read-only)
    layout : StateLayout
        Layout of the expected states
    """

    def __init__(self, times, states, layout: StateLayout, source: str = "analytical"):
        times = np.array(times, dtype=float).ravel()
        states = np.array(states, dtype=float).reshape(len(times), layout.size)
        self._times = times
        self._times.flags.writeable = False
        self._states = states
        self._states.flags.writeable = False
        self._layout = layout
        self._source = source

    @property
    def times(self) -> np.ndarray:
        return self._times

    @property
    def states(self) -> np.ndarray:
        return self._states

    @property
    def layout(self) -> StateLayout:
        return self._layout

    @property
    def source(self) -> str:
        """How the series was produced ('analytical', 'taylor', ...)"""
        return self._source

    def positions(self) -> np.ndarray:
        return self._layout.positions(self._states)

    def velocities(self) -> np.ndarray:
        return self._layout.velocities(self._states)

    def to_dataframe(self) -> pd.DataFrame:
        data = {'time': self._times}
        for i, label in enumerate(self._layout.labels):
            data[label] = self._states[:, i]
        return pd.DataFrame(data)

    def __len__(self) -> int:
        return len(self._times)

    def __repr__(self):
        return (f"ReferenceSeries(source='{self._source}', n_samples={len(self)}, "
                f"layout={self._layout!r})")


class OscillatorReference:
    """
    Closed-form solution of the simple harmonic oscillator.

        x(t) = A cos(wt + phi)
        v(t) = -A w sin(wt + phi),   w = sqrt(k/m)

    All constants come from the same OscillatorParams record the dynamics use.
    Evaluable at arbitrary (scalar or array) ``t``.
    """

    def __init__(self, params: OscillatorParams):
        self._params = params
        self._layout = DOFLayout(1)

    @property
    def params(self) -> OscillatorParams:
        return self._params

    def position(self, t: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        p = self._params
        return p.amplitude * np.cos(p.angular_frequency * np.asarray(t, dtype=float) + p.phase)

    def velocity(self, t: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        p = self._params
        w = p.angular_frequency
        return -p.amplitude * w * np.sin(w * np.asarray(t, dtype=float) + p.phase)

    def state(self, t: Union[float, np.ndarray]) -> np.ndarray:
        """State ``[x, v]`` at ``t``; shape (2,) or (n, 2)."""
        return np.stack((self.position(t), self.velocity(t)), axis=-1)

    def energy(self, t: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        """Mechanical energy of the exact solution (constant 1/2 k A^2)."""
        x = self.position(t)
        v = self.velocity(t)
        return 0.5 * self._params.mass * v ** 2 + 0.5 * self._params.spring_constant * x ** 2

    def series(self, times) -> ReferenceSeries:
        """Reference states on the given time grid."""
        times = np.atleast_1d(np.asarray(times, dtype=float))
        return ReferenceSeries(times, self.state(times), self._layout)

    def __repr__(self):
        return f"OscillatorReference({self._params!r})"


# ========== ORBITAL CLOSED FORMS ==========
def circular_velocity(params: OrbitalParams, r: float) -> float:
    """Speed of a circular orbit of radius ``r`` about the central mass."""
    if r <= 0:
        raise ValueError(f"Orbit radius must be positive, got {r}")
    return math.sqrt(params.mu / r)


def circular_period(params: OrbitalParams, r: float) -> float:
    """Period 2 pi sqrt(r^3 / mu) of a circular orbit of radius ``r``."""
    if r <= 0:
        raise ValueError(f"Orbit radius must be positive, got {r}")
    return 2.0 * math.pi * math.sqrt(r ** 3 / params.mu)


# ========== STATISTICAL REFERENCE ==========
def standard_error(n: int) -> float:
    """Theoretical standard error 1/sqrt(n) of an n-sample estimate."""
    if n < 1:
        raise ValueError(f"Sample count must be at least 1, got {n}")
    return 1.0 / math.sqrt(n)


def confidence_halfwidth(n: int, z: float = None) -> float:
    """Half-width ``z / sqrt(n)`` of the confidence band (95 % by default)."""
    if z is None:
        z = config.CONFIDENCE_Z
    return z * standard_error(n)
