'''Trajectory class definition

A Trajectory is the sampled output of one integration run: strictly
increasing times, the state at each time, and how the run ended.'''

import numpy as np
import pandas as pd
from enum import Enum
from typing import Union, Optional, Tuple, Iterator, NamedTuple, TYPE_CHECKING
from .config import config
from .state import StateLayout, BodyLayout
if TYPE_CHECKING:
    from .system import System


# define an enumerated list of integrator states
class IntegratorStatus(Enum):
    INITIALIZED = 'initialized'
    STEPPING = 'stepping'
    COMPLETED = 'completed'
    FAILED = 'failed'


class FailureInfo(NamedTuple):
    """Where and why a run stopped early."""
    time: float
    state: np.ndarray
    reason: str


class Trajectory:
    """
    Ordered sequence of ``(t, state)`` samples from one integration run.

    Attributes:
        times: Sample times, strictly increasing (read-only array)
        states: States, shape (n_samples, layout.size) (read-only array)
        layout: State layout shared by every sample
        system: Owning System, if the run was started from one
        status: COMPLETED, or FAILED for a partial trajectory
        failure: FailureInfo when status is FAILED
    """
    # ========== CONSTRUCTION ==========
    def __init__(self, times, states, layout: StateLayout,
                 system: "Optional[System]" = None,
                 status: IntegratorStatus = IntegratorStatus.COMPLETED,
                 failure: Optional[FailureInfo] = None,
                 method: Optional[str] = None):
        times = np.array(times, dtype=float).ravel()
        states = np.array(states, dtype=float)
        if len(times) == 0:
            raise ValueError("Trajectory needs at least one sample")
        if states.size != len(times) * layout.size:
            raise ValueError(
                f"Got {states.size} state values for {len(times)} samples, "
                f"layout expects {layout.size} components per sample"
            )
        states = states.reshape(len(times), layout.size)
        if np.any(np.diff(times) <= 0):
            raise ValueError("Trajectory times must be strictly increasing")

        self._times = times
        self._times.flags.writeable = False
        self._states = states
        self._states.flags.writeable = False
        self._layout = layout
        self._system = system  # Immutable reference
        self._status = status
        self._failure = failure
        self._method = method

    # ========== PROPERTY ACCESS ==========
    @property
    def system(self) -> "Optional[System]":
        return self._system

    @property
    def layout(self) -> StateLayout:
        return self._layout

    @property
    def times(self) -> np.ndarray:
        return self._times

    @property
    def states(self) -> np.ndarray:
        return self._states

    @property
    def status(self) -> IntegratorStatus:
        return self._status

    @property
    def failure(self) -> Optional[FailureInfo]:
        return self._failure

    @property
    def method(self) -> Optional[str]:
        """Name of the integration scheme that produced the samples."""
        return self._method

    @property
    def is_complete(self) -> bool:
        return self._status == IntegratorStatus.COMPLETED

    @property
    def t0(self) -> float:
        return float(self._times[0])

    @property
    def tf(self) -> float:
        return float(self._times[-1])

    @property
    def duration(self) -> float:
        """Trajectory duration."""
        return self.tf - self.t0

    @property
    def initial_state(self) -> np.ndarray:
        return self._states[0]

    @property
    def final_state(self) -> np.ndarray:
        return self._states[-1]

    # ========== UTILITY METHODS ==========
    def index_of(self, t: float) -> Optional[int]:
        """Index of the sample at time ``t`` (within TIME_MATCH_ATOL), or None."""
        idx = int(np.searchsorted(self._times, t))
        for candidate in (idx - 1, idx):
            if 0 <= candidate < len(self._times) and \
                    abs(self._times[candidate] - t) <= config.TIME_MATCH_ATOL:
                return candidate
        return None

    def state_at(self, t: float) -> np.ndarray:
        """
        State at time ``t``.

        Sampled instants are returned exactly; times between samples are
        linearly interpolated.

        Parameters:
            t: Time to query (must be in [t0, tf])
        """
        self._validate_time(t)
        idx = self.index_of(t)
        if idx is not None:
            return self._states[idx].copy()
        return np.array([np.interp(t, self._times, self._states[:, i])
                         for i in range(self._layout.size)])

    def evaluate(self, times: Union[float, np.ndarray, list]) -> np.ndarray:
        """
        Evaluate at one or more times, returning raw arrays.

        Returns:
            State array of shape (size,) if times is scalar,
            Array of shape (n_times, size) if times is array-like
        """
        if np.ndim(times) == 0:
            return self.state_at(float(times))
        return np.array([self.state_at(float(t)) for t in times])

    def positions(self) -> np.ndarray:
        """Position part of every sample."""
        return self._layout.positions(self._states)

    def velocities(self) -> np.ndarray:
        """Velocity part of every sample."""
        return self._layout.velocities(self._states)

    def body(self, key: Union[int, str]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Time series of one body's (or degree of freedom's) position and velocity.

        Parameters:
            key: Index, or body name for orbital layouts

        Returns:
            (positions, velocities), shapes (n, 3) for bodies, (n,) for DOF
        """
        if isinstance(key, str):
            if not isinstance(self._layout, BodyLayout):
                raise TypeError("Bodies can only be looked up by name in orbital trajectories")
            key = self._layout.index_of(key)
        return self._layout.unpack(self._states, key)

    def energy(self) -> np.ndarray:
        """Total mechanical energy at every sample, from the states alone."""
        if self._system is None:
            raise ValueError("Trajectory has no system; energy is undefined")
        return np.asarray(self._system.energy(self._states), dtype=float)

    def to_dataframe(self) -> pd.DataFrame:
        """
        Export trajectory to pandas DataFrame.

        Returns:
            DataFrame with a 'time' column and one column per state component
        """
        data = {'time': self._times}
        for i, label in enumerate(self._layout.labels):
            data[label] = self._states[:, i]
        return pd.DataFrame(data)

    def slice(self, t_start: float, t_end: float) -> 'Trajectory':
        """
        Extract the samples in a time window as a new Trajectory.

        Raises:
            ValueError: If slice bounds are invalid or outside trajectory bounds
        """
        if t_start >= t_end:
            raise ValueError(f"t_start ({t_start}) must be < t_end ({t_end})")
        self._validate_time(t_start)
        self._validate_time(t_end)
        atol = config.TIME_MATCH_ATOL
        mask = (self._times >= t_start - atol) & (self._times <= t_end + atol)
        return Trajectory(self._times[mask], self._states[mask], self._layout,
                          system=self._system, status=self._status,
                          failure=self._failure, method=self._method)

    def _validate_time(self, t: float):
        """Validate that time is within trajectory bounds."""
        atol = config.TIME_MATCH_ATOL
        if not (self.t0 - atol <= t <= self.tf + atol):
            raise ValueError(
                f"Time {t} outside trajectory bounds [{self.t0}, {self.tf}]"
            )

    def contains_time(self, t: float) -> bool:
        """Check if time is within trajectory bounds."""
        return self.t0 <= t <= self.tf

    # ========== SPECIAL METHODS ==========
    def __len__(self) -> int:
        return len(self._times)

    def __iter__(self) -> Iterator[Tuple[float, np.ndarray]]:
        for t, state in zip(self._times, self._states):
            yield float(t), state

    def __getitem__(self, i: int) -> Tuple[float, np.ndarray]:
        return float(self._times[i]), self._states[i]

    def __repr__(self):
        return (f"Trajectory(layout={self._layout!r}, n_samples={len(self)}, "
                f"t0={self.t0}, tf={self.tf}, status='{self._status.value}')")

    def __str__(self):
        return (f"Trajectory with {len(self)} samples: "
                f"t in [{self.t0}, {self.tf}] ({self._status.value})")
