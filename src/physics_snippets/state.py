"""
State vector model.

Physical quantities are packed into flat float64 vectors in one of two fixed
layouts:

* :class:`DOFLayout` -- ``[q_1 .. q_n, v_1 .. v_n]`` for oscillator-type
  systems with ``n`` degrees of freedom. The two halves are the partitioned
  position and velocity vectors used by symplectic schemes.
* :class:`BodyLayout` -- per-body 6-tuples ``(x, y, z, vx, vy, vz)``
  concatenated in body order, length ``6 * N``.

Packing is order preserving and bit-exact: ``unpack(pack(x), i)`` recovers
exactly what was put in for body/DOF ``i``.
"""

import numpy as np
from typing import Optional, Sequence, Tuple, Union, List

from .units import strip_units, strip_vector, LENGTH, VELOCITY, MASS


class Body:
    """
    A point mass with initial conditions, used to seed orbital states.

    Parameters
    ----------
    name : str
        Body identifier
    mass : float or pint.Quantity
        Body mass [kg]
    position : array_like or pint.Quantity
        Initial position [m], 3 components
    velocity : array_like or pint.Quantity
        Initial velocity [m/s], 3 components

    Raises
    ------
    UnitMismatchError
        If any slot receives a quantity of the wrong dimension
    ValueError
        If the mass is not positive or a vector is not 3-D
    """

    def __init__(self, name: str, mass, position, velocity):
        mass = strip_units(mass, MASS)
        if mass <= 0:
            raise ValueError(f"Mass must be positive, got {mass}")

        position = strip_vector(position, LENGTH)
        velocity = strip_vector(velocity, VELOCITY)
        if not (np.all(np.isfinite(position)) and np.all(np.isfinite(velocity))):
            raise ValueError(f"Initial conditions of '{name}' contain NaN or Inf")

        # Store as immutable
        self._name = str(name)
        self._mass = float(mass)
        self._position = position.copy()
        self._position.flags.writeable = False
        self._velocity = velocity.copy()
        self._velocity.flags.writeable = False

    @property
    def name(self) -> str:
        """Body identifier"""
        return self._name

    @property
    def mass(self) -> float:
        """Body mass [kg]"""
        return self._mass

    @property
    def position(self) -> np.ndarray:
        """Initial position [m] (read-only)"""
        return self._position

    @property
    def velocity(self) -> np.ndarray:
        """Initial velocity [m/s] (read-only)"""
        return self._velocity

    @property
    def radius(self) -> float:
        """Initial distance from the origin [m]"""
        return float(np.linalg.norm(self._position))

    def __repr__(self) -> str:
        return (f"Body('{self.name}', mass={self.mass:.4e} kg, "
                f"|r|={self.radius:.4e} m)")

    def __eq__(self, other) -> bool:
        if not isinstance(other, Body):
            return NotImplemented
        return (self.name == other.name and
                self.mass == other.mass and
                np.array_equal(self.position, other.position) and
                np.array_equal(self.velocity, other.velocity))

    def __hash__(self) -> int:
        return hash((self.name, self.mass,
                     tuple(self.position), tuple(self.velocity)))


class StateLayout:
    """Common interface of the fixed state-vector layouts."""

    size: int

    def _check(self, state) -> np.ndarray:
        state = np.asarray(state, dtype=float)
        if state.shape[-1] != self.size:
            raise ValueError(
                f"State vector length {state.shape[-1]} does not match "
                f"layout size {self.size}"
            )
        return state

    def positions(self, state) -> np.ndarray:
        raise NotImplementedError

    def velocities(self, state) -> np.ndarray:
        raise NotImplementedError

    def combine(self, positions, velocities) -> np.ndarray:
        raise NotImplementedError

    def unpack(self, state, index: int) -> Tuple[np.ndarray, np.ndarray]:
        raise NotImplementedError

    @property
    def labels(self) -> List[str]:
        raise NotImplementedError

    def __eq__(self, other) -> bool:
        return type(self) is type(other) and self.size == other.size

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.size))


class DOFLayout(StateLayout):
    """
    ``[q_1 .. q_n, v_1 .. v_n]`` layout for ``n`` one-dimensional degrees
    of freedom.
    """

    def __init__(self, n_dof: int, names: Optional[Sequence[str]] = None):
        if n_dof < 1:
            raise ValueError(f"n_dof must be at least 1, got {n_dof}")
        if names is not None and len(names) != n_dof:
            raise ValueError(f"Expected {n_dof} names, got {len(names)}")
        self.n_dof = int(n_dof)
        self.size = 2 * self.n_dof
        self.names = tuple(names) if names is not None else tuple(
            f"q{i}" for i in range(self.n_dof)) if n_dof > 1 else ("x",)

    def positions(self, state) -> np.ndarray:
        state = self._check(state)
        return state[..., :self.n_dof]

    def velocities(self, state) -> np.ndarray:
        state = self._check(state)
        return state[..., self.n_dof:]

    def combine(self, positions, velocities) -> np.ndarray:
        q = np.asarray(positions, dtype=float)
        v = np.asarray(velocities, dtype=float)
        return np.concatenate((q, v), axis=-1)

    def pack(self, positions, velocities) -> np.ndarray:
        """Pack positions [m] and velocities [m/s] (units stripped)."""
        q = np.atleast_1d(strip_units(positions, LENGTH))
        v = np.atleast_1d(strip_units(velocities, VELOCITY))
        if q.shape != (self.n_dof,) or v.shape != (self.n_dof,):
            raise ValueError(
                f"Expected {self.n_dof} positions and velocities, "
                f"got shapes {q.shape} and {v.shape}"
            )
        return self.combine(q, v)

    def unpack(self, state, index: int) -> Tuple[float, float]:
        state = self._check(state)
        if not 0 <= index < self.n_dof:
            raise IndexError(f"DOF index {index} out of range for {self.n_dof} DOF")
        return state[..., index], state[..., self.n_dof + index]

    @property
    def labels(self) -> List[str]:
        return list(self.names) + [f"v_{name}" for name in self.names]

    def __repr__(self) -> str:
        return f"DOFLayout(n_dof={self.n_dof})"


class BodyLayout(StateLayout):
    """Per-body ``(x, y, z, vx, vy, vz)`` layout for ``N`` bodies."""

    _COMPONENTS = ("x", "y", "z", "vx", "vy", "vz")

    def __init__(self, n_bodies: int, names: Optional[Sequence[str]] = None):
        if n_bodies < 1:
            raise ValueError(f"n_bodies must be at least 1, got {n_bodies}")
        if names is not None and len(names) != n_bodies:
            raise ValueError(f"Expected {n_bodies} names, got {len(names)}")
        self.n_bodies = int(n_bodies)
        self.size = 6 * self.n_bodies
        self.names = tuple(names) if names is not None else tuple(
            f"body{i}" for i in range(self.n_bodies))

    def _blocks(self, state) -> np.ndarray:
        state = self._check(state)
        return state.reshape(state.shape[:-1] + (self.n_bodies, 6))

    def positions(self, state) -> np.ndarray:
        blocks = self._blocks(state)
        return blocks[..., :3].reshape(blocks.shape[:-2] + (3 * self.n_bodies,))

    def velocities(self, state) -> np.ndarray:
        blocks = self._blocks(state)
        return blocks[..., 3:].reshape(blocks.shape[:-2] + (3 * self.n_bodies,))

    def combine(self, positions, velocities) -> np.ndarray:
        q = np.asarray(positions, dtype=float)
        v = np.asarray(velocities, dtype=float)
        lead = q.shape[:-1]
        q = q.reshape(lead + (self.n_bodies, 3))
        v = v.reshape(lead + (self.n_bodies, 3))
        return np.concatenate((q, v), axis=-1).reshape(lead + (self.size,))

    def pack(self, bodies: Sequence[Body]) -> np.ndarray:
        """Pack bodies in the given order."""
        if len(bodies) != self.n_bodies:
            raise ValueError(f"Expected {self.n_bodies} bodies, got {len(bodies)}")
        state = np.empty(self.size, dtype=float)
        for i, body in enumerate(bodies):
            state[6 * i:6 * i + 3] = body.position
            state[6 * i + 3:6 * i + 6] = body.velocity
        return state

    def unpack(self, state, index: int) -> Tuple[np.ndarray, np.ndarray]:
        blocks = self._blocks(state)
        if not 0 <= index < self.n_bodies:
            raise IndexError(f"Body index {index} out of range for {self.n_bodies} bodies")
        return blocks[..., index, :3], blocks[..., index, 3:]

    def index_of(self, name: str) -> int:
        """Index of the body called ``name``."""
        try:
            return self.names.index(name)
        except ValueError:
            raise KeyError(f"No body named '{name}'. Bodies: {list(self.names)}")

    def position_indices(self, index: int) -> Tuple[int, int, int]:
        """Flat state indices of body ``index``'s position components."""
        return (6 * index, 6 * index + 1, 6 * index + 2)

    @property
    def labels(self) -> List[str]:
        return [f"{name}_{c}" for name in self.names for c in self._COMPONENTS]

    def __repr__(self) -> str:
        return f"BodyLayout(n_bodies={self.n_bodies})"


def layout_for(initial) -> StateLayout:
    """Infer the layout matching the initial conditions accepted by :func:`pack`."""
    if len(initial) > 0 and all(isinstance(b, Body) for b in initial):
        return BodyLayout(len(initial), names=[b.name for b in initial])
    positions, velocities = initial
    n_dof = np.atleast_1d(strip_units(positions, LENGTH)).size
    return DOFLayout(n_dof)


def pack(initial: Union[Sequence[Body], Tuple]) -> np.ndarray:
    """
    Pack initial conditions into a flat state vector.

    Parameters
    ----------
    initial : sequence of Body, or (positions, velocities)
        Bodies are packed in order using :class:`BodyLayout`; a
        ``(positions, velocities)`` pair is packed with :class:`DOFLayout`.

    Returns
    -------
    np.ndarray
        Flat SI state vector
    """
    layout = layout_for(initial)
    if isinstance(layout, BodyLayout):
        return layout.pack(initial)
    positions, velocities = initial
    return layout.pack(positions, velocities)


def unpack(state, index: int, layout: StateLayout):
    """Recover ``(position, velocity)`` of body/DOF ``index`` from ``state``."""
    return layout.unpack(state, index)
