"""
Equations of motion.

All functions he        raise SingularityError(
            "Potential energy undefined for a body at the central mass (|r| == 0)"
        )e are pure: they read the state and the immutable parameter
record and return new arrays. Each system is available both as a full
first-order derivative ``f(state, params, t)`` for general integrators and as
a partitioned pair for symplectic schemes:

* ``position_rate(v, q, params, t)``  ->  dq/dt
* ``velocity_rate(v, q, params, t)``  ->  dv/dt

State layouts follow :mod:`physics_snippets.state`.
"""

from typing import Tuple

import numpy as np

from .errors import SingularityError
from .params import OscillatorParams, OrbitalParams
from .state import BodyLayout, DOFLayout


# ========== HARMONIC OSCILLATOR ==========
def oscillator_position_rate(v: np.ndarray, q: np.ndarray,
                             params: OscillatorParams, t: float) -> np.ndarray:
    """dx/dt = v"""
    return np.array(v, dtype=float, copy=True)


def oscillator_velocity_rate(v: np.ndarray, q: np.ndarray,
                             params: OscillatorParams, t: float) -> np.ndarray:
    """dv/dt = -(k/m) x"""
    return -(params.spring_constant / params.mass) * np.asarray(q, dtype=float)


def oscillator_derivative(state: np.ndarray, params: OscillatorParams,
                          t: float) -> np.ndarray:
    """
    Time derivative of an oscillator state ``[x_1..x_n, v_1..v_n]``.

    Every degree of freedom uses the same mass and spring constant.
    """
    state = np.asarray(state, dtype=float)
    layout = DOFLayout(state.shape[-1] // 2)
    q = layout.positions(state)
    v = layout.velocities(state)
    return layout.combine(oscillator_position_rate(v, q, params, t),
                          oscillator_velocity_rate(v, q, params, t))


def oscillator_energy(state: np.ndarray,
                      params: OscillatorParams) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Mechanical energy of one state or of a stack of states.

    Returns
    -------
    kinetic, potential, total
        1/2 m v^2, 1/2 k x^2 and their sum, summed over degrees of freedom.
        Scalars for a single state, arrays over the leading axis otherwise.
    """
    state = np.asarray(state, dtype=float)
    layout = DOFLayout(state.shape[-1] // 2)
    q = layout.positions(state)
    v = layout.velocities(state)
    kinetic = 0.5 * params.mass * np.sum(v ** 2, axis=-1)
    potential = 0.5 * params.spring_constant * np.sum(q ** 2, axis=-1)
    return kinetic, potential, kinetic + potential


# ========== ORBITAL MOTION ==========
def _central_acceleration(r: np.ndarray, mu: float, t: float) -> np.ndarray:
    """a_i = -mu r_i / |r_i|^3 for every body (rows of ``r``)."""
    r_mag = np.linalg.norm(r, axis=-1)
    if np.any(r_mag == 0.0):
        bad = np.flatnonzero(r_mag == 0.0).tolist()
        raise SingularityError(
            f"Body at the central mass (|r| == 0) for body index {bad} at t={t}",
            t=t,
        )
    return -mu * r / r_mag[:, None] ** 3


def _mutual_acceleration(r: np.ndarray, G: float, masses: np.ndarray,
                         t: float) -> np.ndarray:
    """Body-body attraction; ``d[i, j] = r_j - r_i``."""
    d = r[None, :, :] - r[:, None, :]
    dist = np.linalg.norm(d, axis=-1)
    np.fill_diagonal(dist, np.inf)
    if np.any(dist == 0.0):
        i, j = np.argwhere(dist == 0.0)[0]
        raise SingularityError(
            f"Bodies {i} and {j} coincide (|r_ij| == 0) at t={t}", t=t
        )
    return G * np.sum(masses[None, :, None] * d / dist[:, :, None] ** 3, axis=1)


def orbital_position_rate(v: np.ndarray, q: np.ndarray,
                          params: OrbitalParams, t: float) -> np.ndarray:
    """dr/dt = v for all bodies (flat ``[x1, y1, z1, x2, ...]``)."""
    return np.array(v, dtype=float, copy=True)


def orbital_acceleration(v: np.ndarray, q: np.ndarray,
                         params: OrbitalParams, t: float) -> np.ndarray:
    """
    Gravitational acceleration of every body, flat ``[ax1, ay1, az1, ...]``.

    The central mass is fixed at the origin. Body-body attraction is only
    included when ``params.mutual_gravity`` is set.

    Raises
    ------
    SingularityError
        If a body sits exactly on the central mass or on another body
    """
    r = np.asarray(q, dtype=float).reshape(-1, 3)
    acc = _central_acceleration(r, params.mu, t)
    if params.mutual_gravity:
        acc = acc + _mutual_acceleration(r, params.G, params.masses, t)
    return acc.ravel()


def orbital_derivative(state: np.ndarray, params: OrbitalParams,
                       t: float) -> np.ndarray:
    """
    Time derivative of a ``6 * N`` orbital state.

    The derivative has the same per-body layout as the state:
    ``[vx1, vy1, vz1, ax1, ay1, az1, vx2, ...]``.
    """
    layout = BodyLayout(params.n_bodies)
    q = layout.positions(state)
    v = layout.velocities(state)
    return layout.combine(orbital_position_rate(v, q, params, t),
                          orbital_acceleration(v, q, params, t))


def orbital_energy(state: np.ndarray, params: OrbitalParams) -> np.ndarray:
    """
    Total mechanical energy [J] of one state or of a stack of states.

    Kinetic energy plus the potential energy of each body in the field of the
    central mass, plus pairwise body-body potential when mutual gravity is
    enabled (so that the returned quantity is the one the dynamics conserve).

    Raises
    ------
    SingularityError
        If any state puts a body on the central mass or on another body
    """
    state = np.asarray(state, dtype=float)
    layout = BodyLayout(params.n_bodies)
    masses = params.masses
    lead = state.shape[:-1]
    r = layout.positions(state).reshape(lead + (params.n_bodies, 3))
    v = layout.velocities(state).reshape(lead + (params.n_bodies, 3))

    r_mag = np.linalg.norm(r, axis=-1)
    if np.any(r_mag == 0.0):
        raise SingularityError("Potential energy undefined for a body at the central mass (|r| == 0)")

    kinetic = 0.5 * np.sum(masses * np.sum(v ** 2, axis=-1), axis=-1)
    potential = -np.sum(params.mu * masses / r_mag, axis=-1)

    if params.mutual_gravity:
        for i in range(params.n_bodies):
            for j in range(i + 1, params.n_bodies):
                r_ij = np.linalg.norm(r[..., j, :] - r[..., i, :], axis=-1)
                if np.any(r_ij == 0.0):
                    raise SingularityError(
                        f"Potential energy undefined for coincident bodies {i} and {j} (|r_ij| == 0)"
                    )
                potential = potential - params.G * masses[i] * masses[j] / r_ij

    return kinetic + potential
