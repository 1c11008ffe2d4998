"""
Default Bodies and System Configurations
========================================

Predefined inner-planet bodies, the standard oscillator and factory functions
for commonly-used systems. The factories create System objects on demand,
avoiding the cost of compiling a reference integrator until needed.

Examples
--------
>>> from physics_snippets import harmonic_oscillator, inner_solar_system
>>> osc = harmonic_oscillator()
>>> planets = inner_solar_system()  # Reference compiled lazily
"""
import math

import numpy as np

from .params import OscillatorParams, OrbitalParams, SimulationBounds
from .state import Body
from .system import OscillatorSystem, OrbitalSystem
from .units import ureg, Q_

"""
Physical constants (SI)
"""
G = 6.67430e-11 * ureg("m**3 / kg / s**2")
M_SUN = 1.989e30 * ureg.kilogram
AU = 149_597_870_700.0 * ureg.meter
DAY = 86_400.0  # [s]

# Mars sidereal year used for the period check [s]
MARS_YEAR = 687.0 * DAY

"""
Predefined inner planets, starting on the +x axis and moving along +y.
Mars starts on an exactly circular orbit, sqrt(G M_sun / r).
"""
MARS_DISTANCE = 1.524 * AU

MERCURY = Body(
    "Mercury",
    mass=3.285e23 * ureg.kilogram,
    position=[0.387 * AU, 0.0 * AU, 0.0 * AU],
    velocity=Q_(np.array([0.0, 47.36e3, 0.0]), "m/s"),
)

VENUS = Body(
    "Venus",
    mass=4.867e24 * ureg.kilogram,
    position=[0.723 * AU, 0.0 * AU, 0.0 * AU],
    velocity=Q_(np.array([0.0, 35.02e3, 0.0]), "m/s"),
)

EARTH = Body(
    "Earth",
    mass=5.972e24 * ureg.kilogram,
    position=[1.0 * AU, 0.0 * AU, 0.0 * AU],
    velocity=Q_(np.array([0.0, 29.78e3, 0.0]), "m/s"),
)

MARS = Body(
    "Mars",
    mass=6.39e23 * ureg.kilogram,
    position=[MARS_DISTANCE, 0.0 * AU, 0.0 * AU],
    velocity=[0.0 * ureg("m/s"),
              np.sqrt(G * M_SUN / MARS_DISTANCE).to("m/s"),
              0.0 * ureg("m/s")],
)

INNER_PLANETS = (MERCURY, VENUS, EARTH, MARS)

"""
Standard oscillator: m = k = A = 1, phi = 0, so omega = 1 and E = 1/2
"""
DEFAULT_OSCILLATOR = OscillatorParams(mass=1.0, spring_constant=1.0,
                                      amplitude=1.0, phase=0.0)


def harmonic_oscillator(params: OscillatorParams = None) -> OscillatorSystem:
    """
    Simple harmonic oscillator (default: unit mass, spring and amplitude).

    Returns
    -------
    OscillatorSystem
    """
    return OscillatorSystem(DEFAULT_OSCILLATOR if params is None else params)


def inner_solar_system(mutual_gravity: bool = False,
                       compile: bool = False) -> OrbitalSystem:
    """
    Mercury, Venus, Earth and Mars orbiting a fixed Sun.

    Parameters
    ----------
    mutual_gravity : bool
        Include planet-planet attraction (default False: each planet
        feels only the Sun)
    compile : bool
        If True, compile the reference integrator immediately

    Returns
    -------
    OrbitalSystem
    """
    params = OrbitalParams(bodies=INNER_PLANETS, G=G, central_mass=M_SUN,
                           mutual_gravity=mutual_gravity)
    return OrbitalSystem(params, compile=compile)


def oscillator_bounds(t_end: float = 10.0, dt: float = 1e-3,
                      save_every: int = 1) -> SimulationBounds:
    """Fixed-step bounds over [0, t_end] for the oscillator."""
    return SimulationBounds(t_start=0.0, t_end=t_end, dt=dt, save_every=save_every)


def mars_year_bounds(days: int = 687, rtol: float = 1e-9,
                     atol: float = 1.0) -> SimulationBounds:
    """
    Adaptive bounds over ``days`` days, reporting the state once per day.

    ``atol`` is in SI units of the state (metres and m/s), so the default of
    1 is negligible next to orbital distances.
    """
    t_end = days * DAY
    save_times = np.arange(int(math.floor(days)) + 1) * DAY
    if save_times[-1] < t_end:
        save_times = np.append(save_times, t_end)
    return SimulationBounds(t_start=0.0, t_end=t_end, rtol=rtol, atol=atol,
                            save_times=save_times)
