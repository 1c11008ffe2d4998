"""
Physical-unit handling.

Inputs may be given either as plain numbers (taken to be SI already) or as
pint quantities. Everything is reduced to SI magnitudes before it reaches a
state vector; the numeric core never sees units.
"""

from typing import Union

import numpy as np
import pint

from .errors import UnitMismatchError

# Shared registry so that quantities built by users and by ``defaults``
# can be combined.
ureg = pint.UnitRegistry()
Q_ = ureg.Quantity

# Dimensions of the slots used by the parameter records and bodies
LENGTH = "[length]"
VELOCITY = "[length] / [time]"
MASS = "[mass]"
TIME = "[time]"
SPRING_CONSTANT = "[mass] / [time] ** 2"
GRAVITATIONAL_CONSTANT = "[length] ** 3 / [mass] / [time] ** 2"


def is_quantity(value) -> bool:
    """True if ``value`` carries pint units."""
    return isinstance(value, pint.Quantity)


def strip_units(value, dimension: str) -> Union[float, np.ndarray]:
    """
    Reduce a possibly unit-bearing value to its SI magnitude.

    Parameters
    ----------
    value : float, array_like or pint.Quantity
        Value to convert. Plain numbers are assumed to be SI already.
    dimension : str
        Expected pint dimensionality, e.g. ``"[length]"``

    Returns
    -------
    float or np.ndarray
        SI magnitude (float for scalars, float array otherwise)

    Raises
    ------
    UnitMismatchError
        If ``value`` is a quantity of a different dimension
    """
    if is_quantity(value):
        if not value.check(dimension):
            raise UnitMismatchError(
                f"Expected a quantity of dimension {dimension}, "
                f"got {value.dimensionality} ({value.units})",
                expected=dimension,
                got=str(value.dimensionality),
            )
        magnitude = value.to_base_units().magnitude
    else:
        magnitude = value

    arr = np.asarray(magnitude, dtype=float)
    if arr.ndim == 0:
        return float(arr)
    return arr


def strip_vector(values, dimension: str, length: int = 3) -> np.ndarray:
    """
    Strip units from a vector given either as a quantity array or as a
    sequence of (possibly unit-bearing) components.
    """
    if is_quantity(values):
        arr = np.atleast_1d(strip_units(values, dimension))
    else:
        arr = np.array([strip_units(v, dimension) for v in values], dtype=float)
    if arr.shape != (length,):
        raise ValueError(f"Expected a vector of length {length}, got shape {arr.shape}")
    return arr
