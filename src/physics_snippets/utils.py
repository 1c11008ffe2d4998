"""
Utility functions and classes for the physics_snippets package.
"""

from time import perf_counter
import warnings
from typing import Optional, Type, Union

import numpy as np

from .config import config

SeedLike = Union[None, int, np.random.SeedSequence]


class Timer:
    """
    Context manager for wall-clock timing, optionally against a budget.

    Examples
    --------
    >>> from physics_snippets.utils import Timer
    >>> with Timer("Leapfrog run"):
    ...     trajectory = system.propagate(bounds)
    Leapfrog run: 0.123456 s

    >>> with Timer(verbose=False, budget=2.0) as t:
    ...     estimate = estimate_pi(10_000_000)
    >>> t.exceeded
    False
    """
    def __init__(self, name="Operation", verbose=True, budget: Optional[float] = None):
        """
        Parameters
        ----------
        name : str, optional
            Name to display when timing completes (default: "Operation")
        verbose : bool, optional
            Whether to print timing automatically (default: True)
        budget : float, optional
            Wall-clock budget [s] that ``exceeded`` is measured against
        """
        self.name = name
        self.verbose = verbose
        self.budget = budget
        self.elapsed = None

    def __enter__(self):
        self.start = perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed = perf_counter() - self.start
        if self.verbose:
            print(f"{self.name}: {self.elapsed:.6f} s")

    @property
    def exceeded(self) -> bool:
        """True once the timed block took longer than ``budget``."""
        if self.elapsed is None:
            raise RuntimeError("Timer has not finished")
        return self.budget is not None and self.elapsed > self.budget


def as_seed_sequence(seed: SeedLike) -> np.random.SeedSequence:
    """SeedSequence for ``seed`` (config.DEFAULT_SEED when None)."""
    if isinstance(seed, np.random.SeedSequence):
        return seed
    return np.random.SeedSequence(config.DEFAULT_SEED if seed is None else seed)


def validation_error(message: str, error_class: Type[Exception] = ValueError):
    """
    Raise error or warn based on config.STRICT_VALIDATION.

    Parameters
    ----------
    message : str
        Validation error message
    error_class : Type[Exception], optional
        Exception class to raise in strict mode (default: ValueError)

    Warns
    -----
    UserWarning
        If config.STRICT_VALIDATION is False; the caller then continues
        with its fallback behavior
    """
    if config.STRICT_VALIDATION:
        raise error_class(message)
    warnings.warn(message, UserWarning, stacklevel=3)
