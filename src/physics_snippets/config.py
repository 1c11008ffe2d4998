"""
Global Configuration for physics_snippets
==========================================

This module provides package-wide configuration settings that users can modify
to control default numerical tolerances, step budgets and validation behavior.

Physical constants (masses, spring constants, step sizes of a particular run)
are never stored here; they live in the immutable parameter records of
:mod:`physics_snippets.params`.

Examples
--------
View current configuration:

>>> import physics_snippets
>>> print(physics_snippets.config)

Modify settings:

>>> physics_snippets.config.DEFAULT_RTOL = 1e-10  # Tighter adaptive steps

Reset to defaults:

>>> physics_snippets.config.reset()

Temporarily modify settings:

>>> with physics_snippets.temp_config(STRICT_VALIDATION=False):
...     # Soft validation problems only warn in this block
...     ...
"""

from dataclasses import dataclass
from contextlib import contextmanager


@dataclass
class SimConfig:
    """
    Global configuration for physics_snippets.

    Attributes
    ----------
    TIME_MATCH_ATOL : float
        Absolute tolerance used when aligning trajectory and reference
        timestamps, and when looking up a sampled instant.
        Default: 1e-9
    DEFAULT_RTOL : float
        Relative tolerance for adaptive integrators when none is given.
        Default: 1e-8
    DEFAULT_ATOL : float
        Absolute tolerance for adaptive integrators when none is given.
        Default: 1e-8
    DEFAULT_MAX_STEPS : int
        Internal step-count budget of one integration run.
        Default: 1_000_000
    DEFAULT_SEED : int
        Random seed used by Monte Carlo routines when none is given.
        Default: 42
    CONFIDENCE_Z : float
        Two-sided normal quantile for the Monte Carlo confidence band.
        Default: 1.96 (95 %)
    STRICT_VALIDATION : bool
        If True, soft validation failures raise exceptions.
        If False, they issue warnings.
        Default: True
    INSTANCE_WARNING_THRESHOLD : int
        Number of compiled Taylor reference integrators in memory before
        a warning is issued.
        Default: 10
    """

    # Timestamp matching
    TIME_MATCH_ATOL: float = 1e-9

    # Integration defaults
    DEFAULT_RTOL: float = 1e-8
    DEFAULT_ATOL: float = 1e-8
    DEFAULT_MAX_STEPS: int = 1_000_000

    # Monte Carlo defaults
    DEFAULT_SEED: int = 42
    CONFIDENCE_Z: float = 1.96

    # Validation behavior
    STRICT_VALIDATION: bool = True

    # Reference integrator bookkeeping
    INSTANCE_WARNING_THRESHOLD: int = 10

    def reset(self):
        """
        Reset all configuration values to package defaults.

        Examples
        --------
        >>> import physics_snippets
        >>> physics_snippets.config.DEFAULT_RTOL = 1e-6  # Modify
        >>> physics_snippets.config.reset()  # Back to defaults
        >>> physics_snippets.config.DEFAULT_RTOL
        1e-08
        """
        defaults = SimConfig()
        for key in self.__dataclass_fields__:
            setattr(self, key, getattr(defaults, key))

    def __repr__(self):
        """Return formatted string showing all configuration values."""
        lines = ["SimConfig:"]
        lines.append("  Time Matching:")
        lines.append(f"    TIME_MATCH_ATOL = {self.TIME_MATCH_ATOL}")
        lines.append("  Integration:")
        lines.append(f"    DEFAULT_RTOL = {self.DEFAULT_RTOL}")
        lines.append(f"    DEFAULT_ATOL = {self.DEFAULT_ATOL}")
        lines.append(f"    DEFAULT_MAX_STEPS = {self.DEFAULT_MAX_STEPS}")
        lines.append("  Monte Carlo:")
        lines.append(f"    DEFAULT_SEED = {self.DEFAULT_SEED}")
        lines.append(f"    CONFIDENCE_Z = {self.CONFIDENCE_Z}")
        lines.append("  Behavior:")
        lines.append(f"    STRICT_VALIDATION = {self.STRICT_VALIDATION}")
        lines.append(f"    INSTANCE_WARNING_THRESHOLD = {self.INSTANCE_WARNING_THRESHOLD}")
        return "\n".join(lines)


# Global configuration instance
config = SimConfig()


@contextmanager
def temp_config(**kwargs):
    """
    Context manager for temporarily modifying configuration values.

    Configuration is automatically restored when the context exits,
    even if an exception occurs.

    Parameters
    ----------
    **kwargs
        Configuration attributes to temporarily modify.

    Examples
    --------
    >>> import physics_snippets
    >>> with physics_snippets.temp_config(DEFAULT_MAX_STEPS=10):
    ...     # A tiny step budget for this block only
    ...     ...
    >>> physics_snippets.config.DEFAULT_MAX_STEPS
    1000000

    Raises
    ------
    AttributeError
        If an invalid configuration attribute is specified.
    """
    old_values = {}
    for key, value in kwargs.items():
        if not hasattr(config, key):
            raise AttributeError(
                f"SimConfig has no attribute '{key}'. "
                f"Valid attributes: {list(config.__dataclass_fields__.keys())}"
            )
        old_values[key] = getattr(config, key)
        setattr(config, key, value)

    try:
        yield config
    finally:
        for key, value in old_values.items():
            setattr(config, key, value)
