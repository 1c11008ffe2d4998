"""
Validation harness.

``validate`` compares a Trajectory with a ReferenceSeries and checks the
trajectory's own invariants. Every check yields a :class:`CheckResult`
holding the measured quantity and a pass/fail verdict; a breached threshold
is data in the :class:`Report`, never an exception, so callers always get the
measured value.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import config
from .montecarlo import PiEstimate, ConvergenceResult
from .reference import ReferenceSeries, standard_error, confidence_halfwidth
from .trajectory import Trajectory


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one check: the measured value and whether it passed."""
    measured: float
    passed: bool
    threshold: Optional[float] = None

    def __iter__(self):
        # Unpacks as (measured, passed)
        yield self.measured
        yield self.passed


class Report(Mapping):
    """
    Read-only mapping from check name to :class:`CheckResult`.

    Entries keep the order in which the checks were run.
    """

    def __init__(self, results: Mapping[str, CheckResult]):
        self._results: Dict[str, CheckResult] = dict(results)

    def __getitem__(self, name: str) -> CheckResult:
        return self._results[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    @property
    def passed(self) -> bool:
        """True if every check passed (vacuously true for an empty report)."""
        return all(result.passed for result in self._results.values())

    @property
    def failures(self) -> Tuple[str, ...]:
        """Names of the checks that failed."""
        return tuple(name for name, result in self._results.items() if not result.passed)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per check with columns check, measured, threshold, passed."""
        return pd.DataFrame({
            'check': list(self._results),
            'measured': [r.measured for r in self._results.values()],
            'threshold': [r.threshold for r in self._results.values()],
            'passed': [r.passed for r in self._results.values()],
        })

    def __repr__(self):
        lines = [f"Report({'PASSED' if self.passed else 'FAILED'}):"]
        for name, result in self._results.items():
            verdict = "ok" if result.passed else "FAIL"
            threshold = "" if result.threshold is None else f" (threshold {result.threshold:.3e})"
            lines.append(f"  {name} = {result.measured:.6e}{threshold} [{verdict}]")
        return "\n".join(lines)


@dataclass(frozen=True)
class ValidationPolicy:
    """
    Thresholds for :func:`validate`. Only the entries that are set are checked.

    Attributes
    ----------
    max_abs_error : float, optional
        Bound on max |numerical - reference| over every state component
    position_error, velocity_error : float, optional
        Same, restricted to position or velocity components
    energy_drift : float, optional
        Bound on max |E(t) - E(t0)| [J], computed from the trajectory alone
    relative_energy_drift : float, optional
        Bound on max |E(t) - E(t0)| / |E(t0)|
    period_check : float, optional
        Tolerance on the relative return distance after one period:
        |s(t0 + period) - s(t0)| / |s(t0)|
    period : float, optional
        Period used by ``period_check`` (required when it is set)
    period_indices : sequence of int, optional
        State components compared by ``period_check`` (all when None)
    """
    max_abs_error: Optional[float] = None
    position_error: Optional[float] = None
    velocity_error: Optional[float] = None
    energy_drift: Optional[float] = None
    relative_energy_drift: Optional[float] = None
    period_check: Optional[float] = None
    period: Optional[float] = None
    period_indices: Optional[Tuple[int, ...]] = None

    def __post_init__(self):
        for name in ("max_abs_error", "position_error", "velocity_error",
                     "energy_drift", "relative_energy_drift", "period_check"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")
        if self.period_check is not None:
            if self.period is None:
                raise ValueError("period_check requires a period")
            if self.period <= 0:
                raise ValueError(f"period must be positive, got {self.period}")
        if self.period_indices is not None:
            object.__setattr__(self, "period_indices",
                               tuple(int(i) for i in self.period_indices))

    @property
    def needs_reference(self) -> bool:
        return any(v is not None for v in
                   (self.max_abs_error, self.position_error, self.velocity_error))


def _result(measured: float, threshold: float) -> CheckResult:
    measured = float(measured)
    return CheckResult(measured=measured,
                       passed=bool(np.isfinite(measured) and measured < threshold),
                       threshold=float(threshold))


def _check_alignment(trajectory: Trajectory, reference: ReferenceSeries):
    if len(trajectory) != len(reference):
        raise ValueError(
            f"Trajectory has {len(trajectory)} samples but reference has {len(reference)}"
        )
    if not np.allclose(trajectory.times, reference.times, rtol=0.0,
                       atol=config.TIME_MATCH_ATOL):
        raise ValueError("Trajectory and reference timestamps are not aligned")
    if trajectory.layout != reference.layout:
        raise ValueError(
            f"Layouts differ: {trajectory.layout!r} vs {reference.layout!r}"
        )


def max_abs_error(trajectory: Trajectory, reference: ReferenceSeries) -> float:
    """max |numerical - reference| over all samples and components."""
    _check_alignment(trajectory, reference)
    return float(np.max(np.abs(trajectory.states - reference.states)))


def energy_drift(trajectory: Trajectory, relative: bool = False) -> float:
    """
    max |E(t) - E(t0)| from the trajectory's own states.

    The reference is deliberately not used: its energy is conserved by
    construction and would hide integrator error.
    """
    energies = trajectory.energy()
    drift = np.max(np.abs(energies - energies[0]))
    if relative:
        if energies[0] == 0:
            raise ValueError("Relative energy drift is undefined for zero initial energy")
        drift = drift / abs(energies[0])
    return float(drift)


def period_return(trajectory: Trajectory, period: float,
                  indices: Optional[Sequence[int]] = None) -> float:
    """
    Relative distance |s(t0 + period) - s(t0)| / |s(t0)| over the selected
    components (absolute distance when |s(t0)| is zero).
    """
    t_return = trajectory.t0 + period
    if t_return > trajectory.tf + config.TIME_MATCH_ATOL:
        raise ValueError(
            f"Trajectory ends at {trajectory.tf}, before one period ({t_return})"
        )
    start = trajectory.initial_state
    end = trajectory.state_at(min(t_return, trajectory.tf))
    if indices is not None:
        idx = list(indices)
        start, end = start[idx], end[idx]
    scale = np.linalg.norm(start)
    distance = np.linalg.norm(end - start)
    return float(distance / scale) if scale > 0 else float(distance)


def validate(trajectory: Trajectory, reference: Optional[ReferenceSeries],
             policy: ValidationPolicy) -> Report:
    """
    Run every check enabled in ``policy``.

    Parameters
    ----------
    trajectory : Trajectory
        Numerical solution
    reference : ReferenceSeries, optional
        Expected states on the same timestamps; required only by the
        error checks
    policy : ValidationPolicy
        Which checks to run and their thresholds

    Returns
    -------
    Report
        Measured value and verdict per enabled check

    Raises
    ------
    ValueError
        If an error check is requested without an aligned reference
    """
    results: Dict[str, CheckResult] = {}

    if policy.needs_reference:
        if reference is None:
            raise ValueError("Error checks require a reference series")
        _check_alignment(trajectory, reference)
        diff = np.abs(trajectory.states - reference.states)
        layout = trajectory.layout
        if policy.max_abs_error is not None:
            results["max_abs_error"] = _result(np.max(diff), policy.max_abs_error)
        if policy.position_error is not None:
            results["position_error"] = _result(np.max(layout.positions(diff)),
                                                policy.position_error)
        if policy.velocity_error is not None:
            results["velocity_error"] = _result(np.max(layout.velocities(diff)),
                                                policy.velocity_error)

    if policy.energy_drift is not None:
        results["energy_drift"] = _result(energy_drift(trajectory), policy.energy_drift)
    if policy.relative_energy_drift is not None:
        results["relative_energy_drift"] = _result(
            energy_drift(trajectory, relative=True), policy.relative_energy_drift)

    if policy.period_check is not None:
        results["period_check"] = _result(
            period_return(trajectory, policy.period, policy.period_indices),
            policy.period_check)

    return Report(results)


# ========== MONTE CARLO CHECKS ==========
def validate_estimate(estimate: PiEstimate, abs_error_threshold: float = 0.1,
                      z: Optional[float] = None) -> Report:
    """
    Check a pi estimate against its target and its statistical reference.

    Entries
    -------
    abs_error
        |estimate - pi| against ``abs_error_threshold``
    standard_error
        The formula 1/sqrt(n); passes when it is positive and finite
    confidence_band
        |estimate - pi| against the band half-width z/sqrt(n)
    """
    halfwidth = confidence_halfwidth(estimate.n, z)
    se = standard_error(estimate.n)
    return Report({
        "abs_error": _result(estimate.abs_error, abs_error_threshold),
        "standard_error": CheckResult(measured=se, passed=bool(np.isfinite(se) and se > 0)),
        "confidence_band": CheckResult(measured=estimate.abs_error,
                                       passed=bool(estimate.abs_error <= halfwidth),
                                       threshold=halfwidth),
    })


def check_convergence(result: ConvergenceResult,
                      bounds: Tuple[float, float] = (0.1, 10.0),
                      min_decades: float = 3.0) -> Report:
    """
    Check that error(n) decreases like 1/sqrt(n).

    Entries
    -------
    scaled_error_min, scaled_error_max
        Extremes of error(n) * sqrt(n), which must stay inside ``bounds``
    decades
        log10(n_max / n_min) covered, at least ``min_decades``
    """
    low, high = bounds
    if not 0 < low < high:
        raise ValueError(f"Invalid bounds {bounds}")
    scaled = result.scaled_errors()
    sizes = result.sizes
    decades = float(np.log10(sizes[-1] / sizes[0])) if len(sizes) else 0.0
    return Report({
        "scaled_error_min": CheckResult(measured=float(np.min(scaled)),
                                        passed=bool(np.min(scaled) >= low),
                                        threshold=low),
        "scaled_error_max": CheckResult(measured=float(np.max(scaled)),
                                        passed=bool(np.max(scaled) <= high),
                                        threshold=high),
        "decades": CheckResult(measured=decades,
                               passed=bool(decades >= min_decades - 1e-9),
                               threshold=min_decades),
    })
