"""
Monte Carlo estimation of pi.

Points are drawn uniformly in the square [-1, 1] x [-1, 1]; the fraction
falling inside the inscribed unit circle tends to pi/4. The statistical
error decreases as 1/sqrt(n).

Sampling is deterministic for a given seed. Large draws are split into
batches that each get their own child stream of a
:class:`numpy.random.SeedSequence`; batch counts are combined by summation,
so the result does not depend on the order in which batches are evaluated.
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .reference import PI, standard_error, confidence_halfwidth
from .utils import Timer, SeedLike, as_seed_sequence

# Geometry of the sampling region
SQUARE_SIZE = 2.0
CIRCLE_RADIUS = 1.0

# Default number of points drawn per batch
DEFAULT_BATCH_SIZE = 1_000_000

def generate_points(n: int, rng: Optional[np.random.Generator] = None,
                    seed: SeedLike = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Generate n random points uniformly in the 2x2 square centered at the origin.

    Parameters
    ----------
    n : int
        Number of points
    rng : numpy.random.Generator, optional
        Generator to draw from; built from ``seed`` when omitted
    seed : int or SeedSequence, optional
        Seed used when ``rng`` is not given (config.DEFAULT_SEED if None)

    Returns
    -------
    x, y : np.ndarray
        Coordinates in [-1, 1]
    """
    n = int(n)
    if n < 0:
        raise ValueError(f"Number of points must be non-negative, got {n}")
    if rng is None:
        rng = np.random.default_rng(as_seed_sequence(seed))
    x = rng.random(n) * SQUARE_SIZE - SQUARE_SIZE / 2
    y = rng.random(n) * SQUARE_SIZE - SQUARE_SIZE / 2
    return x, y


def is_inside_circle(x, y) -> Union[bool, np.ndarray]:
    """
    True where (x, y) lies inside or on the unit circle, ``x^2 + y^2 <= 1``.

    Integers and floats (scalars or arrays) are accepted alike; inputs are
    coerced to float before the test.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    inside = x * x + y * y <= CIRCLE_RADIUS ** 2
    if inside.ndim == 0:
        return bool(inside)
    return inside


def count_inside(n: int, seed: SeedLike = None) -> int:
    """Number of points out of ``n`` drawn from one stream that land inside."""
    x, y = generate_points(n, seed=seed)
    return int(np.count_nonzero(is_inside_circle(x, y)))


@dataclass(frozen=True)
class PiEstimate:
    """
    Result of one Monte Carlo estimate.

    Attributes
    ----------
    n : int
        Number of points
    inside : int
        Points inside the unit circle
    estimate : float
        4 * inside / n
    """
    n: int
    inside: int
    estimate: float

    @property
    def abs_error(self) -> float:
        return abs(self.estimate - PI)

    @property
    def standard_error(self) -> float:
        """Theoretical 1/sqrt(n) (a formula, not sampled)."""
        return standard_error(self.n)

    @property
    def confidence_interval(self) -> float:
        """Half-width of the 95 % confidence band."""
        return confidence_halfwidth(self.n)


def estimate_pi(n: int, seed: SeedLike = None,
                batch_size: Optional[int] = None) -> PiEstimate:
    """
    Estimate pi from ``n`` random points: pi ~ 4 * (inside / n).

    Parameters
    ----------
    n : int
        Number of points, at least 1
    seed : int or SeedSequence, optional
        Root seed (config.DEFAULT_SEED if None)
    batch_size : int, optional
        Points per batch (DEFAULT_BATCH_SIZE if None). Each batch draws from
        an independent child stream; for a fixed seed and batch size the
        estimate is reproducible.

    Returns
    -------
    PiEstimate
    """
    n = int(n)
    if n < 1:
        raise ValueError(f"Number of points must be at least 1, got {n}")
    batch_size = DEFAULT_BATCH_SIZE if batch_size is None else int(batch_size)
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    sizes = [batch_size] * (n // batch_size)
    if n % batch_size:
        sizes.append(n % batch_size)
    streams = as_seed_sequence(seed).spawn(len(sizes))

    inside = sum(count_inside(size, stream) for size, stream in zip(sizes, streams))
    return PiEstimate(n=n, inside=inside, estimate=4.0 * inside / n)


def calculate_statistics(n: int) -> Tuple[float, float]:
    """
    Standard error and 95 % confidence half-width for an n-point estimate.

    Returns
    -------
    (standard_error, confidence_interval)
        1/sqrt(n) and 1.96/sqrt(n)
    """
    return standard_error(n), confidence_halfwidth(n)


# ========== CONVERGENCE STUDY ==========
@dataclass(frozen=True)
class ConvergenceRecord:
    """One row of the convergence table."""
    n: int
    estimate: float
    abs_error: float
    elapsed_seconds: float

    @property
    def standard_error(self) -> float:
        return standard_error(self.n)


@dataclass(frozen=True)
class ConvergenceResult:
    """
    Outcome of a budget-bounded convergence study.

    Attributes
    ----------
    records : tuple of ConvergenceRecord
        One record per sample size actually run, in increasing n
    stopped_at : int
        Sample size of the last record
    budget_exceeded : bool
        True if the loop stopped because one size took longer than
        ``time_budget``; False if it ran through every planned size
    time_budget : float
        Per-size wall-clock budget [s]
    planned_sizes : tuple of int
        Full escalation schedule
    """
    records: Tuple[ConvergenceRecord, ...]
    stopped_at: int
    budget_exceeded: bool
    time_budget: float
    planned_sizes: Tuple[int, ...] = field(default=())

    @property
    def sizes(self) -> np.ndarray:
        return np.array([r.n for r in self.records], dtype=int)

    @property
    def errors(self) -> np.ndarray:
        return np.array([r.abs_error for r in self.records], dtype=float)

    @property
    def elapsed(self) -> np.ndarray:
        return np.array([r.elapsed_seconds for r in self.records], dtype=float)

    @property
    def total_time(self) -> float:
        return float(np.sum(self.elapsed))

    def scaled_errors(self) -> np.ndarray:
        """error(n) * sqrt(n); roughly constant when error ~ 1/sqrt(n)."""
        return self.errors * np.sqrt(self.sizes)

    def slope(self) -> float:
        """Least-squares slope of log10(error) against log10(n) (ideal -0.5)."""
        if len(self.records) < 2:
            raise ValueError("At least two sample sizes are needed to fit a slope")
        errors = self.errors
        if np.any(errors <= 0):
            raise ValueError("Cannot fit a log-log slope to zero errors")
        return float(np.polyfit(np.log10(self.sizes), np.log10(errors), 1)[0])

    def to_dataframe(self) -> pd.DataFrame:
        """Columns n, estimate, abs_error, elapsed_seconds, standard_error."""
        return pd.DataFrame({
            'n': self.sizes,
            'estimate': [r.estimate for r in self.records],
            'abs_error': self.errors,
            'elapsed_seconds': self.elapsed,
            'standard_error': [r.standard_error for r in self.records],
        })

    def __len__(self) -> int:
        return len(self.records)


def convergence_sizes(start_points: int, max_points: int,
                      step: float = 0.5) -> List[int]:
    """
    Sample sizes spaced ``step`` decades apart from ``start_points`` up to
    ``max_points`` (half-powers of ten by default).
    """
    if start_points < 1:
        raise ValueError(f"start_points must be at least 1, got {start_points}")
    if max_points < start_points:
        raise ValueError(
            f"max_points ({max_points}) must be >= start_points ({start_points})"
        )
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")
    start_power = math.log10(start_points)
    max_power = math.log10(max_points)
    n_sizes = int(math.floor((max_power - start_power) / step + 1e-9)) + 1
    sizes = []
    for k in range(n_sizes):
        size = int(round(10 ** (start_power + k * step)))
        if not sizes or size > sizes[-1]:
            sizes.append(size)
    return sizes


def run_convergence(start_points: int = 1_000, max_points: int = 100_000_000,
                    time_budget: float = 120.0, seed: SeedLike = None,
                    step: float = 0.5, repeats: int = 1,
                    batch_size: Optional[int] = None,
                    verbose: bool = False) -> ConvergenceResult:
    """
    Estimate pi for increasing sample sizes until one size exceeds the budget.

    The sizes escalate by ``step`` decades. Each size is timed; the first time
    the measured cost of a size exceeds ``time_budget`` the loop stops and the
    result records that size. Sizes already completed are kept, so the result
    is a valid (partial) table either way.

    Parameters
    ----------
    start_points, max_points : int
        First and largest sample size
    time_budget : float
        Per-size wall-clock budget [s]
    seed : int or SeedSequence, optional
        Root seed; every (size, repeat) pair gets its own child stream
    step : float
        Spacing of sizes in decades
    repeats : int
        Independent estimates per size; the recorded error is their RMS
        error and the recorded estimate their mean
    batch_size : int, optional
        Forwarded to :func:`estimate_pi`
    verbose : bool
        Print one line per size

    Returns
    -------
    ConvergenceResult
    """
    if time_budget < 0:
        raise ValueError(f"time_budget must be non-negative, got {time_budget}")
    if repeats < 1:
        raise ValueError(f"repeats must be at least 1, got {repeats}")
    sizes = convergence_sizes(start_points, max_points, step)
    size_streams = as_seed_sequence(seed).spawn(len(sizes))

    records = []
    budget_exceeded = False
    for n, stream in zip(sizes, size_streams):
        if verbose:
            print(f"Processing n = {n} points...")
        with Timer(verbose=False, budget=time_budget) as timer:
            estimates = np.array([
                estimate_pi(n, seed=child, batch_size=batch_size).estimate
                for child in stream.spawn(repeats)
            ])
        abs_error = float(np.sqrt(np.mean((estimates - PI) ** 2)))
        record = ConvergenceRecord(n=n, estimate=float(np.mean(estimates)),
                                   abs_error=abs_error,
                                   elapsed_seconds=float(timer.elapsed))
        records.append(record)
        if verbose:
            print(f"n = {n}: pi ~ {record.estimate:.10f}, error = "
                  f"{record.abs_error:.10f}, time = {record.elapsed_seconds:.2f} seconds")

        if timer.exceeded:
            budget_exceeded = True
            if verbose:
                print(f"Time limit ({time_budget} seconds) exceeded at n = {n}")
            break

    return ConvergenceResult(records=tuple(records), stopped_at=records[-1].n,
                             budget_exceeded=budget_exceeded,
                             time_budget=float(time_budget),
                             planned_sizes=tuple(sizes))
