"""
physics_snippets: Deterministic Simulation and Validation Harness

A Python package for integrating small Hamiltonian systems (a harmonic
oscillator and planets orbiting a fixed Sun) with symplectic and adaptive
Runge-Kutta schemes, and for validating the results against analytical,
Taylor-series and statistical references, including a budget-bounded
Monte Carlo estimate of pi.
"""

# Configuration
from .config import config, temp_config

# Error taxonomy
from .errors import (SimulationError, UnitMismatchError, SingularityError,
                     IntegrationError, IntegrationDivergedError,
                     StepBudgetExceededError)

# State vector model
from .state import Body, DOFLayout, BodyLayout, pack, unpack
from .params import OscillatorParams, OrbitalParams, SimulationBounds
from .units import ureg, Q_

# Integration
from .integrators import Integrator, LeapfrogIntegrator, AdaptiveRKIntegrator
from .trajectory import Trajectory, Trajectory as Traj, IntegratorStatus
from .system import System, OscillatorSystem, OrbitalSystem

# References and validation
from .reference import ReferenceSeries, OscillatorReference
from .validation import (ValidationPolicy, CheckResult, Report, validate,
                         validate_estimate, check_convergence)
from .montecarlo import estimate_pi, run_convergence, PiEstimate, ConvergenceResult

# Commonly-used systems
from .defaults import (harmonic_oscillator, inner_solar_system,
                       DEFAULT_OSCILLATOR, MERCURY, VENUS, EARTH, MARS)

# Package metadata
__version__ = "0.1.0"

# Define what gets imported with "from physics_snippets import *"
__all__ = [
    # Configuration
    "config",
    "temp_config",
    # Errors
    "SimulationError",
    "UnitMismatchError",
    "SingularityError",
    "IntegrationError",
    "IntegrationDivergedError",
    "StepBudgetExceededError",
    # Classes
    "Body",
    "DOFLayout",
    "BodyLayout",
    "OscillatorParams",
    "OrbitalParams",
    "SimulationBounds",
    "Integrator",
    "LeapfrogIntegrator",
    "AdaptiveRKIntegrator",
    "Trajectory",
    "IntegratorStatus",
    "System",
    "OscillatorSystem",
    "OrbitalSystem",
    "ReferenceSeries",
    "OscillatorReference",
    "ValidationPolicy",
    "CheckResult",
    "Report",
    "PiEstimate",
    "ConvergenceResult",
    # Functions
    "pack",
    "unpack",
    "validate",
    "validate_estimate",
    "check_convergence",
    "estimate_pi",
    "run_convergence",
    "harmonic_oscillator",
    "inner_solar_system",
    # Abbreviations
    "Traj",
    # Units
    "ureg",
    "Q_",
    # Constants
    "DEFAULT_OSCILLATOR",
    "MERCURY",
    "VENUS",
    "EARTH",
    "MARS",
]
