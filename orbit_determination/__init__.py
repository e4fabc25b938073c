"""
Orbit Determination Package

Determines the orbit of an Earth satellite from geocentric position
observations: a preliminary element set from two positions by Gauss's
method, refined against many positions by differential correction.

Modules:
    orbit: Orbit base class and element helpers
    keplerian_orbit: Two-body orbit propagated in closed form
    sgp4_orbit: Orbit propagated with the sgp4 library
    preliminary: Gauss's method for a preliminary orbit
    differential_correction: Gauss-Newton and Levenberg-Marquardt refinement
    fit_quality: Residual analysis of a determined orbit
    batch: Concurrent determination of several objects

References:
    Montenbruck, O., & Gill, E. (2000). Satellite Orbits: Models, Methods
    and Applications. Springer.
"""

from orbit_determination.differential_correction import (
    STATUS_CANCELLED,
    STATUS_DIVERGED,
    STATUS_EXHAUSTED,
    STATUS_SUCCESSFUL,
    CorrectionMethod,
    DeterminationResult,
)
from orbit_determination.exceptions import (
    InvalidObservationError,
    OrbitDeterminationError,
    Sgp4PropagationError,
    SingularSystemError,
)
from orbit_determination.keplerian_orbit import KeplerianOrbit
from orbit_determination.orbit import Orbit
from orbit_determination.preliminary import determine_preliminary_orbit
from orbit_determination.sgp4_orbit import Sgp4Orbit, fit_sgp4_orbit

__version__ = "1.0.0"

__all__ = [
    "CorrectionMethod",
    "DeterminationResult",
    "InvalidObservationError",
    "KeplerianOrbit",
    "Orbit",
    "OrbitDeterminationError",
    "STATUS_CANCELLED",
    "STATUS_DIVERGED",
    "STATUS_EXHAUSTED",
    "STATUS_SUCCESSFUL",
    "Sgp4Orbit",
    "Sgp4PropagationError",
    "SingularSystemError",
    "determine_preliminary_orbit",
    "fit_sgp4_orbit",
]
