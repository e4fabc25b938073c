"""
Preliminary Orbit Determination

Gauss's method for a Keplerian element set from two inertial geocentric
position vectors observed at two dates. The ratio of the sector to the
triangle area between the vectors is found by secant iteration, after which
the elements follow in closed form.

A physically implausible result (not elliptical, perigee inside the Earth,
or apogee more than six Earth radii above the surface) is not an error:
determine_preliminary_orbit() returns None and the caller decides what to
do next.

References:
    Montenbruck, O., & Gill, E. (2000). Satellite Orbits. (Equations 2.99 - 2.121)
"""

import logging
import math
from typing import NamedTuple, Optional, Sequence

import numpy as np

from config import GM_OPLUS, R_OPLUS, DEFAULT_CONFIG, DeterminationConfig
from orbit_determination.exceptions import InvalidObservationError
from orbit_determination.keplerian_orbit import KeplerianOrbit
from orbit_determination.orbit import wrap_angle
from orbit_determination.time_utils import offset_seconds

logger = logging.getLogger(__name__)

# Apogee limit [er]: no more than six Earth radii from the surface
MAX_APOGEE_RADIUS = 7.0


class SectorRatio(NamedTuple):
    """Result of the sector to triangle area ratio iteration."""

    eta: float
    iterations: int
    converged: bool


def as_position(r: Sequence[float], name: str = "position") -> np.ndarray:
    """Validate and convert a position vector to a float array of shape (3,)."""
    try:
        vector = np.asarray(r, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidObservationError(f"{name} is not numeric: {e}") from e
    if vector.shape != (3,):
        raise InvalidObservationError(f"{name} must be a 3-vector, got shape {vector.shape}")
    if not np.all(np.isfinite(vector)):
        raise InvalidObservationError(f"{name} contains non-finite values")
    return vector


def _W(w: float) -> float:
    """
    Evaluates equation (2.103).

    The negative branch is the hyperbolic continuation, which lets the root
    find complete for unbound arcs so that the plausibility check can reject
    them.
    """
    if w == 0:
        return 4.0 / 3.0
    if w > 0:
        if w > 1:
            raise ValueError(f"Argument must not exceed one, got {w}")
        g = 2 * math.asin(math.sqrt(w))
        return (2 * g - math.sin(2 * g)) / math.sin(g) ** 3
    g = 2 * math.asinh(math.sqrt(-w))
    return (math.sinh(2 * g) - 2 * g) / math.sinh(g) ** 3


def _f(eta: float, m: float, l: float) -> float:
    """Evaluates equation (2.106)."""
    if eta <= 1:
        raise ValueError(f"Argument must be greater than one, got {eta}")
    return 1 - eta + (m / eta ** 2) * _W(m / eta ** 2 - l)


def solve_sector_triangle_ratio(m: float, l: float,
                                config: DeterminationConfig = DEFAULT_CONFIG) -> SectorRatio:
    """
    Secant iteration for the ratio of sector to triangle area.

    Args:
        m: Dimensionless parameter m (2.101)
        l: Dimensionless parameter l (2.101)
        config: Supplies precision_eta and max_iteration

    Returns:
        SectorRatio with the last iterate; converged is False when the
        iteration cap was hit first

    Raises:
        ValueError: An iterate left the domain of equation (2.106)
    """
    eta_0 = (12 / 22.0) + (10 / 22.0) * math.sqrt(1 + (44 / 9.0) * (m / (l + 5 / 6.0)))
    eta_im1 = eta_0 + 0.1
    eta_i = eta_0
    eta_ip1 = _secant_step(eta_i, eta_im1, m, l)

    n_itn = 0
    converged = True
    while abs(eta_ip1 - eta_i) > config.precision_eta:
        n_itn += 1
        if n_itn > config.max_iteration:
            logger.warning("Maximum iterations exceeded estimating the sector to triangle "
                           f"area ratio; continuing with eta={eta_ip1:.12f}")
            converged = False
            break
        eta_im1 = eta_i
        eta_i = eta_ip1
        eta_ip1 = _secant_step(eta_i, eta_im1, m, l)

    return SectorRatio(eta_ip1, n_itn, converged)


def _secant_step(eta_i: float, eta_im1: float, m: float, l: float) -> float:
    f_i = _f(eta_i, m, l)
    f_im1 = _f(eta_im1, m, l)
    if f_i == f_im1:
        return eta_i
    return eta_i - f_i * ((eta_i - eta_im1) / (f_i - f_im1))


def determine_preliminary_orbit(t_a: float, r_a: Sequence[float],
                                t_b: float, r_b: Sequence[float],
                                config: DeterminationConfig = DEFAULT_CONFIG
                                ) -> Optional[KeplerianOrbit]:
    """
    Determine an element set from two position vectors with Gauss's method.

    Args:
        t_a: First date (MJD)
        r_a: First inertial geocentric position (er)
        t_b: Second date (MJD)
        r_b: Second inertial geocentric position (er)
        config: Root find tolerance and iteration cap

    Returns:
        KeplerianOrbit with its epoch at t_a, or None if no physically
        plausible elliptical orbit passes through both positions

    Raises:
        InvalidObservationError: Malformed vectors, equal dates, or
            collinear position vectors
    """
    r_a = as_position(r_a, "r_a")
    r_b = as_position(r_b, "r_b")
    if t_a == t_b:
        raise InvalidObservationError("The two observations must have different dates")

    norm_a = np.linalg.norm(r_a)
    norm_b = np.linalg.norm(r_b)
    if np.linalg.norm(np.cross(r_a, r_b)) <= 1e-12 * norm_a * norm_b:
        raise InvalidObservationError("Position vectors must not be collinear")

    # Normalized measure of time between the two position vectors (2.99)
    tau = math.sqrt(GM_OPLUS / R_OPLUS ** 3) * offset_seconds(t_b, t_a)
    # [-] = sqrt([km^3/s^2] / [km^3]) * [s]

    # Sector to triangle area ratio (2.101, 2.108, 2.107, 2.105)
    kappa = math.sqrt(2 * (norm_a * norm_b + np.dot(r_a, r_b)))
    m = tau ** 2 / kappa ** 3
    l = (norm_a + norm_b) / (2 * kappa) - 0.5

    try:
        eta = solve_sector_triangle_ratio(m, l, config).eta
    except ValueError as e:
        logger.info(f"No sector to triangle area ratio for this arc: {e}")
        return None

    # Orthogonal unit vectors in the orbital plane (2.109, 2.100)
    e_a = r_a / norm_a
    r_0 = r_b - np.dot(r_b, e_a) * e_a
    norm_0 = np.linalg.norm(r_0)
    e_0 = r_0 / norm_0

    # Gaussian vector, normal to the orbital plane
    W = np.cross(e_a, e_0)

    # Inclination and right ascension of the ascending node (2.58)
    i = math.atan2(math.sqrt(W[0] ** 2 + W[1] ** 2), W[2])
    Omega = math.atan2(W[0], -W[1])

    # Argument of latitude (2.111)
    u_a = math.atan2(r_a[2], -r_a[0] * W[1] + r_a[1] * W[0])

    # Triangle area (2.113) and semi-latus rectum (2.112)
    Delta = 0.5 * norm_a * norm_0
    p = (2 * Delta * eta / tau) ** 2

    # Eccentricity and true anomaly at the first position (2.116)
    e_c = p / norm_a - 1
    e_s = ((p / norm_a - 1) * (np.dot(r_b, e_a) / norm_b) - (p / norm_b - 1)) * (norm_b / norm_0)
    e = math.sqrt(e_c ** 2 + e_s ** 2)
    nu_a = math.atan2(e_s, e_c)

    if not 0 < e < 1:
        logger.debug(f"Rejected preliminary orbit: eccentricity {e:.6f} is not elliptical")
        return None

    # Argument of perigee (2.117) and semi-major axis (2.118)
    omega = u_a - nu_a
    a = p / (1 - e ** 2)

    if not (a * (1 - e) > 1 and a * (1 + e) < MAX_APOGEE_RADIUS):
        logger.debug(f"Rejected preliminary orbit: perigee {a * (1 - e):.6f} er, "
                     f"apogee {a * (1 + e):.6f} er")
        return None

    # Eccentric and mean anomaly at the first position (2.121, 2.119)
    E_a = math.atan2(math.sqrt(1 - e ** 2) * math.sin(nu_a), math.cos(nu_a) + e)
    M = E_a - e * math.sin(E_a)

    return KeplerianOrbit(a, e, i, wrap_angle(Omega), wrap_angle(omega), wrap_angle(M), t_a, "halley")
