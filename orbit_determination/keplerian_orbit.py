"""
Keplerian (Two-Body) Orbit

Closed-form two-body propagation from classical elements. Only Earth's
central gravity is modelled; the J2 secular rates are reported for
reference but not applied to the propagated position.

Units are Earth radii, radians and seconds, with epochs and observation
times given as Modified Julian Dates.

References:
    Vallado, D. A. (2013). Fundamentals of Astrodynamics and Applications (4th ed.).
    Montenbruck, O., & Gill, E. (2000). Satellite Orbits. (Sections 2.2 - 2.3)
"""

import logging
import math
from typing import Dict, Sequence

import numpy as np

from config import GM_OPLUS, J_2, MAX_ITERATION, PRECISION_E, R_OPLUS, SECONDS_PER_DAY
from orbit_determination.orbit import Orbit, wrap_angle

logger = logging.getLogger(__name__)

KEPLER_METHODS = ("newton", "halley")

# Earth gravitational parameter in Earth radii (er^3/s^2)
GM_OPLUS_ER = GM_OPLUS / R_OPLUS ** 3


def solve_kepler_equation(M: float, e: float, method: str = "halley",
                          tolerance: float = PRECISION_E,
                          max_iter: int = MAX_ITERATION) -> float:
    """
    Solve Kepler's equation for eccentric anomaly.

    Args:
        M: Mean anomaly (rad)
        e: Eccentricity
        method: "newton" or "halley"
        tolerance: Convergence tolerance on successive iterates
        max_iter: Maximum iterations

    Returns:
        Eccentric anomaly E (rad)
    """
    if method not in KEPLER_METHODS:
        raise ValueError(f"Method must be either \"newton\" or \"halley\", got {method!r}")

    # Initial guess
    E_i = M if e < 0.8 else math.pi
    E_ip1 = _kepler_step(E_i, M, e, method)

    n_itn = 0
    while abs(E_ip1 - E_i) > tolerance:
        n_itn += 1
        if n_itn > max_iter:
            logger.warning("Maximum iterations exceeded solving Kepler's equation "
                           f"(M={M:.6f}, e={e:.6f})")
            break
        E_i = E_ip1
        E_ip1 = _kepler_step(E_i, M, e, method)

    return E_ip1


def _kepler_step(E: float, M: float, e: float, method: str) -> float:
    f = E - e * math.sin(E) - M
    f_p = 1.0 - e * math.cos(E)
    if method == "newton":
        return E - f / f_p
    f_pp = e * math.sin(E)
    return E - (2 * f * f_p) / (2 * f_p ** 2 - f * f_pp)


def perifocal_to_inertial(i: float, raan: float, argp: float) -> np.ndarray:
    """Rotation matrix from the perifocal frame to the inertial frame."""
    cos_raan = math.cos(raan)
    sin_raan = math.sin(raan)
    cos_i = math.cos(i)
    sin_i = math.sin(i)
    cos_argp = math.cos(argp)
    sin_argp = math.sin(argp)

    R_raan = np.array([
        [cos_raan, -sin_raan, 0],
        [sin_raan, cos_raan, 0],
        [0, 0, 1]
    ])

    R_i = np.array([
        [1, 0, 0],
        [0, cos_i, -sin_i],
        [0, sin_i, cos_i]
    ])

    R_argp = np.array([
        [cos_argp, -sin_argp, 0],
        [sin_argp, cos_argp, 0],
        [0, 0, 1]
    ])

    return R_raan @ R_i @ R_argp


class KeplerianOrbit(Orbit):
    """
    Two-body orbit propagated in closed form.

    Args:
        a: Semi-major axis (er)
        e: Eccentricity
        i: Inclination (rad)
        raan: Right ascension of the ascending node (rad)
        argp: Argument of perigee (rad)
        M: Mean anomaly at epoch (rad)
        epoch: Epoch (MJD)
        method: Kepler's equation solver, "newton" or "halley"
    """

    def __init__(self, a, e, i, raan, argp, M, epoch, method: str = "halley"):
        if method not in KEPLER_METHODS:
            raise ValueError(f"Method must be either \"newton\" or \"halley\", got {method!r}")
        super().__init__(a, e, i, raan, argp, M, epoch)
        self.method = method
        self._elements_changed()

    def _elements_changed(self) -> None:
        self.n = self.mean_motion()

    def with_elements(self, elements: Sequence[float]) -> "KeplerianOrbit":
        a, e, i, raan, argp, M = elements
        return KeplerianOrbit(a, e, i, raan, argp, M, self.epoch, self.method)

    def mean_position(self, mjd: float) -> float:
        """Mean anomaly (rad) at the given date."""
        return wrap_angle(self.M + self.n * (mjd - self.epoch) * SECONDS_PER_DAY)
        # [rad] = [rad] + [rad/s] * [s]

    def eccentric_anomaly(self, mjd: float) -> float:
        return solve_kepler_equation(self.mean_position(mjd), self.e, self.method)

    def position(self, mjd: float) -> np.ndarray:
        """Geocentric inertial position (er) at the given date."""
        E = self.eccentric_anomaly(mjd)
        r_op = np.array([
            self.a * (math.cos(E) - self.e),
            self.a * math.sqrt(1 - self.e ** 2) * math.sin(E),
            0.0
        ])
        return perifocal_to_inertial(self.i, self.raan, self.argp) @ r_op

    def velocity(self, mjd: float) -> np.ndarray:
        """Geocentric inertial velocity (er/s) at the given date."""
        E = self.eccentric_anomaly(mjd)
        r = self.a * (1 - self.e * math.cos(E))
        factor = math.sqrt(GM_OPLUS_ER * self.a) / r
        v_op = np.array([
            -factor * math.sin(E),
            factor * math.sqrt(1 - self.e ** 2) * math.cos(E),
            0.0
        ])
        return perifocal_to_inertial(self.i, self.raan, self.argp) @ v_op

    def secular_rates(self) -> Dict[str, float]:
        """
        J2 secular rates of the node, perigee and mean anomaly at epoch (rad/s).
        """
        p = self.a * (1 - self.e ** 2)
        k = (3.0 / 2.0) * (J_2 / p ** 2) * self.n
        cos_i = math.cos(self.i)
        return {
            "raan_dot": -k * cos_i,
            "argp_dot": k * (2.0 - (5.0 / 2.0) * math.sin(self.i) ** 2),
            "M_0_dot": k * math.sqrt(1 - self.e ** 2) * (1.0 - (3.0 / 2.0) * math.sin(self.i) ** 2),
        }

    @classmethod
    def from_state(cls, epoch: float, r: Sequence[float], v: Sequence[float],
                   method: str = "halley") -> "KeplerianOrbit":
        """
        Element set from an inertial position (er) and velocity (er/s).

        Args:
            epoch: Epoch of the state vector (MJD)
            r: Position vector [x, y, z] in er
            v: Velocity vector [vx, vy, vz] in er/s

        Returns:
            KeplerianOrbit with its epoch at the state
        """
        r_vec = np.asarray(r, dtype=float)
        v_vec = np.asarray(v, dtype=float)
        r_mag = np.linalg.norm(r_vec)

        # Specific angular momentum and its unit vector
        h_vec = np.cross(r_vec, v_vec)
        W = h_vec / np.linalg.norm(h_vec)

        i = math.atan2(math.sqrt(W[0] ** 2 + W[1] ** 2), W[2])
        raan = math.atan2(W[0], -W[1])

        # Semi-latus rectum, semi-major axis and eccentricity
        p = np.dot(h_vec, h_vec) / GM_OPLUS_ER
        a = 1.0 / (2.0 / r_mag - np.dot(v_vec, v_vec) / GM_OPLUS_ER)
        e = math.sqrt(max(1 - p / a, 0.0))
        if e < 0.001:
            logger.warning("Element set conversion works poorly for eccentricity less than 0.001")

        # Eccentric and mean anomaly
        n = math.sqrt(GM_OPLUS_ER / a ** 3)
        E = math.atan2(np.dot(r_vec, v_vec) / (a ** 2 * n), 1 - r_mag / a)
        M = E - e * math.sin(E)

        # Argument of latitude, true anomaly and argument of perigee
        u = math.atan2(r_vec[2], -r_vec[0] * W[1] + r_vec[1] * W[0])
        nu = math.atan2(math.sqrt(1 - e ** 2) * math.sin(E), math.cos(E) - e)
        argp = u - nu

        return cls(a, e, i, raan, argp, M, epoch, method)
