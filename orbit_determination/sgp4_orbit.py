"""
SGP4 Orbit

Perturbation-based orbit variant backed by the proven sgp4 library
(Vallado et al. 2006). Elements are held in Earth radii and radians like
every other orbit; a Satrec is initialised from them with sgp4init and
rebuilt whenever an element changes.

SGP4 interprets its elements as mean (Kozai) elements under the WGS-72
gravity model. Semi-major axis and mean motion are converted with the
project constants so that both orbit variants agree on the meaning of "a".

References:
    Vallado, D. A., Crawford, P., Hujsak, R., & Kelso, T. S. (2006).
    Revisiting Spacetrack Report #3. AIAA 2006-6753.
    Rhodes, B. sgp4 library: https://pypi.org/project/sgp4/
"""

import logging
import math
from typing import Dict, Any, Sequence

import numpy as np
from sgp4.api import Satrec, WGS72

from config import GM_OPLUS, R_OPLUS
from orbit_determination.differential_correction import (
    CorrectionMethod,
    DeterminationResult,
    differential_correction,
)
from orbit_determination.exceptions import Sgp4PropagationError
from orbit_determination.orbit import Orbit
from orbit_determination.time_utils import MJD_OFFSET, SGP4_EPOCH_MJD, mjd_to_jd_fr, offset_seconds

logger = logging.getLogger(__name__)

# Catalog number used for fitted element sets
DEFAULT_SATNUM = 99999

# SGP4 error code meanings
SGP4_ERROR_CODES = {
    0: "No error",
    1: "Mean eccentricity < 0.0 or > 1.0",
    2: "Mean motion < 0.0",
    3: "Perturbed eccentricity < 0.0 or > 1.0",
    4: "Semi-latus rectum < 0.0",
    5: "Satellite has decayed",
    6: "Satellite has decayed (low altitude)",
}


def mean_motion_to_semi_major_axis(n: float) -> float:
    """Semi-major axis [er] from mean motion [rad/s]."""
    return (GM_OPLUS / n ** 2) ** (1.0 / 3.0) / R_OPLUS
    # [er] = [ [km^3/s^2] / [rad/s]^2 ]^(1/3) / [km/er]


def tle_checksum(line: str) -> int:
    """Modulo 10 checksum of the first 68 characters of an element set line."""
    checksum = 0
    for char in line[:68]:
        if char.isdigit():
            checksum += int(char)
        elif char == "-":
            checksum += 1
    return checksum % 10


def error_diagnostics(error_code: int, orbit: "Sgp4Orbit", mjd: float) -> Dict[str, Any]:
    """
    Physical interpretation of an SGP4 error code.

    Args:
        error_code: SGP4 error code
        orbit: The orbit being propagated
        mjd: Propagation date

    Returns:
        Dictionary with diagnostic information
    """
    diagnostics = {
        "error_code": error_code,
        "error_description": SGP4_ERROR_CODES.get(error_code, f"Unknown error {error_code}"),
        "orbital_parameters": {
            "semi_major_axis_er": orbit.a,
            "eccentricity": orbit.e,
            "perigee_radius_er": orbit.a * (1 - orbit.e),
            "inclination_deg": math.degrees(orbit.i),
            "epoch_age_days": offset_seconds(mjd, orbit.epoch) / 86400.0,
        },
    }

    if error_code in (1, 3):
        diagnostics["physical_meaning"] = (
            "The orbital eccentricity is outside the valid range [0, 1). "
            "The element set is corrupted or the orbit is no longer bound."
        )
    elif error_code == 2:
        diagnostics["physical_meaning"] = (
            "The mean motion is negative, which is physically impossible."
        )
    elif error_code == 4:
        diagnostics["physical_meaning"] = (
            "SGP4 computed perturbed orbital elements that are unphysical. "
            "This typically occurs when propagating far from the element set epoch."
        )
    elif error_code in (5, 6):
        diagnostics["physical_meaning"] = (
            "The satellite has decayed: the computed perigee lies below the "
            "minimum altitude SGP4 can propagate."
        )

    return diagnostics


class Sgp4Orbit(Orbit):
    """
    Orbit propagated with SGP4.

    Args:
        a: Semi-major axis (er)
        e: Eccentricity
        i: Inclination (rad)
        raan: Right ascension of the ascending node (rad)
        argp: Argument of perigee (rad)
        M: Mean anomaly at epoch (rad)
        epoch: Epoch (MJD)
        satnum: Catalog number carried into the Satrec
        bstar: B* drag term (1/er)
    """

    def __init__(self, a, e, i, raan, argp, M, epoch,
                 satnum: int = DEFAULT_SATNUM, bstar: float = 0.0):
        super().__init__(a, e, i, raan, argp, M, epoch)
        self.satnum = int(satnum)
        self.bstar = float(bstar)
        self._elements_changed()

    def _elements_changed(self) -> None:
        satrec = Satrec()
        satrec.sgp4init(
            WGS72,
            "i",
            self.satnum,
            self.epoch - SGP4_EPOCH_MJD,  # days since 1949 December 31 00:00 UT
            self.bstar,
            0.0,  # ndot
            0.0,  # nddot
            self.e,
            self.argp,
            self.i,
            self.M,
            self.mean_motion() * 60.0,  # [rad/min]
            self.raan,
        )
        self.satrec = satrec

    def with_elements(self, elements: Sequence[float]) -> "Sgp4Orbit":
        a, e, i, raan, argp, M = elements
        return Sgp4Orbit(a, e, i, raan, argp, M, self.epoch, self.satnum, self.bstar)

    def position(self, mjd: float) -> np.ndarray:
        """
        TEME position (er) at the given date.

        Raises:
            Sgp4PropagationError: SGP4 returned a non-zero error code
        """
        jd, fr = mjd_to_jd_fr(mjd)
        error, r, _ = self.satrec.sgp4(jd, fr)
        if error != 0:
            diagnostics = error_diagnostics(error, self, mjd)
            logger.debug(f"SGP4 error {error} for satellite {self.satnum}: {diagnostics}")
            raise Sgp4PropagationError(error, diagnostics["error_description"], diagnostics)
        return np.array(r) / R_OPLUS
        # [er] = [km] / [km/er]

    @classmethod
    def from_keplerian(cls, orbit: Orbit, satnum: int = DEFAULT_SATNUM,
                       bstar: float = 0.0) -> "Sgp4Orbit":
        """Construct an SGP4 orbit from the elements of another orbit."""
        return cls(orbit.a, orbit.e, orbit.i, orbit.raan, orbit.argp, orbit.M,
                   orbit.epoch, satnum, bstar)

    @classmethod
    def from_tle(cls, line1: str, line2: str) -> "Sgp4Orbit":
        """
        Construct an SGP4 orbit from a two-line element set.

        Raises:
            ValueError: The element set is malformed or cannot be parsed
        """
        for number, line in (("1", line1), ("2", line2)):
            line = line.rstrip()
            if len(line) != 69 or not line.startswith(number + " "):
                raise ValueError(f"Line {number} is not a two-line element set line")
            if not line[68].isdigit() or int(line[68]) != tle_checksum(line):
                raise ValueError(f"Checksum mismatch on line {number}")

        try:
            satellite = Satrec.twoline2rv(line1, line2)
        except Exception as e:
            raise ValueError(f"Failed to load element set: {e}") from e
        if satellite.error != 0 or satellite.no_kozai <= 0:
            raise ValueError(f"Failed to load element set: SGP4 error {satellite.error}")

        epoch = (satellite.jdsatepoch - MJD_OFFSET) + satellite.jdsatepochF
        a = mean_motion_to_semi_major_axis(satellite.no_kozai / 60.0)
        return cls(a, satellite.ecco, satellite.inclo, satellite.nodeo,
                   satellite.argpo, satellite.mo, epoch, satellite.satnum,
                   satellite.bstar)


def fit_sgp4_orbit(orbit: Orbit, satnum: int = DEFAULT_SATNUM, n_samples: int = 24,
                   config=None) -> DeterminationResult:
    """
    Fit an SGP4 element set to another orbit.

    The source orbit is sampled at n_samples dates spread evenly over one
    orbital period from its epoch. An SGP4 orbit seeded with the same
    elements is then refined against those positions with the
    Levenberg-Marquardt method.

    Args:
        orbit: Orbit to reproduce, typically a KeplerianOrbit
        satnum: Catalog number of the fitted element set
        n_samples: Number of sampled positions
        config: Optional DeterminationConfig

    Returns:
        DeterminationResult whose orbit is an Sgp4Orbit
    """
    if n_samples < 2:
        raise ValueError("At least two samples are required")

    period_days = orbit.orbital_period() / 86400.0
    # [d] = [s] / [s/d]
    times = orbit.epoch + np.arange(n_samples) * (period_days / n_samples)
    positions = orbit.positions(times)

    seed = Sgp4Orbit.from_keplerian(orbit, satnum)
    result = differential_correction(seed, times, positions,
                                     CorrectionMethod.LEVENBERG_MARQUARDT, config)
    logger.info(f"SGP4 fit of satellite {satnum}: {result.status} "
                f"after {result.iterations} iterations")
    return result
