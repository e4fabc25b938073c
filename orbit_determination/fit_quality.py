"""
Fit Quality Analysis

Compares the positions of a determined orbit with the observations it was
fitted to. Large residuals can indicate:
- A preliminary orbit that never converged
- Unmodeled perturbations (a two-body fit to perturbed observations)
- Outlying or mis-timed observations
- Satellite maneuvers inside the observation span

The report classifies each observation by residual size. It does not reject
observations; deciding what to do with a poor fit is up to the caller.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence

import numpy as np

from config import R_OPLUS
from orbit_determination.differential_correction import validate_observations
from orbit_determination.orbit import Orbit

logger = logging.getLogger(__name__)


class ResidualLevel(Enum):
    """Residual severity levels"""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass
class ObservationResidual:
    """Residual of one observation against the fitted orbit"""

    mjd: float
    residual_er: np.ndarray
    level: ResidualLevel

    @property
    def distance_km(self) -> float:
        return float(np.linalg.norm(self.residual_er) * R_OPLUS)


@dataclass
class FitQualityReport:
    """Summary of residuals over an observation set"""

    residuals: List[ObservationResidual]
    rms_km: float
    max_km: float
    sum_of_squares: float

    @property
    def flagged(self) -> List[ObservationResidual]:
        """Observations whose residual is above the LOW level."""
        return [r for r in self.residuals if r.level is not ResidualLevel.LOW]

    @property
    def worst_level(self) -> ResidualLevel:
        order = list(ResidualLevel)
        return max((r.level for r in self.residuals), key=order.index)


class FitQualityAnalyzer:
    """Residual analysis of an orbit against position observations"""

    def __init__(self, error_threshold_km: float = 1.0):
        self.error_threshold_km = error_threshold_km

    def analyze(self, orbit: Orbit, times: Sequence[float],
                positions: Sequence[Sequence[float]], name: str = "") -> FitQualityReport:
        """
        Compute per-observation residuals and summary statistics.

        Args:
            orbit: Fitted orbit
            times: Observation dates (MJD)
            positions: Observed geocentric positions (er)
            name: Optional object name used in log messages

        Returns:
            FitQualityReport
        """
        times, positions = validate_observations(times, positions)

        residuals = []
        for mjd, observed in zip(times, positions):
            residual = observed - orbit.position(mjd)
            distance_km = float(np.linalg.norm(residual) * R_OPLUS)
            level = self._classify_residual_level(distance_km)
            residuals.append(ObservationResidual(float(mjd), residual, level))

            if distance_km > self.error_threshold_km:
                logger.warning(
                    f"Large residual for {name or 'object'}: "
                    f"{distance_km:.3f} km at MJD {mjd:.6f}"
                )

        distances = np.array([r.distance_km for r in residuals])
        sum_of_squares = float(sum(np.dot(r.residual_er, r.residual_er) for r in residuals))

        return FitQualityReport(
            residuals=residuals,
            rms_km=float(np.sqrt(np.mean(distances ** 2))),
            max_km=float(distances.max()),
            sum_of_squares=sum_of_squares,
        )

    def _classify_residual_level(self, distance_km: float) -> ResidualLevel:
        """Classify residual severity based on distance"""
        if distance_km < self.error_threshold_km:
            return ResidualLevel.LOW
        elif distance_km < 5.0 * self.error_threshold_km:
            return ResidualLevel.MEDIUM
        elif distance_km < 10.0 * self.error_threshold_km:
            return ResidualLevel.HIGH
        else:
            return ResidualLevel.CRITICAL
