"""
Orbit Determination Configuration and Constants

This module contains the physical constants and numerical tolerances used
throughout the project, together with the per-call configuration object
consumed by the differential correction engine.

Constants:
    Earth constants follow WGS-84 for the two-body model. SGP4 itself uses
    WGS-72 internally (selected in orbit_determination.sgp4_orbit); positions
    it returns in km are converted to Earth radii with R_OPLUS below so that
    both orbit variants share one length unit.

Environment overrides:
    DeterminationConfig.from_env() reads the OD_* variables listed in
    ENV_OVERRIDES, which is handy for tuning long batch runs without code
    changes.

References:
    Montenbruck, O., & Gill, E. (2000). Satellite Orbits: Models, Methods
    and Applications. Springer. (Sections 2.4 and 7.3)
"""

import os
from dataclasses import dataclass, replace
from typing import Dict, Any

# Earth constants (WGS-84)
R_OPLUS: float = 6378.137  # Earth equatorial radius (km)
F_OPLUS: float = 1.0 / 298.257223563  # Flattening
GM_OPLUS: float = 398600.4415  # Earth gravitational parameter (km³/s²)
J_2: float = 0.0010826269  # Second zonal harmonic coefficient

SECONDS_PER_DAY: float = 86400.0

# Numerical constants
PRECISION_E: float = 1e-6  # Kepler's equation convergence [rad]
PRECISION_ETA: float = 1e-9  # Sector to triangle ratio convergence [-]
MAX_ITERATION: int = 10000  # Shared iteration cap
DECIMAL_DELTA: float = 1e-6  # Relative finite difference step [-]
MAX_TIME_DIFF: float = 1.0  # Mean anomaly time offset for convergence [s]

# Levenberg-Marquardt damping
LM_NU: float = 2.0
LM_LAMBDA: float = 0.1
LM_MAX_LAMBDA: float = 9.0

LINE_SEARCH_TOLERANCE: float = 0.001

# Residual metrics accepted by DeterminationConfig.residual_metric
RESIDUAL_METRICS = ("sum", "last")

ENV_OVERRIDES: Dict[str, str] = {
    "precision_eta": "OD_PRECISION_ETA",
    "max_iteration": "OD_MAX_ITERATION",
    "decimal_delta": "OD_DECIMAL_DELTA",
    "max_time_diff": "OD_MAX_TIME_DIFF",
    "nu": "OD_LM_NU",
    "initial_lambda": "OD_LM_LAMBDA",
    "max_lambda": "OD_LM_MAX_LAMBDA",
    "line_search_tolerance": "OD_LINE_SEARCH_TOLERANCE",
    "residual_metric": "OD_RESIDUAL_METRIC",
}


@dataclass(frozen=True)
class DeterminationConfig:
    """
    Tolerances, caps and damping parameters for one determination call.

    Attributes
    ----------
    precision_eta : float
        Secant iteration tolerance for the sector to triangle area ratio
    max_iteration : int
        Iteration cap shared by the root find and the correction loop
    decimal_delta : float
        Relative step used by the finite difference Jacobian
    max_time_diff : float
        Convergence threshold on the mean anomaly time offset (s)
    nu : float
        Levenberg-Marquardt damping multiplier
    initial_lambda : float
        Levenberg-Marquardt initial damping factor
    max_lambda : float
        Damping factor ceiling for the escalation loop
    line_search_tolerance : float
        Bisection interval width at which the line search stops
    residual_metric : str
        "sum" to aggregate squared residuals over all observations, "last"
        to use only the last observation (legacy behaviour)
    """

    precision_eta: float = PRECISION_ETA
    max_iteration: int = MAX_ITERATION
    decimal_delta: float = DECIMAL_DELTA
    max_time_diff: float = MAX_TIME_DIFF
    nu: float = LM_NU
    initial_lambda: float = LM_LAMBDA
    max_lambda: float = LM_MAX_LAMBDA
    line_search_tolerance: float = LINE_SEARCH_TOLERANCE
    residual_metric: str = "sum"

    def __post_init__(self):
        if self.residual_metric not in RESIDUAL_METRICS:
            raise ValueError(
                f"residual_metric must be one of {RESIDUAL_METRICS}, "
                f"got {self.residual_metric!r}"
            )
        if self.max_iteration < 1:
            raise ValueError("max_iteration must be at least 1")
        if self.decimal_delta <= 0 or self.line_search_tolerance <= 0:
            raise ValueError("Step sizes and tolerances must be positive")

    def with_overrides(self, **overrides: Any) -> "DeterminationConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **overrides)

    @classmethod
    def from_env(cls) -> "DeterminationConfig":
        """Build a configuration from defaults and OD_* environment variables."""
        values: Dict[str, Any] = {}
        defaults = cls()
        for field_name, env_name in ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            default = getattr(defaults, field_name)
            if isinstance(default, int):
                values[field_name] = int(raw)
            elif isinstance(default, float):
                values[field_name] = float(raw)
            else:
                values[field_name] = raw.strip().lower()
        return cls(**values)


DEFAULT_CONFIG = DeterminationConfig()
