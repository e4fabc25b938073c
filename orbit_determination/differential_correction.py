"""
Differential Correction

Nonlinear least squares refinement of an orbit against a series of
geocentric position observations, using the Gauss-Newton or the
Levenberg-Marquardt method.

Each outer iteration:
1. Stacks the position residuals (observed - modeled) and the numerical
   Jacobian of position with respect to (a, e, i, raan, argp, M) over all
   observations.
2. Solves the (optionally damped) normal equations for a correction.
3. Bisects the fraction of the correction, between zero and one, that
   minimizes the sum of squared residuals.

The loop stops when the change in mean anomaly between iterations amounts
to less than max_time_diff seconds, when the sum of squares stops
improving, or when the iteration cap is reached. All three outcomes are
reported through the status string of the DeterminationResult.

The engine is stateless between calls. Everything that changes during a
call lives in the CorrectionState created for it, so independent
determinations can run concurrently.

References:
    Montenbruck, O., & Gill, E. (2000). Satellite Orbits. (Section 7.3, eq. 7.108)
    Marquardt, D. W. (1963). An Algorithm for Least-Squares Estimation of
    Nonlinear Parameters. SIAM J. Appl. Math. 11(2).
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from config import DEFAULT_CONFIG, DeterminationConfig
from orbit_determination.exceptions import InvalidObservationError, SingularSystemError
from orbit_determination.orbit import ELEMENT_NAMES, TWO_PI, Orbit
from orbit_determination.preliminary import as_position

logger = logging.getLogger(__name__)

STATUS_SUCCESSFUL = "differential correction successful"
STATUS_DIVERGED = "differential correction diverged"
STATUS_EXHAUSTED = "maximum iterations exceeded"
STATUS_CANCELLED = "differential correction cancelled"

# Lower and upper limits applied to corrected elements, in ELEMENT_NAMES order
ELEMENT_LIMITS = (
    (1.0, math.inf),
    (0.000001, 0.999999),
    (0.0, math.pi),
    (0.0, TWO_PI),
    (0.0, TWO_PI),
    (0.0, TWO_PI),
)


class CorrectionMethod(Enum):
    """Numerical technique used to compute each differential correction"""

    GAUSS_NEWTON = "gauss-newton"
    LEVENBERG_MARQUARDT = "levenberg-marquardt"

    @classmethod
    def parse(cls, method: Union[str, "CorrectionMethod"]) -> "CorrectionMethod":
        if isinstance(method, cls):
            return method
        if isinstance(method, str):
            key = method.strip().lower().replace("_", "-").replace(" ", "-")
            for member in cls:
                if member.value == key:
                    return member
        raise InvalidObservationError(
            f"Unknown correction method {method!r}; expected 'gauss-newton' or 'levenberg-marquardt'"
        )


@dataclass
class CorrectionState:
    """
    Values carried across the outer iterations of one correction call.

    The damping parameters are only set for Levenberg-Marquardt.
    """

    method: CorrectionMethod
    nu: Optional[float] = None
    damping: Optional[float] = None
    dz: Optional[np.ndarray] = None
    H: Optional[np.ndarray] = None
    dx: Optional[np.ndarray] = None

    @classmethod
    def create(cls, method: Union[str, CorrectionMethod],
               config: DeterminationConfig = DEFAULT_CONFIG) -> "CorrectionState":
        method = CorrectionMethod.parse(method)
        if method is CorrectionMethod.LEVENBERG_MARQUARDT:
            return cls(method, nu=config.nu, damping=config.initial_lambda)
        return cls(method)


@dataclass
class SearchResult:
    """An orbit produced by applying a correction, and its sum of squares."""

    orbit: Orbit
    sum_of_squares: float


@dataclass
class DeterminationResult:
    """
    Outcome of a differential correction.

    Unpacks as (orbit, status).
    """

    orbit: Optional[Orbit]
    status: str
    iterations: int = 0
    sum_of_squares: float = math.nan
    time_offsets: List[float] = field(default_factory=list)

    @property
    def successful(self) -> bool:
        return self.status == STATUS_SUCCESSFUL

    def __iter__(self):
        return iter((self.orbit, self.status))


def validate_observations(times: Sequence[float],
                          positions: Sequence[Sequence[float]]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Check an observation set and convert it to arrays.

    Returns:
        (times, positions) with shapes (N,) and (N, 3)

    Raises:
        InvalidObservationError: Empty set, mismatched lengths, bad vectors
    """
    times_array = np.asarray(times, dtype=float).reshape(-1)
    if times_array.size == 0:
        raise InvalidObservationError("At least one observation is required")
    if len(positions) != times_array.size:
        raise InvalidObservationError(
            f"Got {times_array.size} observation dates but {len(positions)} positions"
        )
    if not np.all(np.isfinite(times_array)):
        raise InvalidObservationError("Observation dates must be finite")
    positions_array = np.array(
        [as_position(r, f"position[{k}]") for k, r in enumerate(positions)]
    )
    return times_array, positions_array


def jacobian_numerical(orbit: Orbit, mjd: float,
                       config: DeterminationConfig = DEFAULT_CONFIG) -> np.ndarray:
    """
    Jacobian of geocentric position with respect to the orbital elements,
    by centered difference. (7.108)

    Column j is the derivative with respect to ELEMENT_NAMES[j]. The step
    is relative to the element value, so an element that is exactly zero
    yields an all zero column.

    Args:
        orbit: The orbit, left unmodified
        mjd: Date of the position (MJD)
        config: Supplies decimal_delta

    Returns:
        3x6 Jacobian
    """
    H = np.zeros((3, len(ELEMENT_NAMES)))
    for column, name in enumerate(ELEMENT_NAMES):
        value = orbit.get_element(name)
        dx = value * config.decimal_delta
        if dx == 0.0:
            continue
        r_p = orbit.with_element(name, value + dx / 2).position(mjd)
        r_m = orbit.with_element(name, value - dx / 2).position(mjd)
        H[:, column] = (r_p - r_m) / dx
    return H


def assemble(orbit: Orbit, times: np.ndarray, positions: np.ndarray,
             config: DeterminationConfig = DEFAULT_CONFIG) -> Tuple[np.ndarray, np.ndarray]:
    """
    Stack residuals and Jacobians over all observations.

    Returns:
        (dz, H): residual vector of length 3N (observed - modeled) and
        the 3N x 6 Jacobian, each observation evaluated at its own date
    """
    n_obs = len(times)
    dz = np.zeros(3 * n_obs)
    H = np.zeros((3 * n_obs, len(ELEMENT_NAMES)))
    for k, (mjd, observed) in enumerate(zip(times, positions)):
        rows = slice(3 * k, 3 * k + 3)
        dz[rows] = observed - orbit.position(mjd)
        H[rows, :] = jacobian_numerical(orbit, mjd, config)
    return dz, H


def sum_of_squares(orbit: Orbit, times: np.ndarray, positions: np.ndarray,
                   config: DeterminationConfig = DEFAULT_CONFIG) -> float:
    """
    Fit of an orbit to the observations.

    With residual_metric "sum" this is the sum of squared residual norms
    over all observations; with "last" only the last observation counts.
    """
    if config.residual_metric == "last":
        residual = positions[-1] - orbit.position(times[-1])
        return float(np.dot(residual, residual))
    total = 0.0
    for mjd, observed in zip(times, positions):
        residual = observed - orbit.position(mjd)
        total += float(np.dot(residual, residual))
    return total


def apply_correction(orbit: Orbit, dx: Sequence[float], alpha: float,
                     times: np.ndarray, positions: np.ndarray,
                     config: DeterminationConfig = DEFAULT_CONFIG) -> SearchResult:
    """
    Apply a fraction of a differential correction to a new orbit, and
    measure its fit.

    Corrected elements are limited to a >= 1 er, 1e-6 <= e <= 1 - 1e-6,
    0 <= i <= pi, and 0 <= raan, argp, M <= 2 pi.

    Args:
        orbit: The orbit at step i, left unmodified
        dx: Differential correction for (a, e, i, raan, argp, M)
        alpha: Fraction of the correction applied

    Returns:
        SearchResult with the orbit at step i+1
    """
    elements = orbit.elements + alpha * np.asarray(dx, dtype=float)
    for k, (lower, upper) in enumerate(ELEMENT_LIMITS):
        elements[k] = min(max(elements[k], lower), upper)

    corrected = orbit.with_elements(elements)
    return SearchResult(corrected, sum_of_squares(corrected, times, positions, config))


def _solve(A: np.ndarray, b: np.ndarray) -> np.ndarray:
    try:
        solution = np.linalg.solve(A, b)
    except np.linalg.LinAlgError as e:
        raise SingularSystemError(f"Normal equations are singular: {e}") from e
    if not np.all(np.isfinite(solution)):
        raise SingularSystemError("Normal equations produced a non-finite correction")
    return solution


def active_elements(H: np.ndarray) -> np.ndarray:
    """
    Mask of the elements whose Jacobian column is not identically zero.

    Elements that are exactly zero are never perturbed by the relative step,
    so they take no part in the correction and keep a zero component in dx.

    Raises:
        SingularSystemError: No element is observable, or the remaining
            columns are linearly dependent (e.g. too few observations)
    """
    active = np.any(H != 0.0, axis=0)
    n_active = int(np.count_nonzero(active))
    if n_active == 0:
        raise SingularSystemError("Jacobian is identically zero")
    rank = np.linalg.matrix_rank(H[:, active])
    if rank < n_active:
        raise SingularSystemError(
            f"Jacobian has rank {rank} for {n_active} corrected elements"
        )
    return active


def compute_correction(orbit: Orbit, times: np.ndarray, positions: np.ndarray,
                       state: CorrectionState,
                       config: DeterminationConfig = DEFAULT_CONFIG) -> np.ndarray:
    """
    Compute the residuals, the Jacobian and the resulting differential
    correction, recording all three in the correction state.

    For Levenberg-Marquardt the damping factor is increased until a full
    correction reduces the sum of squares (or the damping ceiling is
    reached), and the least damping factor giving a reduction is retained.

    Raises:
        SingularSystemError: The normal equations cannot be solved over
            the elements with a non-zero Jacobian column
    """
    dz, H = assemble(orbit, times, positions, config)
    state.dz = dz
    state.H = H

    # Normal equations over the elements with a non-zero Jacobian column
    active = active_elements(H)
    H_a = H[:, active]
    HtH = H_a.T @ H_a
    Htdz = H_a.T @ dz

    def expand(dx_a):
        dx = np.zeros(len(ELEMENT_NAMES))
        dx[active] = dx_a
        return dx

    if state.method is CorrectionMethod.GAUSS_NEWTON:
        # dx = (H' * H) \ (H' * dz)
        state.dx = expand(_solve(HtH, Htdz))
        return state.dx

    alpha = 1.0
    D = np.diag(np.diag(HtH))

    # Sum of squares without correction
    dx_0 = np.zeros(len(ELEMENT_NAMES))
    sSq_0 = apply_correction(orbit, dx_0, alpha, times, positions, config).sum_of_squares

    def damped(damping):
        dx = expand(_solve(HtH + damping * D, Htdz))
        return dx, apply_correction(orbit, dx, alpha, times, positions, config).sum_of_squares

    # Corrections with the lesser and the greater damping factor
    dx_l, sSq_l = damped(state.damping / state.nu)
    dx_g, sSq_g = damped(state.damping)

    while sSq_l > sSq_0 and sSq_g > sSq_0 and state.damping < config.max_lambda:
        state.damping = state.nu * state.damping
        logger.debug(f"Increasing damping factor to {state.damping:.6g}")
        dx_l, sSq_l = damped(state.damping / state.nu)
        dx_g, sSq_g = damped(state.damping)

    if sSq_l < sSq_0:
        state.damping = state.damping / state.nu
        state.dx = dx_l
    else:
        state.dx = dx_g

    return state.dx


def line_search(orbit: Orbit, dx: Sequence[float], times: np.ndarray, positions: np.ndarray,
                config: DeterminationConfig = DEFAULT_CONFIG) -> SearchResult:
    """
    Bisect for the fraction between zero and one of the differential
    correction that minimizes the sum of squares.

    The endpoint with the larger sum of squares is always replaced by the
    midpoint, so the result is never worse than either full or no
    correction.
    """
    alpha_l = 0.0
    result_l = apply_correction(orbit, dx, alpha_l, times, positions, config)

    alpha_r = 1.0
    result_r = apply_correction(orbit, dx, alpha_r, times, positions, config)

    while alpha_r - alpha_l > config.line_search_tolerance:
        alpha_m = (alpha_l + alpha_r) / 2
        result_m = apply_correction(orbit, dx, alpha_m, times, positions, config)
        if result_l.sum_of_squares < result_r.sum_of_squares:
            alpha_r, result_r = alpha_m, result_m
        else:
            alpha_l, result_l = alpha_m, result_m

    if result_l.sum_of_squares < result_r.sum_of_squares:
        return result_l
    return result_r


def correction_step(orbit: Orbit, times: np.ndarray, positions: np.ndarray,
                    state: CorrectionState,
                    config: DeterminationConfig = DEFAULT_CONFIG) -> SearchResult:
    """Compute a differential correction and apply its optimal fraction."""
    dx = compute_correction(orbit, times, positions, state, config)
    return line_search(orbit, dx, times, positions, config)


def _time_offset(orbit_ip1: Orbit, orbit_i: Orbit) -> float:
    return (orbit_ip1.M - orbit_i.M) / orbit_i.mean_motion()


def _cancelled(cancel_event: Optional[threading.Event], deadline: Optional[float]) -> bool:
    if cancel_event is not None and cancel_event.is_set():
        return True
    return deadline is not None and time.monotonic() >= deadline


def differential_correction(seed: Optional[Orbit],
                            times: Sequence[float],
                            positions: Sequence[Sequence[float]],
                            method: Union[str, CorrectionMethod] = CorrectionMethod.LEVENBERG_MARQUARDT,
                            config: Optional[DeterminationConfig] = None,
                            cancel_event: Optional[threading.Event] = None,
                            deadline: Optional[float] = None) -> DeterminationResult:
    """
    Perform differential correction of a preliminary orbit using the
    Gauss-Newton or Levenberg-Marquardt method.

    Args:
        seed: The preliminary orbit, left unmodified. None (no valid
            preliminary orbit) is reported as diverged.
        times: Dates of the measured positions (MJD)
        positions: Measured geocentric inertial positions (er)
        method: "gauss-newton" or "levenberg-marquardt"
        config: Tolerances and caps, defaults to config.DEFAULT_CONFIG
        cancel_event: Optional event, checked once per outer iteration
        deadline: Optional time.monotonic() deadline, checked once per
            outer iteration

    Returns:
        DeterminationResult with the corrected orbit and one of the status
        strings STATUS_SUCCESSFUL, STATUS_DIVERGED, STATUS_EXHAUSTED or
        STATUS_CANCELLED

    Raises:
        InvalidObservationError: Malformed observations or unknown method
        SingularSystemError: Degenerate Jacobian
    """
    config = config or DEFAULT_CONFIG
    method = CorrectionMethod.parse(method)
    times, positions = validate_observations(times, positions)

    if seed is None:
        return DeterminationResult(None, STATUS_DIVERGED)

    logger.debug(f"Differential correction of {seed!r} against {len(times)} observations "
                 f"using {method.value}")

    state = CorrectionState.create(method, config)

    # Apply first optimal differential correction
    n_itn = 1
    orbit_i = seed.copy()
    search = correction_step(orbit_i, times, positions, state, config)
    orbit_ip1 = search.orbit
    cur_sSq = search.sum_of_squares

    cur_time_offset = _time_offset(orbit_ip1, orbit_i)
    time_offsets = [cur_time_offset]
    logger.warning(f"Time offset ip1-i: {cur_time_offset:f} (s) - nItn: {n_itn}")

    # Continue until the mean anomaly is determined to the given precision
    status = STATUS_SUCCESSFUL
    min_sSq = math.inf

    while abs(cur_time_offset) > config.max_time_diff:
        n_itn += 1
        if n_itn > config.max_iteration:
            logger.info("Maximum iterations exceeded.")
            status = STATUS_EXHAUSTED
            break

        if _cancelled(cancel_event, deadline):
            logger.info(f"Differential correction cancelled ({n_itn}).")
            status = STATUS_CANCELLED
            break

        if cur_sSq < min_sSq:
            min_sSq = cur_sSq
        else:
            logger.info(f"Differential correction diverging ({n_itn}).")
            return DeterminationResult(orbit_i.copy(), STATUS_DIVERGED, n_itn, min_sSq, time_offsets)

        # Apply the current optimal differential correction
        orbit_i = orbit_ip1.copy()
        search = correction_step(orbit_i, times, positions, state, config)
        orbit_ip1 = search.orbit
        cur_sSq = search.sum_of_squares

        cur_time_offset = _time_offset(orbit_ip1, orbit_i)
        time_offsets.append(cur_time_offset)
        logger.info(f"Time offset ip1-i: {cur_time_offset:f} (s) - nItn: {n_itn}")

    return DeterminationResult(orbit_ip1, status, n_itn, cur_sSq, time_offsets)
