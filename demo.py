"""
Orbit Determination Demonstration

This script demonstrates the key capabilities of the orbit determination package:
- Synthetic position observations from a known orbit
- Preliminary orbit determination with Gauss's method
- Differential correction with the Gauss-Newton and Levenberg-Marquardt methods
- Two-body and SGP4 orbit variants
- Residual analysis and visualization of the fit

Usage:
    python demo.py [--noise KM] [--sgp4] [--plot] [--verbose]

Arguments:
    --noise: Standard deviation of the observation noise in km
    --sgp4: Also determine an SGP4 orbit
    --plot: Save a plot of the residuals
    --verbose: Enable debug logging (otherwise OD_LOG_LEVEL, default INFO)

References:
    Montenbruck, O., & Gill, E. (2000). Satellite Orbits. (Sections 2.4 and 7.3)
"""

import argparse
import logging
import math
from typing import Dict, Tuple

import matplotlib.pyplot as plt
import numpy as np

from config import R_OPLUS, DeterminationConfig
from logging_config import configure_logging, get_logger
from orbit_determination import (
    CorrectionMethod,
    DeterminationResult,
    KeplerianOrbit,
    Sgp4Orbit,
    determine_preliminary_orbit,
)
from orbit_determination.differential_correction import differential_correction
from orbit_determination.fit_quality import FitQualityAnalyzer
from orbit_determination.orbit import Orbit

logger = get_logger(__name__)

# Reference orbit used to generate the observations
TRUTH_ELEMENTS = {
    "a": 1.5,
    "e": 0.05,
    "i": math.radians(51.6),
    "raan": math.radians(60.0),
    "argp": math.radians(30.0),
    "M": math.radians(20.0),
}
TRUTH_EPOCH = 60000.0  # MJD

# Observation schedule: every 5 minutes over one hour
OBSERVATION_SPACING_DAYS = 5.0 / 1440.0
OBSERVATION_COUNT = 13


def generate_observations(truth: Orbit, noise_km: float,
                          rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """
    Sample positions of a known orbit, with optional Gaussian noise.

    Parameters
    ----------
    truth : Orbit
        Orbit to sample
    noise_km : float
        Noise standard deviation per axis (km)
    rng : numpy.random.Generator
        Random number generator

    Returns
    -------
    times : ndarray
        Observation dates (MJD)
    positions : ndarray
        Observed positions (er), one row per date
    """
    times = truth.epoch + np.arange(OBSERVATION_COUNT) * OBSERVATION_SPACING_DAYS
    positions = truth.positions(times)
    if noise_km > 0:
        positions = positions + rng.normal(0.0, noise_km / R_OPLUS, positions.shape)
    logger.info(f"Generated {len(times)} observations with {noise_km:.3f} km noise")
    return times, positions


def log_elements(label: str, orbit: Orbit) -> None:
    logger.info(
        f"{label}: a={orbit.a:.6f}er e={orbit.e:.6f} "
        f"i={math.degrees(orbit.i):.4f}deg raan={math.degrees(orbit.raan):.4f}deg "
        f"argp={math.degrees(orbit.argp):.4f}deg M={math.degrees(orbit.M):.4f}deg"
    )


def run_corrections(seed: Orbit, times: np.ndarray, positions: np.ndarray,
                    config: DeterminationConfig) -> Dict[str, DeterminationResult]:
    """
    Refine a seed orbit with both correction methods.

    Parameters
    ----------
    seed : Orbit
        Preliminary orbit
    times : ndarray
        Observation dates (MJD)
    positions : ndarray
        Observed positions (er)
    config : DeterminationConfig
        Tolerances and caps

    Returns
    -------
    dict
        Mapping from method name to DeterminationResult
    """
    results = {}
    for method in CorrectionMethod:
        result = differential_correction(seed, times, positions, method, config)
        results[method.value] = result
        logger.info(f"{type(seed).__name__} / {method.value}: {result.status} "
                    f"({result.iterations} iterations, sSq={result.sum_of_squares:.3e})")
        if result.orbit is not None:
            log_elements("  corrected", result.orbit)
    return results


def visualize_residuals(results: Dict[str, DeterminationResult], times: np.ndarray,
                        positions: np.ndarray) -> None:
    """
    Plot the residual of each corrected orbit against the observations.

    Parameters
    ----------
    results : dict
        Mapping from label to DeterminationResult
    times : ndarray
        Observation dates (MJD)
    positions : ndarray
        Observed positions (er)
    """
    fig, ax = plt.subplots(figsize=(10, 6))
    minutes = (times - times[0]) * 1440.0

    for label, result in results.items():
        if result.orbit is None:
            continue
        residuals = np.linalg.norm(positions - result.orbit.positions(times), axis=1) * R_OPLUS
        ax.plot(minutes, residuals, marker="o", linewidth=1.5, label=f"{label} ({result.status})")

    ax.set_xlabel("Time since first observation (min)")
    ax.set_ylabel("Position residual (km)")
    ax.set_title("Differential Correction Residuals")
    ax.set_yscale("log")
    ax.legend(loc="upper left")
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    output_file = "orbit_determination_residuals.png"
    plt.savefig(output_file, dpi=150, bbox_inches="tight")
    logger.info(f"Saved residual plot to {output_file}")
    plt.close(fig)


def main() -> None:
    """Main demonstration entry point."""
    parser = argparse.ArgumentParser(description="Orbit Determination Demonstration")
    parser.add_argument("--noise", type=float, default=0.0,
                        help="Observation noise standard deviation (km)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed for the noise")
    parser.add_argument("--sgp4", action="store_true", help="Also determine an SGP4 orbit")
    parser.add_argument("--plot", action="store_true", help="Save a residual plot")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    configure_logging(logging.DEBUG if args.verbose else None)

    logger.info("Orbit Determination Demonstration")
    logger.info("=" * 60)

    config = DeterminationConfig.from_env()
    rng = np.random.default_rng(args.seed)

    truth = KeplerianOrbit(epoch=TRUTH_EPOCH, **TRUTH_ELEMENTS)
    log_elements("Truth", truth)
    times, positions = generate_observations(truth, args.noise, rng)

    # Preliminary orbit from the first and last observation
    logger.info("")
    preliminary = determine_preliminary_orbit(times[0], positions[0], times[-1], positions[-1], config)
    if preliminary is None:
        logger.error("No physically plausible preliminary orbit")
        return
    log_elements("Preliminary", preliminary)

    logger.info("")
    results = {
        f"kepler/{name}": result
        for name, result in run_corrections(preliminary, times, positions, config).items()
    }

    if args.sgp4:
        logger.info("")
        sgp4_truth = Sgp4Orbit.from_keplerian(truth)
        sgp4_times, sgp4_positions = generate_observations(sgp4_truth, args.noise, rng)
        sgp4_seed = Sgp4Orbit.from_keplerian(preliminary)
        for name, result in run_corrections(sgp4_seed, sgp4_times, sgp4_positions, config).items():
            results[f"sgp4/{name}"] = result

    # Residual analysis against the two-body observations
    logger.info("")
    analyzer = FitQualityAnalyzer(error_threshold_km=max(1.0, 3.0 * args.noise))
    for label, result in results.items():
        if result.orbit is None or not label.startswith("kepler/"):
            continue
        report = analyzer.analyze(result.orbit, times, positions, name=label)
        logger.info(f"{label}: rms={report.rms_km:.4f}km max={report.max_km:.4f}km "
                    f"worst={report.worst_level.value}")

    if args.plot:
        logger.info("")
        kepler_results = {k: v for k, v in results.items() if k.startswith("kepler/")}
        visualize_residuals(kepler_results, times, positions)

    logger.info("=" * 60)
    logger.info("Demonstration complete")


if __name__ == "__main__":
    main()
