"""
Unit Tests for Preliminary Orbit Determination

Tests Gauss's method against positions generated from known two-body
orbits, the plausibility checks on the result, and input validation.

Run with:
    python -m pytest tests/test_preliminary.py -v
"""

import math
import unittest

import numpy as np

from config import DEFAULT_CONFIG
from orbit_determination.exceptions import InvalidObservationError
from orbit_determination.keplerian_orbit import KeplerianOrbit
from orbit_determination.preliminary import (
    as_position,
    determine_preliminary_orbit,
    solve_sector_triangle_ratio,
)


class TestGaussMethod(unittest.TestCase):
    """Test suite for determine_preliminary_orbit."""

    def setUp(self):
        """Set up a moderately eccentric, inclined orbit."""
        self.epoch = 51544.5
        self.truth = KeplerianOrbit(2.0, 0.1, math.radians(45.0), math.pi / 4,
                                    math.pi / 3, math.pi / 4, self.epoch)
        self.t_a = self.epoch
        self.t_b = self.epoch + 1.0 / 24.0  # one hour later

    def test_recovers_generating_orbit(self):
        """Elements from two exact positions match the generating orbit."""
        r_a = self.truth.position(self.t_a)
        r_b = self.truth.position(self.t_b)

        orbit = determine_preliminary_orbit(self.t_a, r_a, self.t_b, r_b)

        self.assertIsInstance(orbit, KeplerianOrbit)
        self.assertEqual(orbit.epoch, self.t_a)
        np.testing.assert_allclose(orbit.elements[:5], self.truth.elements[:5], rtol=0, atol=1e-10)
        self.assertAlmostEqual(orbit.M, self.truth.M, places=9)

    def test_recovered_orbit_reproduces_positions(self):
        """The determined orbit passes through both observed positions."""
        r_a = self.truth.position(self.t_a)
        r_b = self.truth.position(self.t_b)

        orbit = determine_preliminary_orbit(self.t_a, r_a, self.t_b, r_b)

        np.testing.assert_allclose(orbit.position(self.t_a), r_a, atol=1e-6)
        np.testing.assert_allclose(orbit.position(self.t_b), r_b, atol=1e-6)

    def test_accepts_lists(self):
        r_a = list(self.truth.position(self.t_a))
        r_b = list(self.truth.position(self.t_b))
        self.assertIsNotNone(determine_preliminary_orbit(self.t_a, r_a, self.t_b, r_b))

    def test_apogee_too_high_returns_none(self):
        """An orbit whose apogee exceeds seven Earth radii is rejected."""
        truth = KeplerianOrbit(6.618108053001019, 0.1, math.radians(1.0), math.pi / 4,
                               math.pi / 4, math.pi / 4, self.epoch)
        t_b = self.epoch + 2.0 / 24.0
        orbit = determine_preliminary_orbit(self.epoch, truth.position(self.epoch),
                                            t_b, truth.position(t_b))
        self.assertIsNone(orbit)

    def determine_from(self, a, e, hours):
        """Run Gauss's method on two exact positions of an orbit with the given shape."""
        truth = KeplerianOrbit(a, e, math.radians(45.0), math.pi / 4,
                               math.pi / 3, math.pi / 4, self.epoch)
        t_b = self.epoch + hours / 24.0
        return determine_preliminary_orbit(self.epoch, truth.position(self.epoch),
                                           t_b, truth.position(t_b))

    def test_perigee_below_surface_returns_none(self):
        """Perigee at 0.945 er lies inside the Earth."""
        self.assertIsNone(self.determine_from(1.05, 0.1, 20.0 / 60.0))

    def test_perigee_just_above_surface_accepted(self):
        """Perigee at 1.0008 er passes the plausibility check."""
        orbit = self.determine_from(1.112, 0.1, 20.0 / 60.0)
        self.assertIsNotNone(orbit)
        self.assertAlmostEqual(orbit.a * (1 - orbit.e), 1.112 * 0.9, places=9)

    def test_apogee_just_below_limit_accepted(self):
        """Apogee at 6.993 er passes the plausibility check."""
        orbit = self.determine_from(6.3, 0.11, 2.0)
        self.assertIsNotNone(orbit)
        self.assertAlmostEqual(orbit.a * (1 + orbit.e), 6.3 * 1.11, places=9)

    def test_apogee_just_above_limit_returns_none(self):
        """Apogee at 7.056 er is rejected."""
        self.assertIsNone(self.determine_from(6.3, 0.12, 2.0))

    def test_hyperbolic_arc_returns_none(self):
        """A quarter revolution at 1.2 er in five minutes gives e >= 1."""
        with self.assertLogs("orbit_determination.preliminary", level="DEBUG") as logs:
            orbit = determine_preliminary_orbit(self.epoch, [1.2, 0.0, 0.0],
                                                self.epoch + 5.0 / 1440.0, [0.0, 1.2, 0.1])
        self.assertIsNone(orbit)
        self.assertTrue(any("eccentricity" in line for line in logs.output))

    def test_root_find_exhaustion_keeps_last_iterate(self):
        """An iteration cap that is hit early still yields a usable orbit."""
        config = DEFAULT_CONFIG.with_overrides(max_iteration=1, precision_eta=1e-15)
        r_a = self.truth.position(self.t_a)
        r_b = self.truth.position(self.t_b)

        with self.assertLogs("orbit_determination.preliminary", level="WARNING"):
            orbit = determine_preliminary_orbit(self.t_a, r_a, self.t_b, r_b, config)

        self.assertIsNotNone(orbit)
        np.testing.assert_allclose(orbit.elements, self.truth.elements, atol=1e-3)

    def test_unbound_arc_returns_none(self):
        """A quarter revolution in one minute has no elliptical solution."""
        orbit = determine_preliminary_orbit(self.epoch, [1.5, 0.0, 0.0],
                                            self.epoch + 1.0 / 1440.0, [0.0, 1.5, 0.0])
        self.assertIsNone(orbit)

    def test_equal_dates_raise(self):
        r_a = self.truth.position(self.t_a)
        r_b = self.truth.position(self.t_b)
        with self.assertRaises(InvalidObservationError):
            determine_preliminary_orbit(self.t_a, r_a, self.t_a, r_b)

    def test_collinear_vectors_raise(self):
        """Parallel position vectors do not define an orbital plane."""
        with self.assertRaises(InvalidObservationError):
            determine_preliminary_orbit(self.t_a, [1.5, 0.0, 0.0], self.t_b, [3.0, 0.0, 0.0])
        with self.assertRaises(InvalidObservationError):
            determine_preliminary_orbit(self.t_a, [1.5, 0.0, 0.0], self.t_b, [-1.5, 0.0, 0.0])

    def test_malformed_vectors_raise(self):
        r_b = self.truth.position(self.t_b)
        with self.assertRaises(InvalidObservationError):
            determine_preliminary_orbit(self.t_a, [1.0, 2.0], self.t_b, r_b)
        with self.assertRaises(InvalidObservationError):
            determine_preliminary_orbit(self.t_a, [1.0, float("nan"), 0.0], self.t_b, r_b)

    def test_invalid_observation_is_value_error(self):
        """Callers catching ValueError also see malformed input."""
        with self.assertRaises(ValueError) as context:
            as_position("abc")
        self.assertIsInstance(context.exception.__cause__, ValueError)


class TestSectorTriangleRatio(unittest.TestCase):

    def test_converges_above_one(self):
        """The sector always exceeds the triangle for a short arc."""
        result = solve_sector_triangle_ratio(0.05, 0.1, DEFAULT_CONFIG)
        self.assertTrue(result.converged)
        self.assertGreater(result.eta, 1.0)
        self.assertLess(result.iterations, 50)

    def test_iteration_cap_reports_not_converged(self):
        config = DEFAULT_CONFIG.with_overrides(max_iteration=1, precision_eta=1e-15)
        with self.assertLogs("orbit_determination.preliminary", level="WARNING") as logs:
            result = solve_sector_triangle_ratio(0.05, 0.01, config)
        self.assertFalse(result.converged)
        self.assertEqual(result.iterations, 2)
        self.assertGreater(result.eta, 1.0)
        self.assertIn("Maximum iterations exceeded", logs.output[0])


if __name__ == "__main__":
    unittest.main()
