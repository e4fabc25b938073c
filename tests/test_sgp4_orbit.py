"""
Unit Tests for the SGP4 Orbit

Tests the SGP4 orbit variant against the reference sgp4 library, element
set loading, error reporting and differential correction with SGP4.

Run with:
    python -m pytest tests/test_sgp4_orbit.py -v
"""

import math
import unittest
from unittest import mock

import numpy as np
from sgp4.api import Satrec

from config import DEFAULT_CONFIG, R_OPLUS
from orbit_determination.differential_correction import (
    STATUS_DIVERGED,
    STATUS_EXHAUSTED,
    STATUS_SUCCESSFUL,
    differential_correction,
)
from orbit_determination.exceptions import Sgp4PropagationError
from orbit_determination.keplerian_orbit import KeplerianOrbit
from orbit_determination.sgp4_orbit import (
    SGP4_ERROR_CODES,
    Sgp4Orbit,
    fit_sgp4_orbit,
    mean_motion_to_semi_major_axis,
    tle_checksum,
)
from orbit_determination.time_utils import MJD_OFFSET, mjd_to_jd_fr

# ISS TLE data (as of September 2023)
ISS_LINE1 = "1 25544U 98067A   23259.57580000  .00012022  00000-0  21844-3 0  9995"
ISS_LINE2 = "2 25544  51.6416 220.9944 0004263 122.0101 312.2755 15.49541986415598"

EPOCH = 60000.0


def make_leo():
    return Sgp4Orbit(1.1, 0.01, math.radians(51.6), 1.0, 2.0, 0.5, EPOCH)


class TestSgp4Orbit(unittest.TestCase):
    """Test suite for Sgp4Orbit."""

    def setUp(self):
        """Set up test fixtures."""
        self.orbit = make_leo()

    def test_position_matches_satrec(self):
        """Positions are the Satrec output converted to Earth radii."""
        mjd = EPOCH + 0.1
        jd, fr = mjd_to_jd_fr(mjd)
        error, r, _ = self.orbit.satrec.sgp4(jd, fr)
        self.assertEqual(error, 0)
        np.testing.assert_allclose(self.orbit.position(mjd), np.array(r) / R_OPLUS, rtol=1e-12)

    def test_close_to_two_body_at_epoch(self):
        """Short-period perturbations stay well below one hundred km."""
        kepler = KeplerianOrbit(*self.orbit.elements, EPOCH)
        distance = np.linalg.norm(self.orbit.position(EPOCH) - kepler.position(EPOCH))
        self.assertLess(distance * R_OPLUS, 100.0)

    def test_satrec_epoch(self):
        self.assertAlmostEqual(self.orbit.satrec.jdsatepoch + self.orbit.satrec.jdsatepochF,
                               EPOCH + MJD_OFFSET, places=6)

    def test_with_elements_keeps_identity(self):
        orbit = Sgp4Orbit(1.1, 0.01, 0.9, 1.0, 2.0, 0.5, EPOCH, satnum=12345, bstar=1e-4)
        changed = orbit.with_element("e", 0.02)
        self.assertIsInstance(changed, Sgp4Orbit)
        self.assertEqual(changed.satnum, 12345)
        self.assertEqual(changed.bstar, 1e-4)
        self.assertEqual(orbit.e, 0.01)

    def test_set_element_rebuilds_satrec(self):
        orbit = make_leo()
        before = orbit.position(EPOCH + 0.05)
        orbit.set_element("raan", 1.5)
        self.assertFalse(np.allclose(orbit.position(EPOCH + 0.05), before))

    def test_decayed_orbit_raises(self):
        """Perigee below the surface is reported with the SGP4 error code."""
        orbit = Sgp4Orbit(1.05, 0.1, 0.9, 1.0, 2.0, 0.0, EPOCH)
        with self.assertRaises(Sgp4PropagationError) as context:
            orbit.position(EPOCH)
        self.assertIn(context.exception.error_code, SGP4_ERROR_CODES)
        self.assertNotEqual(context.exception.error_code, 0)
        self.assertIn("orbital_parameters", context.exception.diagnostics)


class TestElementSetLoading(unittest.TestCase):

    def test_from_tle(self):
        orbit = Sgp4Orbit.from_tle(ISS_LINE1, ISS_LINE2)
        satellite = Satrec.twoline2rv(ISS_LINE1, ISS_LINE2)

        self.assertEqual(orbit.satnum, 25544)
        self.assertAlmostEqual(orbit.i, math.radians(51.6416), places=6)
        self.assertAlmostEqual(orbit.e, 0.0004263, places=9)
        self.assertAlmostEqual(orbit.a, 1.066, delta=0.01)
        self.assertAlmostEqual(orbit.epoch + MJD_OFFSET,
                               satellite.jdsatepoch + satellite.jdsatepochF, places=6)

    def test_from_tle_position_near_reference(self):
        """A rebuilt element set propagates like the published one."""
        orbit = Sgp4Orbit.from_tle(ISS_LINE1, ISS_LINE2)
        satellite = Satrec.twoline2rv(ISS_LINE1, ISS_LINE2)
        error, r, _ = satellite.sgp4(satellite.jdsatepoch, satellite.jdsatepochF)
        self.assertEqual(error, 0)
        distance_km = np.linalg.norm(orbit.position(orbit.epoch) * R_OPLUS - np.array(r))
        self.assertLess(distance_km, 10.0)

    def test_from_tle_invalid(self):
        with self.assertRaises(ValueError):
            Sgp4Orbit.from_tle("not a tle", "also not a tle")

    def test_from_tle_checksum(self):
        self.assertEqual(tle_checksum(ISS_LINE1), 5)
        self.assertEqual(tle_checksum(ISS_LINE2), 8)
        with self.assertRaises(ValueError):
            Sgp4Orbit.from_tle(ISS_LINE1[:68] + "0", ISS_LINE2)

    def test_from_tle_keeps_parser_error(self):
        """A parser failure is reported as ValueError chained to the original error."""
        with mock.patch("orbit_determination.sgp4_orbit.Satrec") as satrec:
            satrec.twoline2rv.side_effect = RuntimeError("unreadable field")
            with self.assertRaises(ValueError) as context:
                Sgp4Orbit.from_tle(ISS_LINE1, ISS_LINE2)
        self.assertIsInstance(context.exception.__cause__, RuntimeError)
        self.assertIn("unreadable field", str(context.exception))

    def test_mean_motion_conversion(self):
        """Semi-major axis round trips through mean motion."""
        orbit = make_leo()
        self.assertAlmostEqual(mean_motion_to_semi_major_axis(orbit.mean_motion()), orbit.a,
                               places=12)


class TestSgp4DifferentialCorrection(unittest.TestCase):
    """Differential correction with the SGP4 variant."""

    def setUp(self):
        self.truth = make_leo()
        self.times = EPOCH + np.arange(6) * (10.0 / 1440.0)
        self.positions = self.truth.positions(self.times)

    def test_exact_seed_converges_immediately(self):
        for method in ("gauss-newton", "levenberg-marquardt"):
            result = differential_correction(self.truth, self.times, self.positions, method)
            self.assertEqual(result.status, STATUS_SUCCESSFUL)
            self.assertEqual(result.iterations, 1)
            self.assertIsInstance(result.orbit, Sgp4Orbit)

    def test_fit_sgp4_orbit(self):
        """An SGP4 element set is fitted to a two-body orbit."""
        kepler = KeplerianOrbit(1.1, 0.01, math.radians(51.6), 1.0, 2.0, 0.5, EPOCH)
        config = DEFAULT_CONFIG.with_overrides(max_iteration=5)
        result = fit_sgp4_orbit(kepler, satnum=4242, n_samples=12, config=config)

        self.assertIsInstance(result.orbit, Sgp4Orbit)
        self.assertEqual(result.orbit.satnum, 4242)
        self.assertIn(result.status, (STATUS_SUCCESSFUL, STATUS_DIVERGED, STATUS_EXHAUSTED))
        self.assertAlmostEqual(result.orbit.a, kepler.a, delta=0.01)

    def test_fit_sgp4_orbit_needs_samples(self):
        kepler = KeplerianOrbit(1.1, 0.01, 0.9, 1.0, 2.0, 0.5, EPOCH)
        with self.assertRaises(ValueError):
            fit_sgp4_orbit(kepler, n_samples=1)


if __name__ == "__main__":
    unittest.main()
