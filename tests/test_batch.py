"""
Unit Tests for Batch Orbit Determination

Run with:
    python -m pytest tests/test_batch.py -v
"""

import math
import threading
import unittest

import numpy as np

from orbit_determination.batch import DeterminationJob, correct_many
from orbit_determination.differential_correction import (
    STATUS_CANCELLED,
    STATUS_DIVERGED,
    STATUS_SUCCESSFUL,
    differential_correction,
)
from orbit_determination.keplerian_orbit import KeplerianOrbit

EPOCH = 51544.5


def make_job(key, a, raan):
    orbit = KeplerianOrbit(a, 0.1, math.radians(45.0), raan, math.pi / 3, math.pi / 4, EPOCH)
    times = EPOCH + np.arange(6) * (10.0 / 1440.0)
    return DeterminationJob(key, orbit, times, orbit.positions(times))


class TestCorrectMany(unittest.TestCase):
    """Test suite for concurrent differential correction."""

    def setUp(self):
        self.jobs = [make_job("SAT-A", 1.5, 0.5), make_job("SAT-B", 2.0, 1.0),
                     make_job("SAT-C", 3.0, 2.0)]

    def test_results_keyed_by_job(self):
        results = correct_many(self.jobs, max_workers=3)
        self.assertEqual(set(results), {"SAT-A", "SAT-B", "SAT-C"})
        for job in self.jobs:
            self.assertEqual(results[job.key].status, STATUS_SUCCESSFUL)
            np.testing.assert_allclose(results[job.key].orbit.elements, job.seed.elements,
                                       atol=1e-12)

    def test_matches_sequential_run(self):
        """Concurrent runs do not interfere with each other."""
        results = correct_many(self.jobs, method="gauss-newton")
        for job in self.jobs:
            expected = differential_correction(job.seed, job.times, job.positions, "gauss-newton")
            np.testing.assert_array_equal(results[job.key].orbit.elements,
                                          expected.orbit.elements)

    def test_missing_seed(self):
        job = DeterminationJob("SAT-X", None, self.jobs[0].times, self.jobs[0].positions)
        results = correct_many([job])
        self.assertEqual(results["SAT-X"].status, STATUS_DIVERGED)

    def test_duplicate_keys(self):
        with self.assertRaises(ValueError):
            correct_many([self.jobs[0], self.jobs[0]])

    def test_shared_cancel_event(self):
        """A set event stops every job that needs more than one iteration."""
        cancel = threading.Event()
        cancel.set()
        jobs = []
        for job in self.jobs:
            seed = job.seed.with_element("M", job.seed.M + 0.01)
            jobs.append(DeterminationJob(job.key, seed, job.times, job.positions))
        results = correct_many(jobs, cancel_event=cancel)
        for job in jobs:
            self.assertEqual(results[job.key].status, STATUS_CANCELLED)


if __name__ == "__main__":
    unittest.main()
