"""
Batch Orbit Determination

Runs independent differential corrections, one per object, on a thread
pool. Each job owns its orbit and observations, so no state is shared
between workers.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Sequence, Union

from config import DeterminationConfig
from orbit_determination.differential_correction import (
    CorrectionMethod,
    DeterminationResult,
    differential_correction,
)
from orbit_determination.orbit import Orbit

logger = logging.getLogger(__name__)


@dataclass
class DeterminationJob:
    """Inputs of one differential correction"""

    key: Hashable
    seed: Optional[Orbit]
    times: Sequence[float]
    positions: Sequence[Sequence[float]]


def correct_many(jobs: List[DeterminationJob],
                 method: Union[str, CorrectionMethod] = CorrectionMethod.LEVENBERG_MARQUARDT,
                 config: Optional[DeterminationConfig] = None,
                 max_workers: int = 8,
                 cancel_event: Optional[threading.Event] = None) -> Dict[Hashable, DeterminationResult]:
    """
    Differentially correct several objects concurrently.

    Errors raised by one job propagate to the caller once all submitted
    jobs have been collected in order.

    Args:
        jobs: One job per object, keys must be unique
        method: Correction method applied to every job
        config: Shared, immutable configuration
        max_workers: Thread pool size
        cancel_event: Optional event shared by all jobs

    Returns:
        Mapping from job key to DeterminationResult
    """
    keys = [job.key for job in jobs]
    if len(set(keys)) != len(keys):
        raise ValueError("Job keys must be unique")

    results = {}
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            job.key: executor.submit(
                differential_correction, job.seed, job.times, job.positions,
                method, config, cancel_event,
            )
            for job in jobs
        }
        for key, future in futures.items():
            results[key] = future.result()
            logger.info(f"Object {key}: {results[key].status}")

    return results
