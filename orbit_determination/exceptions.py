"""
Exceptions raised by the orbit determination package.

Only contract violations raise. Expected numerical outcomes (no valid
preliminary orbit, a diverged or exhausted correction) are returned as
values instead.
"""

import numpy as np


class OrbitDeterminationError(Exception):
    """Base class for all orbit determination errors."""


class InvalidObservationError(OrbitDeterminationError, ValueError):
    """Observation data or call arguments are malformed."""


class SingularSystemError(OrbitDeterminationError, np.linalg.LinAlgError):
    """The normal equations of a differential correction cannot be solved."""


class Sgp4PropagationError(OrbitDeterminationError, RuntimeError):
    """SGP4 reported a non-zero error code."""

    def __init__(self, error_code: int, message: str, diagnostics: dict = None):
        super().__init__(f"SGP4 error {error_code}: {message}")
        self.error_code = error_code
        self.diagnostics = diagnostics or {}
