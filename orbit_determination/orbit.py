"""
Orbit Abstraction

Common interface of the orbit variants consumed by the determination engine.
An orbit is described by six classical elements in Earth radii and radians,
ordered (a, e, i, raan, argp, M), and an epoch given as a Modified Julian
Date. Variants differ only in how position is propagated from the elements.

The engine never branches on the concrete variant: new orbits of "the same
kind" are derived with with_elements() / with_element(), which return fresh
instances and leave the receiver untouched.
"""

import math
from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np

from config import GM_OPLUS, R_OPLUS

TWO_PI = 2.0 * math.pi

ELEMENT_NAMES = ("a", "e", "i", "raan", "argp", "M")
ANGLE_NAMES = ("i", "raan", "argp", "M")


def wrap_angle(phi: float) -> float:
    """
    Wrap an angle into [0, 2π].

    Angles already inside the interval are returned unchanged, so 2π itself
    is preserved.
    """
    if phi > TWO_PI or phi < 0:
        phi = phi % TWO_PI
    return phi


class Orbit(ABC):
    """
    Base class for orbits described by classical elements.

    Attributes
    ----------
    a : float
        Semi-major axis [er]
    e : float
        Eccentricity [-]
    i : float
        Inclination [rad]
    raan : float
        Right ascension of the ascending node [rad]
    argp : float
        Argument of perigee [rad]
    M : float
        Mean anomaly at epoch [rad]
    epoch : float
        Epoch [MJD]
    """

    def __init__(self, a, e, i, raan, argp, M, epoch):
        self.a = float(a)
        self.e = float(e)
        self.i = wrap_angle(float(i))
        self.raan = wrap_angle(float(raan))
        self.argp = wrap_angle(float(argp))
        self.M = wrap_angle(float(M))
        self.epoch = float(epoch)

    @property
    def elements(self) -> np.ndarray:
        """The six classical elements as a vector."""
        return np.array([getattr(self, name) for name in ELEMENT_NAMES])

    def get_element(self, name: str) -> float:
        self._check_name(name)
        return getattr(self, name)

    def set_element(self, name: str, value: float) -> None:
        """Set one element in place, wrapping angles into [0, 2π]."""
        self._check_name(name)
        value = float(value)
        if name in ANGLE_NAMES:
            value = wrap_angle(value)
        setattr(self, name, value)
        self._elements_changed()

    def with_element(self, name: str, value: float) -> "Orbit":
        """Return a sibling orbit with one element replaced."""
        self._check_name(name)
        elements = self.elements
        elements[ELEMENT_NAMES.index(name)] = value
        return self.with_elements(elements)

    @abstractmethod
    def with_elements(self, elements: Sequence[float]) -> "Orbit":
        """Return a new orbit of the same variant and epoch with these elements."""

    def copy(self) -> "Orbit":
        return self.with_elements(self.elements)

    def mean_motion(self) -> float:
        """Mean motion [rad/s]."""
        return math.sqrt(GM_OPLUS / (R_OPLUS * self.a) ** 3)
        # [rad/s] = [ [km^3/s^2] / [ [km/er] * [er] ]^3 ]^(1/2)

    def orbital_period(self) -> float:
        """Orbital period [s]."""
        return TWO_PI / self.mean_motion()

    @abstractmethod
    def position(self, mjd: float) -> np.ndarray:
        """Geocentric inertial position [er] at the given date."""

    def positions(self, times: Sequence[float]) -> np.ndarray:
        """Positions at several dates, one row per date."""
        return np.array([self.position(t) for t in times])

    def _elements_changed(self) -> None:
        """Hook for variants caching values derived from the elements."""

    @staticmethod
    def _check_name(name: str) -> None:
        if name not in ELEMENT_NAMES:
            raise KeyError(f"Unknown orbital element {name!r}; expected one of {ELEMENT_NAMES}")

    def __repr__(self):
        return (
            f"{type(self).__name__}(a={self.a:.9f}, e={self.e:.9f}, i={self.i:.9f}, "
            f"raan={self.raan:.9f}, argp={self.argp:.9f}, M={self.M:.9f}, epoch={self.epoch:.9f})"
        )
