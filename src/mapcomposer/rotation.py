"""Spherical rotation applied before raw projection.

Angles follow the usual ``[lambda, phi, gamma]`` convention: the sphere is
first rotated by ``lambda`` around the polar axis, then by ``phi`` and
``gamma`` around the resulting equatorial axes. Rotating by
``[-lon, -lat]`` brings ``(lon, lat)`` to the origin.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from .models import Point


_EPSILON = 1e-12


def _wrap_lambda(value: float) -> float:
    if value > math.pi:
        return value - 2.0 * math.pi
    if value < -math.pi:
        return value + 2.0 * math.pi
    return value


def _clamp_unit(value: float) -> float:
    return max(-1.0, min(1.0, value))


@dataclass(frozen=True, slots=True)
class SphereRotation:
    delta_lambda: float = 0.0
    delta_phi: float = 0.0
    delta_gamma: float = 0.0

    @classmethod
    def from_degrees(cls, angles: tuple[float, float, float]) -> SphereRotation:
        return cls(
            delta_lambda=math.radians(math.fmod(angles[0], 360.0)),
            delta_phi=math.radians(math.fmod(angles[1], 360.0)),
            delta_gamma=math.radians(math.fmod(angles[2], 360.0)),
        )

    @property
    def is_identity(self) -> bool:
        return (
            abs(self.delta_lambda) < _EPSILON
            and abs(self.delta_phi) < _EPSILON
            and abs(self.delta_gamma) < _EPSILON
        )

    def forward(self, lon: float, lat: float) -> Point:
        """Rotate a degree coordinate; returns degrees."""
        if self.is_identity:
            return (lon, lat)
        lam = _wrap_lambda(math.radians(lon) + self.delta_lambda)
        phi = math.radians(lat)
        if abs(self.delta_phi) > _EPSILON or abs(self.delta_gamma) > _EPSILON:
            lam, phi = self._rotate_phi_gamma(lam, phi)
        return (math.degrees(lam), math.degrees(phi))

    def invert(self, lon: float, lat: float) -> Point:
        if self.is_identity:
            return (lon, lat)
        lam = math.radians(lon)
        phi = math.radians(lat)
        if abs(self.delta_phi) > _EPSILON or abs(self.delta_gamma) > _EPSILON:
            lam, phi = self._invert_phi_gamma(lam, phi)
        lam = _wrap_lambda(lam - self.delta_lambda)
        return (math.degrees(lam), math.degrees(phi))

    def _rotate_phi_gamma(self, lam: float, phi: float) -> tuple[float, float]:
        cos_dphi, sin_dphi = math.cos(self.delta_phi), math.sin(self.delta_phi)
        cos_dgamma, sin_dgamma = math.cos(self.delta_gamma), math.sin(self.delta_gamma)
        cos_phi = math.cos(phi)
        x = math.cos(lam) * cos_phi
        y = math.sin(lam) * cos_phi
        z = math.sin(phi)
        k = z * cos_dphi + x * sin_dphi
        return (
            math.atan2(y * cos_dgamma - k * sin_dgamma, x * cos_dphi - z * sin_dphi),
            math.asin(_clamp_unit(k * cos_dgamma + y * sin_dgamma)),
        )

    def _invert_phi_gamma(self, lam: float, phi: float) -> tuple[float, float]:
        cos_dphi, sin_dphi = math.cos(self.delta_phi), math.sin(self.delta_phi)
        cos_dgamma, sin_dgamma = math.cos(self.delta_gamma), math.sin(self.delta_gamma)
        cos_phi = math.cos(phi)
        x = math.cos(lam) * cos_phi
        y = math.sin(lam) * cos_phi
        z = math.sin(phi)
        k = z * cos_dgamma - y * sin_dgamma
        return (
            math.atan2(y * cos_dgamma + z * sin_dgamma, x * cos_dphi + k * sin_dphi),
            math.asin(_clamp_unit(k * cos_dphi - x * sin_dphi)),
        )
