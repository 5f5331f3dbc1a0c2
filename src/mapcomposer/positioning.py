"""Canonical focus-point positioning.

Territories store where they look as ``(focus_longitude, focus_latitude,
rotate_gamma)``. How that lands on a projection depends on its family:
cylindrical projections move their center, every other family rotates the
sphere so the focus point sits at the origin.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import ProjectionFamily, ProjectionParameters
from .projection import Projection


@dataclass(frozen=True, slots=True)
class FocusPoint:
    longitude: float = 0.0
    latitude: float = 0.0
    gamma: float = 0.0

    @classmethod
    def from_parameters(cls, params: ProjectionParameters) -> FocusPoint | None:
        """Focus from explicit focus fields, else inferred from center/rotate."""
        if params.has_focus:
            return cls(
                longitude=params.focus_longitude or 0.0,
                latitude=params.focus_latitude or 0.0,
                gamma=params.rotate_gamma or 0.0,
            ).normalized()
        if params.center is not None and params.center != (0.0, 0.0):
            return cls(longitude=params.center[0], latitude=params.center[1])
        if params.rotate is not None and (params.rotate[0], params.rotate[1]) != (0.0, 0.0):
            return cls(longitude=-params.rotate[0], latitude=-params.rotate[1], gamma=params.rotate[2])
        return None

    def normalized(self) -> FocusPoint:
        lon = self.longitude
        while lon > 180.0:
            lon -= 360.0
        while lon < -180.0:
            lon += 360.0
        return FocusPoint(longitude=lon, latitude=max(-90.0, min(90.0, self.latitude)), gamma=self.gamma)


def uses_center(family: ProjectionFamily) -> bool:
    return family is ProjectionFamily.CYLINDRICAL


def apply_focus(projection: Projection, focus: FocusPoint, family: ProjectionFamily | None = None) -> None:
    """Position ``projection`` on ``focus`` the way its family expects."""
    family = family or projection.family
    if uses_center(family):
        projection.center((focus.longitude, focus.latitude))
        projection.rotate((0.0, 0.0, 0.0))
    else:
        projection.rotate((-focus.longitude, -focus.latitude, focus.gamma))
        projection.center((0.0, 0.0))


def extract_focus(projection: Projection, family: ProjectionFamily | None = None) -> FocusPoint:
    family = family or projection.family
    if uses_center(family):
        lon, lat = projection.center()
        return FocusPoint(longitude=lon, latitude=lat)
    lam, phi, gamma = projection.rotate()
    return FocusPoint(longitude=-lam, latitude=-phi, gamma=gamma)
