"""Projection factory: definitions plus parameters in, live projections out."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from .models import ProjectionDefinition, ProjectionFamily, ProjectionParameters, ProjectionStrategy
from .positioning import FocusPoint, apply_focus
from .prebuilt import PREBUILT_CONSTRUCTORS
from .projection import AzimuthalProjection, ClipAngleCapable, ConicCapable, ConicProjection, Projection
from .registry import ProjectionRegistry, default_registry


_LOGGER = logging.getLogger("mapcomposer.factory")

Constructor = Callable[[], Any]


def _conic(kind: str, proj_name: str) -> Constructor:
    return lambda: ConicProjection(kind, proj_name)


def _azimuthal(kind: str, proj_name: str, clip_angle: float | None = None) -> Constructor:
    return lambda: AzimuthalProjection(kind, proj_name, clip_angle=clip_angle)


def _single(
    kind: str,
    proj_name: str,
    family: ProjectionFamily,
    **proj_params: Any,
) -> Constructor:
    return lambda: Projection(kind, proj_name, proj_params=proj_params, family=family)


_CYL = ProjectionFamily.CYLINDRICAL
_PSEUDO = ProjectionFamily.PSEUDOCYLINDRICAL
_OTHER = ProjectionFamily.OTHER

NATIVE_CONSTRUCTORS: dict[str, Constructor] = {
    "conic-conformal": _conic("conic-conformal", "lcc"),
    "conic-equal-area": _conic("conic-equal-area", "aea"),
    "conic-equidistant": _conic("conic-equidistant", "eqdc"),
    "azimuthal-equal-area": _azimuthal("azimuthal-equal-area", "laea", 180.0 - 1e-3),
    "azimuthal-equidistant": _azimuthal("azimuthal-equidistant", "aeqd", 180.0 - 1e-3),
    "orthographic": _azimuthal("orthographic", "ortho", 90.0),
    "stereographic": _azimuthal("stereographic", "stere", 142.0),
    "gnomonic": _azimuthal("gnomonic", "gnom", 60.0),
    "mercator": _single("mercator", "merc", _CYL),
    "transverse-mercator": _single("transverse-mercator", "tmerc", _CYL),
    "equirectangular": _single("equirectangular", "eqc", _CYL),
    "equal-earth": _single("equal-earth", "eqearth", _PSEUDO),
    "natural-earth": _single("natural-earth", "natearth", _PSEUDO),
}

EXTENDED_CONSTRUCTORS: dict[str, Constructor] = {
    "bonne": _single("bonne", "bonne", _PSEUDO, lat_1=45),
    "miller": _single("miller", "mill", _CYL),
    "mollweide": _single("mollweide", "moll", _PSEUDO),
    "sinusoidal": _single("sinusoidal", "sinu", _PSEUDO),
    "eckert1": _single("eckert1", "eck1", _PSEUDO),
    "eckert2": _single("eckert2", "eck2", _PSEUDO),
    "eckert3": _single("eckert3", "eck3", _PSEUDO),
    "eckert4": _single("eckert4", "eck4", _PSEUDO),
    "eckert5": _single("eckert5", "eck5", _PSEUDO),
    "eckert6": _single("eckert6", "eck6", _PSEUDO),
    "wagner6": _single("wagner6", "wag6", _PSEUDO),
    "robinson": _single("robinson", "robin", _PSEUDO),
    "winkel3": _single("winkel3", "wintri", _OTHER),
    "aitoff": _single("aitoff", "aitoff", _OTHER),
    "hammer": _single("hammer", "hammer", _OTHER),
    "bertin1953": _single("bertin1953", "bertin1953", _OTHER),
    "loximuthal": _single("loximuthal", "loxim", _PSEUDO, lat_1=40),
    "interrupted-goode-homolosine": _single("interrupted-goode-homolosine", "igh", _PSEUDO),
    "polyhedral-icosahedral": _single("polyhedral-icosahedral", "isea", ProjectionFamily.POLYHEDRAL),
}


def apply_parameters(projection: Any, definition: ProjectionDefinition, params: ProjectionParameters) -> None:
    """Apply a parameter bag to a freshly built projection.

    Positioning and parallels only make sense for single-region projections;
    pre-built composites take scale, translate and precision.
    """
    if definition.strategy is not ProjectionStrategy.COMPOSITE:
        if params.has_focus:
            focus = FocusPoint.from_parameters(params)
            if focus is not None:
                apply_focus(projection, focus, definition.family)
        else:
            if params.center is not None:
                projection.center(params.center)
            if params.rotate is not None:
                projection.rotate(params.rotate)
        if params.parallels is not None and isinstance(projection, ConicCapable):
            projection.parallels(params.parallels)
    if params.scale is not None:
        projection.scale(params.scale)
    if params.translate is not None:
        projection.translate(params.translate)
    if params.clip_angle is not None and isinstance(projection, ClipAngleCapable):
        projection.clip_angle(params.clip_angle)
    if params.precision is not None:
        projection.precision(params.precision)


class ProjectionFactory:
    """Turns projection definitions into live projection objects.

    Each strategy has its own id -> constructor table; extra constructors
    can be added with :meth:`register_constructor`.
    """

    def __init__(self, registry: ProjectionRegistry | None = None) -> None:
        self.registry = registry or default_registry()
        self._tables: dict[ProjectionStrategy, dict[str, Constructor]] = {
            ProjectionStrategy.NATIVE: dict(NATIVE_CONSTRUCTORS),
            ProjectionStrategy.EXTENDED: dict(EXTENDED_CONSTRUCTORS),
            ProjectionStrategy.COMPOSITE: dict(PREBUILT_CONSTRUCTORS),
        }

    def register_constructor(self, strategy: ProjectionStrategy, projection_id: str, constructor: Constructor) -> None:
        self._tables.setdefault(strategy, {})[projection_id] = constructor

    def supports(self, definition: ProjectionDefinition) -> bool:
        return definition.id in self._tables.get(definition.strategy, {})

    def create(
        self,
        definition: ProjectionDefinition | str,
        overrides: ProjectionParameters | Mapping[str, Any] | None = None,
    ) -> Any | None:
        """Build a projection; returns None when it cannot be built."""
        if isinstance(definition, str):
            resolved = self.registry.get(definition)
            if resolved is None:
                _LOGGER.warning("Unknown projection '%s'", definition)
                return None
            definition = resolved
        if overrides is not None and not isinstance(overrides, ProjectionParameters):
            overrides = ProjectionParameters.from_mapping(overrides)

        table = self._tables.get(definition.strategy)
        if table is None:
            _LOGGER.warning(
                "Unsupported strategy '%s' for projection '%s'", definition.strategy, definition.id
            )
            return None
        constructor = table.get(definition.id)
        if constructor is None:
            _LOGGER.warning(
                "No %s constructor registered for projection '%s'", definition.strategy.value, definition.id
            )
            return None

        crs_error = _require_crs_error()
        try:
            projection = constructor()
        except crs_error as exc:
            _LOGGER.warning("PROJ rejected projection '%s': %s", definition.id, exc)
            return None
        apply_parameters(projection, definition, definition.default_parameters.merged(overrides))
        return projection

    def create_by_id(
        self,
        projection_id: str,
        overrides: ProjectionParameters | Mapping[str, Any] | None = None,
    ) -> Any | None:
        return self.create(projection_id, overrides)


def _require_crs_error() -> type[Exception]:
    try:
        from pyproj.exceptions import CRSError
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for projection construction") from exc
    return CRSError
