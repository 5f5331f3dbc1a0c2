"""Projection catalog and atlas preference loading."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml

from .models import AtlasPreferences, ProjectionDefinition


_LOGGER = logging.getLogger("mapcomposer.catalog")

DATA_DIR = Path(__file__).resolve().parent / "data"
PROJECTIONS_RESOURCE = "projections.yaml"
ATLAS_PREFERENCES_RESOURCE = "atlas_preferences.yaml"


def _read_yaml(path: Path | None, resource: str) -> Any:
    source = path if path is not None else DATA_DIR / resource
    if not source.exists():
        raise FileNotFoundError(f"Catalog file not found: {source}")
    with source.open("r", encoding="utf-8") as fh:
        return yaml.safe_load(fh)


def load_projection_definitions(path: Path | None = None) -> tuple[ProjectionDefinition, ...]:
    """Load and validate projection definitions (package data by default)."""
    source = str(path) if path is not None else PROJECTIONS_RESOURCE
    raw = _read_yaml(path, PROJECTIONS_RESOURCE)
    if not isinstance(raw, list):
        raise ValueError(f"Expected list in {source}")

    definitions: list[ProjectionDefinition] = []
    seen_ids: set[str] = set()
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"Expected mapping at index {idx} in {source}")
        definition = ProjectionDefinition.from_mapping(item)
        if definition.id in seen_ids:
            raise ValueError(f"Duplicate projection id '{definition.id}' in {source}")
        seen_ids.add(definition.id)
        definitions.append(definition)
    _LOGGER.debug("Loaded %d projection definitions from %s", len(definitions), source)
    return tuple(definitions)


def load_atlas_preferences(path: Path | None = None) -> dict[str, AtlasPreferences]:
    source = str(path) if path is not None else ATLAS_PREFERENCES_RESOURCE
    raw = _read_yaml(path, ATLAS_PREFERENCES_RESOURCE) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Expected mapping in {source}")
    preferences: dict[str, AtlasPreferences] = {}
    for atlas_id, item in raw.items():
        if not isinstance(item, dict):
            raise ValueError(f"Expected mapping for atlas '{atlas_id}' in {source}")
        preferences[str(atlas_id)] = AtlasPreferences.from_mapping(item)
    return preferences


@lru_cache(maxsize=1)
def default_definitions() -> tuple[ProjectionDefinition, ...]:
    return load_projection_definitions()


@lru_cache(maxsize=1)
def default_atlas_preferences() -> Mapping[str, AtlasPreferences]:
    return load_atlas_preferences()


def preferences_for_atlas(
    atlas_id: str,
    preferences: Mapping[str, AtlasPreferences] | None = None,
) -> AtlasPreferences:
    """Preferences for ``atlas_id``; unknown atlases get a conic-conformal default."""
    table = default_atlas_preferences() if preferences is None else preferences
    found = table.get(atlas_id)
    if found is not None:
        return found
    return AtlasPreferences(recommended=(f"conic-conformal-{atlas_id}",))
