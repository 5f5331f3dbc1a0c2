"""Projection registry: lookup, filtering and recommendation."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Iterable, Mapping

from .catalog import default_atlas_preferences, default_definitions, preferences_for_atlas
from .models import (
    AtlasPreferences,
    FilterContext,
    ProjectionCategory,
    ProjectionDefinition,
    ProjectionRecommendation,
    ProjectionStrategy,
    RecommendationLevel,
    SuitabilityContext,
    TerritoryContext,
    ViewMode,
)


_LOGGER = logging.getLogger("mapcomposer.registry")

BASE_SCORE = 50.0
ATLAS_RECOMMENDED_BONUS = 40.0
PROHIBITED_SCORE = -50.0
BUILT_IN_COMPOSITE_BONUS = 20.0
SUITABILITY_EXCELLENT_BONUS = 30.0
SUITABILITY_GOOD_BONUS = 20.0
SUITABILITY_USABLE_BONUS = 10.0
SUITABILITY_AVOID_PENALTY = 40.0

# Territories carry no scale metadata; every territory is treated as regional.
_TERRITORY_SCALE = "regional"


def _level_for_score(score: float) -> RecommendationLevel:
    if score >= 80:
        return RecommendationLevel.EXCELLENT
    if score >= 60:
        return RecommendationLevel.GOOD
    if score >= 40:
        return RecommendationLevel.USABLE
    return RecommendationLevel.NOT_RECOMMENDED


def _matches_context(context: SuitabilityContext, territory: TerritoryContext) -> bool:
    if context.territory_type is not None and territory.type != context.territory_type:
        return False
    if context.region is not None and territory.region != context.region:
        return False
    if context.scale is not None and context.scale != _TERRITORY_SCALE:
        return False
    return True


class ProjectionRegistry:
    """Catalog of projection definitions keyed by id and alias."""

    def __init__(
        self,
        definitions: Iterable[ProjectionDefinition] = (),
        *,
        atlas_preferences: Mapping[str, AtlasPreferences] | None = None,
    ) -> None:
        self._by_id: dict[str, ProjectionDefinition] = {}
        self._aliases: dict[str, str] = {}
        self._atlas_preferences = atlas_preferences
        for definition in definitions:
            self.register(definition)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, projection_id: object) -> bool:
        return isinstance(projection_id, str) and self.is_valid(projection_id)

    def register(self, definition: ProjectionDefinition) -> None:
        """Add ``definition`` under its id and every alias.

        Ids always win over aliases: an alias naming another registered id
        is ignored. Between two aliases the latest registration wins.
        """
        self._by_id[definition.id] = definition
        for alias in definition.aliases:
            if alias == definition.id:
                continue
            if alias in self._by_id:
                _LOGGER.warning(
                    "Alias '%s' of projection '%s' shadows a registered projection id; ignoring alias",
                    alias,
                    definition.id,
                )
                continue
            existing = self._aliases.get(alias)
            if existing is not None and existing != definition.id:
                _LOGGER.warning(
                    "Alias '%s' of projection '%s' collides with projection '%s'; overwriting",
                    alias,
                    definition.id,
                    existing,
                )
            self._aliases[alias] = definition.id

    def get(self, id_or_alias: str) -> ProjectionDefinition | None:
        found = self._by_id.get(id_or_alias)
        if found is not None:
            return found
        target = self._aliases.get(id_or_alias)
        if target is not None:
            return self._by_id.get(target)
        wanted = id_or_alias.casefold()
        for key, definition in self._by_id.items():
            if key.casefold() == wanted:
                return definition
        for alias, target in self._aliases.items():
            if alias.casefold() == wanted:
                return self._by_id.get(target)
        return None

    def get_all(self) -> list[ProjectionDefinition]:
        return list(self._by_id.values())

    def get_by_category(self, category: ProjectionCategory) -> list[ProjectionDefinition]:
        return [item for item in self.get_all() if item.category is category]

    def get_by_strategy(self, strategy: ProjectionStrategy) -> list[ProjectionDefinition]:
        return [item for item in self.get_all() if item.strategy is strategy]

    def get_categories(self) -> list[ProjectionCategory]:
        categories: list[ProjectionCategory] = []
        for definition in self.get_all():
            if definition.category not in categories:
                categories.append(definition.category)
        return categories

    def is_valid(self, id_or_alias: str) -> bool:
        return self.get(id_or_alias) is not None

    def atlas_preferences(self, atlas_id: str) -> AtlasPreferences:
        return preferences_for_atlas(atlas_id, self._atlas_preferences)

    def filter(self, context: FilterContext | None = None) -> list[ProjectionDefinition]:
        """Definitions usable in ``context``.

        Steps apply in order: atlas prohibitions, view mode, required
        capabilities, excluded categories, then the recommended-only cut.
        """
        context = context or FilterContext()
        projections = self.get_all()
        if context.atlas_id:
            prohibited = set(self.atlas_preferences(context.atlas_id).prohibited)
            projections = [item for item in projections if item.id not in prohibited]
        projections = self._apply_capability_filters(projections, context)
        if context.recommended_only:
            keep = {
                rec.projection.id
                for rec in self.recommend(context)
                if rec.level in (RecommendationLevel.EXCELLENT, RecommendationLevel.GOOD)
            }
            projections = [item for item in projections if item.id in keep]
        return projections

    def recommend(self, context: FilterContext | None = None) -> list[ProjectionRecommendation]:
        """Score every candidate for ``context``, best first.

        Prohibited projections are scored rather than dropped so callers can
        see why they were excluded.
        """
        context = context or FilterContext()
        preferences = self.atlas_preferences(context.atlas_id) if context.atlas_id else None
        candidates = self._apply_capability_filters(self.get_all(), context)

        recommendations: list[ProjectionRecommendation] = []
        for definition in candidates:
            score = BASE_SCORE
            reason = "general"
            if preferences is not None and definition.id in preferences.recommended:
                score += ATLAS_RECOMMENDED_BONUS
                reason = "atlas-recommended"
            if preferences is not None and definition.id in preferences.prohibited:
                score = PROHIBITED_SCORE
                reason = "atlas-prohibited"
            if context.territory is not None:
                score, reason = self._score_suitability(definition, context.territory, score, reason)
            if (
                context.view_mode is ViewMode.BUILT_IN_COMPOSITE
                and definition.strategy is ProjectionStrategy.COMPOSITE
            ):
                score += BUILT_IN_COMPOSITE_BONUS
            recommendations.append(
                ProjectionRecommendation(
                    projection=definition,
                    score=score,
                    level=_level_for_score(score),
                    reason=reason,
                )
            )
        recommendations.sort(key=lambda rec: rec.score, reverse=True)
        return recommendations

    def _apply_capability_filters(
        self, projections: list[ProjectionDefinition], context: FilterContext
    ) -> list[ProjectionDefinition]:
        if context.view_mode is not None:
            projections = [item for item in projections if _supports_view_mode(item, context.view_mode)]
        if context.required_capabilities:
            projections = [
                item for item in projections if item.capabilities.matches(context.required_capabilities)
            ]
        if context.exclude_categories:
            excluded = set(context.exclude_categories)
            projections = [item for item in projections if item.category not in excluded]
        return projections

    @staticmethod
    def _score_suitability(
        definition: ProjectionDefinition,
        territory: TerritoryContext,
        score: float,
        reason: str,
    ) -> tuple[float, str]:
        suitability = definition.suitability
        if any(_matches_context(ctx, territory) for ctx in suitability.excellent):
            return score + SUITABILITY_EXCELLENT_BONUS, "territory-excellent"
        if any(_matches_context(ctx, territory) for ctx in suitability.good):
            return score + SUITABILITY_GOOD_BONUS, "territory-good"
        if any(_matches_context(ctx, territory) for ctx in suitability.usable):
            return score + SUITABILITY_USABLE_BONUS, reason
        if any(_matches_context(ctx, territory) for ctx in suitability.avoid):
            return score - SUITABILITY_AVOID_PENALTY, "not-suitable"
        return score, reason


def _supports_view_mode(definition: ProjectionDefinition, view_mode: ViewMode) -> bool:
    capabilities = definition.capabilities
    if view_mode is ViewMode.SPLIT:
        return capabilities.supports_split
    if view_mode is ViewMode.COMPOSITE_CUSTOM:
        return capabilities.supports_composite
    if view_mode is ViewMode.BUILT_IN_COMPOSITE:
        return definition.strategy is ProjectionStrategy.COMPOSITE
    return capabilities.supports_unified


@lru_cache(maxsize=1)
def default_registry() -> ProjectionRegistry:
    """Registry over the packaged catalog, built once per process."""
    return ProjectionRegistry(default_definitions(), atlas_preferences=default_atlas_preferences())
