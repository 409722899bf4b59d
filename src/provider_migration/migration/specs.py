"""Target spec builder.

Maps each legacy category to the canonical target definition (and model
definitions) found in the category catalog.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field

from provider_migration.migration.catalog import CategoryCatalog
from provider_migration.migration.types import SubResourceSpec, TargetSpec
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SpecBuildResult:
    """Specs for mapped categories plus the categories the catalog lacks."""

    target_specs: list[TargetSpec] = field(default_factory=list)
    unmapped_categories: list[str] = field(default_factory=list)

    @property
    def sub_resource_specs(self) -> list[SubResourceSpec]:
        return flatten_sub_resources(self.target_specs)


def flatten_sub_resources(specs: list[TargetSpec]) -> list[SubResourceSpec]:
    """One entry per model definition, tagged with its owning category."""
    return [
        SubResourceSpec(
            category=spec.category,
            identifier=str(definition.get("identifier", "")),
            definition=definition,
            affected_record_count=spec.affected_record_count,
        )
        for spec in specs
        for definition in spec.sub_resource_definitions
    ]


class TargetSpecBuilder:
    """Derives fresh TargetSpecs from the catalog for every plan."""

    def __init__(self, catalog: CategoryCatalog):
        self.catalog = catalog

    def build_spec(self, category: str, record_count: int) -> TargetSpec | None:
        """Spec for a single category, or None when the catalog has no entry."""
        entry = self.catalog.get(category)
        if entry is None:
            logger.warning("no_catalog_entry_for_category", category=category)
            return None

        return TargetSpec(
            category=category,
            target_definition=entry.target_definition,
            sub_resource_definitions=entry.sub_resource_definitions,
            affected_record_count=record_count,
        )

    def build(self, counts_by_category: Mapping[str, int]) -> SpecBuildResult:
        """
        Build specs for every category, sorted by category name.

        Categories without a catalog entry are dropped from the specs and
        listed in ``unmapped_categories``.
        """
        result = SpecBuildResult()
        for category in sorted(counts_by_category):
            spec = self.build_spec(category, counts_by_category[category])
            if spec is None:
                result.unmapped_categories.append(category)
            else:
                result.target_specs.append(spec)

        logger.debug(
            "target_specs_built",
            mapped=[s.category for s in result.target_specs],
            unmapped=result.unmapped_categories,
        )
        return result
