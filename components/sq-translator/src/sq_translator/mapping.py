"""Concept mappings and the lookup context used during translation."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sq_translator.errors import (
    ConceptExpansionError,
    InvalidMappingError,
    MappingNotFoundError,
)
from sq_translator.terms import ConceptNode, ContextualConcept, ContextualTerm, Term

if TYPE_CHECKING:
    from sq_translator.modifiers import Modifier

logger = logging.getLogger(__name__)

DEFAULT_TERM_CODE_PATH = "code"
DEFAULT_VALUE_PATH = "value"


@dataclass(frozen=True)
class AttributeMapping:
    """Where an attribute filter of a concept lives on the resource.

    ``kind`` is ``Code`` or ``Coding`` for value-set filters and is ignored
    for quantity filters.
    """

    kind: str
    key: Term
    path: str


@dataclass(frozen=True)
class Mapping:
    """How a contextual term is found on a FHIR resource.

    Attributes:
        key: The contextual term this mapping belongs to.
        resource_type: FHIR resource type, e.g. ``Condition``.
        term_code_path: Path to the coded element. ``None`` means the value
            path is already specific to the code and no identity filter is
            needed.
        value_path: Path to the value element.
        value_kind: ``Coding`` when values are codings, otherwise plain codes
            or quantities.
        fixed_modifiers: Modifiers applied to every criterion on this term.
        attribute_mappings: Attribute sub-mappings keyed by attribute code.
        time_restriction_path: Path holding ``dateTime``/``period`` values.
    """

    key: ContextualTerm
    resource_type: str
    term_code_path: str | None = DEFAULT_TERM_CODE_PATH
    value_path: str = DEFAULT_VALUE_PATH
    value_kind: str | None = None
    fixed_modifiers: tuple[Modifier, ...] = ()
    attribute_mappings: dict[Term, AttributeMapping] = field(default_factory=dict, hash=False)
    time_restriction_path: str | None = None

    def __post_init__(self) -> None:
        if not self.resource_type:
            raise InvalidMappingError(f"Missing resourceType in mapping with key {self.key}.")
        if not self.value_path:
            object.__setattr__(self, "value_path", DEFAULT_VALUE_PATH)
        object.__setattr__(self, "fixed_modifiers", tuple(self.fixed_modifiers))
        object.__setattr__(self, "attribute_mappings", dict(self.attribute_mappings))

    @property
    def is_coding_valued(self) -> bool:
        return (self.value_kind or "").lower() == "coding"


def build_mapping(
    key: ContextualTerm,
    resource_type: str = "Condition",
    *,
    term_code_path: str | None = DEFAULT_TERM_CODE_PATH,
    value_path: str | None = None,
    value_kind: str | None = None,
    fixed_modifiers: Iterable[Modifier] = (),
    attribute_mappings: Iterable[AttributeMapping] = (),
    time_restriction_path: str | None = None,
) -> Mapping:
    """Create a mapping, keying attribute mappings by their attribute code."""
    return Mapping(
        key=key,
        resource_type=resource_type,
        term_code_path=term_code_path,
        value_path=value_path or DEFAULT_VALUE_PATH,
        value_kind=value_kind,
        fixed_modifiers=tuple(fixed_modifiers),
        attribute_mappings={mapping.key: mapping for mapping in attribute_mappings},
        time_restriction_path=time_restriction_path,
    )


@dataclass(frozen=True)
class MappingContext:
    """Read-only mapping table plus an optional concept hierarchy.

    Built once and shared by any number of translations.
    """

    mappings: dict[ContextualTerm, Mapping] = field(default_factory=dict, hash=False)
    concept_tree: ConceptNode | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "mappings", dict(self.mappings))

    @classmethod
    def of(
        cls, mappings: Iterable[Mapping] = (), concept_tree: ConceptNode | None = None
    ) -> MappingContext:
        """Build a context from mappings keyed by their own key."""
        table: dict[ContextualTerm, Mapping] = {}
        for mapping in mappings:
            if mapping.key in table:
                logger.warning("Duplicate mapping for key %s; keeping the last one.", mapping.key)
            table[mapping.key] = mapping
        return cls(table, concept_tree)

    def find_mapping(self, key: ContextualTerm) -> Mapping | None:
        return self.mappings.get(key)

    def mapping_for(self, key: ContextualTerm) -> Mapping:
        """Return the mapping for ``key``.

        Raises:
            MappingNotFoundError: If there is no mapping for ``key``.
        """
        mapping = self.mappings.get(key)
        if mapping is None:
            raise MappingNotFoundError(key)
        return mapping

    def resolve(self, concept: ContextualConcept) -> list[ContextualTerm]:
        """Expand ``concept`` into the mapped terms it stands for.

        Each term is expanded through the concept tree when one is set. If
        nothing expands, the concept's own terms are used. Only terms with a
        mapping are kept, in order and without duplicates.

        Args:
            concept: The concept of a criterion.

        Returns:
            Non-empty list of contextual terms that have a mapping.

        Raises:
            ConceptExpansionError: If no candidate term has a mapping.
        """
        terms = concept.contextual_terms()
        expanded: list[ContextualTerm] = []
        if self.concept_tree is not None:
            for term in terms:
                expanded.extend(self.concept_tree.expand(term))
        candidates = expanded or terms
        resolved = [term for term in dict.fromkeys(candidates) if term in self.mappings]
        if not resolved:
            raise ConceptExpansionError(concept)
        logger.debug("Resolved concept %s into %d mapped terms", concept, len(resolved))
        return resolved
