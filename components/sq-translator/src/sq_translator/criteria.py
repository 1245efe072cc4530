"""Criteria of a structured query and their translation into filters."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Union

from fhirpath_expr import (
    FALSE,
    TRUE,
    Comparator,
    Comparison,
    Expression,
    Identifier,
    Member,
    QuantityLiteral,
    ReverseResolve,
    StringLiteral,
    and_,
    and_all,
    between,
    coding_exists,
    equals,
    exists,
    invoke,
    or_any,
)

from sq_translator.age import age_comparison, age_range, is_age
from sq_translator.errors import (
    AttributeMappingNotFoundError,
    InvalidQueryShapeError,
    MissingTimeRestrictionPathError,
)
from sq_translator.mapping import Mapping, MappingContext
from sq_translator.modifiers import (
    AttributeFilter,
    Modifier,
    TimeRestrictionModifier,
    to_decimal,
)
from sq_translator.terms import ContextualConcept, ContextualTerm, Term

logger = logging.getLogger(__name__)

SUBJECT_RESOURCE_TYPE = "Patient"
SUBJECT_LINK = "subject"


@dataclass(frozen=True)
class TimeRestriction:
    """Time window of a criterion; either bound may be open."""

    after: str | None = None
    before: str | None = None

    def to_modifier(self, mapping: Mapping) -> TimeRestrictionModifier:
        """Apply the window to the mapping's time restriction path.

        Raises:
            MissingTimeRestrictionPathError: If the mapping has no such path.
        """
        if not mapping.time_restriction_path:
            raise MissingTimeRestrictionPathError(mapping.key)
        return TimeRestrictionModifier(mapping.time_restriction_path, self.after, self.before)


@dataclass(frozen=True)
class ConstantCriterion:
    """Criterion that is always or never met."""

    value: bool

    def to_filter(self, context: MappingContext, today: date | None = None) -> Expression:
        return TRUE if self.value else FALSE


TRUE_CRITERION = ConstantCriterion(True)
FALSE_CRITERION = ConstantCriterion(False)


def identify_resource(term: ContextualTerm, mapping: Mapping) -> Expression:
    """Filter selecting resources coded with ``term``.

    Returns ``true`` when the mapping has no term code path.
    """
    if not mapping.term_code_path:
        return TRUE
    return coding_exists(Member(mapping.term_code_path), term.term.system, term.term.code)


@dataclass(frozen=True, kw_only=True)
class BaseCriterion:
    """Common translation of criteria over a coded concept.

    The concept is resolved into mapped terms and the criterion becomes a
    disjunction with one operand per term. Terms mapped to the patient are
    filtered directly; any other resource type is reached through
    ``reverseResolve(<Type>.subject).exists(...)``.
    """

    concept: ContextualConcept
    attribute_filters: tuple[AttributeFilter, ...] = ()
    time_restriction: TimeRestriction | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "attribute_filters", tuple(self.attribute_filters))

    def with_attribute_filter(self, attribute_filter: AttributeFilter) -> BaseCriterion:
        """Return a copy of this criterion with ``attribute_filter`` appended."""
        return replace(self, attribute_filters=(*self.attribute_filters, attribute_filter))

    def to_filter(self, context: MappingContext, today: date | None = None) -> Expression:
        """Translate this criterion into a boolean filter expression.

        Args:
            context: Mappings and concept tree to resolve the concept with.
            today: Reference date for age criteria; defaults to today.

        Raises:
            TranslationError: If the concept, a mapping or an attribute
                mapping cannot be found, or a time window has no path.
        """
        today = today or date.today()
        return or_any(
            self._term_expression(context, term, today) for term in context.resolve(self.concept)
        )

    def value_expression(self, mapping: Mapping, today: date) -> Expression:
        raise NotImplementedError

    def _term_expression(
        self, context: MappingContext, term: ContextualTerm, today: date
    ) -> Expression:
        mapping = context.mapping_for(term)
        if mapping.resource_type == SUBJECT_RESOURCE_TYPE:
            return self._value_and_modifiers(mapping, today)
        linked = ReverseResolve(invoke(Identifier(mapping.resource_type), Member(SUBJECT_LINK)))
        return invoke(
            linked,
            exists(and_(identify_resource(term, mapping), self._value_and_modifiers(mapping, today))),
        )

    def _value_and_modifiers(self, mapping: Mapping, today: date) -> Expression:
        value = self.value_expression(mapping, today)
        modifiers: list[Modifier] = [*mapping.fixed_modifiers, *self._attribute_modifiers(mapping)]
        if self.time_restriction is not None:
            modifiers.append(self.time_restriction.to_modifier(mapping))
        if not modifiers:
            return value
        return and_(value, and_all(modifier.expression() for modifier in modifiers))

    def _attribute_modifiers(self, mapping: Mapping) -> list[Modifier]:
        modifiers = []
        for attribute_filter in self.attribute_filters:
            attribute_mapping = mapping.attribute_mappings.get(attribute_filter.attribute_code)
            if attribute_mapping is None:
                raise AttributeMappingNotFoundError(attribute_filter.attribute_code)
            modifiers.append(attribute_filter.to_modifier(attribute_mapping))
        return modifiers


@dataclass(frozen=True, kw_only=True)
class ConceptCriterion(BaseCriterion):
    """Met when a resource coded with the concept exists."""

    def value_expression(self, mapping: Mapping, today: date) -> Expression:
        return TRUE


@dataclass(frozen=True, kw_only=True)
class NumericCriterion(BaseCriterion):
    comparator: Comparator
    value: Decimal
    unit: str | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "value", to_decimal(self.value))

    def value_expression(self, mapping: Mapping, today: date) -> Expression:
        if is_age(mapping.key.term):
            return age_comparison(mapping.value_path, self.comparator, self.value, self.unit, today)
        return Comparison(
            Member(mapping.value_path), self.comparator, QuantityLiteral(self.value, self.unit)
        )


@dataclass(frozen=True, kw_only=True)
class RangeCriterion(BaseCriterion):
    lower: Decimal
    upper: Decimal
    unit: str | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "lower", to_decimal(self.lower))
        object.__setattr__(self, "upper", to_decimal(self.upper))

    def value_expression(self, mapping: Mapping, today: date) -> Expression:
        if is_age(mapping.key.term):
            return age_range(mapping.value_path, self.lower, self.upper, self.unit, today)
        return between(
            Member(mapping.value_path),
            QuantityLiteral(self.lower, self.unit),
            QuantityLiteral(self.upper, self.unit),
        )


@dataclass(frozen=True, kw_only=True)
class ValueSetCriterion(BaseCriterion):
    """Met when the value is one of the selected concepts."""

    selected_concepts: tuple[Term, ...]

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "selected_concepts", tuple(self.selected_concepts))
        if not self.selected_concepts:
            raise InvalidQueryShapeError("Value set criterion needs selected concepts.")

    def value_expression(self, mapping: Mapping, today: date) -> Expression:
        path = Member(mapping.value_path)
        if mapping.is_coding_valued:
            coding = invoke(path, Member("coding"))
            return or_any(
                coding_exists(coding, term.system, term.code) for term in self.selected_concepts
            )
        if len(self.selected_concepts) == 1:
            return equals(path, StringLiteral(self.selected_concepts[0].code))
        return or_any(equals(path, StringLiteral(term.code)) for term in self.selected_concepts)


@dataclass(frozen=True, kw_only=True)
class ReferenceCriterion(BaseCriterion):
    """Criterion on a resource reached through a reference.

    Following the reference is not supported yet; the value part is always
    ``true`` so only the concept and its modifiers are checked.
    """

    referenced_term: Term

    def value_expression(self, mapping: Mapping, today: date) -> Expression:
        logger.debug("Reference to %s is not followed", self.referenced_term)
        return TRUE


Criterion = Union[
    ConstantCriterion,
    ConceptCriterion,
    NumericCriterion,
    RangeCriterion,
    ValueSetCriterion,
    ReferenceCriterion,
]
