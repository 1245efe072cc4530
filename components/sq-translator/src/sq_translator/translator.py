"""Translation of structured queries into aggregate request parameters.

Inclusion criteria form a conjunction of disjunctions and exclusion criteria
a disjunction of conjunctions. The result is the ``count()`` aggregation plus
one filter for the inclusion part and, when there are exclusions, a second
filter holding the negated exclusion part.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from fhirpath_expr import Expression, PrintContext, and_all, count, negate, or_any

from sq_translator.criteria import Criterion
from sq_translator.errors import InvalidQueryShapeError
from sq_translator.mapping import MappingContext

logger = logging.getLogger(__name__)

AGGREGATION = count().print()
AGGREGATION_PARAMETER_NAME = "aggregation"
FILTER_PARAMETER_NAME = "filter"


@dataclass(frozen=True)
class StructuredQuery:
    """Inclusion groups (AND of ORs) and exclusion groups (OR of ANDs)."""

    inclusion_criteria: tuple[tuple[Criterion, ...], ...]
    exclusion_criteria: tuple[tuple[Criterion, ...], ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "inclusion_criteria", tuple(tuple(group) for group in self.inclusion_criteria)
        )
        object.__setattr__(
            self, "exclusion_criteria", tuple(tuple(group) for group in self.exclusion_criteria)
        )

    @property
    def has_exclusions(self) -> bool:
        return any(self.exclusion_criteria)


@dataclass(frozen=True)
class Parameter:
    name: str
    value_string: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "valueString": self.value_string}


@dataclass(frozen=True)
class Parameters:
    """Ordered request parameters for the aggregate operation."""

    parameter: tuple[Parameter, ...] = field(default_factory=tuple)

    @property
    def aggregation(self) -> str | None:
        for parameter in self.parameter:
            if parameter.name == AGGREGATION_PARAMETER_NAME:
                return parameter.value_string
        return None

    @property
    def filters(self) -> list[str]:
        return [p.value_string for p in self.parameter if p.name == FILTER_PARAMETER_NAME]

    def to_dict(self) -> dict[str, Any]:
        """Return the FHIR ``Parameters`` resource as a JSON-ready dict."""
        return {
            "resourceType": "Parameters",
            "parameter": [parameter.to_dict() for parameter in self.parameter],
        }


def _check_inclusion(groups: Sequence[Sequence[Criterion]]) -> None:
    if not groups or not all(groups):
        raise InvalidQueryShapeError("Inclusion criteria lead to empty inclusion expression.")


def inclusion_expression(
    groups: Sequence[Sequence[Criterion]], context: MappingContext, today: date
) -> Expression:
    """Conjunction over groups of the disjunction of each group's criteria."""
    _check_inclusion(groups)
    return and_all(
        or_any(criterion.to_filter(context, today) for criterion in group) for group in groups
    )


def exclusion_expression(
    groups: Sequence[Sequence[Criterion]], context: MappingContext, today: date
) -> Expression:
    """Disjunction over groups of the conjunction of each group's criteria.

    Empty groups are skipped.
    """
    return or_any(
        and_all(criterion.to_filter(context, today) for criterion in group)
        for group in groups
        if group
    )


def translate(
    query: StructuredQuery, context: MappingContext, today: date | None = None
) -> Parameters:
    """Translate ``query`` into aggregate parameters.

    Args:
        query: The structured query.
        context: Mappings and concept tree.
        today: Reference date for age criteria; defaults to today.

    Returns:
        Parameters with the ``count()`` aggregation and one or two filters.

    Raises:
        InvalidQueryShapeError: If there are no inclusion criteria or an
            inclusion group is empty.
        TranslationError: If any criterion cannot be translated.
    """
    today = today or date.today()
    logger.debug(
        "Translating structured query with %d inclusion and %d exclusion groups",
        len(query.inclusion_criteria),
        len(query.exclusion_criteria),
    )
    inclusion = inclusion_expression(query.inclusion_criteria, context, today)
    parameters = [
        Parameter(AGGREGATION_PARAMETER_NAME, AGGREGATION),
        Parameter(FILTER_PARAMETER_NAME, inclusion.print(PrintContext.ZERO)),
    ]
    if query.has_exclusions:
        exclusion = exclusion_expression(query.exclusion_criteria, context, today)
        parameters.append(Parameter(FILTER_PARAMETER_NAME, negate(exclusion).print(PrintContext.ZERO)))
    return Parameters(tuple(parameters))


class Translator:
    """Translator bound to one mapping context.

    Instances hold no mutable state and may be shared.

    Args:
        context: Mappings and concept tree; an empty context by default.
        clock: Returns the reference date for age criteria.
    """

    def __init__(
        self,
        context: MappingContext | None = None,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.context = context or MappingContext()
        self.clock = clock

    def to_parameters(self, query: StructuredQuery) -> Parameters:
        return translate(query, self.context, self.clock())
