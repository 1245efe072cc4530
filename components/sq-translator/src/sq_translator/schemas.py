"""Pydantic schemas for structured query, mapping and concept tree JSON."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, TypeVar

from fhirpath_expr import Comparator
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from sq_translator.criteria import (
    ConceptCriterion,
    Criterion,
    NumericCriterion,
    RangeCriterion,
    TimeRestriction,
    ValueSetCriterion,
)
from sq_translator.errors import InvalidQueryShapeError
from sq_translator.mapping import AttributeMapping, Mapping
from sq_translator.modifiers import (
    AttributeFilter,
    CodeModifier,
    CodingModifier,
    Modifier,
    NumericAttributeFilter,
    RangeAttributeFilter,
    ValueSetAttributeFilter,
)
from sq_translator.terms import Concept, ConceptNode, ContextualConcept, ContextualTerm, Term
from sq_translator.translator import StructuredQuery

logger = logging.getLogger(__name__)

QUANTITY_COMPARATOR = "quantity-comparator"
QUANTITY_RANGE = "quantity-range"
CONCEPT = "concept"


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TermCodeSchema(_Schema):
    system: str
    code: str
    display: str = ""
    version: str | None = None

    def to_term(self) -> Term:
        return Term(self.system, self.code, self.display)


class UnitSchema(_Schema):
    code: str


class ValueFilterSchema(_Schema):
    """Value filter of a criterion, discriminated by ``type``."""

    type: str = Field(..., description="quantity-comparator, quantity-range or concept.")
    comparator: str | None = Field(default=None, description="eq, ne, lt, le, gt or ge.")
    value: Decimal | None = None
    unit: UnitSchema | None = None
    min_value: Decimal | None = Field(default=None, alias="minValue")
    max_value: Decimal | None = Field(default=None, alias="maxValue")
    selected_concepts: list[TermCodeSchema] = Field(default_factory=list, alias="selectedConcepts")

    @property
    def unit_code(self) -> str | None:
        return self.unit.code if self.unit else None

    def parsed_comparator(self) -> Comparator:
        if self.comparator is None:
            raise InvalidQueryShapeError(f"Missing `comparator` in {self.type} filter.")
        try:
            return Comparator.from_json(self.comparator)
        except ValueError as exc:
            raise InvalidQueryShapeError(str(exc)) from exc

    def required(self, name: str) -> Decimal:
        value = getattr(self, name)
        if value is None:
            raise InvalidQueryShapeError(f"Missing `{name}` in {self.type} filter.")
        return value

    def selected_terms(self) -> tuple[Term, ...]:
        return tuple(concept.to_term() for concept in self.selected_concepts)


class AttributeFilterSchema(ValueFilterSchema):
    attribute_code: TermCodeSchema = Field(..., alias="attributeCode")

    def to_attribute_filter(self) -> AttributeFilter | None:
        """Convert to a domain filter; ``None`` for concept filters without selection.

        Raises:
            InvalidQueryShapeError: For unknown filter types or missing values.
        """
        code = self.attribute_code.to_term()
        if self.type == QUANTITY_COMPARATOR:
            return NumericAttributeFilter(
                code, self.parsed_comparator(), self.required("value"), self.unit_code
            )
        if self.type == QUANTITY_RANGE:
            return RangeAttributeFilter(
                code, self.required("min_value"), self.required("max_value"), self.unit_code
            )
        if self.type == CONCEPT:
            if not self.selected_concepts:
                logger.warning(
                    "Skip attribute filter with code `%s` because of empty selected concepts.",
                    code.code,
                )
                return None
            return ValueSetAttributeFilter(code, self.selected_terms())
        raise InvalidQueryShapeError(f"unknown attribute filter type: {self.type}")


class TimeRestrictionSchema(_Schema):
    after_date: str | None = Field(default=None, alias="afterDate")
    before_date: str | None = Field(default=None, alias="beforeDate")

    def to_time_restriction(self) -> TimeRestriction:
        return TimeRestriction(after=self.after_date, before=self.before_date)


class CriterionSchema(_Schema):
    context: TermCodeSchema
    term_codes: list[TermCodeSchema] = Field(..., alias="termCodes")
    value_filter: ValueFilterSchema | None = Field(default=None, alias="valueFilter")
    time_restriction: TimeRestrictionSchema | None = Field(default=None, alias="timeRestriction")
    attribute_filters: list[AttributeFilterSchema] = Field(
        default_factory=list, alias="attributeFilters"
    )

    def to_criterion(self) -> Criterion:
        """Convert to the criterion kind selected by the value filter.

        Raises:
            InvalidQueryShapeError: For unknown value filter types, missing
                values or empty selections.
        """
        concept = ContextualConcept(
            self.context.to_term(), Concept(tuple(code.to_term() for code in self.term_codes))
        )
        attribute_filters = tuple(
            attribute_filter
            for attribute_filter in (f.to_attribute_filter() for f in self.attribute_filters)
            if attribute_filter is not None
        )
        time_restriction = (
            self.time_restriction.to_time_restriction() if self.time_restriction else None
        )
        common: dict[str, Any] = {
            "concept": concept,
            "attribute_filters": attribute_filters,
            "time_restriction": time_restriction,
        }
        value_filter = self.value_filter
        if value_filter is None:
            return ConceptCriterion(**common)
        if value_filter.type == QUANTITY_COMPARATOR:
            return NumericCriterion(
                comparator=value_filter.parsed_comparator(),
                value=value_filter.required("value"),
                unit=value_filter.unit_code,
                **common,
            )
        if value_filter.type == QUANTITY_RANGE:
            return RangeCriterion(
                lower=value_filter.required("min_value"),
                upper=value_filter.required("max_value"),
                unit=value_filter.unit_code,
                **common,
            )
        if value_filter.type == CONCEPT:
            if not value_filter.selected_concepts:
                raise InvalidQueryShapeError(
                    "Missing or empty `selectedConcepts` key in concept criterion."
                )
            return ValueSetCriterion(selected_concepts=value_filter.selected_terms(), **common)
        raise InvalidQueryShapeError(f"unknown valueFilter type: {value_filter.type}")


class StructuredQuerySchema(_Schema):
    version: str | None = None
    display: str | None = None
    inclusion_criteria: list[list[CriterionSchema]] = Field(
        default_factory=list, alias="inclusionCriteria"
    )
    exclusion_criteria: list[list[CriterionSchema]] = Field(
        default_factory=list, alias="exclusionCriteria"
    )

    def to_query(self) -> StructuredQuery:
        return StructuredQuery(
            inclusion_criteria=tuple(
                tuple(criterion.to_criterion() for criterion in group)
                for group in self.inclusion_criteria
            ),
            exclusion_criteria=tuple(
                tuple(criterion.to_criterion() for criterion in group)
                for group in self.exclusion_criteria
            ),
        )


class ModifierSchema(_Schema):
    type: str = Field(..., description="code or coding.")
    fhir_path: str = Field(..., alias="fhirPath")
    value: list[TermCodeSchema] = Field(default_factory=list)

    def to_modifier(self) -> Modifier:
        if not self.value:
            raise InvalidQueryShapeError(f"Missing or empty `value` in {self.type} modifier.")
        if self.type == "code":
            return CodeModifier(self.fhir_path, tuple(term.code for term in self.value))
        if self.type == "coding":
            return CodingModifier(self.fhir_path, tuple(term.to_term() for term in self.value))
        raise InvalidQueryShapeError(f"unknown type: {self.type}")


class AttributeMappingSchema(_Schema):
    attribute_type: str = Field(..., alias="attributeType")
    attribute_key: TermCodeSchema = Field(..., alias="attributeKey")
    attribute_path: str = Field(..., alias="attributePath")

    def to_attribute_mapping(self) -> AttributeMapping:
        return AttributeMapping(
            self.attribute_type, self.attribute_key.to_term(), self.attribute_path
        )


class MappingSchema(_Schema):
    """One entry of a mapping file."""

    context: TermCodeSchema
    key: TermCodeSchema
    resource_type: str = Field(..., alias="resourceType")
    term_code_fhir_path: str | None = Field(default=None, alias="termCodeFhirPath")
    value_fhir_path: str | None = Field(default=None, alias="valueFhirPath")
    value_type: str | None = Field(default=None, alias="valueType")
    fixed_criteria: list[ModifierSchema] = Field(default_factory=list, alias="fixedCriteria")
    attribute_fhir_paths: list[AttributeMappingSchema] = Field(
        default_factory=list, alias="attributeFhirPaths"
    )
    time_restriction_fhir_path: str | None = Field(
        default=None, alias="timeRestrictionFhirPath"
    )

    def to_mapping(self) -> Mapping:
        attribute_mappings = [m.to_attribute_mapping() for m in self.attribute_fhir_paths]
        return Mapping(
            key=ContextualTerm(self.context.to_term(), self.key.to_term()),
            resource_type=self.resource_type,
            term_code_path=self.term_code_fhir_path,
            value_path=self.value_fhir_path or "value",
            value_kind=self.value_type,
            fixed_modifiers=tuple(m.to_modifier() for m in self.fixed_criteria),
            attribute_mappings={m.key: m for m in attribute_mappings},
            time_restriction_path=self.time_restriction_fhir_path,
        )


class ConceptNodeSchema(_Schema):
    context: TermCodeSchema
    term_code: TermCodeSchema = Field(..., alias="termCode")
    children: list[ConceptNodeSchema] = Field(default_factory=list)

    def to_node(self) -> ConceptNode:
        return ConceptNode(
            ContextualTerm(self.context.to_term(), self.term_code.to_term()),
            tuple(child.to_node() for child in self.children),
        )


ConceptNodeSchema.model_rebuild()

_MAPPING_LIST = TypeAdapter(list[MappingSchema])

ModelT = TypeVar("ModelT", bound=BaseModel)

Document = str | bytes | dict[str, Any]


def _validate(model: type[ModelT], document: Document) -> ModelT:
    if isinstance(document, (str, bytes)):
        return model.model_validate_json(document)
    return model.model_validate(document)


def parse_structured_query(document: Document) -> StructuredQuery:
    """Parse a structured query from JSON text or an already decoded dict.

    Raises:
        pydantic.ValidationError: If the document does not match the schema.
        InvalidQueryShapeError: If a criterion cannot be built.
    """
    return _validate(StructuredQuerySchema, document).to_query()


def parse_mappings(document: str | bytes | list[dict[str, Any]]) -> list[Mapping]:
    """Parse a list of mappings from JSON text or decoded data."""
    if isinstance(document, (str, bytes)):
        schemas = _MAPPING_LIST.validate_json(document)
    else:
        schemas = _MAPPING_LIST.validate_python(document)
    return [schema.to_mapping() for schema in schemas]


def parse_concept_tree(document: Document) -> ConceptNode:
    return _validate(ConceptNodeSchema, document).to_node()
