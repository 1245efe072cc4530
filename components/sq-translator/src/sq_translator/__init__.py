"""Structured query to FHIRPath filter translation."""

from sq_translator.criteria import (
    FALSE_CRITERION,
    TRUE_CRITERION,
    ConceptCriterion,
    ConstantCriterion,
    Criterion,
    NumericCriterion,
    RangeCriterion,
    ReferenceCriterion,
    TimeRestriction,
    ValueSetCriterion,
)
from sq_translator.errors import (
    AttributeMappingNotFoundError,
    ConceptExpansionError,
    InvalidMappingError,
    InvalidQueryShapeError,
    MalformedLiteralError,
    MappingNotFoundError,
    MissingTimeRestrictionPathError,
    TranslationError,
)
from sq_translator.mapping import AttributeMapping, Mapping, MappingContext
from sq_translator.modifiers import (
    CodeModifier,
    CodingModifier,
    NumericAttributeFilter,
    NumericModifier,
    RangeAttributeFilter,
    RangeModifier,
    TimeRestrictionModifier,
    ValueSetAttributeFilter,
)
from sq_translator.terms import Concept, ConceptNode, ContextualConcept, ContextualTerm, Term
from sq_translator.translator import (
    Parameter,
    Parameters,
    StructuredQuery,
    Translator,
    translate,
)

__all__ = [
    "FALSE_CRITERION",
    "TRUE_CRITERION",
    "AttributeMapping",
    "AttributeMappingNotFoundError",
    "CodeModifier",
    "CodingModifier",
    "Concept",
    "ConceptCriterion",
    "ConceptExpansionError",
    "ConceptNode",
    "ConstantCriterion",
    "ContextualConcept",
    "ContextualTerm",
    "Criterion",
    "InvalidMappingError",
    "InvalidQueryShapeError",
    "MalformedLiteralError",
    "Mapping",
    "MappingContext",
    "MappingNotFoundError",
    "MissingTimeRestrictionPathError",
    "NumericAttributeFilter",
    "NumericCriterion",
    "NumericModifier",
    "Parameter",
    "Parameters",
    "RangeAttributeFilter",
    "RangeCriterion",
    "RangeModifier",
    "ReferenceCriterion",
    "StructuredQuery",
    "Term",
    "TimeRestriction",
    "TimeRestrictionModifier",
    "TranslationError",
    "Translator",
    "ValueSetAttributeFilter",
    "ValueSetCriterion",
    "translate",
]
