"""Exceptions raised while translating structured queries.

All of them are terminal validation failures: a single criterion that cannot
be translated fails the whole query.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fhirpath_expr.errors import MalformedLiteralError

if TYPE_CHECKING:
    from sq_translator.terms import ContextualConcept, ContextualTerm, Term


class TranslationError(Exception):
    """Base exception for all translation errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class ConceptExpansionError(TranslationError):
    """A concept resolves to no term with a mapping."""

    def __init__(self, concept: ContextualConcept) -> None:
        """Initialize concept expansion error.

        Args:
            concept: The concept that could not be expanded.
        """
        self.concept = concept
        super().__init__(f"Failed to expand the concept {concept}.")


class MappingNotFoundError(TranslationError):
    """A resolved term has no entry in the mapping table."""

    def __init__(self, term: ContextualTerm) -> None:
        self.term = term
        super().__init__(
            "Mapping for concept with system `%s`, code `%s` and display `%s` and "
            "context with system `%s`, code `%s` and display `%s` not found."
            % (
                term.term.system,
                term.term.code,
                term.term.display,
                term.context.system,
                term.context.code,
                term.context.display,
            )
        )


class AttributeMappingNotFoundError(TranslationError):
    """An attribute filter code is missing from the mapping's attribute table."""

    def __init__(self, attribute_code: Term) -> None:
        self.attribute_code = attribute_code
        super().__init__(
            "Attribute mapping for concept with system `%s`, code `%s` and "
            "display `%s` not found."
            % (attribute_code.system, attribute_code.code, attribute_code.display)
        )


class MissingTimeRestrictionPathError(TranslationError):
    """A criterion asks for a time window but its mapping has no path for it."""

    def __init__(self, mapping_key: ContextualTerm) -> None:
        self.mapping_key = mapping_key
        super().__init__(f"Missing timeRestrictionPath in mapping with key {mapping_key}.")


class InvalidQueryShapeError(TranslationError):
    """Structured query content that cannot be turned into an expression."""

    pass


class InvalidMappingError(TranslationError):
    """Mapping or concept tree content that cannot be used for translation."""

    pass


__all__ = [
    "AttributeMappingNotFoundError",
    "ConceptExpansionError",
    "InvalidMappingError",
    "InvalidQueryShapeError",
    "MalformedLiteralError",
    "MappingNotFoundError",
    "MissingTimeRestrictionPathError",
    "TranslationError",
]
