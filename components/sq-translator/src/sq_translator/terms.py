"""Coded terms, concepts and the concept hierarchy."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from sq_translator.errors import InvalidMappingError, InvalidQueryShapeError


@dataclass(frozen=True)
class Term:
    """A coded value. Equality and hashing use ``system`` and ``code`` only."""

    system: str
    code: str
    display: str = field(default="", compare=False)


@dataclass(frozen=True)
class ContextualTerm:
    """A term qualified by the context it is evaluated in; the mapping key."""

    context: Term
    term: Term


@dataclass(frozen=True)
class Concept:
    """Alternative codings of one clinical idea."""

    terms: tuple[Term, ...]

    def __post_init__(self) -> None:
        if not self.terms:
            raise InvalidQueryShapeError("A concept needs at least one term.")


@dataclass(frozen=True)
class ContextualConcept:
    context: Term
    concept: Concept

    @classmethod
    def of(cls, *terms: ContextualTerm) -> ContextualConcept:
        """Build a concept from contextual terms that share one context.

        Raises:
            InvalidQueryShapeError: If no terms are given or contexts differ.
        """
        if not terms:
            raise InvalidQueryShapeError("A concept needs at least one term.")
        contexts = {term.context for term in terms}
        if len(contexts) > 1:
            raise InvalidQueryShapeError("All terms of a concept must share one context.")
        return cls(terms[0].context, Concept(tuple(term.term for term in terms)))

    def contextual_terms(self) -> list[ContextualTerm]:
        return [ContextualTerm(self.context, term) for term in self.concept.terms]


@dataclass(frozen=True)
class ConceptNode:
    """Node of the concept hierarchy used to expand broad concepts.

    Examples:
        >>> leaf = ConceptNode(build_contextual_term(code="C71.1"))
        >>> root = ConceptNode(build_contextual_term(code="C71"), (leaf,))
        >>> [t.term.code for t in root.expand(build_contextual_term(code="C71"))]
        ['C71.1']
    """

    term: ContextualTerm
    children: tuple[ConceptNode, ...] = ()

    def expand(self, term: ContextualTerm) -> Iterator[ContextualTerm]:
        """Yield the leaf terms below every node matching ``term``.

        A matching leaf yields itself; a term that is not in the tree yields
        nothing.

        Raises:
            InvalidMappingError: If a term repeats along one branch.
        """
        yield from self._expand(term, ())

    def _expand(
        self, term: ContextualTerm, ancestors: tuple[ContextualTerm, ...]
    ) -> Iterator[ContextualTerm]:
        self._check_cycle(ancestors)
        if self.term == term:
            yield from self._leaves(ancestors)
            return
        path = (*ancestors, self.term)
        for child in self.children:
            yield from child._expand(term, path)

    def _leaves(self, ancestors: tuple[ContextualTerm, ...]) -> Iterator[ContextualTerm]:
        self._check_cycle(ancestors)
        if not self.children:
            yield self.term
            return
        path = (*ancestors, self.term)
        for child in self.children:
            yield from child._leaves(path)

    def _check_cycle(self, ancestors: tuple[ContextualTerm, ...]) -> None:
        if self.term in ancestors:
            raise InvalidMappingError(f"Cycle in concept tree at {self.term}.")


def build_term(
    *,
    system: str = "http://fhir.de/CodeSystem/bfarm/icd-10-gm",
    code: str = "C71",
    display: str = "Malignant neoplasm of brain",
) -> Term:
    """Create a term with defaults for tests and examples."""
    return Term(system=system, code=code, display=display)


def build_contextual_term(
    *,
    context: Term | None = None,
    system: str = "http://fhir.de/CodeSystem/bfarm/icd-10-gm",
    code: str = "C71",
    display: str = "",
) -> ContextualTerm:
    """Create a contextual term with defaults for tests and examples."""
    return ContextualTerm(
        context=context or Term("context", "context", "context"),
        term=Term(system=system, code=code, display=display),
    )
