"""Modifiers and attribute filters.

A modifier is a boolean fragment over one path of a resource. Mappings carry
fixed modifiers; attribute filters of a criterion become modifiers once their
attribute code is looked up in the mapping's attribute table.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Union

from fhirpath_expr import (
    TRUE,
    Comparator,
    Comparison,
    DateTimeLiteral,
    Expression,
    Member,
    QuantityLiteral,
    StringLiteral,
    and_,
    between,
    coding_exists,
    equals,
    invoke,
    or_,
    or_any,
)

from sq_translator.errors import InvalidMappingError, InvalidQueryShapeError
from sq_translator.terms import Term

if TYPE_CHECKING:
    from sq_translator.mapping import AttributeMapping


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a JSON number to ``Decimal`` without binary float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class CodeModifier:
    """``path = 'code'``, or a disjunction of such equalities."""

    path: str
    codes: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "codes", tuple(self.codes))
        if not self.codes:
            raise InvalidQueryShapeError(f"Code modifier on `{self.path}` has no codes.")

    def expression(self) -> Expression:
        path = Member(self.path)
        if len(self.codes) == 1:
            return equals(path, StringLiteral(self.codes[0]))
        return or_any(equals(path, StringLiteral(code)) for code in self.codes)


@dataclass(frozen=True)
class CodingModifier:
    """``path.coding.where(system = 'S').exists(code = 'C')`` per term."""

    path: str
    terms: tuple[Term, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "terms", tuple(self.terms))
        if not self.terms:
            raise InvalidQueryShapeError(f"Coding modifier on `{self.path}` has no terms.")

    def expression(self) -> Expression:
        coding = invoke(Member(self.path), Member("coding"))
        return or_any(coding_exists(coding, term.system, term.code) for term in self.terms)


@dataclass(frozen=True)
class NumericModifier:
    path: str
    comparator: Comparator
    value: Decimal
    unit: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", to_decimal(self.value))

    def expression(self) -> Expression:
        return Comparison(Member(self.path), self.comparator, QuantityLiteral(self.value, self.unit))


@dataclass(frozen=True)
class RangeModifier:
    path: str
    lower: Decimal
    upper: Decimal
    unit: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "lower", to_decimal(self.lower))
        object.__setattr__(self, "upper", to_decimal(self.upper))

    def expression(self) -> Expression:
        return between(
            Member(self.path),
            QuantityLiteral(self.lower, self.unit),
            QuantityLiteral(self.upper, self.unit),
        )


@dataclass(frozen=True)
class TimeRestrictionModifier:
    """Restricts ``path.dateTime`` or ``path.period`` to a time window.

    Both bounds are exclusive. With only ``before`` set, the date-time or the
    period start must lie before it; with only ``after`` set, the date-time or
    the period end must lie after it. With both set, any of the three must
    fall inside the window.

    Raises:
        MalformedLiteralError: If a bound is not a valid date or date-time.
    """

    path: str
    after: str | None = None
    before: str | None = None

    def __post_init__(self) -> None:
        # Validates both bounds up front.
        self._literal(self.after)
        self._literal(self.before)

    @staticmethod
    def _literal(value: str | None) -> DateTimeLiteral | None:
        return DateTimeLiteral(value) if value else None

    def expression(self) -> Expression:
        after = self._literal(self.after)
        before = self._literal(self.before)
        date_time = invoke(Member(self.path), Member("dateTime"))
        start = invoke(Member(self.path), Member("period"), Member("start"))
        end = invoke(Member(self.path), Member("period"), Member("end"))

        if after is not None and before is not None:
            return or_(
                _within(date_time, after, before),
                or_(_within(start, after, before), _within(end, after, before)),
            )
        if before is not None:
            return or_(
                Comparison(date_time, Comparator.LESS_THAN, before),
                Comparison(start, Comparator.LESS_THAN, before),
            )
        if after is not None:
            return or_(
                Comparison(date_time, Comparator.GREATER_THAN, after),
                Comparison(end, Comparator.GREATER_THAN, after),
            )
        return TRUE


def _within(path: Expression, after: Expression, before: Expression) -> Expression:
    return and_(
        Comparison(path, Comparator.GREATER_THAN, after),
        Comparison(path, Comparator.LESS_THAN, before),
    )


Modifier = Union[
    CodeModifier, CodingModifier, NumericModifier, RangeModifier, TimeRestrictionModifier
]


@dataclass(frozen=True)
class NumericAttributeFilter:
    attribute_code: Term
    comparator: Comparator
    value: Decimal
    unit: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", to_decimal(self.value))

    def to_modifier(self, attribute_mapping: AttributeMapping) -> Modifier:
        return NumericModifier(attribute_mapping.path, self.comparator, self.value, self.unit)


@dataclass(frozen=True)
class RangeAttributeFilter:
    attribute_code: Term
    lower: Decimal
    upper: Decimal
    unit: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "lower", to_decimal(self.lower))
        object.__setattr__(self, "upper", to_decimal(self.upper))

    def to_modifier(self, attribute_mapping: AttributeMapping) -> Modifier:
        return RangeModifier(attribute_mapping.path, self.lower, self.upper, self.unit)


@dataclass(frozen=True)
class ValueSetAttributeFilter:
    """Attribute must take one of the selected codes."""

    attribute_code: Term
    selected_concepts: tuple[Term, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "selected_concepts", tuple(self.selected_concepts))
        if not self.selected_concepts:
            raise InvalidQueryShapeError(
                f"Attribute filter `{self.attribute_code.code}` has no selected concepts."
            )

    def to_modifier(self, attribute_mapping: AttributeMapping) -> Modifier:
        """Build a code or coding modifier depending on the mapping kind.

        Raises:
            InvalidMappingError: If the attribute mapping kind is neither
                ``Code`` nor ``Coding``.
        """
        kind = attribute_mapping.kind.lower()
        if kind == "code":
            return CodeModifier(
                attribute_mapping.path, tuple(term.code for term in self.selected_concepts)
            )
        if kind == "coding":
            return CodingModifier(attribute_mapping.path, self.selected_concepts)
        raise InvalidMappingError(f"unknown attribute mapping type: {attribute_mapping.kind}")


AttributeFilter = Union[NumericAttributeFilter, RangeAttributeFilter, ValueSetAttributeFilter]
