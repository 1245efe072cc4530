"""FHIRPath expression nodes with precedence-aware printing.

Nodes are immutable values. Boolean composition goes through :func:`and_`
and :func:`or_`, which smooth away ``true``/``false`` operands and flatten
left-nested conjunctions so the printed filter stays small.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from functools import reduce
from typing import Iterable, Literal

from fhirpath_expr.errors import MalformedLiteralError
from fhirpath_expr.printing import PrintContext

logger = logging.getLogger(__name__)

OR_PRECEDENCE = 3
AND_PRECEDENCE = 4
MEMBERSHIP_PRECEDENCE = 5
EQUALITY_PRECEDENCE = 6
INEQUALITY_PRECEDENCE = 8
BETWEEN_PRECEDENCE = 10
INVOCATION_PRECEDENCE = 13
ATOM_PRECEDENCE = 100

IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_'.]*")
DATE_PATTERN = re.compile(r"[0-9]{4}(-[0-9]{2}(-[0-9]{2})?)?")
DATE_TIME_PATTERN = re.compile(
    r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}"
    r"(:[0-9]{2}(\.[0-9]+)?)?(Z|[+-][0-9]{2}:[0-9]{2})?"
)


class Comparator(Enum):
    """Comparison operators with their JSON names and print precedence."""

    EQUAL = ("eq", "=", EQUALITY_PRECEDENCE)
    NOT_EQUAL = ("ne", "!=", EQUALITY_PRECEDENCE)
    LESS_THAN = ("lt", "<", INEQUALITY_PRECEDENCE)
    LESS_EQUAL = ("le", "<=", INEQUALITY_PRECEDENCE)
    GREATER_THAN = ("gt", ">", INEQUALITY_PRECEDENCE)
    GREATER_EQUAL = ("ge", ">=", INEQUALITY_PRECEDENCE)

    def __init__(self, json_name: str, symbol: str, precedence: int) -> None:
        self.json_name = json_name
        self.symbol = symbol
        self.precedence = precedence

    @classmethod
    def from_json(cls, name: str) -> Comparator:
        """Return the comparator for a JSON name such as ``gt``.

        Raises:
            ValueError: If the name is not a known comparator.
        """
        normalized = _COMPARATOR_ALIASES.get(name.lower(), name.lower())
        for comparator in cls:
            if comparator.json_name == normalized:
                return comparator
        raise ValueError(f"unknown comparator: {name}")


_COMPARATOR_ALIASES = {"ue": "ne"}


class Expression:
    """Base class of all expression nodes."""

    @property
    def precedence(self) -> int:
        return ATOM_PRECEDENCE

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.print()


@dataclass(frozen=True)
class BooleanLiteral(Expression):
    value: bool

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        return "true" if self.value else "false"


TRUE = BooleanLiteral(True)
FALSE = BooleanLiteral(False)


def is_true(expression: Expression) -> bool:
    """Return True if ``expression`` is the ``true`` literal."""
    return isinstance(expression, BooleanLiteral) and expression.value


def is_false(expression: Expression) -> bool:
    """Return True if ``expression`` is the ``false`` literal."""
    return isinstance(expression, BooleanLiteral) and not expression.value


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


@dataclass(frozen=True)
class StringLiteral(Expression):
    value: str

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        return _quote(self.value)


@dataclass(frozen=True)
class DateTimeLiteral(Expression):
    """A date or date-time literal printed with a leading ``@``.

    A trailing ``T`` (as produced by some query builders for plain dates) is
    stripped before validation.

    Raises:
        MalformedLiteralError: If the value is neither a partial date nor a
            full date-time.
    """

    value: str

    def __post_init__(self) -> None:
        value = self.value[:-1] if self.value.endswith("T") else self.value
        if not (DATE_PATTERN.fullmatch(value) or DATE_TIME_PATTERN.fullmatch(value)):
            raise MalformedLiteralError(
                f"Invalid date or date-time literal `{self.value}`.", self.value
            )
        object.__setattr__(self, "value", value)

    @classmethod
    def from_date(cls, value: date) -> DateTimeLiteral:
        return cls(value.isoformat())

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        return f"@{self.value}"


@dataclass(frozen=True)
class QuantityLiteral(Expression):
    """A number with an optional UCUM unit, e.g. ``50 'kg'``."""

    value: Decimal
    unit: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.value, Decimal):
            object.__setattr__(self, "value", Decimal(str(self.value)))

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        number = format(self.value, "f")
        if self.unit:
            return f"{number} {_quote(self.unit)}"
        return number


@dataclass(frozen=True)
class Identifier(Expression):
    """A validated identifier or dotted path such as ``code.coding``.

    Quotes and dots are accepted for pass-through paths even though they are
    not part of the FHIRPath identifier grammar.
    """

    name: str

    def __post_init__(self) -> None:
        if not IDENTIFIER_PATTERN.fullmatch(self.name):
            raise MalformedLiteralError(f"Invalid identifier `{self.name}`.", self.name)
        if "'" in self.name:
            logger.warning("Identifier `%s` contains a single quote.", self.name)
        elif "." in self.name:
            logger.warning("Identifier `%s` contains a dot.", self.name)

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        return self.name


@dataclass(frozen=True)
class Member(Expression):
    """A member name printed verbatim, used for mapping-supplied paths."""

    name: str

    def __post_init__(self) -> None:
        if not self.name:
            raise MalformedLiteralError("Member name must not be empty.", self.name)

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        return self.name


@dataclass(frozen=True)
class MemberAccess(Expression):
    """``target.member`` where member is a name or function call."""

    target: Expression
    member: Expression

    @property
    def precedence(self) -> int:
        return INVOCATION_PRECEDENCE

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        inner = context.with_precedence(INVOCATION_PRECEDENCE)
        return f"{self.target.print(inner)}.{self.member.print(inner)}"


def _print_arguments(arguments: Iterable[Expression], context: PrintContext) -> str:
    inner = context.with_precedence(0)
    return ", ".join(argument.print(inner) for argument in arguments)


@dataclass(frozen=True)
class FunctionCall(Expression):
    name: str
    arguments: tuple[Expression, ...] = ()

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        return f"{self.name}({_print_arguments(self.arguments, context)})"


@dataclass(frozen=True)
class ReverseResolve(Expression):
    expression: Expression

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        return f"reverseResolve({_print_arguments([self.expression], context)})"


@dataclass(frozen=True)
class Where(Expression):
    expression: Expression

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        return f"where({_print_arguments([self.expression], context)})"


@dataclass(frozen=True)
class Comparison(Expression):
    left: Expression
    comparator: Comparator
    right: Expression

    @property
    def precedence(self) -> int:
        return self.comparator.precedence

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        inner = context.with_precedence(self.precedence)
        text = f"{self.left.print(inner)} {self.comparator.symbol} {self.right.print(inner)}"
        return context.parenthesize(self.precedence, text)


@dataclass(frozen=True)
class Membership(Expression):
    """``left in right`` or ``left contains right``."""

    left: Expression
    operator: Literal["in", "contains"]
    right: Expression

    def __post_init__(self) -> None:
        if self.operator not in ("in", "contains"):
            raise ValueError(f"unknown membership operator: {self.operator}")

    @property
    def precedence(self) -> int:
        return MEMBERSHIP_PRECEDENCE

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        inner = context.with_precedence(self.precedence)
        text = f"{self.left.print(inner)} {self.operator} {self.right.print(inner)}"
        return context.parenthesize(self.precedence, text)


@dataclass(frozen=True)
class Between(Expression):
    """Interval membership printed as ``X between L and U``.

    Range criteria use :func:`between` instead, which expands to two
    comparisons joined by ``and``.
    """

    expression: Expression
    lower: Expression
    upper: Expression

    @property
    def precedence(self) -> int:
        return BETWEEN_PRECEDENCE

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        inner = context.with_precedence(self.precedence)
        text = (
            f"{self.expression.print(inner)} between "
            f"{self.lower.print(inner)} and {self.upper.print(inner)}"
        )
        return context.parenthesize(self.precedence, text)


def _print_junction(
    expressions: tuple[Expression, ...],
    keyword: str,
    precedence: int,
    context: PrintContext,
) -> str:
    inner = context.with_precedence(precedence)
    separator = f" {keyword}\n{context.indent}"
    text = separator.join(expression.print(inner) for expression in expressions)
    return context.parenthesize(precedence, text)


@dataclass(frozen=True)
class AndExpression(Expression):
    expressions: tuple[Expression, ...] = field(default_factory=tuple)

    @property
    def precedence(self) -> int:
        return AND_PRECEDENCE

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        return _print_junction(self.expressions, "and", self.precedence, context)


@dataclass(frozen=True)
class OrExpression(Expression):
    expressions: tuple[Expression, ...] = field(default_factory=tuple)

    @property
    def precedence(self) -> int:
        return OR_PRECEDENCE

    def print(self, context: PrintContext = PrintContext.ZERO) -> str:
        return _print_junction(self.expressions, "or", self.precedence, context)


def _require_operands(left: Expression, right: Expression) -> None:
    if left is None or right is None:
        raise TypeError("boolean operands must be expressions, got None")


def and_(left: Expression, right: Expression) -> Expression:
    """Conjoin two expressions.

    A ``true`` operand collapses to the other operand. A left operand that is
    already a conjunction is extended in place of nesting; the right operand
    is never flattened.

    Examples:
        >>> and_(TRUE, Identifier("a")).print()
        'a'
        >>> and_(and_(Identifier("a"), Identifier("b")), Identifier("c")).print()
        'a and\\nb and\\nc'
    """
    _require_operands(left, right)
    if is_true(left):
        return right
    if is_true(right):
        return left
    if isinstance(left, AndExpression):
        return AndExpression((*left.expressions, right))
    return AndExpression((left, right))


def or_(left: Expression, right: Expression) -> Expression:
    """Disjoin two expressions.

    A ``true`` operand makes the result ``true`` and a ``false`` operand
    collapses to the other operand. Nested disjunctions are kept binary.
    """
    _require_operands(left, right)
    if is_true(left) or is_true(right):
        return TRUE
    if is_false(left):
        return right
    if is_false(right):
        return left
    return OrExpression((left, right))


def and_all(expressions: Iterable[Expression]) -> Expression:
    """Reduce ``expressions`` with :func:`and_`, seeded with ``true``."""
    return reduce(and_, expressions, TRUE)


def or_any(expressions: Iterable[Expression]) -> Expression:
    """Reduce ``expressions`` with :func:`or_`, seeded with ``false``."""
    return reduce(or_, expressions, FALSE)


def between(expression: Expression, lower: Expression, upper: Expression) -> Expression:
    """Return ``expression >= lower and expression <= upper``."""
    return and_(
        Comparison(expression, Comparator.GREATER_EQUAL, lower),
        Comparison(expression, Comparator.LESS_EQUAL, upper),
    )


def invoke(target: Expression, *members: Expression) -> Expression:
    """Chain member accesses: ``invoke(a, b, c)`` prints ``a.b.c``."""
    return reduce(MemberAccess, members, target)


def exists(*arguments: Expression) -> FunctionCall:
    return FunctionCall("exists", tuple(arguments))


def not_() -> FunctionCall:
    return FunctionCall("not")


def count() -> FunctionCall:
    return FunctionCall("count")


def negate(expression: Expression) -> Expression:
    """Return ``expression.not()``."""
    return MemberAccess(expression, not_())


def equals(path: Expression, value: Expression) -> Comparison:
    return Comparison(path, Comparator.EQUAL, value)


def coding_exists(path: Expression, system: str, code: str) -> Expression:
    """Return ``path.where(system = 'S').exists(code = 'C')``."""
    return invoke(
        path,
        Where(equals(Identifier("system"), StringLiteral(system))),
        exists(equals(Identifier("code"), StringLiteral(code))),
    )
