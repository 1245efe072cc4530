"""Print context used to render expression trees as text."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from fhirpath_expr.expressions import Expression

INDENT = "  "


@dataclass(frozen=True)
class PrintContext:
    """Precedence and indentation state handed down while printing.

    A node prints its children with ``precedence`` set to its own precedence.
    When a child binds more weakly than its parent requires, the child is
    wrapped in parentheses by :meth:`parenthesize`.

    Examples:
        >>> PrintContext.ZERO.parenthesize(3, "a or b")
        'a or b'
        >>> PrintContext(precedence=4).parenthesize(3, "a or b")
        '(a or b)'
    """

    precedence: int = 0
    indent_depth: int = 0

    ZERO: ClassVar[PrintContext]

    @property
    def indent(self) -> str:
        return INDENT * self.indent_depth

    def with_precedence(self, precedence: int) -> PrintContext:
        return replace(self, precedence=precedence)

    def increase_indent(self) -> PrintContext:
        return replace(self, indent_depth=self.indent_depth + 1)

    def parenthesize(self, own_precedence: int, text: str) -> str:
        """Wrap ``text`` in parentheses when it binds weaker than required."""
        if own_precedence < self.precedence:
            return f"({text})"
        return text


PrintContext.ZERO = PrintContext()


def print_expression(expression: Expression, context: PrintContext = PrintContext.ZERO) -> str:
    """Render ``expression`` as FHIRPath text starting from ``context``."""
    return expression.print(context)
