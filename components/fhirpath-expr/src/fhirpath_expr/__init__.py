"""FHIRPath expression model and printer."""

from fhirpath_expr.errors import ExpressionError, MalformedLiteralError
from fhirpath_expr.expressions import (
    FALSE,
    TRUE,
    AndExpression,
    Between,
    BooleanLiteral,
    Comparator,
    Comparison,
    DateTimeLiteral,
    Expression,
    FunctionCall,
    Identifier,
    Member,
    MemberAccess,
    Membership,
    OrExpression,
    QuantityLiteral,
    ReverseResolve,
    StringLiteral,
    Where,
    and_,
    and_all,
    between,
    coding_exists,
    count,
    equals,
    exists,
    invoke,
    is_false,
    is_true,
    negate,
    not_,
    or_,
    or_any,
)
from fhirpath_expr.printing import PrintContext, print_expression

__all__ = [
    "FALSE",
    "TRUE",
    "AndExpression",
    "Between",
    "BooleanLiteral",
    "Comparator",
    "Comparison",
    "DateTimeLiteral",
    "Expression",
    "ExpressionError",
    "FunctionCall",
    "Identifier",
    "MalformedLiteralError",
    "Member",
    "MemberAccess",
    "Membership",
    "OrExpression",
    "PrintContext",
    "QuantityLiteral",
    "ReverseResolve",
    "StringLiteral",
    "Where",
    "and_",
    "and_all",
    "between",
    "coding_exists",
    "count",
    "equals",
    "exists",
    "invoke",
    "is_false",
    "is_true",
    "negate",
    "not_",
    "or_",
    "or_any",
    "print_expression",
]
