"""
Defines the core data types for the markdownlang runtime.

This module provides the program structure produced by the transformer
(functions and statements), the expression tree produced by the expression
parser, the per-invocation call frame, the control signals exchanged by the
executor, and the error hierarchy raised by parse and run.
"""

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set, Union

# =================================================================
# Errors
# =================================================================

class MarkdownLangError(Exception):
    """Base class for every error raised while parsing or running a document."""
    def __init__(self, message: str, line: Optional[int] = None):
        self.detail = message
        self.line = line
        super().__init__(f"Line {line}: {message}" if line else message)

    def with_line(self, line: Optional[int]) -> 'MarkdownLangError':
        """Returns a copy of this error tagged with `line` unless already tagged."""
        if self.line or not line:
            return self
        return type(self)(self.detail, line)


class RuntimeTypeError(MarkdownLangError, TypeError):
    """An operand had the wrong kind for an operator or coercion."""


class UndeclaredVariableError(MarkdownLangError, NameError):
    def __init__(self, variable: str, line: Optional[int] = None):
        self.variable = variable
        super().__init__(
            f"Variable '{variable}' is not declared. Use '- {variable} = value' to declare it.",
            line,
        )

    def with_line(self, line):
        if self.line or not line:
            return self
        return type(self)(self.variable, line)


class ResolutionError(MarkdownLangError, LookupError):
    """A function or document could not be resolved."""


class ExpressionSyntaxError(MarkdownLangError, ValueError):
    """Expression text could not be parsed."""


class UnsupportedExpressionError(MarkdownLangError, NotImplementedError):
    """A well-formed expression the runtime refuses to evaluate (e.g. calls)."""


# =================================================================
# Expressions
# =================================================================

@dataclass
class Literal:
    value: Any
    raw: Optional[str] = None


@dataclass
class Identifier:
    name: str


@dataclass
class BinaryExpression:
    operator: str
    left: 'Expression'
    right: 'Expression'


@dataclass
class UnaryExpression:
    operator: str
    argument: 'Expression'


@dataclass
class MemberExpression:
    object: 'Expression'
    property: 'Expression'
    computed: bool


@dataclass
class CallExpression:
    callee: 'Expression'
    arguments: List['Expression'] = field(default_factory=list)


@dataclass
class LiteralPart:
    value: str


@dataclass
class ExpressionPart:
    expression: 'Expression'


@dataclass
class TemplateLiteral:
    """Interpolated text: literal runs interleaved with `{expr}` parts."""
    parts: List[Union[LiteralPart, ExpressionPart]] = field(default_factory=list)


Expression = Union[
    Literal, Identifier, BinaryExpression, UnaryExpression,
    MemberExpression, CallExpression, TemplateLiteral,
]

# =================================================================
# Statements
# =================================================================

@dataclass
class PrintStatement:
    expression: Expression
    line: Optional[int] = None


@dataclass
class AssignmentStatement:
    variable: str
    operator: Optional[str]  # one of '+', '-', '*', '/' or None for plain '='
    value: Expression
    line: Optional[int] = None


@dataclass
class VariableDeclaration:
    variable: str
    value: Optional[Expression]  # None declares with no value
    line: Optional[int] = None


@dataclass
class FunctionCallStatement:
    function_name: str
    external_ref: Optional[str]
    arguments: List[Expression] = field(default_factory=list)
    line: Optional[int] = None


@dataclass
class ConditionalBlock:
    condition: Expression
    body: List['Statement'] = field(default_factory=list)
    line: Optional[int] = None


@dataclass
class BreakStatement:
    line: Optional[int] = None


@dataclass
class InputStatement:
    variable: str
    line: Optional[int] = None


Statement = Union[
    PrintStatement, AssignmentStatement, VariableDeclaration,
    FunctionCallStatement, ConditionalBlock, BreakStatement, InputStatement,
]

# =================================================================
# Numbers
# =================================================================

# Integers stay exact up to here; larger magnitudes are held as floats
MAX_SAFE_INTEGER = 2 ** 53


def clamp_number(n):
    """Brings an arithmetic result into the single number kind.

    Integral floats within the safe range become ints, ints beyond it become
    floats, and magnitudes too large for a float become +/-Infinity.
    """
    if isinstance(n, bool):
        return n
    if isinstance(n, int):
        if abs(n) <= MAX_SAFE_INTEGER:
            return n
        try:
            return float(n)
        except OverflowError:
            return math.inf if n > 0 else -math.inf
    if isinstance(n, float) and n.is_integer() and abs(n) <= MAX_SAFE_INTEGER:
        return int(n)
    return n


# =================================================================
# Program structure
# =================================================================

@dataclass
class FunctionDeclaration:
    name: str
    parameters: List[str] = field(default_factory=list)
    body: List[Statement] = field(default_factory=list)


@dataclass(frozen=True)
class Program:
    """A document's function table, optionally tagged with where it came from.

    `origin` is a directory path for local documents or the document's own URL
    for fetched ones; relative references inside the document resolve against it.
    """
    functions: Dict[str, FunctionDeclaration] = field(default_factory=dict)
    origin: Optional[str] = None

    def with_origin(self, origin: Optional[str]) -> 'Program':
        if origin == self.origin:
            return self
        return replace(self, origin=origin)

    def __contains__(self, name: str) -> bool:
        return name in self.functions

    def get(self, name: str) -> Optional[FunctionDeclaration]:
        return self.functions.get(name)


# =================================================================
# Runtime structures
# =================================================================

@dataclass
class CallFrame:
    """Variables of one function invocation. Conditional bodies share it."""
    function_name: str
    variables: Dict[str, Any] = field(default_factory=dict)
    declared: Set[str] = field(default_factory=set)
    args: List[Any] = field(default_factory=list)


@dataclass
class TailCall:
    """A call left pending for the trampoline instead of run in place."""
    program: Program
    function: FunctionDeclaration
    args: List[Any]


class _Halt:
    """Singleton signal: a break ended the current invocation."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "HALT"


HALT = _Halt()
