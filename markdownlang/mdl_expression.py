"""
Expression parsing: the lark grammar in grammar/expression.lark turned into
mdl_datatypes expression nodes, plus the template-literal and argument-list
splitters built on it.
"""
import re
from abc import ABC, abstractmethod
from typing import List

from lark import Lark, Transformer, v_args
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput

from markdownlang.mdl_datatypes import (
    Expression, Literal, Identifier, BinaryExpression, UnaryExpression,
    MemberExpression, CallExpression, TemplateLiteral, LiteralPart, ExpressionPart,
    ExpressionSyntaxError, clamp_number,
)


class ExpressionParser(ABC):
    """Turns one expression substring into an expression tree."""

    @abstractmethod
    def parse_expression(self, text: str) -> Expression:
        raise NotImplementedError


KEYWORD_LITERALS = {'true': True, 'false': False, 'null': None}

_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', 'b': '\b', 'f': '\f', 'v': '\v', '0': '\0'}


def _unescape(body: str) -> str:
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == '\\' and i + 1 < len(body):
            nxt = body[i + 1]
            if nxt == 'u' and re.fullmatch(r'[0-9a-fA-F]{4}', body[i + 2:i + 6]):
                out.append(chr(int(body[i + 2:i + 6], 16)))
                i += 6
                continue
            out.append(_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return ''.join(out)


def _number(raw: str):
    if re.fullmatch(r'\d+', raw):
        return clamp_number(int(raw))
    return clamp_number(float(raw))


@v_args(inline=True)
class ExpressionBuilder(Transformer):
    """Builds expression nodes bottom-up from the parse of one expression."""

    def number(self, tok):
        return Literal(_number(tok), str(tok))

    def string(self, tok):
        return Literal(_unescape(tok[1:-1]), str(tok))

    def name(self, tok):
        if tok in KEYWORD_LITERALS:
            return Literal(KEYWORD_LITERALS[tok], str(tok))
        return Identifier(str(tok))

    def binary(self, left, op, right):
        return BinaryExpression(op, left, right)

    def unary(self, op, argument):
        return UnaryExpression(op, argument)

    def member(self, obj, name):
        return MemberExpression(obj, Identifier(str(name)), computed=False)

    def index(self, obj, key):
        return MemberExpression(obj, key, computed=True)

    def call(self, callee, arguments):
        return CallExpression(callee, arguments or [])

    def arguments(self, *items):
        return list(items)

    def operator(self, tok):
        return str(tok)

    or_op = and_op = eq_op = rel_op = add_op = mul_op = unary_op = operator


class LarkExpressionParser(ExpressionParser):
    """LALR parser over grammar/expression.lark."""

    _lark = None

    def __init__(self):
        # Grammar compilation is shared by every parser instance
        if LarkExpressionParser._lark is None:
            LarkExpressionParser._lark = Lark.open(
                "grammar/expression.lark",
                rel_to=__file__,
                parser="lalr",
                transformer=ExpressionBuilder(),
            )
        self.lark = LarkExpressionParser._lark

    def parse_expression(self, text: str) -> Expression:
        if not text.strip():
            raise ExpressionSyntaxError("Empty expression")
        try:
            return self.lark.parse(text)
        except UnexpectedEOF:
            raise ExpressionSyntaxError(f"Unexpected end of expression in '{text}'") from None
        except UnexpectedCharacters as e:
            raise ExpressionSyntaxError(
                f"Unexpected character {text[e.pos_in_stream]!r} at index {e.pos_in_stream} in '{text}'") from None
        except UnexpectedInput as e:
            token = getattr(e, 'token', None)
            if token is None or token.type == '$END':
                raise ExpressionSyntaxError(f"Unexpected end of expression in '{text}'") from None
            raise ExpressionSyntaxError(f"Unexpected {str(token)!r} at index {e.pos_in_stream} in '{text}'") from None


# =================================================================
# Templates and argument lists
# =================================================================

def parse_template(text: str, parser: ExpressionParser) -> TemplateLiteral:
    """Splits `text` on balanced `{...}` spans into literal and expression parts.

    An opening brace without a matching close is kept as literal text.
    """
    parts = []
    current = []
    i = 0
    while i < len(text):
        if text[i] == '{':
            depth = 1
            j = i + 1
            while j < len(text) and depth > 0:
                if text[j] == '{':
                    depth += 1
                elif text[j] == '}':
                    depth -= 1
                j += 1
            if depth == 0:
                if current:
                    parts.append(LiteralPart(''.join(current)))
                    current = []
                parts.append(ExpressionPart(parser.parse_expression(text[i + 1:j - 1])))
                i = j
                continue
        current.append(text[i])
        i += 1
    if current:
        parts.append(LiteralPart(''.join(current)))
    return TemplateLiteral(parts)


def split_arguments(text: str) -> List[str]:
    """Splits on top-level commas; commas inside quotes or brackets are kept."""
    if not text.strip():
        return []
    args = []
    current = []
    depth = 0
    quote = None
    escaped = False
    for ch in text:
        if quote:
            current.append(ch)
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in ('"', "'"):
            quote = ch
        elif ch in '([{':
            depth += 1
        elif ch in ')]}':
            depth -= 1
        elif ch == ',' and depth == 0:
            args.append(''.join(current).strip())
            current = []
            continue
        current.append(ch)
    args.append(''.join(current).strip())
    return args
