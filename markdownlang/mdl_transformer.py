"""
Transforms the document tree into a Program of functions and statements.
"""
import os
import re
import sys
from typing import List, Optional
from urllib.parse import unquote

from markdownlang.mdl_datatypes import (
    Program, FunctionDeclaration, Statement,
    PrintStatement, AssignmentStatement, VariableDeclaration, FunctionCallStatement,
    ConditionalBlock, BreakStatement, InputStatement,
    Literal, ExpressionSyntaxError,
)
from markdownlang.mdl_document import DocumentParser, MarkdownItDocumentParser
from markdownlang.mdl_expression import ExpressionParser, LarkExpressionParser, parse_template, split_arguments

_DECLARATION_RE = re.compile(r'^(\w+)\s*=(?!=)\s*(.+)$')
_IDENTIFIER_RE = re.compile(r'^\w+$')
_ASSIGNMENT_RE = re.compile(r'^(\w+)\s*([-+*/])?=(?!=)\s*(.+)$')
_WHOLE_EXPRESSION_RE = re.compile(r'^\{([^}]+)\}$')


def extract_text(node) -> str:
    """Plain text of a node; inline code is a comment and contributes nothing."""
    return _collect_text(node).strip()


def _collect_text(node) -> str:
    tag = node.get('tag')
    if tag in ('inline-code', 'html', 'image'):
        return ""
    text = node.get('text', '') if tag == 'text' else ''
    for child in node.get('children', []):
        text += _collect_text(child)
    return text


def extract_emphasis_text(node) -> Optional[str]:
    for child in node.get('children', []):
        if child.get('tag') == 'emphasis':
            return extract_text(child)
    return None


class MdlTransformer:
    """Walks the top-level document nodes and builds a Program.

    The block stack holds the open statement lists, innermost last:
    stack[0] is the current function's body and stack[n] the body of the
    conditional opened by a depth n+1 heading.
    """

    def __init__(self, expression_parser: Optional[ExpressionParser] = None):
        self.expression_parser = expression_parser or LarkExpressionParser()

    def _dbg(self, *parts):
        if os.environ.get("MDLANG_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def _parse_expression(self, text: str, line: Optional[int]):
        try:
            return self.expression_parser.parse_expression(text)
        except ExpressionSyntaxError as e:
            raise e.with_line(line) from None

    def transform(self, document) -> Program:
        functions = {}
        current: Optional[FunctionDeclaration] = None
        stack: List[List[Statement]] = []

        for node in document.get('children', []):
            tag = node.get('tag')
            line = node.get('line')

            match tag:
                case 'heading' if node.get('depth') == 1:
                    name = extract_text(node)
                    current = FunctionDeclaration(name)
                    stack = [current.body]
                    functions[name] = current

                case 'heading' if current is not None:
                    depth = node.get('depth')
                    while len(stack) >= depth:
                        stack.pop()
                    condition_text = extract_emphasis_text(node)
                    if len(stack) != depth - 1 or not condition_text:
                        self._dbg("dropped heading", f"h{depth}", repr(extract_text(node)), "at line", line)
                        continue
                    block = ConditionalBlock(self._parse_expression(condition_text, line), [], line)
                    stack[-1].append(block)
                    stack.append(block.body)

                case 'list' if node.get('ordered') and current is not None and len(stack) == 1:
                    for item in node.get('children', []):
                        current.parameters.append(extract_text(item))

                case 'list' if not node.get('ordered') and stack:
                    for item in node.get('children', []):
                        decl = self._declaration(item)
                        if decl is not None:
                            stack[-1].append(decl)

                case 'paragraph' if stack:
                    statement = self._paragraph(node)
                    if statement is not None:
                        statement.line = line
                        stack[-1].append(statement)

                case 'thematic-break' if current is not None:
                    stack[-1].append(BreakStatement(line))
                    if len(stack) > 1:
                        stack.pop()

                case 'blockquote' if stack:
                    name = extract_text(node)
                    if name:
                        stack[-1].append(InputStatement(name, line))

                # code blocks, html and anything else are comments

        return Program(functions)

    def _declaration(self, item) -> Optional[VariableDeclaration]:
        text = extract_text(item)
        line = item.get('line')
        m = _DECLARATION_RE.match(text)
        if m:
            return VariableDeclaration(m.group(1), self._parse_expression(m.group(2), line), line)
        if _IDENTIFIER_RE.match(text):
            return VariableDeclaration(text, None, line)
        return None

    def _paragraph(self, node) -> Optional[Statement]:
        children = [c for c in node.get('children', [])
                    if not (c.get('tag') == 'text' and not c.get('text', '').strip())]
        line = node.get('line')
        sole = children[0] if len(children) == 1 else None

        if sole is not None and sole.get('tag') == 'strong':
            text = extract_text(sole)
            m = _WHOLE_EXPRESSION_RE.match(text)
            if m:
                return PrintStatement(self._parse_expression(m.group(1), line))
            if '{' in text and '}' in text:
                try:
                    return PrintStatement(parse_template(text, self.expression_parser))
                except ExpressionSyntaxError as e:
                    raise e.with_line(line) from None
            return PrintStatement(Literal(text))

        if sole is not None and sole.get('tag') == 'link':
            return self._call(sole, line)

        m = _ASSIGNMENT_RE.match(extract_text(node))
        if m:
            variable, operator, value = m.groups()
            return AssignmentStatement(variable, operator, self._parse_expression(value, line))
        return None

    def _call(self, link, line) -> FunctionCallStatement:
        url = link.get('url', '')
        external_ref = None
        if '#' in url:
            ref, _, name = url.rpartition('#')
            external_ref = unquote(ref) or None
            name = unquote(name)
        else:
            # Bare targets are same-document calls
            name = unquote(url)
        args = [self._parse_expression(a, line) for a in split_arguments(extract_text(link))]
        return FunctionCallStatement(name, external_ref, args)


def parse(text: str, *, document_parser: Optional[DocumentParser] = None,
          expression_parser: Optional[ExpressionParser] = None) -> Program:
    """Parses markdown source into a Program."""
    document = (document_parser or MarkdownItDocumentParser()).parse_document(text)
    return MdlTransformer(expression_parser).transform(document)
