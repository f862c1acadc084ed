"""
Document parsing: converts markdown text into a tree of tagged dict nodes.

Nodes follow the shape the transformer consumes:

    {'tag': 'heading', 'depth': 1, 'children': [...], 'line': 3}
    {'tag': 'list', 'ordered': False, 'children': [{'tag': 'list-item', ...}]}
    {'tag': 'link', 'url': '#name', 'children': [...]}
    {'tag': 'text', 'text': '...'}

Block nodes carry the 1-based `line` they start on.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode

Node = Dict[str, Any]


class DocumentParser(ABC):
    """Turns document text into a tree of tagged dict nodes."""

    @abstractmethod
    def parse_document(self, text: str) -> Node:
        raise NotImplementedError


class MarkdownItDocumentParser(DocumentParser):
    """CommonMark parsing backed by markdown-it-py."""

    _md = None

    def __init__(self):
        # CommonMark preset: no typographer, so quotes in expressions survive.
        if MarkdownItDocumentParser._md is None:
            MarkdownItDocumentParser._md = MarkdownIt("commonmark")
        self.md = MarkdownItDocumentParser._md

    def parse_document(self, text: str) -> Node:
        root = SyntaxTreeNode(self.md.parse(text))
        return {'tag': 'document', 'children': self._convert_children(root)}

    def _convert_children(self, node: SyntaxTreeNode) -> List[Node]:
        out = []
        for child in node.children:
            # Inline containers are flattened into their block parent
            if child.type == 'inline':
                out.extend(self._convert_children(child))
                continue
            converted = self._convert(child)
            if converted is not None:
                out.append(converted)
        return out

    def _attach_line(self, obj: Node, node: SyntaxTreeNode) -> Node:
        if node.map:
            obj['line'] = node.map[0] + 1
        return obj

    def _convert(self, node: SyntaxTreeNode):
        match node.type:
            case 'heading':
                obj = {'tag': 'heading', 'depth': int(node.tag[1]), 'children': self._convert_children(node)}
            case 'paragraph':
                obj = {'tag': 'paragraph', 'children': self._convert_children(node)}
            case 'bullet_list' | 'ordered_list':
                obj = {'tag': 'list', 'ordered': node.type == 'ordered_list', 'children': self._convert_children(node)}
            case 'list_item':
                obj = {'tag': 'list-item', 'children': self._convert_children(node)}
            case 'blockquote':
                obj = {'tag': 'blockquote', 'children': self._convert_children(node)}
            case 'hr':
                obj = {'tag': 'thematic-break'}
            case 'fence' | 'code_block':
                obj = {'tag': 'code', 'text': node.content}
            case 'text':
                # markdown-it brackets inline markup with empty text tokens
                if not node.content:
                    return None
                return {'tag': 'text', 'text': node.content}
            case 'softbreak' | 'hardbreak':
                return {'tag': 'text', 'text': '\n'}
            case 'code_inline':
                return {'tag': 'inline-code', 'text': node.content}
            case 'em':
                return {'tag': 'emphasis', 'children': self._convert_children(node)}
            case 'strong':
                return {'tag': 'strong', 'children': self._convert_children(node)}
            case 'link':
                return {'tag': 'link', 'url': node.attrs.get('href', ''), 'children': self._convert_children(node)}
            case 'html_block' | 'html_inline':
                obj = {'tag': 'html', 'text': node.content}
            case 'image':
                return {'tag': 'image', 'url': node.attrs.get('src', ''), 'children': []}
            case _:
                return None
        return self._attach_line(obj, node)
