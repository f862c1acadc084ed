from markdownlang.mdl_datatypes import (
    Program, FunctionDeclaration, MarkdownLangError, RuntimeTypeError,
    UndeclaredVariableError, ResolutionError, ExpressionSyntaxError, UnsupportedExpressionError,
)
from markdownlang.mdl_document import DocumentParser, MarkdownItDocumentParser
from markdownlang.mdl_expression import ExpressionParser, LarkExpressionParser
from markdownlang.mdl_http import fetch_document
from markdownlang.mdl_modules import ModuleCache, ModuleResolver, read_document, reset_module_cache
from markdownlang.mdl_runtime import Runtime, ScriptRunner, ExecutionResult, interpret, interpret_async
from markdownlang.mdl_transformer import parse

__all__ = [
    "parse", "interpret", "interpret_async", "reset_module_cache",
    "Program", "FunctionDeclaration",
    "MarkdownLangError", "RuntimeTypeError", "UndeclaredVariableError",
    "ResolutionError", "ExpressionSyntaxError", "UnsupportedExpressionError",
    "DocumentParser", "MarkdownItDocumentParser", "ExpressionParser", "LarkExpressionParser",
    "ModuleCache", "ModuleResolver", "read_document", "fetch_document",
    "Runtime", "ScriptRunner", "ExecutionResult",
]
