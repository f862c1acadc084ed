"""
Renders markdownlang runtime values as text.
"""
import collections.abc
import math


def kind_of(value) -> str:
    """The runtime kind name of a value, as used in error messages."""
    match value:
        case None:
            return "undefined"
        # bool is a subclass of int, so check it first
        case bool():
            return "boolean"
        case int() | float():
            return "number"
        case str():
            return "string"
        case _:
            return "object"


def format_number(value) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def to_text(value) -> str:
    """Textual form used by concatenation and templates ("no value" is empty)."""
    match value:
        case None:
            return ""
        case bool():
            return "true" if value else "false"
        case int() | float():
            return format_number(value)
        case str():
            return value
        case _:
            return Printer().pformat(value)


class Printer:
    """Formats runtime values for display on a console."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, collections.abc.Mapping): return self._pformat_dict
        if isinstance(obj, (list, tuple)): return self._pformat_list
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            int: self._pformat_number,
            float: self._pformat_number,
            bool: self._pformat_bool,
            type(None): self._pformat_none,
        }

    def _pformat_str(self, s, level): return s
    def _pformat_number(self, n, level): return format_number(n)
    def _pformat_bool(self, b, level): return "true" if b else "false"
    def _pformat_none(self, n, level): return "undefined"

    def _pformat_nested(self, obj, level):
        # Strings inside containers are quoted so boundaries stay visible
        if isinstance(obj, str):
            return repr(obj)
        return self.pformat(obj, level)

    def _pformat_list(self, items, level):
        if not items:
            return "[]"
        return "[" + ", ".join(self._pformat_nested(i, level + 1) for i in items) + "]"

    def _pformat_dict(self, d, level):
        if not d:
            return "{}"
        pad = self._indent_char * (level + 1)
        lines = [f"{pad}{k}: {self._pformat_nested(v, level + 1)}" for k, v in d.items()]
        return "{\n" + "\n".join(lines) + "\n" + self._indent_char * level + "}"
