"""
The core markdownlang interpreter, containing the Evaluator and the Executor.

The Evaluator computes expression values and owns the coercion rules. The
Executor runs statements: it is async throughout so that input reads and
remote imports can suspend, and it trampolines tail calls so that recursion
in the language never grows the Python stack.
"""
import math
import os
import re
import sys
from typing import Any, List, Optional, Union

from markdownlang.mdl_datatypes import (
    Program, FunctionDeclaration, Statement, TailCall, HALT,
    PrintStatement, AssignmentStatement, VariableDeclaration, FunctionCallStatement,
    ConditionalBlock, BreakStatement, InputStatement,
    Literal, Identifier, BinaryExpression, UnaryExpression, MemberExpression,
    CallExpression, TemplateLiteral, LiteralPart,
    RuntimeTypeError, ResolutionError, UnsupportedExpressionError, clamp_number,
)
from markdownlang.mdl_modules import ModuleResolver
from markdownlang.mdl_printer import kind_of, to_text

_NUMERAL_RE = re.compile(r'^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$')


def _string_to_number(s: str):
    """Number for a numeral string, or None when the string is not one."""
    t = s.strip()
    if t == "":
        return 0
    if not _NUMERAL_RE.match(t):
        return None
    if re.fullmatch(r"[+-]?\d+", t):
        return clamp_number(int(t))
    return float(t)


def expect_number(value, context: str, line: Optional[int] = None):
    match value:
        case bool():
            pass
        case int() | float():
            return clamp_number(value)
        case str():
            num = _string_to_number(value)
            if num is not None:
                return num
    raise RuntimeTypeError(f"Expected number for {context}, got {kind_of(value)} ({_describe(value)})", line)


def expect_index(value, context: str, line: Optional[int] = None):
    match value:
        case bool():
            return int(value)
        case int() | float() | str():
            return value
    raise RuntimeTypeError(f"Expected string or number for {context}, got {kind_of(value)} ({_describe(value)})", line)


def _describe(value) -> str:
    return "undefined" if value is None else to_text(value)


def truthy(value) -> bool:
    match value:
        case None:
            return False
        case float() if math.isnan(value):
            return False
        case bool() | int() | float() | str():
            return bool(value)
    return True


def _loose_number(value):
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, str):
        num = _string_to_number(value)
        return math.nan if num is None else num
    return value


def loose_equals(a, b) -> bool:
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    scalar = (bool, int, float, str)
    if isinstance(a, scalar) and isinstance(b, scalar):
        return _loose_number(a) == _loose_number(b)
    return a is b


def strict_equals(a, b) -> bool:
    if kind_of(a) != kind_of(b):
        return False
    if kind_of(a) == "object":
        return a is b
    return a == b


def divide(a, b):
    if b == 0:
        if a == 0 or (isinstance(a, float) and math.isnan(a)):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1, b)
    return clamp_number(a / b)


def modulo(a, b):
    if b == 0 or (isinstance(a, float) and math.isinf(a)):
        return math.nan
    if isinstance(a, int) and isinstance(b, int):
        # Sign follows the dividend
        r = abs(a) % abs(b)
        return -r if a < 0 else r
    return clamp_number(math.fmod(a, b))


class Evaluator:
    """Evaluates expression trees against the current call frame."""

    def __init__(self, runtime):
        self.runtime = runtime

    def evaluate(self, node, line: Optional[int] = None) -> Any:
        match node:
            case Literal(value=value):
                return value
            case Identifier(name=name):
                return self.runtime.get_variable(name)
            case BinaryExpression(operator=op) if op in ('&&', '||'):
                left = self.evaluate(node.left, line)
                if (op == '&&') != truthy(left):
                    return left
                return self.evaluate(node.right, line)
            case BinaryExpression():
                return self.binary(node.operator, self.evaluate(node.left, line), self.evaluate(node.right, line), line)
            case UnaryExpression():
                return self.unary(node.operator, self.evaluate(node.argument, line), line)
            case MemberExpression():
                return self.member(node, line)
            case TemplateLiteral(parts=parts):
                return "".join(self._template_part(p, line) for p in parts)
            case CallExpression(callee=callee):
                name = callee.name if isinstance(callee, Identifier) else "<expression>"
                raise UnsupportedExpressionError(f"Call expressions not supported: {name}", line)
        raise UnsupportedExpressionError(f"Unknown expression type: {type(node).__name__}", line)

    def _template_part(self, part, line) -> str:
        if isinstance(part, LiteralPart):
            return part.value
        return to_text(self.evaluate(part.expression, line))

    def binary(self, op: str, left, right, line: Optional[int] = None):
        def num(value, side):
            return expect_number(value, f"{side} operand of {op}", line)

        match op:
            case '+':
                if isinstance(left, str) or isinstance(right, str):
                    return to_text(left) + to_text(right)
                return clamp_number(num(left, "left") + num(right, "right"))
            case '-':
                return clamp_number(num(left, "left") - num(right, "right"))
            case '*':
                return clamp_number(num(left, "left") * num(right, "right"))
            case '/':
                return divide(num(left, "left"), num(right, "right"))
            case '%':
                return modulo(num(left, "left"), num(right, "right"))
            case '<':
                return num(left, "left") < num(right, "right")
            case '>':
                return num(left, "left") > num(right, "right")
            case '<=':
                return num(left, "left") <= num(right, "right")
            case '>=':
                return num(left, "left") >= num(right, "right")
            case '==':
                return loose_equals(left, right)
            case '!=':
                return not loose_equals(left, right)
            case '===':
                return strict_equals(left, right)
            case '!==':
                return not strict_equals(left, right)
        raise UnsupportedExpressionError(f"Unknown operator: {op}", line)

    def unary(self, op: str, value, line: Optional[int] = None):
        match op:
            case '!':
                return not truthy(value)
            case '-':
                return -expect_number(value, "operand of unary -", line)
            case '+':
                return +expect_number(value, "operand of unary +", line)
        raise UnsupportedExpressionError(f"Unknown unary operator: {op}", line)

    def member(self, node: MemberExpression, line: Optional[int] = None):
        obj = self.evaluate(node.object, line)
        if node.computed:
            key = expect_index(self.evaluate(node.property, line), "member access index", line)
        else:
            key = node.property.name

        if isinstance(obj, str):
            if key == "length":
                return len(obj)
            if isinstance(key, str):
                key = _string_to_number(key) if key.strip() else None
            if isinstance(key, float) and key.is_integer():
                key = int(key)
            if isinstance(key, int) and 0 <= key < len(obj):
                return obj[key]
            return None
        if isinstance(obj, dict):
            if key in obj:
                return obj[key]
            return obj.get(to_text(key))
        if isinstance(obj, (list, tuple)):
            if key == "length":
                return len(obj)
            if isinstance(key, str):
                key = _string_to_number(key)
            if isinstance(key, float) and key.is_integer():
                key = int(key)
            if isinstance(key, int) and 0 <= key < len(obj):
                return obj[key]
        return None


class Executor:
    """Runs functions and statements for one Runtime session."""

    def __init__(self, runtime, resolver: Optional[ModuleResolver] = None, *, allow_remote: bool = True):
        self.runtime = runtime
        self.resolver = resolver or ModuleResolver()
        self.allow_remote = allow_remote
        self.evaluator = Evaluator(runtime)

    def _dbg(self, *parts):
        if os.environ.get("MDLANG_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    async def run(self, program: Program, entry: str, args: List[Any]) -> List[Any]:
        func = program.get(entry)
        if func is None:
            raise ResolutionError(f"Entry function '{entry}' not found")
        await self._trampoline(TailCall(program, func, list(args)))
        return self.runtime.output

    async def _trampoline(self, call: TailCall):
        """Runs `call` and every tail call it hands back, in constant stack."""
        result: Union[TailCall, None] = call
        while isinstance(result, TailCall):
            result = await self._execute_function(result)

    async def _execute_function(self, call: TailCall) -> Optional[TailCall]:
        func = call.function
        self._dbg("enter", func.name, call.args)
        bindings = {param: (call.args[i] if i < len(call.args) else None)
                    for i, param in enumerate(func.parameters)}
        self.runtime.push_frame(func.name, bindings, call.args)
        signal = await self._execute_block(call.program, func.body)
        # Frames are only popped on normal return; after an error the stack
        # still shows where execution was.
        self.runtime.pop_frame()
        if isinstance(signal, TailCall):
            self._dbg("tail call", func.name, "->", signal.function.name)
            return signal
        return None

    async def _execute_block(self, program: Program, statements: List[Statement]):
        """Executes statements in order.

        Returns None when the sequence ran to its end, HALT after a break, or
        a TailCall when the sequence ends in a call. HALT and TailCall
        propagate through every enclosing block up to the function boundary.
        """
        last = len(statements) - 1
        for index, statement in enumerate(statements):
            match statement:
                case PrintStatement():
                    self.runtime.print(self.evaluator.evaluate(statement.expression, statement.line))
                case VariableDeclaration():
                    value = None
                    if statement.value is not None:
                        value = self.evaluator.evaluate(statement.value, statement.line)
                    self.runtime.declare_variable(statement.variable, value)
                case AssignmentStatement():
                    self._execute_assignment(statement)
                case InputStatement():
                    value = await self.runtime.read_input()
                    self.runtime.declare_variable(statement.variable, value)
                case BreakStatement():
                    return HALT
                case ConditionalBlock():
                    if truthy(self.evaluator.evaluate(statement.condition, statement.line)):
                        signal = await self._execute_block(program, statement.body)
                        if signal is not None:
                            return signal
                case FunctionCallStatement():
                    call = await self._prepare_call(program, statement)
                    if index == last:
                        return call
                    await self._trampoline(call)
        return None

    async def _prepare_call(self, program: Program, statement: FunctionCallStatement) -> TailCall:
        target, func = await self.resolver.resolve(program, statement, allow_remote=self.allow_remote)
        args = [self.evaluator.evaluate(arg, statement.line) for arg in statement.arguments]
        return TailCall(target, func, args)

    def _execute_assignment(self, statement: AssignmentStatement):
        line = statement.line
        new_value = self.evaluator.evaluate(statement.value, line)
        # Checked before computing so the error names the undeclared variable
        self.runtime.check_declared(statement.variable, line)
        if statement.operator is None:
            self.runtime.set_variable(statement.variable, new_value, line)
            return

        current = self.runtime.get_variable(statement.variable)
        if current is None:
            current = "" if isinstance(new_value, str) else (0 if kind_of(new_value) == "number" else None)
        context = f"variable '{statement.variable}'"
        match statement.operator:
            case '+':
                if isinstance(current, str) or isinstance(new_value, str):
                    result = to_text(current) + to_text(new_value)
                else:
                    result = clamp_number(expect_number(current, context, line) + expect_number(new_value, "assignment value", line))
            case '-':
                result = clamp_number(expect_number(current, context, line) - expect_number(new_value, "assignment value", line))
            case '*':
                result = clamp_number(expect_number(current, context, line) * expect_number(new_value, "assignment value", line))
            case '/':
                result = divide(expect_number(current, context, line), expect_number(new_value, "assignment value", line))
            case _:
                raise UnsupportedExpressionError(f"Unknown compound operator: {statement.operator}", line)
        self.runtime.set_variable(statement.variable, result, line)


def run_to_completion(coro):
    """Drives a coroutine that never suspends and returns its result.

    Synchronous runs execute the same async Executor code; they read input
    from the buffer and refuse remote imports, so nothing awaits a real
    event. A coroutine that does suspend is a host configuration error.
    """
    try:
        coro.send(None)
    except StopIteration as stop:
        return stop.value
    coro.close()
    raise ResolutionError("Synchronous interpretation attempted to suspend; use interpret_async")


__all__ = [
    "Evaluator", "Executor", "run_to_completion",
    "expect_number", "truthy", "loose_equals", "strict_equals",
]
