"""
Runtime session state and the public entry points.

Runtime holds the state of one run: its call stack and I/O channels.
interpret and interpret_async execute a parsed Program, and ScriptRunner
wraps a whole run from source text into an ExecutionResult.
"""
import inspect
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional

from markdownlang.mdl_datatypes import (
    Program, CallFrame, MarkdownLangError, UndeclaredVariableError,
    RuntimeTypeError, ResolutionError, ExpressionSyntaxError, UnsupportedExpressionError,
)
from markdownlang.mdl_interpreter import Executor, run_to_completion
from markdownlang.mdl_modules import ModuleResolver
from markdownlang.mdl_printer import Printer, to_text
from markdownlang.mdl_transformer import parse

# ===================================================================
# 1. Session state
# ===================================================================

class Runtime:
    """State of one top-level run: call stack, output and I/O channels."""

    def __init__(self, inputs: Optional[List[Any]] = None,
                 input_provider: Optional[Callable] = None,
                 print_sink: Optional[Callable[[Any], Any]] = None):
        self.call_stack: List[CallFrame] = []
        self.output: List[Any] = []
        self.inputs: List[Any] = list(inputs or [])
        self.input_provider = input_provider
        self.print_sink = print_sink

    # --- frames ---

    def push_frame(self, function_name: str, bindings: Dict[str, Any], args: List[Any]) -> CallFrame:
        frame = CallFrame(function_name, dict(bindings), set(bindings), list(args))
        self.call_stack.append(frame)
        return frame

    def pop_frame(self) -> CallFrame:
        return self.call_stack.pop()

    @property
    def current_frame(self) -> Optional[CallFrame]:
        return self.call_stack[-1] if self.call_stack else None

    # --- variables ---

    def get_variable(self, name: str) -> Any:
        frame = self.current_frame
        if frame is None:
            return None
        return frame.variables.get(name)

    def declare_variable(self, name: str, value: Any = None):
        frame = self.current_frame
        frame.declared.add(name)
        frame.variables[name] = value

    def check_declared(self, name: str, line: Optional[int] = None):
        frame = self.current_frame
        if frame is None or name not in frame.declared:
            raise UndeclaredVariableError(name, line)

    def set_variable(self, name: str, value: Any, line: Optional[int] = None):
        self.check_declared(name, line)
        self.current_frame.variables[name] = value

    # --- I/O ---

    def print(self, value: Any):
        self.output.append(value)
        if self.print_sink is not None:
            self.print_sink(value)

    async def read_input(self) -> Any:
        """Next input value: from the provider when one is set, else the buffer."""
        if self.input_provider is not None:
            value = self.input_provider()
            if inspect.isawaitable(value):
                value = await value
            return value
        if self.inputs:
            return self.inputs.pop(0)
        return None


# ===================================================================
# 2. Entry points
# ===================================================================

def _session(program: Program, base: Optional[str], runtime: Runtime,
             resolver: Optional[ModuleResolver], allow_remote: bool):
    if base is not None:
        program = program.with_origin(base)
    return program, Executor(runtime, resolver, allow_remote=allow_remote)


def interpret(program: Program, entry: str = "main", args: Optional[List[Any]] = None,
              base: Optional[str] = None, inputs: Optional[List[Any]] = None, *,
              print_sink: Optional[Callable[[Any], Any]] = None,
              resolver: Optional[ModuleResolver] = None) -> List[Any]:
    """Runs `entry` synchronously and returns the printed values.

    Input comes from `inputs` (no value once exhausted). Calls into documents
    referenced by URL raise ResolutionError; use interpret_async for those.
    """
    runtime = Runtime(inputs=inputs, print_sink=print_sink)
    program, executor = _session(program, base, runtime, resolver, allow_remote=False)
    return run_to_completion(executor.run(program, entry, args or []))


async def interpret_async(program: Program, entry: str = "main", args: Optional[List[Any]] = None,
                          base: Optional[str] = None, input_provider: Optional[Callable] = None,
                          print_sink: Optional[Callable[[Any], Any]] = None, *,
                          inputs: Optional[List[Any]] = None,
                          resolver: Optional[ModuleResolver] = None) -> List[Any]:
    """Runs `entry`, suspending on input reads and remote document fetches.

    `input_provider()` may return a value or an awaitable; without one, input
    falls back to the `inputs` buffer.
    """
    runtime = Runtime(inputs=inputs, input_provider=input_provider, print_sink=print_sink)
    program, executor = _session(program, base, runtime, resolver, allow_remote=True)
    return await executor.run(program, entry, args or [])


# ===================================================================
# 3. Script Execution
# ===================================================================

@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_line: Optional[int] = None
    error_context: str = ""
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with its line, source excerpt and stack trace."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_line is not None and not msg.startswith("Error on line "):
            msg = f"Error on line {self.error_line}: {msg}"
        if self.error_context:
            msg = f"{msg}\n{self.error_context}"
        return msg


class ScriptRunner:
    """Parses and runs markdownlang documents, reporting errors as results."""

    def __init__(self, source_dir: Optional[str] = None, resolver: Optional[ModuleResolver] = None):
        self.source_dir = source_dir
        self.resolver = resolver
        self.runtime: Optional[Runtime] = None

    def _format_runtime_error(self, e: Exception, source: str):
        match e:
            case UndeclaredVariableError():
                label = "UndeclaredVariableError"
            case RuntimeTypeError():
                label = "TypeError"
            case ResolutionError():
                label = "ResolutionError"
            case ExpressionSyntaxError():
                label = "SyntaxError"
            case UnsupportedExpressionError():
                label = "UnsupportedExpressionError"
            case RecursionError():
                label = "RecursionError"
            case _:
                label = "InternalError"

        if isinstance(e, MarkdownLangError):
            msg, line = f"{label}: {e.detail}", e.line
        else:
            msg, line = f"{label}: {e}", None

        context = []
        if line is not None:
            excerpt = self._source_context(source, line)
            if excerpt:
                context.append(excerpt)
        st = self._format_stacktrace()
        if st:
            context.append(st)
        return msg, line, "\n".join(context)

    def _source_context(self, source: str, line: int, radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            out.append(f"{prefix} {str(i).rjust(width)} | {lines[i - 1]}")
        return "\n".join(out)

    def _format_stacktrace(self) -> str:
        stack = self.runtime.call_stack if self.runtime else []
        if not stack:
            return ""
        pf = Printer().pformat

        def fmt(arg):
            match arg:
                case list():
                    return f"#[{len(arg)}]"
                case dict():
                    return "#{...}"
                case str():
                    return repr(arg)
                case _:
                    return pf(arg)

        frames = []
        for frame in stack:
            args_s = ", ".join(fmt(a) for a in frame.args)
            frames.append(f"  {frame.function_name}({args_s})")
        return "Stack (most recent call last):\n" + "\n".join(frames)

    async def handle_script(self, source_code: str, entry: str = "main",
                            args: Optional[List[Any]] = None,
                            input_provider: Optional[Callable] = None,
                            print_sink: Optional[Callable[[Any], Any]] = None,
                            inputs: Optional[List[Any]] = None) -> ExecutionResult:
        """The main entry point to execute a script."""
        side_effects: List[Dict] = []

        def sink(value):
            side_effects.append({'topics': ['stdout'], 'message': to_text(value)})
            if print_sink is not None:
                print_sink(value)

        self.runtime = Runtime(inputs=inputs, input_provider=input_provider, print_sink=sink)
        try:
            program = parse(source_code).with_origin(self.source_dir or os.getcwd())
            executor = Executor(self.runtime, self.resolver, allow_remote=True)
            output = await executor.run(program, entry, args or [])
            return ExecutionResult(status='success', value=output, side_effects=side_effects)
        except Exception as e:
            msg, line, context = self._format_runtime_error(e, source_code)
            side_effects.append({'topics': ['stderr'], 'message': msg})
            return ExecutionResult(
                status='error',
                value=self.runtime.output,
                error_message=msg,
                error_line=line,
                error_context=context,
                side_effects=side_effects,
            )
