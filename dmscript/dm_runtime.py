# dm_runtime.py

import inspect
import math
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from dmscript.dm_config import InterpreterConfig, load_config
from dmscript.dm_errors import ScriptError, ParseError, LimitExceeded, OutOfMemory
from dmscript.dm_parser import parse as parse_source
from dmscript.dm_interpreter import Evaluator, infer_arity
from dmscript.dm_printer import Printer, format_number
from dmscript.dm_scope import Scope
from dmscript.dm_datatypes import Value, NativeFn, Matrix, Program, from_python, to_python

# ===================================================================
# 1. Host Integration
# ===================================================================


def dm_api_method(func):
    """A decorator to explicitly mark host methods as callable from scripts."""
    func._is_dm_api = True
    return func


class DMHost(ABC):
    """Base class for Python objects that expose methods to dmscript.

    Every method decorated with @dm_api_method is installed into the global
    scope under its Python name before each script runs.
    """

    def api_methods(self) -> Dict[str, Callable]:
        out = {}
        for name, member in inspect.getmembers(self):
            if not callable(member) or name.startswith('_'):
                continue
            is_api = getattr(member, "_is_dm_api", False)
            if not is_api:
                func = getattr(member, "__func__", None)
                is_api = func is not None and getattr(func, "_is_dm_api", False)
            if is_api:
                out[name] = member
        return out


def register_native(scope: Scope, name: str, func: Callable, arity: Optional[int] = None,
                    user_data: Any = None) -> NativeFn:
    """Install a host callback into `scope` as a NativeFn.

    When `arity` is omitted it is inferred from the callback's signature;
    callbacks taking *args are variadic.
    """
    if arity is None:
        arity = infer_arity(func)
    native = NativeFn(name, func, arity=arity, user_data=user_data)
    scope.define(name, native)
    return native


# ===================================================================
# 2. The Standard Library
# ===================================================================

def _display(x) -> str:
    # Strings print raw; everything else through the printer.
    if isinstance(x, str):
        return x
    if isinstance(x, bool):
        return 'true' if x else 'false'
    if x is None:
        return 'null'
    if isinstance(x, float):
        return format_number(x)
    if isinstance(x, list):
        return "[" + ", ".join(_display(i) for i in x) + "]"
    return Printer().pformat(from_python(x))


class StdLib:
    """Python implementations of the built-in native functions.

    Methods named `_name` are installed as `name`.
    """
    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator

    def _print(self, *values):
        self.evaluator.emit('stdout', " ".join(_display(v) for v in values))
        return None

    def _str(self, x):
        return _display(x)

    def _len(self, x):
        if not isinstance(x, str):
            raise TypeError(f"len expects a string, got {_type_name(x)}")
        return len(x)

    def _type_of(self, x):
        return _type_name(x)

    def _abs(self, x): return abs(_number(x))
    def _floor(self, x): return float(math.floor(_number(x)))
    def _pow(self, b, e): return float(_number(b) ** _number(e))

    def _sqrt(self, x):
        x = _number(x)
        if x < 0:
            raise ValueError("sqrt of a negative number")
        return math.sqrt(x)

    def _min(self, *xs):
        if not xs:
            raise ValueError("min expects at least one argument")
        return min(_number(x) for x in xs)

    def _max(self, *xs):
        if not xs:
            raise ValueError("max expects at least one argument")
        return max(_number(x) for x in xs)

    def _array(self, *items):
        return list(items)

    def _zeros(self, rows, cols):
        r, c = _number(rows), _number(cols)
        if r != int(r) or c != int(c) or r < 0 or c < 0:
            raise ValueError("zeros expects non-negative whole dimensions")
        return Matrix(int(r), int(c))

    def install(self, scope: Scope):
        for name, member in inspect.getmembers(self):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                register_native(scope, name[1:], member)


def _type_name(x) -> str:
    if x is None:
        return "null"
    # bool is a subclass of int, so check it before int
    if isinstance(x, bool):
        return "boolean"
    if isinstance(x, int):
        return "integer"
    if isinstance(x, float):
        return "number"
    if isinstance(x, str):
        return "string"
    if isinstance(x, Value):
        return x.type_name
    return "object"


def _number(x) -> Union[int, float]:
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        raise TypeError(f"expected a number, got {_type_name(x)}")
    return x


# ===================================================================
# 3. Script Execution
# ===================================================================

@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    raw: Optional[Value] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    error_token: Optional[Dict[str, Any]] = None
    side_effects: List[Dict] = field(default_factory=list)

    @property
    def output(self) -> List[str]:
        """Messages written to the normal output sink."""
        return [e['message'] for e in self.side_effects if e.get('topics') == ['stdout']]

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line') is not None:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if not msg.startswith("Error on line "):
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg


class ScriptRunner:
    """Parses and executes dmscript code against a persistent global scope."""

    def __init__(self, host_object: Optional[DMHost] = None, config: Optional[InterpreterConfig] = None,
                 output: Optional[Callable[[str], None]] = None,
                 error: Optional[Callable[[str], None]] = None):
        self.host_object = host_object
        self.config = config or load_config()
        self.evaluator = Evaluator(self.config, output=output, error=error)
        self.root_scope = Scope()
        StdLib(self.evaluator).install(self.root_scope)

    def register(self, name: str, func: Callable, arity: Optional[int] = None, user_data: Any = None) -> NativeFn:
        """Install a host native into the global scope."""
        return register_native(self.root_scope, name, func, arity=arity, user_data=user_data)

    def parse(self, source: Union[str, bytes]) -> Program:
        return parse_source(source)

    def _bind_host_api_methods(self):
        """Bind @dm_api_method methods of the host into the global scope."""
        if self.host_object is None:
            return
        for name, member in self.host_object.api_methods().items():
            self.register(name, member)

    # --- error formatting ---

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            out.append(f"{prefix} {ln} | {lines[i - 1]}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)

    def _format_stacktrace(self, frames) -> str:
        if not frames:
            return ""
        printer = Printer()
        parts = []
        for frame in frames:
            args = " ".join(printer.pformat(a) for a in frame.get('args') or [])
            parts.append(f"({frame.get('name') or '<call>'}{' ' + args if args else ''})")
        return "stacktrace: " + " ".join(parts)

    def _format_error(self, e: ScriptError, source: str) -> str:
        msg = str(e)
        if e.line is not None:
            if not isinstance(e, ParseError):
                msg = f"{msg} (line {e.line}, col {e.col})"
            context = self._source_context(source, e.line, e.col)
            if context:
                msg = f"{msg}\n{context}"
        st = self._format_stacktrace(e.stacktrace)
        if st:
            msg += "\n" + st
        return msg

    def _error_result(self, e: ScriptError, source: str) -> ExecutionResult:
        err_msg = self._format_error(e, source)
        self.evaluator.emit('stderr', err_msg)
        return ExecutionResult(
            status='error',
            error_kind=e.kind,
            error_message=err_msg,
            error_token=e.loc,
            side_effects=list(self.evaluator.side_effects),
        )

    # --- entry point ---

    def handle_script(self, source_code: Union[str, bytes]) -> ExecutionResult:
        """The main entry point to execute a script."""
        self.evaluator.side_effects.clear()
        self.evaluator.call_stack.clear()
        raw_source = source_code
        if isinstance(source_code, (bytes, bytearray)):
            # Display copy for error excerpts; the lexer reports bad bytes itself.
            source_code = bytes(source_code).decode('utf-8', errors='replace')
        self._bind_host_api_methods()

        # 1. Parse
        try:
            program = self.parse(raw_source)
        except ParseError as e:
            return self._error_result(e, source_code)
        except RecursionError:
            return self._error_result(LimitExceeded("Python recursion limit reached while parsing"), source_code)

        # 2. Evaluate
        try:
            result = self.evaluator.eval(program, self.root_scope)
        except ScriptError as e:
            return self._error_result(e, source_code)
        except RecursionError:
            err = LimitExceeded("Python recursion limit reached").at(getattr(self.evaluator.current_node, 'loc', None))
            return self._error_result(err, source_code)
        except MemoryError:
            return self._error_result(OutOfMemory("Out of memory"), source_code)
        except Exception as e:
            # Host callbacks and internal faults; reported, not re-raised.
            msg = f"InternalError: {e}"
            self.evaluator.emit('stderr', msg)
            return ExecutionResult(
                status='error',
                error_kind="InternalError",
                error_message=msg,
                side_effects=list(self.evaluator.side_effects),
            )
        finally:
            self.evaluator.call_stack.clear()

        return ExecutionResult(
            status='success',
            value=to_python(result),
            raw=result,
            side_effects=list(self.evaluator.side_effects),
        )
