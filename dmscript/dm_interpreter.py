"""
The core dmscript interpreter: a tree-walking Evaluator.

Scopes are strictly stack-like. Blocks and calls create a child scope on
entry and destroy it on exit, including when an error propagates. Calls
parent the new scope on the caller's current scope, not on the scope where
the function was declared, so functions see whatever is visible at the call
site (dynamic scoping).
"""
import inspect
import math
import os
import sys
from typing import Any, Callable, Dict, List, Optional

from dmscript.dm_config import InterpreterConfig
from dmscript.dm_errors import (
    ScriptError, TypeMismatch, UndefinedVariable, DivisionByZero, InvalidArgument,
    LimitExceeded,
)
from dmscript.dm_scope import Scope
from dmscript.dm_datatypes import (
    Value, NULL, TRUE, FALSE, Boolean, Integer, Float, String, Function, NativeFn, Closure,
    Node, Program, Literal, BinaryOp, UnaryOp, Variable, Assignment, Block, If, While,
    Call, FunctionDecl, Return,
    is_literal, is_numeric, truthy, to_python, from_python,
)
from dmscript.dm_printer import Printer

ARITHMETIC_OPS = ('+', '-', '*', '/', '%')
EQUALITY_OPS = ('==', '!=')
RELATIONAL_OPS = ('<', '>', '<=', '>=')
LOGICAL_OPS = ('&&', '||')


class Returning:
    """Completion signal for `return` when InterpreterConfig.return_unwinds is on."""
    __slots__ = ('value',)

    def __init__(self, value: Value):
        self.value = value

    def __repr__(self) -> str:
        return f"Returning({self.value!r})"


def is_return(x) -> bool:
    return isinstance(x, Returning)


def unwrap_return(x):
    return x.value if is_return(x) else x


def _as_number(value: Value, side: str) -> float:
    # Arithmetic accepts numbers and booleans (true=1, false=0).
    match value:
        case Integer() | Float():
            return float(value.value)
        case Boolean():
            return 1.0 if value.value else 0.0
    raise TypeMismatch(f"Cannot perform arithmetic on non-numeric {side} operand ({value.type_name})")


def _literal_kind(value: Value) -> str:
    # Integer and Float are the same kind for equality.
    if is_numeric(value):
        return "number"
    return value.type_name


def values_equal(left: Value, right: Value) -> bool:
    """Equality never errors; different kinds and non-literals compare unequal."""
    if not (is_literal(left) and is_literal(right)):
        return False
    if _literal_kind(left) != _literal_kind(right):
        return False
    if _literal_kind(left) == "null":
        return True
    return left.value == right.value


class Evaluator:
    """Walks the AST and produces Values."""

    def __init__(self, config: Optional[InterpreterConfig] = None,
                 output: Optional[Callable[[str], None]] = None,
                 error: Optional[Callable[[str], None]] = None):
        self.config = config or InterpreterConfig()
        self.printer = Printer()
        self.side_effects: List[Dict[str, Any]] = []
        self.sinks: Dict[str, Optional[Callable[[str], None]]] = {'stdout': output, 'stderr': error}
        self.call_stack: List[Dict[str, Any]] = []
        self.current_node: Optional[Node] = None

    # --- diagnostics ---

    def _dbg(self, *parts):
        if self.config.debug or os.environ.get("DMSCRIPT_DEBUG"):
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except Exception:
                pass

    def emit(self, topic: str, message: str):
        """Record a side effect and forward it to the host sink for `topic`, if any."""
        self.side_effects.append({'topics': [topic], 'message': message})
        sink = self.sinks.get(topic)
        if sink is not None:
            sink(message)

    def _push_frame(self, name, args):
        if len(self.call_stack) >= self.config.max_call_depth:
            raise LimitExceeded(f"Maximum call depth of {self.config.max_call_depth} exceeded in '{name}'")
        self.call_stack.append({
            'name': name,
            'args': args,
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    # --- entry points ---

    def eval(self, node: Node, scope: Scope) -> Value:
        """Public entry point for evaluation. Unwraps `return` completions."""
        return unwrap_return(self._eval(node, scope))

    def _eval(self, node: Node, scope: Scope):
        self.current_node = node
        try:
            match node:
                case Program():
                    return self._eval_program(node, scope)
                case Literal():
                    return node.value.copy()
                case BinaryOp():
                    return self._eval_binary(node, scope)
                case UnaryOp():
                    return self._eval_unary(node, scope)
                case Variable():
                    return self._eval_variable(node, scope)
                case Assignment():
                    return self._eval_assignment(node, scope)
                case Block():
                    return self._eval_block(node, scope)
                case If():
                    return self._eval_if(node, scope)
                case While():
                    return self._eval_while(node, scope)
                case Call():
                    return self._eval_call(node, scope)
                case FunctionDecl():
                    return self._eval_function_decl(node, scope)
                case Return():
                    return self._eval_return(node, scope)
                case _:
                    raise TypeError(f"Unknown node type: {type(node).__name__}")
        except ScriptError as e:
            # Innermost node wins: only fills in a location once.
            raise e.at(getattr(node, 'loc', None))

    # --- statement sequences ---

    def _run_statements(self, statements, scope: Scope, echo: bool = False):
        result = NULL
        for stmt in statements:
            result = self._eval(stmt, scope)
            if echo and self.config.echo_results and not self._is_silent(stmt):
                self.emit('stdout', f"=> {self.printer.pformat(unwrap_return(result))}")
            if is_return(result):
                break
        return result

    @staticmethod
    def _is_silent(stmt: Node) -> bool:
        if isinstance(stmt, Assignment):
            return stmt.is_declaration
        return isinstance(stmt, FunctionDecl)

    def _eval_program(self, node: Program, scope: Scope):
        # Runs directly in the given scope; no child scope is created.
        return self._run_statements(node.statements, scope, echo=True)

    def _eval_block(self, node: Block, scope: Scope):
        block_scope = Scope(parent=scope)
        try:
            return self._run_statements(node.statements, block_scope)
        finally:
            block_scope.destroy()

    # --- expressions ---

    def _eval_binary(self, node: BinaryOp, scope: Scope) -> Value:
        op = node.op
        if op in LOGICAL_OPS:
            left = truthy(self.eval(node.left, scope))
            # Short-circuit: the right side only runs when it decides the result.
            if op == '&&' and not left:
                return FALSE
            if op == '||' and left:
                return TRUE
            return TRUE if truthy(self.eval(node.right, scope)) else FALSE

        left = self.eval(node.left, scope)
        right = self.eval(node.right, scope)

        if op in ARITHMETIC_OPS:
            a = _as_number(left, "left")
            b = _as_number(right, "right")
            match op:
                case '+':
                    return Float(a + b)
                case '-':
                    return Float(a - b)
                case '*':
                    return Float(a * b)
                case '/':
                    if b == 0.0:
                        raise DivisionByZero("Division by zero")
                    return Float(a / b)
                case '%':
                    if b == 0.0:
                        raise DivisionByZero("Modulo by zero")
                    return Float(math.fmod(a, b))

        if op in EQUALITY_OPS:
            equal = values_equal(left, right)
            return Boolean(equal if op == '==' else not equal)

        if op in RELATIONAL_OPS:
            if not (is_numeric(left) and is_numeric(right)):
                raise TypeMismatch(
                    f"Expected numeric operands for comparison, got {left.type_name} {op} {right.type_name}")
            a, b = float(left.value), float(right.value)
            match op:
                case '<':
                    return Boolean(a < b)
                case '>':
                    return Boolean(a > b)
                case '<=':
                    return Boolean(a <= b)
                case '>=':
                    return Boolean(a >= b)

        raise InvalidArgument(f"Unsupported binary operator: {op}")

    def _eval_unary(self, node: UnaryOp, scope: Scope) -> Value:
        operand = self.eval(node.operand, scope)
        match node.op:
            case '-':
                match operand:
                    case Integer():
                        return Integer(-operand.value)
                    case Float():
                        return Float(-operand.value)
                raise TypeMismatch(f"Cannot negate {operand.type_name}")
            case '!':
                # Stricter than truthiness: only booleans can be negated.
                if not isinstance(operand, Boolean):
                    raise TypeMismatch(f"Cannot apply '!' to {operand.type_name}")
                return Boolean(not operand.value)
        raise InvalidArgument(f"Unsupported unary operator: {node.op}")

    def _eval_variable(self, node: Variable, scope: Scope) -> Value:
        try:
            return scope.lookup(node.name)
        except KeyError:
            raise UndefinedVariable(f"Undefined variable '{node.name}'") from None

    def _eval_assignment(self, node: Assignment, scope: Scope) -> Value:
        value = self.eval(node.value, scope)
        if not node.is_declaration and node.name not in scope:
            raise UndefinedVariable(f"Cannot assign to undefined variable '{node.name}'")
        # Always binds in the current scope, so a plain assignment inside a
        # block shadows an outer binding instead of updating it.
        scope.define(node.name, value)
        return value

    # --- control flow ---

    def _eval_if(self, node: If, scope: Scope):
        condition = self.eval(node.condition, scope)
        if truthy(condition):
            return self._eval(node.then_branch, scope)
        if node.else_branch is not None:
            return self._eval(node.else_branch, scope)
        return NULL

    def _eval_while(self, node: While, scope: Scope):
        last = NULL
        iterations = 0
        max_iters = self.config.max_loop_iterations
        while truthy(self.eval(node.condition, scope)):
            if max_iters is not None and iterations >= max_iters:
                raise LimitExceeded(f"while: iteration limit of {max_iters} exceeded")
            last = self._eval(node.body, scope)
            if is_return(last):
                break
            iterations += 1
        return last

    def _eval_return(self, node: Return, scope: Scope):
        value = NULL if node.value is None else self.eval(node.value, scope)
        if self.config.return_unwinds:
            return Returning(value)
        return value

    # --- functions ---

    def _eval_function_decl(self, node: FunctionDecl, scope: Scope) -> Value:
        scope.define(node.name, Closure(node))
        return String(node.name)

    def _eval_call(self, node: Call, scope: Scope) -> Value:
        try:
            func = scope.lookup(node.name)
        except KeyError:
            raise UndefinedVariable(f"Function '{node.name}' is not defined") from None
        if not isinstance(func, Function):
            raise TypeMismatch(f"'{node.name}' is not a function")

        arity = func.arity
        if arity is not None and len(node.args) != arity:
            raise InvalidArgument(
                f"Function '{node.name}' expects {arity} arguments, but got {len(node.args)}")

        args: List[Value] = []
        for i, arg_node in enumerate(node.args):
            arg = self.eval(arg_node, scope)
            if not is_literal(arg):
                raise TypeMismatch(
                    f"Argument {i + 1} to '{node.name}' must be a literal value, got {arg.type_name}")
            args.append(arg)

        self._dbg("Evaluator.call", node.name, type(func).__name__, "argc", len(args))
        self._push_frame(node.name, args)
        try:
            return self.call(func, args, scope)
        except ScriptError as e:
            if e.stacktrace is None:
                e.stacktrace = [dict(frame) for frame in self.call_stack]
            raise
        finally:
            self._pop_frame()

    def call(self, func: Function, args: List[Value], scope: Scope) -> Value:
        """Invoke a function value with already-evaluated arguments."""
        match func:
            case Closure():
                call_scope = Scope(parent=scope)
                try:
                    for param, arg in zip(func.decl.params, args):
                        call_scope.define(param, arg)
                    self._dbg("Call-scope bindings", list(call_scope.keys()))
                    result = self._eval(func.decl.body, call_scope)
                finally:
                    call_scope.destroy()
                return unwrap_return(result)

            case NativeFn():
                return self._call_native(func, args)

            case _:
                raise TypeMismatch(f"Object is not callable: {func!r}")

    def _call_native(self, func: NativeFn, args: List[Value]) -> Value:
        kwargs = {}
        if func.takes_user_data:
            kwargs['user_data'] = func.user_data
        py_args = [to_python(a) for a in args]
        try:
            return from_python(func.callback(*py_args, **kwargs))
        except ScriptError:
            raise
        except ZeroDivisionError as e:
            raise DivisionByZero(f"{func.name}: {e}") from e
        except OverflowError as e:
            raise InvalidArgument(f"{func.name}: result out of range: {e}") from e
        except (TypeError, ValueError) as e:
            raise InvalidArgument(f"{func.name}: {e}") from e


def infer_arity(callback: Callable) -> Optional[int]:
    """Count required positional parameters; None for variadic callbacks."""
    try:
        params = inspect.signature(callback).parameters.values()
    except (TypeError, ValueError):
        return None
    count = 0
    for p in params:
        if p.kind == inspect.Parameter.VAR_POSITIONAL:
            return None
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            if p.name == 'user_data':
                continue
            count += 1
    return count


def evaluate(node: Node, scope: Scope, evaluator: Optional[Evaluator] = None) -> Value:
    """Evaluate `node` against `scope` with a fresh (or given) Evaluator."""
    return (evaluator or Evaluator()).eval(node, scope)
