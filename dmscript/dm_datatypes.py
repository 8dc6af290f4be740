"""
Defines the core data types for the dmscript runtime.

Two closed families live here: runtime values (what expressions evaluate
to and what scopes store) and AST nodes (what the parser builds). Values
are copied at every scope boundary, so `copy()` must return an object that
shares no mutable state with the original.
"""

import inspect
from abc import ABC
from typing import List, Dict, Any, Optional, Callable

# =================================================================
# Runtime Values
# =================================================================

class Value(ABC):
    """Abstract base class for every runtime value."""
    type_name = "value"

    def copy(self) -> 'Value':
        # Immutable values can be shared freely.
        return self


class Null(Value):
    type_name = "null"

    def __repr__(self) -> str:
        return "Null"

    def __eq__(self, other):
        return isinstance(other, Null)

    def __hash__(self):
        return hash(None)


NULL = Null()


class Boolean(Value):
    type_name = "boolean"

    def __init__(self, value: bool):
        self.value = bool(value)

    def __repr__(self) -> str:
        return f"Boolean({self.value})"

    def __eq__(self, other):
        return isinstance(other, Boolean) and self.value == other.value

    def __hash__(self):
        return hash(('bool', self.value))


TRUE = Boolean(True)
FALSE = Boolean(False)


class Integer(Value):
    """A 64-bit integer. Only produced by host natives; arithmetic yields Float."""
    type_name = "integer"

    def __init__(self, value: int):
        value = int(value)
        if not -(1 << 63) <= value < (1 << 63):
            raise OverflowError(f"integer out of 64-bit range: {value}")
        self.value = value

    def __repr__(self) -> str:
        return f"Integer({self.value})"

    def __eq__(self, other):
        return isinstance(other, Integer) and self.value == other.value

    def __hash__(self):
        return hash(('int', self.value))


class Float(Value):
    type_name = "number"

    def __init__(self, value: float):
        self.value = float(value)

    def __repr__(self) -> str:
        return f"Float({self.value!r})"

    def __eq__(self, other):
        return isinstance(other, Float) and self.value == other.value

    def __hash__(self):
        return hash(('float', self.value))


class String(Value):
    type_name = "string"

    def __init__(self, value: str):
        self.value = str(value)

    def __repr__(self) -> str:
        return f"String({self.value!r})"

    def __eq__(self, other):
        return isinstance(other, String) and self.value == other.value

    def __hash__(self):
        return hash(('str', self.value))


class Array(Value):
    type_name = "array"

    def __init__(self, items: Optional[List[Value]] = None):
        self.items: List[Value] = list(items or [])

    def copy(self) -> 'Array':
        return Array([item.copy() for item in self.items])

    def __len__(self) -> int:
        return len(self.items)

    def __repr__(self) -> str:
        return f"Array({self.items!r})"

    def __eq__(self, other):
        return isinstance(other, Array) and self.items == other.items


class Matrix(Value):
    """A dense row-major matrix. The core only stores, copies and renders it."""
    type_name = "matrix"

    def __init__(self, rows: int, cols: int, data: Optional[List[float]] = None, elem_type: str = "f64"):
        if rows < 0 or cols < 0:
            raise ValueError("matrix dimensions must be non-negative")
        self.rows = rows
        self.cols = cols
        self.elem_type = elem_type
        if data is None:
            data = [0.0] * (rows * cols)
        if len(data) != rows * cols:
            raise ValueError(f"matrix buffer has {len(data)} elements, expected {rows * cols}")
        self.data = list(data)

    def copy(self) -> 'Matrix':
        return Matrix(self.rows, self.cols, list(self.data), self.elem_type)

    def __repr__(self) -> str:
        return f"Matrix<{self.rows}x{self.cols} {self.elem_type}>"

    def __eq__(self, other):
        return (
            isinstance(other, Matrix) and
            (self.rows, self.cols, self.elem_type) == (other.rows, other.cols, other.elem_type) and
            self.data == other.data
        )


class Object(Value):
    """An opaque host handle. Copies share the handle."""
    type_name = "object"

    def __init__(self, handle: Any):
        self.handle = handle

    def __repr__(self) -> str:
        return f"Object({self.handle!r})"

    def __eq__(self, other):
        return isinstance(other, Object) and self.handle is other.handle


class Function(Value):
    """Abstract base class for callable values."""
    type_name = "function"
    name: str = "<anonymous>"

    @property
    def arity(self) -> Optional[int]:
        raise NotImplementedError


def _takes_user_data(callback: Callable) -> bool:
    try:
        params = inspect.signature(callback).parameters
    except (TypeError, ValueError):
        return False
    p = params.get('user_data')
    return p is not None and p.kind in (
        inspect.Parameter.KEYWORD_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


class NativeFn(Function):
    """A host callback installed into a scope.

    `arity` of None means the callback is variadic and the evaluator skips
    the argument-count check.
    """
    def __init__(self, name: str, callback: Callable, arity: Optional[int] = None, user_data: Any = None):
        self.name = name
        self.callback = callback
        self._arity = arity
        self.user_data = user_data
        # Resolved once from the signature.
        self.takes_user_data = _takes_user_data(callback)

    @property
    def arity(self) -> Optional[int]:
        return self._arity

    def __repr__(self) -> str:
        return f"<NativeFn {self.name} arity={self._arity}>"

    def __eq__(self, other):
        return isinstance(other, NativeFn) and self.callback == other.callback and self.name == other.name


class Closure(Function):
    """A user-defined function. References its declaration node, not its defining scope."""
    def __init__(self, decl: 'FunctionDecl'):
        self.decl = decl

    @property
    def name(self) -> str:
        return self.decl.name

    @property
    def arity(self) -> int:
        return len(self.decl.params)

    def __repr__(self) -> str:
        return f"<Closure {self.decl.name}({', '.join(self.decl.params)})>"

    def __eq__(self, other):
        return isinstance(other, Closure) and self.decl is other.decl


# --- value helpers ---

LITERAL_TYPES = (Null, Boolean, Integer, Float, String)


def is_literal(value: Value) -> bool:
    """Literal values are the scalar kinds an expression can be reduced to."""
    return isinstance(value, LITERAL_TYPES)


def is_numeric(value: Value) -> bool:
    return isinstance(value, (Integer, Float))


def truthy(value: Value) -> bool:
    """Truthiness used by if/while/&&/||."""
    match value:
        case Boolean():
            return value.value
        case Integer() | Float():
            return value.value != 0
        case String():
            return len(value.value) > 0
        case Null():
            return False
        case _:
            return True


def to_python(value: Value) -> Any:
    """Convert a runtime value into plain Python data for the host."""
    match value:
        case Null():
            return None
        case Boolean() | Integer() | Float() | String():
            return value.value
        case Array():
            return [to_python(item) for item in value.items]
        case Object():
            return value.handle
        case _:
            return value


def from_python(obj: Any) -> Value:
    """Convert a host result back into a runtime value."""
    match obj:
        case Value():
            return obj
        case None:
            return NULL
        # bool is a subclass of int, so check it before int
        case bool():
            return TRUE if obj else FALSE
        case int():
            return Integer(obj)
        case float():
            return Float(obj)
        case str():
            return String(obj)
        case list() | tuple():
            return Array([from_python(item) for item in obj])
        case _:
            return Object(obj)


# =================================================================
# AST Nodes
# =================================================================

class Node(ABC):
    """Abstract base class for AST nodes. `loc` is the first token's line/col."""
    loc: Optional[Dict[str, int]] = None

    def _fields(self):
        return tuple(v for k, v in self.__dict__.items() if k != 'loc')

    def __eq__(self, other):
        # Structural equality; `loc` is ignored.
        if type(self) is not type(other):
            return NotImplemented
        return self._fields() == other._fields()

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in self.__dict__.items() if k != 'loc')
        return f"{type(self).__name__}({args})"


class Program(Node):
    def __init__(self, statements: List[Node]):
        self.statements = list(statements)


class Literal(Node):
    """A constant. `value` is a Float, String, Boolean or Null."""
    def __init__(self, value: Value):
        self.value = value


class BinaryOp(Node):
    def __init__(self, op: str, left: Node, right: Node):
        self.op = op
        self.left = left
        self.right = right


class UnaryOp(Node):
    def __init__(self, op: str, operand: Node):
        self.op = op
        self.operand = operand


class Variable(Node):
    def __init__(self, name: str):
        self.name = name


class Assignment(Node):
    def __init__(self, name: str, value: Node, is_declaration: bool = False):
        self.name = name
        self.value = value
        self.is_declaration = is_declaration


class Block(Node):
    def __init__(self, statements: List[Node]):
        self.statements = list(statements)


class If(Node):
    def __init__(self, condition: Node, then_branch: Node, else_branch: Optional[Node] = None):
        self.condition = condition
        self.then_branch = then_branch
        self.else_branch = else_branch


class While(Node):
    def __init__(self, condition: Node, body: Node):
        self.condition = condition
        self.body = body


class Call(Node):
    def __init__(self, name: str, args: List[Node]):
        self.name = name
        self.args = list(args)


class FunctionDecl(Node):
    def __init__(self, name: str, params: List[str], body: Node):
        self.name = name
        self.params = list(params)
        self.body = body


class Return(Node):
    def __init__(self, value: Optional[Node] = None):
        self.value = value
