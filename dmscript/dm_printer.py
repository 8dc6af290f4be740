"""
A pretty-printer for dmscript values and AST nodes.
"""
import math
from decimal import Decimal

from dmscript.dm_datatypes import (
    Null, Boolean, Integer, Float, String, Array, Matrix, Object, NativeFn, Closure,
    Program, Literal, BinaryOp, UnaryOp, Variable, Assignment, Block, If, While,
    Call, FunctionDecl, Return,
)


def format_number(x: float) -> str:
    """Render a float the way the lexer can read it back: no exponent, no trailing '.0'."""
    if math.isnan(x):
        return "nan"
    if math.isinf(x):
        return "inf" if x > 0 else "-inf"
    if x.is_integer():
        return str(int(x))
    text = repr(x)
    if 'e' in text or 'E' in text:
        text = format(Decimal(text), 'f')
    return text


def quote_string(s: str) -> str:
    """Quote raw string text so the lexer reproduces it byte for byte."""
    quote = "'"
    if _has_unescaped(s, "'"):
        quote = '"'
    return f"{quote}{s}{quote}"


def _has_unescaped(s: str, quote: str) -> bool:
    i = 0
    while i < len(s):
        if s[i] == '\\':
            i += 2
            continue
        if s[i] == quote:
            return True
        i += 1
    return False


class Printer:
    """Formats dmscript objects into readable, valid dmscript source strings."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._handlers.get(type(obj))
        if handler is None:
            return repr(obj)
        return handler(obj, level)

    def _create_handlers(self):
        return {
            Null: lambda o, l: 'null',
            Boolean: lambda o, l: 'true' if o.value else 'false',
            Integer: lambda o, l: str(o.value),
            Float: lambda o, l: format_number(o.value),
            String: lambda o, l: quote_string(o.value),
            Array: self._pformat_array,
            Matrix: lambda o, l: f"<matrix {o.rows}x{o.cols} {o.elem_type}>",
            Object: lambda o, l: "<object>",
            NativeFn: lambda o, l: f"<function {o.name}>",
            Closure: lambda o, l: f"<function {o.name}>",
            Program: self._pformat_program,
            Literal: lambda o, l: self.pformat(o.value, l),
            BinaryOp: self._pformat_binary,
            UnaryOp: lambda o, l: f"{o.op}{self.pformat(o.operand, l)}",
            Variable: lambda o, l: o.name,
            Call: self._pformat_call,
            Assignment: self._pformat_assignment,
            Block: self._pformat_block,
            If: self._pformat_if,
            While: self._pformat_while,
            FunctionDecl: self._pformat_function,
            Return: self._pformat_return,
        }

    # --- values ---

    def _pformat_array(self, obj, level):
        return "[" + ", ".join(self.pformat(item, level) for item in obj.items) + "]"

    # --- expressions ---

    def _pformat_binary(self, obj, level):
        # Fully parenthesized so the tree shape is visible.
        return f"({self.pformat(obj.left, level)} {obj.op} {self.pformat(obj.right, level)})"

    def _pformat_call(self, obj, level):
        args = ", ".join(self.pformat(a, level) for a in obj.args)
        return f"{obj.name}({args})"

    # --- statements ---

    def _statement(self, node, level):
        text = self.pformat(node, level)
        if isinstance(node, (Block, If, While, FunctionDecl, Assignment, Return)):
            return text
        return text + ";"

    def _pformat_program(self, obj, level):
        return "\n".join(self._statement(s, level) for s in obj.statements)

    def _pformat_assignment(self, obj, level):
        prefix = "let " if obj.is_declaration else ""
        return f"{prefix}{obj.name} = {self.pformat(obj.value, level)};"

    def _pformat_block(self, obj, level):
        if not obj.statements:
            return "{}"
        inner = self._indent_char * (level + 1)
        lines = [inner + self._statement(s, level + 1) for s in obj.statements]
        return "{\n" + "\n".join(lines) + "\n" + self._indent_char * level + "}"

    def _pformat_if(self, obj, level):
        text = f"if ({self.pformat(obj.condition, level)}) {self._statement(obj.then_branch, level)}"
        if obj.else_branch is not None:
            text += f" else {self._statement(obj.else_branch, level)}"
        return text

    def _pformat_while(self, obj, level):
        return f"while ({self.pformat(obj.condition, level)}) {self._statement(obj.body, level)}"

    def _pformat_function(self, obj, level):
        params = ", ".join(obj.params)
        return f"function {obj.name}({params}) {self._statement(obj.body, level)}"

    def _pformat_return(self, obj, level):
        if obj.value is None:
            return "return;"
        return f"return {self.pformat(obj.value, level)};"
