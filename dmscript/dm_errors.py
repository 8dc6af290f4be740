"""
Error taxonomy for the dmscript runtime.

Every failure raised by the lexer, parser or evaluator is a ScriptError
subclass. The `kind` attribute is the user-facing name of the error class
and is what the ScriptRunner prints in front of the message.
"""
from typing import Any, Dict, List, Optional


class ScriptError(Exception):
    """Base class for all errors raised by the dmscript core."""
    kind = "Error"

    def __init__(self, message: str, line: Optional[int] = None, col: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.col = col
        # Snapshot of the call stack at the innermost failing call, if any.
        self.stacktrace: Optional[List[Dict[str, Any]]] = None

    @property
    def loc(self) -> Optional[Dict[str, int]]:
        if self.line is None:
            return None
        return {'line': self.line, 'col': self.col}

    def at(self, loc: Optional[Dict[str, int]]) -> 'ScriptError':
        """Attach a location if the error does not carry one yet."""
        if self.line is None and loc:
            self.line = loc.get('line')
            self.col = loc.get('col')
        return self

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class ParseError(ScriptError):
    """Lexing or parsing failed. Always carries the offending line/column."""
    kind = "SyntaxError"

    def __init__(self, message: str, line: int, col: int):
        super().__init__(message, line, col)

    def __str__(self) -> str:
        return f"{self.kind}: {self.message} (line {self.line}, col {self.col})"


class TypeMismatch(ScriptError):
    kind = "TypeMismatch"


class UndefinedVariable(ScriptError):
    kind = "UndefinedVariable"


class DivisionByZero(ScriptError):
    kind = "DivisionByZero"


class InvalidArgument(ScriptError):
    kind = "InvalidArgument"


class OutOfMemory(ScriptError):
    kind = "OutOfMemory"


class LimitExceeded(ScriptError):
    # Call depth or loop iteration cap from InterpreterConfig.
    kind = "LimitExceeded"
