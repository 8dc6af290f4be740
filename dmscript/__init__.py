"""
dmscript: a small embeddable scripting-language runtime.

    from dmscript import ScriptRunner
    result = ScriptRunner().handle_script("let x = 2; x * 21;")
    result.value  # 42.0
"""
from dmscript.dm_errors import (
    ScriptError, ParseError, TypeMismatch, UndefinedVariable, DivisionByZero,
    InvalidArgument, OutOfMemory, LimitExceeded,
)
from dmscript.dm_config import InterpreterConfig, load_config
from dmscript.dm_lexer import Lexer, Token, tokenize
from dmscript.dm_parser import Parser, parse
from dmscript.dm_scope import Scope
from dmscript.dm_interpreter import Evaluator, evaluate
from dmscript.dm_printer import Printer
from dmscript.dm_runtime import (
    ScriptRunner, ExecutionResult, DMHost, StdLib, dm_api_method, register_native,
)

__all__ = [
    "ScriptError", "ParseError", "TypeMismatch", "UndefinedVariable", "DivisionByZero",
    "InvalidArgument", "OutOfMemory", "LimitExceeded",
    "InterpreterConfig", "load_config",
    "Lexer", "Token", "tokenize", "Parser", "parse", "Scope",
    "Evaluator", "evaluate", "Printer",
    "ScriptRunner", "ExecutionResult", "DMHost", "StdLib", "dm_api_method", "register_native",
]
