"""
Recursive-descent parser for dmscript.

Statements are parsed top-down; binary expressions use precedence climbing
over the BINARY_PRECEDENCE table. The parser keeps a single token of
lookahead, plus one extra token when it has to tell `x = ...` apart from an
expression statement that starts with an identifier. The first error aborts
the whole parse; no partial tree is returned.
"""
import math
from typing import List, Optional, Union

from dmscript.dm_errors import ParseError
from dmscript.dm_lexer import (
    Lexer, Token, EOF, IDENTIFIER, KEYWORD, NUMBER, STRING, OPERATOR,
)
from dmscript.dm_datatypes import (
    Program, Literal, BinaryOp, UnaryOp, Variable, Assignment, Block, If, While,
    Call, FunctionDecl, Return, Node,
    Float, String, TRUE, FALSE, NULL,
)

BINARY_PRECEDENCE = {
    '||': 1,
    '&&': 2,
    '==': 3, '!=': 3,
    '<': 4, '>': 4, '<=': 4, '>=': 4,
    '+': 5, '-': 5,
    '*': 6, '/': 6, '%': 6,
}
UNARY_OPERATORS = ('-', '!')
DECLARATION_KEYWORDS = ('let', 'var', 'const')
# Keywords the lexer recognizes but no statement uses yet.
RESERVED_KEYWORDS = frozenset({
    'for', 'break', 'continue', 'import',
    'matrix', 'vector', 'int', 'float', 'string', 'bool', 'void',
})
# Bounds parser recursion (statements plus unary/parenthesized expressions).
MAX_NESTING_DEPTH = 100


class Parser:
    """Builds a Program node from source text."""

    def __init__(self, source: Union[str, bytes]):
        self.lexer = Lexer(source)
        self.current: Token = self.lexer.next_token()
        self._lookahead: Optional[Token] = None
        self._depth = 0

    # --- token helpers ---

    def _advance(self) -> Token:
        tok = self.current
        if self._lookahead is not None:
            self.current, self._lookahead = self._lookahead, None
        else:
            self.current = self.lexer.next_token()
        return tok

    def _peek_next(self) -> Token:
        if self._lookahead is None:
            self._lookahead = self.lexer.next_token()
        return self._lookahead

    def _error(self, message: str, tok: Optional[Token] = None) -> ParseError:
        tok = tok or self.current
        return ParseError(message, tok.line, tok.col)

    def _describe(self, tok: Token) -> str:
        if tok.kind == EOF:
            return "end of input"
        return f"{tok.kind} {tok.text!r}"

    def _expect_symbol(self, char: str, context: str) -> Token:
        if not self.current.is_symbol(char):
            raise self._error(f"expected '{char}' {context}, found {self._describe(self.current)}")
        return self._advance()

    def _expect_identifier(self, context: str) -> Token:
        if self.current.kind != IDENTIFIER:
            raise self._error(f"expected identifier {context}, found {self._describe(self.current)}")
        return self._advance()

    @staticmethod
    def _at(node: Node, tok: Token) -> Node:
        node.loc = tok.loc
        return node

    # --- statements ---

    def parse(self) -> Program:
        start = self.current
        statements: List[Node] = []
        while self.current.kind != EOF:
            statements.append(self.parse_statement())
        return self._at(Program(statements), start)

    def _enter(self):
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise self._error(f"nesting too deep (more than {MAX_NESTING_DEPTH} levels)")

    def parse_statement(self) -> Node:
        self._enter()
        try:
            return self._parse_statement()
        finally:
            self._depth -= 1

    def _parse_statement(self) -> Node:
        tok = self.current
        if tok.kind == KEYWORD:
            word = tok.text
            if word in DECLARATION_KEYWORDS:
                return self._parse_declaration()
            if word == 'function':
                return self._parse_function()
            if word == 'return':
                return self._parse_return()
            if word == 'if':
                return self._parse_if()
            if word == 'while':
                return self._parse_while()
            if word in RESERVED_KEYWORDS:
                raise self._error(f"'{word}' is reserved")
            if word not in ('true', 'false', 'null'):
                raise self._error(f"unexpected keyword '{word}'")
        if tok.is_symbol('{'):
            return self._parse_block()
        if tok.kind == IDENTIFIER and self._peek_next().is_operator('='):
            return self._parse_assignment()
        expr = self.parse_expression()
        self._expect_symbol(';', "after expression")
        return expr

    def _parse_declaration(self) -> Node:
        start = self._advance()
        name = self._expect_identifier(f"after '{start.text}'")
        if not self.current.is_operator('='):
            raise self._error(f"expected '=' after '{name.text}', found {self._describe(self.current)}")
        self._advance()
        value = self.parse_expression()
        self._expect_symbol(';', "after declaration")
        return self._at(Assignment(name.text, value, is_declaration=True), start)

    def _parse_assignment(self) -> Node:
        name = self._advance()
        self._advance()  # '='
        value = self.parse_expression()
        self._expect_symbol(';', "after assignment")
        return self._at(Assignment(name.text, value, is_declaration=False), name)

    def _parse_block(self) -> Node:
        start = self._expect_symbol('{', "to open block")
        statements: List[Node] = []
        while not self.current.is_symbol('}'):
            if self.current.kind == EOF:
                raise self._error("expected '}' to close block, found end of input")
            statements.append(self.parse_statement())
        self._advance()
        return self._at(Block(statements), start)

    def _parse_if(self) -> Node:
        start = self._advance()
        self._expect_symbol('(', "after 'if'")
        condition = self.parse_expression()
        self._expect_symbol(')', "after if condition")
        then_branch = self.parse_statement()
        else_branch = None
        if self.current.is_keyword('else'):
            self._advance()
            else_branch = self.parse_statement()
        return self._at(If(condition, then_branch, else_branch), start)

    def _parse_while(self) -> Node:
        start = self._advance()
        self._expect_symbol('(', "after 'while'")
        condition = self.parse_expression()
        self._expect_symbol(')', "after while condition")
        body = self.parse_statement()
        return self._at(While(condition, body), start)

    def _parse_function(self) -> Node:
        start = self._advance()
        name = self._expect_identifier("after 'function'")
        self._expect_symbol('(', "after function name")
        params: List[str] = []
        if not self.current.is_symbol(')'):
            params.append(self._expect_identifier("in parameter list").text)
            while self.current.is_symbol(','):
                self._advance()
                params.append(self._expect_identifier("in parameter list").text)
        self._expect_symbol(')', "to close parameter list")
        body = self.parse_statement()
        return self._at(FunctionDecl(name.text, params, body), start)

    def _parse_return(self) -> Node:
        start = self._advance()
        value = None
        if not self.current.is_symbol(';'):
            value = self.parse_expression()
        self._expect_symbol(';', "after return")
        return self._at(Return(value), start)

    # --- expressions ---

    def parse_expression(self) -> Node:
        return self._parse_binary(1)

    def _parse_binary(self, min_prec: int) -> Node:
        left = self._parse_unary()
        while True:
            tok = self.current
            if tok.kind != OPERATOR:
                break
            prec = BINARY_PRECEDENCE.get(tok.text)
            if prec is None or prec < min_prec:
                break
            self._advance()
            # Left-associative: the right operand only takes tighter operators.
            right = self._parse_binary(prec + 1)
            left = self._at(BinaryOp(tok.text, left, right), tok)
        return left

    def _parse_unary(self) -> Node:
        self._enter()
        try:
            return self._parse_unary_operand()
        finally:
            self._depth -= 1

    def _parse_unary_operand(self) -> Node:
        tok = self.current
        if tok.kind == OPERATOR and tok.text in UNARY_OPERATORS:
            self._advance()
            operand = self._parse_unary()
            return self._at(UnaryOp(tok.text, operand), tok)
        return self._parse_primary()

    def _parse_primary(self) -> Node:
        tok = self.current
        if tok.kind == NUMBER:
            self._advance()
            value = float(tok.text)
            if math.isinf(value):
                raise self._error("number out of range", tok)
            return self._at(Literal(Float(value)), tok)
        if tok.kind == STRING:
            self._advance()
            return self._at(Literal(String(tok.text)), tok)
        if tok.is_keyword('true'):
            self._advance()
            return self._at(Literal(TRUE), tok)
        if tok.is_keyword('false'):
            self._advance()
            return self._at(Literal(FALSE), tok)
        if tok.is_keyword('null'):
            self._advance()
            return self._at(Literal(NULL), tok)
        if tok.kind == IDENTIFIER:
            self._advance()
            if self.current.is_symbol('('):
                return self._at(Call(tok.text, self._parse_arguments()), tok)
            return self._at(Variable(tok.text), tok)
        if tok.is_symbol('('):
            self._advance()
            expr = self.parse_expression()
            self._expect_symbol(')', "to close parenthesized expression")
            return expr
        raise self._error(f"unexpected {self._describe(tok)}")

    def _parse_arguments(self) -> List[Node]:
        self._expect_symbol('(', "to open argument list")
        args: List[Node] = []
        if not self.current.is_symbol(')'):
            args.append(self.parse_expression())
            while self.current.is_symbol(','):
                self._advance()
                args.append(self.parse_expression())
        self._expect_symbol(')', "to close argument list")
        return args


def parse(source: Union[str, bytes]) -> Program:
    """Parse a complete program. Raises ParseError on the first problem."""
    return Parser(source).parse()
