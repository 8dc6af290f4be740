"""
Tokenizer for dmscript source text.

The lexer is pull-based: each call to `Lexer.next_token()` skips whitespace
and comments, then scans exactly one token. Tokens do not copy their text;
they keep a span into the source and slice it on demand.
"""
from typing import Iterator, Union

from dmscript.dm_errors import ParseError

# Token kinds
EOF = 'eof'
IDENTIFIER = 'identifier'
KEYWORD = 'keyword'
NUMBER = 'number'
STRING = 'string'
OPERATOR = 'operator'
SYMBOL = 'symbol'

KEYWORDS = frozenset({
    "if", "else", "while", "for", "function", "return",
    "break", "continue", "import", "true", "false", "null",
    "let", "const", "var", "matrix", "vector", "int",
    "float", "string", "bool", "void",
})

OPERATOR_CHARS = "+-*/%=<>!&|^~"
SYMBOL_CHARS = "()[]{};,."
COMPOUND_OPERATORS = frozenset({"==", "!=", "<=", ">=", "&&", "||"})
WHITESPACE = " \t\n\r\v\f"


def _is_letter(c: str) -> bool:
    return c.isascii() and (c.isalpha() or c == '_')


def _is_digit(c: str) -> bool:
    return '0' <= c <= '9'


def _is_word_char(c: str) -> bool:
    return _is_letter(c) or _is_digit(c)


class Token:
    """A single lexeme: kind plus a (start, length) span into the source."""
    __slots__ = ('kind', 'source', 'start', 'length', 'line', 'col')

    def __init__(self, kind: str, source: str, start: int, length: int, line: int, col: int):
        self.kind = kind
        self.source = source
        self.start = start
        self.length = length
        self.line = line
        self.col = col

    @property
    def text(self) -> str:
        return self.source[self.start:self.start + self.length]

    @property
    def loc(self) -> dict:
        return {'line': self.line, 'col': self.col}

    def is_keyword(self, word: str) -> bool:
        return self.kind == KEYWORD and self.text == word

    def is_symbol(self, char: str) -> bool:
        return self.kind == SYMBOL and self.text == char

    def is_operator(self, op: str) -> bool:
        return self.kind == OPERATOR and self.text == op

    def __repr__(self) -> str:
        return f"Token<{self.kind} {self.text!r} @{self.line}:{self.col}>"

    def __eq__(self, other):
        if not isinstance(other, Token):
            return NotImplemented
        return (self.kind, self.text, self.line, self.col) == (other.kind, other.text, other.line, other.col)


def _decode(data: bytes) -> str:
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError as e:
        # Position of the first bad byte, counted in decoded characters.
        prefix = data[:e.start].decode('utf-8', errors='replace')
        line = prefix.count('\n') + 1
        col = len(prefix) - prefix.rfind('\n')
        raise ParseError("invalid UTF-8", line, col) from None


class Lexer:
    """Scans tokens from a source buffer, tracking 1-based line and column."""

    def __init__(self, source: Union[str, bytes]):
        if isinstance(source, (bytes, bytearray)):
            source = _decode(bytes(source))
        self.source = source
        self.pos = 0
        self.line = 1
        self.col = 1

    # --- cursor helpers ---

    def _peek(self, offset: int = 0) -> str:
        i = self.pos + offset
        if i < len(self.source):
            return self.source[i]
        return ''

    def _advance(self) -> str:
        c = self.source[self.pos]
        self.pos += 1
        if c == '\n':
            self.line += 1
            self.col = 1
        else:
            self.col += 1
        return c

    def _skip_whitespace_and_comments(self):
        while self.pos < len(self.source):
            c = self._peek()
            if c in WHITESPACE:
                self._advance()
            elif c == '/' and self._peek(1) == '/':
                while self.pos < len(self.source) and self._peek() != '\n':
                    self._advance()
            elif c == '/' and self._peek(1) == '*':
                self._advance()
                self._advance()
                # An unterminated block comment runs to end of input.
                while self.pos < len(self.source) and not (self._peek() == '*' and self._peek(1) == '/'):
                    self._advance()
                if self.pos < len(self.source):
                    self._advance()
                    self._advance()
            else:
                break

    # --- scanning ---

    def next_token(self) -> Token:
        """Scan and return the next token. Returns EOF tokens forever once exhausted."""
        self._skip_whitespace_and_comments()

        start, line, col = self.pos, self.line, self.col
        if self.pos >= len(self.source):
            return Token(EOF, self.source, start, 0, line, col)

        c = self._peek()

        if _is_letter(c):
            while self.pos < len(self.source) and _is_word_char(self._peek()):
                self._advance()
            word = self.source[start:self.pos]
            kind = KEYWORD if word in KEYWORDS else IDENTIFIER
            return Token(kind, self.source, start, self.pos - start, line, col)

        if _is_digit(c):
            seen_dot = False
            while self.pos < len(self.source):
                ch = self._peek()
                if _is_digit(ch):
                    self._advance()
                elif ch == '.' and not seen_dot:
                    seen_dot = True
                    self._advance()
                else:
                    break
            return Token(NUMBER, self.source, start, self.pos - start, line, col)

        if c in ('"', "'"):
            quote = self._advance()
            body_start = self.pos
            while True:
                if self.pos >= len(self.source):
                    raise ParseError("unterminated string", line, col)
                ch = self._peek()
                if ch == quote:
                    break
                if ch == '\\' and self.pos + 1 < len(self.source):
                    # Escapes are kept verbatim; only the quote is protected.
                    self._advance()
                self._advance()
            body_len = self.pos - body_start
            self._advance()
            return Token(STRING, self.source, body_start, body_len, line, col)

        if c in OPERATOR_CHARS:
            self._advance()
            if c + self._peek() in COMPOUND_OPERATORS:
                self._advance()
            return Token(OPERATOR, self.source, start, self.pos - start, line, col)

        if c in SYMBOL_CHARS:
            self._advance()
            return Token(SYMBOL, self.source, start, 1, line, col)

        raise ParseError(f"unknown character {c!r}", line, col)

    def __iter__(self) -> Iterator[Token]:
        while True:
            tok = self.next_token()
            yield tok
            if tok.kind == EOF:
                return


def tokenize(source: Union[str, bytes]) -> Iterator[Token]:
    """Yield every token of `source`, ending with a single EOF token."""
    return iter(Lexer(source))
