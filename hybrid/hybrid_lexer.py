"""
Tokenizer for the Hybrid language.

The lexer never fails: unknown characters are skipped, malformed numerals
become 0.0 and the stream always ends with an EOF token.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

# Token kinds
NUMBER = 'NUMBER'
STRING = 'STRING'
BOOLEAN = 'BOOLEAN'
IDENTIFIER = 'IDENTIFIER'
FOREIGN = 'FOREIGN'      # '#python', '#rust', ... value is the tag
RAW = 'RAW'              # verbatim foreign body; value is None when unterminated
EOF = 'EOF'

PLUS, MINUS, STAR, SLASH = 'PLUS', 'MINUS', 'STAR', 'SLASH'
ASSIGN, EQ, NEQ, NOT = 'ASSIGN', 'EQ', 'NEQ', 'NOT'
LT, GT, LE, GE = 'LT', 'GT', 'LE', 'GE'
LPAREN, RPAREN, LBRACE, RBRACE = 'LPAREN', 'RPAREN', 'LBRACE', 'RBRACE'
LBRACKET, RBRACKET = 'LBRACKET', 'RBRACKET'
COMMA, COLON, SEMICOLON = 'COMMA', 'COLON', 'SEMICOLON'

KEYWORDS = {
    'var': 'VAR',
    'const': 'CONST',
    'block': 'BLOCK',
    'return': 'RETURN',
    'if': 'IF',
    'else': 'ELSE',
    'while': 'WHILE',
    'speak': 'SPEAK',
}

TYPE_KEYWORDS = {
    'int': 'TYPE_INT',
    'float': 'TYPE_FLOAT',
    'string': 'TYPE_STRING',
    'bool': 'TYPE_BOOL',
    'void': 'TYPE_VOID',
    'null': 'TYPE_NULL',
    'array': 'TYPE_ARRAY',
    'map': 'TYPE_MAP',
}

TYPE_KINDS = frozenset(TYPE_KEYWORDS.values())

_SINGLE = {
    '+': PLUS, '-': MINUS, '*': STAR, '/': SLASH,
    '(': LPAREN, ')': RPAREN, '{': LBRACE, '}': RBRACE,
    '[': LBRACKET, ']': RBRACKET, ',': COMMA, ':': COLON, ';': SEMICOLON,
}

# one-char token -> (two-char token when followed by '=')
_WITH_EQ = {
    '=': (ASSIGN, EQ),
    '!': (NOT, NEQ),
    '<': (LT, LE),
    '>': (GT, GE),
}

_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '\\': '\\', '"': '"'}


def _is_digit(ch: str) -> bool:
    return '0' <= ch <= '9'


@dataclass
class Token:
    kind: str
    value: Any
    line: int
    col: int

    def describe(self) -> str:
        if self.kind in (NUMBER, STRING, BOOLEAN, IDENTIFIER, FOREIGN):
            return f"{self.kind}({self.value!r})"
        return self.kind


class Lexer:
    """Character-at-a-time scanner tracking 0-based line/column."""

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 0
        self.col = 0
        self.tokens: List[Token] = []
        # Foreign header watch: armed by '#tag', fires on the body's '{'.
        self._foreign_armed = False
        self._seen_block = False
        self._paren_depth = 0

    # --- character helpers ---

    def _current(self) -> Optional[str]:
        return self.source[self.pos] if self.pos < len(self.source) else None

    def _peek(self) -> Optional[str]:
        nxt = self.pos + 1
        return self.source[nxt] if nxt < len(self.source) else None

    def _advance(self):
        ch = self._current()
        if ch is None:
            return
        if ch == '\n':
            self.line += 1
            self.col = 0
        else:
            self.col += 1
        self.pos += 1

    def _emit(self, kind: str, value: Any, line: int, col: int):
        self.tokens.append(Token(kind, value, line, col))

    # --- readers ---

    def _read_number(self) -> float:
        start = self.pos
        while (ch := self._current()) is not None and (_is_digit(ch) or ch == '.'):
            self._advance()
        try:
            return float(self.source[start:self.pos])
        except ValueError:
            return 0.0

    def _read_identifier(self) -> str:
        start = self.pos
        while (ch := self._current()) is not None and (ch.isalnum() or ch == '_'):
            self._advance()
        return self.source[start:self.pos]

    def _read_string(self) -> str:
        self._advance()  # opening quote
        out = []
        while (ch := self._current()) is not None:
            if ch == '"':
                self._advance()
                break
            if ch == '\\':
                self._advance()
                esc = self._current()
                if esc is None:
                    break
                out.append(_ESCAPES.get(esc, '\\' + esc))
                self._advance()
                continue
            out.append(ch)
            self._advance()
        return ''.join(out)

    def _single_quoted_end(self) -> Optional[int]:
        """Position just past a '...' span closing on the same line, else None.

        An unclosed quote (a Rust lifetime such as 'a) is left inert.
        """
        i = self.pos + 1
        while i < len(self.source):
            ch = self.source[i]
            if ch == '\n':
                return None
            if ch == '\\':
                i += 2
                continue
            if ch == "'":
                return i + 1
            i += 1
        return None

    def _read_raw_body(self):
        """Consumes a foreign body up to (not including) its matching '}'."""
        line, col = self.line, self.col
        start = self.pos
        depth = 1
        in_string = False
        while (ch := self._current()) is not None:
            if in_string:
                if ch == '\\':
                    self._advance()
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "'":
                end = self._single_quoted_end()
                if end is not None:
                    while self.pos < end:
                        self._advance()
                    continue
            elif ch == '{':
                depth += 1
            elif ch == '}':
                depth -= 1
                if depth == 0:
                    self._emit(RAW, self.source[start:self.pos], line, col)
                    return
            self._advance()
        self._emit(RAW, None, line, col)

    # --- foreign header tracking ---

    def _track_header(self, kind: str) -> bool:
        """Updates the foreign watch; True when `kind` opens a foreign body."""
        if not self._foreign_armed:
            return False
        if kind == 'BLOCK':
            self._seen_block = True
        elif kind == LPAREN:
            self._paren_depth += 1
        elif kind == RPAREN:
            self._paren_depth -= 1
        elif kind == SEMICOLON:
            self._foreign_armed = False
        elif kind == LBRACE and self._seen_block and self._paren_depth <= 0:
            self._foreign_armed = False
            return True
        return False

    def _arm_foreign(self):
        self._foreign_armed = True
        self._seen_block = False
        self._paren_depth = 0

    # --- main loop ---

    def tokenize(self) -> List[Token]:
        while (ch := self._current()) is not None:
            line, col = self.line, self.col

            if ch.isspace():
                self._advance()
            elif ch == '/' and self._peek() == '/':
                while (c := self._current()) is not None and c != '\n':
                    self._advance()
            elif ch in _WITH_EQ:
                single, double = _WITH_EQ[ch]
                if self._peek() == '=':
                    self._advance()
                    self._advance()
                    self._emit(double, None, line, col)
                else:
                    self._advance()
                    self._emit(single, None, line, col)
            elif ch in _SINGLE:
                kind = _SINGLE[ch]
                self._advance()
                self._emit(kind, None, line, col)
                if self._track_header(kind):
                    self._read_raw_body()
            elif ch == '#':
                self._advance()
                nxt = self._current()
                if nxt is not None and nxt.isalpha():
                    self._emit(FOREIGN, self._read_identifier(), line, col)
                    self._arm_foreign()
            elif ch == '"':
                self._emit(STRING, self._read_string(), line, col)
            elif _is_digit(ch):
                self._emit(NUMBER, self._read_number(), line, col)
            elif ch.isalpha() or ch == '_':
                word = self._read_identifier()
                if word in ('true', 'false'):
                    self._emit(BOOLEAN, word == 'true', line, col)
                elif word in KEYWORDS:
                    self._emit(KEYWORDS[word], None, line, col)
                    self._track_header(KEYWORDS[word])
                elif word in TYPE_KEYWORDS:
                    self._emit(TYPE_KEYWORDS[word], None, line, col)
                else:
                    self._emit(IDENTIFIER, word, line, col)
            else:
                # Unknown characters are skipped
                self._advance()

        self._emit(EOF, None, self.line, self.col)
        return self.tokens


def tokenize(source: str) -> List[Token]:
    return Lexer(source).tokenize()
