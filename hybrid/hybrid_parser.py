"""
Recursive-descent parser for the Hybrid language.

Single-token lookahead, no backtracking and no error recovery: the first
problem raises a ParseError carrying the 0-based position of the offending
token.
"""

import textwrap
from typing import List, Optional

from hybrid import hybrid_lexer as lx
from hybrid.hybrid_ast import (
    Program, Stmt, Expr,
    NumberLiteral, BooleanLiteral, StringLiteral, Identifier, Assign,
    ArrayLiteral, MapLiteral, Index, Binary, Unary, Call, If, While,
    ExpressionStmt, VarDecl, BlockDecl, TypedParam, Return, Block,
)
from hybrid.hybrid_datatypes import HybridType, ParseError
from hybrid.hybrid_lexer import Lexer, Token

_SIMPLE_TYPES = {
    'TYPE_INT': 'int',
    'TYPE_FLOAT': 'float',
    'TYPE_STRING': 'string',
    'TYPE_BOOL': 'bool',
    'TYPE_VOID': 'void',
    'TYPE_NULL': 'null',
}

_EQUALITY = {lx.EQ: '==', lx.NEQ: '!='}
_COMPARISON = {lx.LT: '<', lx.GT: '>', lx.LE: '<=', lx.GE: '>='}
_ADDITIVE = {lx.PLUS: '+', lx.MINUS: '-'}
_MULTIPLICATIVE = {lx.STAR: '*', lx.SLASH: '/'}


def normalize_foreign_source(raw: str) -> str:
    """Strips the common indentation and the surrounding blank space of a body."""
    return textwrap.dedent(raw).strip()


class Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.current = 0

    @classmethod
    def from_source(cls, source: str) -> 'Parser':
        return cls(Lexer(source).tokenize())

    # --- cursor helpers ---

    def _tok(self) -> Token:
        if self.current < len(self.tokens):
            return self.tokens[self.current]
        last = self.tokens[-1] if self.tokens else None
        return Token(lx.EOF, None, last.line if last else 0, last.col if last else 0)

    def _kind(self) -> str:
        return self._tok().kind

    def _peek_kind(self) -> str:
        nxt = self.current + 1
        return self.tokens[nxt].kind if nxt < len(self.tokens) else lx.EOF

    def _advance(self) -> Token:
        tok = self._tok()
        if self.current < len(self.tokens):
            self.current += 1
        return tok

    def _match(self, kind: str) -> bool:
        if self._kind() == kind:
            self._advance()
            return True
        return False

    def _expect(self, kind: str, message: str) -> Token:
        if self._kind() != kind:
            self._error(message)
        return self._advance()

    def _error(self, message: str):
        tok = self._tok()
        raise ParseError(message, tok.line, tok.col)

    def _is_type(self) -> bool:
        return self._kind() in lx.TYPE_KINDS

    # --- program & statements ---

    def parse(self) -> Program:
        statements = []
        while self._kind() != lx.EOF:
            statements.append(self.parse_statement())
        return Program(statements)

    def parse_statement(self) -> Stmt:
        tok = self._tok()
        kind = tok.kind

        if kind == lx.FOREIGN:
            self._advance()
            if self._is_type():
                return_types = [self.parse_type()]
                if self._kind() != 'BLOCK':
                    self._error("Expected 'block' after type in mutable declaration")
                return self.parse_block_declaration(return_types, tok, foreign_tag=tok.value)
            if self._kind() == lx.LPAREN:
                return_types = self.parse_return_type_tuple()
                if self._kind() != 'BLOCK':
                    self._error("Expected 'block' after return types in mutable declaration")
                return self.parse_block_declaration(return_types, tok, foreign_tag=tok.value)
            self._error("Expected type or '(' after #lang")

        if self._is_type():
            declared = self.parse_type()
            match self._kind():
                case 'VAR':
                    return self.parse_variable_declaration(declared, False, tok)
                case 'CONST':
                    return self.parse_variable_declaration(declared, True, tok)
                case 'BLOCK':
                    return self.parse_block_declaration([declared], tok)
            self._error("Expected 'var', 'const', or 'block' after type")

        # `(int, string) block f() {}`: a type keyword never starts an expression
        if kind == lx.LPAREN and self._peek_kind() in lx.TYPE_KINDS:
            return_types = self.parse_return_type_tuple()
            if self._kind() != 'BLOCK':
                self._error("Expected 'block' after return type tuple")
            return self.parse_block_declaration(return_types, tok)

        match kind:
            case 'VAR':
                return self.parse_variable_declaration(None, False, tok)
            case 'CONST':
                return self.parse_variable_declaration(None, True, tok)
            case 'BLOCK':
                return self.parse_block_declaration([], tok)
            case 'RETURN':
                return self.parse_return_statement()

        expr = self.parse_expression()
        self._match(lx.SEMICOLON)
        return ExpressionStmt(expr, line=tok.line, col=tok.col)

    def parse_type(self) -> HybridType:
        kind = self._kind()
        if kind in _SIMPLE_TYPES:
            self._advance()
            return HybridType(_SIMPLE_TYPES[kind])
        if kind == 'TYPE_ARRAY':
            self._advance()
            self._expect(lx.LBRACKET, "Expected '[' after 'array'")
            inner = self.parse_type()
            self._expect(lx.RBRACKET, "Expected ']' after array element type")
            return HybridType.array(inner)
        if kind == 'TYPE_MAP':
            self._advance()
            self._expect(lx.LBRACE, "Expected '{' after 'map'")
            key = self.parse_type()
            self._expect(lx.COMMA, "Expected ',' between map key and value types")
            value = self.parse_type()
            self._expect(lx.RBRACE, "Expected '}' after map value type")
            return HybridType.map(key, value)
        self._error(f"Expected type, found {self._tok().describe()}")

    def parse_return_type_tuple(self) -> List[HybridType]:
        self._expect(lx.LPAREN, "Expected '(' to start return type tuple")
        types = []
        while self._kind() != lx.RPAREN:
            types.append(self.parse_type())
            if self._kind() == lx.COMMA:
                self._advance()
            elif self._kind() != lx.RPAREN:
                self._error("Expected ',' or ')' in return type tuple")
        self._advance()
        return types

    def parse_variable_declaration(self, declared: Optional[HybridType], is_const: bool, start: Token) -> VarDecl:
        self._advance()  # 'var' / 'const'
        name_tok = self._expect(lx.IDENTIFIER, "Expected identifier after 'var' or 'const'")
        self._expect(lx.ASSIGN, "Expected '=' after variable name")
        value = self.parse_expression()
        self._match(lx.SEMICOLON)
        return VarDecl(is_const, name_tok.value, declared, value, line=start.line, col=start.col)

    def parse_parameters(self) -> List[TypedParam]:
        params = []
        while self._kind() != lx.RPAREN:
            param_type = self.parse_type() if self._is_type() else None
            if self._kind() != lx.IDENTIFIER:
                self._error("Expected parameter name after type" if param_type else "Expected parameter name")
            params.append(TypedParam(self._advance().value, param_type))
            if self._kind() == lx.COMMA:
                self._advance()
            elif self._kind() != lx.RPAREN:
                self._error("Expected ',' or ')' in parameter list")
        return params

    def parse_block_declaration(self, return_types: List[HybridType], start: Token,
                                foreign_tag: Optional[str] = None) -> BlockDecl:
        self._advance()  # 'block'
        name_tok = self._expect(lx.IDENTIFIER, "Expected identifier after 'block'")
        self._expect(lx.LPAREN, "Expected '(' after block name")
        params = self.parse_parameters()
        self._expect(lx.RPAREN, "Expected ')' after parameters")
        self._expect(lx.LBRACE, "Expected '{' to start block body")

        if foreign_tag is not None:
            raw = self._tok()
            if raw.kind != lx.RAW or raw.value is None:
                self._error("Could not extract foreign block body")
            self._advance()
            self._expect(lx.RBRACE, "Expected '}' to end foreign block body")
            return BlockDecl(name_tok.value, params, return_types, [],
                             foreign_tag=foreign_tag,
                             raw_source=normalize_foreign_source(raw.value),
                             line=start.line, col=start.col)

        body = []
        while self._kind() not in (lx.RBRACE, lx.EOF):
            body.append(self.parse_statement())
        self._expect(lx.RBRACE, "Expected '}' to end block body")
        return BlockDecl(name_tok.value, params, return_types, body, line=start.line, col=start.col)

    def parse_return_statement(self) -> Return:
        start = self._advance()  # 'return'
        value = None
        if self._kind() not in (lx.SEMICOLON, lx.RBRACE, lx.EOF):
            value = self.parse_expression()
        self._match(lx.SEMICOLON)
        return Return(value, line=start.line, col=start.col)

    def parse_block_body(self) -> Block:
        """The mandatory-brace `{ ... }` form used by if/while branches."""
        start = self._expect(lx.LBRACE, "Expected '{' for block body")
        statements = []
        while self._kind() not in (lx.RBRACE, lx.EOF):
            statements.append(self.parse_statement())
        self._expect(lx.RBRACE, "Expected '}' after block body")
        return Block(statements, line=start.line, col=start.col)

    # --- expressions, lowest precedence first ---

    def parse_expression(self) -> Expr:
        return self.parse_assignment()

    def parse_assignment(self) -> Expr:
        expr = self.parse_equality()
        if self._kind() == lx.ASSIGN:
            op = self._advance()
            value = self.parse_assignment()
            if isinstance(expr, Identifier):
                return Assign(expr.name, value, line=expr.line, col=expr.col)
            raise ParseError("Invalid assignment target", op.line, op.col)
        return expr

    def _binary_level(self, operators: dict, operand) -> Expr:
        left = operand()
        while self._kind() in operators:
            op = self._advance()
            right = operand()
            left = Binary(operators[op.kind], left, right, line=left.line, col=left.col)
        return left

    def parse_equality(self) -> Expr:
        return self._binary_level(_EQUALITY, self.parse_comparison)

    def parse_comparison(self) -> Expr:
        return self._binary_level(_COMPARISON, self.parse_additive)

    def parse_additive(self) -> Expr:
        return self._binary_level(_ADDITIVE, self.parse_multiplicative)

    def parse_multiplicative(self) -> Expr:
        return self._binary_level(_MULTIPLICATIVE, self.parse_unary)

    def parse_unary(self) -> Expr:
        tok = self._tok()
        if tok.kind in (lx.MINUS, lx.NOT):
            self._advance()
            operand = self.parse_unary()
            return Unary('-' if tok.kind == lx.MINUS else '!', operand, line=tok.line, col=tok.col)
        return self.parse_postfix()

    def parse_postfix(self) -> Expr:
        expr = self.parse_primary()
        while self._kind() == lx.LBRACKET:
            self._advance()
            index = self.parse_expression()
            self._expect(lx.RBRACKET, "Expected ']' after index")
            expr = Index(expr, index, line=expr.line, col=expr.col)
        return expr

    def _parse_arguments(self, what: str) -> List[Expr]:
        self._expect(lx.LPAREN, f"Expected '(' after '{what}'")
        args = []
        while self._kind() != lx.RPAREN:
            args.append(self.parse_expression())
            if self._kind() == lx.COMMA:
                self._advance()
            elif self._kind() != lx.RPAREN:
                self._error(f"Expected ',' or ')' in {what} arguments")
        self._advance()
        return args

    def parse_primary(self) -> Expr:
        tok = self._tok()
        pos = {'line': tok.line, 'col': tok.col}
        match tok.kind:
            case 'IF':
                return self.parse_if_expression()
            case 'WHILE':
                return self.parse_while_expression()
            case lx.LBRACKET:
                return self.parse_array_literal()
            case lx.LBRACE:
                return self.parse_map_literal()
            case lx.NUMBER:
                self._advance()
                return NumberLiteral(tok.value, **pos)
            case lx.BOOLEAN:
                self._advance()
                return BooleanLiteral(tok.value, **pos)
            case lx.STRING:
                self._advance()
                return StringLiteral(tok.value, **pos)
            case lx.IDENTIFIER:
                self._advance()
                if self._kind() == lx.LPAREN:
                    return Call(tok.value, self._parse_arguments(tok.value), **pos)
                return Identifier(tok.value, **pos)
            case lx.LPAREN:
                self._advance()
                expr = self.parse_expression()
                self._expect(lx.RPAREN, "Expected ')' after expression")
                return expr
            case 'SPEAK':
                self._advance()
                return Call('speak', self._parse_arguments('speak'), **pos)
        self._error(f"Unexpected token: {tok.describe()}")

    def parse_array_literal(self) -> ArrayLiteral:
        start = self._advance()  # '['
        elements = []
        while self._kind() not in (lx.RBRACKET, lx.EOF):
            elements.append(self.parse_expression())
            if self._kind() == lx.COMMA:
                self._advance()
            elif self._kind() != lx.RBRACKET:
                self._error("Expected ',' or ']' in array literal")
        self._expect(lx.RBRACKET, "Expected ']' after array elements")
        return ArrayLiteral(elements, line=start.line, col=start.col)

    def parse_map_literal(self) -> MapLiteral:
        start = self._advance()  # '{'
        pairs = []
        while self._kind() not in (lx.RBRACE, lx.EOF):
            key = self.parse_expression()
            self._expect(lx.COLON, "Expected ':' after map key")
            value = self.parse_expression()
            pairs.append((key, value))
            if self._kind() == lx.COMMA:
                self._advance()
            elif self._kind() != lx.RBRACE:
                self._error("Expected ',' or '}' in map literal")
        self._expect(lx.RBRACE, "Expected '}' after map pairs")
        return MapLiteral(pairs, line=start.line, col=start.col)

    def parse_if_expression(self) -> If:
        start = self._advance()  # 'if'
        self._expect(lx.LPAREN, "Expected '(' after 'if'")
        condition = self.parse_expression()
        self._expect(lx.RPAREN, "Expected ')' after if condition")
        then_branch = self.parse_block_body()
        else_branch = self.parse_block_body() if self._match('ELSE') else None
        return If(condition, then_branch, else_branch, line=start.line, col=start.col)

    def parse_while_expression(self) -> While:
        start = self._advance()  # 'while'
        self._expect(lx.LPAREN, "Expected '(' after 'while'")
        condition = self.parse_expression()
        self._expect(lx.RPAREN, "Expected ')' after while condition")
        body = self.parse_block_body()
        return While(condition, body, line=start.line, col=start.col)


def parse(source: str) -> Program:
    """Parses Hybrid source into a Program, raising ParseError on failure."""
    return Parser.from_source(source).parse()
