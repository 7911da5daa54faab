import pytest

from hybrid.hybrid_ast import (
    NumberLiteral, BooleanLiteral, StringLiteral, Identifier, Assign,
    ArrayLiteral, MapLiteral, Index, Binary, Unary, Call, If, While,
    ExpressionStmt, VarDecl, BlockDecl, TypedParam, Return, Block,
)
from hybrid.hybrid_datatypes import HybridType, ParseError, INT, STRING, BOOL, FLOAT
from hybrid.hybrid_parser import parse, normalize_foreign_source


def expr_of(source):
    program = parse(source)
    assert len(program.statements) == 1
    stmt = program.statements[0]
    assert isinstance(stmt, ExpressionStmt)
    return stmt.expr


def n(v):
    return NumberLiteral(float(v))


def test_empty_program():
    assert parse("").statements == []


def test_precedence():
    assert expr_of("2 + 3 * 4") == Binary('+', n(2), Binary('*', n(3), n(4)))
    assert expr_of("(2 + 3) * 4") == Binary('*', Binary('+', n(2), n(3)), n(4))


def test_binary_operators_are_left_associative():
    assert expr_of("10 - 4 - 3") == Binary('-', Binary('-', n(10), n(4)), n(3))


def test_comparison_binds_tighter_than_equality():
    assert expr_of("1 < 2 == true") == Binary('==', Binary('<', n(1), n(2)), BooleanLiteral(True))


def test_unary_and_postfix():
    assert expr_of("-!x") == Unary('-', Unary('!', Identifier('x')))
    assert expr_of("m[\"a\"][0]") == Index(Index(Identifier('m'), StringLiteral('a')), n(0))


def test_assignment_is_right_associative():
    assert expr_of("a = b = 1") == Assign('a', Assign('b', n(1)))


def test_invalid_assignment_target():
    with pytest.raises(ParseError) as exc:
        parse("1 = 2;")
    assert exc.value.message == "Invalid assignment target"
    assert (exc.value.line, exc.value.column) == (0, 2)


def test_collections_with_trailing_commas():
    assert expr_of("[1, 2,]") == ArrayLiteral([n(1), n(2)])
    assert expr_of('{"a": 1, "b": true,}') == MapLiteral([
        (StringLiteral('a'), n(1)),
        (StringLiteral('b'), BooleanLiteral(True)),
    ])
    assert expr_of("[]") == ArrayLiteral([])
    assert expr_of("{}") == MapLiteral([])


def test_calls_and_speak():
    assert expr_of("f(1, x)") == Call('f', [n(1), Identifier('x')])
    assert expr_of('speak("hi", 2)') == Call('speak', [StringLiteral('hi'), n(2)])


def test_if_and_while_are_expressions():
    assert expr_of("if (x) { 1 } else { 2 }") == If(
        Identifier('x'),
        Block([ExpressionStmt(n(1))]),
        Block([ExpressionStmt(n(2))]),
    )
    assert expr_of("while (false) { }") == While(BooleanLiteral(False), Block([]))


def test_typed_and_untyped_declarations():
    prog = parse("int var x = 1; const y = \"s\"; array[map{string, bool}] var z = [];")
    assert prog.statements == [
        VarDecl(False, 'x', INT, n(1)),
        VarDecl(True, 'y', None, StringLiteral('s')),
        VarDecl(False, 'z', HybridType.array(HybridType.map(STRING, BOOL)), ArrayLiteral([])),
    ]


def test_block_declaration_forms():
    prog = parse("""
        int block add(int a, int b) { return a + b; }
        (int, string) block pair() { return 1; }
        block bare(x) { x }
        void block nothing() { return; }
    """)
    add, pair, bare, nothing = prog.statements
    assert add == BlockDecl('add', [TypedParam('a', INT), TypedParam('b', INT)], [INT],
                            [Return(Binary('+', Identifier('a'), Identifier('b')))])
    assert pair.return_types == [INT, STRING]
    assert bare.params == [TypedParam('x')]
    assert bare.return_types == []
    assert bare.body == [ExpressionStmt(Identifier('x'))]
    assert nothing.body == [Return(None)]


def test_parenthesised_expression_is_not_a_return_tuple():
    assert expr_of("(1)") == n(1)


def test_foreign_block_body_is_dedented():
    prog = parse("""
#python float block half(float x) {
        y = x / 2
        return y
}
""")
    decl = prog.statements[0]
    assert decl.is_foreign
    assert decl.foreign_tag == "python"
    assert decl.return_types == [FLOAT]
    assert decl.params == [TypedParam('x', FLOAT)]
    assert decl.raw_source == "y = x / 2\nreturn y"
    assert decl.body == []


def test_foreign_block_with_return_tuple():
    decl = parse("#rust (int, int) block two() { (1, 2) }").statements[0]
    assert decl.return_types == [INT, INT]
    assert decl.raw_source == "(1, 2)"


def test_normalize_foreign_source():
    assert normalize_foreign_source("\n    a\n      b\n  ") == "a\n  b"


@pytest.mark.parametrize("source, message", [
    ("int 5", "Expected 'var', 'const', or 'block' after type"),
    ("#python block f() { }", "Expected type or '(' after #lang"),
    ("#python int var x = 1;", "Expected 'block' after type in mutable declaration"),
    ("#python int block f() { return 1", "Could not extract foreign block body"),
    ("var = 1;", "Expected identifier after 'var' or 'const'"),
    ("var x 1;", "Expected '=' after variable name"),
    ("block f(int) { }", "Expected parameter name after type"),
    ("block f(a b) { }", "Expected ',' or ')' in parameter list"),
    ("(int) var x = 1;", "Expected 'block' after return type tuple"),
    ("if (true) 1", "Expected '{' for block body"),
    ("[1 2]", "Expected ',' or ']' in array literal"),
    ('{"a" 1}', "Expected ':' after map key"),
    ("f(1 2)", "Expected ',' or ')' in f arguments"),
    ("(1", "Expected ')' after expression"),
    ("x[1", "Expected ']' after index"),
    ("int block f() { return 1;", "Expected '}' to end block body"),
    (")", "Unexpected token: RPAREN"),
], ids=[
    "type-then-expr", "foreign-no-type", "foreign-var", "foreign-unterminated",
    "var-no-name", "var-no-eq", "param-no-name", "param-no-comma", "tuple-no-block",
    "if-no-brace", "array-sep", "map-colon", "call-sep", "group-close", "index-close",
    "block-close", "stray-token",
])
def test_parse_errors(source, message):
    with pytest.raises(ParseError) as exc:
        parse(source)
    assert exc.value.message == message


def test_parse_error_positions_and_rendering():
    with pytest.raises(ParseError) as exc:
        parse("var x = 1;\nvar = 2;")
    err = exc.value
    assert (err.line, err.column) == (1, 4)
    assert str(err) == "Expected identifier after 'var' or 'const' at line 2, col 5"


def test_parse_error_diagnostic_range():
    with pytest.raises(ParseError) as exc:
        parse("var x 1;")
    diag = exc.value.to_diagnostic()
    assert diag["range"]["start"] == {"line": 0, "character": 6}
    assert diag["range"]["end"] == {"line": 0, "character": 11}
    assert diag["severity"] == "error"
    assert diag["message"] == "Expected '=' after variable name"


def test_node_positions_are_recorded():
    stmt = parse("\n  int var x = 1;").statements[0]
    assert (stmt.line, stmt.col) == (1, 2)


def test_foreign_bodies_with_quote_characters():
    prog = parse("""
#python string block dq() {
    return '"'
}
#rust string block ch() {
    let c = '"';
    c.to_string()
}
speak(dq());
""")
    dq, ch, call = prog.statements
    assert dq.raw_source == "return '\"'"
    assert ch.raw_source == "let c = '\"';\nc.to_string()"
    assert call == ExpressionStmt(Call('speak', [Call('dq', [])]))
