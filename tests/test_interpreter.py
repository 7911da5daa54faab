import pytest

from hybrid.hybrid_datatypes import (
    HybridMap, HybridRuntimeError, ForeignError, NOTHING, FunctionDef, ForeignFunctionDef,
)
from hybrid.hybrid_interpreter import Evaluator
from hybrid.hybrid_parser import parse
from hybrid.hybrid_runtime import evaluate


class StubBridge:
    """Records foreign calls and answers from a canned table."""

    def __init__(self, answers=None, error=None):
        self.answers = answers or {}
        self.error = error
        self.calls = []

    def call(self, tag, params, source, args):
        self.calls.append((tag, params, source, args))
        if self.error is not None:
            raise self.error
        return self.answers.get(tag, [])


def run(source, evaluator=None):
    ev = evaluator or Evaluator(bridge=StubBridge())
    return evaluate(parse(source), ev)


def spoken(ev):
    return [e['message'] for e in ev.side_effects]


@pytest.mark.parametrize("source, expected", [
    ("2 + 3 * 4", 14),
    ("(2 + 3) * 4", 20),
    ("7 / 2", 3.5),
    ("-3 + 1", -2),
    ('"ab" + "cd"', "abcd"),
    ("1 < 2", True),
    ("2 <= 1", False),
    ("!true", False),
    ("1 == 1", True),
    ('1 == "1"', False),
    ('1 != "1"', True),
    ("[1, [2]] == [1, [2]]", True),
    ('{"a": 1} == {"a": 1}', True),
    ('{"a": 1} == {"a": 2}', False),
], ids=[
    "precedence", "grouping", "division", "negate", "concat", "lt", "le", "not",
    "eq", "cross-type-eq", "cross-type-neq", "array-eq", "map-eq", "map-neq",
])
def test_expressions(source, expected):
    assert run(source) == expected


@pytest.mark.parametrize("source, message", [
    ("1 / 0", "Division by zero"),
    ("x", "Undefined variable: x"),
    ("x = 1", "Undefined variable: x"),
    ("f()", "Undefined function: f"),
    ('1 + "a"', "Cannot apply Add to number 1 and string \"a\""),
    ('"a" < "b"', "Cannot apply LessThan to strings"),
    ('-"a"', "Cannot apply Negate to string \"a\""),
    ("!1", "Cannot apply Not to number 1"),
    ("if (1) { 2 }", "If condition must be a boolean"),
    ('while ("x") { 1 }', "While condition must be a boolean"),
    ("{1: 2}", "Map keys must be strings"),
    ("[1, 2][2]", "Index 2 out of bounds (len 2)"),
    ("[1, 2][-1]", "Index -1 out of bounds (len 2)"),
    ("[1, 2][0.5]", "Array index must be an integer"),
    ('[1, 2]["0"]', "Array index must be a number"),
    ('{"a": 1}[0]', "Map index must be a string"),
    ("5[0]", "Cannot index non-collection type"),
    ("return 3;", "Uncaught return: 3"),
], ids=[
    "div-zero", "undefined-var", "assign-undefined", "undefined-fn", "mixed-add",
    "string-compare", "negate-string", "not-number", "if-cond", "while-cond",
    "map-key", "oob", "negative-index", "fractional-index", "string-index",
    "map-number-index", "index-number", "top-level-return",
])
def test_runtime_errors(source, message):
    with pytest.raises(HybridRuntimeError) as exc:
        run(source)
    assert exc.value.message == message


def test_indexing():
    assert run('var a = [10, 20, 30]; a[1]') == 20
    assert run('var m = {"k": "v"}; m["k"]') == "v"
    assert run('var m = {"k": "v"}; m["missing"]') is None


def test_const_and_var():
    assert run("var x = 1; x = 2; x") == 2
    with pytest.raises(HybridRuntimeError, match="Cannot reassign constant 'x'"):
        run("const x = 1; x = 2;")
    with pytest.raises(HybridRuntimeError, match="Cannot redeclare constant 'x'"):
        run("const x = 1; var x = 2;")


def test_const_check_happens_before_right_hand_side():
    ev = Evaluator(bridge=StubBridge())
    with pytest.raises(HybridRuntimeError, match="Cannot reassign constant"):
        run('const x = 1; x = speak("side effect");', ev)
    assert spoken(ev) == []


def test_if_and_while_values():
    assert run("var y = if (true) { 5 } else { 10 }; y") == 5
    assert run("var y = if (false) { 5 }; y") is None
    assert run("while (false) { 1 }") is None
    assert run("var i = 0; while (i < 3) { i = i + 1; i * 10 }") == 30


def test_evaluator_reports_nothing_for_declarations_only():
    ev = Evaluator()
    assert ev.evaluate(parse("var x = 1;")) is NOTHING
    assert evaluate(parse("var x = 1;")) is None


def test_speak_renders_values():
    ev = Evaluator()
    run('speak(1, 2.5, "s", true, [1, "a"], {"k": 1}); speak();', ev)
    assert spoken(ev) == ['1 2.5 "s" true [1, "a"] {"k": 1}', '']
    assert all(e['topics'] == ['stdout'] for e in ev.side_effects)


def test_speak_yields_null():
    assert run('speak("x")') is None


def test_function_call_and_implicit_result():
    src = """
        int block add(int a, int b) { return a + b; }
        block last(x) { x * 2 }
        block empty() { }
        [add(2, 3), last(4), empty()]
    """
    assert run(src) == [5, 8, None]


def test_recursion():
    src = """
        int block fact(int n) {
            if (n <= 1) { return 1; }
            return n * fact(n - 1);
        }
        fact(5)
    """
    assert run(src) == 120


def test_callee_cannot_change_caller_state():
    ev = Evaluator()
    run("var x = 1; block f(){ x = 99; return 0; } f(); speak(x);", ev)
    assert spoken(ev) == ["1"]


def test_callee_sees_caller_bindings_and_parameters_shadow():
    src = """
        const base = 10;
        block add_base(n) { return n + base; }
        block shadow(base) { return base; }
        [add_base(1), shadow(3), base]
    """
    assert run(src) == [11, 3, 10]


def test_callee_declarations_do_not_leak():
    with pytest.raises(HybridRuntimeError, match="Undefined variable: inner"):
        run("block f() { var inner = 1; } f(); inner")


def test_environment_restored_after_error_in_call():
    ev = Evaluator()
    with pytest.raises(HybridRuntimeError, match="Division by zero"):
        run("var x = 1; block f(){ var x = 2; return 1 / 0; } f();", ev)
    assert ev.environment.get("x") == 1


def test_error_in_call_records_call_stack():
    ev = Evaluator()
    with pytest.raises(HybridRuntimeError) as exc:
        run("block inner() { return 1 / 0; } block outer() { return inner(); } outer();", ev)
    assert exc.value.call_stack == ["outer", "inner"]
    assert ev.call_stack == []


def test_arity_mismatch():
    with pytest.raises(HybridRuntimeError, match="Function f expects 2 arguments, got 1"):
        run("block f(a, b) { a } f(1);")


def test_arguments_evaluate_left_to_right():
    ev = Evaluator()
    run('block f(a, b) { } f(speak("a"), speak("b"));', ev)
    assert spoken(ev) == ['"a"', '"b"']


def test_function_body_is_snapshot_at_declaration():
    ev = Evaluator()
    program = parse("block f() { return 1; }")
    ev.evaluate(program)
    program.statements[0].body.clear()
    fn = ev.functions["f"]
    assert isinstance(fn, FunctionDef)
    assert len(fn.body) == 1


def test_foreign_call_goes_through_bridge():
    bridge = StubBridge({"python": [42.0]})
    ev = Evaluator(bridge=bridge)
    src = "#python int block answer(int a) {\n    return a * 2\n}\nanswer(21)"
    assert run(src, ev) == 42
    assert bridge.calls == [("python", ["a"], "return a * 2", [21.0])]


def test_foreign_empty_result_is_null():
    assert run("#python int block f() { pass }\nf()", Evaluator(bridge=StubBridge())) is None


def test_foreign_shadows_native_regardless_of_order():
    bridge = StubBridge({"python": [1.0]})
    ev = Evaluator(bridge=bridge)
    src = """
#python int block f() { return 1 }
int block f() { return 2; }
f()
"""
    assert run(src, ev) == 1
    assert isinstance(ev.functions["f"], ForeignFunctionDef)

    ev = Evaluator(bridge=bridge)
    src = """
int block g() { return 2; }
#python int block g() { return 1 }
g()
"""
    assert run(src, ev) == 1


def test_foreign_error_is_tagged_with_backend():
    bridge = StubBridge(error=ForeignError("rust", "Runtime 'rust' is not available"))
    ev = Evaluator(bridge=bridge)
    run("#rust int block f() { 1 }", ev)
    with pytest.raises(HybridRuntimeError) as exc:
        run("f()", ev)
    assert exc.value.message == "[rust] Runtime 'rust' is not available"
    assert exc.value.backend == "rust"


def test_foreign_arity_is_checked_before_bridge():
    bridge = StubBridge()
    with pytest.raises(HybridRuntimeError, match="expects 1 arguments, got 0"):
        run("#python int block f(int a) { return a }\nf()", Evaluator(bridge=bridge))
    assert bridge.calls == []


def test_map_values_preserve_insertion_order():
    value = run('{"b": 1, "a": 2}')
    assert isinstance(value, HybridMap)
    assert list(value.keys()) == ["b", "a"]


def test_state_persists_across_evaluations():
    ev = Evaluator()
    run("var x = 40; block add2(n) { return n + 2; }", ev)
    assert run("add2(x)", ev) == 42


def test_runaway_recursion_becomes_runtime_error():
    ev = Evaluator()
    with pytest.raises(HybridRuntimeError) as exc:
        run("block down(n) { return down(n + 1); } down(0);", ev)
    assert exc.value.message == "Maximum call depth exceeded"
    assert exc.value.call_stack and set(exc.value.call_stack) == {"down"}
    assert ev.call_stack == []
    assert ev.environment.get("n") is None
