import pytest

from dmscript import parse, evaluate, Evaluator, Scope, InterpreterConfig
from dmscript.dm_errors import (
    TypeMismatch, UndefinedVariable, DivisionByZero, InvalidArgument, LimitExceeded,
)
from dmscript.dm_datatypes import NULL, TRUE, FALSE, Float, String, Integer, NativeFn
from dmscript.dm_interpreter import values_equal, infer_arity


def run(source, scope=None, config=None):
    scope = scope if scope is not None else Scope()
    return Evaluator(config).eval(parse(source), scope)


@pytest.mark.parametrize("source, expected", [
    ("2 + 3 * 4;", 14.0),
    ("(2 + 3) * 4;", 20.0),
    ("10 - 4 - 3;", 3.0),
    ("1 / 4;", 0.25),
    ("7 % 3;", 1.0),
    ("-7 % 3;", -1.0),
    ("0.1 + 0.2;", 0.1 + 0.2),
    ("true + true;", 2.0),
])
def test_arithmetic_is_double_precision(source, expected):
    assert run(source) == Float(expected)


def test_division_and_modulo_by_zero():
    with pytest.raises(DivisionByZero, match="Division by zero"):
        run("1 / 0;")
    with pytest.raises(DivisionByZero, match="Modulo by zero"):
        run("1 % 0;")


def test_arithmetic_rejects_strings():
    with pytest.raises(TypeMismatch):
        run("'a' + 1;")


@pytest.mark.parametrize("source, expected", [
    ("'a' == 'a';", TRUE),
    ("'a' == 1;", FALSE),
    ("null == null;", TRUE),
    ("null == false;", FALSE),
    ("1 != 2;", TRUE),
    ("true == true;", TRUE),
    ("2 <= 2;", TRUE),
    ("3 > 4;", FALSE),
])
def test_comparisons(source, expected):
    assert run(source) == expected


def test_relational_needs_numbers():
    with pytest.raises(TypeMismatch):
        run("'a' < 'b';")


def test_integer_and_float_compare_equal():
    assert values_equal(Integer(2), Float(2.0))


def test_logical_short_circuit():
    assert run("false && (1/0 == 0);") == FALSE
    assert run("true || (1/0 == 0);") == TRUE
    assert run("1 && 'x';") == TRUE
    assert run("0 || '';") == FALSE


def test_unary_operators():
    assert run("-(3);") == Float(-3)
    assert run("!false;") == TRUE
    with pytest.raises(TypeMismatch):
        run("!1;")
    with pytest.raises(TypeMismatch):
        run("-'a';")


def test_declaration_visible_in_nested_block():
    assert run("let x = 5; { { x; } }") == Float(5)


def test_block_binding_not_visible_after_exit():
    scope = Scope()
    with pytest.raises(UndefinedVariable, match="Undefined variable 'y'"):
        run("{ let y = 1; } y;", scope)
    assert "y" not in scope


def test_assignment_requires_existing_binding():
    with pytest.raises(UndefinedVariable, match="Cannot assign to undefined variable 'z'"):
        run("z = 1;")


def test_assignment_in_block_shadows_outer():
    assert run("let x = 1; { x = 2; } x;") == Float(1)


def test_if_else():
    assert run("let r = 0; if (1 < 2) r = 'yes'; else r = 'no'; r;") == String("yes")
    assert run("if (false) 1;") == NULL


def test_while_loop():
    assert run("let i = 0; while (i < 5) i = i + 1; i;") == Float(5)


def test_while_block_body_shadows_loop_variable():
    # `i = i + 1` inside the braces binds a fresh `i` in the per-iteration
    # block scope, so the outer counter never moves.
    config = InterpreterConfig(max_loop_iterations=50)
    with pytest.raises(LimitExceeded, match="iteration limit of 50"):
        run("let i = 0; while (i < 5) { i = i + 1; }", config=config)


def test_while_iteration_cap():
    config = InterpreterConfig(max_loop_iterations=10)
    with pytest.raises(LimitExceeded):
        run("let i = 0; while (true) i = i + 1;", config=config)


def test_function_call_and_arity():
    assert run("function add(a, b) return a + b; add(2, 3);") == Float(5)
    with pytest.raises(InvalidArgument, match="Function 'add' expects 2 arguments, but got 1"):
        run("function add(a, b) return a + b; add(2);")


def test_arity_checked_before_arguments_run():
    with pytest.raises(InvalidArgument):
        run("function f(a) a; f(1, 1/0);")


def test_function_declaration_yields_its_name():
    assert run("function f() 1;") == String("f")


def test_calling_unknown_or_non_function():
    with pytest.raises(UndefinedVariable, match="Function 'g' is not defined"):
        run("g();")
    with pytest.raises(TypeMismatch, match="'v' is not a function"):
        run("let v = 1; v();")


def test_call_scope_is_destroyed():
    scope = Scope()
    run("function f() { let inner = 1; inner; } f();", scope)
    assert "inner" not in scope


def test_call_scope_destroyed_on_error():
    scope = Scope()
    with pytest.raises(DivisionByZero):
        run("function f() { let inner = 1; 1 / 0; } f();", scope)
    assert "inner" not in scope


def test_dynamic_scoping_sees_caller_bindings():
    src = """
    function show() who;
    function outer() { let who = 'outer'; show(); }
    outer();
    """
    assert run(src) == String("outer")


def test_return_does_not_unwind_by_default():
    src = "function f() { return 1; 2; } f();"
    assert run(src) == Float(2)


def test_return_unwinds_when_configured():
    config = InterpreterConfig(return_unwinds=True)
    assert run("function f() { return 1; 2; } f();", config=config) == Float(1)
    assert run("function f() { while (true) return 7; 0; } f();", config=config) == Float(7)


def test_recursion_depth_limit():
    config = InterpreterConfig(max_call_depth=8)
    with pytest.raises(LimitExceeded, match="Maximum call depth"):
        run("function f(n) f(n + 1); f(0);", config=config)


def test_arguments_must_be_literals():
    scope = Scope()
    scope.define("make", NativeFn("make", lambda: [1, 2], arity=0))
    scope.define("take", NativeFn("take", lambda x: x, arity=1))
    with pytest.raises(TypeMismatch, match="must be a literal value"):
        run("take(make());", scope)


def test_native_user_data_and_errors():
    seen = []

    def cb(x, user_data=None):
        seen.append(user_data)
        return x * 2

    scope = Scope()
    scope.define("double", NativeFn("double", cb, arity=1, user_data="ctx"))
    assert run("double(4);", scope) == Float(8)
    assert seen == ["ctx"]

    scope.define("boom", NativeFn("boom", lambda: int("x"), arity=0))
    with pytest.raises(InvalidArgument):
        run("boom();", scope)


def test_errors_carry_innermost_location():
    with pytest.raises(DivisionByZero) as ei:
        run("let a = 1;\nlet b = a + (2 / 0);")
    assert ei.value.line == 2
    assert ei.value.col == 16


def test_infer_arity():
    assert infer_arity(lambda a, b: None) == 2
    assert infer_arity(lambda *xs: None) is None
    assert infer_arity(lambda a, user_data=None: None) == 1


def test_module_level_evaluate():
    scope = Scope()
    assert evaluate(parse("let q = 2; q * q;"), scope) == Float(4)
    assert scope.lookup("q") == Float(2)


def test_program_echoes_results():
    ev = Evaluator()
    ev.eval(parse("let a = 1; a + 1; 'hi'; a = 3; function f() 1;"), Scope())
    assert [e['message'] for e in ev.side_effects] == ["=> 2", "=> 'hi'", "=> 3"]
