"""
Tests for the FinLite runtime (interpreter, scoping, operators, errors).
"""

import io
import textwrap

import pytest

from finlite import execute, Interpreter, FinLiteConfig, SourceLocation, SourceSpan
from finlite.ast import Identifier
from finlite.runtime import number_val, NULL, ValueKind


def run(source: str, **kwargs):
    """Execute dedented source with output captured in the result."""
    return execute(textwrap.dedent(source), output=io.StringIO(), **kwargs)


def output_of(source: str):
    result = run(source)
    assert result.success, result.error_message
    return result.output


def error_code(source: str) -> str:
    result = run(source)
    assert not result.success
    return result.error.diagnostic.code


# --- End-to-end programs ---

class TestEndToEnd:
    """Small complete programs."""

    def test_let_and_print(self):
        assert output_of("LET x = 10\nPRINT x\nPRINT x + 5") == ["10", "15"]

    def test_npv_of_list(self):
        output = output_of("""
            LET cf = [-1000, 300, 300, 300, 300]
            PRINT NPV(cf, 0.08)
        """)
        assert len(output) == 1
        # Every flow is discounted, the first one by a full period
        assert float(output[0]) == pytest.approx(-5.89, abs=0.01)

    def test_half_open_slice(self):
        assert output_of("LET a = [1,2,3,4,5]\nPRINT a[1:3]") == ["[2, 3]"]

    def test_for_loop_end_is_inclusive(self):
        output = output_of("""
            LET r = []
            FOR i IN 1 TO 3
                SET r = append(r, i)
            END
            PRINT r
        """)
        assert output == ["[1, 2, 3]"]

    def test_results_per_statement(self):
        result = run("LET x = 2\nx * 21")
        assert result.results == [NULL, number_val(42)]
        assert result.value == number_val(42)

    def test_output_stream(self):
        stream = io.StringIO()
        execute('PRINT "hello"\nLOG "world"', output=stream)
        assert stream.getvalue() == "hello\n[LOG] world\n"


# --- Values and operators ---

class TestOperators:
    """Arithmetic, comparison and logic."""

    def test_arithmetic(self):
        assert output_of("PRINT 7 % 3\nPRINT 2 ^ 10\nPRINT 7 / 2\nPRINT -(3 - 5)") == \
            ["1", "1024", "3.5", "2"]

    def test_string_concatenation(self):
        assert output_of('PRINT "net" + "pv"') == ["netpv"]

    def test_list_addition_is_elementwise(self):
        assert output_of("PRINT [1, 2] + [10, 20, 30]\nPRINT [5, 5] - [1, 2]") == \
            ["[11, 22]", "[4, 3]"]

    def test_equality_is_structural(self):
        assert output_of('PRINT [1, 2] == [1, 2]\nPRINT "a" != "a"\nPRINT null == null') == \
            ["true", "false", "true"]

    def test_comparisons(self):
        assert output_of("PRINT 1 < 2, 2 <= 2, 3 > 4, 4 >= 5") == ["true true false false"]

    def test_short_circuit(self):
        """The right operand is not evaluated once the result is known."""
        assert output_of('PRINT false AND ERROR("boom")\nPRINT true || ERROR("boom")') == \
            ["false", "true"]

    def test_truthiness(self):
        output = output_of("""
            FOR v IN [0, 1, "", "x", [], [0], null, false]
                IF v THEN
                    PRINT "T"
                ELSE
                    PRINT "F"
                END
            END
        """)
        assert output == ["F", "T", "F", "T", "F", "T", "F", "F"]

    def test_money_and_date_literals(self):
        assert output_of("PRINT 100 USD + 50\nPRINT 2024-01-31") == ["150", "2024-01-31"]

    def test_type_mismatch(self):
        assert error_code('PRINT "a" - 1') == "E402"
        assert error_code('PRINT -"a"') == "E402"

    def test_division_by_zero(self):
        assert error_code("PRINT 1 / 0") == "E403"
        assert error_code("PRINT 5 % 0") == "E403"
        assert error_code("PRINT 0 ^ -1") == "E403"

    def test_power_edge_cases(self):
        assert error_code("PRINT (-8) ^ 0.5") == "E402"
        assert error_code("PRINT 10 ^ 400") == "E409"


class TestAccess:
    """Indexing, slicing and member access."""

    def test_index(self):
        assert output_of('LET a = [10, 20, 30]\nPRINT a[2]\nPRINT "abc"[1]') == ["30", "b"]

    def test_index_out_of_range(self):
        assert error_code("LET a = [1, 2]\nPRINT a[5]") == "E404"
        assert error_code("LET a = [1, 2]\nPRINT a[-1]") == "E404"

    def test_index_must_be_whole(self):
        assert error_code("LET a = [1, 2]\nPRINT a[0.5]") == "E402"

    def test_open_slices(self):
        assert output_of("LET a = [1, 2, 3]\nPRINT a[:2]\nPRINT a[1:]\nPRINT a[1:10]") == \
            ["[1, 2]", "[2, 3]", "[2, 3]"]

    def test_string_slice(self):
        assert output_of('PRINT "finance"[0:3]') == ["fin"]

    def test_invalid_slice(self):
        assert error_code("LET a = [1, 2, 3]\nPRINT a[2:1]") == "E404"
        assert error_code("LET a = [1, 2, 3]\nPRINT a[4:]") == "E404"

    def test_object_fields(self):
        assert output_of('LET o = {rate: 0.5, name: "x"}\nPRINT o.rate\nPRINT o["name"]') == \
            ["0.5", "x"]
        assert error_code("LET o = {a: 1}\nPRINT o.b") == "E402"

    def test_table_columns(self):
        source = "LET t = TABLE(a: [1, 2], b: [3, 4])\n"
        assert output_of(source + 'PRINT t.a\nPRINT t["b"]') == ["[1, 2]", "[3, 4]"]
        assert error_code(source + "PRINT t.c") == "E405"

    def test_list_length(self):
        assert output_of("PRINT [1, 2, 3].length") == ["3"]

    def test_index_non_indexable(self):
        assert error_code("LET n = 5\nPRINT n[0]") == "E402"


# --- Scoping ---

class TestScoping:
    """LET/SET semantics and scope lifetime."""

    def test_let_in_block_shadows(self):
        output = output_of("""
            LET x = 1
            IF true THEN
                LET x = 2
                PRINT x
            END
            PRINT x
        """)
        assert output == ["2", "1"]

    def test_set_updates_outer_binding(self):
        output = output_of("""
            LET x = 1
            IF true THEN
                SET x = 2
            END
            PRINT x
        """)
        assert output == ["2"]

    def test_set_undefined(self):
        assert error_code("SET nope = 1") == "E401"

    def test_undefined_variable(self):
        result = run("LET x = 1\nPRINT y")
        assert result.error.diagnostic.code == "E401"
        assert "'y'" in result.error_message
        assert result.error.span.start.line == 2
        assert result.error.diagnostic.source_line == "PRINT y"

    def test_loop_variable_does_not_leak(self):
        assert error_code("FOR i IN 1 TO 2\n    LET y = i\nEND\nPRINT i") == "E401"

    def test_scope_qualifiers(self):
        output = output_of("""
            LET x = 1
            FUNCTION f()
                LET x = 2
                RETURN global::x
            END
            PRINT f()
            IF true THEN
                LET x = 3
                PRINT parent::x
            END
        """)
        assert output == ["1", "1"]

    def test_unknown_global(self):
        assert error_code("PRINT global::missing") == "E401"

    def test_scope_restored_after_error(self):
        """A failure deep inside nested blocks leaves the global scope current."""
        interp = Interpreter(output=io.StringIO())
        result = interp.execute(textwrap.dedent("""
            FOR i IN 1 TO 3
                WHILE i < 5
                    IF i == 2 THEN
                        LET y = 1 / 0
                    END
                    SET i = i + 10
                END
            END
        """))
        assert not result.success
        assert result.error.diagnostic.code == "E403"
        assert interp.ctx.current_scope is interp.globals

    def test_scope_restored_after_error_in_lambda(self):
        interp = Interpreter(output=io.StringIO())
        result = interp.execute("MAP([1, 0], x -> 1 / x)")
        assert result.error.diagnostic.code == "E403"
        assert interp.ctx.current_scope is interp.globals

    def test_bindings_persist_between_executes(self):
        interp = Interpreter(output=io.StringIO())
        interp.execute("LET total = 5")
        result = interp.execute("PRINT total * 2")
        assert result.output == ["10"]

    def test_output_is_collected_per_execute(self):
        interp = Interpreter(output=io.StringIO())
        interp.execute("PRINT 1\nPRINT 2")
        result = interp.execute("PRINT 3")
        assert result.output == ["3"]
        assert interp.ctx.lines_written == ["3"]


# --- Control flow ---

class TestControlFlow:
    """Loops, conditionals and RETURN."""

    def test_if_elseif_else(self):
        source = """
            FUNCTION sign(n)
                IF n > 0 THEN
                    RETURN "pos"
                ELSEIF n < 0 THEN
                    RETURN "neg"
                ELSE
                    RETURN "zero"
                END
            END
            PRINT sign(5), sign(-5), sign(0)
        """
        assert output_of(source) == ["pos neg zero"]

    def test_while(self):
        assert output_of("LET n = 0\nWHILE n < 3\n    SET n = n + 1\nEND\nPRINT n") == ["3"]

    def test_while_scope_spans_iterations(self):
        """LET inside a WHILE body stays visible in later iterations."""
        output = output_of("""
            LET n = 0
            WHILE n < 3
                IF n == 0 THEN
                    PRINT "start"
                ELSE
                    PRINT prev
                END
                LET prev = n
                SET n = n + 1
            END
        """)
        assert output == ["start", "0", "1"]

    def test_for_with_negative_step(self):
        assert output_of("FOR i IN 10 TO 0 STEP -5\n    PRINT i\nEND") == ["10", "5", "0"]

    def test_for_fractional_step(self):
        assert output_of("FOR i IN 0 TO 1 STEP 0.5\n    PRINT i\nEND") == ["0", "0.5", "1"]

    def test_for_zero_step(self):
        assert error_code("FOR i IN 1 TO 3 STEP 0\n    PRINT i\nEND") == "E404"

    def test_for_empty_range(self):
        assert output_of("FOR i IN 3 TO 1\n    PRINT i\nEND\nPRINT \"done\"") == ["done"]

    def test_for_each_kinds(self):
        output = output_of("""
            FOR ch IN "ab"
                PRINT ch
            END
            FOR row IN TABLE(a: [1, 2], b: [3, 4])
                PRINT row.a + row.b
            END
        """)
        assert output == ["a", "b", "4", "6"]

    def test_for_each_non_iterable(self):
        assert error_code("FOR x IN 5\n    PRINT x\nEND") == "E402"

    def test_return_unwinds_loops(self):
        output = output_of("""
            FUNCTION first_over(xs, limit)
                FOR x IN xs
                    WHILE true
                        IF x > limit THEN
                            RETURN x
                        END
                        SET x = x + 100
                    END
                END
                RETURN null
            END
            PRINT first_over([1, 5, 9], 4)
        """)
        assert output == ["101"]

    def test_function_without_return_gives_null(self):
        assert output_of("FUNCTION f()\n    LET a = 1\nEND\nPRINT f()") == ["null"]

    def test_top_level_return_stops_program(self):
        result = run('PRINT "a"\nRETURN 5\nPRINT "b"')
        assert result.success
        assert result.output == ["a"]
        assert result.value == number_val(5)


# --- Functions and lambdas ---

class TestFunctions:
    """User functions, lambdas and closures."""

    def test_recursion(self):
        source = """
            FUNCTION fact(n)
                IF n <= 1 THEN
                    RETURN 1
                END
                RETURN n * fact(n - 1)
            END
            PRINT fact(5)
        """
        assert output_of(source) == ["120"]

    def test_closure_captures_defining_scope(self):
        source = """
            FUNCTION make_adder(n)
                RETURN x -> x + n
            END
            LET add5 = make_adder(5)
            PRINT add5(10)
        """
        assert output_of(source) == ["15"]

    def test_lambda_sees_later_updates(self):
        source = """
            LET rate = 1
            LET f = x -> x * rate
            SET rate = 3
            PRINT f(2)
        """
        assert output_of(source) == ["6"]

    def test_immediately_called_lambda(self):
        assert output_of("PRINT ((a, b) -> a * b)(6, 7)") == ["42"]

    def test_arity_mismatch(self):
        assert error_code("LET f = (a, b) -> a + b\nf(1)") == "E406"
        assert error_code("FUNCTION g(a)\n    RETURN a\nEND\ng(1, 2)") == "E406"
        assert error_code("len([1], [2])") == "E406"

    def test_calling_non_function(self):
        assert error_code("LET x = 3\nx(1)") == "E402"

    def test_runaway_recursion(self):
        result = run("FUNCTION f(n)\n    RETURN f(n + 1)\nEND\nf(1)")
        assert not result.success
        assert result.error.diagnostic.code == "E409"

    def test_assignment_expression(self):
        assert output_of("LET x = 1\nx = x + 4\nPRINT x") == ["5"]


# --- Statements with no value ---

class TestMisc:
    """PRINT, LOG and IMPORT."""

    def test_print_joins_with_spaces(self):
        assert output_of('PRINT "total:", 3, [1], null, true') == ["total: 3 [1] null true"]

    def test_log_prefix(self):
        assert output_of('LOG "checkpoint", 2') == ["[LOG] checkpoint 2"]

    def test_import_binds_path(self):
        assert output_of('IMPORT "lib/rates.fin"\nPRINT rates') == ["lib/rates.fin"]

    def test_object_printing(self):
        assert output_of("PRINT {a: 1, b: [2]}\nPRINT {}") == ["{ a: 1, b: [2] }", "{}"]

    def test_code_after_block_comment_runs(self):
        assert output_of("### note ### LET x = 4\nPRINT x\n") == ["4"]


# --- Error handling in execute() ---

class TestExecuteErrors:
    """Diagnostics and partial execution."""

    def test_parse_error_does_not_stop_valid_statements(self):
        result = run("LET = 1\nPRINT 2")
        assert not result.success
        assert result.output == ["2"]
        assert result.diagnostics[0].code == "E101"
        assert result.error.diagnostic.code == "E101"

    def test_lexical_error_reported(self):
        result = run("LET x = @\nPRINT 1")
        assert not result.success
        assert result.diagnostics[0].code == "E001"

    def test_runtime_error_stops_program(self):
        result = run('PRINT "before"\nPRINT 1 / 0\nPRINT "after"')
        assert result.output == ["before"]
        assert result.error.diagnostic.code == "E403"
        assert result.error.span.start.line == 2

    def test_error_format_has_location(self):
        result = execute("PRINT missing", filename="prog.fin", output=io.StringIO())
        text = result.error.diagnostic.format()
        assert text.startswith("prog.fin:1:7: error[E401]")

    def test_config_is_used(self):
        config = FinLiteConfig(simulation_results_name="sims")
        result = run("SCENARIO s\n    LET result = 1\nEND\nSIMULATE s 2\nPRINT sims",
                     config=config)
        assert result.output[-1] == "[1, 1]"

    def test_evaluate_helper(self):
        interp = Interpreter(output=io.StringIO())
        interp.execute("LET base = 4")
        loc = SourceLocation(1, 1, 0)
        value = interp.evaluate(Identifier(span=SourceSpan(loc, loc), name="base"))
        assert value == number_val(4)
        assert value.kind == ValueKind.NUMBER


# --- Repeatability ---

PROGRAM = """
LET total = 0
FOR i IN 1 TO 4
    IF i % 2 == 0 THEN
        SET total = total + i
    ELSE
        PRINT "odd", i
    END
END
DEBIT cash total
PRINT total, cash.balance
"""


class TestRepeatability:
    """The same program gives the same output on every run."""

    def test_fresh_interpreters_agree(self):
        first = Interpreter(output=io.StringIO()).execute(PROGRAM)
        second = Interpreter(output=io.StringIO()).execute(PROGRAM)
        assert first.success, first.error_message
        assert first.output == ["odd 1", "odd 3", "6 6"]
        assert second.output == first.output

    def test_execute_twice(self):
        """Builtins are shared between runs but hold no program state."""
        first = execute(PROGRAM, output=io.StringIO())
        second = execute(PROGRAM, output=io.StringIO())
        assert second.output == first.output == ["odd 1", "odd 3", "6 6"]
        assert second.results == first.results
