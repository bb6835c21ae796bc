"""
Tests for runtime values, coercion, formatting and the scope chain.
"""

import pytest

from finlite import FinLiteRuntimeError
from finlite.runtime import (
    Value, ValueKind, Ledger, LedgerEntry, NULL, TRUE, FALSE,
    number_val, string_val, bool_val, list_val, number_list_val, object_val,
    table_val, portfolio_val, cashflow_val, from_python, format_value,
    Environment, ExecutionContext, Outcome,
)
from finlite.runtime.values import as_int, as_number, as_number_list, format_number, ledger_entry_val


class TestValues:
    """Test runtime value wrappers."""

    def test_number_is_float(self):
        v = number_val(3)
        assert v.data == 3.0
        assert isinstance(v.data, float)
        assert v.kind == ValueKind.NUMBER

    def test_bool_singletons(self):
        assert bool_val(True) is TRUE
        assert bool_val(False) is FALSE

    def test_structural_equality(self):
        assert list_val([number_val(1), string_val("a")]) == \
            list_val([number_val(1), string_val("a")])
        assert number_val(1) != string_val("1")
        assert object_val({"a": NULL}) == object_val({"a": NULL})

    def test_is_truthy(self):
        assert not NULL.is_truthy()
        assert not number_val(0).is_truthy()
        assert number_val(-2).is_truthy()
        assert not string_val("").is_truthy()
        assert not list_val([]).is_truthy()
        assert list_val([NULL]).is_truthy()
        assert object_val({}).is_truthy()

    def test_type_name(self):
        assert number_val(1).type_name == "number"
        assert ledger_entry_kind().type_name == "ledger entry"

    def test_from_python(self):
        v = from_python({"rates": [0.05, True], "name": None})
        assert v.kind == ValueKind.OBJECT
        assert v.data["rates"] == list_val([number_val(0.05), TRUE])
        assert v.data["name"] is NULL

    def test_from_python_rejects_unknown(self):
        with pytest.raises(TypeError):
            from_python(object())


def ledger_entry_kind() -> Value:
    return ledger_entry_val(LedgerEntry("2024-01-31", 10.0, None, "memo"))


class TestCoercion:
    """Test as_* helpers."""

    def test_as_number(self):
        assert as_number(number_val(2)) == 2.0
        with pytest.raises(FinLiteRuntimeError) as exc_info:
            as_number(string_val("2"), "rate")
        assert exc_info.value.diagnostic.code == "E402"
        assert "rate must be a number" in exc_info.value.message

    def test_as_int(self):
        assert as_int(number_val(4.0)) == 4
        with pytest.raises(FinLiteRuntimeError) as exc_info:
            as_int(number_val(1.5), "periods")
        assert "whole number" in exc_info.value.message

    def test_as_number_list(self):
        assert as_number_list(number_list_val([1, 2])) == [1.0, 2.0]
        assert as_number_list(cashflow_val([-5, 5])) == [-5.0, 5.0]
        with pytest.raises(FinLiteRuntimeError) as exc_info:
            as_number_list(list_val([number_val(1), NULL]), "series")
        assert "series element at index 1 must be numeric" in exc_info.value.message


class TestFinancePayloads:
    """Invariants checked at construction."""

    def test_table_keeps_column_order(self):
        table = table_val({"b": [1], "a": [2]}).data
        assert table.column_names == ["b", "a"]
        assert table.row_count == 1
        assert list(table.rows()) == [{"b": 1.0, "a": 2.0}]

    def test_table_unequal_columns(self):
        with pytest.raises(FinLiteRuntimeError) as exc_info:
            table_val({"a": [1, 2], "b": [1]})
        assert exc_info.value.diagnostic.code == "E407"

    def test_table_unknown_column(self):
        with pytest.raises(FinLiteRuntimeError) as exc_info:
            table_val({"a": [1]}).data.get_column("z")
        assert exc_info.value.diagnostic.code == "E405"

    def test_empty_table(self):
        assert table_val({}).data.row_count == 0

    def test_portfolio_valid(self):
        p = portfolio_val([100, 300], [0.25, 0.75]).data
        assert p.weighted() == [25.0, 225.0]

    def test_portfolio_tolerance(self):
        portfolio_val([1, 1, 1], [0.1, 0.2, 0.7000000001 - 1e-10])

    @pytest.mark.parametrize("assets,weights", [
        ([1, 2], [1.0]),
        ([1, 2], [1.5, -0.5]),
        ([1, 2], [0.5, 0.6]),
    ])
    def test_portfolio_invalid(self, assets, weights):
        with pytest.raises(FinLiteRuntimeError) as exc_info:
            portfolio_val(assets, weights)
        assert exc_info.value.diagnostic.code == "E407"

    def test_ledger_balance(self):
        ledger = Ledger()
        ledger.record(LedgerEntry("2024-01-01", 100.0, None, "in"))
        ledger.record(LedgerEntry("2024-01-02", None, 40.0, "out"))
        assert ledger.balance == 60.0
        assert ledger.entries[1].amount == -40.0


class TestFormatting:
    """Test how PRINT renders values."""

    def test_numbers(self):
        assert format_number(3.0) == "3"
        assert format_number(-2.5) == "-2.5"
        assert format_number(1e20) == "1e+20"
        assert format_number(float("inf")) == "inf"

    def test_scalars(self):
        assert format_value(NULL) == "null"
        assert format_value(None) == "null"
        assert format_value(TRUE) == "true"
        assert format_value(string_val("x")) == "x"

    def test_collections(self):
        assert format_value(list_val([number_val(2), string_val("a"), NULL])) == "[2, a, null]"
        assert format_value(object_val({"a": number_val(1)})) == "{ a: 1 }"

    def test_finance_payloads(self):
        assert format_value(cashflow_val([1, 2])) == "CASHFLOW(2 periods)"
        assert format_value(portfolio_val([1], [1.0])) == "PORTFOLIO(assets=1, weights=1)"
        assert format_value(ledger_entry_kind()) == "2024-01-31 debit 10: memo"

    def test_table_grid(self):
        text = format_value(table_val({"rate": [0.05, 0.1], "n": [10, 200]}))
        lines = text.splitlines()
        assert lines[0] == "rate |   n"
        assert lines[1] == "-----+----"
        assert lines[2] == "0.05 |  10"
        assert lines[3] == " 0.1 | 200"


class TestEnvironment:
    """Test the scope chain."""

    def test_define_and_get(self):
        env = Environment()
        env.define("x", number_val(1))
        assert env.get("x") == number_val(1)

    def test_get_undefined(self):
        with pytest.raises(FinLiteRuntimeError) as exc_info:
            Environment().get("nope")
        assert exc_info.value.diagnostic.code == "E401"

    def test_child_sees_parent(self):
        parent = Environment(name="global")
        parent.define("x", number_val(1))
        child = parent.create_child()
        assert child.get("x") == number_val(1)
        assert child.contains("x")
        assert child.get_or_null("x") is None  # local lookup only

    def test_assign_updates_owner(self):
        parent = Environment()
        parent.define("x", number_val(1))
        child = parent.create_child()
        child.assign("x", number_val(2))
        assert parent.get("x") == number_val(2)
        assert "x" not in child.values

    def test_assign_undefined(self):
        with pytest.raises(FinLiteRuntimeError):
            Environment().assign("x", NULL)

    def test_shadowing(self):
        parent = Environment()
        parent.define("x", number_val(1))
        child = parent.create_child()
        child.define("x", number_val(2))
        assert child.get("x") == number_val(2)
        assert parent.get("x") == number_val(1)

    def test_global_and_parent_lookup(self):
        root = Environment()
        root.define("x", number_val(1))
        middle = root.create_child()
        middle.define("x", number_val(2))
        leaf = middle.create_child()
        leaf.define("x", number_val(3))
        assert leaf.get_global("x") == number_val(1)
        assert leaf.get_parent("x") == number_val(2)
        assert leaf.root is root
        with pytest.raises(FinLiteRuntimeError):
            root.get_parent("x")


class TestExecutionContext:
    """Test scope switching and output."""

    def test_new_scope_restores(self):
        ctx = ExecutionContext(output=None)
        outer = ctx.current_scope
        with ctx.new_scope("inner") as scope:
            ctx.define_variable("tmp", number_val(1))
            assert ctx.current_scope is scope
            assert scope.parent is outer
        assert ctx.current_scope is outer
        assert not outer.contains("tmp")

    def test_new_scope_restores_on_error(self):
        ctx = ExecutionContext()
        outer = ctx.current_scope
        with pytest.raises(FinLiteRuntimeError):
            with ctx.new_scope():
                ctx.get_variable("missing")
        assert ctx.current_scope is outer

    def test_write_records_lines(self, capsys):
        ctx = ExecutionContext()
        ctx.write("hello")
        assert ctx.lines_written == ["hello"]
        assert capsys.readouterr().out == "hello\n"

    def test_source_line(self):
        ctx = ExecutionContext(source_lines=["a", "b"])
        assert ctx.source_line(2) == "b"
        assert ctx.source_line(3) is None

    def test_outcome(self):
        assert not Outcome.normal().returning
        returned = Outcome.returned(number_val(1))
        assert returned.returning
        assert returned.value == number_val(1)
