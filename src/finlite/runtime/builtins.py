"""
Built-in function registry for the FinLite interpreter.

Builtins are installed into the global scope before a program runs. Each
one declares a fixed arity, or ``VARIADIC`` to check its own argument
count. Implementations take the execution context first so higher-order
builtins can call back into the interpreter and models can read the
caller's bindings.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pandas as pd

from ..errors import (
    error_arity_mismatch,
    error_undefined_variable,
    error_invalid_range,
    error_type_mismatch,
    error_user,
)
from .context import Environment, ExecutionContext
from .values import (
    Value, ValueKind, Table,
    NULL, number_val, string_val, list_val, number_list_val,
    table_val, function_val, as_number, as_int, as_string, as_number_list,
    format_value,
)
from . import finance

logger = logging.getLogger(__name__)

VARIADIC = -1


@dataclass
class BuiltinFunction:
    """
    A built-in function with its implementation.

    `implementation` is called as ``implementation(ctx, *args)``.
    """
    name: str
    arity: int
    implementation: Callable[..., Optional[Value]]
    doc: str = ""


def _check_count(name: str, args, low: int, high: int) -> None:
    if not low <= len(args) <= high:
        expected = str(low) if low == high else f"{low} to {high}"
        raise error_arity_mismatch(expected, len(args), name=name)


def _callable(value: Value, what: str) -> Value:
    if value.kind not in (ValueKind.FUNCTION, ValueKind.LAMBDA):
        raise error_type_mismatch(f"{what} must be a function or lambda, got {value.type_name}")
    return value


def _as_list(value: Value, what: str) -> List[Value]:
    if value.kind != ValueKind.LIST:
        raise error_type_mismatch(f"{what} must be a list, got {value.type_name}")
    return value.data


def _as_table(value: Value, what: str) -> Table:
    if value.kind != ValueKind.TABLE:
        raise error_type_mismatch(f"{what} must be a TABLE, got {value.type_name}")
    return value.data


class BuiltinRegistry:
    """
    Registry of all built-in functions.

    Functions are registered by name and installed into an Environment
    as function values.
    """

    def __init__(self):
        self._functions: Dict[str, BuiltinFunction] = {}
        self._register_all()

    def get_function(self, name: str) -> Optional[BuiltinFunction]:
        """Look up a function by name."""
        return self._functions.get(name)

    def register(self, func: BuiltinFunction) -> None:
        """Register a function."""
        self._functions[func.name] = func

    @property
    def names(self) -> List[str]:
        return sorted(self._functions)

    def install(self, env: Environment) -> None:
        """Define every builtin in `env`."""
        for func in self._functions.values():
            env.define(func.name, function_val(func))
        logger.debug("installed %d builtins into scope '%s'", len(self._functions), env.name)

    def _register_all(self) -> None:
        """Register all built-in functions."""
        self._register_list_functions()
        self._register_higher_order_functions()
        self._register_timeseries_functions()
        self._register_diagnostic_functions()
        self._register_table_functions()
        self._register_finance_functions()
        self._register_io_functions()

    # --- Lists and aggregates ---

    def _register_list_functions(self) -> None:
        """Register list construction and aggregate functions."""

        def _len(ctx, value: Value) -> Value:
            if value.kind in (ValueKind.LIST, ValueKind.STRING):
                return number_val(len(value.data))
            if value.kind == ValueKind.TABLE:
                return number_val(value.data.row_count)
            if value.kind == ValueKind.CASHFLOW:
                return number_val(len(value.data.flows))
            if value.kind == ValueKind.LEDGER:
                return number_val(len(value.data.entries))
            raise error_type_mismatch(f"len() has no meaning for {value.type_name}")

        def _sum(ctx, values: Value) -> Value:
            return number_val(math.fsum(as_number_list(values, "sum() argument")))

        def _avg(ctx, values: Value) -> Value:
            numbers = as_number_list(values, "avg() argument")
            if not numbers:
                raise error_invalid_range("avg() of an empty list")
            return number_val(math.fsum(numbers) / len(numbers))

        def _min(ctx, values: Value) -> Value:
            numbers = as_number_list(values, "min() argument")
            if not numbers:
                raise error_invalid_range("min() of an empty list")
            return number_val(min(numbers))

        def _max(ctx, values: Value) -> Value:
            numbers = as_number_list(values, "max() argument")
            if not numbers:
                raise error_invalid_range("max() of an empty list")
            return number_val(max(numbers))

        def _append(ctx, items: Value, item: Value) -> Value:
            return list_val(_as_list(items, "append() first argument") + [item])

        def _concat(ctx, first: Value, second: Value) -> Value:
            if first.kind == ValueKind.STRING and second.kind == ValueKind.STRING:
                return string_val(first.data + second.data)
            return list_val(_as_list(first, "concat() first argument")
                            + _as_list(second, "concat() second argument"))

        def _range(ctx, *args: Value) -> Value:
            _check_count("range", args, 1, 3)
            bounds = [as_int(a, "range() argument") for a in args]
            if len(bounds) == 1:
                bounds = [0] + bounds
            if len(bounds) == 3 and bounds[2] == 0:
                raise error_invalid_range("range() step cannot be zero")
            return number_list_val(list(range(*bounds)))

        aggregates = {"SUM": _sum, "AVG": _avg, "MIN": _min, "MAX": _max}

        def _aggregate(ctx, values: Value, operation: Value) -> Value:
            op = as_string(operation, "AGGREGATE operation").upper()
            if op not in aggregates:
                raise error_type_mismatch(
                    f"unknown AGGREGATE operation '{op}' (expected SUM, AVG, MIN or MAX)")
            return aggregates[op](ctx, values)

        self.register(BuiltinFunction("len", 1, _len, "Length of a list, string, table or cashflow"))
        self.register(BuiltinFunction("sum", 1, _sum, "Sum of a list of numbers"))
        self.register(BuiltinFunction("avg", 1, _avg, "Mean of a list of numbers"))
        self.register(BuiltinFunction("min", 1, _min, "Smallest number in a list"))
        self.register(BuiltinFunction("max", 1, _max, "Largest number in a list"))
        self.register(BuiltinFunction("append", 2, _append, "New list with an item added"))
        self.register(BuiltinFunction("concat", 2, _concat, "Join two lists or two strings"))
        self.register(BuiltinFunction("range", VARIADIC, _range, "range(end) or range(start, end[, step])"))
        self.register(BuiltinFunction("AGGREGATE", 2, _aggregate, "AGGREGATE(list, SUM|AVG|MIN|MAX)"))

    # --- Higher-order functions ---

    def _register_higher_order_functions(self) -> None:
        """Register functions that call back into user lambdas."""

        def _map(ctx, items: Value, fn: Value) -> Value:
            fn = _callable(fn, "MAP() second argument")
            call = ctx.interpreter.call_function
            return list_val([call(fn, [item], ctx) for item in _as_list(items, "MAP() first argument")])

        def _filter(ctx, items: Value, fn: Value) -> Value:
            fn = _callable(fn, "FILTER() second argument")
            call = ctx.interpreter.call_function
            return list_val([item for item in _as_list(items, "FILTER() first argument")
                             if call(fn, [item], ctx).is_truthy()])

        def _reduce(ctx, *args: Value) -> Value:
            _check_count("REDUCE", args, 2, 3)
            items = _as_list(args[0], "REDUCE() first argument")
            fn = _callable(args[1], "REDUCE() second argument")
            if len(args) == 3:
                acc, rest = args[2], items
            elif items:
                acc, rest = items[0], items[1:]
            else:
                raise error_invalid_range("REDUCE() on an empty list needs an initial value")
            for item in rest:
                acc = ctx.interpreter.call_function(fn, [acc, item], ctx)
            return acc

        self.register(BuiltinFunction("MAP", 2, _map, "Apply a function to every element"))
        self.register(BuiltinFunction("FILTER", 2, _filter, "Keep elements the predicate accepts"))
        self.register(BuiltinFunction("REDUCE", VARIADIC, _reduce, "REDUCE(list, fn[, initial])"))

    # --- Time series ---

    def _register_timeseries_functions(self) -> None:
        """Register return-series helpers."""

        def _returns(ctx, values: Value) -> Value:
            return number_list_val(finance.simple_returns(as_number_list(values, "returns() argument")))

        def _volatility(ctx, values: Value) -> Value:
            return number_val(finance.volatility(as_number_list(values, "volatility() argument")))

        self.register(BuiltinFunction("returns", 1, _returns, "Period-over-period returns"))
        self.register(BuiltinFunction("volatility", 1, _volatility, "Root mean square of returns"))

    # --- Diagnostics ---

    def _register_diagnostic_functions(self) -> None:
        """Register output and assertion helpers."""

        def _show(ctx, *args: Value) -> Value:
            ctx.write(" ".join(format_value(a) for a in args))
            return args[0] if args else NULL

        def _assert(ctx, *args: Value) -> Value:
            _check_count("ASSERT", args, 1, 2)
            if not args[0].is_truthy():
                message = format_value(args[1]) if len(args) > 1 else "assertion failed"
                raise error_user(message)
            return NULL

        def _error(ctx, *args: Value) -> Value:
            raise error_user(" ".join(format_value(a) for a in args) or "error")

        def _type_of(ctx, value: Value) -> Value:
            return string_val(value.type_name)

        self.register(BuiltinFunction("show", VARIADIC, _show, "Print values and return the first"))
        self.register(BuiltinFunction("ASSERT", VARIADIC, _assert, "ASSERT(condition[, message])"))
        self.register(BuiltinFunction("ERROR", VARIADIC, _error, "Stop with a user error"))
        self.register(BuiltinFunction("type_of", 1, _type_of, "Name of a value's kind"))

    # --- Tables ---

    def _register_table_functions(self) -> None:
        """Register table queries and transformations."""

        def _columns(ctx, table: Value) -> Value:
            return list_val([string_val(n) for n in _as_table(table, "columns() argument").column_names])

        def _table_filter(ctx, table: Value, column: Value, predicate: Value) -> Value:
            data = _as_table(table, "table_filter() first argument")
            predicate = _callable(predicate, "table_filter() predicate")
            target = data.get_column(as_string(column, "table_filter() column"))
            mask = [ctx.interpreter.call_function(predicate, [number_val(x)], ctx).is_truthy()
                    for x in target]
            return table_val({name: [x for x, keep in zip(col, mask) if keep]
                              for name, col in data.columns.items()})

        def _table_join(ctx, left: Value, right: Value) -> Value:
            # Columns side by side; right-hand columns win on a name clash
            merged = dict(_as_table(left, "table_join() first argument").columns)
            merged.update(_as_table(right, "table_join() second argument").columns)
            return table_val(merged)

        def _column_apply(ctx, table: Value, column: Value, fn: Value) -> Value:
            data = _as_table(table, "column_apply() first argument")
            fn = _callable(fn, "column_apply() function")
            name = as_string(column, "column_apply() column")
            transformed = []
            for x in data.get_column(name):
                result = ctx.interpreter.call_function(fn, [number_val(x)], ctx)
                transformed.append(as_number(result, f"column_apply() result for '{name}'"))
            columns = dict(data.columns)
            columns[name] = transformed
            return table_val(columns)

        self.register(BuiltinFunction("columns", 1, _columns, "Column names of a table"))
        self.register(BuiltinFunction("table_filter", 3, _table_filter,
                                      "Rows whose column value passes the predicate"))
        self.register(BuiltinFunction("table_join", 2, _table_join, "Merge the columns of two tables"))
        self.register(BuiltinFunction("column_apply", 3, _column_apply,
                                      "Replace a column with fn applied to each value"))

    # --- Finance ---

    def _register_finance_functions(self) -> None:
        """Register models usable with RUN."""

        def _valuation_model(ctx, *args: Value) -> Value:
            scope = ctx.current_scope
            rate = _number_or_zero(scope, "rate")
            growth = _number_or_zero(scope, "growth")
            ctx.write(f"Model: rate={format_value(number_val(rate))}, "
                      f"growth={format_value(number_val(growth))}")
            return number_val(rate * growth)

        self.register(BuiltinFunction("valuation_model", VARIADIC, _valuation_model,
                                      "rate * growth, read from the calling scope"))

    # --- File I/O ---

    def _register_io_functions(self) -> None:
        """Register CSV and text file helpers."""

        def _load_csv(ctx, path: Value) -> Value:
            filename = as_string(path, "load_csv() path")
            try:
                frame = pd.read_csv(filename, skipinitialspace=True)
            except pd.errors.EmptyDataError:
                return table_val({})
            columns = {}
            for name in frame.columns:
                column = frame[name]
                if column.isna().any():
                    row = int(column.isna().to_numpy().argmax()) + 2
                    raise ValueError(f"{filename}:{row}: missing value in column "
                                     f"'{str(name).strip()}'")
                columns[str(name).strip()] = [float(x) for x in pd.to_numeric(column)]
            logger.debug("loaded %d columns from %s", len(columns), filename)
            return table_val(columns)

        def _save_csv(ctx, table: Value, path: Value) -> Value:
            data = _as_table(table, "save_csv() first argument")
            filename = as_string(path, "save_csv() path")
            pd.DataFrame(data.columns, columns=data.column_names).to_csv(filename, index=False)
            return string_val(filename)

        def _read_text(ctx, path: Value) -> Value:
            return string_val(Path(as_string(path, "read_text() path")).read_text(encoding="utf-8"))

        def _write_text(ctx, path: Value, text: Value) -> Value:
            filename = as_string(path, "write_text() path")
            Path(filename).write_text(format_value(text), encoding="utf-8")
            return string_val(filename)

        self.register(BuiltinFunction("load_csv", 1, _load_csv, "Read a CSV file with a header row"))
        self.register(BuiltinFunction("save_csv", 2, _save_csv, "Write a table as CSV"))
        self.register(BuiltinFunction("read_text", 1, _read_text, "Read a file as a string"))
        self.register(BuiltinFunction("write_text", 2, _write_text, "Write a value to a file"))


def _number_or_zero(scope: Environment, name: str) -> float:
    if not scope.contains(name):
        return 0.0
    value = scope.get(name)
    return value.data if value.kind == ValueKind.NUMBER else 0.0


# Global singleton registry
_registry: Optional[BuiltinRegistry] = None


def get_builtin_registry() -> BuiltinRegistry:
    """Get the global built-in function registry."""
    global _registry
    if _registry is None:
        _registry = BuiltinRegistry()
    return _registry


def call_builtin(ctx: ExecutionContext, name: str, args: List[Value]) -> Value:
    """
    Call a built-in function by name.

    Raises:
        FinLiteRuntimeError: UndefinedVariable if no builtin has that name
    """
    func = get_builtin_registry().get_function(name)
    if func is None:
        raise error_undefined_variable(name)
    return ctx.interpreter.call_function(function_val(func), list(args), ctx, name=name)
