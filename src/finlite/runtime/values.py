"""
Runtime values for the FinLite interpreter.

Every value the evaluator handles is a ``Value``: a payload tagged with a
``ValueKind`` from a closed set. Finance payloads (``Table``,
``Portfolio``, ``Cashflow``, ``Ledger``) check their invariants when they
are built.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from ..errors import (
    error_domain_invariant,
    error_unknown_column,
    error_type_mismatch,
)

WEIGHT_TOLERANCE = 1e-9


class ValueKind(Enum):
    """The closed set of runtime value tags."""
    NULL = "null"
    NUMBER = "number"
    STRING = "string"
    BOOL = "bool"
    LIST = "list"
    TABLE = "table"
    PORTFOLIO = "portfolio"
    CASHFLOW = "cashflow"
    LEDGER = "ledger"
    LEDGER_ENTRY = "ledger entry"
    FUNCTION = "function"
    LAMBDA = "lambda"
    BLOCK = "block"
    OBJECT = "object"


@dataclass(frozen=True)
class Value:
    """
    A runtime value.

    The `data` field holds the payload: float, str, bool, a list of Values,
    a dict of Values, or one of the payload classes below. Equality is
    structural.
    """
    data: Any
    kind: ValueKind

    def __repr__(self) -> str:
        return f"Value({self.data!r}, {self.kind.name})"

    def is_truthy(self) -> bool:
        """Check if this value is truthy in boolean context."""
        if self.kind == ValueKind.NULL:
            return False
        if self.kind == ValueKind.BOOL:
            return bool(self.data)
        if self.kind == ValueKind.NUMBER:
            return self.data != 0
        if self.kind in (ValueKind.STRING, ValueKind.LIST):
            return len(self.data) > 0
        return True

    @property
    def is_null(self) -> bool:
        return self.kind == ValueKind.NULL

    @property
    def type_name(self) -> str:
        return self.kind.value

    def __str__(self) -> str:
        return format_value(self)


# =============================================================================
# Finance payloads
# =============================================================================

@dataclass(frozen=True)
class Table:
    """Named numeric columns of equal length; column order is kept."""
    columns: Dict[str, List[float]]

    def __post_init__(self):
        lengths = {name: len(col) for name, col in self.columns.items()}
        if len(set(lengths.values())) > 1:
            detail = ", ".join(f"{name}={n}" for name, n in lengths.items())
            raise error_domain_invariant(f"TABLE columns must have equal length ({detail})")

    @property
    def column_names(self) -> List[str]:
        return list(self.columns)

    @property
    def row_count(self) -> int:
        for col in self.columns.values():
            return len(col)
        return 0

    def get_column(self, name: str) -> List[float]:
        if name not in self.columns:
            raise error_unknown_column(name)
        return self.columns[name]

    def rows(self) -> Iterator[Dict[str, float]]:
        for i in range(self.row_count):
            yield {name: col[i] for name, col in self.columns.items()}


@dataclass(frozen=True)
class Portfolio:
    """Asset values with non-negative weights summing to 1."""
    assets: List[float]
    weights: List[float]
    names: Optional[List[str]] = None

    def __post_init__(self):
        if len(self.assets) != len(self.weights):
            raise error_domain_invariant(
                f"PORTFOLIO has {len(self.assets)} assets but {len(self.weights)} weights")
        for i, weight in enumerate(self.weights):
            if weight < 0:
                raise error_domain_invariant(f"PORTFOLIO weight at index {i} is negative ({weight})")
        total = math.fsum(self.weights)
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise error_domain_invariant(f"PORTFOLIO weights must sum to 1, got {total}")

    def weighted(self) -> List[float]:
        return [a * w for a, w in zip(self.assets, self.weights)]


@dataclass(frozen=True)
class Cashflow:
    """Signed amounts, one per period."""
    flows: List[float]


@dataclass(frozen=True)
class LedgerEntry:
    date: str
    debit: Optional[float]
    credit: Optional[float]
    description: str

    @property
    def amount(self) -> float:
        """Signed amount: debits positive, credits negative."""
        return (self.debit or 0.0) - (self.credit or 0.0)


@dataclass
class Ledger:
    """Append-only list of entries."""
    entries: List[LedgerEntry] = field(default_factory=list)

    def record(self, entry: LedgerEntry) -> None:
        self.entries.append(entry)

    @property
    def balance(self) -> float:
        return math.fsum(entry.amount for entry in self.entries)


@dataclass(eq=False)
class Lambda:
    """An anonymous function with the scope it was created in."""
    parameters: List[str]
    body: Any       # ast.Expression
    closure: Any    # Environment

    @property
    def arity(self) -> int:
        return len(self.parameters)


@dataclass(eq=False)
class UserFunction:
    """A FUNCTION declaration with its defining scope."""
    name: str
    parameters: List[str]
    body: Any       # ast.Block
    closure: Any    # Environment

    @property
    def arity(self) -> int:
        return len(self.parameters)


# =============================================================================
# Constructors
# =============================================================================

NULL = Value(None, ValueKind.NULL)
TRUE = Value(True, ValueKind.BOOL)
FALSE = Value(False, ValueKind.BOOL)


def number_val(x: float) -> Value:
    return Value(float(x), ValueKind.NUMBER)


def string_val(s: str) -> Value:
    return Value(str(s), ValueKind.STRING)


def bool_val(b: bool) -> Value:
    return TRUE if b else FALSE


def list_val(items: List[Value]) -> Value:
    return Value(list(items), ValueKind.LIST)


def number_list_val(numbers: List[float]) -> Value:
    return Value([number_val(x) for x in numbers], ValueKind.LIST)


def object_val(fields_: Dict[str, Value]) -> Value:
    return Value(dict(fields_), ValueKind.OBJECT)


def table_val(columns: Dict[str, List[float]]) -> Value:
    return Value(Table({name: [float(x) for x in col] for name, col in columns.items()}),
                 ValueKind.TABLE)


def portfolio_val(assets: List[float], weights: List[float],
                  names: Optional[List[str]] = None) -> Value:
    return Value(Portfolio(list(assets), list(weights), names), ValueKind.PORTFOLIO)


def cashflow_val(flows: List[float]) -> Value:
    return Value(Cashflow([float(x) for x in flows]), ValueKind.CASHFLOW)


def ledger_val(ledger: Optional[Ledger] = None) -> Value:
    return Value(ledger if ledger is not None else Ledger(), ValueKind.LEDGER)


def ledger_entry_val(entry: LedgerEntry) -> Value:
    return Value(entry, ValueKind.LEDGER_ENTRY)


def function_val(fn: Any) -> Value:
    """Wrap a builtin or a UserFunction."""
    return Value(fn, ValueKind.FUNCTION)


def lambda_val(fn: Lambda) -> Value:
    return Value(fn, ValueKind.LAMBDA)


def block_val(block: Any) -> Value:
    return Value(block, ValueKind.BLOCK)


def from_python(obj: Any) -> Value:
    """Convert a plain Python object into a Value."""
    if obj is None:
        return NULL
    if isinstance(obj, Value):
        return obj
    if isinstance(obj, bool):
        return bool_val(obj)
    if isinstance(obj, (int, float)):
        return number_val(obj)
    if isinstance(obj, str):
        return string_val(obj)
    if isinstance(obj, (list, tuple)):
        return list_val([from_python(x) for x in obj])
    if isinstance(obj, dict):
        return object_val({str(k): from_python(v) for k, v in obj.items()})
    raise TypeError(f"cannot convert {type(obj).__name__} to a FinLite value")


# =============================================================================
# Coercion
# =============================================================================

def as_number(value: Value, what: str = "value") -> float:
    if value.kind != ValueKind.NUMBER:
        raise error_type_mismatch(f"{what} must be a number, got {value.type_name}")
    return value.data


def as_int(value: Value, what: str = "value") -> int:
    number = as_number(value, what)
    if not math.isfinite(number) or number != int(number):
        raise error_type_mismatch(f"{what} must be a whole number, got {format_number(number)}")
    return int(number)


def as_string(value: Value, what: str = "value") -> str:
    if value.kind != ValueKind.STRING:
        raise error_type_mismatch(f"{what} must be a string, got {value.type_name}")
    return value.data


def as_number_list(value: Value, what: str = "value") -> List[float]:
    """Coerce a list of numbers or a cashflow to floats."""
    if value.kind == ValueKind.CASHFLOW:
        return list(value.data.flows)
    if value.kind != ValueKind.LIST:
        raise error_type_mismatch(f"{what} must be a list of numbers, got {value.type_name}")
    numbers = []
    for i, item in enumerate(value.data):
        if item.kind != ValueKind.NUMBER:
            raise error_type_mismatch(
                f"{what} element at index {i} must be numeric, got {item.type_name}")
        numbers.append(item.data)
    return numbers


# =============================================================================
# Formatting
# =============================================================================

def format_number(x: float) -> str:
    """Whole numbers print without a trailing .0."""
    if math.isfinite(x) and x == int(x) and abs(x) < 1e16:
        return str(int(x))
    return repr(x)


def _format_cell(x: float) -> str:
    return format_number(round(x, 4))


def format_table(table: Table) -> str:
    """Render a table as an aligned text grid."""
    names = table.column_names
    if not names:
        return "TABLE()"
    cells = [[_format_cell(x) for x in table.columns[name]] for name in names]
    widths = [max([len(name)] + [len(c) for c in col]) for name, col in zip(names, cells)]

    lines = [" | ".join(name.rjust(w) for name, w in zip(names, widths)),
             "-+-".join("-" * w for w in widths)]
    for row in range(table.row_count):
        lines.append(" | ".join(col[row].rjust(w) for col, w in zip(cells, widths)))
    return "\n".join(lines)


def format_value(value: Optional[Value]) -> str:
    """Render a value the way PRINT shows it."""
    if value is None or value.kind == ValueKind.NULL:
        return "null"
    kind = value.kind
    data = value.data
    if kind == ValueKind.NUMBER:
        return format_number(data)
    if kind == ValueKind.STRING:
        return data
    if kind == ValueKind.BOOL:
        return "true" if data else "false"
    if kind == ValueKind.LIST:
        return "[" + ", ".join(format_value(item) for item in data) + "]"
    if kind == ValueKind.OBJECT:
        if not data:
            return "{}"
        return "{ " + ", ".join(f"{k}: {format_value(v)}" for k, v in data.items()) + " }"
    if kind == ValueKind.TABLE:
        return format_table(data)
    if kind == ValueKind.PORTFOLIO:
        return f"PORTFOLIO(assets={len(data.assets)}, weights={len(data.weights)})"
    if kind == ValueKind.CASHFLOW:
        return f"CASHFLOW({len(data.flows)} periods)"
    if kind == ValueKind.LEDGER:
        return f"LEDGER({len(data.entries)} entries)"
    if kind == ValueKind.LEDGER_ENTRY:
        side = f"debit {format_number(data.debit)}" if data.debit is not None \
            else f"credit {format_number(data.credit or 0.0)}"
        return f"{data.date} {side}: {data.description}"
    if kind == ValueKind.FUNCTION:
        return f"<function {getattr(data, 'name', '?')}>"
    if kind == ValueKind.LAMBDA:
        return f"<lambda({data.arity} params)>"
    return "<block>"
