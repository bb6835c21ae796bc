"""
FinLite runtime - tree-walking interpreter.

This module provides:
- Interpreter: Executes parsed programs
- Value: Tagged runtime values and the finance payloads they carry
- Environment / ExecutionContext: Scope chain and output sink
- BuiltinRegistry: Standard library functions
- finance: Pure finance formulas (NPV, IRR, PV, FV, WACC, CAPM, VaR, ...)
"""

from .values import (
    Value,
    ValueKind,
    Table,
    Portfolio,
    Cashflow,
    Ledger,
    LedgerEntry,
    Lambda,
    UserFunction,
    NULL,
    TRUE,
    FALSE,
    number_val,
    string_val,
    bool_val,
    list_val,
    number_list_val,
    object_val,
    table_val,
    portfolio_val,
    cashflow_val,
    from_python,
    format_value,
)

from .context import (
    Environment,
    ExecutionContext,
    Outcome,
)

from .builtins import (
    BuiltinFunction,
    BuiltinRegistry,
    VARIADIC,
    get_builtin_registry,
    call_builtin,
)

from .interpreter import (
    Interpreter,
    ExecutionResult,
    execute,
    run_file,
)

__all__ = [
    # Values
    'Value',
    'ValueKind',
    'Table',
    'Portfolio',
    'Cashflow',
    'Ledger',
    'LedgerEntry',
    'Lambda',
    'UserFunction',
    'NULL',
    'TRUE',
    'FALSE',
    'number_val',
    'string_val',
    'bool_val',
    'list_val',
    'number_list_val',
    'object_val',
    'table_val',
    'portfolio_val',
    'cashflow_val',
    'from_python',
    'format_value',

    # Context
    'Environment',
    'ExecutionContext',
    'Outcome',

    # Builtins
    'BuiltinFunction',
    'BuiltinRegistry',
    'VARIADIC',
    'get_builtin_registry',
    'call_builtin',

    # Interpreter
    'Interpreter',
    'ExecutionResult',
    'execute',
    'run_file',
]
