"""
Tree-walking interpreter for FinLite.

Executes a parsed Program statement by statement against an
ExecutionContext. Statements hand back an ``Outcome`` so a RETURN can
unwind through any number of blocks and loops to the nearest call
boundary without using the exception channel.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, TextIO

from ..tokens import TokenType
from ..ast import (
    Expression, Literal, Identifier, ScopedIdentifier, Assignment,
    BinaryOp, UnaryOp, FunctionCall, MemberAccess, IndexAccess, SliceAccess,
    ListLiteral, ObjectLiteral, LambdaExpr, TimeSeriesExpr,
    TableLiteral, CashflowLiteral, PortfolioLiteral, NpvCall, IrrCall, PvCall,
    FvCall, WaccCall, CapmCall, VarCall, SmaCall, EmaCall, AmortizeCall,
    Statement, Block, LetStatement, SetStatement, PrintStatement,
    ExpressionStatement, IfStatement, WhileStatement, ForRangeStatement,
    ForEachStatement, ReturnStatement, FunctionDef, ImportStatement,
    ErrorStatement, LedgerEntryStatement, PortfolioStatement,
    ScenarioStatement, RunStatement, SimulateStatement, Program,
)
from ..config import FinLiteConfig
from ..errors import (
    Diagnostic,
    FinLiteError,
    FinLiteRuntimeError,
    LexerError,
    ParserError,
    error_type_mismatch,
    error_division_by_zero,
    error_invalid_range,
    error_arity_mismatch,
    error_call_failed,
    error_recursion_depth,
)
from .context import Environment, ExecutionContext, Outcome, NORMAL
from .values import (
    Value, ValueKind, Lambda, UserFunction,
    NULL, number_val, string_val, bool_val, list_val, number_list_val,
    object_val, table_val, portfolio_val, cashflow_val, function_val, ledger_entry_val,
    lambda_val, as_number, as_int, as_number_list, format_value,
)
from . import finance
from .finance_statements import FinanceStatementMixin

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Result of running a FinLite program."""
    success: bool
    results: List[Value] = field(default_factory=list)
    output: List[str] = field(default_factory=list)
    error: Optional[FinLiteError] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def error_message(self) -> Optional[str]:
        if self.error is not None:
            return self.error.message
        if self.diagnostics:
            return self.diagnostics[0].message
        return None

    @property
    def value(self) -> Value:
        """Result of the last top-level statement."""
        return self.results[-1] if self.results else NULL


class Interpreter(FinanceStatementMixin):
    """
    Interprets FinLite programs.

    The interpreter owns one ExecutionContext for its whole life, so a REPL
    can feed it one line at a time and keep its bindings.

    Usage:
        interp = Interpreter()
        result = interp.execute('LET x = 10\\nPRINT x + 5')
        print(result.output)   # ['15']
    """

    def __init__(self, config: Optional[FinLiteConfig] = None,
                 output: Optional[TextIO] = None, registry=None):
        self.config = config if config is not None else FinLiteConfig()
        if registry is None:
            from .builtins import get_builtin_registry
            registry = get_builtin_registry()
        self.registry = registry
        self.ctx = ExecutionContext(output=output, config=self.config, interpreter=self)
        self.registry.install(self.ctx.global_scope)

    @property
    def globals(self) -> Environment:
        return self.ctx.global_scope

    # =========================================================================
    # Entry points
    # =========================================================================

    def execute(self, source: str, filename: Optional[str] = None) -> ExecutionResult:
        """
        Lex, parse and run source text.

        Lexical and parse errors are collected and the statements that did
        parse still run. Runtime errors stop the program and are returned in
        the result rather than raised.
        """
        from ..lexer import Lexer
        from ..parser import Parser

        lexer = Lexer(source, filename, tab_width=self.config.tab_width,
                      currencies=self.config.currencies, max_errors=self.config.max_errors)
        tokens = lexer.tokenize()
        parser = Parser(tokens, filename, source, max_errors=self.config.max_errors)
        program = parser.parse_program()

        diagnostics = lexer.diagnostics.diagnostics + parser.diagnostics.diagnostics
        self.ctx.source_lines = source.splitlines()
        self.ctx.lines_written = []

        results: List[Value] = []
        error: Optional[FinLiteError] = None
        try:
            results = self.run(program, results)
        except FinLiteError as e:
            error = e
            diagnostics.append(e.diagnostic)
            self._attach_source_line(e.diagnostic)
        except RecursionError:
            error = error_recursion_depth()
            diagnostics.append(error.diagnostic)

        if error is None and diagnostics:
            first = diagnostics[0]
            error = LexerError(first) if first.code.startswith("E0") else ParserError(first)

        return ExecutionResult(
            success=error is None,
            results=results,
            output=self.ctx.lines_written,
            error=error,
            diagnostics=diagnostics,
        )

    def run(self, program: Program, results: Optional[List[Value]] = None) -> List[Value]:
        """
        Execute every top-level statement in order.

        Returns one value per statement: the value of an expression
        statement, null for everything else. A top-level RETURN ends the
        program.

        Raises:
            FinLiteRuntimeError: The first runtime error
        """
        if results is None:
            results = []
        for stmt in program.statements:
            outcome = self._execute_statement(stmt, self.ctx)
            results.append(outcome.value)
            if outcome.returning:
                break
        return results

    def _attach_source_line(self, diagnostic: Diagnostic) -> None:
        if diagnostic.source_line is None and diagnostic.span is not None:
            diagnostic.source_line = self.ctx.source_line(diagnostic.span.start.line)

    # =========================================================================
    # Statements
    # =========================================================================

    def _execute_statement(self, stmt: Statement, ctx: ExecutionContext) -> Outcome:
        """Execute a statement, attaching its location to untagged errors."""
        try:
            return self._dispatch_statement(stmt, ctx)
        except FinLiteRuntimeError as e:
            raise e.with_span(stmt.span)

    def _dispatch_statement(self, stmt: Statement, ctx: ExecutionContext) -> Outcome:
        if isinstance(stmt, LetStatement):
            return self._execute_let(stmt, ctx)
        elif isinstance(stmt, SetStatement):
            return self._execute_set(stmt, ctx)
        elif isinstance(stmt, PrintStatement):
            return self._execute_print(stmt, ctx)
        elif isinstance(stmt, ExpressionStatement):
            return Outcome.normal(self._evaluate(stmt.expression, ctx))
        elif isinstance(stmt, IfStatement):
            return self._execute_if(stmt, ctx)
        elif isinstance(stmt, WhileStatement):
            return self._execute_while(stmt, ctx)
        elif isinstance(stmt, ForRangeStatement):
            return self._execute_for_range(stmt, ctx)
        elif isinstance(stmt, ForEachStatement):
            return self._execute_for_each(stmt, ctx)
        elif isinstance(stmt, Block):
            return self._execute_block(stmt, ctx)
        elif isinstance(stmt, ReturnStatement):
            return self._execute_return(stmt, ctx)
        elif isinstance(stmt, FunctionDef):
            return self._execute_function_def(stmt, ctx)
        elif isinstance(stmt, ImportStatement):
            return self._execute_import(stmt, ctx)
        elif isinstance(stmt, ErrorStatement):
            return NORMAL  # Already reported by the parser
        elif isinstance(stmt, LedgerEntryStatement):
            return self._execute_ledger_entry(stmt, ctx)
        elif isinstance(stmt, PortfolioStatement):
            return self._execute_portfolio(stmt, ctx)
        elif isinstance(stmt, ScenarioStatement):
            return self._execute_scenario(stmt, ctx)
        elif isinstance(stmt, RunStatement):
            return self._execute_run(stmt, ctx)
        elif isinstance(stmt, SimulateStatement):
            return self._execute_simulate(stmt, ctx)
        else:
            raise error_type_mismatch(f"unknown statement type: {type(stmt).__name__}", stmt.span)

    def _execute_statements(self, statements: List[Statement], ctx: ExecutionContext) -> Outcome:
        """Run statements in the current scope, stopping at a RETURN."""
        for stmt in statements:
            outcome = self._execute_statement(stmt, ctx)
            if outcome.returning:
                return outcome
        return NORMAL

    def _execute_block(self, block: Block, ctx: ExecutionContext, name: str = "block") -> Outcome:
        with ctx.new_scope(name):
            return self._execute_statements(block.statements, ctx)

    def _execute_let(self, stmt: LetStatement, ctx: ExecutionContext) -> Outcome:
        value = self._evaluate(stmt.initializer, ctx)
        ctx.define_variable(stmt.name, value)
        return NORMAL

    def _execute_set(self, stmt: SetStatement, ctx: ExecutionContext) -> Outcome:
        value = self._evaluate(stmt.value, ctx)
        ctx.assign_variable(stmt.name, value)
        return NORMAL

    def _execute_print(self, stmt: PrintStatement, ctx: ExecutionContext) -> Outcome:
        text = " ".join(format_value(self._evaluate(v, ctx)) for v in stmt.values)
        ctx.write(f"[LOG] {text}" if stmt.is_log else text)
        return NORMAL

    def _execute_if(self, stmt: IfStatement, ctx: ExecutionContext) -> Outcome:
        if self._evaluate(stmt.condition, ctx).is_truthy():
            return self._execute_block(stmt.then_branch, ctx, "if-then")
        for branch in stmt.elif_branches:
            if self._evaluate(branch.condition, ctx).is_truthy():
                return self._execute_block(branch.body, ctx, "elseif")
        if stmt.else_branch is not None:
            return self._execute_block(stmt.else_branch, ctx, "else")
        return NORMAL

    def _execute_while(self, stmt: WhileStatement, ctx: ExecutionContext) -> Outcome:
        """One scope for the whole loop; LET bindings survive between iterations."""
        with ctx.new_scope("while-loop"):
            while self._evaluate(stmt.condition, ctx).is_truthy():
                outcome = self._execute_statements(stmt.body.statements, ctx)
                if outcome.returning:
                    return outcome
        return NORMAL

    def _execute_for_range(self, stmt: ForRangeStatement, ctx: ExecutionContext) -> Outcome:
        """FOR i IN start TO end [STEP s]; bounds are evaluated once and the end is inclusive."""
        start = as_number(self._evaluate(stmt.start, ctx), "FOR start")
        end = as_number(self._evaluate(stmt.end, ctx), "FOR end")
        step = 1.0
        if stmt.step is not None:
            step = as_number(self._evaluate(stmt.step, ctx), "FOR step")
        if step == 0:
            raise error_invalid_range("FOR loop step cannot be zero", stmt.step.span)

        with ctx.new_scope("for-loop") as scope:
            current = start
            scope.define(stmt.variable, number_val(current))
            while (current <= end) if step > 0 else (current >= end):
                scope.define(stmt.variable, number_val(current))
                outcome = self._execute_statements(stmt.body.statements, ctx)
                if outcome.returning:
                    return outcome
                current += step
        return NORMAL

    def _execute_for_each(self, stmt: ForEachStatement, ctx: ExecutionContext) -> Outcome:
        iterable = self._evaluate(stmt.iterable, ctx)
        if iterable.kind == ValueKind.LIST:
            items = list(iterable.data)
        elif iterable.kind == ValueKind.STRING:
            items = [string_val(ch) for ch in iterable.data]
        elif iterable.kind == ValueKind.TABLE:
            items = [object_val({k: number_val(v) for k, v in row.items()})
                     for row in iterable.data.rows()]
        elif iterable.kind == ValueKind.CASHFLOW:
            items = [number_val(x) for x in iterable.data.flows]
        else:
            raise error_type_mismatch(
                f"cannot iterate over {iterable.type_name}", stmt.iterable.span)

        with ctx.new_scope("for-each") as scope:
            for item in items:
                scope.define(stmt.variable, item)
                outcome = self._execute_statements(stmt.body.statements, ctx)
                if outcome.returning:
                    return outcome
        return NORMAL

    def _execute_return(self, stmt: ReturnStatement, ctx: ExecutionContext) -> Outcome:
        value = self._evaluate(stmt.value, ctx) if stmt.value is not None else NULL
        return Outcome.returned(value)

    def _execute_function_def(self, stmt: FunctionDef, ctx: ExecutionContext) -> Outcome:
        fn = UserFunction(stmt.name, list(stmt.parameters), stmt.body, ctx.current_scope)
        ctx.define_variable(stmt.name, function_val(fn))
        return NORMAL

    def _execute_import(self, stmt: ImportStatement, ctx: ExecutionContext) -> Outcome:
        # Modules are not loaded; the alias names the requested path
        logger.debug("import %r as %s", stmt.path, stmt.alias)
        ctx.define_variable(stmt.alias, string_val(stmt.path))
        return NORMAL

    # =========================================================================
    # Expressions
    # =========================================================================

    def evaluate(self, expr: Expression) -> Value:
        """Evaluate an expression in the interpreter's current scope."""
        return self._evaluate(expr, self.ctx)

    def _evaluate(self, expr: Expression, ctx: ExecutionContext) -> Value:
        """Evaluate an expression, attaching its location to untagged errors."""
        try:
            return self._dispatch_expression(expr, ctx)
        except FinLiteRuntimeError as e:
            raise e.with_span(expr.span)

    def _dispatch_expression(self, expr: Expression, ctx: ExecutionContext) -> Value:
        if isinstance(expr, Literal):
            return self._eval_literal(expr)
        elif isinstance(expr, Identifier):
            return ctx.get_variable(expr.name)
        elif isinstance(expr, ScopedIdentifier):
            return self._eval_scoped_identifier(expr, ctx)
        elif isinstance(expr, Assignment):
            value = self._evaluate(expr.value, ctx)
            ctx.assign_variable(expr.name, value)
            return value
        elif isinstance(expr, BinaryOp):
            return self._eval_binary_op(expr, ctx)
        elif isinstance(expr, UnaryOp):
            return self._eval_unary_op(expr, ctx)
        elif isinstance(expr, FunctionCall):
            return self._eval_function_call(expr, ctx)
        elif isinstance(expr, MemberAccess):
            return self._eval_member_access(expr, ctx)
        elif isinstance(expr, IndexAccess):
            return self._eval_index_access(expr, ctx)
        elif isinstance(expr, SliceAccess):
            return self._eval_slice_access(expr, ctx)
        elif isinstance(expr, ListLiteral):
            return list_val([self._evaluate(e, ctx) for e in expr.elements])
        elif isinstance(expr, ObjectLiteral):
            return object_val({k: self._evaluate(v, ctx) for k, v in expr.fields.items()})
        elif isinstance(expr, LambdaExpr):
            return lambda_val(Lambda(list(expr.parameters), expr.body, ctx.current_scope))
        elif isinstance(expr, TimeSeriesExpr):
            return self._eval_timeseries(expr, ctx)
        elif isinstance(expr, TableLiteral):
            return self._eval_table_literal(expr, ctx)
        elif isinstance(expr, CashflowLiteral):
            return self._eval_cashflow_literal(expr, ctx)
        elif isinstance(expr, PortfolioLiteral):
            return self._eval_portfolio_literal(expr, ctx)
        elif isinstance(expr, NpvCall):
            rate = self._eval_number(expr.rate, ctx, "NPV rate")
            flows = self._resolve_cashflow(expr.cashflows, ctx)
            return number_val(self._finance("NPV", finance.npv, rate, flows))
        elif isinstance(expr, IrrCall):
            flows = self._resolve_cashflow(expr.cashflows, ctx)
            return number_val(self._finance("IRR", finance.irr, flows,
                                            self.config.irr_guess, self.config.irr_iterations))
        elif isinstance(expr, PvCall):
            return self._eval_pv(expr, ctx)
        elif isinstance(expr, FvCall):
            return self._eval_fv(expr, ctx)
        elif isinstance(expr, WaccCall):
            return self._eval_wacc(expr, ctx)
        elif isinstance(expr, CapmCall):
            return self._eval_capm(expr, ctx)
        elif isinstance(expr, VarCall):
            return self._eval_var(expr, ctx)
        elif isinstance(expr, SmaCall):
            series = as_number_list(self._evaluate(expr.series, ctx), "SMA series")
            period = as_int(self._evaluate(expr.period, ctx), "SMA period")
            return number_list_val(self._finance("SMA", finance.sma, series, period))
        elif isinstance(expr, EmaCall):
            series = as_number_list(self._evaluate(expr.series, ctx), "EMA series")
            period = as_int(self._evaluate(expr.period, ctx), "EMA period")
            return number_list_val(self._finance("EMA", finance.ema, series, period))
        elif isinstance(expr, AmortizeCall):
            return self._eval_amortize(expr, ctx)
        else:
            raise error_type_mismatch(f"unknown expression type: {type(expr).__name__}", expr.span)

    def _eval_literal(self, lit: Literal) -> Value:
        if lit.literal_type in (TokenType.NUMBER, TokenType.MONEY):
            return number_val(lit.value)
        elif lit.literal_type in (TokenType.STRING, TokenType.DATE):
            return string_val(lit.value)
        elif lit.literal_type in (TokenType.TRUE, TokenType.FALSE):
            return bool_val(bool(lit.value))
        return NULL

    def _eval_scoped_identifier(self, expr: ScopedIdentifier, ctx: ExecutionContext) -> Value:
        if expr.scope == "global":
            return ctx.current_scope.get_global(expr.name)
        return ctx.current_scope.get_parent(expr.name)

    def _eval_number(self, expr: Expression, ctx: ExecutionContext, what: str) -> float:
        return as_number(self._evaluate(expr, ctx), what)

    # --- Operators ---

    def _eval_unary_op(self, op: UnaryOp, ctx: ExecutionContext) -> Value:
        operand = self._evaluate(op.operand, ctx)
        if op.operator == TokenType.NOT:
            return bool_val(not operand.is_truthy())
        if operand.kind != ValueKind.NUMBER:
            raise error_type_mismatch(
                f"unary '-' needs a number, got {operand.type_name}", op.span)
        return number_val(-operand.data)

    def _eval_binary_op(self, op: BinaryOp, ctx: ExecutionContext) -> Value:
        # Short-circuit first
        if op.operator == TokenType.AND:
            left = self._evaluate(op.left, ctx)
            if not left.is_truthy():
                return bool_val(False)
            return bool_val(self._evaluate(op.right, ctx).is_truthy())
        if op.operator == TokenType.OR:
            left = self._evaluate(op.left, ctx)
            if left.is_truthy():
                return bool_val(True)
            return bool_val(self._evaluate(op.right, ctx).is_truthy())

        left = self._evaluate(op.left, ctx)
        right = self._evaluate(op.right, ctx)
        return self._apply_binary(op.operator, left, right, op)

    def _apply_binary(self, operator: TokenType, left: Value, right: Value, op: BinaryOp) -> Value:
        if operator == TokenType.EQUAL_EQUAL:
            return bool_val(left == right)
        if operator == TokenType.BANG_EQUAL:
            return bool_val(left != right)

        symbol = op_symbol(operator)

        # Element-wise list arithmetic, truncated to the shorter list
        if left.kind == ValueKind.LIST and right.kind == ValueKind.LIST \
                and operator in (TokenType.PLUS, TokenType.MINUS):
            return list_val([self._apply_binary(operator, a, b, op)
                             for a, b in zip(left.data, right.data)])

        if operator == TokenType.PLUS and left.kind == ValueKind.STRING \
                and right.kind == ValueKind.STRING:
            return string_val(left.data + right.data)

        if left.kind != ValueKind.NUMBER or right.kind != ValueKind.NUMBER:
            raise error_type_mismatch(
                f"cannot apply '{symbol}' to {left.type_name} and {right.type_name}", op.span)

        a, b = left.data, right.data
        if operator == TokenType.PLUS:
            return number_val(a + b)
        elif operator == TokenType.MINUS:
            return number_val(a - b)
        elif operator == TokenType.STAR:
            return number_val(a * b)
        elif operator == TokenType.SLASH:
            if b == 0:
                raise error_division_by_zero(op.span)
            return number_val(a / b)
        elif operator == TokenType.PERCENT:
            if b == 0:
                raise error_division_by_zero(op.span)
            return number_val(a % b)
        elif operator == TokenType.CARET:
            return number_val(self._power(a, b, op))
        elif operator == TokenType.LESS:
            return bool_val(a < b)
        elif operator == TokenType.LESS_EQUAL:
            return bool_val(a <= b)
        elif operator == TokenType.GREATER:
            return bool_val(a > b)
        elif operator == TokenType.GREATER_EQUAL:
            return bool_val(a >= b)
        raise error_type_mismatch(f"unknown operator '{symbol}'", op.span)

    def _power(self, base: float, exponent: float, op: BinaryOp) -> float:
        if base == 0 and exponent < 0:
            raise error_division_by_zero(op.span)
        try:
            return math.pow(base, exponent)
        except ValueError:
            raise error_type_mismatch(
                f"'^' has no real result for {format_value(number_val(base))} ^ "
                f"{format_value(number_val(exponent))}", op.span)
        except OverflowError as e:
            raise error_call_failed("^", e, op.span)

    # --- Access ---

    def _eval_member_access(self, expr: MemberAccess, ctx: ExecutionContext) -> Value:
        target = self._evaluate(expr.object, ctx)
        return member_of(target, expr.member)

    def _eval_index_access(self, expr: IndexAccess, ctx: ExecutionContext) -> Value:
        target = self._evaluate(expr.object, ctx)
        index = self._evaluate(expr.index, ctx)

        if target.kind in (ValueKind.OBJECT, ValueKind.TABLE) and index.kind == ValueKind.STRING:
            return member_of(target, index.data)

        items = _indexable(target)
        i = as_int(index, "index")
        if i < 0 or i >= len(items):
            raise error_invalid_range(
                f"index {i} out of range for {target.type_name} of length {len(items)}",
                expr.index.span)
        if target.kind == ValueKind.STRING:
            return string_val(items[i])
        return items[i] if isinstance(items[i], Value) else number_val(items[i])

    def _eval_slice_access(self, expr: SliceAccess, ctx: ExecutionContext) -> Value:
        target = self._evaluate(expr.object, ctx)
        items = _indexable(target)
        length = len(items)

        start = 0
        if expr.start is not None:
            start = as_int(self._evaluate(expr.start, ctx), "slice start")
        end = length
        if expr.end is not None:
            end = min(as_int(self._evaluate(expr.end, ctx), "slice end"), length)

        if start < 0 or start > length or end < start:
            raise error_invalid_range(
                f"invalid slice [{start}:{end}] for {target.type_name} of length {length}",
                expr.span)

        if target.kind == ValueKind.STRING:
            return string_val(items[start:end])
        if target.kind == ValueKind.CASHFLOW:
            return number_list_val(items[start:end])
        return list_val(items[start:end])

    # --- Calls ---

    def _eval_function_call(self, call: FunctionCall, ctx: ExecutionContext) -> Value:
        callee = self._evaluate(call.callee, ctx)
        args = [self._evaluate(arg, ctx) for arg in call.arguments]
        name = call.callee.name if isinstance(call.callee, Identifier) else None
        return self.call_function(callee, args, ctx, call.span, name)

    def call_function(self, callee: Value, args: List[Value], ctx: Optional[ExecutionContext] = None,
                      span=None, name: Optional[str] = None) -> Value:
        """
        Invoke a callable value.

        Lambdas and user functions run in a fresh child of the scope they
        were created in. Builtins receive the context and the argument list;
        host exceptions they raise are wrapped at the call site.
        """
        if ctx is None:
            ctx = self.ctx

        if callee.kind == ValueKind.LAMBDA:
            fn = callee.data
            _check_arity(fn.arity, len(args), span, name or "lambda")
            with ctx.use_scope(fn.closure.create_child("lambda")) as scope:
                for param, arg in zip(fn.parameters, args):
                    scope.define(param, arg)
                return self._evaluate(fn.body, ctx)

        if callee.kind != ValueKind.FUNCTION:
            raise error_type_mismatch(
                f"{name or callee.type_name} is not callable ({callee.type_name})", span)

        fn = callee.data
        if isinstance(fn, UserFunction):
            _check_arity(fn.arity, len(args), span, fn.name)
            with ctx.use_scope(fn.closure.create_child(f"function {fn.name}")) as scope:
                for param, arg in zip(fn.parameters, args):
                    scope.define(param, arg)
                outcome = self._execute_statements(fn.body.statements, ctx)
            return outcome.value if outcome.returning else NULL

        return self._call_builtin(fn, args, ctx, span)

    def _call_builtin(self, fn, args: List[Value], ctx: ExecutionContext, span) -> Value:
        from .builtins import VARIADIC

        if fn.arity != VARIADIC:
            _check_arity(fn.arity, len(args), span, fn.name)
        try:
            result = fn.implementation(ctx, *args)
        except FinLiteError:
            raise
        except RecursionError:
            raise
        except ZeroDivisionError:
            raise error_division_by_zero(span)
        except Exception as e:
            raise error_call_failed(fn.name, e, span) from e
        return result if result is not None else NULL

    # --- Finance ---

    def _finance(self, name: str, fn: Callable, *args):
        """Call into the finance library, mapping host failures to runtime errors."""
        try:
            return fn(*args)
        except ZeroDivisionError:
            raise error_division_by_zero()
        except (ValueError, OverflowError) as e:
            raise error_call_failed(name, e) from e

    def _resolve_cashflow(self, expr: Expression, ctx: ExecutionContext) -> List[float]:
        """
        Coerce a cashflow-like expression to a list of floats.

        ``a + b`` and ``a - b`` over cashflow-like operands combine
        element-wise, truncated to the shorter operand.
        """
        if isinstance(expr, BinaryOp) and expr.operator in (TokenType.PLUS, TokenType.MINUS):
            left = self._resolve_cashflow(expr.left, ctx)
            right = self._resolve_cashflow(expr.right, ctx)
            if expr.operator == TokenType.PLUS:
                return [a + b for a, b in zip(left, right)]
            return [a - b for a, b in zip(left, right)]
        return as_number_list(self._evaluate(expr, ctx), "cashflow")

    def _eval_table_literal(self, expr: TableLiteral, ctx: ExecutionContext) -> Value:
        columns = {}
        for name, column in expr.columns.items():
            value = self._evaluate(column, ctx)
            columns[name] = as_number_list(value, f"TABLE column '{name}'")
        return table_val(columns)

    def _eval_cashflow_literal(self, expr: CashflowLiteral, ctx: ExecutionContext) -> Value:
        flows = []
        for i, entry in enumerate(expr.entries):
            amount = self._eval_number(entry.amount, ctx, f"CASHFLOW amount at index {i}")
            flows.append(amount if entry.entry_type == TokenType.DEBIT else -amount)
        return cashflow_val(flows)

    def _eval_portfolio_literal(self, expr: PortfolioLiteral, ctx: ExecutionContext) -> Value:
        assets = as_number_list(self._evaluate(expr.assets, ctx), "PORTFOLIO assets")
        weights = as_number_list(self._evaluate(expr.weights, ctx), "PORTFOLIO weights")
        return portfolio_val(assets, weights)

    def _eval_pv(self, expr: PvCall, ctx: ExecutionContext) -> Value:
        rate = self._eval_number(expr.rate, ctx, "PV rate")
        periods = self._eval_number(expr.periods, ctx, "PV periods")
        payment = self._eval_number(expr.payment, ctx, "PV payment") \
            if expr.payment is not None else 0.0
        future = self._eval_number(expr.future_value, ctx, "PV future value") \
            if expr.future_value is not None else 0.0
        return number_val(self._finance("PV", finance.pv, rate, periods, payment, future))

    def _eval_fv(self, expr: FvCall, ctx: ExecutionContext) -> Value:
        rate = self._eval_number(expr.rate, ctx, "FV rate")
        periods = self._eval_number(expr.periods, ctx, "FV periods")
        payment = self._eval_number(expr.payment, ctx, "FV payment") \
            if expr.payment is not None else 0.0
        present = self._eval_number(expr.present_value, ctx, "FV present value") \
            if expr.present_value is not None else 0.0
        return number_val(self._finance("FV", finance.fv, rate, periods, payment, present))

    def _eval_wacc(self, expr: WaccCall, ctx: ExecutionContext) -> Value:
        return number_val(finance.wacc(
            self._eval_number(expr.equity_weight, ctx, "WACC equity weight"),
            self._eval_number(expr.debt_weight, ctx, "WACC debt weight"),
            self._eval_number(expr.cost_equity, ctx, "WACC cost of equity"),
            self._eval_number(expr.cost_debt, ctx, "WACC cost of debt"),
            self._eval_number(expr.tax_rate, ctx, "WACC tax rate"),
        ))

    def _eval_capm(self, expr: CapmCall, ctx: ExecutionContext) -> Value:
        """CAPM(beta, rf, premium): a number gives a number, a list gives a list."""
        beta = self._evaluate(expr.beta, ctx)
        rf = self._eval_number(expr.risk_free, ctx, "CAPM risk-free rate")
        premium = self._eval_number(expr.premium, ctx, "CAPM premium")
        market = rf + premium

        if beta.kind == ValueKind.NUMBER:
            return number_val(finance.capm(rf, beta.data, market))
        if beta.kind == ValueKind.LIST:
            betas = as_number_list(beta, "CAPM beta list")
            return number_list_val([finance.capm(rf, b, market) for b in betas])
        if beta.kind == ValueKind.PORTFOLIO:
            portfolio_beta = math.fsum(beta.data.weighted())
            return number_val(finance.capm(rf, portfolio_beta, market))
        raise error_type_mismatch(
            f"CAPM beta must be a number or list of numbers, got {beta.type_name}",
            expr.beta.span)

    def _eval_var(self, expr: VarCall, ctx: ExecutionContext) -> Value:
        source = self._evaluate(expr.series, ctx)
        confidence = self._eval_number(expr.confidence, ctx, "VAR confidence")
        if source.kind == ValueKind.PORTFOLIO:
            series = source.data.weighted()
        else:
            series = as_number_list(source, "VAR series")
        return number_val(self._finance(
            "VAR", finance.value_at_risk, series, confidence,
            self.config.var_z_scores, self.config.var_default_z))

    def _eval_amortize(self, expr: AmortizeCall, ctx: ExecutionContext) -> Value:
        principal = self._eval_number(expr.principal, ctx, "AMORTIZE principal")
        rate = self._eval_number(expr.rate, ctx, "AMORTIZE rate")
        periods = as_int(self._evaluate(expr.periods, ctx), "AMORTIZE periods")
        rows = self._finance("AMORTIZE", finance.amortize, principal, rate, periods)
        return table_val({
            "payment": [r.payment for r in rows],
            "interest": [r.interest for r in rows],
            "principal": [r.principal for r in rows],
            "balance": [r.balance for r in rows],
        })

    def _eval_timeseries(self, expr: TimeSeriesExpr, ctx: ExecutionContext) -> Value:
        source = as_number_list(self._evaluate(expr.source, ctx), "timeseries source")
        window = as_int(self._evaluate(expr.window, ctx), "timeseries window")
        if window < 1:
            raise error_invalid_range(f"timeseries window must be >= 1, got {window}",
                                      expr.window.span)
        return number_list_val(finance.rolling_mean(source, window))


# =============================================================================
# Helpers
# =============================================================================

_SYMBOLS = {
    TokenType.PLUS: "+", TokenType.MINUS: "-", TokenType.STAR: "*",
    TokenType.SLASH: "/", TokenType.PERCENT: "%", TokenType.CARET: "^",
    TokenType.LESS: "<", TokenType.LESS_EQUAL: "<=", TokenType.GREATER: ">",
    TokenType.GREATER_EQUAL: ">=",
}


def op_symbol(operator: TokenType) -> str:
    return _SYMBOLS.get(operator, operator.name.lower())


def _check_arity(expected: int, found: int, span, name: str) -> None:
    if expected != found:
        raise error_arity_mismatch(expected, found, span, name)


def _indexable(value: Value):
    if value.kind in (ValueKind.LIST, ValueKind.STRING):
        return value.data
    if value.kind == ValueKind.CASHFLOW:
        return value.data.flows
    raise error_type_mismatch(f"cannot index into {value.type_name}")


def member_of(target: Value, member: str) -> Value:
    """Resolve ``target.member`` against the runtime kind of `target`."""
    data = target.data
    if target.kind == ValueKind.TABLE:
        return number_list_val(data.get_column(member))
    if target.kind == ValueKind.OBJECT:
        if member not in data:
            raise error_type_mismatch(f"object has no field '{member}'")
        return data[member]
    if target.kind == ValueKind.PORTFOLIO and member in ("assets", "weights"):
        return number_list_val(getattr(data, member))
    if target.kind == ValueKind.PORTFOLIO and member == "names":
        return list_val([string_val(n) for n in data.names or []])
    if target.kind == ValueKind.CASHFLOW and member == "flows":
        return number_list_val(data.flows)
    if target.kind == ValueKind.LEDGER:
        if member == "balance":
            return number_val(data.balance)
        if member == "entries":
            return list_val([ledger_entry_val(e) for e in data.entries])
    if target.kind == ValueKind.LEDGER_ENTRY and member in ("date", "description"):
        return string_val(getattr(data, member))
    if target.kind == ValueKind.LEDGER_ENTRY and member in ("debit", "credit", "amount"):
        amount = getattr(data, member)
        return number_val(amount) if amount is not None else NULL
    if target.kind in (ValueKind.LIST, ValueKind.STRING) and member == "length":
        return number_val(len(data))
    raise error_type_mismatch(f"{target.type_name} has no member '{member}'")


# =============================================================================
# Convenience functions
# =============================================================================

def execute(source: str, filename: Optional[str] = None, output: Optional[TextIO] = None,
            config: Optional[FinLiteConfig] = None) -> ExecutionResult:
    """
    High-level API to run FinLite source in one call.

        from finlite import execute

        result = execute('''
        LET cf = [-1000, 300, 300, 300, 300]
        PRINT NPV(cf, 0.08)
        ''')

        if result.success:
            print(result.output)
        else:
            print(f"Error: {result.error_message}")

    Args:
        source: FinLite source code
        filename: Optional filename for error messages
        output: Stream for PRINT/LOG (defaults to sys.stdout)
        config: Interpreter settings (defaults to FinLiteConfig())

    Returns:
        ExecutionResult with statement results, output lines and errors
    """
    interpreter = Interpreter(config=config, output=output)
    return interpreter.execute(source, filename)


def run_file(path: str, output: Optional[TextIO] = None,
             config: Optional[FinLiteConfig] = None) -> ExecutionResult:
    """Read a source file and execute it."""
    with open(path, "r", encoding="utf-8") as fp:
        source = fp.read()
    return execute(source, filename=str(path), output=output, config=config)
