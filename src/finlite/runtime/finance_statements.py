"""
Finance statement execution.

Ledger entries, PORTFOLIO declarations, SCENARIO/RUN/SIMULATE. The
methods here are mixed into ``Interpreter`` and use its ``_evaluate``,
``_execute_statements`` and ``call_function``.

A scenario body is stored unevaluated when it is declared. Every RUN and
every SIMULATE iteration executes it in a fresh child of the current
scope, so runs never see each other's bindings; only the ``result``
binding of each run is read back.
"""

import logging
import math
from datetime import date
from typing import List

from ..ast import (
    Block, LedgerEntryStatement, PortfolioStatement, ScenarioStatement,
    RunStatement, SimulateStatement,
)
from ..tokens import TokenType
from ..errors import (
    error_domain_invariant,
    error_invalid_range,
    error_type_mismatch,
    error_unknown_scenario_or_model,
)
from .context import Environment, ExecutionContext, Outcome, NORMAL
from .values import (
    Value, ValueKind, Ledger, LedgerEntry, UserFunction,
    NULL, number_val, list_val, object_val, ledger_val, portfolio_val,
    block_val, as_number, as_int, as_string, format_value,
)

logger = logging.getLogger(__name__)

RESULT_NAME = "result"
DEFAULT_DESCRIPTION = "Entry"


class FinanceStatementMixin:
    """Executors for the statement-level finance constructs."""

    def _signed_amount(self, entry: LedgerEntryStatement, ctx: ExecutionContext) -> float:
        amount = as_number(self._evaluate(entry.amount, ctx), f"amount for '{entry.account}'")
        return amount if entry.entry_type == TokenType.DEBIT else -amount

    # =========================================================================
    # Ledger and portfolio
    # =========================================================================

    def _execute_ledger_entry(self, stmt: LedgerEntryStatement, ctx: ExecutionContext) -> Outcome:
        """DEBIT|CREDIT account amount: append to the account's ledger, creating it if needed."""
        signed = self._signed_amount(stmt, ctx)
        description = DEFAULT_DESCRIPTION
        if stmt.description is not None:
            description = as_string(self._evaluate(stmt.description, ctx), "entry description")

        existing = ctx.current_scope.get_or_null(stmt.account)
        if existing is not None and existing.kind == ValueKind.LEDGER:
            ledger = existing.data
        else:
            ledger = Ledger()

        ledger.record(LedgerEntry(
            date=date.today().isoformat(),
            debit=signed if signed > 0 else None,
            credit=-signed if signed < 0 else None,
            description=description,
        ))
        ctx.define_variable(stmt.account, ledger_val(ledger))
        return NORMAL

    def _execute_portfolio(self, stmt: PortfolioStatement, ctx: ExecutionContext) -> Outcome:
        """
        PORTFOLIO name ... END

        Each holding's amount is an asset value; weights are the amounts
        normalized by their total. CREDIT holdings are negative and are
        rejected, as is a zero total.
        """
        names: List[str] = []
        amounts: List[float] = []
        for entry in stmt.entries:
            amount = self._signed_amount(entry, ctx)
            if amount < 0:
                raise error_domain_invariant(
                    f"PORTFOLIO '{stmt.name}' holding '{entry.account}' is negative ({amount:g})",
                    entry.span)
            names.append(entry.account)
            amounts.append(amount)

        total = math.fsum(amounts)
        if not amounts or total == 0:
            raise error_domain_invariant(
                f"PORTFOLIO '{stmt.name}' needs at least one holding with a positive amount",
                stmt.span)

        weights = [a / total for a in amounts]
        ctx.define_variable(stmt.name, portfolio_val(amounts, weights, names))
        return NORMAL

    # =========================================================================
    # Scenarios
    # =========================================================================

    def _execute_scenario(self, stmt: ScenarioStatement, ctx: ExecutionContext) -> Outcome:
        ctx.define_variable(stmt.name, block_val(stmt.body))
        return NORMAL

    def _lookup_scenario(self, name: str, ctx: ExecutionContext, span) -> Block:
        if not ctx.current_scope.contains(name):
            raise error_unknown_scenario_or_model("scenario", name, span)
        value = ctx.get_variable(name)
        if value.kind != ValueKind.BLOCK:
            raise error_type_mismatch(f"'{name}' is a {value.type_name}, not a scenario", span)
        return value.data

    def _run_scenario_body(self, block: Block, ctx: ExecutionContext) -> Value:
        """Execute a scenario body in the current scope and read back `result`."""
        self._execute_statements(block.statements, ctx)
        result = ctx.current_scope.get_or_null(RESULT_NAME)
        return result if result is not None else NULL

    def _execute_run(self, stmt: RunStatement, ctx: ExecutionContext) -> Outcome:
        """
        RUN scenario ON model

        The model is called inside the scenario's scope, so builtin models
        can read the scenario's bindings. Lambdas and functions get
        arguments by arity: none, `result`, or `result` plus the
        scenario's bindings as an object.
        """
        block = self._lookup_scenario(stmt.scenario, ctx, stmt.span)
        if not ctx.current_scope.contains(stmt.model):
            raise error_unknown_scenario_or_model("model", stmt.model, stmt.span)
        model = ctx.get_variable(stmt.model)
        if model.kind not in (ValueKind.FUNCTION, ValueKind.LAMBDA):
            raise error_type_mismatch(
                f"model '{stmt.model}' is a {model.type_name}, not a function", stmt.span)

        logger.debug("RUN %s ON %s", stmt.scenario, stmt.model)
        with ctx.new_scope(f"run {stmt.scenario}") as scope:
            result = self._run_scenario_body(block, ctx)
            args = _model_arguments(model, result, scope)
            value = self.call_function(model, args, ctx, stmt.span, stmt.model)

        ctx.write(f"Run {stmt.scenario} ON {stmt.model}: {format_value(value)}")
        return NORMAL

    def _execute_simulate(self, stmt: SimulateStatement, ctx: ExecutionContext) -> Outcome:
        """
        SIMULATE scenario [RUNS] n [STEP s]

        Each run pre-binds `iteration` (0-based) and `elapsed`
        (iteration * step). The list of results is bound in the current
        scope under the configured name (``lastSimulation``).
        """
        block = self._lookup_scenario(stmt.scenario, ctx, stmt.span)
        runs = 1
        if stmt.runs is not None:
            runs = as_int(self._evaluate(stmt.runs, ctx), "SIMULATE run count")
        step = 1.0
        if stmt.step is not None:
            step = as_number(self._evaluate(stmt.step, ctx), "SIMULATE step")
        if runs < 0:
            raise error_invalid_range(f"SIMULATE run count must not be negative, got {runs}",
                                      stmt.runs.span)

        logger.debug("SIMULATE %s: %d runs, step %g", stmt.scenario, runs, step)
        results = []
        for i in range(runs):
            with ctx.new_scope(f"simulation {stmt.scenario} #{i}") as scope:
                scope.define("iteration", number_val(i))
                scope.define("elapsed", number_val(i * step))
                results.append(self._run_scenario_body(block, ctx))

        collected = list_val(results)
        ctx.write(f"Simulation results: {format_value(collected)}")
        ctx.define_variable(self.config.simulation_results_name, collected)
        return NORMAL


def _model_arguments(model: Value, result: Value, scope: Environment) -> List[Value]:
    if model.kind == ValueKind.LAMBDA or isinstance(model.data, UserFunction):
        arity = model.data.arity
        if arity == 0:
            return []
        if arity == 2:
            return [result, object_val(dict(scope.values))]
    return [result]
