"""
Finance grammar productions for the FinLite parser.

These are tried before the general grammar at statement and primary
expression entry points, keyed on the leading keyword:

    TABLE(col: expr, ...)                      table literal
    CASHFLOW / DEBIT x / CREDIT y / END        cashflow literal
    PORTFOLIO / [assets] / [weights] / END     portfolio literal
    PORTFOLIO name: / DEBIT a 10 / ... / END   portfolio declaration
    SCENARIO name / ... / END                  scenario declaration
    RUN scenario ON model                      run
    SIMULATE scenario [RUNS] n [STEP s]        simulation
    DEBIT|CREDIT account amount ["memo"]       ledger entry

Calls to NPV, IRR, PV, FV, WACC, CAPM, VAR, SMA, EMA and AMORTIZE are
rewritten into dedicated nodes with their arity checked here.
"""

from typing import List, Optional

from .tokens import Token, TokenType, KEYWORDS, FINANCE_FUNCTIONS
from .ast import (
    Expression, Identifier, Literal, Statement,
    TableLiteral, CashflowEntry, CashflowLiteral, PortfolioLiteral,
    NpvCall, IrrCall, PvCall, FvCall, WaccCall, CapmCall, VarCall,
    SmaCall, EmaCall, AmortizeCall,
    LedgerEntryStatement, PortfolioStatement, ScenarioStatement,
    RunStatement, SimulateStatement,
)
from .errors import error_duplicate_column, error_finance_arity


class FinanceGrammarMixin:
    """Finance productions mixed into ``Parser``.

    Relies on the parser's token navigation helpers (``_check``,
    ``_advance``, ``_consume`` ...) and its expression entry point.
    """

    # =========================================================================
    # Statements
    # =========================================================================

    def _parse_finance_statement(self) -> Optional[Statement]:
        """Parse a finance statement, or return None if none starts here."""
        token = self._current()

        if token.type == TokenType.SCENARIO:
            return self._parse_scenario_statement()
        if token.type == TokenType.RUN:
            return self._parse_run_statement()
        if token.type == TokenType.SIMULATE:
            return self._parse_simulate_statement()
        if token.type == TokenType.PORTFOLIO and self._is_name_token(self._peek(1)):
            return self._parse_portfolio_statement()
        if token.type in (TokenType.DEBIT, TokenType.CREDIT):
            entry = self._parse_ledger_entry()
            self._expect_newline_or_eof()
            return entry
        return None

    def _parse_scenario_statement(self) -> ScenarioStatement:
        start = self._advance()  # consume 'scenario'
        name = self._consume_name("scenario name")
        self._match(TokenType.COLON)
        body = self._parse_block()
        self._consume_end("SCENARIO")
        return ScenarioStatement(span=self._span_from(start), name=name, body=body)

    def _parse_run_statement(self) -> RunStatement:
        start = self._advance()  # consume 'run'
        scenario = self._consume_name("scenario name")
        self._consume(TokenType.ON, "'ON'")
        model = self._consume_name("model name")
        self._expect_newline_or_eof()
        return RunStatement(span=self._span_from(start), scenario=scenario, model=model)

    def _parse_simulate_statement(self) -> SimulateStatement:
        start = self._advance()  # consume 'simulate'
        scenario = self._consume_name("scenario name")

        runs = None
        step = None
        self._match(TokenType.RUNS)
        if not self._check_any(TokenType.NEWLINE, TokenType.STEP, TokenType.EOF,
                               TokenType.DEDENT):
            runs = self._parse_expression()
        if self._match(TokenType.STEP):
            step = self._parse_expression()

        self._expect_newline_or_eof()
        return SimulateStatement(span=self._span_from(start), scenario=scenario,
                                 runs=runs, step=step)

    def _parse_portfolio_statement(self) -> PortfolioStatement:
        start = self._advance()  # consume 'portfolio'
        name = self._consume_name("portfolio name")
        self._match(TokenType.COLON)
        self._skip_newlines()
        self._consume(TokenType.INDENT, "indented PORTFOLIO holdings")

        entries: List[LedgerEntryStatement] = []
        while not self._check(TokenType.DEDENT) and not self._is_at_end():
            self._skip_newlines()
            if self._check(TokenType.DEDENT):
                break
            if not self._check_any(TokenType.DEBIT, TokenType.CREDIT):
                self._error("DEBIT or CREDIT holding")
            entries.append(self._parse_ledger_entry())
            self._expect_newline_or_eof()

        self._consume(TokenType.DEDENT, "end of PORTFOLIO holdings")
        self._consume_end("PORTFOLIO")
        return PortfolioStatement(span=self._span_from(start), name=name, entries=entries)

    def _parse_ledger_entry(self) -> LedgerEntryStatement:
        """DEBIT|CREDIT account amount ["description"] (no terminator)."""
        start = self._advance()  # consume 'debit' / 'credit'
        account = self._consume_name("account name")
        amount = self._parse_expression()

        description = None
        if self._check_any(TokenType.STRING, TokenType.MULTILINE_STRING):
            token = self._advance()
            description = Literal(span=token.span, value=token.value,
                                  literal_type=TokenType.STRING)

        return LedgerEntryStatement(
            span=self._span_from(start),
            entry_type=start.type,
            account=account,
            amount=amount,
            description=description,
        )

    # =========================================================================
    # Expressions
    # =========================================================================

    def _parse_finance_primary(self) -> Optional[Expression]:
        """Parse a finance literal, or return None if none starts here."""
        token = self._current()
        if token.type == TokenType.TABLE and self._peek(1).type == TokenType.LEFT_PAREN:
            return self._parse_table_literal()
        if token.type == TokenType.CASHFLOW:
            return self._parse_cashflow_literal()
        if token.type == TokenType.PORTFOLIO:
            return self._parse_portfolio_literal()
        return None

    def _parse_table_literal(self) -> TableLiteral:
        start = self._advance()  # consume 'table'
        self._consume(TokenType.LEFT_PAREN, "'('")

        columns = {}
        if not self._check(TokenType.RIGHT_PAREN):
            while True:
                name_token = self._current()
                if name_token.type in (TokenType.STRING, TokenType.MULTILINE_STRING):
                    self._advance()
                    name = name_token.value
                else:
                    name = self._consume_name("column name")
                if name in columns:
                    raise error_duplicate_column(name, name_token.span,
                                                 self._source_line(name_token))
                self._consume(TokenType.COLON, "':'")
                columns[name] = self._parse_expression()
                if not self._match(TokenType.COMMA) or self._check(TokenType.RIGHT_PAREN):
                    break

        self._consume(TokenType.RIGHT_PAREN, "')'")
        return TableLiteral(span=self._span_from(start), columns=columns)

    def _parse_cashflow_literal(self) -> CashflowLiteral:
        start = self._advance()  # consume 'cashflow'
        self._skip_newlines()
        self._consume(TokenType.INDENT, "indented CASHFLOW entries")

        entries: List[CashflowEntry] = []
        while not self._check(TokenType.DEDENT) and not self._is_at_end():
            self._skip_newlines()
            if self._check(TokenType.DEDENT):
                break
            entry_token = self._current()
            if not self._match(TokenType.DEBIT, TokenType.CREDIT):
                self._error("DEBIT or CREDIT entry")
            amount = self._parse_expression()
            entries.append(CashflowEntry(span=self._span_from(entry_token),
                                         entry_type=entry_token.type, amount=amount))
            self._expect_newline_or_eof()

        self._consume(TokenType.DEDENT, "end of CASHFLOW entries")
        self._consume_end("CASHFLOW", terminate=False)
        return CashflowLiteral(span=self._span_from(start), entries=entries)

    def _parse_portfolio_literal(self) -> PortfolioLiteral:
        start = self._advance()  # consume 'portfolio'
        self._skip_newlines()
        self._consume(TokenType.INDENT, "indented PORTFOLIO body")
        self._skip_newlines()
        assets = self._parse_expression()
        self._skip_newlines()
        weights = self._parse_expression()
        self._skip_newlines()
        self._consume(TokenType.DEDENT, "end of PORTFOLIO body")
        self._consume_end("PORTFOLIO", terminate=False)
        return PortfolioLiteral(span=self._span_from(start), assets=assets, weights=weights)

    def _rewrite_finance_call(self, callee: Expression, args: List[Expression],
                              paren: Token) -> Optional[Expression]:
        """Turn NPV(...) and friends into finance nodes; None for other calls."""
        if not isinstance(callee, Identifier):
            return None
        token_type = KEYWORDS.get(callee.name.lower())
        if token_type not in FINANCE_FUNCTIONS:
            return None

        low, high = FINANCE_FUNCTIONS[token_type]
        if not low <= len(args) <= high:
            expected = str(low) if low == high else f"{low}-{high}"
            raise error_finance_arity(callee.name.upper(), expected, len(args),
                                      paren.span, self._source_line(paren))

        span = self._span_from_node(callee)
        optional = args + [None] * (high - len(args))
        if token_type == TokenType.NPV:
            return NpvCall(span=span, cashflows=args[0], rate=args[1])
        if token_type == TokenType.IRR:
            return IrrCall(span=span, cashflows=args[0])
        if token_type == TokenType.PV:
            return PvCall(span=span, rate=args[0], periods=args[1],
                          payment=optional[2], future_value=optional[3])
        if token_type == TokenType.FV:
            return FvCall(span=span, rate=args[0], periods=args[1],
                          payment=optional[2], present_value=optional[3])
        if token_type == TokenType.WACC:
            return WaccCall(span=span, equity_weight=args[0], debt_weight=args[1],
                            cost_equity=args[2], cost_debt=args[3], tax_rate=args[4])
        if token_type == TokenType.CAPM:
            return CapmCall(span=span, beta=args[0], risk_free=args[1], premium=args[2])
        if token_type == TokenType.VAR:
            return VarCall(span=span, series=args[0], confidence=args[1])
        if token_type == TokenType.SMA:
            return SmaCall(span=span, series=args[0], period=args[1])
        if token_type == TokenType.EMA:
            return EmaCall(span=span, series=args[0], period=args[1])
        return AmortizeCall(span=span, principal=args[0], rate=args[1], periods=args[2])
