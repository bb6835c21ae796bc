"""
Abstract Syntax Tree (AST) node definitions for FinLite.

Two closed families of nodes: Expression and Statement. Finance forms
(table/cashflow/portfolio literals, NPV/IRR/... calls, scenarios, ledgers)
are ordinary members of those families. Nodes are built once by the parser
and never mutated afterwards.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Union, Any
from abc import ABC
from .tokens import SourceSpan, TokenType


# =============================================================================
# Base Classes
# =============================================================================

@dataclass
class AstNode(ABC):
    """Base class for all AST nodes."""
    span: SourceSpan  # Source location for error reporting

    def accept(self, visitor: "AstVisitor") -> Any:
        """Accept a visitor for traversal."""
        method_name = f"visit_{self.__class__.__name__}"
        method = getattr(visitor, method_name, visitor.generic_visit)
        return method(self)


class AstVisitor(ABC):
    """Base class for AST visitors."""

    def generic_visit(self, node: AstNode) -> Any:
        """Default visit method."""
        raise NotImplementedError(f"No visitor for {node.__class__.__name__}")


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class Expression(AstNode):
    """Base class for all expressions."""
    pass


@dataclass
class Literal(Expression):
    """A literal value (number, string, bool, null, date, money)."""
    value: Union[float, str, bool, None]
    literal_type: TokenType  # NUMBER, STRING, TRUE, FALSE, NULL, DATE, MONEY
    currency: Optional[str] = None  # Set for MONEY literals


@dataclass
class Identifier(Expression):
    """A variable or function name reference."""
    name: str


@dataclass
class ScopedIdentifier(Expression):
    """A scope-qualified name (e.g., global::rate, parent::total)."""
    scope: str  # "global" or "parent"
    name: str


@dataclass
class Assignment(Expression):
    """An assignment used as an expression (e.g., x = x + 1)."""
    name: str
    value: Expression


@dataclass
class BinaryOp(Expression):
    """A binary operation (e.g., a + b, x and y)."""
    left: Expression
    operator: TokenType  # AND/OR cover && and || too
    right: Expression


@dataclass
class UnaryOp(Expression):
    """A unary operation (e.g., not x, -n)."""
    operator: TokenType  # MINUS or NOT
    operand: Expression


@dataclass
class FunctionCall(Expression):
    """A call whose callee is resolved at evaluation time."""
    callee: Expression
    arguments: List[Expression]


@dataclass
class MemberAccess(Expression):
    """`.name` access: a table column or an object field."""
    object: Expression
    member: str


@dataclass
class IndexAccess(Expression):
    """Index access (e.g., values[0])."""
    object: Expression
    index: Expression


@dataclass
class SliceAccess(Expression):
    """Half-open slice (e.g., values[1:3], values[:2], values[2:])."""
    object: Expression
    start: Optional[Expression]
    end: Optional[Expression]


@dataclass
class ListLiteral(Expression):
    """A list literal (e.g., [1, 2, 3])."""
    elements: List[Expression]


@dataclass
class ObjectLiteral(Expression):
    """An object literal (e.g., {rate: 0.05, years: 10})."""
    fields: Dict[str, Expression]


@dataclass
class LambdaExpr(Expression):
    """An anonymous function (e.g., x -> x * 2, (a, b) -> a + b)."""
    parameters: List[str]
    body: Expression


@dataclass
class TimeSeriesExpr(Expression):
    """timeseries(source, window): trailing expanding-then-fixed average."""
    source: Expression
    window: Expression


# =============================================================================
# Finance Expression Nodes
# =============================================================================

@dataclass
class FinanceExpression(Expression):
    """Base class for finance-specific expressions."""
    pass


@dataclass
class TableLiteral(FinanceExpression):
    """TABLE(col: [..], col2: [..]) - column order is preserved."""
    columns: Dict[str, Expression]


@dataclass
class CashflowEntry(AstNode):
    """One DEBIT/CREDIT line of a CASHFLOW literal."""
    entry_type: TokenType  # DEBIT or CREDIT
    amount: Expression


@dataclass
class CashflowLiteral(FinanceExpression):
    """CASHFLOW block: debits count positive, credits negative."""
    entries: List[CashflowEntry]


@dataclass
class PortfolioLiteral(FinanceExpression):
    """PORTFOLIO block holding an asset list and a weight list."""
    assets: Expression
    weights: Expression


@dataclass
class NpvCall(FinanceExpression):
    """NPV(cashflows, rate)"""
    cashflows: Expression
    rate: Expression


@dataclass
class IrrCall(FinanceExpression):
    """IRR(cashflows)"""
    cashflows: Expression


@dataclass
class PvCall(FinanceExpression):
    """PV(rate, periods [, payment [, future_value]])"""
    rate: Expression
    periods: Expression
    payment: Optional[Expression] = None
    future_value: Optional[Expression] = None


@dataclass
class FvCall(FinanceExpression):
    """FV(rate, periods [, payment [, present_value]])"""
    rate: Expression
    periods: Expression
    payment: Optional[Expression] = None
    present_value: Optional[Expression] = None


@dataclass
class WaccCall(FinanceExpression):
    """WACC(equity_weight, debt_weight, cost_equity, cost_debt, tax_rate)"""
    equity_weight: Expression
    debt_weight: Expression
    cost_equity: Expression
    cost_debt: Expression
    tax_rate: Expression


@dataclass
class CapmCall(FinanceExpression):
    """CAPM(beta, risk_free, market_premium) - beta may be a list."""
    beta: Expression
    risk_free: Expression
    premium: Expression


@dataclass
class VarCall(FinanceExpression):
    """VAR(series_or_portfolio, confidence)"""
    series: Expression
    confidence: Expression


@dataclass
class SmaCall(FinanceExpression):
    """SMA(values, period)"""
    series: Expression
    period: Expression


@dataclass
class EmaCall(FinanceExpression):
    """EMA(values, period)"""
    series: Expression
    period: Expression


@dataclass
class AmortizeCall(FinanceExpression):
    """AMORTIZE(principal, rate, periods) - evaluates to a TABLE."""
    principal: Expression
    rate: Expression
    periods: Expression


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class Statement(AstNode):
    """Base class for all statements."""
    pass


@dataclass
class Block(Statement):
    """An indented block of statements, run in its own child scope."""
    statements: List[Statement]


@dataclass
class LetStatement(Statement):
    """LET name = value - defines in the current scope."""
    name: str
    initializer: Expression


@dataclass
class SetStatement(Statement):
    """SET name = value - assigns to the nearest existing binding."""
    name: str
    value: Expression


@dataclass
class PrintStatement(Statement):
    """PRINT a, b, ... (LOG prefixes the line with [LOG])."""
    values: List[Expression]
    is_log: bool = False


@dataclass
class ExpressionStatement(Statement):
    """An expression used as a statement."""
    expression: Expression


@dataclass
class ElifBranch(AstNode):
    """An ELSEIF branch of an IF statement."""
    condition: Expression
    body: Block


@dataclass
class IfStatement(Statement):
    """An IF statement.

    Syntax:
        IF condition THEN
            ...
        ELSEIF condition THEN
            ...
        ELSE
            ...
        END
    """
    condition: Expression
    then_branch: Block
    elif_branches: List[ElifBranch] = field(default_factory=list)
    else_branch: Optional[Block] = None


@dataclass
class WhileStatement(Statement):
    """WHILE condition DO ... END"""
    condition: Expression
    body: Block


@dataclass
class ForRangeStatement(Statement):
    """FOR i IN start TO end [STEP step] ... END (end is inclusive)."""
    variable: str
    start: Expression
    end: Expression
    step: Optional[Expression]
    body: Block


@dataclass
class ForEachStatement(Statement):
    """FOR item IN iterable ... END (list, string or table rows)."""
    variable: str
    iterable: Expression
    body: Block


@dataclass
class ReturnStatement(Statement):
    """RETURN [value]"""
    value: Optional[Expression]


@dataclass
class FunctionDef(Statement):
    """FUNCTION name(params) ... END"""
    name: str
    parameters: List[str]
    body: Block


@dataclass
class ImportStatement(Statement):
    """IMPORT "path" [AS alias] - binds the path text only."""
    path: str
    alias: str


@dataclass
class ErrorStatement(Statement):
    """Placeholder for a statement that failed to parse."""
    message: str


# =============================================================================
# Finance Statement Nodes
# =============================================================================

@dataclass
class LedgerEntryStatement(Statement):
    """DEBIT|CREDIT account amount ["description"]"""
    entry_type: TokenType  # DEBIT or CREDIT
    account: str
    amount: Expression
    description: Optional[Expression] = None


@dataclass
class PortfolioStatement(Statement):
    """PORTFOLIO name: followed by DEBIT/CREDIT holdings, then END."""
    name: str
    entries: List[LedgerEntryStatement]


@dataclass
class ScenarioStatement(Statement):
    """SCENARIO name ... END - body is stored, not run."""
    name: str
    body: Block


@dataclass
class RunStatement(Statement):
    """RUN scenario ON model"""
    scenario: str
    model: str


@dataclass
class SimulateStatement(Statement):
    """SIMULATE scenario [RUNS] count [STEP step]"""
    scenario: str
    runs: Optional[Expression]
    step: Optional[Expression]


@dataclass
class Program(AstNode):
    """A complete parsed program."""
    statements: List[Statement] = field(default_factory=list)


# =============================================================================
# Visitor Helpers
# =============================================================================

class FormatVisitor(AstVisitor):
    """Debug visitor that renders the AST structure as indented text."""

    def __init__(self, indent: int = 0, lines: Optional[List[str]] = None):
        self.indent = indent
        self.lines = lines if lines is not None else []

    def _emit(self, text: str) -> None:
        self.lines.append("  " * self.indent + text)

    def _child(self) -> "FormatVisitor":
        return FormatVisitor(self.indent + 2, self.lines)

    def generic_visit(self, node: AstNode) -> None:
        self._emit(f"{node.__class__.__name__}")
        for name, value in node.__dict__.items():
            if name == "span":
                continue
            if isinstance(value, AstNode):
                self._emit(f"  {name}:")
                self._child().generic_visit(value)
            elif isinstance(value, list):
                self._emit(f"  {name}: [")
                for item in value:
                    if isinstance(item, AstNode):
                        self._child().generic_visit(item)
                    else:
                        self._emit(f"    {item!r}")
                self._emit("  ]")
            elif isinstance(value, dict):
                self._emit(f"  {name}: {{")
                for key, item in value.items():
                    self._emit(f"    {key}:")
                    FormatVisitor(self.indent + 3, self.lines).generic_visit(item)
                self._emit("  }")
            elif isinstance(value, TokenType):
                self._emit(f"  {name}: {value.name}")
            else:
                self._emit(f"  {name}: {value!r}")


def format_ast(node: AstNode) -> str:
    """Render an AST node as indented text."""
    visitor = FormatVisitor()
    visitor.generic_visit(node)
    return "\n".join(visitor.lines)


def print_ast(node: AstNode) -> None:
    """Print an AST node for debugging."""
    print(format_ast(node))
