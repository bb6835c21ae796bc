"""
Token types for the FinLite lexer.

Token type categories follow the diagnostic code ranges used in errors.py:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Runtime errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional


class TokenType(Enum):
    """All token types recognized by the FinLite lexer."""

    # --- Delimiters ---
    LEFT_PAREN = auto()         # (
    RIGHT_PAREN = auto()        # )
    LEFT_BRACKET = auto()       # [
    RIGHT_BRACKET = auto()      # ]
    LEFT_BRACE = auto()         # {
    RIGHT_BRACE = auto()        # }
    COMMA = auto()              # ,
    DOT = auto()                # .
    COLON = auto()              # :

    # --- Operators ---
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # *
    SLASH = auto()              # /
    PERCENT = auto()            # %
    CARET = auto()              # ^
    ARROW = auto()              # ->
    EQUAL = auto()              # =
    EQUAL_EQUAL = auto()        # ==
    BANG = auto()               # !
    BANG_EQUAL = auto()         # !=
    GREATER = auto()            # >
    GREATER_EQUAL = auto()      # >=
    LESS = auto()               # <
    LESS_EQUAL = auto()         # <=
    AND_AND = auto()            # &&
    OR_OR = auto()              # ||

    # --- Literals ---
    IDENTIFIER = auto()         # user-defined names
    NUMBER = auto()             # 42, 3.14, 1_000, 1e-9
    STRING = auto()             # "hello", 'hello'
    MULTILINE_STRING = auto()   # """multi\nline"""
    MONEY = auto()              # 100 USD, EUR 250
    DATE = auto()               # 2024-01-31

    # --- Keywords ---
    LET = auto()                # let
    SET = auto()                # set
    IF = auto()                 # if
    THEN = auto()               # then
    ELSEIF = auto()             # elseif
    ELSE = auto()               # else
    END = auto()                # end
    WHILE = auto()              # while
    DO = auto()                 # do
    FOR = auto()                # for
    IN = auto()                 # in
    TO = auto()                 # to
    STEP = auto()               # step
    PRINT = auto()              # print
    LOG = auto()                # log
    RETURN = auto()             # return
    FUNCTION = auto()           # function, func
    IMPORT = auto()             # import
    AS = auto()                 # as
    TRUE = auto()               # true
    FALSE = auto()              # false
    NULL = auto()               # null
    AND = auto()                # and
    OR = auto()                 # or
    NOT = auto()                # not

    # --- Finance keywords ---
    TABLE = auto()              # table
    CASHFLOW = auto()           # cashflow
    TIMESERIES = auto()         # timeseries
    SCENARIO = auto()           # scenario
    RUN = auto()                # run
    ON = auto()                 # on
    SIMULATE = auto()           # simulate
    RUNS = auto()               # runs
    PORTFOLIO = auto()          # portfolio
    ENTRY = auto()              # entry
    DEBIT = auto()              # debit
    CREDIT = auto()             # credit
    LEDGER = auto()             # ledger
    FROM = auto()               # from

    # --- Finance functions ---
    NPV = auto()                # npv
    IRR = auto()                # irr
    PV = auto()                 # pv
    FV = auto()                 # fv
    WACC = auto()               # wacc
    CAPM = auto()               # capm
    VAR = auto()                # var
    SMA = auto()                # sma
    EMA = auto()                # ema
    AMORTIZE = auto()           # amortize

    # --- Indentation tokens ---
    INDENT = auto()             # Increase in indentation level
    DEDENT = auto()             # Decrease in indentation level
    NEWLINE = auto()            # Significant newline (end of statement)

    # --- Special ---
    ERROR = auto()              # placeholder for malformed input
    EOF = auto()                # end of file


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        return str(self.start)


@dataclass(frozen=True)
class Money:
    """Decoded payload of a MONEY token."""
    currency: str
    amount: float

    def __str__(self) -> str:
        return f"{self.amount:g} {self.currency}"


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: Any              # Decoded literal (float, str, Money) or None
    lexeme: str             # The original source text
    span: SourceSpan        # Location in source

    @property
    def line(self) -> int:
        return self.span.start.line

    def __str__(self) -> str:
        if self.type in (TokenType.NUMBER, TokenType.STRING, TokenType.MULTILINE_STRING,
                         TokenType.MONEY, TokenType.DATE, TokenType.IDENTIFIER,
                         TokenType.ERROR):
            return f"{self.type.name}({self.value!r})"
        return self.type.name


# Keyword mapping - lower-cased source text to token type.
# Lookup is case-insensitive; identifier lexemes keep their original case.
KEYWORDS: Mapping[str, TokenType] = MappingProxyType({
    "let": TokenType.LET,
    "set": TokenType.SET,
    "if": TokenType.IF,
    "then": TokenType.THEN,
    "elseif": TokenType.ELSEIF,
    "else": TokenType.ELSE,
    "end": TokenType.END,
    "while": TokenType.WHILE,
    "do": TokenType.DO,
    "for": TokenType.FOR,
    "in": TokenType.IN,
    "to": TokenType.TO,
    "step": TokenType.STEP,
    "print": TokenType.PRINT,
    "log": TokenType.LOG,
    "return": TokenType.RETURN,
    "function": TokenType.FUNCTION,
    "func": TokenType.FUNCTION,
    "import": TokenType.IMPORT,
    "as": TokenType.AS,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "null": TokenType.NULL,
    "and": TokenType.AND,
    "or": TokenType.OR,
    "not": TokenType.NOT,

    # Finance
    "table": TokenType.TABLE,
    "cashflow": TokenType.CASHFLOW,
    "timeseries": TokenType.TIMESERIES,
    "scenario": TokenType.SCENARIO,
    "run": TokenType.RUN,
    "on": TokenType.ON,
    "simulate": TokenType.SIMULATE,
    "runs": TokenType.RUNS,
    "portfolio": TokenType.PORTFOLIO,
    "entry": TokenType.ENTRY,
    "debit": TokenType.DEBIT,
    "credit": TokenType.CREDIT,
    "ledger": TokenType.LEDGER,
    "from": TokenType.FROM,

    # Finance functions
    "npv": TokenType.NPV,
    "irr": TokenType.IRR,
    "pv": TokenType.PV,
    "fv": TokenType.FV,
    "wacc": TokenType.WACC,
    "capm": TokenType.CAPM,
    "var": TokenType.VAR,
    "sma": TokenType.SMA,
    "ema": TokenType.EMA,
    "amortize": TokenType.AMORTIZE,
})


# ISO 4217 codes recognized in money literals
CURRENCIES: frozenset = frozenset({
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD", "CNY", "HKD",
    "SGD", "INR", "KRW", "PHP", "SEK", "NOK", "DKK", "MXN", "BRL", "ZAR",
})


# Finance function keywords rewritten to dedicated AST nodes, with the
# (minimum, maximum) number of arguments each accepts.
FINANCE_FUNCTIONS: Mapping[TokenType, tuple] = MappingProxyType({
    TokenType.NPV: (2, 2),
    TokenType.IRR: (1, 1),
    TokenType.PV: (2, 4),
    TokenType.FV: (2, 4),
    TokenType.WACC: (5, 5),
    TokenType.CAPM: (3, 3),
    TokenType.VAR: (2, 2),
    TokenType.SMA: (2, 2),
    TokenType.EMA: (2, 2),
    TokenType.AMORTIZE: (3, 3),
})


# Keywords that may also appear where an identifier is expected
# (e.g. a variable named `ledger` or a reference to a finance function).
SOFT_KEYWORDS: frozenset = frozenset(FINANCE_FUNCTIONS) | {
    TokenType.LEDGER, TokenType.ENTRY, TokenType.FROM, TokenType.RUNS,
    TokenType.TIMESERIES,
}


def is_finance_function(token_type: TokenType) -> bool:
    """Check if a token type names a rewritten finance function."""
    return token_type in FINANCE_FUNCTIONS


def is_identifier_like(token_type: TokenType) -> bool:
    """Check if a token can stand in for an identifier."""
    return token_type is TokenType.IDENTIFIER or token_type in SOFT_KEYWORDS
