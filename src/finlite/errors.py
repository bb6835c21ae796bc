"""
FinLite exceptions and error handling.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Runtime errors
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List
from .tokens import SourceSpan


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"


class ErrorKind(Enum):
    """Kinds of failure a FinLite program can run into."""
    LEXICAL = "LexicalError"
    PARSE = "ParseError"
    UNDEFINED_VARIABLE = "UndefinedVariable"
    TYPE_MISMATCH = "TypeMismatch"
    DIVISION_BY_ZERO = "DivisionByZero"
    INVALID_RANGE = "InvalidRange"
    UNKNOWN_COLUMN = "UnknownColumn"
    ARITY_MISMATCH = "ArityMismatch"
    DOMAIN_INVARIANT = "DomainInvariantViolation"
    UNKNOWN_SCENARIO_OR_MODEL = "UnknownScenarioOrModel"
    RUNTIME = "RuntimeError"


@dataclass
class Diagnostic:
    """A single diagnostic message (error, warning, etc.)."""
    code: str                       # E001, E101, E401, etc.
    message: str                    # Human-readable message
    severity: ErrorSeverity
    span: Optional[SourceSpan] = None
    source_line: Optional[str] = None   # The actual line of source code
    hints: List[str] = field(default_factory=list)

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = []

        loc = f"{self.span.start}" if self.span is not None else "<unknown>"
        parts.append(f"{loc}: {self.severity.value}[{self.code}]: {self.message}")

        # Source line with caret
        if show_source and self.source_line is not None and self.span is not None:
            parts.append("  |")
            line_num = str(self.span.start.line)
            parts.append(f"{line_num:>3} | {self.source_line}")

            col = self.span.start.column
            if self.span.start.line == self.span.end.line:
                end_col = self.span.end.column
            else:
                end_col = len(self.source_line) + 1
            underline_len = max(1, end_col - col)
            parts.append(f"    | {' ' * (col - 1)}{'^' * underline_len}")

        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        result = {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "hints": self.hints,
        }
        if self.span is not None:
            result["range"] = {
                "start": {
                    "line": self.span.start.line,
                    "column": self.span.start.column,
                    "offset": self.span.start.offset,
                },
                "end": {
                    "line": self.span.end.line,
                    "column": self.span.end.column,
                    "offset": self.span.end.offset,
                },
            }
        return result


class FinLiteError(Exception):
    """Base exception for FinLite errors."""

    kind: ErrorKind = ErrorKind.RUNTIME

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    @property
    def message(self) -> str:
        return self.diagnostic.message

    @property
    def span(self) -> Optional[SourceSpan]:
        return self.diagnostic.span

    def __str__(self) -> str:
        return self.diagnostic.format()


class LexerError(FinLiteError):
    """Error during lexical analysis (E0xx)."""
    kind = ErrorKind.LEXICAL


class ParserError(FinLiteError):
    """Error during parsing (E1xx)."""
    kind = ErrorKind.PARSE


class FinLiteRuntimeError(FinLiteError):
    """Error during evaluation (E4xx)."""

    def __init__(self, diagnostic: Diagnostic, kind: ErrorKind = ErrorKind.RUNTIME):
        super().__init__(diagnostic)
        self.kind = kind

    def with_span(self, span: Optional[SourceSpan]) -> "FinLiteRuntimeError":
        """Attach a location if the error was raised without one."""
        if self.diagnostic.span is None and span is not None:
            self.diagnostic.span = span
        return self


class ConfigError(Exception):
    """Invalid interpreter configuration."""
    pass


# --- Lexer error codes ---

def error_unexpected_character(char: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E001: Unexpected character."""
    diag = Diagnostic(
        code="E001",
        message=f"unexpected character '{char}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


def error_unterminated_string(span: SourceSpan, source_line: str = None) -> LexerError:
    """E002: Unterminated string literal."""
    diag = Diagnostic(
        code="E002",
        message="unterminated string literal",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["string literals must be closed with matching quotes"],
    )
    return LexerError(diag)


def error_unterminated_multiline_string(span: SourceSpan, source_line: str = None) -> LexerError:
    """E003: Unterminated multi-line string."""
    diag = Diagnostic(
        code="E003",
        message='unterminated multi-line string (expected closing """)',
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


def error_unterminated_comment(span: SourceSpan, source_line: str = None) -> LexerError:
    """E004: Unterminated block comment."""
    diag = Diagnostic(
        code="E004",
        message="unterminated block comment (expected closing ###)",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


def error_invalid_escape_sequence(seq: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E005: Invalid escape sequence in string."""
    diag = Diagnostic(
        code="E005",
        message=f"invalid escape sequence '\\{seq}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["valid escape sequences: \\n, \\t, \\r, \\\", \\', \\\\, \\0"],
    )
    return LexerError(diag)


def error_invalid_number_literal(text: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E006: Invalid number literal."""
    diag = Diagnostic(
        code="E006",
        message=f"invalid number literal '{text}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


def error_unclosed_grouping(name: str, span: SourceSpan) -> LexerError:
    """E007: Grouping opened but never closed."""
    diag = Diagnostic(
        code="E007",
        message=f"unclosed {name}",
        severity=ErrorSeverity.ERROR,
        span=span,
    )
    return LexerError(diag)


def error_unopened_grouping(name: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E008: Grouping closed but never opened."""
    diag = Diagnostic(
        code="E008",
        message=f"{name} closed but never opened",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


# --- Parser error codes ---

def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: str = None) -> ParserError:
    """E101: Unexpected token."""
    diag = Diagnostic(
        code="E101",
        message=f"expected {expected}, found {found}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_unexpected_eof(expected: str, span: SourceSpan) -> ParserError:
    """E102: Unexpected end of file."""
    diag = Diagnostic(
        code="E102",
        message=f"unexpected end of file, expected {expected}",
        severity=ErrorSeverity.ERROR,
        span=span,
    )
    return ParserError(diag)


def error_invalid_assignment_target(span: SourceSpan, source_line: str = None) -> ParserError:
    """E103: Left-hand side of '=' is not a variable."""
    diag = Diagnostic(
        code="E103",
        message="invalid assignment target",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["only plain variable names can be assigned"],
    )
    return ParserError(diag)


def error_finance_arity(name: str, expected: str, found: int, span: SourceSpan,
                        source_line: str = None) -> ParserError:
    """E104: Finance function called with the wrong number of arguments."""
    diag = Diagnostic(
        code="E104",
        message=f"{name} expects {expected} argument(s), got {found}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_duplicate_column(name: str, span: SourceSpan, source_line: str = None) -> ParserError:
    """E105: Column declared twice in a TABLE literal."""
    diag = Diagnostic(
        code="E105",
        message=f"duplicate column '{name}' in TABLE literal",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_unknown_scope(name: str, span: SourceSpan, source_line: str = None) -> ParserError:
    """E106: Unknown scope qualifier before '::'."""
    diag = Diagnostic(
        code="E106",
        message=f"unknown scope qualifier '{name}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["valid qualifiers are 'global' and 'parent'"],
    )
    return ParserError(diag)


def error_too_many_arguments(span: SourceSpan, source_line: str = None) -> ParserError:
    """E107: More than 255 call arguments."""
    diag = Diagnostic(
        code="E107",
        message="can't have more than 255 arguments",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


# --- Runtime error codes ---

def _runtime(code: str, kind: ErrorKind, message: str,
             span: Optional[SourceSpan] = None, hints: List[str] = None) -> FinLiteRuntimeError:
    diag = Diagnostic(
        code=code,
        message=message,
        severity=ErrorSeverity.ERROR,
        span=span,
        hints=hints or [],
    )
    return FinLiteRuntimeError(diag, kind)


def error_undefined_variable(name: str, span: SourceSpan = None) -> FinLiteRuntimeError:
    """E401: Variable not bound in any enclosing scope."""
    return _runtime("E401", ErrorKind.UNDEFINED_VARIABLE,
                    f"undefined variable '{name}'", span)


def error_type_mismatch(message: str, span: SourceSpan = None) -> FinLiteRuntimeError:
    """E402: Operand or argument of the wrong kind."""
    return _runtime("E402", ErrorKind.TYPE_MISMATCH, message, span)


def error_division_by_zero(span: SourceSpan = None) -> FinLiteRuntimeError:
    """E403: Division or modulo by zero."""
    return _runtime("E403", ErrorKind.DIVISION_BY_ZERO, "division by zero", span)


def error_invalid_range(message: str, span: SourceSpan = None) -> FinLiteRuntimeError:
    """E404: Bad index or slice bounds."""
    return _runtime("E404", ErrorKind.INVALID_RANGE, message, span)


def error_unknown_column(name: str, span: SourceSpan = None) -> FinLiteRuntimeError:
    """E405: Table has no such column."""
    return _runtime("E405", ErrorKind.UNKNOWN_COLUMN, f"unknown column '{name}'", span)


def error_arity_mismatch(expected: int, found: int, span: SourceSpan = None,
                         name: str = None) -> FinLiteRuntimeError:
    """E406: Callable invoked with the wrong number of arguments."""
    what = f"'{name}'" if name else "function"
    return _runtime("E406", ErrorKind.ARITY_MISMATCH,
                    f"{what} expects {expected} argument(s) but got {found}", span)


def error_domain_invariant(message: str, span: SourceSpan = None) -> FinLiteRuntimeError:
    """E407: Table or Portfolio constructed in an invalid state."""
    return _runtime("E407", ErrorKind.DOMAIN_INVARIANT, message, span)


def error_unknown_scenario_or_model(what: str, name: str,
                                    span: SourceSpan = None) -> FinLiteRuntimeError:
    """E408: RUN or SIMULATE names something never declared."""
    return _runtime("E408", ErrorKind.UNKNOWN_SCENARIO_OR_MODEL,
                    f"unknown {what} '{name}'", span)


def error_call_failed(name: str, cause: Exception, span: SourceSpan = None) -> FinLiteRuntimeError:
    """E409: Host-level failure inside a builtin."""
    return _runtime("E409", ErrorKind.RUNTIME,
                    f"error calling function '{name}': {cause}", span)


def error_recursion_depth(span: SourceSpan = None) -> FinLiteRuntimeError:
    """E409: Host stack exhausted by runaway recursion."""
    return _runtime("E409", ErrorKind.RUNTIME, "maximum recursion depth exceeded", span,
                    hints=["check that recursive functions reach a base case"])


def error_user(message: str, span: SourceSpan = None) -> FinLiteRuntimeError:
    """E410: Raised explicitly by a program (ERROR, ASSERT)."""
    return _runtime("E410", ErrorKind.RUNTIME, message, span)


class DiagnosticCollector:
    """Collects diagnostics during lexing and parsing."""

    def __init__(self, max_errors: int = 20):
        self.diagnostics: List[Diagnostic] = []
        self.max_errors = max_errors
        self._error_count = 0

    def add(self, diagnostic: Diagnostic) -> None:
        """Add a diagnostic."""
        self.diagnostics.append(diagnostic)
        if diagnostic.severity == ErrorSeverity.ERROR:
            self._error_count += 1

    def add_error(self, error: FinLiteError) -> None:
        """Add an error exception as a diagnostic."""
        self.add(error.diagnostic)

    def extend(self, other: "DiagnosticCollector") -> None:
        for diagnostic in other.diagnostics:
            self.add(diagnostic)

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def has_errors(self) -> bool:
        return self._error_count > 0

    @property
    def should_stop(self) -> bool:
        """Check if we've hit the max error limit."""
        return self._error_count >= self.max_errors

    def format_all(self, show_source: bool = True) -> str:
        """Format all diagnostics for display."""
        parts = [d.format(show_source) for d in self.diagnostics]
        if self._error_count > 0:
            parts.append(f"\n{self._error_count} error(s)")
        return "\n\n".join(parts)

    def to_json(self) -> dict:
        """Convert all diagnostics to JSON format."""
        return {
            "diagnostics": [d.to_json() for d in self.diagnostics],
            "error_count": self._error_count,
        }
