"""
Lexer for FinLite.

Converts source text into a stream of tokens for the parser.
Supports:
- Indentation-sensitive blocks (INDENT/DEDENT tokens, tab = 4 columns)
- Significant newlines (NEWLINE tokens)
- Implicit line continuation inside (), [] and {}
- Line comments (#) and block comments (### ... ###)
- String literals with escape sequences, triple-quoted multi-line strings
- Numbers with `_` grouping, `,` thousands grouping and exponents
- Date literals (2024-01-31) and money literals (100 USD, EUR 250)
- Case-insensitive keywords

Malformed input does not abort the scan. Each problem is recorded in
``Lexer.diagnostics`` and an ERROR token takes the place of the offending
text, so the parser still sees a complete stream ending in EOF.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Iterator

from .tokens import (
    Token, TokenType, SourceLocation, SourceSpan, Money, KEYWORDS, CURRENCIES,
)
from .errors import (
    DiagnosticCollector,
    LexerError,
    error_unexpected_character,
    error_unterminated_string,
    error_unterminated_multiline_string,
    error_unterminated_comment,
    error_invalid_escape_sequence,
    error_invalid_number_literal,
    error_unclosed_grouping,
    error_unopened_grouping,
)

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}(?![0-9A-Za-z_])")

# opening char -> (closing char, token types, name used in messages)
GROUPINGS = {
    '(': (')', TokenType.LEFT_PAREN, TokenType.RIGHT_PAREN, "parenthesis"),
    '[': (']', TokenType.LEFT_BRACKET, TokenType.RIGHT_BRACKET, "bracket"),
    '{': ('}', TokenType.LEFT_BRACE, TokenType.RIGHT_BRACE, "brace"),
}
CLOSERS = {close: opener for opener, (close, _, _, _) in GROUPINGS.items()}

ESCAPE_CHARS = {
    'n': '\n',
    't': '\t',
    'r': '\r',
    '\\': '\\',
    '"': '"',
    "'": "'",
    '0': '\0',
}


class Lexer:
    """
    Tokenizer for FinLite with indentation-sensitive blocks.

    Usage:
        lexer = Lexer(source_code)
        tokens = lexer.tokenize()
        if lexer.diagnostics.has_errors:
            print(lexer.diagnostics.format_all())
    """

    def __init__(self, source: str, filename: Optional[str] = None,
                 tab_width: int = 4, currencies: Optional[Iterable[str]] = None,
                 max_errors: int = 20):
        self.source = source
        self.filename = filename
        self.tab_width = tab_width
        self.currencies = CURRENCIES | frozenset(c.upper() for c in (currencies or ()))
        self.pos = 0            # Current position in source
        self.line = 1           # Current line (1-indexed)
        self.column = 1         # Current column (1-indexed)
        self._lines: Optional[List[str]] = None

        # Indentation tracking
        self.indent_stack = [0]
        self.at_line_start = True
        self.pending_tokens: List[Token] = []
        self._last_type: Optional[TokenType] = None
        self._finished = False

        # Open groupings, by opening char, with the location of each opener
        self.open_groups: Dict[str, List[SourceLocation]] = {c: [] for c in GROUPINGS}

        self.diagnostics = DiagnosticCollector(max_errors)

    @property
    def bracket_depth(self) -> int:
        return sum(len(stack) for stack in self.open_groups.values())

    @property
    def lines(self) -> List[str]:
        """Lazy-load line list for error reporting."""
        if self._lines is None:
            self._lines = self.source.splitlines()
        return self._lines

    def get_source_line(self, line_num: int) -> Optional[str]:
        """Get a specific line of source (1-indexed)."""
        if 1 <= line_num <= len(self.lines):
            return self.lines[line_num - 1]
        return None

    def _location(self) -> SourceLocation:
        return SourceLocation(self.line, self.column, self.pos, self.filename)

    def _span(self, start: SourceLocation) -> SourceSpan:
        return SourceSpan(start, self._location())

    def _peek(self, offset: int = 0) -> str:
        """Look at character at current position + offset without consuming."""
        idx = self.pos + offset
        if idx >= len(self.source):
            return '\0'
        return self.source[idx]

    def _advance(self) -> str:
        """Consume and return current character."""
        if self.pos >= len(self.source):
            return '\0'
        ch = self.source[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.column = 1
            self.at_line_start = True
        else:
            self.column += 1
        return ch

    def _match(self, expected: str) -> bool:
        """Consume character if it matches expected."""
        if self._peek() == expected:
            self._advance()
            return True
        return False

    def _is_at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _report(self, error: LexerError, start: SourceLocation) -> Token:
        """Record a lexical error and return an ERROR token for the bad text."""
        self.diagnostics.add_error(error)
        logger.debug("lexical error at %s: %s", start, error.message)
        lexeme = self.source[start.offset:self.pos]
        return self._make_token(TokenType.ERROR, lexeme, start, lexeme)

    def _make_token(self, token_type: TokenType, value, start: SourceLocation,
                    lexeme: Optional[str] = None) -> Token:
        span = self._span(start)
        if lexeme is None:
            lexeme = self.source[start.offset:self.pos]
        return Token(token_type, value, lexeme, span)

    # --- Comments and whitespace ---

    def _at_block_comment(self) -> bool:
        return self._peek() == '#' and self._peek(1) == '#' and self._peek(2) == '#'

    def _skip_comment(self) -> None:
        """Skip a line comment (# to end of line)."""
        while self._peek() != '\n' and not self._is_at_end():
            self._advance()

    def _skip_block_comment(self) -> Optional[Token]:
        """Skip ### ... ###. Returns an ERROR token if it never closes."""
        start = self._location()
        for _ in range(3):
            self._advance()
        while not self._is_at_end():
            if self._at_block_comment():
                for _ in range(3):
                    self._advance()
                return None
            self._advance()
        return self._report(
            error_unterminated_comment(self._span(start), self.get_source_line(start.line)),
            start,
        )

    def _skip_comments(self) -> Optional[Token]:
        while self._peek() == '#':
            if self._at_block_comment():
                error_token = self._skip_block_comment()
                if error_token is not None:
                    return error_token
            else:
                self._skip_comment()
            self._skip_whitespace_within_line()
        return None

    def _skip_whitespace_within_line(self) -> None:
        while self._peek() in ' \t\r':
            self._advance()

    def _handle_line_start(self) -> Optional[Token]:
        """
        Measure indentation at the start of a logical line.

        Returns the first INDENT/DEDENT token (queuing the rest), an ERROR
        token for a broken block comment, or None when nothing changes.
        """
        if not self.at_line_start:
            return None

        start = self._location()
        indent = 0
        while self._peek() in ' \t\r':
            ch = self._advance()
            if ch == '\t':
                indent += self.tab_width
            elif ch == ' ':
                indent += 1

        # Blank and comment-only lines leave indentation alone
        if self._peek() in '\n\0':
            return None
        if self._peek() == '#':
            error_token = self._skip_comments()
            if error_token is not None or self._peek() in '\n\0':
                return error_token
            # Code after a closing ### keeps the indentation measured before it

        self.at_line_start = False

        # Inside brackets, indentation doesn't matter
        if self.bracket_depth > 0:
            return None

        current_indent = self.indent_stack[-1]
        if indent > current_indent:
            self.indent_stack.append(indent)
            return self._make_token(TokenType.INDENT, None, start, "")
        if indent < current_indent:
            dedent_tokens = []
            while self.indent_stack[-1] > indent:
                self.indent_stack.pop()
                dedent_tokens.append(self._make_token(TokenType.DEDENT, None, start, ""))
            self.pending_tokens.extend(dedent_tokens[1:])
            return dedent_tokens[0]
        return None

    # --- Literals ---

    def _scan_string(self) -> Token:
        """Scan a string literal."""
        start = self._location()
        quote = self._advance()

        if self._peek() == quote and self._peek(1) == quote:
            self._advance()
            self._advance()
            return self._scan_multiline_string(start, quote)

        chars = []
        while not self._is_at_end() and self._peek() != quote:
            ch = self._peek()
            if ch == '\n':
                break
            if ch == '\\':
                self._advance()
                chars.append(self._scan_escape_sequence())
            else:
                chars.append(self._advance())

        if self._peek() != quote:
            return self._report(
                error_unterminated_string(self._span(start), self.get_source_line(start.line)),
                start,
            )

        self._advance()
        return self._make_token(TokenType.STRING, ''.join(chars), start)

    def _scan_multiline_string(self, start: SourceLocation, quote: str) -> Token:
        """Scan a triple-quoted multi-line string."""
        chars = []
        while not self._is_at_end():
            if self._peek() == quote and self._peek(1) == quote and self._peek(2) == quote:
                self._advance()
                self._advance()
                self._advance()
                return self._make_token(TokenType.MULTILINE_STRING, ''.join(chars), start)

            ch = self._peek()
            if ch == '\\':
                self._advance()
                chars.append(self._scan_escape_sequence())
            else:
                chars.append(self._advance())

        return self._report(
            error_unterminated_multiline_string(self._span(start),
                                                self.get_source_line(start.line)),
            start,
        )

    def _scan_escape_sequence(self) -> str:
        """Decode the character after a backslash."""
        esc_start = self._location()
        if self._is_at_end() or self._peek() == '\n':
            self.diagnostics.add_error(error_invalid_escape_sequence(
                "", self._span(esc_start), self.get_source_line(esc_start.line)))
            return ''

        ch = self._advance()
        if ch in ESCAPE_CHARS:
            return ESCAPE_CHARS[ch]
        self.diagnostics.add_error(error_invalid_escape_sequence(
            ch, self._span(esc_start), self.get_source_line(esc_start.line)))
        return ch

    def _consume_digits(self) -> None:
        """Consume digits with `_` and (outside groupings) `,` separators."""
        while True:
            ch = self._peek()
            if ch.isdigit():
                self._advance()
            elif ch == '_' and self._peek(1).isdigit():
                self._advance()
            elif (ch == ',' and self.bracket_depth == 0
                  and self._peek(1).isdigit() and self._peek(2).isdigit()
                  and self._peek(3).isdigit() and not self._peek(4).isdigit()):
                self._advance()
            else:
                return

    def _consume_number(self) -> str:
        """Consume a numeric literal and return its cleaned text."""
        begin = self.pos
        self._consume_digits()

        if self._peek() == '.' and self._peek(1).isdigit():
            self._advance()
            self._consume_digits()

        if self._peek() in 'eE':
            if self._peek(1).isdigit() or (self._peek(1) in '+-' and self._peek(2).isdigit()):
                self._advance()
                if self._peek() in '+-':
                    self._advance()
                while self._peek().isdigit():
                    self._advance()

        return self.source[begin:self.pos].replace('_', '').replace(',', '')

    def _currency_suffix(self) -> Optional[str]:
        """Consume `[ws]CODE` after a number if CODE is a known currency."""
        offset = 0
        while self._peek(offset) in ' \t':
            offset += 1
        word_start = offset
        while self._peek(offset).isalpha():
            offset += 1
        word = self.source[self.pos + word_start:self.pos + offset]
        if len(word) != 3 or word.upper() not in self.currencies:
            return None
        if self._peek(offset).isdigit() or self._peek(offset) == '_':
            return None
        for _ in range(offset):
            self._advance()
        return word.upper()

    def _scan_number(self) -> Token:
        """Scan a number, date or suffixed money literal."""
        start = self._location()

        date_match = DATE_PATTERN.match(self.source, self.pos)
        if date_match:
            for _ in range(len(date_match.group(0))):
                self._advance()
            return self._make_token(TokenType.DATE, date_match.group(0), start)

        text = self._consume_number()
        try:
            amount = float(text)
        except ValueError:
            return self._report(
                error_invalid_number_literal(text, self._span(start),
                                             self.get_source_line(start.line)),
                start,
            )

        currency = self._currency_suffix()
        if currency is not None:
            return self._make_token(TokenType.MONEY, Money(currency, amount), start)
        return self._make_token(TokenType.NUMBER, amount, start)

    def _scan_identifier_or_keyword(self) -> Token:
        """Scan an identifier, keyword or currency-prefixed money literal."""
        start = self._location()

        while self._peek().isalnum() or self._peek() == '_':
            self._advance()

        lexeme = self.source[start.offset:self.pos]

        if lexeme in self.currencies:
            offset = 0
            while self._peek(offset) in ' \t':
                offset += 1
            if self._peek(offset).isdigit():
                for _ in range(offset):
                    self._advance()
                text = self._consume_number()
                return self._make_token(TokenType.MONEY, Money(lexeme, float(text)), start)

        token_type = KEYWORDS.get(lexeme.lower())
        if token_type is not None:
            return self._make_token(token_type, None, start, lexeme)
        return self._make_token(TokenType.IDENTIFIER, lexeme, start, lexeme)

    # --- Groupings ---

    def _open_group(self, ch: str, start: SourceLocation) -> Token:
        _, open_type, _, _ = GROUPINGS[ch]
        self.open_groups[ch].append(start)
        return self._make_token(open_type, ch, start)

    def _close_group(self, ch: str, start: SourceLocation) -> Token:
        opener = CLOSERS[ch]
        _, _, close_type, name = GROUPINGS[opener]
        token = self._make_token(close_type, ch, start)
        if self.open_groups[opener]:
            self.open_groups[opener].pop()
        else:
            self.diagnostics.add_error(error_unopened_grouping(
                name, token.span, self.get_source_line(start.line)))
        return token

    def _finish(self) -> Token:
        """Produce the tail of the stream: NEWLINE, DEDENTs, EOF."""
        start = self._location()
        if not self._finished:
            self._finished = True
            for opener, locations in self.open_groups.items():
                name = GROUPINGS[opener][3]
                for location in locations:
                    self.diagnostics.add_error(error_unclosed_grouping(
                        name, SourceSpan(location, location)))
            if self._last_type not in (None, TokenType.NEWLINE, TokenType.INDENT,
                                       TokenType.DEDENT):
                self.pending_tokens.append(self._make_token(TokenType.NEWLINE, None, start, ""))
            while len(self.indent_stack) > 1:
                self.indent_stack.pop()
                self.pending_tokens.append(self._make_token(TokenType.DEDENT, None, start, ""))
            if self.pending_tokens:
                return self.pending_tokens.pop(0)
        return self._make_token(TokenType.EOF, None, start, "")

    def _scan_token(self) -> Token:
        """Scan the next token."""
        if self.pending_tokens:
            return self.pending_tokens.pop(0)

        line_token = self._handle_line_start()
        if line_token is not None:
            return line_token

        self._skip_whitespace_within_line()
        error_token = self._skip_comments()
        if error_token is not None:
            return error_token

        if self._peek() == '\n':
            start = self._location()
            self._advance()
            if self.bracket_depth == 0:
                return self._make_token(TokenType.NEWLINE, None, start, "\\n")
            return self._scan_token()

        if self._is_at_end():
            return self._finish()

        start = self._location()
        ch = self._peek()

        if ch in '"\'':
            return self._scan_string()
        if ch.isdigit():
            return self._scan_number()
        if ch.isalpha() or ch == '_':
            return self._scan_identifier_or_keyword()

        self._advance()

        # Two-character operators
        if ch == '-' and self._match('>'):
            return self._make_token(TokenType.ARROW, "->", start)
        if ch == '=' and self._match('='):
            return self._make_token(TokenType.EQUAL_EQUAL, "==", start)
        if ch == '!' and self._match('='):
            return self._make_token(TokenType.BANG_EQUAL, "!=", start)
        if ch == '<' and self._match('='):
            return self._make_token(TokenType.LESS_EQUAL, "<=", start)
        if ch == '>' and self._match('='):
            return self._make_token(TokenType.GREATER_EQUAL, ">=", start)
        if ch == '&':
            if self._match('&'):
                return self._make_token(TokenType.AND_AND, "&&", start)
            return self._report(error_unexpected_character(
                ch, self._span(start), self.get_source_line(start.line)), start)
        if ch == '|':
            if self._match('|'):
                return self._make_token(TokenType.OR_OR, "||", start)
            return self._report(error_unexpected_character(
                ch, self._span(start), self.get_source_line(start.line)), start)

        if ch in GROUPINGS:
            return self._open_group(ch, start)
        if ch in CLOSERS:
            return self._close_group(ch, start)

        single_char_tokens = {
            '+': TokenType.PLUS,
            '-': TokenType.MINUS,
            '*': TokenType.STAR,
            '/': TokenType.SLASH,
            '%': TokenType.PERCENT,
            '^': TokenType.CARET,
            '<': TokenType.LESS,
            '>': TokenType.GREATER,
            '=': TokenType.EQUAL,
            '!': TokenType.BANG,
            ':': TokenType.COLON,
            ',': TokenType.COMMA,
            '.': TokenType.DOT,
        }
        if ch in single_char_tokens:
            return self._make_token(single_char_tokens[ch], ch, start)

        return self._report(error_unexpected_character(
            ch, self._span(start), self.get_source_line(start.line)), start)

    def next_token(self) -> Token:
        token = self._scan_token()
        self._last_type = token.type
        return token

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source, returning a list of tokens."""
        tokens = list(self)
        logger.debug("lexed %d tokens (%d errors)", len(tokens), self.diagnostics.error_count)
        return tokens

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self.next_token()
            yield token
            if token.type == TokenType.EOF:
                break


def tokenize(source: str, filename: Optional[str] = None, **options) -> List[Token]:
    """
    Convenience function to tokenize source code.

    Lexical errors do not raise; the first one is raised here only when
    ``strict=True`` is passed. Use ``Lexer`` directly to inspect every
    diagnostic.

    Args:
        source: The source code to tokenize
        filename: Optional filename for error messages
        **options: ``tab_width``, ``currencies``, ``max_errors``, ``strict``

    Returns:
        List of tokens, always ending in EOF

    Raises:
        LexerError: If ``strict`` and the source has lexical errors
    """
    strict = options.pop("strict", False)
    lexer = Lexer(source, filename, **options)
    tokens = lexer.tokenize()
    if strict and lexer.diagnostics.has_errors:
        raise LexerError(lexer.diagnostics.diagnostics[0])
    return tokens
