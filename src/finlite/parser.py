"""
Recursive descent parser for FinLite.

Converts a token stream into an Abstract Syntax Tree (AST). Blocks are
delimited by INDENT/DEDENT tokens and composite statements close with END.

A statement that fails to parse is recorded in ``Parser.diagnostics``,
the parser skips ahead to the next plausible statement start and an
``ErrorStatement`` is put in its place, so one bad line does not hide the
rest of the program.
"""

import logging
from pathlib import PurePath
from typing import List, Optional

from .tokens import Token, TokenType, SourceSpan, is_identifier_like
from .ast import (
    Expression, Literal, Identifier, ScopedIdentifier, Assignment,
    BinaryOp, UnaryOp, FunctionCall, MemberAccess, IndexAccess, SliceAccess,
    ListLiteral, ObjectLiteral, LambdaExpr, TimeSeriesExpr,
    Statement, Block, LetStatement, SetStatement, PrintStatement,
    ExpressionStatement, ElifBranch, IfStatement, WhileStatement,
    ForRangeStatement, ForEachStatement, ReturnStatement, FunctionDef,
    ImportStatement, ErrorStatement, Program, AstNode,
)
from .errors import (
    ParserError,
    DiagnosticCollector,
    error_unexpected_token,
    error_unexpected_eof,
    error_invalid_assignment_target,
    error_finance_arity,
    error_unknown_scope,
    error_too_many_arguments,
)
from .finance_parser import FinanceGrammarMixin

logger = logging.getLogger(__name__)

MAX_ARGUMENTS = 255

# Tokens that plausibly begin a new statement, used for error recovery
SYNC_TOKENS = (
    TokenType.LET, TokenType.SET, TokenType.IF, TokenType.PRINT, TokenType.LOG,
    TokenType.RUN, TokenType.PORTFOLIO, TokenType.SCENARIO, TokenType.DEDENT,
)

SCOPE_QUALIFIERS = ("global", "parent")


class Parser(FinanceGrammarMixin):
    """
    Recursive descent parser for FinLite.

    Usage:
        parser = Parser(tokens)
        program = parser.parse_program()
        if parser.diagnostics.has_errors:
            print(parser.diagnostics.format_all())

    Expressions use precedence climbing:
        Lowest:  = (assignment, right-associative)
                 or ||
                 and &&
                 == !=
                 < > <= >=
                 + -
                 * / %
                 ^ (power, right-associative)
                 unary (not ! -)
        Highest: call, .member, [index], [start:end]
    """

    # Operator precedence levels (higher = tighter binding)
    PRECEDENCE = {
        TokenType.OR: 1,
        TokenType.OR_OR: 1,
        TokenType.AND: 2,
        TokenType.AND_AND: 2,
        TokenType.EQUAL_EQUAL: 3,
        TokenType.BANG_EQUAL: 3,
        TokenType.LESS: 4,
        TokenType.GREATER: 4,
        TokenType.LESS_EQUAL: 4,
        TokenType.GREATER_EQUAL: 4,
        TokenType.PLUS: 5,
        TokenType.MINUS: 5,
        TokenType.STAR: 6,
        TokenType.SLASH: 6,
        TokenType.PERCENT: 6,
        TokenType.CARET: 7,
    }

    RIGHT_ASSOCIATIVE = {TokenType.CARET}

    # Symbolic spellings folded onto their keyword operators
    OPERATOR_ALIASES = {
        TokenType.AND_AND: TokenType.AND,
        TokenType.OR_OR: TokenType.OR,
        TokenType.BANG: TokenType.NOT,
    }

    def __init__(self, tokens: List[Token], filename: Optional[str] = None,
                 source: Optional[str] = None, max_errors: int = 20):
        self.tokens = tokens
        self.filename = filename
        self.source = source
        self.pos = 0
        self.diagnostics = DiagnosticCollector(max_errors)
        self._lines = source.splitlines() if source is not None else None

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[idx]

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        return self._current().type == token_type

    def _check_any(self, *token_types: TokenType) -> bool:
        return self._current().type in token_types

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Consume token of expected type, or raise error."""
        if self._check(token_type):
            return self._advance()
        self._error(expected)

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        """Consume token if it matches any of the given types."""
        if self._current().type in token_types:
            return self._advance()
        return None

    def _skip_newlines(self) -> None:
        while self._check(TokenType.NEWLINE):
            self._advance()

    def _expect_newline_or_eof(self) -> None:
        """Expect the end of a statement."""
        if self._check_any(TokenType.EOF, TokenType.DEDENT):
            return
        if self._check(TokenType.NEWLINE):
            self._advance()
            return
        self._error("end of line")

    def _is_name_token(self, token: Token) -> bool:
        return is_identifier_like(token.type)

    def _consume_name(self, expected: str) -> str:
        """Consume an identifier (or a keyword usable as one) and return its text."""
        if self._is_name_token(self._current()):
            return self._advance().lexeme
        self._error(expected)

    def _consume_end(self, construct: str, terminate: bool = True) -> Token:
        """Consume the END closing a composite construct."""
        self._skip_newlines()
        token = self._consume(TokenType.END, f"'END' to close {construct}")
        if terminate:
            self._expect_newline_or_eof()
        return token

    def _source_line(self, token: Token) -> Optional[str]:
        if self._lines is None:
            return None
        line = token.span.start.line
        if 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return None

    def _describe(self, token: Token) -> str:
        if token.type == TokenType.ERROR:
            return f"invalid text {token.lexeme!r}"
        if token.type in (TokenType.NEWLINE, TokenType.INDENT, TokenType.DEDENT):
            return token.type.name
        return f"'{token.lexeme}'"

    def _error(self, expected: str) -> None:
        """Raise a parser error at the current token."""
        token = self._current()
        if token.type == TokenType.EOF:
            raise error_unexpected_eof(expected, token.span)
        raise error_unexpected_token(expected, self._describe(token), token.span,
                                     self._source_line(token))

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to the last consumed token."""
        prev_pos = max(0, self.pos - 1)
        end_token = self.tokens[prev_pos]
        return SourceSpan(start.span.start, end_token.span.end)

    def _span_from_node(self, start: AstNode) -> SourceSpan:
        prev_pos = max(0, self.pos - 1)
        return SourceSpan(start.span.start, self.tokens[prev_pos].span.end)

    # =========================================================================
    # Expression Parsing
    # =========================================================================

    def _parse_expression(self) -> Expression:
        """Parse an expression (assignment is the lowest precedence)."""
        return self._parse_assignment()

    def _parse_assignment(self) -> Expression:
        expr = self._parse_binary_expr(1)

        equals = self._match(TokenType.EQUAL)
        if equals:
            value = self._parse_assignment()
            if isinstance(expr, Identifier):
                return Assignment(span=SourceSpan(expr.span.start, value.span.end),
                                  name=expr.name, value=value)
            raise error_invalid_assignment_target(expr.span, self._source_line(equals))

        return expr

    def _parse_binary_expr(self, min_precedence: int) -> Expression:
        """Parse binary expressions with precedence climbing."""
        left = self._parse_unary_expr()

        while True:
            op_token = self._current()
            precedence = self.PRECEDENCE.get(op_token.type)

            if precedence is None or precedence < min_precedence:
                break

            self._advance()

            next_precedence = precedence if op_token.type in self.RIGHT_ASSOCIATIVE else precedence + 1
            right = self._parse_binary_expr(next_precedence)

            left = BinaryOp(
                span=SourceSpan(left.span.start, right.span.end),
                left=left,
                operator=self.OPERATOR_ALIASES.get(op_token.type, op_token.type),
                right=right
            )

        return left

    def _parse_unary_expr(self) -> Expression:
        """Parse unary expressions (not, !, -)."""
        if self._check_any(TokenType.NOT, TokenType.BANG, TokenType.MINUS):
            op = self._advance()
            operand = self._parse_unary_expr()
            return UnaryOp(
                span=SourceSpan(op.span.start, operand.span.end),
                operator=self.OPERATOR_ALIASES.get(op.type, op.type),
                operand=operand
            )

        return self._parse_postfix_expr()

    def _parse_postfix_expr(self) -> Expression:
        """Parse calls, member access, indexing and slicing."""
        expr = self._parse_primary_expr()

        while True:
            if self._check(TokenType.LEFT_PAREN):
                expr = self._parse_call(expr)
            elif self._check(TokenType.DOT):
                self._advance()
                member_token = self._current()
                if not (member_token.type == TokenType.IDENTIFIER
                        or member_token.lexeme.isidentifier()):
                    self._error("member name after '.'")
                self._advance()
                expr = MemberAccess(span=self._span_from_node(expr), object=expr,
                                    member=member_token.lexeme)
            elif self._check(TokenType.LEFT_BRACKET):
                expr = self._parse_subscript(expr)
            else:
                break

        return expr

    def _parse_subscript(self, target: Expression) -> Expression:
        """Parse [index], [start:end], [:end] or [start:]."""
        self._advance()  # consume '['

        if self._match(TokenType.COLON):
            end = None if self._check(TokenType.RIGHT_BRACKET) else self._parse_expression()
            self._consume(TokenType.RIGHT_BRACKET, "']'")
            return SliceAccess(span=self._span_from_node(target), object=target,
                               start=None, end=end)

        index = self._parse_expression()
        if self._match(TokenType.COLON):
            end = None if self._check(TokenType.RIGHT_BRACKET) else self._parse_expression()
            self._consume(TokenType.RIGHT_BRACKET, "']'")
            return SliceAccess(span=self._span_from_node(target), object=target,
                               start=index, end=end)

        self._consume(TokenType.RIGHT_BRACKET, "']'")
        return IndexAccess(span=self._span_from_node(target), object=target, index=index)

    def _parse_call(self, callee: Expression) -> Expression:
        """Parse call arguments; finance functions become dedicated nodes."""
        paren = self._current()
        args = self._parse_arguments()

        finance = self._rewrite_finance_call(callee, args, paren)
        if finance is not None:
            return finance

        return FunctionCall(
            span=SourceSpan(callee.span.start, self.tokens[self.pos - 1].span.end),
            callee=callee,
            arguments=args,
        )

    def _parse_arguments(self) -> List[Expression]:
        self._consume(TokenType.LEFT_PAREN, "'('")

        args = []
        if not self._check(TokenType.RIGHT_PAREN):
            args.append(self._parse_expression())
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RIGHT_PAREN):
                    break  # trailing comma
                if len(args) >= MAX_ARGUMENTS:
                    token = self._current()
                    raise error_too_many_arguments(token.span, self._source_line(token))
                args.append(self._parse_expression())

        self._consume(TokenType.RIGHT_PAREN, "')'")
        return args

    def _parse_primary_expr(self) -> Expression:
        """Parse literals, names, groupings, collections and finance literals."""
        finance = self._parse_finance_primary()
        if finance is not None:
            return finance

        token = self._current()

        if token.type in (TokenType.TRUE, TokenType.FALSE):
            self._advance()
            return Literal(span=token.span, value=token.type == TokenType.TRUE,
                           literal_type=token.type)

        if token.type == TokenType.NULL:
            self._advance()
            return Literal(span=token.span, value=None, literal_type=TokenType.NULL)

        if token.type in (TokenType.NUMBER, TokenType.DATE):
            self._advance()
            return Literal(span=token.span, value=token.value, literal_type=token.type)

        if token.type in (TokenType.STRING, TokenType.MULTILINE_STRING):
            self._advance()
            return Literal(span=token.span, value=token.value, literal_type=TokenType.STRING)

        if token.type == TokenType.MONEY:
            self._advance()
            return Literal(span=token.span, value=token.value.amount,
                           literal_type=TokenType.MONEY, currency=token.value.currency)

        if token.type == TokenType.TIMESERIES and self._peek(1).type == TokenType.LEFT_PAREN:
            return self._parse_timeseries()

        if token.type == TokenType.IDENTIFIER:
            if self._peek(1).type == TokenType.COLON and self._peek(2).type == TokenType.COLON:
                return self._parse_scoped_identifier()
            if self._peek(1).type == TokenType.ARROW:
                return self._parse_single_param_lambda()

        if self._is_name_token(token):
            self._advance()
            return Identifier(span=token.span, name=token.lexeme)

        if token.type == TokenType.LEFT_PAREN:
            return self._parse_grouped_or_lambda()

        if token.type == TokenType.LEFT_BRACKET:
            return self._parse_list_literal()

        if token.type == TokenType.LEFT_BRACE:
            return self._parse_object_literal()

        self._error("expression")

    def _parse_scoped_identifier(self) -> ScopedIdentifier:
        """global::name or parent::name"""
        qualifier = self._advance()
        if qualifier.lexeme.lower() not in SCOPE_QUALIFIERS:
            raise error_unknown_scope(qualifier.lexeme, qualifier.span,
                                      self._source_line(qualifier))
        self._advance()  # ':'
        self._advance()  # ':'
        name = self._consume_name("name after '::'")
        return ScopedIdentifier(span=self._span_from(qualifier),
                                scope=qualifier.lexeme.lower(), name=name)

    def _parse_single_param_lambda(self) -> LambdaExpr:
        """x -> expr"""
        start = self._advance()
        self._advance()  # '->'
        body = self._parse_expression()
        return LambdaExpr(span=self._span_from(start), parameters=[start.lexeme], body=body)

    def _is_paren_lambda(self) -> bool:
        """Look past the matching ')' for '->' without consuming anything."""
        depth = 0
        offset = 0
        while True:
            token = self._peek(offset)
            if token.type == TokenType.EOF:
                return False
            if token.type == TokenType.LEFT_PAREN:
                depth += 1
            elif token.type == TokenType.RIGHT_PAREN:
                depth -= 1
                if depth == 0:
                    return self._peek(offset + 1).type == TokenType.ARROW
            offset += 1

    def _parse_grouped_or_lambda(self) -> Expression:
        """Parse (expr) or (a, b) -> expr."""
        if self._is_paren_lambda():
            start = self._advance()  # consume '('
            params = []
            if not self._check(TokenType.RIGHT_PAREN):
                params.append(self._consume_name("parameter name"))
                while self._match(TokenType.COMMA):
                    params.append(self._consume_name("parameter name"))
            self._consume(TokenType.RIGHT_PAREN, "')'")
            self._consume(TokenType.ARROW, "'->'")
            body = self._parse_expression()
            return LambdaExpr(span=self._span_from(start), parameters=params, body=body)

        self._advance()  # consume '('
        expr = self._parse_expression()
        self._consume(TokenType.RIGHT_PAREN, "')'")
        return expr

    def _parse_list_literal(self) -> ListLiteral:
        start = self._advance()  # consume '['
        self._skip_newlines()

        elements = []
        if not self._check(TokenType.RIGHT_BRACKET):
            elements.append(self._parse_expression())
            self._skip_newlines()
            while self._match(TokenType.COMMA):
                self._skip_newlines()
                if self._check(TokenType.RIGHT_BRACKET):
                    break
                elements.append(self._parse_expression())
                self._skip_newlines()

        self._consume(TokenType.RIGHT_BRACKET, "']'")
        return ListLiteral(span=self._span_from(start), elements=elements)

    def _parse_object_literal(self) -> ObjectLiteral:
        start = self._advance()  # consume '{'
        self._skip_newlines()

        fields = {}
        if not self._check(TokenType.RIGHT_BRACE):
            while True:
                self._skip_newlines()
                key_token = self._current()
                if key_token.type in (TokenType.STRING, TokenType.MULTILINE_STRING):
                    self._advance()
                    key = key_token.value
                else:
                    key = self._consume_name("field name")
                self._consume(TokenType.COLON, "':'")
                fields[key] = self._parse_expression()
                self._skip_newlines()
                if not self._match(TokenType.COMMA):
                    break
                self._skip_newlines()
                if self._check(TokenType.RIGHT_BRACE):
                    break

        self._consume(TokenType.RIGHT_BRACE, "'}'")
        return ObjectLiteral(span=self._span_from(start), fields=fields)

    def _parse_timeseries(self) -> TimeSeriesExpr:
        start = self._advance()  # consume 'timeseries'
        paren = self._current()
        args = self._parse_arguments()
        if len(args) != 2:
            raise error_finance_arity("timeseries", "2", len(args), paren.span,
                                      self._source_line(paren))
        return TimeSeriesExpr(span=self._span_from(start), source=args[0], window=args[1])

    # =========================================================================
    # Statement Parsing
    # =========================================================================

    def _parse_statement(self) -> Statement:
        """Parse one statement, recovering from errors inside it."""
        start_pos = self.pos
        start = self._current()
        try:
            return self._parse_statement_inner()
        except ParserError as exc:
            self.diagnostics.add_error(exc)
            logger.debug("parse error at %s: %s; synchronizing", exc.span, exc.message)
            self._synchronize(start_pos)
            return ErrorStatement(span=self._span_from(start), message=exc.message)

    def _synchronize(self, start_pos: int) -> None:
        """Skip to the next NEWLINE or statement-starting token."""
        if self.pos == start_pos and not self._check_any(TokenType.DEDENT, TokenType.EOF):
            self._advance()
        while not self._is_at_end():
            if self.tokens[self.pos - 1].type == TokenType.NEWLINE:
                return
            if self._check_any(*SYNC_TOKENS):
                return
            self._advance()

    def _parse_statement_inner(self) -> Statement:
        self._skip_newlines()
        token = self._current()

        if token.type == TokenType.INDENT:
            return self._parse_block()

        finance = self._parse_finance_statement()
        if finance is not None:
            return finance

        if token.type == TokenType.LET:
            return self._parse_let_statement()
        if token.type == TokenType.SET:
            return self._parse_set_statement()
        if token.type in (TokenType.PRINT, TokenType.LOG):
            return self._parse_print_statement()
        if token.type == TokenType.IF:
            return self._parse_if_statement()
        if token.type == TokenType.WHILE:
            return self._parse_while_statement()
        if token.type == TokenType.FOR:
            return self._parse_for_statement()
        if token.type == TokenType.RETURN:
            return self._parse_return_statement()
        if token.type == TokenType.FUNCTION:
            return self._parse_function_def()
        if token.type == TokenType.IMPORT:
            return self._parse_import_statement()

        expr = self._parse_expression()
        self._expect_newline_or_eof()
        return ExpressionStatement(span=expr.span, expression=expr)

    def _parse_let_statement(self) -> LetStatement:
        start = self._advance()  # consume 'let'
        name = self._consume_name("variable name")
        self._consume(TokenType.EQUAL, "'='")
        value = self._parse_expression()
        self._expect_newline_or_eof()
        return LetStatement(span=self._span_from(start), name=name, initializer=value)

    def _parse_set_statement(self) -> SetStatement:
        start = self._advance()  # consume 'set'
        name = self._consume_name("variable name")
        self._consume(TokenType.EQUAL, "'='")
        value = self._parse_expression()
        self._expect_newline_or_eof()
        return SetStatement(span=self._span_from(start), name=name, value=value)

    def _parse_print_statement(self) -> PrintStatement:
        start = self._advance()  # consume 'print' / 'log'
        values = [self._parse_expression()]
        while self._match(TokenType.COMMA):
            values.append(self._parse_expression())
        self._expect_newline_or_eof()
        return PrintStatement(span=self._span_from(start), values=values,
                              is_log=start.type == TokenType.LOG)

    def _parse_if_statement(self) -> IfStatement:
        start = self._advance()  # consume 'if'
        condition = self._parse_expression()
        self._match(TokenType.THEN)
        then_branch = self._parse_block()

        elif_branches = []
        else_branch = None
        while True:
            self._skip_newlines()
            branch_start = self._current()
            if self._check(TokenType.ELSEIF) or (
                    self._check(TokenType.ELSE) and self._peek(1).type == TokenType.IF):
                if self._advance().type == TokenType.ELSE:
                    self._advance()  # 'ELSE IF' spelling
                elif_cond = self._parse_expression()
                self._match(TokenType.THEN)
                elif_body = self._parse_block()
                elif_branches.append(ElifBranch(
                    span=self._span_from(branch_start),
                    condition=elif_cond,
                    body=elif_body
                ))
                continue
            if self._match(TokenType.ELSE):
                else_branch = self._parse_block()
            break

        self._consume_end("IF")
        return IfStatement(
            span=self._span_from(start),
            condition=condition,
            then_branch=then_branch,
            elif_branches=elif_branches,
            else_branch=else_branch
        )

    def _parse_while_statement(self) -> WhileStatement:
        start = self._advance()  # consume 'while'
        condition = self._parse_expression()
        self._match(TokenType.DO, TokenType.THEN)
        body = self._parse_block()
        self._consume_end("WHILE")
        return WhileStatement(span=self._span_from(start), condition=condition, body=body)

    def _parse_for_statement(self) -> Statement:
        """FOR i IN a TO b [STEP s] ... END, or FOR x IN iterable ... END"""
        start = self._advance()  # consume 'for'
        variable = self._consume_name("loop variable")
        self._consume(TokenType.IN, "'IN'")
        first = self._parse_expression()

        if self._match(TokenType.TO):
            end = self._parse_expression()
            step = self._parse_expression() if self._match(TokenType.STEP) else None
            self._match(TokenType.DO)
            body = self._parse_block()
            self._consume_end("FOR")
            return ForRangeStatement(span=self._span_from(start), variable=variable,
                                     start=first, end=end, step=step, body=body)

        self._match(TokenType.DO)
        body = self._parse_block()
        self._consume_end("FOR")
        return ForEachStatement(span=self._span_from(start), variable=variable,
                                iterable=first, body=body)

    def _parse_return_statement(self) -> ReturnStatement:
        start = self._advance()  # consume 'return'
        value = None
        if not self._check_any(TokenType.NEWLINE, TokenType.DEDENT, TokenType.EOF):
            value = self._parse_expression()
        self._expect_newline_or_eof()
        return ReturnStatement(span=self._span_from(start), value=value)

    def _parse_function_def(self) -> FunctionDef:
        start = self._advance()  # consume 'function'
        name = self._consume_name("function name")
        self._consume(TokenType.LEFT_PAREN, "'('")
        params = []
        if not self._check(TokenType.RIGHT_PAREN):
            params.append(self._consume_name("parameter name"))
            while self._match(TokenType.COMMA):
                params.append(self._consume_name("parameter name"))
        self._consume(TokenType.RIGHT_PAREN, "')'")
        body = self._parse_block()
        self._consume_end("FUNCTION")
        return FunctionDef(span=self._span_from(start), name=name, parameters=params, body=body)

    def _parse_import_statement(self) -> ImportStatement:
        start = self._advance()  # consume 'import'
        path = self._consume(TokenType.STRING, "import path string").value
        if self._match(TokenType.AS):
            alias = self._consume_name("import alias")
        else:
            alias = PurePath(path).stem
        self._expect_newline_or_eof()
        return ImportStatement(span=self._span_from(start), path=path, alias=alias)

    def _parse_block(self) -> Block:
        """Parse an indented block of statements."""
        self._skip_newlines()
        start = self._consume(TokenType.INDENT, "indented block")
        statements = []

        while not self._check(TokenType.DEDENT) and not self._is_at_end():
            self._skip_newlines()
            if self._check_any(TokenType.DEDENT, TokenType.EOF):
                break
            statements.append(self._parse_statement())

        self._consume(TokenType.DEDENT, "end of block")
        return Block(span=self._span_from(start), statements=statements)

    # =========================================================================
    # Program
    # =========================================================================

    def parse_program(self) -> Program:
        """Parse a complete program, collecting errors as it goes."""
        start = self._current()
        statements = []

        self._skip_newlines()
        while not self._is_at_end():
            if self._check(TokenType.DEDENT):
                token = self._advance()
                self.diagnostics.add_error(error_unexpected_token(
                    "statement", "DEDENT", token.span, self._source_line(token)))
            else:
                statements.append(self._parse_statement())
            if self.diagnostics.should_stop:
                logger.debug("too many parse errors; giving up")
                break
            self._skip_newlines()

        logger.debug("parsed %d statements (%d errors)", len(statements),
                     self.diagnostics.error_count)
        return Program(span=self._span_from(start), statements=statements)


def parse(tokens: List[Token], filename: Optional[str] = None,
          source: Optional[str] = None) -> Program:
    """
    Convenience function to parse tokens into a program.

    Args:
        tokens: List of tokens from the lexer
        filename: Optional filename for error messages
        source: Optional original source code for diagnostics

    Returns:
        Parsed Program AST

    Raises:
        ParserError: The first parse error, if any statement failed to parse
    """
    parser = Parser(tokens, filename, source)
    program = parser.parse_program()
    if parser.diagnostics.has_errors:
        raise ParserError(parser.diagnostics.diagnostics[0])
    return program
