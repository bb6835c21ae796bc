#!/usr/bin/env python3
"""
CLI for the FinLite interpreter.

Usage:
    python -m finlite run FILE.fin
    python -m finlite check FILE.fin [--json]
    python -m finlite tokens FILE.fin
    python -m finlite ast FILE.fin
    python -m finlite repl

Global options (before the subcommand):
    -v, --verbose      debug logging on stderr
    --config FILE      YAML settings (default: $FINLITE_CONFIG or ./finlite.yaml)

Exit codes: 0 success, 1 program or syntax errors, 2 usage or setup errors.

Examples:
    # Check syntax without running anything
    python -m finlite check examples/loan.fin

    # Machine-readable diagnostics for an editor integration
    python -m finlite check examples/loan.fin --json

    # Run a program
    python -m finlite run examples/loan.fin
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import load_config
from .errors import ConfigError, DiagnosticCollector
from .tokens import TokenType

EXIT_OK = 0
EXIT_ERRORS = 1
EXIT_USAGE = 2

# Statements that stay open until a matching END
BLOCK_OPENERS = (
    TokenType.IF, TokenType.WHILE, TokenType.FOR, TokenType.FUNCTION,
    TokenType.SCENARIO, TokenType.PORTFOLIO, TokenType.CASHFLOW,
)


def _read_source(path_str: str):
    source_path = Path(path_str)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return None, source_path
    return source_path.read_text(encoding="utf-8"), source_path


def _front_end(source: str, filename: str, config):
    """Lex and parse, returning the program and all diagnostics."""
    from .lexer import Lexer
    from .parser import Parser

    lexer = Lexer(source, filename, tab_width=config.tab_width,
                  currencies=config.currencies, max_errors=config.max_errors)
    tokens = lexer.tokenize()
    parser = Parser(tokens, filename, source, max_errors=config.max_errors)
    program = parser.parse_program()

    collector = DiagnosticCollector(config.max_errors)
    collector.extend(lexer.diagnostics)
    collector.extend(parser.diagnostics)
    return tokens, program, collector


def cmd_run(args, config):
    """Run a FinLite source file."""
    from .runtime.interpreter import Interpreter

    source, source_path = _read_source(args.file)
    if source is None:
        return EXIT_USAGE

    result = Interpreter(config=config).execute(source, str(source_path))
    if not result.success:
        for diag in result.diagnostics:
            print(diag.format(), file=sys.stderr)
        return EXIT_ERRORS
    return EXIT_OK


def cmd_check(args, config):
    """Check a FinLite file for lexical and syntax errors."""
    source, source_path = _read_source(args.file)
    if source is None:
        return EXIT_USAGE

    _, program, diagnostics = _front_end(source, str(source_path), config)

    if args.json:
        print(json.dumps(diagnostics.to_json(), indent=2))
    elif diagnostics.has_errors:
        print(diagnostics.format_all())
    else:
        print(f"OK: {source_path.name} - {len(program.statements)} statement(s), no errors")

    return EXIT_ERRORS if diagnostics.has_errors else EXIT_OK


def cmd_tokens(args, config):
    """Print the token stream of a FinLite file."""
    source, source_path = _read_source(args.file)
    if source is None:
        return EXIT_USAGE

    tokens, _, diagnostics = _front_end(source, str(source_path), config)
    for token in tokens:
        loc = f"{token.span.start.line}:{token.span.start.column}"
        print(f"{loc:>8}  {token.type.name:<16} {token.lexeme!r}")

    lexical = [d for d in diagnostics.diagnostics if d.code.startswith("E0")]
    for diag in lexical:
        print(diag.format(), file=sys.stderr)
    return EXIT_ERRORS if lexical else EXIT_OK


def cmd_ast(args, config):
    """Print the syntax tree of a FinLite file."""
    from .ast import format_ast

    source, source_path = _read_source(args.file)
    if source is None:
        return EXIT_USAGE

    _, program, diagnostics = _front_end(source, str(source_path), config)
    print(format_ast(program))
    if diagnostics.has_errors:
        print(diagnostics.format_all(), file=sys.stderr)
        return EXIT_ERRORS
    return EXIT_OK


def block_depth(source: str) -> int:
    """How many blocks are still waiting for END (brackets count too)."""
    from .lexer import Lexer

    lexer = Lexer(source)
    depth = 0
    previous = None
    for token in lexer.tokenize():
        if token.type in BLOCK_OPENERS and not (token.type == TokenType.IF
                                                and previous == TokenType.ELSE):
            depth += 1
        elif token.type == TokenType.END:
            depth -= 1
        previous = token.type
    unclosed = sum(1 for d in lexer.diagnostics.diagnostics if d.code == "E007")
    return depth + unclosed


def cmd_repl(args, config, stdin=None):
    """Interactive read-eval-print loop; bindings persist across inputs."""
    from .runtime.interpreter import Interpreter
    from .runtime.values import format_value

    stdin = stdin if stdin is not None else sys.stdin
    interpreter = Interpreter(config=config)
    print("FinLite REPL. End a block with END; Ctrl-D exits.")

    buffer = []
    while True:
        prompt = "... " if buffer else "> "
        print(prompt, end="", flush=True)
        line = stdin.readline()
        if not line:
            print()
            break
        if not buffer and not line.strip():
            continue

        buffer.append(line.rstrip("\n"))
        source = "\n".join(buffer) + "\n"
        if block_depth(source) > 0:
            continue
        buffer = []

        result = interpreter.execute(source, "<repl>")
        if not result.success:
            for diag in result.diagnostics:
                print(diag.format(), file=sys.stderr)
            continue
        for value in result.results:
            if not value.is_null:
                print(format_value(value))
    return EXIT_OK


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="finlite",
        description="FinLite finance scripting language",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", metavar="FILE", help="YAML configuration file")

    subparsers = parser.add_subparsers(dest="action", required=True)

    # run command
    run_parser = subparsers.add_parser("run", help="Run a FinLite program")
    run_parser.add_argument("file", help="FinLite source file")

    # check command
    check_parser = subparsers.add_parser("check", help="Check a file for syntax errors")
    check_parser.add_argument("file", help="FinLite source file")
    check_parser.add_argument("--json", action="store_true", help="Emit diagnostics as JSON")

    # tokens command
    tokens_parser = subparsers.add_parser("tokens", help="Print the token stream")
    tokens_parser.add_argument("file", help="FinLite source file")

    # ast command
    ast_parser = subparsers.add_parser("ast", help="Print the syntax tree")
    ast_parser.add_argument("file", help="FinLite source file")

    # repl command
    subparsers.add_parser("repl", help="Start an interactive session")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    if args.action == "run":
        return cmd_run(args, config)
    elif args.action == "check":
        return cmd_check(args, config)
    elif args.action == "tokens":
        return cmd_tokens(args, config)
    elif args.action == "ast":
        return cmd_ast(args, config)
    elif args.action == "repl":
        return cmd_repl(args, config)
    else:
        parser.print_help()
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
