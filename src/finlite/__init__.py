"""
FinLite - a small scripting language for financial calculations.

This package provides:
- Lexer: Tokenizes FinLite source (indentation-aware)
- Parser: Builds an AST from tokens, recovering from bad statements
- Interpreter: Tree-walking evaluator with a finance standard library
- Config: YAML-backed interpreter settings

Usage:
    from finlite import execute

    result = execute('''
    LET cf = [-1000, 300, 300, 300, 300]
    PRINT NPV(cf, 0.08)
    ''')
    if not result.success:
        print(result.error)

    # Or drive the stages yourself
    from finlite import tokenize, parse, Interpreter

    source = 'LET x = 10\\nPRINT x + 5\\n'
    program = parse(tokenize(source), source=source)
    Interpreter().run(program)
"""

from .tokens import (
    Token,
    TokenType,
    SourceLocation,
    SourceSpan,
    Money,
    KEYWORDS,
    CURRENCIES,
)

from .lexer import (
    Lexer,
    tokenize,
)

from .parser import (
    Parser,
    parse,
)

from .ast import (
    AstNode,
    AstVisitor,
    Program,
    format_ast,
    print_ast,
)

from .errors import (
    ErrorKind,
    ErrorSeverity,
    Diagnostic,
    DiagnosticCollector,
    FinLiteError,
    LexerError,
    ParserError,
    FinLiteRuntimeError,
    ConfigError,
)

from .config import (
    FinLiteConfig,
    load_config,
)

from .runtime import (
    Interpreter,
    ExecutionResult,
    Value,
    ValueKind,
    Environment,
    execute,
    run_file,
)

__all__ = [
    # Tokens
    'Token',
    'TokenType',
    'SourceLocation',
    'SourceSpan',
    'Money',
    'KEYWORDS',
    'CURRENCIES',

    # Lexer / parser
    'Lexer',
    'tokenize',
    'Parser',
    'parse',

    # AST
    'AstNode',
    'AstVisitor',
    'Program',
    'format_ast',
    'print_ast',

    # Errors
    'ErrorKind',
    'ErrorSeverity',
    'Diagnostic',
    'DiagnosticCollector',
    'FinLiteError',
    'LexerError',
    'ParserError',
    'FinLiteRuntimeError',
    'ConfigError',

    # Config
    'FinLiteConfig',
    'load_config',

    # Runtime
    'Interpreter',
    'ExecutionResult',
    'Value',
    'ValueKind',
    'Environment',
    'execute',
    'run_file',
]

__version__ = "0.1.0"
