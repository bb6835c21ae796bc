"""
Execution context for the FinLite interpreter.

Manages the chain of variable scopes, the output sink for PRINT/LOG, and
the tagged outcome statements hand back to their callers.
"""

import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TextIO
from contextlib import contextmanager

from .values import Value, NULL
from ..config import FinLiteConfig
from ..errors import error_undefined_variable


@dataclass(eq=False)
class Environment:
    """
    A single scope containing variable bindings.

    Scopes form a chain via the `parent` field for lexical scoping. Lambdas
    and functions keep a reference to the scope they were created in, so a
    scope lives as long as anything still points at it.
    """
    values: Dict[str, Value] = field(default_factory=dict)
    parent: Optional["Environment"] = None
    name: str = "anonymous"  # For debugging

    def define(self, name: str, value: Value) -> None:
        """Bind a name in this scope (shadowing any outer binding)."""
        self.values[name] = value

    def assign(self, name: str, value: Value) -> None:
        """
        Rebind an existing name in the nearest scope that owns it.

        Raises:
            FinLiteRuntimeError: UndefinedVariable if no scope binds `name`
        """
        scope = self._owner(name)
        if scope is None:
            raise error_undefined_variable(name)
        scope.values[name] = value

    def get(self, name: str) -> Value:
        """
        Look up a name in this scope or its ancestors.

        Raises:
            FinLiteRuntimeError: UndefinedVariable if no scope binds `name`
        """
        scope = self._owner(name)
        if scope is None:
            raise error_undefined_variable(name)
        return scope.values[name]

    def get_or_null(self, name: str) -> Optional[Value]:
        """Look up a name in this scope only; None if it is not bound here."""
        return self.values.get(name)

    def contains(self, name: str) -> bool:
        return self._owner(name) is not None

    def create_child(self, name: str = "block") -> "Environment":
        return Environment(parent=self, name=name)

    def _owner(self, name: str) -> Optional["Environment"]:
        scope = self
        while scope is not None:
            if name in scope.values:
                return scope
            scope = scope.parent
        return None

    @property
    def root(self) -> "Environment":
        scope = self
        while scope.parent is not None:
            scope = scope.parent
        return scope

    def get_global(self, name: str) -> Value:
        """global::name - the outermost scope only."""
        value = self.root.get_or_null(name)
        if value is None:
            raise error_undefined_variable(f"global::{name}")
        return value

    def get_parent(self, name: str) -> Value:
        """parent::name - search outward starting one scope up."""
        if self.parent is None:
            raise error_undefined_variable(f"parent::{name}")
        scope = self.parent._owner(name)
        if scope is None:
            raise error_undefined_variable(f"parent::{name}")
        return scope.values[name]


@dataclass(frozen=True)
class Outcome:
    """
    Result of executing a statement.

    ``returning`` is set when a RETURN is unwinding toward the nearest call
    boundary; every statement executor checks it after each nested
    statement and stops early.
    """
    value: Value = NULL
    returning: bool = False

    @classmethod
    def normal(cls, value: Value = NULL) -> "Outcome":
        return cls(value, False)

    @classmethod
    def returned(cls, value: Value = NULL) -> "Outcome":
        return cls(value, True)


NORMAL = Outcome()


@dataclass
class ExecutionContext:
    """
    The full execution context for interpreting FinLite code.

    Tracks:
    - The current scope (restored on every exit path by ``new_scope``)
    - The output sink for PRINT/LOG
    - Configuration and the interpreter, for builtins that call back in
    """
    current_scope: Environment = field(default_factory=lambda: Environment(name="global"))
    output: Optional[TextIO] = None
    config: FinLiteConfig = field(default_factory=FinLiteConfig)
    interpreter: Any = None
    source_lines: List[str] = field(default_factory=list)
    lines_written: List[str] = field(default_factory=list)

    @property
    def global_scope(self) -> Environment:
        return self.current_scope.root

    def get_variable(self, name: str) -> Value:
        return self.current_scope.get(name)

    def define_variable(self, name: str, value: Value) -> None:
        self.current_scope.define(name, value)

    def assign_variable(self, name: str, value: Value) -> None:
        self.current_scope.assign(name, value)

    @contextmanager
    def new_scope(self, name: str = "block"):
        """
        Context manager to run code in a fresh child of the current scope.

        Usage:
            with ctx.new_scope("for-loop"):
                ctx.define_variable("i", number_val(0))
        """
        with self.use_scope(self.current_scope.create_child(name)) as scope:
            yield scope

    @contextmanager
    def use_scope(self, scope: Environment):
        """Make `scope` current for the duration of the block."""
        old_scope = self.current_scope
        self.current_scope = scope
        try:
            yield scope
        finally:
            self.current_scope = old_scope

    def write(self, text: str) -> None:
        """Write one line of program output."""
        self.lines_written.append(text)
        stream = self.output if self.output is not None else sys.stdout
        stream.write(text + "\n")

    def source_line(self, line_num: int) -> Optional[str]:
        if 1 <= line_num <= len(self.source_lines):
            return self.source_lines[line_num - 1]
        return None
