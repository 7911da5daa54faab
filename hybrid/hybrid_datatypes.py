"""
Defines the core data types for the Hybrid language runtime.

This module provides the error taxonomy, the declared-type model, the
runtime value helpers, and the Environment/function records the evaluator
works with.
"""

import copy
import math
from collections import UserDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

# =================================================================
# Errors
# =================================================================

class HybridError(Exception):
    """Base class for every error the Hybrid core raises."""
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ParseError(HybridError):
    """A positioned parse failure. line/column are 0-based."""
    def __init__(self, message: str, line: int, column: int):
        super().__init__(message)
        self.line = line
        self.column = column

    def __str__(self) -> str:
        return f"{self.message} at line {self.line + 1}, col {self.column + 1}"

    def to_diagnostic(self, width: int = 5) -> Dict[str, Any]:
        """Maps the error onto an editor range (0-based, end is exclusive)."""
        return {
            "range": {
                "start": {"line": self.line, "character": self.column},
                "end": {"line": self.line, "character": self.column + width},
            },
            "severity": "error",
            "message": self.message,
        }


class HybridRuntimeError(HybridError):
    """Raised for any failure while evaluating a program."""
    def __init__(self, message: str, backend: Optional[str] = None):
        super().__init__(message)
        self.backend = backend
        self.call_stack: Optional[List[str]] = None


class ForeignError(HybridError):
    """Raised by the foreign bridge; names the backend that failed."""
    def __init__(self, backend: str, message: str):
        super().__init__(message)
        self.backend = backend

    def __str__(self) -> str:
        return f"[{self.backend}] {self.message}"


class ConfigError(HybridError):
    pass


class ReturnUnwind(Exception):
    """Control signal carrying a `return` value up to the enclosing call.

    Not a HybridError; only call boundaries catch it.
    """
    def __init__(self, value: Any = None):
        super().__init__("return")
        self.value = value


# =================================================================
# Declared types
# =================================================================

@dataclass(frozen=True)
class HybridType:
    """A declared type annotation. Parsed and kept, never enforced."""
    name: str
    params: Tuple['HybridType', ...] = ()

    def __str__(self) -> str:
        if self.name == "array":
            return f"array[{self.params[0]}]"
        if self.name == "map":
            return f"map{{{self.params[0]}, {self.params[1]}}}"
        return self.name

    @classmethod
    def array(cls, elem: 'HybridType') -> 'HybridType':
        return cls("array", (elem,))

    @classmethod
    def map(cls, key: 'HybridType', value: 'HybridType') -> 'HybridType':
        return cls("map", (key, value))


INT = HybridType("int")
FLOAT = HybridType("float")
STRING = HybridType("string")
BOOL = HybridType("bool")
VOID = HybridType("void")
NULL = HybridType("null")


# =================================================================
# Values
# =================================================================

class HybridMap(UserDict):
    """A string-keyed, insertion-ordered map value."""

    def __setitem__(self, key, value):
        if not isinstance(key, str):
            raise HybridRuntimeError("Map keys must be strings")
        self.data[key] = value

    def __repr__(self):
        from hybrid.hybrid_printer import Printer
        return Printer().render(self)


class _NoValue:
    """Marks a statement that produced no value (distinct from Null)."""
    def __repr__(self):
        return "Nothing<>"

    def __bool__(self):
        return False


NOTHING = _NoValue()


def type_name(value: Any) -> str:
    """Returns the Hybrid type name of a runtime value."""
    # bool is a subclass of int, so check it first
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, HybridMap):
        return "map"
    if value is None:
        return "null"
    raise TypeError(f"Not a Hybrid value: {value!r}")


def values_equal(left: Any, right: Any) -> bool:
    """Typed structural equality; values of different types are never equal."""
    lt, rt = type_name(left), type_name(right)
    if lt != rt:
        return False
    if lt == "array":
        return len(left) == len(right) and all(values_equal(a, b) for a, b in zip(left, right))
    if lt == "map":
        if left.keys() != right.keys():
            return False
        return all(values_equal(left[k], right[k]) for k in left.keys())
    return left == right


def is_integral(n: float) -> bool:
    return math.isfinite(n) and float(n).is_integer()


# =================================================================
# Environment and functions
# =================================================================

@dataclass
class Binding:
    value: Any
    is_const: bool = False


class Environment:
    """The flat name -> Binding table of a single call frame.

    There are no nested scopes: a call works on a clone of the caller's
    whole table and the caller's table is put back when the call ends.
    """
    def __init__(self, bindings: Optional[Dict[str, Binding]] = None):
        self.bindings: Dict[str, Binding] = bindings if bindings is not None else {}

    def __contains__(self, name: str) -> bool:
        return name in self.bindings

    def __len__(self) -> int:
        return len(self.bindings)

    def lookup(self, name: str) -> Binding:
        try:
            return self.bindings[name]
        except KeyError:
            raise HybridRuntimeError(f"Undefined variable: {name}") from None

    def get(self, name: str, default: Any = None) -> Any:
        binding = self.bindings.get(name)
        return binding.value if binding is not None else default

    def declare(self, name: str, value: Any, is_const: bool = False):
        existing = self.bindings.get(name)
        if existing is not None and existing.is_const:
            raise HybridRuntimeError(f"Cannot redeclare constant '{name}'")
        self.bindings[name] = Binding(value, is_const)

    def bind_parameter(self, name: str, value: Any):
        # Parameters shadow anything in the cloned frame, const or not.
        self.bindings[name] = Binding(value, False)

    def assign(self, name: str, value: Any):
        binding = self.lookup(name)
        if binding.is_const:
            raise HybridRuntimeError(f"Cannot reassign constant '{name}'")
        self.bindings[name] = Binding(value, False)

    def clone(self) -> 'Environment':
        return Environment(copy.deepcopy(self.bindings))

    def keys(self):
        return self.bindings.keys()

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        return f"<Environment bindings=[{keys}]>"


@dataclass
class FunctionDef:
    """A native Hybrid function. The body is a private copy of the AST."""
    name: str
    params: List[str]
    body: List[Any] = field(default_factory=list)


@dataclass
class ForeignFunctionDef:
    """A function whose body is opaque source for an external backend."""
    name: str
    params: List[str]
    source: str
    backend: str
