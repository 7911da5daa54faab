"""
The core Hybrid interpreter: a tree-walking Evaluator.

The evaluator owns one flat Environment and one function table. Calls run
against a clone of the caller's Environment and the caller's table is put
back wholesale when the call ends, so a callee can never durably change
caller state.
"""
import copy
import logging
from typing import Any, Dict, List, Union

from hybrid.hybrid_ast import (
    Program, NumberLiteral, BooleanLiteral, StringLiteral, Identifier, Assign,
    ArrayLiteral, MapLiteral, Index, Binary, Unary, Call, If, While,
    ExpressionStmt, VarDecl, BlockDecl, Return, Block,
)
from hybrid.hybrid_datatypes import (
    Environment, FunctionDef, ForeignFunctionDef, HybridMap,
    HybridRuntimeError, ForeignError, ReturnUnwind, NOTHING,
    type_name, values_equal, is_integral,
)
from hybrid.hybrid_printer import Printer

logger = logging.getLogger("hybrid.interpreter")

Callable = Union[FunctionDef, ForeignFunctionDef]

_ARITHMETIC = {
    '+': lambda a, b: a + b,
    '-': lambda a, b: a - b,
    '*': lambda a, b: a * b,
}

_COMPARISON = {
    '<': lambda a, b: a < b,
    '>': lambda a, b: a > b,
    '<=': lambda a, b: a <= b,
    '>=': lambda a, b: a >= b,
}

_OP_NAMES = {
    '+': 'Add', '-': 'Subtract', '*': 'Multiply', '/': 'Divide',
    '==': 'Equal', '!=': 'NotEqual', '<': 'LessThan', '>': 'GreaterThan',
    '<=': 'LessThanOrEqual', '>=': 'GreaterThanOrEqual',
}


class Evaluator:
    """Walks statements and expressions against the current Environment."""

    def __init__(self, bridge=None):
        self.environment = Environment()
        self.functions: Dict[str, Callable] = {}
        self.side_effects: List[Dict[str, Any]] = []
        self.call_stack: List[str] = []
        self.printer = Printer()
        self._bridge = bridge

    @property
    def bridge(self):
        # Built on the first foreign call.
        if self._bridge is None:
            from hybrid.hybrid_bridge import ForeignBridge
            self._bridge = ForeignBridge()
        return self._bridge

    def _dbg(self, *parts):
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(" ".join(str(p) for p in parts))

    # ---------------------------------------------------------------
    # Programs and statements
    # ---------------------------------------------------------------

    def evaluate(self, program: Program) -> Any:
        """Runs every statement; returns the last produced value or NOTHING."""
        last = NOTHING
        for stmt in program.statements:
            result = self.execute_top_level(stmt)
            if result is not NOTHING:
                last = result
        return last

    def execute_top_level(self, stmt) -> Any:
        try:
            return self.execute(stmt)
        except ReturnUnwind as ret:
            raise HybridRuntimeError(f"Uncaught return: {self.printer.render(ret.value)}") from None

    def execute(self, stmt) -> Any:
        """Returns the statement's produced value, or NOTHING."""
        match stmt:
            case ExpressionStmt():
                return self.eval(stmt.expr)
            case VarDecl():
                value = self.eval(stmt.value)
                self.environment.declare(stmt.name, value, stmt.is_const)
                return NOTHING
            case BlockDecl():
                self.declare_function(stmt)
                return NOTHING
            case Return():
                value = self.eval(stmt.value) if stmt.value is not None else None
                raise ReturnUnwind(value)
            case Block():
                return self.execute_block(stmt.statements)
        raise HybridRuntimeError(f"Unknown statement: {type(stmt).__name__}")

    def execute_block(self, statements) -> Any:
        last = NOTHING
        for stmt in statements:
            result = self.execute(stmt)
            if result is not NOTHING:
                last = result
        return last

    def declare_function(self, decl: BlockDecl):
        params = [p.name for p in decl.params]
        if decl.is_foreign:
            fn = ForeignFunctionDef(decl.name, params, decl.raw_source or "", decl.foreign_tag)
        else:
            existing = self.functions.get(decl.name)
            if isinstance(existing, ForeignFunctionDef):
                # Foreign definitions always win over native ones of the same name.
                self._dbg("native", decl.name, "shadowed by foreign", existing.backend)
                return
            fn = FunctionDef(decl.name, params, copy.deepcopy(decl.body))
        self._dbg("declare", type(fn).__name__, decl.name, params)
        self.functions[decl.name] = fn

    # ---------------------------------------------------------------
    # Expressions
    # ---------------------------------------------------------------

    def eval(self, expr) -> Any:
        match expr:
            case NumberLiteral():
                return float(expr.value)
            case BooleanLiteral():
                return expr.value
            case StringLiteral():
                return expr.value
            case Identifier():
                return self.environment.lookup(expr.name).value
            case Assign():
                binding = self.environment.lookup(expr.name)
                if binding.is_const:
                    raise HybridRuntimeError(f"Cannot reassign constant '{expr.name}'")
                value = self.eval(expr.value)
                self.environment.assign(expr.name, value)
                return value
            case ArrayLiteral():
                return [self.eval(e) for e in expr.elements]
            case MapLiteral():
                result = HybridMap()
                for key_expr, value_expr in expr.pairs:
                    key = self.eval(key_expr)
                    value = self.eval(value_expr)
                    result[key] = value
                return result
            case Index():
                return self.eval_index(self.eval(expr.target), self.eval(expr.index))
            case Binary():
                left = self.eval(expr.left)
                right = self.eval(expr.right)
                return self.binary_op(expr.op, left, right)
            case Unary():
                return self.unary_op(expr.op, self.eval(expr.operand))
            case Call():
                if expr.name == 'speak':
                    return self.speak(expr.args)
                return self.call(expr.name, expr.args)
            case If():
                return self.eval_if(expr)
            case While():
                return self.eval_while(expr)
        raise HybridRuntimeError(f"Unknown expression: {type(expr).__name__}")

    def eval_if(self, expr: If) -> Any:
        cond = self.eval(expr.condition)
        if not isinstance(cond, bool):
            raise HybridRuntimeError("If condition must be a boolean")
        branch = expr.then_branch if cond else expr.else_branch
        if branch is None:
            return None
        result = self.execute(branch)
        return None if result is NOTHING else result

    def eval_while(self, expr: While) -> Any:
        last = None
        while True:
            cond = self.eval(expr.condition)
            if not isinstance(cond, bool):
                raise HybridRuntimeError("While condition must be a boolean")
            if not cond:
                return last
            result = self.execute(expr.body)
            if result is not NOTHING:
                last = result

    def eval_index(self, target: Any, index: Any) -> Any:
        match type_name(target):
            case 'array':
                if type_name(index) != 'number':
                    raise HybridRuntimeError("Array index must be a number")
                if not is_integral(index):
                    raise HybridRuntimeError("Array index must be an integer")
                if index < 0 or index >= len(target):
                    raise HybridRuntimeError(
                        f"Index {self.printer.render(index)} out of bounds (len {len(target)})")
                return target[int(index)]
            case 'map':
                if type_name(index) != 'string':
                    raise HybridRuntimeError("Map index must be a string")
                return target.get(index)
        raise HybridRuntimeError("Cannot index non-collection type")

    def binary_op(self, op: str, left: Any, right: Any) -> Any:
        lt, rt = type_name(left), type_name(right)
        if op == '==':
            return values_equal(left, right)
        if op == '!=':
            return not values_equal(left, right)
        if lt == rt == 'number':
            if op in _ARITHMETIC:
                return _ARITHMETIC[op](left, right)
            if op == '/':
                if right == 0:
                    raise HybridRuntimeError("Division by zero")
                return left / right
            if op in _COMPARISON:
                return _COMPARISON[op](left, right)
        if lt == rt == 'string' and op == '+':
            return left + right
        op_name = _OP_NAMES.get(op, op)
        if lt == rt:
            raise HybridRuntimeError(f"Cannot apply {op_name} to {lt}s")
        raise HybridRuntimeError(
            f"Cannot apply {op_name} to {lt} {self.printer.render(left)} and {rt} {self.printer.render(right)}")

    def unary_op(self, op: str, operand: Any) -> Any:
        kind = type_name(operand)
        if op == '-' and kind == 'number':
            return -operand
        if op == '!' and kind == 'boolean':
            return not operand
        op_name = 'Negate' if op == '-' else 'Not'
        raise HybridRuntimeError(f"Cannot apply {op_name} to {kind} {self.printer.render(operand)}")

    # ---------------------------------------------------------------
    # Calls
    # ---------------------------------------------------------------

    def speak(self, args) -> None:
        rendered = [self.printer.render(self.eval(arg)) for arg in args]
        self.side_effects.append({'topics': ['stdout'], 'message': " ".join(rendered)})
        return None

    def resolve(self, name: str) -> Callable:
        fn = self.functions.get(name)
        if fn is None:
            raise HybridRuntimeError(f"Undefined function: {name}")
        return fn

    def call(self, name: str, arg_exprs) -> Any:
        fn = self.resolve(name)
        if len(arg_exprs) != len(fn.params):
            raise HybridRuntimeError(
                f"Function {name} expects {len(fn.params)} arguments, got {len(arg_exprs)}")
        args = [self.eval(a) for a in arg_exprs]
        match fn:
            case ForeignFunctionDef():
                return self.call_foreign(fn, args)
            case FunctionDef():
                return self.call_native(fn, args)

    def call_native(self, fn: FunctionDef, args: List[Any]) -> Any:
        saved = self.environment
        frame = saved.clone()
        for param, value in zip(fn.params, args):
            frame.bind_parameter(param, value)
        self.environment = frame
        self.call_stack.append(fn.name)
        result = None
        try:
            for stmt in fn.body:
                produced = self.execute(stmt)
                if produced is not NOTHING:
                    result = produced
        except ReturnUnwind as ret:
            result = ret.value
        except RecursionError:
            # Raised here or in any frame below; the nearest call converts it.
            err = HybridRuntimeError("Maximum call depth exceeded")
            err.call_stack = list(self.call_stack)
            raise err from None
        except HybridRuntimeError as e:
            # Innermost frame wins; outer calls see the stack already recorded.
            if e.call_stack is None:
                e.call_stack = list(self.call_stack)
            raise
        finally:
            self.call_stack.pop()
            self.environment = saved
        return result

    def call_foreign(self, fn: ForeignFunctionDef, args: List[Any]) -> Any:
        self._dbg("foreign call", fn.name, "->", fn.backend)
        try:
            results = self.bridge.call(fn.backend, fn.params, fn.source, args)
        except ForeignError as e:
            raise HybridRuntimeError(f"[{e.backend}] {e.message}", backend=e.backend) from e
        return results[0] if results else None
