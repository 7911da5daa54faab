"""
A pretty-printer for Hybrid values and AST nodes.

`render` produces the display form used by `speak` and REPL echo.
`pformat` turns an AST back into valid, re-parseable Hybrid source.
"""
import math
from decimal import Decimal

from hybrid.hybrid_ast import (
    Program, NumberLiteral, BooleanLiteral, StringLiteral, Identifier, Assign,
    ArrayLiteral, MapLiteral, Index, Binary, Unary, Call, If, While,
    ExpressionStmt, VarDecl, BlockDecl, TypedParam, Return, Block,
)
from hybrid.hybrid_datatypes import HybridMap, HybridType, is_integral

_SOURCE_ESCAPES = {'\\': '\\\\', '"': '\\"', '\n': '\\n', '\t': '\\t', '\r': '\\r'}

# Nodes that never need parentheses when used as an operand
_ATOMIC = (NumberLiteral, BooleanLiteral, StringLiteral, Identifier, ArrayLiteral, MapLiteral, Index, Call)


def format_number(n: float) -> str:
    """Integral values print without a fraction; never uses exponent notation."""
    if math.isnan(n):
        return "NaN"
    if math.isinf(n):
        return "inf" if n > 0 else "-inf"
    if is_integral(n):
        return str(int(n))
    text = repr(float(n))
    if 'e' in text or 'E' in text:
        text = format(Decimal(text), 'f')
    return text


class Printer:
    """Formats Hybrid values and AST nodes into readable strings."""

    def __init__(self, indent_width=4):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    # ---------------------------------------------------------------
    # Values
    # ---------------------------------------------------------------

    def render(self, value) -> str:
        """Display form of a runtime value."""
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return format_number(value)
        if isinstance(value, str):
            return f'"{value}"'
        if isinstance(value, list):
            return "[" + ", ".join(self.render(v) for v in value) + "]"
        if isinstance(value, HybridMap):
            items = ", ".join(f'"{k}": {self.render(v)}' for k, v in value.items())
            return "{" + items + "}"
        return repr(value)

    # ---------------------------------------------------------------
    # AST -> source
    # ---------------------------------------------------------------

    def pformat(self, obj, level=0) -> str:
        """Public entry point to format an AST node."""
        handler = self._handlers.get(type(obj))
        if handler is None:
            raise TypeError(f"Cannot format {type(obj).__name__}")
        return handler(obj, level)

    def _create_handlers(self):
        return {
            Program: self._pformat_program,
            NumberLiteral: self._pformat_number,
            BooleanLiteral: self._pformat_bool,
            StringLiteral: self._pformat_string,
            Identifier: self._pformat_identifier,
            Assign: self._pformat_assign,
            ArrayLiteral: self._pformat_array,
            MapLiteral: self._pformat_map,
            Index: self._pformat_index,
            Binary: self._pformat_binary,
            Unary: self._pformat_unary,
            Call: self._pformat_call,
            If: self._pformat_if,
            While: self._pformat_while,
            ExpressionStmt: self._pformat_expression_stmt,
            VarDecl: self._pformat_var_decl,
            BlockDecl: self._pformat_block_decl,
            Return: self._pformat_return,
            Block: self._pformat_block,
            HybridType: self._pformat_type,
            TypedParam: self._pformat_param,
        }

    def _operand(self, node, level):
        text = self.pformat(node, level)
        return text if isinstance(node, _ATOMIC) else f"({text})"

    def _pformat_program(self, obj, level):
        return "\n".join(self.pformat(stmt, level) for stmt in obj.statements)

    def _pformat_number(self, obj, level):
        return format_number(obj.value)

    def _pformat_bool(self, obj, level):
        return 'true' if obj.value else 'false'

    def _pformat_string(self, obj, level):
        return '"' + "".join(_SOURCE_ESCAPES.get(ch, ch) for ch in obj.value) + '"'

    def _pformat_identifier(self, obj, level):
        return obj.name

    def _pformat_assign(self, obj, level):
        return f"{obj.name} = {self.pformat(obj.value, level)}"

    def _pformat_array(self, obj, level):
        return "[" + ", ".join(self.pformat(e, level) for e in obj.elements) + "]"

    def _pformat_map(self, obj, level):
        pairs = ", ".join(f"{self.pformat(k, level)}: {self.pformat(v, level)}" for k, v in obj.pairs)
        return "{" + pairs + "}"

    def _pformat_index(self, obj, level):
        return f"{self._operand(obj.target, level)}[{self.pformat(obj.index, level)}]"

    def _pformat_binary(self, obj, level):
        return f"{self._operand(obj.left, level)} {obj.op} {self._operand(obj.right, level)}"

    def _pformat_unary(self, obj, level):
        return f"{obj.op}{self._operand(obj.operand, level)}"

    def _pformat_call(self, obj, level):
        args = ", ".join(self.pformat(a, level) for a in obj.args)
        return f"{obj.name}({args})"

    def _pformat_if(self, obj, level):
        text = f"if ({self.pformat(obj.condition, level)}) {self.pformat(obj.then_branch, level)}"
        if obj.else_branch is not None:
            text += f" else {self.pformat(obj.else_branch, level)}"
        return text

    def _pformat_while(self, obj, level):
        return f"while ({self.pformat(obj.condition, level)}) {self.pformat(obj.body, level)}"

    def _pformat_expression_stmt(self, obj, level):
        return f"{self.pformat(obj.expr, level)};"

    def _pformat_var_decl(self, obj, level):
        keyword = "const" if obj.is_const else "var"
        prefix = f"{self.pformat(obj.declared_type, level)} " if obj.declared_type is not None else ""
        return f"{prefix}{keyword} {obj.name} = {self.pformat(obj.value, level)};"

    def _pformat_type(self, obj, level):
        return str(obj)

    def _pformat_param(self, obj, level):
        if obj.param_type is None:
            return obj.name
        return f"{obj.param_type} {obj.name}"

    def _pformat_return_types(self, obj):
        types = obj.return_types
        if len(types) == 1:
            return f"{types[0]} "
        if types or obj.is_foreign:
            return "(" + ", ".join(str(t) for t in types) + ") "
        return ""

    def _pformat_block_decl(self, obj, level):
        params = ", ".join(self.pformat(p, level) for p in obj.params)
        tag = f"#{obj.foreign_tag} " if obj.is_foreign else ""
        header = f"{tag}{self._pformat_return_types(obj)}block {obj.name}({params}) "
        if obj.is_foreign:
            indent = self._indent_char * (level + 1)
            body = "\n".join(indent + line if line else line for line in obj.raw_source.splitlines())
            return header + "{\n" + body + "\n" + self._indent_char * level + "}"
        return header + self._pformat_statements(obj.body, level)

    def _pformat_return(self, obj, level):
        if obj.value is None:
            return "return;"
        return f"return {self.pformat(obj.value, level)};"

    def _pformat_block(self, obj, level):
        return self._pformat_statements(obj.statements, level)

    def _pformat_statements(self, statements, level):
        if not statements:
            return "{}"
        outer_indent = self._indent_char * level
        inner_level = level + 1
        inner_indent = self._indent_char * inner_level
        lines = [inner_indent + self.pformat(stmt, inner_level) for stmt in statements]
        return "{\n" + "\n".join(lines) + f"\n{outer_indent}}}"
