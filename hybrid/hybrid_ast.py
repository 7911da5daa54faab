"""
AST node types produced by the parser and walked by the evaluator.

Nodes are plain data. Location info (0-based line/col of the first token)
is carried on every node but excluded from equality so that structurally
identical trees compare equal regardless of layout.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from hybrid.hybrid_datatypes import HybridType


@dataclass
class Node:
    line: int = field(default=0, kw_only=True, compare=False, repr=False)
    col: int = field(default=0, kw_only=True, compare=False, repr=False)


# -----------------------------------------------------------------
# Expressions
# -----------------------------------------------------------------

@dataclass
class NumberLiteral(Node):
    value: float


@dataclass
class BooleanLiteral(Node):
    value: bool


@dataclass
class StringLiteral(Node):
    value: str


@dataclass
class Identifier(Node):
    name: str


@dataclass
class Assign(Node):
    name: str
    value: 'Expr'


@dataclass
class ArrayLiteral(Node):
    elements: List['Expr']


@dataclass
class MapLiteral(Node):
    pairs: List[Tuple['Expr', 'Expr']]


@dataclass
class Index(Node):
    target: 'Expr'
    index: 'Expr'


@dataclass
class Binary(Node):
    op: str          # one of + - * / == != < > <= >=
    left: 'Expr'
    right: 'Expr'


@dataclass
class Unary(Node):
    op: str          # '-' or '!'
    operand: 'Expr'


@dataclass
class Call(Node):
    name: str
    args: List['Expr']


@dataclass
class If(Node):
    condition: 'Expr'
    then_branch: 'Block'
    else_branch: Optional['Block'] = None


@dataclass
class While(Node):
    condition: 'Expr'
    body: 'Block'


Expr = (NumberLiteral | BooleanLiteral | StringLiteral | Identifier | Assign | ArrayLiteral
        | MapLiteral | Index | Binary | Unary | Call | If | While)


# -----------------------------------------------------------------
# Statements
# -----------------------------------------------------------------

@dataclass
class ExpressionStmt(Node):
    expr: Expr


@dataclass
class VarDecl(Node):
    is_const: bool
    name: str
    declared_type: Optional[HybridType]
    value: Expr


@dataclass
class TypedParam:
    name: str
    param_type: Optional[HybridType] = None


@dataclass
class BlockDecl(Node):
    name: str
    params: List[TypedParam]
    return_types: List[HybridType]
    body: List['Stmt'] = field(default_factory=list)
    foreign_tag: Optional[str] = None
    raw_source: Optional[str] = None

    @property
    def is_foreign(self) -> bool:
        return self.foreign_tag is not None


@dataclass
class Return(Node):
    value: Optional[Expr] = None


@dataclass
class Block(Node):
    statements: List['Stmt']


Stmt = ExpressionStmt | VarDecl | BlockDecl | Return | Block


@dataclass
class Program:
    statements: List[Stmt]
