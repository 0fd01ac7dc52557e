"""Abstract Syntax Tree (AST) definitions for the crust shell language.

Nodes own their children and never point back at their parents. Every node
carries an optional keyword-only ``span`` that is ignored by equality, so
two parses of equivalent source compare equal even when their layout
differs.
"""

from __future__ import annotations

from dataclasses import KW_ONLY, dataclass, field
from typing import Any, List, Optional, Tuple, Union

from .lexer import Span
from .types import RegexVal


@dataclass
class Node:
    """Base class for all AST nodes."""
    _: KW_ONLY
    span: Optional[Span] = field(default=None, compare=False, repr=False)


@dataclass
class Program(Node):
    body: List[Node]


@dataclass
class Block(Node):
    body: List[Node]


###############################################################################
# Statements
###############################################################################

@dataclass
class Let(Node):
    name: str
    value: Optional[Node]
    export: bool = False


@dataclass
class Assign(Node):
    name: str
    value: Node


@dataclass
class AssignOp(Node):
    name: str
    op: str  # the arithmetic operator, e.g. '+' for '+='
    value: Node


@dataclass
class If(Node):
    condition: Node
    body: Block
    orelse: Optional[Node] = None  # Block or a nested If


@dataclass
class FnDef(Node):
    name: str
    params: List[str]
    body: Block


@dataclass
class While(Node):
    condition: Node
    body: Block


@dataclass
class Loop(Node):
    body: Block


@dataclass
class For(Node):
    var: str
    iterable: Node
    body: Block


@dataclass
class ReturnStmt(Node):
    value: Optional[Node] = None


@dataclass
class BreakStmt(Node):
    pass


@dataclass
class ContinueStmt(Node):
    pass


@dataclass
class Try(Node):
    body: Block
    err_name: Optional[str]
    handler: Block


###############################################################################
# Arguments
###############################################################################

@dataclass
class ArgPart(Node):
    """One fragment of a command argument.

    ``kind`` is one of 'bare', 'quoted', 'int', 'float', 'variable',
    'expand' or 'expr'. Bare values keep their source text, escapes
    included; int and float parts carry ``text`` for concatenation.
    """
    kind: str
    value: Any
    text: Optional[str] = None


@dataclass
class Argument(Node):
    parts: List[ArgPart]


###############################################################################
# Expressions
###############################################################################

@dataclass
class Call(Node):
    command: Argument
    args: List[Argument]
    exec: bool = False


@dataclass
class Pipe(Node):
    stages: List[Node]


@dataclass
class Redirect(Node):
    call: Node
    target: Argument
    direction: str  # 'left' or 'right'
    append: bool = False


@dataclass
class Variable(Node):
    name: str


@dataclass
class BinaryOp(Node):
    op: str
    lhs: Node
    rhs: Node


@dataclass
class UnaryOp(Node):
    op: str
    operand: Node


@dataclass
class SubExpr(Node):
    expr: Node


@dataclass
class Column(Node):
    expr: Node
    name: str


@dataclass
class Index(Node):
    expr: Node
    index: Node


@dataclass
class ClosureLit(Node):
    params: List[str]
    body: Block


@dataclass
class ErrorCheck(Node):
    expr: Node


###############################################################################
# Literals
###############################################################################

@dataclass
class Literal(Node):
    value: Any
    kind: str  # 'str', 'int', 'float' or 'bool'


@dataclass
class Expand(Node):
    parts: List[Union[str, Node]]


@dataclass
class ListLit(Node):
    elements: List[Node]


@dataclass
class MapLit(Node):
    entries: List[Tuple[Node, Node]]


@dataclass
class RegexLit(Node):
    source: str
    regex: Optional[RegexVal] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if self.regex is None:
            self.regex = RegexVal(self.source)
