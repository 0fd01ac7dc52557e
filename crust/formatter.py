"""Render an AST back to crust source.

The output is normalised (one statement per line, four-space indent,
single spaces around binary operators) and parses back to an equal AST.
Parentheses are only emitted for ``SubExpr`` nodes, which record the ones
written in the parsed text.
"""

from typing import List

from .ast import (
    Argument, ArgPart, Assign, AssignOp, BinaryOp, Block, BreakStmt, Call,
    ClosureLit, Column, ContinueStmt, ErrorCheck, Expand, FnDef, For, If,
    Index, Let, ListLit, Literal, Loop, MapLit, Node, Pipe, Program,
    Redirect, RegexLit, ReturnStmt, SubExpr, Try, UnaryOp, Variable, While,
)
from .lexer import KEYWORDS
from .parser import IDENTIFIER

INDENT = '    '

EXPAND_ESCAPES = {
    '\\': '\\\\',
    '"': '\\"',
    '$': '\\$',
    '\n': '\\n',
    '\t': '\\t',
    '\r': '\\r',
    '\0': '\\0',
}


def format_name(name: str) -> str:
    if name in KEYWORDS or name in ('true', 'false') or not IDENTIFIER.match(name):
        return '$' + name
    return name


def raw_string(text: str) -> str:
    if text.endswith('\\') or "\\'" in text:
        return expand_string([text])
    return "'" + text.replace("'", "\\'") + "'"


def expand_string(parts: List) -> str:
    out = ['"']
    for i, part in enumerate(parts):
        if isinstance(part, str):
            out.append(''.join(EXPAND_ESCAPES.get(c, c) for c in part))
        elif isinstance(part, Variable):
            following = parts[i + 1] if i + 1 < len(parts) else None
            if isinstance(following, str) and following[:1] and (following[0].isalnum() or following[0] == '_'):
                out.append(f"$(${part.name})")
            else:
                out.append(f"${part.name}")
        else:
            out.append(f"$({format_expr(part)})")
    out.append('"')
    return ''.join(out)


def format_part(part: ArgPart) -> str:
    if part.kind == 'bare':
        return part.value
    if part.kind == 'quoted':
        return raw_string(part.value)
    if part.kind in ('int', 'float'):
        return part.text if part.text is not None else str(part.value)
    if part.kind == 'variable':
        return f"${part.value}"
    return format_expr(part.value)


def format_argument(argument: Argument) -> str:
    return ''.join(format_part(part) for part in argument.parts)


def format_block(block: Block, level: int) -> str:
    if not block.body:
        return '{}'
    inner = '\n'.join(format_stmt(stmt, level + 1) for stmt in block.body)
    return '{\n' + inner + '\n' + INDENT * level + '}'


def format_expr(node: Node, level: int = 0) -> str:
    if isinstance(node, Literal):
        if node.kind == 'str':
            return raw_string(node.value)
        if node.kind == 'bool':
            return 'true' if node.value else 'false'
        return str(node.value)
    if isinstance(node, Variable):
        return f"${node.name}"
    if isinstance(node, BinaryOp):
        lhs = format_expr(node.lhs, level)
        rhs = format_expr(node.rhs, level)
        if node.op == '..':
            return f"{lhs}..{rhs}"
        return f"{lhs} {node.op} {rhs}"
    if isinstance(node, UnaryOp):
        operand = format_expr(node.operand, level)
        if operand[:1] in ('=', '~'):
            return f"{node.op} {operand}"
        return node.op + operand
    if isinstance(node, SubExpr):
        return f"({format_expr(node.expr, level)})"
    if isinstance(node, Column):
        return f"{format_expr(node.expr, level)}.{node.name}"
    if isinstance(node, Index):
        return f"{format_expr(node.expr, level)}[{format_expr(node.index, level)}]"
    if isinstance(node, Expand):
        return expand_string(node.parts)
    if isinstance(node, ListLit):
        return '[' + ', '.join(format_expr(e, level) for e in node.elements) + ']'
    if isinstance(node, MapLit):
        entries = ', '.join(f"{format_expr(k, level)}: {format_expr(v, level)}" for k, v in node.entries)
        return '@{' + entries + '}'
    if isinstance(node, RegexLit):
        return '@' + raw_string(node.source)
    if isinstance(node, ClosureLit):
        params = '|' + ', '.join(map(format_name, node.params)) + '|'
        if not node.body.body:
            return '{' + params + '}'
        return '{' + params + format_block(node.body, level)[1:]
    if isinstance(node, ErrorCheck):
        return f"?({format_expr(node.expr, level)})"
    if isinstance(node, Call):
        words = [format_argument(node.command)] + [format_argument(a) for a in node.args]
        return ('&' if node.exec else '') + ' '.join(words)
    if isinstance(node, Redirect):
        if node.direction == 'left':
            op = '<'
        else:
            op = '>>' if node.append else '>'
        return f"{format_expr(node.call, level)} {op} {format_argument(node.target)}"
    if isinstance(node, Pipe):
        return ' | '.join(format_expr(stage, level) for stage in node.stages)
    raise NotImplementedError(f"format: unexpected node type {type(node)}")


def format_stmt(node: Node, level: int = 0) -> str:
    pad = INDENT * level
    if isinstance(node, Block):
        return pad + format_block(node, level)
    if isinstance(node, Let):
        keyword = 'export' if node.export else 'let'
        if node.value is None:
            return f"{pad}{keyword} {format_name(node.name)}"
        return f"{pad}{keyword} {format_name(node.name)} = {format_expr(node.value, level)}"
    if isinstance(node, Assign):
        return f"{pad}${node.name} = {format_expr(node.value, level)}"
    if isinstance(node, AssignOp):
        return f"{pad}${node.name} {node.op}= {format_expr(node.value, level)}"
    if isinstance(node, FnDef):
        return f"{pad}fn {node.name}({', '.join(map(format_name, node.params))}) {format_block(node.body, level)}"
    if isinstance(node, If):
        return pad + format_if(node, level)
    if isinstance(node, While):
        return f"{pad}while {format_expr(node.condition, level)} {format_block(node.body, level)}"
    if isinstance(node, Loop):
        return f"{pad}loop {format_block(node.body, level)}"
    if isinstance(node, For):
        return (f"{pad}for {format_name(node.var)} in {format_expr(node.iterable, level)} "
                f"{format_block(node.body, level)}")
    if isinstance(node, Try):
        name = f" {format_name(node.err_name)}" if node.err_name is not None else ''
        return (f"{pad}try {format_block(node.body, level)} catch{name} "
                f"{format_block(node.handler, level)}")
    if isinstance(node, ReturnStmt):
        if node.value is None:
            return pad + 'return'
        return f"{pad}return {format_expr(node.value, level)}"
    if isinstance(node, BreakStmt):
        return pad + 'break'
    if isinstance(node, ContinueStmt):
        return pad + 'continue'
    return pad + format_expr(node, level)


def format_if(node: If, level: int) -> str:
    text = f"if {format_expr(node.condition, level)} {format_block(node.body, level)}"
    if isinstance(node.orelse, If):
        text += ' else ' + format_if(node.orelse, level)
    elif node.orelse is not None:
        text += ' else ' + format_block(node.orelse, level)
    return text


def to_source(node: Node) -> str:
    """Render a Program (or any single node) as crust source text."""
    if isinstance(node, Program):
        return ''.join(format_stmt(stmt) + '\n' for stmt in node.body)
    return format_stmt(node)
