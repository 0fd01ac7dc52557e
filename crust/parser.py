"""Recursive-descent parser for the crust shell language.

Statements are parsed by recursive descent, binary expressions by
precedence climbing. The parser holds a single buffered token pulled from
the lexer and never backtracks. It stops at the first error.
"""

from __future__ import annotations

import re
import string
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Iterator, List, Optional, Tuple

from .ast import (
    Argument, ArgPart, Assign, AssignOp, BinaryOp, Block, BreakStmt, Call,
    ClosureLit, Column, ContinueStmt, ErrorCheck, Expand, FnDef, For, If,
    Index, Let, ListLit, Literal, Loop, MapLit, Node, Pipe, Program,
    Redirect, RegexLit, ReturnStmt, SubExpr, Try, UnaryOp, Variable, While,
)
from .errors import ParseError
from .lexer import KEYWORDS, Lexer, Span, Token, unescape_char
from .types import RegexVal

# operator -> (precedence, right associative)
BINARY_OPERATORS = {
    '**': (9, True),
    '*': (8, False),
    '/': (7, False),
    '%': (7, False),
    '-': (6, False),
    '+': (5, False),
    '..': (4, False),
    '==': (3, False),
    '!=': (3, False),
    '<': (3, False),
    '<=': (3, False),
    '>': (3, False),
    '>=': (3, False),
    '=~': (3, False),
    '!~': (3, False),
    '&&': (2, False),
    '||': (2, False),
}

COMPARISON_OPERATORS = {'==', '!=', '<', '<=', '>', '>=', '=~', '!~'}

ASSIGN_OPERATORS = {'+=', '-=', '*=', '/=', '%=', '**='}

# Tokens that end an argument.
ARG_STOP = {
    'SPACE', 'NEWLINE', ';', '|', '||', '&', '&&', ')', '}', ',', '<', '>',
    '>>', '#', '{',
}

IDENTIFIER = re.compile(r'[^\W\d]\w*\Z')

# Statements and expressions nested deeper than this are rejected.
MAX_NESTING = 128


@dataclass(frozen=True)
class ParseContext:
    in_loop: bool = False
    in_function: bool = False


class Parser:
    def __init__(self, source: str):
        self.source = source
        self.tokens: Iterator[Token] = iter(Lexer(source))
        self.current: Optional[Token] = next(self.tokens, None)
        self.last_end = 0
        self.nesting = 0

    ###########################################################################
    # Token access
    ###########################################################################

    def peek_raw(self) -> Optional[Token]:
        return self.current

    def eat_raw(self) -> Token:
        token = self.current
        if token is None:
            raise self.expected('a token')
        self.last_end = token.span.end
        self.current = next(self.tokens, None)
        return token

    def skip_comment(self):
        while self.current is not None and self.current.kind == '#':
            while self.current is not None and self.current.kind != 'NEWLINE':
                self.last_end = self.current.span.end
                self.current = next(self.tokens, None)

    def peek(self) -> Optional[Token]:
        self.skip_comment()
        return self.current

    def eat(self) -> Token:
        self.skip_comment()
        return self.eat_raw()

    def at(self, *kinds: str) -> bool:
        token = self.peek()
        return token is not None and token.kind in kinds

    def expect(self, kind: str) -> Token:
        token = self.peek()
        if token is None:
            raise self.expected(f"'{kind}'")
        if token.kind != kind:
            raise self.unexpected(token)
        return self.eat_raw()

    def skip_space(self):
        while self.at('SPACE'):
            self.eat_raw()

    def skip_whitespace(self):
        while self.at('SPACE', 'NEWLINE'):
            self.eat_raw()

    def span_from(self, start: Span) -> Span:
        return Span(start.start, max(start.end, self.last_end))

    def unexpected(self, token: Token) -> ParseError:
        text = 'newline' if token.kind == 'NEWLINE' else token.text(self.source)
        return ParseError('UnexpectedToken', f"unexpected token '{text}'", token.span)

    def expected(self, what: str) -> ParseError:
        end = len(self.source)
        return ParseError('ExpectedToken', f"expected {what} but reached end of input", Span(end, end))

    @contextmanager
    def nested(self):
        self.nesting += 1
        try:
            if self.nesting > MAX_NESTING:
                token = self.peek()
                end = len(self.source)
                span = token.span if token is not None else Span(end, end)
                raise ParseError('NestingTooDeep', f"nesting exceeds {MAX_NESTING} levels", span)
            yield
        finally:
            self.nesting -= 1

    ###########################################################################
    # Sequences and statements
    ###########################################################################

    def parse(self) -> Program:
        body = self.parse_sequence(ParseContext(), block=False)
        return Program(body, span=Span(0, len(self.source)))

    def parse_sequence(self, ctx: ParseContext, block: bool) -> List[Node]:
        body: List[Node] = []
        while True:
            while self.at('SPACE', 'NEWLINE', ';'):
                self.eat_raw()
            token = self.peek()
            if token is None:
                if block:
                    raise self.expected("'}'")
                return body
            if token.kind == '}':
                if block:
                    return body
                raise self.unexpected(token)
            body.append(self.parse_compound(ctx))
            self.skip_space()
            token = self.peek()
            if token is None or token.kind in ('NEWLINE', ';'):
                continue
            if block and token.kind == '}':
                continue
            raise self.unexpected(token)

    def parse_block(self, ctx: ParseContext) -> Block:
        start = self.expect('{').span
        body = self.parse_sequence(ctx, block=True)
        self.expect('}')
        return Block(body, span=self.span_from(start))

    def parse_compound(self, ctx: ParseContext) -> Node:
        with self.nested():
            kind = self.peek().kind
            if kind == '{':
                return self.parse_block(ctx)
            if kind == 'VARIABLE':
                return self.parse_variable_stmt()
            if kind in ('let', 'export'):
                return self.parse_let()
            if kind == 'fn':
                return self.parse_fn()
            if kind == 'loop':
                start = self.eat().span
                self.skip_space()
                body = self.parse_block(replace(ctx, in_loop=True))
                return Loop(body, span=self.span_from(start))
            if kind == 'while':
                return self.parse_while(ctx)
            if kind == 'for':
                return self.parse_for(ctx)
            if kind == 'if':
                return self.parse_if(ctx)
            if kind == 'try':
                return self.parse_try(ctx)
            if kind == 'break':
                token = self.eat()
                if not ctx.in_loop:
                    raise ParseError('BreakOutsideLoop', "'break' outside of a loop", token.span)
                return BreakStmt(span=token.span)
            if kind == 'continue':
                token = self.eat()
                if not ctx.in_loop:
                    raise ParseError('ContinueOutsideLoop', "'continue' outside of a loop", token.span)
                return ContinueStmt(span=token.span)
            if kind == 'return':
                return self.parse_return(ctx)
            return self.parse_expr(cmd=True)

    def parse_name(self) -> str:
        token = self.peek()
        if token is None:
            raise self.expected('a name')
        if token.kind == 'VARIABLE':
            return self.eat_raw().value
        if token.kind in ('SYMBOL', 'BOOL') or token.kind in KEYWORDS:
            text = token.text(self.source)
            if token.kind != 'SYMBOL' or not IDENTIFIER.match(text):
                raise ParseError('InvalidIdentifier', f"invalid identifier '{text}'", token.span)
            return self.eat_raw().value
        raise self.unexpected(token)

    def parse_let(self) -> Let:
        token = self.eat()
        self.skip_space()
        name = self.parse_name()
        self.skip_space()
        value = None
        if self.at('='):
            self.eat_raw()
            self.skip_whitespace()
            value = self.parse_expr(cmd=True)
        return Let(name, value, export=token.kind == 'export', span=self.span_from(token.span))

    def parse_fn(self) -> FnDef:
        start = self.eat().span
        self.skip_space()
        token = self.peek()
        if token is None:
            raise self.expected('a function name')
        if token.kind == 'VARIABLE':
            raise ParseError('InvalidIdentifier', f"invalid identifier '{token.text(self.source)}'", token.span)
        name = self.parse_name()
        self.skip_space()
        self.expect('(')
        params = self.parse_params(')')
        self.skip_space()
        body = self.parse_block(ParseContext(in_function=True))
        return FnDef(name, params, body, span=self.span_from(start))

    def parse_params(self, close: str) -> List[str]:
        params: List[str] = []
        self.skip_whitespace()
        while not self.at(close):
            params.append(self.parse_name())
            self.skip_whitespace()
            if self.at(','):
                self.eat_raw()
                self.skip_whitespace()
            elif not self.at(close):
                token = self.peek()
                if token is None:
                    raise self.expected(f"'{close}'")
                raise self.unexpected(token)
        self.eat_raw()
        return params

    def parse_while(self, ctx: ParseContext) -> While:
        start = self.eat().span
        self.skip_space()
        condition = self.parse_expr(cmd=False)
        self.skip_space()
        body = self.parse_block(replace(ctx, in_loop=True))
        return While(condition, body, span=self.span_from(start))

    def parse_for(self, ctx: ParseContext) -> For:
        start = self.eat().span
        self.skip_space()
        var = self.parse_name()
        self.skip_space()
        self.expect('in')
        self.skip_space()
        iterable = self.parse_expr(cmd=False)
        self.skip_space()
        body = self.parse_block(replace(ctx, in_loop=True))
        return For(var, iterable, body, span=self.span_from(start))

    def parse_if(self, ctx: ParseContext) -> If:
        with self.nested():
            start = self.eat().span
            self.skip_space()
            condition = self.parse_expr(cmd=False)
            self.skip_space()
            body = self.parse_block(ctx)
            self.skip_space()
            orelse = None
            if self.at('else'):
                self.eat_raw()
                self.skip_space()
                if self.at('if'):
                    orelse = self.parse_if(ctx)
                else:
                    orelse = self.parse_block(ctx)
            return If(condition, body, orelse, span=self.span_from(start))

    def parse_try(self, ctx: ParseContext) -> Try:
        start = self.eat().span
        self.skip_space()
        body = self.parse_block(ctx)
        self.skip_whitespace()
        self.expect('catch')
        self.skip_space()
        err_name = None
        if self.at('VARIABLE', 'SYMBOL'):
            err_name = self.parse_name()
            self.skip_space()
        handler = self.parse_block(ctx)
        return Try(body, err_name, handler, span=self.span_from(start))

    def parse_return(self, ctx: ParseContext) -> ReturnStmt:
        token = self.eat()
        if not ctx.in_function:
            raise ParseError('ReturnOutsideFunction', "'return' outside of a function", token.span)
        self.skip_space()
        if self.peek() is None or self.at('NEWLINE', ';', '}'):
            return ReturnStmt(None, span=token.span)
        value = self.parse_expr(cmd=True)
        return ReturnStmt(value, span=self.span_from(token.span))

    def parse_variable_stmt(self) -> Node:
        token = self.eat()
        variable = Variable(token.value, span=token.span)
        expr = self.parse_postfix(variable)
        self.skip_space()
        if expr is variable and self.at('='):
            self.eat_raw()
            self.skip_whitespace()
            value = self.parse_expr(cmd=True)
            return Assign(token.value, value, span=self.span_from(token.span))
        if expr is variable and self.at(*ASSIGN_OPERATORS):
            op = self.eat_raw().kind[:-1]
            self.skip_whitespace()
            value = self.parse_expr(cmd=True)
            return AssignOp(token.value, op, value, span=self.span_from(token.span))
        return self.finish_expr(expr, cmd=True)

    ###########################################################################
    # Expressions
    ###########################################################################

    def parse_expr(self, cmd: bool) -> Node:
        primary = self.parse_primary(cmd)
        return self.finish_expr(primary, cmd)

    def finish_expr(self, lhs: Node, cmd: bool) -> Node:
        expr = self.parse_expr_part(lhs, 0, cmd)
        self.skip_space()
        if not self.at('|'):
            return expr
        stages = [expr]
        while self.at('|'):
            self.eat_raw()
            self.skip_whitespace()
            stages.append(self.parse_call())
            self.skip_space()
        return Pipe(stages, span=self.span_from(expr.span))

    def parse_expr_part(self, lhs: Node, min_precedence: int, cmd: bool) -> Node:
        while True:
            self.skip_space()
            token = self.peek()
            if token is None or token.kind not in BINARY_OPERATORS:
                return lhs
            precedence, right = BINARY_OPERATORS[token.kind]
            if precedence < min_precedence:
                return lhs
            self.eat_raw()
            if (token.kind in COMPARISON_OPERATORS and isinstance(lhs, BinaryOp)
                    and lhs.op in COMPARISON_OPERATORS):
                raise ParseError('ComparisonChaining', 'comparison operators cannot be chained', token.span)
            self.skip_whitespace()
            rhs = self.parse_primary(cmd)
            with self.nested():
                rhs = self.parse_expr_part(rhs, precedence if right else precedence + 1, cmd)
            lhs = BinaryOp(token.kind, lhs, rhs, span=lhs.span + rhs.span)

    def parse_primary(self, cmd: bool) -> Node:
        with self.nested():
            token = self.peek()
            if token is None:
                raise self.expected('an expression')
            kind = token.kind
            if kind == 'BOOL':
                self.eat_raw()
                expr = Literal(token.value, 'bool', span=token.span)
            elif kind == 'INT':
                self.eat_raw()
                expr = Literal(token.value, 'int', span=token.span)
            elif kind == 'FLOAT':
                self.eat_raw()
                expr = Literal(token.value, 'float', span=token.span)
            elif kind == 'SYMBOL' and not cmd:
                self.eat_raw()
                expr = Literal(token.value, 'str', span=token.span)
            elif kind == '&' or (cmd and kind in ('SYMBOL', '.', '/')):
                return self.parse_call()
            elif kind == '(':
                expr = self.parse_sub_expr()
            elif kind == 'VARIABLE':
                self.eat_raw()
                expr = Variable(token.value, span=token.span)
            elif kind == 'SQUOTE':
                text, span = self.parse_raw_string()
                expr = Literal(text, 'str', span=span)
            elif kind == 'QUOTE':
                expr = self.parse_expand()
            elif kind in ('-', '!'):
                self.eat_raw()
                self.skip_space()
                operand = self.parse_primary(cmd)
                return UnaryOp(kind, operand, span=self.span_from(token.span))
            elif kind == '[':
                expr = self.parse_list()
            elif kind == '@':
                expr = self.parse_at()
            elif kind == '?':
                expr = self.parse_error_check()
            elif kind == '{':
                expr = self.parse_brace_expr()
            else:
                raise self.unexpected(token)
            return self.parse_postfix(expr)

    def parse_postfix(self, expr: Node) -> Node:
        while True:
            token = self.peek_raw()
            if token is None:
                return expr
            if token.kind == '.':
                self.eat_raw()
                name = self.peek_raw()
                if name is None:
                    raise self.expected('a column name')
                if name.kind not in ('SYMBOL', 'INT'):
                    raise self.unexpected(name)
                self.eat_raw()
                expr = Column(expr, str(name.value), span=self.span_from(expr.span))
            elif token.kind == '[':
                self.eat_raw()
                self.skip_whitespace()
                index = self.parse_expr(cmd=False)
                self.skip_whitespace()
                self.expect(']')
                expr = Index(expr, index, span=self.span_from(expr.span))
            else:
                return expr

    def parse_sub_expr(self) -> SubExpr:
        start = self.expect('(').span
        self.skip_whitespace()
        expr = self.parse_expr(cmd=True)
        self.skip_whitespace()
        self.expect(')')
        return SubExpr(expr, span=self.span_from(start))

    def parse_error_check(self) -> ErrorCheck:
        start = self.expect('?').span
        self.expect('(')
        self.skip_whitespace()
        expr = self.parse_expr(cmd=True)
        self.skip_whitespace()
        self.expect(')')
        return ErrorCheck(expr, span=self.span_from(start))

    def parse_list(self) -> ListLit:
        start = self.expect('[').span
        elements: List[Node] = []
        while True:
            self.skip_whitespace()
            if self.at(']'):
                break
            if self.at(','):
                raise self.unexpected(self.peek())
            elements.append(self.parse_expr(cmd=False))
            self.skip_whitespace()
            if self.at(','):
                self.eat_raw()
            elif not self.at(']'):
                token = self.peek()
                if token is None:
                    raise self.expected("']'")
                raise self.unexpected(token)
        self.eat_raw()
        return ListLit(elements, span=self.span_from(start))

    def parse_at(self) -> Node:
        start = self.expect('@').span
        token = self.peek_raw()
        if token is None:
            raise self.expected("'{' or a quote")
        if token.kind == '{':
            return self.parse_map(start)
        if token.kind == 'SQUOTE':
            return self.parse_regex(start)
        raise self.unexpected(token)

    def parse_brace_expr(self) -> Node:
        start = self.expect('{').span
        self.skip_whitespace()
        if self.at('|', '||'):
            return self.parse_closure(start)
        return self.parse_map(start, opened=True)

    def parse_map(self, start: Span, opened: bool = False) -> MapLit:
        if not opened:
            self.expect('{')
        entries = []
        while True:
            self.skip_whitespace()
            if self.at('}'):
                break
            if self.at(','):
                raise self.unexpected(self.peek())
            key = self.parse_primary(cmd=False)
            self.skip_space()
            self.expect(':')
            self.skip_whitespace()
            value = self.parse_expr(cmd=False)
            entries.append((key, value))
            self.skip_whitespace()
            if self.at(','):
                self.eat_raw()
            elif not self.at('}'):
                token = self.peek()
                if token is None:
                    raise self.expected("'}'")
                raise self.unexpected(token)
        self.eat_raw()
        return MapLit(entries, span=self.span_from(start))

    def parse_closure(self, start: Span) -> ClosureLit:
        if self.at('||'):
            self.eat_raw()
            params: List[str] = []
        else:
            self.expect('|')
            params = self.parse_params('|')
        body_start = self.peek().span if self.peek() is not None else start
        body = self.parse_sequence(ParseContext(in_function=True), block=True)
        self.expect('}')
        block = Block(body, span=self.span_from(body_start))
        return ClosureLit(params, block, span=self.span_from(start))

    def parse_regex(self, start: Span) -> RegexLit:
        text, span = self.parse_raw_string()
        try:
            pattern = re.compile(text)
        except re.error as e:
            raise ParseError('Regex', f"invalid regex: {e}", span) from e
        return RegexLit(text, RegexVal(text, pattern), span=self.span_from(start))

    ###########################################################################
    # Strings
    ###########################################################################

    def parse_raw_string(self) -> Tuple[str, Span]:
        start = self.expect('SQUOTE').span
        pieces: List[str] = []
        while True:
            token = self.peek_raw()
            if token is None:
                raise self.expected('a closing quote')
            self.eat_raw()
            if token.kind == 'SQUOTE':
                break
            pieces.append(token.text(self.source))
        return ''.join(pieces).replace("\\'", "'"), self.span_from(start)

    def parse_expand(self) -> Expand:
        start = self.expect('QUOTE').span
        parts = []
        pending: List[str] = []
        pending_start = start

        def flush():
            if pending:
                span = Span(pending_start.start, self.last_end)
                parts.append(unescape_expand(''.join(pending), span))
                pending.clear()

        while True:
            token = self.peek_raw()
            if token is None:
                raise self.expected("a closing '\"'")
            if token.kind == 'QUOTE':
                self.eat_raw()
                break
            if token.kind == 'VARIABLE':
                flush()
                self.eat_raw()
                parts.append(Variable(token.value, span=token.span))
                continue
            if token.kind == 'DOLLAR':
                self.eat_raw()
                following = self.peek_raw()
                if following is not None and following.kind == '(':
                    flush()
                    parts.append(self.parse_sub_expr().expr)
                    continue
                if not pending:
                    pending_start = token.span
                pending.append('$')
                continue
            if not pending:
                pending_start = token.span
            self.eat_raw()
            pending.append(token.text(self.source))
        flush()
        return Expand(parts, span=self.span_from(start))

    ###########################################################################
    # Calls and arguments
    ###########################################################################

    def parse_call(self) -> Node:
        token = self.peek()
        if token is None:
            raise self.expected('a command')
        start = token.span
        exec_ = False
        if token.kind == '&':
            self.eat_raw()
            self.skip_space()
            exec_ = True
        command = self.parse_argument()
        args: List[Argument] = []
        redirect = None
        while True:
            token = self.peek()
            if token is None:
                break
            if token.kind == 'SPACE':
                self.eat_raw()
                continue
            if token.kind in ('>', '>>', '<'):
                self.eat_raw()
                self.skip_space()
                redirect = (token.kind, self.parse_argument())
                break
            if token.kind in ARG_STOP and token.kind != '{':
                break
            args.append(self.parse_argument())
        call: Node = Call(command, args, exec_, span=self.span_from(start))
        if redirect is not None:
            op, target = redirect
            direction = 'left' if op == '<' else 'right'
            call = Redirect(call, target, direction, op == '>>', span=self.span_from(start))
        return call

    def parse_argument(self) -> Argument:
        token = self.peek()
        if token is None:
            raise self.expected('an argument')
        start = token.span
        if token.kind == '[':
            return self.whole_argument(self.parse_list())
        if token.kind == '{':
            return self.whole_argument(self.parse_brace_expr())
        parts: List[ArgPart] = []
        if token.kind == '@':
            self.eat_raw()
            following = self.peek_raw()
            if following is not None and following.kind == '{':
                return self.whole_argument(self.parse_map(start))
            if following is not None and following.kind == 'SQUOTE':
                return self.whole_argument(self.parse_regex(start))
            self.push_bare(parts, '@', token.span)
        while True:
            token = self.peek_raw()
            if token is None or token.kind in ARG_STOP:
                break
            kind = token.kind
            if kind == 'VARIABLE':
                self.eat_raw()
                parts.append(ArgPart('variable', token.value, span=token.span))
            elif kind == 'QUOTE':
                expand = self.parse_expand()
                parts.append(ArgPart('expand', expand, span=expand.span))
            elif kind == 'SQUOTE':
                text, span = self.parse_raw_string()
                if parts and parts[-1].kind == 'quoted':
                    parts[-1].value += text
                    parts[-1].span = parts[-1].span + span
                else:
                    parts.append(ArgPart('quoted', text, span=span))
            elif kind == '(':
                sub = self.parse_sub_expr()
                parts.append(ArgPart('expr', sub, span=sub.span))
            elif kind == 'DOLLAR':
                self.eat_raw()
                following = self.peek_raw()
                if following is not None and following.kind == '(':
                    sub = self.parse_sub_expr()
                    parts.append(ArgPart('expr', sub, span=self.span_from(token.span)))
                else:
                    self.push_bare(parts, '$', token.span)
            elif kind == 'INT':
                self.eat_raw()
                parts.append(ArgPart('int', token.value, token.text(self.source), span=token.span))
            elif kind == 'FLOAT':
                self.eat_raw()
                parts.append(ArgPart('float', token.value, token.text(self.source), span=token.span))
            else:
                self.eat_raw()
                self.push_bare(parts, token.text(self.source), token.span)
        if not parts:
            token = self.peek()
            if token is None:
                raise self.expected('an argument')
            raise self.unexpected(token)
        return Argument(parts, span=self.span_from(start))

    def push_bare(self, parts: List[ArgPart], text: str, span: Span):
        if parts and parts[-1].kind == 'bare':
            parts[-1].value += text
            parts[-1].span = parts[-1].span + span
        else:
            parts.append(ArgPart('bare', text, span=span))

    def whole_argument(self, expr: Node) -> Argument:
        token = self.peek_raw()
        if token is not None and token.kind not in ARG_STOP and token.kind != ']':
            raise self.unexpected(token)
        return Argument([ArgPart('expr', expr, span=expr.span)], span=expr.span)


def unescape_expand(text: str, span: Span) -> str:
    """Resolve backslash escapes inside an interpolated string."""
    out: List[str] = []
    i = 0
    while i < len(text):
        c = text[i]
        if c != '\\' or i + 1 >= len(text):
            out.append(c)
            i += 1
            continue
        n = text[i + 1]
        if n == 'x':
            digits = text[i + 2:i + 4]
            if len(digits) != 2 or any(d not in string.hexdigits for d in digits):
                raise ParseError('InvalidHexEscape', f"invalid hex escape '\\x{digits}'", span)
            code = int(digits, 16)
            if code > 0x7F:
                raise ParseError('InvalidHexEscape', f"hex escape '\\x{digits}' is out of range", span)
            out.append(chr(code))
            i += 4
            continue
        out.append(unescape_char(n))
        i += 2
    return ''.join(out)


def parse_program(source: str) -> Program:
    """Parse crust source into a Program AST."""
    return Parser(source).parse()
