"""Tokenizer for the crust shell language.

The lexer is total: every character of the input ends up in some token,
and anything no rule claims is folded into a bare word (``SYMBOL``). All
syntactic rejection happens in the parser. Tokens are produced lazily; the
parser pulls them one at a time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, List, Tuple


@dataclass(frozen=True)
class Span:
    start: int
    end: int

    def __add__(self, other: 'Span') -> 'Span':
        return Span(min(self.start, other.start), max(self.end, other.end))

    def line_col(self, source: str) -> Tuple[int, int]:
        line = source.count('\n', 0, self.start) + 1
        col = self.start - (source.rfind('\n', 0, self.start) + 1) + 1
        return line, col


@dataclass
class Token:
    kind: str
    value: Any
    span: Span

    def text(self, source: str) -> str:
        return source[self.span.start:self.span.end]


KEYWORDS = {
    'if', 'else', 'while', 'loop', 'for', 'in', 'break', 'return',
    'continue', 'fn', 'let', 'export', 'try', 'catch',
}

# Longest first: the first match at a position wins.
OPERATORS = (
    '**=', '**', '*=', '*', '==', '=~', '=', '!=', '!~', '!', '+=', '+',
    '-=', '-', '/=', '/', '%=', '%', '<=', '<', '>>', '>=', '>', '&&', '&',
    '||', '|', '..', '.', ',', ':', ';', '(', ')', '{', '}', '[', ']', '@',
    '?', '#',
)

OPERATOR_START = frozenset(op[0] for op in OPERATORS)

DIGITS = frozenset("0123456789")

DISALLOWED = frozenset('\0#$"\'(){}[]|;&,')

ESCAPES = {
    'n': '\n',
    't': '\t',
    '0': '\0',
    'r': '\r',
    's': ' ',
    '\\': '\\',
}


def unescape_char(c: str) -> str:
    return ESCAPES.get(c, c)


def is_word_char(c: str) -> bool:
    return not (c.isspace() or c in DISALLOWED or c in OPERATOR_START)


class Lexer:
    """Lazy token stream over ``source``.

    Iterating a Lexer always starts from the beginning of the source.
    """

    def __init__(self, source: str):
        self.source = source

    def __iter__(self) -> Iterator[Token]:
        return self.tokens()

    def tokens(self) -> Iterator[Token]:
        source = self.source
        length = len(source)
        i = 0
        while i < length:
            c = source[i]
            start = i
            if c == '\n':
                i += 1
                yield Token('NEWLINE', '\n', Span(start, i))
                continue
            if c.isspace():
                while i < length and source[i].isspace() and source[i] != '\n':
                    i += 1
                yield Token('SPACE', source[start:i], Span(start, i))
                continue
            if c == '$':
                if i + 1 < length and source[i + 1].isalnum():
                    i += 1
                    while i < length and (source[i].isalnum() or source[i] == '_'):
                        i += 1
                    yield Token('VARIABLE', source[start + 1:i], Span(start, i))
                else:
                    i += 1
                    yield Token('DOLLAR', '$', Span(start, i))
                continue
            if c == '"':
                i += 1
                yield Token('QUOTE', c, Span(start, i))
                continue
            if c == '\'':
                i += 1
                yield Token('SQUOTE', c, Span(start, i))
                continue
            if c in DIGITS:
                i, token = self.lex_number(i)
                yield token
                continue
            op = self.match_operator(i)
            if op is not None:
                i += len(op)
                yield Token(op, op, Span(start, i))
                continue
            if c in DISALLOWED:
                i += 1
                yield Token('SYMBOL', c, Span(start, i))
                continue
            i, token = self.lex_word(i)
            yield token

    def match_operator(self, i: int):
        if self.source[i] not in OPERATOR_START:
            return None
        for op in OPERATORS:
            if self.source.startswith(op, i):
                return op
        return None

    def lex_number(self, i: int) -> Tuple[int, Token]:
        source = self.source
        length = len(source)
        start = i
        is_float = False
        while i < length:
            c = source[i]
            if c in DIGITS or c == '_':
                i += 1
            elif (c == '.' and not is_float and i + 1 < length
                    and source[i + 1] in DIGITS):
                is_float = True
                i += 1
            else:
                break
        cleaned = source[start:i].replace('_', '')
        if is_float:
            return i, Token('FLOAT', cleaned, Span(start, i))
        return i, Token('INT', int(cleaned), Span(start, i))

    def lex_word(self, i: int) -> Tuple[int, Token]:
        source = self.source
        length = len(source)
        start = i
        chars: List[str] = []
        while i < length:
            c = source[i]
            if c == '\\':
                if i + 1 < length:
                    chars.append(unescape_char(source[i + 1]))
                    i += 2
                else:
                    chars.append(c)
                    i += 1
                continue
            if not is_word_char(c):
                break
            chars.append(c)
            i += 1
        word = ''.join(chars)
        span = Span(start, i)
        if word in ('true', 'false') and i - start == len(word):
            return i, Token('BOOL', word == 'true', span)
        if word in KEYWORDS and i - start == len(word):
            return i, Token(word, word, span)
        return i, Token('SYMBOL', word, span)


def tokenize(source: str) -> List[Token]:
    """Return every token of ``source`` as a list."""
    return list(Lexer(source))
