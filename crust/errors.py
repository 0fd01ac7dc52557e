from dataclasses import dataclass
from typing import Any, Optional

from crust.lexer import Span


class CrustError(Exception):
    """Base class for errors that carry a source span."""
    def __init__(self, kind: str, message: str, span: Optional[Span] = None):
        super().__init__(f"{kind}: {message}")
        self.kind = kind
        self.message = message
        self.span = span

    def render(self, source: Optional[str] = None, name: str = '<input>') -> str:
        if self.span is None or source is None:
            return f"{name}: {self.message}"
        line, col = self.span.line_col(source)
        start = source.rfind('\n', 0, self.span.start) + 1
        end = source.find('\n', start)
        if end == -1:
            end = len(source)
        text = source[start:end]
        width = max(1, min(self.span.end, end) - self.span.start)
        caret = ' ' * (self.span.start - start) + '^' * width
        return f"{name}:{line}:{col}: {self.message}\n{text}\n{caret}"


class ShellError(CrustError):
    """Evaluation-time error.

    Kinds: NoMatch, MaxRecursion, IndexOutOfBounds, InvalidConversion,
    VariableNotFound, InvalidBinaryOperand, InvalidUnaryOperand,
    InvalidIterator, CommandNotFound, CommandPermissionDenied, CommandFailed,
    IncorrectArgumentCount, IntegerOverflow, DivisionByZero, ColumnNotFound,
    InvalidIndex, InvalidExport, Io, ParseInt, ParseFloat, Interrupt,
    AssertionFailed, UnhandledSignal, CapacityOverflow, UnknownFileType,
    InvalidArgument.

    Errors raised while importing a script keep that script's error kind.
    """


class ParseError(CrustError):
    """Parse-time error. Always fatal to the source unit being parsed."""


###############################################################################
# Control signals
###############################################################################

# Signals are returned from execute()/evaluate(), never raised.

class Signal:
    pass


@dataclass
class Break(Signal):
    pass


@dataclass
class Continue(Signal):
    pass


@dataclass
class Return(Signal):
    value: Any = None


@dataclass
class Exit(Signal):
    status: int = 0
