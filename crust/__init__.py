# crust shell language package
# This package provides the lexer, parser and interpreter for the crust shell.
from .errors import CrustError, ParseError, ShellError
from .interpreter import CancellationToken, Interpreter, run_program
from .parser import parse_program

__all__ = [
    'run_program',
    'parse_program',
    'Interpreter',
    'CancellationToken',
    'CrustError',
    'ParseError',
    'ShellError',
]
