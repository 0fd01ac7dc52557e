"""CLI entry point for the crust shell.

Usage:
    python -m crust [-v|-vv|-vvv|-vvvv]                  (interactive)
    python -m crust [-v...] <program_file>
    python -m crust [-v...] -c '<command>'
    python -m crust [-v...] --emit-ast <program_file>
    python -m crust [-v...] --ast <ast_json_file>
    python -m crust --format <program_file>

Options:
  -v               Increase debug verbosity (can be repeated)
  -c COMMAND       Run COMMAND and exit
  --emit-ast       Parse the given file and emit an AST JSON file
  --ast            Execute a previously emitted AST JSON file
  --format         Print the given file in normalised form
  --max-recursion  Call depth limit for functions and closures

Debug information is written to `debug.txt` in the current directory when
verbosity is greater than zero.
"""

import argparse
import json
import signal
import sys
from contextlib import contextmanager
from pathlib import Path

from .ast_json import ast_from_obj, ast_to_obj
from .errors import CrustError, ParseError
from .formatter import to_source
from .interpreter import Interpreter
from .parser import parse_program

PROMPT = 'crust> '


@contextmanager
def interruptible(interpreter: Interpreter):
    """Route Ctrl-C to the interpreter's cancellation token while running."""
    previous = signal.signal(signal.SIGINT, lambda signum, frame: interpreter.token.cancel())
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def read_source(path: Path) -> str:
    if not path.exists():
        print(f"Error: file {path} not found", file=sys.stderr)
        sys.exit(1)
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def run_source(interpreter: Interpreter, source: str, name: str) -> int:
    try:
        program = parse_program(source)
        with interruptible(interpreter):
            return interpreter.run(program)
    except CrustError as e:
        print(e.render(source, name), file=sys.stderr)
        return 1


def repl(interpreter: Interpreter) -> int:
    status = 0
    while True:
        try:
            line = input(PROMPT)
        except EOFError:
            print()
            return status
        except KeyboardInterrupt:
            print()
            continue
        source = line
        # Keep reading while a block or string is left open.
        while True:
            try:
                program = parse_program(source)
                break
            except ParseError as e:
                if e.kind != 'ExpectedToken':
                    program = None
                    print(e.render(source, '<stdin>'), file=sys.stderr)
                    break
                try:
                    source += '\n' + input('... ')
                except EOFError:
                    program = None
                    print(e.render(source, '<stdin>'), file=sys.stderr)
                    break
        if program is None:
            continue
        try:
            with interruptible(interpreter):
                result = interpreter.run(program)
        except CrustError as e:
            print(e.render(source, '<stdin>'), file=sys.stderr)
            status = 1
            continue
        status = result
        if interpreter.exited:
            return status


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog='crust', description="crust shell interpreter")
    parser.add_argument('-v', action='count', default=0, help='increase debug verbosity (can be repeated)')
    parser.add_argument('--max-recursion', type=int, default=100, metavar='N',
                        help='maximum function call depth (default: 100)')
    group = parser.add_mutually_exclusive_group()
    group.add_argument('-c', metavar='COMMAND', dest='command', help='run COMMAND and exit')
    group.add_argument('--emit-ast', metavar='FILE', help='emit AST JSON for the given program file')
    group.add_argument('--ast', metavar='AST_JSON_FILE', help='execute AST from a JSON file')
    group.add_argument('--format', metavar='FILE', help='print the given program file in normalised form')
    parser.add_argument('program', nargs='?', help='program file to execute')
    args = parser.parse_args(argv)

    # Emit AST mode
    if args.emit_ast:
        program_file = Path(args.emit_ast)
        source = read_source(program_file)
        try:
            ast_program = parse_program(source)
        except ParseError as e:
            print(e.render(source, str(program_file)), file=sys.stderr)
            sys.exit(1)
        out_path = program_file.with_name(program_file.name + '.ast.json')
        with open(out_path, 'w', encoding='utf-8') as out:
            json.dump(ast_to_obj(ast_program), out, ensure_ascii=False, indent=2)
        print(str(out_path))
        return

    if args.format:
        program_file = Path(args.format)
        source = read_source(program_file)
        try:
            print(to_source(parse_program(source)), end='')
        except ParseError as e:
            print(e.render(source, str(program_file)), file=sys.stderr)
            sys.exit(1)
        return

    interpreter = Interpreter(debug_level=args.v, max_recursion=args.max_recursion)
    try:
        # Execute from AST JSON
        if args.ast:
            ast_path = Path(args.ast)
            if not ast_path.exists():
                print(f"Error: file {ast_path} not found", file=sys.stderr)
                sys.exit(1)
            with open(ast_path, 'r', encoding='utf-8') as f:
                ast_program = ast_from_obj(json.load(f))
            try:
                with interruptible(interpreter):
                    status = interpreter.run(ast_program)
            except CrustError as e:
                print(e.render(None, str(ast_path)), file=sys.stderr)
                status = 1
        elif args.command is not None:
            status = run_source(interpreter, args.command, '<command>')
        elif args.program:
            program_file = Path(args.program)
            status = run_source(interpreter, read_source(program_file), str(program_file))
        else:
            status = repl(interpreter)
    finally:
        interpreter.close()
    sys.exit(status)


if __name__ == '__main__':
    main()
