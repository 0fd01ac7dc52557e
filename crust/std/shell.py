from typing import Dict

from crust.builtin_function import BuiltinFunction
from crust.errors import CrustError, Exit, ShellError
from crust.parser import parse_program
from crust.stream import OutputStream, ValueStream
from crust.types import to_string

from .core import output, words
from .fs import expect_str


def read_script(path: str) -> str:
    try:
        with open(path, encoding='utf-8') as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ShellError('Io', f"cannot read '{path}': {e}") from e


def populate_shell() -> Dict[str, BuiltinFunction]:
    def std_alias(interp, args, stdin):
        if not args:
            return output(dict(sorted(interp.aliases.items())))
        name = to_string(args[0])
        if len(args) == 1:
            if name not in interp.aliases:
                raise ShellError('CommandNotFound', f"alias not found: '{name}'")
            return output(interp.aliases[name])
        interp.aliases[name] = words(args[1:])
        return OutputStream()

    def std_unalias(interp, args, stdin):
        name = to_string(args[0])
        if interp.aliases.pop(name, None) is None:
            raise ShellError('CommandNotFound', f"alias not found: '{name}'")
        return OutputStream()

    def std_env(interp, args, stdin):
        if not args:
            return output(dict(sorted(interp.environ.items())))
        if len(args) > 1:
            raise ShellError('IncorrectArgumentCount', f"env: expected 0 or 1 arguments but got {len(args)}")
        name = to_string(args[0])
        if name not in interp.environ:
            raise ShellError('VariableNotFound', f"variable with name: '{name}' not found")
        return output(interp.environ[name])

    def std_drop(interp, args, stdin, frame):
        frame.drop_var(expect_str('drop', args[0]))
        return OutputStream()

    def std_import(interp, args, stdin, frame):
        # The script runs in the caller's scope, so its definitions stay visible.
        path = expect_str('import', args[0])
        interp.debug(f"import {path}", level=2)
        try:
            program = parse_program(read_script(path))
            out = ValueStream()
            result = interp.run_sequence(program.body, frame, out)
        except CrustError as e:
            if e.kind == 'Interrupt':
                raise
            raise ShellError(e.kind, f"{path}: {e.message}") from e
        if isinstance(result, Exit):
            return result
        return OutputStream(out)

    return {
        'alias': BuiltinFunction('alias', None, std_alias),
        'unalias': BuiltinFunction('unalias', 1, std_unalias),
        'env': BuiltinFunction('env', None, std_env),
        'drop': BuiltinFunction('drop', 1, std_drop, scoped=True),
        'import': BuiltinFunction('import', 1, std_import, scoped=True),
    }
