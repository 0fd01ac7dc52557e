"""Value-level builtins: output, control and list helpers."""

import random
import shutil
import sys
import time
from typing import Any, Dict, List, Optional

from crust.builtin_function import BuiltinFunction
from crust.errors import Exit, ShellError, Signal
from crust.stream import OutputStream, ValueStream
from crust.types import (
    ClosureVal, HashableValue, RangeVal, Table, index_value, is_integer,
    is_truthy, to_display, to_string, type_name,
)


def output(value: Any) -> OutputStream:
    return OutputStream(ValueStream.from_value(value))


def input_value(name: str, args: List[Any], stdin: Optional[ValueStream]) -> Any:
    """The single argument, or the piped input when there is none."""
    if len(args) == 1:
        return args[0]
    if not args and stdin is not None:
        return stdin.unpack()
    raise ShellError('IncorrectArgumentCount', f"{name}: expected 1 argument but got {len(args)}")


def as_list(name: str, value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, (RangeVal, Table)):
        return list(value)
    if value is None:
        return []
    raise ShellError('InvalidConversion', f"{name}: cannot convert '{type_name(value)}' to 'list'")


def as_closure(name: str, value: Any) -> ClosureVal:
    if not isinstance(value, ClosureVal):
        raise ShellError('InvalidConversion', f"{name}: cannot convert '{type_name(value)}' to 'closure'")
    return value


def as_int(name: str, value: Any) -> int:
    if is_integer(value):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError as e:
            raise ShellError('ParseInt', f"{name}: invalid integer '{value}'") from e
    raise ShellError('InvalidConversion', f"{name}: cannot convert '{type_name(value)}' to 'int'")


def words(args: List[Any]) -> str:
    parts = []
    for arg in args:
        if isinstance(arg, list):
            parts.extend(to_display(item) for item in arg)
        else:
            parts.append(to_display(arg))
    return ' '.join(parts)


def populate_core() -> Dict[str, BuiltinFunction]:
    def std_echo(interp, args, stdin):
        return output(words(args))

    def std_print(interp, args, stdin):
        if not args and stdin is not None:
            for value in stdin:
                print(to_display(value))
        else:
            print(words(args))
        sys.stdout.flush()
        return OutputStream()

    def std_exit(interp, args, stdin):
        if len(args) > 1:
            raise ShellError('IncorrectArgumentCount', f"exit: expected 0 or 1 arguments but got {len(args)}")
        status = as_int('exit', args[0]) if args else 0
        interp.status = status
        return Exit(status)

    def std_do(interp, args, stdin):
        if not args:
            raise ShellError('IncorrectArgumentCount', 'do: expected a closure')
        closure = as_closure('do', args[0])
        return interp.wrap(interp.call_closure(closure, args[1:], stdin))

    def std_map(interp, args, stdin):
        if not args:
            raise ShellError('IncorrectArgumentCount', 'map: expected a closure')
        closure = as_closure('map', args[0])
        items = as_list('map', input_value('map', args[1:], stdin))
        results = []
        for item in items:
            value = interp.call_closure(closure, [item])
            if isinstance(value, Signal):
                return value
            results.append(value)
        return output(results)

    def std_filter(interp, args, stdin):
        if not args:
            raise ShellError('IncorrectArgumentCount', 'filter: expected a closure')
        closure = as_closure('filter', args[0])
        items = as_list('filter', input_value('filter', args[1:], stdin))
        kept = []
        for item in items:
            value = interp.call_closure(closure, [item])
            if isinstance(value, Signal):
                return value
            if is_truthy(value):
                kept.append(item)
        return output(kept)

    def std_len(interp, args, stdin):
        value = input_value('len', args, stdin)
        if isinstance(value, (str, list, dict, Table, RangeVal, bytes, bytearray)):
            return output(len(value))
        raise ShellError('InvalidConversion', f"len: '{type_name(value)}' has no length")

    def std_first(interp, args, stdin):
        return output(index_value(input_value('first', args, stdin), 0))

    def std_last(interp, args, stdin):
        return output(index_value(input_value('last', args, stdin), -1))

    def std_unique(interp, args, stdin):
        seen = set()
        result = []
        for item in as_list('unique', input_value('unique', args, stdin)):
            key = HashableValue(item)
            if key not in seen:
                seen.add(key)
                result.append(item)
        return output(result)

    def std_assert(interp, args, stdin):
        if len(args) not in (1, 2):
            raise ShellError('IncorrectArgumentCount', f"assert: expected 1 or 2 arguments but got {len(args)}")
        if not is_truthy(args[0]):
            message = to_display(args[1]) if len(args) == 2 else 'assertion failed'
            raise ShellError('AssertionFailed', message)
        return OutputStream()

    def std_table(interp, args, stdin):
        if args:
            rows = args[0] if len(args) == 1 and isinstance(args[0], list) else args
        elif stdin is not None:
            rows = as_list('table', stdin.unpack())
        else:
            rows = []
        for row in rows:
            if not isinstance(row, dict):
                raise ShellError('InvalidConversion', f"table: cannot convert '{type_name(row)}' to 'map'")
        return output(Table.from_maps(rows))

    def std_input(interp, args, stdin):
        if len(args) > 1:
            raise ShellError('IncorrectArgumentCount', f"input: expected 0 or 1 arguments but got {len(args)}")
        if args:
            print(to_string(args[0]), end='', flush=True)
        line = sys.stdin.readline()
        return output(line[:-1] if line.endswith('\n') else line)

    def std_time(interp, args, stdin):
        closure = as_closure('time', args[0])
        start = time.perf_counter()
        value = interp.call_closure(closure, [], stdin)
        elapsed = time.perf_counter() - start
        if isinstance(value, Signal):
            return value
        return OutputStream(ValueStream([value, elapsed]))

    def std_shuffle(interp, args, stdin):
        value = input_value('shuffle', args, stdin)
        if isinstance(value, str):
            chars = list(value)
            random.shuffle(chars)
            return output(''.join(chars))
        items = list(as_list('shuffle', value))
        random.shuffle(items)
        return output(items)

    def std_size(interp, args, stdin):
        size = shutil.get_terminal_size()
        return output([size.columns, size.lines])

    return {
        'echo': BuiltinFunction('echo', None, std_echo),
        'print': BuiltinFunction('print', None, std_print),
        'exit': BuiltinFunction('exit', None, std_exit),
        'do': BuiltinFunction('do', None, std_do),
        'map': BuiltinFunction('map', None, std_map),
        'filter': BuiltinFunction('filter', None, std_filter),
        'len': BuiltinFunction('len', None, std_len),
        'first': BuiltinFunction('first', None, std_first),
        'last': BuiltinFunction('last', None, std_last),
        'unique': BuiltinFunction('unique', None, std_unique),
        'assert': BuiltinFunction('assert', None, std_assert),
        'table': BuiltinFunction('table', None, std_table),
        'input': BuiltinFunction('input', None, std_input),
        'time': BuiltinFunction('time', 1, std_time),
        'shuffle': BuiltinFunction('shuffle', None, std_shuffle),
        'size': BuiltinFunction('size', 0, std_size),
    }
