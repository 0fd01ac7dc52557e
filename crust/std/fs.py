import datetime
import glob
import json
import os
import tomllib
from typing import Any, Dict, List, Tuple

from crust.builtin_function import BuiltinFunction
from crust.errors import ShellError
from crust.stream import OutputStream
from crust.types import RangeVal, Table, to_string, type_name

from .core import input_value, output


class BasicFS:
    @staticmethod
    def read_text(filename: str) -> str:
        try:
            with open(filename, encoding='utf-8') as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ShellError('Io', f"cannot read '{filename}': {e}") from e

    def read_file(self, filename: str) -> Any:
        try:
            with open(filename, 'rb') as f:
                data = f.read()
        except OSError as e:
            raise ShellError('Io', f"cannot read '{filename}': {e.strerror}") from e
        try:
            text = data.decode('utf-8')
        except UnicodeDecodeError:
            return data
        if filename.endswith('.json'):
            try:
                return json.loads(text)
            except ValueError as e:
                raise ShellError('Io', f"invalid json in '{filename}': {e}") from e
        return text

    def write_file(self, filename: str, data: bytes, append: bool = False):
        try:
            with open(filename, 'ab' if append else 'wb') as f:
                f.write(data)
        except OSError as e:
            raise ShellError('Io', f"cannot write '{filename}': {e.strerror}") from e

    def glob(self, pattern: str) -> List[str]:
        return sorted(glob.glob(os.path.expanduser(pattern)))

    def change_dir(self, path: str) -> str:
        try:
            os.chdir(os.path.expanduser(path))
        except OSError as e:
            raise ShellError('Io', f"cannot change directory to '{path}': {e.strerror}") from e
        return os.getcwd()


def expect_str(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ShellError('InvalidConversion', f"{name}: cannot convert '{type_name(value)}' to 'string'")
    return value


SAVE_FLAGS = {
    '-s': 'str', '--str': 'str',
    '-p': 'pretty', '--pretty': 'pretty',
    '-a': 'append', '--append': 'append',
}


def split_flags(name: str, args: List[Any], known: Dict[str, str]) -> Tuple[str, set]:
    """Separate flag words from the single path argument."""
    flags = set()
    paths = []
    for arg in args:
        if isinstance(arg, str) and arg.startswith('-'):
            if arg not in known:
                raise ShellError('InvalidArgument', f"{name}: unknown flag '{arg}'")
            flags.add(known[arg])
        else:
            paths.append(arg)
    if len(paths) != 1:
        raise ShellError('IncorrectArgumentCount', f"{name}: expected 1 path but got {len(paths)}")
    return expect_str(name, paths[0]), flags


def file_type(name: str, path: str) -> str:
    ext = os.path.splitext(path)[1].lstrip('.')
    if ext not in ('json', 'toml'):
        raise ShellError('UnknownFileType', f"{name}: unknown file type '{ext}'")
    return ext


def to_json(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, dict):
        return {key: to_json(item) for key, item in value.items()}
    if isinstance(value, (list, RangeVal, Table)):
        return [to_json(item) for item in value]
    raise ShellError('InvalidConversion', f"cannot serialize '{type_name(value)}'")


def from_toml(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: from_toml(item) for key, item in value.items()}
    if isinstance(value, list):
        return [from_toml(item) for item in value]
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    return value


def populate_fs() -> Dict[str, BuiltinFunction]:
    basic_fs = BasicFS()

    def std_glob(interp, args, stdin):
        return output(basic_fs.glob(expect_str('glob', args[0])))

    def std_cd(interp, args, stdin):
        if len(args) > 1:
            raise ShellError('IncorrectArgumentCount', f"cd: expected 0 or 1 arguments but got {len(args)}")
        target = expect_str('cd', args[0]) if args else '~'
        interp.environ['PWD'] = basic_fs.change_dir(target)
        return OutputStream()

    def std_pwd(interp, args, stdin):
        return output(os.getcwd())

    def std_open(interp, args, stdin):
        return output(basic_fs.read_file(expect_str('open', args[0])))

    def std_lines(interp, args, stdin):
        value = input_value('lines', args, stdin)
        if isinstance(value, list):
            value = '\n'.join(expect_str('lines', item) for item in value)
        return output(expect_str('lines', value).splitlines())

    def std_save(interp, args, stdin):
        path, flags = split_flags('save', args, SAVE_FLAGS)
        value = stdin.unpack() if stdin is not None else None
        if 'str' in flags:
            if isinstance(value, (bytes, bytearray)):
                data = bytes(value)
            else:
                data = to_string(value).encode('utf-8')
        elif file_type('save', path) == 'json':
            indent = 2 if 'pretty' in flags else None
            data = json.dumps(to_json(value), indent=indent).encode('utf-8')
        else:
            raise ShellError('UnknownFileType', "save: writing toml is not supported")
        basic_fs.write_file(path, data, append='append' in flags)
        return OutputStream()

    def std_load(interp, args, stdin):
        path, flags = split_flags('load', args, {'-s': 'str', '--str': 'str'})
        if 'str' in flags:
            return output(BasicFS.read_text(path))
        if file_type('load', path) == 'json':
            return output(basic_fs.read_file(path))
        try:
            return output(from_toml(tomllib.loads(BasicFS.read_text(path))))
        except tomllib.TOMLDecodeError as e:
            raise ShellError('Io', f"invalid toml in '{path}': {e}") from e

    return {
        'glob': BuiltinFunction('glob', 1, std_glob),
        'cd': BuiltinFunction('cd', None, std_cd),
        'pwd': BuiltinFunction('pwd', 0, std_pwd),
        'open': BuiltinFunction('open', 1, std_open),
        'lines': BuiltinFunction('lines', None, std_lines),
        'save': BuiltinFunction('save', None, std_save),
        'load': BuiltinFunction('load', None, std_load),
    }
