from typing import Dict

from crust.builtin_function import BuiltinFunction

from .core import populate_core
from .fs import populate_fs
from .shell import populate_shell
from .variables import populate_variables


def populate_builtins() -> Dict[str, BuiltinFunction]:
    builtins: Dict[str, BuiltinFunction] = {}
    builtins.update(populate_core())
    builtins.update(populate_fs())
    builtins.update(populate_shell())
    return builtins
