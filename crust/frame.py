from typing import Any, Callable, Dict, MutableMapping, Optional, Tuple

from crust.errors import ShellError
from crust.types import to_string, type_name

EXPORTABLE = (bool, int, float, str)

# name -> fn(shell) computing the value on every read
BuiltinVars = Dict[str, Callable[[Any], Any]]


class Frame:
    """One lexical scope: variable and function bindings plus a parent link.

    ``call`` marks the outermost frame of a function or closure invocation,
    which is where assignments to undeclared names land. ``environ`` and
    ``shell`` are shared by every frame of a chain; ``shell`` is whatever
    object the builtin variables are computed from.

    Reads resolve through frame bindings first, then builtin variables,
    then the process environment.
    """
    def __init__(self, parent: Optional['Frame'] = None, call: bool = False,
                 environ: Optional[MutableMapping[str, str]] = None,
                 builtin_vars: Optional[BuiltinVars] = None, shell: Any = None):
        self.parent = parent
        self.variables: Dict[str, Tuple[bool, Any]] = {}
        self.functions: Dict[str, Any] = {}
        self.call = call or parent is None
        if parent is not None:
            environ = parent.environ if environ is None else environ
            builtin_vars = parent.builtin_vars if builtin_vars is None else builtin_vars
            shell = parent.shell if shell is None else shell
        self.environ = environ if environ is not None else {}
        self.builtin_vars = builtin_vars or {}
        self.shell = shell

    def child(self) -> 'Frame':
        return Frame(parent=self)

    def call_frame(self) -> 'Frame':
        return Frame(parent=self, call=True)

    def lookup(self, name: str) -> Optional['Frame']:
        frame = self
        while frame is not None:
            if name in frame.variables:
                return frame
            frame = frame.parent
        return None

    def get_var(self, name: str) -> Any:
        frame = self.lookup(name)
        if frame is not None:
            return frame.variables[name][1]
        builtin = self.builtin_vars.get(name)
        if builtin is not None:
            return builtin(self.shell)
        if name in self.environ:
            return self.environ[name]
        raise ShellError('VariableNotFound', f"variable with name: '{name}' not found")

    def declare_var(self, name: str, value: Any, exported: bool = False):
        if exported:
            self.export(name, value)
        self.variables[name] = (exported, value)

    def assign_existing(self, name: str, value: Any):
        frame = self.lookup(name)
        if frame is None:
            if name in self.environ:
                self.export(name, value)
                return
            # Undeclared: bind in the outermost frame of the current call.
            frame = self
            while not frame.call:
                frame = frame.parent
            frame.variables[name] = (False, value)
            return
        exported = frame.variables[name][0]
        if exported:
            self.export(name, value)
        frame.variables[name] = (exported, value)

    def drop_var(self, name: str):
        """Remove the nearest binding of ``name``."""
        frame = self.lookup(name)
        if frame is None:
            raise ShellError('VariableNotFound', f"variable with name: '{name}' not found")
        del frame.variables[name]

    def export(self, name: str, value: Any):
        if value is None or not isinstance(value, EXPORTABLE):
            raise ShellError('InvalidExport', f"cannot export value of type '{type_name(value)}'")
        self.environ[name] = to_string(value)

    def declare_fn(self, name: str, function: Any):
        self.functions[name] = function

    def get_fn(self, name: str) -> Optional[Any]:
        frame = self
        while frame is not None:
            if name in frame.functions:
                return frame.functions[name]
            frame = frame.parent
        return None

    def __repr__(self) -> str:
        return f"<Frame call={self.call} vars={sorted(self.variables)}>"
