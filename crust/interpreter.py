"""Tree-walking evaluator for the crust shell language.

``execute`` runs statements and pushes produced values into an output
stream; ``evaluate`` computes expression values. Non-local control flow
(``break``, ``continue``, ``return``, ``exit``) travels as Signal objects
returned from both, never as exceptions: every construct checks the result
of its children and either absorbs the signal or hands it back up.
Runtime failures are ``ShellError`` exceptions.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .argument import evaluate_argument, expand_to_strings
from .ast import (
    Assign, AssignOp, BinaryOp, Block, BreakStmt, Call, ClosureLit, Column,
    ContinueStmt, ErrorCheck, Expand, FnDef, For, If, Index, Let, ListLit,
    Literal, Loop, MapLit, Node, Pipe, Program, Redirect, RegexLit,
    ReturnStmt, SubExpr, Try, UnaryOp, Variable, While,
)
from .builtin_function import BuiltinFunction
from .errors import Break, Continue, Exit, Return, ShellError, Signal
from .frame import Frame
from .parser import parse_program
from .std import populate_builtins, populate_variables
from .stream import OutputStream, PrintStream, ValueStream
from .types import (
    ClosureVal, binary_op, column_value, index_value, is_truthy, iterate,
    narrow_int, to_display, to_string, type_name, unary_op,
)

# Python frames used per crust call level, with headroom.
FRAMES_PER_CALL = 60


@dataclass
class FunctionValue:
    name: str
    params: List[str]
    body: Block
    frame: Frame

    def __repr__(self) -> str:
        return f"<fn {self.name}>"


class CancellationToken:
    """Interrupt flag owned by one interpreter.

    Set from a signal handler or another thread, polled by the evaluator
    between compounds.
    """
    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    def reset(self):
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class Interpreter:
    """Core interpreter that executes crust ASTs."""
    def __init__(self, debug_level: int = 0, debug_file: str = 'debug.txt',
                 max_recursion: int = 100, environ: Optional[Dict[str, str]] = None,
                 aliases: Optional[Dict[str, str]] = None):
        self.environ = os.environ if environ is None else environ
        self.root = Frame(environ=self.environ, builtin_vars=populate_variables(), shell=self)
        self.aliases: Dict[str, str] = dict(aliases or {})
        self.builtins: Dict[str, BuiltinFunction] = populate_builtins()
        self.max_recursion = max_recursion
        self.depth = 0
        self.status = 0
        self.exited = False
        self.token = CancellationToken()
        self.debug_level = debug_level
        self.debug_fp = open(debug_file, 'w') if debug_level > 0 else None
        limit = max_recursion * FRAMES_PER_CALL + 1000
        if sys.getrecursionlimit() < limit:
            sys.setrecursionlimit(limit)

    def debug(self, msg: str, level: int = 1):
        if self.debug_level >= level:
            if self.debug_fp:
                self.debug_fp.write(msg + '\n')
                self.debug_fp.flush()
            else:
                print(msg)

    def close(self):
        if self.debug_fp:
            self.debug_fp.close()
            self.debug_fp = None

    # Public API
    def run(self, program: Program, frame: Optional[Frame] = None) -> int:
        """Run a program, printing output as it is produced. Returns the exit status."""
        if frame is None:
            frame = self.root
        self.token.reset()
        result = self.guarded(program.body, frame, PrintStream())
        if isinstance(result, Exit):
            self.exited = True
            return result.status
        if result is not None:
            raise ShellError('UnhandledSignal', f"unhandled signal '{type(result).__name__}'")
        return 0

    def eval_source(self, source: str, frame: Optional[Frame] = None) -> Any:
        """Parse and evaluate ``source``, returning its collected output."""
        program = parse_program(source)
        if frame is None:
            frame = self.root
        self.token.reset()
        out = ValueStream()
        result = self.guarded(program.body, frame, out)
        if result is not None and not isinstance(result, Exit):
            raise ShellError('UnhandledSignal', f"unhandled signal '{type(result).__name__}'")
        return out.unpack()

    def guarded(self, body: List[Node], frame: Frame, out: ValueStream) -> Optional[Signal]:
        try:
            return self.run_sequence(body, frame, out, top=True)
        except RecursionError as e:
            raise ShellError('MaxRecursion', 'evaluation nested too deeply') from e

    def get_builtin(self, name: str) -> Optional[BuiltinFunction]:
        return self.builtins.get(name)

    ###########################################################################
    # Statements
    ###########################################################################

    def run_sequence(self, body: List[Node], frame: Frame, out: ValueStream,
                     top: bool = False) -> Optional[Signal]:
        for node in body:
            self.check_interrupt(node)
            if top:
                self.debug(f"compound {type(node).__name__} at {node.span}")
            try:
                result = self.execute(node, frame, out)
            except ShellError as e:
                if e.span is None:
                    e.span = node.span
                raise
            if result is not None:
                return result
        return None

    def check_interrupt(self, node: Optional[Node] = None):
        if self.token.cancelled:
            raise ShellError('Interrupt', 'interrupted', node.span if node is not None else None)

    def execute(self, node: Node, frame: Frame, out: ValueStream) -> Optional[Signal]:
        if isinstance(node, Block):
            return self.run_sequence(node.body, frame.child(), out)
        if isinstance(node, Let):
            if node.value is not None:
                value = self.evaluate(node.value, frame)
                if isinstance(value, Signal):
                    return value
            elif node.export:
                value = frame.get_var(node.name)
            else:
                value = None
            frame.declare_var(node.name, value, exported=node.export)
            if self.debug_level >= 2:
                self.debug(f"declare {node.name}: {type_name(value)} = {value!r}", 2)
            return None
        if isinstance(node, Assign):
            value = self.evaluate(node.value, frame)
            if isinstance(value, Signal):
                return value
            frame.assign_existing(node.name, value)
            if self.debug_level >= 2:
                self.debug(f"assign {node.name} = {value!r}", 2)
            return None
        if isinstance(node, AssignOp):
            rhs = self.evaluate(node.value, frame)
            if isinstance(rhs, Signal):
                return rhs
            value = binary_op(node.op, frame.get_var(node.name), rhs)
            frame.assign_existing(node.name, value)
            if self.debug_level >= 2:
                self.debug(f"assign {node.name} {node.op}= {value!r}", 2)
            return None
        if isinstance(node, FnDef):
            frame.declare_fn(node.name, FunctionValue(node.name, node.params, node.body, frame))
            if self.debug_level >= 2:
                self.debug(f"define function {node.name}", 2)
            return None
        if isinstance(node, If):
            cond = self.evaluate(node.condition, frame)
            if isinstance(cond, Signal):
                return cond
            truthy = is_truthy(cond)
            if self.debug_level >= 3:
                self.debug(f"if condition {cond!r} -> {truthy}", 3)
            if truthy:
                return self.execute(node.body, frame, out)
            if node.orelse is not None:
                return self.execute(node.orelse, frame, out)
            return None
        if isinstance(node, While):
            while True:
                self.check_interrupt(node)
                cond = self.evaluate(node.condition, frame)
                if isinstance(cond, Signal):
                    return cond
                if not is_truthy(cond):
                    return None
                res = self.execute(node.body, frame, out)
                if isinstance(res, Break):
                    return None
                if res is not None and not isinstance(res, Continue):
                    return res
        if isinstance(node, Loop):
            while True:
                self.check_interrupt(node)
                res = self.execute(node.body, frame, out)
                if isinstance(res, Break):
                    return None
                if res is not None and not isinstance(res, Continue):
                    return res
        if isinstance(node, For):
            iterable = self.evaluate(node.iterable, frame)
            if isinstance(iterable, Signal):
                return iterable
            for item in iterate(iterable):
                self.check_interrupt(node)
                if self.debug_level >= 3:
                    self.debug(f"for {node.var} = {item!r}", 3)
                body_frame = frame.child()
                body_frame.declare_var(node.var, item)
                res = self.run_sequence(node.body.body, body_frame, out)
                if isinstance(res, Break):
                    return None
                if res is not None and not isinstance(res, Continue):
                    return res
            return None
        if isinstance(node, Try):
            try:
                return self.execute(node.body, frame, out)
            except ShellError as e:
                if e.kind == 'Interrupt':
                    raise
                if self.debug_level >= 2:
                    self.debug(f"caught {e.kind}: {e.message}", 2)
                handler_frame = frame.child()
                if node.err_name is not None:
                    handler_frame.declare_var(node.err_name, e.message)
                return self.run_sequence(node.handler.body, handler_frame, out)
        if isinstance(node, ReturnStmt):
            value = None
            if node.value is not None:
                value = self.evaluate(node.value, frame)
                if isinstance(value, Signal):
                    return value
            return Return(value)
        if isinstance(node, BreakStmt):
            return Break()
        if isinstance(node, ContinueStmt):
            return Continue()
        if isinstance(node, (Call, Pipe, Redirect)):
            # Output bound for the terminal is not captured.
            capture = not isinstance(out, PrintStream)
            result = self.run_command(node, frame, None, capture)
            if isinstance(result, Signal):
                return result
            self.push_all(out, result.stream)
            return None
        value = self.evaluate(node, frame)
        if isinstance(value, Signal):
            return value
        self.push(out, value)
        return None

    def push(self, out: ValueStream, value: Any):
        if self.debug_level >= 4:
            self.debug(f"push {value!r}", 4)
        out.push(value)

    def push_all(self, out: ValueStream, values: ValueStream):
        for value in values:
            self.push(out, value)

    ###########################################################################
    # Expressions
    ###########################################################################

    def evaluate(self, node: Node, frame: Frame) -> Any:
        if isinstance(node, Literal):
            if node.kind == 'int':
                return narrow_int(node.value)
            if node.kind == 'float':
                return float(node.value)
            return node.value
        if isinstance(node, Variable):
            return frame.get_var(node.name)
        if isinstance(node, BinaryOp):
            lhs = self.evaluate(node.lhs, frame)
            if isinstance(lhs, Signal):
                return lhs
            # Short-circuit for && and ||
            if node.op == '&&' and not is_truthy(lhs):
                return False
            if node.op == '||' and is_truthy(lhs):
                return True
            rhs = self.evaluate(node.rhs, frame)
            if isinstance(rhs, Signal):
                return rhs
            if node.op in ('&&', '||'):
                return is_truthy(rhs)
            return binary_op(node.op, lhs, rhs)
        if isinstance(node, UnaryOp):
            operand = self.evaluate(node.operand, frame)
            if isinstance(operand, Signal):
                return operand
            return unary_op(node.op, operand)
        if isinstance(node, SubExpr):
            return self.evaluate(node.expr, frame)
        if isinstance(node, Column):
            target = self.evaluate(node.expr, frame)
            if isinstance(target, Signal):
                return target
            if node.name.isdigit() and not isinstance(target, dict):
                return index_value(target, int(node.name))
            return column_value(target, node.name)
        if isinstance(node, Index):
            target = self.evaluate(node.expr, frame)
            if isinstance(target, Signal):
                return target
            index = self.evaluate(node.index, frame)
            if isinstance(index, Signal):
                return index
            return index_value(target, index)
        if isinstance(node, Expand):
            pieces = []
            for part in node.parts:
                if isinstance(part, str):
                    pieces.append(part)
                    continue
                value = self.evaluate(part, frame)
                if isinstance(value, Signal):
                    return value
                pieces.append(to_string(value))
            return ''.join(pieces)
        if isinstance(node, ListLit):
            items = []
            for element in node.elements:
                value = self.evaluate(element, frame)
                if isinstance(value, Signal):
                    return value
                items.append(value)
            return items
        if isinstance(node, MapLit):
            entries: Dict[str, Any] = {}
            for key_node, value_node in node.entries:
                key = self.evaluate(key_node, frame)
                if isinstance(key, Signal):
                    return key
                value = self.evaluate(value_node, frame)
                if isinstance(value, Signal):
                    return value
                entries[to_string(key)] = value
            return entries
        if isinstance(node, RegexLit):
            return node.regex
        if isinstance(node, ClosureLit):
            return ClosureVal(node, frame)
        if isinstance(node, ErrorCheck):
            try:
                value = self.evaluate(node.expr, frame)
            except ShellError as e:
                if e.kind == 'Interrupt':
                    raise
                if self.debug_level >= 3:
                    self.debug(f"error check caught {e.kind}", 3)
                return False
            if isinstance(value, Exit):
                return value
            return True
        if isinstance(node, (Call, Pipe, Redirect)):
            result = self.run_command(node, frame, None, capture=True)
            if isinstance(result, Signal):
                return result
            return result.stream.unpack()
        raise NotImplementedError(f"evaluate: unexpected node type {type(node)}")

    ###########################################################################
    # Commands
    ###########################################################################

    def run_command(self, node: Node, frame: Frame, stdin: Optional[ValueStream],
                    capture: bool) -> Union[OutputStream, Exit]:
        if isinstance(node, Pipe):
            result = self.run_command(node.stages[0], frame, stdin, capture=True)
            last = len(node.stages) - 1
            for i, stage in enumerate(node.stages[1:], start=1):
                if isinstance(result, Signal):
                    return result
                result = self.run_command(stage, frame, result.stream,
                                          capture=capture or i != last)
            return result
        if isinstance(node, Redirect):
            return self.redirect(node, frame, stdin, capture)
        if isinstance(node, Call):
            return self.call_command(node, frame, stdin, capture)
        value = self.evaluate(node, frame)
        if isinstance(value, Signal):
            return value
        return OutputStream(ValueStream.from_value(value))

    def redirect(self, node: Redirect, frame: Frame, stdin: Optional[ValueStream],
                 capture: bool) -> Union[OutputStream, Exit]:
        target = evaluate_argument(self, node.target, frame)
        if isinstance(target, Signal):
            return target
        if isinstance(target, list):
            if len(target) != 1:
                raise ShellError('Io', f"ambiguous redirect: {len(target)} files match")
            target = target[0]
        path = to_string(target)
        if node.direction == 'left':
            try:
                with open(path, 'rb') as f:
                    data = f.read()
            except OSError as e:
                raise ShellError('Io', f"cannot read '{path}': {e.strerror}", node.target.span) from e
            try:
                content: Any = data.decode('utf-8')
            except UnicodeDecodeError:
                content = data
            return self.run_command(node.call, frame, ValueStream.from_value(content), capture)
        result = self.run_command(node.call, frame, stdin, capture=True)
        if isinstance(result, Signal):
            return result
        if self.debug_level >= 2:
            self.debug(f"redirect output to {path}", 2)
        try:
            with open(path, 'ab' if node.append else 'wb') as f:
                for value in result.stream:
                    if isinstance(value, (bytes, bytearray)):
                        f.write(value)
                    else:
                        f.write((to_display(value) + '\n').encode('utf-8'))
        except OSError as e:
            raise ShellError('Io', f"cannot write '{path}': {e.strerror}", node.target.span) from e
        return OutputStream()

    def call_command(self, node: Call, frame: Frame, stdin: Optional[ValueStream],
                     capture: bool) -> Union[OutputStream, Exit]:
        command = evaluate_argument(self, node.command, frame)
        if isinstance(command, Signal):
            return command
        args: List[Any] = []
        for argument in node.args:
            value = evaluate_argument(self, argument, frame)
            if isinstance(value, Signal):
                return value
            args.append(value)
        if isinstance(command, list):
            if not command:
                raise ShellError('CommandNotFound', 'empty command')
            args = command[1:] + args
            command = command[0]
        if isinstance(command, ClosureVal):
            return self.wrap(self.call_closure(command, args, stdin))
        name = to_string(command)
        if node.exec:
            return self.run_external(name, args, stdin, capture)
        return self.dispatch(name, args, frame, stdin, capture, set())

    def dispatch(self, name: str, args: List[Any], frame: Frame,
                 stdin: Optional[ValueStream], capture: bool,
                 expanded: set) -> Union[OutputStream, Exit]:
        alias = self.aliases.get(name)
        if alias is not None and name not in expanded:
            words = alias.split()
            if words:
                if self.debug_level >= 2:
                    self.debug(f"alias {name} -> {alias}", 2)
                return self.dispatch(words[0], words[1:] + args, frame, stdin,
                                     capture, expanded | {name})
        function = frame.get_fn(name)
        if function is not None:
            return self.wrap(self.call_function(function, args, stdin))
        binding = frame.lookup(name)
        if binding is not None and isinstance(binding.variables[name][1], ClosureVal):
            return self.wrap(self.call_closure(binding.variables[name][1], args, stdin))
        builtin = self.get_builtin(name)
        if builtin is not None:
            if builtin.arity is not None and len(args) != builtin.arity:
                raise ShellError(
                    'IncorrectArgumentCount',
                    f"{name}: expected {builtin.arity} arguments but got {len(args)}",
                )
            if self.debug_level >= 2:
                self.debug(f"call builtin {name} with {len(args)} args", 2)
            if builtin.scoped:
                return builtin.fn(self, args, stdin, frame)
            return builtin.fn(self, args, stdin)
        return self.run_external(name, args, stdin, capture)

    @staticmethod
    def wrap(value: Any) -> Union[OutputStream, Exit]:
        if isinstance(value, Signal):
            return value
        return OutputStream(ValueStream.from_value(value))

    def call_function(self, function: FunctionValue, args: List[Any],
                      stdin: Optional[ValueStream] = None) -> Any:
        if self.debug_level >= 2:
            self.debug(f"call {function.name} with {len(args)} args", 2)
        return self.invoke(function.params, function.body, function.frame, args, stdin)

    def call_closure(self, closure: ClosureVal, args: List[Any],
                     stdin: Optional[ValueStream] = None) -> Any:
        """Invoke a closure value. Returns its result or an Exit signal."""
        if self.debug_level >= 2:
            self.debug(f"call closure with {len(args)} args", 2)
        node = closure.node
        return self.invoke(node.params, node.body, closure.frame, args, stdin)

    def invoke(self, params: List[str], body: Block, parent: Frame, args: List[Any],
               stdin: Optional[ValueStream]) -> Any:
        if len(args) != len(params):
            raise ShellError(
                'IncorrectArgumentCount',
                f"expected {len(params)} arguments but got {len(args)}",
            )
        depth = self.depth + 1
        if depth > self.max_recursion:
            raise ShellError('MaxRecursion', f"max recursion limit of {self.max_recursion} reached")
        call_frame = parent.call_frame()
        for param, arg in zip(params, args):
            call_frame.declare_var(param, arg)
        if stdin is not None:
            call_frame.declare_var('in', stdin.unpack())
        out = ValueStream()
        self.depth = depth
        try:
            res = self.run_sequence(body.body, call_frame, out)
        finally:
            self.depth = depth - 1
        if isinstance(res, Return):
            return res.value if res.value is not None else out.unpack()
        if isinstance(res, Exit):
            return res
        if res is not None:
            raise ShellError('UnhandledSignal', f"unhandled signal '{type(res).__name__}'")
        return out.unpack()

    def run_external(self, name: str, args: List[Any], stdin: Optional[ValueStream],
                     capture: bool) -> OutputStream:
        path = shutil.which(name, path=self.environ.get('PATH'))
        if path is None:
            if os.sep in name and os.path.exists(name):
                raise ShellError('CommandPermissionDenied', f"permission denied: '{name}'")
            raise ShellError('CommandNotFound', f"command not found: '{name}'")
        argv = [path] + expand_to_strings(args)
        input_bytes = None
        if stdin is not None:
            input_bytes = b''.join(self.encode(value) for value in stdin)
        if self.debug_level >= 2:
            self.debug(f"exec {argv}", 2)
        try:
            proc = subprocess.run(
                argv,
                input=input_bytes,
                stdout=subprocess.PIPE if capture else None,
                env=dict(self.environ),
            )
        except PermissionError as e:
            raise ShellError('CommandPermissionDenied', f"permission denied: '{name}'") from e
        except FileNotFoundError as e:
            raise ShellError('CommandNotFound', f"command not found: '{name}'") from e
        self.status = proc.returncode
        if proc.returncode != 0:
            raise ShellError('CommandFailed', f"'{name}' exited with status {proc.returncode}")
        stream = ValueStream()
        if capture and proc.stdout:
            try:
                text = proc.stdout.decode('utf-8')
            except UnicodeDecodeError:
                stream.push(proc.stdout)
            else:
                stream.push(text[:-1] if text.endswith('\n') else text)
        return OutputStream(stream)

    @staticmethod
    def encode(value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, list):
            return b''.join(Interpreter.encode(item) for item in value)
        return (to_display(value) + '\n').encode('utf-8')


def run_program(source: str, debug_level: int = 0, **kwargs) -> int:
    """Convenience function to parse and run a crust program from a source string."""
    program = parse_program(source)
    interpreter = Interpreter(debug_level=debug_level, **kwargs)
    try:
        return interpreter.run(program)
    finally:
        interpreter.close()
