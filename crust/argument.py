"""Argument evaluation and glob expansion.

An argument is a run of adjacent fragments (``ArgPart``). Without live glob
characters the fragments are concatenated into one string, or passed
through untouched when there is only one. When a bare fragment holds an
unescaped ``*`` the whole argument becomes a glob pattern: every
other fragment is escaped so that text coming from variables and
sub-expressions matches literally, and the pattern is expanded against
the filesystem. ``*`` is the only wildcard: ``?`` and ``[`` always match
themselves, so words such as ``what?`` pass through unchanged.
"""

from __future__ import annotations

import glob
import os
from typing import Any, List, Tuple

from .ast import Argument, ArgPart
from .errors import ShellError, Signal
from .lexer import unescape_char
from .types import narrow_int, to_string

GLOB_CHARS = '*'


def has_glob(raw: str) -> bool:
    i = 0
    while i < len(raw):
        c = raw[i]
        if c == '\\':
            i += 2
            continue
        if c in GLOB_CHARS:
            return True
        i += 1
    return False


def bare_text(raw: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(raw):
        c = raw[i]
        if c == '\\' and i + 1 < len(raw):
            out.append(unescape_char(raw[i + 1]))
            i += 2
            continue
        out.append(c)
        i += 1
    return ''.join(out)


def bare_pattern(raw: str) -> str:
    """Glob pattern for a bare fragment: only unescaped stars stay wildcards."""
    out: List[str] = []
    i = 0
    while i < len(raw):
        c = raw[i]
        if c == '\\' and i + 1 < len(raw):
            out.append(glob.escape(unescape_char(raw[i + 1])))
            i += 2
            continue
        out.append(c if c in GLOB_CHARS else glob.escape(c))
        i += 1
    return ''.join(out)


def split_tilde(raw: str) -> Tuple[bool, str]:
    if raw == '~' or raw.startswith('~/'):
        return True, raw[1:]
    return False, raw


def part_value(interp, part: ArgPart, frame) -> Any:
    kind = part.kind
    if kind == 'bare':
        return bare_text(part.value)
    if kind == 'quoted':
        return part.value
    if kind == 'int':
        return narrow_int(part.value)
    if kind == 'float':
        return float(part.value)
    if kind == 'variable':
        return frame.get_var(part.value)
    return interp.evaluate(part.value, frame)


def part_text(part: ArgPart, value: Any) -> str:
    if part.kind in ('int', 'float'):
        return part.text if part.text is not None else str(part.value)
    return to_string(value)


def evaluate_argument(interp, argument: Argument, frame) -> Any:
    """Evaluate one argument to a value, a list of glob matches, or an Exit signal."""
    evaluated = []
    is_glob = False
    for part in argument.parts:
        if part.kind == 'bare' and has_glob(part.value):
            is_glob = True
        value = part_value(interp, part, frame)
        if isinstance(value, Signal):
            return value
        evaluated.append((part, value))

    home = None
    first = argument.parts[0]
    if first.kind == 'bare':
        tilde, rest = split_tilde(first.value)
        if tilde:
            home = os.path.expanduser('~')
            evaluated[0] = (ArgPart('bare', rest, span=first.span), bare_text(rest))

    if not is_glob:
        if len(evaluated) == 1 and home is None:
            return evaluated[0][1]
        text = ''.join(part_text(part, value) for part, value in evaluated)
        return (home or '') + text

    pieces = [glob.escape(home)] if home is not None else []
    for part, value in evaluated:
        if part.kind == 'bare':
            pieces.append(bare_pattern(part.value))
        else:
            pieces.append(glob.escape(part_text(part, value)))
    pattern = ''.join(pieces)
    interp.debug(f"glob {pattern}", level=3)
    matches = sorted(glob.glob(pattern))
    if not matches:
        raise ShellError('NoMatch', f"no match found for pattern: '{pattern}'", argument.span)
    return matches


def expand_to_strings(value: Any) -> List[str]:
    """Flatten a value into command-line words for an external process."""
    if value is None:
        return []
    if isinstance(value, list):
        words: List[str] = []
        for item in value:
            words.extend(expand_to_strings(item))
        return words
    return [to_string(value)]
