"""Runtime values for crust.

Scalars are plain Python objects (``None`` for null, ``bool``, ``int``,
``float``, ``str``, ``bytes`` for binary data). Lists and maps are Python
``list`` and ``dict``; they are never mutated once a value has been handed
out, every operation below builds a new container. ``Table``, ``RangeVal``,
``RegexVal`` and ``ClosureVal`` cover the remaining kinds.

Operators are resolved through one coercion function per category
(arithmetic, range, comparison, match) rather than per operator.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from crust.errors import ShellError

I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1
MAX_REPEAT = 1 << 28

ARITHMETIC_OPS = ('+', '-', '*', '/', '%', '**')
COMPARISON_OPS = ('==', '!=', '<', '<=', '>', '>=')
MATCH_OPS = ('=~', '!~')


@dataclass(frozen=True)
class RangeVal:
    """Half-open integer range ``start..end``."""
    start: int
    end: int

    def __len__(self) -> int:
        return max(0, self.end - self.start)

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.start, self.end))


@dataclass(frozen=True)
class RegexVal:
    """Compiled regex paired with its source text.

    Equality and hashing only look at the source.
    """
    source: str
    pattern: Optional[re.Pattern] = field(default=None, compare=False)

    def __post_init__(self):
        if self.pattern is None:
            object.__setattr__(self, 'pattern', re.compile(self.source))


@dataclass(eq=False)
class ClosureVal:
    """A closure literal together with the frame it was created in.

    Closures compare and hash by identity.
    """
    node: Any
    frame: Any

    def __repr__(self) -> str:
        return '<closure>'


class Table:
    """Named columns plus rows of values."""

    def __init__(self, headers: Optional[List[str]] = None, rows: Optional[List[List[Any]]] = None):
        self.headers: List[str] = list(headers or [])
        self.rows: List[List[Any]] = [list(r) for r in rows or []]

    @classmethod
    def from_maps(cls, maps: List[Dict[str, Any]]) -> 'Table':
        table = cls()
        for m in maps:
            table.insert_map(m)
        return table

    def insert_map(self, mapping: Dict[str, Any]):
        for key in mapping:
            if key not in self.headers:
                self.headers.append(key)
                for row in self.rows:
                    row.append(None)
        self.rows.append([mapping.get(h) for h in self.headers])

    def has_column(self, name: str) -> bool:
        return name in self.headers

    def column(self, name: str) -> List[Any]:
        if name not in self.headers:
            raise ShellError('ColumnNotFound', f"column '{name}' not found")
        i = self.headers.index(name)
        return [row[i] for row in self.rows]

    def row(self, index: int) -> Dict[str, Any]:
        return dict(zip(self.headers, self.rows[index]))

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        for row in self.rows:
            yield dict(zip(self.headers, row))

    def __repr__(self) -> str:
        return f"Table({self.headers!r}, {self.rows!r})"


###############################################################################
# Classification
###############################################################################

def type_name(value: Any) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'bool'
    if isinstance(value, int):
        return 'int'
    if isinstance(value, float):
        return 'float'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, list):
        return 'list'
    if isinstance(value, dict):
        return 'map'
    if isinstance(value, Table):
        return 'table'
    if isinstance(value, RangeVal):
        return 'range'
    if isinstance(value, RegexVal):
        return 'regex'
    if isinstance(value, (bytes, bytearray)):
        return 'binary'
    if isinstance(value, ClosureVal):
        return 'closure'
    raise TypeError(f"not a crust value: {value!r}")


def is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float))


def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_container(value: Any) -> bool:
    return isinstance(value, (list, dict, Table))


def as_number(value: Any):
    if isinstance(value, bool):
        return int(value)
    return value


def category(value: Any) -> str:
    if is_numeric(value):
        return 'numeric'
    if isinstance(value, str):
        return 'string'
    if is_container(value):
        return 'container'
    return type_name(value)


def narrow_int(n: int) -> int:
    """Check that ``n`` fits a signed 64-bit integer."""
    if n < I64_MIN or n > I64_MAX:
        raise ShellError('IntegerOverflow', f"integer overflow: {n} does not fit in 64 bits")
    return n


def invalid_operand(op: str, lhs: Any, rhs: Any) -> ShellError:
    return ShellError(
        'InvalidBinaryOperand',
        f"'{op}' not supported between '{type_name(lhs)}' and '{type_name(rhs)}'",
    )


###############################################################################
# Truthiness and equality
###############################################################################

def is_truthy(value: Any) -> bool:
    if value is None:
        return False
    if is_numeric(value):
        return value != 0
    if isinstance(value, (str, list, dict, Table, bytes, bytearray)):
        return len(value) > 0
    if isinstance(value, RangeVal):
        return value.start != 0 and value.end != 0
    if isinstance(value, RegexVal):
        return False
    raise ShellError('InvalidConversion', f"cannot convert '{type_name(value)}' to 'bool'")


def values_equal(a: Any, b: Any) -> bool:
    if is_numeric(a) and is_numeric(b):
        return as_number(a) == as_number(b)
    if isinstance(a, bool) and is_container(b):
        return a == (len(b) > 0)
    if isinstance(b, bool) and is_container(a):
        return b == (len(a) > 0)
    if type_name(a) != type_name(b):
        return False
    if isinstance(a, list):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict):
        return a.keys() == b.keys() and all(values_equal(a[k], b[k]) for k in a)
    if isinstance(a, Table):
        return (a.headers == b.headers and len(a.rows) == len(b.rows)
                and all(values_equal(x, y) for x, y in zip(a.rows, b.rows)))
    if isinstance(a, ClosureVal):
        return a is b
    return a == b


def hash_equal(a: Any, b: Any) -> bool:
    # Like values_equal, minus the bool/container cross-kind rule.
    if is_numeric(a) and is_numeric(b):
        return as_number(a) == as_number(b)
    if type_name(a) != type_name(b):
        return False
    if isinstance(a, list):
        return len(a) == len(b) and all(hash_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict):
        return a.keys() == b.keys() and all(hash_equal(a[k], b[k]) for k in a)
    if isinstance(a, Table):
        return (a.headers == b.headers and len(a.rows) == len(b.rows)
                and all(hash_equal(x, y) for x, y in zip(a.rows, b.rows)))
    if isinstance(a, ClosureVal):
        return a is b
    return a == b


def value_hash(value: Any) -> int:
    if is_numeric(value):
        return hash(as_number(value))
    if isinstance(value, list):
        return hash(('list', tuple(value_hash(v) for v in value)))
    if isinstance(value, dict):
        return hash(('map', frozenset((k, value_hash(v)) for k, v in value.items())))
    if isinstance(value, Table):
        rows = tuple(value_hash(row) for row in value.rows)
        return hash(('table', tuple(value.headers), rows))
    if isinstance(value, ClosureVal):
        return id(value)
    return hash((type_name(value), value))


class HashableValue:
    """Hash/equality view of a value, for sets and dict keys.

    Two closures are only equal when they are the same object.
    """
    __slots__ = ('value',)

    def __init__(self, value: Any):
        self.value = value

    def __eq__(self, other) -> bool:
        if not isinstance(other, HashableValue):
            return NotImplemented
        return hash_equal(self.value, other.value)

    def __hash__(self) -> int:
        return value_hash(self.value)

    def __repr__(self) -> str:
        return f"HashableValue({self.value!r})"


###############################################################################
# Operators
###############################################################################

def binary_op(op: str, lhs: Any, rhs: Any) -> Any:
    if op in ARITHMETIC_OPS:
        return arithmetic(op, lhs, rhs)
    if op == '..':
        return make_range(lhs, rhs)
    if op in COMPARISON_OPS:
        return compare(op, lhs, rhs)
    if op in MATCH_OPS:
        result = match(lhs, rhs, op)
        return result if op == '=~' else not result
    raise invalid_operand(op, lhs, rhs)


def arithmetic(op: str, lhs: Any, rhs: Any) -> Any:
    lc, rc = category(lhs), category(rhs)
    if lc == 'numeric' and rc == 'numeric':
        return numeric(op, as_number(lhs), as_number(rhs))
    if op == '+':
        if isinstance(lhs, list) and isinstance(rhs, list):
            return lhs + rhs
        if isinstance(lhs, list):
            return lhs + [rhs]
        if isinstance(rhs, list):
            return [lhs] + rhs
        if {lc, rc} <= {'string', 'numeric'}:
            return to_string(lhs) + to_string(rhs)
    if op == '*':
        if isinstance(lhs, (str, list)) and is_integer(rhs):
            return repeat(lhs, narrow_int(rhs))
        if is_integer(lhs) and isinstance(rhs, (str, list)):
            return repeat(rhs, narrow_int(lhs))
    raise invalid_operand(op, lhs, rhs)


def repeat(seq, count: int):
    if count > 0 and len(seq) * count > MAX_REPEAT:
        raise ShellError('CapacityOverflow',
                         f"repetition of {len(seq)} items {count} times exceeds {MAX_REPEAT}")
    return seq * count


def numeric(op: str, a, b):
    both_int = isinstance(a, int) and isinstance(b, int)
    if op == '/':
        if b == 0:
            raise ShellError('DivisionByZero', 'division by zero')
        return float(a / b)
    if op == '**':
        if a == 0 and b < 0:
            return math.inf
        try:
            return math.pow(a, b)
        except OverflowError:
            return math.inf
        except ValueError:
            return math.nan
    if op == '%':
        if b == 0:
            raise ShellError('DivisionByZero', 'division by zero')
        if both_int:
            r = abs(a) % abs(b)
            return narrow_int(r if a >= 0 else -r)
        return math.fmod(a, b)
    if op == '+':
        result = a + b
    elif op == '-':
        result = a - b
    else:
        result = a * b
    if both_int:
        return narrow_int(result)
    return float(result)


def make_range(lhs: Any, rhs: Any) -> RangeVal:
    if not (is_integer(lhs) and is_integer(rhs)):
        raise invalid_operand('..', lhs, rhs)
    return RangeVal(narrow_int(lhs), narrow_int(rhs))


def compare(op: str, lhs: Any, rhs: Any) -> bool:
    if op == '==':
        return values_equal(lhs, rhs)
    if op == '!=':
        return not values_equal(lhs, rhs)
    if is_numeric(lhs) and is_numeric(rhs):
        a, b = as_number(lhs), as_number(rhs)
    elif isinstance(lhs, str) and isinstance(rhs, str):
        a, b = lhs, rhs
    else:
        raise invalid_operand(op, lhs, rhs)
    if op == '<':
        return a < b
    if op == '<=':
        return a <= b
    if op == '>':
        return a > b
    return a >= b


def match(lhs: Any, rhs: Any, op: str = '=~') -> bool:
    if isinstance(lhs, str):
        if isinstance(rhs, str):
            return rhs in lhs
        if isinstance(rhs, RegexVal):
            return rhs.pattern.search(lhs) is not None
    elif isinstance(lhs, list):
        return any(values_equal(item, rhs) for item in lhs)
    elif isinstance(lhs, dict) and isinstance(rhs, str):
        return rhs in lhs
    elif isinstance(lhs, Table) and isinstance(rhs, str):
        return lhs.has_column(rhs)
    raise invalid_operand(op, lhs, rhs)


def unary_op(op: str, value: Any) -> Any:
    if op == '!':
        return not is_truthy(value)
    if is_numeric(value):
        n = as_number(value)
        if isinstance(n, int):
            return narrow_int(-n)
        return -n
    raise ShellError('InvalidUnaryOperand', f"'{op}' not supported for '{type_name(value)}'")


###############################################################################
# Access
###############################################################################

def try_as_index(index: int, length: int) -> int:
    i = index + length if index < 0 else index
    if i < 0 or i >= length:
        raise ShellError('IndexOutOfBounds', f"index {index} out of bounds for length {length}")
    return i


def index_value(value: Any, index: Any) -> Any:
    if isinstance(index, str) and isinstance(value, (dict, Table)):
        return column_value(value, index)
    if not is_integer(index):
        raise ShellError(
            'InvalidIndex',
            f"cannot index '{type_name(value)}' with '{type_name(index)}'",
        )
    if isinstance(value, (list, str, bytes)):
        return value[try_as_index(index, len(value))]
    if isinstance(value, RangeVal):
        return value.start + try_as_index(index, len(value))
    if isinstance(value, Table):
        return value.row(try_as_index(index, len(value)))
    raise ShellError(
        'InvalidIndex',
        f"cannot index '{type_name(value)}' with '{type_name(index)}'",
    )


def column_value(value: Any, name: str) -> Any:
    if isinstance(value, dict):
        if name not in value:
            raise ShellError('ColumnNotFound', f"column '{name}' not found")
        return value[name]
    if isinstance(value, Table):
        return value.column(name)
    if isinstance(value, list):
        return [column_value(item, name) for item in value]
    raise ShellError('InvalidIndex', f"cannot access column '{name}' on '{type_name(value)}'")


def iterate(value: Any) -> Iterator[Any]:
    if isinstance(value, (list, RangeVal, str, Table)):
        return iter(value)
    if isinstance(value, dict):
        return iter(list(value.keys()))
    raise ShellError('InvalidIterator', f"cannot iterate over type '{type_name(value)}'")


###############################################################################
# Conversion to text
###############################################################################

def format_float(value: float) -> str:
    if math.isnan(value):
        return 'NaN'
    if math.isinf(value):
        return 'inf' if value > 0 else '-inf'
    return repr(value)


def to_string(value: Any) -> str:
    """Stringify a scalar. Containers have no string form."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, str):
        return value
    if isinstance(value, RegexVal):
        return value.source
    raise ShellError('InvalidConversion', f"cannot convert '{type_name(value)}' to 'string'")


def to_compact_string(value: Any) -> str:
    if isinstance(value, list):
        return f"[list with {len(value)} items]"
    if isinstance(value, dict):
        return f"[map with {len(value)} entries]"
    if isinstance(value, Table):
        return f"[table with {len(value)} rows]"
    return to_display(value)


def to_display(value: Any, nested: bool = False) -> str:
    if isinstance(value, str):
        return repr(value) if nested else value
    if isinstance(value, list):
        return '[' + ', '.join(to_display(v, True) for v in value) + ']'
    if isinstance(value, dict):
        inner = ', '.join(f"{k}: {to_display(v, True)}" for k, v in value.items())
        return '{' + inner + '}'
    if isinstance(value, Table):
        return render_table(value)
    if isinstance(value, RangeVal):
        return f"{value.start}..{value.end}"
    if isinstance(value, RegexVal):
        return f"@'{value.source}'" if nested else value.source
    if isinstance(value, (bytes, bytearray)):
        return f"[binary with {len(value)} bytes]"
    if isinstance(value, ClosureVal):
        return '[closure]'
    if value is None and nested:
        return 'null'
    return to_string(value)


def render_table(table: Table) -> str:
    cells = [[to_compact_string(v) for v in row] for row in table.rows]
    widths = [len(h) for h in table.headers]
    for row in cells:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))
    lines = [' | '.join(h.ljust(w) for h, w in zip(table.headers, widths)).rstrip()]
    lines.append('-+-'.join('-' * w for w in widths))
    for row in cells:
        lines.append(' | '.join(c.ljust(w) for c, w in zip(row, widths)).rstrip())
    return '\n'.join(lines)
