import math

import pytest

from crust.errors import ShellError
from crust.types import (
    ClosureVal, HashableValue, RangeVal, RegexVal, Table, binary_op,
    column_value, index_value, is_truthy, iterate, to_display, to_string,
    unary_op, values_equal,
)


@pytest.mark.parametrize('op, lhs, rhs, expected', [
    ('+', 1, 2, 3),
    ('+', 1, 2.5, 3.5),
    ('+', True, 1, 2),
    ('-', 10, 4, 6),
    ('*', 'ab', 3, 'ababab'),
    ('*', 2, [0], [0, 0]),
    ('/', 8, 2, 4.0),
    ('%', 7, -3, 1),
    ('%', -7, 3, -1),
    ('**', 2, 10, 1024.0),
    ('+', [1], 2, [1, 2]),
    ('+', 2, [1], [2, 1]),
    ('+', [1], [2], [1, 2]),
    ('+', 'a', 1, 'a1'),
    ('+', 1.5, 'x', '1.5x'),
])
def test_arithmetic(op, lhs, rhs, expected):
    assert binary_op(op, lhs, rhs) == expected


def test_division_always_produces_float():
    result = binary_op('/', 9, 3)
    assert isinstance(result, float)
    assert result == 3.0


def test_exponent_overflow_is_infinite():
    assert binary_op('**', 10.0, 400) == math.inf


def test_zero_to_a_negative_power_is_infinite():
    assert binary_op('**', 0, -1) == math.inf
    assert binary_op('**', 0.0, -2.5) == math.inf
    assert math.isnan(binary_op('**', -8, 0.5))


def test_repetition_size_is_bounded():
    with pytest.raises(ShellError) as exc:
        binary_op('*', 'a', 9000000000000000000)
    assert exc.value.kind == 'CapacityOverflow'
    with pytest.raises(ShellError):
        binary_op('*', 2 ** 40, [0, 1])
    assert binary_op('*', 'ab', -3) == ''


def test_invalid_operand_names_both_types():
    with pytest.raises(ShellError) as exc:
        binary_op('-', 1, 'a')
    assert exc.value.kind == 'InvalidBinaryOperand'
    assert exc.value.message == "'-' not supported between 'int' and 'string'"


def test_integer_overflow():
    with pytest.raises(ShellError) as exc:
        binary_op('+', 2 ** 63 - 1, 1)
    assert exc.value.kind == 'IntegerOverflow'
    with pytest.raises(ShellError):
        unary_op('-', -(2 ** 63))


@pytest.mark.parametrize('op', ['/', '%'])
def test_division_by_zero(op):
    with pytest.raises(ShellError) as exc:
        binary_op(op, 1, 0)
    assert exc.value.kind == 'DivisionByZero'


def test_range_requires_integers():
    assert binary_op('..', 1, 4) == RangeVal(1, 4)
    assert list(RangeVal(1, 4)) == [1, 2, 3]
    assert len(RangeVal(5, 2)) == 0
    with pytest.raises(ShellError):
        binary_op('..', 1.0, 4)


@pytest.mark.parametrize('value, expected', [
    (None, False),
    (0, False),
    (0.0, False),
    (3, True),
    ('', False),
    ('x', True),
    ([], False),
    ([0], True),
    ({}, False),
    ({'a': 1}, True),
    (RangeVal(0, 3), False),
    (RangeVal(1, 3), True),
    (RegexVal('a'), False),
    (b'', False),
    (Table(['a'], [[1]]), True),
])
def test_truthiness(value, expected):
    assert is_truthy(value) is expected


def test_closure_has_no_truth_value():
    with pytest.raises(ShellError) as exc:
        is_truthy(ClosureVal(None, None))
    assert exc.value.kind == 'InvalidConversion'


def test_equality():
    assert values_equal(1, 1.0)
    assert values_equal(True, 1)
    assert values_equal(True, [1])
    assert values_equal(False, {})
    assert not values_equal('1', 1)
    assert values_equal([1, 'a'], [1.0, 'a'])
    assert values_equal({'a': [1]}, {'a': [1]})
    assert values_equal(RegexVal('a+'), RegexVal('a+'))
    closure = ClosureVal(None, None)
    assert values_equal(closure, closure)
    assert not values_equal(closure, ClosureVal(None, None))


def test_ordering():
    assert binary_op('<', 1, 2.5)
    assert binary_op('>=', 'b', 'a')
    with pytest.raises(ShellError) as exc:
        binary_op('<', 'a', 1)
    assert exc.value.kind == 'InvalidBinaryOperand'


def test_match():
    assert binary_op('=~', 'hello', 'ell')
    assert binary_op('=~', 'hello', RegexVal('^h.l'))
    assert binary_op('!~', 'hello', RegexVal('z'))
    assert binary_op('=~', [1, 2], 2.0)
    assert binary_op('=~', {'k': 1}, 'k')
    assert binary_op('=~', Table(['name'], []), 'name')
    with pytest.raises(ShellError) as exc:
        binary_op('!~', 1, 'a')
    assert "'!~'" in exc.value.message


def test_unary():
    assert unary_op('-', 3) == -3
    assert unary_op('-', True) == -1
    assert unary_op('!', '') is True
    with pytest.raises(ShellError) as exc:
        unary_op('-', 'a')
    assert exc.value.kind == 'InvalidUnaryOperand'


def test_hashable_value():
    items = {HashableValue(1), HashableValue(1.0), HashableValue(True), HashableValue('1')}
    assert len(items) == 2
    assert HashableValue([1, {'a': 2}]) == HashableValue([1, {'a': 2}])
    assert HashableValue(False) != HashableValue([])
    closure = ClosureVal(None, None)
    assert HashableValue(closure) == HashableValue(closure)
    assert HashableValue(closure) != HashableValue(ClosureVal(None, None))


def test_indexing():
    assert index_value([1, 2, 3], -1) == 3
    assert index_value('abc', 1) == 'b'
    assert index_value(RangeVal(10, 20), 2) == 12
    assert index_value({'a': 1}, 'a') == 1
    with pytest.raises(ShellError) as exc:
        index_value([1], 1)
    assert exc.value.kind == 'IndexOutOfBounds'
    with pytest.raises(ShellError) as exc:
        index_value([1], 'x')
    assert exc.value.kind == 'InvalidIndex'


def test_columns():
    table = Table.from_maps([{'name': 'a'}, {'name': 'b', 'size': 2}])
    assert table.headers == ['name', 'size']
    assert column_value(table, 'size') == [None, 2]
    assert index_value(table, 1) == {'name': 'b', 'size': 2}
    assert column_value([{'x': 1}, {'x': 2}], 'x') == [1, 2]
    with pytest.raises(ShellError) as exc:
        column_value({'x': 1}, 'y')
    assert exc.value.kind == 'ColumnNotFound'


def test_iterate():
    assert list(iterate('ab')) == ['a', 'b']
    assert list(iterate({'a': 1, 'b': 2})) == ['a', 'b']
    with pytest.raises(ShellError) as exc:
        iterate(1)
    assert exc.value.kind == 'InvalidIterator'


def test_to_string_and_display():
    assert to_string(None) == ''
    assert to_string(False) == 'false'
    assert to_string(2.0) == '2.0'
    assert to_string(float('nan')) == 'NaN'
    with pytest.raises(ShellError):
        to_string([1])
    assert to_display(['a', 1, None]) == "['a', 1, null]"
    assert to_display({'k': 'v'}) == "{k: 'v'}"
    assert to_display(RangeVal(0, 3)) == '0..3'
    assert to_display(b'abc') == '[binary with 3 bytes]'


def test_render_table():
    table = Table.from_maps([{'name': 'alpha', 'n': 1}, {'name': 'b', 'n': [1, 2]}])
    assert to_display(table).split('\n') == [
        'name  | n',
        '-' * 5 + '-+-' + '-' * 19,
        'alpha | 1',
        'b     | [list with 2 items]',
    ]
